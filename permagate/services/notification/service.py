"""Event processor: nonce dedup, subscriber matching and fan-out."""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from permagate.common.events import NetworkEvent, NotificationEnvelope
from permagate.common.logging import event_nonce_ctx, event_type_ctx, logger
from permagate.common.metrics import (
    duplicate_events_skipped_total,
    events_processed_total,
    events_received_total,
)
from permagate.common.store import Store
from permagate.services.notification.content import generate_notification_content, render_digest
from permagate.services.notification.email import EmailTransport
from permagate.services.notification.fanout import CompositeNotificationProvider, DeliveryOutcome
from permagate.services.notification.matcher import SubscriberMatcher


@dataclass(frozen=True)
class ProcessResult:
    """`processed`, `duplicate` or `failed` for one `process_event` call."""

    status: str
    nonce: int
    recipients: int = 0
    outcomes: list[DeliveryOutcome] = field(default_factory=list)


class EventProcessor:
    """Processes each upstream event at most once per nonce."""

    def __init__(
        self,
        store: Store,
        matcher: SubscriberMatcher,
        notifier: CompositeNotificationProvider,
        digest_transport: EmailTransport | None = None,
        service_name: str = "notification",
    ) -> None:
        self.store = store
        self.matcher = matcher
        self.notifier = notifier
        self.digest_transport = digest_transport
        self.service_name = service_name

    async def process_event(self, event: NetworkEvent) -> ProcessResult:
        """Never raises; failures are logged and reported as `failed`."""

        nonce_token = event_nonce_ctx.set(str(event.nonce))
        type_token = event_type_ctx.set(event.event_type)
        try:
            events_received_total.labels(service=self.service_name).inc()
            return await self._process(event)
        except Exception as exc:
            logger.exception("event_processing_failed nonce=%s event_type=%s error=%s", event.nonce, event.event_type, exc)
            return ProcessResult(status="failed", nonce=event.nonce)
        finally:
            event_nonce_ctx.reset(nonce_token)
            event_type_ctx.reset(type_token)

    def _duplicate(self, event: NetworkEvent) -> ProcessResult:
        logger.info("duplicate event skipped event_type=%s nonce=%s", event.event_type, event.nonce)
        duplicate_events_skipped_total.labels(service=self.service_name, event_type=event.event_type).inc()
        return ProcessResult(status="duplicate", nonce=event.nonce)

    async def _process(self, event: NetworkEvent) -> ProcessResult:
        if self.store.get_event(event.nonce) is not None:
            return self._duplicate(event)

        subscribers = self.matcher.find_subscribers_by_event(event.event_type)
        content = generate_notification_content(event)
        envelope = NotificationEnvelope(
            event=event,
            recipients=[subscriber.email for subscriber in subscribers],
            subject=content.subject,
            html=content.html,
            text=content.text,
        )

        # The insert is the atomic claim on the nonce: a concurrent attempt that
        # loses the unique-constraint race stops here without notifying anyone.
        if not self.store.claim_event(event):
            return self._duplicate(event)

        outcomes = await self.notifier.handle(envelope)
        self.store.mark_event_processed(event.nonce)
        events_processed_total.labels(service=self.service_name, event_type=event.event_type).inc()
        logger.info(
            "event_processed nonce=%s event_type=%s recipients=%s outcomes=%s",
            event.nonce,
            event.event_type,
            len(envelope.recipients),
            [(outcome.provider, outcome.status) for outcome in outcomes],
        )
        return ProcessResult(
            status="processed",
            nonce=event.nonce,
            recipients=len(envelope.recipients),
            outcomes=outcomes,
        )

    async def process_daily_digest(self, now: datetime | None = None) -> int:
        """Email one digest of the last day's events to every verified subscriber.

        Returns the number of recipients the digest was sent to.
        """

        if self.digest_transport is None:
            logger.info("daily_digest_skipped reason=no_email_transport")
            return 0
        now = now or datetime.now(timezone.utc)
        rows = self.store.list_processed_events_since(now - timedelta(days=1))
        subscribers = self.store.list_verified_subscribers()
        if not subscribers:
            logger.info("daily_digest_skipped reason=no_subscribers events=%s", len(rows))
            return 0

        events_by_type: dict[str, list[NetworkEvent]] = defaultdict(list)
        for row in rows:
            events_by_type[row.event_type].append(
                NetworkEvent(
                    event_type=row.event_type,
                    event_data=row.event_data or {},
                    nonce=row.nonce,
                    process_id=row.process_id or "",
                    block_height=row.block_height,
                )
            )
        content = render_digest(dict(events_by_type))
        await self.digest_transport.send(
            to=[subscriber.email for subscriber in subscribers],
            subject=content.subject,
            html=content.html,
            text=content.text,
        )
        logger.info("daily_digest_sent events=%s recipients=%s", len(rows), len(subscribers))
        return len(subscribers)
