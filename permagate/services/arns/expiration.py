"""Expiration monitor for leased ArNS names.

Two notices are sent per lease expiry:

1. `grace_period_start` once `end_timestamp` has passed.
2. `grace_period_ending` when the grace period has `ending_notice_days` left.

A receipt row keyed by (name, notification type, end timestamp) is inserted
before anything is sent; losing that insert means the notice already went
out. A renewal changes `end_timestamp`, which opens a fresh cycle.
"""

import asyncio
import hashlib
import time
from dataclasses import dataclass
from typing import Callable

from permagate.common.events import NetworkEvent, NotificationEnvelope
from permagate.common.logging import arns_name_ctx, logger
from permagate.common.metrics import arns_expiration_notifications_total, arns_expiration_runs_skipped_total
from permagate.common.models import ArnsName
from permagate.common.store import ExpirationWindow, Store
from permagate.services.notification.content import EXPIRATION_EVENT_TYPE, generate_notification_content
from permagate.services.notification.fanout import CompositeNotificationProvider
from permagate.services.notification.matcher import SubscriberMatcher


GRACE_PERIOD_START = "grace_period_start"
GRACE_PERIOD_ENDING = "grace_period_ending"
DAY_MS = 24 * 60 * 60 * 1000


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class ExpirationPolicy:
    grace_period_days: int = 14
    ending_notice_days: int = 1

    @property
    def grace_period_ms(self) -> int:
        return self.grace_period_days * DAY_MS

    def windows(self, now: int) -> list[ExpirationWindow]:
        grace_started_after = now - self.grace_period_ms
        return [
            ExpirationWindow(GRACE_PERIOD_START, end_after=grace_started_after, end_until=now),
            ExpirationWindow(
                GRACE_PERIOD_ENDING,
                end_after=grace_started_after,
                end_until=grace_started_after + self.ending_notice_days * DAY_MS,
            ),
        ]

    def days_remaining(self, notification_type: str) -> int:
        if notification_type == GRACE_PERIOD_ENDING:
            return self.ending_notice_days
        return self.grace_period_days


@dataclass
class ExpirationRunResult:
    """`completed` or `already_in_progress`, with per-notice counts."""

    status: str
    sent: int = 0
    skipped: int = 0
    failed: int = 0


def expiration_nonce(name: str, notification_type: str, end_timestamp: int) -> int:
    """Stable positive 63-bit nonce for the synthetic expiration event."""

    digest = hashlib.sha256(f"{name}-{notification_type}-{end_timestamp}".encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big") >> 1


def build_expiration_event(arns_name: ArnsName, notification_type: str, policy: ExpirationPolicy) -> NetworkEvent:
    grace_period_ends_at = arns_name.end_timestamp + policy.grace_period_ms
    return NetworkEvent(
        event_type=EXPIRATION_EVENT_TYPE,
        nonce=expiration_nonce(arns_name.name, notification_type, arns_name.end_timestamp),
        process_id=arns_name.process_id,
        event_data={
            "id": f"arns-expiration-{arns_name.name}-{notification_type}-{arns_name.end_timestamp}",
            "target": arns_name.owner or None,
            "from": None,
            "tags": [
                {"name": "Action", "value": EXPIRATION_EVENT_TYPE},
                {"name": "Name", "value": arns_name.name},
                {"name": "Notification-Type", "value": notification_type},
            ],
            "data": {
                "name": arns_name.name,
                "owner": arns_name.owner,
                "processId": arns_name.process_id,
                "endTimestamp": arns_name.end_timestamp,
                "gracePeriodEndsAt": grace_period_ends_at,
                "daysRemaining": policy.days_remaining(notification_type),
                "notificationType": notification_type,
            },
        },
    )


class ArnsExpirationMonitor:
    """Scans cached leased names and sends each expiration notice once."""

    def __init__(
        self,
        store: Store,
        matcher: SubscriberMatcher,
        notifier: CompositeNotificationProvider,
        policy: ExpirationPolicy | None = None,
        clock: Callable[[], int] = now_ms,
        service_name: str = "arns",
    ) -> None:
        self.store = store
        self.matcher = matcher
        self.notifier = notifier
        self.policy = policy or ExpirationPolicy()
        self.clock = clock
        self.service_name = service_name
        self._run_lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._run_lock.locked()

    async def process_arns_expiration_events(self) -> ExpirationRunResult:
        """Single-flight: a trigger during an active run returns immediately."""

        if self._run_lock.locked():
            logger.info("arns_expiration_run_skipped reason=already_in_progress")
            arns_expiration_runs_skipped_total.labels(service=self.service_name).inc()
            return ExpirationRunResult(status="already_in_progress")
        async with self._run_lock:
            return await self._run()

    async def _run(self) -> ExpirationRunResult:
        logger.info("arns_expiration_run_started")
        result = ExpirationRunResult(status="completed")
        for window in self.policy.windows(self.clock()):
            for arns_name in self.store.list_leased_names_nearing_expiration(window):
                outcome = await self._notify(arns_name, window.notification_type)
                setattr(result, outcome, getattr(result, outcome) + 1)
        logger.info(
            "arns_expiration_run_completed sent=%s skipped=%s failed=%s",
            result.sent,
            result.skipped,
            result.failed,
        )
        return result

    async def _notify(self, arns_name: ArnsName, notification_type: str) -> str:
        """Returns the result counter to bump: `sent`, `skipped` or `failed`."""

        token = arns_name_ctx.set(arns_name.name)
        try:
            outcome = await self._send_once(arns_name, notification_type)
        except Exception as exc:
            logger.exception(
                "arns_expiration_notice_failed name=%s type=%s error=%s", arns_name.name, notification_type, exc
            )
            outcome = "failed"
        finally:
            arns_name_ctx.reset(token)
        arns_expiration_notifications_total.labels(
            service=self.service_name, notification_type=notification_type, result=outcome
        ).inc()
        return outcome

    async def _send_once(self, arns_name: ArnsName, notification_type: str) -> str:
        inserted = self.store.insert_expiration_receipt_if_absent(
            arns_name.name, notification_type, arns_name.end_timestamp
        )
        if not inserted:
            logger.debug(
                "arns_expiration_already_notified name=%s type=%s end_timestamp=%s",
                arns_name.name,
                notification_type,
                arns_name.end_timestamp,
            )
            return "skipped"

        event = build_expiration_event(arns_name, notification_type, self.policy)
        subscribers = self.matcher.find_recipients_for_name(EXPIRATION_EVENT_TYPE, arns_name.name)
        content = generate_notification_content(event)
        self.store.create_event(event)
        logger.info(
            "arns_expiration_notice name=%s type=%s end_timestamp=%s owner=%s recipients=%s",
            arns_name.name,
            notification_type,
            arns_name.end_timestamp,
            arns_name.owner,
            len(subscribers),
        )
        await self.notifier.handle(
            NotificationEnvelope(
                event=event,
                recipients=[subscriber.email for subscriber in subscribers],
                subject=content.subject,
                html=content.html,
                text=content.text,
            )
        )
        self.store.mark_event_processed(event.nonce)
        return "sent"
