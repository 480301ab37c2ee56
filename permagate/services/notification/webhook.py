"""Subscriber-owned webhooks, with delivery state written back per row."""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import httpx

from permagate.common.events import NotificationEnvelope
from permagate.common.logging import logger
from permagate.common.metrics import webhook_deliveries_total
from permagate.common.models import Webhook
from permagate.common.store import Store
from permagate.services.notification.chat import build_discord_messages, build_slack_message
from permagate.services.notification.fanout import NotificationProvider
from permagate.services.notification.transport import NotificationDeliveryError, post_json


MAX_STORED_ERROR_LENGTH = 500


@dataclass(frozen=True)
class WebhookDeliveryResult:
    webhook_id: int
    status: str
    error: str | None = None


def custom_payload(envelope: NotificationEnvelope) -> dict[str, Any]:
    event = envelope.event
    return {
        "eventType": event.event_type,
        "processId": event.process_id,
        "nonce": event.nonce,
        "blockHeight": event.block_height,
        "eventData": event.event_data,
    }


def payloads_for(webhook: Webhook, envelope: NotificationEnvelope) -> list[dict[str, Any]]:
    """Messages to POST for one webhook row, formatted for its `type`."""

    if webhook.type == "slack":
        return [build_slack_message(envelope.event, envelope.subject)]
    if webhook.type == "discord":
        return build_discord_messages(envelope.event, envelope.subject)
    return [custom_payload(envelope)]


class WebhookNotificationProvider(NotificationProvider):
    """POSTs to every active webhook linked to the event type.

    Rows are delivered concurrently; each row's outcome is stored on the row.
    `deliver` raises after all rows settle if any of them failed.
    """

    name = "webhook"

    def __init__(
        self,
        store: Store,
        enabled: bool = True,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
        service_name: str = "notification",
    ) -> None:
        super().__init__(enabled=enabled)
        self.store = store
        self.timeout = timeout
        self.transport = transport
        self.service_name = service_name

    async def deliver(self, envelope: NotificationEnvelope) -> None:
        results = await self.deliver_all(envelope)
        failed = [result for result in results if result.status == "failed"]
        if failed:
            raise NotificationDeliveryError(
                f"{len(failed)}/{len(results)} webhook deliveries failed ids={[r.webhook_id for r in failed]}"
            )

    async def deliver_all(self, envelope: NotificationEnvelope) -> list[WebhookDeliveryResult]:
        webhooks = self.store.list_active_webhooks_for_event_type(envelope.event.event_type)
        if not webhooks:
            logger.debug("webhook_none_configured event_type=%s", envelope.event.event_type)
            return []
        return list(await asyncio.gather(*(self._deliver_to(webhook, envelope) for webhook in webhooks)))

    async def _deliver_to(self, webhook: Webhook, envelope: NotificationEnvelope) -> WebhookDeliveryResult:
        headers = {"Authorization": webhook.authorization} if webhook.authorization else None
        error = None
        try:
            for payload in payloads_for(webhook, envelope):
                await post_json(webhook.url, payload, timeout=self.timeout, headers=headers, transport=self.transport)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            # Row data is user supplied; a bad URL or header fails only this row.
            error = (str(exc) or type(exc).__name__)[:MAX_STORED_ERROR_LENGTH]

        status = "failed" if error else "success"
        self.store.update_webhook_delivery_state(webhook.id, status, error, datetime.now(timezone.utc))
        webhook_deliveries_total.labels(service=self.service_name, webhook_type=webhook.type, status=status).inc()
        if error:
            logger.warning(
                "webhook_delivery_failed webhook_id=%s type=%s event_type=%s error=%s",
                webhook.id,
                webhook.type,
                envelope.event.event_type,
                error,
            )
        return WebhookDeliveryResult(webhook_id=webhook.id, status=status, error=error)
