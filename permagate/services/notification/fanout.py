"""Concurrent multi-channel delivery with per-channel failure isolation."""

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass

from permagate.common.events import NotificationEnvelope
from permagate.common.logging import logger
from permagate.common.metrics import notification_deliveries_total, notification_delivery_seconds


@dataclass(frozen=True)
class DeliveryOutcome:
    """Result of one provider's attempt: `success`, `failed` or `skipped`."""

    provider: str
    status: str
    error: str | None = None


class NotificationProvider(ABC):
    """One delivery channel. `deliver` raises when the channel fails."""

    name: str = "provider"

    def __init__(self, enabled: bool = True) -> None:
        self.enabled = enabled

    @abstractmethod
    async def deliver(self, envelope: NotificationEnvelope) -> None:
        ...


class CompositeNotificationProvider:
    """Dispatch one envelope to every provider and settle all of them.

    A provider failure (or timeout, when `timeout_seconds` is set) is logged
    and reported as a `failed` outcome; it never cancels or blocks siblings.
    """

    def __init__(
        self,
        providers: list[NotificationProvider],
        service_name: str = "notification",
        timeout_seconds: float | None = None,
    ) -> None:
        self.providers = providers
        self.service_name = service_name
        self.timeout_seconds = timeout_seconds

    async def handle(self, envelope: NotificationEnvelope) -> list[DeliveryOutcome]:
        logger.debug(
            "fanout_start providers=%s event_type=%s recipients=%s",
            len(self.providers),
            envelope.event.event_type,
            len(envelope.recipients),
        )
        if not self.providers:
            return []
        return list(await asyncio.gather(*(self._deliver_one(p, envelope) for p in self.providers)))

    async def _deliver_one(self, provider: NotificationProvider, envelope: NotificationEnvelope) -> DeliveryOutcome:
        event_type = envelope.event.event_type
        if not provider.enabled:
            logger.info("notification_provider_disabled provider=%s event_type=%s", provider.name, event_type)
            notification_deliveries_total.labels(
                service=self.service_name, provider=provider.name, status="skipped"
            ).inc()
            return DeliveryOutcome(provider=provider.name, status="skipped")

        started = time.perf_counter()
        try:
            if self.timeout_seconds:
                await asyncio.wait_for(provider.deliver(envelope), timeout=self.timeout_seconds)
            else:
                await provider.deliver(envelope)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            error = str(exc) or type(exc).__name__
            logger.error(
                "notification_provider_failed provider=%s event_type=%s nonce=%s error=%s",
                provider.name,
                event_type,
                envelope.event.nonce,
                error,
            )
            notification_deliveries_total.labels(
                service=self.service_name, provider=provider.name, status="failed"
            ).inc()
            return DeliveryOutcome(provider=provider.name, status="failed", error=error)
        finally:
            notification_delivery_seconds.labels(service=self.service_name, provider=provider.name).observe(
                max(0.0, time.perf_counter() - started)
            )

        notification_deliveries_total.labels(service=self.service_name, provider=provider.name, status="success").inc()
        return DeliveryOutcome(provider=provider.name, status="success")
