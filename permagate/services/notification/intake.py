"""Turn gateway webhooks into processed events."""

from typing import Any

import httpx

from permagate.common.events import GatewayWebhook, event_from_gateway_webhook
from permagate.common.logging import logger
from permagate.services.notification.service import EventProcessor, ProcessResult


async def fetch_message_data(
    gateway_url: str,
    item_id: str,
    timeout: float = 10.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Any:
    """Fetch a data item's body from the gateway; None when unavailable."""

    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            resp = await client.get(f"{gateway_url.rstrip('/')}/{item_id}")
    except httpx.HTTPError as exc:
        logger.warning("gateway_fetch_failed item_id=%s error=%s", item_id, type(exc).__name__)
        return None
    if not resp.is_success:
        logger.warning("gateway_fetch_failed item_id=%s status=%s", item_id, resp.status_code)
        return None
    try:
        return resp.json()
    except ValueError:
        return resp.text


async def ingest_gateway_webhook(
    payload: GatewayWebhook,
    processor: EventProcessor,
    gateway_url: str,
    timeout: float = 10.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ProcessResult | None:
    """Returns None when the item carries no nonce/action and is ignored."""

    event = event_from_gateway_webhook(payload)
    if event is None:
        return None
    if processor.store.get_event(event.nonce) is not None:
        # Skip the gateway fetch; the processor records the duplicate.
        return await processor.process_event(event)
    if payload.data.data is None:
        event.event_data["data"] = await fetch_message_data(gateway_url, payload.data.id, timeout, transport)
    return await processor.process_event(event)
