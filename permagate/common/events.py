"""Network event + notification envelope shapes.

This module standardizes the event structure handed to the processor and the
per-dispatch envelope handed to channel providers. It also decodes the
gateway's indexed data-item webhook into a `NetworkEvent`.
"""

import base64
import binascii
from typing import Any

from pydantic import BaseModel, Field

from permagate.common.logging import logger


class NetworkEvent(BaseModel):
    """Canonical event shape; `nonce` is the upstream idempotency token."""

    event_type: str
    event_data: dict[str, Any] = Field(default_factory=dict)
    nonce: int
    process_id: str = ""
    block_height: int | None = None


class NotificationEnvelope(BaseModel):
    """Unit passed to the fan-out engine; built per dispatch, never stored."""

    event: NetworkEvent
    recipients: list[str] = Field(default_factory=list)
    subject: str | None = None
    html: str | None = None
    text: str | None = None


class EventTag(BaseModel):
    name: str
    value: str


class IndexedDataItem(BaseModel):
    """The `data` object of a gateway `ans104-data-item-indexed` webhook."""

    id: str
    tags: list[EventTag] = Field(default_factory=list)
    target: str = ""
    owner_address: str | None = None
    parent_id: str | None = None
    data: Any = None


class GatewayWebhook(BaseModel):
    """Webhook body posted by an AR.IO gateway when a data item is indexed."""

    event: str = ""
    data: IndexedDataItem


def _b64url_decode(value: str) -> str:
    padded = value + "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8")


def decode_tags(tags: list[EventTag]) -> list[EventTag]:
    """Decode base64url tag names/values as sent by the gateway."""

    return [EventTag(name=_b64url_decode(tag.name), value=_b64url_decode(tag.value)) for tag in tags]


def event_from_gateway_webhook(payload: GatewayWebhook, message_data: Any = None) -> NetworkEvent | None:
    """Build a `NetworkEvent` from an indexed data item.

    The nonce comes from the first `Ref_*` tag and the event type from the
    `Action` tag. Returns None when either is missing or tags do not decode.
    """

    item = payload.data
    try:
        tags = decode_tags(item.tags)
    except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
        logger.error("gateway_webhook_bad_tags item_id=%s error=%s", item.id, exc)
        return None

    nonce_raw = next((tag.value for tag in tags if tag.name.startswith("Ref_")), None)
    action = next((tag.value.lower() for tag in tags if tag.name.startswith("Action")), None)
    if not nonce_raw or not action:
        logger.error("gateway_webhook_missing_nonce_or_action item_id=%s tags=%s", item.id, tags)
        return None
    try:
        nonce = int(nonce_raw)
    except ValueError:
        logger.error("gateway_webhook_bad_nonce item_id=%s nonce=%s", item.id, nonce_raw)
        return None

    process_id = next((tag.value for tag in tags if tag.name == "From-Process"), "")
    return NetworkEvent(
        event_type=action,
        nonce=nonce,
        process_id=process_id,
        event_data={
            "id": item.id,
            "target": item.target,
            "from": process_id or item.owner_address,
            "tags": [tag.model_dump() for tag in tags],
            "data": message_data if message_data is not None else item.data,
        },
    )
