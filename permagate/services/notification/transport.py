"""Outbound HTTP helper shared by chat, webhook and email channels."""

from typing import Any

import httpx


class NotificationDeliveryError(Exception):
    """A channel could not deliver a notification."""


async def post_json(
    url: str,
    payload: Any,
    *,
    timeout: float,
    headers: dict[str, str] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.Response:
    """POST `payload` as JSON; any non-2xx response raises."""

    async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
        resp = await client.post(url, json=payload, headers=headers)
    if not resp.is_success:
        # Chat webhook URLs embed their secret in the path; only the host is reported.
        raise NotificationDeliveryError(f"POST to {httpx.URL(url).host} failed (status={resp.status_code})")
    return resp
