"""Slack and Discord chat-webhook channels.

Both channels format the event into channel-native messages. Bodies longer
than the channel's field limit are split into several segments, never
truncated: Slack gets extra `section` blocks, Discord gets extra messages.
"""

from datetime import datetime, timezone
from typing import Any

import httpx

from permagate.common.events import NetworkEvent, NotificationEnvelope
from permagate.common.logging import logger
from permagate.services.notification.content import (
    entity_link,
    event_markdown,
    event_subject,
    short_address,
    split_text,
)
from permagate.services.notification.fanout import NotificationProvider
from permagate.services.notification.transport import post_json


SLACK_SECTION_LIMIT = 3000
SLACK_HEADER_LIMIT = 150
DISCORD_DESCRIPTION_LIMIT = 4096
DISCORD_TITLE_LIMIT = 256
DISCORD_COLOR = 0x5865F2
DISCORD_FOOTER = "Permagate Alerts"


def _slack_link(address: str | None) -> str:
    if not address:
        return "N/A"
    return f"<{entity_link(address)}|{short_address(address)}>"


def build_slack_message(event: NetworkEvent, header: str | None = None) -> dict[str, Any]:
    header = header or event_subject(event)
    body = event_markdown(event, bold="*")
    blocks: list[dict[str, Any]] = [
        {
            "type": "header",
            "text": {"type": "plain_text", "text": header[:SLACK_HEADER_LIMIT], "emoji": True},
        }
    ]
    if body:
        blocks.extend(
            {"type": "section", "text": {"type": "mrkdwn", "text": segment}}
            for segment in split_text(body, SLACK_SECTION_LIMIT)
        )
    blocks.append(
        {
            "type": "section",
            "fields": [
                {"type": "mrkdwn", "text": f"*Event Type:*\n{event.event_type}"},
                {"type": "mrkdwn", "text": f"*Process ID:*\n{_slack_link(event.process_id)}"},
            ],
        }
    )
    blocks.append(
        {
            "type": "section",
            "fields": [
                {"type": "mrkdwn", "text": f"*Target:*\n{_slack_link(event.event_data.get('target'))}"},
                {"type": "mrkdwn", "text": f"*From:*\n{_slack_link(event.event_data.get('from'))}"},
            ],
        }
    )
    return {"text": header, "blocks": blocks}


def _discord_link(address: str) -> str:
    return f"[{short_address(address)}]({entity_link(address)})"


def build_discord_messages(event: NetworkEvent, title: str | None = None) -> list[dict[str, Any]]:
    """First message carries title and fields; later ones continue the body."""

    title = (title or event_subject(event))[:DISCORD_TITLE_LIMIT]
    timestamp = datetime.now(timezone.utc).isoformat()
    fields = [{"name": "Event Type", "value": event.event_type, "inline": True}]
    if event.process_id:
        fields.append({"name": "Process ID", "value": _discord_link(event.process_id), "inline": True})
    for label, key in (("Target", "target"), ("From", "from")):
        address = event.event_data.get(key)
        if address:
            fields.append({"name": label, "value": _discord_link(address), "inline": True})

    segments = split_text(event_markdown(event, bold="**"), DISCORD_DESCRIPTION_LIMIT)
    messages = []
    for index, segment in enumerate(segments):
        embed: dict[str, Any] = {
            "description": segment,
            "color": DISCORD_COLOR,
            "timestamp": timestamp,
            "footer": {"text": DISCORD_FOOTER},
        }
        if index == 0:
            embed["title"] = title
            embed["fields"] = fields
        else:
            embed["title"] = f"{title} ({index + 1}/{len(segments)})"[:DISCORD_TITLE_LIMIT]
        messages.append({"embeds": [embed]})
    return messages


class SlackNotificationProvider(NotificationProvider):
    name = "slack"

    def __init__(
        self,
        webhook_url: str,
        enabled: bool = True,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(enabled=enabled)
        self.webhook_url = webhook_url
        self.timeout = timeout
        self.transport = transport

    def __repr__(self) -> str:
        return f"<{type(self).__name__} enabled={self.enabled}>"

    async def deliver(self, envelope: NotificationEnvelope) -> None:
        message = build_slack_message(envelope.event, envelope.subject)
        await post_json(self.webhook_url, message, timeout=self.timeout, transport=self.transport)
        logger.debug("slack_sent event_type=%s blocks=%s", envelope.event.event_type, len(message["blocks"]))


class DiscordNotificationProvider(NotificationProvider):
    name = "discord"

    def __init__(
        self,
        webhook_url: str,
        enabled: bool = True,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(enabled=enabled)
        self.webhook_url = webhook_url
        self.timeout = timeout
        self.transport = transport

    def __repr__(self) -> str:
        return f"<{type(self).__name__} enabled={self.enabled}>"

    async def deliver(self, envelope: NotificationEnvelope) -> None:
        # Segments are posted in order so the channel reads top to bottom.
        messages = build_discord_messages(envelope.event, envelope.subject)
        for message in messages:
            await post_json(self.webhook_url, message, timeout=self.timeout, transport=self.transport)
        logger.debug("discord_sent event_type=%s messages=%s", envelope.event.event_type, len(messages))
