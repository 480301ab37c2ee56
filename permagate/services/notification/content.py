"""Subject, HTML and plain-text generation shared by every channel."""

import html
import json
from dataclasses import dataclass
from typing import Any

from permagate.common.config import settings
from permagate.common.events import NetworkEvent


EXPIRATION_EVENT_TYPE = "arns-name-expiration-notice"


@dataclass(frozen=True)
class NotificationContent:
    subject: str
    html: str
    text: str


def format_name_for_display(name: str) -> str:
    """Show punycode ArNS names as `unicode (xn--...)`."""

    if "xn--" not in name:
        return name
    try:
        decoded = ".".join(label.encode("ascii").decode("idna") for label in name.split("."))
    except UnicodeError:
        return name
    return f"{decoded} ({name})"


def short_address(address: str | None) -> str:
    if not address:
        return "N/A"
    if len(address) <= 12:
        return address
    return f"{address[:6]}...{address[-4:]}"


def entity_link(address: str) -> str:
    return f"{settings.ao_link_base_url}/{address}"


def event_payload(event: NetworkEvent) -> dict[str, Any]:
    """The decoded message data of an event, or {} when it is not an object."""

    data = event.event_data.get("data")
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except ValueError:
            return {}
    return data if isinstance(data, dict) else {}


def _value_text(value: Any) -> str:
    return value if isinstance(value, str) else json.dumps(value)


def event_fields(event: NetworkEvent) -> list[tuple[str, str]]:
    """Flatten message data one level deep into (key, text) pairs."""

    fields: list[tuple[str, str]] = []
    for key, value in event_payload(event).items():
        if isinstance(value, dict):
            fields.extend((sub_key, _value_text(sub_value)) for sub_key, sub_value in value.items())
        else:
            fields.append((key, _value_text(value)))
    return fields


def event_markdown(event: NetworkEvent, bold: str = "*") -> str:
    return "\n".join(f"{bold}{key}{bold}: {value}" for key, value in event_fields(event))


def _tag_value(event: NetworkEvent, tag_name: str) -> str | None:
    for tag in event.event_data.get("tags") or []:
        if isinstance(tag, dict) and tag.get("name") == tag_name:
            return tag.get("value")
    return None


def event_subject(event: NetworkEvent) -> str:
    data = event_payload(event)
    event_type = event.event_type.lower()
    if event_type in ("buy-name-notice", "buy-record-notice"):
        name = format_name_for_display(str(data.get("name") or _tag_value(event, "Name") or "A name"))
        verb = "permabought" if data.get("type") == "permabuy" else "leased"
        return f"\U0001f4b0 {name} has been {verb}!"
    if event_type == "epoch-created-notice":
        return f"\U0001f52d Epoch {data.get('epochIndex')} has been created!"
    if event_type == "epoch-distribution-notice":
        return f"\U0001f4b0 Epoch {data.get('epochIndex')} has been distributed!"
    if event_type in ("join-network-notice", "leave-network-notice"):
        fqdn = (data.get("settings") or {}).get("fqdn") or short_address(event.event_data.get("target"))
        if event_type == "join-network-notice":
            return f"\U0001f44b {fqdn} has joined the network!"
        return f"\U0001f622 {fqdn} has left the network!"
    if event_type == EXPIRATION_EVENT_TYPE:
        name = format_name_for_display(str(data.get("name")))
        if data.get("notificationType") == "grace_period_ending":
            return f"⚠️ {name} leaves its grace period in {data.get('daysRemaining')} day(s)!"
        return f"⏳ {name} has expired and entered its grace period!"
    return f"\U0001f6a8 New {event_type.replace('-', ' ')}!"


def render_html(event: NetworkEvent, subject: str) -> str:
    rows = "".join(
        f"<tr><th>{html.escape(key)}</th><td>{html.escape(value)}</td></tr>" for key, value in event_fields(event)
    )
    process_id = event.process_id
    footer = ""
    if process_id:
        footer = (
            f'<p>Process: <a href="{html.escape(entity_link(process_id))}">'
            f"{html.escape(short_address(process_id))}</a></p>"
        )
    return (
        "<html><body>"
        f"<h2>{html.escape(subject)}</h2>"
        f"<p>Event type: {html.escape(event.event_type)}</p>"
        f'<table class="info-table">{rows}</table>'
        f"{footer}"
        "</body></html>"
    )


def render_text(event: NetworkEvent, subject: str) -> str:
    lines = [subject, "", f"Event type: {event.event_type}"]
    lines.extend(f"{key}: {value}" for key, value in event_fields(event))
    if event.process_id:
        lines.append(f"Process: {entity_link(event.process_id)}")
    return "\n".join(lines)


def generate_notification_content(event: NetworkEvent) -> NotificationContent:
    subject = event_subject(event)
    return NotificationContent(subject=subject, html=render_html(event, subject), text=render_text(event, subject))


def render_digest(events_by_type: dict[str, list[NetworkEvent]]) -> NotificationContent:
    """One digest body listing the subject of every event, grouped by type."""

    subject = "ℹ️ Permagate Daily Digest"
    html_sections = []
    text_lines = [subject, ""]
    for event_type in sorted(events_by_type):
        events = events_by_type[event_type]
        items = "".join(f"<li>{html.escape(event_subject(event))}</li>" for event in events)
        html_sections.append(f"<h3>{html.escape(event_type)} ({len(events)})</h3><ul>{items}</ul>")
        text_lines.append(f"{event_type} ({len(events)})")
        text_lines.extend(f"  - {event_subject(event)}" for event in events)
    body = "".join(html_sections) or "<p>No new events in the last day.</p>"
    return NotificationContent(
        subject=subject,
        html=f"<html><body><h2>{html.escape(subject)}</h2>{body}</body></html>",
        text="\n".join(text_lines),
    )


def split_text(text: str, limit: int) -> list[str]:
    """Split `text` into segments of at most `limit` characters.

    Segments break on the last newline inside the limit when there is one
    (that newline is consumed); otherwise they are cut at exactly `limit`.
    """

    if limit <= 0:
        raise ValueError("limit must be positive")
    segments: list[str] = []
    remaining = text
    while len(remaining) > limit:
        cut = remaining.rfind("\n", 0, limit + 1)
        if cut <= 0:
            segments.append(remaining[:limit])
            remaining = remaining[limit:]
        else:
            segments.append(remaining[:cut])
            remaining = remaining[cut + 1 :]
    if remaining or not segments:
        segments.append(remaining)
    return segments
