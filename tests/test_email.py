"""Email channel and Mailgun transport."""

import asyncio
import base64
from urllib.parse import parse_qs

import httpx
import pytest

from permagate.common.config import CommonSettings
from permagate.common.events import NetworkEvent, NotificationEnvelope
from permagate.services.notification.email import EmailNotificationProvider, EmailTransport, MailgunTransport
from permagate.services.notification.providers import build_email_transport
from permagate.services.notification.transport import NotificationDeliveryError


class CapturingTransport(EmailTransport):
    def __init__(self) -> None:
        self.sent = []

    async def send(self, to, subject, html, text=None) -> None:
        self.sent.append((to, subject, html, text))


def _envelope(recipients, subject=None, html=None) -> NotificationEnvelope:
    return NotificationEnvelope(
        event=NetworkEvent(event_type="epoch-created-notice", nonce=5, event_data={"data": {"epochIndex": 12}}),
        recipients=recipients,
        subject=subject,
        html=html,
    )


def test_mailgun_request_uses_bcc_and_basic_auth():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["auth"] = request.headers["Authorization"]
        captured["form"] = parse_qs(request.content.decode())
        return httpx.Response(200, json={"id": "<msg>"})

    transport = MailgunTransport(
        api_key="key-123",
        domain="mg.permagate.io",
        from_email="alerts@permagate.io",
        transport=httpx.MockTransport(handler),
    )
    asyncio.run(transport.send(["a@example.com", "b@example.com"], "Subject", "<p>hi</p>", "hi"))

    assert captured["url"] == "https://api.mailgun.net/v3/mg.permagate.io/messages"
    assert captured["auth"] == "Basic " + base64.b64encode(b"api:key-123").decode()
    assert captured["form"]["bcc"] == ["a@example.com,b@example.com"]
    assert captured["form"]["to"] == ["noreply@permagate.io"]
    assert captured["form"]["text"] == ["hi"]


def test_mailgun_rejection_raises():
    transport = MailgunTransport(
        api_key="k",
        domain="d",
        from_email="f@example.com",
        transport=httpx.MockTransport(lambda request: httpx.Response(401)),
    )

    with pytest.raises(NotificationDeliveryError):
        asyncio.run(transport.send(["a@example.com"], "s", "h"))


def test_malformed_addresses_are_dropped():
    transport = CapturingTransport()
    provider = EmailNotificationProvider(transport)

    asyncio.run(provider.deliver(_envelope(["alice@example.com", "not-an-email"], subject="s", html="h")))

    assert transport.sent == [(["alice@example.com"], "s", "h", None)]


def test_only_malformed_addresses_fails():
    provider = EmailNotificationProvider(CapturingTransport())

    with pytest.raises(NotificationDeliveryError):
        asyncio.run(provider.deliver(_envelope(["nope", "also nope"])))


def test_no_recipients_sends_nothing():
    transport = CapturingTransport()

    asyncio.run(EmailNotificationProvider(transport).deliver(_envelope([])))

    assert transport.sent == []


def test_missing_content_is_generated():
    transport = CapturingTransport()

    asyncio.run(EmailNotificationProvider(transport).deliver(_envelope(["alice@example.com"])))

    assert transport.sent[0][1] == "\U0001f52d Epoch 12 has been created!"


def test_build_email_transport_from_settings():
    configured = CommonSettings(
        postgres_dsn="sqlite://",
        api_key="k",
        mailgun_api_key="key",
        mailgun_domain="mg.example.com",
        mailgun_from_email="alerts@example.com",
    )
    unconfigured = CommonSettings(postgres_dsn="sqlite://", api_key="k", mailgun_api_key=None)
    disabled = CommonSettings(postgres_dsn="sqlite://", api_key="k", email_provider="disabled")

    assert isinstance(build_email_transport(configured), MailgunTransport)
    assert build_email_transport(unconfigured) is None
    assert build_email_transport(disabled) is None
    with pytest.raises(ValueError):
        build_email_transport(CommonSettings(postgres_dsn="sqlite://", api_key="k", email_provider="ses"))
