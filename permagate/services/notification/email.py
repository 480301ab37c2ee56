"""Email channel and the Mailgun transport behind it."""

import re
from abc import ABC, abstractmethod

import httpx

from permagate.common.events import NotificationEnvelope
from permagate.common.logging import logger
from permagate.services.notification.content import generate_notification_content
from permagate.services.notification.fanout import NotificationProvider
from permagate.services.notification.transport import NotificationDeliveryError


EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class EmailTransport(ABC):
    """Provider-specific send call; recipients are delivered as BCC."""

    @abstractmethod
    async def send(self, to: list[str], subject: str, html: str, text: str | None = None) -> None:
        ...


class MailgunTransport(EmailTransport):
    """Mailgun HTTP API (`POST /v3/{domain}/messages`)."""

    def __init__(
        self,
        api_key: str,
        domain: str,
        from_email: str,
        base_url: str = "https://api.mailgun.net/v3",
        noreply_address: str = "noreply@permagate.io",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.domain = domain
        self.from_email = from_email
        self.base_url = base_url.rstrip("/")
        self.noreply_address = noreply_address
        self.timeout = timeout
        self.transport = transport

    def __repr__(self) -> str:
        return f"<{type(self).__name__} domain={self.domain}>"

    async def send(self, to: list[str], subject: str, html: str, text: str | None = None) -> None:
        data = {
            "from": self.from_email,
            "to": self.noreply_address,
            "bcc": ",".join(to),
            "subject": subject,
            "html": html,
        }
        if text:
            data["text"] = text
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            resp = await client.post(
                f"{self.base_url}/{self.domain}/messages",
                data=data,
                auth=("api", self.api_key),
            )
        if not resp.is_success:
            raise NotificationDeliveryError(f"mailgun rejected message (status={resp.status_code})")


class EmailNotificationProvider(NotificationProvider):
    """Sends the envelope subject/HTML to the envelope's email recipients."""

    name = "email"

    def __init__(self, transport: EmailTransport, enabled: bool = True) -> None:
        super().__init__(enabled=enabled)
        self.transport = transport

    async def deliver(self, envelope: NotificationEnvelope) -> None:
        event_type = envelope.event.event_type
        valid = [address for address in envelope.recipients if EMAIL_PATTERN.match(address)]
        malformed = len(envelope.recipients) - len(valid)
        if malformed:
            logger.warning("email_malformed_recipients count=%s event_type=%s", malformed, event_type)
        if not envelope.recipients:
            logger.info("email_no_recipients event_type=%s nonce=%s", event_type, envelope.event.nonce)
            return
        if not valid:
            raise NotificationDeliveryError("no deliverable email recipients")

        subject, html, text = envelope.subject, envelope.html, envelope.text
        if not subject or not html:
            content = generate_notification_content(envelope.event)
            subject, html, text = content.subject, content.html, content.text

        await self.transport.send(to=valid, subject=subject, html=html, text=text)
        logger.debug("email_sent recipients=%s event_type=%s", len(valid), event_type)
