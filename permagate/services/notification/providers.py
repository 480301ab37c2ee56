"""Build the configured channel set from settings."""

from permagate.common.config import CommonSettings, settings as default_settings
from permagate.common.logging import logger
from permagate.common.store import Store
from permagate.services.notification.chat import DiscordNotificationProvider, SlackNotificationProvider
from permagate.services.notification.email import EmailNotificationProvider, EmailTransport, MailgunTransport
from permagate.services.notification.fanout import CompositeNotificationProvider, NotificationProvider
from permagate.services.notification.webhook import WebhookNotificationProvider


def build_email_transport(settings: CommonSettings = default_settings) -> EmailTransport | None:
    if settings.email_provider == "disabled":
        return None
    if settings.email_provider != "mailgun":
        raise ValueError(f"unsupported email_provider={settings.email_provider}")
    if not (settings.mailgun_api_key and settings.mailgun_domain and settings.mailgun_from_email):
        logger.warning("email_transport_unconfigured provider=mailgun")
        return None
    return MailgunTransport(
        api_key=settings.mailgun_api_key,
        domain=settings.mailgun_domain,
        from_email=settings.mailgun_from_email,
        base_url=settings.mailgun_base_url,
        noreply_address=settings.email_noreply_address,
    )


def build_notification_provider(
    store: Store,
    email_transport: EmailTransport | None,
    settings: CommonSettings = default_settings,
) -> CompositeNotificationProvider:
    """Email, Slack, Discord and webhook channels, in that order, when configured."""

    providers: list[NotificationProvider] = []
    if email_transport is not None:
        providers.append(
            EmailNotificationProvider(email_transport, enabled=not settings.disable_email_notifications)
        )
    if settings.slack_webhook_url:
        providers.append(
            SlackNotificationProvider(
                settings.slack_webhook_url,
                enabled=settings.enable_slack_notifications,
                timeout=settings.webhook_timeout_seconds,
            )
        )
    if settings.discord_webhook_url:
        providers.append(
            DiscordNotificationProvider(
                settings.discord_webhook_url,
                enabled=settings.enable_discord_notifications,
                timeout=settings.webhook_timeout_seconds,
            )
        )
    providers.append(
        WebhookNotificationProvider(
            store,
            enabled=settings.enable_webhook_notifications,
            timeout=settings.webhook_timeout_seconds,
            service_name=settings.service_name,
        )
    )
    logger.info("notification_providers_configured providers=%s", [provider.name for provider in providers])
    return CompositeNotificationProvider(
        providers,
        service_name=settings.service_name,
        timeout_seconds=settings.fanout_timeout_seconds,
    )
