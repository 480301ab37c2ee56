"""Central environment-driven settings shared by all services.

Each service process loads this once at startup. Service-specific behavior is
controlled by environment variables (see `.env.example`).
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class CommonSettings(BaseSettings):
    """Typed view of runtime configuration from environment variables."""

    service_name: str = "unknown-service"
    log_level: str = "INFO"
    postgres_dsn: str
    api_key: str
    otel_exporter_otlp_endpoint: str = "http://otel-collector:4318/v1/traces"

    email_provider: str = "mailgun"
    mailgun_api_key: str | None = None
    mailgun_domain: str | None = None
    mailgun_from_email: str | None = None
    mailgun_base_url: str = "https://api.mailgun.net/v3"
    email_noreply_address: str = "noreply@permagate.io"
    disable_email_notifications: bool = False

    slack_webhook_url: str | None = None
    enable_slack_notifications: bool = False
    discord_webhook_url: str | None = None
    enable_discord_notifications: bool = False
    enable_webhook_notifications: bool = True
    webhook_timeout_seconds: float = 10.0
    fanout_timeout_seconds: float | None = None

    gateway_url: str = "https://arweave.net"
    gateway_timeout_seconds: float = 10.0

    registry_url: str = "https://permagate.io/ar-io/network"
    registry_timeout_seconds: float = 30.0
    resolver_base_url: str = "https://permagate.io/ar-io/resolver"
    resolver_timeout_seconds: float = 10.0
    arns_sync_page_size: int = 1000
    arns_sync_concurrency: int = 10
    arns_grace_period_days: int = 14
    arns_grace_period_ending_notice_days: int = 1
    arns_poll_interval_seconds: int = 3600

    ao_link_base_url: str = "https://ao.link/#/entity"
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = CommonSettings()
