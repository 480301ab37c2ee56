"""Notification service: event intake, digest trigger, health and metrics."""

from fastapi import BackgroundTasks, FastAPI, Header

from permagate.common.api import add_metrics_middleware, enforce_api_key
from permagate.common.config import settings
from permagate.common.db import SessionLocal
from permagate.common.events import GatewayWebhook, NetworkEvent
from permagate.common.logging import configure_logging, logger
from permagate.common.metrics import metrics_response
from permagate.common.startup import log_startup_config
from permagate.common.store import Store
from permagate.common.tracing import instrument_app, setup_tracing
from permagate.services.notification.intake import ingest_gateway_webhook
from permagate.services.notification.matcher import SubscriberMatcher
from permagate.services.notification.providers import build_email_transport, build_notification_provider
from permagate.services.notification.service import EventProcessor

configure_logging()
setup_tracing(settings.service_name)
log_startup_config(
    settings.service_name,
    [
        "SERVICE_NAME",
        "POSTGRES_DSN",
        "EMAIL_PROVIDER",
        "MAILGUN_API_KEY",
        "MAILGUN_DOMAIN",
        "SLACK_WEBHOOK_URL",
        "ENABLE_SLACK_NOTIFICATIONS",
        "DISCORD_WEBHOOK_URL",
        "ENABLE_DISCORD_NOTIFICATIONS",
        "ENABLE_WEBHOOK_NOTIFICATIONS",
        "GATEWAY_URL",
    ],
)
store = Store(SessionLocal)
email_transport = build_email_transport()
processor = EventProcessor(
    store,
    SubscriberMatcher(store),
    build_notification_provider(store, email_transport),
    digest_transport=email_transport,
    service_name=settings.service_name,
)

app = FastAPI(title="Permagate Notification Service")
instrument_app(app)
add_metrics_middleware(app)


@app.get("/health")
def health():
    """Container health probe endpoint."""

    return {"ok": True}


@app.get("/metrics")
def metrics():
    """Prometheus scrape endpoint."""

    return metrics_response()


@app.post("/ar-io/webhook", status_code=202)
async def gateway_webhook(payload: GatewayWebhook, background_tasks: BackgroundTasks):
    """Accept an indexed data item from the gateway; processing runs after the response."""

    logger.info("gateway_webhook_received event=%s item_id=%s", payload.event, payload.data.id)
    background_tasks.add_task(
        ingest_gateway_webhook,
        payload,
        processor,
        settings.gateway_url,
        settings.gateway_timeout_seconds,
    )
    return {"status": "accepted"}


@app.post("/events", status_code=202)
async def post_event(
    event: NetworkEvent,
    background_tasks: BackgroundTasks,
    x_api_key: str | None = Header(default=None),
):
    """Submit an already-decoded event (operator tooling and replays)."""

    enforce_api_key(x_api_key)
    background_tasks.add_task(processor.process_event, event)
    return {"status": "accepted", "nonce": event.nonce}


@app.post("/admin/digest", status_code=202)
async def trigger_digest(background_tasks: BackgroundTasks, x_api_key: str | None = Header(default=None)):
    """Send the daily digest now."""

    enforce_api_key(x_api_key)
    background_tasks.add_task(processor.process_daily_digest)
    return {"status": "triggered"}
