"""ArNS service API + worker lifecycle.

Runs the leased-name sync followed by the expiration monitor on an interval
and exposes admin triggers for both.
"""

import asyncio
from contextlib import asynccontextmanager

from fastapi import BackgroundTasks, FastAPI, Header

from permagate.common.api import add_metrics_middleware, enforce_api_key
from permagate.common.config import settings
from permagate.common.db import SessionLocal
from permagate.common.logging import configure_logging, logger
from permagate.common.metrics import metrics_response
from permagate.common.startup import log_startup_config
from permagate.common.store import Store
from permagate.common.tracing import instrument_app, setup_tracing
from permagate.services.arns.expiration import ArnsExpirationMonitor, ExpirationPolicy
from permagate.services.arns.registry import RegistryClient, ResolverClient
from permagate.services.arns.sync import ArnsSyncService
from permagate.services.notification.matcher import SubscriberMatcher
from permagate.services.notification.providers import build_email_transport, build_notification_provider

configure_logging()
setup_tracing(settings.service_name)
log_startup_config(
    settings.service_name,
    [
        "SERVICE_NAME",
        "POSTGRES_DSN",
        "REGISTRY_URL",
        "RESOLVER_BASE_URL",
        "ARNS_SYNC_PAGE_SIZE",
        "ARNS_GRACE_PERIOD_DAYS",
        "ARNS_GRACE_PERIOD_ENDING_NOTICE_DAYS",
        "ARNS_POLL_INTERVAL_SECONDS",
    ],
)
store = Store(SessionLocal)
sync_service = ArnsSyncService(
    store,
    RegistryClient(settings.registry_url, timeout=settings.registry_timeout_seconds),
    ResolverClient(
        settings.resolver_base_url,
        timeout=settings.resolver_timeout_seconds,
        service_name=settings.service_name,
    ),
    page_size=settings.arns_sync_page_size,
    concurrency=settings.arns_sync_concurrency,
    service_name=settings.service_name,
)
monitor = ArnsExpirationMonitor(
    store,
    SubscriberMatcher(store),
    build_notification_provider(store, build_email_transport()),
    policy=ExpirationPolicy(
        grace_period_days=settings.arns_grace_period_days,
        ending_notice_days=settings.arns_grace_period_ending_notice_days,
    ),
    service_name=settings.service_name,
)


async def sync_then_notify() -> None:
    """One scheduled pass; a failed sync still lets cached names be checked."""

    try:
        await sync_service.sync_all_arns_names()
    except Exception as exc:
        logger.error("scheduled_arns_sync_failed error=%s", exc)
    try:
        await monitor.process_arns_expiration_events()
    except Exception as exc:
        logger.exception("scheduled_arns_expiration_failed error=%s", exc)


async def run_sync() -> None:
    try:
        await sync_service.sync_all_arns_names()
    except Exception as exc:
        logger.error("triggered_arns_sync_failed error=%s", exc)


async def run_expirations() -> None:
    try:
        await monitor.process_arns_expiration_events()
    except Exception as exc:
        logger.exception("triggered_arns_expiration_failed error=%s", exc)


async def poll_forever(interval_seconds: int) -> None:
    while True:
        await sync_then_notify()
        await asyncio.sleep(interval_seconds)


@asynccontextmanager
async def lifespan(_: FastAPI):
    """Run the periodic sync/expiration loop with the application lifecycle."""

    poll_task = None
    if settings.arns_poll_interval_seconds > 0:
        poll_task = asyncio.create_task(poll_forever(settings.arns_poll_interval_seconds))
    yield
    if poll_task is not None:
        poll_task.cancel()


app = FastAPI(title="Permagate ArNS Service", lifespan=lifespan)
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


@app.post("/admin/arns/sync", status_code=202)
async def trigger_sync(background_tasks: BackgroundTasks, x_api_key: str | None = Header(default=None)):
    """Start a leased-name sync; returns before it finishes."""

    enforce_api_key(x_api_key)
    background_tasks.add_task(run_sync)
    return {"status": "triggered"}


@app.post("/admin/arns/expirations", status_code=202)
async def trigger_expirations(background_tasks: BackgroundTasks, x_api_key: str | None = Header(default=None)):
    """Start an expiration run unless one is already in progress."""

    enforce_api_key(x_api_key)
    if monitor.running:
        return {"status": "in_progress"}
    background_tasks.add_task(run_expirations)
    return {"status": "triggered"}
