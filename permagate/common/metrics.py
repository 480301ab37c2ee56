"""Prometheus metric definitions shared across services."""

from prometheus_client import Counter, Histogram, generate_latest
from starlette.responses import Response


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["service", "route", "method", "status_code"],
)
http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration seconds",
    ["service", "route", "method"],
)
events_received_total = Counter("events_received_total", "Events handed to the processor", ["service"])
events_processed_total = Counter(
    "events_processed_total",
    "Events processed and marked done",
    ["service", "event_type"],
)
duplicate_events_skipped_total = Counter(
    "duplicate_events_skipped_total",
    "Duplicate events skipped by nonce",
    ["service", "event_type"],
)
notification_deliveries_total = Counter(
    "notification_deliveries_total",
    "Channel delivery attempts by outcome",
    ["service", "provider", "status"],
)
notification_delivery_seconds = Histogram(
    "notification_delivery_seconds",
    "Channel delivery duration seconds",
    ["service", "provider"],
)
webhook_deliveries_total = Counter(
    "webhook_deliveries_total",
    "Subscriber webhook deliveries by type and outcome",
    ["service", "webhook_type", "status"],
)
arns_names_synced_total = Counter(
    "arns_names_synced_total",
    "Leased ArNS names processed by sync",
    ["service", "result"],
)
arns_resolver_failures_total = Counter(
    "arns_resolver_failures_total",
    "Resolver lookups that failed or timed out",
    ["service"],
)
arns_expiration_notifications_total = Counter(
    "arns_expiration_notifications_total",
    "Expiration notification attempts by type and outcome",
    ["service", "notification_type", "result"],
)
arns_expiration_runs_skipped_total = Counter(
    "arns_expiration_runs_skipped_total",
    "Expiration monitor triggers rejected because a run was in progress",
    ["service"],
)


def metrics_response() -> Response:
    """Expose all registered Prometheus metrics in text format."""

    return Response(content=generate_latest(), media_type="text/plain")
