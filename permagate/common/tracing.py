"""OpenTelemetry wiring for the notification and ArNS services."""

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from permagate.common.config import settings


# Probe and scrape routes would drown out intake spans.
UNTRACED_ROUTES = "health,metrics"


def setup_tracing(service_name: str) -> None:
    """Register a tracer provider; spans are exported only when an endpoint is set."""

    resource = Resource.create({"service.name": service_name, "service.namespace": "permagate"})
    provider = TracerProvider(resource=resource)
    if settings.otel_exporter_otlp_endpoint:
        provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otel_exporter_otlp_endpoint))
        )
    trace.set_tracer_provider(provider)


def instrument_app(app: FastAPI) -> None:
    FastAPIInstrumentor.instrument_app(app, excluded_urls=UNTRACED_ROUTES)
