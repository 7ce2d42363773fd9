"""OpenTelemetry wiring: OTLP export, FastAPI request spans and gateway call spans."""

from contextlib import contextmanager

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import SpanKind

from paybridge.common.config import CommonSettings


# Proxy tracer: no-op until `setup_tracing` registers a provider.
tracer = trace.get_tracer("paybridge.gateway")


def setup_tracing(config: CommonSettings) -> bool:
    """Register an OTLP-exporting tracer provider; returns whether tracing is on."""

    if not config.otel_enabled:
        return False
    provider = TracerProvider(resource=Resource.create({"service.name": config.service_name}))
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=config.otel_exporter_otlp_endpoint)))
    trace.set_tracer_provider(provider)
    return True


def instrument_app(app: FastAPI, config: CommonSettings) -> None:
    if config.otel_enabled:
        FastAPIInstrumentor.instrument_app(app, excluded_urls="health,metrics")


@contextmanager
def gateway_span(endpoint: str, order_number: str | None = None):
    """Client span around one gateway API call; exceptions mark it failed."""

    with tracer.start_as_current_span(f"gateway {endpoint}", kind=SpanKind.CLIENT) as span:
        span.set_attribute("gateway.endpoint", endpoint)
        if order_number:
            span.set_attribute("gateway.order_number", order_number)
        yield span
