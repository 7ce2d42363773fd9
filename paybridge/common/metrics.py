"""Prometheus metric definitions for the payment bridge."""

from prometheus_client import Counter, Histogram, generate_latest
from starlette.responses import Response


payment_requests_total = Counter("payment_requests_total", "Total payment initiations", ["service"])
payment_failure_total = Counter("payment_failure_total", "Payment initiations that returned no URL", ["service"])
callback_outcomes_total = Counter(
    "callback_outcomes_total",
    "Gateway return/notify callbacks by terminal outcome",
    ["service", "outcome"],
)
duplicate_callbacks_skipped_total = Counter(
    "duplicate_callbacks_skipped_total",
    "Callbacks whose order was already finalized",
    ["service"],
)
settlements_total = Counter("settlements_total", "Settlement attempts by gateway result", ["service", "result"])
gateway_request_seconds = Histogram(
    "gateway_request_seconds",
    "Gateway API request duration seconds",
    ["service", "endpoint"],
)
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


def metrics_response() -> Response:
    """Expose all registered Prometheus metrics in text format."""

    return Response(content=generate_latest(), media_type="text/plain")
