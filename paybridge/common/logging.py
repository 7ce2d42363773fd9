"""JSON logging; cart and gateway order identifiers ride along via context vars."""

import logging
import sys
from contextvars import ContextVar

from pythonjsonlogger.json import JsonFormatter

from paybridge.common.config import settings


trace_id_ctx: ContextVar[str] = ContextVar("trace_id", default="")
cart_id_ctx: ContextVar[str] = ContextVar("cart_id", default="")
order_number_ctx: ContextVar[str] = ContextVar("order_number", default="")

CONTEXT_FIELDS = {
    "trace_id": trace_id_ctx,
    "cart_id": cart_id_ctx,
    "order_number": order_number_ctx,
}


class ContextFilter(logging.Filter):
    """Copy the non-empty context identifiers onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        for name, var in CONTEXT_FIELDS.items():
            value = var.get()
            if value:
                setattr(record, name, value)
        return True


def configure_logging() -> None:
    """Install the JSON handler on the root logger."""

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(ContextFilter())
    handler.setFormatter(
        JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"asctime": "timestamp", "levelname": "level"},
            static_fields={"service": settings.service_name},
        )
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(settings.log_level)
    # httpx logs every request line at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)


logger = logging.getLogger("paybridge")
