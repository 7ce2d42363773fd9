"""Shared helpers: money conversion, config redaction and log context."""

import logging
from decimal import Decimal

from pydantic import SecretStr

from paybridge.common.logging import ContextFilter, cart_id_ctx, order_number_ctx
from paybridge.common.money import format_rate, to_minor_units
from paybridge.common.startup import _safe_value, log_startup_config


def test_to_minor_units_rounds_half_up():
    assert to_minor_units(Decimal("19.99")) == 1999
    assert to_minor_units("0.005") == 1
    assert to_minor_units(Decimal("-2.485")) == -249
    assert to_minor_units(12) == 1200


def test_format_rate():
    assert format_rate(Decimal("24")) == "24.00"
    assert format_rate(Decimal("28.8")) == "28.80"
    assert format_rate(Decimal("13.995")) == "14.00"


def test_secrets_are_redacted():
    """Credentials never reach the startup log line."""

    assert _safe_value("gateway_private_key", SecretStr("s3cr3t")) == "<redacted>"
    assert _safe_value("database_dsn", "postgresql://user:pw@db/pay") == "<redacted>"
    assert _safe_value("display_mode", "embed") == "embed"
    assert _safe_value("order_prefix", None) == "<unset>"


def test_startup_log_has_no_credentials(config, caplog):
    caplog.set_level(logging.INFO, logger="paybridge")

    log_startup_config(config, ["gateway_api_key", "gateway_private_key", "display_mode"])

    assert "test-private-key" not in caplog.text
    assert "test-api-key" not in caplog.text
    assert "embed" in caplog.text


def test_context_filter_attaches_only_set_fields():
    record = logging.LogRecord("paybridge", logging.INFO, __file__, 1, "msg", None, None)
    token = cart_id_ctx.set("42")
    cleared = order_number_ctx.set("")
    try:
        ContextFilter().filter(record)
    finally:
        cart_id_ctx.reset(token)
        order_number_ctx.reset(cleared)

    assert record.cart_id == "42"
    assert not hasattr(record, "order_number")
