"""Startup-time helpers for safe config logging."""

from pydantic import SecretStr

from paybridge.common.config import CommonSettings
from paybridge.common.logging import logger


SECRET_MARKERS = ("key", "secret", "password", "token", "dsn")


def _safe_value(name: str, value) -> str:
    """Return a printable setting value, redacting credentials."""

    if value is None:
        return "<unset>"
    if isinstance(value, SecretStr) or any(marker in name for marker in SECRET_MARKERS):
        return "<redacted>"
    return str(value)


def log_startup_config(config: CommonSettings, fields: list[str]) -> None:
    """Log selected settings for quick troubleshooting, never credentials."""

    snapshot = {"service": config.service_name}
    for name in fields:
        snapshot[name] = _safe_value(name, getattr(config, name, None))
    logger.info("startup_config=%s", snapshot)
