"""Central environment-driven settings for the payment bridge.

The process loads this once at startup. Gateway credentials and checkout
toggles are controlled by environment variables (see `.env.example`).
"""

from typing import Literal

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class CommonSettings(BaseSettings):
    """Typed view of runtime configuration from environment variables."""

    service_name: str = "paybridge"
    log_level: str = "INFO"
    database_dsn: str
    api_key: str
    gateway_api_key: str
    gateway_private_key: SecretStr
    gateway_api_url: str = "https://www.vismapay.com/pbwapi"
    gateway_api_version: str = "w3.1"
    order_prefix: str = ""
    send_items: Literal["disabled", "enabled", "forced"] = "enabled"
    display_mode: Literal["separate", "embed", "redirect"] = "embed"
    select_creditcards: bool = True
    select_wallets: bool = True
    select_banks: bool = True
    select_creditinvoices: bool = False
    select_laskuyritykselle: bool = False
    send_confirmation: bool = True
    public_base_url: str = "http://localhost:8000"
    otel_enabled: bool = True
    otel_exporter_otlp_endpoint: str = "http://otel-collector:4318/v1/traces"
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = CommonSettings()
