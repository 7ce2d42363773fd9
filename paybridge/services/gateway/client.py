"""Signed HTTP client for the payment gateway API.

Every request carries an `authcode`: the ordered request fields joined with
`|`, HMAC-SHA256 keyed with the merchant private key, as uppercase hex. The
same construction authenticates return/notify callbacks.
"""

import hashlib
import hmac
from time import perf_counter
from typing import Any

import httpx
from pydantic import BaseModel, ValidationError

from paybridge.common.config import CommonSettings
from paybridge.common.metrics import gateway_request_seconds
from paybridge.common.tracing import gateway_span
from paybridge.services.gateway.schemas import (
    CallbackPayload,
    ChargeResult,
    GatewayCredentials,
    MerchantPaymentMethodsResult,
    SettleResult,
    StatusResult,
)


REQUEST_TIMEOUT_SECONDS = 30.0
PLUGIN_INFO = "paybridge|python|1.0.0"


class GatewayError(Exception):
    """Base class for gateway communication failures."""


class GatewayUnavailable(GatewayError):
    """Network error, timeout or HTTP error status from the gateway."""


class InvalidResponse(GatewayError):
    """Gateway answered with something that is not a valid API response."""


class GatewayClient:
    """Thin SDK over the gateway's JSON endpoints."""

    def __init__(
        self,
        credentials: GatewayCredentials,
        api_url: str,
        version: str = "w3.1",
        transport: httpx.BaseTransport | None = None,
        service_name: str = "paybridge",
    ) -> None:
        self.credentials = credentials
        self.api_url = api_url.rstrip("/")
        self.version = version
        self.transport = transport
        self.service_name = service_name

    @classmethod
    def from_settings(cls, config: CommonSettings, transport: httpx.BaseTransport | None = None) -> "GatewayClient":
        return cls(
            GatewayCredentials(api_key=config.gateway_api_key, private_key=config.gateway_private_key),
            api_url=config.gateway_api_url,
            version=config.gateway_api_version,
            transport=transport,
            service_name=config.service_name,
        )

    def sign(self, parts: list[str]) -> str:
        """HMAC-SHA256 over `|`-joined parts, uppercase hex."""

        message = "|".join(parts).encode("utf-8")
        key = self.credentials.private_key.get_secret_value().encode("utf-8")
        return hmac.new(key, message, hashlib.sha256).hexdigest().upper()

    def redirect_url(self, token: str) -> str:
        return f"{self.api_url}/token/{token}"

    def request(self, endpoint: str, params: dict[str, Any]) -> dict[str, Any]:
        """POST one API call and return the decoded JSON object.

        Raises `GatewayUnavailable` on transport failures and `InvalidResponse`
        when the body is not JSON or lacks `result`.
        """

        body = dict(params)
        body.setdefault("version", self.version)
        body["api_key"] = self.credentials.api_key

        start = perf_counter()
        with gateway_span(endpoint, body.get("order_number")) as span:
            try:
                with httpx.Client(timeout=REQUEST_TIMEOUT_SECONDS, transport=self.transport) as client:
                    resp = client.post(f"{self.api_url}/{endpoint}", json=body)
                resp.raise_for_status()
            except httpx.HTTPError as exc:
                raise GatewayUnavailable(f"gateway request to {endpoint} failed: {exc.__class__.__name__}") from exc
            finally:
                gateway_request_seconds.labels(service=self.service_name, endpoint=endpoint).observe(
                    max(0.0, perf_counter() - start)
                )

            try:
                data = resp.json()
            except ValueError as exc:
                raise InvalidResponse(f"response from {endpoint} is not valid JSON") from exc
            if not isinstance(data, dict) or "result" not in data:
                raise InvalidResponse(f"response from {endpoint} has no result field")
            span.set_attribute("gateway.result", str(data["result"]))
        return data

    def _decode(self, model: type[BaseModel], endpoint: str, data: dict[str, Any]):
        try:
            return model.model_validate(data)
        except ValidationError as exc:
            raise InvalidResponse(f"unexpected response shape from {endpoint}") from exc

    def create_charge(
        self,
        charge: dict[str, Any],
        customer: dict[str, Any] | None = None,
        products: list[dict[str, Any]] | None = None,
        payment_method: dict[str, Any] | None = None,
    ) -> ChargeResult:
        """Create a charge; a card token, when present, is part of the authcode."""

        parts = [self.credentials.api_key, str(charge["order_number"])]
        if charge.get("card_token"):
            parts.append(str(charge["card_token"]))

        payload = {k: v for k, v in charge.items() if v is not None}
        payload["authcode"] = self.sign(parts)
        if payment_method:
            payload["payment_method"] = payment_method
        if customer:
            payload["customer"] = customer
        if products:
            payload["products"] = products
        payload["plugin_info"] = PLUGIN_INFO

        return self._decode(ChargeResult, "auth_payment", self.request("auth_payment", payload))

    def check_status(self, order_number: str) -> StatusResult:
        data = self.request(
            "check_payment_status",
            {
                "order_number": order_number,
                "authcode": self.sign([self.credentials.api_key, order_number]),
            },
        )
        return self._decode(StatusResult, "check_payment_status", data)

    def settle(self, order_number: str) -> SettleResult:
        """Capture a previously authorized payment."""

        data = self.request(
            "capture",
            {
                "order_number": order_number,
                "authcode": self.sign([self.credentials.api_key, order_number]),
            },
        )
        return self._decode(SettleResult, "capture", data)

    def get_merchant_payment_methods(self, currency: str = "") -> MerchantPaymentMethodsResult:
        data = self.request(
            "merchant_payment_methods",
            {
                "authcode": self.sign([self.credentials.api_key]),
                "version": "2",
                "currency": currency,
            },
        )
        return self._decode(MerchantPaymentMethodsResult, "merchant_payment_methods", data)

    def verify_callback(self, payload: CallbackPayload) -> bool:
        """Check a return/notify authcode; mismatch is `False`, never an exception."""

        parts = [payload.return_code or "", payload.order_number or ""]
        if payload.return_code_value == 0:
            parts.append(payload.settled or "")
            if payload.contact_id:
                parts.append(payload.contact_id)
        elif payload.incident_id:
            parts.append(payload.incident_id)

        expected = self.sign(parts)
        received = (payload.authcode or "").encode("utf-8")
        return hmac.compare_digest(expected.encode("utf-8"), received)
