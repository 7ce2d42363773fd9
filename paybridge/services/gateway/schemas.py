"""Typed request/response shapes for the gateway API.

Responses are decoded strictly: a body that does not fit its model is
rejected with `InvalidResponse` by the client instead of being used with
missing fields.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SecretStr, model_validator


class GatewayCredentials(BaseModel):
    """API key + private HMAC key pair; the private key never prints."""

    api_key: str = Field(min_length=1)
    private_key: SecretStr


class ChargeResult(BaseModel):
    """Response of `auth_payment`; `result == 0` carries a payment token."""

    model_config = ConfigDict(extra="ignore")

    result: int
    token: str | None = None
    type: str | None = None
    errors: list[Any] = Field(default_factory=list)


class PaymentSource(BaseModel):
    """Payment instrument details reported by the status endpoint."""

    model_config = ConfigDict(extra="ignore")

    object: str | None = None
    brand: str | None = None
    card_verified: str | None = None
    error_code: str | None = None
    card_country: str | None = None
    client_ip_country: str | None = None


class StatusResult(BaseModel):
    """Response of `check_payment_status`.

    Some API versions nest the payment under `payment`; its fields are
    hoisted to the top level before validation.
    """

    model_config = ConfigDict(extra="ignore")

    result: int
    settled: int | None = None
    amount: int | None = None
    currency: str | None = None
    order_number: str | None = None
    source: PaymentSource | None = None

    @model_validator(mode="before")
    @classmethod
    def _flatten_payment(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("payment"), dict):
            merged = dict(data["payment"])
            merged.update({k: v for k, v in data.items() if k != "payment"})
            return merged
        return data


class SettleResult(BaseModel):
    """Response of `capture`: 0 settled, 1 validation failed, 2 refused, 3 not found."""

    model_config = ConfigDict(extra="ignore")

    result: int


class MerchantPaymentMethod(BaseModel):
    """One payment method enabled for the merchant account."""

    model_config = ConfigDict(extra="ignore")

    name: str
    group: str
    selected_value: str
    min_amount: int | None = None
    max_amount: int | None = None
    img: str | None = None
    img_timestamp: int | None = None
    currency: list[str] = Field(default_factory=list)


class MerchantPaymentMethodsResult(BaseModel):
    """Response of `merchant_payment_methods`."""

    model_config = ConfigDict(extra="ignore")

    result: int
    payment_methods: list[MerchantPaymentMethod] = Field(default_factory=list)


class CallbackPayload(BaseModel):
    """Untrusted return/notify parameters as sent by the gateway.

    Values stay strings; the authcode is computed over the raw text.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    return_code: str | None = Field(default=None, alias="RETURN_CODE")
    order_number: str | None = Field(default=None, alias="ORDER_NUMBER")
    settled: str | None = Field(default=None, alias="SETTLED")
    authcode: str | None = Field(default=None, alias="AUTHCODE")
    contact_id: str | None = Field(default=None, alias="CONTACT_ID")
    incident_id: str | None = Field(default=None, alias="INCIDENT_ID")
    cart_id: str | None = Field(default=None, alias="id_cart")
    key: str | None = Field(default=None, alias="key")

    @property
    def return_code_value(self) -> int | None:
        """Numeric return code; `None` when absent or not a decimal number."""

        code = (self.return_code or "").strip()
        return int(code) if code.isdigit() else None

    @property
    def is_settled(self) -> bool:
        return self.settled not in (None, "", "0", "false", "False")
