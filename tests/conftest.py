"""Shared fixtures: in-memory database, explicit settings and a fake gateway."""

import json
import os
from datetime import datetime, timezone
from decimal import Decimal

# Module-level settings are read on first import of paybridge.common.config.
os.environ.setdefault("DATABASE_DSN", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("API_KEY", "admin-key")
os.environ.setdefault("GATEWAY_API_KEY", "test-api-key")
os.environ.setdefault("GATEWAY_PRIVATE_KEY", "test-private-key")
os.environ.setdefault("OTEL_ENABLED", "false")

import httpx
import pytest
from sqlalchemy.orm import sessionmaker

from paybridge.common.config import CommonSettings
from paybridge.common.db import build_engine, create_schema
from paybridge.services.checkout.schemas import Cart
from paybridge.services.checkout.service import PaymentInitiator
from paybridge.services.gateway.client import GatewayClient
from paybridge.services.gateway.schemas import CallbackPayload
from paybridge.services.ledger.service import OrderLedger
from paybridge.services.orders.service import OrderService
from paybridge.services.payment_options.service import PaymentOptionsService
from paybridge.services.payment_return.service import ReturnVerifier
from paybridge.services.settlement.service import SettlementService


FIXED_NOW = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

MERCHANT_METHODS = {
    "result": 0,
    "payment_methods": [
        {"name": "Visa", "group": "creditcards", "selected_value": "visa", "currency": ["EUR"]},
        {"name": "MobilePay", "group": "wallets", "selected_value": "mobilepay", "currency": ["EUR"]},
        {"name": "Nordea", "group": "banks", "selected_value": "nordea", "currency": ["EUR"]},
        {
            "name": "Walley",
            "group": "creditinvoices",
            "selected_value": "walley",
            "min_amount": 1000,
            "max_amount": 200000,
            "currency": ["EUR"],
        },
        {
            "name": "Laskuyritykselle",
            "group": "creditinvoices",
            "selected_value": "laskuyritykselle",
            "currency": ["EUR"],
        },
    ],
}


def card_status(amount: int, order_number: str = "20240101120000_42", settled: int = 0) -> dict:
    """`check_payment_status` body for a verified Visa card payment."""

    return {
        "result": 0,
        "payment": {
            "amount": amount,
            "currency": "EUR",
            "order_number": order_number,
            "settled": settled,
            "source": {
                "object": "card",
                "brand": "Visa",
                "card_verified": "Y",
                "error_code": "",
                "card_country": "FI",
                "client_ip_country": "FI",
            },
        },
    }


class FakeGateway:
    """MockTransport handler answering per endpoint and recording request bodies.

    A response value is either a JSON body or a callable taking the request.
    """

    def __init__(self) -> None:
        self.responses: dict = {
            "auth_payment": {"result": 0, "token": "tok-42", "type": "e-payment"},
            "check_payment_status": card_status(1999),
            "capture": {"result": 0},
            "merchant_payment_methods": MERCHANT_METHODS,
        }
        self.calls: list[tuple[str, dict]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        endpoint = request.url.path.rsplit("/", 1)[-1]
        self.calls.append((endpoint, json.loads(request.content or b"{}")))
        response = self.responses[endpoint]
        if callable(response):
            return response(request)
        return httpx.Response(200, json=response)

    def report_paid(self, amount: int, settled: int = 0) -> None:
        self.responses["check_payment_status"] = card_status(amount, settled=settled)

    def endpoints(self) -> list[str]:
        return [endpoint for endpoint, _ in self.calls]

    def last(self, endpoint: str) -> dict:
        return [body for name, body in self.calls if name == endpoint][-1]


@pytest.fixture
def config() -> CommonSettings:
    return CommonSettings(
        database_dsn="sqlite+pysqlite:///:memory:",
        api_key="admin-key",
        gateway_api_key="test-api-key",
        gateway_private_key="test-private-key",
        public_base_url="https://shop.example",
        otel_enabled=False,
    )


@pytest.fixture
def session_factory():
    engine = build_engine("sqlite+pysqlite:///:memory:")
    create_schema(engine)
    yield sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def fake_gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def client(config, fake_gateway) -> GatewayClient:
    return GatewayClient.from_settings(config, transport=httpx.MockTransport(fake_gateway))


@pytest.fixture
def orders(session_factory) -> OrderService:
    return OrderService(session_factory)


@pytest.fixture
def ledger(session_factory, orders) -> OrderLedger:
    return OrderLedger(session_factory, orders)


@pytest.fixture
def payment_options(client, config) -> PaymentOptionsService:
    return PaymentOptionsService(client, config)


@pytest.fixture
def initiator(client, ledger, payment_options, config) -> PaymentInitiator:
    return PaymentInitiator(client, ledger, payment_options, config, clock=lambda: FIXED_NOW)


@pytest.fixture
def verifier(client, ledger, orders, config) -> ReturnVerifier:
    return ReturnVerifier(client, ledger, orders, config)


@pytest.fixture
def settlement(client, ledger, orders, config) -> SettlementService:
    return SettlementService(client, ledger, orders, config)


@pytest.fixture
def make_cart():
    """Build a cart whose single product row adds up to `order_total`."""

    def _make(cart_id: str = "42", order_total: str = "19.99", **overrides) -> Cart:
        total = Decimal(order_total)
        data = {
            "cart_id": cart_id,
            "secure_key": "sk-42",
            "currency": "EUR",
            "order_total": total,
            "customer_email": "jane@example.com",
            "invoice_address": {
                "firstname": "Jane",
                "lastname": "Doe",
                "address1": "Main street 1",
                "city": "Helsinki",
                "postcode": "00100",
                "country": "FI",
                "phone": "+358 40 123-4567",
            },
            "delivery_address": {
                "firstname": "Jane",
                "lastname": "Doe",
                "address1": "Main street 1",
                "city": "Helsinki",
                "postcode": "00100",
                "country": "FI",
            },
            "products": [
                {
                    "reference": "SKU-1",
                    "name": "Coffee mug",
                    "quantity": 1,
                    "price": (total / Decimal("1.24")).quantize(Decimal("0.01")),
                    "price_wt": total,
                    "rate": Decimal("24"),
                }
            ],
        }
        data.update(overrides)
        return Cart.model_validate(data)

    return _make


@pytest.fixture
def signed_callback(client):
    """Build a callback signed the way the gateway signs it."""

    def _make(
        return_code: str = "0",
        order_number: str = "20240101120000_42",
        settled: str = "0",
        contact_id: str | None = None,
        incident_id: str | None = None,
        cart_id: str = "42",
        key: str = "sk-42",
    ) -> CallbackPayload:
        parts = [return_code, order_number]
        if return_code.isdigit() and int(return_code) == 0:
            parts.append(settled)
            if contact_id:
                parts.append(contact_id)
        elif incident_id:
            parts.append(incident_id)
        return CallbackPayload.model_validate(
            {
                "RETURN_CODE": return_code,
                "ORDER_NUMBER": order_number,
                "SETTLED": settled,
                "CONTACT_ID": contact_id,
                "INCIDENT_ID": incident_id,
                "AUTHCODE": client.sign(parts),
                "id_cart": cart_id,
                "key": key,
            }
        )

    return _make
