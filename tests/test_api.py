"""HTTP surface: checkout, gateway callbacks and admin endpoints."""

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from paybridge.common.db import create_schema
from paybridge.services.api import main


ADMIN = {"x-api-key": "admin-key"}


@pytest.fixture
def api(fake_gateway, monkeypatch):
    create_schema(main.engine)
    monkeypatch.setattr(main.client, "transport", httpx.MockTransport(fake_gateway))
    return TestClient(main.app)


def initiate(api, make_cart, cart_id: str) -> str:
    """Start a payment for `cart_id` and return its gateway order number."""

    resp = api.post("/payment", json={"cart": make_cart(cart_id=cart_id).model_dump(mode="json")})
    assert resp.status_code == 200
    return main.ledger.lookup(cart_id).order_number


def callback_params(order_number: str, cart_id: str, settled: str = "1") -> dict:
    return {
        "RETURN_CODE": "0",
        "ORDER_NUMBER": order_number,
        "SETTLED": settled,
        "AUTHCODE": main.client.sign(["0", order_number, settled]),
        "id_cart": cart_id,
        "key": "sk-42",
    }


def test_health(api):
    assert api.get("/health").json() == {"ok": True}


def test_create_payment_returns_redirect(api, make_cart):
    resp = api.post("/payment", json={"cart": make_cart(cart_id="api-1").model_dump(mode="json")})

    assert resp.status_code == 200
    assert resp.json() == {"redirect_url": "https://www.vismapay.com/pbwapi/token/tok-42"}
    assert main.ledger.lookup("api-1").amount == 1999


def test_create_payment_failure_is_generic(api, fake_gateway, make_cart):
    """Customers only see a retry hint, never gateway details."""

    fake_gateway.responses["auth_payment"] = {"result": 1, "errors": ["invalid amount"]}

    resp = api.post("/payment", json={"cart": make_cart(cart_id="api-fail").model_dump(mode="json")})

    assert resp.status_code == 502
    assert resp.json() == {"detail": "Payment failed, please try again."}


def test_payment_options(api, make_cart):
    resp = api.post("/payment_options", json={"cart": make_cart(cart_id="api-opt").model_dump(mode="json")})

    assert resp.status_code == 200
    options = resp.json()
    assert len(options) == 1
    assert [m["value"] for m in options[0]["methods"]["creditcards"]] == ["visa"]


def test_return_then_notify_finalize_once(api, make_cart):
    """Browser return creates the order; the later notify is absorbed."""

    order_number = initiate(api, make_cart, "api-2")
    params = callback_params(order_number, "api-2")

    first = api.get("/payment_return", params=params)
    second = api.post("/payment_return", data=params)

    assert first.status_code == 200
    assert first.json() == {"cart_id": "api-2", "status": "ACCEPTED", "order_created": True}
    assert second.json() == {"cart_id": "api-2", "status": "ACCEPTED", "order_created": False}
    assert main.orders.get_order("api-2").state == "paid"


def test_forged_return_fails(api, make_cart):
    order_number = initiate(api, make_cart, "api-forged")
    params = callback_params(order_number, "api-forged")
    params["AUTHCODE"] = "F" * 64

    body = api.get("/payment_return", params=params).json()

    assert body["status"] == "FAILED"
    assert body["error"] == "Payment failed."
    assert main.orders.get_order("api-forged").state == "error"


def test_malformed_return_is_bad_request(api):
    resp = api.get("/payment_return", params={"RETURN_CODE": "0"})

    assert resp.status_code == 400
    assert resp.json() == {"detail": "Payment failed."}


def test_admin_endpoints_require_api_key(api):
    assert api.post("/orders/api-2/settle").status_code == 401
    assert api.get("/orders/api-2/messages", headers={"x-api-key": "wrong"}).status_code == 401


def test_messages_for_unknown_cart(api):
    assert api.get("/orders/nope/messages", headers=ADMIN).status_code == 404


def test_authorized_payment_settled_by_admin(api, fake_gateway, make_cart):
    """Mismatched amount is held as authorized until an admin settles it."""

    order_number = initiate(api, make_cart, "api-3")
    fake_gateway.report_paid(1500)

    body = api.get("/payment_return", params=callback_params(order_number, "api-3", settled="0")).json()
    assert body["status"] == "AUTHORIZED"

    resp = api.post("/orders/api-3/settle", headers=ADMIN)
    assert resp.json() == {"success": True, "message": "Payment settled."}
    assert main.orders.get_order("api-3").state == "paid"

    messages = api.get("/orders/api-3/messages", headers=ADMIN).json()
    assert messages["order_number"] == order_number
    assert messages["amount"] == 1999
    assert messages["messages"][-1]["message"] == "Payment settled."


def test_metrics_exposed(api, make_cart):
    api.post("/payment", json={"cart": make_cart(cart_id="api-metrics").model_dump(mode="json")})

    resp = api.get("/metrics")

    assert resp.status_code == 200
    assert "payment_requests_total" in resp.text


def test_return_with_wrong_key_is_bad_request(api, make_cart):
    """Only the holder of the cart's access key can finalize its order."""

    order_number = initiate(api, make_cart, "api-key")
    params = callback_params(order_number, "api-key")
    params["key"] = "attacker-guess"

    resp = api.get("/payment_return", params=params)

    assert resp.status_code == 400
    assert main.orders.get_order("api-key") is None
    assert api.get("/payment_return", params=callback_params(order_number, "api-key")).json()["order_created"]


def test_return_crash_is_generic_server_error(api, make_cart, monkeypatch):
    """A database failure while finalizing shows no internals to the customer."""

    order_number = initiate(api, make_cart, "api-crash")

    def db_down(*args, **kwargs):
        raise OperationalError("INSERT INTO shop_orders", {}, Exception("db down"))

    monkeypatch.setattr(main.orders, "create_order", db_down)

    resp = api.get("/payment_return", params=callback_params(order_number, "api-crash"))

    assert resp.status_code == 500
    assert resp.json() == {"detail": "Payment failed."}
