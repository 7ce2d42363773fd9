"""HTTP surface for checkout, gateway callbacks and admin settlement.

Customer-facing endpoints never echo gateway errors; the detailed
reconciliation text only goes to the ledger and the admin endpoints.
"""

from contextlib import asynccontextmanager
from time import perf_counter
from uuid import uuid4

from fastapi import FastAPI, Header, HTTPException, Request
from starlette.concurrency import run_in_threadpool

from paybridge.common.config import settings
from paybridge.common.db import SessionLocal, create_schema, engine
from paybridge.common.logging import cart_id_ctx, configure_logging, logger, trace_id_ctx
from paybridge.common.metrics import http_request_duration_seconds, http_requests_total, metrics_response
from paybridge.common.startup import log_startup_config
from paybridge.common.tracing import instrument_app, setup_tracing
from paybridge.services.checkout.schemas import PaymentCreateRequest, PaymentCreateResponse, PaymentOptionsRequest
from paybridge.services.checkout.service import PaymentInitiator
from paybridge.services.gateway.client import GatewayClient
from paybridge.services.gateway.schemas import CallbackPayload
from paybridge.services.ledger.service import OrderLedger
from paybridge.services.orders.service import OrderService
from paybridge.services.payment_options.service import PaymentOptionsService
from paybridge.services.payment_return.service import MalformedCallback, ReturnVerifier
from paybridge.services.settlement.service import SettlementResult, SettlementService

configure_logging()
setup_tracing(settings)
log_startup_config(
    settings,
    [
        "database_dsn",
        "gateway_api_url",
        "gateway_api_key",
        "gateway_private_key",
        "order_prefix",
        "send_items",
        "display_mode",
        "public_base_url",
    ],
)

orders = OrderService(SessionLocal)
ledger = OrderLedger(SessionLocal, orders)
client = GatewayClient.from_settings(settings)
payment_options = PaymentOptionsService(client, settings)
initiator = PaymentInitiator(client, ledger, payment_options, settings)
verifier = ReturnVerifier(client, ledger, orders, settings)
settlement = SettlementService(client, ledger, orders, settings)


@asynccontextmanager
async def lifespan(_: FastAPI):
    """Create tables for local SQLite runs; PostgreSQL is migrated with Alembic."""

    if engine.dialect.name == "sqlite":
        create_schema(engine)
    yield


app = FastAPI(title="paybridge", lifespan=lifespan)
instrument_app(app, settings)


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    """Record request count and latency for every HTTP call."""

    start = perf_counter()
    route = request.url.path
    method = request.method
    status_code = 500
    trace_id_ctx.set(request.headers.get("x-correlation-id") or str(uuid4()))
    try:
        response = await call_next(request)
        status_code = response.status_code
        route_obj = request.scope.get("route")
        if route_obj is not None and getattr(route_obj, "path", None):
            route = route_obj.path
        return response
    finally:
        elapsed = max(0.0, perf_counter() - start)
        http_request_duration_seconds.labels(
            service=settings.service_name,
            route=route,
            method=method,
        ).observe(elapsed)
        http_requests_total.labels(
            service=settings.service_name,
            route=route,
            method=method,
            status_code=str(status_code),
        ).inc()


def enforce_api_key(x_api_key: str | None) -> None:
    """Reject admin requests that do not provide the configured API key."""

    if x_api_key != settings.api_key:
        raise HTTPException(status_code=401, detail="invalid API key")


@app.post("/payment", response_model=PaymentCreateResponse)
def create_payment(req: PaymentCreateRequest):
    """Create a gateway charge for the cart and return the payment URL."""

    cart_id_ctx.set(req.cart.cart_id)
    url = initiator.create_payment(req.cart, selected=req.selected, lang=req.lang)
    if not url:
        raise HTTPException(status_code=502, detail="Payment failed, please try again.")
    return PaymentCreateResponse(redirect_url=url)


@app.post("/payment_options")
def list_payment_options(req: PaymentOptionsRequest):
    """Checkout payment options for the configured display mode."""

    return [option.model_dump() for option in payment_options.get_payment_options(req.cart)]


@app.api_route("/payment_return", methods=["GET", "POST"])
async def payment_return(request: Request):
    """Gateway return (browser) and notify (server) endpoint."""

    params = dict(request.query_params)
    if request.method == "POST":
        form = await request.form()
        params.update({k: v for k, v in form.items() if isinstance(v, str)})
    payload = CallbackPayload.model_validate(params)
    try:
        outcome = await run_in_threadpool(verifier.handle, payload)
    except MalformedCallback as exc:
        logger.warning("malformed payment return: %s", exc)
        raise HTTPException(status_code=400, detail="Payment failed.") from exc
    except Exception as exc:
        logger.exception("payment return crashed")
        raise HTTPException(status_code=500, detail="Payment failed.") from exc

    body = {"cart_id": outcome.cart_id, "status": outcome.status, "order_created": outcome.order_created}
    if outcome.status == "FAILED":
        body["error"] = "Payment failed."
    return body


@app.post("/orders/{cart_id}/settle", response_model=SettlementResult)
def settle_order(cart_id: str, x_api_key: str | None = Header(default=None)):
    """Capture an authorized payment (admin)."""

    enforce_api_key(x_api_key)
    cart_id_ctx.set(cart_id)
    return settlement.settle(cart_id)


@app.get("/orders/{cart_id}/messages")
def order_messages(cart_id: str, x_api_key: str | None = Header(default=None)):
    """Gateway order number and reconciliation messages for one cart (admin)."""

    enforce_api_key(x_api_key)
    record = ledger.lookup(cart_id)
    if record is None:
        raise HTTPException(status_code=404, detail="no gateway order for cart")
    return {
        "cart_id": cart_id,
        "order_number": record.order_number,
        "amount": record.amount,
        "messages": [
            {"created_at": m.created_at.isoformat(), "message": m.message} for m in ledger.messages(cart_id)
        ],
    }


@app.get("/metrics")
def metrics():
    """Prometheus scrape endpoint."""

    return metrics_response()


@app.get("/health")
def health():
    """Container health probe endpoint."""

    return {"ok": True}
