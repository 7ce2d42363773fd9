"""Manual capture of authorized payments (admin action)."""

from pydantic import BaseModel

from paybridge.common.config import CommonSettings
from paybridge.common.logging import logger
from paybridge.common.metrics import settlements_total
from paybridge.services.gateway.client import GatewayClient, GatewayError
from paybridge.services.ledger.service import OrderLedger
from paybridge.services.orders.service import OrderService


SETTLE_FAILURE_MESSAGES = {
    1: "Request failed. Validation failed.",
    2: (
        "Payment cannot be settled. Either the payment has already been settled or the payment "
        "gateway refused to settle payment for given transaction."
    ),
    3: "Payment cannot be settled. Transaction for given order number was not found.",
}
SETTLED_MESSAGE = "Payment settled."


class SettlementResult(BaseModel):
    success: bool
    message: str


class SettlementService:
    """Captures an `authorized` order's payment and marks the order paid."""

    def __init__(
        self,
        client: GatewayClient,
        ledger: OrderLedger,
        orders: OrderService,
        config: CommonSettings,
    ) -> None:
        self.client = client
        self.ledger = ledger
        self.orders = orders
        self.config = config

    def settle(self, cart_id: str) -> SettlementResult:
        record = self.ledger.lookup(cart_id)
        if record is None:
            return SettlementResult(success=False, message="Order number not found for settlement.")
        order = self.orders.get_order(cart_id)
        if order is None:
            return SettlementResult(success=False, message="Order not found.")
        if order.state != "authorized":
            return SettlementResult(
                success=False,
                message="Payment cannot be settled. Order is not awaiting settlement.",
            )

        try:
            response = self.client.settle(record.order_number)
        except GatewayError as exc:
            # Admin-facing: the gateway error text is shown as-is.
            logger.error("settlement request failed order_number=%s error=%s", record.order_number, exc)
            settlements_total.labels(service=self.config.service_name, result="error").inc()
            return SettlementResult(success=False, message=str(exc))
        except Exception:
            logger.exception("settlement crashed order_number=%s", record.order_number)
            settlements_total.labels(service=self.config.service_name, result="error").inc()
            return SettlementResult(success=False, message="An unexpected error occurred.")

        settlements_total.labels(service=self.config.service_name, result=str(response.result)).inc()
        if response.result != 0:
            message = SETTLE_FAILURE_MESSAGES.get(response.result, "Unexpected error during the settlement.")
            logger.warning("settlement refused order_number=%s result=%s", record.order_number, response.result)
            return SettlementResult(success=False, message=message)

        try:
            self.orders.set_state(cart_id, "paid", reason="payment_settled")
            self.ledger.append_message(cart_id, SETTLED_MESSAGE)
        except Exception:
            # Captured at the gateway but not recorded locally.
            logger.exception("settled payment not recorded order_number=%s", record.order_number)
            return SettlementResult(success=False, message="An unexpected error occurred.")
        logger.info("payment settled order_number=%s", record.order_number)
        return SettlementResult(success=True, message=SETTLED_MESSAGE)
