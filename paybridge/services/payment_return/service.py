"""Gateway return/notify handling.

The browser redirect and the server-to-server notification carry the same
parameters and may arrive in any order, or both at once. Each callback runs
the full check sequence; only the first one to finalize creates the order
and writes the reconciliation message.

Check order, short-circuiting on the first failure:

1. required parameters present, numeric return code and the cart's access
   key (else `MalformedCallback`, nothing written)
2. authcode matches
3. order number matches the ledger row for the cart
4. return code 0 → status lookup, amount reconciliation → ACCEPTED/AUTHORIZED
5. any other return code → FAILED with a code-specific message
"""

import hmac

from pydantic import BaseModel

from paybridge.common.config import CommonSettings
from paybridge.common.logging import cart_id_ctx, logger, order_number_ctx
from paybridge.common.metrics import callback_outcomes_total, duplicate_callbacks_skipped_total
from paybridge.common.state_machine import validate_transition
from paybridge.services.gateway.client import GatewayClient, GatewayError
from paybridge.services.gateway.schemas import CallbackPayload, PaymentSource
from paybridge.services.ledger.models import OrderRecord
from paybridge.services.ledger.service import OrderLedger
from paybridge.services.orders.service import OrderService


ORDER_STATE_BY_OUTCOME = {"ACCEPTED": "paid", "AUTHORIZED": "authorized", "FAILED": "error"}

CARD_VERIFICATION_MESSAGES = {
    "Y": "3-D Secure was used.",
    "N": "3-D Secure was not used.",
    "A": "3-D Secure was attempted but not supported by the card issuer or the card holder is not participating.",
}

DECLINE_MESSAGES = {
    "04": "The card is reported lost or stolen.",
    "05": "General decline. The card holder should contact the issuer to find out why the payment failed.",
    "51": "Insufficient funds. The card holder should verify that there is balance on the account and the online payments are activated.",
    "54": "Expired card.",
    "61": "Withdrawal amount limit exceeded.",
    "62": "Restricted card. The card holder should verify that the online payments are activated.",
    "1000": "Timeout communicating with the acquirer. The payment should be tried again later.",
}

AMOUNT_MISMATCH_NOTE = (
    "NOTE !! Paid sum does not match order sum, verify order contents from the customer or the merchant portal."
)
CHECK_PORTAL = "Check the status of the payment from the merchant portal!"


class MalformedCallback(ValueError):
    """Callback lacks the parameters needed to identify the payment."""


class ReturnOutcome(BaseModel):
    cart_id: str
    status: str
    order_state: str
    message: str
    order_created: bool


def card_payment_message(source: PaymentSource) -> list[str]:
    """Human-readable card details: 3-D Secure, decline reason, countries."""

    lines = [CARD_VERIFICATION_MESSAGES.get(source.card_verified or "", "3-D Secure: No connection to acquirer.")]
    code = source.error_code or ""
    if code:
        lines.append(DECLINE_MESSAGES.get(code, f'Unrecognized error code "{code}".'))
    if source.card_country:
        lines.append(f"Card ISO 3166-1 country code: {source.card_country}")
    if source.client_ip_country:
        lines.append(f"Client ISO 3166-1 country code: {source.client_ip_country}")
    return lines


class ReturnVerifier:
    """Authenticates callbacks, reconciles them and finalizes the order once."""

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

    def reconcile(self, payload: CallbackPayload, record: OrderRecord | None) -> tuple[list[str], bool | None]:
        """Status detail lines and whether the paid amount matches the ledger.

        The match is `None` when the status endpoint could not be read.
        """

        order_number = payload.order_number or ""
        lines = [f"Order number: {order_number}."]
        try:
            status = self.client.check_status(order_number)
        except GatewayError as exc:
            logger.warning("status check failed order_number=%s error=%s", order_number, exc)
            return lines, None
        except Exception:
            logger.exception("status check crashed order_number=%s", order_number)
            return lines, None

        if status.source is not None and status.source.object == "card":
            lines.extend(card_payment_message(status.source))
        if status.source is not None and status.source.brand:
            lines.append(f"Payment method: {status.source.brand}.")

        amount_matches = record is not None and status.amount is not None and status.amount == record.amount
        if not amount_matches:
            logger.warning(
                "amount mismatch order_number=%s expected=%s paid=%s",
                order_number,
                record.amount if record else None,
                status.amount,
            )
        return lines, amount_matches

    def status_message(self, lines: list[str], amount_matches: bool | None, outcome: str | None = None) -> str:
        """Join status lines with the outcome line and, on a known mismatch, the NOTE."""

        lines = list(lines)
        if outcome == "ACCEPTED":
            lines.append("Payment accepted.")
        elif outcome == "AUTHORIZED":
            lines.append("Payment authorized.")
        if amount_matches is False:
            lines.append(AMOUNT_MISMATCH_NOTE)
        return "\n".join(lines)

    def failed_return_message(self, payload: CallbackPayload, record: OrderRecord | None) -> str:
        """Message for a non-zero return code."""

        order_number = payload.order_number or ""
        return_code = payload.return_code_value
        prefix = f"Gateway response: payment failed on order: {order_number}. "
        if return_code == 4:
            return prefix + (
                "Transaction status could not be updated after the customer returned from the bank; "
                "resolve manually by checking the capture status in the merchant portal."
            )
        if return_code == 10:
            return prefix + (
                "Gateway maintenance break: the transaction was not created and the customer "
                "was sent back to the cancel address."
            )
        lines, amount_matches = self.reconcile(payload, record)
        return "Gateway response: payment failed.\n" + self.status_message(lines, amount_matches)

    def _finalize(self, payload: CallbackPayload, state: str, outcome: str, message: str) -> ReturnOutcome:
        validate_transition(state, outcome)
        cart_id = payload.cart_id or ""
        order_state = ORDER_STATE_BY_OUTCOME[outcome]
        record = self.ledger.lookup(cart_id)

        created = False
        if self.ledger.has_final_order(cart_id):
            logger.info("order already finalized, callback absorbed outcome=%s", outcome)
            duplicate_callbacks_skipped_total.labels(service=self.config.service_name).inc()
        else:
            created = self.orders.create_order(
                cart_id,
                order_state,
                amount=record.amount if record else 0,
                secure_key=payload.key,
                transaction_id=record.order_number if record else None,
            )
            if created:
                self.ledger.append_message(cart_id, message)
            else:
                duplicate_callbacks_skipped_total.labels(service=self.config.service_name).inc()

        callback_outcomes_total.labels(service=self.config.service_name, outcome=outcome).inc()
        logger.info("callback finalized outcome=%s order_created=%s", outcome, created)
        return ReturnOutcome(
            cart_id=cart_id,
            status=outcome,
            order_state=order_state,
            message=message,
            order_created=created,
        )

    def handle(self, payload: CallbackPayload) -> ReturnOutcome:
        """Run one callback through the check sequence and finalize it.

        Raises `MalformedCallback` before anything is written when the
        callback can't be attributed to a cart: missing or non-numeric
        fields, or a `key` that is not the cart's access secret.
        """

        if payload.return_code is None or payload.order_number is None or not payload.cart_id:
            raise MalformedCallback("RETURN_CODE, ORDER_NUMBER and id_cart are required")
        return_code = payload.return_code_value
        if return_code is None:
            raise MalformedCallback(f"RETURN_CODE is not numeric: {payload.return_code!r}")
        cart_id_ctx.set(payload.cart_id)
        order_number_ctx.set(payload.order_number)

        record = self.ledger.lookup(payload.cart_id)
        if record is not None and not hmac.compare_digest(
            (payload.key or "").encode("utf-8"), (record.secure_key or "").encode("utf-8")
        ):
            logger.warning("callback key does not match cart")
            raise MalformedCallback("key does not match the cart")
        state = "RECEIVED"

        if not self.client.verify_callback(payload):
            logger.warning("callback authcode mismatch")
            message = f"Order number: {payload.order_number}. Authcode mismatch\n{CHECK_PORTAL}"
            return self._finalize(payload, state, "FAILED", message)
        validate_transition(state, "AUTH_CHECKED")
        state = "AUTH_CHECKED"

        if record is None or record.order_number != payload.order_number:
            logger.warning(
                "callback order number mismatch expected=%s",
                record.order_number if record else None,
            )
            message = f"Order number: {payload.order_number}. Order number mismatch\n{CHECK_PORTAL}"
            return self._finalize(payload, state, "FAILED", message)
        validate_transition(state, "ORDER_NUMBER_CHECKED")
        state = "ORDER_NUMBER_CHECKED"

        if return_code != 0:
            message = self.failed_return_message(payload, record)
            logger.error(message)
            return self._finalize(payload, state, "FAILED", message)

        lines, amount_matches = self.reconcile(payload, record)
        validate_transition(state, "STATUS_RESOLVED")
        state = "STATUS_RESOLVED"
        outcome = "ACCEPTED" if payload.is_settled or amount_matches else "AUTHORIZED"
        return self._finalize(payload, state, outcome, self.status_message(lines, amount_matches, outcome))
