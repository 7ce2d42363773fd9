"""Order system used to finalize checkouts."""

from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from paybridge.common.logging import logger
from paybridge.common.state_machine import ORDER_TRANSITIONS, validate_transition
from paybridge.services.orders.models import OrderTimeline, ShopOrder


PAYMENT_METHOD_NAME = "Visma Pay"


class OrderService:
    """Creates at most one order per cart and moves it between states."""

    def __init__(self, session_factory) -> None:
        self.session_factory = session_factory

    def get_order(self, cart_id: str) -> ShopOrder | None:
        with self.session_factory() as db:
            return db.execute(select(ShopOrder).where(ShopOrder.cart_id == cart_id)).scalar_one_or_none()

    def has_order(self, cart_id: str) -> bool:
        return self.get_order(cart_id) is not None

    def create_order(
        self,
        cart_id: str,
        state: str,
        amount: int,
        secure_key: str | None = None,
        currency: str | None = None,
        transaction_id: str | None = None,
    ) -> bool:
        """Insert the order for `cart_id`; `False` if another request won the race."""

        if state not in ORDER_TRANSITIONS:
            raise ValueError(f"unknown order state: {state}")
        with self.session_factory() as db:
            order = ShopOrder(
                cart_id=cart_id,
                state=state,
                amount=amount,
                currency=currency,
                secure_key=secure_key,
                payment_method=PAYMENT_METHOD_NAME,
                transaction_id=transaction_id,
            )
            db.add(order)
            try:
                db.flush()
            except IntegrityError:
                db.rollback()
                logger.info("order already exists cart_id=%s", cart_id)
                return False
            db.add(OrderTimeline(order_id=order.order_id, from_state=None, to_state=state, reason="order_created"))
            db.commit()
            return True

    def set_state(self, cart_id: str, new_state: str, reason: str) -> ShopOrder:
        """Apply one validated state change guarded by the current state.

        The update matches `(cart_id, state)` so a concurrent change makes this
        one fail instead of overwriting it.
        """

        with self.session_factory() as db:
            order = db.execute(select(ShopOrder).where(ShopOrder.cart_id == cart_id)).scalar_one_or_none()
            if order is None:
                raise LookupError(f"no order for cart {cart_id}")
            validate_transition(order.state, new_state, ORDER_TRANSITIONS)
            from_state = order.state
            result = db.execute(
                update(ShopOrder)
                .where(ShopOrder.order_id == order.order_id, ShopOrder.state == from_state)
                .values(state=new_state, updated_at=datetime.now(timezone.utc))
            )
            if result.rowcount != 1:
                raise RuntimeError(f"concurrent state change for order {order.order_id} (expected {from_state})")
            order.state = new_state
            db.add(OrderTimeline(order_id=order.order_id, from_state=from_state, to_state=new_state, reason=reason))
            db.commit()
            return order
