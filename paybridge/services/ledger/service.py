"""Order ledger: durable order-number mapping and audit messages."""

from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from paybridge.common.logging import logger
from paybridge.services.ledger.models import OrderMessage, OrderRecord


UPSERT_DIALECTS = {"postgresql": pg_insert, "sqlite": sqlite_insert}


class OrderLedger:
    """Backs idempotent return handling with one mapping row per cart."""

    def __init__(self, session_factory, orders) -> None:
        self.session_factory = session_factory
        self.orders = orders

    def upsert(self, cart_id: str, order_number: str, amount: int, secure_key: str | None = None) -> None:
        """Insert or overwrite the cart's mapping in one statement.

        Uses `INSERT ... ON CONFLICT (cart_id) DO UPDATE`, so concurrent
        initiations of the same cart can never produce two rows. `secure_key`
        is the cart access secret that callbacks must echo back.
        """

        with self.session_factory() as db:
            dialect = db.get_bind().dialect.name
            insert = UPSERT_DIALECTS.get(dialect)
            if insert is None:
                raise RuntimeError(f"ledger upsert not supported on {dialect}")
            now = datetime.now(timezone.utc)
            stmt = insert(OrderRecord).values(
                cart_id=cart_id,
                order_number=order_number,
                amount=amount,
                secure_key=secure_key,
                created_at=now,
                updated_at=now,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[OrderRecord.cart_id],
                set_={
                    "order_number": stmt.excluded.order_number,
                    "amount": stmt.excluded.amount,
                    "secure_key": stmt.excluded.secure_key,
                    "updated_at": stmt.excluded.updated_at,
                },
            )
            db.execute(stmt)
            db.commit()
        logger.info("ledger upsert cart_id=%s order_number=%s amount=%s", cart_id, order_number, amount)

    def lookup(self, cart_id: str) -> OrderRecord | None:
        with self.session_factory() as db:
            return db.get(OrderRecord, cart_id)

    def append_message(self, cart_id: str, text: str) -> int:
        """Store one timestamped row per non-blank line; returns rows written."""

        lines = [line.strip() for line in text.splitlines() if line.strip()]
        if not lines:
            return 0
        with self.session_factory() as db:
            for line in lines:
                db.add(OrderMessage(cart_id=cart_id, created_at=datetime.now(timezone.utc), message=line))
            db.commit()
        return len(lines)

    def messages(self, cart_id: str) -> list[OrderMessage]:
        with self.session_factory() as db:
            return list(
                db.execute(
                    select(OrderMessage)
                    .where(OrderMessage.cart_id == cart_id)
                    .order_by(OrderMessage.id)
                ).scalars()
            )

    def has_final_order(self, cart_id: str) -> bool:
        """Whether the order system already holds a terminal order for the cart."""

        return self.orders.has_order(cart_id)
