"""Ledger tables: cart → gateway order mapping and its message log."""

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from paybridge.common.db import Base


class OrderRecord(Base):
    """Active gateway order number and expected amount for one cart."""

    __tablename__ = "gateway_orders"

    cart_id: Mapped[str] = mapped_column(String, primary_key=True)
    order_number: Mapped[str] = mapped_column(String, unique=True, index=True)
    amount: Mapped[int] = mapped_column(Integer)
    secure_key: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class OrderMessage(Base):
    """Append-only reconciliation/diagnostic line attached to a cart."""

    __tablename__ = "gateway_order_messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cart_id: Mapped[str] = mapped_column(String, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    message: Mapped[str] = mapped_column(Text)
