"""
Stock ledger and cart reservations

- StockLedgerEntry: append-only record of every change to ``Product.stock``
- StockReservation: units an open order holds against ``Product.reserved``

The ledger is the fact log; ``Product.stock`` is its running total and can be
rebuilt at any time by summing the entries of a product.
"""

from retailpos.database.database import Base
from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, Numeric, Enum, Uuid,
    UniqueConstraint, CheckConstraint, Index, event
)
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from uuid import uuid4
import enum


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TransactionKind(str, enum.Enum):
    """Kinds of stock movement"""
    SALE = "sale"                        # POS checkout, decreases
    PURCHASE = "purchase"                # Goods received, increases
    CUSTOMER_RETURN = "customer_return"  # Customer brings goods back, increases
    SUPPLIER_RETURN = "supplier_return"  # Goods sent back to supplier, decreases
    ADJUSTMENT = "adjustment"            # Explicit correction, either sign

    @property
    def direction(self) -> int:
        """+1 / -1 for kinds with a fixed sign, 0 for adjustments."""
        if self in (TransactionKind.SALE, TransactionKind.SUPPLIER_RETURN):
            return -1
        if self in (TransactionKind.PURCHASE, TransactionKind.CUSTOMER_RETURN):
            return 1
        return 0


class PartyType(str, enum.Enum):
    CUSTOMER = "customer"
    SUPPLIER = "supplier"
    SYSTEM = "system"


class StockLedgerEntry(Base):
    """
    Immutable ledger row.

    ``quantity`` is the signed delta: ``new_stock = previous_stock + quantity``.
    Rows are never updated or deleted (enforced by the listeners below).
    """
    __tablename__ = "stock_transitions"

    id = Column(Integer, primary_key=True, autoincrement=True)  # Append order
    product_id = Column(Uuid(as_uuid=True), ForeignKey("products.id"), nullable=False, index=True)
    product_name = Column(String(150), nullable=False)
    transaction_type = Column(
        Enum(TransactionKind, name="transaction_kind", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        index=True
    )
    quantity = Column(Integer, nullable=False)
    previous_stock = Column(Integer, nullable=False)
    new_stock = Column(Integer, nullable=False)
    unit_price = Column(Numeric(15, 2), nullable=False, default=0)
    total_value = Column(Numeric(15, 2), nullable=False, default=0)
    reference = Column(String(100), nullable=True, index=True)  # Order id, return id, ...

    # Counterparty (customer / supplier / system)
    party_type = Column(
        Enum(PartyType, name="party_type", values_callable=lambda e: [m.value for m in e]),
        nullable=True
    )
    party_id = Column(String(64), nullable=True)
    party_name = Column(String(150), nullable=True)

    # Actor
    user_id = Column(String(64), nullable=False)
    user_name = Column(String(100), nullable=False)

    notes = Column(String(255), nullable=False, default="")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    # Relationships
    product = relationship("Product", back_populates="ledger_entries")

    __table_args__ = (
        CheckConstraint("new_stock = previous_stock + quantity", name="ck_ledger_balanced"),
        CheckConstraint("quantity <> 0", name="ck_ledger_non_zero"),
        Index("ix_stock_transitions_product_created", "product_id", "created_at"),
    )


@event.listens_for(StockLedgerEntry, "before_update")
def _refuse_ledger_update(mapper, connection, target):
    raise ValueError("Stock ledger entries are immutable")


@event.listens_for(StockLedgerEntry, "before_delete")
def _refuse_ledger_delete(mapper, connection, target):
    raise ValueError("Stock ledger entries cannot be deleted")


class StockReservation(Base):
    """Quantity of a product held by one open order's cart"""
    __tablename__ = "stock_reservations"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    order_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    session_key = Column(String(100), nullable=True, index=True)
    product_id = Column(Uuid(as_uuid=True), ForeignKey("products.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow, index=True)

    # Relationships
    product = relationship("Product", back_populates="reservations")

    __table_args__ = (
        UniqueConstraint("order_id", "product_id", name="uq_reservation_order_product"),
        CheckConstraint("quantity > 0", name="ck_reservation_positive"),
    )
