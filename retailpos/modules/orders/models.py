from retailpos.database.database import Base
from sqlalchemy import Column, String, Text, DateTime, Numeric, JSON, Uuid, Index
from retailpos.modules.inventory.models import utcnow


class CompletedOrder(Base):
    """
    Snapshot of a completed POS order.

    The primary key is the order id generated when the tab was opened, so
    persisting the same order twice is a no-op.
    """
    __tablename__ = "orders"

    id = Column(Uuid(as_uuid=True), primary_key=True)
    name = Column(String(100), nullable=False)
    session_key = Column(String(100), nullable=True, index=True)
    order_type = Column(String(20), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="completed")

    # Snapshots
    cart = Column(JSON, nullable=False)
    customer = Column(JSON, nullable=False, default=dict)
    cashier = Column(JSON, nullable=True)
    applied_coupon = Column(JSON, nullable=True)
    payment_method = Column(String(10), nullable=False)
    payment_details = Column(JSON, nullable=False)
    kitchen_note = Column(Text, nullable=False, default="")

    # Totals
    discount_percentage = Column(Numeric(5, 2), nullable=False, default=0)
    subtotal = Column(Numeric(15, 2), nullable=False)
    coupon_discount = Column(Numeric(15, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(15, 2), nullable=False, default=0)
    table_charge = Column(Numeric(15, 2), nullable=False, default=0)
    delivery_charge = Column(Numeric(15, 2), nullable=False, default=0)
    payment_surcharge = Column(Numeric(15, 2), nullable=False, default=0)
    total = Column(Numeric(15, 2), nullable=False)
    final_total = Column(Numeric(15, 2), nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_orders_completed_at", "completed_at"),
    )


class SessionState(Base):
    """Serialized order set (tabs, active tab, warnings) of one cashier session"""
    __tablename__ = "pos_session_state"

    key = Column(String(100), primary_key=True)
    payload = Column(Text, nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
