from retailpos.database.database import Base
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Numeric, Enum, Uuid, Index, CheckConstraint
from sqlalchemy.orm import relationship
from uuid import uuid4
import enum

from retailpos.modules.inventory.models import utcnow


class ReturnType(str, enum.Enum):
    CUSTOMER = "customer"
    SUPPLIER = "supplier"


class ReturnStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ProductReturn(Base):
    __tablename__ = "product_returns"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    product_id = Column(Uuid(as_uuid=True), ForeignKey("products.id"), nullable=False)
    product_name = Column(String(150), nullable=False)
    return_type = Column(
        Enum(ReturnType, name="return_type", values_callable=lambda e: [m.value for m in e]),
        nullable=False
    )
    quantity = Column(Integer, nullable=False)
    reason = Column(String(255), nullable=False)
    notes = Column(String(255), nullable=False, default="")
    unit_price = Column(Numeric(15, 2), nullable=False)
    total_value = Column(Numeric(15, 2), nullable=False)
    previous_stock = Column(Integer, nullable=False)
    new_stock = Column(Integer, nullable=False)
    cashier_id = Column(String(64), nullable=False)
    cashier_name = Column(String(100), nullable=False)
    status = Column(
        Enum(ReturnStatus, name="return_status", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=ReturnStatus.COMPLETED
    )
    ledger_entry_id = Column(Integer, ForeignKey("stock_transitions.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    # Relationships
    ledger_entry = relationship("StockLedgerEntry")

    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_return_quantity_positive"),
        Index("ix_product_returns_product_created", "product_id", "created_at"),
        Index("ix_product_returns_type_created", "return_type", "created_at"),
    )
