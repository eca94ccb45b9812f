from retailpos.database.database import Base
from sqlalchemy import Column, Integer, String, Boolean, Numeric, CheckConstraint
from sqlalchemy.orm import relationship
from retailpos.common.mixins import TimestampMixin, UUIDPrimaryKeyMixin, VersionedMixin


class Product(Base, UUIDPrimaryKeyMixin, TimestampMixin, VersionedMixin):
    """
    Catalog product and its inventory counter.

    ``stock`` is on-hand stock and is only written together with a ledger
    entry. ``reserved`` is the number of units held by open carts; the sellable
    quantity is ``stock - reserved``.
    """
    __tablename__ = "products"

    name = Column(String(150), nullable=False, index=True)
    description = Column(String(255), nullable=True)
    category = Column(String(100), nullable=False, index=True)
    cost_price = Column(Numeric(15, 2), nullable=False, default=0)
    selling_price = Column(Numeric(15, 2), nullable=False, default=0)
    discount_percentage = Column(Numeric(5, 2), nullable=False, default=0)
    barcode = Column(String(64), nullable=True, unique=True)  # unique when present
    supplier = Column(String(150), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    stock = Column(Integer, nullable=False, default=0)
    reserved = Column(Integer, nullable=False, default=0)
    min_stock = Column(Integer, nullable=False, default=5)  # Per-product low stock alert

    # Relationships
    ledger_entries = relationship(
        "StockLedgerEntry",
        back_populates="product",
        order_by="StockLedgerEntry.id",
        viewonly=True
    )
    reservations = relationship("StockReservation", back_populates="product", viewonly=True)

    __table_args__ = (
        CheckConstraint("stock >= 0", name="ck_product_stock_non_negative"),
        CheckConstraint("reserved >= 0", name="ck_product_reserved_non_negative"),
        CheckConstraint("reserved <= stock", name="ck_product_reserved_within_stock"),
    )

    @property
    def available(self) -> int:
        return self.stock - self.reserved

    @property
    def is_low_stock(self) -> bool:
        return 0 < self.stock < self.min_stock
