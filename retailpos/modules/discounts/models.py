from retailpos.database.database import Base
from sqlalchemy import Column, String, Boolean, Numeric, Enum, JSON, CheckConstraint
from retailpos.common.mixins import TimestampMixin, UUIDPrimaryKeyMixin
import enum


class CouponType(str, enum.Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class Discount(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "discounts"

    name = Column(String(100), nullable=False)
    percentage = Column(Numeric(5, 2), nullable=False)
    is_global = Column(Boolean, nullable=False, default=False, index=True)
    description = Column(String(255), nullable=True)

    __table_args__ = (
        CheckConstraint("percentage >= 0 AND percentage <= 100", name="ck_discount_percentage_range"),
    )


class Coupon(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "coupons"

    code = Column(String(50), nullable=False, unique=True, index=True)  # Stored upper case
    discount = Column(Numeric(15, 2), nullable=False)
    type = Column(
        Enum(CouponType, name="coupon_type", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=CouponType.PERCENTAGE
    )
    applicable_items = Column(JSON, nullable=True)  # Product ids (str); empty = whole cart
    description = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint("discount > 0", name="ck_coupon_discount_positive"),
    )
