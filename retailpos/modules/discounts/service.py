from sqlalchemy.orm import Session
from sqlalchemy import func
from uuid import UUID
from typing import Optional, List
from decimal import Decimal
import logging

from retailpos.core.exceptions import DiscountNotFoundError, CouponNotFoundError, DuplicateCouponError
from retailpos.modules.discounts.models import Discount, Coupon
from retailpos.modules.discounts.schemas import DiscountCreate, DiscountUpdate, CouponCreate

logger = logging.getLogger(__name__)


class DiscountService:
    def __init__(self, db: Session):
        self.db = db

    # ===== DISCOUNTS =====

    def list_discounts(self) -> List[Discount]:
        return self.db.query(Discount).order_by(Discount.created_at.desc(), Discount.name).all()

    def get_discount(self, discount_id: UUID) -> Discount:
        discount = self.db.query(Discount).filter(Discount.id == discount_id).first()
        if not discount:
            raise DiscountNotFoundError("Discount not found", discount_id=discount_id)
        return discount

    def get_global_discount(self) -> Optional[Discount]:
        return self.db.query(Discount).filter(Discount.is_global.is_(True)).first()

    def global_percentage(self) -> Decimal:
        """Percentage new orders start with (0 when no global discount exists)."""
        discount = self.get_global_discount()
        return Decimal(discount.percentage) if discount else Decimal("0")

    def create_discount(self, data: DiscountCreate) -> Discount:
        try:
            if data.is_global:
                self._clear_global()
            discount = Discount(**data.model_dump())
            self.db.add(discount)
            self.db.commit()
            self.db.refresh(discount)
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Created discount '{discount.name}' ({discount.percentage}%, global={discount.is_global})")
        return discount

    def update_discount(self, discount_id: UUID, data: DiscountUpdate) -> Discount:
        discount = self.get_discount(discount_id)
        changes = data.model_dump(exclude_unset=True)

        try:
            if changes.get("is_global"):
                self._clear_global(exclude_id=discount.id)
            for field, value in changes.items():
                setattr(discount, field, value)
            self.db.commit()
            self.db.refresh(discount)
        except Exception:
            self.db.rollback()
            raise
        return discount

    def delete_discount(self, discount_id: UUID) -> None:
        discount = self.get_discount(discount_id)
        self.db.delete(discount)
        self.db.commit()
        logger.info(f"Deleted discount '{discount.name}'")

    def _clear_global(self, exclude_id: Optional[UUID] = None) -> None:
        query = self.db.query(Discount).filter(Discount.is_global.is_(True))
        if exclude_id:
            query = query.filter(Discount.id != exclude_id)
        for other in query.all():
            other.is_global = False

    # ===== COUPONS =====

    def create_coupon(self, data: CouponCreate) -> Coupon:
        if self.db.query(Coupon).filter(func.upper(Coupon.code) == data.code).first():
            raise DuplicateCouponError(f"Coupon '{data.code}' already exists", code=data.code)

        coupon = Coupon(
            code=data.code,
            discount=data.discount,
            type=data.type,
            applicable_items=[str(item) for item in data.applicable_items],
            description=data.description
        )
        try:
            self.db.add(coupon)
            self.db.commit()
            self.db.refresh(coupon)
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Created coupon {coupon.code} ({coupon.type.value} {coupon.discount})")
        return coupon

    def list_coupons(self, active_only: bool = True) -> List[Coupon]:
        query = self.db.query(Coupon)
        if active_only:
            query = query.filter(Coupon.is_active.is_(True))
        return query.order_by(Coupon.code).all()

    def get_coupon(self, code: str) -> Coupon:
        """Active coupon by code, case-insensitive."""
        normalized = (code or "").strip().upper()
        coupon = self.db.query(Coupon).filter(
            func.upper(Coupon.code) == normalized,
            Coupon.is_active.is_(True)
        ).first()
        if not coupon:
            raise CouponNotFoundError(f"Coupon '{normalized}' not found or inactive", code=normalized)
        return coupon

    def deactivate_coupon(self, code: str) -> Coupon:
        coupon = self.get_coupon(code)
        coupon.is_active = False
        self.db.commit()
        self.db.refresh(coupon)
        logger.info(f"Deactivated coupon {coupon.code}")
        return coupon
