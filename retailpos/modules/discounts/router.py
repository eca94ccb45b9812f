from fastapi import APIRouter, Depends, Query, status
from uuid import UUID
from typing import List
from sqlalchemy.orm import Session

from retailpos.dependencies.dbDependencies import get_db
from retailpos.modules.discounts.service import DiscountService
from retailpos.modules.discounts.schemas import (
    DiscountCreate, DiscountUpdate, DiscountOut, CouponCreate, CouponOut
)

discounts_router = APIRouter(prefix="/discounts", tags=["Discounts"])


@discounts_router.get("/", response_model=List[DiscountOut])
def list_discounts(db: Session = Depends(get_db)):
    return DiscountService(db).list_discounts()


@discounts_router.post("/", response_model=DiscountOut, status_code=status.HTTP_201_CREATED)
def create_discount(data: DiscountCreate, db: Session = Depends(get_db)):
    """Create a discount; marking it global unsets the previous global one."""
    return DiscountService(db).create_discount(data)


@discounts_router.put("/{discount_id}", response_model=DiscountOut)
def update_discount(discount_id: UUID, data: DiscountUpdate, db: Session = Depends(get_db)):
    return DiscountService(db).update_discount(discount_id, data)


@discounts_router.delete("/{discount_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_discount(discount_id: UUID, db: Session = Depends(get_db)):
    DiscountService(db).delete_discount(discount_id)


coupons_router = APIRouter(prefix="/coupons", tags=["Discounts"])


@coupons_router.get("/", response_model=List[CouponOut])
def list_coupons(
    active_only: bool = Query(True),
    db: Session = Depends(get_db)
):
    return DiscountService(db).list_coupons(active_only)


@coupons_router.post("/", response_model=CouponOut, status_code=status.HTTP_201_CREATED)
def create_coupon(data: CouponCreate, db: Session = Depends(get_db)):
    return DiscountService(db).create_coupon(data)


@coupons_router.delete("/{code}", response_model=CouponOut)
def deactivate_coupon(code: str, db: Session = Depends(get_db)):
    """Deactivate a coupon; orders that already applied it keep their snapshot."""
    return DiscountService(db).deactivate_coupon(code)
