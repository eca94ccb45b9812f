from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List
from uuid import UUID
from datetime import datetime
from decimal import Decimal

from retailpos.modules.discounts.models import CouponType


# Discount schemas
class DiscountCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    percentage: Decimal = Field(..., ge=0, le=100)
    is_global: bool = False
    description: Optional[str] = Field(None, max_length=255)

    @field_validator('name')
    @classmethod
    def strip_name(cls, v: str) -> str:
        cleaned = v.strip()
        if not cleaned:
            raise ValueError('Name cannot be blank')
        return cleaned


class DiscountUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    percentage: Optional[Decimal] = Field(None, ge=0, le=100)
    is_global: Optional[bool] = None
    description: Optional[str] = Field(None, max_length=255)


class DiscountOut(BaseModel):
    id: UUID
    name: str
    percentage: Decimal
    is_global: bool
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


# Coupon schemas
class CouponCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    discount: Decimal = Field(..., gt=0)
    type: CouponType = CouponType.PERCENTAGE
    applicable_items: List[UUID] = Field(default_factory=list)
    description: Optional[str] = Field(None, max_length=255)

    @field_validator('code')
    @classmethod
    def normalize_code(cls, v: str) -> str:
        cleaned = v.strip().upper()
        if not cleaned:
            raise ValueError('Coupon code cannot be blank')
        return cleaned

    @model_validator(mode='after')
    def validate_percentage(self):
        if self.type == CouponType.PERCENTAGE and self.discount > 100:
            raise ValueError('Percentage coupons cannot exceed 100')
        return self


class CouponOut(BaseModel):
    id: UUID
    code: str
    discount: Decimal
    type: CouponType
    applicable_items: Optional[List[UUID]] = None
    description: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
