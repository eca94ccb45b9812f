from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from uuid import UUID
from datetime import datetime
from decimal import Decimal


class ProductCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=150)
    category: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=255)
    cost_price: Decimal = Field(default=Decimal("0"), ge=0)
    selling_price: Decimal = Field(..., ge=0)
    discount_percentage: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    barcode: Optional[str] = Field(None, max_length=64)
    supplier: Optional[str] = Field(None, max_length=150)
    min_stock: Optional[int] = Field(None, ge=0, description="Low stock threshold; defaults to settings")
    opening_stock: int = Field(default=0, ge=0, description="Recorded as a purchase ledger entry")

    @field_validator('name', 'category')
    @classmethod
    def strip_required(cls, v: str) -> str:
        cleaned = v.strip()
        if not cleaned:
            raise ValueError('Field cannot be blank')
        return cleaned

    @field_validator('barcode')
    @classmethod
    def normalize_barcode(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        cleaned = v.strip()
        return cleaned or None


class ProductOut(BaseModel):
    id: UUID
    name: str
    category: str
    description: Optional[str] = None
    cost_price: Decimal
    selling_price: Decimal
    discount_percentage: Decimal
    barcode: Optional[str] = None
    supplier: Optional[str] = None
    is_active: bool
    stock: int
    reserved: int
    available: int
    min_stock: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class StockAlert(BaseModel):
    """Row of the low-stock / out-of-stock warning lists"""
    id: UUID
    name: str
    category: str
    stock: int
    min_stock: int

    model_config = {"from_attributes": True}


class LowStockReport(BaseModel):
    threshold: int
    low_stock: List[StockAlert]
    out_of_stock: List[StockAlert]
