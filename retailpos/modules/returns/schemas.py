from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from uuid import UUID
from datetime import datetime
from decimal import Decimal

from retailpos.modules.returns.models import ReturnType, ReturnStatus


class ReturnCreate(BaseModel):
    product_id: UUID
    return_type: ReturnType
    quantity: int = Field(..., ge=1)
    reason: str = Field(..., min_length=1, max_length=255)
    notes: str = Field(default="", max_length=255)
    party_name: Optional[str] = Field(None, max_length=150, description="Customer or supplier name")

    @field_validator('reason')
    @classmethod
    def strip_reason(cls, v: str) -> str:
        cleaned = v.strip()
        if not cleaned:
            raise ValueError('Reason cannot be blank')
        return cleaned


class ReturnOut(BaseModel):
    id: UUID
    product_id: UUID
    product_name: str
    return_type: ReturnType
    quantity: int
    reason: str
    notes: str
    unit_price: Decimal
    total_value: Decimal
    previous_stock: int
    new_stock: int
    cashier_id: str
    cashier_name: str
    status: ReturnStatus
    ledger_entry_id: int
    created_at: datetime

    model_config = {"from_attributes": True}


class ReturnList(BaseModel):
    returns: List[ReturnOut]
    total: int
