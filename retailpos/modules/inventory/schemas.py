from pydantic import BaseModel, Field, model_validator
from typing import Optional, List
from uuid import UUID
from datetime import datetime
from decimal import Decimal

from retailpos.common.schemas import Counterparty
from retailpos.modules.inventory.models import TransactionKind, PartyType


# Movement schemas
class StockMovementCreate(BaseModel):
    """
    Manual stock event (purchase receipt, return, adjustment).

    For purchase / customer_return / supplier_return ``quantity`` is the
    positive number of units; the sign comes from the kind. For adjustment it
    is the signed delta.
    """
    product_id: UUID
    transaction_type: TransactionKind
    quantity: int = Field(..., description="Units moved (signed for adjustments)")
    unit_price: Optional[Decimal] = Field(None, ge=0, description="Defaults to the product cost/selling price")
    reference: Optional[str] = Field(None, max_length=100)
    party: Optional[Counterparty] = None
    notes: str = Field(default="", max_length=255)

    @model_validator(mode='after')
    def validate_quantity(self):
        if self.quantity == 0:
            raise ValueError('quantity cannot be zero')
        if self.transaction_type != TransactionKind.ADJUSTMENT and self.quantity < 0:
            raise ValueError('quantity must be positive; the transaction type sets the direction')
        if self.transaction_type == TransactionKind.SALE:
            raise ValueError('sales are recorded by POS checkout')
        return self

    @property
    def signed_delta(self) -> int:
        direction = self.transaction_type.direction
        return self.quantity if direction == 0 else direction * abs(self.quantity)


class StockAdjustTo(BaseModel):
    """Stock count correction: set the counter to a counted value"""
    product_id: UUID
    counted_stock: int = Field(..., ge=0)
    notes: str = Field(default="", max_length=255)


class LedgerEntryOut(BaseModel):
    id: int
    product_id: UUID
    product_name: str
    transaction_type: TransactionKind
    quantity: int
    previous_stock: int
    new_stock: int
    unit_price: Decimal
    total_value: Decimal
    reference: Optional[str] = None
    party_type: Optional[PartyType] = None
    party_id: Optional[str] = None
    party_name: Optional[str] = None
    user_id: str
    user_name: str
    notes: str
    created_at: datetime

    model_config = {"from_attributes": True}


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class LedgerPage(BaseModel):
    transitions: List[LedgerEntryOut]
    pagination: Pagination


# Reconciliation schemas
class ReconciliationLine(BaseModel):
    product_id: UUID
    product_name: str
    counter: int
    ledger_total: int
    drift: int
    broken_links: int = Field(0, description="Entries whose previous_stock does not follow the prior entry")
    reserved: int
    held_by_reservations: int

    @property
    def consistent(self) -> bool:
        return self.drift == 0 and self.broken_links == 0 and self.reserved == self.held_by_reservations


class ReconciliationReport(BaseModel):
    checked: int
    inconsistent: List[ReconciliationLine]


class SaleLine(BaseModel):
    """One cart line handed to the ledger at checkout completion"""
    product_id: UUID
    product_name: str
    quantity: int = Field(..., gt=0)
    unit_price: Decimal = Field(..., ge=0)


class CompensationRequest(BaseModel):
    """Operator recovery after a failed completion"""
    order_id: UUID
    lines: List[SaleLine] = Field(..., min_length=1)
    notes: str = Field(default="", max_length=255)


class ReleasedReservations(BaseModel):
    released_rows: int
    released_units: int
