"""
Pydantic shapes for POS orders

- Order / CartItem / Coupon / payment details: the in-progress order a
  cashier edits, serialized as a whole into the session state
- OrderTotals: derived breakdown, never stored on the open order
- Request and response bodies of the POS session endpoints
"""

from pydantic import BaseModel, Field, field_validator
from decimal import Decimal
from typing import Annotated, Literal, Optional, List, Union
from uuid import UUID, uuid4
from datetime import datetime
from enum import Enum

from retailpos.common.money import ZERO, quantize, percentage_of
from retailpos.common.schemas import Actor
from retailpos.modules.discounts.models import CouponType
from retailpos.modules.inventory.models import utcnow


# ===== ENUMS =====

class OrderType(str, Enum):
    DINE_IN = "dine-in"
    TAKEAWAY = "takeaway"
    DELIVERY = "delivery"


class OrderStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"


class CheckoutState(str, Enum):
    BUILDING = "building"
    CHECKOUT_OPEN = "checkout_open"
    PAYMENT_PENDING = "payment_pending"
    COMPLETED = "completed"


# ===== CART =====

class ProductSnapshot(BaseModel):
    """Product as it was when first added; the price does not follow later catalog edits"""
    id: UUID
    name: str
    category: str
    price: Decimal
    barcode: Optional[str] = None

    @classmethod
    def from_product(cls, product) -> "ProductSnapshot":
        selling_price = Decimal(product.selling_price or 0)
        price = selling_price - percentage_of(selling_price, product.discount_percentage or 0)
        return cls(
            id=product.id,
            name=product.name,
            category=product.category,
            price=quantize(price),
            barcode=product.barcode
        )


class CartItem(BaseModel):
    product: ProductSnapshot
    quantity: int = Field(..., ge=1)
    subtotal: Decimal
    note: Optional[str] = Field(None, max_length=255)

    @classmethod
    def for_product(cls, product: ProductSnapshot, quantity: int = 1) -> "CartItem":
        return cls(product=product, quantity=quantity, subtotal=quantize(product.price * quantity))

    def with_quantity(self, quantity: int) -> "CartItem":
        return self.model_copy(update={
            "quantity": quantity,
            "subtotal": quantize(self.product.price * quantity)
        })


class Customer(BaseModel):
    name: Optional[str] = Field(None, max_length=150)
    phone: Optional[str] = Field(None, max_length=30)
    email: Optional[str] = Field(None, max_length=150)
    birth_date: Optional[str] = None


class Coupon(BaseModel):
    code: str
    discount: Decimal = Field(..., gt=0)
    type: CouponType
    applicable_items: List[UUID] = Field(default_factory=list)
    description: str = ""

    @classmethod
    def from_model(cls, coupon) -> "Coupon":
        return cls(
            code=coupon.code,
            discount=Decimal(coupon.discount),
            type=coupon.type,
            applicable_items=[UUID(str(item)) for item in (coupon.applicable_items or [])],
            description=coupon.description or ""
        )


# ===== PAYMENT =====

class CashPayment(BaseModel):
    method: Literal["cash"] = "cash"
    cash_given: Decimal = Field(..., ge=0)
    change: Decimal = ZERO


class CardPayment(BaseModel):
    method: Literal["card"] = "card"
    invoice_id: str = Field(default="", max_length=100, description="Terminal transaction / invoice id")
    bank_name: str = Field(default="", max_length=100, description="Card issuer")
    service_charge: Decimal = ZERO


PaymentDetails = Annotated[Union[CashPayment, CardPayment], Field(discriminator="method")]


# ===== ORDER =====

class Order(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    name: str
    cart: List[CartItem] = Field(default_factory=list)
    customer: Customer = Field(default_factory=Customer)
    cashier: Optional[Actor] = None
    order_type: OrderType = OrderType.DINE_IN
    table_charge: Decimal = Field(default=ZERO, ge=0)
    delivery_charge: Decimal = Field(default=ZERO, ge=0)
    discount_percentage: Decimal = Field(default=ZERO, ge=0, le=100)
    applied_coupon: Optional[Coupon] = None
    kitchen_note: str = ""
    payment_details: Optional[PaymentDetails] = None
    status: OrderStatus = OrderStatus.ACTIVE
    checkout_state: CheckoutState = CheckoutState.BUILDING
    created_at: datetime = Field(default_factory=utcnow)
    is_default: bool = False

    def find_line(self, product_id: UUID) -> Optional[CartItem]:
        for line in self.cart:
            if line.product.id == product_id:
                return line
        return None

    def replace_line(self, product_id: UUID, line: Optional[CartItem]) -> None:
        """Swap the line of ``product_id`` in place (drop it when ``line`` is None)."""
        for index, current in enumerate(self.cart):
            if current.product.id == product_id:
                if line is None:
                    del self.cart[index]
                else:
                    self.cart[index] = line
                return
        if line is not None:
            self.cart.append(line)

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.cart)


class OrderTotals(BaseModel):
    subtotal: Decimal
    coupon_discount: Decimal
    discount_amount: Decimal
    table_charge: Decimal
    delivery_charge: Decimal
    payment_surcharge: Decimal
    total: Decimal
    final_total: Decimal


class SessionWarning(BaseModel):
    """Reconciliation warning shown to the operator until dismissed"""
    id: UUID = Field(default_factory=uuid4)
    order_id: UUID
    message: str
    failed_product_ids: List[UUID] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)


class OrderSetState(BaseModel):
    """What the session persistence collaborator stores for one cashier session"""
    orders: List[Order]
    active_id: Optional[UUID] = None
    warnings: List[SessionWarning] = Field(default_factory=list)


# ===== REQUESTS =====

class OrderUpdate(BaseModel):
    customer: Optional[Customer] = None
    order_type: Optional[OrderType] = None
    table_charge: Optional[Decimal] = Field(None, ge=0)
    delivery_charge: Optional[Decimal] = Field(None, ge=0)
    discount_percentage: Optional[Decimal] = Field(None, ge=0, le=100)
    kitchen_note: Optional[str] = Field(None, max_length=500)


class CartAdd(BaseModel):
    product_id: UUID


class BarcodeScan(BaseModel):
    barcode: str = Field(..., min_length=1, max_length=64)

    @field_validator('barcode')
    @classmethod
    def strip_barcode(cls, v: str) -> str:
        return v.strip()


class QuantityChange(BaseModel):
    delta: int


class CouponApply(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)


class ReorderRequest(BaseModel):
    dragged_id: UUID
    target_id: UUID


# ===== RESPONSES =====

class OrderView(BaseModel):
    order: Order
    totals: OrderTotals


class SessionView(BaseModel):
    session_key: str
    orders: List[Order]
    active_id: Optional[UUID] = None
    active_totals: Optional[OrderTotals] = None
    warnings: List[SessionWarning] = Field(default_factory=list)


class CompletionResult(BaseModel):
    order_id: UUID
    totals: OrderTotals
    payment_details: PaymentDetails
    ledger_entry_ids: List[int]
    active_id: Optional[UUID] = None


class CompletedOrderOut(BaseModel):
    id: UUID
    name: str
    session_key: Optional[str] = None
    order_type: OrderType
    cart: List[CartItem]
    customer: Customer
    cashier: Optional[Actor] = None
    applied_coupon: Optional[Coupon] = None
    payment_method: str
    payment_details: PaymentDetails
    kitchen_note: str
    discount_percentage: Decimal
    subtotal: Decimal
    coupon_discount: Decimal
    discount_amount: Decimal
    table_charge: Decimal
    delivery_charge: Decimal
    payment_surcharge: Decimal
    total: Decimal
    final_total: Decimal
    status: OrderStatus
    created_at: datetime
    completed_at: datetime

    model_config = {"from_attributes": True}


class CompletedOrderList(BaseModel):
    orders: List[CompletedOrderOut]
    total: int
