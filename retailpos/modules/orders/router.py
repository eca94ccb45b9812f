from fastapi import APIRouter, Depends, Query, Path, HTTPException, status
from uuid import UUID
from typing import Optional
from datetime import datetime
from sqlalchemy.orm import Session

from retailpos.core.config import settings
from retailpos.dependencies.dbDependencies import get_db, db_dependency
from retailpos.dependencies.actorDependencies import get_actor
from retailpos.common.schemas import Actor
from retailpos.modules.orders.session import PosSession
from retailpos.modules.orders.service import OrderService
from retailpos.modules.orders.schemas import (
    OrderType, OrderUpdate, OrderView, SessionView, CompletionResult, PaymentDetails,
    CartAdd, BarcodeScan, QuantityChange, CouponApply, ReorderRequest,
    CompletedOrderOut, CompletedOrderList
)


def get_pos_session(
    db: db_dependency,
    session_key: str = Path(..., min_length=1, max_length=100),
    actor: Actor = Depends(get_actor)
) -> PosSession:
    return PosSession(db, session_key, actor)


pos_router = APIRouter(prefix="/pos/sessions/{session_key}", tags=["POS"])


# ===== TABS =====

@pos_router.get("/", response_model=SessionView)
def get_session(pos: PosSession = Depends(get_pos_session)):
    """Open tabs, the active one with its totals, and pending warnings."""
    return pos.view()


@pos_router.post("/orders", response_model=SessionView, status_code=status.HTTP_201_CREATED)
def create_order(pos: PosSession = Depends(get_pos_session)):
    pos.store.create_order()
    return pos.view()


@pos_router.delete("/orders/{order_id}", response_model=SessionView)
def delete_order(order_id: UUID, pos: PosSession = Depends(get_pos_session)):
    """Close a tab (never the default one) and release its reserved stock."""
    pos.delete_order(order_id)
    return pos.view()


@pos_router.put("/active/{order_id}", response_model=SessionView)
def set_active(order_id: UUID, pos: PosSession = Depends(get_pos_session)):
    pos.store.set_active(order_id)
    return pos.view()


@pos_router.post("/orders/reorder", response_model=SessionView)
def reorder(data: ReorderRequest, pos: PosSession = Depends(get_pos_session)):
    pos.store.reorder(data.dragged_id, data.target_id)
    return pos.view()


# ===== ACTIVE ORDER =====

@pos_router.patch("/active", response_model=OrderView)
def update_active(data: OrderUpdate, pos: PosSession = Depends(get_pos_session)):
    """Customer, order type, charges, discount and kitchen note."""
    order = pos.store.update_active(**data.model_dump(exclude_unset=True))
    return pos.order_view(order)


@pos_router.post("/active/cart", response_model=OrderView)
def add_to_cart(data: CartAdd, pos: PosSession = Depends(get_pos_session)):
    return pos.order_view(pos.cart.add_to_cart(data.product_id))


@pos_router.post("/active/cart/barcode", response_model=OrderView)
def add_by_barcode(data: BarcodeScan, pos: PosSession = Depends(get_pos_session)):
    return pos.order_view(pos.cart.add_by_barcode(data.barcode))


@pos_router.patch("/active/cart/{product_id}", response_model=OrderView)
def change_quantity(product_id: UUID, data: QuantityChange, pos: PosSession = Depends(get_pos_session)):
    return pos.order_view(pos.cart.change_quantity(product_id, data.delta))


@pos_router.delete("/active/cart/{product_id}", response_model=OrderView)
def remove_from_cart(product_id: UUID, pos: PosSession = Depends(get_pos_session)):
    return pos.order_view(pos.cart.remove_from_cart(product_id))


@pos_router.post("/active/coupon", response_model=OrderView)
def apply_coupon(data: CouponApply, pos: PosSession = Depends(get_pos_session)):
    return pos.order_view(pos.apply_coupon(data.code))


@pos_router.delete("/active/coupon", response_model=OrderView)
def remove_coupon(pos: PosSession = Depends(get_pos_session)):
    return pos.order_view(pos.store.remove_coupon())


# ===== CHECKOUT =====

@pos_router.post("/active/checkout", response_model=OrderView)
def open_checkout(pos: PosSession = Depends(get_pos_session)):
    return pos.order_view(pos.checkout.open_checkout())


@pos_router.post("/active/checkout/cancel", response_model=OrderView)
def cancel_checkout(pos: PosSession = Depends(get_pos_session)):
    return pos.order_view(pos.checkout.cancel())


@pos_router.post("/active/payment", response_model=OrderView)
def submit_payment(payment: PaymentDetails, pos: PosSession = Depends(get_pos_session)):
    """Capture cash or card details; the order then waits for completion."""
    return pos.order_view(pos.checkout.submit_payment(payment))


@pos_router.post("/active/payment/back", response_model=OrderView)
def back_to_checkout(pos: PosSession = Depends(get_pos_session)):
    return pos.order_view(pos.checkout.back_to_checkout())


@pos_router.post("/active/complete", response_model=CompletionResult)
def complete_order(pos: PosSession = Depends(get_pos_session)):
    """Persist the order and write its sale entries to the stock ledger."""
    return pos.checkout.complete(pos.actor)


# ===== WARNINGS =====

@pos_router.delete("/warnings/{warning_id}", response_model=SessionView)
def dismiss_warning(warning_id: UUID, pos: PosSession = Depends(get_pos_session)):
    if not pos.store.dismiss_warning(warning_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Warning not found"
        )
    return pos.view()


orders_router = APIRouter(prefix="/orders", tags=["Orders"])


@orders_router.get("/", response_model=CompletedOrderList)
def list_orders(
    order_type: Optional[OrderType] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db)
):
    """Completed orders, newest first."""
    orders, total = OrderService(db).list_orders(order_type, start_date, end_date, limit, offset)
    return CompletedOrderList(orders=[CompletedOrderOut.model_validate(o) for o in orders], total=total)


@orders_router.get("/{order_id}", response_model=CompletedOrderOut)
def get_order(order_id: UUID, db: Session = Depends(get_db)):
    return OrderService(db).get_order(order_id)
