from fastapi import APIRouter, Depends, Query, status
from typing import List, Optional
from uuid import UUID
from datetime import datetime
from sqlalchemy.orm import Session
import math

from retailpos.core.config import settings
from retailpos.dependencies.dbDependencies import get_db
from retailpos.dependencies.actorDependencies import get_actor
from retailpos.common.schemas import Actor
from retailpos.modules.inventory.service import InventoryService
from retailpos.modules.inventory.models import TransactionKind
from retailpos.modules.inventory.schemas import (
    StockMovementCreate, StockAdjustTo, LedgerEntryOut, LedgerPage, Pagination,
    ReconciliationReport, CompensationRequest, ReleasedReservations
)

movements_router = APIRouter(prefix="/stock-transitions", tags=["Stock Ledger"])


@movements_router.get("/", response_model=LedgerPage)
def get_movements(
    product_id: Optional[UUID] = Query(None),
    transaction_type: Optional[TransactionKind] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    reference: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    db: Session = Depends(get_db)
):
    """Ledger entries, newest first."""
    entries, total = InventoryService(db).list_movements(
        product_id=product_id,
        transaction_type=transaction_type,
        start_date=start_date,
        end_date=end_date,
        reference=reference,
        page=page,
        limit=limit
    )
    return LedgerPage(
        transitions=[LedgerEntryOut.model_validate(e) for e in entries],
        pagination=Pagination(page=page, limit=limit, total=total, pages=math.ceil(total / limit))
    )


@movements_router.post("/", response_model=LedgerEntryOut, status_code=status.HTTP_201_CREATED)
def create_movement(
    movement: StockMovementCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    """Record a purchase, return or adjustment and update the counter."""
    return InventoryService(db).record_movement(
        movement.product_id,
        movement.signed_delta,
        movement.transaction_type,
        actor,
        party=movement.party,
        unit_price=movement.unit_price,
        reference=movement.reference,
        notes=movement.notes
    )


@movements_router.post("/adjust", response_model=LedgerEntryOut, status_code=status.HTTP_201_CREATED)
def adjust_to_count(
    data: StockAdjustTo,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    """Stock count: set the counter to the counted value via an adjustment."""
    return InventoryService(db).adjust_to(data.product_id, data.counted_stock, actor, data.notes)


stock_router = APIRouter(prefix="/inventory", tags=["Inventory"])


@stock_router.get("/reconcile", response_model=ReconciliationReport)
def reconcile(
    product_id: Optional[UUID] = Query(None),
    db: Session = Depends(get_db)
):
    """Replay the ledger and compare it with the live counters."""
    return InventoryService(db).reconcile(product_id)


@stock_router.post("/reservations/reconcile", response_model=List[UUID])
def reconcile_reservations(db: Session = Depends(get_db)):
    """Rebuild reserved counters from reservation rows; returns corrected product ids."""
    return InventoryService(db).reconcile_reservations()


@stock_router.post("/reservations/release-stale", response_model=ReleasedReservations)
def release_stale_reservations(
    older_than_minutes: Optional[int] = Query(None, ge=0),
    db: Session = Depends(get_db)
):
    return InventoryService(db).release_stale_reservations(older_than_minutes)


@stock_router.post("/compensate", response_model=List[LedgerEntryOut])
def compensate_failed_sale(
    data: CompensationRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    """Post compensating adjustments for an order whose sale entries failed."""
    return InventoryService(db).compensate_failed_sale(data.order_id, data.lines, actor, data.notes)
