from fastapi import APIRouter, Depends, Query, status
from uuid import UUID
from typing import List, Optional
from sqlalchemy.orm import Session

from retailpos.dependencies.dbDependencies import get_db
from retailpos.dependencies.actorDependencies import get_actor
from retailpos.common.schemas import Actor
from retailpos.modules.products.service import ProductService
from retailpos.modules.products.schemas import ProductCreate, ProductOut, LowStockReport

product_router = APIRouter(prefix="/products", tags=["Products"])


@product_router.get("/", response_model=List[ProductOut])
def list_products(
    category: Optional[str] = Query(None),
    search: Optional[str] = Query(None, description="Name or barcode fragment"),
    include_inactive: bool = Query(False),
    db: Session = Depends(get_db)
):
    """Catalog with live stock and available quantities."""
    return ProductService(db).fetch_catalog(category, search, include_inactive)


@product_router.post("/", response_model=ProductOut, status_code=status.HTTP_201_CREATED)
def create_product(
    data: ProductCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    """Create a product; opening stock is recorded as a purchase."""
    return ProductService(db).create_product(data, actor)


@product_router.get("/low-stock", response_model=LowStockReport)
def get_low_stock(
    threshold: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db)
):
    """Low stock (0 < stock < threshold) and out of stock products."""
    return ProductService(db).stock_report(threshold)


@product_router.get("/barcode/{barcode}", response_model=ProductOut)
def get_product_by_barcode(barcode: str, db: Session = Depends(get_db)):
    return ProductService(db).get_by_barcode(barcode)


@product_router.get("/{product_id}", response_model=ProductOut)
def get_product(product_id: UUID, db: Session = Depends(get_db)):
    return ProductService(db).get_product(product_id)
