from sqlalchemy.orm import Session
from sqlalchemy import or_
from uuid import UUID
from typing import Optional, List
import logging

from retailpos.core.config import settings
from retailpos.core.exceptions import POSError, ProductNotFoundError, DuplicateBarcodeError
from retailpos.common.schemas import Actor, SystemParty
from retailpos.modules.products.models import Product
from retailpos.modules.products.schemas import ProductCreate, LowStockReport, StockAlert
from retailpos.modules.inventory.models import TransactionKind
from retailpos.modules.inventory.service import InventoryService

logger = logging.getLogger(__name__)


class ProductService:
    """Catalog reads for the POS plus product creation with opening stock."""

    def __init__(self, db: Session):
        self.db = db

    def fetch_catalog(
        self,
        category: Optional[str] = None,
        search: Optional[str] = None,
        include_inactive: bool = False
    ) -> List[Product]:
        """Products with their live counters, ordered by name."""
        query = self.db.query(Product)

        if not include_inactive:
            query = query.filter(Product.is_active.is_(True))
        if category:
            query = query.filter(Product.category == category)
        if search:
            pattern = f"%{search.strip()}%"
            query = query.filter(or_(Product.name.ilike(pattern), Product.barcode.ilike(pattern)))

        return query.order_by(Product.name).all()

    def get_product(self, product_id: UUID) -> Product:
        product = self.db.query(Product).filter(Product.id == product_id).first()
        if not product:
            raise ProductNotFoundError("Product not found", product_id=product_id)
        return product

    def get_by_barcode(self, barcode: str) -> Product:
        code = (barcode or "").strip()
        product = self.db.query(Product).filter(
            Product.barcode == code,
            Product.is_active.is_(True)
        ).first() if code else None
        if not product:
            raise ProductNotFoundError(f"No product with barcode '{code}'", barcode=code)
        return product

    def low_stock(self, threshold: Optional[int] = None) -> List[Product]:
        """Products running low: 0 < stock < threshold."""
        limit = threshold if threshold is not None else settings.LOW_STOCK_THRESHOLD
        return self.db.query(Product).filter(
            Product.is_active.is_(True),
            Product.stock > 0,
            Product.stock < limit
        ).order_by(Product.stock, Product.name).all()

    def out_of_stock(self) -> List[Product]:
        return self.db.query(Product).filter(
            Product.is_active.is_(True),
            Product.stock <= 0
        ).order_by(Product.name).all()

    def stock_report(self, threshold: Optional[int] = None) -> LowStockReport:
        limit = threshold if threshold is not None else settings.LOW_STOCK_THRESHOLD
        return LowStockReport(
            threshold=limit,
            low_stock=[StockAlert.model_validate(p) for p in self.low_stock(limit)],
            out_of_stock=[StockAlert.model_validate(p) for p in self.out_of_stock()]
        )

    def create_product(self, data: ProductCreate, actor: Actor) -> Product:
        """
        Create a product with a zero counter, then record the opening stock as
        a purchase so the ledger explains the counter from the first unit.
        """
        if data.barcode and self.db.query(Product).filter(Product.barcode == data.barcode).first():
            raise DuplicateBarcodeError(f"Barcode '{data.barcode}' is already in use", barcode=data.barcode)

        try:
            product = Product(
                name=data.name,
                category=data.category,
                description=data.description,
                cost_price=data.cost_price,
                selling_price=data.selling_price,
                discount_percentage=data.discount_percentage,
                barcode=data.barcode,
                supplier=data.supplier,
                min_stock=data.min_stock if data.min_stock is not None else settings.DEFAULT_MIN_STOCK,
                stock=0,
                reserved=0
            )
            self.db.add(product)
            self.db.flush()

            if data.opening_stock > 0:
                InventoryService(self.db).apply_movement(
                    product.id,
                    TransactionKind.PURCHASE,
                    lambda p: data.opening_stock,
                    actor,
                    party=SystemParty(name="opening stock"),
                    unit_price=data.cost_price,
                    notes="Opening stock"
                )

            self.db.commit()
        except POSError:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error creating product '{data.name}': {e}", exc_info=True)
            raise

        self.db.refresh(product)
        logger.info(f"Created product '{product.name}' with opening stock {product.stock}")
        return product
