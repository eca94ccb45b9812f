from sqlalchemy.orm import Session
from typing import Optional, List, Tuple
from uuid import UUID
from decimal import Decimal
import logging

from retailpos.core.exceptions import POSError
from retailpos.common.schemas import Actor, CustomerParty, SupplierParty
from retailpos.modules.inventory.models import TransactionKind
from retailpos.modules.inventory.service import InventoryService
from retailpos.modules.returns.models import ProductReturn, ReturnType, ReturnStatus
from retailpos.modules.returns.schemas import ReturnCreate

logger = logging.getLogger(__name__)


class ReturnService:
    def __init__(self, db: Session):
        self.db = db
        self.inventory = InventoryService(db)

    def process_return(self, data: ReturnCreate, actor: Actor) -> ProductReturn:
        """Apply the return to stock and store it with its ledger entry."""
        product = self.inventory.get_product(data.product_id)

        if data.return_type == ReturnType.CUSTOMER:
            kind = TransactionKind.CUSTOMER_RETURN
            delta = data.quantity
            unit_price = Decimal(product.selling_price or 0)
            party = CustomerParty(name=data.party_name or "Walk-in customer")
        else:
            kind = TransactionKind.SUPPLIER_RETURN
            delta = -data.quantity
            unit_price = Decimal(product.cost_price or 0)
            party = SupplierParty(name=data.party_name or product.supplier or "Supplier")

        try:
            entry = self.inventory.apply_movement(
                product.id,
                kind,
                lambda p: delta,
                actor,
                party=party,
                unit_price=unit_price,
                notes=(f"{data.reason}: {data.notes}" if data.notes else data.reason)[:255]
            )
            product_return = ProductReturn(
                product_id=product.id,
                product_name=entry.product_name,
                return_type=data.return_type,
                quantity=data.quantity,
                reason=data.reason,
                notes=data.notes,
                unit_price=entry.unit_price,
                total_value=entry.total_value,
                previous_stock=entry.previous_stock,
                new_stock=entry.new_stock,
                cashier_id=actor.id,
                cashier_name=actor.username,
                status=ReturnStatus.COMPLETED,
                ledger_entry_id=entry.id
            )
            self.db.add(product_return)
            self.db.commit()
        except POSError:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Return failed for product {data.product_id}: {e}", exc_info=True)
            raise

        self.db.refresh(product_return)
        logger.info(
            f"Processed {product_return.return_type.value} return of {product_return.quantity} x "
            f"'{product_return.product_name}' (stock {product_return.previous_stock} -> {product_return.new_stock})"
        )
        return product_return

    def list_returns(
        self,
        return_type: Optional[ReturnType] = None,
        product_id: Optional[UUID] = None,
        limit: int = 50,
        offset: int = 0
    ) -> Tuple[List[ProductReturn], int]:
        """Returns newest first."""
        query = self.db.query(ProductReturn)
        if return_type:
            query = query.filter(ProductReturn.return_type == return_type)
        if product_id:
            query = query.filter(ProductReturn.product_id == product_id)

        total = query.count()
        returns = query.order_by(ProductReturn.created_at.desc()).offset(offset).limit(limit).all()
        return returns, total
