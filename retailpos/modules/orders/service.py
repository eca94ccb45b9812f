from sqlalchemy.orm import Session
from uuid import UUID
from typing import Optional, List, Tuple
from datetime import datetime
import logging

from retailpos.core.exceptions import OrderNotFoundError
from retailpos.modules.orders.models import CompletedOrder
from retailpos.modules.orders.schemas import Order, OrderTotals, OrderType

logger = logging.getLogger(__name__)


class OrderService:
    """Order store: completed orders handed over by value at checkout."""

    def __init__(self, db: Session):
        self.db = db

    def persist_order(self, order: Order, totals: OrderTotals, session_key: Optional[str] = None) -> UUID:
        """Store a completed order; a second call with the same id returns the stored id."""
        existing = self.db.query(CompletedOrder).filter(CompletedOrder.id == order.id).first()
        if existing:
            logger.info(f"Order {order.id} already persisted; skipping")
            return existing.id

        data = order.model_dump(mode="json")
        record = CompletedOrder(
            id=order.id,
            name=order.name,
            session_key=session_key,
            order_type=order.order_type.value,
            status=order.status.value,
            cart=data["cart"],
            customer=data["customer"],
            cashier=data["cashier"],
            applied_coupon=data["applied_coupon"],
            payment_method=order.payment_details.method,
            payment_details=data["payment_details"],
            kitchen_note=order.kitchen_note,
            discount_percentage=order.discount_percentage,
            subtotal=totals.subtotal,
            coupon_discount=totals.coupon_discount,
            discount_amount=totals.discount_amount,
            table_charge=totals.table_charge,
            delivery_charge=totals.delivery_charge,
            payment_surcharge=totals.payment_surcharge,
            total=totals.total,
            final_total=totals.final_total,
            created_at=order.created_at
        )

        try:
            self.db.add(record)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Could not persist order {order.id}: {e}", exc_info=True)
            raise

        logger.info(f"Persisted order {order.id} ({order.name}) total {totals.final_total}")
        return order.id

    def get_order(self, order_id: UUID) -> CompletedOrder:
        order = self.db.query(CompletedOrder).filter(CompletedOrder.id == order_id).first()
        if not order:
            raise OrderNotFoundError("Order not found", order_id=order_id)
        return order

    def list_orders(
        self,
        order_type: Optional[OrderType] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: int = 50,
        offset: int = 0
    ) -> Tuple[List[CompletedOrder], int]:
        """Completed orders, newest first."""
        query = self.db.query(CompletedOrder)
        if order_type:
            query = query.filter(CompletedOrder.order_type == order_type.value)
        if start_date:
            query = query.filter(CompletedOrder.completed_at >= start_date)
        if end_date:
            query = query.filter(CompletedOrder.completed_at <= end_date)

        total = query.count()
        orders = query.order_by(CompletedOrder.completed_at.desc()).offset(offset).limit(limit).all()
        return orders, total
