from typing import Optional
from uuid import UUID
import logging

from sqlalchemy.orm import Session

from retailpos.common.schemas import Actor
from retailpos.modules.discounts.service import DiscountService
from retailpos.modules.inventory.service import InventoryService
from retailpos.modules.orders.cart import CartService
from retailpos.modules.orders.checkout import CheckoutStateMachine
from retailpos.modules.orders.order_set import OrderSetStore, SessionStateRepository, SqlSessionStateRepository
from retailpos.modules.orders.service import OrderService
from retailpos.modules.orders.totals import compute_totals
from retailpos.modules.orders.schemas import Order, OrderView, SessionView, Coupon

logger = logging.getLogger(__name__)


class PosSession:
    """
    One cashier session wired to its collaborators: the order set, the cart,
    the checkout state machine and the stock services behind them.
    """

    def __init__(
        self,
        db: Session,
        session_key: str,
        actor: Actor,
        repository: Optional[SessionStateRepository] = None
    ):
        self.db = db
        self.actor = actor
        self.inventory = InventoryService(db)
        self.discounts = DiscountService(db)
        self.store = OrderSetStore(
            session_key,
            repository or SqlSessionStateRepository(db),
            default_discount=self.discounts.global_percentage(),
            cashier=actor
        )
        self.cart = CartService(self.inventory, self.store)
        self.checkout = CheckoutStateMachine(self.store, self.inventory, OrderService(db))

    @property
    def session_key(self) -> str:
        return self.store.session_key

    def delete_order(self, order_id: UUID) -> Order:
        """Close a tab and give its reserved units back to stock."""
        removed = self.store.delete_order(order_id)
        released = self.cart.release_order(removed)
        logger.info(f"Session {self.session_key}: deleted {removed.name}, released {released} units")
        return removed

    def apply_coupon(self, code: str) -> Order:
        coupon = self.discounts.get_coupon(code)
        return self.store.apply_coupon(Coupon.from_model(coupon))

    def order_view(self, order: Order) -> OrderView:
        return OrderView(order=order, totals=compute_totals(order))

    def view(self) -> SessionView:
        active = self.store.get_active()
        return SessionView(
            session_key=self.session_key,
            orders=self.store.orders,
            active_id=self.store.active_id,
            active_totals=compute_totals(active) if active else None,
            warnings=self.store.warnings
        )
