from typing import Optional
from uuid import UUID
import logging

from retailpos.core.exceptions import InsufficientStockError, InvalidTransitionError, ProductNotFoundError
from retailpos.modules.inventory.service import InventoryService
from retailpos.modules.products.models import Product
from retailpos.modules.products.service import ProductService
from retailpos.modules.orders.order_set import OrderSetStore
from retailpos.modules.orders.schemas import Order, CartItem, ProductSnapshot, CheckoutState

logger = logging.getLogger(__name__)


class CartService:
    """
    Cart edits of the orders in one session.

    Every unit on a cart line is held by a stock reservation. Growing a line
    reserves first and only then touches the cart, so a refused reservation
    leaves the order exactly as it was.
    """

    def __init__(self, inventory: InventoryService, store: OrderSetStore):
        self.inventory = inventory
        self.store = store

    def add_to_cart(self, product_id: UUID, order_id: Optional[UUID] = None) -> Order:
        order = self._editable_order(order_id)
        product = self._reserve(order, product_id, 1)

        line = order.find_line(product_id)
        if line:
            updated = line.with_quantity(line.quantity + 1)
        else:
            updated = CartItem.for_product(ProductSnapshot.from_product(product))
        self._write_line(order, product_id, updated, reserved=1)
        return order

    def add_by_barcode(self, barcode: str, order_id: Optional[UUID] = None) -> Order:
        product = ProductService(self.inventory.db).get_by_barcode(barcode)
        return self.add_to_cart(product.id, order_id)

    def change_quantity(self, product_id: UUID, delta: int, order_id: Optional[UUID] = None) -> Order:
        """Grow or shrink a line by ``delta``; shrinking to zero removes it."""
        order = self._editable_order(order_id)
        line = order.find_line(product_id)
        if line is None:
            raise ProductNotFoundError("Product is not in the cart", product_id=product_id)
        if delta == 0:
            return order

        if delta > 0:
            self._reserve(order, product_id, delta)
            self._write_line(order, product_id, line.with_quantity(line.quantity + delta), reserved=delta)
            return order

        new_quantity = line.quantity + delta
        self._shrink_line(order, product_id, line.with_quantity(new_quantity) if new_quantity > 0 else None,
                          released=min(-delta, line.quantity))
        return order

    def remove_from_cart(self, product_id: UUID, order_id: Optional[UUID] = None) -> Order:
        order = self._editable_order(order_id)
        line = order.find_line(product_id)
        if line is None:
            return order

        self._shrink_line(order, product_id, None, released=line.quantity)
        return order

    def release_order(self, order: Order) -> int:
        """Return every unit an order holds (tab deleted or abandoned)."""
        return self.inventory.release_order(order.id)

    # ===== INTERNALS =====

    def _editable_order(self, order_id: Optional[UUID]) -> Order:
        order = self.store.get(order_id) if order_id else self.store.require_active()
        if order.checkout_state != CheckoutState.BUILDING:
            raise InvalidTransitionError(
                f"Cart of '{order.name}' is locked during checkout",
                order_id=order.id,
                state=order.checkout_state.value
            )
        return order

    def _reserve(self, order: Order, product_id: UUID, quantity: int) -> Product:
        try:
            return self.inventory.reserve(order.id, product_id, quantity, session_key=self.store.session_key)
        except InsufficientStockError:
            # The counter may have moved since the failed check; look once more
            product = self.inventory.fetch_product(product_id)
            if product.available < quantity:
                raise
            logger.info(f"Retrying reservation of '{product.name}' after a fresh read")
            return self.inventory.reserve(order.id, product_id, quantity, session_key=self.store.session_key)

    def _write_line(self, order: Order, product_id: UUID, line: CartItem, reserved: int) -> None:
        previous = list(order.cart)
        try:
            order.replace_line(product_id, line)
            self.store.save()
        except Exception:
            order.cart = previous
            self.inventory.release(order.id, product_id, reserved)
            raise

    def _shrink_line(self, order: Order, product_id: UUID, line: Optional[CartItem], released: int) -> None:
        """Save the smaller line, then release its units; a failed save leaves cart and holds as they were."""
        previous = list(order.cart)
        try:
            order.replace_line(product_id, line)
            self.store.save()
        except Exception:
            order.cart = previous
            raise
        self.inventory.release(order.id, product_id, released)
