"""
Order set (multi-tab manager)

One ``OrderSetStore`` per cashier session holds every open order, which one
is active, and the undismissed reconciliation warnings. Every structural
change is written through a ``SessionStateRepository`` so a reload restores
the same tabs.
"""

from typing import Dict, List, Optional, Protocol
from decimal import Decimal
from uuid import UUID
import logging
import re

from sqlalchemy.orm import Session

from retailpos.core.config import settings
from retailpos.core.exceptions import ProtectedOrderError, OrderNotFoundError, InvalidTransitionError
from retailpos.common.money import ZERO
from retailpos.common.schemas import Actor
from retailpos.modules.orders.models import SessionState
from retailpos.modules.orders.schemas import (
    Order, OrderSetState, OrderStatus, OrderType, CheckoutState, Coupon, Customer, SessionWarning
)

logger = logging.getLogger(__name__)


# ===== PERSISTENCE =====

class SessionStateRepository(Protocol):
    def load(self, session_key: str) -> Optional[OrderSetState]:
        ...

    def save(self, session_key: str, state: OrderSetState) -> None:
        ...


class InMemorySessionStateRepository:
    """Keeps serialized state in a dict; used by tests and scripts."""

    def __init__(self):
        self._states: Dict[str, str] = {}

    def load(self, session_key: str) -> Optional[OrderSetState]:
        payload = self._states.get(session_key)
        return OrderSetState.model_validate_json(payload) if payload else None

    def save(self, session_key: str, state: OrderSetState) -> None:
        self._states[session_key] = state.model_dump_json()


class SqlSessionStateRepository:
    def __init__(self, db: Session):
        self.db = db

    def load(self, session_key: str) -> Optional[OrderSetState]:
        row = self.db.query(SessionState).filter(SessionState.key == session_key).first()
        return OrderSetState.model_validate_json(row.payload) if row else None

    def save(self, session_key: str, state: OrderSetState) -> None:
        try:
            row = self.db.query(SessionState).filter(SessionState.key == session_key).first()
            if row:
                row.payload = state.model_dump_json()
            else:
                self.db.add(SessionState(key=session_key, payload=state.model_dump_json()))
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Could not save session state {session_key}: {e}", exc_info=True)
            raise


# ===== STORE =====

_TABLE_NUMBER = re.compile(r"^{prefix} (\d+)$".format(prefix=re.escape(settings.TABLE_ORDER_PREFIX)))

# Order-level fields that can change while the order is still being built
EDITABLE_STATES = (CheckoutState.BUILDING, CheckoutState.CHECKOUT_OPEN)


class OrderSetStore:
    def __init__(
        self,
        session_key: str,
        repository: SessionStateRepository,
        default_discount: Decimal = ZERO,
        cashier: Optional[Actor] = None
    ):
        self.session_key = session_key
        self.repository = repository
        self.default_discount = default_discount
        self.cashier = cashier

        state = repository.load(session_key)
        self.orders: List[Order] = list(state.orders) if state else []
        self.active_id: Optional[UUID] = state.active_id if state else None
        self.warnings: List[SessionWarning] = list(state.warnings) if state else []

        if self._ensure_default() or not state:
            self.save()

    # ===== READS =====

    def get(self, order_id: UUID) -> Order:
        for order in self.orders:
            if order.id == order_id:
                return order
        raise OrderNotFoundError("Order is not open in this session", order_id=order_id)

    def get_active(self) -> Optional[Order]:
        for order in self.orders:
            if order.id == self.active_id:
                return order
        return None

    def require_active(self) -> Order:
        order = self.get_active()
        if order is None:
            raise OrderNotFoundError("No active order in this session")
        return order

    @property
    def default_order(self) -> Optional[Order]:
        return next((o for o in self.orders if o.is_default), None)

    # ===== STRUCTURE =====

    def create_order(self) -> UUID:
        """Open a new tab named after the next free table number and activate it."""
        order = self._new_order(f"{settings.TABLE_ORDER_PREFIX} {self._next_table_number()}")
        self.orders.append(order)
        self.active_id = order.id
        self.save()
        logger.debug(f"Session {self.session_key}: opened {order.name} ({order.id})")
        return order.id

    def delete_order(self, order_id: UUID) -> Order:
        """Remove a non-default tab; the caller returns its reserved stock."""
        order = self.get(order_id)
        if order.is_default:
            raise ProtectedOrderError(f"'{order.name}' cannot be deleted", order_id=order_id)

        self.orders = [o for o in self.orders if o.id != order_id]
        if self.active_id == order_id:
            self._fallback_active()
        self.save()
        logger.debug(f"Session {self.session_key}: deleted {order.name} ({order.id})")
        return order

    def set_active(self, order_id: UUID) -> Order:
        order = self.get(order_id)
        self.active_id = order.id
        self.save()
        return order

    def reorder(self, dragged_id: UUID, target_id: UUID) -> bool:
        """Move ``dragged_id`` to the position of ``target_id``; the default tab never moves."""
        if dragged_id == target_id:
            return False
        dragged = self.get(dragged_id)
        target = self.get(target_id)
        if dragged.is_default or target.is_default:
            return False

        target_index = self.orders.index(target)
        self.orders.remove(dragged)
        self.orders.insert(target_index, dragged)
        self.save()
        return True

    def remove_completed(self, order_id: UUID) -> None:
        """Drop a completed order and make sure a default tab exists and is active."""
        self.orders = [o for o in self.orders if o.id != order_id]
        self._ensure_default()
        if self.active_id == order_id or self.get_active() is None:
            self.active_id = self.default_order.id
        self.save()

    # ===== ORDER EDITS =====

    def update_active(self, **changes) -> Order:
        """
        Edit customer, order type, charges, discount or kitchen note of the
        active order. An explicit None resets the field; order type cannot be
        cleared.
        """
        order = self.require_active()
        self._require_editable(order)
        resets = {
            "customer": Customer(),
            "kitchen_note": "",
            "table_charge": ZERO,
            "delivery_charge": ZERO,
            "discount_percentage": self.default_discount,
        }
        changes = {
            k: resets[k] if v is None else v
            for k, v in changes.items()
            if v is not None or k in resets
        }

        order_type = changes.get("order_type")
        if order_type is not None and order_type != order.order_type:
            # Only the charge of the current order type is kept
            if order_type != OrderType.DINE_IN:
                changes["table_charge"] = ZERO
            if order_type != OrderType.DELIVERY:
                changes["delivery_charge"] = ZERO

        updated = order.model_validate({**order.model_dump(), **changes})
        self._replace(updated)
        self.save()
        return updated

    def apply_coupon(self, coupon: Coupon) -> Order:
        """At most one coupon per order; applying another replaces it."""
        order = self.require_active()
        self._require_editable(order)
        order.applied_coupon = coupon
        self.save()
        return order

    def remove_coupon(self) -> Order:
        order = self.require_active()
        self._require_editable(order)
        order.applied_coupon = None
        self.save()
        return order

    # ===== WARNINGS =====

    def add_warning(self, warning: SessionWarning) -> None:
        self.warnings.append(warning)
        self.save()

    def dismiss_warning(self, warning_id: UUID) -> bool:
        before = len(self.warnings)
        self.warnings = [w for w in self.warnings if w.id != warning_id]
        if len(self.warnings) == before:
            return False
        self.save()
        return True

    # ===== PERSISTENCE =====

    def snapshot(self) -> OrderSetState:
        return OrderSetState(orders=self.orders, active_id=self.active_id, warnings=self.warnings)

    def save(self) -> None:
        self.repository.save(self.session_key, self.snapshot())

    # ===== INTERNALS =====

    def _new_order(self, name: str, is_default: bool = False) -> Order:
        return Order(
            name=name,
            cashier=self.cashier,
            order_type=OrderType(settings.DEFAULT_ORDER_TYPE),
            discount_percentage=self.default_discount,
            is_default=is_default
        )

    def _next_table_number(self) -> int:
        numbers = []
        for order in self.orders:
            match = _TABLE_NUMBER.match(order.name)
            if match and not order.is_default:
                numbers.append(int(match.group(1)))
        return max(numbers) + 1 if numbers else 1

    def _ensure_default(self) -> bool:
        """Create the default tab when missing; returns True if one was created."""
        if self.default_order is not None:
            if self.get_active() is None:
                self.active_id = self.default_order.id
            return False

        order = self._new_order(settings.DEFAULT_ORDER_NAME, is_default=True)
        self.orders.insert(0, order)
        if self.get_active() is None:
            self.active_id = order.id
        return True

    def _fallback_active(self) -> None:
        remaining = [o for o in self.orders if o.status == OrderStatus.ACTIVE]
        if remaining:
            self.active_id = remaining[0].id
        else:
            self._ensure_default()
            self.active_id = self.default_order.id

    def _replace(self, order: Order) -> None:
        self.orders = [order if o.id == order.id else o for o in self.orders]

    def _require_editable(self, order: Order) -> None:
        if order.checkout_state not in EDITABLE_STATES:
            raise InvalidTransitionError(
                f"'{order.name}' is awaiting payment; go back to checkout to edit it",
                order_id=order.id,
                state=order.checkout_state.value
            )
