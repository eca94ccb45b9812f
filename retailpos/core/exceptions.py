"""
Domain errors for the POS engine

Every error carries the HTTP status the API answers with and a short
machine-readable code. Services raise them; ``retailpos.main`` turns them into
JSON responses. Recoverable errors are raised before any state is touched, so
the caller can show the message and leave the cart as it was.
"""

from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import status


class POSError(Exception):
    """Base class for every domain-level error."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "pos_error"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.code, "detail": self.message}
        if self.context:
            payload["context"] = {k: str(v) if isinstance(v, UUID) else v for k, v in self.context.items()}
        return payload


# ===== RECOVERABLE =====

class InsufficientStockError(POSError):
    """Reservation would exceed the live stock counter."""
    status_code = status.HTTP_409_CONFLICT
    code = "insufficient_stock"

    def __init__(self, product_name: str, available: int, requested: int, product_id: Optional[UUID] = None):
        super().__init__(
            f"Insufficient stock for '{product_name}'. Available: {available}, Requested: {requested}",
            product_id=product_id,
            available=available,
            requested=requested,
        )
        self.available = available
        self.requested = requested


class ProtectedOrderError(POSError):
    """The default order cannot be deleted or reordered."""
    status_code = status.HTTP_409_CONFLICT
    code = "protected_order"


class InsufficientPaymentError(POSError):
    """Cash handed over does not cover the total."""
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "insufficient_payment"


class IncompletePaymentDetailsError(POSError):
    """A mandatory payment field is missing for the chosen method."""
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "incomplete_payment_details"


class NegativeStockError(POSError):
    """A stock movement would leave the counter below zero (or below what carts hold)."""
    status_code = status.HTTP_409_CONFLICT
    code = "negative_stock"


class EmptyCartError(POSError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "empty_cart"


class InvalidTransitionError(POSError):
    """Checkout state machine refused a transition."""
    status_code = status.HTTP_409_CONFLICT
    code = "invalid_transition"


class InvalidMovementError(POSError):
    code = "invalid_movement"


class StockConflictError(POSError):
    """Another writer kept winning the version check on the same product."""
    status_code = status.HTTP_409_CONFLICT
    code = "stock_conflict"


class DuplicateBarcodeError(POSError):
    status_code = status.HTTP_409_CONFLICT
    code = "duplicate_barcode"


class DuplicateCouponError(POSError):
    status_code = status.HTTP_409_CONFLICT
    code = "duplicate_coupon"


class ProductNotFoundError(POSError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "product_not_found"


class OrderNotFoundError(POSError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "order_not_found"


class CouponNotFoundError(POSError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "coupon_not_found"


class DiscountNotFoundError(POSError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "discount_not_found"


# ===== NOT LOCALLY RECOVERABLE =====

class LedgerWriteFailure(POSError):
    """
    The order was persisted as completed but its sale entries could not be
    written. Inventory may be out of sync; an operator must post a
    compensating adjustment. Never retried automatically.
    """
    status_code = status.HTTP_207_MULTI_STATUS
    code = "ledger_write_failure"

    def __init__(self, message: str, order_id: UUID, failed_product_ids=None, cause: Optional[BaseException] = None):
        super().__init__(
            message,
            order_id=order_id,
            failed_product_ids=[str(p) for p in (failed_product_ids or [])],
        )
        self.order_id = order_id
        self.failed_product_ids = list(failed_product_ids or [])
        self.cause = cause
