"""
Checkout state machine

    building --open--> checkout_open --submit payment--> payment_pending --complete--> completed
       ^                    |  ^                              |
       +------cancel--------+  +--------back to checkout------+

Completion persists the order, writes one sale ledger entry per cart line
(consuming the line's reservation) and removes the order from the session.
"""

from typing import Dict, Optional, Set
from uuid import UUID
import logging

from retailpos.core.config import settings
from retailpos.core.exceptions import (
    EmptyCartError, InvalidTransitionError, InsufficientPaymentError,
    IncompletePaymentDetailsError, LedgerWriteFailure
)
from retailpos.common.money import quantize
from retailpos.common.schemas import Actor, CustomerParty
from retailpos.modules.inventory.schemas import SaleLine
from retailpos.modules.inventory.service import InventoryService
from retailpos.modules.orders.order_set import OrderSetStore
from retailpos.modules.orders.service import OrderService
from retailpos.modules.orders.totals import compute_totals, card_surcharge
from retailpos.modules.orders.schemas import (
    Order, OrderStatus, CheckoutState, CashPayment, CardPayment, PaymentDetails,
    SessionWarning, CompletionResult
)

logger = logging.getLogger(__name__)

TRANSITIONS: Dict[CheckoutState, Set[CheckoutState]] = {
    CheckoutState.BUILDING: {CheckoutState.CHECKOUT_OPEN},
    CheckoutState.CHECKOUT_OPEN: {CheckoutState.BUILDING, CheckoutState.PAYMENT_PENDING},
    CheckoutState.PAYMENT_PENDING: {CheckoutState.CHECKOUT_OPEN, CheckoutState.COMPLETED},
    CheckoutState.COMPLETED: set(),
}


class CheckoutStateMachine:
    def __init__(self, store: OrderSetStore, inventory: InventoryService, orders: OrderService):
        self.store = store
        self.inventory = inventory
        self.orders = orders

    def open_checkout(self, order_id: Optional[UUID] = None) -> Order:
        order = self._order(order_id)
        self._check_transition(order, CheckoutState.CHECKOUT_OPEN)
        if not order.cart:
            raise EmptyCartError(f"'{order.name}' has no items", order_id=order.id)

        order.checkout_state = CheckoutState.CHECKOUT_OPEN
        self.store.save()
        return order

    def cancel(self, order_id: Optional[UUID] = None) -> Order:
        """Close the checkout and go back to editing the cart."""
        order = self._order(order_id)
        self._check_transition(order, CheckoutState.BUILDING)
        order.checkout_state = CheckoutState.BUILDING
        order.payment_details = None
        self.store.save()
        return order

    def submit_payment(self, payment: PaymentDetails, order_id: Optional[UUID] = None) -> Order:
        order = self._order(order_id)
        self._check_transition(order, CheckoutState.PAYMENT_PENDING)
        validated = self.validate_payment(order, payment)

        order.payment_details = validated
        order.checkout_state = CheckoutState.PAYMENT_PENDING
        self.store.save()
        return order

    def back_to_checkout(self, order_id: Optional[UUID] = None) -> Order:
        order = self._order(order_id)
        if order.checkout_state != CheckoutState.PAYMENT_PENDING:
            raise InvalidTransitionError(
                f"'{order.name}' has no payment to go back from",
                order_id=order.id,
                state=order.checkout_state.value
            )
        order.checkout_state = CheckoutState.CHECKOUT_OPEN
        order.payment_details = None
        self.store.save()
        return order

    def complete(self, actor: Actor, order_id: Optional[UUID] = None) -> CompletionResult:
        """
        Finish the sale.

        Holds released while the order was open are reserved again first; if
        that fails the order stays awaiting payment. Until the order is
        persisted nothing else changes. Once it is, a failure to
        write the sale entries does not undo the order: the session gets a
        reconciliation warning and ``LedgerWriteFailure`` is raised.
        """
        order = self._order(order_id)
        self._check_transition(order, CheckoutState.COMPLETED)
        if not order.cart:
            raise EmptyCartError(f"'{order.name}' has no items", order_id=order.id)

        payment = self.validate_payment(order, order.payment_details)
        self._cover_holds(order)
        completed = order.model_copy(update={
            "payment_details": payment,
            "status": OrderStatus.COMPLETED,
            "checkout_state": CheckoutState.COMPLETED,
            "cashier": order.cashier or actor,
        })
        totals = compute_totals(completed)

        self.orders.persist_order(completed, totals, self.store.session_key)

        lines = [
            SaleLine(
                product_id=line.product.id,
                product_name=line.product.name,
                quantity=line.quantity,
                unit_price=line.product.price
            )
            for line in completed.cart
        ]
        party = CustomerParty(name=completed.customer.name) if completed.customer.name else None

        try:
            entries = self.inventory.commit_sale(
                completed.id, lines, actor, party=party, notes=f"POS sale {completed.name}"
            )
        except Exception as e:
            failed = [line.product_id for line in lines]
            message = (
                f"Order {completed.id} ({completed.name}) was completed but its stock could not be "
                f"updated; post a compensating adjustment"
            )
            logger.error(f"{message}: {e}", exc_info=True)
            self.store.add_warning(SessionWarning(
                order_id=completed.id,
                message=message,
                failed_product_ids=failed
            ))
            self.store.remove_completed(completed.id)
            raise LedgerWriteFailure(message, order_id=completed.id, failed_product_ids=failed, cause=e) from e

        self.store.remove_completed(completed.id)
        logger.info(
            f"Completed {completed.name} ({completed.id}): {completed.item_count} items, "
            f"{payment.method} {totals.final_total}"
        )
        return CompletionResult(
            order_id=completed.id,
            totals=totals,
            payment_details=payment,
            ledger_entry_ids=[entry.id for entry in entries],
            active_id=self.store.active_id
        )

    def validate_payment(self, order: Order, payment: Optional[PaymentDetails]) -> PaymentDetails:
        """Check payment against the current totals; fills change / service charge."""
        if payment is None:
            raise IncompletePaymentDetailsError("Choose a payment method", order_id=order.id)

        total = compute_totals(order.model_copy(update={"payment_details": None})).total

        if isinstance(payment, CashPayment):
            cash_given = payment.cash_given
            if cash_given < total:
                raise InsufficientPaymentError(
                    f"Cash given {cash_given} does not cover the total {total}",
                    order_id=order.id,
                    cash_given=str(cash_given),
                    total=str(total)
                )
            return CashPayment(cash_given=cash_given, change=quantize(cash_given - total))

        invoice_id = (payment.invoice_id or "").strip()
        bank_name = (payment.bank_name or "").strip()
        missing = [name for name, value in (("invoice_id", invoice_id), ("bank_name", bank_name)) if not value]
        if missing:
            raise IncompletePaymentDetailsError(
                f"Card payment requires {', '.join(missing)}",
                order_id=order.id,
                missing=missing
            )
        accepted = [issuer.lower() for issuer in settings.ACCEPTED_CARD_ISSUERS]
        if accepted and bank_name.lower() not in accepted:
            raise IncompletePaymentDetailsError(
                f"Card issuer '{bank_name}' is not accepted",
                order_id=order.id,
                bank_name=bank_name
            )
        return CardPayment(
            invoice_id=invoice_id,
            bank_name=bank_name,
            service_charge=card_surcharge(total, bank_name)
        )

    def _cover_holds(self, order: Order) -> None:
        """Re-reserve units whose holds were released (stale sweep) while the order was open."""
        for line in order.cart:
            held = self.inventory.held_quantity(order.id, line.product.id)
            if held < line.quantity:
                logger.warning(
                    f"Order {order.id} holds {held} of {line.quantity} x '{line.product.name}'; re-reserving"
                )
                self.inventory.reserve(
                    order.id, line.product.id, line.quantity - held, session_key=self.store.session_key
                )

    def _order(self, order_id: Optional[UUID]) -> Order:
        return self.store.get(order_id) if order_id else self.store.require_active()

    def _check_transition(self, order: Order, target: CheckoutState) -> None:
        if target not in TRANSITIONS[order.checkout_state]:
            raise InvalidTransitionError(
                f"Cannot move '{order.name}' from {order.checkout_state.value} to {target.value}",
                order_id=order.id,
                state=order.checkout_state.value
            )
