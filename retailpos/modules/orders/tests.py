"""
Tests for the POS order flow

- Totals: charges by order type, coupons, discount floor, card surcharge
- Order set: default tab, table naming, delete / reorder rules, reload
- Cart: every unit in a cart is held; refused adds leave the order untouched
- Checkout: transitions, payment validation, completion and ledger failure
"""

import pytest
from decimal import Decimal
from uuid import uuid4

from retailpos.core.config import settings
from retailpos.core.exceptions import (
    ProtectedOrderError, InvalidTransitionError, InsufficientStockError, ProductNotFoundError,
    EmptyCartError, InsufficientPaymentError, IncompletePaymentDetailsError, LedgerWriteFailure,
    OrderNotFoundError
)
from retailpos.modules.discounts.models import CouponType
from retailpos.modules.discounts.schemas import DiscountCreate, CouponCreate
from retailpos.modules.discounts.service import DiscountService
from retailpos.modules.inventory.models import StockLedgerEntry, TransactionKind
from retailpos.modules.inventory.schemas import SaleLine
from retailpos.modules.orders.models import CompletedOrder
from retailpos.modules.orders.order_set import (
    OrderSetStore, InMemorySessionStateRepository, SqlSessionStateRepository
)
from retailpos.modules.orders.schemas import (
    Order, CartItem, ProductSnapshot, Coupon, Customer, OrderType, CheckoutState, CashPayment, CardPayment
)
from retailpos.modules.orders.service import OrderService
from retailpos.modules.orders.session import PosSession
from retailpos.modules.orders.totals import compute_totals


def line(price, quantity=1, product_id=None):
    snapshot = ProductSnapshot(id=product_id or uuid4(), name="Item", category="Food", price=Decimal(price))
    return CartItem.for_product(snapshot, quantity)


@pytest.fixture
def repository():
    return InMemorySessionStateRepository()


@pytest.fixture
def store(repository):
    return OrderSetStore("s1", repository)


@pytest.fixture
def pos(db_session, actor, repository):
    return PosSession(db_session, "s1", actor, repository=repository)


def checkout_with_cash(pos, cash):
    pos.checkout.open_checkout()
    pos.checkout.submit_payment(CashPayment(cash_given=Decimal(cash)))


class TestTotals:
    def test_dine_in_with_discount_and_table_charge(self):
        order = Order(
            name="Table 1",
            cart=[line("100.00", 3), line("200.00")],
            discount_percentage=Decimal("10"),
            table_charge=Decimal("50"),
            delivery_charge=Decimal("30")
        )

        totals = compute_totals(order)

        assert totals.subtotal == Decimal("500.00")
        assert totals.discount_amount == Decimal("50.00")
        assert totals.table_charge == Decimal("50.00")
        assert totals.delivery_charge == Decimal("0")
        assert totals.total == Decimal("500.00")
        assert totals.final_total == Decimal("500.00")
        assert compute_totals(order) == totals

    def test_takeaway_ignores_charges(self):
        order = Order(
            name="Table 1",
            cart=[line("10.00")],
            order_type=OrderType.TAKEAWAY,
            table_charge=Decimal("50"),
            delivery_charge=Decimal("20")
        )

        assert compute_totals(order).total == Decimal("10.00")

    def test_percentage_coupon_on_applicable_items(self):
        coffee = uuid4()
        order = Order(
            name="Table 1",
            cart=[line("4.00", 2, product_id=coffee), line("10.00")],
            applied_coupon=Coupon(
                code="COFFEE25", discount=Decimal("25"), type=CouponType.PERCENTAGE, applicable_items=[coffee]
            )
        )

        totals = compute_totals(order)

        assert totals.coupon_discount == Decimal("2.00")
        assert totals.total == Decimal("16.00")

    def test_fixed_coupon_is_capped_and_total_floors_at_zero(self):
        order = Order(
            name="Table 1",
            cart=[line("20.00")],
            order_type=OrderType.DELIVERY,
            delivery_charge=Decimal("5"),
            discount_percentage=Decimal("10"),
            applied_coupon=Coupon(code="BIG", discount=Decimal("50"), type=CouponType.FIXED)
        )

        totals = compute_totals(order)

        assert totals.coupon_discount == Decimal("20.00")
        assert totals.total == Decimal("5.00")

    def test_rounding_half_up(self):
        order = Order(name="Table 1", cart=[line("0.15")], discount_percentage=Decimal("50"))

        assert compute_totals(order).discount_amount == Decimal("0.08")

    def test_card_surcharge_is_added_to_final_total(self):
        order = Order(
            name="Table 1",
            cart=[line("100.00")],
            payment_details=CardPayment(invoice_id="INV-1", bank_name="Visa", service_charge=Decimal("2.5"))
        )

        totals = compute_totals(order)

        assert totals.total == Decimal("100.00")
        assert totals.payment_surcharge == Decimal("2.50")
        assert totals.final_total == Decimal("102.50")


class TestOrderSetStore:
    def test_default_order_exists(self, store):
        default = store.default_order

        assert [o.name for o in store.orders] == [settings.DEFAULT_ORDER_NAME]
        assert default.is_default
        assert store.active_id == default.id

    def test_tables_are_numbered_after_highest(self, store):
        first = store.create_order()
        second = store.create_order()
        store.create_order()
        store.delete_order(second)
        latest = store.create_order()

        assert store.get(first).name == "Table 1"
        assert store.get(latest).name == "Table 4"
        assert store.active_id == latest

    def test_default_order_cannot_be_deleted(self, store):
        with pytest.raises(ProtectedOrderError):
            store.delete_order(store.default_order.id)

    def test_deleting_active_falls_back(self, store):
        tab = store.create_order()

        store.delete_order(tab)

        assert store.active_id == store.default_order.id
        with pytest.raises(OrderNotFoundError):
            store.get(tab)

    def test_reorder_never_moves_default(self, store):
        first = store.create_order()
        second = store.create_order()

        assert store.reorder(second, first) is True
        assert [o.name for o in store.orders] == [settings.DEFAULT_ORDER_NAME, "Table 2", "Table 1"]
        assert store.reorder(first, store.default_order.id) is False
        assert store.orders[0].is_default

    def test_state_survives_reload(self, store, repository):
        tab = store.create_order()
        store.update_active(kitchen_note="No onions")

        reloaded = OrderSetStore("s1", repository)

        assert [o.id for o in reloaded.orders] == [o.id for o in store.orders]
        assert reloaded.active_id == tab
        assert reloaded.get(tab).kitchen_note == "No onions"

    def test_sql_repository_round_trip(self, db_session):
        store = OrderSetStore("till-2", SqlSessionStateRepository(db_session))
        tab = store.create_order()

        reloaded = OrderSetStore("till-2", SqlSessionStateRepository(db_session))

        assert reloaded.active_id == tab
        assert len(reloaded.orders) == 2

    def test_switching_type_drops_inactive_charges(self, store):
        store.update_active(table_charge=Decimal("50"))

        order = store.update_active(order_type=OrderType.DELIVERY, delivery_charge=Decimal("20"))

        assert order.table_charge == Decimal("0")
        assert order.delivery_charge == Decimal("20")

    def test_no_edits_while_awaiting_payment(self, store):
        store.get_active().checkout_state = CheckoutState.PAYMENT_PENDING

        with pytest.raises(InvalidTransitionError):
            store.update_active(kitchen_note="Extra hot")

    def test_explicit_none_resets_fields(self, store):
        store.update_active(kitchen_note="No ice", customer=Customer(name="Ana"), table_charge=Decimal("15"))

        order = store.update_active(kitchen_note=None, customer=None, table_charge=None, order_type=None)

        assert order.kitchen_note == ""
        assert order.customer.name is None
        assert order.table_charge == Decimal("0")
        assert order.order_type == OrderType.DINE_IN


class TestCart:
    def test_add_and_remove_restores_available(self, pos, make_product):
        product = make_product(stock=3)

        pos.cart.add_to_cart(product.id)
        order = pos.cart.add_to_cart(product.id)
        assert order.cart[0].quantity == 2
        assert order.cart[0].subtotal == Decimal("5.00")
        assert pos.inventory.fetch_product(product.id).available == 1

        order = pos.cart.remove_from_cart(product.id)
        assert order.cart == []
        assert pos.inventory.fetch_product(product.id).available == 3
        assert pos.inventory.held_quantity(order.id, product.id) == 0

    def test_refused_add_leaves_order_unchanged(self, pos, make_product):
        product = make_product(stock=1)
        pos.cart.add_to_cart(product.id)
        tab = pos.store.create_order()
        before = pos.store.get(tab).model_dump_json()

        with pytest.raises(InsufficientStockError):
            pos.cart.add_to_cart(product.id)

        assert pos.store.get(tab).model_dump_json() == before
        assert pos.inventory.fetch_product(product.id).reserved == 1

    def test_change_quantity(self, pos, make_product):
        product = make_product(stock=3)
        pos.cart.add_to_cart(product.id)

        order = pos.cart.change_quantity(product.id, 2)
        assert order.cart[0].quantity == 3
        assert pos.inventory.fetch_product(product.id).available == 0

        with pytest.raises(InsufficientStockError):
            pos.cart.change_quantity(product.id, 1)

        order = pos.cart.change_quantity(product.id, -3)
        assert order.cart == []
        assert pos.inventory.fetch_product(product.id).reserved == 0

    def test_failed_save_keeps_line_and_holds(self, pos, make_product, monkeypatch):
        product = make_product(stock=3)
        pos.cart.add_to_cart(product.id)
        order = pos.cart.add_to_cart(product.id)

        def fail():
            raise RuntimeError("session store offline")

        monkeypatch.setattr(pos.store, "save", fail)

        with pytest.raises(RuntimeError):
            pos.cart.change_quantity(product.id, -1)
        with pytest.raises(RuntimeError):
            pos.cart.remove_from_cart(product.id)

        assert order.cart[0].quantity == 2
        assert pos.inventory.held_quantity(order.id, product.id) == 2
        assert pos.inventory.fetch_product(product.id).reserved == 2

    def test_change_quantity_of_missing_line(self, pos, make_product):
        with pytest.raises(ProductNotFoundError):
            pos.cart.change_quantity(make_product().id, 1)

    def test_add_by_barcode_uses_discounted_price(self, pos, make_product):
        make_product(price="10.00", discount="10", barcode="7700000000066")

        order = pos.cart.add_by_barcode("7700000000066")

        assert order.cart[0].product.price == Decimal("9.00")

    def test_cart_is_locked_during_checkout(self, pos, make_product):
        product = make_product()
        pos.cart.add_to_cart(product.id)
        pos.checkout.open_checkout()

        with pytest.raises(InvalidTransitionError):
            pos.cart.add_to_cart(product.id)

    def test_deleting_tab_releases_holds(self, pos, make_product):
        product = make_product(stock=5)
        tab = pos.store.create_order()
        pos.cart.add_to_cart(product.id)
        pos.cart.change_quantity(product.id, 2)

        pos.delete_order(tab)

        assert pos.inventory.fetch_product(product.id).reserved == 0
        assert pos.inventory.holds_for_order(tab) == []

    def test_global_discount_seeds_new_tabs(self, db_session, actor):
        DiscountService(db_session).create_discount(
            DiscountCreate(name="House", percentage=Decimal("10"), is_global=True)
        )

        pos = PosSession(db_session, "s2", actor, repository=InMemorySessionStateRepository())
        tab = pos.store.create_order()

        assert pos.store.default_order.discount_percentage == Decimal("10")
        assert pos.store.get(tab).discount_percentage == Decimal("10")

    def test_apply_coupon(self, pos, db_session, make_product):
        DiscountService(db_session).create_coupon(CouponCreate(code="SAVE10", discount=Decimal("10")))
        product = make_product(price="20.00")
        pos.cart.add_to_cart(product.id)

        order = pos.apply_coupon("save10")

        assert order.applied_coupon.code == "SAVE10"
        assert pos.order_view(order).totals.total == Decimal("18.00")


class TestCheckout:
    def test_empty_cart_cannot_open_checkout(self, pos):
        with pytest.raises(EmptyCartError):
            pos.checkout.open_checkout()

    def test_invalid_transitions(self, pos, make_product):
        pos.cart.add_to_cart(make_product().id)

        with pytest.raises(InvalidTransitionError):
            pos.checkout.submit_payment(CashPayment(cash_given=Decimal("10")))
        with pytest.raises(InvalidTransitionError):
            pos.checkout.complete(pos.actor)
        with pytest.raises(InvalidTransitionError):
            pos.checkout.back_to_checkout()

    def test_cancel_returns_to_building(self, pos, make_product):
        pos.cart.add_to_cart(make_product().id)
        pos.checkout.open_checkout()

        order = pos.checkout.cancel()

        assert order.checkout_state == CheckoutState.BUILDING

    def test_short_cash_is_refused_without_changes(self, pos, make_product):
        pos.cart.add_to_cart(make_product(price="100.00").id)
        pos.checkout.open_checkout()
        before = pos.store.snapshot().model_dump_json()

        with pytest.raises(InsufficientPaymentError):
            pos.checkout.submit_payment(CashPayment(cash_given=Decimal("99.99")))

        assert pos.store.snapshot().model_dump_json() == before

    def test_cash_short_by_fraction_of_cent_is_refused(self, pos, make_product):
        pos.cart.add_to_cart(make_product(price="100.00").id)
        pos.checkout.open_checkout()

        with pytest.raises(InsufficientPaymentError):
            pos.checkout.submit_payment(CashPayment(cash_given=Decimal("99.995")))

        assert pos.store.get_active().checkout_state == CheckoutState.CHECKOUT_OPEN

    def test_exact_cash_gives_zero_change(self, pos, make_product):
        pos.cart.add_to_cart(make_product(price="100.00").id)

        checkout_with_cash(pos, "100.00")

        order = pos.store.get_active()
        assert order.checkout_state == CheckoutState.PAYMENT_PENDING
        assert order.payment_details.change == Decimal("0.00")

    def test_back_to_checkout_clears_payment(self, pos, make_product):
        pos.cart.add_to_cart(make_product().id)
        checkout_with_cash(pos, "10")

        order = pos.checkout.back_to_checkout()

        assert order.checkout_state == CheckoutState.CHECKOUT_OPEN
        assert order.payment_details is None

    def test_card_requires_invoice_and_bank(self, pos, make_product):
        pos.cart.add_to_cart(make_product().id)
        pos.checkout.open_checkout()

        with pytest.raises(IncompletePaymentDetailsError):
            pos.checkout.submit_payment(CardPayment(invoice_id=" ", bank_name="Visa"))

    def test_card_issuer_must_be_accepted(self, pos, make_product, monkeypatch):
        monkeypatch.setattr(settings, "ACCEPTED_CARD_ISSUERS", ["Visa"])
        pos.cart.add_to_cart(make_product().id)
        pos.checkout.open_checkout()

        with pytest.raises(IncompletePaymentDetailsError):
            pos.checkout.submit_payment(CardPayment(invoice_id="INV-9", bank_name="Amex"))

    def test_card_service_charge(self, pos, make_product, monkeypatch):
        monkeypatch.setattr(settings, "CARD_SERVICE_CHARGE_RATES", {"Visa": Decimal("3")})
        pos.cart.add_to_cart(make_product(price="100.00").id)
        pos.checkout.open_checkout()

        order = pos.checkout.submit_payment(CardPayment(invoice_id="INV-1", bank_name="visa"))

        assert order.payment_details.service_charge == Decimal("3.00")
        assert pos.order_view(order).totals.final_total == Decimal("103.00")

    def test_complete_writes_one_sale_entry_per_line(self, pos, db_session, make_product):
        latte = make_product(name="Latte", price="2.50", stock=10)
        muffin = make_product(name="Muffin", price="3.00", stock=5)
        tab = pos.store.create_order()
        pos.cart.add_to_cart(latte.id)
        pos.cart.add_to_cart(latte.id)
        pos.cart.add_to_cart(muffin.id)
        checkout_with_cash(pos, "20")

        result = pos.checkout.complete(pos.actor)

        assert result.order_id == tab
        assert result.totals.final_total == Decimal("8.00")
        assert result.payment_details.change == Decimal("12.00")
        assert len(result.ledger_entry_ids) == 2

        latte_now = pos.inventory.fetch_product(latte.id)
        assert (latte_now.stock, latte_now.reserved) == (8, 0)
        assert pos.inventory.fetch_product(muffin.id).stock == 4

        sales = db_session.query(StockLedgerEntry).filter(
            StockLedgerEntry.reference == str(tab),
            StockLedgerEntry.transaction_type == TransactionKind.SALE
        ).all()
        assert sorted(e.quantity for e in sales) == [-2, -1]

        stored = OrderService(db_session).get_order(tab)
        assert stored.final_total == Decimal("8.00")
        assert stored.payment_method == "cash"
        with pytest.raises(OrderNotFoundError):
            pos.store.get(tab)
        assert pos.store.active_id == pos.store.default_order.id

    def test_completing_default_opens_fresh_default(self, pos, make_product):
        old_default = pos.store.default_order.id
        pos.cart.add_to_cart(make_product().id)
        checkout_with_cash(pos, "5")

        result = pos.checkout.complete(pos.actor)

        fresh = pos.store.default_order
        assert fresh.id != old_default
        assert fresh.name == settings.DEFAULT_ORDER_NAME
        assert fresh.cart == []
        assert result.active_id == fresh.id

    def test_complete_restores_swept_holds(self, pos, make_product):
        product = make_product(stock=1)
        pos.cart.add_to_cart(product.id)
        checkout_with_cash(pos, "5")
        assert pos.inventory.release_stale_reservations(older_than_minutes=-1).released_units == 1

        result = pos.checkout.complete(pos.actor)

        assert len(result.ledger_entry_ids) == 1
        sold = pos.inventory.fetch_product(product.id)
        assert (sold.stock, sold.reserved) == (0, 0)

    def test_complete_refused_when_swept_units_were_taken(self, pos, db_session, make_product):
        product = make_product(stock=1)
        pos.cart.add_to_cart(product.id)
        checkout_with_cash(pos, "5")
        order_id = pos.store.active_id
        pos.inventory.release_stale_reservations(older_than_minutes=-1)
        pos.store.create_order()
        pos.cart.add_to_cart(product.id)
        pos.store.set_active(order_id)

        with pytest.raises(InsufficientStockError):
            pos.checkout.complete(pos.actor)

        with pytest.raises(OrderNotFoundError):
            OrderService(db_session).get_order(order_id)
        assert pos.store.get(order_id).checkout_state == CheckoutState.PAYMENT_PENDING
        assert pos.store.warnings == []
        current = pos.inventory.fetch_product(product.id)
        assert (current.stock, current.reserved) == (1, 1)

    def test_ledger_failure_keeps_order_and_warns(self, pos, db_session, make_product, monkeypatch):
        product = make_product(stock=4)
        pos.cart.add_to_cart(product.id)
        checkout_with_cash(pos, "10")
        order_id = pos.store.active_id

        def fail(*args, **kwargs):
            raise RuntimeError("ledger offline")

        monkeypatch.setattr(pos.inventory, "commit_sale", fail)

        with pytest.raises(LedgerWriteFailure) as exc_info:
            pos.checkout.complete(pos.actor)

        assert exc_info.value.failed_product_ids == [product.id]
        assert OrderService(db_session).get_order(order_id).id == order_id
        assert [w.order_id for w in pos.store.warnings] == [order_id]
        assert pos.store.default_order.id != order_id
        assert pos.inventory.fetch_product(product.id).stock == 4

        monkeypatch.undo()
        pos.inventory.compensate_failed_sale(
            order_id,
            [SaleLine(product_id=product.id, product_name=product.name, quantity=1, unit_price=Decimal("2.50"))],
            pos.actor
        )
        compensated = pos.inventory.fetch_product(product.id)
        assert (compensated.stock, compensated.reserved) == (3, 0)


class TestOrderService:
    def test_persist_order_twice_keeps_one_row(self, db_session, actor):
        order = Order(
            name="Table 1",
            cart=[line("12.00")],
            cashier=actor,
            payment_details=CashPayment(cash_given=Decimal("20.00"), change=Decimal("8.00"))
        )
        totals = compute_totals(order)
        service = OrderService(db_session)

        first = service.persist_order(order, totals, "s1")
        second = service.persist_order(order, totals, "s1")

        assert first == second == order.id
        assert db_session.query(CompletedOrder).count() == 1
        assert service.get_order(order.id).final_total == Decimal("12.00")


class TestPosApi:
    def test_sale_flow(self, client, auth_headers, make_product):
        product = make_product(price="2.50", stock=3)
        base = "/pos/sessions/till-1"

        session = client.get(f"{base}/", headers=auth_headers)
        assert session.status_code == 200
        assert len(session.json()["orders"]) == 1

        added = client.post(f"{base}/active/cart", json={"product_id": str(product.id)}, headers=auth_headers)
        assert added.json()["totals"]["subtotal"] == "2.50"

        assert client.post(f"{base}/active/checkout", headers=auth_headers).status_code == 200
        paid = client.post(f"{base}/active/payment", json={"method": "cash", "cash_given": "5"}, headers=auth_headers)
        assert paid.json()["order"]["payment_details"]["change"] == "2.50"

        completed = client.post(f"{base}/active/complete", headers=auth_headers)
        assert completed.status_code == 200
        order_id = completed.json()["order_id"]
        assert len(completed.json()["ledger_entry_ids"]) == 1

        listing = client.get("/orders/")
        assert listing.json()["total"] == 1
        stored = client.get(f"/orders/{order_id}")
        assert stored.json()["final_total"] == "2.50"
        assert stored.json()["cashier"]["username"] == "cashier1"

    def test_out_of_stock_is_409(self, client, auth_headers, make_product):
        product = make_product(stock=0)

        response = client.post(
            "/pos/sessions/till-1/active/cart", json={"product_id": str(product.id)}, headers=auth_headers
        )

        assert response.status_code == 409
        assert response.json()["error"] == "insufficient_stock"

    def test_patch_null_clears_note_and_customer(self, client, auth_headers):
        base = "/pos/sessions/till-1"
        client.patch(f"{base}/active", json={"kitchen_note": "No ice", "customer": {"name": "Ana"}}, headers=auth_headers)

        response = client.patch(f"{base}/active", json={"kitchen_note": None, "customer": None}, headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["order"]["kitchen_note"] == ""
        assert response.json()["order"]["customer"]["name"] is None

    def test_default_tab_cannot_be_deleted(self, client, auth_headers):
        default_id = client.get("/pos/sessions/till-1/", headers=auth_headers).json()["active_id"]

        response = client.delete(f"/pos/sessions/till-1/orders/{default_id}", headers=auth_headers)

        assert response.status_code == 409
        assert response.json()["error"] == "protected_order"

    def test_session_requires_user(self, client):
        assert client.get("/pos/sessions/till-1/").status_code == 401
