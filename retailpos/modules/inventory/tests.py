"""
Tests for the inventory module

Covers:
- Ledger entries for every stock movement kind and their sign rules
- Counter never negative, never below what carts hold
- Ledger replay equals the counter
- Reservations: atomic hold / release, last unit race
- Sale commit consuming holds, idempotent per order
- Compensating adjustments, stale hold sweeping, reconciliation reports
"""

import pytest
from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import update

from retailpos.core.exceptions import (
    InsufficientStockError, NegativeStockError, InvalidMovementError, ProductNotFoundError,
    StockConflictError
)
from retailpos.common.schemas import SupplierParty, CustomerParty
from retailpos.modules.products.models import Product
from retailpos.modules.inventory.models import (
    StockLedgerEntry, StockReservation, TransactionKind, PartyType, utcnow
)
from retailpos.modules.inventory.schemas import SaleLine, StockMovementCreate
from retailpos.modules.inventory.service import InventoryService


@pytest.fixture
def inventory(db_session):
    return InventoryService(db_session)


def sale_line(product, quantity):
    return SaleLine(
        product_id=product.id,
        product_name=product.name,
        quantity=quantity,
        unit_price=product.selling_price
    )


# ===== LEDGER MOVEMENTS =====

class TestRecordMovement:
    """Counter updates always come with exactly one ledger entry"""

    def test_opening_stock_is_a_purchase_entry(self, inventory, make_product):
        product = make_product(stock=12)

        entries = inventory.list_movements(product_id=product.id)[0]
        assert len(entries) == 1
        assert entries[0].transaction_type == TransactionKind.PURCHASE
        assert entries[0].previous_stock == 0
        assert entries[0].new_stock == 12
        assert entries[0].quantity == 12

    def test_purchase_increases_stock(self, inventory, make_product, actor):
        product = make_product(stock=5, cost="1.20")

        entry = inventory.record_movement(
            product.id, 10, TransactionKind.PURCHASE, actor,
            party=SupplierParty(name="Andes Coffee Co.")
        )

        assert entry.previous_stock == 5
        assert entry.new_stock == 15
        assert entry.unit_price == Decimal("1.20")
        assert entry.total_value == Decimal("12.00")
        assert entry.party_type == PartyType.SUPPLIER
        assert entry.party_name == "Andes Coffee Co."
        assert entry.user_name == "cashier1"
        assert inventory.fetch_product(product.id).stock == 15

    def test_supplier_return_past_zero_is_refused(self, inventory, make_product, actor):
        product = make_product(stock=3)

        with pytest.raises(NegativeStockError):
            inventory.record_movement(product.id, -4, TransactionKind.SUPPLIER_RETURN, actor)

        assert inventory.fetch_product(product.id).stock == 3
        assert inventory.list_movements(product_id=product.id)[1] == 1

    def test_adjustment_takes_either_sign(self, inventory, make_product, actor):
        product = make_product(stock=10)

        inventory.record_movement(product.id, -3, TransactionKind.ADJUSTMENT, actor, notes="Broken cups")
        inventory.record_movement(product.id, 1, TransactionKind.ADJUSTMENT, actor, notes="Found one")

        assert inventory.fetch_product(product.id).stock == 8

    def test_adjustment_cannot_go_negative(self, inventory, make_product, actor):
        product = make_product(stock=2)

        with pytest.raises(NegativeStockError):
            inventory.record_movement(product.id, -3, TransactionKind.ADJUSTMENT, actor)

    def test_sign_must_match_kind(self, inventory, make_product, actor):
        product = make_product(stock=10)

        with pytest.raises(InvalidMovementError):
            inventory.record_movement(product.id, -2, TransactionKind.PURCHASE, actor)
        with pytest.raises(InvalidMovementError):
            inventory.record_movement(product.id, 2, TransactionKind.SALE, actor)
        with pytest.raises(InvalidMovementError):
            inventory.record_movement(product.id, 0, TransactionKind.ADJUSTMENT, actor)

        assert inventory.fetch_product(product.id).stock == 10

    def test_unknown_product(self, inventory, actor):
        with pytest.raises(ProductNotFoundError):
            inventory.record_movement(uuid4(), 1, TransactionKind.PURCHASE, actor)

    def test_adjust_to_counted_value(self, inventory, make_product, actor):
        product = make_product(stock=10)

        entry = inventory.adjust_to(product.id, 7, actor)

        assert entry.transaction_type == TransactionKind.ADJUSTMENT
        assert entry.quantity == -3
        assert entry.party_type == PartyType.SYSTEM
        assert inventory.fetch_product(product.id).stock == 7

    def test_adjust_to_current_value_is_refused(self, inventory, make_product, actor):
        product = make_product(stock=4)

        with pytest.raises(InvalidMovementError):
            inventory.adjust_to(product.id, 4, actor)

    def test_decrease_cannot_take_units_held_by_carts(self, inventory, make_product, actor):
        product = make_product(stock=5)
        inventory.reserve(uuid4(), product.id, 4)

        with pytest.raises(NegativeStockError):
            inventory.record_movement(product.id, -2, TransactionKind.SUPPLIER_RETURN, actor)

        entry = inventory.record_movement(product.id, -1, TransactionKind.SUPPLIER_RETURN, actor)
        assert entry.new_stock == 4

    def test_conflicting_writer_exhausts_retries(self, db_session, make_product, actor, monkeypatch):
        product = make_product(stock=5)
        service = InventoryService(db_session, max_retries=2)
        original = service._lock_product

        def lock_and_bump(product_id):
            locked = original(product_id)
            # Another writer commits between our read and our write
            db_session.execute(
                update(Product).where(Product.id == product_id)
                .values(version=Product.version + 1)
                .execution_options(synchronize_session=False)
            )
            return locked

        monkeypatch.setattr(service, "_lock_product", lock_and_bump)

        with pytest.raises(StockConflictError):
            service.record_movement(product.id, 1, TransactionKind.PURCHASE, actor)

        assert service.fetch_product(product.id).stock == 5


class TestLedgerImmutability:
    def test_entries_cannot_be_updated(self, db_session, make_product):
        make_product(stock=3)
        entry = db_session.query(StockLedgerEntry).first()

        entry.notes = "rewritten"
        with pytest.raises(ValueError):
            db_session.flush()
        db_session.rollback()

    def test_entries_cannot_be_deleted(self, db_session, make_product):
        make_product(stock=3)
        entry = db_session.query(StockLedgerEntry).first()

        db_session.delete(entry)
        with pytest.raises(ValueError):
            db_session.flush()
        db_session.rollback()


class TestLedgerReplay:
    """Replaying the ledger from zero gives the counter"""

    def test_replay_matches_counter_after_mixed_activity(self, inventory, make_product, actor):
        product = make_product(stock=20)
        order_id = uuid4()

        inventory.record_movement(product.id, 5, TransactionKind.PURCHASE, actor)
        inventory.record_movement(product.id, 2, TransactionKind.CUSTOMER_RETURN, actor,
                                  party=CustomerParty(name="Ana"))
        inventory.record_movement(product.id, -4, TransactionKind.SUPPLIER_RETURN, actor)
        inventory.adjust_to(product.id, 21, actor)
        inventory.reserve(order_id, product.id, 3)
        inventory.commit_sale(order_id, [sale_line(product, 3)], actor)

        fresh = inventory.fetch_product(product.id)
        assert fresh.stock == 18
        assert inventory.replay_counter(product.id) == fresh.stock

        report = inventory.reconcile(product.id)
        assert report.checked == 1
        assert report.inconsistent == []

    def test_each_entry_chains_from_the_previous_one(self, db_session, inventory, make_product, actor):
        product = make_product(stock=5)
        inventory.record_movement(product.id, 3, TransactionKind.PURCHASE, actor)
        inventory.record_movement(product.id, -1, TransactionKind.ADJUSTMENT, actor)

        entries = db_session.query(StockLedgerEntry).filter(
            StockLedgerEntry.product_id == product.id
        ).order_by(StockLedgerEntry.id).all()

        for before, after in zip(entries, entries[1:]):
            assert after.previous_stock == before.new_stock
        for entry in entries:
            assert entry.new_stock == entry.previous_stock + entry.quantity

    def test_reconcile_reports_counter_drift(self, db_session, inventory, make_product):
        product = make_product(stock=5)
        # Simulate a write that bypassed the ledger
        db_session.execute(update(Product).where(Product.id == product.id).values(stock=7))
        db_session.commit()

        report = inventory.reconcile()

        assert len(report.inconsistent) == 1
        line = report.inconsistent[0]
        assert line.counter == 7
        assert line.ledger_total == 5
        assert line.drift == 2


# ===== RESERVATIONS =====

class TestReservations:
    def test_reserve_holds_units(self, inventory, make_product):
        product = make_product(stock=3)
        order_id = uuid4()

        fresh = inventory.reserve(order_id, product.id, 2)

        assert fresh.stock == 3
        assert fresh.reserved == 2
        assert fresh.available == 1
        assert inventory.held_quantity(order_id, product.id) == 2

    def test_reservation_creates_no_ledger_entry(self, inventory, make_product):
        product = make_product(stock=3)
        inventory.reserve(uuid4(), product.id, 1)

        assert inventory.list_movements(product_id=product.id)[1] == 1

    def test_last_unit_goes_to_one_order_only(self, inventory, make_product):
        product = make_product(stock=1)
        first, second = uuid4(), uuid4()

        inventory.reserve(first, product.id, 1)
        with pytest.raises(InsufficientStockError) as exc:
            inventory.reserve(second, product.id, 1)

        assert exc.value.available == 0
        fresh = inventory.fetch_product(product.id)
        assert fresh.reserved == 1
        assert fresh.stock == 1
        assert inventory.held_quantity(second, product.id) == 0

    def test_no_oversell_across_orders(self, inventory, make_product):
        product = make_product(stock=5)
        orders = [uuid4() for _ in range(4)]
        granted = 0

        for _ in range(3):
            for order_id in orders:
                try:
                    inventory.reserve(order_id, product.id, 1)
                    granted += 1
                except InsufficientStockError:
                    pass

        assert granted == 5
        assert sum(inventory.held_quantity(o, product.id) for o in orders) == 5
        assert inventory.fetch_product(product.id).available == 0

    def test_release_returns_units(self, inventory, make_product):
        product = make_product(stock=4)
        order_id = uuid4()
        inventory.reserve(order_id, product.id, 3)

        assert inventory.release(order_id, product.id, 2) == 2
        assert inventory.held_quantity(order_id, product.id) == 1
        assert inventory.release(order_id, product.id) == 1
        assert inventory.fetch_product(product.id).reserved == 0
        assert inventory.release(order_id, product.id) == 0

    def test_release_order_drops_every_hold(self, db_session, inventory, make_product):
        espresso = make_product(name="Espresso", stock=4)
        muffin = make_product(name="Muffin", stock=4)
        order_id = uuid4()
        inventory.reserve(order_id, espresso.id, 2)
        inventory.reserve(order_id, muffin.id, 1)

        assert inventory.release_order(order_id) == 3
        assert db_session.query(StockReservation).count() == 0
        assert inventory.fetch_product(espresso.id).reserved == 0
        assert inventory.fetch_product(muffin.id).reserved == 0

    def test_inactive_product_cannot_be_reserved(self, db_session, inventory, make_product):
        product = make_product(stock=4)
        db_session.execute(update(Product).where(Product.id == product.id).values(is_active=False))
        db_session.commit()

        with pytest.raises(InvalidMovementError):
            inventory.reserve(uuid4(), product.id, 1)

    def test_stale_reservations_are_released(self, db_session, inventory, make_product):
        product = make_product(stock=4)
        stale_order, fresh_order = uuid4(), uuid4()
        inventory.reserve(stale_order, product.id, 2)
        inventory.reserve(fresh_order, product.id, 1)
        db_session.execute(
            update(StockReservation)
            .where(StockReservation.order_id == stale_order)
            .values(updated_at=utcnow() - timedelta(hours=2))
        )
        db_session.commit()

        result = inventory.release_stale_reservations(older_than_minutes=60)

        assert result.released_rows == 1
        assert result.released_units == 2
        assert inventory.held_quantity(fresh_order, product.id) == 1
        assert inventory.fetch_product(product.id).reserved == 1

    def test_reconcile_reservations_rebuilds_counter(self, db_session, inventory, make_product):
        product = make_product(stock=6)
        inventory.reserve(uuid4(), product.id, 2)
        db_session.execute(update(Product).where(Product.id == product.id).values(reserved=5))
        db_session.commit()

        corrected = inventory.reconcile_reservations()

        assert corrected == [product.id]
        assert inventory.fetch_product(product.id).reserved == 2


# ===== SALES =====

class TestCommitSale:
    def test_one_entry_per_line_and_holds_consumed(self, db_session, inventory, make_product, actor):
        espresso = make_product(name="Espresso", price="2.50", stock=10)
        muffin = make_product(name="Muffin", price="2.75", stock=5)
        order_id = uuid4()
        inventory.reserve(order_id, espresso.id, 2)
        inventory.reserve(order_id, muffin.id, 1)

        entries = inventory.commit_sale(
            order_id, [sale_line(espresso, 2), sale_line(muffin, 1)], actor
        )

        assert len(entries) == 2
        assert {e.transaction_type for e in entries} == {TransactionKind.SALE}
        assert {e.reference for e in entries} == {str(order_id)}
        by_product = {e.product_id: e for e in entries}
        assert by_product[espresso.id].quantity == -2
        assert by_product[espresso.id].new_stock == 8
        assert by_product[espresso.id].total_value == Decimal("5.00")
        assert by_product[muffin.id].new_stock == 4

        assert inventory.fetch_product(espresso.id).reserved == 0
        assert inventory.fetch_product(muffin.id).reserved == 0
        assert db_session.query(StockReservation).count() == 0

    def test_commit_is_idempotent_per_order(self, inventory, make_product, actor):
        product = make_product(stock=10)
        order_id = uuid4()
        inventory.reserve(order_id, product.id, 3)

        first = inventory.commit_sale(order_id, [sale_line(product, 3)], actor)
        second = inventory.commit_sale(order_id, [sale_line(product, 3)], actor)

        assert [e.id for e in first] == [e.id for e in second]
        assert inventory.fetch_product(product.id).stock == 7
        assert inventory.list_movements(reference=str(order_id))[1] == 1

    def test_failed_line_rolls_back_the_whole_sale(self, inventory, make_product, actor):
        espresso = make_product(name="Espresso", stock=10)
        muffin = make_product(name="Muffin", stock=1)
        order_id = uuid4()
        inventory.reserve(order_id, espresso.id, 2)

        with pytest.raises(NegativeStockError):
            inventory.commit_sale(order_id, [sale_line(espresso, 2), sale_line(muffin, 3)], actor)

        assert inventory.fetch_product(espresso.id).stock == 10
        assert inventory.held_quantity(order_id, espresso.id) == 2
        assert inventory.list_movements(reference=str(order_id))[1] == 0

    def test_compensating_adjustment(self, inventory, make_product, actor):
        product = make_product(stock=10)
        order_id = uuid4()
        inventory.reserve(order_id, product.id, 2)

        entries = inventory.compensate_failed_sale(order_id, [sale_line(product, 2)], actor)
        again = inventory.compensate_failed_sale(order_id, [sale_line(product, 2)], actor)

        assert len(entries) == 1
        assert again == []
        assert entries[0].transaction_type == TransactionKind.ADJUSTMENT
        assert entries[0].reference == str(order_id)
        fresh = inventory.fetch_product(product.id)
        assert fresh.stock == 8
        assert fresh.reserved == 0


class TestMovementSchema:
    def test_direction_comes_from_kind(self):
        movement = StockMovementCreate(
            product_id=uuid4(), transaction_type=TransactionKind.SUPPLIER_RETURN, quantity=3
        )
        assert movement.signed_delta == -3

    def test_sales_are_not_accepted_manually(self):
        with pytest.raises(ValueError):
            StockMovementCreate(product_id=uuid4(), transaction_type=TransactionKind.SALE, quantity=1)

    def test_party_is_a_tagged_union(self):
        movement = StockMovementCreate(
            product_id=uuid4(),
            transaction_type=TransactionKind.PURCHASE,
            quantity=2,
            party={"type": "supplier", "name": "North Bakery"}
        )
        assert isinstance(movement.party, SupplierParty)


# ===== API =====

class TestStockLedgerApi:
    def test_post_and_list_movements(self, client, make_product, auth_headers):
        product = make_product(stock=5)

        response = client.post("/stock-transitions/", json={
            "product_id": str(product.id),
            "transaction_type": "purchase",
            "quantity": 4,
            "party": {"type": "supplier", "name": "North Bakery"}
        }, headers=auth_headers)
        assert response.status_code == 201
        assert response.json()["new_stock"] == 9

        listing = client.get("/stock-transitions/", params={"product_id": str(product.id), "limit": 1})
        body = listing.json()
        assert body["pagination"] == {"page": 1, "limit": 1, "total": 2, "pages": 2}
        assert body["transitions"][0]["quantity"] == 4

    def test_negative_stock_maps_to_conflict(self, client, make_product, auth_headers):
        product = make_product(stock=1)

        response = client.post("/stock-transitions/", json={
            "product_id": str(product.id),
            "transaction_type": "supplier_return",
            "quantity": 2
        }, headers=auth_headers)

        assert response.status_code == 409
        assert response.json()["error"] == "negative_stock"

    def test_movements_require_a_user(self, client, make_product):
        product = make_product(stock=1)

        response = client.post("/stock-transitions/adjust", json={
            "product_id": str(product.id), "counted_stock": 3
        })

        assert response.status_code == 401

    def test_reconcile_endpoint(self, client, make_product):
        make_product(stock=2)

        response = client.get("/inventory/reconcile")

        assert response.status_code == 200
        assert response.json() == {"checked": 1, "inconsistent": []}
