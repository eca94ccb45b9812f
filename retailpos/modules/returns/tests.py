"""
Tests for customer and supplier returns
"""

import pytest
from decimal import Decimal

from retailpos.core.exceptions import NegativeStockError
from retailpos.modules.inventory.models import StockLedgerEntry, TransactionKind, PartyType
from retailpos.modules.inventory.service import InventoryService
from retailpos.modules.returns.models import ReturnType, ReturnStatus, ProductReturn
from retailpos.modules.returns.schemas import ReturnCreate
from retailpos.modules.returns.service import ReturnService


class TestReturnService:
    def test_customer_return_increases_stock(self, db_session, make_product, actor):
        product = make_product(price="4.50", stock=5)

        product_return = ReturnService(db_session).process_return(ReturnCreate(
            product_id=product.id,
            return_type=ReturnType.CUSTOMER,
            quantity=2,
            reason="Wrong size",
            party_name="Ana"
        ), actor)

        assert product_return.previous_stock == 5
        assert product_return.new_stock == 7
        assert product_return.total_value == Decimal("9.00")
        assert product_return.status == ReturnStatus.COMPLETED
        assert product_return.cashier_name == "cashier1"

        entry = db_session.get(StockLedgerEntry, product_return.ledger_entry_id)
        assert entry.transaction_type == TransactionKind.CUSTOMER_RETURN
        assert entry.quantity == 2
        assert entry.party_type == PartyType.CUSTOMER
        assert entry.party_name == "Ana"

    def test_supplier_return_decreases_stock(self, db_session, make_product, actor):
        product = make_product(stock=5, cost="1.10")

        product_return = ReturnService(db_session).process_return(ReturnCreate(
            product_id=product.id,
            return_type=ReturnType.SUPPLIER,
            quantity=3,
            reason="Expired",
            notes="Batch 42"
        ), actor)

        assert product_return.new_stock == 2
        assert product_return.unit_price == Decimal("1.10")
        entry = db_session.get(StockLedgerEntry, product_return.ledger_entry_id)
        assert entry.quantity == -3
        assert entry.notes == "Expired: Batch 42"
        assert InventoryService(db_session).replay_counter(product.id) == 2

    def test_supplier_return_past_stock_is_refused(self, db_session, make_product, actor):
        product = make_product(stock=2)

        with pytest.raises(NegativeStockError):
            ReturnService(db_session).process_return(ReturnCreate(
                product_id=product.id,
                return_type=ReturnType.SUPPLIER,
                quantity=3,
                reason="Damaged"
            ), actor)

        assert db_session.query(ProductReturn).count() == 0
        assert InventoryService(db_session).fetch_product(product.id).stock == 2

    def test_listing_newest_first_with_filter(self, db_session, make_product, actor):
        product = make_product(stock=10)
        service = ReturnService(db_session)
        for return_type in (ReturnType.CUSTOMER, ReturnType.SUPPLIER, ReturnType.CUSTOMER):
            service.process_return(ReturnCreate(
                product_id=product.id, return_type=return_type, quantity=1, reason="Test"
            ), actor)

        returns, total = service.list_returns()
        customer_returns, customer_total = service.list_returns(return_type=ReturnType.CUSTOMER)

        assert total == 3
        assert returns[0].created_at >= returns[-1].created_at
        assert customer_total == 2
        assert {r.return_type for r in customer_returns} == {ReturnType.CUSTOMER}

    def test_blank_reason_is_rejected(self, make_product):
        with pytest.raises(ValueError):
            ReturnCreate(product_id=make_product().id, return_type=ReturnType.CUSTOMER, quantity=1, reason="  ")


class TestReturnsApi:
    def test_post_return_with_user_info_header(self, client, make_product):
        product = make_product(stock=1)

        response = client.post("/returns/", json={
            "product_id": str(product.id),
            "return_type": "customer",
            "quantity": 1,
            "reason": "Changed mind"
        }, headers={"X-User-Info": '{"_id": "u-7", "username": "maria"}'})

        assert response.status_code == 201
        assert response.json()["new_stock"] == 2
        assert response.json()["cashier_id"] == "u-7"

        listing = client.get("/returns/", params={"return_type": "customer"})
        assert listing.json()["total"] == 1

    def test_invalid_user_info_header(self, client, make_product):
        product = make_product(stock=1)

        response = client.post("/returns/", json={
            "product_id": str(product.id),
            "return_type": "customer",
            "quantity": 1,
            "reason": "Changed mind"
        }, headers={"X-User-Info": "not json"})

        assert response.status_code == 400
