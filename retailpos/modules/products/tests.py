"""
Tests for the products module

Covers catalog reads, barcode lookup, low-stock reporting, product creation
with opening stock through the ledger, and the demo seed script.
"""

import pytest
from decimal import Decimal

from retailpos.core.exceptions import ProductNotFoundError, DuplicateBarcodeError
from retailpos.modules.inventory.models import TransactionKind
from retailpos.modules.inventory.service import InventoryService
from retailpos.modules.products.schemas import ProductCreate
from retailpos.modules.products.service import ProductService


class TestProductService:
    def test_create_product_records_opening_stock(self, db_session, make_product):
        product = make_product(name="Latte", price="5.00", stock=40, cost="1.50")

        assert product.stock == 40
        assert product.reserved == 0
        assert product.min_stock == 5
        entries, total = InventoryService(db_session).list_movements(product_id=product.id)
        assert total == 1
        assert entries[0].transaction_type == TransactionKind.PURCHASE
        assert entries[0].unit_price == Decimal("1.50")

    def test_zero_opening_stock_writes_no_entry(self, db_session, make_product):
        product = make_product(stock=0)

        assert InventoryService(db_session).list_movements(product_id=product.id)[1] == 0

    def test_duplicate_barcode_is_refused(self, make_product):
        make_product(name="Espresso", barcode="7700000000011")

        with pytest.raises(DuplicateBarcodeError):
            make_product(name="Espresso Doble", barcode="7700000000011")

    def test_blank_barcode_is_stored_as_none(self):
        data = ProductCreate(name=" Tea ", category="Beverages", selling_price=Decimal("2"), barcode="  ")

        assert data.name == "Tea"
        assert data.barcode is None

    def test_get_by_barcode(self, db_session, make_product):
        product = make_product(barcode="7700000000042")

        assert ProductService(db_session).get_by_barcode(" 7700000000042 ").id == product.id
        with pytest.raises(ProductNotFoundError):
            ProductService(db_session).get_by_barcode("0000")

    def test_catalog_filters(self, db_session, make_product):
        make_product(name="Espresso", category="Coffee")
        make_product(name="Muffin", category="Bakery")

        service = ProductService(db_session)
        assert [p.name for p in service.fetch_catalog()] == ["Espresso", "Muffin"]
        assert [p.name for p in service.fetch_catalog(category="Bakery")] == ["Muffin"]
        assert [p.name for p in service.fetch_catalog(search="spre")] == ["Espresso"]

    def test_low_and_out_of_stock(self, db_session, make_product):
        make_product(name="Salad", stock=0)
        make_product(name="Smoothie", stock=8)
        make_product(name="Latte", stock=10)

        report = ProductService(db_session).stock_report()

        assert report.threshold == 10
        assert [a.name for a in report.low_stock] == ["Smoothie"]
        assert [a.name for a in report.out_of_stock] == ["Salad"]


class TestProductsApi:
    def test_create_and_fetch(self, client, auth_headers):
        response = client.post("/products/", json={
            "name": "Croissant",
            "category": "Bakery",
            "selling_price": "3.25",
            "cost_price": "1.00",
            "barcode": "7700000000059",
            "opening_stock": 20
        }, headers=auth_headers)
        assert response.status_code == 201
        created = response.json()
        assert created["stock"] == 20
        assert created["available"] == 20

        by_code = client.get("/products/barcode/7700000000059")
        assert by_code.json()["id"] == created["id"]

    def test_unknown_product_is_404(self, client):
        response = client.get("/products/00000000-0000-0000-0000-000000000000")

        assert response.status_code == 404
        assert response.json()["error"] == "product_not_found"


class TestSeedScript:
    def test_seed_is_repeatable(self, db_session):
        from scripts.seed_demo_data import seed, CATALOG

        first = seed(db_session, global_discount=Decimal("5"), restock_rounds=1)
        second = seed(db_session, global_discount=Decimal("5"))

        assert first["products"] == len(CATALOG)
        assert first["coupons"] == 3
        assert first["purchases"] == len(CATALOG)
        assert second["coupons"] == 0
        assert len(ProductService(db_session).fetch_catalog()) == len(CATALOG)
        assert InventoryService(db_session).reconcile().inconsistent == []
