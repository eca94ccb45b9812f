"""
Tests for discounts and coupons

- Single global discount
- Coupon codes are case-insensitive and unique
- Deactivated coupons cannot be looked up
"""

import pytest
from decimal import Decimal
from uuid import uuid4

from retailpos.core.exceptions import CouponNotFoundError, DuplicateCouponError, DiscountNotFoundError
from retailpos.modules.discounts.models import CouponType
from retailpos.modules.discounts.schemas import DiscountCreate, DiscountUpdate, CouponCreate
from retailpos.modules.discounts.service import DiscountService


@pytest.fixture
def discounts(db_session):
    return DiscountService(db_session)


class TestDiscounts:
    def test_no_global_discount_means_zero(self, discounts):
        assert discounts.global_percentage() == Decimal("0")

    def test_only_one_global_discount(self, discounts):
        first = discounts.create_discount(DiscountCreate(name="Weekday", percentage=Decimal("5"), is_global=True))
        second = discounts.create_discount(DiscountCreate(name="Weekend", percentage=Decimal("8"), is_global=True))

        assert discounts.get_global_discount().id == second.id
        assert discounts.get_discount(first.id).is_global is False
        assert discounts.global_percentage() == Decimal("8")

    def test_update_makes_discount_global(self, discounts):
        first = discounts.create_discount(DiscountCreate(name="Weekday", percentage=Decimal("5"), is_global=True))
        second = discounts.create_discount(DiscountCreate(name="Staff", percentage=Decimal("20")))

        discounts.update_discount(second.id, DiscountUpdate(is_global=True))

        assert discounts.get_global_discount().id == second.id
        assert discounts.get_discount(first.id).is_global is False

    def test_delete_discount(self, discounts):
        discount = discounts.create_discount(DiscountCreate(name="Temp", percentage=Decimal("3")))

        discounts.delete_discount(discount.id)

        with pytest.raises(DiscountNotFoundError):
            discounts.get_discount(discount.id)

    def test_percentage_range(self):
        with pytest.raises(ValueError):
            DiscountCreate(name="Too much", percentage=Decimal("120"))


class TestCoupons:
    def test_code_lookup_is_case_insensitive(self, discounts):
        discounts.create_coupon(CouponCreate(code=" save10 ", discount=Decimal("10")))

        coupon = discounts.get_coupon("Save10")

        assert coupon.code == "SAVE10"
        assert coupon.type == CouponType.PERCENTAGE

    def test_duplicate_code(self, discounts):
        discounts.create_coupon(CouponCreate(code="SAVE10", discount=Decimal("10")))

        with pytest.raises(DuplicateCouponError):
            discounts.create_coupon(CouponCreate(code="save10", discount=Decimal("5")))

    def test_deactivated_coupon_is_not_found(self, discounts):
        discounts.create_coupon(CouponCreate(code="WELCOME", discount=Decimal("15")))

        discounts.deactivate_coupon("welcome")

        with pytest.raises(CouponNotFoundError):
            discounts.get_coupon("WELCOME")
        assert discounts.list_coupons() == []
        assert len(discounts.list_coupons(active_only=False)) == 1

    def test_applicable_items_are_stored(self, discounts):
        items = [uuid4(), uuid4()]
        discounts.create_coupon(CouponCreate(
            code="COFFEE5", discount=Decimal("5"), type=CouponType.FIXED, applicable_items=items
        ))

        assert discounts.get_coupon("coffee5").applicable_items == [str(i) for i in items]

    def test_percentage_coupon_cannot_exceed_100(self):
        with pytest.raises(ValueError):
            CouponCreate(code="ALL", discount=Decimal("150"))


class TestDiscountsApi:
    def test_discount_crud(self, client):
        created = client.post("/discounts/", json={"name": "House", "percentage": "5", "is_global": True})
        assert created.status_code == 201
        discount_id = created.json()["id"]

        updated = client.put(f"/discounts/{discount_id}", json={"percentage": "7.5"})
        assert updated.json()["percentage"] == "7.50"

        assert client.delete(f"/discounts/{discount_id}").status_code == 204
        assert client.get("/discounts/").json() == []

    def test_coupon_endpoints(self, client):
        assert client.post("/coupons/", json={"code": "save10", "discount": "10"}).status_code == 201
        assert [c["code"] for c in client.get("/coupons/").json()] == ["SAVE10"]

        assert client.delete("/coupons/SAVE10").json()["is_active"] is False
        assert client.delete("/coupons/SAVE10").status_code == 404
