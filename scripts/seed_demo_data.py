"""
Seed script: populate a demo cafe catalog.

What it creates:
- Products across Coffee / Bakery / Food / Beverages, each with opening stock
  recorded as a purchase in the stock ledger.
- Coupons: SAVE10 (10% off), COFFEE5 (5 off coffee items), WELCOME (15% off).
- Optionally a global discount that new POS tabs start with.
- A few supplier purchases on top of the opening stock (--restock).

Run from the project root:
    python scripts/seed_demo_data.py --global-discount 5 --restock 3

Note: This is intended for development environments only.
"""

# Add project root to sys.path so `retailpos.*` imports work even if CWD changes
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import argparse
import random
from decimal import Decimal

from retailpos.database.database import SessionLocal, init_db
from retailpos.common.schemas import Actor, SupplierParty
from retailpos.modules.products.models import Product
from retailpos.modules.products.schemas import ProductCreate
from retailpos.modules.products.service import ProductService
from retailpos.modules.inventory.models import TransactionKind
from retailpos.modules.inventory.service import InventoryService
from retailpos.modules.discounts.models import Coupon, CouponType
from retailpos.modules.discounts.schemas import CouponCreate, DiscountCreate
from retailpos.modules.discounts.service import DiscountService

SEED_ACTOR = Actor(id="seed", username="seed-script", role="admin")

CATALOG = [
    # name, category, cost, price, stock, barcode
    ("Espresso", "Coffee", "0.80", "2.50", 50, "7700000000011"),
    ("Cappuccino", "Coffee", "1.30", "4.50", 45, "7700000000028"),
    ("Latte", "Coffee", "1.50", "5.00", 40, "7700000000035"),
    ("Americano", "Coffee", "0.90", "3.50", 55, "7700000000042"),
    ("Croissant", "Bakery", "1.00", "3.25", 20, "7700000000059"),
    ("Muffin", "Bakery", "0.90", "2.75", 25, "7700000000066"),
    ("Sandwich", "Food", "3.20", "8.50", 15, "7700000000073"),
    ("Salad", "Food", "3.80", "9.75", 12, "7700000000080"),
    ("Orange Juice", "Beverages", "1.10", "3.75", 30, "7700000000097"),
    ("Smoothie", "Beverages", "2.10", "6.25", 8, "7700000000103"),
]

SUPPLIERS = ["Andes Coffee Co.", "North Bakery", "Fresh Farms"]


def create_products(db):
    service = ProductService(db)
    products = []
    for name, category, cost, price, stock, barcode in CATALOG:
        existing = db.query(Product).filter(Product.barcode == barcode).first()
        if existing:
            products.append(existing)
            continue
        products.append(service.create_product(ProductCreate(
            name=name,
            category=category,
            cost_price=Decimal(cost),
            selling_price=Decimal(price),
            barcode=barcode,
            opening_stock=stock
        ), SEED_ACTOR))
    return products


def create_coupons(db, products):
    service = DiscountService(db)
    coffee_ids = [p.id for p in products if p.category == "Coffee"]
    coupons = [
        CouponCreate(code="SAVE10", discount=Decimal("10"), type=CouponType.PERCENTAGE,
                     description="10% off entire order"),
        CouponCreate(code="COFFEE5", discount=Decimal("5"), type=CouponType.FIXED,
                     applicable_items=coffee_ids, description="5 off coffee items"),
        CouponCreate(code="WELCOME", discount=Decimal("15"), type=CouponType.PERCENTAGE,
                     description="15% off for new customers"),
    ]
    created = 0
    for data in coupons:
        if db.query(Coupon).filter(Coupon.code == data.code).first():
            continue
        service.create_coupon(data)
        created += 1
    return created


def create_global_discount(db, percentage: Decimal):
    service = DiscountService(db)
    current = service.get_global_discount()
    if current and Decimal(current.percentage) == percentage:
        return current
    return service.create_discount(DiscountCreate(name="House discount", percentage=percentage, is_global=True))


def restock(db, products, rounds: int):
    inventory = InventoryService(db)
    entries = 0
    for _ in range(rounds):
        for product in products:
            inventory.record_movement(
                product.id,
                random.randint(5, 20),
                TransactionKind.PURCHASE,
                SEED_ACTOR,
                party=SupplierParty(name=random.choice(SUPPLIERS)),
                notes="Demo restock"
            )
            entries += 1
    return entries


def seed(db, global_discount: Decimal = Decimal("0"), restock_rounds: int = 0):
    """Seed catalog, coupons and discount; returns a summary dict."""
    products = create_products(db)
    coupons = create_coupons(db, products)
    discount = create_global_discount(db, global_discount) if global_discount > 0 else None
    purchases = restock(db, products, restock_rounds) if restock_rounds else 0
    return {
        "products": len(products),
        "coupons": coupons,
        "global_discount": str(discount.percentage) if discount else None,
        "purchases": purchases,
    }


def main():
    parser = argparse.ArgumentParser(description="Seed demo POS data")
    parser.add_argument("--global-discount", type=Decimal, default=Decimal("0"))
    parser.add_argument("--restock", type=int, default=0, help="Rounds of demo supplier purchases")
    parser.add_argument("--create-tables", action="store_true")
    args = parser.parse_args()

    if args.create_tables:
        init_db()

    db = SessionLocal()
    try:
        print("Seeding catalog, coupons and discounts...")
        summary = seed(db, args.global_discount, args.restock)
        print("\nSeed completed.")
        for key, value in summary.items():
            print(f"  {key}: {value}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
