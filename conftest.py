"""
Shared fixtures: in-memory SQLite database, a cashier, catalog helpers and
an API client bound to the same database.
"""

import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from decimal import Decimal
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from retailpos.database.database import Base, get_db, init_db
from retailpos.common.schemas import Actor
from retailpos.modules.products.schemas import ProductCreate
from retailpos.modules.products.service import ProductService


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    init_db(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def actor():
    return Actor(id="user-1", username="cashier1")


@pytest.fixture
def make_product(db_session, actor):
    """Create a product whose opening stock goes through the ledger"""
    def _make(
        name="Espresso",
        price="2.50",
        stock=10,
        category="Coffee",
        barcode=None,
        cost="1.00",
        discount="0"
    ):
        return ProductService(db_session).create_product(ProductCreate(
            name=name,
            category=category,
            cost_price=Decimal(cost),
            selling_price=Decimal(price),
            discount_percentage=Decimal(discount),
            barcode=barcode,
            opening_stock=stock
        ), actor)
    return _make


@pytest.fixture
def client(session_factory):
    from retailpos.main import app

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return {"X-User-ID": "user-1", "X-User-Name": "cashier1"}
