"""
Pytest fixtures for shopledger backend tests.

Provides test database setup, tenant (shop) fixtures, products and the
identity headers the API expects.
"""

import pytest

from shopledger import create_app
from shopledger.extensions import db
from shopledger.models import Shop
from shopledger.services import catalog_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'USAGE_DISPATCH_MODE': 'inline',
        'SALE_RETRY_BACKOFF': 0,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def shop(db_session):
    """Shop A (first tenant). UTC keeps receipt dates predictable."""
    shop = Shop(name="Shop A - Corner Store", timezone="UTC", currency="SZL", is_active=True)
    db_session.add(shop)
    db_session.commit()
    return shop


@pytest.fixture(scope='function')
def other_shop(db_session):
    """Shop B (second tenant)."""
    shop = Shop(name="Shop B - Market Stall", timezone="UTC", currency="SZL", is_active=True)
    db_session.add(shop)
    db_session.commit()
    return shop


def make_product(shop, **overrides):
    """Create a product through the catalog service so its INITIAL entry exists."""
    fields = {
        "name": "Bread Loaf",
        "sell_price_cents": 1200,
        "cost_price_cents": 800,
        "quantity": 10,
        "reorder_at": 5,
    }
    fields.update(overrides)
    return catalog_service.create_product(shop_id=shop.id, **fields)


@pytest.fixture(scope='function')
def product(db_session, shop):
    """P1: quantity 10, sell price 12.00."""
    return make_product(shop)


@pytest.fixture(scope='function')
def untracked_product(db_session, shop):
    """Service item: no stock tracking."""
    return make_product(
        shop,
        name="Phone Charging",
        sell_price_cents=500,
        cost_price_cents=0,
        quantity=0,
        track_stock=False,
    )


@pytest.fixture(scope='function')
def foreign_product(db_session, other_shop):
    """Product owned by Shop B."""
    return make_product(other_shop, name="Foreign Soap", sell_price_cents=2000)


def shop_headers(shop, role: str = "OWNER", user_id: int | None = 1) -> dict:
    """Identity headers as set by the auth gateway."""
    headers = {"X-Shop-Id": str(shop.id), "X-User-Role": role}
    if user_id is not None:
        headers["X-User-Id"] = str(user_id)
    return headers
