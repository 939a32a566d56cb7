"""
Pytest fixtures for stock ledger backend tests.

Provides an in-memory database, master data, an OPEN period with locked
prices, and identity headers for the API client.
"""

from datetime import date
from decimal import Decimal

import pytest

from stockledger import create_app
from stockledger.config import TestConfig
from stockledger.extensions import db
from stockledger.models import Item, Location, Supplier
from stockledger.services import period_service, stock_service


PERIOD_START = date(2026, 3, 1)
PERIOD_END = date(2026, 3, 31)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

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
def kitchen(db_session):
    """Location A: main kitchen."""
    location = Location(code="K1", name="Main Kitchen", location_type="KITCHEN", is_active=True)
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def store(db_session):
    """Location B: dry store."""
    location = Location(code="S1", name="Dry Store", location_type="STORE", is_active=True)
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def rice(db_session):
    item = Item(code="RICE-25", name="Rice 25kg", unit="BAG", category="DRY", is_active=True)
    db_session.add(item)
    db_session.commit()
    return item


@pytest.fixture(scope='function')
def oil(db_session):
    item = Item(code="OIL-5", name="Vegetable Oil 5L", unit="EA", category="DRY", is_active=True)
    db_session.add(item)
    db_session.commit()
    return item


@pytest.fixture(scope='function')
def supplier(db_session):
    supplier = Supplier(code="SUP1", name="Gulf Foods", is_active=True)
    db_session.add(supplier)
    db_session.commit()
    return supplier


@pytest.fixture(scope='function')
def draft_period(db_session, kitchen, store, rice, oil):
    """March 2026 in DRAFT, with a PeriodLocation for both locations and prices set."""
    period = period_service.create_period(
        name="March 2026",
        start_date=PERIOD_START,
        end_date=PERIOD_END,
        user_id=1,
    )
    period_service.set_period_prices(
        period.id,
        [
            {"item_id": rice.id, "price": "25.00"},
            {"item_id": oil.id, "price": "8.00"},
        ],
        user_id=1,
    )
    return period


@pytest.fixture(scope='function')
def open_period(draft_period):
    """March 2026, OPEN, prices locked."""
    return period_service.open_period(draft_period.id, user_id=1)


def add_stock(location_id: int, item_id: int, quantity, unit_price):
    """Seed stock directly through the receipt leg, bypassing delivery documents."""
    stock = stock_service.receive(location_id, item_id, Decimal(str(quantity)), Decimal(str(unit_price)))
    db.session.commit()
    return stock


def identity_headers(user_id: int = 1, role: str = "OPERATOR", locations="*") -> dict:
    """Gateway identity headers. locations: "*" or an iterable of location ids."""
    if locations != "*":
        locations = ",".join(str(location_id) for location_id in locations)
    return {
        "X-User-Id": str(user_id),
        "X-User-Role": role,
        "X-Location-Ids": locations,
    }
