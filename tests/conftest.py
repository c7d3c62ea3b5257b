"""
Pytest fixtures for pos_store tests.

Provides an in-memory store opened once per run, per-test table clearing and
small factories for products and categories.
"""

import pytest

from pos_store import create_app
from pos_store.database import open_database
from pos_store.extensions import db
from pos_store.models import SchemaVersion
from pos_store.services import products_service, categories_service

TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'LOW_STOCK_THRESHOLD': 10,
}


@pytest.fixture(scope='session')
def app():
    """Create application with an opened in-memory store."""
    app = create_app(TEST_CONFIG)

    with app.app_context():
        handle = open_database(app)
        yield app
        handle.close()


@pytest.fixture(scope='function')
def fresh_app(app):
    """Second application with its own empty in-memory database (schema not opened)."""
    other = create_app(TEST_CONFIG)
    with other.app_context():
        yield other
        db.session.remove()


@pytest.fixture(scope='function')
def db_session(app):
    """Clear all records (keep schema) before each test."""
    db.session.rollback()
    for table in reversed(db.metadata.sorted_tables):
        if table.name == SchemaVersion.__tablename__:
            continue
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    db.session.rollback()


@pytest.fixture
def make_product(db_session):
    """Factory: create a product with sensible defaults, return its dict."""
    counter = {"n": 0}

    def _make(**fields):
        counter["n"] += 1
        payload = {
            "sku": f"SKU-{counter['n']:03d}",
            "name": f"Product {counter['n']}",
            "price_cents": 1000,
            "cost_price_cents": 600,
            "stock_quantity": 0,
        }
        payload.update(fields)
        return products_service.create_product(payload)

    return _make


@pytest.fixture
def make_category(db_session):
    def _make(name, parent_id=None, **fields):
        return categories_service.create_category({"name": name, "parent_id": parent_id, **fields})

    return _make
