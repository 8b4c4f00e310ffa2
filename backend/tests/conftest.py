"""
Pytest fixtures for Stockroom backend tests.

Provides test database setup, catalog factories, and a test client with
actor headers.
"""

import pytest
from stockroom import create_app
from stockroom.extensions import db
from stockroom.models import Product, Supplier
from stockroom.services import transaction_service


ACTOR_ID = 7


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
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
def supplier(db_session):
    supplier = Supplier(name="Acme Wholesale", contact_person="Ana", email="ana@acme.test")
    db_session.add(supplier)
    db_session.commit()
    return supplier


@pytest.fixture(scope='function')
def make_product(db_session):
    """
    Factory for products. Opening stock is recorded through record_in so the
    ledger balances from the start.
    """
    counter = {"n": 0}

    def _make(stock: int = 0, **fields) -> Product:
        counter["n"] += 1
        n = counter["n"]
        product = Product(
            name=fields.pop("name", f"Product {n}"),
            sku=fields.pop("sku", f"SKU-{n:04d}"),
            cost_price_cents=fields.pop("cost_price_cents", 500),
            selling_price_cents=fields.pop("selling_price_cents", 1000),
            current_stock=0,
            **fields,
        )
        db_session.add(product)
        db_session.commit()
        if stock:
            transaction_service.record_in(product.id, stock, ACTOR_ID, "OPENING")
        return product

    return _make


@pytest.fixture(scope='function')
def product(make_product):
    return make_product(stock=50, name="Widget", sku="WID-001")


@pytest.fixture(scope='function')
def actor_headers():
    return {'X-User-Id': str(ACTOR_ID)}


@pytest.fixture(scope='function')
def manager_headers():
    return {'X-User-Id': str(ACTOR_ID), 'X-User-Role': 'Manager'}


@pytest.fixture(scope='function')
def stock_of(db_session):
    """Current stock straight from the database."""
    def _stock(product_id: int) -> int:
        return db_session.query(Product.current_stock).filter_by(id=product_id).scalar()
    return _stock
