"""
Pytest fixtures for inventory engine tests.

Provides test database setup, actor identity, product factories, and test client.
"""

import pytest
from frozengoods import create_app
from frozengoods.extensions import db
from frozengoods.services import products_service


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
        # Clear all data but keep schema (Core deletes bypass the ledger guards)
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def actor():
    """Identity supplied by the upstream auth collaborator."""
    return {"actor_id": "user-1", "actor_name": "Maria Santos"}


@pytest.fixture(scope='function')
def actor_headers():
    return {"X-Actor-Id": "user-1", "X-Actor-Name": "Maria Santos"}


@pytest.fixture(scope='function')
def make_product(db_session, actor):
    """Factory creating products through the Product Store (so the ledger is seeded)."""
    counter = {"n": 0}

    def _make(
        name=None,
        quantity=10,
        price_cents=100,
        distributor_price_cents=60,
        category="Ice Cream",
    ):
        counter["n"] += 1
        payload = {
            "name": name or f"Frozen Product {counter['n']}",
            "category": category,
            "quantity": quantity,
            "distributor_price_cents": distributor_price_cents,
        }
        if price_cents is not None:
            payload["price_cents"] = price_cents
        return products_service.create_product(payload=payload, **actor)

    return _make


@pytest.fixture(scope='function')
def p1(make_product):
    """Product p1: quantity 10, price 100, distributor price 60."""
    return make_product(name="Vanilla Tub", quantity=10, price_cents=100, distributor_price_cents=60)
