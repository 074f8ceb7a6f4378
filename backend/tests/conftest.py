"""
Pytest fixtures for stockpos backend tests.

Provides test database setup, staff users, products, and test client.
"""

import pytest
from stockpos import create_app
from stockpos.extensions import db
from stockpos.models import Product, User
from stockpos.models.auth import ROLE_ADMIN, ROLE_CASHIER
from stockpos.services import ledger_service


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
        db.session.rollback()
        db.session.expunge_all()

        # Clear all data but keep schema. Core deletes bypass the
        # StockAdjustment immutability hooks, which only guard ORM flushes.
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


def _make_user(db_session, username, role, is_active=True):
    user = User(
        username=username,
        email=f"{username}@stockpos.test",
        role=role,
        is_active=is_active,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin(db_session):
    """Admin user."""
    return _make_user(db_session, "admin", ROLE_ADMIN)


@pytest.fixture(scope='function')
def cashier(db_session):
    """Cashier A."""
    return _make_user(db_session, "cashier_a", ROLE_CASHIER)


@pytest.fixture(scope='function')
def other_cashier(db_session):
    """Cashier B."""
    return _make_user(db_session, "cashier_b", ROLE_CASHIER)


@pytest.fixture(scope='function')
def inactive_cashier(db_session):
    return _make_user(db_session, "cashier_gone", ROLE_CASHIER, is_active=False)


@pytest.fixture(scope='function')
def product(db_session):
    """Product with empty buckets."""
    p = Product(sku="BREAD-001", name="White Bread", category="Bakery", price_cents=350)
    db_session.add(p)
    db_session.commit()
    return p


@pytest.fixture(scope='function')
def stocked_product(db_session, product, admin):
    """Product with 100 units in storage, recorded as production."""
    ledger_service.create_stock_adjustment(
        product_id=product.id,
        adjustment_type="production",
        quantity=100,
        created_by_user_id=admin.id,
    )
    db_session.commit()
    return product


def user_headers(user) -> dict:
    """Helper to create identity headers for a user."""
    return {'X-User-Id': str(user.id)}


@pytest.fixture(scope='function')
def admin_headers(admin):
    return user_headers(admin)


@pytest.fixture(scope='function')
def cashier_headers(cashier):
    return user_headers(cashier)
