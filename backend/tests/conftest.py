"""
Pytest fixtures for pharmacy backend tests.

Provides the application on an in-memory database, a per-test table wipe,
a staff user with a session token, and small factories for catalog rows.
"""

from datetime import date

import pytest
from pharmacy import create_app
from pharmacy.extensions import db
from pharmacy.models import Product, Supplier
from pharmacy.services.auth_service import create_user
from pharmacy.services.session_service import create_session


TEST_PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
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
        db.session.expunge_all()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def user(db_session):
    """Staff user the tests act as."""
    return create_user(
        username="pharmacist",
        email="pharmacist@pharmacy.local",
        password=TEST_PASSWORD,
        full_name="Test Pharmacist",
    )


@pytest.fixture(scope='function')
def token(user):
    _, plaintext = create_session(user.id)
    return plaintext


@pytest.fixture(scope='function')
def headers(token):
    return auth_headers(token)


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: make_product(name="Aspirin", stock=10, price_cents=500, ...)."""
    def _make(name="Paracetamol 500mg", *, stock=10, price_cents=500, category="Analgesics",
              reorder_level=10, expiry_date: date | None = None):
        product = Product(
            name=name,
            category=category,
            price_cents=price_cents,
            stock=stock,
            reorder_level=reorder_level,
            expiry_date=expiry_date,
        )
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def supplier(db_session):
    supplier = Supplier(
        name="MedSupply Co",
        email="orders@medsupply.test",
        phone="555-0100",
        contact_person="Dana Reyes",
    )
    db_session.add(supplier)
    db_session.commit()
    return supplier


def stock_of(product_id: int) -> int:
    """Committed stock, bypassing any stale identity-map state."""
    return db.session.query(Product.stock).filter_by(id=product_id).scalar()


def get_auth_token(client, username: str, password: str) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
