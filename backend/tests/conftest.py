"""
Pytest fixtures for the rentals backend tests.

Provides test database setup, tenant fixtures, catalog fixtures and test client.
"""

from datetime import date

import pytest

from rentals import create_app
from rentals.extensions import db
from rentals.models import Booking, BookingItem, Equipment
from rentals.services import tenant_service, catalog_service
from rentals.services.auth_service import create_user


PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'DB_RETRY_ATTEMPTS': 1,
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


# =============================================================================
# TENANTS / USERS
# =============================================================================

@pytest.fixture(scope='function')
def org_a(db_session):
    """Organization A on the unlimited default plan."""
    return tenant_service.create_organization("Org A - Acme Rentals", "ACME")


@pytest.fixture(scope='function')
def org_b(db_session):
    """Organization B (second tenant)."""
    return tenant_service.create_organization("Org B - Beta Equipamentos", "BETA")


@pytest.fixture(scope='function')
def admin_a(db_session, org_a):
    return create_user("admin_a", "admin_a@acme.com", PASSWORD, org_a.id, role="admin")


@pytest.fixture(scope='function')
def manager_a(db_session, org_a):
    return create_user("manager_a", "manager_a@acme.com", PASSWORD, org_a.id, role="manager")


@pytest.fixture(scope='function')
def operator_a(db_session, org_a):
    return create_user("operator_a", "operator_a@acme.com", PASSWORD, org_a.id, role="operator")


@pytest.fixture(scope='function')
def admin_b(db_session, org_b):
    return create_user("admin_b", "admin_b@beta.com", PASSWORD, org_b.id, role="admin")


# =============================================================================
# CATALOG
# =============================================================================

@pytest.fixture(scope='function')
def customer_a(db_session, org_a):
    return catalog_service.create_customer(org_id=org_a.id, name="Construtora Alfa", email="alfa@example.com")


@pytest.fixture(scope='function')
def customer_b(db_session, org_b):
    return catalog_service.create_customer(org_id=org_b.id, name="Beta Obras", email="obras@example.com")


@pytest.fixture(scope='function')
def equipment_a(db_session, org_a):
    """5 units at 50.00/day."""
    return catalog_service.create_equipment(
        org_id=org_a.id,
        name="Betoneira 400L",
        total_stock=5,
        price_per_day_cents=5000,
        min_stock_level=1,
    )


@pytest.fixture(scope='function')
def equipment_b(db_session, org_b):
    return catalog_service.create_equipment(
        org_id=org_b.id,
        name="Andaime",
        total_stock=3,
        price_per_day_cents=2000,
    )


# =============================================================================
# HELPERS
# =============================================================================

def reload_equipment(equipment_id: int) -> Equipment:
    """Fresh copy of the counters from the database."""
    db.session.expire_all()
    return db.session.get(Equipment, equipment_id)


def insert_legacy_booking(org_id, customer_id, equipment_id, start, end, status="CONFIRMED",
                          number="LEG-0001") -> Booking:
    """Item-less single-equipment booking as written by older clients."""
    booking = Booking(
        org_id=org_id,
        booking_number=number,
        customer_id=customer_id,
        equipment_id=equipment_id,
        start_date=start,
        end_date=end,
        status=status,
        total_price_cents=0,
    )
    db.session.add(booking)
    db.session.commit()
    return booking


def d(value: str) -> date:
    return date.fromisoformat(value)


def item_of(booking: Booking, equipment_id: int) -> BookingItem:
    for item in booking.items:
        if item.equipment_id == equipment_id:
            return item
    raise AssertionError(f"no item for equipment {equipment_id}")


def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
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


@pytest.fixture(scope='function')
def admin_headers(client, admin_a):
    return auth_headers(get_auth_token(client, admin_a.username))


@pytest.fixture(scope='function')
def manager_headers(client, manager_a):
    return auth_headers(get_auth_token(client, manager_a.username))


@pytest.fixture(scope='function')
def operator_headers(client, operator_a):
    return auth_headers(get_auth_token(client, operator_a.username))


@pytest.fixture(scope='function')
def admin_b_headers(client, admin_b):
    return auth_headers(get_auth_token(client, admin_b.username))
