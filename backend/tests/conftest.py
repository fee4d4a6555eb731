"""
Pytest fixtures for retailpos backend tests.

Provides test database setup, catalog/location/user fixtures, stock helpers
and an authenticated test client.
"""

from decimal import Decimal

import pytest

from retailpos import create_app
from retailpos.config import TestingConfig
from retailpos.extensions import db
from retailpos.models.auth import ROLE_MANAGER, ROLE_OWNER, ROLE_STAFF
from retailpos.services import catalog_service, stock_ledger_service
from retailpos.services.auth_service import create_user


PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestingConfig)

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
# CATALOG / LOCATIONS
# =============================================================================

@pytest.fixture(scope='function')
def location(db_session):
    return catalog_service.create_location("Main Showroom", "12 Marina Road")


@pytest.fixture(scope='function')
def warehouse(db_session):
    return catalog_service.create_location("Warehouse", "Plot 7, Industrial Estate")


@pytest.fixture(scope='function')
def tile_type(db_session):
    return catalog_service.create_product_type("Tile", "sqm", required=["size"], optional=["finish"])


@pytest.fixture(scope='function')
def piece_type(db_session):
    return catalog_service.create_product_type("Piece", "pcs")


@pytest.fixture(scope='function')
def product(db_session, tile_type):
    """Tile priced 500.00 with a known cost of 300.00."""
    return catalog_service.create_product(
        name="Glazed Floor Tile 60x60",
        product_type_id=tile_type.id,
        price="500.00",
        cost_price="300.00",
        category="Tiles",
        custom_attributes={"size": "60x60"},
    )


@pytest.fixture(scope='function')
def other_product(db_session, piece_type):
    """Paint bucket priced 2000.00 without a cost price."""
    return catalog_service.create_product(
        name="Emulsion Paint 20L",
        product_type_id=piece_type.id,
        price="2000.00",
        category="Paint",
    )


# =============================================================================
# USERS
# =============================================================================

@pytest.fixture(scope='function')
def owner(db_session, location):
    return create_user("owner@test.local", PASSWORD, "Olu", "Owner", role=ROLE_OWNER, location_id=location.id)


@pytest.fixture(scope='function')
def manager(db_session, location):
    return create_user("manager@test.local", PASSWORD, "Mia", "Manager", role=ROLE_MANAGER, location_id=location.id)


@pytest.fixture(scope='function')
def staff(db_session, location):
    return create_user("staff@test.local", PASSWORD, "Sam", "Staff", role=ROLE_STAFF, location_id=location.id)


# =============================================================================
# HELPERS
# =============================================================================

@pytest.fixture(scope='function')
def stock(owner):
    """Receive `quantity` of a product at a location, attributed to the owner."""
    def _stock(product, location, quantity):
        return stock_ledger_service.apply_movement(
            product_id=product.id,
            location_id=location.id,
            change_type="received",
            change_amount=Decimal(str(quantity)),
            actor_id=owner.id,
        )
    return _stock


def get_auth_token(client, email: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'email': email,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def owner_headers(client, owner):
    return auth_headers(get_auth_token(client, owner.email))


@pytest.fixture(scope='function')
def manager_headers(client, manager):
    return auth_headers(get_auth_token(client, manager.email))


@pytest.fixture(scope='function')
def staff_headers(client, staff):
    return auth_headers(get_auth_token(client, staff.email))
