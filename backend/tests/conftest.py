"""
Pytest fixtures for storefront backend tests.

Provides an in-memory database, seeded staff/driver/customer accounts, a
stocked product and helpers for resolving actors and auth headers.
"""

import pytest

from storefront import create_app
from storefront.extensions import db
from storefront.models import DeliveryZone, Product, Stock
from storefront.services import actor_service, session_service
from storefront.services.auth_service import create_customer, create_staff_user


PASSWORD = "Password123"

ADDRESS = {
    "full_name": "Layla Haddad",
    "mobile": "+971500000009",
    "emirate": "Dubai",
    "area": "Dubai Marina",
    "street": "Marina Walk",
    "building": "Marina Tower 1",
    "apartment": "1204",
}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'SHARED_ADMIN_NOTIFICATION_ID': 'admin',
        'VAT_RATE_BPS': 500,
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
def admin_user(db_session):
    return create_staff_user(
        "admin", "admin@storefront.test", PASSWORD,
        first_name="Amira", family_name="Admin", role="admin",
    )


@pytest.fixture(scope='function')
def second_admin(db_session):
    return create_staff_user(
        "admin2", "admin2@storefront.test", PASSWORD,
        first_name="Basel", family_name="Admin", role="admin",
    )


@pytest.fixture(scope='function')
def staff_user(db_session):
    return create_staff_user(
        "counter", "counter@storefront.test", PASSWORD,
        first_name="Karim", family_name="Counter", role="staff",
    )


@pytest.fixture(scope='function')
def driver(db_session):
    return create_staff_user(
        "driver1", "driver1@storefront.test", PASSWORD,
        first_name="Omar", family_name="Driver", role="delivery", mobile="+971500000001",
    )


@pytest.fixture(scope='function')
def other_driver(db_session):
    return create_staff_user(
        "driver2", "driver2@storefront.test", PASSWORD,
        first_name="Yousef", family_name="Driver", role="delivery", mobile="+971500000002",
    )


@pytest.fixture(scope='function')
def customer(db_session):
    return create_customer(
        "layla@example.com", PASSWORD, first_name="Layla", family_name="Haddad", mobile="+971500000009",
    )


@pytest.fixture(scope='function')
def other_customer(db_session):
    return create_customer(
        "sam@example.com", PASSWORD, first_name="Sam", family_name="Other",
    )


@pytest.fixture(scope='function')
def zone(db_session):
    zone = DeliveryZone(
        name="Dubai",
        emirate="Dubai",
        delivery_fee_cents=1500,
        minimum_order_cents=0,
        estimated_minutes=60,
        express_enabled=True,
        express_fee_cents=3000,
    )
    db_session.add(zone)
    db_session.commit()
    return zone


def make_product(db_session, sku="LAMB-LEG", price_cents=1000, quantity=10, low_stock_threshold=2):
    product = Product(sku=sku, name=f"Product {sku}", name_ar="منتج", price_cents=price_cents, unit="kg")
    db_session.add(product)
    db_session.flush()
    db_session.add(Stock(
        product_id=product.id,
        quantity=quantity,
        reserved_quantity=0,
        available_quantity=quantity,
        low_stock_threshold=low_stock_threshold,
    ))
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product(db_session):
    """1000 fils per kg, 10 on hand."""
    return make_product(db_session)


@pytest.fixture(scope='function')
def product_b(db_session):
    return make_product(db_session, sku="BEEF-MINCE", price_cents=2500, quantity=3)


def staff_token(user) -> str:
    _, token = session_service.create_staff_session(user.id)
    return token


def customer_token(customer) -> str:
    _, token = session_service.create_customer_session(customer.id)
    return token


def actor_for(account):
    """Resolve an Actor through a real session, exactly as requests do."""
    if hasattr(account, "role"):
        return actor_service.resolve_actor(staff_token(account))
    return actor_service.resolve_actor(customer_token(account))


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_actor(admin_user):
    return actor_for(admin_user)


@pytest.fixture(scope='function')
def staff_actor(staff_user):
    return actor_for(staff_user)


@pytest.fixture(scope='function')
def driver_actor(driver):
    return actor_for(driver)


@pytest.fixture(scope='function')
def customer_actor(customer):
    return actor_for(customer)


@pytest.fixture(scope='function')
def place_order(customer, zone, product):
    """Factory placing a cash-on-delivery order for ``customer``."""
    from storefront.services import order_service

    def _place(items=None, **kwargs):
        kwargs.setdefault("payment_method", "cod")
        kwargs.setdefault("delivery_address", dict(ADDRESS))
        return order_service.create_order(
            customer.id,
            items or [{"product_id": product.id, "quantity": 2}],
            **kwargs,
        )

    return _place
