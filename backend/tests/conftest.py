"""
Pytest fixtures for the sales backend tests.

Provides the app on an in-memory database, per-test table cleanup, users with
ready-made access tokens, and a product and customer to sell against.
"""

from datetime import date, datetime

import pytest

from salesdesk import create_app
from salesdesk.config import TestingConfig
from salesdesk.extensions import db
from salesdesk.models import Customer, Product, Sale, User
from salesdesk.services import auth_service, token_service
from salesdesk.services.warranty_service import calculate_warranty_dates

PASSWORD = "Password123!"
_password_hash = None


def password_hash() -> str:
    """bcrypt at cost 12 is slow; hash the shared test password once."""
    global _password_hash
    if _password_hash is None:
        _password_hash = auth_service.hash_password(PASSWORD)
    return _password_hash


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
    """Fresh data for each test."""
    with app.app_context():
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        app.extensions.pop("image_storage", None)
        app.extensions.pop("serial_reader", None)

        yield db.session

        db.session.rollback()


def make_user(db_session, email: str, role: str = "seller", first_name: str = "Test") -> User:
    user = User(
        email=email,
        password_hash=password_hash(),
        first_name=first_name,
        last_name="User",
        role=role,
        is_active=True,
    )
    db_session.add(user)
    db_session.commit()
    return user


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def headers_for(user: User) -> dict:
    return auth_headers(token_service.create_access_token(user))


@pytest.fixture
def admin_user(db_session):
    return make_user(db_session, "admin@test.local", role="admin", first_name="Admin")


@pytest.fixture
def seller_user(db_session):
    return make_user(db_session, "seller@test.local", role="seller", first_name="Seller")


@pytest.fixture
def other_seller(db_session):
    return make_user(db_session, "other@test.local", role="seller", first_name="Other")


@pytest.fixture
def admin_headers(admin_user):
    return headers_for(admin_user)


@pytest.fixture
def seller_headers(seller_user):
    return headers_for(seller_user)


@pytest.fixture
def product(db_session):
    """Active product with 10 units at 100.00."""
    p = Product(sku="LAPTOP-001", name="Laptop Pro 14", stock=10, price_cents=10000, is_active=True)
    db_session.add(p)
    db_session.commit()
    return p


@pytest.fixture
def customer(db_session):
    c = Customer(first_name="Ana", last_name="Garcia", email="ana@example.com", phone="600123123")
    db_session.add(c)
    db_session.commit()
    return c


def make_sale(
    db_session,
    *,
    product: Product,
    customer: Customer,
    seller: User,
    quantity: int = 1,
    unit_price_cents: int = 10000,
    months: int = 12,
    sale_date: date | datetime | None = None,
    serial_number: str | None = None,
) -> Sale:
    """Insert a sale row directly, bypassing stock checks (for query tests)."""
    when = sale_date or datetime(2024, 1, 15, 10, 30)
    if not isinstance(when, datetime):
        when = datetime(when.year, when.month, when.day, 12, 0)
    start, end = calculate_warranty_dates(when, months)
    sale = Sale(
        product_id=product.id,
        customer_id=customer.id,
        seller_id=seller.id,
        quantity=quantity,
        unit_price_cents=unit_price_cents,
        total_price_cents=quantity * unit_price_cents,
        sale_date=when,
        warranty_period_months=months,
        warranty_start=start,
        warranty_end=end,
        serial_number=serial_number,
    )
    db_session.add(sale)
    db_session.commit()
    return sale


def make_sale_ending(db_session, *, ends_on: date, **kwargs) -> Sale:
    """Sale whose warranty ends on an exact day, whatever its month arithmetic."""
    sale = make_sale(db_session, **kwargs)
    sale.warranty_start = date(ends_on.year - 2, 1, 1)
    sale.warranty_end = ends_on
    db_session.commit()
    return sale
