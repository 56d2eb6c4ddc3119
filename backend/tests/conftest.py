"""
Shared test fixtures for Storefront tests

Provides database setup, client creation, and user/product fixtures
"""
import os

# Must be set before the app (and its settings) are imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

import pytest
from decimal import Decimal
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from storefront.main import app
from storefront.db.base import Base
from storefront.db.session import get_db
from storefront.core.security import create_access_token
from storefront.core.limiter import limiter
from storefront.services.payment_providers import reset_providers

from tests.factories import reset_sequences

# Disable rate limiting for tests
limiter.enabled = False

CRON_SECRET = os.environ["CRON_SECRET"]


# Create in-memory SQLite database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def create_tables(engine):
    """Create all tables for testing using SQLAlchemy metadata"""
    # Import all models to ensure they're registered with Base
    from storefront.models import (  # noqa: F401
        User, RefreshToken, Product, CartItem, Order, OrderItem,
        OrderStatusHistory, Payment, NotificationOutbox,
    )

    Base.metadata.create_all(bind=engine)


def drop_tables(engine):
    """Drop all tables after testing"""
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    """Create a fresh database session for each test"""
    create_tables(engine)
    reset_sequences()
    reset_providers()

    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        drop_tables(engine)


@pytest.fixture
def db(db_session):
    """Short alias used by API tests"""
    return db_session


@pytest.fixture
def client(db_session):
    """Create a test client with database override"""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def admin_user(db_session):
    """Create an admin user for testing"""
    from storefront.models.user import User

    user = User(
        email="admin@test.com",
        full_name="Admin User",
        role="admin",
        status="active",
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def customer_user(db_session):
    """Create a retail client for testing"""
    from storefront.models.user import User

    user = User(
        email="customer@test.com",
        full_name="Олена Коваль",
        phone="+380501234567",
        role="client",
        status="active",
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def wholesale_user(db_session):
    """Create a wholesale client for testing"""
    from storefront.models.user import User

    user = User(
        email="wholesale@test.com",
        full_name="Опт Клієнт",
        phone="+380671112233",
        company_name="ТОВ Дім",
        role="wholesale",
        status="active",
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def admin_token(admin_user):
    """Generate an access token for the admin user"""
    return create_access_token(admin_user.id)


@pytest.fixture
def customer_token(customer_user):
    """Generate an access token for the customer user"""
    return create_access_token(customer_user.id)


@pytest.fixture
def admin_headers(admin_token):
    """Return authorization headers for admin user"""
    return {"Authorization": f"Bearer {admin_token}"}


@pytest.fixture
def customer_headers(customer_token):
    """Return authorization headers for customer user"""
    return {"Authorization": f"Bearer {customer_token}"}


@pytest.fixture
def cron_headers():
    return {"Authorization": f"Bearer {CRON_SECRET}"}


@pytest.fixture
def sample_product(db_session):
    """Create a sample product for testing"""
    from storefront.models.product import Product

    product = Product(
        code="HG-001",
        name="Відро пластикове 10л",
        price_retail=Decimal("120.00"),
        price_wholesale=Decimal("95.00"),
        quantity=50,
        is_active=True,
    )
    db_session.add(product)
    db_session.commit()
    db_session.refresh(product)
    return product
