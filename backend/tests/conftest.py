"""
Pytest fixtures for Savdo backend tests.

Provides test database setup, two tenants with their catalog, parties and
actors, and a test client with caller-context headers.
"""

from decimal import Decimal

import pytest

from savdo import create_app
from savdo.config import TestConfig
from savdo.context import Actor, ACTOR_CUSTOMER, ACTOR_DEALER, ACTOR_EMPLOYEE
from savdo.extensions import db
from savdo.models import Customer, Dealer, DealerCustomer, Product, Supplier, Tenant


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

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


def _tenant(session, name, phone):
    tenant = Tenant(name=name, owner_name="Owner", phone=phone, is_active=True)
    session.add(tenant)
    session.commit()
    return tenant


@pytest.fixture(scope='function')
def tenant_a(db_session):
    """Tenant A (first shop)."""
    return _tenant(db_session, "Baraka Savdo", "+998900000001")


@pytest.fixture(scope='function')
def tenant_b(db_session):
    """Tenant B (second shop)."""
    return _tenant(db_session, "Oltin Bozor", "+998900000002")


def make_product(session, tenant, sku, price, stock, min_stock=5, **extra):
    product = Product(
        tenant_id=tenant.id,
        sku=sku,
        name=f"Product {sku}",
        price=Decimal(price),
        stock=stock,
        min_stock=min_stock,
        **extra,
    )
    session.add(product)
    session.commit()
    return product


@pytest.fixture(scope='function')
def product_a(db_session, tenant_a):
    """Tenant A product: 10.00 each, 100 in stock."""
    return make_product(db_session, tenant_a, "RICE-5", "10.00", 100)


@pytest.fixture(scope='function')
def product_a2(db_session, tenant_a):
    """Tenant A product: 25.50 each, 20 in stock."""
    return make_product(db_session, tenant_a, "OIL-1", "25.50", 20)


@pytest.fixture(scope='function')
def product_b(db_session, tenant_b):
    """Tenant B product."""
    return make_product(db_session, tenant_b, "SUGAR-1", "7.00", 50)


@pytest.fixture(scope='function')
def customer_a(db_session, tenant_a):
    customer = Customer(
        tenant_id=tenant_a.id, full_name="Dilshod Karimov", phone="+998901111111", address="Chilonzor 5",
    )
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def customer_b(db_session, tenant_b):
    customer = Customer(tenant_id=tenant_b.id, full_name="Other Shop Customer", phone="+998902222222")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def dealer_a(db_session, tenant_a):
    dealer = Dealer(tenant_id=tenant_a.id, name="Samarqand Dealer", phone="+998903333333", region="Samarqand")
    db_session.add(dealer)
    db_session.commit()
    return dealer


@pytest.fixture(scope='function')
def dealer_a2(db_session, tenant_a):
    dealer = Dealer(tenant_id=tenant_a.id, name="Buxoro Dealer", phone="+998904444444", region="Buxoro")
    db_session.add(dealer)
    db_session.commit()
    return dealer


@pytest.fixture(scope='function')
def dealer_b(db_session, tenant_b):
    dealer = Dealer(tenant_id=tenant_b.id, name="Other Shop Dealer", phone="+998905555555")
    db_session.add(dealer)
    db_session.commit()
    return dealer


@pytest.fixture(scope='function')
def dealer_customer_a(db_session, tenant_a, dealer_a):
    """Sub-customer owned by dealer_a."""
    dc = DealerCustomer(tenant_id=tenant_a.id, dealer_id=dealer_a.id, full_name="Market Stall 7", phone="+998906666666")
    db_session.add(dc)
    db_session.commit()
    return dc


@pytest.fixture(scope='function')
def supplier_a(db_session, tenant_a):
    supplier = Supplier(tenant_id=tenant_a.id, name="Toshkent Ulgurji", company="TU LLC")
    db_session.add(supplier)
    db_session.commit()
    return supplier


@pytest.fixture(scope='function')
def employee():
    return Actor(ACTOR_EMPLOYEE, 1)


@pytest.fixture(scope='function')
def dealer_actor(dealer_a):
    return Actor(ACTOR_DEALER, dealer_a.id)


@pytest.fixture(scope='function')
def customer_actor(customer_a):
    return Actor(ACTOR_CUSTOMER, customer_a.id)


def caller_headers(tenant, actor_type=ACTOR_EMPLOYEE, actor_id=1):
    """Caller-context headers as forwarded by the auth layer."""
    headers = {"X-Tenant-Id": str(tenant.id), "X-Actor-Type": actor_type}
    if actor_id is not None:
        headers["X-Actor-Id"] = str(actor_id)
    return headers
