# Overview: Concurrent ledger operations against a file-backed database.

"""
Concurrency Tests

Threads race for the same stock through separate connections. The ledger
transaction serializes them; exactly as many succeed as stock allows and
nothing goes negative.

Uses its own app on a temporary SQLite file, since the shared in-memory
database has only one connection.
"""

import threading
from decimal import Decimal

import pytest

from savdo import create_app
from savdo.config import TestConfig
from savdo.context import Actor
from savdo.errors import InsufficientDealerStock, InsufficientStock, StoreUnavailable
from savdo.extensions import db
from savdo.models import Dealer, DealerInventory, Product, Tenant
from savdo.services import audit_service, consignment_service, sales_service


@pytest.fixture
def file_app(tmp_path):
    app = create_app(TestConfig, {
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'ledger.sqlite3'}",
        "LEDGER_LOCK_TIMEOUT_MS": 10000,
        "LEDGER_LOCK_RETRIES": 5,
        "LEDGER_RETRY_BACKOFF": 0.05,
    })
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.engine.dispose()


@pytest.fixture
def seeded(file_app):
    with file_app.app_context():
        tenant = Tenant(name="Race Shop", owner_name="Owner", phone="+998909999999")
        db.session.add(tenant)
        db.session.flush()
        product = Product(tenant_id=tenant.id, sku="HOT-1", name="Hot item", price=Decimal("5.00"), stock=10)
        dealer = Dealer(tenant_id=tenant.id, name="Race Dealer", phone="+998908888888")
        db.session.add_all([product, dealer])
        db.session.commit()
        return {"tenant_id": tenant.id, "product_id": product.id, "dealer_id": dealer.id}


def _race(app, worker, count):
    outcomes = []
    lock = threading.Lock()
    start = threading.Barrier(count)

    def run():
        with app.app_context():
            start.wait()
            try:
                worker()
                result = "ok"
            except (InsufficientStock, InsufficientDealerStock):
                result = "short"
            except StoreUnavailable:
                result = "unavailable"
            finally:
                db.session.remove()
            with lock:
                outcomes.append(result)

    threads = [threading.Thread(target=run) for _ in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)
    return outcomes


def test_parallel_sales_never_oversell(file_app, seeded):
    employee = Actor("employee", 1)

    def sell_two():
        sales_service.create_sale(
            seeded["tenant_id"], employee, [{"product_id": seeded["product_id"], "quantity": 2}],
        )

    outcomes = _race(file_app, sell_two, 8)

    assert "unavailable" not in outcomes
    assert outcomes.count("ok") == 5
    assert outcomes.count("short") == 3
    with file_app.app_context():
        assert db.session.get(Product, seeded["product_id"]).stock == 0


def test_parallel_dealer_sales_never_oversell(file_app, seeded):
    employee = Actor("employee", 1)
    with file_app.app_context():
        consignment_service.load_to_dealer(
            seeded["tenant_id"], employee, seeded["dealer_id"],
            [{"product_id": seeded["product_id"], "quantity": 3}],
        )

    def sell_one():
        consignment_service.sell_from_dealer(
            seeded["tenant_id"], employee, seeded["dealer_id"],
            [{"product_id": seeded["product_id"], "quantity": 1}],
        )

    outcomes = _race(file_app, sell_one, 6)

    assert outcomes.count("ok") == 3
    assert outcomes.count("short") == 3
    with file_app.app_context():
        holding = db.session.query(DealerInventory).filter_by(dealer_id=seeded["dealer_id"]).one()
        assert holding.quantity == 0
        assert audit_service.check_invariants(seeded["tenant_id"])["ok"] is True
