# Overview: Failure injection around ledger transactions.

"""
Atomicity Tests

A failure at any point inside an operation must leave no trace: no stock
change, no holding, no debt, no journal row, no event.
"""

from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from savdo.errors import ExcessPayment, StoreUnavailable
from savdo.extensions import db
from savdo.models import (
    Dealer,
    DealerCustomer,
    DealerInventory,
    DealerTransaction,
    DebtEntry,
    LedgerEvent,
    Payment,
    Product,
    Sale,
    SaleItem,
)
from savdo.services import consignment_service, debt_service, payment_service, sales_service, stock_service
from savdo.services.concurrency import run_in_ledger_transaction


def _operational_error(message):
    return OperationalError("UPDATE products", {}, Exception(message))


def _assert_nothing_written():
    for model in (DealerInventory, DealerTransaction, DebtEntry, LedgerEvent, Payment, Sale, SaleItem):
        assert db.session.query(model).count() == 0, model.__name__


def _ledger_snapshot():
    return {
        "stock": {p.id: p.stock for p in db.session.query(Product).all()},
        "holdings": {(h.dealer_id, h.product_id): h.quantity for h in db.session.query(DealerInventory).all()},
        "dealer_debt": {d.id: d.debt for d in db.session.query(Dealer).all()},
        "dealer_customer_debt": {c.id: c.debt for c in db.session.query(DealerCustomer).all()},
        "rows": {
            model.__name__: db.session.query(model).count()
            for model in (DealerTransaction, DebtEntry, LedgerEvent, Payment)
        },
    }


class TestInfrastructureFailures:

    def test_failure_after_stock_moved_rolls_back_load(
        self, db_session, tenant_a, employee, dealer_a, product_a, monkeypatch,
    ):
        def boom(*args, **kwargs):
            raise _operational_error("disk I/O error")

        monkeypatch.setattr(debt_service, "accrue", boom)

        with pytest.raises(StoreUnavailable):
            consignment_service.load_to_dealer(
                tenant_a.id, employee, dealer_a.id, [{"product_id": product_a.id, "quantity": 10}],
            )
        assert product_a.stock == 100
        assert dealer_a.debt == Decimal("0")
        _assert_nothing_written()

    def test_failure_mid_sale_rolls_back_earlier_lines(
        self, db_session, tenant_a, employee, product_a, product_a2, monkeypatch,
    ):
        real_reserve = stock_service.reserve

        def reserve_then_fail(tenant_id, product_id, qty):
            if product_id == product_a2.id:
                raise _operational_error("disk I/O error")
            return real_reserve(tenant_id, product_id, qty)

        monkeypatch.setattr(stock_service, "reserve", reserve_then_fail)

        with pytest.raises(StoreUnavailable):
            sales_service.create_sale(
                tenant_a.id, employee,
                [{"product_id": product_a.id, "quantity": 3}, {"product_id": product_a2.id, "quantity": 1}],
            )
        assert product_a.stock == 100
        assert product_a2.stock == 20
        _assert_nothing_written()

    def test_lock_conflicts_retried_then_unavailable(self, db_session, tenant_a, app):
        calls = []

        def contended(tx):
            calls.append(1)
            raise _operational_error("database is locked")

        with pytest.raises(StoreUnavailable) as exc:
            run_in_ledger_transaction(contended, name="test.contended")
        assert len(calls) == app.config["LEDGER_LOCK_RETRIES"]
        assert exc.value.retryable is True

    def test_lock_conflict_recovers_on_retry(self, db_session, tenant_a, product_a):
        attempts = []

        def flaky(tx):
            attempts.append(1)
            if len(attempts) == 1:
                raise _operational_error("database is locked")
            stock_service.reserve(tenant_a.id, product_a.id, 1)
            return "done"

        assert run_in_ledger_transaction(flaky, name="test.flaky") == "done"
        assert len(attempts) == 2
        assert product_a.stock == 99

    def test_other_errors_not_retried(self, db_session, tenant_a):
        calls = []

        def broken(tx):
            calls.append(1)
            raise _operational_error("no such table: products")

        with pytest.raises(StoreUnavailable):
            run_in_ledger_transaction(broken, name="test.broken")
        assert len(calls) == 1


class TestMidBatchFailures:
    """A failure on the second line must undo the first line too."""

    @pytest.fixture
    def loaded(self, db_session, tenant_a, employee, dealer_a, product_a, product_a2):
        consignment_service.load_to_dealer(
            tenant_a.id, employee, dealer_a.id,
            [{"product_id": product_a.id, "quantity": 5}, {"product_id": product_a2.id, "quantity": 5}],
        )
        return dealer_a

    @staticmethod
    def _fail_on(real, product_id, position=0):
        def wrapper(tenant_id, *args):
            if args[position] == product_id:
                raise _operational_error("disk I/O error")
            return real(tenant_id, *args)
        return wrapper

    def test_load_fails_on_second_line(
        self, db_session, tenant_a, employee, dealer_a, product_a, product_a2, monkeypatch,
    ):
        monkeypatch.setattr(stock_service, "reserve", self._fail_on(stock_service.reserve, product_a2.id))
        before = _ledger_snapshot()

        with pytest.raises(StoreUnavailable):
            consignment_service.load_to_dealer(
                tenant_a.id, employee, dealer_a.id,
                [{"product_id": product_a.id, "quantity": 3}, {"product_id": product_a2.id, "quantity": 2}],
            )
        assert _ledger_snapshot() == before
        assert product_a.stock == 100
        _assert_nothing_written()

    def test_sell_fails_on_second_line(
        self, db_session, tenant_a, employee, loaded, dealer_customer_a, product_a, product_a2, monkeypatch,
    ):
        monkeypatch.setattr(
            consignment_service, "_take_from_holding",
            self._fail_on(consignment_service._take_from_holding, product_a2.id, position=1),
        )
        before = _ledger_snapshot()

        with pytest.raises(StoreUnavailable):
            consignment_service.sell_from_dealer(
                tenant_a.id, employee, loaded.id,
                [{"product_id": product_a.id, "quantity": 2}, {"product_id": product_a2.id, "quantity": 2}],
                dealer_customer_id=dealer_customer_a.id, paid_amount="0",
            )
        after = _ledger_snapshot()
        assert after == before
        assert after["holdings"] == {(loaded.id, product_a.id): 5, (loaded.id, product_a2.id): 5}
        assert dealer_customer_a.debt == Decimal("0")

    def test_return_fails_on_second_line(
        self, db_session, tenant_a, employee, loaded, product_a, product_a2, monkeypatch,
    ):
        monkeypatch.setattr(stock_service, "restore", self._fail_on(stock_service.restore, product_a2.id))
        before = _ledger_snapshot()

        with pytest.raises(StoreUnavailable):
            consignment_service.return_from_dealer(
                tenant_a.id, employee, loaded.id,
                [{"product_id": product_a.id, "quantity": 2}, {"product_id": product_a2.id, "quantity": 2}],
            )
        after = _ledger_snapshot()
        assert after == before
        assert after["stock"][product_a.id] == 95
        assert after["stock"][product_a2.id] == 15
        assert db.session.query(DealerTransaction).filter_by(type="return").count() == 0


class TestDomainFailures:

    def test_domain_error_not_retried(self, db_session, tenant_a, employee, customer_a, product_a, monkeypatch):
        calls = []
        real = debt_service.ensure_within_balance

        def counting(*args, **kwargs):
            calls.append(1)
            return real(*args, **kwargs)

        monkeypatch.setattr(debt_service, "ensure_within_balance", counting)
        sales_service.create_sale(
            tenant_a.id, employee, [{"product_id": product_a.id, "quantity": 1}],
            customer_id=customer_a.id, payment_type="debt",
        )
        with pytest.raises(ExcessPayment):
            payment_service.apply_payment(tenant_a.id, employee, "customer", customer_a.id, "99.00")
        assert len(calls) == 1
        assert db.session.query(Payment).count() == 0

    def test_unexpected_exception_rolls_back(self, db_session, tenant_a, product_a):
        def explode(tx):
            stock_service.reserve(tenant_a.id, product_a.id, 5)
            raise RuntimeError("bug")

        with pytest.raises(RuntimeError):
            run_in_ledger_transaction(explode, name="test.explode")
        assert product_a.stock == 100
