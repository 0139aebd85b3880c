# Overview: Pytest coverage for debt payments and the debt journal.

"""
Payment Tests

Payments reduce exactly one debtor's balance, never below zero, and every
balance change is journaled so it reconciles.
"""

from decimal import Decimal

import pytest

from savdo.context import Actor
from savdo.errors import ExcessPayment, InsufficientDealerCustomerBalance, UnknownEntity, ValidationError
from savdo.extensions import db
from savdo.models import DebtEntry, Payment
from savdo.services import consignment_service, debt_service, payment_service, sales_service


@pytest.fixture
def customer_owing(db_session, tenant_a, employee, product_a, customer_a):
    """customer_a owes 50.00 from a debt sale."""
    sales_service.create_sale(
        tenant_a.id, employee, [{"product_id": product_a.id, "quantity": 5}],
        customer_id=customer_a.id, payment_type="debt",
    )
    return customer_a


@pytest.fixture
def dealer_customer_owing(db_session, tenant_a, employee, dealer_a, dealer_customer_a, product_a):
    """dealer_customer_a owes 30.00 to dealer_a."""
    consignment_service.load_to_dealer(
        tenant_a.id, employee, dealer_a.id, [{"product_id": product_a.id, "quantity": 5}],
    )
    consignment_service.sell_from_dealer(
        tenant_a.id, employee, dealer_a.id, [{"product_id": product_a.id, "quantity": 3}],
        dealer_customer_id=dealer_customer_a.id, paid_amount="0",
    )
    return dealer_customer_a


class TestApplyPayment:

    def test_customer_payment(self, db_session, tenant_a, employee, customer_owing):
        payment = payment_service.apply_payment(tenant_a.id, employee, "customer", customer_owing.id, "20.00")
        assert payment.amount == Decimal("20.00")
        assert payment.customer_id == customer_owing.id
        assert customer_owing.debt == Decimal("30.00")

    def test_pay_off_exactly(self, db_session, tenant_a, employee, customer_owing):
        payment_service.apply_payment(tenant_a.id, employee, "customer", customer_owing.id, "50.00")
        assert customer_owing.debt == Decimal("0")

    def test_excess_payment_rejected(self, db_session, tenant_a, employee, customer_owing):
        with pytest.raises(ExcessPayment) as exc:
            payment_service.apply_payment(tenant_a.id, employee, "customer", customer_owing.id, "50.01")
        assert exc.value.details["current_debt"] == "50.00"
        assert customer_owing.debt == Decimal("50.00")
        assert db.session.query(Payment).count() == 0

    @pytest.mark.parametrize("amount", ["0", "-5", "abc", None])
    def test_invalid_amounts(self, db_session, tenant_a, employee, customer_owing, amount):
        with pytest.raises(ValidationError):
            payment_service.apply_payment(tenant_a.id, employee, "customer", customer_owing.id, amount)

    def test_invalid_method(self, db_session, tenant_a, employee, customer_owing):
        with pytest.raises(ValidationError):
            payment_service.apply_payment(tenant_a.id, employee, "customer", customer_owing.id, "1", method="barter")

    def test_dealer_customer_payment(self, db_session, tenant_a, dealer_actor, dealer_a, dealer_customer_owing):
        payment = payment_service.apply_payment(
            tenant_a.id, dealer_actor, "dealer_customer", dealer_customer_owing.id, "10.00",
        )
        assert payment.dealer_id == dealer_a.id
        assert payment.dealer_customer_id == dealer_customer_owing.id
        assert dealer_customer_owing.debt == Decimal("20.00")
        # Dealer's own debt to the shop is untouched
        assert dealer_a.debt == Decimal("50.00")

    def test_dealer_customer_overpayment(self, db_session, tenant_a, employee, dealer_customer_owing):
        with pytest.raises(InsufficientDealerCustomerBalance):
            payment_service.apply_payment(
                tenant_a.id, employee, "dealer_customer", dealer_customer_owing.id, "30.01",
            )
        assert dealer_customer_owing.debt == Decimal("30.00")

    def test_other_dealer_cannot_collect(self, db_session, tenant_a, dealer_a2, dealer_customer_owing):
        with pytest.raises(UnknownEntity):
            payment_service.apply_payment(
                tenant_a.id, Actor("dealer", dealer_a2.id), "dealer_customer", dealer_customer_owing.id, "1.00",
            )

    def test_customer_pays_only_own_debt(self, db_session, tenant_a, customer_owing):
        with pytest.raises(UnknownEntity):
            payment_service.apply_payment(
                tenant_a.id, Actor("customer", customer_owing.id + 1000), "customer", customer_owing.id, "1.00",
            )
        payment_service.apply_payment(
            tenant_a.id, Actor("customer", customer_owing.id), "customer", customer_owing.id, "1.00",
        )
        assert customer_owing.debt == Decimal("49.00")


class TestDebtJournal:

    def test_journal_records_signed_amounts(self, db_session, tenant_a, employee, customer_owing):
        payment_service.apply_payment(tenant_a.id, employee, "customer", customer_owing.id, "20.00")
        entries = debt_service.get_debt_history(tenant_a.id, "customer", customer_owing.id)
        assert [(e.kind, e.amount, e.balance_after) for e in reversed(entries)] == [
            ("accrual", Decimal("50.00"), Decimal("50.00")),
            ("payment", Decimal("-20.00"), Decimal("30.00")),
        ]

    def test_reconcile_balanced(self, db_session, tenant_a, employee, customer_owing):
        payment_service.apply_payment(tenant_a.id, employee, "customer", customer_owing.id, "20.00")
        report = debt_service.reconcile_debtor(tenant_a.id, "customer", customer_owing.id)
        assert report["balanced"] is True
        assert report["accruals"] == "50.00"
        assert report["payments"] == "20.00"
        assert report["current"] == "30.00"

    def test_opening_balance_counts(self, db_session, tenant_a, employee, customer_a, product_a):
        """Debt imported at creation is the opening balance."""
        customer_a.debt = Decimal("12.00")
        db_session.commit()
        payment_service.apply_payment(tenant_a.id, employee, "customer", customer_a.id, "2.00")
        report = debt_service.reconcile_debtor(tenant_a.id, "customer", customer_a.id)
        assert report["opening"] == "12.00"
        assert report["balanced"] is True

    def test_reconcile_detects_drift(self, db_session, tenant_a, employee, customer_owing):
        customer_owing.debt = Decimal("49.00")
        db_session.commit()
        assert debt_service.reconcile_debtor(tenant_a.id, "customer", customer_owing.id)["balanced"] is False

    def test_zero_accrual_is_noop(self, db_session, tenant_a, customer_a):
        assert debt_service.accrue(tenant_a.id, "customer", customer_a, Decimal("0")) is None
        assert db.session.query(DebtEntry).count() == 0

    def test_list_payments_filters(self, db_session, tenant_a, employee, customer_owing, dealer_customer_owing):
        payment_service.apply_payment(tenant_a.id, employee, "customer", customer_owing.id, "1.00")
        payment_service.apply_payment(tenant_a.id, employee, "dealer_customer", dealer_customer_owing.id, "1.00")
        customer_payments = payment_service.list_payments(
            tenant_a.id, debtor_type="customer", debtor_id=customer_owing.id,
        )
        assert len(customer_payments) == 1
        assert len(payment_service.list_payments(tenant_a.id)) == 2
