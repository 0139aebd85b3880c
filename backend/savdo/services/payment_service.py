# Overview: Debt payments from customers, dealers and dealer sub-customers.

"""
Payment Processing Service

WHY: Debtors settle what they owe in one or more payments. Each payment is
an immutable Payment row plus a matching DebtEntry, written together with the
balance decrement.

DESIGN PRINCIPLES:
- Payments are never larger than the current debt (no credit balances)
- Immutable ledger: payments are never updated or deleted
- A dealer may record payments from its own sub-customers
"""

from __future__ import annotations

import logging
from decimal import Decimal

from ..context import ACTOR_CUSTOMER, ACTOR_DEALER, Actor
from ..errors import UnknownEntity
from ..extensions import db
from ..models import Payment
from ..validation import parse_money, require_choice
from . import debt_service
from .concurrency import run_in_ledger_transaction
from .ledger_service import append_ledger_event
from .notification_service import dispatch
from .tenant_service import ensure_actor_is, require_tenant


logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

PAYMENT_TYPES = debt_service.DEBTOR_TYPES

METHOD_CASH = "cash"
METHOD_CARD = "card"
METHOD_TRANSFER = "transfer"
PAYMENT_METHODS = (METHOD_CASH, METHOD_CARD, METHOD_TRANSFER)

SOURCE_PAYMENT = "payment"
SOURCE_DEALER_LOAD = "dealer_load"

_DEBTOR_COLUMNS = {
    debt_service.DEBTOR_CUSTOMER: "customer_id",
    debt_service.DEBTOR_DEALER: "dealer_id",
    debt_service.DEBTOR_DEALER_CUSTOMER: "dealer_customer_id",
}


def check_actor_scope(actor: Actor, debtor_type: str, debtor) -> None:
    if debtor_type == debt_service.DEBTOR_CUSTOMER:
        ensure_actor_is(actor, ACTOR_CUSTOMER, debtor.id, label="Customer")
    elif debtor_type == debt_service.DEBTOR_DEALER:
        ensure_actor_is(actor, ACTOR_DEALER, debtor.id, label="Dealer")
    else:
        # Sub-customer payments are collected by the owning dealer
        if actor.is_customer:
            raise UnknownEntity("DealerCustomer not found", details={"dealercustomer_id": debtor.id})
        ensure_actor_is(actor, ACTOR_DEALER, debtor.dealer_id, label="DealerCustomer")


def record_payment(
    tenant_id: int,
    actor: Actor,
    debtor_type: str,
    debtor,
    amount: Decimal,
    *,
    method: str = METHOD_CASH,
    source: str = SOURCE_PAYMENT,
    reference: str | None = None,
    notes: str | None = None,
) -> Payment:
    """
    Insert a Payment and reduce the (already locked) debtor's balance.

    Runs inside the caller's ledger transaction; raises ExcessPayment (or
    InsufficientDealerCustomerBalance) before writing anything when amount
    exceeds the balance.
    """
    debt_service.ensure_within_balance(debtor_type, debtor, amount)

    payment = Payment(
        tenant_id=tenant_id,
        type=debtor_type,
        amount=amount,
        method=method,
        source=source,
        reference=reference,
        notes=notes,
        created_by_type=actor.kind,
        created_by_id=actor.id,
    )
    setattr(payment, _DEBTOR_COLUMNS[debtor_type], debtor.id)
    if debtor_type == debt_service.DEBTOR_DEALER_CUSTOMER:
        payment.dealer_id = debtor.dealer_id

    db.session.add(payment)
    db.session.flush()
    debt_service.reduce(
        tenant_id, debtor_type, debtor, amount,
        kind=debt_service.KIND_PAYMENT,
        payment_id=payment.id,
        reference=reference,
    )
    return payment


def apply_payment(
    tenant_id: int,
    actor: Actor,
    debtor_type: str,
    debtor_id: int,
    amount,
    method: str = METHOD_CASH,
    notes: str | None = None,
) -> Payment:
    """
    Record a debt payment.

    Raises:
        ValidationError: amount <= 0, unknown method/debtor type
        UnknownEntity: debtor not in this tenant (or not the actor's own)
        ExcessPayment: amount larger than the current debt
        InsufficientDealerCustomerBalance: same, for a dealer sub-customer
    """
    require_choice(debtor_type, PAYMENT_TYPES, "type")
    require_choice(method, PAYMENT_METHODS, "method")
    amount = parse_money(amount, "amount", allow_zero=False)

    def _op(tx):
        require_tenant(tenant_id)
        debtor = debt_service.get_debtor(tenant_id, debtor_type, debtor_id, lock=True)
        check_actor_scope(actor, debtor_type, debtor)

        payment = record_payment(
            tenant_id, actor, debtor_type, debtor, amount,
            method=method, notes=notes,
        )

        append_ledger_event(
            tenant_id=tenant_id,
            event_type="payment.recorded",
            entity_type="payment",
            entity_id=payment.id,
            actor=actor,
            payload={
                "debtor_type": debtor_type,
                "debtor_id": debtor.id,
                "amount": amount,
                "method": method,
                "debt_after": debtor.debt,
            },
        )
        tx.after_commit(dispatch, "payment.recorded", tenant_id, {
            "payment_id": payment.id,
            "debtor_type": debtor_type,
            "debtor_id": debtor.id,
            "amount": str(amount),
        })
        return payment

    payment = run_in_ledger_transaction(_op, name="payment.apply")
    logger.info("Payment %s recorded: %s %s amount=%s", payment.id, debtor_type, debtor_id, amount)
    return payment


def list_payments(
    tenant_id: int,
    *,
    debtor_type: str | None = None,
    debtor_id: int | None = None,
    limit: int = 100,
) -> list[Payment]:
    q = db.session.query(Payment).filter(Payment.tenant_id == tenant_id)
    if debtor_type:
        require_choice(debtor_type, PAYMENT_TYPES, "type")
        q = q.filter(Payment.type == debtor_type)
        if debtor_id is not None:
            q = q.filter(getattr(Payment, _DEBTOR_COLUMNS[debtor_type]) == debtor_id)
    return q.order_by(Payment.id.desc()).limit(limit).all()
