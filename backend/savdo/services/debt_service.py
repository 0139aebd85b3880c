# Overview: Debt balances of customers, dealers and dealer sub-customers, with their journal.

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import func

from ..errors import ExcessPayment, InsufficientDealerCustomerBalance, ValidationError
from ..extensions import db
from ..models import Customer, DebtEntry, Dealer, DealerCustomer
from ..validation import ZERO, quantize, require_choice
from .tenant_service import get_scoped

"""
Savdo Debt Invariants (authoritative)

- Every debt balance is >= 0 (also a CHECK constraint).
- Balances change only through accrue() / reduce(); each call appends a
  DebtEntry carrying the signed amount and the balance after it, in the same
  transaction as the balance write.
- Reconciliation: opening + SUM(accruals) - SUM(payments, reversals, credits)
  == current balance, where opening is the balance before the first entry.
- Callers lock the debtor row (get_debtor(lock=True)) before changing it.
"""

logger = logging.getLogger(__name__)

DEBTOR_CUSTOMER = "customer"
DEBTOR_DEALER = "dealer"
DEBTOR_DEALER_CUSTOMER = "dealer_customer"
DEBTOR_TYPES = (DEBTOR_CUSTOMER, DEBTOR_DEALER, DEBTOR_DEALER_CUSTOMER)

DEBTOR_MODELS = {
    DEBTOR_CUSTOMER: (Customer, "Customer"),
    DEBTOR_DEALER: (Dealer, "Dealer"),
    DEBTOR_DEALER_CUSTOMER: (DealerCustomer, "DealerCustomer"),
}

KIND_ACCRUAL = "accrual"
KIND_PAYMENT = "payment"
KIND_CANCEL_REVERSAL = "cancel_reversal"
KIND_RETURN_CREDIT = "return_credit"
REDUCTION_KINDS = (KIND_PAYMENT, KIND_CANCEL_REVERSAL, KIND_RETURN_CREDIT)


def get_debtor(tenant_id: int, debtor_type: str, debtor_id: int, *, lock: bool = False):
    require_choice(debtor_type, DEBTOR_TYPES, "debtor_type")
    model, label = DEBTOR_MODELS[debtor_type]
    return get_scoped(model, tenant_id, debtor_id, label=label, lock=lock)


def _balance(debtor) -> Decimal:
    return quantize(Decimal(debtor.debt or 0))


def _journal(tenant_id: int, debtor_type: str, debtor, kind: str, amount: Decimal, **refs) -> DebtEntry:
    entry = DebtEntry(
        tenant_id=tenant_id,
        debtor_type=debtor_type,
        debtor_id=debtor.id,
        kind=kind,
        amount=amount,
        balance_after=debtor.debt,
        sale_id=refs.get("sale_id"),
        payment_id=refs.get("payment_id"),
        reference=refs.get("reference"),
    )
    db.session.add(entry)
    return entry


def ensure_within_balance(debtor_type: str, debtor, amount: Decimal) -> None:
    """Raise ExcessPayment (InsufficientDealerCustomerBalance for sub-customers) if amount > debt."""
    current = _balance(debtor)
    if amount <= current:
        return
    error_cls = (
        InsufficientDealerCustomerBalance
        if debtor_type == DEBTOR_DEALER_CUSTOMER
        else ExcessPayment
    )
    raise error_cls(
        "Payment exceeds outstanding debt",
        details={
            "debtor_type": debtor_type,
            "debtor_id": debtor.id,
            "current_debt": str(current),
            "amount": str(quantize(Decimal(amount))),
        },
    )


def accrue(
    tenant_id: int,
    debtor_type: str,
    debtor,
    amount: Decimal,
    *,
    sale_id: int | None = None,
    reference: str | None = None,
) -> DebtEntry | None:
    """Increase a debtor's balance. Zero amounts are a no-op."""
    amount = quantize(Decimal(amount))
    if amount < ZERO:
        raise ValidationError("Debt accrual cannot be negative")
    if amount == ZERO:
        return None

    debtor.debt = _balance(debtor) + amount
    entry = _journal(tenant_id, debtor_type, debtor, KIND_ACCRUAL, amount, sale_id=sale_id, reference=reference)
    logger.info("Debt accrued: %s %s +%s -> %s", debtor_type, debtor.id, amount, debtor.debt)
    return entry


def reduce(
    tenant_id: int,
    debtor_type: str,
    debtor,
    amount: Decimal,
    *,
    kind: str,
    floor: bool = False,
    sale_id: int | None = None,
    payment_id: int | None = None,
    reference: str | None = None,
) -> Decimal:
    """
    Decrease a debtor's balance and return the amount actually applied.

    floor=True clamps at zero (cancellation reversals, return credits);
    otherwise an amount above the balance raises ExcessPayment.
    """
    require_choice(kind, REDUCTION_KINDS, "kind")
    amount = quantize(Decimal(amount))
    if amount < ZERO:
        raise ValidationError("Debt reduction cannot be negative")

    current = _balance(debtor)
    if amount > current:
        if not floor:
            ensure_within_balance(debtor_type, debtor, amount)
        amount = current

    if amount == ZERO:
        return ZERO

    debtor.debt = current - amount
    _journal(
        tenant_id, debtor_type, debtor, kind, -amount,
        sale_id=sale_id, payment_id=payment_id, reference=reference,
    )
    logger.info("Debt reduced (%s): %s %s -%s -> %s", kind, debtor_type, debtor.id, amount, debtor.debt)
    return amount


def get_debt_history(tenant_id: int, debtor_type: str, debtor_id: int, *, limit: int = 100) -> list[DebtEntry]:
    get_debtor(tenant_id, debtor_type, debtor_id)
    return (
        db.session.query(DebtEntry)
        .filter_by(tenant_id=tenant_id, debtor_type=debtor_type, debtor_id=debtor_id)
        .order_by(DebtEntry.id.desc())
        .limit(limit)
        .all()
    )


def reconcile_debtor(tenant_id: int, debtor_type: str, debtor_id: int) -> dict:
    """
    Recompute a debtor's balance from its journal and compare to the stored value.

    opening is the balance before the first journal entry (debt imported at
    creation); with no entries it equals the current balance.
    """
    debtor = get_debtor(tenant_id, debtor_type, debtor_id)
    current = _balance(debtor)

    base = db.session.query(DebtEntry).filter_by(
        tenant_id=tenant_id, debtor_type=debtor_type, debtor_id=debtor_id,
    )
    first = base.order_by(DebtEntry.id.asc()).first()

    sums = dict(
        db.session.query(DebtEntry.kind, func.coalesce(func.sum(DebtEntry.amount), 0))
        .filter_by(tenant_id=tenant_id, debtor_type=debtor_type, debtor_id=debtor_id)
        .group_by(DebtEntry.kind)
        .all()
    )
    accruals = quantize(Decimal(sums.get(KIND_ACCRUAL, 0)))
    payments = quantize(-Decimal(sums.get(KIND_PAYMENT, 0)))
    reversals = quantize(-Decimal(sums.get(KIND_CANCEL_REVERSAL, 0)))
    credits = quantize(-Decimal(sums.get(KIND_RETURN_CREDIT, 0)))

    if first is None:
        opening = current
    else:
        opening = quantize(Decimal(first.balance_after) - Decimal(first.amount))

    expected = opening + accruals - payments - reversals - credits
    return {
        "debtor_type": debtor_type,
        "debtor_id": debtor.id,
        "opening": str(opening),
        "accruals": str(accruals),
        "payments": str(payments),
        "reversals": str(reversals),
        "return_credits": str(credits),
        "expected": str(expected),
        "current": str(current),
        "balanced": expected == current,
    }
