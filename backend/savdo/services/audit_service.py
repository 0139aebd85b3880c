# Overview: Read-only invariant audit over one tenant's ledgers.

"""
Ledger Audit

Recomputes what the append-only logs say and compares it with the stored
balances. Used by `flask audit check` and GET /api/ledger/audit; never writes.

Checks:
- no negative stock, dealer holding or debt balance
- every dealer holding equals loads - sells - returns for that product
- every debtor's balance reconciles with its DebtEntry journal
"""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import case, func

from ..extensions import db
from ..models import Customer, DebtEntry, Dealer, DealerCustomer, DealerInventory, DealerTransaction, Product
from ..validation import quantize
from . import debt_service, stock_service
from .tenant_service import require_tenant


logger = logging.getLogger(__name__)


def _sum_debt(model, tenant_id: int) -> Decimal:
    value = (
        db.session.query(func.coalesce(func.sum(model.debt), 0))
        .filter(model.tenant_id == tenant_id)
        .scalar()
    )
    return quantize(Decimal(value or 0))


def summarize_tenant(tenant_id: int) -> dict:
    """Totals across the tenant's ledgers."""
    require_tenant(tenant_id)
    dealer_stock = (
        db.session.query(func.coalesce(func.sum(DealerInventory.quantity), 0))
        .filter(DealerInventory.tenant_id == tenant_id)
        .scalar()
    )
    central = stock_service.total_central_stock(tenant_id)
    return {
        "tenant_id": tenant_id,
        "central_stock": central,
        "dealer_stock": int(dealer_stock or 0),
        "total_units": central + int(dealer_stock or 0),
        "customer_debt": str(_sum_debt(Customer, tenant_id)),
        "dealer_debt": str(_sum_debt(Dealer, tenant_id)),
        "dealer_customer_debt": str(_sum_debt(DealerCustomer, tenant_id)),
        "low_stock_count": len(stock_service.list_low_stock(tenant_id)),
    }


def _negative_balances(tenant_id: int) -> list[dict]:
    violations = []
    for product in db.session.query(Product).filter(Product.tenant_id == tenant_id, Product.stock < 0):
        violations.append({"check": "negative_stock", "product_id": product.id, "stock": product.stock})

    for row in db.session.query(DealerInventory).filter(
        DealerInventory.tenant_id == tenant_id, DealerInventory.quantity < 0,
    ):
        violations.append({
            "check": "negative_dealer_stock",
            "dealer_id": row.dealer_id,
            "product_id": row.product_id,
            "quantity": row.quantity,
        })

    for debtor_type, (model, _label) in debt_service.DEBTOR_MODELS.items():
        for debtor in db.session.query(model).filter(model.tenant_id == tenant_id, model.debt < 0):
            violations.append({
                "check": "negative_debt",
                "debtor_type": debtor_type,
                "debtor_id": debtor.id,
                "debt": str(debtor.debt),
            })
    return violations


def _holding_mismatches(tenant_id: int) -> list[dict]:
    signed = case(
        (DealerTransaction.type == "load", DealerTransaction.quantity),
        else_=-DealerTransaction.quantity,
    )
    movements = {
        (row.dealer_id, row.product_id): int(row.net)
        for row in (
            db.session.query(
                DealerTransaction.dealer_id,
                DealerTransaction.product_id,
                func.sum(signed).label("net"),
            )
            .filter(DealerTransaction.tenant_id == tenant_id)
            .group_by(DealerTransaction.dealer_id, DealerTransaction.product_id)
            .all()
        )
    }
    holdings = {
        (row.dealer_id, row.product_id): row.quantity
        for row in db.session.query(DealerInventory).filter(DealerInventory.tenant_id == tenant_id)
    }

    violations = []
    for key in sorted(set(movements) | set(holdings)):
        expected = movements.get(key, 0)
        actual = holdings.get(key, 0)
        if expected != actual:
            violations.append({
                "check": "dealer_holding_mismatch",
                "dealer_id": key[0],
                "product_id": key[1],
                "expected": expected,
                "actual": actual,
            })
    return violations


def _journal_mismatches(tenant_id: int) -> list[dict]:
    debtors = (
        db.session.query(DebtEntry.debtor_type, DebtEntry.debtor_id)
        .filter(DebtEntry.tenant_id == tenant_id)
        .distinct()
        .order_by(DebtEntry.debtor_type, DebtEntry.debtor_id)
        .all()
    )
    violations = []
    for debtor_type, debtor_id in debtors:
        report = debt_service.reconcile_debtor(tenant_id, debtor_type, debtor_id)
        if not report["balanced"]:
            violations.append({"check": "debt_journal_mismatch", **report})
    return violations


def check_invariants(tenant_id: int) -> dict:
    """
    Run every check for one tenant.

    Returns {"ok": bool, "violations": [...], "summary": {...}}.
    """
    summary = summarize_tenant(tenant_id)
    violations = (
        _negative_balances(tenant_id)
        + _holding_mismatches(tenant_id)
        + _journal_mismatches(tenant_id)
    )
    if violations:
        logger.warning("Ledger audit for tenant %s found %d violation(s)", tenant_id, len(violations))
    return {"ok": not violations, "violations": violations, "summary": summary}
