# Overview: Purchase receiving from suppliers; increases central stock.

"""
Purchase Receiving Service

WHY: Goods bought from suppliers enter the warehouse here. Receiving is the
only inbound flow besides dealer returns.

RULES:
- Every line increases Product.stock by its quantity (unconditional).
- Every line overwrites Product.cost_price with its unit cost
  (last cost wins; no weighted average). When a product appears on several
  lines, the last line's cost is the one kept.
- Receiving never fails on stock grounds: only UnknownEntity or
  ValidationError.
- Staff only; dealer and customer actors get UnknownEntity.
- Purchase and PurchaseItem rows are written in the same transaction.
"""

from __future__ import annotations

import logging

from ..context import Actor
from ..errors import ValidationError
from ..extensions import db
from ..models import Product, Purchase, PurchaseItem, Supplier
from ..validation import ZERO, parse_id, parse_line_items, parse_optional_money, quantize
from . import stock_service
from .concurrency import run_in_ledger_transaction
from .ledger_service import append_ledger_event
from .notification_service import dispatch
from .tenant_service import ensure_staff, get_scoped, get_scoped_many, require_tenant


logger = logging.getLogger(__name__)


def receive_purchase(
    tenant_id: int,
    actor: Actor,
    items,
    supplier_id: int | None = None,
    paid_amount=None,
    notes: str | None = None,
) -> Purchase:
    """
    Receive goods: stock up, cost price overwritten, Purchase recorded.

    Each item needs product_id, quantity and cost_price.
    """
    ensure_staff(actor, label="Purchase")
    lines = parse_line_items(items, allow_price=True, price_field="cost_price")
    missing_cost = [index for index, line in enumerate(lines) if line.price is None]
    if missing_cost:
        raise ValidationError(
            "cost_price is required for every purchase line",
            details={"lines": missing_cost},
        )
    paid = parse_optional_money(paid_amount, "paid_amount")
    if supplier_id is not None:
        supplier_id = parse_id(supplier_id, "supplier_id")

    def _op(tx):
        require_tenant(tenant_id)
        if supplier_id is not None:
            get_scoped(Supplier, tenant_id, supplier_id, label="Supplier")

        products = get_scoped_many(
            Product, tenant_id, [line.product_id for line in lines], label="Product", lock=True,
        )

        total = sum((quantize(line.price * line.quantity) for line in lines), ZERO)
        paid_now = paid if paid is not None else ZERO
        if paid_now > total:
            raise ValidationError(
                "paid_amount cannot exceed the purchase total",
                details={"total": str(total), "paid_amount": str(paid_now)},
            )

        purchase = Purchase(
            tenant_id=tenant_id,
            supplier_id=supplier_id,
            total_amount=total,
            paid_amount=paid_now,
            notes=notes,
            created_by_type=actor.kind,
            created_by_id=actor.id,
        )
        db.session.add(purchase)
        db.session.flush()

        for line in lines:
            stock_service.restore(tenant_id, line.product_id, line.quantity)
            products[line.product_id].cost_price = line.price
            db.session.add(PurchaseItem(
                purchase_id=purchase.id,
                product_id=line.product_id,
                quantity=line.quantity,
                cost_price=line.price,
                total=quantize(line.price * line.quantity),
            ))

        db.session.flush()
        append_ledger_event(
            tenant_id=tenant_id,
            event_type="purchase.received",
            entity_type="purchase",
            entity_id=purchase.id,
            actor=actor,
            note=notes,
            payload={
                "supplier_id": supplier_id,
                "total": total,
                "items": [
                    {"product_id": line.product_id, "quantity": line.quantity, "cost_price": line.price}
                    for line in lines
                ],
            },
        )
        tx.after_commit(dispatch, "purchase.received", tenant_id, {
            "purchase_id": purchase.id,
            "total": str(total),
        })
        return purchase

    purchase = run_in_ledger_transaction(_op, name="purchase.receive")
    logger.info("Purchase %s received: total=%s", purchase.id, purchase.total_amount)
    return purchase


def get_purchase(tenant_id: int, purchase_id: int) -> Purchase:
    return get_scoped(Purchase, tenant_id, purchase_id, label="Purchase")


def list_purchases(tenant_id: int, *, supplier_id: int | None = None, limit: int = 100) -> list[Purchase]:
    q = db.session.query(Purchase).filter(Purchase.tenant_id == tenant_id)
    if supplier_id is not None:
        q = q.filter(Purchase.supplier_id == supplier_id)
    return q.order_by(Purchase.id.desc()).limit(limit).all()
