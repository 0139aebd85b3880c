# Overview: Sale lifecycle state machine for POS sales and portal orders.

"""
Savdo Sale Lifecycle Service

================================================================================
PURPOSE: Create sales with their stock/debt effects and move them through the
delivery lifecycle, undoing those effects on cancellation.
================================================================================

STATE MACHINE:
    pending -> completed -> delivering -> shipped -> delivered
    pending | completed | delivering -> cancelled

    pending:    portal order placed; stock already reserved, debt accrued
    completed:  POS sales start here; portal orders after confirmation
    delivering: Delivery record created (optionally dealer-assigned)
    shipped / delivered: bookkeeping only, mirrored onto the Delivery
    cancelled:  stock restored per item, accrued debt reversed (floored at 0)

RULES (NON-NEGOTIABLE):
1. Every edge not listed above raises InvalidTransition, including unknown
   target states and anything out of shipped/delivered/cancelled.
2. The status write and its ledger effects commit together or not at all.
3. SaleItem rows are immutable; only Sale.status and the Delivery change.
4. POS sales and staff transitions need an employee. Customers may only
   cancel their own pending orders; dealers only advance deliveries
   assigned to them.

PAYMENT TYPES:
- cash / card: paid in full; no debt
- debt:        0 <= paid < total, customer required, debt += total - paid
- partial:     0 < paid < total, customer required, debt += total - paid
================================================================================
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal

from ..context import ACTOR_CUSTOMER, ACTOR_DEALER, Actor
from ..errors import InvalidTransition, UnknownEntity, ValidationError
from ..extensions import db
from ..models import Customer, Dealer, Delivery, Sale, SaleItem
from ..time_utils import utcnow
from ..validation import ZERO, parse_id, parse_line_items, parse_money, parse_optional_money, quantize, require_choice
from . import debt_service, stock_service
from .concurrency import run_in_ledger_transaction
from .ledger_service import append_ledger_event
from .notification_service import dispatch
from .tenant_service import ensure_actor_is, ensure_staff, get_scoped, require_tenant


logger = logging.getLogger(__name__)


STATUS_PENDING = "pending"
STATUS_COMPLETED = "completed"
STATUS_DELIVERING = "delivering"
STATUS_SHIPPED = "shipped"
STATUS_DELIVERED = "delivered"
STATUS_CANCELLED = "cancelled"

SALE_STATUSES = (
    STATUS_PENDING,
    STATUS_COMPLETED,
    STATUS_DELIVERING,
    STATUS_SHIPPED,
    STATUS_DELIVERED,
    STATUS_CANCELLED,
)

TRANSITIONS: dict[str, frozenset[str]] = {
    STATUS_PENDING: frozenset({STATUS_COMPLETED, STATUS_CANCELLED}),
    STATUS_COMPLETED: frozenset({STATUS_DELIVERING, STATUS_CANCELLED}),
    STATUS_DELIVERING: frozenset({STATUS_SHIPPED, STATUS_CANCELLED}),
    STATUS_SHIPPED: frozenset({STATUS_DELIVERED}),
    STATUS_DELIVERED: frozenset(),
    STATUS_CANCELLED: frozenset(),
}

# Edges open to non-staff actors, on their own sales only
CUSTOMER_TRANSITIONS: dict[str, frozenset[str]] = {
    STATUS_PENDING: frozenset({STATUS_CANCELLED}),
}
DEALER_TRANSITIONS: dict[str, frozenset[str]] = {
    STATUS_DELIVERING: frozenset({STATUS_SHIPPED}),
    STATUS_SHIPPED: frozenset({STATUS_DELIVERED}),
}

CHANNEL_POS = "pos"
CHANNEL_PORTAL = "portal"
CHANNELS = (CHANNEL_POS, CHANNEL_PORTAL)

PAY_CASH = "cash"
PAY_CARD = "card"
PAY_DEBT = "debt"
PAY_PARTIAL = "partial"
PAYMENT_TYPES = (PAY_CASH, PAY_CARD, PAY_DEBT, PAY_PARTIAL)


def allowed_transitions(status: str) -> tuple[str, ...]:
    """Target states reachable from status, in lifecycle order."""
    targets = TRANSITIONS.get(status, frozenset())
    return tuple(s for s in SALE_STATUSES if s in targets)


def can_transition(from_status: str, to_status: str) -> bool:
    return to_status in TRANSITIONS.get(from_status, frozenset())


def _settle(payment_type: str, total: Decimal, paid: Decimal | None, customer: Customer | None) -> tuple[Decimal, Decimal]:
    """Return (paid, debt) for a sale of the given total."""
    if payment_type in (PAY_CASH, PAY_CARD):
        if paid is not None and paid < total:
            raise ValidationError(
                f"{payment_type} sales are paid in full; use partial or debt",
                details={"total": str(total), "paid_amount": str(paid)},
            )
        return total, ZERO

    if customer is None:
        raise ValidationError(f"A customer is required for {payment_type} sales")

    if payment_type == PAY_DEBT:
        paid = paid or ZERO
        if paid >= total:
            raise ValidationError(
                "Debt sales must leave an unpaid remainder",
                details={"total": str(total), "paid_amount": str(paid)},
            )
        return paid, total - paid

    if paid is None or not (ZERO < paid < total):
        raise ValidationError(
            "Partial payment must be greater than 0 and less than the sale total",
            details={"total": str(total), "paid_amount": str(paid) if paid is not None else None},
        )
    return paid, total - paid


def create_sale(
    tenant_id: int,
    actor: Actor,
    items,
    channel: str = CHANNEL_POS,
    customer_id: int | None = None,
    discount=0,
    payment_type: str = PAY_CASH,
    paid_amount=None,
) -> Sale:
    """
    Create a POS sale (status completed) or portal order (status pending).

    Stock is validated for every line before any decrement; debt for
    debt/partial sales is accrued in the same transaction.

    Raises:
        ValidationError: bad lines, discount > subtotal, payment policy violated
        UnknownEntity: product/customer not in this tenant
        InsufficientStock: any product short
    """
    require_choice(channel, CHANNELS, "channel")
    require_choice(payment_type, PAYMENT_TYPES, "payment_type")
    lines = parse_line_items(items, allow_price=(channel == CHANNEL_POS))
    discount_amount = parse_money(discount if discount is not None else 0, "discount")
    paid = parse_optional_money(paid_amount, "paid_amount")
    if customer_id is not None:
        customer_id = parse_id(customer_id, "customer_id")

    if actor.is_customer:
        if channel != CHANNEL_PORTAL:
            raise ValidationError("Customers can only place portal orders")
        customer_id = customer_id or actor.id
    else:
        ensure_staff(actor, label="Sale")
    if channel == CHANNEL_PORTAL and customer_id is None:
        raise ValidationError("Portal orders require a customer")

    def _op(tx):
        require_tenant(tenant_id)

        # Customer row first, then products (ascending id)
        customer = None
        if customer_id is not None:
            ensure_actor_is(actor, ACTOR_CUSTOMER, customer_id, label="Customer")
            customer = get_scoped(Customer, tenant_id, customer_id, label="Customer", lock=True)
            if not customer.is_active:
                raise ValidationError("Customer is inactive", details={"customer_id": customer_id})

        products = stock_service.check_availability(tenant_id, lines)

        priced = [(line, line.price if line.price is not None else products[line.product_id].price) for line in lines]
        subtotal = sum((quantize(price * line.quantity) for line, price in priced), ZERO)
        if discount_amount > subtotal:
            raise ValidationError(
                "Discount cannot exceed the subtotal",
                details={"subtotal": str(subtotal), "discount": str(discount_amount)},
            )
        total = subtotal - discount_amount
        paid_now, debt = _settle(payment_type, total, paid, customer)

        now = utcnow()
        sale = Sale(
            tenant_id=tenant_id,
            customer_id=customer.id if customer else None,
            channel=channel,
            status=STATUS_PENDING if channel == CHANNEL_PORTAL else STATUS_COMPLETED,
            subtotal_amount=subtotal,
            discount=discount_amount,
            total_amount=total,
            paid_amount=paid_now,
            debt_amount=debt,
            payment_type=payment_type,
            created_by_type=actor.kind,
            created_by_id=actor.id,
            status_changed_at=now,
        )
        db.session.add(sale)
        db.session.flush()

        for line, price in priced:
            stock_service.reserve(tenant_id, line.product_id, line.quantity)
            db.session.add(SaleItem(
                sale_id=sale.id,
                product_id=line.product_id,
                quantity=line.quantity,
                price=price,
                total=quantize(price * line.quantity),
            ))

        if debt > ZERO:
            debt_service.accrue(
                tenant_id, debt_service.DEBTOR_CUSTOMER, customer, debt, sale_id=sale.id,
            )

        db.session.flush()
        event_type = "order.placed" if channel == CHANNEL_PORTAL else "sale.completed"
        append_ledger_event(
            tenant_id=tenant_id,
            event_type=event_type,
            entity_type="sale",
            entity_id=sale.id,
            actor=actor,
            payload={
                "channel": channel,
                "payment_type": payment_type,
                "total": total,
                "paid_amount": paid_now,
                "debt_amount": debt,
                "customer_id": sale.customer_id,
            },
        )
        tx.after_commit(dispatch, event_type, tenant_id, {
            "sale_id": sale.id,
            "status": sale.status,
            "total": str(total),
            "customer_id": sale.customer_id,
        })
        return sale

    sale = run_in_ledger_transaction(_op, name="sale.create")
    logger.info("Sale %s created: channel=%s total=%s", sale.id, channel, sale.total_amount)
    return sale


def _apply_cancellation(tenant_id: int, sale: Sale, customer: Customer | None) -> Decimal:
    """Restore stock per item and reverse the debt this sale accrued."""
    for item in sorted(sale.items, key=lambda i: (i.product_id, i.id)):
        stock_service.restore(tenant_id, item.product_id, item.quantity)

    reversed_amount = ZERO
    if customer is not None and Decimal(sale.debt_amount or 0) > ZERO:
        reversed_amount = debt_service.reduce(
            tenant_id, debt_service.DEBTOR_CUSTOMER, customer, sale.debt_amount,
            kind=debt_service.KIND_CANCEL_REVERSAL, floor=True, sale_id=sale.id,
        )

    if sale.delivery is not None:
        sale.delivery.status = STATUS_CANCELLED
    sale.cancelled_at = utcnow()
    return reversed_amount


def _ensure_delivery(tenant_id: int, sale: Sale, dealer_id: int | None, address: str | None, notes: str | None) -> Delivery:
    if dealer_id is not None:
        get_scoped(Dealer, tenant_id, dealer_id, label="Dealer")

    delivery = sale.delivery
    if delivery is None:
        delivery = Delivery(
            tenant_id=tenant_id,
            sale=sale,
            customer_id=sale.customer_id,
            dealer_id=dealer_id,
            address=address or (sale.customer.address if sale.customer else None),
            status="pending",
            notes=notes,
        )
        db.session.add(delivery)
    return delivery


def _check_actor_edge(actor: Actor, sale: Sale, to_status: str) -> None:
    """
    Confine non-staff actors on the lifecycle.

    A customer may only cancel its own pending order. A dealer may only
    advance a delivery assigned to it. Anything else of theirs is an
    InvalidTransition; someone else's sale is UnknownEntity.
    """
    if actor.is_customer:
        owned = sale.customer_id == actor.id
        edges = CUSTOMER_TRANSITIONS
    elif actor.kind == ACTOR_DEALER:
        owned = sale.delivery is not None and sale.delivery.dealer_id == actor.id
        edges = DEALER_TRANSITIONS
    else:
        return

    if not owned:
        raise UnknownEntity("Sale not found", details={"sale_id": sale.id})
    targets = edges.get(sale.status, frozenset())
    if to_status not in targets:
        raise InvalidTransition(
            f"Cannot move sale from {sale.status} to {to_status}",
            details={
                "sale_id": sale.id,
                "from": sale.status,
                "to": to_status,
                "allowed": [s for s in SALE_STATUSES if s in targets],
            },
        )


def transition_sale(
    tenant_id: int,
    actor: Actor,
    sale_id: int,
    to_status: str,
    dealer_id: int | None = None,
    address: str | None = None,
    notes: str | None = None,
) -> Sale:
    """
    Move a sale to to_status, applying that edge's ledger effects.

    Raises:
        InvalidTransition: edge not in the state machine (or not open to this actor)
        UnknownEntity: sale (or delivery dealer) not in this tenant
    """
    def _op(tx):
        require_tenant(tenant_id)
        sale = get_scoped(Sale, tenant_id, sale_id, label="Sale", lock=True)
        _check_actor_edge(actor, sale, to_status)

        from_status = sale.status
        if not can_transition(from_status, to_status):
            raise InvalidTransition(
                f"Cannot move sale from {from_status} to {to_status}",
                details={
                    "sale_id": sale.id,
                    "from": from_status,
                    "to": to_status,
                    "allowed": list(allowed_transitions(from_status)),
                },
            )

        payload: dict = {"from": from_status, "to": to_status}
        if to_status == STATUS_CANCELLED:
            customer = None
            if sale.customer_id is not None:
                customer = get_scoped(Customer, tenant_id, sale.customer_id, label="Customer", lock=True)
            payload["debt_reversed"] = _apply_cancellation(tenant_id, sale, customer)
        elif to_status == STATUS_DELIVERING:
            delivery = _ensure_delivery(tenant_id, sale, dealer_id, address, notes)
            payload["dealer_id"] = delivery.dealer_id
        elif sale.delivery is not None:
            sale.delivery.status = to_status

        sale.status = to_status
        sale.status_changed_at = utcnow()
        db.session.flush()

        append_ledger_event(
            tenant_id=tenant_id,
            event_type=f"sale.{to_status}",
            entity_type="sale",
            entity_id=sale.id,
            actor=actor,
            note=notes,
            payload=payload,
        )
        tx.after_commit(dispatch, f"sale.{to_status}", tenant_id, {
            "sale_id": sale.id,
            "from": from_status,
            "to": to_status,
            "customer_id": sale.customer_id,
        })
        return sale

    sale = run_in_ledger_transaction(_op, name=f"sale.{to_status}")
    logger.info("Sale %s moved to %s", sale_id, to_status)
    return sale


def cancel_sale(tenant_id: int, actor: Actor, sale_id: int, reason: str | None = None) -> Sale:
    return transition_sale(tenant_id, actor, sale_id, STATUS_CANCELLED, notes=reason)


def get_sale(tenant_id: int, sale_id: int, actor: Actor | None = None) -> Sale:
    sale = get_scoped(Sale, tenant_id, sale_id, label="Sale")
    if actor is not None and actor.is_customer and sale.customer_id != actor.id:
        raise UnknownEntity("Sale not found", details={"sale_id": sale_id})
    return sale


def list_sales(
    tenant_id: int,
    *,
    status: str | None = None,
    customer_id: int | None = None,
    channel: str | None = None,
    since: datetime | None = None,
    limit: int = 100,
) -> list[Sale]:
    q = db.session.query(Sale).filter(Sale.tenant_id == tenant_id)
    if status:
        require_choice(status, SALE_STATUSES, "status")
        q = q.filter(Sale.status == status)
    if customer_id is not None:
        q = q.filter(Sale.customer_id == customer_id)
    if channel:
        require_choice(channel, CHANNELS, "channel")
        q = q.filter(Sale.channel == channel)
    if since is not None:
        q = q.filter(Sale.created_at >= since)
    return q.order_by(Sale.id.desc()).limit(limit).all()
