# Overview: Consignment flows between the warehouse, dealers and dealer customers.

"""
Consignment Engine

WHY: Dealers take goods on consignment, sell them on to their own customers
and bring back what they could not sell. Each movement changes up to four
ledgers (central stock, dealer holdings, dealer debt, sub-customer debt) and
must land atomically.

FLOWS:
- load:   warehouse -> dealer. Central stock down, holdings up, dealer debt
          up by the unpaid part, plus a Payment for the paid part.
- sell:   dealer -> end customer. Holdings down; central stock and dealer
          debt untouched. An unpaid remainder becomes sub-customer debt.
- return: dealer -> warehouse. Holdings down, central stock up, dealer debt
          credited at current product prices (floored at zero).

LOCK ORDER: dealer row, then sub-customer, then products ascending by id,
then holdings. The dealer row lock also serializes creation of new
DealerInventory rows for that dealer.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy import update

from ..context import ACTOR_DEALER, Actor
from ..errors import InsufficientDealerStock, UnknownEntity, ValidationError
from ..extensions import db
from ..models import Dealer, DealerCustomer, DealerInventory, DealerTransaction, Payment, Product
from ..validation import ZERO, aggregate_quantities, parse_line_items, parse_optional_money, quantize, require_choice
from . import debt_service, stock_service
from .concurrency import lock_for_update, run_in_ledger_transaction
from .ledger_service import append_ledger_event
from .notification_service import dispatch
from .payment_service import METHOD_CASH, PAYMENT_METHODS, SOURCE_DEALER_LOAD, record_payment
from .tenant_service import ensure_actor_is, ensure_staff, get_scoped, get_scoped_many, require_tenant


logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

TX_LOAD = "load"
TX_SELL = "sell"
TX_RETURN = "return"
TX_TYPES = (TX_LOAD, TX_SELL, TX_RETURN)

LOAD_CASH = "cash"
LOAD_DEBT = "debt"
LOAD_PARTIAL = "partial"
LOAD_PAYMENT_TYPES = (LOAD_CASH, LOAD_DEBT, LOAD_PARTIAL)


@dataclass
class ConsignmentResult:
    """Outcome of one consignment operation (one batch)."""
    batch_ref: str
    dealer: Dealer
    transactions: list[DealerTransaction] = field(default_factory=list)
    total: Decimal = ZERO
    paid_amount: Decimal = ZERO
    debt_change: Decimal = ZERO
    payment: Payment | None = None
    dealer_customer: DealerCustomer | None = None

    def to_dict(self) -> dict:
        return {
            "batch_ref": self.batch_ref,
            "dealer": self.dealer.to_dict(),
            "transactions": [t.to_dict() for t in self.transactions],
            "total": str(self.total),
            "paid_amount": str(self.paid_amount),
            "debt_change": str(self.debt_change),
            "payment": self.payment.to_dict() if self.payment else None,
            "dealer_customer": self.dealer_customer.to_dict() if self.dealer_customer else None,
        }


def _new_batch_ref() -> str:
    return uuid.uuid4().hex


def _get_dealer(tenant_id: int, actor: Actor, dealer_id: int, *, lock: bool = False, require_active: bool = True) -> Dealer:
    ensure_actor_is(actor, ACTOR_DEALER, dealer_id, label="Dealer")
    if actor.is_customer:
        raise UnknownEntity("Dealer not found", details={"dealer_id": dealer_id})
    dealer = get_scoped(Dealer, tenant_id, dealer_id, label="Dealer", lock=lock)
    if require_active and not dealer.is_active:
        raise ValidationError("Dealer is inactive", details={"dealer_id": dealer_id})
    return dealer


def _holdings(tenant_id: int, dealer_id: int, product_ids, *, lock: bool = False) -> dict[int, DealerInventory]:
    wanted = sorted(set(product_ids))
    query = (
        db.session.query(DealerInventory)
        .filter(
            DealerInventory.tenant_id == tenant_id,
            DealerInventory.dealer_id == dealer_id,
            DealerInventory.product_id.in_(wanted),
        )
        .order_by(DealerInventory.product_id.asc())
    )
    if lock:
        query = lock_for_update(query)
    return {row.product_id: row for row in query.all()}


def _check_holdings(holdings: dict[int, DealerInventory], totals: dict[int, int], dealer_id: int) -> None:
    shortages = []
    for product_id, qty in totals.items():
        held = holdings[product_id].quantity if product_id in holdings else 0
        if held < qty:
            shortages.append({"product_id": product_id, "requested": qty, "available": held})
    if shortages:
        raise InsufficientDealerStock(
            "Insufficient dealer stock",
            details={"dealer_id": dealer_id, "items": shortages},
        )


def _take_from_holding(tenant_id: int, dealer_id: int, product_id: int, qty: int) -> None:
    """Guarded decrement of a dealer holding (quantity >= qty)."""
    stmt = (
        update(DealerInventory)
        .where(
            DealerInventory.tenant_id == tenant_id,
            DealerInventory.dealer_id == dealer_id,
            DealerInventory.product_id == product_id,
            DealerInventory.quantity >= qty,
        )
        .values(quantity=DealerInventory.quantity - qty)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if result.rowcount != 1:
        raise InsufficientDealerStock(
            "Insufficient dealer stock",
            details={"dealer_id": dealer_id, "items": [{"product_id": product_id, "requested": qty}]},
        )


def _expire_holdings(holdings: dict[int, DealerInventory]) -> None:
    for row in holdings.values():
        db.session.expire(row, ["quantity"])


def _dealer_tx(tenant_id: int, actor: Actor, dealer: Dealer, tx_type: str, batch_ref: str,
               product_id: int, qty: int, price: Decimal, **extra) -> DealerTransaction:
    row = DealerTransaction(
        tenant_id=tenant_id,
        dealer_id=dealer.id,
        product_id=product_id,
        type=tx_type,
        batch_ref=batch_ref,
        quantity=qty,
        price=price,
        total=quantize(price * qty),
        created_by_type=actor.kind,
        created_by_id=actor.id,
        **extra,
    )
    db.session.add(row)
    return row


# =============================================================================
# LOAD
# =============================================================================

def _resolve_load_payment(payment_type: str, total: Decimal, paid: Decimal | None) -> Decimal:
    if payment_type == LOAD_CASH:
        if paid is not None and paid != total:
            raise ValidationError(
                "Cash loads are paid in full",
                details={"total": str(total), "paid_amount": str(paid)},
            )
        return total
    if payment_type == LOAD_DEBT:
        if paid:
            raise ValidationError("Debt loads take no payment; use partial")
        return ZERO
    if paid is None or not (ZERO < paid < total):
        raise ValidationError(
            "Partial payment must be greater than 0 and less than the load total",
            details={"total": str(total), "paid_amount": str(paid) if paid is not None else None},
        )
    return paid


def load_to_dealer(
    tenant_id: int,
    actor: Actor,
    dealer_id: int,
    items,
    payment_type: str = LOAD_DEBT,
    paid_amount=None,
    method: str = METHOD_CASH,
    notes: str | None = None,
) -> ConsignmentResult:
    """
    Move goods from the warehouse to a dealer.

    Every line is priced at the product's current price. The dealer's debt
    grows by total - paid; the paid part is recorded as a Payment.

    Raises:
        ValidationError: bad quantities, payment policy violated
        UnknownEntity: dealer/product not in this tenant (or a non-staff actor)
        InsufficientStock: central stock short for any product
    """
    ensure_staff(actor, label="Dealer", entity_id=dealer_id)
    lines = parse_line_items(items)
    require_choice(payment_type, LOAD_PAYMENT_TYPES, "payment_type")
    require_choice(method, PAYMENT_METHODS, "method")
    paid = parse_optional_money(paid_amount, "paid_amount")

    def _op(tx):
        require_tenant(tenant_id)
        dealer = _get_dealer(tenant_id, actor, dealer_id, lock=True)
        products = stock_service.check_availability(tenant_id, lines)

        total = sum((quantize(products[line.product_id].price * line.quantity) for line in lines), ZERO)
        paid_now = _resolve_load_payment(payment_type, total, paid)

        batch_ref = _new_batch_ref()
        result = ConsignmentResult(batch_ref=batch_ref, dealer=dealer, total=total, paid_amount=paid_now)

        holdings = _holdings(tenant_id, dealer.id, products.keys(), lock=True)
        for line in lines:
            product = products[line.product_id]
            stock_service.reserve(tenant_id, product.id, line.quantity)

            holding = holdings.get(product.id)
            if holding is None:
                holding = DealerInventory(tenant_id=tenant_id, dealer_id=dealer.id, product_id=product.id, quantity=0)
                db.session.add(holding)
                holdings[product.id] = holding
            holding.quantity = (holding.quantity or 0) + line.quantity

            result.transactions.append(_dealer_tx(
                tenant_id, actor, dealer, TX_LOAD, batch_ref,
                product.id, line.quantity, product.price, notes=notes,
            ))

        # Accrue the full load, then settle the paid part, so the journal shows both
        debt_service.accrue(tenant_id, debt_service.DEBTOR_DEALER, dealer, total, reference=batch_ref)
        if paid_now > ZERO:
            result.payment = record_payment(
                tenant_id, actor, debt_service.DEBTOR_DEALER, dealer, paid_now,
                method=method, source=SOURCE_DEALER_LOAD, reference=batch_ref, notes=notes,
            )
        result.debt_change = total - paid_now

        db.session.flush()
        append_ledger_event(
            tenant_id=tenant_id,
            event_type="dealer.loaded",
            entity_type="dealer",
            entity_id=dealer.id,
            actor=actor,
            note=notes,
            payload={
                "batch_ref": batch_ref,
                "payment_type": payment_type,
                "total": total,
                "paid_amount": paid_now,
                "items": [{"product_id": line.product_id, "quantity": line.quantity} for line in lines],
            },
        )
        tx.after_commit(dispatch, "dealer.loaded", tenant_id, {
            "dealer_id": dealer.id,
            "batch_ref": batch_ref,
            "total": str(total),
            "paid_amount": str(paid_now),
        })
        return result

    result = run_in_ledger_transaction(_op, name="dealer.load")
    logger.info("Dealer %s loaded: batch=%s total=%s paid=%s", dealer_id, result.batch_ref, result.total, result.paid_amount)
    return result


# =============================================================================
# SELL
# =============================================================================

def sell_from_dealer(
    tenant_id: int,
    actor: Actor,
    dealer_id: int,
    items,
    customer_name: str | None = None,
    customer_phone: str | None = None,
    dealer_customer_id: int | None = None,
    paid_amount=None,
    notes: str | None = None,
) -> ConsignmentResult:
    """
    Record a dealer's sale to an end customer.

    Lines may carry their own price; otherwise the product price applies.
    paid_amount defaults to the full total. Any unpaid remainder is added to
    the referenced dealer customer's debt.

    Raises:
        ValidationError: bad quantities, paid > total, unpaid with no dealer customer
        UnknownEntity: dealer/product/dealer customer not found
        InsufficientDealerStock: the dealer holds fewer units than requested
    """
    lines = parse_line_items(items, allow_price=True)
    paid = parse_optional_money(paid_amount, "paid_amount")

    def _op(tx):
        require_tenant(tenant_id)
        dealer = _get_dealer(tenant_id, actor, dealer_id, lock=True)

        dealer_customer = None
        if dealer_customer_id is not None:
            dealer_customer = get_scoped(
                DealerCustomer, tenant_id, dealer_customer_id, label="DealerCustomer", lock=True,
            )
            if dealer_customer.dealer_id != dealer.id:
                raise UnknownEntity("DealerCustomer not found", details={"dealercustomer_id": dealer_customer_id})

        totals = aggregate_quantities(lines)
        products = get_scoped_many(Product, tenant_id, totals.keys(), label="Product")
        holdings = _holdings(tenant_id, dealer.id, totals.keys(), lock=True)
        _check_holdings(holdings, totals, dealer.id)

        priced = [(line, line.price if line.price is not None else products[line.product_id].price) for line in lines]
        total = sum((quantize(price * line.quantity) for line, price in priced), ZERO)
        paid_now = total if paid is None else paid
        if paid_now > total:
            raise ValidationError(
                "paid_amount cannot exceed the sale total",
                details={"total": str(total), "paid_amount": str(paid_now)},
            )
        unpaid = total - paid_now
        if unpaid > ZERO and dealer_customer is None:
            raise ValidationError(
                "An unpaid remainder requires a dealer customer",
                details={"total": str(total), "paid_amount": str(paid_now)},
            )

        name = customer_name or (dealer_customer.full_name if dealer_customer else None)
        phone = customer_phone or (dealer_customer.phone if dealer_customer else None)

        batch_ref = _new_batch_ref()
        result = ConsignmentResult(
            batch_ref=batch_ref, dealer=dealer, total=total, paid_amount=paid_now,
            dealer_customer=dealer_customer,
        )
        for line, price in priced:
            _take_from_holding(tenant_id, dealer.id, line.product_id, line.quantity)
            result.transactions.append(_dealer_tx(
                tenant_id, actor, dealer, TX_SELL, batch_ref,
                line.product_id, line.quantity, price,
                customer_name=name,
                customer_phone=phone,
                dealer_customer_id=dealer_customer.id if dealer_customer else None,
                notes=notes,
            ))
        _expire_holdings(holdings)

        if unpaid > ZERO:
            debt_service.accrue(
                tenant_id, debt_service.DEBTOR_DEALER_CUSTOMER, dealer_customer, unpaid, reference=batch_ref,
            )
            result.debt_change = unpaid

        db.session.flush()
        append_ledger_event(
            tenant_id=tenant_id,
            event_type="dealer.sold",
            entity_type="dealer",
            entity_id=dealer.id,
            actor=actor,
            note=notes,
            payload={
                "batch_ref": batch_ref,
                "total": total,
                "paid_amount": paid_now,
                "dealer_customer_id": dealer_customer.id if dealer_customer else None,
            },
        )
        tx.after_commit(dispatch, "dealer.sold", tenant_id, {
            "dealer_id": dealer.id,
            "batch_ref": batch_ref,
            "total": str(total),
        })
        return result

    result = run_in_ledger_transaction(_op, name="dealer.sell")
    logger.info("Dealer %s sold: batch=%s total=%s", dealer_id, result.batch_ref, result.total)
    return result


# =============================================================================
# RETURN
# =============================================================================

def return_from_dealer(
    tenant_id: int,
    actor: Actor,
    dealer_id: int,
    items,
    notes: str | None = None,
) -> ConsignmentResult:
    """
    Bring goods back from a dealer to the warehouse.

    The dealer's debt is credited with sum(current price * qty), floored at
    zero; debt_change carries the (negative) amount actually credited.

    Raises:
        ValidationError: bad quantities
        UnknownEntity: dealer/product not in this tenant
        InsufficientDealerStock: the dealer holds fewer units than requested
    """
    lines = parse_line_items(items)

    def _op(tx):
        require_tenant(tenant_id)
        dealer = _get_dealer(tenant_id, actor, dealer_id, lock=True)

        totals = aggregate_quantities(lines)
        products = get_scoped_many(Product, tenant_id, totals.keys(), label="Product", lock=True)
        holdings = _holdings(tenant_id, dealer.id, totals.keys(), lock=True)
        _check_holdings(holdings, totals, dealer.id)

        value = sum((quantize(products[line.product_id].price * line.quantity) for line in lines), ZERO)

        batch_ref = _new_batch_ref()
        result = ConsignmentResult(batch_ref=batch_ref, dealer=dealer, total=value)
        for line in lines:
            product = products[line.product_id]
            _take_from_holding(tenant_id, dealer.id, product.id, line.quantity)
            stock_service.restore(tenant_id, product.id, line.quantity)
            result.transactions.append(_dealer_tx(
                tenant_id, actor, dealer, TX_RETURN, batch_ref,
                product.id, line.quantity, product.price, notes=notes,
            ))
        _expire_holdings(holdings)

        credited = debt_service.reduce(
            tenant_id, debt_service.DEBTOR_DEALER, dealer, value,
            kind=debt_service.KIND_RETURN_CREDIT, floor=True, reference=batch_ref,
        )
        result.debt_change = -credited

        db.session.flush()
        append_ledger_event(
            tenant_id=tenant_id,
            event_type="dealer.returned",
            entity_type="dealer",
            entity_id=dealer.id,
            actor=actor,
            note=notes,
            payload={"batch_ref": batch_ref, "value": value, "credited": credited},
        )
        tx.after_commit(dispatch, "dealer.returned", tenant_id, {
            "dealer_id": dealer.id,
            "batch_ref": batch_ref,
            "value": str(value),
            "credited": str(credited),
        })
        return result

    result = run_in_ledger_transaction(_op, name="dealer.return")
    logger.info("Dealer %s returned: batch=%s value=%s", dealer_id, result.batch_ref, result.total)
    return result


# =============================================================================
# READS
# =============================================================================

def get_dealer_inventory(tenant_id: int, actor: Actor, dealer_id: int, *, include_empty: bool = False) -> list[DealerInventory]:
    _get_dealer(tenant_id, actor, dealer_id, require_active=False)
    q = db.session.query(DealerInventory).filter_by(tenant_id=tenant_id, dealer_id=dealer_id)
    if not include_empty:
        q = q.filter(DealerInventory.quantity > 0)
    return q.order_by(DealerInventory.product_id.asc()).all()


def list_dealer_transactions(
    tenant_id: int,
    actor: Actor,
    dealer_id: int,
    *,
    tx_type: str | None = None,
    batch_ref: str | None = None,
    limit: int = 100,
) -> list[DealerTransaction]:
    _get_dealer(tenant_id, actor, dealer_id, require_active=False)
    q = db.session.query(DealerTransaction).filter_by(tenant_id=tenant_id, dealer_id=dealer_id)
    if tx_type:
        require_choice(tx_type, TX_TYPES, "type")
        q = q.filter(DealerTransaction.type == tx_type)
    if batch_ref:
        q = q.filter(DealerTransaction.batch_ref == batch_ref)
    return q.order_by(DealerTransaction.id.desc()).limit(limit).all()
