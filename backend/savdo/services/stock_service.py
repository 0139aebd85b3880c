# Overview: Central warehouse stock ledger; the only writer of Product.stock.

from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import func, update

from ..errors import InsufficientStock, UnknownEntity, ValidationError
from ..extensions import db
from ..models import DealerInventory, Product
from ..validation import LineItem, aggregate_quantities, parse_quantity
from .tenant_service import get_scoped, get_scoped_many

"""
Savdo Stock Invariants (authoritative)

- Product.stock >= 0 at every commit point (also a CHECK constraint).
- reserve() is a guarded decrement: UPDATE ... WHERE stock >= qty. If the row
  did not match, nothing changed and InsufficientStock is raised, so a stale
  read can never drive stock negative.
- restore() is an unconditional increment.
- Multi-line callers run check_availability() first: quantities are summed
  per product and every line is validated before any row is mutated.
- Dealer-held units live in DealerInventory and are never counted here.
"""

logger = logging.getLogger(__name__)


def _refresh_stock(product_id: int) -> None:
    # Bulk UPDATE bypasses the identity map; drop any cached stock value.
    key = db.session.identity_key(Product, product_id)
    product = db.session.identity_map.get(key)
    if product is not None:
        db.session.expire(product, ["stock"])


def _shortage(product: Product, requested: int) -> dict:
    return {
        "product_id": product.id,
        "product_name": product.name,
        "requested": requested,
        "available": product.stock,
    }


def check_availability(tenant_id: int, items: Iterable[LineItem], *, lock: bool = True) -> dict[int, Product]:
    """
    Validate that central stock covers every line (aggregated per product).

    Returns the products keyed by id. Raises UnknownEntity for products not in
    this tenant, ValidationError for inactive ones, InsufficientStock listing
    every short product.
    """
    totals = aggregate_quantities(items)
    products = get_scoped_many(Product, tenant_id, totals.keys(), label="Product", lock=lock)

    inactive = [pid for pid, product in products.items() if not product.is_active]
    if inactive:
        raise ValidationError("Product is inactive", details={"product_ids": inactive})

    shortages = [
        _shortage(products[pid], qty)
        for pid, qty in totals.items()
        if products[pid].stock < qty
    ]
    if shortages:
        raise InsufficientStock("Insufficient stock", details={"items": shortages})
    return products


def reserve(tenant_id: int, product_id: int, qty: int) -> None:
    """Decrement central stock by qty, only if at least qty is on hand."""
    qty = parse_quantity(qty)
    stmt = (
        update(Product)
        .where(
            Product.id == product_id,
            Product.tenant_id == tenant_id,
            Product.stock >= qty,
        )
        .values(stock=Product.stock - qty)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if result.rowcount != 1:
        product = get_scoped(Product, tenant_id, product_id, label="Product")
        db.session.refresh(product, ["stock"])
        raise InsufficientStock(
            "Insufficient stock",
            details={"items": [_shortage(product, qty)]},
        )
    _refresh_stock(product_id)


def restore(tenant_id: int, product_id: int, qty: int) -> None:
    """Increment central stock by qty."""
    qty = parse_quantity(qty)
    stmt = (
        update(Product)
        .where(Product.id == product_id, Product.tenant_id == tenant_id)
        .values(stock=Product.stock + qty)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if result.rowcount != 1:
        raise UnknownEntity("Product not found", details={"product_id": product_id})
    _refresh_stock(product_id)


def list_low_stock(tenant_id: int) -> list[Product]:
    """Active products at or below their min_stock threshold."""
    return (
        db.session.query(Product)
        .filter(
            Product.tenant_id == tenant_id,
            Product.is_active.is_(True),
            Product.stock <= Product.min_stock,
        )
        .order_by(Product.stock.asc(), Product.id.asc())
        .all()
    )


def get_stock_position(tenant_id: int, product_id: int) -> dict:
    """
    Central and dealer-held quantities of one product.

    Central stock and dealer holdings are disjoint; total is their sum.
    """
    product = get_scoped(Product, tenant_id, product_id, label="Product")
    dealer_rows = (
        db.session.query(DealerInventory.dealer_id, DealerInventory.quantity)
        .filter(
            DealerInventory.tenant_id == tenant_id,
            DealerInventory.product_id == product_id,
            DealerInventory.quantity > 0,
        )
        .order_by(DealerInventory.dealer_id.asc())
        .all()
    )
    dealer_total = sum(row.quantity for row in dealer_rows)
    return {
        "product_id": product.id,
        "central": product.stock,
        "dealers": [{"dealer_id": row.dealer_id, "quantity": row.quantity} for row in dealer_rows],
        "dealer_total": dealer_total,
        "total": product.stock + dealer_total,
        "is_low_stock": product.is_low_stock,
    }


def total_central_stock(tenant_id: int) -> int:
    return int(
        db.session.query(func.coalesce(func.sum(Product.stock), 0))
        .filter(Product.tenant_id == tenant_id)
        .scalar()
        or 0
    )
