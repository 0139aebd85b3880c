from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable

from .errors import ValidationError


# Numeric(12, 2) ceiling
MAX_AMOUNT = Decimal("9999999999.99")
CENTS = Decimal("0.01")
ZERO = Decimal("0.00")


@dataclass(frozen=True)
class LineItem:
    """One (product, quantity[, unit price]) line of a multi-item ledger operation."""
    product_id: int
    quantity: int
    price: Decimal | None = None


def quantize(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def parse_id(value: Any, field: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer id")
    if isinstance(value, int):
        if value <= 0:
            raise ValidationError(f"{field} must be a positive id")
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return parse_id(int(value.strip()), field)
    raise ValidationError(f"{field} must be an integer id")


def parse_quantity(value: Any, field: str = "quantity") -> int:
    """
    Strict positive integer.

    Rejects bools, floats ("12.0" included), scientific notation and zero/negatives.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        qty = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            qty = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    elif isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    else:
        raise ValidationError(f"{field} must be an integer")

    if qty <= 0:
        raise ValidationError(f"{field} must be positive", details={"field": field, "value": qty})
    return qty


def parse_money(value: Any, field: str, *, allow_zero: bool = True) -> Decimal:
    """
    Parse a monetary amount into a 2dp Decimal.

    Floats go through str() so 0.1 becomes Decimal("0.1"), not its binary expansion.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} is required")
    try:
        if isinstance(value, Decimal):
            amount = value
        elif isinstance(value, (int, float)):
            amount = Decimal(str(value))
        elif isinstance(value, str) and value.strip():
            amount = Decimal(value.strip())
        else:
            raise ValidationError(f"{field} must be a number")
    except InvalidOperation:
        raise ValidationError(f"{field} must be a number")

    if not amount.is_finite():
        raise ValidationError(f"{field} must be a finite number")

    amount = quantize(amount)
    if amount < ZERO:
        raise ValidationError(f"{field} cannot be negative", details={"field": field})
    if amount == ZERO and not allow_zero:
        raise ValidationError(f"{field} must be positive", details={"field": field})
    if amount > MAX_AMOUNT:
        raise ValidationError(f"{field} exceeds maximum of {MAX_AMOUNT}")
    return amount


def parse_optional_money(value: Any, field: str, *, allow_zero: bool = True) -> Decimal | None:
    if value is None or value == "":
        return None
    return parse_money(value, field, allow_zero=allow_zero)


def require_choice(value: Any, choices: Iterable[str], field: str) -> str:
    allowed = tuple(choices)
    if value not in allowed:
        raise ValidationError(
            f"Invalid {field}. Must be one of: {', '.join(allowed)}",
            details={"field": field, "value": value},
        )
    return value


def parse_line_items(raw: Any, *, allow_price: bool = False, price_field: str = "price") -> list[LineItem]:
    """
    Normalize a request's items payload.

    Accepts LineItem instances or dicts with product_id/quantity[/price]. The same
    product may appear on several lines; callers aggregate per product when checking
    availability.
    """
    if not raw or not isinstance(raw, (list, tuple)):
        raise ValidationError("items are required")

    items: list[LineItem] = []
    for index, entry in enumerate(raw):
        if isinstance(entry, LineItem):
            product_id, quantity, price = entry.product_id, entry.quantity, entry.price
        elif isinstance(entry, dict):
            product_id = entry.get("product_id")
            quantity = entry.get("quantity")
            price = entry.get(price_field)
        else:
            raise ValidationError(f"items[{index}] must be an object")

        line = LineItem(
            product_id=parse_id(product_id, f"items[{index}].product_id"),
            quantity=parse_quantity(quantity, f"items[{index}].quantity"),
            price=None,
        )
        if price is not None:
            if not allow_price:
                raise ValidationError(f"items[{index}].{price_field} cannot be set for this operation")
            line = LineItem(
                product_id=line.product_id,
                quantity=line.quantity,
                price=parse_money(price, f"items[{index}].{price_field}"),
            )
        items.append(line)
    return items


def aggregate_quantities(items: Iterable[LineItem]) -> dict[int, int]:
    """Sum quantities per product, preserving first-seen order."""
    totals: dict[int, int] = {}
    for item in items:
        totals[item.product_id] = totals.get(item.product_id, 0) + item.quantity
    return totals
