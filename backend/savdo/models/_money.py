from __future__ import annotations

from decimal import Decimal


def money_str(value: Decimal | None) -> str | None:
    """JSON form of a Numeric(12, 2) column; strings keep exact cents."""
    if value is None:
        return None
    return f"{Decimal(value):.2f}"
