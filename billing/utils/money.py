from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any

from billing.core.errors import InvalidInput

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: Any) -> Decimal:
    """Coerce a number or numeric string to a 2-dp Decimal, rounding half-up."""
    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            # str() keeps floats like 0.1 from dragging binary noise along
            amount = Decimal(str(value))
        except (InvalidOperation, ValueError, TypeError):
            raise InvalidInput(f"Invalid monetary amount: {value!r}")
    if not amount.is_finite():
        raise InvalidInput(f"Invalid monetary amount: {value!r}")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def positive_money(value: Any, field: str = "amount") -> Decimal:
    if value is None:
        raise InvalidInput(f"{field} is required")
    amount = to_money(value)
    if amount <= ZERO:
        raise InvalidInput(f"{field} must be greater than zero")
    return amount


def split_installments(principal: Decimal, installments: int) -> Decimal:
    return to_money(principal / Decimal(installments))


def clamp(value: Decimal, low: Decimal, high: Decimal) -> Decimal:
    return max(low, min(value, high))
