"""
Money helpers.

All amounts in the ledger are DECIMAL(10, 2). Values coming from JSON bodies,
scripts or tests are normalized here so the services only ever see
quantized Decimals.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from core.constants import MAX_MONEY_AMOUNT, MONEY_PLACES
from core.exceptions import ValidationError


def to_money(value: Any, field: str = "amount") -> Decimal:
    """
    Convert a value to a 2-place Decimal.

    Floats go through str() so 0.1 becomes Decimal("0.1") rather than its
    binary expansion.

    Raises:
        ValidationError: If the value is not a finite number, has more than
            two decimal places, or does not fit DECIMAL(10, 2)
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number", details={"field": field, "value": str(value)})

    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number", details={"field": field, "value": str(value)})

    if not amount.is_finite():
        raise ValidationError(f"{field} must be a finite number", details={"field": field, "value": str(value)})

    if abs(amount) > MAX_MONEY_AMOUNT:
        raise ValidationError(
            f"{field} exceeds the maximum of {MAX_MONEY_AMOUNT}",
            details={"field": field, "value": str(value)}
        )

    quantized = amount.quantize(MONEY_PLACES, rounding=ROUND_HALF_UP)
    if quantized != amount:
        raise ValidationError(
            f"{field} must have at most two decimal places",
            details={"field": field, "value": str(value)}
        )

    return quantized


def from_db(value: Any) -> Decimal:
    """Normalize a value read back from the database (None for empty SUMs)."""
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value)).quantize(MONEY_PLACES, rounding=ROUND_HALF_UP)


def line_total(quantity: int, price: Decimal) -> Decimal:
    """Total of one ledger line: quantity x price snapshot."""
    return (Decimal(quantity) * from_db(price)).quantize(MONEY_PLACES, rounding=ROUND_HALF_UP)
