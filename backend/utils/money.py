"""
Fixed-point money helpers.

Amounts travel through the engine as Decimal and are stored as integer
cents. Floats are converted through str() so 12.1 stays 12.10, not
12.0999999.
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

CENT = Decimal("0.01")


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            amount = Decimal(str(value))
        except (InvalidOperation, ValueError):
            raise ValueError(f"Invalid monetary amount: {value!r}")
    if not amount.is_finite():
        raise ValueError(f"Invalid monetary amount: {value!r}")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def to_cents(value) -> int:
    return int(to_decimal(value) * 100)


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(CENT)


def format_money(cents: int) -> str:
    """Render cents as a two-place decimal string ("50.00")."""
    return str(from_cents(cents))
