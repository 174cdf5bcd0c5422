"""
Monetary value helpers.

Single-currency ledger: amounts are plain Decimals rounded to cents with
ROUND_HALF_UP. NEVER uses float for monetary values.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from typing import Union

from .errors import InvalidAmount

# High precision for intermediate interest calculations
getcontext().prec = 28

CENT = Decimal('0.01')
ZERO = Decimal('0.00')

AmountLike = Union[Decimal, int, str, float]


def to_decimal(value: AmountLike) -> Decimal:
    """Convert input to Decimal, going through str for floats"""
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise InvalidAmount(f"Not a valid amount: {value!r}")


def quantize_money(value: AmountLike) -> Decimal:
    """Round to monetary precision"""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def positive_amount(value: AmountLike) -> Decimal:
    """Parse a money movement amount, rejecting anything not strictly positive"""
    amount = to_decimal(value)
    if not amount.is_finite() or amount <= Decimal('0'):
        raise InvalidAmount(f"Amount must be positive, got {value}")
    amount = quantize_money(amount)
    if amount <= Decimal('0'):
        raise InvalidAmount(f"Amount rounds to zero: {value}")
    return amount


def format_money(value: Decimal) -> str:
    """Format for display"""
    return f"${value:,.2f}"
