"""Fixed-point money arithmetic on integer minor units (cents)"""

from decimal import Decimal, ROUND_HALF_UP
from typing import List

from tradecredit.domain.exceptions import InvalidInput

HUNDRED = Decimal(100)
PERCENT_STEP = Decimal("0.01")  # matches the Numeric(5, 2) storage columns


def to_percent(value) -> Decimal:
    """Coerce a percentage to Decimal and check it lies in [0, 100] with at most two decimals"""
    try:
        percent = Decimal(str(value))
    except ArithmeticError as e:
        raise InvalidInput(f"Invalid percentage: {value!r}") from e
    if not percent.is_finite() or percent < 0 or percent > HUNDRED:
        raise InvalidInput(f"Percentage must be between 0 and 100, got {value}")
    if percent != percent.quantize(PERCENT_STEP):
        raise InvalidInput(f"Percentage allows at most two decimal places, got {value}")
    return percent


def apply_percent(amount_cents: int, percent: Decimal) -> int:
    """
    Apply a percentage to an amount, rounding half-up to whole cents.

    Example:
        apply_percent(20000, Decimal("30")) -> 6000
        apply_percent(1001, Decimal("12.5")) -> 125  (125.125 rounds down)
    """
    exact = Decimal(amount_cents) * to_percent(percent) / HUNDRED
    return int(exact.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def split_with_remainder(total_cents: int, parts: int) -> List[int]:
    """
    Split an amount into `parts` floor shares; the last share absorbs the remainder.

    Example:
        14000 / 3 -> [4666, 4666, 4668]
    """
    if parts <= 0:
        raise InvalidInput("Cannot split an amount into zero parts")
    if total_cents < 0:
        raise InvalidInput("Cannot split a negative amount")

    base = total_cents // parts
    shares = [base] * parts
    shares[-1] = total_cents - base * (parts - 1)
    return shares


def format_cents(amount_cents: int, currency: str = "USD") -> str:
    """Render minor units for human-facing messages, e.g. 'USD 500.00'"""
    sign = "-" if amount_cents < 0 else ""
    major, minor = divmod(abs(amount_cents), 100)
    return f"{currency} {sign}{major:,}.{minor:02d}"
