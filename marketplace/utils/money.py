"""Money helpers shared by the discount engine and order assembly."""
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Iterable, Union

CENT = Decimal('0.01')
ZERO = Decimal('0.00')

MoneyLike = Union[Decimal, int, float, str]


def to_decimal(value: MoneyLike) -> Decimal:
    """
    Convert a number to Decimal without binary float artifacts.

    Floats go through str() first, so 1.005 becomes Decimal('1.005')
    instead of 1.00499999999999989...
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f'Invalid monetary value: {value!r}')
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValueError(f'Invalid monetary value: {value!r}')


def round_money(value: MoneyLike) -> Decimal:
    """
    Round to cents using round-half-up.

    round_money(1.005) == Decimal('1.01') and the function is idempotent.
    """
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def sum_money(values: Iterable[MoneyLike]) -> Decimal:
    """Exact sum of monetary values (no rounding applied)."""
    total = ZERO
    for value in values:
        total += to_decimal(value)
    return total


def format_money(value: MoneyLike) -> str:
    """Serialise a monetary value as a plain two-decimal string."""
    return f"{round_money(value):.2f}"
