"""
Numeric precision rules — isolated, testable, reusable.

Quantities and unit costs are stored with 4 decimal places. Totals
(quantity x unit cost) are presented with 2 places, but every sum is
computed at full precision and rounded only at the edge.

Examples:
    quantize_qty(Decimal('1.23456'))    # 1.2346
    quantize_cost(Decimal('2.666666'))  # 2.6667
    quantize_total(Decimal('14.995'))   # 15.00
"""

from decimal import ROUND_HALF_UP, Decimal

ZERO = Decimal('0')

QTY_PLACES = Decimal('0.0001')
COST_PLACES = Decimal('0.0001')
TOTAL_PLACES = Decimal('0.01')


def to_decimal(value) -> Decimal:
    """Coerce ints, strings and Decimals (never floats' binary noise)."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def quantize_qty(value) -> Decimal:
    return to_decimal(value).quantize(QTY_PLACES, rounding=ROUND_HALF_UP)


def quantize_cost(value) -> Decimal:
    return to_decimal(value).quantize(COST_PLACES, rounding=ROUND_HALF_UP)


def quantize_total(value) -> Decimal:
    return to_decimal(value).quantize(TOTAL_PLACES, rounding=ROUND_HALF_UP)


def weighted_cost(total_value: Decimal, total_qty: Decimal) -> Decimal:
    """Blended unit cost; zero when there is no quantity."""
    if total_qty <= 0:
        return ZERO
    return total_value / total_qty
