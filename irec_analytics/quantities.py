"""
String-Encoded Quantity Helpers
===============================

The explorer layer hands us supplies and prices as decimal strings so large
token counts (wei-scale, 10^18 base units per token) never pass through a
float. These helpers turn them into Python ints / Decimals and back without
raising on bad input.

Quantities are capped at MAX_QUANTITY_DIGITS digits, enough for any uint256
amount; anything larger is treated as degraded input. Money arithmetic runs in
a local decimal context wide enough for those quantities times a price.
"""

from decimal import Decimal, InvalidOperation, ROUND_DOWN, ROUND_HALF_UP, localcontext
from typing import Any, Iterable, Optional

CENTS = Decimal("0.01")

# 2**256 - 1 has 78 digits
MAX_QUANTITY_DIGITS = 78
MONEY_PRECISION = 2 * MAX_QUANTITY_DIGITS + 4


def parse_decimal(value: Any) -> Optional[Decimal]:
    """Parse a decimal-ish value, returning None when it is unusable"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        parsed = value
    else:
        text = str(value).strip().replace(",", "").replace("_", "")
        if not text:
            return None
        try:
            parsed = Decimal(text)
        except (InvalidOperation, ValueError):
            return None
    if not parsed.is_finite():
        return None
    return parsed


def parse_quantity(value: Any) -> int:
    """
    Parse a token quantity.

    Unparsable, missing, negative or absurdly large (more than
    MAX_QUANTITY_DIGITS digits) values degrade to 0. Fractional quantities
    are truncated toward zero.
    """
    parsed = parse_decimal(value)
    if parsed is None or parsed < 0:
        return 0
    # checked before int() so "1e3000000" never materializes a huge integer
    if parsed.adjusted() >= MAX_QUANTITY_DIGITS:
        return 0
    return int(parsed.to_integral_value(rounding=ROUND_DOWN))


def parse_price(value: Any, default: Decimal = Decimal("40")) -> Decimal:
    """Parse a unit price, falling back to `default` for bad, non-positive or oversized input"""
    parsed = parse_decimal(value)
    if parsed is None or parsed <= 0 or parsed.adjusted() >= MAX_QUANTITY_DIGITS:
        return default
    return parsed


def to_money(value: Decimal) -> Decimal:
    """Round to cents; precision grows with the value so large totals quantize cleanly"""
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, value.adjusted() + 3)
        return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def value_of(quantity: int, price: Decimal) -> Decimal:
    """quantity * price in cents, exact for any parseable quantity"""
    with localcontext() as ctx:
        ctx.prec = MONEY_PRECISION
        return to_money(Decimal(quantity) * price)


def sum_money(values: Iterable[Decimal]) -> Decimal:
    with localcontext() as ctx:
        ctx.prec = MONEY_PRECISION
        return to_money(sum(values, Decimal("0")))


def share_of(quantity: int, share: float) -> int:
    """`share` (a fraction) of `quantity`, rounded down"""
    with localcontext() as ctx:
        ctx.prec = MONEY_PRECISION
        return int(Decimal(quantity) * Decimal(str(share)))


def format_quantity(value: int) -> str:
    return str(int(value))


def format_money(value: Decimal) -> str:
    return f"{to_money(value):f}"
