"""Decimal helpers shared by the cost-basis engine and ledger entry checks.

Every numeric field coming from storage or user input goes through
``to_decimal`` first. It never raises: anything that is not a finite number
comes back as ``None`` and callers treat that as "unknown".
"""

import math
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from decimal import (
    Decimal,
    DivisionByZero,
    InvalidOperation,
    Overflow,
    localcontext,
)

from portfolio_ledger.config import DEFAULT_CASH_LIKE_SYMBOLS
from portfolio_ledger.domain.transactions import AssetInfo, NumericInput
from portfolio_ledger.domain.value_objects import AssetType, VolatilityBucket

ZERO = Decimal("0")

DEFAULT_VALUATION_ABS_TOLERANCE = Decimal("0.000001")
DEFAULT_VALUATION_REL_TOLERANCE = Decimal("0.0025")

# Totals this small are compared for "both near zero" instead of relatively
NEAR_ZERO_VALUE = Decimal("1e-7")

_CASH_LIKE_TYPES = {AssetType.CASH.value, AssetType.STABLE.value}


def to_decimal(value: NumericInput) -> Decimal | None:
    """Convert a string, number or decimal-like object to a finite Decimal.

    Returns None for None, blank strings, booleans, unparseable text,
    NaN and infinities.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        return Decimal(str(value))

    text = value.strip() if isinstance(value, str) else str(value).strip()
    if not text:
        return None
    try:
        parsed = Decimal(text)
    except (InvalidOperation, ValueError):
        return None
    return parsed if parsed.is_finite() else None


@contextmanager
def lenient_arithmetic() -> Iterator[None]:
    """Make Decimal overflow yield Infinity and invalid operations NaN.

    Values near the edge of Decimal's exponent range are finite on input
    but can overflow once multiplied or divided. Results computed in this
    block must be checked with ``finite_or_none`` before use.
    """
    with localcontext() as ctx:
        ctx.traps[Overflow] = False
        ctx.traps[InvalidOperation] = False
        ctx.traps[DivisionByZero] = False
        yield


def finite_or_none(value: Decimal) -> Decimal | None:
    return value if value.is_finite() else None


def is_cash_like(
    asset: AssetInfo, cash_like_symbols: Iterable[str] | None = None
) -> bool:
    """Whether an asset is valued at one base-currency unit per unit held."""
    symbols = {
        s.upper()
        for s in (
            DEFAULT_CASH_LIKE_SYMBOLS if cash_like_symbols is None else cash_like_symbols
        )
    }
    asset_type = (asset.type or "").strip().upper()
    bucket = (asset.volatility_bucket or "").strip().upper()
    symbol = (asset.symbol or "").strip().upper()
    return (
        asset_type in _CASH_LIKE_TYPES
        or bucket == VolatilityBucket.CASH_LIKE.value
        or symbol in symbols
    )


def valuation_consistent(
    quantity: NumericInput,
    unit_price: NumericInput,
    total_value: NumericInput,
    abs_tolerance: Decimal = DEFAULT_VALUATION_ABS_TOLERANCE,
    rel_tolerance: Decimal = DEFAULT_VALUATION_REL_TOLERANCE,
) -> bool:
    """Check that ``quantity * unit_price`` agrees with ``total_value``.

    Missing price fields impose no constraint. The relative tolerance
    (0.25% by default) absorbs rounding and fee noise in entered trades.
    """
    price = to_decimal(unit_price)
    total = to_decimal(total_value)
    qty = to_decimal(quantity)
    if price is None or total is None or qty is None:
        return True

    with lenient_arithmetic():
        expected = qty * price
        if abs(total) < NEAR_ZERO_VALUE:
            return abs(expected) < NEAR_ZERO_VALUE
        # An overflowing product or difference is never consistent
        difference = finite_or_none(abs(expected - total))
        allowed = max(abs_tolerance, rel_tolerance * abs(total))
    return difference is not None and difference <= allowed


def derive_missing_valuation(
    quantity: NumericInput,
    unit_price: NumericInput,
    total_value: NumericInput,
) -> tuple[Decimal | None, Decimal | None]:
    """Fill in whichever of unit price / total value is missing.

    Only derives when exactly one of the two is present and the quantity is
    a nonzero number. Signs are preserved.
    """
    qty = to_decimal(quantity)
    price = to_decimal(unit_price)
    total = to_decimal(total_value)

    if qty is None or qty == ZERO:
        return price, total
    with lenient_arithmetic():
        if price is None and total is not None:
            return finite_or_none(total / qty), total
        if total is None and price is not None:
            return price, finite_or_none(qty * price)
    return price, total


def transaction_value(
    quantity: NumericInput,
    total_value: NumericInput,
    unit_price: NumericInput,
) -> Decimal | None:
    """Absolute base-currency value of a row, or None when it cannot be known."""
    total = to_decimal(total_value)
    if total is not None:
        return abs(total)

    price = to_decimal(unit_price)
    qty = to_decimal(quantity)
    if price is not None and qty is not None and qty != ZERO:
        with lenient_arithmetic():
            return finite_or_none(abs(price * qty))
    return None


__all__ = [
    "ZERO",
    "to_decimal",
    "lenient_arithmetic",
    "finite_or_none",
    "is_cash_like",
    "valuation_consistent",
    "derive_missing_valuation",
    "transaction_value",
]
