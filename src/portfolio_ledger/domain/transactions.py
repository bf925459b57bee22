"""Ledger transaction records consumed by the cost-basis engine."""

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from portfolio_ledger.domain.value_objects import MATCH_REFERENCE_PREFIX, TxType

# Raw numeric fields arrive as strings, numbers or decimal-like objects
NumericInput = str | int | float | Decimal | Any | None


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


@dataclass(frozen=True, slots=True)
class AssetInfo:
    """Classification fields used to decide whether an asset is cash-like."""

    type: str | None = None
    volatility_bucket: str | None = None
    symbol: str | None = None


@dataclass(frozen=True, slots=True)
class LedgerTransaction:
    """A single signed movement of one asset in one account.

    Numeric fields are kept in the shape the caller supplied; the engine
    parses them leniently so a malformed value degrades to "unknown" instead
    of failing the run.
    """

    id: int | None
    date_time: datetime
    account_id: int
    asset_id: int
    quantity: NumericInput
    tx_type: str
    external_reference: str | None = None
    unit_price_in_base: NumericInput = None
    total_value_in_base: NumericInput = None
    asset: AssetInfo = field(default_factory=AssetInfo)
    notes: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "date_time", ensure_utc(self.date_time))
        tx_type = self.tx_type
        if isinstance(tx_type, TxType):
            tx_type = tx_type.value
        object.__setattr__(self, "tx_type", str(tx_type).strip().upper())

    @property
    def reference(self) -> str:
        """External reference with surrounding whitespace removed."""
        return (self.external_reference or "").strip()

    @property
    def is_manual_match(self) -> bool:
        return self.reference.startswith(MATCH_REFERENCE_PREFIX)

    @property
    def sort_key(self) -> tuple[datetime, int]:
        return (self.date_time, self.id or 0)

    def with_changes(self, **changes: Any) -> "LedgerTransaction":
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)


__all__ = [
    "NumericInput",
    "ensure_utc",
    "AssetInfo",
    "LedgerTransaction",
]
