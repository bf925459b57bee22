"""Transfer grouping keys and the anomaly records produced while pairing legs.

A TransferKey clusters the candidate legs of one internal transfer. Legs
carrying a ``MATCH:`` reference are grouped by asset and reference alone;
all others must also share the exact timestamp.
"""

from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from portfolio_ledger.domain.transactions import LedgerTransaction
from portfolio_ledger.domain.value_objects import TransferIssue


@dataclass(frozen=True, slots=True)
class TransferKey:
    """Composite grouping key; ``date_time`` is None for manual matches."""

    asset_id: int
    date_time: datetime | None
    reference: str

    def __str__(self) -> str:
        if self.date_time is None:
            return f"{self.asset_id}|{self.reference}"
        return f"{self.asset_id}|{self.date_time.isoformat()}|{self.reference}"


@dataclass(frozen=True, slots=True)
class TransferDiagnostic:
    """One problematic transfer group found during a recalculation run."""

    key: TransferKey
    asset_id: int
    date_time: datetime
    issue: TransferIssue
    leg_ids: tuple[int, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": str(self.key),
            "asset_id": self.asset_id,
            "date_time": self.date_time.isoformat(),
            "issue": self.issue.value,
            "leg_ids": list(self.leg_ids),
        }


class DiagnosticsCollector:
    """Ordered accumulator of transfer diagnostics for a single run."""

    def __init__(self) -> None:
        self._items: list[TransferDiagnostic] = []

    def record(
        self,
        key: TransferKey,
        group: Sequence[LedgerTransaction],
        issue: TransferIssue,
    ) -> TransferDiagnostic:
        representative = group[0]
        diagnostic = TransferDiagnostic(
            key=key,
            asset_id=representative.asset_id,
            date_time=representative.date_time,
            issue=issue,
            leg_ids=tuple(leg.id for leg in group),
        )
        self._items.append(diagnostic)
        return diagnostic

    @property
    def items(self) -> list[TransferDiagnostic]:
        return list(self._items)

    def by_issue(self) -> dict[TransferIssue, list[TransferDiagnostic]]:
        grouped: dict[TransferIssue, list[TransferDiagnostic]] = {}
        for diagnostic in self._items:
            grouped.setdefault(diagnostic.issue, []).append(diagnostic)
        return grouped

    def __iter__(self) -> Iterator[TransferDiagnostic]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)


__all__ = ["TransferKey", "TransferDiagnostic", "DiagnosticsCollector"]
