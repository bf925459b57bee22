"""Exchange sync job records for the background sync queue."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from portfolio_ledger.domain.value_objects import (
    SyncJobStatus,
    SyncMode,
    SyncRequestedBy,
)


def _utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(UTC)


@dataclass
class SyncJob:
    """A request to pull trades and/or balances for one exchange account.

    ``claim_token`` is set while a worker holds the job in RUNNING and
    cleared when the job finishes or is requeued.
    """

    account_id: int
    exchange_id: str
    mode: SyncMode = SyncMode.TRADES
    requested_by: SyncRequestedBy = SyncRequestedBy.MANUAL
    since: datetime | None = None
    id: int | None = None
    status: SyncJobStatus = SyncJobStatus.QUEUED
    attempts: int = 0
    claim_token: str | None = None
    error_message: str | None = None
    result: dict[str, Any] | None = None
    created_at: datetime = field(default_factory=_utc_now)
    available_at: datetime = field(default_factory=_utc_now)
    started_at: datetime | None = None
    finished_at: datetime | None = None


@dataclass
class SyncResult:
    """Counts reported by an account syncer after one run."""

    created: int = 0
    updated: int = 0
    reconciled: int = 0
    last_sync_at: datetime = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "created": self.created,
            "updated": self.updated,
            "reconciled": self.reconciled,
            "last_sync_at": self.last_sync_at.isoformat(),
        }


__all__ = ["SyncJob", "SyncResult"]
