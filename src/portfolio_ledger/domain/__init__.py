from portfolio_ledger.domain.diagnostics import (
    DiagnosticsCollector,
    TransferDiagnostic,
    TransferKey,
)
from portfolio_ledger.domain.entities import Account, Asset
from portfolio_ledger.domain.positions import Position, PositionKey, PositionLedger
from portfolio_ledger.domain.sync_jobs import SyncJob, SyncResult
from portfolio_ledger.domain.transactions import AssetInfo, LedgerTransaction
from portfolio_ledger.domain.value_objects import (
    RecalcMode,
    SyncJobStatus,
    SyncMode,
    TransferIssue,
    TxType,
)

__all__ = [
    "Account",
    "Asset",
    "AssetInfo",
    "DiagnosticsCollector",
    "LedgerTransaction",
    "Position",
    "PositionKey",
    "PositionLedger",
    "RecalcMode",
    "SyncJob",
    "SyncJobStatus",
    "SyncMode",
    "SyncResult",
    "TransferDiagnostic",
    "TransferIssue",
    "TransferKey",
    "TxType",
]
