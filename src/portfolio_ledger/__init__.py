from portfolio_ledger.domain.positions import Position, PositionKey
from portfolio_ledger.domain.transactions import AssetInfo, LedgerTransaction
from portfolio_ledger.domain.value_objects import RecalcMode, TransferIssue, TxType
from portfolio_ledger.services.cost_basis import (
    CostBasisEngine,
    RecalcResult,
    recalc_cost_basis,
)

__all__ = [
    "AssetInfo",
    "CostBasisEngine",
    "LedgerTransaction",
    "Position",
    "PositionKey",
    "RecalcMode",
    "RecalcResult",
    "TransferIssue",
    "TxType",
    "recalc_cost_basis",
]

__version__ = "0.1.0"
