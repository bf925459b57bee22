from portfolio_ledger.services.balance_reconciliation import (
    BalanceReconciliationService,
    ReconcilePlan,
    ReconcileRow,
    ReconcileTarget,
)
from portfolio_ledger.services.cost_basis import (
    CostBasisEngine,
    RecalcResult,
    coerce_mode,
    recalc_cost_basis,
)
from portfolio_ledger.services.cost_basis_snapshots import (
    CostBasisSnapshotService,
    RecalcSummary,
    allocate_by_quantity,
)
from portfolio_ledger.services.sync_jobs import (
    AccountSyncer,
    EnqueueResult,
    ProcessResult,
    SyncJobQueue,
)
from portfolio_ledger.services.transaction_applier import TransactionApplier
from portfolio_ledger.services.transfer_matching import (
    TransferMatcher,
    build_transfer_key,
    group_transfers,
)
from portfolio_ledger.services.transfer_review import (
    ResolutionResult,
    TransferIssueView,
    TransferReviewService,
)

__all__ = [
    "AccountSyncer",
    "BalanceReconciliationService",
    "CostBasisEngine",
    "CostBasisSnapshotService",
    "EnqueueResult",
    "ProcessResult",
    "RecalcResult",
    "RecalcSummary",
    "ReconcilePlan",
    "ReconcileRow",
    "ReconcileTarget",
    "ResolutionResult",
    "SyncJobQueue",
    "TransactionApplier",
    "TransferIssueView",
    "TransferMatcher",
    "TransferReviewService",
    "allocate_by_quantity",
    "build_transfer_key",
    "coerce_mode",
    "group_transfers",
    "recalc_cost_basis",
]
