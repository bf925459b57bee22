"""Weighted-average cost-basis recalculation over a ledger history.

The engine is a pure, synchronous pass over an in-memory list: rows are
sorted by ``(date_time, id)``, transfer legs are grouped up front, and the
history is replayed once. Positions and diagnostics are created fresh on
every call. Callers must hand over a snapshot of the rows; the list is not
re-read while the replay runs.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from decimal import Decimal

from portfolio_ledger.config import Settings, get_settings
from portfolio_ledger.domain.diagnostics import DiagnosticsCollector, TransferDiagnostic
from portfolio_ledger.domain.numbers import lenient_arithmetic
from portfolio_ledger.domain.positions import Position, PositionKey, PositionLedger
from portfolio_ledger.domain.transactions import LedgerTransaction
from portfolio_ledger.domain.value_objects import (
    ZERO_QUANTITY_EPSILON,
    RecalcMode,
    TxType,
)
from portfolio_ledger.exceptions import (
    InvalidRecalcModeError,
    InvalidTransactionListError,
)
from portfolio_ledger.logging_config import get_logger, log_context
from portfolio_ledger.services.transaction_applier import TransactionApplier
from portfolio_ledger.services.transfer_matching import (
    TransferMatcher,
    group_transfers,
)

logger = get_logger(__name__)


@dataclass
class RecalcResult:
    positions: dict[PositionKey, Position] = field(default_factory=dict)
    diagnostics: list[TransferDiagnostic] = field(default_factory=list)

    def get(self, asset_id: int, account_id: int) -> Position | None:
        return self.positions.get(PositionKey(asset_id, account_id))

    def known_positions(self) -> list[Position]:
        """Positions with a reliable cost basis and a non-negligible quantity."""
        return [
            p
            for p in self.positions.values()
            if p.cost_basis_known and abs(p.quantity) > ZERO_QUANTITY_EPSILON
        ]


def coerce_mode(mode: RecalcMode | str) -> RecalcMode:
    if isinstance(mode, RecalcMode):
        return mode
    try:
        return RecalcMode(str(mode).strip().upper())
    except ValueError as e:
        raise InvalidRecalcModeError(mode) from e


class CostBasisEngine:
    """Replays ledger rows into per-(asset, account) positions.

    Tolerances and the cash-like symbol list come from Settings unless
    given explicitly.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        abs_tolerance: Decimal | None = None,
        rel_tolerance: Decimal | None = None,
        cash_like_symbols: Sequence[str] | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._abs_tolerance = (
            abs_tolerance
            if abs_tolerance is not None
            else settings.transfer_match_abs_tolerance
        )
        self._rel_tolerance = (
            rel_tolerance
            if rel_tolerance is not None
            else settings.transfer_match_rel_tolerance
        )
        self._cash_like_symbols = (
            tuple(cash_like_symbols)
            if cash_like_symbols is not None
            else settings.cash_like_symbols
        )

    def recalculate(
        self,
        transactions: Sequence[LedgerTransaction],
        mode: RecalcMode | str = RecalcMode.PURE,
    ) -> RecalcResult:
        if not isinstance(transactions, (list, tuple)):
            raise InvalidTransactionListError(transactions)
        mode = coerce_mode(mode)

        ordered = sorted(transactions, key=lambda tx: tx.sort_key)

        ledger = PositionLedger()
        diagnostics = DiagnosticsCollector()
        applier = TransactionApplier(self._cash_like_symbols)
        matcher = TransferMatcher(
            applier,
            diagnostics,
            abs_tolerance=self._abs_tolerance,
            rel_tolerance=self._rel_tolerance,
        )

        groups = group_transfers(ordered)

        with log_context(recalc_mode=mode.value), lenient_arithmetic():
            for tx in ordered:
                if tx.tx_type == TxType.COST_BASIS_RESET:
                    # Resets are snapshots from an earlier run; PURE ignores them
                    if mode == RecalcMode.HONOR_RESETS:
                        applier.apply_reset(ledger, tx)
                elif tx.tx_type == TxType.RECONCILIATION:
                    applier.apply_reconciliation(ledger, tx)
                elif tx.tx_type == TxType.TRANSFER:
                    matcher.handle(ledger, tx, groups)
                else:
                    applier.apply(ledger, tx)

        for position in ledger:
            # Running sums can still overflow at the edge of Decimal's range
            if not (position.quantity.is_finite() and position.cost_basis.is_finite()):
                position.cost_basis_known = False

        logger.debug(
            "cost_basis_recalculated",
            mode=mode.value,
            transactions=len(ordered),
            transfer_groups=len(groups),
            positions=len(ledger),
            diagnostics=len(diagnostics),
        )
        return RecalcResult(positions=ledger.as_dict(), diagnostics=diagnostics.items)


def recalc_cost_basis(
    transactions: Sequence[LedgerTransaction],
    mode: RecalcMode | str = RecalcMode.PURE,
    **overrides,
) -> RecalcResult:
    """Run a one-off recalculation with default settings.

    Keyword overrides are passed to CostBasisEngine (``abs_tolerance``,
    ``rel_tolerance``, ``cash_like_symbols``).
    """
    return CostBasisEngine(**overrides).recalculate(transactions, mode)


__all__ = ["CostBasisEngine", "RecalcResult", "coerce_mode", "recalc_cost_basis"]
