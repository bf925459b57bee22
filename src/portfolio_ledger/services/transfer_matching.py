"""Transfer matching for pairing the two legs of an internal transfer.

Matching runs in two phases. ``group_transfers`` indexes every TRANSFER row
by its grouping key before replay starts; ``TransferMatcher.handle`` is then
called during the chronological replay and settles a whole group the first
time any of its legs comes up. Groups that cannot be paired safely are
reported as diagnostics and their legs applied independently.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from decimal import Decimal

from portfolio_ledger.domain.diagnostics import DiagnosticsCollector, TransferKey
from portfolio_ledger.domain.numbers import (
    ZERO,
    finite_or_none,
    lenient_arithmetic,
    to_decimal,
)
from portfolio_ledger.domain.positions import PositionLedger
from portfolio_ledger.domain.transactions import LedgerTransaction
from portfolio_ledger.domain.value_objects import TransferIssue, TxType
from portfolio_ledger.logging_config import get_logger
from portfolio_ledger.services.transaction_applier import TransactionApplier

logger = get_logger(__name__)

DEFAULT_ABS_TOLERANCE = Decimal("0.000001")
DEFAULT_REL_TOLERANCE = Decimal("0.01")


def build_transfer_key(tx: LedgerTransaction) -> TransferKey:
    """Grouping key for a transfer leg.

    A ``MATCH:`` reference is an authoritative pairing token, so those legs
    group by asset and reference only. Other legs must also share the exact
    timestamp to pair automatically.
    """
    if tx.is_manual_match:
        return TransferKey(tx.asset_id, None, tx.reference)
    return TransferKey(tx.asset_id, tx.date_time, tx.reference)


def group_transfers(
    transactions: Iterable[LedgerTransaction],
) -> dict[TransferKey, list[LedgerTransaction]]:
    """Index TRANSFER rows by grouping key, keeping the given order."""
    groups: dict[TransferKey, list[LedgerTransaction]] = {}
    for tx in transactions:
        if tx.tx_type != TxType.TRANSFER:
            continue
        groups.setdefault(build_transfer_key(tx), []).append(tx)
    return groups


@dataclass(frozen=True, slots=True)
class MismatchInfo:
    mismatch_abs: Decimal
    mismatch_rel: Decimal
    within_tolerance: bool


def mismatch_info(
    source_qty_abs: Decimal,
    dest_qty_abs: Decimal,
    abs_tolerance: Decimal = DEFAULT_ABS_TOLERANCE,
    rel_tolerance: Decimal = DEFAULT_REL_TOLERANCE,
) -> MismatchInfo:
    mismatch_abs = abs(source_qty_abs - dest_qty_abs)
    max_qty = max(source_qty_abs, dest_qty_abs, ZERO)
    mismatch_rel = mismatch_abs / max_qty if max_qty > 0 else ZERO
    return MismatchInfo(
        mismatch_abs=mismatch_abs,
        mismatch_rel=mismatch_rel,
        within_tolerance=(
            mismatch_abs <= abs_tolerance or mismatch_rel <= rel_tolerance
        ),
    )


class TransferMatcher:
    """Pairs transfer legs and moves cost basis from source to destination."""

    def __init__(
        self,
        applier: TransactionApplier,
        diagnostics: DiagnosticsCollector,
        abs_tolerance: Decimal = DEFAULT_ABS_TOLERANCE,
        rel_tolerance: Decimal = DEFAULT_REL_TOLERANCE,
    ) -> None:
        self._applier = applier
        self._diagnostics = diagnostics
        self._abs_tolerance = abs_tolerance
        self._rel_tolerance = rel_tolerance
        self._processed: set[TransferKey] = set()

    def handle(
        self,
        ledger: PositionLedger,
        tx: LedgerTransaction,
        groups: dict[TransferKey, list[LedgerTransaction]],
    ) -> None:
        key = build_transfer_key(tx)
        group = groups.get(key)
        if group is None:
            self._applier.apply(ledger, tx)
            return

        if key in self._processed:
            return
        self._processed.add(key)

        if len(group) != 2:
            issue = (
                TransferIssue.UNMATCHED if len(group) < 2 else TransferIssue.AMBIGUOUS
            )
            self._reject(ledger, key, group, issue)
            return

        self._settle_pair(ledger, key, group)

    def _reject(
        self,
        ledger: PositionLedger,
        key: TransferKey,
        group: Sequence[LedgerTransaction],
        issue: TransferIssue,
    ) -> None:
        self._diagnostics.record(key, group, issue)
        logger.debug(
            "transfer_group_rejected",
            key=str(key),
            issue=issue.value,
            leg_ids=[leg.id for leg in group],
        )
        for leg in group:
            self._applier.apply(ledger, leg)

    def _settle_pair(
        self,
        ledger: PositionLedger,
        key: TransferKey,
        group: Sequence[LedgerTransaction],
    ) -> None:
        leg_a, leg_b = group
        qty_a = to_decimal(leg_a.quantity)
        qty_b = to_decimal(leg_b.quantity)

        if (
            qty_a is None
            or qty_b is None
            or qty_a == 0
            or qty_b == 0
            or leg_a.asset_id != leg_b.asset_id
            or leg_a.account_id == leg_b.account_id
            or (qty_a > 0) == (qty_b > 0)
        ):
            self._reject(ledger, key, group, TransferIssue.INVALID_LEGS)
            return

        if qty_a < 0:
            source_leg, dest_leg = leg_a, leg_b
            source_qty, dest_qty = qty_a, qty_b
        else:
            source_leg, dest_leg = leg_b, leg_a
            source_qty, dest_qty = qty_b, qty_a
        source_qty_abs = abs(source_qty)
        dest_qty_abs = abs(dest_qty)

        info = mismatch_info(
            source_qty_abs, dest_qty_abs, self._abs_tolerance, self._rel_tolerance
        )
        within_tolerance = leg_a.is_manual_match or info.within_tolerance

        if not within_tolerance:
            if dest_qty_abs > source_qty_abs:
                # More arrived than left: bad data, not a fee
                self._reject(ledger, key, group, TransferIssue.INVALID_LEGS)
                return
            self._diagnostics.record(key, group, TransferIssue.FEE_MISMATCH)
            logger.debug(
                "transfer_fee_mismatch",
                key=str(key),
                source_quantity=str(source_qty_abs),
                destination_quantity=str(dest_qty_abs),
                mismatch_rel=str(info.mismatch_rel),
            )

        transfer_qty = min(source_qty_abs, dest_qty_abs)

        source = ledger.get_or_create(source_leg.asset_id, source_leg.account_id)
        dest = ledger.get_or_create(dest_leg.asset_id, dest_leg.account_id)

        source_qty_before = source.quantity
        source.quantity += source_qty
        dest.quantity += dest_qty

        if not source.cost_basis_known or source_qty_before <= 0:
            # Nothing reliable to carry over from an unknown or empty source
            source.cost_basis_known = False
            dest.cost_basis_known = False
            return

        with lenient_arithmetic():
            average_cost = source.cost_basis / source_qty_before
            moved_basis = finite_or_none(average_cost * transfer_qty)
            source_reduction = finite_or_none(average_cost * source_qty_abs)
            dest_basis = (
                finite_or_none(dest.cost_basis + moved_basis)
                if moved_basis is not None
                else None
            )
        if source_reduction is None or dest_basis is None:
            dest.cost_basis_known = False
            return

        # The full departing quantity leaves the source; any fee gap is not
        # credited to the destination.
        source.reduce_cost_basis(source_reduction)
        dest.cost_basis = dest_basis


__all__ = [
    "DEFAULT_ABS_TOLERANCE",
    "DEFAULT_REL_TOLERANCE",
    "MismatchInfo",
    "TransferMatcher",
    "build_transfer_key",
    "group_transfers",
    "mismatch_info",
]
