"""Materializing recalculated cost basis as COST_BASIS_RESET snapshot rows.

A snapshot run replays the history up to ``as_of`` and writes one reset row
per position whose cost basis is known. Snapshot rows carry a ``RECALC:``
reference so the next run can drop them before replaying and replace them
wholesale afterwards.
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from portfolio_ledger.config import Settings, get_settings
from portfolio_ledger.domain.diagnostics import TransferDiagnostic
from portfolio_ledger.domain.numbers import ZERO, to_decimal
from portfolio_ledger.domain.parsing import parse_ledger_decimal
from portfolio_ledger.domain.transactions import (
    LedgerTransaction,
    NumericInput,
    ensure_utc,
)
from portfolio_ledger.domain.value_objects import (
    RECALC_REFERENCE_PREFIX,
    ZERO_QUANTITY_EPSILON,
    RecalcMode,
    TxType,
)
from portfolio_ledger.exceptions import AssetNotFoundError, CostBasisResetError
from portfolio_ledger.logging_config import get_logger
from portfolio_ledger.repositories.interfaces import (
    AssetRepository,
    LedgerTransactionRepository,
)
from portfolio_ledger.services.cost_basis import CostBasisEngine, coerce_mode

logger = get_logger(__name__)

# Bulk allocations are rounded to micro-units of the base currency
MICRO_UNIT = Decimal("0.000001")


@dataclass
class RecalcSummary:
    as_of: datetime
    mode: RecalcMode
    external_reference: str
    created: int = 0
    skipped_unknown: int = 0
    skipped_zero_quantity: int = 0
    diagnostics: list[TransferDiagnostic] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "as_of": self.as_of.isoformat(),
            "mode": self.mode.value,
            "created": self.created,
            "skipped_unknown": self.skipped_unknown,
            "skipped_zero_quantity": self.skipped_zero_quantity,
            "external_reference": self.external_reference,
            "diagnostics": [d.to_dict() for d in self.diagnostics],
        }


@dataclass(frozen=True)
class Allocation:
    account_id: int
    cost_basis: Decimal


def normalize_recalc_reference(reference: str | None, as_of: datetime) -> str:
    """Ensure a snapshot reference carries the RECALC: prefix."""
    trimmed = (reference or "").strip()
    if not trimmed:
        return f"{RECALC_REFERENCE_PREFIX}{as_of.isoformat()}"
    if trimmed.startswith(RECALC_REFERENCE_PREFIX):
        return trimmed
    return f"{RECALC_REFERENCE_PREFIX}{trimmed}"


def is_recalc_reset(tx: LedgerTransaction) -> bool:
    return tx.tx_type == TxType.COST_BASIS_RESET and tx.reference.startswith(
        RECALC_REFERENCE_PREFIX
    )


def allocate_by_quantity(
    account_quantities: Sequence[tuple[int, Decimal]],
    total_cost_basis: Decimal,
) -> list[Allocation]:
    """Split a total cost basis across accounts in proportion to holdings.

    Shares are rounded to micro-units and the last account takes the
    remainder, so the allocations always sum to the rounded total.
    """
    total_scaled = (total_cost_basis / MICRO_UNIT).to_integral_value(ROUND_HALF_UP)

    positive = [(account_id, abs(qty)) for account_id, qty in account_quantities]
    positive = [(account_id, qty) for account_id, qty in positive if qty > 0]
    total_qty = sum((qty for _, qty in positive), ZERO)
    if total_qty <= 0:
        return []

    allocations: list[Allocation] = []
    remaining = total_scaled
    for index, (account_id, qty) in enumerate(positive):
        if index == len(positive) - 1:
            scaled = remaining
        else:
            scaled = (total_scaled * qty / total_qty).to_integral_value(ROUND_HALF_UP)
            remaining -= scaled
        allocations.append(Allocation(account_id, scaled * MICRO_UNIT))
    return allocations


class CostBasisSnapshotService:
    """Writes recalculated cost basis back to the ledger as reset rows.

    Callers must not run two snapshot recalculations concurrently for the
    same ledger; the last writer wins.
    """

    def __init__(
        self,
        transaction_repo: LedgerTransactionRepository,
        asset_repo: AssetRepository,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._transaction_repo = transaction_repo
        self._asset_repo = asset_repo
        self._engine = CostBasisEngine(settings or get_settings())
        self._clock = clock or (lambda: datetime.now(UTC))

    def recalculate(
        self,
        as_of: datetime | None = None,
        mode: RecalcMode | str = RecalcMode.PURE,
        external_reference: str | None = None,
        notes: str | None = None,
    ) -> RecalcSummary:
        as_of = ensure_utc(as_of) if as_of is not None else self._clock()
        mode = coerce_mode(mode)
        reference = normalize_recalc_reference(external_reference, as_of)
        if notes is None:
            notes = f"Recalc ({mode.value}) as of {as_of.isoformat()}"

        history = [
            tx
            for tx in self._transaction_repo.list_transactions(as_of=as_of)
            if not is_recalc_reset(tx)
        ]
        result = self._engine.recalculate(history, mode)

        if result.diagnostics:
            logger.warning(
                "cost_basis_recalc_transfer_diagnostics",
                count=len(result.diagnostics),
                diagnostics=[d.to_dict() for d in result.diagnostics],
            )

        summary = RecalcSummary(
            as_of=as_of,
            mode=mode,
            external_reference=reference,
            diagnostics=result.diagnostics,
        )
        rows: list[LedgerTransaction] = []
        for position in result.positions.values():
            if not position.cost_basis_known:
                summary.skipped_unknown += 1
                continue
            if abs(position.quantity) <= ZERO_QUANTITY_EPSILON:
                summary.skipped_zero_quantity += 1
                continue
            rows.append(
                LedgerTransaction(
                    id=None,
                    date_time=as_of,
                    account_id=position.account_id,
                    asset_id=position.asset_id,
                    quantity=Decimal("0"),
                    tx_type=TxType.COST_BASIS_RESET,
                    external_reference=reference,
                    total_value_in_base=max(position.cost_basis, ZERO),
                    notes=notes,
                )
            )

        summary.created = self._transaction_repo.replace_by_reference_prefix(
            TxType.COST_BASIS_RESET.value, RECALC_REFERENCE_PREFIX, rows
        )

        if summary.skipped_unknown or summary.skipped_zero_quantity:
            logger.warning(
                "cost_basis_recalc_skipped_positions",
                skipped_unknown=summary.skipped_unknown,
                skipped_zero_quantity=summary.skipped_zero_quantity,
                as_of=as_of.isoformat(),
                mode=mode.value,
            )
        logger.info(
            "cost_basis_recalc_created_resets",
            created=summary.created,
            as_of=as_of.isoformat(),
            mode=mode.value,
            external_reference=reference,
        )
        return summary

    def create_bulk_reset(
        self,
        asset_id: int,
        date_time: datetime,
        unit_price: NumericInput = None,
        total_value: NumericInput = None,
        external_reference: str | None = None,
        notes: str | None = None,
    ) -> list[LedgerTransaction]:
        """Record a known cost basis for every account holding an asset.

        With a unit price each account is reset to ``|quantity| * price``;
        with a total value the total is split by quantity.
        """
        price = parse_ledger_decimal(unit_price)
        total = parse_ledger_decimal(total_value)
        if price is None and total is None:
            raise CostBasisResetError(
                "Provide either a unit price or a total value for the reset"
            )
        if price is not None and price < 0:
            raise CostBasisResetError("Unit price must be a non-negative number")
        if total is not None and total < 0:
            raise CostBasisResetError("Total value must be a non-negative number")

        if self._asset_repo.get(asset_id) is None:
            raise AssetNotFoundError(asset_id)

        date_time = ensure_utc(date_time)
        quantities: dict[int, Decimal] = {}
        for tx in self._transaction_repo.list_transactions(
            as_of=date_time, asset_ids=[asset_id]
        ):
            quantities[tx.account_id] = quantities.get(tx.account_id, ZERO) + (
                to_decimal(tx.quantity) or ZERO
            )

        if price is not None:
            allocations = [
                Allocation(account_id, abs(qty) * price)
                for account_id, qty in quantities.items()
            ]
        else:
            allocations = allocate_by_quantity(list(quantities.items()), total)

        if not allocations:
            raise CostBasisResetError(
                "No accounts hold this asset at or before the provided timestamp",
                context={"asset_id": asset_id, "date_time": date_time.isoformat()},
            )

        reference = (external_reference or "").strip() or None
        rows = [
            LedgerTransaction(
                id=None,
                date_time=date_time,
                account_id=allocation.account_id,
                asset_id=asset_id,
                quantity=Decimal("0"),
                tx_type=TxType.COST_BASIS_RESET,
                external_reference=reference,
                total_value_in_base=allocation.cost_basis,
                notes=notes,
            )
            for allocation in allocations
        ]
        created = self._transaction_repo.add_many(rows)
        logger.info(
            "bulk_cost_basis_reset_created",
            asset_id=asset_id,
            date_time=date_time.isoformat(),
            created=len(created),
        )
        return created


__all__ = [
    "Allocation",
    "CostBasisSnapshotService",
    "MICRO_UNIT",
    "RecalcSummary",
    "allocate_by_quantity",
    "is_recalc_reset",
    "normalize_recalc_reference",
]
