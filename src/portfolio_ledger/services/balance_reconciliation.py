"""Reconciling ledger quantities against externally observed balances.

A reconciliation batch compares the summed ledger quantity for each
``(account, asset)`` target at ``as_of`` with the balance the caller saw and
books the difference as a RECONCILIATION row. Batches with an external
reference are idempotent: committing again replaces the earlier rows.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from portfolio_ledger.domain.numbers import ZERO, to_decimal
from portfolio_ledger.domain.parsing import parse_ledger_decimal
from portfolio_ledger.domain.transactions import (
    LedgerTransaction,
    NumericInput,
    ensure_utc,
)
from portfolio_ledger.domain.value_objects import TxType
from portfolio_ledger.exceptions import (
    AccountNotFoundError,
    AssetNotFoundError,
    ValidationError,
)
from portfolio_ledger.logging_config import get_logger
from portfolio_ledger.repositories.interfaces import (
    AccountRepository,
    AssetRepository,
    LedgerTransactionRepository,
)

logger = get_logger(__name__)

DEFAULT_EPSILON = Decimal("1e-9")


@dataclass(frozen=True)
class ReconcileTarget:
    account_id: int
    asset_id: int
    target_quantity: NumericInput
    notes: str | None = None


@dataclass(frozen=True)
class ReconcileRow:
    account_id: int
    asset_id: int
    current_quantity: Decimal
    target_quantity: Decimal
    delta_quantity: Decimal
    will_create: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "account_id": self.account_id,
            "asset_id": self.asset_id,
            "current_quantity": str(self.current_quantity),
            "target_quantity": str(self.target_quantity),
            "delta_quantity": str(self.delta_quantity),
            "will_create": self.will_create,
        }


@dataclass
class ReconcilePlan:
    as_of: datetime
    epsilon: Decimal
    replace_existing: bool
    external_reference: str | None = None
    rows: list[ReconcileRow] = field(default_factory=list)
    committed: bool = False
    created: int = 0

    @property
    def pending(self) -> list[ReconcileRow]:
        return [row for row in self.rows if row.will_create]

    def to_dict(self) -> dict[str, Any]:
        return {
            "as_of": self.as_of.isoformat(),
            "external_reference": self.external_reference,
            "epsilon": str(self.epsilon),
            "replace_existing": self.replace_existing,
            "mode": "COMMIT" if self.committed else "PREVIEW",
            "created": self.created,
            "rows": [row.to_dict() for row in self.rows],
        }


def _same_batch(tx: LedgerTransaction, reference: str, as_of: datetime) -> bool:
    return (
        tx.tx_type == TxType.RECONCILIATION
        and tx.external_reference == reference
        and tx.date_time == as_of
    )


class BalanceReconciliationService:
    def __init__(
        self,
        transaction_repo: LedgerTransactionRepository,
        account_repo: AccountRepository,
        asset_repo: AssetRepository,
    ) -> None:
        self._transaction_repo = transaction_repo
        self._account_repo = account_repo
        self._asset_repo = asset_repo

    def preview(
        self,
        as_of: datetime,
        targets: Sequence[ReconcileTarget],
        epsilon: Decimal = DEFAULT_EPSILON,
        external_reference: str | None = None,
        replace_existing: bool = True,
    ) -> ReconcilePlan:
        """Compute per-target deltas without writing anything."""
        if not targets:
            raise ValidationError("targets must not be empty")
        as_of = ensure_utc(as_of)
        reference = (external_reference or "").strip() or None
        self._check_references(targets)

        account_ids = sorted({t.account_id for t in targets})
        asset_ids = sorted({t.asset_id for t in targets})
        history = self._transaction_repo.list_transactions(
            as_of=as_of, asset_ids=asset_ids, account_ids=account_ids
        )

        current: dict[tuple[int, int], Decimal] = {}
        for tx in history:
            if replace_existing and reference and _same_batch(tx, reference, as_of):
                continue
            key = (tx.account_id, tx.asset_id)
            current[key] = current.get(key, ZERO) + (to_decimal(tx.quantity) or ZERO)

        plan = ReconcilePlan(
            as_of=as_of,
            epsilon=epsilon,
            replace_existing=replace_existing,
            external_reference=reference,
        )
        for target in targets:
            have = current.get((target.account_id, target.asset_id), ZERO)
            want = parse_ledger_decimal(target.target_quantity) or ZERO
            delta = want - have
            plan.rows.append(
                ReconcileRow(
                    account_id=target.account_id,
                    asset_id=target.asset_id,
                    current_quantity=have,
                    target_quantity=want,
                    delta_quantity=delta,
                    will_create=abs(delta) > epsilon,
                )
            )
        return plan

    def commit(
        self,
        as_of: datetime,
        targets: Sequence[ReconcileTarget],
        epsilon: Decimal = DEFAULT_EPSILON,
        external_reference: str | None = None,
        replace_existing: bool = True,
        notes: str | None = None,
    ) -> ReconcilePlan:
        plan = self.preview(
            as_of,
            targets,
            epsilon=epsilon,
            external_reference=external_reference,
            replace_existing=replace_existing,
        )
        notes_by_target = {(t.account_id, t.asset_id): t.notes for t in targets}
        rows = [
            LedgerTransaction(
                id=None,
                date_time=plan.as_of,
                account_id=row.account_id,
                asset_id=row.asset_id,
                quantity=row.delta_quantity,
                tx_type=TxType.RECONCILIATION,
                external_reference=plan.external_reference,
                notes=notes_by_target.get((row.account_id, row.asset_id)) or notes,
            )
            for row in plan.pending
        ]

        if replace_existing and plan.external_reference:
            plan.created = self._transaction_repo.replace_exact(
                TxType.RECONCILIATION.value,
                plan.external_reference,
                plan.as_of,
                rows,
            )
        else:
            plan.created = len(self._transaction_repo.add_many(rows))
        plan.committed = True

        logger.info(
            "balance_reconciliation_committed",
            as_of=plan.as_of.isoformat(),
            external_reference=plan.external_reference,
            targets=len(plan.rows),
            created=plan.created,
        )
        return plan

    def _check_references(self, targets: Sequence[ReconcileTarget]) -> None:
        for account_id in sorted({t.account_id for t in targets}):
            if self._account_repo.get(account_id) is None:
                raise AccountNotFoundError(account_id)
        for asset_id in sorted({t.asset_id for t in targets}):
            if self._asset_repo.get(asset_id) is None:
                raise AssetNotFoundError(asset_id)


__all__ = [
    "BalanceReconciliationService",
    "DEFAULT_EPSILON",
    "ReconcilePlan",
    "ReconcileRow",
    "ReconcileTarget",
]
