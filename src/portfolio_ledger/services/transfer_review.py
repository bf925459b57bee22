"""Listing and resolving transfer legs the cost-basis engine could not pair."""

import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from portfolio_ledger.config import Settings, get_settings
from portfolio_ledger.domain.numbers import ZERO, to_decimal
from portfolio_ledger.domain.transactions import LedgerTransaction
from portfolio_ledger.domain.value_objects import (
    MATCH_REFERENCE_PREFIX,
    RecalcMode,
    ResolutionAction,
    TransferIssue,
    TxType,
)
from portfolio_ledger.exceptions import (
    TransactionNotFoundError,
    TransferResolutionError,
)
from portfolio_ledger.logging_config import get_logger
from portfolio_ledger.repositories.interfaces import (
    AccountRepository,
    AssetRepository,
    LedgerTransactionRepository,
)
from portfolio_ledger.services.cost_basis import CostBasisEngine

logger = get_logger(__name__)


@dataclass(frozen=True)
class TransferLegView:
    id: int
    date_time: datetime
    quantity: str
    account_id: int
    account_name: str
    asset_id: int
    asset_symbol: str
    asset_name: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "date_time": self.date_time.isoformat(),
            "quantity": self.quantity,
            "account_id": self.account_id,
            "account_name": self.account_name,
            "asset_id": self.asset_id,
            "asset_symbol": self.asset_symbol,
            "asset_name": self.asset_name,
        }


@dataclass
class TransferIssueView:
    key: str
    asset_id: int
    date_time: datetime | None
    issue: TransferIssue
    leg_ids: tuple[int, ...]
    legs: list[TransferLegView] = field(default_factory=list)

    def touches_accounts(self, account_ids: Sequence[int]) -> bool:
        return any(leg.account_id in account_ids for leg in self.legs)

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "asset_id": self.asset_id,
            "date_time": self.date_time.isoformat() if self.date_time else None,
            "issue": self.issue.value,
            "leg_ids": list(self.leg_ids),
            "legs": [leg.to_dict() for leg in self.legs],
        }


@dataclass(frozen=True)
class ResolutionResult:
    action: ResolutionAction
    leg_ids: tuple[int, ...]
    message: str
    external_reference: str | None = None


def coerce_action(action: ResolutionAction | str) -> ResolutionAction:
    if isinstance(action, ResolutionAction):
        return action
    try:
        return ResolutionAction(str(action).strip().upper())
    except ValueError as e:
        raise TransferResolutionError(
            f"Invalid action: {action!r}", context={"action": str(action)}
        ) from e


class TransferReviewService:
    """Surfaces transfer diagnostics for review and applies manual fixes.

    Matching legs by hand stamps them with a shared ``MATCH:`` reference
    and timestamp; separating them turns each leg into a plain deposit or
    withdrawal.
    """

    def __init__(
        self,
        transaction_repo: LedgerTransactionRepository,
        account_repo: AccountRepository,
        asset_repo: AssetRepository,
        settings: Settings | None = None,
    ) -> None:
        self._transaction_repo = transaction_repo
        self._account_repo = account_repo
        self._asset_repo = asset_repo
        self._engine = CostBasisEngine(settings or get_settings())

    def list_issues(
        self,
        asset_ids: Sequence[int] | None = None,
        account_ids: Sequence[int] | None = None,
    ) -> list[TransferIssueView]:
        transfers = self._transaction_repo.list_transactions(
            asset_ids=asset_ids, tx_types=[TxType.TRANSFER.value]
        )
        result = self._engine.recalculate(transfers, RecalcMode.PURE)

        by_id = {tx.id: tx for tx in transfers}
        account_names = {a.id: a.name for a in self._account_repo.list_all()}
        assets = {a.id: a for a in self._asset_repo.list_all()}

        views = []
        for diagnostic in result.diagnostics:
            legs = [
                self._leg_view(by_id[leg_id], account_names, assets)
                for leg_id in diagnostic.leg_ids
                if leg_id in by_id
            ]
            views.append(
                TransferIssueView(
                    key=str(diagnostic.key),
                    asset_id=diagnostic.asset_id,
                    date_time=diagnostic.date_time,
                    issue=diagnostic.issue,
                    leg_ids=diagnostic.leg_ids,
                    legs=legs,
                )
            )

        if account_ids:
            views = [v for v in views if v.touches_accounts(account_ids)]
        return views

    def resolve(
        self, leg_ids: Sequence[int], action: ResolutionAction | str
    ) -> ResolutionResult:
        if not leg_ids:
            raise TransferResolutionError("At least one transfer leg is required")
        action = coerce_action(action)

        unique_ids = list(dict.fromkeys(leg_ids))
        legs = self._transaction_repo.list_by_ids(unique_ids)
        if len(legs) != len(unique_ids):
            found = {tx.id for tx in legs}
            raise TransactionNotFoundError([i for i in unique_ids if i not in found])

        if action == ResolutionAction.MATCH:
            return self._match(legs)
        return self._separate(legs)

    def _match(self, legs: list[LedgerTransaction]) -> ResolutionResult:
        latest = max(tx.date_time for tx in legs)
        reference = f"{MATCH_REFERENCE_PREFIX}{uuid.uuid4()}"
        self._transaction_repo.update_many(
            [tx.with_changes(date_time=latest, external_reference=reference) for tx in legs]
        )
        logger.info(
            "transfer_legs_matched",
            leg_ids=[tx.id for tx in legs],
            date_time=latest.isoformat(),
            external_reference=reference,
        )
        return ResolutionResult(
            action=ResolutionAction.MATCH,
            leg_ids=tuple(tx.id for tx in legs),
            message=f"Matched transactions to {latest.isoformat()}",
            external_reference=reference,
        )

    def _separate(self, legs: list[LedgerTransaction]) -> ResolutionResult:
        updated = []
        for tx in legs:
            quantity = to_decimal(tx.quantity) or ZERO
            new_type = TxType.DEPOSIT if quantity >= 0 else TxType.WITHDRAWAL
            updated.append(tx.with_changes(tx_type=new_type))
        self._transaction_repo.update_many(updated)
        logger.info("transfer_legs_separated", leg_ids=[tx.id for tx in legs])
        return ResolutionResult(
            action=ResolutionAction.SEPARATE,
            leg_ids=tuple(tx.id for tx in legs),
            message="Separated transactions into DEPOSIT/WITHDRAWAL",
        )

    @staticmethod
    def _leg_view(
        tx: LedgerTransaction,
        account_names: dict[int | None, str],
        assets: dict,
    ) -> TransferLegView:
        asset = assets.get(tx.asset_id)
        return TransferLegView(
            id=tx.id,
            date_time=tx.date_time,
            quantity=str(tx.quantity),
            account_id=tx.account_id,
            account_name=account_names.get(tx.account_id, ""),
            asset_id=tx.asset_id,
            asset_symbol=asset.symbol if asset else "",
            asset_name=asset.name if asset else "",
        )


__all__ = [
    "ResolutionResult",
    "TransferIssueView",
    "TransferLegView",
    "TransferReviewService",
    "coerce_action",
]
