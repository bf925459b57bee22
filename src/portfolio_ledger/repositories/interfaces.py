from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from datetime import datetime

from portfolio_ledger.domain.entities import Account, Asset
from portfolio_ledger.domain.sync_jobs import SyncJob
from portfolio_ledger.domain.transactions import LedgerTransaction


class AccountRepository(ABC):
    @abstractmethod
    def add(self, account: Account) -> Account:
        pass

    @abstractmethod
    def get(self, account_id: int) -> Account | None:
        pass

    @abstractmethod
    def list_all(self) -> Iterable[Account]:
        pass


class AssetRepository(ABC):
    @abstractmethod
    def add(self, asset: Asset) -> Asset:
        pass

    @abstractmethod
    def get(self, asset_id: int) -> Asset | None:
        pass

    @abstractmethod
    def get_by_symbol(self, symbol: str) -> Asset | None:
        pass

    @abstractmethod
    def list_all(self) -> Iterable[Asset]:
        pass


class LedgerTransactionRepository(ABC):
    @abstractmethod
    def add(self, tx: LedgerTransaction) -> LedgerTransaction:
        pass

    @abstractmethod
    def add_many(self, txs: Sequence[LedgerTransaction]) -> list[LedgerTransaction]:
        pass

    @abstractmethod
    def get(self, tx_id: int) -> LedgerTransaction | None:
        pass

    @abstractmethod
    def list_by_ids(self, tx_ids: Sequence[int]) -> list[LedgerTransaction]:
        pass

    @abstractmethod
    def list_transactions(
        self,
        as_of: datetime | None = None,
        asset_ids: Sequence[int] | None = None,
        account_ids: Sequence[int] | None = None,
        tx_types: Sequence[str] | None = None,
    ) -> list[LedgerTransaction]:
        pass

    @abstractmethod
    def update(self, tx: LedgerTransaction) -> None:
        pass

    @abstractmethod
    def update_many(self, txs: Sequence[LedgerTransaction]) -> None:
        pass

    @abstractmethod
    def replace_by_reference_prefix(
        self,
        tx_type: str,
        reference_prefix: str,
        new_rows: Sequence[LedgerTransaction],
    ) -> int:
        """Delete rows of ``tx_type`` whose reference starts with the prefix and
        insert ``new_rows`` in the same database transaction. Returns the
        number of rows inserted."""

    @abstractmethod
    def replace_exact(
        self,
        tx_type: str,
        external_reference: str,
        date_time: datetime,
        new_rows: Sequence[LedgerTransaction],
    ) -> int:
        """Atomically swap rows matching type, reference and timestamp."""


class SyncJobRepository(ABC):
    @abstractmethod
    def add(self, job: SyncJob) -> SyncJob:
        pass

    @abstractmethod
    def get(self, job_id: int) -> SyncJob | None:
        pass

    @abstractmethod
    def find_active(self, account_id: int, exchange_id: str) -> SyncJob | None:
        """Oldest QUEUED or RUNNING job for the account and exchange."""

    @abstractmethod
    def next_queued(self, now: datetime) -> SyncJob | None:
        """Oldest QUEUED job that is available at ``now``."""

    @abstractmethod
    def try_claim(self, job_id: int, claim_token: str, started_at: datetime) -> bool:
        """Move a QUEUED job to RUNNING; False if another worker got it first."""

    @abstractmethod
    def update(self, job: SyncJob) -> None:
        pass

    @abstractmethod
    def fail_stale_running(
        self, started_before: datetime, now: datetime, message: str
    ) -> int:
        pass

    @abstractmethod
    def list_recent(self, limit: int = 50) -> list[SyncJob]:
        pass
