from collections.abc import Callable
from datetime import UTC, datetime
from decimal import Decimal
from itertools import count

import pytest

from portfolio_ledger.config import Settings
from portfolio_ledger.domain.entities import Account, Asset
from portfolio_ledger.domain.transactions import AssetInfo, LedgerTransaction
from portfolio_ledger.domain.value_objects import TxType
from portfolio_ledger.repositories.sqlite import (
    SQLiteAccountRepository,
    SQLiteAssetRepository,
    SQLiteDatabase,
    SQLiteLedgerTransactionRepository,
    SQLiteSyncJobRepository,
)

BASE_TIME = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)

VOLATILE_ASSET = AssetInfo(type="CRYPTO", volatility_bucket="VOLATILE", symbol="BTC")


@pytest.fixture
def settings() -> Settings:
    return Settings(environment="testing", log_format="console")


@pytest.fixture
def make_tx() -> Callable[..., LedgerTransaction]:
    """Build LedgerTransactions with sequential ids and sensible defaults."""
    ids = count(1)

    def _make(
        quantity,
        tx_type: TxType | str = TxType.TRADE,
        *,
        id: int | None = None,
        account_id: int = 1,
        asset_id: int = 1,
        date_time: datetime | None = None,
        total=None,
        price=None,
        reference: str | None = None,
        asset: AssetInfo = VOLATILE_ASSET,
    ) -> LedgerTransaction:
        return LedgerTransaction(
            id=id if id is not None else next(ids),
            date_time=date_time or BASE_TIME,
            account_id=account_id,
            asset_id=asset_id,
            quantity=quantity,
            tx_type=tx_type,
            external_reference=reference,
            unit_price_in_base=price,
            total_value_in_base=total,
            asset=asset,
        )

    return _make


@pytest.fixture
def db() -> SQLiteDatabase:
    database = SQLiteDatabase(":memory:")
    database.initialize()
    yield database
    database.close()


@pytest.fixture
def account_repo(db: SQLiteDatabase) -> SQLiteAccountRepository:
    return SQLiteAccountRepository(db)


@pytest.fixture
def asset_repo(db: SQLiteDatabase) -> SQLiteAssetRepository:
    return SQLiteAssetRepository(db)


@pytest.fixture
def transaction_repo(db: SQLiteDatabase) -> SQLiteLedgerTransactionRepository:
    return SQLiteLedgerTransactionRepository(db)


@pytest.fixture
def sync_job_repo(db: SQLiteDatabase) -> SQLiteSyncJobRepository:
    return SQLiteSyncJobRepository(db)


@pytest.fixture
def wallet(account_repo: SQLiteAccountRepository) -> Account:
    return account_repo.add(Account(name="Cold Wallet"))


@pytest.fixture
def exchange_account(account_repo: SQLiteAccountRepository) -> Account:
    return account_repo.add(Account(name="Binance", exchange_id="binance"))


@pytest.fixture
def btc(asset_repo: SQLiteAssetRepository) -> Asset:
    return asset_repo.add(Asset(symbol="BTC", name="Bitcoin"))


@pytest.fixture
def usd(asset_repo: SQLiteAssetRepository) -> Asset:
    return asset_repo.add(
        Asset(symbol="USD", name="US Dollar", type="CASH", volatility_bucket="CASH_LIKE")
    )


@pytest.fixture
def store_tx(
    transaction_repo: SQLiteLedgerTransactionRepository,
) -> Callable[..., LedgerTransaction]:
    """Persist a ledger row and return it with its assigned id."""

    def _store(
        account: Account,
        asset: Asset,
        quantity,
        tx_type: TxType | str = TxType.TRADE,
        *,
        date_time: datetime | None = None,
        total=None,
        price=None,
        reference: str | None = None,
    ) -> LedgerTransaction:
        return transaction_repo.add(
            LedgerTransaction(
                id=None,
                date_time=date_time or BASE_TIME,
                account_id=account.id,
                asset_id=asset.id,
                quantity=Decimal(str(quantity)),
                tx_type=tx_type,
                external_reference=reference,
                unit_price_in_base=price,
                total_value_in_base=total,
            )
        )

    return _store
