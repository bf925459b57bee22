from portfolio_ledger.repositories.interfaces import (
    AccountRepository,
    AssetRepository,
    LedgerTransactionRepository,
    SyncJobRepository,
)
from portfolio_ledger.repositories.sqlite import (
    SQLiteAccountRepository,
    SQLiteAssetRepository,
    SQLiteDatabase,
    SQLiteLedgerTransactionRepository,
    SQLiteSyncJobRepository,
)

__all__ = [
    "AccountRepository",
    "AssetRepository",
    "LedgerTransactionRepository",
    "SyncJobRepository",
    "SQLiteDatabase",
    "SQLiteAccountRepository",
    "SQLiteAssetRepository",
    "SQLiteLedgerTransactionRepository",
    "SQLiteSyncJobRepository",
]
