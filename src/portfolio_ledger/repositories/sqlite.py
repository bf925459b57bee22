"""SQLite implementations of repository interfaces."""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Iterable, Sequence
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any

from portfolio_ledger.domain.entities import Account, Asset
from portfolio_ledger.domain.numbers import to_decimal
from portfolio_ledger.domain.sync_jobs import SyncJob
from portfolio_ledger.domain.transactions import (
    AssetInfo,
    LedgerTransaction,
    NumericInput,
    ensure_utc,
)
from portfolio_ledger.domain.value_objects import (
    SyncJobStatus,
    SyncMode,
    SyncRequestedBy,
)
from portfolio_ledger.repositories.interfaces import (
    AccountRepository,
    AssetRepository,
    LedgerTransactionRepository,
    SyncJobRepository,
)


def _dt_to_text(value: datetime | None) -> str | None:
    """Fixed-width UTC ISO text so string comparison follows time order."""
    if value is None:
        return None
    return ensure_utc(value).isoformat(timespec="microseconds")


def _text_to_dt(value: str | None) -> datetime | None:
    if value is None:
        return None
    return ensure_utc(datetime.fromisoformat(value))


def _num_to_text(value: NumericInput) -> str | None:
    if value is None:
        return None
    return str(value)


def _text_to_num(value: str | None) -> Decimal | str | None:
    """Load a stored number; malformed legacy text is returned unchanged."""
    if value is None:
        return None
    parsed = to_decimal(value)
    return parsed if parsed is not None else value


def _placeholders(values: Sequence[Any]) -> str:
    return ", ".join("?" for _ in values)


class SQLiteDatabase:
    """SQLite database connection manager."""

    def __init__(
        self, path: str | Path = ":memory:", check_same_thread: bool = True
    ) -> None:
        self._path = str(path)
        self._check_same_thread = check_same_thread
        self._connection: sqlite3.Connection | None = None

    def get_connection(self) -> sqlite3.Connection:
        """Get or create the database connection."""
        if self._connection is None:
            self._connection = sqlite3.connect(
                self._path, check_same_thread=self._check_same_thread
            )
            self._connection.row_factory = sqlite3.Row
            # Enable foreign keys
            self._connection.execute("PRAGMA foreign_keys = ON")
        return self._connection

    def initialize(self) -> None:
        """Create all database tables."""
        conn = self.get_connection()
        conn.executescript(
            """
            -- Accounts table
            CREATE TABLE IF NOT EXISTS accounts (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                exchange_id TEXT
            );

            -- Assets table
            CREATE TABLE IF NOT EXISTS assets (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                symbol TEXT NOT NULL,
                name TEXT NOT NULL DEFAULT '',
                type TEXT NOT NULL,
                volatility_bucket TEXT NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_assets_symbol ON assets(symbol);

            -- Ledger transactions table (one signed leg per row)
            CREATE TABLE IF NOT EXISTS ledger_transactions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                date_time TEXT NOT NULL,
                account_id INTEGER NOT NULL,
                asset_id INTEGER NOT NULL,
                quantity TEXT NOT NULL,
                tx_type TEXT NOT NULL,
                external_reference TEXT,
                unit_price_in_base TEXT,
                total_value_in_base TEXT,
                notes TEXT,
                FOREIGN KEY (account_id) REFERENCES accounts(id),
                FOREIGN KEY (asset_id) REFERENCES assets(id)
            );
            CREATE INDEX IF NOT EXISTS idx_ledger_date ON ledger_transactions(date_time, id);
            CREATE INDEX IF NOT EXISTS idx_ledger_asset_account ON ledger_transactions(asset_id, account_id);
            CREATE INDEX IF NOT EXISTS idx_ledger_type_reference ON ledger_transactions(tx_type, external_reference);

            -- Exchange sync job queue
            CREATE TABLE IF NOT EXISTS sync_jobs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                account_id INTEGER NOT NULL,
                exchange_id TEXT NOT NULL,
                mode TEXT NOT NULL,
                since TEXT,
                requested_by TEXT NOT NULL,
                status TEXT NOT NULL,
                attempts INTEGER NOT NULL DEFAULT 0,
                claim_token TEXT,
                error_message TEXT,
                result_json TEXT,
                created_at TEXT NOT NULL,
                available_at TEXT NOT NULL,
                started_at TEXT,
                finished_at TEXT,
                FOREIGN KEY (account_id) REFERENCES accounts(id)
            );
            CREATE INDEX IF NOT EXISTS idx_sync_jobs_status ON sync_jobs(status, available_at, created_at, id);
            CREATE INDEX IF NOT EXISTS idx_sync_jobs_account ON sync_jobs(account_id, exchange_id, status);
            """
        )
        conn.commit()

    def close(self) -> None:
        """Close the database connection."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None


class SQLiteAccountRepository(AccountRepository):
    """SQLite implementation of AccountRepository."""

    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    def add(self, account: Account) -> Account:
        conn = self._db.get_connection()
        cursor = conn.execute(
            "INSERT INTO accounts (id, name, exchange_id) VALUES (?, ?, ?)",
            (account.id, account.name, account.exchange_id),
        )
        conn.commit()
        account.id = cursor.lastrowid if account.id is None else account.id
        return account

    def get(self, account_id: int) -> Account | None:
        conn = self._db.get_connection()
        row = conn.execute(
            "SELECT * FROM accounts WHERE id = ?", (account_id,)
        ).fetchone()
        if row is None:
            return None
        return self._row_to_account(row)

    def list_all(self) -> Iterable[Account]:
        conn = self._db.get_connection()
        rows = conn.execute("SELECT * FROM accounts ORDER BY id").fetchall()
        return [self._row_to_account(row) for row in rows]

    def _row_to_account(self, row: sqlite3.Row) -> Account:
        return Account(id=row["id"], name=row["name"], exchange_id=row["exchange_id"])


class SQLiteAssetRepository(AssetRepository):
    """SQLite implementation of AssetRepository."""

    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    def add(self, asset: Asset) -> Asset:
        conn = self._db.get_connection()
        cursor = conn.execute(
            """
            INSERT INTO assets (id, symbol, name, type, volatility_bucket)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                asset.id,
                asset.symbol,
                asset.name,
                asset.type,
                asset.volatility_bucket,
            ),
        )
        conn.commit()
        asset.id = cursor.lastrowid if asset.id is None else asset.id
        return asset

    def get(self, asset_id: int) -> Asset | None:
        conn = self._db.get_connection()
        row = conn.execute("SELECT * FROM assets WHERE id = ?", (asset_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_asset(row)

    def get_by_symbol(self, symbol: str) -> Asset | None:
        conn = self._db.get_connection()
        row = conn.execute(
            "SELECT * FROM assets WHERE UPPER(symbol) = ? ORDER BY id",
            (symbol.strip().upper(),),
        ).fetchone()
        if row is None:
            return None
        return self._row_to_asset(row)

    def list_all(self) -> Iterable[Asset]:
        conn = self._db.get_connection()
        rows = conn.execute("SELECT * FROM assets ORDER BY id").fetchall()
        return [self._row_to_asset(row) for row in rows]

    def _row_to_asset(self, row: sqlite3.Row) -> Asset:
        return Asset(
            id=row["id"],
            symbol=row["symbol"],
            name=row["name"],
            type=row["type"],
            volatility_bucket=row["volatility_bucket"],
        )


_LEDGER_SELECT = """
    SELECT t.*, a.type AS asset_type, a.volatility_bucket AS asset_bucket,
           a.symbol AS asset_symbol
    FROM ledger_transactions t
    JOIN assets a ON a.id = t.asset_id
"""


class SQLiteLedgerTransactionRepository(LedgerTransactionRepository):
    """SQLite implementation of LedgerTransactionRepository."""

    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    def add(self, tx: LedgerTransaction) -> LedgerTransaction:
        conn = self._db.get_connection()
        stored = self._insert(conn, tx)
        conn.commit()
        return self.get(stored) or tx

    def add_many(self, txs: Sequence[LedgerTransaction]) -> list[LedgerTransaction]:
        conn = self._db.get_connection()
        with conn:
            ids = [self._insert(conn, tx) for tx in txs]
        return self.list_by_ids(ids)

    def get(self, tx_id: int) -> LedgerTransaction | None:
        conn = self._db.get_connection()
        row = conn.execute(_LEDGER_SELECT + " WHERE t.id = ?", (tx_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_transaction(row)

    def list_by_ids(self, tx_ids: Sequence[int]) -> list[LedgerTransaction]:
        if not tx_ids:
            return []
        conn = self._db.get_connection()
        rows = conn.execute(
            _LEDGER_SELECT
            + f" WHERE t.id IN ({_placeholders(tx_ids)}) ORDER BY t.date_time, t.id",
            list(tx_ids),
        ).fetchall()
        return [self._row_to_transaction(row) for row in rows]

    def list_transactions(
        self,
        as_of: datetime | None = None,
        asset_ids: Sequence[int] | None = None,
        account_ids: Sequence[int] | None = None,
        tx_types: Sequence[str] | None = None,
    ) -> list[LedgerTransaction]:
        conn = self._db.get_connection()
        query = _LEDGER_SELECT + " WHERE 1 = 1"
        params: list[Any] = []

        if as_of is not None:
            query += " AND t.date_time <= ?"
            params.append(_dt_to_text(as_of))
        if asset_ids:
            query += f" AND t.asset_id IN ({_placeholders(asset_ids)})"
            params.extend(asset_ids)
        if account_ids:
            query += f" AND t.account_id IN ({_placeholders(account_ids)})"
            params.extend(account_ids)
        if tx_types:
            query += f" AND t.tx_type IN ({_placeholders(tx_types)})"
            params.extend(getattr(t, "value", t) for t in tx_types)

        query += " ORDER BY t.date_time, t.id"
        rows = conn.execute(query, params).fetchall()
        return [self._row_to_transaction(row) for row in rows]

    def update(self, tx: LedgerTransaction) -> None:
        conn = self._db.get_connection()
        self._update(conn, tx)
        conn.commit()

    def update_many(self, txs: Sequence[LedgerTransaction]) -> None:
        conn = self._db.get_connection()
        with conn:
            for tx in txs:
                self._update(conn, tx)

    def replace_by_reference_prefix(
        self,
        tx_type: str,
        reference_prefix: str,
        new_rows: Sequence[LedgerTransaction],
    ) -> int:
        conn = self._db.get_connection()
        with conn:
            conn.execute(
                """
                DELETE FROM ledger_transactions
                WHERE tx_type = ? AND substr(external_reference, 1, ?) = ?
                """,
                (getattr(tx_type, "value", tx_type), len(reference_prefix), reference_prefix),
            )
            for tx in new_rows:
                self._insert(conn, tx)
        return len(new_rows)

    def replace_exact(
        self,
        tx_type: str,
        external_reference: str,
        date_time: datetime,
        new_rows: Sequence[LedgerTransaction],
    ) -> int:
        conn = self._db.get_connection()
        with conn:
            conn.execute(
                """
                DELETE FROM ledger_transactions
                WHERE tx_type = ? AND external_reference = ? AND date_time = ?
                """,
                (getattr(tx_type, "value", tx_type), external_reference, _dt_to_text(date_time)),
            )
            for tx in new_rows:
                self._insert(conn, tx)
        return len(new_rows)

    def _insert(self, conn: sqlite3.Connection, tx: LedgerTransaction) -> int:
        cursor = conn.execute(
            """
            INSERT INTO ledger_transactions (id, date_time, account_id, asset_id, quantity,
                                             tx_type, external_reference, unit_price_in_base,
                                             total_value_in_base, notes)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                tx.id,
                _dt_to_text(tx.date_time),
                tx.account_id,
                tx.asset_id,
                _num_to_text(tx.quantity) or "0",
                tx.tx_type,
                tx.external_reference,
                _num_to_text(tx.unit_price_in_base),
                _num_to_text(tx.total_value_in_base),
                tx.notes,
            ),
        )
        return tx.id if tx.id is not None else int(cursor.lastrowid or 0)

    def _update(self, conn: sqlite3.Connection, tx: LedgerTransaction) -> None:
        conn.execute(
            """
            UPDATE ledger_transactions
            SET date_time = ?, account_id = ?, asset_id = ?, quantity = ?, tx_type = ?,
                external_reference = ?, unit_price_in_base = ?, total_value_in_base = ?,
                notes = ?
            WHERE id = ?
            """,
            (
                _dt_to_text(tx.date_time),
                tx.account_id,
                tx.asset_id,
                _num_to_text(tx.quantity) or "0",
                tx.tx_type,
                tx.external_reference,
                _num_to_text(tx.unit_price_in_base),
                _num_to_text(tx.total_value_in_base),
                tx.notes,
                tx.id,
            ),
        )

    def _row_to_transaction(self, row: sqlite3.Row) -> LedgerTransaction:
        return LedgerTransaction(
            id=row["id"],
            date_time=_text_to_dt(row["date_time"]),
            account_id=row["account_id"],
            asset_id=row["asset_id"],
            quantity=_text_to_num(row["quantity"]),
            tx_type=row["tx_type"],
            external_reference=row["external_reference"],
            unit_price_in_base=_text_to_num(row["unit_price_in_base"]),
            total_value_in_base=_text_to_num(row["total_value_in_base"]),
            asset=AssetInfo(
                type=row["asset_type"],
                volatility_bucket=row["asset_bucket"],
                symbol=row["asset_symbol"],
            ),
            notes=row["notes"],
        )


class SQLiteSyncJobRepository(SyncJobRepository):
    """SQLite implementation of SyncJobRepository."""

    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    def add(self, job: SyncJob) -> SyncJob:
        conn = self._db.get_connection()
        cursor = conn.execute(
            """
            INSERT INTO sync_jobs (account_id, exchange_id, mode, since, requested_by, status,
                                   attempts, claim_token, error_message, result_json,
                                   created_at, available_at, started_at, finished_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                job.account_id,
                job.exchange_id,
                job.mode.value,
                _dt_to_text(job.since),
                job.requested_by.value,
                job.status.value,
                job.attempts,
                job.claim_token,
                job.error_message,
                json.dumps(job.result) if job.result is not None else None,
                _dt_to_text(job.created_at),
                _dt_to_text(job.available_at),
                _dt_to_text(job.started_at),
                _dt_to_text(job.finished_at),
            ),
        )
        conn.commit()
        job.id = cursor.lastrowid
        return job

    def get(self, job_id: int) -> SyncJob | None:
        conn = self._db.get_connection()
        row = conn.execute("SELECT * FROM sync_jobs WHERE id = ?", (job_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_job(row)

    def find_active(self, account_id: int, exchange_id: str) -> SyncJob | None:
        conn = self._db.get_connection()
        row = conn.execute(
            """
            SELECT * FROM sync_jobs
            WHERE account_id = ? AND exchange_id = ? AND status IN (?, ?)
            ORDER BY created_at, id
            LIMIT 1
            """,
            (
                account_id,
                exchange_id,
                SyncJobStatus.QUEUED.value,
                SyncJobStatus.RUNNING.value,
            ),
        ).fetchone()
        if row is None:
            return None
        return self._row_to_job(row)

    def next_queued(self, now: datetime) -> SyncJob | None:
        conn = self._db.get_connection()
        row = conn.execute(
            """
            SELECT * FROM sync_jobs
            WHERE status = ? AND available_at <= ?
            ORDER BY created_at, id
            LIMIT 1
            """,
            (SyncJobStatus.QUEUED.value, _dt_to_text(now)),
        ).fetchone()
        if row is None:
            return None
        return self._row_to_job(row)

    def try_claim(self, job_id: int, claim_token: str, started_at: datetime) -> bool:
        conn = self._db.get_connection()
        cursor = conn.execute(
            """
            UPDATE sync_jobs
            SET status = ?, started_at = ?, finished_at = NULL, error_message = NULL,
                result_json = NULL, claim_token = ?, attempts = attempts + 1
            WHERE id = ? AND status = ?
            """,
            (
                SyncJobStatus.RUNNING.value,
                _dt_to_text(started_at),
                claim_token,
                job_id,
                SyncJobStatus.QUEUED.value,
            ),
        )
        conn.commit()
        return cursor.rowcount == 1

    def update(self, job: SyncJob) -> None:
        conn = self._db.get_connection()
        conn.execute(
            """
            UPDATE sync_jobs
            SET mode = ?, since = ?, status = ?, attempts = ?, claim_token = ?,
                error_message = ?, result_json = ?, available_at = ?, started_at = ?,
                finished_at = ?
            WHERE id = ?
            """,
            (
                job.mode.value,
                _dt_to_text(job.since),
                job.status.value,
                job.attempts,
                job.claim_token,
                job.error_message,
                json.dumps(job.result) if job.result is not None else None,
                _dt_to_text(job.available_at),
                _dt_to_text(job.started_at),
                _dt_to_text(job.finished_at),
                job.id,
            ),
        )
        conn.commit()

    def fail_stale_running(
        self, started_before: datetime, now: datetime, message: str
    ) -> int:
        conn = self._db.get_connection()
        cursor = conn.execute(
            """
            UPDATE sync_jobs
            SET status = ?, finished_at = ?, error_message = ?, claim_token = NULL
            WHERE status = ? AND started_at < ?
            """,
            (
                SyncJobStatus.FAILED.value,
                _dt_to_text(now),
                message,
                SyncJobStatus.RUNNING.value,
                _dt_to_text(started_before),
            ),
        )
        conn.commit()
        return cursor.rowcount

    def list_recent(self, limit: int = 50) -> list[SyncJob]:
        conn = self._db.get_connection()
        rows = conn.execute(
            "SELECT * FROM sync_jobs ORDER BY created_at DESC, id DESC LIMIT ?",
            (limit,),
        ).fetchall()
        return [self._row_to_job(row) for row in rows]

    def _row_to_job(self, row: sqlite3.Row) -> SyncJob:
        return SyncJob(
            id=row["id"],
            account_id=row["account_id"],
            exchange_id=row["exchange_id"],
            mode=SyncMode(row["mode"]),
            since=_text_to_dt(row["since"]),
            requested_by=SyncRequestedBy(row["requested_by"]),
            status=SyncJobStatus(row["status"]),
            attempts=row["attempts"],
            claim_token=row["claim_token"],
            error_message=row["error_message"],
            result=json.loads(row["result_json"]) if row["result_json"] else None,
            created_at=_text_to_dt(row["created_at"]),
            available_at=_text_to_dt(row["available_at"]),
            started_at=_text_to_dt(row["started_at"]),
            finished_at=_text_to_dt(row["finished_at"]),
        )
