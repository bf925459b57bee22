"""Tests for SQLite repositories."""

import sqlite3
from datetime import UTC, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from portfolio_ledger.domain.entities import Account, Asset
from portfolio_ledger.domain.sync_jobs import SyncJob
from portfolio_ledger.domain.transactions import LedgerTransaction
from portfolio_ledger.domain.value_objects import SyncJobStatus, SyncMode, TxType

T0 = datetime(2024, 1, 1, tzinfo=UTC)


class TestSQLiteAccountRepository:
    def test_add_and_get(self, account_repo):
        account = account_repo.add(Account(name="Ledger Nano", exchange_id=None))

        retrieved = account_repo.get(account.id)

        assert retrieved == account

    def test_get_nonexistent_returns_none(self, account_repo):
        assert account_repo.get(12345) is None

    def test_list_all(self, account_repo, wallet, exchange_account):
        assert [a.name for a in account_repo.list_all()] == ["Cold Wallet", "Binance"]


class TestSQLiteAssetRepository:
    def test_add_and_get(self, asset_repo, usd):
        retrieved = asset_repo.get(usd.id)

        assert retrieved.symbol == "USD"
        assert retrieved.volatility_bucket == "CASH_LIKE"
        assert retrieved.info.type == "CASH"

    def test_get_by_symbol_ignores_case(self, asset_repo, btc):
        assert asset_repo.get_by_symbol(" btc ").id == btc.id
        assert asset_repo.get_by_symbol("DOGE") is None


class TestSQLiteLedgerTransactionRepository:
    def test_round_trips_decimals_and_asset_info(self, store_tx, transaction_repo, wallet, usd):
        stored = store_tx(wallet, usd, "1234.5678", TxType.DEPOSIT, total="1234.5678")

        retrieved = transaction_repo.get(stored.id)

        assert retrieved.quantity == Decimal("1234.5678")
        assert retrieved.total_value_in_base == Decimal("1234.5678")
        assert retrieved.unit_price_in_base is None
        assert retrieved.tx_type == "DEPOSIT"
        assert retrieved.asset.volatility_bucket == "CASH_LIKE"
        assert retrieved.asset.symbol == "USD"

    def test_timestamps_are_stored_in_utc(self, store_tx, transaction_repo, wallet, btc):
        eastern = timezone(timedelta(hours=-5))
        stored = store_tx(wallet, btc, "1", date_time=datetime(2024, 1, 1, 7, tzinfo=eastern))

        assert transaction_repo.get(stored.id).date_time == datetime(2024, 1, 1, 12, tzinfo=UTC)

    def test_malformed_numbers_survive_unchanged(self, transaction_repo, wallet, btc):
        stored = transaction_repo.add(
            LedgerTransaction(
                id=None,
                date_time=T0,
                account_id=wallet.id,
                asset_id=btc.id,
                quantity="1",
                tx_type=TxType.TRADE,
                total_value_in_base="n/a",
            )
        )

        assert stored.total_value_in_base == "n/a"

    def test_list_transactions_filters(
        self, store_tx, transaction_repo, wallet, exchange_account, btc, usd
    ):
        a = store_tx(wallet, btc, "1", date_time=T0)
        b = store_tx(exchange_account, btc, "1", TxType.TRANSFER, date_time=T0 + timedelta(days=1))
        c = store_tx(wallet, usd, "5", TxType.DEPOSIT, date_time=T0 + timedelta(days=2))

        def ids(**filters):
            return [tx.id for tx in transaction_repo.list_transactions(**filters)]

        assert ids() == [a.id, b.id, c.id]
        assert ids(as_of=T0 + timedelta(days=1)) == [a.id, b.id]
        assert ids(asset_ids=[usd.id]) == [c.id]
        assert ids(account_ids=[exchange_account.id]) == [b.id]
        assert ids(tx_types=[TxType.TRANSFER]) == [b.id]

    def test_same_timestamp_orders_by_id(self, store_tx, transaction_repo, wallet, btc):
        first = store_tx(wallet, btc, "1")
        second = store_tx(wallet, btc, "2")

        rows = transaction_repo.list_transactions()

        assert [tx.id for tx in rows] == [first.id, second.id]

    def test_update_many(self, store_tx, transaction_repo, wallet, btc):
        a = store_tx(wallet, btc, "1", TxType.TRANSFER)
        b = store_tx(wallet, btc, "-1", TxType.TRANSFER)

        transaction_repo.update_many(
            [a.with_changes(tx_type=TxType.DEPOSIT), b.with_changes(notes="checked")]
        )

        assert transaction_repo.get(a.id).tx_type == "DEPOSIT"
        assert transaction_repo.get(b.id).notes == "checked"

    def test_replace_by_reference_prefix(self, store_tx, transaction_repo, wallet, btc):
        store_tx(wallet, btc, "0", TxType.COST_BASIS_RESET, total="1", reference="RECALC:old")
        manual = store_tx(wallet, btc, "0", TxType.COST_BASIS_RESET, total="2", reference="audit")
        trade = store_tx(wallet, btc, "1", reference="RECALC:not-a-reset")
        replacement = LedgerTransaction(
            id=None,
            date_time=T0,
            account_id=wallet.id,
            asset_id=btc.id,
            quantity=Decimal("0"),
            tx_type=TxType.COST_BASIS_RESET,
            external_reference="RECALC:new",
            total_value_in_base=Decimal("3"),
        )

        created = transaction_repo.replace_by_reference_prefix(
            TxType.COST_BASIS_RESET.value, "RECALC:", [replacement]
        )

        assert created == 1
        references = {tx.external_reference for tx in transaction_repo.list_transactions()}
        assert references == {"RECALC:new", manual.external_reference, trade.external_reference}

    def test_replace_exact_matches_reference_and_time(
        self, store_tx, transaction_repo, wallet, btc
    ):
        store_tx(wallet, btc, "1", TxType.RECONCILIATION, reference="stmt", date_time=T0)
        other_day = store_tx(
            wallet, btc, "1", TxType.RECONCILIATION, reference="stmt",
            date_time=T0 + timedelta(days=1),
        )

        transaction_repo.replace_exact(TxType.RECONCILIATION.value, "stmt", T0, [])

        assert [tx.id for tx in transaction_repo.list_transactions()] == [other_day.id]

    def test_add_many_is_atomic(self, transaction_repo, wallet, btc):
        good = LedgerTransaction(
            id=None, date_time=T0, account_id=wallet.id, asset_id=btc.id,
            quantity=Decimal("1"), tx_type=TxType.TRADE,
        )
        orphan = good.with_changes(account_id=999)

        with pytest.raises(sqlite3.IntegrityError):
            transaction_repo.add_many([good, orphan])

        assert transaction_repo.list_transactions() == []


class TestSQLiteSyncJobRepository:
    def new_job(self, account, **overrides) -> SyncJob:
        fields = {
            "account_id": account.id,
            "exchange_id": "binance",
            "created_at": T0,
            "available_at": T0,
        }
        fields.update(overrides)
        return SyncJob(**fields)

    def test_add_and_get(self, sync_job_repo, exchange_account):
        job = sync_job_repo.add(self.new_job(exchange_account, mode=SyncMode.FULL))

        retrieved = sync_job_repo.get(job.id)

        assert retrieved.mode == SyncMode.FULL
        assert retrieved.status == SyncJobStatus.QUEUED
        assert retrieved.created_at == T0
        assert retrieved.result is None

    def test_find_active_ignores_finished_jobs(self, sync_job_repo, exchange_account):
        sync_job_repo.add(self.new_job(exchange_account, status=SyncJobStatus.SUCCESS))

        assert sync_job_repo.find_active(exchange_account.id, "binance") is None

        running = sync_job_repo.add(
            self.new_job(exchange_account, status=SyncJobStatus.RUNNING)
        )
        assert sync_job_repo.find_active(exchange_account.id, "binance").id == running.id

    def test_next_queued_respects_available_at(self, sync_job_repo, exchange_account):
        later = sync_job_repo.add(
            self.new_job(exchange_account, available_at=T0 + timedelta(minutes=5))
        )

        assert sync_job_repo.next_queued(T0) is None
        assert sync_job_repo.next_queued(T0 + timedelta(minutes=5)).id == later.id

    def test_try_claim_is_exclusive(self, sync_job_repo, exchange_account):
        job = sync_job_repo.add(self.new_job(exchange_account))

        assert sync_job_repo.try_claim(job.id, "token-a", T0) is True
        assert sync_job_repo.try_claim(job.id, "token-b", T0) is False

        claimed = sync_job_repo.get(job.id)
        assert claimed.status == SyncJobStatus.RUNNING
        assert claimed.claim_token == "token-a"
        assert claimed.attempts == 1
        assert claimed.started_at == T0

    def test_fail_stale_running(self, sync_job_repo, exchange_account):
        stale = sync_job_repo.add(self.new_job(exchange_account))
        sync_job_repo.try_claim(stale.id, "t", T0)
        now = T0 + timedelta(hours=1)

        count = sync_job_repo.fail_stale_running(T0 + timedelta(minutes=30), now, "timed out")

        assert count == 1
        failed = sync_job_repo.get(stale.id)
        assert failed.status == SyncJobStatus.FAILED
        assert failed.finished_at == now
        assert failed.claim_token is None

    def test_update_stores_result(self, sync_job_repo, exchange_account):
        job = sync_job_repo.add(self.new_job(exchange_account))
        job.status = SyncJobStatus.SUCCESS
        job.result = {"created": 2}

        sync_job_repo.update(job)

        assert sync_job_repo.get(job.id).result == {"created": 2}

    def test_list_recent_newest_first(self, sync_job_repo, exchange_account):
        old = sync_job_repo.add(self.new_job(exchange_account))
        new = sync_job_repo.add(
            self.new_job(exchange_account, created_at=T0 + timedelta(hours=1))
        )

        assert [job.id for job in sync_job_repo.list_recent(limit=1)] == [new.id]
        assert [job.id for job in sync_job_repo.list_recent()] == [new.id, old.id]
