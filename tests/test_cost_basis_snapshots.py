"""Tests for writing cost basis snapshots back to the ledger."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from portfolio_ledger.domain.entities import Asset
from portfolio_ledger.domain.value_objects import RecalcMode, TransferIssue, TxType
from portfolio_ledger.exceptions import (
    AssetNotFoundError,
    CostBasisResetError,
    InvalidDecimalError,
)
from portfolio_ledger.services.cost_basis_snapshots import (
    Allocation,
    CostBasisSnapshotService,
    allocate_by_quantity,
    normalize_recalc_reference,
)

T0 = datetime(2024, 1, 1, tzinfo=UTC)
T1 = T0 + timedelta(days=1)
T2 = T0 + timedelta(days=2)
T3 = T0 + timedelta(days=3)


@pytest.fixture
def service(transaction_repo, asset_repo, settings) -> CostBasisSnapshotService:
    return CostBasisSnapshotService(
        transaction_repo, asset_repo, settings, clock=lambda: T3
    )


def resets(transaction_repo):
    return transaction_repo.list_transactions(
        tx_types=[TxType.COST_BASIS_RESET.value]
    )


class TestNormalizeRecalcReference:
    def test_blank_uses_timestamp(self):
        assert normalize_recalc_reference("  ", T0) == f"RECALC:{T0.isoformat()}"

    def test_prefix_added(self):
        assert normalize_recalc_reference("nightly", T0) == "RECALC:nightly"

    def test_existing_prefix_kept(self):
        assert normalize_recalc_reference(" RECALC:q1 ", T0) == "RECALC:q1"


class TestRecalculate:
    def test_writes_one_reset_per_known_position(
        self, service, transaction_repo, store_tx, wallet, exchange_account, btc
    ):
        store_tx(wallet, btc, "2", total="20000", date_time=T0)
        store_tx(wallet, btc, "-1", TxType.TRANSFER, date_time=T1, reference="w")
        store_tx(exchange_account, btc, "1", TxType.TRANSFER, date_time=T1, reference="w")

        summary = service.recalculate(as_of=T2)

        assert summary.created == 2
        assert summary.mode == RecalcMode.PURE
        assert summary.external_reference == f"RECALC:{T2.isoformat()}"
        rows = resets(transaction_repo)
        assert {(r.account_id, r.total_value_in_base) for r in rows} == {
            (wallet.id, Decimal("10000")),
            (exchange_account.id, Decimal("10000")),
        }
        assert all(r.quantity == 0 and r.date_time == T2 for r in rows)
        assert rows[0].notes == f"Recalc (PURE) as of {T2.isoformat()}"

    def test_rerun_replaces_earlier_snapshots(
        self, service, transaction_repo, store_tx, wallet, btc
    ):
        store_tx(wallet, btc, "1", total="100", date_time=T0)

        service.recalculate(as_of=T1)
        service.recalculate(as_of=T2, external_reference="second")

        rows = resets(transaction_repo)
        assert len(rows) == 1
        assert rows[0].external_reference == "RECALC:second"

    def test_earlier_snapshots_do_not_feed_honor_resets(
        self, service, transaction_repo, store_tx, wallet, btc
    ):
        store_tx(wallet, btc, "1", total="100", date_time=T0)
        service.recalculate(as_of=T1)
        # Corrupt the snapshot; a later HONOR_RESETS run must not read it
        [snapshot] = resets(transaction_repo)
        transaction_repo.update(snapshot.with_changes(total_value_in_base=Decimal("1")))

        service.recalculate(as_of=T2, mode=RecalcMode.HONOR_RESETS)

        [row] = resets(transaction_repo)
        assert row.total_value_in_base == Decimal("100")

    def test_manual_resets_are_honored(
        self, service, transaction_repo, store_tx, wallet, btc
    ):
        store_tx(wallet, btc, "4", date_time=T0)
        store_tx(wallet, btc, "0", TxType.COST_BASIS_RESET, total="800", date_time=T1)

        service.recalculate(as_of=T2, mode="HONOR_RESETS")

        snapshots = [r for r in resets(transaction_repo) if r.reference.startswith("RECALC:")]
        assert [r.total_value_in_base for r in snapshots] == [Decimal("800")]
        # Manual reset survives the snapshot replacement
        assert len(resets(transaction_repo)) == 2

    def test_skips_unknown_and_flat_positions(
        self, service, asset_repo, store_tx, wallet, btc
    ):
        eth = asset_repo.add(Asset(symbol="ETH", name="Ether"))
        sol = asset_repo.add(Asset(symbol="SOL", name="Solana"))
        store_tx(wallet, btc, "1", total="100", date_time=T0)
        store_tx(wallet, eth, "3", date_time=T0)
        store_tx(wallet, sol, "2", total="10", date_time=T0)
        store_tx(wallet, sol, "-2", date_time=T1)

        summary = service.recalculate(as_of=T2)

        assert summary.created == 1
        assert summary.skipped_unknown == 1
        assert summary.skipped_zero_quantity == 1

    def test_ignores_rows_after_as_of(self, service, transaction_repo, store_tx, wallet, btc):
        store_tx(wallet, btc, "1", total="100", date_time=T0)
        store_tx(wallet, btc, "1", total="300", date_time=T3)

        service.recalculate(as_of=T1)

        [row] = resets(transaction_repo)
        assert row.total_value_in_base == Decimal("100")

    def test_defaults_as_of_to_clock(self, service, store_tx, wallet, btc):
        store_tx(wallet, btc, "1", total="100", date_time=T0)

        summary = service.recalculate()

        assert summary.as_of == T3

    def test_reports_transfer_diagnostics(self, service, store_tx, wallet, btc):
        store_tx(wallet, btc, "1", total="100", date_time=T0)
        store_tx(wallet, btc, "-1", TxType.TRANSFER, date_time=T1)

        summary = service.recalculate(as_of=T2)

        assert [d.issue for d in summary.diagnostics] == [TransferIssue.UNMATCHED]
        assert summary.to_dict()["diagnostics"][0]["issue"] == "UNMATCHED"


class TestAllocateByQuantity:
    def test_remainder_goes_to_last_account(self):
        allocations = allocate_by_quantity([(1, Decimal("1")), (2, Decimal("2"))], Decimal("100"))

        assert allocations == [
            Allocation(1, Decimal("33.333333")),
            Allocation(2, Decimal("66.666667")),
        ]
        assert sum(a.cost_basis for a in allocations) == Decimal("100")

    def test_uses_absolute_quantities_and_skips_zero(self):
        allocations = allocate_by_quantity(
            [(1, Decimal("-1")), (2, Decimal("0")), (3, Decimal("3"))], Decimal("40")
        )

        assert allocations == [Allocation(1, Decimal("10")), Allocation(3, Decimal("30"))]

    def test_no_holdings(self):
        assert allocate_by_quantity([(1, Decimal("0"))], Decimal("10")) == []


class TestCreateBulkReset:
    @pytest.fixture
    def holdings(self, store_tx, wallet, exchange_account, btc):
        store_tx(wallet, btc, "2", total="100", date_time=T0)
        store_tx(exchange_account, btc, "3", total="100", date_time=T0)
        store_tx(wallet, btc, "10", total="100", date_time=T3)

    def test_unit_price_applies_per_account(self, service, holdings, btc, wallet, exchange_account):
        created = service.create_bulk_reset(btc.id, T1, unit_price="1000")

        assert {(r.account_id, r.total_value_in_base) for r in created} == {
            (wallet.id, Decimal("2000")),
            (exchange_account.id, Decimal("3000")),
        }
        assert all(r.tx_type == "COST_BASIS_RESET" and r.date_time == T1 for r in created)

    def test_total_is_split_by_quantity(self, service, holdings, btc, wallet, exchange_account):
        created = service.create_bulk_reset(
            btc.id, T1, total_value="500", external_reference=" audit ", notes="Q1"
        )

        assert {(r.account_id, r.total_value_in_base) for r in created} == {
            (wallet.id, Decimal("200")),
            (exchange_account.id, Decimal("300")),
        }
        assert {r.external_reference for r in created} == {"audit"}
        assert {r.notes for r in created} == {"Q1"}

    def test_requires_a_value(self, service, holdings, btc):
        with pytest.raises(CostBasisResetError):
            service.create_bulk_reset(btc.id, T1)

    @pytest.mark.parametrize("field", ["unit_price", "total_value"])
    def test_rejects_negative_values(self, service, holdings, btc, field):
        with pytest.raises(CostBasisResetError):
            service.create_bulk_reset(btc.id, T1, **{field: "-1"})

    def test_rejects_malformed_values(self, service, holdings, btc):
        with pytest.raises(InvalidDecimalError):
            service.create_bulk_reset(btc.id, T1, unit_price="n/a")

    def test_unknown_asset(self, service, holdings):
        with pytest.raises(AssetNotFoundError):
            service.create_bulk_reset(999, T1, unit_price="1")

    def test_no_holders_before_timestamp(self, service, asset_repo):
        eth = asset_repo.add(Asset(symbol="ETH"))

        with pytest.raises(CostBasisResetError):
            service.create_bulk_reset(eth.id, T1, total_value="10")
