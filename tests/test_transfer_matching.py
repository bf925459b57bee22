"""Tests for transfer grouping and pairing."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from portfolio_ledger.domain.diagnostics import DiagnosticsCollector, TransferKey
from portfolio_ledger.domain.value_objects import TransferIssue, TxType
from portfolio_ledger.services.cost_basis import CostBasisEngine
from portfolio_ledger.services.transfer_matching import (
    build_transfer_key,
    group_transfers,
    mismatch_info,
)

T0 = datetime(2024, 1, 1, tzinfo=UTC)
T1 = T0 + timedelta(hours=1)
T2 = T0 + timedelta(hours=2)


@pytest.fixture
def engine(settings) -> CostBasisEngine:
    return CostBasisEngine(settings)


@pytest.fixture
def funded(make_tx):
    """Ten units in account 1 with a known cost basis of 500."""
    return make_tx("10", total="500", date_time=T0)


class TestTransferKey:
    def test_automatic_key_includes_timestamp(self, make_tx):
        tx = make_tx("-1", TxType.TRANSFER, asset_id=7, date_time=T1, reference=" abc ")

        key = build_transfer_key(tx)

        assert key == TransferKey(7, T1, "abc")
        assert str(key) == f"7|{T1.isoformat()}|abc"

    def test_manual_match_key_ignores_timestamp(self, make_tx):
        a = make_tx("-1", TxType.TRANSFER, date_time=T1, reference="MATCH:x")
        b = make_tx("1", TxType.TRANSFER, account_id=2, date_time=T2, reference="MATCH:x")

        assert build_transfer_key(a) == build_transfer_key(b)
        assert str(build_transfer_key(a)) == "1|MATCH:x"

    def test_keys_do_not_collide_on_concatenation(self):
        assert TransferKey(1, None, "23") != TransferKey(12, None, "3")


class TestGroupTransfers:
    def test_groups_only_transfer_rows_in_order(self, make_tx):
        rows = [
            make_tx("-1", TxType.TRANSFER, date_time=T1),
            make_tx("5", TxType.TRADE, date_time=T1),
            make_tx("1", TxType.TRANSFER, account_id=2, date_time=T1),
            make_tx("1", TxType.TRANSFER, account_id=2, date_time=T2),
        ]

        groups = group_transfers(rows)

        assert len(groups) == 2
        assert [tx.id for tx in groups[TransferKey(1, T1, "")]] == [1, 3]


class TestMismatchInfo:
    def test_equal_quantities(self):
        info = mismatch_info(Decimal("5"), Decimal("5"))

        assert info.mismatch_abs == 0
        assert info.within_tolerance is True

    def test_relative_tolerance(self):
        assert mismatch_info(Decimal("5"), Decimal("4.96")).within_tolerance is True
        assert mismatch_info(Decimal("5"), Decimal("4.9")).within_tolerance is False

    def test_absolute_tolerance_for_dust(self):
        info = mismatch_info(Decimal("0.000002"), Decimal("0.0000015"))

        assert info.mismatch_rel == Decimal("0.25")
        assert info.within_tolerance is True


class TestFeeMismatch:
    def test_moves_smaller_quantity_and_charges_full_departure(
        self, engine, make_tx, funded
    ):
        rows = [
            funded,
            make_tx("-5", TxType.TRANSFER, date_time=T1, reference="w1"),
            make_tx("4.9", TxType.TRANSFER, account_id=2, date_time=T1, reference="w1"),
        ]

        result = engine.recalculate(rows)

        assert [d.issue for d in result.diagnostics] == [TransferIssue.FEE_MISMATCH]
        assert result.diagnostics[0].leg_ids == (2, 3)
        source = result.get(1, 1)
        dest = result.get(1, 2)
        assert source.quantity == Decimal("5")
        assert source.cost_basis == Decimal("250")
        assert dest.quantity == Decimal("4.9")
        assert dest.cost_basis == Decimal("245.0")
        assert dest.cost_basis_known is True

    def test_destination_receiving_more_is_invalid(self, engine, make_tx, funded):
        rows = [
            funded,
            make_tx("-5", TxType.TRANSFER, date_time=T1),
            make_tx("6", TxType.TRANSFER, account_id=2, date_time=T1),
        ]

        result = engine.recalculate(rows)

        assert [d.issue for d in result.diagnostics] == [TransferIssue.INVALID_LEGS]
        # Legs fall back to ordinary rows: the unpriced deposit is unknown
        assert result.get(1, 2).cost_basis_known is False
        assert result.get(1, 1).cost_basis == Decimal("250")


class TestAmbiguousGroups:
    def test_three_legs_reported_and_applied_independently(
        self, engine, make_tx, funded
    ):
        rows = [
            funded,
            make_tx("-2", TxType.TRANSFER, date_time=T1, reference="r"),
            make_tx("2", TxType.TRANSFER, account_id=2, date_time=T1, reference="r"),
            make_tx("2", TxType.TRANSFER, account_id=3, date_time=T1, reference="r"),
        ]

        result = engine.recalculate(rows)

        assert len(result.diagnostics) == 1
        diagnostic = result.diagnostics[0]
        assert diagnostic.issue == TransferIssue.AMBIGUOUS
        assert diagnostic.leg_ids == (2, 3, 4)
        assert result.get(1, 1).quantity == Decimal("8")
        assert result.get(1, 1).cost_basis == Decimal("400")
        assert result.get(1, 2).cost_basis_known is False
        assert result.get(1, 3).cost_basis_known is False


class TestInvalidLegs:
    @pytest.mark.parametrize(
        "qty_a, qty_b, account_b",
        [
            ("-5", "-5", 2),
            ("5", "5", 2),
            ("-5", "5", 1),
            ("0", "5", 2),
            ("-5", "abc", 2),
        ],
    )
    def test_invalid_pairs_are_rejected(
        self, engine, make_tx, funded, qty_a, qty_b, account_b
    ):
        rows = [
            funded,
            make_tx(qty_a, TxType.TRANSFER, date_time=T1),
            make_tx(qty_b, TxType.TRANSFER, account_id=account_b, date_time=T1),
        ]

        result = engine.recalculate(rows)

        assert [d.issue for d in result.diagnostics] == [TransferIssue.INVALID_LEGS]


class TestManualMatch:
    def test_large_mismatch_pairs_without_diagnostic(self, engine, make_tx, funded):
        rows = [
            funded,
            make_tx("-4", TxType.TRANSFER, date_time=T1, reference="MATCH:abc"),
            make_tx("2", TxType.TRANSFER, account_id=2, date_time=T2, reference="MATCH:abc"),
        ]

        result = engine.recalculate(rows)

        assert result.diagnostics == []
        assert result.get(1, 1).quantity == Decimal("6")
        assert result.get(1, 1).cost_basis == Decimal("300")
        assert result.get(1, 2).quantity == Decimal("2")
        assert result.get(1, 2).cost_basis == Decimal("100")

    def test_manual_match_overrides_direction_check(self, engine, make_tx, funded):
        rows = [
            funded,
            make_tx("-2", TxType.TRANSFER, date_time=T1, reference="MATCH:abc"),
            make_tx("4", TxType.TRANSFER, account_id=2, date_time=T1, reference="MATCH:abc"),
        ]

        result = engine.recalculate(rows)

        assert result.diagnostics == []
        assert result.get(1, 2).quantity == Decimal("4")
        assert result.get(1, 2).cost_basis == Decimal("100")

    def test_match_reference_pairs_across_timestamps(self, engine, make_tx, funded):
        rows = [
            funded,
            make_tx("-5", TxType.TRANSFER, date_time=T1, reference="MATCH:z"),
            make_tx("5", TxType.TRANSFER, account_id=2, date_time=T2, reference="MATCH:z"),
        ]

        result = engine.recalculate(rows)

        assert result.diagnostics == []
        assert result.get(1, 2).cost_basis == Decimal("250")


class TestUnknownSource:
    def test_unknown_source_makes_both_unknown(self, engine, make_tx):
        rows = [
            make_tx("10", date_time=T0),
            make_tx("-5", TxType.TRANSFER, date_time=T1),
            make_tx("5", TxType.TRANSFER, account_id=2, date_time=T1),
        ]

        result = engine.recalculate(rows)

        assert result.diagnostics == []
        assert result.get(1, 1).cost_basis_known is False
        assert result.get(1, 2).cost_basis_known is False
        assert result.get(1, 2).quantity == Decimal("5")

    def test_empty_source_makes_both_unknown(self, engine, make_tx):
        rows = [
            make_tx("-5", TxType.TRANSFER, date_time=T1),
            make_tx("5", TxType.TRANSFER, account_id=2, date_time=T1),
        ]

        result = engine.recalculate(rows)

        assert result.get(1, 1).quantity == Decimal("-5")
        assert result.get(1, 1).cost_basis_known is False
        assert result.get(1, 2).cost_basis_known is False


class TestDiagnosticsCollector:
    def test_records_representative_leg(self, make_tx):
        collector = DiagnosticsCollector()
        legs = [
            make_tx("-1", TxType.TRANSFER, date_time=T1),
            make_tx("1", TxType.TRANSFER, date_time=T2),
        ]
        key = build_transfer_key(legs[0])

        collector.record(key, legs, TransferIssue.UNMATCHED)

        [diagnostic] = collector.items
        assert diagnostic.date_time == T1
        assert diagnostic.leg_ids == (1, 2)
        assert diagnostic.to_dict()["issue"] == "UNMATCHED"
        assert collector.by_issue() == {TransferIssue.UNMATCHED: [diagnostic]}


class TestValuesAtDecimalLimits:
    def test_overflowing_moved_basis_makes_destination_unknown(self, engine, make_tx):
        rows = [
            make_tx("1e-999990", total="1e10", date_time=T0),
            make_tx("-1e-999990", TxType.TRANSFER, date_time=T1),
            make_tx("1e-999990", TxType.TRANSFER, account_id=2, date_time=T1),
        ]

        result = engine.recalculate(rows)

        assert result.diagnostics == []
        assert result.get(1, 2).cost_basis_known is False
        assert result.get(1, 2).quantity == Decimal("1e-999990")
        assert result.get(1, 1).quantity == Decimal("0")
        assert result.get(1, 1).cost_basis == Decimal("1e10")
