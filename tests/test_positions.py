from decimal import Decimal

from portfolio_ledger.domain.positions import Position, PositionKey, PositionLedger


class TestPosition:
    def test_defaults(self):
        position = Position(asset_id=1, account_id=2)

        assert position.quantity == Decimal("0")
        assert position.cost_basis == Decimal("0")
        assert position.cost_basis_known is True
        assert position.key == PositionKey(1, 2)

    def test_average_cost(self):
        position = Position(1, 1, quantity=Decimal("4"), cost_basis=Decimal("100"))

        assert position.average_cost == Decimal("25")

    def test_average_cost_is_none_when_unknown(self):
        position = Position(
            1, 1, quantity=Decimal("4"), cost_basis=Decimal("100"), cost_basis_known=False
        )

        assert position.average_cost is None

    def test_average_cost_is_none_when_flat_or_short(self):
        assert Position(1, 1).average_cost is None
        assert Position(1, 1, quantity=Decimal("-1")).average_cost is None

    def test_reduce_cost_basis_clamps_at_zero(self):
        position = Position(1, 1, cost_basis=Decimal("10"))

        position.reduce_cost_basis(Decimal("15"))

        assert position.cost_basis == Decimal("0")


class TestPositionLedger:
    def test_get_or_create_returns_same_position(self):
        ledger = PositionLedger()

        first = ledger.get_or_create(1, 2)
        second = ledger.get_or_create(1, 2)

        assert first is second
        assert len(ledger) == 1

    def test_positions_are_keyed_by_asset_and_account(self):
        ledger = PositionLedger()
        ledger.get_or_create(1, 2)
        ledger.get_or_create(2, 1)

        assert PositionKey(1, 2) in ledger
        assert PositionKey(2, 1) in ledger
        assert ledger.get(1, 1) is None
        assert len(list(ledger)) == 2

    def test_as_dict_is_a_copy(self):
        ledger = PositionLedger()
        ledger.get_or_create(1, 1)

        snapshot = ledger.as_dict()
        snapshot.clear()

        assert len(ledger) == 1
