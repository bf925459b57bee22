"""Running (asset, account) positions for a single recalculation run."""

from collections.abc import Iterator
from dataclasses import dataclass, field
from decimal import Decimal
from typing import NamedTuple


class PositionKey(NamedTuple):
    asset_id: int
    account_id: int


@dataclass
class Position:
    """Quantity and total cost basis held for one asset in one account.

    ``cost_basis`` is the total cost of the whole quantity, not a per-unit
    figure. Once ``cost_basis_known`` is False the average cost is
    unreliable until a reset row restores it.
    """

    asset_id: int
    account_id: int
    quantity: Decimal = field(default_factory=lambda: Decimal("0"))
    cost_basis: Decimal = field(default_factory=lambda: Decimal("0"))
    cost_basis_known: bool = True

    @property
    def key(self) -> PositionKey:
        return PositionKey(self.asset_id, self.account_id)

    @property
    def average_cost(self) -> Decimal | None:
        """Cost per unit, or None when unknown or nothing is held."""
        if not self.cost_basis_known or self.quantity <= 0:
            return None
        return self.cost_basis / self.quantity

    def reduce_cost_basis(self, amount: Decimal) -> None:
        """Subtract from the cost basis, never going below zero."""
        self.cost_basis -= amount
        if self.cost_basis < 0:
            self.cost_basis = Decimal("0")


class PositionLedger:
    """Get-or-create map from (asset, account) to its running Position."""

    def __init__(self) -> None:
        self._positions: dict[PositionKey, Position] = {}

    def get_or_create(self, asset_id: int, account_id: int) -> Position:
        key = PositionKey(asset_id, account_id)
        position = self._positions.get(key)
        if position is None:
            position = Position(asset_id=asset_id, account_id=account_id)
            self._positions[key] = position
        return position

    def get(self, asset_id: int, account_id: int) -> Position | None:
        return self._positions.get(PositionKey(asset_id, account_id))

    def as_dict(self) -> dict[PositionKey, Position]:
        return dict(self._positions)

    def __contains__(self, key: object) -> bool:
        return key in self._positions

    def __iter__(self) -> Iterator[Position]:
        return iter(self._positions.values())

    def __len__(self) -> int:
        return len(self._positions)


__all__ = ["PositionKey", "Position", "PositionLedger"]
