"""Per-type effects of a single non-transfer ledger row on its position."""

from collections.abc import Iterable
from decimal import Decimal

from portfolio_ledger.domain.numbers import (
    ZERO,
    finite_or_none,
    is_cash_like,
    lenient_arithmetic,
    to_decimal,
    transaction_value,
)
from portfolio_ledger.domain.positions import Position, PositionLedger
from portfolio_ledger.domain.transactions import LedgerTransaction
from portfolio_ledger.domain.value_objects import ZERO_QUANTITY_EPSILON


class TransactionApplier:
    """Applies quantity and cost effects of one row to a PositionLedger.

    Malformed numbers never raise here. An unparseable quantity counts as
    zero and a missing valuation marks the position's cost basis unknown.
    """

    def __init__(self, cash_like_symbols: Iterable[str] | None = None) -> None:
        self._cash_like_symbols = (
            tuple(cash_like_symbols) if cash_like_symbols is not None else None
        )

    def is_cash_like(self, tx: LedgerTransaction) -> bool:
        return is_cash_like(tx.asset, self._cash_like_symbols)

    def apply_reset(self, ledger: PositionLedger, tx: LedgerTransaction) -> Position:
        """Seed a position from a COST_BASIS_RESET snapshot row."""
        position = ledger.get_or_create(tx.asset_id, tx.account_id)
        reset_value = to_decimal(tx.total_value_in_base)
        if reset_value is None:
            # An unpriced reset means "unknown as of here", not zero
            position.cost_basis_known = False
        else:
            position.cost_basis_known = True
            position.cost_basis = abs(reset_value)
        return position

    def apply_reconciliation(
        self, ledger: PositionLedger, tx: LedgerTransaction
    ) -> Position:
        """Force a balance correction without touching cost basis."""
        position = ledger.get_or_create(tx.asset_id, tx.account_id)
        position.quantity += to_decimal(tx.quantity) or ZERO

        if abs(position.quantity) <= ZERO_QUANTITY_EPSILON:
            position.quantity = Decimal("0")
            position.cost_basis = Decimal("0")
        return position

    def apply(self, ledger: PositionLedger, tx: LedgerTransaction) -> Position:
        """Apply an ordinary acquisition or disposal."""
        position = ledger.get_or_create(tx.asset_id, tx.account_id)
        quantity = to_decimal(tx.quantity) or ZERO

        if self.is_cash_like(tx):
            self._apply_cash(position, quantity)
        elif quantity > 0:
            self._apply_acquisition(position, tx, quantity)
        elif quantity < 0:
            self._apply_disposal(position, quantity)
        return position

    def _apply_cash(self, position: Position, quantity: Decimal) -> None:
        if quantity == 0:
            return
        position.cost_basis_known = True
        if quantity > 0:
            position.cost_basis += quantity
        else:
            position.reduce_cost_basis(abs(quantity))
        position.quantity += quantity

    def _apply_acquisition(
        self, position: Position, tx: LedgerTransaction, quantity: Decimal
    ) -> None:
        value = transaction_value(
            tx.quantity, tx.total_value_in_base, tx.unit_price_in_base
        )
        cost_basis = None
        if value is not None:
            with lenient_arithmetic():
                cost_basis = finite_or_none(position.cost_basis + value)
        if cost_basis is None:
            # Later priced rows do not repair this; only a reset does
            position.cost_basis_known = False
        else:
            position.cost_basis = cost_basis
        position.quantity += quantity

    def _apply_disposal(self, position: Position, quantity: Decimal) -> None:
        reduction = None
        if position.cost_basis_known and position.quantity > 0:
            with lenient_arithmetic():
                average_cost = position.cost_basis / position.quantity
                reduction = finite_or_none(average_cost * abs(quantity))
        if reduction is None:
            position.cost_basis_known = False
        else:
            position.reduce_cost_basis(reduction)
        position.quantity += quantity


__all__ = ["TransactionApplier"]
