"""Domain exception hierarchy for Portfolio Ledger.

All domain-specific exceptions inherit from PortfolioLedgerError.
This allows catching all application errors with a single base class
while preserving specificity for individual error types.

The cost-basis engine itself does not raise for malformed transaction data;
only caller contract violations end up here.
"""

from typing import Any


class PortfolioLedgerError(Exception):
    """Base exception for all Portfolio Ledger errors.

    All domain exceptions should inherit from this class.
    Includes optional error_code for API responses and extra context.
    """

    error_code: str = "PFL_ERROR"
    status_code: int = 500

    def __init__(
        self,
        message: str,
        *,
        error_code: str | None = None,
        status_code: int | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code
        if status_code:
            self.status_code = status_code
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.error_code,
            "message": self.message,
            "context": self.context,
        }


# =============================================================================
# Recalculation Errors
# =============================================================================


class RecalcError(PortfolioLedgerError):
    """Base exception for cost-basis recalculation errors."""

    error_code = "RECALC_ERROR"
    status_code = 400


class InvalidRecalcModeError(RecalcError):
    """Raised when a recalculation mode is not PURE or HONOR_RESETS."""

    error_code = "INVALID_RECALC_MODE"

    def __init__(self, mode: object) -> None:
        super().__init__(
            f"Invalid recalculation mode: {mode!r}",
            context={"mode": str(mode)},
        )


class InvalidTransactionListError(RecalcError):
    """Raised when the engine is handed something other than a list of rows."""

    error_code = "INVALID_TRANSACTION_LIST"

    def __init__(self, received: object) -> None:
        type_name = type(received).__name__
        super().__init__(
            f"Expected a list of ledger transactions, got {type_name}",
            context={"received_type": type_name},
        )


class CostBasisResetError(RecalcError):
    """Raised when a cost-basis reset cannot be created."""

    error_code = "COST_BASIS_RESET_ERROR"


# =============================================================================
# Transaction Errors
# =============================================================================


class TransactionError(PortfolioLedgerError):
    """Base exception for transaction-related errors."""

    error_code = "TRANSACTION_ERROR"
    status_code = 400


class TransactionNotFoundError(TransactionError):
    """Raised when one or more transactions cannot be found."""

    error_code = "TRANSACTION_NOT_FOUND"
    status_code = 404

    def __init__(self, transaction_ids: list[int]) -> None:
        ids = ", ".join(str(i) for i in transaction_ids)
        super().__init__(
            f"Transactions not found: {ids}",
            context={"transaction_ids": list(transaction_ids)},
        )


class TransferResolutionError(TransactionError):
    """Raised when a transfer resolution request is malformed."""

    error_code = "TRANSFER_RESOLUTION_ERROR"


class AssetNotFoundError(TransactionError):
    """Raised when an asset referenced by a ledger row does not exist."""

    error_code = "ASSET_NOT_FOUND"
    status_code = 404

    def __init__(self, asset_id: int) -> None:
        super().__init__(
            f"Asset not found: {asset_id}",
            context={"asset_id": asset_id},
        )


class AccountNotFoundError(TransactionError):
    """Raised when an account referenced by a ledger row does not exist."""

    error_code = "ACCOUNT_NOT_FOUND"
    status_code = 404

    def __init__(self, account_id: int) -> None:
        super().__init__(
            f"Account not found: {account_id}",
            context={"account_id": account_id},
        )


# =============================================================================
# Sync Job Errors
# =============================================================================


class SyncJobError(PortfolioLedgerError):
    """Base exception for exchange sync queue errors."""

    error_code = "SYNC_JOB_ERROR"
    status_code = 400


class SyncJobNotFoundError(SyncJobError):
    """Raised when a sync job cannot be found."""

    error_code = "SYNC_JOB_NOT_FOUND"
    status_code = 404

    def __init__(self, job_id: int) -> None:
        super().__init__(
            f"Sync job not found: {job_id}",
            context={"job_id": job_id},
        )


class SyncFailedError(SyncJobError):
    """Raised by account syncers when an exchange sync cannot complete."""

    error_code = "SYNC_FAILED"
    status_code = 502


# =============================================================================
# Validation Errors
# =============================================================================


class ValidationError(PortfolioLedgerError):
    """Base exception for validation errors."""

    error_code = "VALIDATION_ERROR"
    status_code = 422


class InvalidDecimalError(ValidationError):
    """Raised when a user-entered number cannot be parsed."""

    error_code = "INVALID_DECIMAL"

    def __init__(self, raw: str, reason: str = "not a number") -> None:
        super().__init__(
            f"Invalid number '{raw}': {reason}",
            context={"raw": raw, "reason": reason},
        )


class InvalidDateTimeError(ValidationError):
    """Raised when a user-entered timestamp cannot be parsed."""

    error_code = "INVALID_DATETIME"

    def __init__(self, raw: str) -> None:
        super().__init__(
            f"Invalid date/time: '{raw}'",
            context={"raw": raw},
        )


class ValuationMismatchError(ValidationError):
    """Raised when quantity * unit price disagrees with the total value."""

    error_code = "VALUATION_MISMATCH"

    def __init__(self, quantity: str, unit_price: str, total_value: str) -> None:
        super().__init__(
            "Valuation mismatch (quantity * unit price != total value)",
            context={
                "quantity": quantity,
                "unit_price": unit_price,
                "total_value": total_value,
            },
        )
