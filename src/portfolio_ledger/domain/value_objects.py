from decimal import Decimal
from enum import Enum

MATCH_REFERENCE_PREFIX = "MATCH:"
RECALC_REFERENCE_PREFIX = "RECALC:"

# Quantities at or below this magnitude count as a flat position
ZERO_QUANTITY_EPSILON = Decimal("1e-12")


class TxType(str, Enum):
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"
    TRADE = "TRADE"
    YIELD = "YIELD"
    NFT_TRADE = "NFT_TRADE"
    OFFLINE_TRADE = "OFFLINE_TRADE"
    OTHER = "OTHER"
    HEDGE = "HEDGE"
    TRANSFER = "TRANSFER"
    RECONCILIATION = "RECONCILIATION"
    COST_BASIS_RESET = "COST_BASIS_RESET"


class RecalcMode(str, Enum):
    PURE = "PURE"
    HONOR_RESETS = "HONOR_RESETS"


class TransferIssue(str, Enum):
    UNMATCHED = "UNMATCHED"
    AMBIGUOUS = "AMBIGUOUS"
    INVALID_LEGS = "INVALID_LEGS"
    FEE_MISMATCH = "FEE_MISMATCH"


class AssetType(str, Enum):
    CASH = "CASH"
    STABLE = "STABLE"
    CRYPTO = "CRYPTO"
    EQUITY = "EQUITY"
    ETF = "ETF"
    NFT = "NFT"
    OTHER = "OTHER"


class VolatilityBucket(str, Enum):
    CASH_LIKE = "CASH_LIKE"
    VOLATILE = "VOLATILE"


class ResolutionAction(str, Enum):
    MATCH = "MATCH"
    SEPARATE = "SEPARATE"


class SyncJobStatus(str, Enum):
    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class SyncRequestedBy(str, Enum):
    MANUAL = "MANUAL"
    CRON = "CRON"


class SyncMode(str, Enum):
    TRADES = "trades"
    BALANCES = "balances"
    FULL = "full"


__all__ = [
    "MATCH_REFERENCE_PREFIX",
    "RECALC_REFERENCE_PREFIX",
    "ZERO_QUANTITY_EPSILON",
    "TxType",
    "RecalcMode",
    "TransferIssue",
    "AssetType",
    "VolatilityBucket",
    "ResolutionAction",
    "SyncJobStatus",
    "SyncRequestedBy",
    "SyncMode",
]
