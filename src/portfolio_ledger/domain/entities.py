from dataclasses import dataclass

from portfolio_ledger.domain.transactions import AssetInfo


@dataclass
class Account:
    name: str
    id: int | None = None
    exchange_id: str | None = None


@dataclass
class Asset:
    symbol: str
    name: str = ""
    type: str = "CRYPTO"
    volatility_bucket: str = "VOLATILE"
    id: int | None = None

    @property
    def info(self) -> AssetInfo:
        return AssetInfo(
            type=self.type,
            volatility_bucket=self.volatility_bucket,
            symbol=self.symbol,
        )


__all__ = ["Account", "Asset"]
