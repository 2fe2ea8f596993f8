"""Remote market type definitions.

All monetary values use Decimal. Never use float for balances or prices.
"""

from dataclasses import dataclass, field
from decimal import Decimal

from dexa.models import Market


@dataclass
class RemoteMarket:
    """A market as advertised by a liquidity provider endpoint."""

    url: str
    base_asset: str
    quote_asset: str


@dataclass
class LiquidityProvider:
    """A registry entry with the markets its endpoint currently lists."""

    name: str
    endpoint: str
    markets: list[RemoteMarket] = field(default_factory=list)

    def catalog_markets(self) -> list[Market]:
        """The provider's markets as active catalog entries."""
        return [
            Market(
                provider_name=self.name,
                url=m.url,
                base_asset=m.base_asset,
                quote_asset=m.quote_asset,
                active=True,
            )
            for m in self.markets
        ]


@dataclass
class FetchedBalance:
    base_balance: Decimal
    quote_balance: Decimal


@dataclass
class FetchedPrice:
    base_price: Decimal
    quote_price: Decimal
