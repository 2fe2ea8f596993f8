"""Abstract rate service interface.

The price normalizer and the price service depend only on this interface,
keeping CoinGecko / forex specifics isolated in ExchangeRateClient.
"""

from abc import ABC, abstractmethod
from decimal import Decimal


class RateService(ABC):
    """Currency conversion capability used by price normalization."""

    @abstractmethod
    async def convert_currency(self, source: str, target: str) -> Decimal:
        """Convert 1 unit of ``source`` into ``target``.

        e.g. convert_currency("EUR", "USD") -> Decimal("1.08")
        """
        ...

    @abstractmethod
    def is_fiat_symbol_supported(self, symbol: str) -> bool:
        """Whether ``symbol`` is a fiat currency code known to the forex source."""
        ...

    @abstractmethod
    def get_asset_currency(self, asset_id: str) -> str:
        """Currency ticker configured for an asset id."""
        ...
