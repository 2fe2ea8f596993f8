"""Exchange rate layer -- CoinGecko and forex sources behind a caching, rate-limited client."""

from dexa.rater.base import RateService
from dexa.rater.client import ExchangeRateClient
from dexa.rater.limiter import TokenBucket
from dexa.rater.sources import (
    CoinGeckoSource,
    CryptoPriceSource,
    ExchangeRateApiSource,
    ForexRateSource,
)

__all__ = [
    "CoinGeckoSource",
    "CryptoPriceSource",
    "ExchangeRateApiSource",
    "ExchangeRateClient",
    "ForexRateSource",
    "RateService",
    "TokenBucket",
]
