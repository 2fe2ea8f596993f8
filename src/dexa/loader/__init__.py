"""Remote market loader -- provider registry discovery and market balance/price fetching."""

from dexa.loader.client import HttpMarketDataFetcher, MarketDataFetcher
from dexa.loader.types import FetchedBalance, FetchedPrice, LiquidityProvider, RemoteMarket

__all__ = [
    "FetchedBalance",
    "FetchedPrice",
    "HttpMarketDataFetcher",
    "LiquidityProvider",
    "MarketDataFetcher",
    "RemoteMarket",
]
