"""Application services -- balance, price and market queries plus the periodic fetch jobs."""

from dexa.services.balances import MarketBalanceService
from dexa.services.fanout import MarketFetchPool
from dexa.services.markets import MarketService
from dexa.services.prices import MarketPriceService

__all__ = [
    "MarketBalanceService",
    "MarketFetchPool",
    "MarketPriceService",
    "MarketService",
]
