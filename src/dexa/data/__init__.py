"""Persistence layer.

Provides SQLite database management, the market balance/price time-series
store with bucketing and VWAP, and the market catalog store.
"""

from dexa.data.catalog_store import MarketCatalogStore
from dexa.data.database import AnalyticsDatabase
from dexa.data.timeseries import TimeSeriesStore, paginate

__all__ = [
    "AnalyticsDatabase",
    "MarketCatalogStore",
    "TimeSeriesStore",
    "paginate",
]
