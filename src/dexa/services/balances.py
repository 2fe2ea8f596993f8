"""Market balance service: periodic fetch and bucketed balance queries."""

from collections.abc import Callable
from datetime import datetime, timezone

from dexa.analytics.period import resolve_bucket_width, resolve_time_range
from dexa.analytics.rounding import round_amount
from dexa.data.catalog_store import MarketCatalogStore
from dexa.data.timeseries import TimeSeriesStore
from dexa.loader.client import MarketDataFetcher
from dexa.logging import get_logger
from dexa.models import (
    Balance,
    Market,
    MarketBalancePoint,
    MarketsBalances,
    Page,
    TimeFrame,
    TimeRange,
)
from dexa.services.fanout import MarketFetchPool

logger = get_logger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MarketBalanceService:
    """Stores market balance samples and serves them bucket-averaged."""

    def __init__(
        self,
        timeseries: TimeSeriesStore,
        catalog: MarketCatalogStore,
        fetcher: MarketDataFetcher,
        pool: MarketFetchPool,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        self._timeseries = timeseries
        self._catalog = catalog
        self._fetcher = fetcher
        self._pool = pool
        self._now = now

    async def insert_balance(self, point: MarketBalancePoint) -> bool:
        """Validate and store one sample. Returns False for a duplicate."""
        point.validate()
        return await self._timeseries.insert_balance(point)

    async def get_balances(
        self,
        time_range: TimeRange,
        page: Page | None,
        time_frame: TimeFrame | None,
        *market_ids: str,
    ) -> MarketsBalances:
        """Balances per market over ``time_range``, one entry per time bucket."""
        if page is not None:
            page.validate()

        start, end = resolve_time_range(time_range, self._now())
        bucket_width = resolve_bucket_width(start, end, time_frame)

        series = await self._timeseries.get_balances(start, end, page, bucket_width, *market_ids)
        return MarketsBalances(
            markets_balances={
                market_id: [
                    Balance(
                        base_balance=round_amount(p.base_balance),
                        quote_balance=round_amount(p.quote_balance),
                        time=p.time,
                    )
                    for p in points
                ]
                for market_id, points in series.items()
            }
        )

    async def fetch_balances_for_all_markets(self) -> int:
        """Spawn one balance fetch per active market. Returns the number spawned."""
        markets = await self._catalog.get_markets_by_active_flag(True)
        for market in markets:
            self._pool.spawn("fetch_balance", market, self._fetch_and_store_balance)
        logger.info("balance_fetch_cycle_started", markets=len(markets))
        return len(markets)

    async def _fetch_and_store_balance(self, market: Market) -> None:
        balance = await self._fetcher.fetch_balance(market)
        await self.insert_balance(
            MarketBalancePoint(
                market_id=str(market.id),
                base_asset=market.base_asset,
                quote_asset=market.quote_asset,
                base_balance=balance.base_balance,
                quote_balance=balance.quote_balance,
                time=self._now(),
            )
        )
