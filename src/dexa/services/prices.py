"""Market price service: periodic fetch, bucketed price queries and VWAP.

Query flow:
1. Resolve the time range and bucket width; the window must exceed one bucket.
2. Load bucket-averaged prices per market (paginated per market).
3. Normalize every point into the reference currency, sharing one
   request-scoped cache so each asset pair is converted once.
4. When market ids are given, compute one VWAP per (base, quote) pair.
"""

from collections.abc import Callable
from datetime import datetime, timedelta
from decimal import Decimal

from dexa.analytics.normalizer import PriceNormalizer, ReferencePriceCache
from dexa.analytics.period import (
    ensure_window_exceeds_bucket,
    resolve_bucket_width,
    resolve_time_range,
)
from dexa.analytics.rounding import round_amount, round_price
from dexa.data.catalog_store import MarketCatalogStore
from dexa.data.timeseries import TimeSeriesStore
from dexa.exceptions import (
    CurrencyNotFoundError,
    InvalidRequestError,
    RateLimitWaitExceededError,
    RateSourceError,
)
from dexa.loader.client import MarketDataFetcher
from dexa.logging import get_logger
from dexa.models import (
    ZERO,
    AveragePrice,
    Market,
    MarketPricePoint,
    MarketsPrices,
    Page,
    Price,
    ReferencePrices,
    TimeFrame,
    TimeRange,
)
from dexa.rater.base import RateService
from dexa.services.balances import utc_now
from dexa.services.fanout import MarketFetchPool

logger = get_logger(__name__)


class MarketPriceService:
    """Stores market price samples and serves them with reference-currency legs."""

    def __init__(
        self,
        timeseries: TimeSeriesStore,
        catalog: MarketCatalogStore,
        fetcher: MarketDataFetcher,
        rate_service: RateService,
        pool: MarketFetchPool,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        self._timeseries = timeseries
        self._catalog = catalog
        self._fetcher = fetcher
        self._rate_service = rate_service
        self._normalizer = PriceNormalizer(rate_service)
        self._pool = pool
        self._now = now

    async def insert_price(self, point: MarketPricePoint) -> bool:
        """Validate and store one sample. Returns False for a duplicate."""
        point.validate()
        return await self._timeseries.insert_price(point)

    async def get_prices(
        self,
        time_range: TimeRange,
        page: Page | None,
        reference_currency: str,
        time_frame: TimeFrame | None,
        *market_ids: str,
    ) -> MarketsPrices:
        """Prices per market over ``time_range`` plus per-pair VWAPs.

        Raises:
            InvalidRequestError: Bad time range or page, a non-empty
                reference currency that is not a supported fiat symbol, or a
                window not longer than the bucket width.
        """
        if page is not None:
            page.validate()

        start, end = resolve_time_range(time_range, self._now())
        bucket_width = resolve_bucket_width(start, end, time_frame)
        ensure_window_exceeds_bucket(start, end, bucket_width)

        if reference_currency and not self._rate_service.is_fiat_symbol_supported(
            reference_currency
        ):
            raise InvalidRequestError(
                f"reference currency {reference_currency} is not supported"
            )

        series = await self._timeseries.get_prices(start, end, page, bucket_width, *market_ids)

        cache: ReferencePriceCache = {}
        result = MarketsPrices()
        for market_id, points in series.items():
            prices = []
            for point in points:
                refs = await self._reference_prices(point, reference_currency, cache)
                prices.append(
                    Price(
                        base_price=round_amount(point.base_price),
                        base_reference_price=refs.base_reference_price,
                        quote_price=round_amount(point.quote_price),
                        quote_reference_price=refs.quote_reference_price,
                        time=point.time,
                    )
                )
            result.markets_prices[market_id] = prices

        if market_ids:
            result.average_prices = await self._average_prices(
                market_ids, reference_currency, bucket_width, start, end
            )

        return result

    async def _reference_prices(
        self,
        point: MarketPricePoint,
        reference_currency: str,
        cache: ReferencePriceCache,
    ) -> ReferencePrices:
        if not reference_currency:
            return ReferencePrices()
        try:
            return await self._normalizer.normalize(point, reference_currency, cache)
        except RateLimitWaitExceededError as e:
            logger.warning(
                "reference_price_rate_limited",
                market_id=point.market_id,
                reference_currency=reference_currency,
                error=str(e),
            )
            return ReferencePrices()

    async def _average_prices(
        self,
        market_ids: tuple[str, ...],
        reference_currency: str,
        bucket_width: timedelta,
        start: datetime,
        end: datetime,
    ) -> list[AveragePrice]:
        """One VWAP per asset pair among ``market_ids``, over the whole window.

        Pairs are taken from the unpaginated samples so the result does not
        depend on which page of the series was requested.
        """
        groups: dict[tuple[str, str], list[str]] = {}
        for point in await self._timeseries.get_raw_prices(start, end, *market_ids):
            ids = groups.setdefault((point.base_asset, point.quote_asset), [])
            if point.market_id not in ids:
                ids.append(point.market_id)

        averages = []
        for (_, quote_asset), ids in groups.items():
            vwap = await self._timeseries.calculate_vwap(bucket_width, start, end, *ids)
            rate = await self._quote_rate(quote_asset, reference_currency) if vwap else ZERO
            averages.append(
                AveragePrice(
                    market_ids=ids,
                    average_price=round_price(vwap),
                    average_reference_price=round_price(vwap * rate),
                )
            )
        return averages

    async def _quote_rate(self, quote_asset: str, reference_currency: str) -> Decimal:
        if not reference_currency:
            return ZERO
        try:
            ticker = self._rate_service.get_asset_currency(quote_asset)
            return await self._rate_service.convert_currency(ticker, reference_currency)
        except (CurrencyNotFoundError, RateSourceError, RateLimitWaitExceededError) as e:
            logger.warning(
                "average_reference_price_unavailable",
                quote_asset=quote_asset,
                reference_currency=reference_currency,
                error=str(e),
            )
            return ZERO

    async def fetch_prices_for_all_markets(self) -> int:
        """Spawn one price fetch per active market. Returns the number spawned."""
        markets = await self._catalog.get_markets_by_active_flag(True)
        for market in markets:
            self._pool.spawn("fetch_price", market, self._fetch_and_store_price)
        logger.info("price_fetch_cycle_started", markets=len(markets))
        return len(markets)

    async def _fetch_and_store_price(self, market: Market) -> None:
        price = await self._fetcher.fetch_price(market)
        await self.insert_price(
            MarketPricePoint(
                market_id=str(market.id),
                base_asset=market.base_asset,
                quote_asset=market.quote_asset,
                base_price=price.base_price,
                quote_price=price.quote_price,
                time=self._now(),
            )
        )
