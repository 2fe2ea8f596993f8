"""Express a market price point in a reference currency.

A market quotes base against quote (e.g. L-BTC / USDt). The normalizer
looks up each asset's currency ticker and converts through the rate
service, preferring a leg that is itself a fiat currency as the anchor:

- base is fiat: quote_ref = rate(base -> ref), base_ref = 1 / quote_ref
- quote is fiat: quote_ref = rate(quote -> ref) * quote_price,
  base_ref = 1 / quote_ref
- neither is fiat: each leg is converted on its own

Results are cached per request under "{base}_{quote}" so one query over
many points of the same pair hits the rate service once.
"""

from decimal import Decimal

from dexa.analytics.rounding import round_price
from dexa.exceptions import CurrencyNotFoundError, RateSourceError
from dexa.logging import get_logger
from dexa.models import ZERO, MarketPricePoint, ReferencePrices
from dexa.rater.base import RateService

logger = get_logger(__name__)

ReferencePriceCache = dict[str, ReferencePrices]


def _invert(value: Decimal) -> Decimal:
    if value == 0:
        return ZERO
    return Decimal("1") / value


class PriceNormalizer:
    """Convert price points into a reference currency via a RateService."""

    def __init__(self, rate_service: RateService) -> None:
        self._rate_service = rate_service

    async def normalize(
        self,
        point: MarketPricePoint,
        reference_currency: str,
        cache: ReferencePriceCache,
    ) -> ReferencePrices:
        """Return both legs of ``point`` in ``reference_currency``, rounded.

        Conversion failures for a missing asset, an unsupported symbol or a
        failing rate source zero-fill the result. RateLimitWaitExceededError
        propagates.
        """
        cache_key = f"{point.base_asset}_{point.quote_asset}"
        cached = cache.get(cache_key)
        if cached is not None and cached.is_complete():
            return self._rounded(cached)

        try:
            prices = await self._convert(point, reference_currency)
        except (CurrencyNotFoundError, RateSourceError) as e:
            logger.warning(
                "reference_price_unavailable",
                market_id=point.market_id,
                base_asset=point.base_asset,
                quote_asset=point.quote_asset,
                reference_currency=reference_currency,
                error=str(e),
            )
            return ReferencePrices()

        if prices.is_complete():
            cache[cache_key] = prices
        return self._rounded(prices)

    async def _convert(
        self, point: MarketPricePoint, reference_currency: str
    ) -> ReferencePrices:
        base_ticker = self._ticker(point.base_asset)
        quote_ticker = self._ticker(point.quote_asset)

        if base_ticker is not None and self._rate_service.is_fiat_symbol_supported(base_ticker):
            quote_ref = await self._rate_service.convert_currency(base_ticker, reference_currency)
            return ReferencePrices(
                base_reference_price=_invert(quote_ref),
                quote_reference_price=quote_ref,
            )

        if quote_ticker is not None and self._rate_service.is_fiat_symbol_supported(quote_ticker):
            rate = await self._rate_service.convert_currency(quote_ticker, reference_currency)
            quote_ref = rate * point.quote_price
            return ReferencePrices(
                base_reference_price=_invert(quote_ref),
                quote_reference_price=quote_ref,
            )

        if base_ticker is None or quote_ticker is None:
            return ReferencePrices()

        # Legs are converted without a shared anchor: base_ref * quote_ref need not be 1
        return ReferencePrices(
            base_reference_price=await self._convert_leg(base_ticker, reference_currency),
            quote_reference_price=await self._convert_leg(quote_ticker, reference_currency),
        )

    def _ticker(self, asset_id: str) -> str | None:
        try:
            return self._rate_service.get_asset_currency(asset_id)
        except CurrencyNotFoundError:
            logger.debug("asset_currency_not_found", asset_id=asset_id)
            return None

    async def _convert_leg(self, ticker: str, reference_currency: str) -> Decimal:
        try:
            return await self._rate_service.convert_currency(ticker, reference_currency)
        except (CurrencyNotFoundError, RateSourceError) as e:
            logger.debug("leg_conversion_failed", ticker=ticker, error=str(e))
            return ZERO

    @staticmethod
    def _rounded(prices: ReferencePrices) -> ReferencePrices:
        return ReferencePrices(
            base_reference_price=round_price(prices.base_reference_price),
            quote_reference_price=round_price(prices.quote_reference_price),
        )
