"""Remote market data fetcher.

Discovers liquidity providers from a JSON registry and talks to each
provider's HTTP/JSON trade interface:

- POST {endpoint}/v1/markets          -> markets listed by the provider
- POST {url}/v1/market/balance        -> current market balance
- POST {url}/v1/market/price          -> current spot price
- POST {url}/v1/trade/preview         -> fallback when the price endpoint fails
"""

from abc import ABC, abstractmethod
from decimal import Decimal, InvalidOperation
from typing import Any

from dexa.analytics.rounding import round_amount
from dexa.exceptions import MarketFetchError
from dexa.http import JsonHttpClient
from dexa.logging import get_logger
from dexa.loader.types import FetchedBalance, FetchedPrice, LiquidityProvider, RemoteMarket
from dexa.models import Market

logger = get_logger(__name__)


class MarketDataFetcher(ABC):
    """Abstract source of provider markets, balances and prices."""

    @abstractmethod
    async def fetch_providers_markets(self) -> list[LiquidityProvider]:
        """All registry providers whose markets could be listed."""
        ...

    @abstractmethod
    async def fetch_balance(self, market: Market) -> FetchedBalance:
        ...

    @abstractmethod
    async def fetch_price(self, market: Market) -> FetchedPrice:
        ...


def _market_payload(market: Market) -> dict[str, Any]:
    return {"market": {"baseAsset": market.base_asset, "quoteAsset": market.quote_asset}}


def _expect_object(data: Any, url: str) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise MarketFetchError(f"unexpected payload from {url}")
    return data


def _to_decimal(value: Any, field_name: str) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise MarketFetchError(f"invalid {field_name}: {value!r}") from None


def _mean(values: list[Decimal]) -> Decimal:
    return round_amount(sum(values, Decimal("0")) / len(values))


class HttpMarketDataFetcher(JsonHttpClient, MarketDataFetcher):
    """MarketDataFetcher over the providers' HTTP/JSON interface.

    Args:
        registry_url: Absolute URL of the provider registry JSON.
        price_amount: Base amount used for trade-preview pricing.
        timeout_seconds: Per-request timeout.
    """

    error_cls = MarketFetchError

    def __init__(
        self,
        registry_url: str,
        price_amount: int = 100,
        timeout_seconds: float = 10.0,
    ) -> None:
        super().__init__("", timeout_seconds)
        self._registry_url = registry_url
        self._price_amount = price_amount

    async def fetch_providers_markets(self) -> list[LiquidityProvider]:
        registry = await self._request("GET", self._registry_url)
        if not isinstance(registry, list):
            raise MarketFetchError("registry returned unexpected payload")

        providers: list[LiquidityProvider] = []
        for entry in registry:
            name = entry.get("name", "")
            endpoint = str(entry.get("endpoint", "")).rstrip("/")
            if not endpoint:
                continue
            try:
                markets = await self._fetch_provider_markets(endpoint)
            except MarketFetchError as e:
                logger.error("provider_markets_fetch_failed", provider=name, error=str(e))
                continue
            providers.append(LiquidityProvider(name=name, endpoint=endpoint, markets=markets))

        logger.info("providers_fetched", providers=len(providers), registry=len(registry))
        return providers

    async def _fetch_provider_markets(self, endpoint: str) -> list[RemoteMarket]:
        url = f"{endpoint}/v1/markets"
        data = _expect_object(await self._request("POST", url, payload={}), url)
        markets = []
        for entry in data.get("markets", []):
            info = entry.get("market", {})
            markets.append(
                RemoteMarket(
                    url=endpoint,
                    base_asset=info.get("baseAsset", ""),
                    quote_asset=info.get("quoteAsset", ""),
                )
            )
        return markets

    async def fetch_balance(self, market: Market) -> FetchedBalance:
        url = f"{market.url}/v1/market/balance"
        data = _expect_object(
            await self._request("POST", url, payload=_market_payload(market)), url
        )
        balance = data.get("balance", {}).get("balance", {})
        return FetchedBalance(
            base_balance=_to_decimal(balance.get("baseAmount", "0"), "base balance"),
            quote_balance=_to_decimal(balance.get("quoteAmount", "0"), "quote balance"),
        )

    async def fetch_price(self, market: Market) -> FetchedPrice:
        try:
            url = f"{market.url}/v1/market/price"
            data = _expect_object(
                await self._request("POST", url, payload=_market_payload(market)), url
            )
        except MarketFetchError as e:
            logger.debug("market_price_unavailable_using_preview", url=market.url, error=str(e))
            return await self._preview_price(market)

        quote_price = _to_decimal(data.get("spotPrice"), "spot price")
        if quote_price == 0:
            raise MarketFetchError(f"zero spot price for market at {market.url}")
        return FetchedPrice(base_price=Decimal("1") / quote_price, quote_price=quote_price)

    async def _preview_price(self, market: Market) -> FetchedPrice:
        payload = _market_payload(market)
        payload.update(
            {
                "type": "TRADE_TYPE_SELL",
                "amount": str(self._price_amount),
                "asset": market.base_asset,
            }
        )
        url = f"{market.url}/v1/trade/preview"
        data = _expect_object(await self._request("POST", url, payload=payload), url)

        previews = data.get("previews", [])
        if not previews:
            raise MarketFetchError(f"no trade previews for market at {market.url}")

        base_prices = [
            _to_decimal(p.get("price", {}).get("basePrice"), "base price") for p in previews
        ]
        quote_prices = [
            _to_decimal(p.get("price", {}).get("quotePrice"), "quote price") for p in previews
        ]
        return FetchedPrice(base_price=_mean(base_prices), quote_price=_mean(quote_prices))
