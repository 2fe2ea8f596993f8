"""External price sources behind the exchange rate client.

Two sources, each behind a small abstract interface so the client can be
tested with in-memory fakes:
- CryptoPriceSource: crypto coin list and crypto -> fiat quotes (CoinGecko)
- ForexRateSource: fiat rate tables for a base currency (open.er-api.com)

Any payload that does not have the documented shape is reported as
RateSourceError, the same as a transport or status failure.
"""

from abc import ABC, abstractmethod
from decimal import Decimal, InvalidOperation
from typing import Any

from dexa.exceptions import RateSourceError
from dexa.http import JsonHttpClient


def _rate(value: Any, what: str) -> Decimal:
    if isinstance(value, bool):
        raise RateSourceError(f"invalid {what}: {value!r}")
    try:
        rate = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise RateSourceError(f"invalid {what}: {value!r}") from None
    if not rate.is_finite():
        raise RateSourceError(f"invalid {what}: {value!r}")
    return rate


def _expect_dict(value: Any, what: str) -> dict:
    if not isinstance(value, dict):
        raise RateSourceError(f"{what} returned unexpected payload")
    return value


class CryptoPriceSource(ABC):
    """Crypto-asset price source."""

    @abstractmethod
    async def coins_list(self) -> dict[str, str]:
        """Return all known coins as {coin_id: symbol}."""
        ...

    @abstractmethod
    async def simple_price(
        self, ids: list[str], vs_currencies: list[str]
    ) -> dict[str, dict[str, Decimal]]:
        """Return {coin_id: {vs_currency: price}} for the requested pairs."""
        ...


class ForexRateSource(ABC):
    """Fiat exchange-rate source."""

    @abstractmethod
    async def latest_rates(self, base: str) -> dict[str, Decimal]:
        """Return {SYMBOL: units of SYMBOL per one unit of base}."""
        ...


class CoinGeckoSource(JsonHttpClient, CryptoPriceSource):
    """CoinGecko public API v3."""

    error_cls = RateSourceError

    def __init__(
        self,
        base_url: str = "https://api.coingecko.com/api/v3",
        timeout_seconds: float = 10.0,
    ) -> None:
        super().__init__(base_url, timeout_seconds)

    async def coins_list(self) -> dict[str, str]:
        data = await self._request("GET", "/coins/list")
        if not isinstance(data, list):
            raise RateSourceError("coin list returned unexpected payload")

        coins: dict[str, str] = {}
        for entry in data:
            coin = _expect_dict(entry, "coin list entry")
            if coin.get("id"):
                coins[str(coin["id"]).lower()] = str(coin.get("symbol", "")).lower()
        return coins

    async def simple_price(
        self, ids: list[str], vs_currencies: list[str]
    ) -> dict[str, dict[str, Decimal]]:
        data = await self._request(
            "GET",
            "/simple/price",
            params={"ids": ",".join(ids), "vs_currencies": ",".join(vs_currencies)},
        )
        prices: dict[str, dict[str, Decimal]] = {}
        for coin_id, quotes in _expect_dict(data, "simple price").items():
            prices[coin_id] = {
                vs: _rate(price, f"{coin_id}/{vs} price")
                for vs, price in _expect_dict(quotes, f"simple price for {coin_id}").items()
            }
        return prices


class ExchangeRateApiSource(JsonHttpClient, ForexRateSource):
    """open.er-api.com latest rates endpoint (no API key required)."""

    error_cls = RateSourceError

    def __init__(
        self,
        base_url: str = "https://open.er-api.com/v6",
        timeout_seconds: float = 10.0,
    ) -> None:
        super().__init__(base_url, timeout_seconds)

    async def latest_rates(self, base: str) -> dict[str, Decimal]:
        base = base.upper()
        data = _expect_dict(await self._request("GET", f"/latest/{base}"), "forex source")
        if data.get("result") != "success":
            raise RateSourceError(
                f"forex source error for {base}: {data.get('error-type', 'unknown')}"
            )
        # The provider falls back to another base when the requested one is unknown
        if str(data.get("base_code", "")).upper() != base:
            raise RateSourceError(f"forex source does not support base {base}")

        rates = _expect_dict(data.get("rates"), f"forex rates for {base}")
        return {
            str(symbol).upper(): _rate(rate, f"{symbol} rate")
            for symbol, rate in rates.items()
        }
