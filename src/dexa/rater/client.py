"""Caching, rate-limited exchange rate client.

Converts between crypto coins and fiat currencies using CoinGecko for
crypto -> fiat quotes and a forex source for fiat -> fiat tables.

Caches (all owned by one client instance, invalidated by TTL only):
- coin list {coin_id: symbol}, refreshed every refresh_interval
- crypto rates {(coin_id, fiat): rate}, each refreshed every refresh_interval
- fiat tables {target: {SYMBOL: rate}}, refreshed every fiat_refresh_interval,
  served stale when the forex source fails
- fiat symbol set, fetched once by start() and never refreshed

Every CoinGecko call first takes a token from the shared TokenBucket.
Each cache refresh runs under its own asyncio.Lock and re-checks freshness
after acquiring it, so concurrent callers coalesce into one external call.
"""

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass
from decimal import Decimal

from dexa.exceptions import (
    AssetNotFoundError,
    CurrencyNotFoundError,
    RateLimitWaitExceededError,
    RateSourceError,
    UnsupportedSymbolError,
)
from dexa.logging import get_logger
from dexa.rater.base import RateService
from dexa.rater.limiter import TokenBucket
from dexa.rater.sources import CryptoPriceSource, ForexRateSource

logger = get_logger(__name__)

BTC_COIN_ID = "bitcoin"
BTC_ALIASES = frozenset({"btc", "lbtc"})
FIAT_ANCHOR = "USD"

DEFAULT_REFRESH_INTERVAL = 300.0  # 5 minutes
DEFAULT_WAIT_TIMEOUT = 10.0
DEFAULT_FIAT_REFRESH_INTERVAL = 86400.0  # 24 hours


@dataclass
class _CachedRate:
    rate: Decimal
    refreshed_at: float


@dataclass
class _CachedTable:
    rates: dict[str, Decimal]
    refreshed_at: float


class ExchangeRateClient(RateService):
    """RateService backed by CoinGecko and a forex source.

    Args:
        asset_currency_pairs: Static asset id -> currency ticker table.
        crypto_source: Crypto price source (CoinGecko).
        forex_source: Fiat rate source.
        limiter: Token bucket shared by all CoinGecko calls.
        refresh_interval: TTL in seconds for coin list and crypto rates.
        wait_timeout: Max seconds to wait on the limiter per call.
        fiat_refresh_interval: TTL in seconds for fiat rate tables.
        clock: Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        asset_currency_pairs: dict[str, str],
        crypto_source: CryptoPriceSource,
        forex_source: ForexRateSource,
        limiter: TokenBucket,
        refresh_interval: float = DEFAULT_REFRESH_INTERVAL,
        wait_timeout: float = DEFAULT_WAIT_TIMEOUT,
        fiat_refresh_interval: float = DEFAULT_FIAT_REFRESH_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._asset_currency_pairs = dict(asset_currency_pairs)
        self._crypto_source = crypto_source
        self._forex_source = forex_source
        self._limiter = limiter
        self._refresh_interval = refresh_interval
        self._wait_timeout = wait_timeout
        self._fiat_refresh_interval = fiat_refresh_interval
        self._clock = clock

        self._fiat_symbols: frozenset[str] = frozenset()

        self._coins: dict[str, str] = {}
        self._coins_refreshed_at: float = 0.0
        self._coins_lock = asyncio.Lock()

        self._crypto_rates: dict[tuple[str, str], _CachedRate] = {}
        self._crypto_rates_lock = asyncio.Lock()

        self._fiat_tables: dict[str, _CachedTable] = {}
        self._fiat_tables_lock = asyncio.Lock()

    async def start(self) -> None:
        """Load the supported fiat symbol set. Called once at startup."""
        rates = await self._forex_source.latest_rates(FIAT_ANCHOR)
        self._fiat_symbols = frozenset(symbol.lower() for symbol in rates)
        self._fiat_symbols |= {FIAT_ANCHOR.lower()}
        # The anchor table doubles as the first cached fiat table
        self._fiat_tables[FIAT_ANCHOR] = _CachedTable(dict(rates), self._clock())
        logger.info("fiat_symbols_loaded", count=len(self._fiat_symbols))

    # ──────────────────────────────────────────────
    # RateService
    # ──────────────────────────────────────────────

    def get_asset_currency(self, asset_id: str) -> str:
        currency = self._asset_currency_pairs.get(asset_id)
        if currency is None:
            raise AssetNotFoundError(asset_id)
        return currency

    def is_fiat_symbol_supported(self, symbol: str) -> bool:
        return symbol.lower() in self._fiat_symbols

    async def convert_currency(self, source: str, target: str) -> Decimal:
        source = source.lower()
        target = target.lower()

        if source in BTC_ALIASES:
            source = BTC_COIN_ID

        if source == target:
            return Decimal("1")

        if not self.is_fiat_symbol_supported(target):
            raise UnsupportedSymbolError(target)

        if await self._is_crypto_coin(source):
            return await self._get_crypto_to_fiat_rate(source, target)

        if self.is_fiat_symbol_supported(source):
            return await self._get_fiat_to_fiat_rate(source, target)

        raise UnsupportedSymbolError(source)

    # ──────────────────────────────────────────────
    # Coin list
    # ──────────────────────────────────────────────

    def _coins_fresh(self) -> bool:
        return bool(self._coins) and (
            self._clock() - self._coins_refreshed_at < self._refresh_interval
        )

    async def _is_crypto_coin(self, coin_id: str) -> bool:
        if not self._coins_fresh():
            await self._reload_coin_list()
        return coin_id in self._coins

    async def _reload_coin_list(self) -> None:
        async with self._coins_lock:
            if self._coins_fresh():
                return

            try:
                await self._limiter.acquire(self._wait_timeout)
                coins = await self._crypto_source.coins_list()
                if not coins:
                    raise RateSourceError("coin list returned empty list")
            except (RateSourceError, RateLimitWaitExceededError) as e:
                if not self._coins:
                    raise
                logger.warning("coin_list_refresh_failed_using_stale", error=str(e))
                return

            self._coins = coins
            self._coins_refreshed_at = self._clock()
            logger.debug("coin_list_reloaded", coins=len(coins))

    # ──────────────────────────────────────────────
    # Crypto -> fiat
    # ──────────────────────────────────────────────

    def _fresh_crypto_rate(self, key: tuple[str, str]) -> Decimal | None:
        cached = self._crypto_rates.get(key)
        if cached is None:
            return None
        if self._clock() - cached.refreshed_at >= self._refresh_interval:
            return None
        return cached.rate

    async def _get_crypto_to_fiat_rate(self, coin_id: str, fiat: str) -> Decimal:
        key = (coin_id, fiat)
        rate = self._fresh_crypto_rate(key)
        if rate is not None:
            return rate

        async with self._crypto_rates_lock:
            rate = self._fresh_crypto_rate(key)
            if rate is not None:
                return rate

            await self._limiter.acquire(self._wait_timeout)
            quotes = await self._crypto_source.simple_price([coin_id], [fiat])
            rate = quotes.get(coin_id, {}).get(fiat, Decimal("0"))
            if rate == 0:
                raise CurrencyNotFoundError(
                    f"can't convert {coin_id} to {fiat}, currency not found"
                )

            self._crypto_rates[key] = _CachedRate(rate, self._clock())
            logger.debug("crypto_rate_reloaded", coin_id=coin_id, fiat=fiat, rate=str(rate))
            return rate

    # ──────────────────────────────────────────────
    # Fiat -> fiat
    # ──────────────────────────────────────────────

    def _fiat_table_fresh(self, target: str) -> bool:
        cached = self._fiat_tables.get(target)
        return cached is not None and (
            self._clock() - cached.refreshed_at < self._fiat_refresh_interval
        )

    async def _get_fiat_table(self, target: str) -> dict[str, Decimal]:
        if self._fiat_table_fresh(target):
            return self._fiat_tables[target].rates

        async with self._fiat_tables_lock:
            if self._fiat_table_fresh(target):
                return self._fiat_tables[target].rates

            try:
                rates = await self._forex_source.latest_rates(target)
            except RateSourceError as e:
                stale = self._fiat_tables.get(target)
                if stale is None:
                    raise
                logger.warning("fiat_table_refresh_failed_using_stale", target=target, error=str(e))
                return stale.rates

            self._fiat_tables[target] = _CachedTable(rates, self._clock())
            logger.debug("fiat_table_reloaded", target=target, symbols=len(rates))
            return rates

    async def _get_fiat_to_fiat_rate(self, source: str, target: str) -> Decimal:
        source = source.upper()
        target = target.upper()

        table = await self._get_fiat_table(target)
        # Table holds units of SYMBOL per one unit of target
        per_target = table.get(source)
        if not per_target:
            raise CurrencyNotFoundError(
                f"can't convert {source} to {target}, currency not found"
            )
        return Decimal("1") / per_target
