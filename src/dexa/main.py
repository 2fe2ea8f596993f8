"""Entry point for the DEX analytics service.

Wires all components together and serves the HTTP API with uvicorn. The
fetch jobs and the API share a single asyncio event loop; FastAPI's
lifespan opens the database and HTTP sessions, loads the fiat symbol set
and starts the scheduler.

Component wiring order (in _build_components):
1. AnalyticsDatabase, TimeSeriesStore, MarketCatalogStore
2. CoinGecko and forex sources, TokenBucket, ExchangeRateClient
3. HttpMarketDataFetcher
4. MarketFetchPool and the balance, price, market and loader services
5. PeriodicScheduler with the discovery and fetch jobs
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import FastAPI

from dexa.api.app import create_app
from dexa.catalog.service import MarketLoaderService
from dexa.config import AppSettings
from dexa.data.catalog_store import MarketCatalogStore
from dexa.data.database import AnalyticsDatabase
from dexa.data.timeseries import TimeSeriesStore
from dexa.loader.client import HttpMarketDataFetcher
from dexa.logging import get_logger, setup_logging
from dexa.rater.client import ExchangeRateClient
from dexa.rater.limiter import TokenBucket
from dexa.rater.sources import CoinGeckoSource, ExchangeRateApiSource
from dexa.scheduler import PeriodicScheduler
from dexa.services.balances import MarketBalanceService
from dexa.services.fanout import MarketFetchPool
from dexa.services.markets import MarketService
from dexa.services.prices import MarketPriceService


def _build_components(settings: AppSettings) -> dict[str, Any]:
    """Build the dependency graph from settings. Nothing is connected yet."""
    database = AnalyticsDatabase(settings.storage.db_path)
    timeseries = TimeSeriesStore(database)
    catalog = MarketCatalogStore(database)

    rater = settings.rater
    crypto_source = CoinGeckoSource(rater.coingecko_url, rater.http_timeout_seconds)
    forex_source = ExchangeRateApiSource(rater.forex_url, rater.http_timeout_seconds)
    rate_client = ExchangeRateClient(
        asset_currency_pairs=rater.asset_currency_table,
        crypto_source=crypto_source,
        forex_source=forex_source,
        limiter=TokenBucket.per_minute(rater.calls_per_minute, rater.burst),
        refresh_interval=rater.refresh_interval_seconds,
        wait_timeout=rater.wait_timeout_seconds,
        fiat_refresh_interval=rater.fiat_refresh_interval_seconds,
    )

    fetcher = HttpMarketDataFetcher(
        settings.loader.registry_url,
        price_amount=settings.loader.price_amount,
        timeout_seconds=settings.loader.http_timeout_seconds,
    )

    pool = MarketFetchPool(settings.jobs.max_concurrent_fetches)
    balance_service = MarketBalanceService(timeseries, catalog, fetcher, pool)
    price_service = MarketPriceService(timeseries, catalog, fetcher, rate_client, pool)
    market_service = MarketService(catalog)
    loader_service = MarketLoaderService(catalog, fetcher)

    jobs = settings.jobs
    scheduler = PeriodicScheduler()
    scheduler.register_periodic(
        jobs.market_discovery_period_minutes * 60,
        loader_service.fetch_markets,
        run_immediately=True,
        name="fetch_markets",
    )
    scheduler.register_periodic(
        jobs.balance_period_minutes * 60,
        balance_service.fetch_balances_for_all_markets,
        name="fetch_balances",
    )
    scheduler.register_periodic(
        jobs.price_period_minutes * 60,
        price_service.fetch_prices_for_all_markets,
        name="fetch_prices",
    )

    return {
        "database": database,
        "crypto_source": crypto_source,
        "forex_source": forex_source,
        "rate_client": rate_client,
        "fetcher": fetcher,
        "pool": pool,
        "balance_service": balance_service,
        "price_service": price_service,
        "market_service": market_service,
        "loader_service": loader_service,
        "scheduler": scheduler,
    }


async def _start(components: dict[str, Any]) -> None:
    await components["database"].connect()
    await components["crypto_source"].connect()
    await components["forex_source"].connect()
    await components["fetcher"].connect()
    await components["rate_client"].start()
    await components["scheduler"].start()


async def _stop(components: dict[str, Any]) -> None:
    await components["scheduler"].stop()
    await components["pool"].cancel_all()
    await components["fetcher"].close()
    await components["forex_source"].close()
    await components["crypto_source"].close()
    await components["database"].close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start components on startup, stop them in reverse order on shutdown."""
    logger = get_logger("dexa.main")
    components = app.state.components

    app.state.balance_service = components["balance_service"]
    app.state.price_service = components["price_service"]
    app.state.market_service = components["market_service"]

    await _start(components)
    logger.info("dex_analytics_started")

    yield

    await _stop(components)
    logger.info("dex_analytics_stopped")


async def run() -> None:
    """Run the analytics service.

    With the API enabled (API_ENABLED=true, the default) uvicorn serves the
    app and the lifespan manages the components. Otherwise only the fetch
    jobs run until the process is interrupted.
    """
    settings = AppSettings()
    setup_logging(settings.log_level, settings.log_format)
    logger = get_logger("dexa.main")

    components = _build_components(settings)

    if settings.api.enabled:
        app = create_app(lifespan=lifespan)
        app.state.settings = settings
        app.state.components = components

        logger.info("starting_with_api", host=settings.api.host, port=settings.api.port)

        config = uvicorn.Config(
            app,
            host=settings.api.host,
            port=settings.api.port,
            log_level="warning",
        )
        server = uvicorn.Server(config)
        await server.serve()
    else:
        logger.info("starting_without_api")
        await _start(components)
        try:
            await asyncio.Event().wait()
        finally:
            await _stop(components)
            logger.info("dex_analytics_stopped")


def main() -> None:
    """Synchronous entry point."""
    asyncio.run(run())


if __name__ == "__main__":
    main()
