"""Shared test fixtures for the DEX analytics service."""

import logging
from datetime import datetime, timezone
from decimal import Decimal

import pytest
import pytest_asyncio
import structlog

from dexa.config import AppSettings, RaterSettings, StorageSettings
from dexa.data.catalog_store import MarketCatalogStore
from dexa.data.database import AnalyticsDatabase
from dexa.data.timeseries import TimeSeriesStore
from dexa.exceptions import AssetNotFoundError, CurrencyNotFoundError
from dexa.rater.base import RateService

# Liquid network assets used throughout the tests
LBTC = "6f0279e9ed041c3d710a9f57d0c02928416460c4b722ae3457a11eec381c526d"
USDT = "ce091c998b83c78bb71a632313ba3760f1763d9cfcffae02258ffa9865a37bd2"
LCAD = "0e99c1a6da379d1f4151fb9df90449d40d0608f6cb33a5bcbfc8c265f42bab0a"

NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRateService(RateService):
    """In-memory RateService counting convert_currency calls."""

    def __init__(
        self,
        asset_currency: dict[str, str] | None = None,
        rates: dict[tuple[str, str], Decimal] | None = None,
        fiat: set[str] | None = None,
    ) -> None:
        self.asset_currency = asset_currency or {LBTC: "bitcoin", USDT: "usd", LCAD: "cad"}
        self.rates = rates or {}
        self.fiat = fiat or {"usd", "eur", "cad", "chf"}
        self.convert_calls = 0
        self.convert_error: Exception | None = None

    def get_asset_currency(self, asset_id: str) -> str:
        if asset_id not in self.asset_currency:
            raise AssetNotFoundError(asset_id)
        return self.asset_currency[asset_id]

    def is_fiat_symbol_supported(self, symbol: str) -> bool:
        return symbol.lower() in self.fiat

    async def convert_currency(self, source: str, target: str) -> Decimal:
        self.convert_calls += 1
        if self.convert_error is not None:
            raise self.convert_error
        key = (source.lower(), target.lower())
        if key not in self.rates:
            raise CurrencyNotFoundError(f"no rate for {source}->{target}")
        return self.rates[key]


@pytest.fixture
def mock_settings(tmp_path) -> AppSettings:
    """AppSettings with test defaults and a temporary database path."""
    return AppSettings(
        log_level="DEBUG",
        rater=RaterSettings(),
        storage=StorageSettings(db_path=str(tmp_path / "analytics.db")),
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture
async def database(tmp_path):
    """Connected AnalyticsDatabase in a temporary directory."""
    async with AnalyticsDatabase(str(tmp_path / "test.db")) as db:
        yield db


@pytest.fixture
def timeseries(database) -> TimeSeriesStore:
    return TimeSeriesStore(database)


@pytest.fixture
def catalog(database) -> MarketCatalogStore:
    return MarketCatalogStore(database)


@pytest.fixture
def restore_logging():
    """Undo setup_logging: root handlers, root level and structlog config."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    structlog.reset_defaults()
