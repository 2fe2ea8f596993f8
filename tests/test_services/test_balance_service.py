"""Tests for MarketBalanceService."""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from conftest import LBTC, NOW, USDT
from dexa.exceptions import InvalidRequestError
from dexa.loader.types import FetchedBalance
from dexa.models import (
    CustomPeriod,
    Market,
    MarketBalancePoint,
    Page,
    PredefinedPeriod,
    TimeFrame,
    TimeRange,
)
from dexa.services.balances import MarketBalanceService
from dexa.services.fanout import MarketFetchPool

LAST_DAY = TimeRange(predefined_period=PredefinedPeriod.LAST_DAY)


@pytest.fixture
def fetcher() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def pool() -> MarketFetchPool:
    return MarketFetchPool(max_concurrent=5)


@pytest.fixture
def service(timeseries, catalog, fetcher, pool) -> MarketBalanceService:
    return MarketBalanceService(timeseries, catalog, fetcher, pool, now=lambda: NOW)


def _balance(
    market_id: str, base: str, quote: str, minutes_ago: int, base_asset: str = LBTC
) -> MarketBalancePoint:
    return MarketBalancePoint(
        market_id=market_id,
        base_asset=base_asset,
        quote_asset=USDT,
        base_balance=Decimal(base),
        quote_balance=Decimal(quote),
        time=NOW - timedelta(minutes=minutes_ago),
    )


@pytest.mark.asyncio
async def test_insert_validates_assets(service):
    with pytest.raises(InvalidRequestError, match="hex"):
        await service.insert_balance(_balance("1", "1", "1", 0, base_asset="L-BTC"))


@pytest.mark.asyncio
async def test_insert_requires_market_id(service):
    with pytest.raises(InvalidRequestError, match="market id"):
        await service.insert_balance(_balance("", "1", "1", 0))


@pytest.mark.asyncio
async def test_balances_bucketed_and_rounded(service):
    # 11:30 and 11:40 share the 11:00 bucket
    await service.insert_balance(_balance("1", "1.123456789", "100", 30))
    await service.insert_balance(_balance("1", "1.123456789", "200", 20))
    await service.insert_balance(_balance("1", "2", "300", 90))
    await service.insert_balance(_balance("2", "5", "500", 20))

    result = await service.get_balances(LAST_DAY, None, None)

    series = result.markets_balances["1"]
    assert [b.time for b in series] == [NOW - timedelta(hours=2), NOW - timedelta(hours=1)]
    assert [b.base_balance for b in series] == [Decimal("2"), Decimal("1.12345679")]
    assert [b.quote_balance for b in series] == [Decimal("300"), Decimal("150")]
    assert list(result.markets_balances["2"])[0].base_balance == Decimal("5")


@pytest.mark.asyncio
async def test_balances_filtered_and_paginated(service):
    for hours in range(4):
        await service.insert_balance(_balance("1", str(hours), "0", 60 * hours + 1))
    await service.insert_balance(_balance("2", "9", "0", 5))

    result = await service.get_balances(LAST_DAY, Page(number=2, size=2), TimeFrame.HOUR, "1")

    assert set(result.markets_balances) == {"1"}
    # oldest first: buckets for 3, 2 | 1, 0 hours ago
    assert [b.base_balance for b in result.markets_balances["1"]] == [Decimal("1"), Decimal("0")]


@pytest.mark.asyncio
async def test_custom_period_without_end_uses_now(service):
    await service.insert_balance(_balance("1", "1", "1", 5))
    custom = TimeRange(
        custom_period=CustomPeriod(start_date=(NOW - timedelta(hours=1)).strftime("%Y-%m-%dT%H:%M:%SZ"))
    )

    result = await service.get_balances(custom, None, None)

    assert len(result.markets_balances["1"]) == 1


@pytest.mark.asyncio
async def test_both_period_variants_rejected(service):
    time_range = TimeRange(
        predefined_period=PredefinedPeriod.LAST_DAY,
        custom_period=CustomPeriod(start_date="2024-03-01T00:00:00Z"),
    )
    with pytest.raises(InvalidRequestError, match="only one"):
        await service.get_balances(time_range, None, None)


@pytest.mark.asyncio
async def test_fetch_balances_for_all_markets(service, catalog, fetcher, pool, timeseries):
    await catalog.insert_market(Market("p", "https://a.example", LBTC, USDT))
    await catalog.insert_market(Market("p", "https://b.example", LBTC, USDT, active=False))
    fetcher.fetch_balance = AsyncMock(
        return_value=FetchedBalance(base_balance=Decimal("1.5"), quote_balance=Decimal("60000"))
    )

    assert await service.fetch_balances_for_all_markets() == 1
    await pool.drain()

    [stored] = await timeseries.get_raw_balances(NOW - timedelta(minutes=1), NOW)
    assert stored.market_id == "1"
    assert stored.base_balance == Decimal("1.5")
    assert stored.quote_balance == Decimal("60000")
    fetcher.fetch_balance.assert_awaited_once()
