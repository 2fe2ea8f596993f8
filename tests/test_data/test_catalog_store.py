"""Tests for MarketCatalogStore using a temporary SQLite database."""

import pytest

from conftest import LBTC, LCAD, USDT
from dexa.models import Market, MarketFilter, Page

URL_A = "https://provider-a.example"
URL_B = "https://provider-b.example"


async def _seed(catalog) -> None:
    await catalog.insert_market(Market("a", URL_A, LBTC, USDT))
    await catalog.insert_market(Market("a", URL_A, LBTC, LCAD))
    await catalog.insert_market(Market("b", URL_B, LBTC, USDT))
    await catalog.insert_market(Market("b", URL_B, USDT, LCAD, active=False))


@pytest.mark.asyncio
async def test_insert_assigns_ids(catalog):
    await _seed(catalog)
    markets = await catalog.get_all_markets()

    assert [m.id for m in markets] == [1, 2, 3, 4]
    assert markets[0] == Market("a", URL_A, LBTC, USDT, active=True, id=1)
    assert markets[3].active is False


@pytest.mark.asyncio
async def test_insert_existing_market_is_ignored(catalog):
    assert await catalog.insert_market(Market("a", URL_A, LBTC, USDT)) is True
    assert await catalog.insert_market(Market("renamed", URL_A, LBTC, USDT)) is False

    [market] = await catalog.get_all_markets()
    assert market.provider_name == "a"


@pytest.mark.asyncio
async def test_activate_and_inactivate(catalog):
    await _seed(catalog)

    await catalog.inactivate_market(1)
    await catalog.activate_market(4)

    active = await catalog.get_markets_by_active_flag(True)
    inactive = await catalog.get_markets_by_active_flag(False)
    assert [m.id for m in active] == [2, 3, 4]
    assert [m.id for m in inactive] == [1]


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_no_filters_returns_all(catalog):
    await _seed(catalog)
    assert len(await catalog.get_markets_for_filter([])) == 4
    assert len(await catalog.get_markets_for_filter([MarketFilter()])) == 4


@pytest.mark.asyncio
async def test_filter_fields_are_anded(catalog):
    await _seed(catalog)

    markets = await catalog.get_markets_for_filter(
        [MarketFilter(url=URL_A, quote_asset=USDT)]
    )

    assert [m.id for m in markets] == [1]


@pytest.mark.asyncio
async def test_filters_are_ored(catalog):
    await _seed(catalog)

    markets = await catalog.get_markets_for_filter(
        [MarketFilter(url=URL_A, quote_asset=LCAD), MarketFilter(base_asset=USDT)]
    )

    assert [m.id for m in markets] == [2, 4]


@pytest.mark.asyncio
async def test_filter_page(catalog):
    await _seed(catalog)

    first = await catalog.get_markets_for_filter([], Page(number=1, size=3))
    second = await catalog.get_markets_for_filter([], Page(number=2, size=3))
    unlimited = await catalog.get_markets_for_filter([], Page(number=2, size=0))

    assert [m.id for m in first] == [1, 2, 3]
    assert [m.id for m in second] == [4]
    assert len(unlimited) == 4
