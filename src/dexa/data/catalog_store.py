"""SQLite-backed market catalog.

Markets are unique by (url, base_asset, quote_asset). Rows are never
deleted: markets that disappear from their provider are flagged inactive.
"""

from dexa.data.database import AnalyticsDatabase
from dexa.logging import get_logger
from dexa.models import Market, MarketFilter, Page

logger = get_logger(__name__)

_SELECT_MARKET = "SELECT id, provider_name, url, base_asset, quote_asset, active FROM market"


def _row_to_market(row: tuple) -> Market:
    return Market(
        id=row[0],
        provider_name=row[1],
        url=row[2],
        base_asset=row[3],
        quote_asset=row[4],
        active=bool(row[5]),
    )


class MarketCatalogStore:
    """Async SQLite store for the market catalog."""

    def __init__(self, database: AnalyticsDatabase) -> None:
        self._database = database

    # ──────────────────────────────────────────────
    # Write methods
    # ──────────────────────────────────────────────

    async def insert_market(self, market: Market) -> bool:
        """Insert a market. An existing (url, base, quote) is left untouched.

        Returns True when a new row was created.
        """
        cursor = await self._database.db.execute(
            "INSERT OR IGNORE INTO market "
            "(provider_name, url, base_asset, quote_asset, active) "
            "VALUES (?, ?, ?, ?, ?)",
            (
                market.provider_name,
                market.url,
                market.base_asset,
                market.quote_asset,
                1 if market.active else 0,
            ),
        )
        await self._database.db.commit()
        inserted = cursor.rowcount > 0
        if inserted:
            logger.info(
                "market_inserted",
                provider=market.provider_name,
                url=market.url,
                market_id=cursor.lastrowid,
            )
        return inserted

    async def activate_market(self, market_id: int) -> None:
        await self._set_active(market_id, True)

    async def inactivate_market(self, market_id: int) -> None:
        await self._set_active(market_id, False)

    async def _set_active(self, market_id: int, active: bool) -> None:
        await self._database.db.execute(
            "UPDATE market SET active = ? WHERE id = ?",
            (1 if active else 0, market_id),
        )
        await self._database.db.commit()

    # ──────────────────────────────────────────────
    # Read methods
    # ──────────────────────────────────────────────

    async def get_all_markets(self) -> list[Market]:
        cursor = await self._database.db.execute(f"{_SELECT_MARKET} ORDER BY id ASC")
        return [_row_to_market(row) for row in await cursor.fetchall()]

    async def get_markets_by_active_flag(self, active: bool) -> list[Market]:
        cursor = await self._database.db.execute(
            f"{_SELECT_MARKET} WHERE active = ? ORDER BY id ASC",
            (1 if active else 0,),
        )
        return [_row_to_market(row) for row in await cursor.fetchall()]

    async def get_markets_for_filter(
        self, filters: list[MarketFilter], page: Page | None = None
    ) -> list[Market]:
        """Markets matching any filter; every non-empty field of a filter must match.

        An empty filter list (or only empty filters) matches all markets.
        """
        clauses: list[str] = []
        params: list = []
        for market_filter in filters:
            conditions: list[str] = []
            for column, value in (
                ("url", market_filter.url),
                ("base_asset", market_filter.base_asset),
                ("quote_asset", market_filter.quote_asset),
            ):
                if value:
                    conditions.append(f"{column} = ?")
                    params.append(value)
            if conditions:
                clauses.append("(" + " AND ".join(conditions) + ")")

        query = _SELECT_MARKET
        if clauses:
            query += " WHERE " + " OR ".join(clauses)
        query += " ORDER BY id ASC"

        if page is not None and page.limit > 0:
            query += " LIMIT ? OFFSET ?"
            params.extend([page.limit, page.offset])

        cursor = await self._database.db.execute(query, params)
        return [_row_to_market(row) for row in await cursor.fetchall()]
