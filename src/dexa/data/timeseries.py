"""Typed SQLite read/write store for market balance and price samples.

Samples are keyed by (market_id, timestamp_ms) and inserted with
INSERT OR IGNORE, so overlapping fetch cycles never duplicate a point.
Reads bucket and average in Python so all arithmetic stays in Decimal.

CRITICAL: All monetary values stored as TEXT in SQLite, restored as Decimal on read.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import TypeVar

from dexa.analytics.vwap import bucket_balances, bucket_prices, compute_vwap
from dexa.data.database import AnalyticsDatabase
from dexa.logging import get_logger
from dexa.models import MarketBalancePoint, MarketPricePoint, Page

logger = get_logger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

T = TypeVar("T")
PointT = TypeVar("PointT", MarketBalancePoint, MarketPricePoint)


def to_ms(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return (moment - _EPOCH) // timedelta(milliseconds=1)


def from_ms(timestamp_ms: int) -> datetime:
    return _EPOCH + timedelta(milliseconds=timestamp_ms)


def paginate(items: list[T], page: Page | None) -> list[T]:
    """Slice one page out of ``items``. No page, or size 0, returns everything."""
    if page is None or page.limit == 0:
        return items
    return items[page.offset : page.offset + page.limit]


def _group_by_market(
    points: list[PointT],
) -> dict[str, list[PointT]]:
    grouped: dict[str, list[PointT]] = {}
    for point in points:
        grouped.setdefault(point.market_id, []).append(point)
    return grouped


class TimeSeriesStore:
    """Async SQLite store for market balance and price series.

    Usage:
        async with AnalyticsDatabase("data/analytics.db") as database:
            store = TimeSeriesStore(database)
            await store.insert_balance(point)
    """

    def __init__(self, database: AnalyticsDatabase) -> None:
        self._database = database

    # ──────────────────────────────────────────────
    # Write methods
    # ──────────────────────────────────────────────

    async def insert_balance(self, point: MarketBalancePoint) -> bool:
        """Insert one balance sample. Returns False when it already existed."""
        cursor = await self._database.db.execute(
            "INSERT OR IGNORE INTO market_balance "
            "(market_id, timestamp_ms, base_asset, quote_asset, base_balance, quote_balance) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                point.market_id,
                to_ms(point.time),
                point.base_asset,
                point.quote_asset,
                str(point.base_balance),
                str(point.quote_balance),
            ),
        )
        await self._database.db.commit()
        return cursor.rowcount > 0

    async def insert_price(self, point: MarketPricePoint) -> bool:
        """Insert one price sample. Returns False when it already existed."""
        cursor = await self._database.db.execute(
            "INSERT OR IGNORE INTO market_price "
            "(market_id, timestamp_ms, base_asset, quote_asset, base_price, quote_price) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                point.market_id,
                to_ms(point.time),
                point.base_asset,
                point.quote_asset,
                str(point.base_price),
                str(point.quote_price),
            ),
        )
        await self._database.db.commit()
        return cursor.rowcount > 0

    # ──────────────────────────────────────────────
    # Read methods
    # ──────────────────────────────────────────────

    async def _select(
        self,
        table: str,
        value_columns: tuple[str, str],
        start: datetime,
        end: datetime,
        market_ids: tuple[str, ...],
    ) -> list[tuple]:
        conditions = ["timestamp_ms >= ?", "timestamp_ms <= ?"]
        params: list = [to_ms(start), to_ms(end)]

        if market_ids:
            placeholders = ", ".join("?" for _ in market_ids)
            conditions.append(f"market_id IN ({placeholders})")
            params.extend(market_ids)

        where = " AND ".join(conditions)
        cursor = await self._database.db.execute(
            f"SELECT market_id, timestamp_ms, base_asset, quote_asset, "
            f"{value_columns[0]}, {value_columns[1]} "
            f"FROM {table} WHERE {where} ORDER BY market_id ASC, timestamp_ms ASC",
            params,
        )
        return list(await cursor.fetchall())

    async def get_raw_balances(
        self, start: datetime, end: datetime, *market_ids: str
    ) -> list[MarketBalancePoint]:
        """Unbucketed balance samples in [start, end], all markets if none given."""
        rows = await self._select(
            "market_balance", ("base_balance", "quote_balance"), start, end, market_ids
        )
        return [
            MarketBalancePoint(
                market_id=row[0],
                time=from_ms(row[1]),
                base_asset=row[2],
                quote_asset=row[3],
                base_balance=Decimal(row[4]),
                quote_balance=Decimal(row[5]),
            )
            for row in rows
        ]

    async def get_raw_prices(
        self, start: datetime, end: datetime, *market_ids: str
    ) -> list[MarketPricePoint]:
        """Unbucketed price samples in [start, end], all markets if none given."""
        rows = await self._select(
            "market_price", ("base_price", "quote_price"), start, end, market_ids
        )
        return [
            MarketPricePoint(
                market_id=row[0],
                time=from_ms(row[1]),
                base_asset=row[2],
                quote_asset=row[3],
                base_price=Decimal(row[4]),
                quote_price=Decimal(row[5]),
            )
            for row in rows
        ]

    async def get_balances(
        self,
        start: datetime,
        end: datetime,
        page: Page | None,
        bucket_width: timedelta,
        *market_ids: str,
    ) -> dict[str, list[MarketBalancePoint]]:
        """Bucket-averaged balances per market, each series paginated on its own."""
        raw = await self.get_raw_balances(start, end, *market_ids)
        grouped = _group_by_market(bucket_balances(raw, bucket_width))
        return {market_id: paginate(series, page) for market_id, series in grouped.items()}

    async def get_prices(
        self,
        start: datetime,
        end: datetime,
        page: Page | None,
        bucket_width: timedelta,
        *market_ids: str,
    ) -> dict[str, list[MarketPricePoint]]:
        """Bucket-averaged prices per market, each series paginated on its own."""
        raw = await self.get_raw_prices(start, end, *market_ids)
        grouped = _group_by_market(bucket_prices(raw, bucket_width))
        return {market_id: paginate(series, page) for market_id, series in grouped.items()}

    async def calculate_vwap(
        self,
        bucket_width: timedelta,
        start: datetime,
        end: datetime,
        *market_ids: str,
    ) -> Decimal:
        """Volume-weighted average quote price over the given markets (unrounded)."""
        prices = bucket_prices(await self.get_raw_prices(start, end, *market_ids), bucket_width)
        balances = bucket_balances(
            await self.get_raw_balances(start, end, *market_ids), bucket_width
        )
        vwap = compute_vwap(prices, balances)
        logger.debug(
            "vwap_calculated",
            markets=len(market_ids),
            price_buckets=len(prices),
            balance_buckets=len(balances),
            vwap=str(vwap),
        )
        return vwap
