"""Async SQLite database manager for market time series and the market catalog.

Uses aiosqlite for non-blocking database operations with WAL mode
so the fetch jobs can write while queries read.
"""

import os
from typing import Self

import aiosqlite

from dexa.logging import get_logger

logger = get_logger(__name__)

SCHEMA_VERSION = 1

_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS market_balance (
    market_id TEXT NOT NULL,
    timestamp_ms INTEGER NOT NULL,
    base_asset TEXT NOT NULL,
    quote_asset TEXT NOT NULL,
    base_balance TEXT NOT NULL,
    quote_balance TEXT NOT NULL,
    PRIMARY KEY (market_id, timestamp_ms)
);

CREATE TABLE IF NOT EXISTS market_price (
    market_id TEXT NOT NULL,
    timestamp_ms INTEGER NOT NULL,
    base_asset TEXT NOT NULL,
    quote_asset TEXT NOT NULL,
    base_price TEXT NOT NULL,
    quote_price TEXT NOT NULL,
    PRIMARY KEY (market_id, timestamp_ms)
);

CREATE TABLE IF NOT EXISTS market (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    provider_name TEXT NOT NULL,
    url TEXT NOT NULL,
    base_asset TEXT NOT NULL,
    quote_asset TEXT NOT NULL,
    active INTEGER NOT NULL DEFAULT 1,
    UNIQUE (url, base_asset, quote_asset)
);
"""

_CREATE_INDEXES_SQL = """
CREATE INDEX IF NOT EXISTS idx_balance_ts
    ON market_balance(timestamp_ms);

CREATE INDEX IF NOT EXISTS idx_price_ts
    ON market_price(timestamp_ms);
"""


class AnalyticsDatabase:
    """Async SQLite connection manager.

    Usage:
        async with AnalyticsDatabase("data/analytics.db") as db:
            await db.db.execute("SELECT ...")
    """

    def __init__(self, db_path: str = "data/analytics.db") -> None:
        self._db_path = db_path
        self._connection: aiosqlite.Connection | None = None

    @property
    def db(self) -> aiosqlite.Connection:
        """Access the raw aiosqlite connection.

        Raises RuntimeError if not connected.
        """
        if self._connection is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._connection

    async def connect(self) -> None:
        """Open the connection, configure pragmas and create the schema."""
        db_dir = os.path.dirname(self._db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

        self._connection = await aiosqlite.connect(self._db_path)

        await self._connection.execute("PRAGMA journal_mode=WAL")
        await self._connection.execute("PRAGMA synchronous=NORMAL")

        await self._create_tables()
        await self._ensure_schema_version()

        logger.info("analytics_db_connected", db_path=self._db_path)

    async def close(self) -> None:
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            logger.info("analytics_db_closed", db_path=self._db_path)

    async def _create_tables(self) -> None:
        assert self._connection is not None
        await self._connection.executescript(_CREATE_TABLES_SQL)
        await self._connection.executescript(_CREATE_INDEXES_SQL)
        await self._connection.commit()

    async def _ensure_schema_version(self) -> None:
        assert self._connection is not None
        cursor = await self._connection.execute(
            "SELECT version FROM schema_version LIMIT 1"
        )
        row = await cursor.fetchone()
        if row is None:
            await self._connection.execute(
                "INSERT INTO schema_version (version) VALUES (?)",
                (SCHEMA_VERSION,),
            )
            await self._connection.commit()
            logger.info("schema_version_set", version=SCHEMA_VERSION)

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        await self.close()
