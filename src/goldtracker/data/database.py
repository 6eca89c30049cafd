"""Async SQLite database manager for price and signal persistence.

Uses aiosqlite for non-blocking database operations with WAL mode
so API reads are not blocked by scheduler writes.
"""

import os
from typing import Self

import aiosqlite

from goldtracker.logging import get_logger

logger = get_logger(__name__)

SCHEMA_VERSION = 1

_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS prices (
    symbol TEXT PRIMARY KEY,
    bid TEXT NOT NULL,
    ask TEXT NOT NULL,
    mid TEXT NOT NULL,
    previous_close TEXT,
    day_high TEXT,
    day_low TEXT,
    open_price TEXT,
    change TEXT,
    change_percent TEXT,
    observed_at TEXT NOT NULL,
    persisted_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS signals (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    symbol TEXT NOT NULL,
    trade_type TEXT NOT NULL,
    entry_price TEXT NOT NULL,
    current_price TEXT,
    percentage_change TEXT NOT NULL DEFAULT '0',
    target1 TEXT,
    target2 TEXT,
    target3 TEXT,
    target1_hit INTEGER NOT NULL DEFAULT 0,
    target2_hit INTEGER NOT NULL DEFAULT 0,
    target3_hit INTEGER NOT NULL DEFAULT 0,
    stoploss TEXT NOT NULL,
    active INTEGER NOT NULL DEFAULT 1,
    send_notifications INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);
"""

_CREATE_INDEXES_SQL = """
CREATE INDEX IF NOT EXISTS idx_signals_created
    ON signals(created_at);

CREATE INDEX IF NOT EXISTS idx_signals_symbol_active
    ON signals(symbol, active);
"""


class TrackerDatabase:
    """Async SQLite connection manager.

    Manages database lifecycle including schema creation, WAL mode
    configuration, and clean resource cleanup.

    Usage:
        async with TrackerDatabase("data/gold_tracker.db") as db:
            await db.db.execute("SELECT ...")
    """

    def __init__(self, db_path: str = "data/gold_tracker.db") -> None:
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

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    async def connect(self) -> None:
        """Open database connection, configure pragmas, and create schema.

        Creates the parent directory if it does not exist.
        """
        db_dir = os.path.dirname(self._db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

        self._connection = await aiosqlite.connect(self._db_path)

        await self._connection.execute("PRAGMA journal_mode=WAL")
        await self._connection.execute("PRAGMA synchronous=NORMAL")

        await self._create_tables()
        await self._ensure_schema_version()

        logger.info("tracker_db_connected", db_path=self._db_path)

    async def close(self) -> None:
        """Close the database connection if open."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            logger.info("tracker_db_closed", db_path=self._db_path)

    async def _create_tables(self) -> None:
        assert self._connection is not None
        await self._connection.executescript(_CREATE_TABLES_SQL)
        await self._connection.executescript(_CREATE_INDEXES_SQL)
        await self._connection.commit()

    async def _ensure_schema_version(self) -> None:
        """Insert schema version if not already set."""
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
