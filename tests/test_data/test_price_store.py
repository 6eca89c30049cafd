"""Tests for TrackerDatabase and PriceStore persistence."""

import os
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from goldtracker.data.database import TrackerDatabase
from goldtracker.data.store import PriceStore

PERSISTED = datetime(2025, 1, 6, 12, 0, 5, tzinfo=timezone.utc)


class TestDatabase:
    @pytest.mark.asyncio
    async def test_creates_parent_directory(self, tmp_path) -> None:
        path = tmp_path / "nested" / "dir" / "prices.db"
        async with TrackerDatabase(str(path)) as db:
            assert db.is_connected
        assert os.path.exists(path)

    @pytest.mark.asyncio
    async def test_wal_mode_enabled(self, database) -> None:
        cursor = await database.db.execute("PRAGMA journal_mode")
        row = await cursor.fetchone()
        assert row[0].lower() == "wal"

    @pytest.mark.asyncio
    async def test_tables_exist(self, database) -> None:
        cursor = await database.db.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table'"
        )
        names = {row[0] for row in await cursor.fetchall()}
        assert {"prices", "signals", "schema_version"} <= names

    @pytest.mark.asyncio
    async def test_db_property_requires_connection(self, tmp_path) -> None:
        db = TrackerDatabase(str(tmp_path / "x.db"))
        assert not db.is_connected
        with pytest.raises(RuntimeError):
            _ = db.db


class TestPriceStore:
    @pytest.mark.asyncio
    async def test_round_trips_decimals(self, database, make_quote) -> None:
        store = PriceStore(database)
        quote = replace(
            make_quote(mid="2001.00"),
            previous_close=Decimal("1990.10"),
            change=Decimal("10.90"),
            change_percent=Decimal("0.55"),
            persisted_at=PERSISTED,
        )

        await store.upsert_quote(quote)
        loaded = await store.get_quote("XAU")

        assert loaded == quote
        assert isinstance(loaded.mid, Decimal)

    @pytest.mark.asyncio
    async def test_upsert_keeps_one_row_per_symbol(self, database, make_quote) -> None:
        store = PriceStore(database)
        await store.upsert_quote(replace(make_quote(mid="2000.00"), persisted_at=PERSISTED))
        await store.upsert_quote(
            replace(
                make_quote(mid="2010.00"),
                persisted_at=PERSISTED + timedelta(seconds=30),
            )
        )

        cursor = await database.db.execute("SELECT COUNT(*) FROM prices WHERE symbol = 'XAU'")
        assert (await cursor.fetchone())[0] == 1
        assert (await store.get_quote("XAU")).mid == Decimal("2010.00")

    @pytest.mark.asyncio
    async def test_requires_persisted_at(self, database, make_quote) -> None:
        store = PriceStore(database)
        with pytest.raises(ValueError):
            await store.upsert_quote(make_quote())

    @pytest.mark.asyncio
    async def test_missing_symbol_returns_none(self, database) -> None:
        assert await PriceStore(database).get_quote("XPT") is None

    @pytest.mark.asyncio
    async def test_get_all_newest_first(self, database, make_quote) -> None:
        store = PriceStore(database)
        await store.upsert_quote(replace(make_quote("XAG", mid="23.50"), persisted_at=PERSISTED))
        await store.upsert_quote(
            replace(
                make_quote("XAU", mid="2000.00"),
                persisted_at=PERSISTED + timedelta(seconds=1),
            )
        )

        quotes = await store.get_all_quotes()

        assert [q.symbol for q in quotes] == ["XAU", "XAG"]
