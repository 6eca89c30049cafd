"""Typed SQLite read/write abstraction for the price snapshot table.

CRITICAL: All monetary values stored as TEXT in SQLite, restored as Decimal on read.
"""

from datetime import datetime
from decimal import Decimal

from goldtracker.data.database import TrackerDatabase
from goldtracker.logging import get_logger
from goldtracker.models import PriceQuote

logger = get_logger(__name__)

_QUOTE_COLUMNS = (
    "symbol, bid, ask, mid, previous_close, day_high, day_low, open_price, "
    "change, change_percent, observed_at, persisted_at"
)


def _dec(value: str | None) -> Decimal | None:
    return Decimal(value) if value is not None else None


def _text(value: Decimal | None) -> str | None:
    return str(value) if value is not None else None


def _row_to_quote(row: tuple) -> PriceQuote:
    return PriceQuote(
        symbol=row[0],
        bid=Decimal(row[1]),
        ask=Decimal(row[2]),
        mid=Decimal(row[3]),
        previous_close=_dec(row[4]),
        day_high=_dec(row[5]),
        day_low=_dec(row[6]),
        open_price=_dec(row[7]),
        change=_dec(row[8]),
        change_percent=_dec(row[9]),
        observed_at=datetime.fromisoformat(row[10]),
        persisted_at=datetime.fromisoformat(row[11]) if row[11] else None,
    )


class PriceStore:
    """Async SQLite store holding one current row per metal.

    Usage:
        async with TrackerDatabase("data/gold_tracker.db") as database:
            store = PriceStore(database)
            await store.upsert_quote(quote)
    """

    def __init__(self, database: TrackerDatabase) -> None:
        self._database = database

    async def upsert_quote(self, quote: PriceQuote) -> None:
        """Insert or overwrite the row for `quote.symbol`."""
        if quote.persisted_at is None:
            raise ValueError("persisted_at must be set before storing a quote")

        await self._database.db.execute(
            f"INSERT INTO prices ({_QUOTE_COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(symbol) DO UPDATE SET "
            "bid = excluded.bid, ask = excluded.ask, mid = excluded.mid, "
            "previous_close = excluded.previous_close, "
            "day_high = excluded.day_high, day_low = excluded.day_low, "
            "open_price = excluded.open_price, change = excluded.change, "
            "change_percent = excluded.change_percent, "
            "observed_at = excluded.observed_at, "
            "persisted_at = excluded.persisted_at",
            (
                quote.symbol,
                str(quote.bid),
                str(quote.ask),
                str(quote.mid),
                _text(quote.previous_close),
                _text(quote.day_high),
                _text(quote.day_low),
                _text(quote.open_price),
                _text(quote.change),
                _text(quote.change_percent),
                quote.observed_at.isoformat(),
                quote.persisted_at.isoformat(),
            ),
        )
        await self._database.db.commit()
        logger.debug("price_row_upserted", symbol=quote.symbol)

    async def get_quote(self, symbol: str) -> PriceQuote | None:
        """Return the stored quote for `symbol`, or None."""
        cursor = await self._database.db.execute(
            f"SELECT {_QUOTE_COLUMNS} FROM prices WHERE symbol = ?",
            (symbol,),
        )
        row = await cursor.fetchone()
        return _row_to_quote(row) if row is not None else None

    async def get_all_quotes(self) -> list[PriceQuote]:
        """Return all stored quotes, most recently persisted first."""
        cursor = await self._database.db.execute(
            f"SELECT {_QUOTE_COLUMNS} FROM prices ORDER BY persisted_at DESC"
        )
        rows = await cursor.fetchall()
        return [_row_to_quote(row) for row in rows]
