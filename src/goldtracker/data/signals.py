"""Signal ledger persistence: manually entered trade signals and their statistics.

Plain parameterized SQL over the signals table. Monetary values are stored
as TEXT and restored as Decimal, like the price table.
"""

from decimal import Decimal
from typing import Any

from goldtracker.data.database import TrackerDatabase
from goldtracker.exceptions import SignalNotFoundError
from goldtracker.logging import get_logger
from goldtracker.models import Signal

logger = get_logger(__name__)

_SIGNAL_COLUMNS = (
    "id, symbol, trade_type, entry_price, stoploss, current_price, "
    "percentage_change, target1, target2, target3, target1_hit, target2_hit, "
    "target3_hit, active, send_notifications, created_at, updated_at"
)


def _dec(value: str | None) -> Decimal | None:
    return Decimal(value) if value is not None else None


def _text(value: Any) -> str | None:
    return str(value) if value is not None else None


def _flag(value: bool | None) -> int | None:
    if value is None:
        return None
    return 1 if value else 0


def _row_to_signal(row: tuple) -> Signal:
    return Signal(
        id=row[0],
        symbol=row[1],
        trade_type=row[2],
        entry_price=Decimal(row[3]),
        stoploss=Decimal(row[4]),
        current_price=_dec(row[5]),
        percentage_change=Decimal(row[6]),
        target1=_dec(row[7]),
        target2=_dec(row[8]),
        target3=_dec(row[9]),
        target1_hit=bool(row[10]),
        target2_hit=bool(row[11]),
        target3_hit=bool(row[12]),
        active=bool(row[13]),
        send_notifications=bool(row[14]),
        created_at=row[15],
        updated_at=row[16],
    )


class SignalStore:
    """Async SQLite store for the signal ledger."""

    def __init__(self, database: TrackerDatabase) -> None:
        self._database = database

    async def create_signal(
        self,
        symbol: str,
        trade_type: str,
        entry_price: Decimal,
        stoploss: Decimal,
        target1: Decimal | None = None,
        target2: Decimal | None = None,
        target3: Decimal | None = None,
        send_notifications: bool = True,
    ) -> int:
        """Insert a new signal and return its id.

        current_price starts at entry_price and percentage_change at 0.
        """
        cursor = await self._database.db.execute(
            "INSERT INTO signals (symbol, trade_type, entry_price, target1, "
            "target2, target3, stoploss, send_notifications, current_price, "
            "percentage_change) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                symbol,
                trade_type,
                str(entry_price),
                _text(target1),
                _text(target2),
                _text(target3),
                str(stoploss),
                1 if send_notifications else 0,
                str(entry_price),
                "0",
            ),
        )
        await self._database.db.commit()
        signal_id = cursor.lastrowid
        assert signal_id is not None
        logger.info(
            "signal_created",
            signal_id=signal_id,
            symbol=symbol,
            trade_type=trade_type,
            entry_price=str(entry_price),
        )
        return signal_id

    async def list_signals(self, active_only: bool = False) -> list[Signal]:
        """Return signals newest first, optionally only active ones."""
        query = f"SELECT {_SIGNAL_COLUMNS} FROM signals"
        if active_only:
            query += " WHERE active = 1"
        query += " ORDER BY created_at DESC, id DESC"
        cursor = await self._database.db.execute(query)
        rows = await cursor.fetchall()
        return [_row_to_signal(row) for row in rows]

    async def get_signal(self, signal_id: int) -> Signal:
        """Return one signal.

        Raises:
            SignalNotFoundError: No signal has this id.
        """
        cursor = await self._database.db.execute(
            f"SELECT {_SIGNAL_COLUMNS} FROM signals WHERE id = ?",
            (signal_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            raise SignalNotFoundError(signal_id)
        return _row_to_signal(row)

    async def update_signal(
        self,
        signal_id: int,
        target1_hit: bool | None = None,
        target2_hit: bool | None = None,
        target3_hit: bool | None = None,
        active: bool | None = None,
        current_price: Decimal | None = None,
        percentage_change: Decimal | None = None,
    ) -> int:
        """Partially update a signal; None arguments keep the stored value.

        Returns the number of changed rows.

        Raises:
            SignalNotFoundError: No signal has this id.
        """
        cursor = await self._database.db.execute(
            "UPDATE signals SET "
            "target1_hit = COALESCE(?, target1_hit), "
            "target2_hit = COALESCE(?, target2_hit), "
            "target3_hit = COALESCE(?, target3_hit), "
            "active = COALESCE(?, active), "
            "current_price = COALESCE(?, current_price), "
            "percentage_change = COALESCE(?, percentage_change), "
            "updated_at = CURRENT_TIMESTAMP "
            "WHERE id = ?",
            (
                _flag(target1_hit),
                _flag(target2_hit),
                _flag(target3_hit),
                _flag(active),
                _text(current_price),
                _text(percentage_change),
                signal_id,
            ),
        )
        await self._database.db.commit()
        if cursor.rowcount == 0:
            raise SignalNotFoundError(signal_id)
        logger.info("signal_updated", signal_id=signal_id)
        return cursor.rowcount

    async def delete_signal(self, signal_id: int) -> int:
        """Delete a signal. Returns the number of deleted rows.

        Raises:
            SignalNotFoundError: No signal has this id.
        """
        cursor = await self._database.db.execute(
            "DELETE FROM signals WHERE id = ?", (signal_id,)
        )
        await self._database.db.commit()
        if cursor.rowcount == 0:
            raise SignalNotFoundError(signal_id)
        logger.info("signal_deleted", signal_id=signal_id)
        return cursor.rowcount

    async def get_statistics(self) -> dict:
        """Aggregate counts over the ledger for the statistics endpoint."""
        db = self._database.db

        cursor = await db.execute(
            "SELECT COUNT(*), "
            "COALESCE(SUM(active), 0), "
            "COALESCE(SUM(target1_hit), 0), "
            "COALESCE(SUM(target2_hit), 0), "
            "COALESCE(SUM(target3_hit), 0) "
            "FROM signals"
        )
        total, active, t1, t2, t3 = await cursor.fetchone()  # type: ignore[misc]

        cursor = await db.execute(
            "SELECT symbol, COUNT(*), COALESCE(SUM(active), 0) "
            "FROM signals GROUP BY symbol ORDER BY symbol"
        )
        by_symbol = {
            row[0]: {"total": row[1], "active": row[2]}
            for row in await cursor.fetchall()
        }

        return {
            "total": total,
            "active": active,
            "closed": total - active,
            "target1_hits": t1,
            "target2_hits": t2,
            "target3_hits": t3,
            "by_symbol": by_symbol,
        }
