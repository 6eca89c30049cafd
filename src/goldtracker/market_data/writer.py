"""Change-aware writer: the single path that mutates price state.

A freshly fetched quote is written only when no prior quote exists or its
mid moved by more than the change threshold. Writes for one symbol are
serialized by a per-symbol lock, and a quote observed before the current
one is dropped, so a slow fetch from an earlier tick can never overwrite
newer data.

On write the snapshot is updated first, then the durable store. A store
failure is logged and leaves the snapshot ahead of the store until the
next successful write.
"""

import asyncio
from collections import defaultdict
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal

from goldtracker.data.store import PriceStore
from goldtracker.logging import get_logger
from goldtracker.market_data.snapshot import PriceSnapshot
from goldtracker.models import PriceQuote, WriteResult

logger = get_logger(__name__)


class ChangeAwareWriter:
    """Applies the change-detection gate and keeps snapshot and store in step.

    Args:
        snapshot: Shared in-memory snapshot read by the API.
        store: Durable price store.
        change_threshold: Minimum absolute mid move that triggers a write.
    """

    def __init__(
        self,
        snapshot: PriceSnapshot,
        store: PriceStore,
        change_threshold: Decimal = Decimal("0.01"),
    ) -> None:
        self._snapshot = snapshot
        self._store = store
        self._change_threshold = change_threshold
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._writes = 0

    @property
    def write_count(self) -> int:
        """Number of quotes that passed the gate since startup."""
        return self._writes

    async def load(self) -> int:
        """Warm the snapshot from the store. Returns number of quotes loaded."""
        quotes = await self._store.get_all_quotes()
        await self._snapshot.load(quotes)
        return len(quotes)

    async def write_if_changed(self, symbol: str, quote: PriceQuote) -> WriteResult:
        """Write `quote` for `symbol` if it passes the change-detection gate."""
        async with self._locks[symbol]:
            prior = await self._snapshot.get_quote(symbol)

            if prior is not None:
                if quote.observed_at < prior.observed_at:
                    logger.debug(
                        "quote_out_of_order",
                        symbol=symbol,
                        observed_at=quote.observed_at.isoformat(),
                        current=prior.observed_at.isoformat(),
                    )
                    return WriteResult(symbol, written=False, reason="out_of_order")
                if abs(quote.mid - prior.mid) <= self._change_threshold:
                    await self._snapshot.touch(symbol)
                    return WriteResult(symbol, written=False, reason="unchanged")

            stamped = replace(quote, persisted_at=datetime.now(timezone.utc))
            await self._snapshot.set_quote(stamped)
            self._writes += 1

            try:
                await self._store.upsert_quote(stamped)
            except Exception as e:
                logger.error(
                    "price_store_write_failed",
                    symbol=symbol,
                    mid=str(stamped.mid),
                    error=str(e),
                    exc_info=True,
                )
                return WriteResult(symbol, written=True, persisted=False, reason="store_error")

            logger.info(
                "price_updated",
                symbol=symbol,
                mid=str(stamped.mid),
                previous_mid=str(prior.mid) if prior is not None else None,
            )
            return WriteResult(symbol, written=True, persisted=True)
