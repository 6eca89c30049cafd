"""Shared in-memory price snapshot for the refresh pipeline and API readers.

The ChangeAwareWriter is the only component that mutates it; request
handlers and the health endpoint only read. Quotes are frozen dataclasses
replaced whole, so a reader always gets a fully written quote.

Freshness is tracked separately from the quote itself: a fetch that
confirms an unchanged price refreshes `checked_at` without rewriting the
quote.
"""

import asyncio
import time

from goldtracker.logging import get_logger
from goldtracker.models import PriceQuote

logger = get_logger(__name__)


class PriceSnapshot:
    """Latest quote per symbol with staleness detection.

    Uses asyncio.Lock for safe concurrent reads/writes from multiple coroutines.
    """

    def __init__(self) -> None:
        self._quotes: dict[str, tuple[PriceQuote, float]] = {}
        self._lock = asyncio.Lock()

    async def set_quote(self, quote: PriceQuote, checked_at: float | None = None) -> None:
        """Replace the stored quote for `quote.symbol`.

        Args:
            quote: The new quote.
            checked_at: Unix time the quote was last confirmed by the source.
                Defaults to now.
        """
        async with self._lock:
            self._quotes[quote.symbol] = (
                quote,
                checked_at if checked_at is not None else time.time(),
            )

    async def touch(self, symbol: str) -> None:
        """Mark an existing quote as confirmed by the source just now."""
        async with self._lock:
            entry = self._quotes.get(symbol)
            if entry is not None:
                self._quotes[symbol] = (entry[0], time.time())

    async def get_quote(self, symbol: str) -> PriceQuote | None:
        """Return the latest quote for a symbol, or None if never seen."""
        async with self._lock:
            entry = self._quotes.get(symbol)
            return entry[0] if entry is not None else None

    async def get_all(self) -> dict[str, PriceQuote]:
        """Return a copy of the symbol -> quote mapping."""
        async with self._lock:
            return {symbol: entry[0] for symbol, entry in self._quotes.items()}

    async def get_age(self, symbol: str) -> float | None:
        """Return seconds since the quote for `symbol` was last confirmed.

        Returns None if the symbol has no quote.
        """
        async with self._lock:
            entry = self._quotes.get(symbol)
            if entry is None:
                return None
            return time.time() - entry[1]

    async def is_stale(self, symbol: str, max_age_seconds: float = 60.0) -> bool:
        """Check if a quote is stale or missing.

        Returns True if:
        - The symbol has no quote, or
        - The quote was last confirmed more than max_age_seconds ago.
        """
        age = await self.get_age(symbol)
        if age is None:
            return True
        return age > max_age_seconds

    async def load(self, quotes: list[PriceQuote]) -> None:
        """Seed the snapshot from the durable store at startup.

        Loaded quotes keep their persisted time as `checked_at`, so they
        count as stale until the first tick confirms them.
        """
        async with self._lock:
            for quote in quotes:
                stamp = quote.persisted_at or quote.observed_at
                self._quotes[quote.symbol] = (quote, stamp.timestamp())
        logger.info("price_snapshot_loaded", count=len(quotes))
