"""Read-side price queries backed by the snapshot, with live-fetch fallback.

Request handlers go through this service instead of touching the client
directly, so on-demand fetches share the scheduler's circuit breaker and
pass through the same change-aware writer.
"""

import asyncio

from goldtracker.exceptions import (
    CircuitOpenError,
    PriceSourceError,
    QuoteNotFoundError,
    TrackerError,
    UnsupportedSymbolError,
)
from goldtracker.logging import get_logger
from goldtracker.market_data.circuit_breaker import CircuitBreaker
from goldtracker.market_data.scheduler import RefreshScheduler
from goldtracker.market_data.snapshot import PriceSnapshot
from goldtracker.market_data.writer import ChangeAwareWriter
from goldtracker.models import PriceQuote
from goldtracker.source.client import PriceSourceClient

logger = get_logger(__name__)


class PriceService:
    """Current-price queries for the HTTP layer.

    Args:
        client: Price source client (also defines the supported symbols).
        breaker: Circuit breaker shared with the scheduler.
        writer: Change-aware writer shared with the scheduler.
        snapshot: Shared in-memory snapshot.
        scheduler: Refresh scheduler, used by force_refresh.
        max_quote_age: Snapshot quotes older than this trigger a live fetch.
        fetch_timeout: Budget for one live fetch, enforced inside the breaker.
    """

    def __init__(
        self,
        client: PriceSourceClient,
        breaker: CircuitBreaker,
        writer: ChangeAwareWriter,
        snapshot: PriceSnapshot,
        scheduler: RefreshScheduler,
        max_quote_age: float = 60.0,
        fetch_timeout: float = 5.0,
    ) -> None:
        self._client = client
        self._breaker = breaker
        self._writer = writer
        self._snapshot = snapshot
        self._scheduler = scheduler
        self._max_quote_age = max_quote_age
        self._fetch_timeout = fetch_timeout

    @property
    def symbols(self) -> list[str]:
        return self._client.symbols

    def _check_symbol(self, symbol: str) -> None:
        if not self._client.supports(symbol):
            raise UnsupportedSymbolError(symbol)

    async def get_current_price(self, symbol: str) -> PriceQuote:
        """Return the current quote for `symbol`.

        Serves the snapshot while it is fresh. Otherwise fetches live; if
        that fails, an older snapshot quote is still returned.

        Raises:
            UnsupportedSymbolError: `symbol` is not tracked.
            QuoteNotFoundError: No quote exists and the breaker is open.
            PriceSourceError: No quote exists and the live fetch failed.
        """
        self._check_symbol(symbol)

        quote = await self._snapshot.get_quote(symbol)
        if quote is not None and not await self._snapshot.is_stale(
            symbol, self._max_quote_age
        ):
            return quote

        try:
            return await self.fetch_live_price(symbol)
        except CircuitOpenError as exc:
            if quote is not None:
                logger.info("serving_snapshot_circuit_open", symbol=symbol)
                return quote
            raise QuoteNotFoundError(symbol) from exc
        except PriceSourceError as e:
            if quote is None:
                raise
            logger.warning(
                "serving_snapshot_after_fetch_failure",
                symbol=symbol,
                error_type=type(e).__name__,
                error=str(e),
            )
            return quote

    async def get_all_current_prices(self) -> dict[str, PriceQuote]:
        """Return symbol -> quote for every tracked symbol that can be priced.

        Each symbol goes through `get_current_price` concurrently, so stale
        or missing ones are fetched live. A symbol that cannot be priced is
        left out without affecting the others.
        """
        symbols = self.symbols
        outcomes = await asyncio.gather(
            *(self.get_current_price(symbol) for symbol in symbols),
            return_exceptions=True,
        )

        quotes: dict[str, PriceQuote] = {}
        for symbol, outcome in zip(symbols, outcomes):
            if isinstance(outcome, TrackerError):
                logger.warning(
                    "price_unavailable",
                    symbol=symbol,
                    error_type=type(outcome).__name__,
                    error=str(outcome),
                )
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                quotes[symbol] = outcome
        return quotes

    async def is_stale(self, symbol: str) -> bool:
        """Whether the snapshot quote for `symbol` is older than max_quote_age."""
        return await self._snapshot.is_stale(symbol, self._max_quote_age)

    async def fetch_live_price(self, symbol: str) -> PriceQuote:
        """Fetch `symbol` from the source now, through breaker and writer.

        Returns the snapshot value after the write, which is the fetched
        quote when it passed the change gate and the retained one otherwise.
        """
        self._check_symbol(symbol)
        quote = await self._breaker.call(
            self._client.fetch_quote_within, symbol, self._fetch_timeout
        )
        await self._writer.write_if_changed(symbol, quote)
        current = await self._snapshot.get_quote(symbol)
        return current if current is not None else quote

    async def force_refresh(self) -> int:
        """Run one refresh tick now. Returns the number of symbols updated."""
        updated = await self._scheduler.force_refresh()
        logger.info("forced_refresh", updated=updated)
        return updated
