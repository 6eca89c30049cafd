"""Refresh scheduler -- periodically pulls every tracked metal from the source.

Runs as a background asyncio task independent of HTTP traffic. Each tick
fans out one task per symbol (breaker -> client -> writer), each bounded
by its own timeout inside the breaker (an overrun counts as a source
failure); one symbol failing never blocks or aborts the others.
After each tick the price-listing entries of the response cache are
invalidated so readers see fresh data on their next request.
"""

import asyncio

from goldtracker.cache.response_cache import ResponseCache
from goldtracker.config import SchedulerSettings
from goldtracker.logging import get_logger
from goldtracker.market_data.circuit_breaker import CircuitBreaker
from goldtracker.market_data.interval import IntervalPolicy
from goldtracker.market_data.writer import ChangeAwareWriter
from goldtracker.models import TickResult, WriteResult
from goldtracker.source.client import PriceSourceClient

logger = get_logger(__name__)


class RefreshScheduler:
    """Polls the price source on a fixed or adaptive interval.

    Args:
        client: Price source client.
        breaker: Shared circuit breaker guarding the client.
        writer: Change-aware writer receiving each fetched quote.
        settings: Scheduler settings (interval policy, per-symbol timeout).
        cache: Response cache to invalidate after each tick (optional).
        invalidate_prefixes: Cache key prefixes of price-listing endpoints.
    """

    def __init__(
        self,
        client: PriceSourceClient,
        breaker: CircuitBreaker,
        writer: ChangeAwareWriter,
        settings: SchedulerSettings,
        cache: ResponseCache | None = None,
        invalidate_prefixes: list[str] | None = None,
    ) -> None:
        self._client = client
        self._breaker = breaker
        self._writer = writer
        self._settings = settings
        self._cache = cache
        self._invalidate_prefixes = invalidate_prefixes or []
        self._policy = IntervalPolicy(settings)
        self._tick_lock = asyncio.Lock()
        self._running = False
        self._task: asyncio.Task | None = None  # type: ignore[type-arg]
        self._ticks = 0
        self._last_result: TickResult | None = None

    @property
    def symbols(self) -> list[str]:
        return self._client.symbols

    @property
    def interval(self) -> float:
        return self._policy.interval

    @property
    def running(self) -> bool:
        return self._running

    @property
    def last_result(self) -> TickResult | None:
        return self._last_result

    async def start(self) -> None:
        """Begin refreshing prices in the background."""
        if self._running:
            logger.warning("refresh_scheduler_already_running")
            return
        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(
            "refresh_scheduler_started",
            interval=self._policy.interval,
            adaptive=self._policy.adaptive,
            symbols=self.symbols,
        )

    async def stop(self) -> None:
        """Stop the scheduler gracefully."""
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("refresh_scheduler_stopped", ticks=self._ticks)

    async def _run_loop(self) -> None:
        """Main loop: tick, adjust interval, sleep."""
        while self._running:
            try:
                await self.run_tick()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.warning("refresh_tick_error", exc_info=True)
            if self._running:
                await asyncio.sleep(self._policy.interval)

    async def force_refresh(self) -> int:
        """Run one tick now and return the number of symbols updated."""
        result = await self.run_tick()
        return len(result.updated)

    async def run_tick(self) -> TickResult:
        """Execute one refresh pass over every tracked symbol.

        Ticks are serialized: a forced refresh waits for an in-progress
        scheduled tick instead of overlapping it.
        """
        async with self._tick_lock:
            symbols = self.symbols
            outcomes = await asyncio.gather(
                *(self._refresh_symbol(symbol) for symbol in symbols),
                return_exceptions=True,
            )

            result = TickResult()
            for symbol, outcome in zip(symbols, outcomes):
                if isinstance(outcome, BaseException):
                    if isinstance(outcome, asyncio.CancelledError):
                        raise outcome
                    result.failed[symbol] = _describe(outcome)
                    logger.warning(
                        "symbol_refresh_failed",
                        symbol=symbol,
                        error_type=type(outcome).__name__,
                        error=str(outcome),
                    )
                elif outcome.written:
                    result.updated.append(symbol)
                else:
                    result.unchanged.append(symbol)

            self._ticks += 1
            self._last_result = result
            self._invalidate_cache()
            self._policy.record(result, len(symbols))

            logger.info(
                "refresh_tick_complete",
                tick=self._ticks,
                updated=len(result.updated),
                unchanged=len(result.unchanged),
                failed=len(result.failed),
                breaker=self._breaker.state.value,
            )
            return result

    async def _refresh_symbol(self, symbol: str) -> WriteResult:
        """Fetch one symbol through the breaker and hand it to the writer."""
        quote = await self._breaker.call(
            self._client.fetch_quote_within, symbol, self._settings.symbol_timeout
        )
        return await self._writer.write_if_changed(symbol, quote)

    def _invalidate_cache(self) -> None:
        if self._cache is None:
            return
        dropped = 0
        for prefix in self._invalidate_prefixes:
            dropped += self._cache.invalidate_prefix(prefix)
        if dropped:
            logger.debug("price_cache_invalidated", entries=dropped)


def _describe(exc: BaseException) -> str:
    """Short error label for tick summaries."""
    message = str(exc)
    name = type(exc).__name__
    return f"{name}: {message}" if message else name
