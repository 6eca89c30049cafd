"""Two-layer response cache: TTL-bound primary entries plus last-known-good fallback.

Keys are canonical request signatures built by `make_cache_key`. Every
successful computation refreshes both layers; a degraded response served
from the fallback layer never writes back into it. A computation that
misses its deadline is not cancelled: it finishes in the background and
its result, if any, refreshes both layers then.

All mutations are plain synchronous dict operations with no awaits, so
each one runs to completion on the event loop without interleaving.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

from goldtracker.exceptions import SourceTimeoutError
from goldtracker.logging import get_logger

logger = get_logger(__name__)


def make_cache_key(method: str, path: str, query: Mapping[str, Any] | None = None) -> str:
    """Build the canonical signature ``"<METHOD> <path>?<sorted query>"``."""
    key = f"{method.upper()} {path}"
    if query:
        items = sorted((str(k), str(v)) for k, v in query.items())
        key += "?" + urlencode(items)
    return key


@dataclass
class CacheEntry:
    """A primary-layer entry, valid while now - written_at < ttl."""

    payload: Any
    written_at: float
    ttl: float


@dataclass
class FallbackEntry:
    """Last successfully produced payload for a key, kept regardless of age."""

    payload: Any
    written_at: float


@dataclass
class CachedResponse:
    """What `serve` hands back to a route handler."""

    payload: Any
    source: str  # "cache", "fresh" or "fallback"

    @property
    def stale(self) -> bool:
        return self.source == "fallback"


class ResponseCache:
    """Size-bounded TTL cache with a last-known-good fallback layer.

    Eviction is coarse: once a layer exceeds its bound, the oldest half of
    its entries (by written_at) is dropped in one pass.

    Args:
        max_entries: Primary layer bound.
        max_fallback_entries: Fallback layer bound.
        deadline: Seconds `serve` waits for a fresh computation before
            answering from the fallback layer.
        clock: Time source (injectable for tests).
    """

    def __init__(
        self,
        max_entries: int = 50,
        max_fallback_entries: int = 500,
        deadline: float = 6.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._max_entries = max_entries
        self._max_fallback_entries = max_fallback_entries
        self._deadline = deadline
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._fallback: dict[str, FallbackEntry] = {}
        self._pending: set[asyncio.Future] = set()  # type: ignore[type-arg]

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def fallback_size(self) -> int:
        return len(self._fallback)

    def get(self, key: str) -> Any | None:
        """Return the primary payload for `key` if still within its TTL."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.written_at >= entry.ttl:
            return None
        return entry.payload

    def put(self, key: str, payload: Any, ttl: float) -> None:
        """Store `payload` in the primary layer and mirror it into the fallback."""
        now = self._clock()
        self._entries[key] = CacheEntry(payload=payload, written_at=now, ttl=ttl)
        self._fallback[key] = FallbackEntry(payload=payload, written_at=now)
        if len(self._entries) > self._max_entries:
            self._evict_oldest_half(self._entries)
        if len(self._fallback) > self._max_fallback_entries:
            self._evict_oldest_half(self._fallback)

    def get_fallback(self, key: str) -> tuple[Any, float] | None:
        """Return ``(payload, age_seconds)`` of the last good payload, or None."""
        entry = self._fallback.get(key)
        if entry is None:
            return None
        return entry.payload, self._clock() - entry.written_at

    def invalidate_prefix(self, prefix: str) -> int:
        """Drop primary entries whose key starts with `prefix`.

        The fallback layer is left intact. Returns the number dropped.
        """
        doomed = [key for key in self._entries if key.startswith(prefix)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def clear(self) -> None:
        self._entries.clear()
        self._fallback.clear()

    async def serve(
        self,
        key: str,
        compute: Callable[[], Awaitable[Any]],
        ttl: float,
        deadline: float | None = None,
    ) -> CachedResponse:
        """Serve `key` from cache, a fresh computation, or the fallback layer.

        Raises whatever `compute` raised (SourceTimeoutError on deadline)
        when there is no fallback payload for `key`.
        """
        cached = self.get(key)
        if cached is not None:
            return CachedResponse(payload=cached, source="cache")

        timeout = self._deadline if deadline is None else deadline
        task = asyncio.ensure_future(compute())
        try:
            # The deadline ends the wait; the computation itself keeps running
            payload = await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        except asyncio.CancelledError:
            task.cancel()
            raise
        except Exception as exc:
            error: Exception = exc
            if isinstance(exc, asyncio.TimeoutError) and not task.done():
                error = SourceTimeoutError(f"Computing {key} exceeded {timeout}s")
                self._detach(key, task, ttl)
            fallback = self.get_fallback(key)
            if fallback is None:
                logger.warning(
                    "cache_compute_failed_no_fallback",
                    key=key,
                    error_type=type(error).__name__,
                    error=str(error),
                )
                if error is exc:
                    raise
                raise error from exc

            stale_payload, age = fallback
            logger.warning(
                "cache_serving_fallback",
                key=key,
                age=round(age, 1),
                error_type=type(error).__name__,
                error=str(error),
            )
            return CachedResponse(
                payload=_mark_stale(stale_payload, age),
                source="fallback",
            )

        self.put(key, payload, ttl)
        return CachedResponse(payload=payload, source="fresh")

    def _detach(self, key: str, task: asyncio.Future, ttl: float) -> None:  # type: ignore[type-arg]
        """Let a computation that missed its deadline finish in the background."""
        self._pending.add(task)
        task.add_done_callback(lambda done: self._finish_late(key, ttl, done))

    def _finish_late(self, key: str, ttl: float, task: asyncio.Future) -> None:  # type: ignore[type-arg]
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.info(
                "cache_late_compute_failed",
                key=key,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return
        self.put(key, task.result(), ttl)
        logger.debug("cache_late_compute_stored", key=key)

    @property
    def pending(self) -> int:
        """Computations still running past their deadline."""
        return len(self._pending)

    async def close(self) -> None:
        """Cancel computations still running past their deadline."""
        pending = list(self._pending)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

    @staticmethod
    def _evict_oldest_half(layer: dict) -> None:
        ordered = sorted(layer, key=lambda k: layer[k].written_at)
        for key in ordered[: max(1, len(ordered) // 2)]:
            del layer[key]
        logger.debug("cache_evicted", dropped=max(1, len(ordered) // 2), remaining=len(layer))


def _mark_stale(payload: Any, age: float) -> Any:
    """Return a copy of `payload` tagged as degraded-mode data.

    Dict payloads get ``stale`` and ``age`` keys; anything else is wrapped.
    The stored fallback object itself is never modified.
    """
    if isinstance(payload, dict):
        return {**payload, "stale": True, "age": round(age, 1)}
    return {"data": payload, "stale": True, "age": round(age, 1)}
