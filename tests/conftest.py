"""Shared test fixtures for the gold tracker backend."""

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

import pytest
import pytest_asyncio

from goldtracker.config import (
    AppSettings,
    BreakerSettings,
    CacheSettings,
    DatabaseSettings,
    PriceSourceSettings,
    SchedulerSettings,
)
from goldtracker.data.database import TrackerDatabase
from goldtracker.exceptions import UnsupportedSymbolError
from goldtracker.models import PriceQuote
from goldtracker.source.client import PriceSourceClient
from goldtracker.source.normalize import normalize_quote

BASE_TIME = datetime(2025, 1, 6, 12, 0, 0, tzinfo=timezone.utc)


class FakePriceSource(PriceSourceClient):
    """In-memory price source returning scripted payloads per symbol.

    Each call normalizes the current payload for the symbol, or raises it
    when it is an exception. `calls` counts fetches that reached the
    "network" (unsupported symbols never do).
    """

    def __init__(self, symbols: list[str] | None = None) -> None:
        self._symbols = symbols or ["XAU", "XAG", "XPT", "XPD"]
        self.payloads: dict[str, Any] = {}
        self.calls: dict[str, int] = {}
        self._tick = 0

    @property
    def symbols(self) -> list[str]:
        return list(self._symbols)

    async def connect(self) -> None:
        pass

    async def close(self) -> None:
        pass

    def set(self, symbol: str, payload: Any) -> None:
        self.payloads[symbol] = payload

    @property
    def total_calls(self) -> int:
        return sum(self.calls.values())

    async def fetch_quote(self, symbol: str) -> PriceQuote:
        if symbol not in self._symbols:
            raise UnsupportedSymbolError(symbol)
        self.calls[symbol] = self.calls.get(symbol, 0) + 1
        payload = self.payloads.get(symbol)
        if isinstance(payload, Exception):
            raise payload
        self._tick += 1
        return normalize_quote(
            symbol, payload, BASE_TIME + timedelta(seconds=self._tick)
        )


@pytest.fixture
def settings(tmp_path) -> AppSettings:
    """AppSettings with test defaults: fast retries, small cache, temp database."""
    return AppSettings(
        log_level="DEBUG",
        source=PriceSourceSettings(
            base_url="https://quotes.test/v1",
            api_key="test-api-key",  # type: ignore[arg-type]
            max_attempts=3,
            retry_base_delay=0.0,
        ),
        scheduler=SchedulerSettings(enabled=False, symbol_timeout=2.0),
        breaker=BreakerSettings(),
        cache=CacheSettings(deadline=1.0),
        database=DatabaseSettings(path=str(tmp_path / "tracker.db")),
    )


@pytest.fixture
def make_quote() -> Callable[..., PriceQuote]:
    """Factory for PriceQuote objects with sensible defaults."""

    def _make(
        symbol: str = "XAU",
        mid: str = "2000.00",
        observed_at: datetime | None = None,
        spread: str = "1.00",
    ) -> PriceQuote:
        mid_d = Decimal(mid)
        half = Decimal(spread) / 2
        return PriceQuote(
            symbol=symbol,
            bid=mid_d - half,
            ask=mid_d + half,
            mid=mid_d,
            observed_at=observed_at or BASE_TIME,
        )

    return _make


@pytest.fixture
def fake_source() -> FakePriceSource:
    """Fake source quoting all four metals at fixed prices."""
    source = FakePriceSource()
    source.set("XAU", {"ask": 2001.50, "bid": 2000.50})
    source.set("XAG", {"ask": 23.55, "bid": 23.45})
    source.set("XPT", {"price": 950.00})
    source.set("XPD", {"ask": 1010.20, "bid": 1009.80, "prev_close_price": 1000})
    return source


@pytest_asyncio.fixture
async def database(tmp_path) -> TrackerDatabase:
    """Connected TrackerDatabase in a temporary directory."""
    db = TrackerDatabase(str(tmp_path / "db" / "tracker.db"))
    await db.connect()
    yield db
    await db.close()
