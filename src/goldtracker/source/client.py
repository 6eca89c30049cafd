"""Abstract price source client interface.

Defines the contract for all price source implementations. The scheduler
and query services depend only on this interface, keeping transport
details isolated in the concrete implementation.
"""

import asyncio
from abc import ABC, abstractmethod

from goldtracker.exceptions import SourceTimeoutError
from goldtracker.models import PriceQuote


class PriceSourceClient(ABC):
    """Abstract base class for precious-metal quote sources."""

    @property
    @abstractmethod
    def symbols(self) -> list[str]:
        """Metal symbols this client can quote."""
        ...

    @abstractmethod
    async def connect(self) -> None:
        """Open pooled connections."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release pooled connections."""
        ...

    @abstractmethod
    async def fetch_quote(self, symbol: str) -> PriceQuote:
        """Fetch and normalize the current quote for one symbol.

        Raises:
            UnsupportedSymbolError: Before any network call, for unknown symbols.
            PriceSourceError: Any other source failure.
        """
        ...

    def supports(self, symbol: str) -> bool:
        """Whether `symbol` is in the configured metal set."""
        return symbol in self.symbols

    async def fetch_quote_within(self, symbol: str, timeout: float) -> PriceQuote:
        """`fetch_quote` bounded by `timeout` seconds.

        An overrun is raised as SourceTimeoutError, so a circuit breaker
        wrapping this call records it like any other source failure.
        """
        try:
            return await asyncio.wait_for(self.fetch_quote(symbol), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise SourceTimeoutError(
                f"Fetching {symbol} exceeded {timeout}s"
            ) from exc
