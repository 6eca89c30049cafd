"""Custom exceptions for the gold tracker backend.

Price source, circuit breaker and lookup failures all live here so the
source client, the market data services and the API layer can share them
without importing each other.
"""


class TrackerError(Exception):
    """Base exception for all tracker errors."""


class PriceSourceError(TrackerError):
    """Base class for failures talking to the external price source.

    `transient` marks failures worth retrying within the same fetch.
    """

    transient = False


class UnsupportedSymbolError(PriceSourceError):
    """Raised when a symbol is not in the configured metal set."""

    def __init__(self, symbol: str) -> None:
        super().__init__(f"Unsupported metal symbol: {symbol}")
        self.symbol = symbol


class SourceTimeoutError(PriceSourceError):
    """Raised when the price source does not answer within the timeout."""

    transient = True


class SourceNetworkError(PriceSourceError):
    """Raised on connection-level failures (DNS, refused, reset)."""

    transient = True


class SourceHttpError(PriceSourceError):
    """Raised when the price source answers with a non-2xx status."""

    def __init__(self, status: int, message: str = "") -> None:
        super().__init__(message or f"Price source returned HTTP {status}")
        self.status = status

    @property
    def transient(self) -> bool:  # type: ignore[override]
        return self.status == 429 or self.status >= 500


class MalformedResponseError(PriceSourceError):
    """Raised when the response body is empty, not JSON, or lacks prices."""


class SourceApiError(PriceSourceError):
    """Raised when the response body carries an explicit error field."""


class CircuitOpenError(TrackerError):
    """Raised when the circuit breaker rejects a call without trying it."""

    def __init__(self, retry_after: float | None = None) -> None:
        super().__init__("Price source circuit is open")
        self.retry_after = retry_after


class QuoteNotFoundError(TrackerError):
    """Raised when no quote exists for a supported symbol."""

    def __init__(self, symbol: str) -> None:
        super().__init__(f"No price available for {symbol}")
        self.symbol = symbol


class SignalNotFoundError(TrackerError):
    """Raised when a signal id does not exist."""

    def __init__(self, signal_id: int) -> None:
        super().__init__(f"Signal {signal_id} not found")
        self.signal_id = signal_id
