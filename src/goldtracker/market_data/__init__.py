"""Market data layer -- circuit breaker, refresh scheduling, change-aware writes, queries."""

from goldtracker.market_data.circuit_breaker import CircuitBreaker
from goldtracker.market_data.price_service import PriceService
from goldtracker.market_data.scheduler import RefreshScheduler
from goldtracker.market_data.snapshot import PriceSnapshot
from goldtracker.market_data.writer import ChangeAwareWriter

__all__ = [
    "ChangeAwareWriter",
    "CircuitBreaker",
    "PriceService",
    "PriceSnapshot",
    "RefreshScheduler",
]
