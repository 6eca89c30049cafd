"""Circuit breaker guarding calls to the external price source.

One breaker instance is shared by every symbol: failures on any symbol
count toward the same threshold, so a dead source is detected after a
handful of calls instead of a handful per metal.

State machine:
  CLOSED --(failures >= threshold)--> OPEN
  OPEN --(recovery_timeout elapsed, next call)--> HALF_OPEN (one trial call)
  HALF_OPEN --(trial succeeds)--> CLOSED, failures reset
  HALF_OPEN --(trial fails)--> OPEN, opened_at restamped
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from goldtracker.exceptions import CircuitOpenError, UnsupportedSymbolError
from goldtracker.logging import get_logger
from goldtracker.models import CircuitState

logger = get_logger(__name__)

T = TypeVar("T")


class CircuitBreaker:
    """Consecutive-failure circuit breaker with a single half-open trial.

    The asyncio.Lock only covers state reads and transitions. It is never
    held while the wrapped call is in flight.

    Args:
        failure_threshold: Consecutive failures that open the circuit.
        recovery_timeout: Seconds the circuit stays open before a trial call.
        ignored_exceptions: Caller errors that neither count as failures
            nor close a half-open circuit.
        clock: Monotonic time source (injectable for tests).
    """

    def __init__(
        self,
        failure_threshold: int = 3,
        recovery_timeout: float = 30.0,
        ignored_exceptions: tuple[type[BaseException], ...] = (UnsupportedSymbolError,),
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._failure_threshold = failure_threshold
        self._recovery_timeout = recovery_timeout
        self._ignored_exceptions = ignored_exceptions
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._opened_at: float | None = None
        self._trial_in_flight = False
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def opened_at(self) -> float | None:
        return self._opened_at

    async def call(
        self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any
    ) -> T:
        """Run `fn` through the breaker.

        Raises:
            CircuitOpenError: The circuit is open (or a half-open trial is
                already running); `fn` is not called.
        """
        is_trial = await self._before_call()
        try:
            result = await fn(*args, **kwargs)
        except asyncio.CancelledError:
            await self._release_trial(is_trial)
            raise
        except self._ignored_exceptions:
            await self._release_trial(is_trial)
            raise
        except Exception as exc:
            await self._on_failure(is_trial, exc)
            raise
        await self._on_success(is_trial)
        return result

    async def _before_call(self) -> bool:
        """Admit or reject a call. Returns True when it is the half-open trial."""
        async with self._lock:
            if self._state == CircuitState.CLOSED:
                return False

            if self._state == CircuitState.OPEN:
                elapsed = self._clock() - (self._opened_at or 0.0)
                if elapsed < self._recovery_timeout:
                    raise CircuitOpenError(retry_after=self._recovery_timeout - elapsed)
                self._state = CircuitState.HALF_OPEN
                logger.info("circuit_half_open", elapsed=round(elapsed, 1))

            # HALF_OPEN: exactly one trial at a time
            if self._trial_in_flight:
                raise CircuitOpenError(retry_after=None)
            self._trial_in_flight = True
            return True

    async def _release_trial(self, is_trial: bool) -> None:
        if not is_trial:
            return
        async with self._lock:
            self._trial_in_flight = False

    async def _on_success(self, is_trial: bool) -> None:
        async with self._lock:
            if is_trial:
                self._trial_in_flight = False
            elif self._state != CircuitState.CLOSED:
                # Admitted before the circuit opened; only the trial may close it
                return
            if self._state != CircuitState.CLOSED:
                logger.info(
                    "circuit_closed",
                    previous_failures=self._consecutive_failures,
                )
            self._state = CircuitState.CLOSED
            self._consecutive_failures = 0
            self._opened_at = None

    async def _on_failure(self, is_trial: bool, exc: Exception) -> None:
        async with self._lock:
            self._consecutive_failures += 1
            if is_trial:
                self._trial_in_flight = False
                self._trip(exc)
                return
            if (
                self._state == CircuitState.CLOSED
                and self._consecutive_failures >= self._failure_threshold
            ):
                self._trip(exc)

    def _trip(self, exc: Exception) -> None:
        """Open the circuit and stamp opened_at. Caller holds the lock."""
        self._state = CircuitState.OPEN
        self._opened_at = self._clock()
        logger.warning(
            "circuit_opened",
            consecutive_failures=self._consecutive_failures,
            recovery_timeout=self._recovery_timeout,
            error_type=type(exc).__name__,
            error=str(exc),
        )

    def snapshot(self) -> dict:
        """JSON-ready view of the breaker for health reporting."""
        open_for = None
        if self._opened_at is not None:
            open_for = round(self._clock() - self._opened_at, 1)
        return {
            "state": self._state.value,
            "consecutive_failures": self._consecutive_failures,
            "failure_threshold": self._failure_threshold,
            "recovery_timeout": self._recovery_timeout,
            "open_for_seconds": open_for,
        }
