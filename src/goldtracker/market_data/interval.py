"""Polling interval policies for the refresh scheduler.

Fixed mode always sleeps the configured interval. Adaptive mode reacts to
what each tick produced:

- any symbol updated: shrink x0.5 toward the floor
- two or more consecutive ticks with no change: grow x1.5 toward the ceiling
- every symbol failing for `max_consecutive_error_ticks` ticks in a row:
  double, capped at the ceiling (repeats each further all-failed tick)
"""

from goldtracker.config import SchedulerSettings
from goldtracker.logging import get_logger
from goldtracker.models import TickResult

logger = get_logger(__name__)

_SHRINK_FACTOR = 0.5
_GROW_FACTOR = 1.5
_BACKOFF_FACTOR = 2.0
_NO_CHANGE_TICKS_BEFORE_GROWTH = 2


class IntervalPolicy:
    """Computes the sleep between scheduler ticks.

    Args:
        settings: Scheduler settings (mode, interval, floor, ceiling,
            max_consecutive_error_ticks).
    """

    def __init__(self, settings: SchedulerSettings) -> None:
        self._adaptive = settings.mode == "adaptive"
        self._floor = settings.floor
        self._ceiling = max(settings.ceiling, settings.floor)
        self._max_error_ticks = settings.max_consecutive_error_ticks
        if self._adaptive:
            self._interval = min(max(settings.interval, self._floor), self._ceiling)
        else:
            self._interval = settings.interval
        self._no_change_ticks = 0
        self._error_ticks = 0

    @property
    def interval(self) -> float:
        """Seconds to sleep before the next tick."""
        return self._interval

    @property
    def adaptive(self) -> bool:
        return self._adaptive

    def record(self, result: TickResult, symbol_count: int) -> float:
        """Feed one tick's outcome and return the next interval."""
        if not self._adaptive:
            return self._interval

        previous = self._interval
        all_failed = symbol_count > 0 and len(result.failed) >= symbol_count

        if all_failed:
            self._error_ticks += 1
            self._no_change_ticks = 0
            if self._error_ticks >= self._max_error_ticks:
                self._interval = min(self._ceiling, self._interval * _BACKOFF_FACTOR)
        else:
            self._error_ticks = 0
            if result.updated:
                self._no_change_ticks = 0
                self._interval = max(self._floor, self._interval * _SHRINK_FACTOR)
            else:
                self._no_change_ticks += 1
                if self._no_change_ticks >= _NO_CHANGE_TICKS_BEFORE_GROWTH:
                    self._interval = min(self._ceiling, self._interval * _GROW_FACTOR)

        if self._interval != previous:
            logger.info(
                "refresh_interval_adjusted",
                previous=round(previous, 1),
                interval=round(self._interval, 1),
                updated=len(result.updated),
                failed=len(result.failed),
                error_ticks=self._error_ticks,
                no_change_ticks=self._no_change_ticks,
            )
        return self._interval
