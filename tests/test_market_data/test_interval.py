"""Tests for IntervalPolicy (fixed and adaptive polling)."""

import pytest

from goldtracker.config import SchedulerSettings
from goldtracker.market_data.interval import IntervalPolicy
from goldtracker.models import TickResult

SYMBOLS = 4


def _adaptive(**overrides) -> IntervalPolicy:
    values = {
        "mode": "adaptive",
        "interval": 60.0,
        "floor": 30.0,
        "ceiling": 300.0,
        "max_consecutive_error_ticks": 3,
    }
    values.update(overrides)
    return IntervalPolicy(SchedulerSettings(**values))


def _updated() -> TickResult:
    return TickResult(updated=["XAU"], unchanged=["XAG", "XPT", "XPD"])


def _quiet() -> TickResult:
    return TickResult(unchanged=["XAU", "XAG", "XPT", "XPD"])


def _all_failed() -> TickResult:
    return TickResult(failed={s: "SourceHttpError" for s in ("XAU", "XAG", "XPT", "XPD")})


class TestFixedMode:
    def test_interval_never_changes(self) -> None:
        policy = IntervalPolicy(SchedulerSettings(mode="fixed", interval=15.0))
        assert not policy.adaptive
        for result in (_updated(), _quiet(), _all_failed(), _all_failed()):
            assert policy.record(result, SYMBOLS) == 15.0


class TestAdaptiveMode:
    def test_start_interval_clamped_to_bounds(self) -> None:
        assert _adaptive(interval=5.0).interval == 30.0
        assert _adaptive(interval=900.0).interval == 300.0

    def test_update_shrinks_toward_floor(self) -> None:
        policy = _adaptive(interval=100.0)
        assert policy.record(_updated(), SYMBOLS) == 50.0
        assert policy.record(_updated(), SYMBOLS) == 30.0
        assert policy.record(_updated(), SYMBOLS) == 30.0

    def test_single_quiet_tick_keeps_interval(self) -> None:
        policy = _adaptive(interval=60.0)
        assert policy.record(_quiet(), SYMBOLS) == 60.0

    def test_consecutive_quiet_ticks_grow_to_ceiling(self) -> None:
        policy = _adaptive(interval=200.0)
        policy.record(_quiet(), SYMBOLS)
        assert policy.record(_quiet(), SYMBOLS) == 300.0
        assert policy.record(_quiet(), SYMBOLS) == 300.0

    def test_update_resets_quiet_streak(self) -> None:
        policy = _adaptive(interval=60.0)
        policy.record(_quiet(), SYMBOLS)
        policy.record(_updated(), SYMBOLS)
        assert policy.record(_quiet(), SYMBOLS) == 30.0

    def test_error_streak_doubles_after_limit(self) -> None:
        policy = _adaptive(interval=40.0)
        assert policy.record(_all_failed(), SYMBOLS) == 40.0
        assert policy.record(_all_failed(), SYMBOLS) == 40.0
        assert policy.record(_all_failed(), SYMBOLS) == 80.0
        assert policy.record(_all_failed(), SYMBOLS) == 160.0
        assert policy.record(_all_failed(), SYMBOLS) == 300.0

    def test_partial_failure_is_not_an_error_tick(self) -> None:
        policy = _adaptive(interval=40.0, max_consecutive_error_ticks=1)
        partial = TickResult(unchanged=["XAU"], failed={"XAG": "x", "XPT": "x", "XPD": "x"})
        assert policy.record(partial, SYMBOLS) == 40.0

    def test_success_resets_error_streak(self) -> None:
        policy = _adaptive(interval=40.0, max_consecutive_error_ticks=2)
        policy.record(_all_failed(), SYMBOLS)
        policy.record(_quiet(), SYMBOLS)
        assert policy.record(_all_failed(), SYMBOLS) == 40.0

    @pytest.mark.parametrize("ticks", [1, 5, 20])
    def test_interval_stays_within_bounds(self, ticks: int) -> None:
        policy = _adaptive()
        for i in range(ticks):
            result = (_updated(), _quiet(), _all_failed())[i % 3]
            interval = policy.record(result, SYMBOLS)
            assert 30.0 <= interval <= 300.0
