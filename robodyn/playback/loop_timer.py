"""Fixed-rate loop timing (hybrid sleep + busy-wait) and rolling loop statistics."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import TYPE_CHECKING

import numpy as np
from numba import njit  # type: ignore[import-untyped]

from robodyn import config as cfg

if TYPE_CHECKING:
    from typing import Self

# Roughly 5 s of ticks, rounded to a power of two so wrap-around is a bitmask
_HISTORY_SECONDS = 5.0


def _pow2_at_least(n: int) -> int:
    return 1 << (max(1, n) - 1).bit_length()


BUFFER_SIZE = _pow2_at_least(int(cfg.TICK_RATE_HZ * _HISTORY_SECONDS))


# =============================================================================
# Numba statistics kernels
# =============================================================================


@njit(cache=True)
def _select_kth(values: np.ndarray, n: int, k: int) -> float:
    """k-th smallest of values[:n], partially reordering ``values`` in place."""
    lo = 0
    hi = n - 1
    while lo < hi:
        pivot = values[(lo + hi) // 2]
        i = lo
        j = hi
        while i <= j:
            while values[i] < pivot:
                i += 1
            while values[j] > pivot:
                j -= 1
            if i <= j:
                values[i], values[j] = values[j], values[i]
                i += 1
                j -= 1
        if k <= j:
            hi = j
        elif k >= i:
            lo = i
        else:
            break
    return values[k]


@njit(cache=True)
def _rolling_stats(
    samples: np.ndarray, scratch: np.ndarray, n: int
) -> tuple[float, float, float, float, float, float]:
    """(mean, std, min, max, p95, p99) of samples[:n]; percentiles need n >= 20."""
    if n == 0:
        return 0.0, 0.0, 0.0, 0.0, 0.0, 0.0

    total = 0.0
    lo = samples[0]
    hi = samples[0]
    for i in range(n):
        x = samples[i]
        total += x
        if x < lo:
            lo = x
        if x > hi:
            hi = x
    mean = total / n

    sq = 0.0
    for i in range(n):
        d = samples[i] - mean
        sq += d * d
    std = np.sqrt(sq / n)

    if n < 20:
        return mean, std, lo, hi, hi, hi

    for i in range(n):
        scratch[i] = samples[i]
    p99 = _select_kth(scratch, n, int(n * 0.99))
    p95 = _select_kth(scratch, n, int(n * 0.95))
    return mean, std, lo, hi, p95, p99


# =============================================================================
# Ring buffer metrics
# =============================================================================


class RollingWindow:
    """Power-of-two ring buffer of float samples with cached statistics."""

    __slots__ = (
        "_samples",
        "_scratch",
        "_mask",
        "_idx",
        "count",
        "last",
        "mean",
        "std",
        "min",
        "max",
        "p95",
        "p99",
    )

    def __init__(self, size: int = BUFFER_SIZE) -> None:
        size = _pow2_at_least(size)
        self._samples = np.zeros(size, dtype=np.float64)
        self._scratch = np.zeros(size, dtype=np.float64)
        self._mask = size - 1
        self._idx = 0
        self.count = 0
        self.last = 0.0
        self.mean = 0.0
        self.std = 0.0
        self.min = 0.0
        self.max = 0.0
        self.p95 = 0.0
        self.p99 = 0.0

    @property
    def capacity(self) -> int:
        return len(self._samples)

    def record(self, value: float) -> None:
        self.last = value
        self._samples[self._idx] = value
        self._idx = (self._idx + 1) & self._mask
        if self.count < len(self._samples):
            self.count += 1

    def compute(self) -> None:
        if self.count == 0:
            return
        (
            self.mean,
            self.std,
            self.min,
            self.max,
            self.p95,
            self.p99,
        ) = _rolling_stats(self._samples, self._scratch, self.count)

    def reset(self) -> None:
        self._samples.fill(0.0)
        self._idx = 0
        self.count = 0
        self.last = self.mean = self.std = self.min = self.max = 0.0
        self.p95 = self.p99 = 0.0


class LoopMetrics:
    """Tick period and deadline overshoot statistics for one loop."""

    def __init__(self, target_period_s: float, stats_interval: int = 30) -> None:
        self.target_period_s = target_period_s
        self.stats_interval = max(1, stats_interval)
        self.loop_count = 0
        self.overrun_count = 0
        self.periods = RollingWindow()
        self.overshoots = RollingWindow()
        self._last_log_time = 0.0
        self._last_warn_time = 0.0

    @property
    def mean_period_s(self) -> float:
        return self.periods.mean

    @property
    def p99_period_s(self) -> float:
        return self.periods.p99

    @property
    def mean_hz(self) -> float:
        return 1.0 / self.periods.mean if self.periods.mean > 0 else 0.0

    def compute_stats(self) -> None:
        self.periods.compute()
        self.overshoots.compute()

    def count_tick(self) -> None:
        self.loop_count += 1
        if self.loop_count % self.stats_interval == 0:
            self.compute_stats()

    def should_log(self, now: float, interval: float) -> bool:
        """True at most once per ``interval`` seconds."""
        if now - self._last_log_time >= interval:
            self._last_log_time = now
            return True
        return False

    def check_overbudget(
        self, now: float, threshold: float = 0.2, rate_limit: float = 5.0
    ) -> tuple[bool, float]:
        """(should_warn, percent over target) when p99 period exceeds the target."""
        if self.target_period_s <= 0 or self.periods.p99 <= 0:
            return False, 0.0
        if now - self._last_warn_time < rate_limit:
            return False, 0.0
        ratio = self.periods.p99 / self.target_period_s
        if ratio > 1.0 + threshold:
            self._last_warn_time = now
            return True, (ratio - 1.0) * 100.0
        return False, 0.0


def format_hz_summary(m: LoopMetrics) -> str:
    """e.g. '59.9Hz σ=0.12ms p99=16.90ms'."""
    p = m.periods
    if p.mean <= 0:
        return "0.0Hz σ=0.00ms p99=0.00ms"
    return f"{1.0 / p.mean:.1f}Hz σ={p.std * 1000:.2f}ms p99={p.p99 * 1000:.2f}ms"


# =============================================================================
# Phase timing
# =============================================================================


class PhaseTimer:
    """
    Per-phase duration statistics for a loop body.

    Usage:
        timer = PhaseTimer(["tick", "publish"])
        with timer.phase("tick"):
            controller.tick()
        timer.tick()
    """

    def __init__(
        self,
        phase_names: list[str],
        stats_interval: int = 30,
        clock: Callable[[], float] = time.perf_counter,
    ):
        self.phases: dict[str, RollingWindow] = {
            name: RollingWindow() for name in phase_names
        }
        self._stats_interval = max(1, stats_interval)
        self._clock = clock
        self._ticks = 0

    def phase(self, name: str) -> _PhaseSpan:
        return _PhaseSpan(self, name)

    def record(self, name: str, duration: float) -> None:
        self.phases[name].record(duration)

    def tick(self) -> None:
        self._ticks += 1
        if self._ticks % self._stats_interval == 0:
            for window in self.phases.values():
                window.compute()

    def summary(self) -> dict[str, dict[str, float]]:
        return {
            name: {
                "mean_ms": w.mean * 1000,
                "max_ms": w.max * 1000,
                "p99_ms": w.p99 * 1000,
            }
            for name, w in self.phases.items()
        }


class _PhaseSpan:
    __slots__ = ("_timer", "_name", "_start")

    def __init__(self, timer: PhaseTimer, name: str):
        self._timer = timer
        self._name = name
        self._start = 0.0

    def __enter__(self) -> Self:
        self._start = self._timer._clock()
        return self

    def __exit__(self, *args: object) -> None:
        self._timer.record(self._name, self._timer._clock() - self._start)


# =============================================================================
# LoopTimer
# =============================================================================


class LoopTimer:
    """
    Deadline scheduler for a fixed-rate loop.

    Sleeps until ``busy_threshold_s`` before the deadline, then spins, which
    keeps most of the CPU idle without inheriting the OS sleep jitter. An
    overrun (deadline already passed) re-anchors the schedule instead of
    trying to catch up.
    """

    def __init__(
        self,
        interval_s: float,
        busy_threshold_s: float | None = None,
        stats_interval: int = 30,
        clock: Callable[[], float] = time.perf_counter,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if interval_s <= 0:
            raise ValueError("interval_s must be positive")
        self.interval = interval_s
        self._busy_threshold = (
            busy_threshold_s
            if busy_threshold_s is not None
            else cfg.BUSY_THRESHOLD_MS / 1000.0
        )
        self._clock = clock
        self._sleep = sleep
        self._deadline = 0.0
        self._prev_t = 0.0
        self.metrics = LoopMetrics(interval_s, stats_interval)

    def start(self) -> None:
        """Anchor the schedule. Call once before the first tick."""
        now = self._clock()
        self._deadline = now
        self._prev_t = now

    def wait_for_next_tick(self) -> None:
        """Block until the next deadline and record the achieved period."""
        self.metrics.count_tick()
        self._deadline += self.interval
        remaining = self._deadline - self._clock()

        if remaining > 0:
            if remaining > self._busy_threshold:
                self._sleep(remaining - self._busy_threshold)
            while self._clock() < self._deadline:
                pass
            now = self._clock()
            self.metrics.overshoots.record(now - self._deadline)
        else:
            self.metrics.overrun_count += 1
            now = self._clock()
            self._deadline = now

        self.metrics.periods.record(now - self._prev_t)
        self._prev_t = now
