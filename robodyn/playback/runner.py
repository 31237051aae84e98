"""Fixed-rate loop that ticks a PlaybackController in real time."""

from __future__ import annotations

import logging
import sys
import time
from collections.abc import Callable
from dataclasses import dataclass

import numpy as np
import psutil  # type: ignore[import-untyped]

from robodyn.config import INTERVAL_S, STATUS_LOG_INTERVAL_S
from robodyn.friction import FrictionModel
from robodyn.playback.async_logging import AsyncLogHandler
from robodyn.playback.controller import (
    PlaybackConfig,
    PlaybackController,
    PlaybackFrame,
    PlaybackMode,
)
from robodyn.playback.loop_timer import LoopTimer, PhaseTimer, format_hz_summary
from robodyn.robot_model import (
    REFERENCE_PARAMS,
    REFERENCE_TORQUE_LIMITS,
    DynamicsParams,
    TorqueLimits,
    log_model_summary,
)

logger = logging.getLogger(__name__)


@dataclass
class RunnerConfig:
    """Configuration for the playback runner."""

    mode: PlaybackMode = PlaybackMode.CONTINUOUS
    tick_interval: float = INTERVAL_S
    run_duration_s: float | None = None
    seed: int | None = None
    status_log_interval_s: float = STATUS_LOG_INTERVAL_S
    high_priority: bool = False


class PlaybackRunner:
    """
    Owns a PlaybackController and ticks it at a fixed rate.

    Each frame goes to ``on_frame`` if given. The loop logs a rate-limited
    status line and keeps running through tick errors; it ends after
    ``run_duration_s`` or when ``stop()`` is called.
    """

    def __init__(
        self,
        config: RunnerConfig | None = None,
        params: DynamicsParams = REFERENCE_PARAMS,
        torque_limits: TorqueLimits = REFERENCE_TORQUE_LIMITS,
        playback: PlaybackConfig | None = None,
        on_frame: Callable[[PlaybackFrame], None] | None = None,
    ):
        self.config = config or RunnerConfig()
        self.controller = PlaybackController(
            params,
            torque_limits,
            friction=FrictionModel.fit(torque_limits),
            config=playback,
            rng=np.random.default_rng(self.config.seed),
        )
        self.on_frame = on_frame
        self.running = False
        self.last_frame: PlaybackFrame | None = None
        self._timer = LoopTimer(self.config.tick_interval)
        self._phase_timer = PhaseTimer(["tick", "publish"])
        self._async_log = AsyncLogHandler("robodyn.playback")
        log_model_summary(params, torque_limits)

    @property
    def timer(self) -> LoopTimer:
        return self._timer

    def start(self) -> None:
        """Run the loop on the calling thread until stopped."""
        if self.running:
            logger.warning("Playback runner already running")
            return
        if self.config.high_priority:
            self._set_high_priority()
        self.running = True
        self._async_log.start()
        logger.info(
            "Starting playback loop: mode=%s rate=%.1fHz",
            self.config.mode.value,
            1.0 / self.config.tick_interval,
        )
        try:
            self.controller.set_mode(self.config.mode)
            self._main_loop()
        finally:
            self.running = False
            self._async_log.stop()
            logger.info("Playback loop stopped after %d ticks", self._timer.metrics.loop_count)

    def stop(self) -> None:
        self.running = False

    def _main_loop(self) -> None:
        self._timer.start()
        pt = self._phase_timer
        started = time.monotonic()
        duration = self.config.run_duration_s

        while self.running:
            try:
                with pt.phase("tick"):
                    frame = self.controller.tick()
                self.last_frame = frame
                if self.on_frame is not None:
                    with pt.phase("publish"):
                        self.on_frame(frame)
                pt.tick()
                self._log_periodic_status(frame)
            except KeyboardInterrupt:
                logger.info("Keyboard interrupt received")
                break
            except Exception as e:
                logger.error("Error in playback loop: %s", e, exc_info=True)

            if duration is not None and time.monotonic() - started >= duration:
                break
            self._timer.wait_for_next_tick()

    def _log_periodic_status(self, frame: PlaybackFrame) -> None:
        now = time.perf_counter()
        m = self._timer.metrics

        should_warn, pct = m.check_overbudget(now, 0.25, 3.0)
        if should_warn:
            logger.warning("playback loop overbudget by +%.0f%% (%s)", pct, format_hz_summary(m))

        if not m.should_log(now, self.config.status_log_interval_s):
            return
        status = frame.plan_status.value if frame.plan_status else "-"
        logger.info(
            "playback: mode=%s phase=%s plan=%s %s ov=%d",
            frame.mode.value,
            frame.phase.value,
            status,
            format_hz_summary(m),
            m.overrun_count,
        )
        phases = self._phase_timer.phases
        logger.debug(
            "phases p99: tick=%.2fms publish=%.2fms",
            phases["tick"].p99 * 1000,
            phases["publish"].p99 * 1000,
        )

    def _set_high_priority(self) -> None:
        """Raise process priority as far as the current user is allowed."""
        try:
            p = psutil.Process()
            if sys.platform == "win32":
                p.nice(psutil.HIGH_PRIORITY_CLASS)
                logger.info("Process priority set to HIGH_PRIORITY_CLASS")
            else:
                try:
                    p.nice(-10)
                    logger.info("Process nice value set to -10")
                except psutil.AccessDenied:
                    logger.debug("Negative nice value needs privileges, keeping default")
        except Exception as e:
            logger.warning("Failed to raise process priority: %s", e)
