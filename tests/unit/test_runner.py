"""Unit tests for the real-time playback runner."""

import logging

import psutil
import pytest

import robodyn.playback.runner as runner_mod
from robodyn.playback.controller import PlaybackMode
from robodyn.playback.runner import PlaybackRunner, RunnerConfig


def _short_config(**overrides) -> RunnerConfig:
    kwargs = dict(
        mode=PlaybackMode.SINE, tick_interval=0.01, run_duration_s=0.1, seed=3
    )
    kwargs.update(overrides)
    return RunnerConfig(**kwargs)


class TestPlaybackRunner:
    """Loop lifecycle with a short run duration."""

    def test_emits_frames_until_duration(self):
        frames = []
        runner = PlaybackRunner(_short_config(), on_frame=frames.append)
        runner.start()

        assert not runner.running
        assert len(frames) >= 2
        assert all(f.mode is PlaybackMode.SINE for f in frames)
        assert runner.last_frame is frames[-1]
        assert runner.timer.metrics.loop_count == len(frames) - 1
        stamps = [f.timestamp for f in frames]
        assert stamps == sorted(stamps)

    def test_continuous_mode_plans(self):
        runner = PlaybackRunner(_short_config(mode=PlaybackMode.CONTINUOUS))
        runner.start()
        assert runner.last_frame is not None
        assert runner.last_frame.plan_status is not None
        assert runner.controller.trajectory is not None

    def test_tick_errors_do_not_stop_the_loop(self, caplog):
        calls = []

        def flaky(frame):
            calls.append(frame)
            if len(calls) == 1:
                raise RuntimeError("sink unavailable")

        caplog.set_level(logging.ERROR)
        runner = PlaybackRunner(_short_config(), on_frame=flaky)
        runner.start()

        assert len(calls) >= 2
        assert any("Error in playback loop" in r.getMessage() for r in caplog.records)

    def test_stop_from_callback(self):
        runner = PlaybackRunner(_short_config(run_duration_s=None))
        frames = []

        def stop_after_three(frame):
            frames.append(frame)
            if len(frames) == 3:
                runner.stop()

        runner.on_frame = stop_after_three
        runner.start()
        assert len(frames) == 3


class FakeProcess:
    def __init__(self):
        self.requested = []

    def nice(self, value):
        self.requested.append(value)
        raise psutil.AccessDenied()


def test_priority_request_without_privileges(monkeypatch):
    proc = FakeProcess()
    monkeypatch.setattr(runner_mod.psutil, "Process", lambda: proc)
    runner = PlaybackRunner(_short_config())
    runner._set_high_priority()
    assert len(proc.requested) == 1


def test_invalid_interval_rejected():
    with pytest.raises(ValueError):
        PlaybackRunner(_short_config(tick_interval=0.0))
