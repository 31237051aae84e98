"""Real-time playback: the mode/phase controller and its fixed-rate runner."""

from robodyn.playback.controller import (
    PlaybackConfig,
    PlaybackController,
    PlaybackFrame,
    PlaybackMode,
    PlaybackPhase,
)
from robodyn.playback.runner import PlaybackRunner, RunnerConfig

__all__ = [
    "PlaybackConfig",
    "PlaybackController",
    "PlaybackFrame",
    "PlaybackMode",
    "PlaybackPhase",
    "PlaybackRunner",
    "RunnerConfig",
]
