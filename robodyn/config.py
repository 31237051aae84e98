"""
Central configuration for robodyn tunables and shared constants.

Every value can be overridden through a ``ROBODYN_*`` environment variable at
import time. Robot parameters (masses, torque limits, safe workspace) live in
:mod:`robodyn.robot_model` and are injected explicitly.
"""

from __future__ import annotations

import logging
import os

TRACE: int = 5
logging.addLevelName(TRACE, "TRACE")
# Add Logger.trace if missing
if not hasattr(logging.Logger, "trace"):

    def _trace(self, msg, *args, **kwargs):
        if self.isEnabledFor(TRACE):
            self._log(TRACE, msg, args, **kwargs)

    logging.Logger.trace = _trace  # type: ignore[attr-defined]
    logging.TRACE = TRACE  # type: ignore[attr-defined]

TRACE_ENABLED = str(os.getenv("ROBODYN_TRACE", "0")).lower() in (
    "1",
    "true",
    "yes",
    "on",
)

logger = logging.getLogger(__name__)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, using %s", name, raw, default)
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, using %s", name, raw, default)
        return default


# Playback tick rate (Hz). Roughly display-refresh aligned.
TICK_RATE_HZ: float = _env_float("ROBODYN_TICK_RATE_HZ", 60.0)

# Centralized loop interval (seconds).
INTERVAL_S: float = max(1e-6, 1.0 / max(TICK_RATE_HZ, 1.0))

# Time before the deadline at which the loop timer stops sleeping and spins.
BUSY_THRESHOLD_MS: float = _env_float("ROBODYN_BUSY_THRESHOLD_MS", 2.0)

# TOPP-RA discretization (grid has GRID_RESOLUTION + 1 points)
GRID_RESOLUTION: int = _env_int("ROBODYN_GRID_RESOLUTION", 200)

# Acceleration smoothing. Empirical values tuned for the reference robot at
# N=200; re-tune for other joint counts or torque scales.
SMOOTHING_HALF_WIDTH: int = _env_int("ROBODYN_SMOOTHING_HALF_WIDTH", 10)
ACCEL_DEADBAND: float = _env_float("ROBODYN_ACCEL_DEADBAND", 0.5)

# Linear fallback trajectory shape
FALLBACK_STEPS: int = _env_int("ROBODYN_FALLBACK_STEPS", 60)
FALLBACK_DURATION_S: float = _env_float("ROBODYN_FALLBACK_DURATION_S", 3.0)

# Continuous playback
DWELL_S: float = _env_float("ROBODYN_DWELL_S", 0.5)
MIN_TARGET_DISTANCE_RAD: float = _env_float("ROBODYN_MIN_TARGET_DISTANCE_RAD", 2.0)
MAX_TARGET_ATTEMPTS: int = _env_int("ROBODYN_MAX_TARGET_ATTEMPTS", 15)

# Friction network
FRICTION_SEED: int = _env_int("ROBODYN_FRICTION_SEED", 7)
FRICTION_HIDDEN_UNITS: int = _env_int("ROBODYN_FRICTION_HIDDEN_UNITS", 15)

# Runner/logging defaults
STATUS_LOG_INTERVAL_S: float = _env_float("ROBODYN_STATUS_LOG_INTERVAL_S", 3.0)
LOG_LEVEL_DEFAULT: str = os.getenv("ROBODYN_LOG_LEVEL", "INFO").strip().upper()

if GRID_RESOLUTION < 2:
    raise ValueError("ROBODYN_GRID_RESOLUTION must be at least 2")
