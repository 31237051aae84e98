"""
JIT warmup utilities.

Call warmup_jit() on startup so no numba kernel compiles inside the playback
loop. With cache=True this is quick once the on-disk cache exists.
"""

import logging
import time

import numpy as np

from robodyn.friction import FrictionModel, _friction_forward_into, friction_jit
from robodyn.motion.toppra import (
    PlannerSettings,
    _acceleration_bounds,
    _backward_pass,
    _forward_pass,
    _integrate_time,
    _smooth_profile,
    _velocity_limit_curve,
    plan_trajectory,
)
from robodyn.playback.loop_timer import RollingWindow, _rolling_stats, _select_kth
from robodyn.robot_model import REFERENCE_PARAMS, REFERENCE_TORQUE_LIMITS
from robodyn.state import RobotState

logger = logging.getLogger(__name__)


def warmup_jit() -> float:
    """
    Compile every numba kernel with the argument types used at runtime.

    Returns the time taken in seconds.
    """
    logger.info("Warming JIT...")
    start = time.perf_counter()

    # A real plan compiles the planner and friction kernels with read-only
    # coefficient arrays, the same specialization playback uses.
    friction = FrictionModel.fit(REFERENCE_TORQUE_LIMITS)
    n = REFERENCE_PARAMS.n_joints
    plan_trajectory(
        RobotState.zeros(n),
        RobotState.at_rest(np.full(n, 0.1)),
        REFERENCE_PARAMS,
        REFERENCE_TORQUE_LIMITS,
        friction,
        PlannerSettings(grid_resolution=8, smoothing_half_width=2),
    )
    friction.debug_state(0, 0.0)
    friction.friction_torques(np.zeros(n))

    # Writable-array specializations (frictionless planning, direct calls)
    coeffs = np.zeros((3, n), dtype=np.float64)
    vec = np.ones(n, dtype=np.float64)
    w = np.zeros((n, 1), dtype=np.float64)
    profile = np.zeros(2, dtype=np.float64)
    friction_jit(0, 0.0, vec, w, w, w, vec)
    _friction_forward_into(0, 0.0, vec, w, w, w, vec, np.zeros(1))
    _velocity_limit_curve(coeffs, coeffs, vec)
    _acceleration_bounds(0, 0.0, coeffs, coeffs, coeffs, vec, vec, vec, w, w, w, vec)
    _backward_pass(np.zeros(3), 0.5, coeffs, coeffs, coeffs, vec, vec, vec, w, w, w, vec)
    _forward_pass(np.zeros(3), 0.5, coeffs, coeffs, coeffs, vec, vec, vec, w, w, w, vec)
    _smooth_profile(profile, 1, 0.5)
    _integrate_time(profile, 0.5)

    # Loop statistics
    window = RollingWindow(32)
    for i in range(32):
        window.record(float(i))
    window.compute()
    scratch = np.arange(4, dtype=np.float64)
    _select_kth(scratch, 4, 2)
    _rolling_stats(scratch, np.zeros(4), 4)

    elapsed = time.perf_counter() - start
    logger.info("JIT warmup completed in %.2fs", elapsed)
    return elapsed
