"""
Cross-check against the ``toppra`` library.

Runs the library's reachability-analysis solver on the same straight path
and the same surrogate dynamics, without friction or acceleration smoothing.
Its duration is a lower-bound style reference for ``ToppraPlanner``; it is
not used by playback.
"""

from __future__ import annotations

import logging

import numpy as np
import toppra as ta
import toppra.algorithm as algo
import toppra.constraint as constraint
from numpy.typing import ArrayLike

from robodyn.config import GRID_RESOLUTION
from robodyn.dynamics import inverse_dynamics_q
from robodyn.robot_model import DynamicsParams, TorqueLimits

logger = logging.getLogger(__name__)

# Collinear knots; the cubic spline through them is the straight line itself
_N_WAYPOINTS = 5


def toppra_reference_duration(
    start_angles: ArrayLike,
    end_angles: ArrayLike,
    params: DynamicsParams,
    torque_limits: TorqueLimits,
    grid_resolution: int = GRID_RESOLUTION,
) -> float | None:
    """
    Time-optimal duration of the straight move according to ``toppra``.

    Returns:
        Duration in seconds, or None if the library could not solve the path
    """
    start = np.asarray(start_angles, dtype=np.float64)
    end = np.asarray(end_angles, dtype=np.float64)
    ss_waypoints = np.linspace(0.0, 1.0, _N_WAYPOINTS)
    waypoints = start + ss_waypoints[:, None] * (end - start)

    def inv_dyn(q, qd, qdd):
        return inverse_dynamics_q(q, qd, qdd, params)

    try:
        path = ta.SplineInterpolator(ss_waypoints, waypoints)
        torque_constraint = constraint.JointTorqueConstraint(
            inv_dyn,
            torque_limits.bounds,
            np.zeros(len(torque_limits)),
        )
        gridpoints = np.linspace(0.0, 1.0, grid_resolution + 1)
        instance = algo.TOPPRA([torque_constraint], path, gridpoints=gridpoints)
        jnt_traj = instance.compute_trajectory(0.0, 0.0)
    except Exception as e:
        logger.warning("toppra reference failed: %s", e)
        return None

    if jnt_traj is None:
        logger.warning("toppra reference found no feasible parameterization")
        return None

    duration = float(jnt_traj.duration)
    logger.debug("toppra reference: duration=%.3fs", duration)
    return duration
