"""
Motion generation: trajectories, the TOPP-RA planner and demo motions.

Pipeline:
  1. ToppraPlanner projects the dynamics onto a straight joint-space path
  2. Reachability passes + smoothing give a time-optimal path velocity
  3. The result is a Trajectory sampled per grid point, ready for playback
"""

from robodyn.motion.sine import REFERENCE_SINE, SineWaveProfile
from robodyn.motion.toppra import (
    PathCoefficients,
    PlannerSettings,
    PlanResult,
    PlanStatus,
    ToppraPlanner,
    plan_trajectory,
)
from robodyn.motion.trajectory import Trajectory, TrajectorySample, linear_fallback

__all__ = [
    "PathCoefficients",
    "PlanResult",
    "PlanStatus",
    "PlannerSettings",
    "REFERENCE_SINE",
    "SineWaveProfile",
    "ToppraPlanner",
    "Trajectory",
    "TrajectorySample",
    "linear_fallback",
    "plan_trajectory",
]
