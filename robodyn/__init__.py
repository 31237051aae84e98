"""
robodyn: time-optimal trajectory planning and playback for a 6-DOF arm.

Key components:
- gravity_torques / inverse_dynamics: simplified rigid-body dynamics
- FrictionModel: per-joint learned friction estimator
- plan_trajectory / ToppraPlanner: TOPP-RA along a straight joint-space path
- PlaybackController: tick-driven IDLE/PLANNING/MOVING/DWELLING state machine
- REFERENCE_PARAMS / REFERENCE_TORQUE_LIMITS: the reference robot
"""

from ._version import __version__
from .dynamics import gravity_torques, inverse_dynamics
from .friction import FrictionDebugState, FrictionModel, FrictionNetwork
from .motion import (
    PlannerSettings,
    PlanResult,
    PlanStatus,
    ToppraPlanner,
    Trajectory,
    TrajectorySample,
    plan_trajectory,
)
from .playback import PlaybackController, PlaybackMode, PlaybackPhase
from .robot_model import (
    REFERENCE_PARAMS,
    REFERENCE_TORQUE_LIMITS,
    SAFE_LIMITS_RAD,
    DynamicsParams,
    TorqueLimits,
)
from .state import JointState, RobotState

__all__ = [
    "__version__",
    "DynamicsParams",
    "FrictionDebugState",
    "FrictionModel",
    "FrictionNetwork",
    "JointState",
    "PlanResult",
    "PlanStatus",
    "PlannerSettings",
    "PlaybackController",
    "PlaybackMode",
    "PlaybackPhase",
    "REFERENCE_PARAMS",
    "REFERENCE_TORQUE_LIMITS",
    "RobotState",
    "SAFE_LIMITS_RAD",
    "ToppraPlanner",
    "TorqueLimits",
    "Trajectory",
    "TrajectorySample",
    "gravity_torques",
    "inverse_dynamics",
    "plan_trajectory",
]
