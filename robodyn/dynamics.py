"""
Simplified rigid-body dynamics for the reference manipulator.

This is a surrogate, not RNEA: gravity uses a lifted-mass lever per joint,
inertia is m·l² plus a fixed coupling offset, and a drag term
``c·q̇·|q̇|`` stands in for centrifugal/viscous effects. The simplification
keeps torque along a straight joint-space path linear in (s̈, ṡ²), which
the TOPP-RA planner relies on.

All functions are pure and vectorised over leading axes: ``q`` may be (J,)
or (N, J). Non-finite inputs propagate to the outputs.
"""

import numpy as np
from numpy.typing import ArrayLike, NDArray

from robodyn.state import RobotState
from robodyn.robot_model import DynamicsParams


def gravity_torques_q(q: ArrayLike, params: DynamicsParams) -> NDArray[np.float64]:
    """
    Gravity torque for joint angles ``q``.

    For every joint with a lever: lifted mass · g · com · cos(sum of the
    angles tilting that lever). Joints without a lever get zero.
    """
    q = np.asarray(q, dtype=np.float64)
    phase = q @ params.lever_matrix.T
    return params.lever_mass * params.gravity * params.com * np.cos(phase)


def inverse_dynamics_q(
    q: ArrayLike,
    qd: ArrayLike,
    qdd: ArrayLike,
    params: DynamicsParams,
) -> NDArray[np.float64]:
    """
    Joint torques for (q, q̇, q̈): gravity + inertia·q̈ + drag·q̇·|q̇|.

    The base joint (vertical axis) sees no gravity and no drag; its torque
    is total mass · base_inertia_factor · q̈.
    """
    qd = np.asarray(qd, dtype=np.float64)
    qdd = np.asarray(qdd, dtype=np.float64)

    torques = gravity_torques_q(q, params)
    inertia = params.masses * params.lengths**2 + params.coupling
    torques = torques + inertia * qdd + params.drag_coefficient * qd * np.abs(qd)

    if params.base_joint is not None:
        b = params.base_joint
        torques[..., b] = (
            params.total_mass * params.base_inertia_factor * qdd[..., b]
        )
    return torques


def gravity_torques(state: RobotState, params: DynamicsParams) -> NDArray[np.float64]:
    """Gravity torque vector for a robot state (velocity/acceleration ignored)."""
    return gravity_torques_q(state.angles, params)


def inverse_dynamics(state: RobotState, params: DynamicsParams) -> NDArray[np.float64]:
    """Rigid-body torque vector for a robot state, friction excluded."""
    return inverse_dynamics_q(
        state.angles, state.velocities, state.accelerations, params
    )
