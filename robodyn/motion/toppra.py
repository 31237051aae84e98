"""
Time-optimal path parameterization (TOPP-RA) of a straight joint-space move.

The path is q(s) = start + s·Δq for s in [0, 1], sampled on a uniform grid
of N + 1 points. Along that path the surrogate dynamics are linear in the
path acceleration and the squared path velocity:

    τ(s) = A(s)·s̈ + B(s)·ṡ² + C(s) + friction(ṡ·Δq)

Pipeline:
  1. Project the dynamics onto the grid (A, B, C per grid point and joint)
  2. Velocity limit curve from the static torque box (s̈ = 0)
  3. Backward pass: reachable velocity ceiling β that can still stop at s = 1
  4. Forward pass: greedy maximum acceleration, clipped to β
  5. Moving-average smoothing + deadband on the acceleration profile
  6. Re-integrate to the time domain and map back to joint space

Steps 2-6 run as numba kernels. Any exception or non-finite value turns into
the linear fallback trajectory, so ``plan_trajectory`` always returns
something the playback loop can use.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum

import numpy as np
from numba import njit  # type: ignore[import-untyped]
from numpy.typing import ArrayLike, NDArray

from robodyn.config import ACCEL_DEADBAND, GRID_RESOLUTION, SMOOTHING_HALF_WIDTH
from robodyn.dynamics import gravity_torques_q, inverse_dynamics_q
from robodyn.friction import FrictionModel, friction_jit
from robodyn.motion.trajectory import Trajectory, linear_fallback
from robodyn.robot_model import DynamicsParams, TorqueLimits
from robodyn.state import RobotState, readonly_array

logger = logging.getLogger(__name__)

# Paths shorter than this (rad, Euclidean) are not worth optimizing
MIN_PATH_LENGTH: float = 1e-3
# |A| below this means the joint has no leverage on s̈
DEGENERATE_INERTIA: float = 1e-5
# |B| below this means the joint's static torque does not depend on ṡ
DEGENERATE_VELOCITY_COEFF: float = 1e-12
# Time integration guards
MIN_AVG_VELOCITY: float = 1e-4
STALLED_DT_S: float = 0.01
MIN_DT_S: float = 1e-4


class PlanStatus(Enum):
    SOLVED = "solved"
    FALLBACK = "fallback"


class PlanningError(RuntimeError):
    """Unrecoverable numerical state inside the solver."""


@dataclass(frozen=True)
class PlannerSettings:
    """
    Solver tunables.

    Attributes:
        grid_resolution: Number of path segments N (grid has N + 1 points)
        smoothing_half_width: Moving-average half-width in grid points
        deadband: Smoothed path accelerations below this magnitude become 0
    """

    grid_resolution: int = GRID_RESOLUTION
    smoothing_half_width: int = SMOOTHING_HALF_WIDTH
    deadband: float = ACCEL_DEADBAND

    def __post_init__(self) -> None:
        if self.grid_resolution < 2:
            raise ValueError("grid_resolution must be at least 2")
        if self.smoothing_half_width < 0:
            raise ValueError("smoothing_half_width must be non-negative")
        if self.deadband < 0:
            raise ValueError("deadband must be non-negative")

    @property
    def ds(self) -> float:
        return 1.0 / self.grid_resolution


@dataclass(frozen=True)
class PathCoefficients:
    """
    Dynamics projected onto the path grid, each (N + 1, J).

    Attributes:
        inertia: A(s), torque per unit s̈
        velocity: B(s), torque per unit ṡ²
        gravity: C(s), static torque
    """

    inertia: NDArray[np.float64]
    velocity: NDArray[np.float64]
    gravity: NDArray[np.float64]

    def __post_init__(self) -> None:
        for name in ("inertia", "velocity", "gravity"):
            object.__setattr__(self, name, readonly_array(getattr(self, name), 2))
        if not self.inertia.shape == self.velocity.shape == self.gravity.shape:
            raise ValueError("Path coefficient arrays must share shape (N + 1, J)")

    @property
    def grid_resolution(self) -> int:
        return self.inertia.shape[0] - 1

    @property
    def n_joints(self) -> int:
        return self.inertia.shape[1]

    def rigid_torque(self, k: int, s_dot: float, s_ddot: float) -> NDArray[np.float64]:
        """A·s̈ + B·ṡ² + C at grid point ``k`` (friction excluded)."""
        return (
            self.inertia[k] * s_ddot + self.velocity[k] * s_dot * s_dot + self.gravity[k]
        )


@dataclass(frozen=True)
class PlanResult:
    """Planner outcome. ``trajectory`` is always usable."""

    status: PlanStatus
    trajectory: Trajectory
    reason: str = ""

    @property
    def solved(self) -> bool:
        return self.status is PlanStatus.SOLVED


# =============================================================================
# Numba kernels
# =============================================================================


@njit(cache=True)
def _velocity_limit_curve(B: np.ndarray, C: np.ndarray, t_max: np.ndarray) -> np.ndarray:
    n_points, n_joints = B.shape
    out = np.empty(n_points, dtype=np.float64)
    for k in range(n_points):
        max_sq = np.inf
        for i in range(n_joints):
            b = B[k, i]
            c = C[k, i]
            t = t_max[i]
            if b > DEGENERATE_VELOCITY_COEFF:
                num = t - c
                if num < 0.0:
                    max_sq = 0.0
                else:
                    max_sq = min(max_sq, num / b)
            elif b < -DEGENERATE_VELOCITY_COEFF:
                num = -t - c
                if num > 0.0:
                    max_sq = 0.0
                else:
                    max_sq = min(max_sq, num / b)
            elif abs(c) > t:
                # Gravity alone exceeds the box
                max_sq = 0.0
        out[k] = math.sqrt(max(0.0, max_sq))
    out[0] = 0.0
    out[n_points - 1] = 0.0
    return out


@njit(cache=True)
def _acceleration_bounds(
    k: int,
    s_dot: float,
    A: np.ndarray,
    B: np.ndarray,
    C: np.ndarray,
    t_max: np.ndarray,
    delta_q: np.ndarray,
    fr_scale: np.ndarray,
    fr_w_in: np.ndarray,
    fr_b_in: np.ndarray,
    fr_w_out: np.ndarray,
    fr_b_out: np.ndarray,
) -> tuple[bool, float, float]:
    """Admissible s̈ interval at grid point k. Returns (feasible, u_min, u_max)."""
    sd_sq = s_dot * s_dot
    u_min = -np.inf
    u_max = np.inf
    for i in range(A.shape[1]):
        a = A[k, i]
        bias = B[k, i] * sd_sq + C[k, i]
        bias += friction_jit(
            i, s_dot * delta_q[i], fr_scale, fr_w_in, fr_b_in, fr_w_out, fr_b_out
        )
        lower = -t_max[i] - bias
        upper = t_max[i] - bias
        if abs(a) < DEGENERATE_INERTIA:
            if lower > 0.0 or upper < 0.0:
                return False, 0.0, 0.0
        elif a > 0.0:
            u_min = max(u_min, lower / a)
            u_max = min(u_max, upper / a)
        else:
            u_min = max(u_min, upper / a)
            u_max = min(u_max, lower / a)
    if u_min > u_max:
        return False, 0.0, 0.0
    return True, u_min, u_max


@njit(cache=True)
def _backward_pass(
    mvc: np.ndarray,
    ds: float,
    A: np.ndarray,
    B: np.ndarray,
    C: np.ndarray,
    t_max: np.ndarray,
    delta_q: np.ndarray,
    fr_scale: np.ndarray,
    fr_w_in: np.ndarray,
    fr_b_in: np.ndarray,
    fr_w_out: np.ndarray,
    fr_b_out: np.ndarray,
) -> np.ndarray:
    n_points = mvc.shape[0]
    beta = np.zeros(n_points, dtype=np.float64)
    for k in range(n_points - 2, -1, -1):
        sd_next = min(beta[k + 1], mvc[k + 1])
        ok, u_min, _ = _acceleration_bounds(
            k + 1, sd_next, A, B, C, t_max, delta_q,
            fr_scale, fr_w_in, fr_b_in, fr_w_out, fr_b_out,
        )
        if not ok:
            beta[k] = 0.0
        else:
            sd_sq = sd_next * sd_next - 2.0 * u_min * ds
            beta[k] = min(math.sqrt(max(0.0, sd_sq)), mvc[k])
    return beta


@njit(cache=True)
def _forward_pass(
    beta: np.ndarray,
    ds: float,
    A: np.ndarray,
    B: np.ndarray,
    C: np.ndarray,
    t_max: np.ndarray,
    delta_q: np.ndarray,
    fr_scale: np.ndarray,
    fr_w_in: np.ndarray,
    fr_b_in: np.ndarray,
    fr_w_out: np.ndarray,
    fr_b_out: np.ndarray,
) -> np.ndarray:
    n_seg = beta.shape[0] - 1
    raw = np.zeros(n_seg, dtype=np.float64)
    s_dot = 0.0
    for k in range(n_seg):
        ok, _, u_max = _acceleration_bounds(
            k, s_dot, A, B, C, t_max, delta_q,
            fr_scale, fr_w_in, fr_b_in, fr_w_out, fr_b_out,
        )
        s_ddot = 0.0
        if ok:
            s_ddot = u_max
            max_next_sq = beta[k + 1] * beta[k + 1]
            if s_dot * s_dot + 2.0 * s_ddot * ds > max_next_sq:
                s_ddot = (max_next_sq - s_dot * s_dot) / (2.0 * ds)
        raw[k] = s_ddot
        s_dot = math.sqrt(max(0.0, s_dot * s_dot + 2.0 * s_ddot * ds))
    return raw


@njit(cache=True)
def _smooth_profile(raw: np.ndarray, half_width: int, deadband: float) -> np.ndarray:
    n = raw.shape[0]
    out = np.empty(n, dtype=np.float64)
    for k in range(n):
        lo = max(0, k - half_width)
        hi = min(n, k + half_width + 1)
        total = 0.0
        for w in range(lo, hi):
            total += raw[w]
        avg = total / (hi - lo)
        if abs(avg) < deadband:
            avg = 0.0
        out[k] = avg
    return out


@njit(cache=True)
def _integrate_time(s_ddot: np.ndarray, ds: float) -> tuple[np.ndarray, np.ndarray]:
    """Returns (ṡ, t) at every grid point, same kinematics as the forward pass."""
    n_seg = s_ddot.shape[0]
    s_dot = np.zeros(n_seg + 1, dtype=np.float64)
    t = np.zeros(n_seg + 1, dtype=np.float64)
    for k in range(n_seg):
        sd = s_dot[k]
        sd_next = math.sqrt(max(0.0, sd * sd + 2.0 * s_ddot[k] * ds))
        v_avg = 0.5 * (sd + sd_next)
        if v_avg > MIN_AVG_VELOCITY:
            dt = ds / v_avg
        else:
            dt = STALLED_DT_S
        t[k + 1] = t[k] + max(dt, MIN_DT_S)
        s_dot[k + 1] = sd_next
    return s_dot, t


# =============================================================================
# Step functions
# =============================================================================


def _friction_args(
    friction: FrictionModel | None, n_joints: int
) -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    if friction is None:
        # Single zero-weight unit: friction_jit returns 0 for every joint
        zeros = np.zeros((n_joints, 1), dtype=np.float64)
        return np.ones(n_joints), zeros, zeros, zeros, np.zeros(n_joints)
    if friction.n_joints != n_joints:
        raise ValueError(
            f"Friction model has {friction.n_joints} joints, expected {n_joints}"
        )
    return friction.network.kernel_args()


def _constraint_args(
    coeffs: PathCoefficients,
    torque_limits: TorqueLimits,
    delta_q: ArrayLike,
    friction: FrictionModel | None,
) -> tuple[np.ndarray, ...]:
    dq = np.ascontiguousarray(delta_q, dtype=np.float64)
    if dq.shape != (coeffs.n_joints,) or len(torque_limits) != coeffs.n_joints:
        raise ValueError(f"Expected {coeffs.n_joints} joints for Δq and torque limits")
    return (
        coeffs.inertia,
        coeffs.velocity,
        coeffs.gravity,
        torque_limits.max_torque,
        dq,
        *_friction_args(friction, coeffs.n_joints),
    )


def compute_path_coefficients(
    start_angles: ArrayLike,
    delta_q: ArrayLike,
    params: DynamicsParams,
    grid_resolution: int = GRID_RESOLUTION,
) -> PathCoefficients:
    """
    Project the dynamics onto the straight path at s = k / N, k = 0..N.

    C is gravity at q(s). A and B come from two extra inverse-dynamics calls
    (q̈ = Δq, then q̇ = Δq) with C subtracted.
    """
    start = np.asarray(start_angles, dtype=np.float64)
    dq = np.asarray(delta_q, dtype=np.float64)
    s = np.arange(grid_resolution + 1, dtype=np.float64) / grid_resolution
    q = start + s[:, None] * dq
    zeros = np.zeros_like(q)
    dq_rows = np.broadcast_to(dq, q.shape)

    gravity = gravity_torques_q(q, params)
    inertia = inverse_dynamics_q(q, zeros, dq_rows, params) - gravity
    velocity = inverse_dynamics_q(q, dq_rows, zeros, params) - gravity
    return PathCoefficients(inertia=inertia, velocity=velocity, gravity=gravity)


def velocity_limit_curve(
    coeffs: PathCoefficients, torque_limits: TorqueLimits
) -> NDArray[np.float64]:
    """Max ṡ per grid point under the static torque box; 0 at both ends."""
    return _velocity_limit_curve(
        coeffs.velocity, coeffs.gravity, torque_limits.max_torque
    )


def acceleration_bounds(
    coeffs: PathCoefficients,
    k: int,
    s_dot: float,
    torque_limits: TorqueLimits,
    delta_q: ArrayLike,
    friction: FrictionModel | None = None,
) -> tuple[float, float] | None:
    """Admissible [s̈_min, s̈_max] at grid point ``k``, or None if infeasible."""
    if not 0 <= k <= coeffs.grid_resolution:
        raise IndexError(f"Grid index {k} out of range")
    args = _constraint_args(coeffs, torque_limits, delta_q, friction)
    ok, u_min, u_max = _acceleration_bounds(int(k), float(s_dot), *args)
    if not ok:
        return None
    return float(u_min), float(u_max)


def backward_pass(
    coeffs: PathCoefficients,
    mvc: NDArray[np.float64],
    torque_limits: TorqueLimits,
    delta_q: ArrayLike,
    friction: FrictionModel | None = None,
) -> NDArray[np.float64]:
    """β curve: highest ṡ at each grid point from which the path end is reachable at rest."""
    args = _constraint_args(coeffs, torque_limits, delta_q, friction)
    return _backward_pass(
        np.asarray(mvc, dtype=np.float64), 1.0 / coeffs.grid_resolution, *args
    )


def forward_pass(
    coeffs: PathCoefficients,
    beta: NDArray[np.float64],
    torque_limits: TorqueLimits,
    delta_q: ArrayLike,
    friction: FrictionModel | None = None,
) -> NDArray[np.float64]:
    """Raw s̈ per segment (N,), greedy but never overshooting β."""
    args = _constraint_args(coeffs, torque_limits, delta_q, friction)
    return _forward_pass(
        np.asarray(beta, dtype=np.float64), 1.0 / coeffs.grid_resolution, *args
    )


def smooth_profile(
    raw: NDArray[np.float64],
    half_width: int = SMOOTHING_HALF_WIDTH,
    deadband: float = ACCEL_DEADBAND,
) -> NDArray[np.float64]:
    """Centered moving average (edge-clipped) followed by a deadband."""
    return _smooth_profile(
        np.asarray(raw, dtype=np.float64), int(half_width), float(deadband)
    )


def integrate_profile(
    s_ddot: NDArray[np.float64],
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """ṡ and absolute time at every grid point for an (N,) acceleration profile."""
    s_ddot = np.asarray(s_ddot, dtype=np.float64)
    if s_ddot.ndim != 1 or len(s_ddot) == 0:
        raise ValueError("Acceleration profile must be a non-empty (N,) array")
    return _integrate_time(s_ddot, 1.0 / len(s_ddot))


# =============================================================================
# Planner
# =============================================================================


class ToppraPlanner:
    """
    Time-optimal planner for straight joint-space moves.

    Construct once with the robot model; call ``solve``/``plan`` per move.
    """

    def __init__(
        self,
        params: DynamicsParams,
        torque_limits: TorqueLimits,
        friction: FrictionModel | None = None,
        settings: PlannerSettings | None = None,
    ):
        if len(torque_limits) != params.n_joints:
            raise ValueError(
                f"Torque limits have {len(torque_limits)} joints, "
                f"model has {params.n_joints}"
            )
        if friction is not None and friction.n_joints != params.n_joints:
            raise ValueError(
                f"Friction model has {friction.n_joints} joints, "
                f"model has {params.n_joints}"
            )
        self.params = params
        self.torque_limits = torque_limits
        self.friction = friction
        self.settings = settings or PlannerSettings()

    def solve(self, start: RobotState, end: RobotState) -> PlanResult:
        """
        Plan from ``start`` to ``end`` (angles only).

        Raises:
            ValueError: If start/end joint counts differ from the model's.
        """
        start_q = np.asarray(start.angles, dtype=np.float64)
        end_q = np.asarray(end.angles, dtype=np.float64)
        if len(start_q) != self.params.n_joints or len(end_q) != self.params.n_joints:
            raise ValueError(
                f"Start/end have {len(start_q)}/{len(end_q)} joints, "
                f"model has {self.params.n_joints}"
            )

        delta_q = end_q - start_q
        distance = float(np.linalg.norm(delta_q))
        if distance < MIN_PATH_LENGTH:
            logger.debug("TOPP-RA: path length %.2e below threshold, linear", distance)
            return PlanResult(
                PlanStatus.FALLBACK,
                linear_fallback(start_q, end_q),
                reason="degenerate path",
            )

        try:
            trajectory = self._solve_path(start_q, delta_q)
        except Exception as e:
            logger.warning("TOPP-RA failed: %s. Falling back to linear profile.", e)
            return PlanResult(
                PlanStatus.FALLBACK, linear_fallback(start_q, end_q), reason=str(e)
            )

        logger.debug(
            "TOPP-RA: duration=%.3fs samples=%d distance=%.3frad",
            trajectory.duration,
            len(trajectory),
            distance,
        )
        return PlanResult(PlanStatus.SOLVED, trajectory)

    def plan(self, start: RobotState, end: RobotState) -> Trajectory:
        return self.solve(start, end).trajectory

    def _solve_path(
        self, start_q: NDArray[np.float64], delta_q: NDArray[np.float64]
    ) -> Trajectory:
        settings = self.settings
        coeffs = compute_path_coefficients(
            start_q, delta_q, self.params, settings.grid_resolution
        )
        if not (
            np.all(np.isfinite(coeffs.inertia))
            and np.all(np.isfinite(coeffs.velocity))
            and np.all(np.isfinite(coeffs.gravity))
        ):
            raise PlanningError("non-finite path coefficients")

        mvc = velocity_limit_curve(coeffs, self.torque_limits)
        beta = backward_pass(coeffs, mvc, self.torque_limits, delta_q, self.friction)
        raw = forward_pass(coeffs, beta, self.torque_limits, delta_q, self.friction)
        smoothed = smooth_profile(raw, settings.smoothing_half_width, settings.deadband)
        s_dot, timestamps = integrate_profile(smoothed)

        if not (np.all(np.isfinite(smoothed)) and np.all(np.isfinite(s_dot))):
            raise PlanningError("non-finite velocity/acceleration profile")
        if not np.isfinite(timestamps[-1]):
            raise PlanningError("non-finite duration")

        n_points = settings.grid_resolution + 1
        s = np.arange(n_points, dtype=np.float64) / settings.grid_resolution
        s_ddot = np.concatenate(([0.0], smoothed))
        angles = start_q + s[:, None] * delta_q
        # Exact endpoints
        angles[-1] = start_q + delta_q
        return Trajectory(
            timestamps=timestamps,
            angles=angles,
            velocities=s_dot[:, None] * delta_q,
            accelerations=s_ddot[:, None] * delta_q,
            torques=np.zeros((n_points, len(delta_q))),
            duration=float(timestamps[-1]),
        )


def plan_trajectory(
    start: RobotState,
    end: RobotState,
    params: DynamicsParams,
    torque_limits: TorqueLimits,
    friction: FrictionModel | None = None,
    settings: PlannerSettings | None = None,
) -> Trajectory:
    """Plan a straight move; returns the solved trajectory or the linear fallback."""
    return ToppraPlanner(params, torque_limits, friction, settings).plan(start, end)
