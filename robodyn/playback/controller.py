"""
Playback controller: produces one torque-annotated robot state per tick.

Modes:
  STATIC      hold the current configuration at rest
  SINE        independent per-joint sine motion
  CONTINUOUS  random point-to-point TOPP-RA moves with a dwell in between

In CONTINUOUS mode the controller cycles IDLE -> PLANNING -> MOVING ->
DWELLING -> PLANNING ... Planning runs synchronously inside ``set_mode`` or
the tick that ends a dwell, so PLANNING is never observed between ticks.
Everything runs on the caller's thread; a new plan replaces the active
trajectory reference in one assignment.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

import numpy as np
from numpy.typing import NDArray

from robodyn.config import DWELL_S, MAX_TARGET_ATTEMPTS, MIN_TARGET_DISTANCE_RAD, TRACE
from robodyn.dynamics import inverse_dynamics
from robodyn.friction import FrictionModel
from robodyn.motion.sine import REFERENCE_SINE, SineWaveProfile
from robodyn.motion.toppra import PlannerSettings, PlanStatus, ToppraPlanner
from robodyn.motion.trajectory import Trajectory
from robodyn.robot_model import SAFE_LIMITS_RAD, DynamicsParams, TorqueLimits
from robodyn.state import RobotState, readonly_array

logger = logging.getLogger(__name__)


class PlaybackMode(Enum):
    STATIC = "static"
    SINE = "sine"
    CONTINUOUS = "continuous"


class PlaybackPhase(Enum):
    IDLE = "idle"
    PLANNING = "planning"
    MOVING = "moving"
    DWELLING = "dwelling"


@dataclass(frozen=True)
class PlaybackConfig:
    """
    Playback tunables.

    Attributes:
        safe_limits: (J, 2) [min, max] radians for random targets
        dwell_s: Pause at each target before the next move
        min_target_distance: Targets must be farther than this (rad, Euclidean)
        max_target_attempts: Sampling attempts before keeping the last candidate
        sine_profile: Motion used in SINE mode
    """

    safe_limits: NDArray[np.float64] = field(default_factory=lambda: SAFE_LIMITS_RAD)
    dwell_s: float = DWELL_S
    min_target_distance: float = MIN_TARGET_DISTANCE_RAD
    max_target_attempts: int = MAX_TARGET_ATTEMPTS
    sine_profile: SineWaveProfile = REFERENCE_SINE

    def __post_init__(self) -> None:
        limits = readonly_array(self.safe_limits, 2)
        if limits.shape[1] != 2 or np.any(limits[:, 0] > limits[:, 1]):
            raise ValueError("safe_limits must be (J, 2) rows of [min, max]")
        object.__setattr__(self, "safe_limits", limits)
        if self.dwell_s < 0:
            raise ValueError("dwell_s must be non-negative")
        if self.max_target_attempts < 1:
            raise ValueError("max_target_attempts must be at least 1")


@dataclass(frozen=True)
class PlaybackFrame:
    """
    Output of one tick.

    ``state.torques`` is dynamics_torques + friction_torques.
    """

    state: RobotState
    dynamics_torques: NDArray[np.float64]
    friction_torques: NDArray[np.float64]
    phase: PlaybackPhase
    mode: PlaybackMode
    timestamp: float
    plan_status: PlanStatus | None = None


class PlaybackController:
    """Mode/phase state machine driving the robot state from tick to tick."""

    def __init__(
        self,
        params: DynamicsParams,
        torque_limits: TorqueLimits,
        friction: FrictionModel | None = None,
        config: PlaybackConfig | None = None,
        settings: PlannerSettings | None = None,
        rng: np.random.Generator | None = None,
        clock: Callable[[], float] = time.monotonic,
        initial_state: RobotState | None = None,
    ):
        self.params = params
        self.config = config or PlaybackConfig()
        if self.config.safe_limits.shape[0] != params.n_joints:
            raise ValueError(
                f"safe_limits has {self.config.safe_limits.shape[0]} rows, "
                f"model has {params.n_joints} joints"
            )
        if self.config.sine_profile.n_joints != params.n_joints:
            raise ValueError("sine_profile joint count does not match the model")
        if friction is None:
            friction = FrictionModel.fit(torque_limits)
        self.friction = friction
        self._planner = ToppraPlanner(params, torque_limits, self.friction, settings)
        self._rng = rng if rng is not None else np.random.default_rng()
        self._clock = clock

        state = initial_state or RobotState.zeros(params.n_joints)
        if len(state) != params.n_joints:
            raise ValueError(
                f"initial_state has {len(state)} joints, model has {params.n_joints}"
            )
        self._state = state
        self._mode = PlaybackMode.STATIC
        self._phase = PlaybackPhase.IDLE
        self._trajectory: Trajectory | None = None
        self._plan_status: PlanStatus | None = None
        self._move_start = 0.0
        self._dwell_start = 0.0
        self._sine_start = 0.0

    # ----- read-only views -----

    @property
    def mode(self) -> PlaybackMode:
        return self._mode

    @property
    def phase(self) -> PlaybackPhase:
        return self._phase

    @property
    def state(self) -> RobotState:
        return self._state

    @property
    def trajectory(self) -> Trajectory | None:
        return self._trajectory

    @property
    def plan_status(self) -> PlanStatus | None:
        return self._plan_status

    @property
    def move_start(self) -> float:
        return self._move_start

    @property
    def dwell_start(self) -> float:
        return self._dwell_start

    # ----- control -----

    def set_mode(self, mode: PlaybackMode, now: float | None = None) -> None:
        """Switch mode. Entering CONTINUOUS plans the first move immediately."""
        if mode is self._mode:
            return
        now = self._clock() if now is None else now
        previous = self._mode
        self._mode = mode
        logger.info("Playback mode %s -> %s", previous.value, mode.value)

        if previous is PlaybackMode.CONTINUOUS:
            self._trajectory = None
            self._plan_status = None
            self._phase = PlaybackPhase.IDLE

        if mode is PlaybackMode.SINE:
            self._sine_start = now
        elif mode is PlaybackMode.CONTINUOUS:
            self._plan_next_move(now)

    def sample_target(self, current_angles: NDArray[np.float64]) -> NDArray[np.float64]:
        """
        Draw a random target inside the safe limits.

        Accepts the first candidate farther than ``min_target_distance`` from
        ``current_angles``; after ``max_target_attempts`` the last candidate
        is kept regardless.
        """
        lo = self.config.safe_limits[:, 0]
        hi = self.config.safe_limits[:, 1]
        candidate = current_angles
        distance = 0.0
        for attempt in range(1, self.config.max_target_attempts + 1):
            candidate = self._rng.uniform(lo, hi)
            distance = float(np.linalg.norm(candidate - current_angles))
            if distance > self.config.min_target_distance:
                logger.log(
                    TRACE, "target_accepted attempt=%d dist=%.3f", attempt, distance
                )
                return candidate
        logger.debug(
            "No target beyond %.2frad after %d attempts, keeping dist=%.3f",
            self.config.min_target_distance,
            self.config.max_target_attempts,
            distance,
        )
        return candidate

    def tick(self, now: float | None = None) -> PlaybackFrame:
        """Advance one step and return the torque-annotated state."""
        now = self._clock() if now is None else now

        if self._mode is PlaybackMode.SINE:
            kinematic = self.config.sine_profile.state_at(now - self._sine_start)
        elif self._mode is PlaybackMode.CONTINUOUS:
            kinematic = self._continuous_step(now)
        else:
            kinematic = self._state.held()

        dynamics_torques = inverse_dynamics(kinematic, self.params)
        friction_torques = self.friction.friction_torques(kinematic.velocities)
        self._state = kinematic.with_torques(dynamics_torques + friction_torques)

        return PlaybackFrame(
            state=self._state,
            dynamics_torques=dynamics_torques,
            friction_torques=friction_torques,
            phase=self._phase,
            mode=self._mode,
            timestamp=now,
            plan_status=self._plan_status,
        )

    # ----- internals -----

    def _plan_next_move(self, now: float) -> None:
        self._phase = PlaybackPhase.PLANNING
        start = self._state.held()
        target = self.sample_target(start.angles)
        result = self._planner.solve(start, RobotState.at_rest(target))

        self._trajectory = result.trajectory
        self._plan_status = result.status
        self._move_start = now
        self._phase = PlaybackPhase.MOVING
        logger.info(
            "Planned move: status=%s duration=%.2fs samples=%d",
            result.status.value,
            result.trajectory.duration,
            len(result.trajectory),
        )

    def _continuous_step(self, now: float) -> RobotState:
        if self._phase is PlaybackPhase.DWELLING:
            if now - self._dwell_start > self.config.dwell_s:
                self._plan_next_move(now)
            return self._state.held()

        if self._trajectory is None:
            self._plan_next_move(now)
        trajectory = self._trajectory
        assert trajectory is not None

        idx = trajectory.index_at(now - self._move_start)
        if idx is None:
            self._phase = PlaybackPhase.DWELLING
            self._dwell_start = now
            logger.debug("Move complete after %.2fs, dwelling", now - self._move_start)
            return trajectory.final_state.held()
        return trajectory[idx].state
