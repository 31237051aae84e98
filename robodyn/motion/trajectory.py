"""
Trajectory container shared by the planner and playback.

A Trajectory stores its samples column-wise (one array per field) so the
playback loop can look up a frame with a single searchsorted call. All
arrays are made read-only once the trajectory is built; the playback
controller replaces trajectories, it never edits them.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass

import numpy as np
from numpy.typing import ArrayLike, NDArray

from robodyn.config import FALLBACK_DURATION_S, FALLBACK_STEPS
from robodyn.state import RobotState, readonly_array


@dataclass(frozen=True)
class TrajectorySample:
    """One trajectory frame: joint state plus seconds since move start."""

    state: RobotState
    timestamp: float


@dataclass(frozen=True)
class Trajectory:
    """
    Time-stamped joint trajectory.

    Attributes:
        timestamps: (M,) seconds from move start, strictly increasing from 0
        angles: (M, J) joint angles in radians
        velocities: (M, J) joint velocities in rad/s
        accelerations: (M, J) joint accelerations in rad/s²
        torques: (M, J) joint torques in Nm (0 unless filled downstream)
        duration: Total duration in seconds
    """

    timestamps: NDArray[np.float64]
    angles: NDArray[np.float64]
    velocities: NDArray[np.float64]
    accelerations: NDArray[np.float64]
    torques: NDArray[np.float64]
    duration: float

    def __post_init__(self) -> None:
        ts = readonly_array(self.timestamps, 1)
        if len(ts) == 0:
            raise ValueError("Trajectory needs at least one sample")
        if ts[0] != 0.0:
            raise ValueError(f"First timestamp must be 0, got {ts[0]}")
        if len(ts) > 1 and not np.all(np.diff(ts) > 0.0):
            raise ValueError("Trajectory timestamps must be strictly increasing")
        object.__setattr__(self, "timestamps", ts)
        for name in ("angles", "velocities", "accelerations", "torques"):
            arr = readonly_array(getattr(self, name), 2)
            if arr.shape[0] != len(ts):
                raise ValueError(
                    f"{name} has {arr.shape[0]} samples, expected {len(ts)}"
                )
            object.__setattr__(self, name, arr)
        object.__setattr__(self, "duration", float(self.duration))

    def __len__(self) -> int:
        return len(self.timestamps)

    def __getitem__(self, idx: int) -> TrajectorySample:
        return TrajectorySample(
            state=RobotState(
                angles=self.angles[idx],
                velocities=self.velocities[idx],
                accelerations=self.accelerations[idx],
                torques=self.torques[idx],
            ),
            timestamp=float(self.timestamps[idx]),
        )

    def __iter__(self) -> Iterator[TrajectorySample]:
        for i in range(len(self)):
            yield self[i]

    @property
    def n_joints(self) -> int:
        return self.angles.shape[1]

    @property
    def start_state(self) -> RobotState:
        return self[0].state

    @property
    def final_state(self) -> RobotState:
        return self[len(self) - 1].state

    def index_at(self, elapsed: float) -> int | None:
        """Index of the first sample with timestamp >= elapsed, None past the end."""
        idx = int(np.searchsorted(self.timestamps, elapsed, side="left"))
        if idx >= len(self.timestamps):
            return None
        return idx


def linear_fallback(
    start_angles: ArrayLike,
    end_angles: ArrayLike,
    steps: int = FALLBACK_STEPS,
    duration: float = FALLBACK_DURATION_S,
) -> Trajectory:
    """
    Evenly timed linear interpolation from start to end with zero dynamics.

    Used when the time-optimal solver cannot (or need not) run. Produces
    ``steps + 1`` samples over ``duration`` seconds.
    """
    steps = max(1, int(steps))
    start = np.asarray(start_angles, dtype=np.float64)
    end = np.asarray(end_angles, dtype=np.float64)
    if start.shape != end.shape:
        raise ValueError(f"Start/end shape mismatch: {start.shape} vs {end.shape}")

    t = np.linspace(0.0, 1.0, steps + 1).reshape(-1, 1)
    angles = start + t * (end - start)
    zeros = np.zeros_like(angles)

    return Trajectory(
        timestamps=t[:, 0] * duration,
        angles=angles,
        velocities=zeros,
        accelerations=zeros,
        torques=zeros,
        duration=duration,
    )
