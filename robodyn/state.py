"""Joint and robot state containers."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass

import numpy as np
from numpy.typing import ArrayLike, NDArray


def readonly_array(values: ArrayLike, ndim: int) -> NDArray[np.float64]:
    """Copy ``values`` into a read-only float64 array of the given rank."""
    arr = np.array(values, dtype=np.float64)
    if arr.ndim != ndim:
        raise ValueError(f"Expected a {ndim}-D array, got shape {arr.shape}")
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True)
class JointState:
    """State of a single joint."""

    angle: float = 0.0  # rad
    velocity: float = 0.0  # rad/s
    acceleration: float = 0.0  # rad/s²
    torque: float = 0.0  # Nm


@dataclass(frozen=True)
class RobotState:
    """
    Fixed-length joint state vector, ordered along the kinematic chain.

    Attributes:
        angles: (J,) joint angles in radians
        velocities: (J,) joint velocities in rad/s
        accelerations: (J,) joint accelerations in rad/s²
        torques: (J,) joint torques in Nm
    """

    angles: NDArray[np.float64]
    velocities: NDArray[np.float64]
    accelerations: NDArray[np.float64]
    torques: NDArray[np.float64]

    def __post_init__(self) -> None:
        n = None
        for name in ("angles", "velocities", "accelerations", "torques"):
            arr = readonly_array(getattr(self, name), 1)
            if n is None:
                n = len(arr)
            elif len(arr) != n:
                raise ValueError(f"{name} has {len(arr)} joints, expected {n}")
            object.__setattr__(self, name, arr)

    @classmethod
    def at_rest(cls, angles: ArrayLike) -> RobotState:
        """State with the given angles and zero velocity/acceleration/torque."""
        q = np.asarray(angles, dtype=np.float64)
        zeros = np.zeros_like(q)
        return cls(angles=q, velocities=zeros, accelerations=zeros, torques=zeros)

    @classmethod
    def zeros(cls, n_joints: int) -> RobotState:
        return cls.at_rest(np.zeros(n_joints))

    @classmethod
    def from_joints(cls, joints: Iterable[JointState]) -> RobotState:
        joints = list(joints)
        return cls(
            angles=[j.angle for j in joints],
            velocities=[j.velocity for j in joints],
            accelerations=[j.acceleration for j in joints],
            torques=[j.torque for j in joints],
        )

    def __len__(self) -> int:
        return len(self.angles)

    def __getitem__(self, idx: int) -> JointState:
        return JointState(
            angle=float(self.angles[idx]),
            velocity=float(self.velocities[idx]),
            acceleration=float(self.accelerations[idx]),
            torque=float(self.torques[idx]),
        )

    def __iter__(self) -> Iterator[JointState]:
        for i in range(len(self)):
            yield self[i]

    @property
    def n_joints(self) -> int:
        return len(self.angles)

    def held(self) -> RobotState:
        """Same configuration at rest (torque is recomputed by the consumer)."""
        return RobotState.at_rest(self.angles)

    def with_torques(self, torques: ArrayLike) -> RobotState:
        return RobotState(
            angles=self.angles,
            velocities=self.velocities,
            accelerations=self.accelerations,
            torques=torques,
        )
