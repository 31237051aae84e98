"""Independent per-joint sine motion, used by the SINE playback mode."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

import numpy as np
from numpy.typing import NDArray

from robodyn.state import RobotState, readonly_array


@dataclass(frozen=True)
class SineWaveProfile:
    """
    q_i(t) = A_i·sin(2π·f_i·t + φ_i), with analytic velocity and acceleration.

    Attributes:
        amplitudes: (J,) radians
        frequencies: (J,) Hz
        phases: (J,) radians
    """

    amplitudes: NDArray[np.float64]
    frequencies: NDArray[np.float64]
    phases: NDArray[np.float64]

    def __post_init__(self) -> None:
        n = None
        for name in ("amplitudes", "frequencies", "phases"):
            arr = readonly_array(getattr(self, name), 1)
            if n is not None and len(arr) != n:
                raise ValueError(f"{name} has {len(arr)} entries, expected {n}")
            n = len(arr)
            object.__setattr__(self, name, arr)

    @property
    def n_joints(self) -> int:
        return len(self.amplitudes)

    @property
    def peak_velocities(self) -> NDArray[np.float64]:
        """Per-joint velocity amplitude A·ω in rad/s."""
        return np.abs(self.amplitudes) * 2.0 * np.pi * self.frequencies

    def state_at(self, t: float) -> RobotState:
        omega = 2.0 * np.pi * self.frequencies
        phase = omega * t + self.phases
        return RobotState(
            angles=self.amplitudes * np.sin(phase),
            velocities=self.amplitudes * omega * np.cos(phase),
            accelerations=-self.amplitudes * omega**2 * np.sin(phase),
            torques=np.zeros(self.n_joints),
        )


# Demo motion for the reference robot; every joint stays below 150 deg/s
# (J6 peaks at 2.0 * 2π * 0.2 ≈ 2.51 rad/s).
REFERENCE_SINE: Final[SineWaveProfile] = SineWaveProfile(
    amplitudes=np.array([1.5, 0.5, 0.8, 1.5, 1.0, 2.0]),
    frequencies=np.array([0.1, 0.05, 0.08, 0.15, 0.12, 0.2]),
    phases=np.array([0.0, 0.5, 1.0, 0.0, 0.5, 0.0]),
)
