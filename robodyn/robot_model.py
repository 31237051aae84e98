# Typed model parameters and the reference 6-DOF manipulator definition
import logging
from dataclasses import dataclass, field
from typing import Final

import numpy as np
from numpy.typing import ArrayLike, NDArray

logger = logging.getLogger(__name__)

# -----------------------------
# Typing aliases
# -----------------------------
Vec6f = NDArray[np.float64]
Limits2f = NDArray[np.float64]  # shape (J, 2)

G: Final[float] = 9.81


def _frozen_vector(values: ArrayLike, name: str) -> NDArray[np.float64]:
    arr = np.array(values, dtype=np.float64)
    if arr.ndim != 1:
        raise ValueError(f"{name} must be a 1-D sequence, got shape {arr.shape}")
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True)
class GravityLever:
    """Links whose mass a joint lifts, and the joint angles that tilt its lever arm."""

    mass_links: tuple[int, ...]
    angle_joints: tuple[int, ...]


@dataclass(frozen=True)
class DynamicsParams:
    """
    Per-joint mass/geometry plus the constants of the surrogate dynamics model.

    The model is deliberately simplified (no RNEA, no inertia tensors) so that
    torque stays linear in (s_ddot, s_dot^2) along a straight joint-space path.

    Attributes:
        masses: Link masses in kg
        lengths: Link lengths in m
        com: Center-of-mass offset from the previous joint in m
        coupling: Fixed inertia offset added per joint (kg·m²)
        gravity_levers: Gravity lever per joint, None for joints without one
        drag_coefficient: Coefficient of the velocity·|velocity| drag term
        base_joint: Vertical-axis joint whose torque is inertia only, or None
        base_inertia_factor: Base inertia = total mass * factor
        gravity: Gravitational acceleration (m/s²)
    """

    masses: NDArray[np.float64]
    lengths: NDArray[np.float64]
    com: NDArray[np.float64]
    coupling: NDArray[np.float64]
    gravity_levers: tuple[GravityLever | None, ...]
    drag_coefficient: float = 0.1
    base_joint: int | None = 0
    base_inertia_factor: float = 0.1
    gravity: float = G
    # Derived: lifted mass per joint (0 without lever) and the (J, J) angle-sum matrix
    lever_mass: NDArray[np.float64] = field(init=False, repr=False, compare=False)
    lever_matrix: NDArray[np.float64] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        masses = _frozen_vector(self.masses, "masses")
        n = len(masses)
        object.__setattr__(self, "masses", masses)
        for name in ("lengths", "com", "coupling"):
            arr = _frozen_vector(getattr(self, name), name)
            if len(arr) != n:
                raise ValueError(f"{name} has {len(arr)} entries, expected {n}")
            object.__setattr__(self, name, arr)
        if np.any(masses <= 0):
            raise ValueError("Link masses must be positive")
        levers = tuple(self.gravity_levers)
        if len(levers) != n:
            raise ValueError(f"gravity_levers has {len(levers)} entries, expected {n}")
        object.__setattr__(self, "gravity_levers", levers)
        if self.base_joint is not None and not 0 <= self.base_joint < n:
            raise ValueError(f"base_joint {self.base_joint} out of range")

        lever_mass = np.zeros(n, dtype=np.float64)
        lever_matrix = np.zeros((n, n), dtype=np.float64)
        for joint, lever in enumerate(levers):
            if lever is None:
                continue
            lever_mass[joint] = masses[list(lever.mass_links)].sum()
            lever_matrix[joint, list(lever.angle_joints)] = 1.0
        lever_mass.setflags(write=False)
        lever_matrix.setflags(write=False)
        object.__setattr__(self, "lever_mass", lever_mass)
        object.__setattr__(self, "lever_matrix", lever_matrix)

    @property
    def n_joints(self) -> int:
        return len(self.masses)

    @property
    def total_mass(self) -> float:
        return float(self.masses.sum())


@dataclass(frozen=True)
class TorqueLimits:
    """Symmetric per-joint torque box [-max_torque, max_torque] in Nm."""

    max_torque: NDArray[np.float64]

    def __post_init__(self) -> None:
        arr = _frozen_vector(self.max_torque, "max_torque")
        if np.any(arr <= 0):
            raise ValueError("Torque limits must be positive")
        object.__setattr__(self, "max_torque", arr)

    def __len__(self) -> int:
        return len(self.max_torque)

    @property
    def bounds(self) -> NDArray[np.float64]:
        """(J, 2) array of [min, max] torque per joint."""
        return np.column_stack([-self.max_torque, self.max_torque])


# -----------------------------
# Reference robot (small industrial arm, IRB 120 class)
# -----------------------------
Joint_num = 6

_masses: Vec6f = np.array([5.0, 8.0, 6.0, 2.0, 1.0, 0.5], dtype=np.float64)  # kg
_lengths: Vec6f = np.array([0.29, 0.27, 0.30, 0.10, 0.05, 0.05], dtype=np.float64)
# Center of mass roughly half the link length
_com: Vec6f = np.array([0.15, 0.13, 0.15, 0.05, 0.02, 0.01], dtype=np.float64)
# Base carries the most coupled inertia
_coupling: Vec6f = np.array(
    [(Joint_num - 1 - i) * 0.5 for i in range(Joint_num)], dtype=np.float64
)

_gravity_levers: tuple[GravityLever | None, ...] = (
    None,  # J1 base, vertical axis
    GravityLever(mass_links=(1, 2, 3), angle_joints=(1,)),  # J2 shoulder
    GravityLever(mass_links=(2, 3), angle_joints=(1, 2)),  # J3 elbow
    None,  # J4 wrist roll
    GravityLever(mass_links=(4,), angle_joints=(1, 2, 4)),  # J5 wrist pitch
    None,  # J6 tool roll
)

# Torque limits (Nm). Kept moderate so friction (sized from these) stays small.
_max_torque: Vec6f = np.array([80.0, 80.0, 40.0, 20.0, 10.0, 10.0], dtype=np.float64)

# Safe working limits [min, max] in radians, normal workspace only
_safe_limits_rad: Limits2f = np.array(
    [
        [-2.0, 2.0],  # J1 base, avoids extreme rear reach
        [-1.0, 1.0],  # J2 shoulder, keeps arm mostly upright/forward
        [-1.0, 0.5],  # J3 elbow, avoids self-collision with base
        [-2.0, 2.0],  # J4 wrist 1
        [-1.5, 1.5],  # J5 wrist 2
        [-3.0, 3.0],  # J6 wrist 3
    ],
    dtype=np.float64,
)
_safe_limits_rad.setflags(write=False)

REFERENCE_PARAMS: Final[DynamicsParams] = DynamicsParams(
    masses=_masses,
    lengths=_lengths,
    com=_com,
    coupling=_coupling,
    gravity_levers=_gravity_levers,
)

REFERENCE_TORQUE_LIMITS: Final[TorqueLimits] = TorqueLimits(max_torque=_max_torque)

SAFE_LIMITS_RAD: Final[Limits2f] = _safe_limits_rad


def log_model_summary(
    params: DynamicsParams = REFERENCE_PARAMS,
    limits: TorqueLimits = REFERENCE_TORQUE_LIMITS,
) -> None:
    """Log the model constants at INFO level (called once at startup)."""
    logger.info(
        "Robot model: joints=%d total_mass=%.2fkg drag=%.3f base_joint=%s",
        params.n_joints,
        params.total_mass,
        params.drag_coefficient,
        params.base_joint,
    )
    for j in range(params.n_joints):
        logger.debug(
            "  J%d: m=%.2fkg l=%.3fm com=%.3fm lever_mass=%.2fkg tau_max=%.1fNm",
            j + 1,
            params.masses[j],
            params.lengths[j],
            params.com[j],
            params.lever_mass[j],
            limits.max_torque[j],
        )
