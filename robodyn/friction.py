"""
Learned per-joint friction estimator.

Each joint owns a small feed-forward network: a bounded input
``x = tanh(v / input_scale)``, one hidden layer of sigmoid units and a
linear output unit. The forward pass is a numba kernel so the TOPP-RA
planner can call it from inside its own compiled passes.

Networks can be supplied explicitly (``FrictionModel(network)``) or fitted
at construction with ``FrictionModel.fit``: the hidden layer is drawn from a
seeded generator in mirrored pairs, which makes the network an odd function
of velocity (zero friction at rest), and the output layer is fitted by ridge
least squares to a Coulomb + Stribeck + viscous curve scaled to each joint's
torque limit.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

import numpy as np
from numba import njit  # type: ignore[import-untyped]
from numpy.typing import ArrayLike, NDArray

from robodyn.config import FRICTION_HIDDEN_UNITS, FRICTION_SEED
from robodyn.robot_model import TorqueLimits
from robodyn.state import readonly_array

logger = logging.getLogger(__name__)

# Velocity normalization (rad/s) and fitting range (±250 deg/s)
DEFAULT_INPUT_SCALE: float = 2.5
FIT_VELOCITY_RAD_S: float = np.deg2rad(250.0)


# =============================================================================
# Numba kernels
# =============================================================================


@njit(cache=True)
def _sigmoid(z: float) -> float:
    if z >= 0.0:
        return 1.0 / (1.0 + math.exp(-z))
    e = math.exp(z)
    return e / (1.0 + e)


@njit(cache=True)
def friction_jit(
    joint: int,
    velocity: float,
    input_scale: np.ndarray,
    w_in: np.ndarray,
    b_in: np.ndarray,
    w_out: np.ndarray,
    b_out: np.ndarray,
) -> float:
    """Scalar friction torque (Nm) for one joint. No bounds checking."""
    x = math.tanh(velocity / input_scale[joint])
    y = b_out[joint]
    for h in range(w_in.shape[1]):
        y += w_out[joint, h] * _sigmoid(w_in[joint, h] * x + b_in[joint, h])
    return y


@njit(cache=True)
def _friction_forward_into(
    joint: int,
    velocity: float,
    input_scale: np.ndarray,
    w_in: np.ndarray,
    b_in: np.ndarray,
    w_out: np.ndarray,
    b_out: np.ndarray,
    hidden_out: np.ndarray,
) -> tuple[float, float]:
    """Forward pass that also writes hidden activations. Returns (x, y)."""
    x = math.tanh(velocity / input_scale[joint])
    y = b_out[joint]
    for h in range(w_in.shape[1]):
        a = _sigmoid(w_in[joint, h] * x + b_in[joint, h])
        hidden_out[h] = a
        y += w_out[joint, h] * a
    return x, y


# =============================================================================
# Parameters and fitting
# =============================================================================


@dataclass(frozen=True)
class FrictionNetwork:
    """
    Weights for all joints, stacked along the first axis.

    Attributes:
        input_scale: (J,) velocity normalization in rad/s
        hidden_weights: (J, H) input-to-hidden weights
        hidden_biases: (J, H) hidden biases
        output_weights: (J, H) hidden-to-output weights
        output_biases: (J,) output bias
    """

    input_scale: NDArray[np.float64]
    hidden_weights: NDArray[np.float64]
    hidden_biases: NDArray[np.float64]
    output_weights: NDArray[np.float64]
    output_biases: NDArray[np.float64]

    def __post_init__(self) -> None:
        for name, ndim in (
            ("input_scale", 1),
            ("hidden_weights", 2),
            ("hidden_biases", 2),
            ("output_weights", 2),
            ("output_biases", 1),
        ):
            object.__setattr__(self, name, readonly_array(getattr(self, name), ndim))

        shape = self.hidden_weights.shape
        if self.hidden_biases.shape != shape or self.output_weights.shape != shape:
            raise ValueError("Hidden weight/bias arrays must share shape (J, H)")
        n = shape[0]
        if len(self.input_scale) != n or len(self.output_biases) != n:
            raise ValueError(f"input_scale/output_biases must have {n} entries")
        if np.any(self.input_scale <= 0):
            raise ValueError("input_scale must be positive")

    @property
    def n_joints(self) -> int:
        return self.hidden_weights.shape[0]

    @property
    def hidden_units(self) -> int:
        return self.hidden_weights.shape[1]

    def kernel_args(
        self,
    ) -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
        """Arrays in the argument order expected by ``friction_jit``."""
        return (
            self.input_scale,
            self.hidden_weights,
            self.hidden_biases,
            self.output_weights,
            self.output_biases,
        )


@dataclass(frozen=True)
class StribeckProfile:
    """
    Target friction curve, with magnitudes as fractions of the torque limit.

    f(v) = T·[(Fc + (Fs - Fc)·exp(-(v/vs)²))·tanh(v/ve) + Fv·v]
    """

    coulomb: float = 0.02
    static: float = 0.03
    stribeck_velocity: float = 0.1  # rad/s
    viscous: float = 0.01  # 1/(rad/s)
    smoothing_velocity: float = 0.02  # rad/s

    def torque(self, velocity: ArrayLike, max_torque: float) -> NDArray[np.float64]:
        v = np.asarray(velocity, dtype=np.float64)
        magnitude = self.coulomb + (self.static - self.coulomb) * np.exp(
            -((v / self.stribeck_velocity) ** 2)
        )
        return max_torque * (
            magnitude * np.tanh(v / self.smoothing_velocity) + self.viscous * v
        )


def _sigmoid_np(z: NDArray[np.float64]) -> NDArray[np.float64]:
    return 1.0 / (1.0 + np.exp(-z))


def fit_friction_network(
    torque_limits: TorqueLimits,
    hidden_units: int = FRICTION_HIDDEN_UNITS,
    seed: int = FRICTION_SEED,
    profile: StribeckProfile | None = None,
    input_scale: float = DEFAULT_INPUT_SCALE,
    fit_velocity: float = FIT_VELOCITY_RAD_S,
    n_samples: int = 401,
    ridge: float = 1e-8,
) -> FrictionNetwork:
    """
    Fit one odd-symmetric network per joint to the Stribeck target curve.

    Hidden units come in pairs (w, b) and (-w, b) with output weights
    (c, -c); an odd unit count adds one (w, 0) unit whose constant half is
    cancelled by the output bias. Only the output layer is solved for.

    Args:
        torque_limits: Per-joint limits that scale the target curve
        hidden_units: Hidden layer width
        seed: Seed for the hidden-layer draw
        profile: Target curve (defaults to StribeckProfile())
        input_scale: Velocity normalization in rad/s
        fit_velocity: Fit range is [-fit_velocity, fit_velocity] rad/s
        n_samples: Number of fit points
        ridge: Tikhonov factor, relative to the mean Gram diagonal

    Returns:
        FrictionNetwork with fixed weights
    """
    if hidden_units < 1:
        raise ValueError("hidden_units must be at least 1")
    profile = profile or StribeckProfile()
    rng = np.random.default_rng(seed)
    n_joints = len(torque_limits)
    pairs, has_mid = divmod(hidden_units, 2)
    paired = 2 * pairs

    v = np.linspace(-fit_velocity, fit_velocity, n_samples)
    x = np.tanh(v / input_scale).reshape(-1, 1)

    w_in = np.zeros((n_joints, hidden_units))
    b_in = np.zeros((n_joints, hidden_units))
    w_out = np.zeros((n_joints, hidden_units))
    b_out = np.zeros(n_joints)

    for j in range(n_joints):
        w = rng.uniform(2.0, 12.0, size=pairs)
        b = rng.uniform(-3.0, 3.0, size=pairs)
        w_in[j, 0:paired:2] = w
        w_in[j, 1:paired:2] = -w
        b_in[j, 0:paired:2] = b
        b_in[j, 1:paired:2] = b

        columns = [_sigmoid_np(w * x + b) - _sigmoid_np(-w * x + b)]
        if has_mid:
            w_mid = rng.uniform(2.0, 12.0)
            w_in[j, -1] = w_mid
            columns.append(_sigmoid_np(w_mid * x) - 0.5)
        basis = np.hstack(columns)

        target = profile.torque(v, float(torque_limits.max_torque[j]))
        gram = basis.T @ basis
        lam = ridge * float(np.trace(gram)) / gram.shape[0]
        coef = np.linalg.solve(gram + lam * np.eye(gram.shape[0]), basis.T @ target)

        w_out[j, 0:paired:2] = coef[:pairs]
        w_out[j, 1:paired:2] = -coef[:pairs]
        if has_mid:
            w_out[j, -1] = coef[-1]
            b_out[j] = -0.5 * coef[-1]

        rms = float(np.sqrt(np.mean((basis @ coef - target) ** 2)))
        logger.debug("friction fit J%d: rms=%.4fNm", j + 1, rms)

    return FrictionNetwork(
        input_scale=np.full(n_joints, input_scale),
        hidden_weights=w_in,
        hidden_biases=b_in,
        output_weights=w_out,
        output_biases=b_out,
    )


# =============================================================================
# Public model
# =============================================================================


@dataclass(frozen=True)
class FrictionDebugState:
    """Full intermediate state of one forward pass (for visualization only)."""

    joint: int
    velocity: float
    normalized_input: float
    hidden_activations: NDArray[np.float64]
    hidden_weights_in: NDArray[np.float64]
    hidden_weights_out: NDArray[np.float64]
    hidden_biases: NDArray[np.float64]
    output_bias: float
    output: float


class FrictionModel:
    """Per-joint friction torque estimator backed by a FrictionNetwork."""

    def __init__(self, network: FrictionNetwork):
        self._network = network

    @classmethod
    def fit(
        cls,
        torque_limits: TorqueLimits,
        hidden_units: int = FRICTION_HIDDEN_UNITS,
        seed: int = FRICTION_SEED,
        profile: StribeckProfile | None = None,
    ) -> FrictionModel:
        """Build a model whose weights are fitted to the Stribeck target."""
        return cls(
            fit_friction_network(
                torque_limits, hidden_units=hidden_units, seed=seed, profile=profile
            )
        )

    @property
    def network(self) -> FrictionNetwork:
        return self._network

    @property
    def n_joints(self) -> int:
        return self._network.n_joints

    def _check_joint(self, joint: int) -> int:
        if not 0 <= joint < self._network.n_joints:
            raise IndexError(
                f"Joint index {joint} out of range for {self._network.n_joints} joints"
            )
        return int(joint)

    def friction(self, joint: int, velocity: float) -> float:
        """Friction torque (Nm) opposing motion of ``joint`` at ``velocity`` rad/s."""
        joint = self._check_joint(joint)
        return float(friction_jit(joint, float(velocity), *self._network.kernel_args()))

    def friction_torques(self, velocities: ArrayLike) -> NDArray[np.float64]:
        """Friction torque for every joint given a (J,) velocity vector."""
        v = np.asarray(velocities, dtype=np.float64)
        if v.shape != (self.n_joints,):
            raise ValueError(f"Expected {self.n_joints} velocities, got shape {v.shape}")
        args = self._network.kernel_args()
        return np.array([friction_jit(j, v[j], *args) for j in range(self.n_joints)])

    def debug_state(self, joint: int, velocity: float) -> FrictionDebugState:
        """Introspect one forward pass. Not used by planning or control."""
        joint = self._check_joint(joint)
        net = self._network
        hidden = np.empty(net.hidden_units, dtype=np.float64)
        x, y = _friction_forward_into(
            joint, float(velocity), *net.kernel_args(), hidden
        )
        hidden.setflags(write=False)
        return FrictionDebugState(
            joint=joint,
            velocity=float(velocity),
            normalized_input=float(x),
            hidden_activations=hidden,
            hidden_weights_in=net.hidden_weights[joint],
            hidden_weights_out=net.output_weights[joint],
            hidden_biases=net.hidden_biases[joint],
            output_bias=float(net.output_biases[joint]),
            output=float(y),
        )
