"""Shared fixtures for robodyn tests."""

import numpy as np
import pytest

from robodyn.friction import FrictionModel
from robodyn.robot_model import REFERENCE_PARAMS, REFERENCE_TORQUE_LIMITS


@pytest.fixture
def params():
    return REFERENCE_PARAMS


@pytest.fixture
def torque_limits():
    return REFERENCE_TORQUE_LIMITS


@pytest.fixture(scope="session")
def friction():
    """Fitted reference friction model (fitting is deterministic, so share it)."""
    return FrictionModel.fit(REFERENCE_TORQUE_LIMITS)


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, dt: float) -> float:
        self.now += dt
        return self.now


@pytest.fixture
def clock():
    return FakeClock()
