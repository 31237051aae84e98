"""Unit tests for the TOPP-RA planner."""

import logging

import numpy as np
import pytest

import robodyn.motion.toppra as toppra_mod
from robodyn.dynamics import inverse_dynamics_q
from robodyn.motion.reference import toppra_reference_duration
from robodyn.motion.toppra import (
    PlannerSettings,
    PlanStatus,
    ToppraPlanner,
    acceleration_bounds,
    backward_pass,
    compute_path_coefficients,
    forward_pass,
    integrate_profile,
    plan_trajectory,
    smooth_profile,
    velocity_limit_curve,
)
from robodyn.robot_model import SAFE_LIMITS_RAD, TorqueLimits
from robodyn.state import RobotState

BASE_TURN = np.array([1.5708, 0.0, 0.0, 0.0, 0.0, 0.0])
MULTI_START = np.array([0.0, -0.3, -0.2, 0.0, 0.0, 0.0])
MULTI_END = np.array([1.2, 0.5, -0.6, 0.8, -0.6, 1.0])

# Forward-pass clipping to β can dip slightly below u_min
RAW_TORQUE_TOLERANCE = 1.005
# The moving average mixes bounds of neighbouring grid points, so emitted
# samples may leave the box by this fraction of the limit plus a fixed margin
SMOOTHED_TORQUE_SLACK = 0.10
SMOOTHED_TORQUE_SLACK_NM = 1.0


def _random_move(seed: int) -> tuple[np.ndarray, np.ndarray]:
    """Start and end drawn uniformly inside the safe limits."""
    rng = np.random.default_rng(seed)
    lo, hi = SAFE_LIMITS_RAD[:, 0], SAFE_LIMITS_RAD[:, 1]
    return rng.uniform(lo, hi), rng.uniform(lo, hi)


@pytest.fixture
def planner(params, torque_limits, friction):
    return ToppraPlanner(params, torque_limits, friction)


class TestScenarios:
    """End-to-end planning."""

    def test_base_rotation(self, planner):
        """90° base-only rotation."""
        result = planner.solve(RobotState.zeros(6), RobotState.at_rest(BASE_TURN))
        traj = result.trajectory

        assert result.status is PlanStatus.SOLVED
        assert result.solved
        assert traj.duration > 0
        assert traj.timestamps[0] == 0.0
        assert traj.final_state.angles[0] == pytest.approx(1.5708, abs=1e-3)
        assert np.all(traj.angles[:, 1:] == 0.0)

    def test_structure(self, planner):
        traj = planner.plan(RobotState.at_rest(MULTI_START), RobotState.at_rest(MULTI_END))

        assert len(traj) == 201
        assert np.all(np.diff(traj.timestamps) > 0)
        assert traj.duration == traj.timestamps[-1]
        assert np.array_equal(traj.angles[0], MULTI_START)
        assert not traj.velocities[0].any()
        assert not traj.accelerations[0].any()
        assert np.allclose(traj.angles[-1], MULTI_END, atol=1e-3)
        assert np.allclose(traj.velocities[-1], 0.0, atol=1e-3)
        assert not traj.torques.any()

    def test_samples_stay_on_straight_line(self, planner):
        traj = planner.plan(RobotState.at_rest(MULTI_START), RobotState.at_rest(MULTI_END))
        dq = MULTI_END - MULTI_START
        s = (traj.angles - MULTI_START) @ dq / (dq @ dq)
        assert np.allclose(traj.angles, MULTI_START + s[:, None] * dq)
        assert np.all(np.diff(s) > 0)

    def test_velocity_along_path_direction(self, planner):
        traj = planner.plan(RobotState.at_rest(MULTI_START), RobotState.at_rest(MULTI_END))
        dq = MULTI_END - MULTI_START
        s_dot = traj.velocities @ dq / (dq @ dq)
        assert np.all(s_dot >= 0.0)
        assert np.allclose(traj.velocities, s_dot[:, None] * dq)

    def test_smoothed_profile_torque_within_slack(
        self, params, torque_limits, friction, planner
    ):
        """Emitted samples stay inside the box up to the smoothing slack."""
        tol = (1.0 + SMOOTHED_TORQUE_SLACK) * torque_limits.max_torque
        tol = tol + SMOOTHED_TORQUE_SLACK_NM
        moves = [(MULTI_START, MULTI_END), *(_random_move(seed) for seed in range(4))]

        for start, end in moves:
            traj = planner.plan(RobotState.at_rest(start), RobotState.at_rest(end))
            dq = end - start
            coeffs = compute_path_coefficients(start, dq, params, 200)
            for k in range(1, len(traj) - 1):
                s_dot = float(traj.velocities[k] @ dq / (dq @ dq))
                s_ddot = float(traj.accelerations[k] @ dq / (dq @ dq))
                tau = coeffs.rigid_torque(k, s_dot, s_ddot)
                tau = tau + friction.friction_torques(s_dot * dq)
                assert np.all(np.abs(tau) <= tol), f"sample {k}: {tau}"

    @pytest.mark.parametrize("seed", range(5))
    def test_raw_profile_torque_feasible(self, params, torque_limits, friction, seed):
        """The unsmoothed forward-pass profile respects the box at every grid point."""
        start, end = _random_move(seed)
        dq = end - start
        coeffs = compute_path_coefficients(start, dq, params, 200)
        mvc = velocity_limit_curve(coeffs, torque_limits)
        beta = backward_pass(coeffs, mvc, torque_limits, dq, friction)
        raw = forward_pass(coeffs, beta, torque_limits, dq, friction)
        s_dot, _ = integrate_profile(raw)
        tol = RAW_TORQUE_TOLERANCE * torque_limits.max_torque

        for k in range(len(raw)):
            tau = coeffs.rigid_torque(k, s_dot[k], raw[k])
            tau = tau + friction.friction_torques(s_dot[k] * dq)
            assert np.all(np.abs(tau) <= tol), f"grid point {k}: {tau}"

    def test_no_stop_mid_move(self, planner):
        """Velocity along the path stays positive between the endpoints."""
        start, end = _random_move(0)
        traj = planner.plan(RobotState.at_rest(start), RobotState.at_rest(end))
        dq = end - start
        s_dot = traj.velocities @ dq / (dq @ dq)
        stopped = np.flatnonzero(s_dot[1:-1] == 0.0) + 1
        assert stopped.size == 0, f"at rest at grid points {stopped.tolist()}"

    def test_acceleration_matches_velocity_change(self, planner):
        """Each sample's acceleration is the one that produced its velocity."""
        traj = planner.plan(RobotState.at_rest(MULTI_START), RobotState.at_rest(MULTI_END))
        dq = MULTI_END - MULTI_START
        s_dot = traj.velocities @ dq / (dq @ dq)
        s_ddot = traj.accelerations @ dq / (dq @ dq)
        ds = 1.0 / (len(traj) - 1)
        for k in range(1, len(traj)):
            if s_dot[k] > 0.0:
                expected = (s_dot[k] ** 2 - s_dot[k - 1] ** 2) / (2.0 * ds)
                assert s_ddot[k] == pytest.approx(expected, rel=1e-6, abs=1e-6)

    def test_determinism(self, params, torque_limits, friction):
        a = plan_trajectory(
            RobotState.at_rest(MULTI_START),
            RobotState.at_rest(MULTI_END),
            params,
            torque_limits,
            friction,
        )
        b = plan_trajectory(
            RobotState.at_rest(MULTI_START),
            RobotState.at_rest(MULTI_END),
            params,
            torque_limits,
            friction,
        )
        assert np.array_equal(a.timestamps, b.timestamps)
        assert np.array_equal(a.angles, b.angles)
        assert np.array_equal(a.velocities, b.velocities)
        assert np.array_equal(a.accelerations, b.accelerations)

    def test_custom_grid_resolution(self, params, torque_limits):
        settings = PlannerSettings(grid_resolution=50, smoothing_half_width=3)
        traj = plan_trajectory(
            RobotState.zeros(6),
            RobotState.at_rest(BASE_TURN),
            params,
            torque_limits,
            settings=settings,
        )
        assert len(traj) == 51
        assert traj.final_state.angles[0] == pytest.approx(1.5708, abs=1e-3)

    def test_infeasible_robot_crawls_instead_of_failing(self, params):
        """Gravity beyond every limit: zero ceiling, fixed 0.01 s steps."""
        weak = TorqueLimits(max_torque=[1.0] * 6)
        result = ToppraPlanner(params, weak).solve(
            RobotState.zeros(6), RobotState.at_rest(BASE_TURN)
        )
        assert result.status is PlanStatus.SOLVED
        assert result.trajectory.duration == pytest.approx(200 * 0.01)
        assert not result.trajectory.velocities.any()


class TestFallback:
    """Linear fallback paths."""

    def test_start_equals_end(self, planner):
        q = np.array([0.3, 0.1, -0.2, 0.0, 0.5, 1.0])
        result = planner.solve(RobotState.at_rest(q), RobotState.at_rest(q))
        traj = result.trajectory

        assert result.status is PlanStatus.FALLBACK
        assert len(traj) == 61
        assert traj.duration == pytest.approx(3.0)
        assert not traj.velocities.any()
        assert not traj.accelerations.any()
        assert not traj.torques.any()

    def test_below_distance_threshold(self, planner):
        end = np.zeros(6)
        end[3] = 5e-4
        result = planner.solve(RobotState.zeros(6), RobotState.at_rest(end))
        assert result.status is PlanStatus.FALLBACK
        assert np.allclose(result.trajectory.final_state.angles, end)

    def test_exception_becomes_fallback(self, planner, monkeypatch, caplog):
        def boom(*args, **kwargs):
            raise RuntimeError("solver exploded")

        monkeypatch.setattr(toppra_mod, "compute_path_coefficients", boom)
        caplog.set_level(logging.WARNING, logger="robodyn.motion.toppra")

        result = planner.solve(RobotState.zeros(6), RobotState.at_rest(BASE_TURN))

        assert result.status is PlanStatus.FALLBACK
        assert "solver exploded" in result.reason
        assert len(result.trajectory) == 61
        assert np.allclose(result.trajectory.final_state.angles, BASE_TURN)
        assert any("TOPP-RA failed" in r.getMessage() for r in caplog.records)

    def test_non_finite_profile_becomes_fallback(self, planner, monkeypatch):
        monkeypatch.setattr(
            toppra_mod, "smooth_profile", lambda raw, *a: np.full_like(raw, np.nan)
        )
        result = planner.solve(RobotState.zeros(6), RobotState.at_rest(BASE_TURN))
        assert result.status is PlanStatus.FALLBACK
        assert np.all(np.isfinite(result.trajectory.timestamps))

    def test_public_entry_point_unwraps(self, params, torque_limits, monkeypatch):
        def overflow(*args):
            raise FloatingPointError("overflow")

        monkeypatch.setattr(toppra_mod, "velocity_limit_curve", overflow)
        traj = plan_trajectory(
            RobotState.zeros(6), RobotState.at_rest(BASE_TURN), params, torque_limits
        )
        assert len(traj) == 61

    def test_joint_count_mismatch_is_caller_error(self, planner):
        with pytest.raises(ValueError):
            planner.solve(RobotState.zeros(5), RobotState.zeros(6))

    def test_model_mismatch_rejected(self, params):
        with pytest.raises(ValueError):
            ToppraPlanner(params, TorqueLimits(max_torque=[1.0, 2.0]))


class TestSteps:
    """Individual passes."""

    def test_coefficients_linearise_dynamics(self, params):
        """τ(q(s), ṡΔq, s̈Δq) == A·s̈ + B·ṡ² + C on the grid."""
        dq = MULTI_END - MULTI_START
        coeffs = compute_path_coefficients(MULTI_START, dq, params, 20)
        assert coeffs.inertia.shape == (21, 6)
        assert coeffs.grid_resolution == 20

        for k in (0, 7, 20):
            q = MULTI_START + (k / 20) * dq
            for s_dot, s_ddot in ((0.0, 0.0), (0.8, 1.5), (2.0, -3.0)):
                direct = inverse_dynamics_q(q, s_dot * dq, s_ddot * dq, params)
                assert np.allclose(coeffs.rigid_torque(k, s_dot, s_ddot), direct)

    def test_velocity_limit_curve(self, params, torque_limits):
        dq = MULTI_END - MULTI_START
        coeffs = compute_path_coefficients(MULTI_START, dq, params, 40)
        mvc = velocity_limit_curve(coeffs, torque_limits)
        assert mvc.shape == (41,)
        assert mvc[0] == 0.0 and mvc[-1] == 0.0
        assert np.all(mvc >= 0.0)
        assert np.all(mvc[1:-1] > 0.0)

    def test_velocity_limit_curve_infeasible(self, params):
        coeffs = compute_path_coefficients(np.zeros(6), BASE_TURN, params, 10)
        mvc = velocity_limit_curve(coeffs, TorqueLimits(max_torque=[1.0] * 6))
        assert not mvc.any()

    def test_acceleration_bounds_base_only(self, params, torque_limits):
        coeffs = compute_path_coefficients(np.zeros(6), BASE_TURN, params, 10)
        bounds = acceleration_bounds(coeffs, 0, 0.0, torque_limits, BASE_TURN)
        a = 22.5 * 0.1 * 1.5708
        assert bounds is not None
        assert bounds[0] == pytest.approx(-80.0 / a)
        assert bounds[1] == pytest.approx(80.0 / a)

    def test_acceleration_bounds_with_friction(self, params, torque_limits, friction):
        coeffs = compute_path_coefficients(np.zeros(6), BASE_TURN, params, 10)
        plain = acceleration_bounds(coeffs, 5, 1.0, torque_limits, BASE_TURN)
        with_friction = acceleration_bounds(
            coeffs, 5, 1.0, torque_limits, BASE_TURN, friction
        )
        f = friction.friction(0, 1.5708)
        a = 22.5 * 0.1 * 1.5708
        assert with_friction[1] == pytest.approx(plain[1] - f / a)
        assert with_friction[0] == pytest.approx(plain[0] - f / a)

    def test_acceleration_bounds_infeasible(self, params):
        coeffs = compute_path_coefficients(np.zeros(6), BASE_TURN, params, 10)
        weak = TorqueLimits(max_torque=[1.0] * 6)
        assert acceleration_bounds(coeffs, 3, 0.0, weak, BASE_TURN) is None

    def test_backward_and_forward_passes(self, params, torque_limits):
        n = 100
        dq = MULTI_END - MULTI_START
        coeffs = compute_path_coefficients(MULTI_START, dq, params, n)
        mvc = velocity_limit_curve(coeffs, torque_limits)
        beta = backward_pass(coeffs, mvc, torque_limits, dq)

        assert beta[-1] == 0.0
        assert np.all(beta <= mvc + 1e-12)
        assert np.all(beta[1:-1] > 0.0)

        raw = forward_pass(coeffs, beta, torque_limits, dq)
        assert raw.shape == (n,)
        s_dot = 0.0
        for k in range(n):
            s_dot = np.sqrt(max(0.0, s_dot**2 + 2.0 * raw[k] / n))
            assert s_dot <= beta[k + 1] + 1e-9

    def test_smoothing_edge_clipped_average(self):
        out = smooth_profile(np.arange(5.0), half_width=1, deadband=0.0)
        assert np.allclose(out, [0.5, 1.0, 2.0, 3.0, 3.5])

    def test_smoothing_suppresses_chatter(self):
        k = np.arange(200)
        raw = 5.0 + 3.0 * (-1.0) ** k
        out = smooth_profile(raw, half_width=10, deadband=0.5)
        assert np.max(np.abs(np.diff(raw))) == pytest.approx(6.0)
        assert np.max(np.abs(np.diff(out))) < 0.5
        assert np.allclose(out, 5.0, atol=0.3)

    def test_deadband_zeroes_small_values(self):
        raw = np.array([0.3, -0.4, 0.2, 0.1, -0.3])
        assert not smooth_profile(raw, half_width=2, deadband=0.5).any()

    def test_integration_stalled_profile(self):
        s_dot, t = integrate_profile(np.zeros(10))
        assert not s_dot.any()
        assert np.allclose(t, np.arange(11) * 0.01)

    def test_integration_constant_acceleration(self):
        n = 50
        s_dot, t = integrate_profile(np.full(n, 2.0))
        s = np.arange(n + 1) / n
        assert np.allclose(s_dot, np.sqrt(4.0 * s))
        # s = t²  for s̈ = 2 from rest
        assert t[-1] == pytest.approx(1.0, rel=0.05)

    def test_integration_accelerate_then_stop(self):
        s_dot, t = integrate_profile(np.array([3.0, -3.0]))
        assert s_dot[1] == pytest.approx(np.sqrt(3.0))
        assert s_dot[2] == 0.0
        assert np.all(np.diff(t) >= 1e-4)

    def test_integration_clamps_at_rest(self):
        """Over-deceleration stops at zero instead of going negative."""
        s_dot, _ = integrate_profile(np.array([1.0, -5.0, -5.0]))
        assert s_dot[2] == 0.0
        assert s_dot[3] == 0.0

    def test_integration_shape_checked(self):
        with pytest.raises(ValueError):
            integrate_profile(np.zeros((2, 3)))
        with pytest.raises(ValueError):
            integrate_profile(np.zeros(0))

    def test_settings_validation(self):
        with pytest.raises(ValueError):
            PlannerSettings(grid_resolution=1)
        with pytest.raises(ValueError):
            PlannerSettings(smoothing_half_width=-1)
        with pytest.raises(ValueError):
            PlannerSettings(deadband=-0.1)
        assert PlannerSettings(grid_resolution=4).ds == 0.25


@pytest.mark.slow
class TestReferenceSolver:
    """Cross-check durations against the toppra library."""

    def test_duration_comparable(self, params, torque_limits, friction):
        ref = toppra_reference_duration(np.zeros(6), BASE_TURN, params, torque_limits)
        if ref is None:
            pytest.skip("toppra could not solve the reference path")
        ours = plan_trajectory(
            RobotState.zeros(6), RobotState.at_rest(BASE_TURN), params, torque_limits, friction
        ).duration
        assert 0.5 * ref < ours < 5.0 * ref
