"""
Tests for the dressed photon frequency search.
"""

import pytest
import numpy as np
from numpy.testing import assert_allclose

from cqed_solver.core.coupling import CouplingParameters
from cqed_solver.core.errors import InvalidInput, RootNotFound
from cqed_solver.core.parameters import SolverConfig
from cqed_solver.core.systems import PhotonSystem
from cqed_solver.photon.green_function import SpectralGreenFunction
from cqed_solver.photon.root_solver import PhotonRootSolver, adjugate


def _strictly_inside(root):
    lower, upper = root.bracket
    return lower < root.frequency < upper


@pytest.mark.unit
class TestAdjugate:
    """Adjugate used by the determinant derivative."""

    def test_scalar(self):
        assert_allclose(adjugate(np.array([[3.0]])), [[1.0]])

    @pytest.mark.parametrize("d", [2, 3])
    def test_adjugate_identity(self, d):
        rng = np.random.default_rng(d)
        M = rng.normal(size=(d, d)) + 1j * rng.normal(size=(d, d))
        assert_allclose(adjugate(M) @ M, np.linalg.det(M) * np.eye(d), atol=1e-12)


@pytest.mark.unit
class TestPhotonRootSolver:
    """Bracket completeness and limits of the pole equation."""

    @pytest.fixture
    def solver(self, green, config):
        return PhotonRootSolver(green, config)

    def test_decoupled_returns_vacuum_frequencies(self, solver, cavity):
        result = solver.solve(CouplingParameters(alpha=0.0, lambda_eff=0.0))
        assert_allclose(result.frequencies, cavity.frequencies, rtol=0, atol=0)
        assert result.total_iterations == 0
        assert not any(root.coupled for root in result.roots)

    def test_one_root_per_bracket(self, solver, cavity):
        result = solver.solve(CouplingParameters(alpha=0.01, lambda_eff=0.005))
        omega0 = cavity.frequencies
        assert len(result.roots) == 5
        for k, root in enumerate(result.roots):
            assert root.mode_index == k
            assert _strictly_inside(root)
            assert omega0[k] < root.frequency
            if k + 1 < len(omega0):
                assert root.frequency < omega0[k + 1]
            assert root.residual < 1e-8

    def test_roots_solve_pole_equation(self, solver, green):
        lam = 0.005
        result = solver.solve(CouplingParameters(alpha=0.01, lambda_eff=lam))
        for omega in result.frequencies:
            G = green.at_emitter(omega)[0, 0]
            assert abs(1.0 + lam * G) < 1e-8

    def test_frequencies_sorted(self, solver):
        result = solver.solve(CouplingParameters(alpha=0.01, lambda_eff=0.05))
        assert np.all(np.diff(result.frequencies) > 0)

    def test_blue_shift_grows_with_lambda(self, solver, cavity):
        weak = solver.solve(CouplingParameters(0.01, 0.001)).frequencies
        strong = solver.solve(CouplingParameters(0.01, 0.01)).frequencies
        assert np.all(weak > cavity.frequencies)
        assert np.all(strong > weak)

    def test_first_order_shift(self, solver, cavity, emitter_position):
        """Small λ: ω_n² ≈ ω_k0² + λ |F_k0(r0)|²."""
        lam = 1e-5
        result = solver.solve(CouplingParameters(0.01, lam))
        weights = cavity.mode_values(emitter_position)[:, 0]**2
        expected = np.sqrt(cavity.frequencies**2 + lam * weights)
        assert_allclose(result.frequencies, expected, rtol=1e-8)

    @pytest.mark.parametrize("lam", [1e-8, 1e-9, 1e-10, -1e-10])
    def test_weak_coupling_roots_next_to_poles(self, solver, cavity, emitter_position, lam):
        """Shifts far below the default pole margin still give one root per bracket."""
        result = solver.solve(CouplingParameters(0.0, lam))
        weights = cavity.mode_values(emitter_position)[:, 0]**2
        expected = np.sqrt(cavity.frequencies**2 + lam * weights)
        assert len(result.roots) == 5
        for k, root in enumerate(result.roots):
            assert root.mode_index == k
            assert root.coupled
            assert _strictly_inside(root)
            if lam > 0:
                assert root.frequency > cavity.frequencies[k]
            else:
                assert root.frequency < cavity.frequencies[k]
        assert_allclose(result.frequencies, expected, rtol=0, atol=5e-10)

    def test_root_inside_minimum_margin(self, solver, cavity):
        """The ω = 3π mode is nearly dark at r0 = 0.3; its shift at λ = 1e-10 is about 1e-12."""
        root = solver.solve(CouplingParameters(0.0, 1e-10)).roots[2]
        assert root.iterations == 0
        assert 0.0 < root.frequency - cavity.frequencies[2] <= 1e-11 * (1 + 1e-3)
        assert root.residual < 1e-11

    def test_negative_lambda_shifts_down(self, solver, cavity):
        result = solver.solve(CouplingParameters(alpha=0.01, lambda_eff=-0.005))
        omega0 = cavity.frequencies
        for k, root in enumerate(result.roots):
            assert _strictly_inside(root)
            assert root.frequency < omega0[k]
            if k > 0:
                assert root.frequency > omega0[k - 1]
        assert result.roots[0].bracket[0] >= 0.0

    def test_pole_function_derivative(self, solver):
        coupling = CouplingParameters(0.01, 0.02)
        omega, h = 4.0, 1e-6
        numeric = (solver.pole_function(omega + h, coupling)
                   - solver.pole_function(omega - h, coupling)) / (2 * h)
        assert_allclose(solver.pole_function_derivative(omega, coupling), numeric, rtol=1e-6)

    def test_dark_modes_returned_undressed(self, cavity, config):
        green = SpectralGreenFunction(cavity, 0.5)
        solver = PhotonRootSolver(green, config)
        result = solver.solve(CouplingParameters(0.01, 0.01))
        assert len(result.roots) == 5
        dark = [root for root in result.roots if not root.coupled]
        assert [root.mode_index for root in dark] == [1, 3]
        for root in dark:
            assert root.frequency == cavity.frequencies[root.mode_index]
        bright = [root for root in result.roots if root.coupled]
        assert [root.mode_index for root in bright] == [0, 2, 4]
        assert all(_strictly_inside(root) for root in bright)

    def test_single_mode_boundary_bracket(self, config):
        photon = PhotonSystem([2.0], profile_function=lambda r: np.ones((1, 1)))
        solver = PhotonRootSolver(SpectralGreenFunction(photon, 0.0), config)
        # 1 + λ / (4 - ω²) = 0  ->  ω² = 4 + λ
        result = solver.solve(CouplingParameters(0.01, 0.5))
        assert_allclose(result.frequencies, [np.sqrt(4.5)], rtol=1e-10)
        result = solver.solve(CouplingParameters(0.01, -0.5))
        assert_allclose(result.frequencies, [np.sqrt(3.5)], rtol=1e-10)

    def test_boundary_bracket_widens(self, green, config):
        narrow = config.replace(boundary_factor=1e-6)
        result = PhotonRootSolver(green, narrow).solve(CouplingParameters(0.01, 0.005))
        top = result.roots[-1]
        assert top.bracket[1] - top.bracket[0] > 1e-6 * np.pi
        assert _strictly_inside(top)

    def test_boundary_bracket_without_expansion_fails(self, green, config):
        narrow = config.replace(boundary_factor=1e-6, boundary_max_expansions=0)
        with pytest.raises(RootNotFound) as excinfo:
            PhotonRootSolver(green, narrow).solve(CouplingParameters(0.01, 0.005))
        assert excinfo.value.diagnostics['mode_index'] == 4

    def test_clamp_policy_recovers_from_wild_steps(self, green, config):
        result = PhotonRootSolver(green, config.replace(step_policy="clamp")).solve(
            CouplingParameters(0.01, 0.005))
        assert all(_strictly_inside(root) for root in result.roots)

    def test_fail_policy_raises(self, green, config):
        """Near-pole roots send the first Newton step from the midpoint far outside."""
        solver = PhotonRootSolver(green, config.replace(step_policy="fail"))
        with pytest.raises(RootNotFound) as excinfo:
            solver.solve(CouplingParameters(0.01, 0.005))
        assert 'step_target' in excinfo.value.diagnostics

    def test_iteration_cap(self, green, config):
        solver = PhotonRootSolver(green, config.replace(root_max_iter=1))
        with pytest.raises(RootNotFound):
            solver.solve(CouplingParameters(0.01, 0.005))

    def test_indefinite_lambda_rejected(self):
        with pytest.raises(InvalidInput):
            CouplingParameters(0.01, np.diag([0.01, -0.01]))


@pytest.mark.unit
class TestVectorModes:
    """d = 2 modes with alternating polarization."""

    @pytest.fixture
    def photon(self):
        k = np.arange(1, 4)

        def profile(r):
            values = np.zeros((3, 2))
            values[0, 0] = np.sqrt(2.0) * np.sin(np.pi * r)
            values[1, 1] = np.sqrt(2.0) * np.sin(2 * np.pi * r)
            values[2, 0] = np.sqrt(2.0) * np.sin(3 * np.pi * r)
            return values

        return PhotonSystem(k * np.pi, profile_function=profile, dimension=2, domain=(0.0, 1.0))

    def test_matrix_lambda_roots(self, photon, config):
        green = SpectralGreenFunction(photon, 0.3)
        solver = PhotonRootSolver(green, config)
        coupling = CouplingParameters(0.01, np.diag([0.004, 0.006]))
        result = solver.solve(coupling)
        assert len(result.roots) == 3
        lam = coupling.lambda_matrix(2)
        for root in result.roots:
            assert _strictly_inside(root)
            M = np.eye(2) + lam @ green.at_emitter(root.frequency)
            assert np.linalg.svd(M, compute_uv=False).min() < 1e-7
