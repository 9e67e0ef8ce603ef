"""
Integration tests for CavityQEDSolver.

The reference scenario: a 4-site tight-binding chain (zero on-site
potential, t = 0.25, radius 1) with its emitter at r0 = 0.3 in a
5-mode Fabry-Perot cavity of length 1.
"""

import pytest
import numpy as np
from numpy.testing import assert_allclose

import cqed_solver
from cqed_solver.core.cavity_solver import CavityQEDSolver, solve
from cqed_solver.core.coupling import static_polarizability
from cqed_solver.core.errors import InvalidInput, NonConvergence, RootNotFound
from cqed_solver.photon.mode_reconstructor import completeness_residual


ALPHA = 0.01


@pytest.mark.integration
class TestCavityQEDSolver:
    """Photon stage then matter stage."""

    @pytest.fixture
    def solver(self, config):
        return CavityQEDSolver(config)

    @pytest.fixture
    def result(self, solver, chain, cavity, emitter_position):
        return solver.solve(chain, cavity, alpha=ALPHA, emitter_position=emitter_position)

    def test_end_to_end_photon_frequencies(self, result, cavity):
        omega = result.photon_frequencies
        omega0 = cavity.frequencies
        assert len(omega) == 5
        # λ > 0: each dressed mode sits above its vacuum parent
        for k in range(5):
            assert omega0[k] < omega[k]
            if k < 4:
                assert omega[k] < omega0[k + 1]
        for root in result.photon_roots.roots:
            assert root.bracket[0] < root.frequency < root.bracket[1]

    def test_end_to_end_matter_energies(self, result, chain):
        energies = result.matter_energies
        assert len(energies) == 4
        assert np.isrealobj(energies)
        expected = np.sort(-0.5 * np.cos(np.arange(1, 5) * np.pi / 5))
        assert_allclose(energies, expected, atol=1e-3)

    def test_converged_within_default_caps(self, result, config):
        diagnostics = result.diagnostics
        assert result.converged
        assert diagnostics['fixedpoint_converged']
        assert diagnostics['fixedpoint_iterations'] <= config.fixedpoint_max_iter
        assert diagnostics['fixedpoint_residual'] < config.fixedpoint_tolerance
        assert diagnostics['root_max_residual'] < 1e-8
        assert diagnostics['n_passes'] == 1

    def test_default_lambda_is_polarizability(self, result, chain):
        chi = static_polarizability(chain.bare_energies, chain.bare_states, chain.dipole)
        assert_allclose(result.coupling.lambda_eff, ALPHA * chi)
        assert result.lambda_history == (result.coupling.lambda_eff,)

    def test_dressed_modes_complete(self, result, cavity):
        assert completeness_residual(result.photon_modes, cavity, 0.2, 0.8) < 1e-6

    def test_result_is_immutable(self, result):
        with pytest.raises(ValueError):
            result.matter_energies[0] = 0.0
        with pytest.raises(AttributeError):
            result.coupling = None

    def test_nested_results_are_immutable(self, result):
        energy = result.matter.energies[0]
        with pytest.raises(ValueError):
            result.matter.energies[0] = 123.0
        with pytest.raises(ValueError):
            result.matter.states[0, 0] = 1.0
        with pytest.raises(ValueError):
            result.matter.self_energy[0, 0] = 1.0
        with pytest.raises(ValueError):
            result.matter.info.energy_history[-1][0] = 1.0
        with pytest.raises(ValueError):
            result.photon_modes[0].emitter_value[0] = 99.0
        with pytest.raises(ValueError):
            result.passes[0].photon_frequencies[0] = 0.0
        with pytest.raises(AttributeError):
            result.matter.info.converged = False
        with pytest.raises(AttributeError):
            result.matter.energies = np.zeros(4)
        with pytest.raises(AttributeError):
            result.photon_modes[0].frequency = 0.0
        assert result.matter.energies[0] == energy
        assert result.converged

    def test_weak_coupling_end_to_end(self, solver, chain, cavity):
        """Dressed frequencies within the default pole margin of their parents."""
        result = solver.solve(chain, cavity, alpha=1e-9, emitter_position=0.3)
        omega = result.photon_frequencies
        assert len(omega) == 5
        assert np.all(omega > cavity.frequencies)
        assert_allclose(omega, cavity.frequencies, rtol=0, atol=1e-8)
        assert_allclose(result.matter_energies, chain.bare_energies, atol=1e-8)
        assert result.converged

    def test_decoupled_limit(self, solver, chain, cavity):
        result = solver.solve(chain, cavity, alpha=0.0, emitter_position=0.3)
        assert_allclose(result.photon_frequencies, cavity.frequencies, rtol=0, atol=0)
        assert_allclose(result.matter_energies, chain.bare_energies, atol=1e-12)
        assert result.matter.iterations == 1

    def test_fixed_lambda(self, solver, chain, cavity):
        result = solver.solve(chain, cavity, alpha=ALPHA, emitter_position=0.3, lambda_eff=0.02)
        assert result.coupling.lambda_eff == 0.02
        assert np.all(result.photon_frequencies > cavity.frequencies)

    def test_negative_fixed_lambda(self, solver, chain, cavity):
        result = solver.solve(chain, cavity, alpha=ALPHA, emitter_position=0.3, lambda_eff=-0.02)
        assert np.all(result.photon_frequencies < cavity.frequencies)

    def test_multiple_passes_recorded(self, solver, chain, cavity):
        result = solver.solve(chain, cavity, alpha=ALPHA, emitter_position=0.3, n_passes=3)
        assert len(result.passes) == 3
        assert len(result.lambda_history) == 3
        for record in result.passes:
            assert len(record.photon_frequencies) == 5
            assert len(record.matter_energies) == 4
        assert_allclose(result.passes[-1].matter_energies, result.matter_energies)
        # Weak coupling: later passes barely move
        assert_allclose(result.passes[2].matter_energies, result.passes[1].matter_energies,
                        atol=1e-6)

    def test_anderson_mixing_same_answer(self, chain, cavity, config, result):
        mixed = CavityQEDSolver(config, mixing_depth=3, damping=0.5).solve(
            chain, cavity, alpha=ALPHA, emitter_position=0.3)
        assert_allclose(mixed.matter_energies, result.matter_energies, atol=1e-8)
        assert_allclose(mixed.photon_frequencies, result.photon_frequencies)

    def test_module_level_solve(self, chain, cavity, config, result):
        quick = solve(chain, cavity, ALPHA, 0.3, config=config)
        assert_allclose(quick.matter_energies, result.matter_energies)
        assert_allclose(quick.photon_frequencies, result.photon_frequencies)

    def test_package_exports(self):
        assert cqed_solver.CavityQEDSolver is CavityQEDSolver
        assert cqed_solver.solve is solve

    def test_invalid_passes(self, solver, chain, cavity):
        with pytest.raises(InvalidInput):
            solver.solve(chain, cavity, alpha=ALPHA, emitter_position=0.3, n_passes=0)

    def test_reference_level_out_of_range(self, chain, cavity):
        solver = CavityQEDSolver(reference_level=4)
        with pytest.raises(InvalidInput):
            solver.solve(chain, cavity, alpha=ALPHA, emitter_position=0.3)

    def test_emitter_outside_cavity(self, solver, chain, cavity):
        with pytest.raises(InvalidInput):
            solver.solve(chain, cavity, alpha=ALPHA, emitter_position=1.5)

    def test_photon_failure_propagates(self, chain, cavity, config):
        solver = CavityQEDSolver(config, step_policy="fail")
        with pytest.raises(RootNotFound):
            solver.solve(chain, cavity, alpha=ALPHA, emitter_position=0.3, lambda_eff=0.005)

    def test_matter_failure_propagates(self, chain, cavity, config):
        solver = CavityQEDSolver(config, fixedpoint_max_iter=1)
        with pytest.raises(NonConvergence):
            solver.solve(chain, cavity, alpha=ALPHA, emitter_position=0.3)

    def test_verbose_output(self, chain, cavity, config, capsys):
        CavityQEDSolver(config, verbose=True).solve(chain, cavity, alpha=ALPHA, emitter_position=0.3)
        out = capsys.readouterr().out
        assert "CAVITY QED SOLVE" in out
        assert "=== PhotonRootSolver ===" in out
        assert "=== MatterFixedPointSolver ===" in out
