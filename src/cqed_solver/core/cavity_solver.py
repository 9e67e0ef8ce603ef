"""
Cavity QED solver - photon stage then matter stage.

This module provides the main interface of the package:
    Photon stage: dressed cavity frequencies from det(I + λ G(r0, r0, ω)) = 0
                  and the normalized dressed mode profiles
    Matter stage: self-consistent levels of H + Σ, with Σ built from the
                  dressed photon modes

Each pass recomputes λ from the current matter state (static polarizability
of the reference level, unless a fixed λ is given) and starts the matter
iteration from the previous pass. A single pass is the standard solve;
extra passes feed the dressed matter state back into the photon stage and
are recorded in the pass history.
"""

import numpy as np
from numpy.typing import NDArray
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Union

from cqed_solver.core.coupling import CouplingParameters, CouplingStrength, polarizability_coupling
from cqed_solver.core.errors import InvalidInput
from cqed_solver.core.parameters import SolverConfig, resolve_config
from cqed_solver.core.systems import MatterSystem, PhotonSystem, frozen_array
from cqed_solver.eigensolver.fixed_point import MatterFixedPointResult, MatterFixedPointSolver
from cqed_solver.photon.green_function import SpectralGreenFunction
from cqed_solver.photon.mode_reconstructor import DressedPhotonMode, PhotonModeReconstructor
from cqed_solver.photon.root_solver import PhotonRootResult, PhotonRootSolver


@dataclass(frozen=True, eq=False)
class PassRecord:
    """Summary of one photon/matter pass."""
    lambda_eff: CouplingStrength
    photon_frequencies: NDArray
    matter_energies: NDArray
    root_iterations: int
    fixedpoint_iterations: int
    fixedpoint_residual: float


@dataclass(frozen=True, eq=False)
class SolveResult:
    """
    Dressed photon and matter eigenpairs from one solve.

    Contains the last pass in full and a summary of every pass. Nested
    results and their arrays are read-only as well.
    """
    photon_modes: Tuple[DressedPhotonMode, ...]
    matter_energies: NDArray
    matter_states: NDArray
    coupling: CouplingParameters
    photon_roots: PhotonRootResult
    matter: MatterFixedPointResult
    passes: Tuple[PassRecord, ...]

    @property
    def photon_frequencies(self) -> NDArray:
        return np.array([mode.frequency for mode in self.photon_modes])

    @property
    def lambda_history(self) -> Tuple[CouplingStrength, ...]:
        return tuple(record.lambda_eff for record in self.passes)

    @property
    def converged(self) -> bool:
        return self.matter.converged

    @property
    def diagnostics(self) -> Dict[str, Any]:
        """Iteration counts, residuals and converged flags of the last pass."""
        return {
            'root_iterations': self.photon_roots.total_iterations,
            'root_max_residual': self.photon_roots.max_residual,
            'root_brackets': [root.bracket for root in self.photon_roots.roots],
            'roots_converged': True,
            'fixedpoint_iterations': self.matter.iterations,
            'fixedpoint_residual': self.matter.final_residual,
            'fixedpoint_converged': self.matter.converged,
            'skipped_resonant_terms': self.matter.skipped_terms,
            'clamped_resonant_terms': self.matter.clamped_terms,
            'n_passes': len(self.passes),
        }


class CavityQEDSolver:
    """
    Photon-then-matter solver for an emitter in a cavity.

    By default, loads settings from solver_config.json.

    Usage:
        matter = MatterSystem.from_tight_binding(np.zeros(4), 0.25, 1)
        photon = PhotonSystem.fabry_perot(5, length=1.0)

        solver = CavityQEDSolver(verbose=True)
        result = solver.solve(matter, photon, alpha=0.01, emitter_position=0.3)

        print(result.photon_frequencies)
        print(result.matter_energies)
    """

    def __init__(self, config: Optional[Union[SolverConfig, Dict[str, Any]]] = None, **overrides):
        """
        Initialize the solver.

        Args:
            config: SolverConfig or dictionary of settings; None uses the defaults.
            **overrides: Individual settings (e.g. mixing_depth=3, verbose=True).
        """
        self.config = resolve_config(config, **overrides)
        self.verbose = self.config.verbose

    def solve(
        self,
        matter: MatterSystem,
        photon: PhotonSystem,
        alpha: float,
        emitter_position: float,
        lambda_eff: Optional[CouplingStrength] = None,
        n_passes: int = 1,
        initial_energies: Optional[NDArray] = None,
        initial_states: Optional[NDArray] = None
    ) -> SolveResult:
        """
        Solve the coupled photon and matter eigenproblems.

        Args:
            matter: Bare matter system.
            photon: Vacuum photon system.
            alpha: Light-matter coupling α.
            emitter_position: Emitter location r0.
            lambda_eff: Fixed λ for every pass; None derives λ from the
                current matter state.
            n_passes: Number of photon/matter passes.
            initial_energies: Starting matter energies (default: bare).
            initial_states: Starting matter states (default: bare).

        Returns:
            SolveResult of the last pass with the pass history.

        Raises:
            InvalidInput, DivergentEvaluation, RootNotFound,
            ResonanceFailure, NonConvergence: The first failure of any
            stage, unchanged.
        """
        cfg = self.config
        if int(n_passes) != n_passes or n_passes < 1:
            raise InvalidInput(f"n_passes must be a positive integer, got {n_passes}")
        if cfg.reference_level >= matter.dimension:
            raise InvalidInput(
                f"reference_level {cfg.reference_level} out of range for "
                f"{matter.dimension} matter levels"
            )

        if self.verbose:
            print("\n" + "=" * 60)
            print("CAVITY QED SOLVE")
            print(f"  Matter levels: {matter.dimension}, photon modes: {photon.n_modes} "
                  f"(d = {photon.dimension})")
            print(f"  alpha = {alpha}, r0 = {emitter_position}, passes = {n_passes}")
            print("=" * 60)

        green = SpectralGreenFunction(photon, emitter_position, cfg.pole_epsilon)
        root_solver = PhotonRootSolver(green, cfg)
        reconstructor = PhotonModeReconstructor(green, cfg)

        energies = initial_energies if initial_energies is not None else matter.bare_energies
        states = initial_states if initial_states is not None else matter.bare_states

        passes = []
        for pass_index in range(int(n_passes)):
            if lambda_eff is not None:
                coupling = CouplingParameters(alpha=alpha, lambda_eff=lambda_eff)
            else:
                coupling = polarizability_coupling(
                    alpha, energies, states, matter.dipole,
                    reference_level=cfg.reference_level,
                    degeneracy_tolerance=cfg.degeneracy_tolerance,
                )

            if self.verbose:
                print(f"\n--- Pass {pass_index + 1}/{n_passes}: lambda = {coupling.lambda_eff} ---")

            roots = root_solver.solve(coupling)
            modes = reconstructor.reconstruct_all(roots)

            matter_solver = MatterFixedPointSolver.from_modes(matter, alpha, modes, cfg)
            matter_result = matter_solver.solve(energies, states)
            energies, states = matter_result.energies, matter_result.states

            passes.append(PassRecord(
                lambda_eff=coupling.lambda_eff,
                photon_frequencies=frozen_array(roots.frequencies),
                matter_energies=frozen_array(energies),
                root_iterations=roots.total_iterations,
                fixedpoint_iterations=matter_result.iterations,
                fixedpoint_residual=matter_result.final_residual,
            ))

        if self.verbose:
            print("\nDressed photon frequencies:", np.array2string(roots.frequencies, precision=8))
            print("Dressed matter energies:   ", np.array2string(energies, precision=8))

        return SolveResult(
            photon_modes=modes,
            matter_energies=frozen_array(energies),
            matter_states=frozen_array(states),
            coupling=coupling,
            photon_roots=roots,
            matter=matter_result,
            passes=tuple(passes),
        )


def solve(
    matter: MatterSystem,
    photon: PhotonSystem,
    alpha: float,
    emitter_position: float,
    lambda_eff: Optional[CouplingStrength] = None,
    n_passes: int = 1,
    config: Optional[Union[SolverConfig, Dict[str, Any]]] = None,
    **overrides
) -> SolveResult:
    """
    Convenience function: solve with a fresh CavityQEDSolver.

    Example:
        result = solve(matter, photon, alpha=0.01, emitter_position=0.3, mixing_depth=2)
    """
    solver = CavityQEDSolver(config, **overrides)
    return solver.solve(matter, photon, alpha, emitter_position,
                        lambda_eff=lambda_eff, n_passes=n_passes)
