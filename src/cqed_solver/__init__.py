"""
CQED Solver - Coupled photon/matter eigenproblems of an emitter in a cavity

Solves two coupled nonlinear eigenproblems in one spatial dimension:
    Photon stage: dressed cavity frequencies from the pole equation
                  det(I + λ G(r0, r0, ω)) = 0 and the dressed mode profiles
    Matter stage: electronic levels of H + Σ, where the self-energy Σ of
                  virtual photon exchange depends on the levels themselves

Main Interface:
    from cqed_solver import CavityQEDSolver, MatterSystem, PhotonSystem

    matter = MatterSystem.from_tight_binding(np.zeros(4), 0.25, 1)
    photon = PhotonSystem.fabry_perot(5, length=1.0)

    solver = CavityQEDSolver()  # Uses defaults from solver_config.json
    result = solver.solve(matter, photon, alpha=0.01, emitter_position=0.3)
    print(result.photon_frequencies, result.matter_energies)

Components:
- CavityQEDSolver: Main interface running the photon then the matter stage
- SpectralGreenFunction: Sum-over-modes Green's function of the vacuum cavity
- PhotonRootSolver: Bracketed Newton search for the dressed frequencies
- PhotonModeReconstructor: Unit-residue dressed mode profiles
- SelfEnergyBuilder: Matter self-energy from the dressed photon modes
- MatterFixedPointSolver: Anderson-mixed self-consistent matter levels
"""

from cqed_solver.core import (
    CavityQEDSolver,
    SolveResult,
    PassRecord,
    solve,
    MatterSystem,
    PhotonSystem,
    CouplingParameters,
    polarizability_coupling,
    static_polarizability,
    SolverConfig,
    resolve_config,
    CQEDSolverError,
    InvalidInput,
    DivergentEvaluation,
    RootNotFound,
    ResonanceFailure,
    NonConvergence,
    ResonanceWarning,
)

from cqed_solver.photon import (
    SpectralGreenFunction,
    PhotonRootSolver,
    PhotonRoot,
    PhotonRootResult,
    PhotonModeReconstructor,
    DressedPhotonMode,
    completeness_residual,
)

from cqed_solver.eigensolver import (
    AndersonMixer,
    ConvergenceInfo,
    SelfEnergyBuilder,
    SelfEnergyResult,
    MatterFixedPointSolver,
    MatterFixedPointResult,
)

__version__ = "0.1.0"

__all__ = [
    # Main interface
    "CavityQEDSolver",
    "SolveResult",
    "PassRecord",
    "solve",
    # Systems and coupling
    "MatterSystem",
    "PhotonSystem",
    "CouplingParameters",
    "polarizability_coupling",
    "static_polarizability",
    # Configuration
    "SolverConfig",
    "resolve_config",
    # Errors
    "CQEDSolverError",
    "InvalidInput",
    "DivergentEvaluation",
    "RootNotFound",
    "ResonanceFailure",
    "NonConvergence",
    "ResonanceWarning",
    # Photon stage
    "SpectralGreenFunction",
    "PhotonRootSolver",
    "PhotonRoot",
    "PhotonRootResult",
    "PhotonModeReconstructor",
    "DressedPhotonMode",
    "completeness_residual",
    # Matter stage
    "AndersonMixer",
    "ConvergenceInfo",
    "SelfEnergyBuilder",
    "SelfEnergyResult",
    "MatterFixedPointSolver",
    "MatterFixedPointResult",
]
