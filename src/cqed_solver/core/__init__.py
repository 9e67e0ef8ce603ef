"""
Core module for CQED Solver.

Contains the system definitions, coupling parameters, configuration,
the exception taxonomy and the main solver interface.

Configuration:
- SolverConfig: tolerances, iteration caps and policies, with defaults
  loaded from solver_config.json
"""

from cqed_solver.core.errors import (
    CQEDSolverError,
    InvalidInput,
    DivergentEvaluation,
    RootNotFound,
    ResonanceFailure,
    NonConvergence,
    ResonanceWarning,
)
from cqed_solver.core.constants import (
    load_config_from_json,
    save_config_to_json,
    get_config_json_path,
)
from cqed_solver.core.parameters import SolverConfig, resolve_config
from cqed_solver.core.systems import MatterSystem, PhotonSystem
from cqed_solver.core.coupling import (
    CouplingParameters,
    polarizability_coupling,
    static_polarizability,
)

# Main interface (imports the photon and eigensolver packages)
from cqed_solver.core.cavity_solver import CavityQEDSolver, SolveResult, PassRecord, solve

__all__ = [
    "CQEDSolverError",
    "InvalidInput",
    "DivergentEvaluation",
    "RootNotFound",
    "ResonanceFailure",
    "NonConvergence",
    "ResonanceWarning",
    "load_config_from_json",
    "save_config_to_json",
    "get_config_json_path",
    "SolverConfig",
    "resolve_config",
    "MatterSystem",
    "PhotonSystem",
    "CouplingParameters",
    "polarizability_coupling",
    "static_polarizability",
    "CavityQEDSolver",
    "SolveResult",
    "PassRecord",
    "solve",
]
