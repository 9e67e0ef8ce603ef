"""
Eigensolver module for CQED Solver.

Matter stage of the coupled problem:
- SelfEnergyBuilder: Σ from the current matter eigenpairs and dressed photons
- MatterFixedPointSolver: self-consistent diagonalization of H + Σ
- AndersonMixer: fixed-point acceleration with depth m and damping β
"""

from cqed_solver.eigensolver.mixing import AndersonMixer, ConvergenceInfo
from cqed_solver.eigensolver.self_energy import SelfEnergyBuilder, SelfEnergyResult
from cqed_solver.eigensolver.fixed_point import (
    MatterFixedPointSolver,
    MatterFixedPointResult,
    FixedPointStep,
    align_gauge,
    degenerate_clusters,
    lowdin_orthonormalize,
    residuals_oscillate,
)

__all__ = [
    "AndersonMixer",
    "ConvergenceInfo",
    "SelfEnergyBuilder",
    "SelfEnergyResult",
    "MatterFixedPointSolver",
    "MatterFixedPointResult",
    "FixedPointStep",
    "align_gauge",
    "degenerate_clusters",
    "lowdin_orthonormalize",
    "residuals_oscillate",
]
