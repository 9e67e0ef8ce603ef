"""
Photon stage for CQED Solver.

- SpectralGreenFunction: G(r, r', ω) and ∂G/∂ω as sums over vacuum modes
- PhotonRootSolver: one dressed frequency per bracket of vacuum frequencies
- PhotonModeReconstructor: dressed mode profiles under unit-residue normalization
"""

from cqed_solver.photon.green_function import SpectralGreenFunction, split_dark_modes
from cqed_solver.photon.root_solver import (
    PhotonRootSolver,
    PhotonRoot,
    PhotonRootResult,
    adjugate,
)
from cqed_solver.photon.mode_reconstructor import (
    PhotonModeReconstructor,
    DressedPhotonMode,
    completeness_matrix,
    completeness_residual,
)

__all__ = [
    "SpectralGreenFunction",
    "split_dark_modes",
    "PhotonRootSolver",
    "PhotonRoot",
    "PhotonRootResult",
    "adjugate",
    "PhotonModeReconstructor",
    "DressedPhotonMode",
    "completeness_matrix",
    "completeness_residual",
]
