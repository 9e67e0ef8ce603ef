"""
Light-matter coupling parameters.

α is the fixed light-matter coupling constant. λ is the effective
polarizability strength entering the photon pole equation
det(I + λ G(r0, r0, ω)) = 0; it is a functional of the current matter
eigenpairs and is recomputed explicitly for every orchestrator pass.
"""

import warnings
import numpy as np
from numpy.typing import NDArray
from dataclasses import dataclass
from typing import Union

from cqed_solver.core.errors import InvalidInput, ResonanceWarning
from cqed_solver.core.systems import frozen_array


CouplingStrength = Union[float, NDArray]


@dataclass(frozen=True, eq=False)
class CouplingParameters:
    """
    Coupling constants for one photon/matter pass.

    Attributes:
        alpha: Light-matter coupling constant α.
        lambda_eff: Effective polarizability strength λ, a real scalar or
            a Hermitian semidefinite d x d matrix.
    """
    alpha: float
    lambda_eff: CouplingStrength = 0.0

    def __post_init__(self):
        if not np.isfinite(self.alpha) or np.iscomplexobj(self.alpha):
            raise InvalidInput(f"alpha must be a finite real number, got {self.alpha}")

        lam = np.asarray(self.lambda_eff)
        if lam.ndim == 0:
            if not np.isfinite(lam) or np.iscomplexobj(lam):
                raise InvalidInput(f"lambda_eff must be a finite real number, got {self.lambda_eff}")
            object.__setattr__(self, "lambda_eff", float(lam))
            return

        if lam.ndim != 2 or lam.shape[0] != lam.shape[1]:
            raise InvalidInput(f"lambda_eff must be a scalar or square matrix, got shape {lam.shape}")
        if not np.all(np.isfinite(lam)):
            raise InvalidInput("lambda_eff contains non-finite entries")
        scale = max(1.0, float(np.max(np.abs(lam))))
        if np.max(np.abs(lam - lam.conj().T)) > 1e-10 * scale:
            raise InvalidInput("lambda_eff matrix must be Hermitian")
        eigenvalues = np.linalg.eigvalsh(lam)
        tol = 1e-12 * scale
        if eigenvalues.min() < -tol and eigenvalues.max() > tol:
            raise InvalidInput(
                "lambda_eff matrix must be semidefinite (eigenvalues "
                f"{eigenvalues.min():.3e} .. {eigenvalues.max():.3e}); an indefinite "
                "strength does not give one dressed root per bracket"
            )
        object.__setattr__(self, "lambda_eff", frozen_array(lam))

    @property
    def is_matrix(self) -> bool:
        return isinstance(self.lambda_eff, np.ndarray)

    def lambda_matrix(self, dimension: int) -> NDArray:
        """λ as a d x d matrix (a scalar λ becomes λ·I_d)."""
        if self.is_matrix:
            if self.lambda_eff.shape[0] != dimension:
                raise InvalidInput(
                    f"lambda_eff is {self.lambda_eff.shape[0]}x{self.lambda_eff.shape[0]} "
                    f"but the photon modes have dimension {dimension}"
                )
            return np.array(self.lambda_eff, dtype=complex)
        return self.lambda_eff * np.eye(dimension, dtype=complex)

    @property
    def sign(self) -> int:
        """+1 for λ ⪰ 0, -1 for λ ⪯ 0, 0 when λ vanishes."""
        if self.is_matrix:
            eigenvalues = np.linalg.eigvalsh(self.lambda_eff)
            scale = float(np.max(np.abs(eigenvalues)))
            if scale == 0.0:
                return 0
            return 1 if eigenvalues.max() > 1e-12 * scale else -1
        return int(np.sign(self.lambda_eff))

    @property
    def is_decoupled(self) -> bool:
        """True when λ = 0 and the photon pole equation reduces to identity."""
        return self.sign == 0


def static_polarizability(
    energies: NDArray,
    states: NDArray,
    dipole: NDArray,
    reference_level: int = 0,
    degeneracy_tolerance: float = 1e-8
) -> float:
    """
    Static dipole polarizability of the reference level.

    χ = Σ_{b≠ref} 2 |<ψ_b|p|ψ_ref>|² / (E_b - E_ref)

    Levels degenerate with the reference carry no static response and
    are left out with a ResonanceWarning.

    Args:
        energies: Matter eigenvalues, ascending.
        states: Matter eigenvectors (columns).
        dipole: Dipole operator p.
        reference_level: Index of the reference level.
        degeneracy_tolerance: |E_b - E_ref| below which a level counts as
            degenerate with the reference.

    Returns:
        Real polarizability χ.
    """
    energies = np.asarray(energies, dtype=float)
    if not 0 <= reference_level < len(energies):
        raise InvalidInput(
            f"reference_level {reference_level} out of range for {len(energies)} levels"
        )
    p_matrix = states.conj().T @ dipole @ states
    couplings = np.abs(p_matrix[:, reference_level])**2
    gaps = energies - energies[reference_level]

    chi = 0.0
    for b, (gap, weight) in enumerate(zip(gaps, couplings)):
        if b == reference_level:
            continue
        if abs(gap) < degeneracy_tolerance:
            if weight > 0:
                warnings.warn(
                    f"Level {b} is degenerate with reference level {reference_level}; "
                    "omitted from the polarizability",
                    ResonanceWarning,
                )
            continue
        chi += 2.0 * weight / gap
    return float(chi)


def polarizability_coupling(
    alpha: float,
    energies: NDArray,
    states: NDArray,
    dipole: NDArray,
    reference_level: int = 0,
    degeneracy_tolerance: float = 1e-8
) -> CouplingParameters:
    """
    Default λ functional: λ = α χ_static of the current matter state.
    """
    chi = static_polarizability(energies, states, dipole, reference_level, degeneracy_tolerance)
    return CouplingParameters(alpha=alpha, lambda_eff=alpha * chi)
