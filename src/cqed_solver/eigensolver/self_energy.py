"""
Photon-induced self-energy of the matter system.

    Σ = α Σ_n Σ_b |F_n(r0)|² · p ψ_b ψ_b^† p / (ω_n (E_ref - E_b - ω_n))

The sum runs over dressed photon modes n and matter levels b. Since p is
Hermitian and every prefactor is real, Σ = P diag(c) P^† with P = p ψ and

    c_b = α Σ_n |F_n(r0)|² / (ω_n (E_ref - E_b - ω_n))

Denominators E_ref - E_b - ω_n close to zero are virtual-photon
resonances. They are handled per term according to ``resonance_policy``:

    'skip'   drop the term (ResonanceWarning)
    'clamp'  replace the denominator by ±resonance_tolerance (ResonanceWarning)
    'fail'   raise ResonanceFailure
"""

import warnings
import numpy as np
from numpy.typing import NDArray, ArrayLike
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from cqed_solver.core.errors import InvalidInput, ResonanceFailure, ResonanceWarning
from cqed_solver.core.parameters import SolverConfig


@dataclass
class SelfEnergyResult:
    """Self-energy matrix plus bookkeeping of resonant terms."""
    matrix: NDArray
    level_coefficients: NDArray  # c_b
    skipped: int = 0
    clamped: int = 0
    resonant_terms: List[Tuple[int, int]] = field(default_factory=list)  # (mode, level)

    @property
    def hermiticity_error(self) -> float:
        return float(np.max(np.abs(self.matrix - self.matrix.conj().T)))


class SelfEnergyBuilder:
    """
    Assembles Σ from the current matter eigenpairs.

    Attributes:
        dipole: Dipole operator p (N_e x N_e, Hermitian).
        alpha: Light-matter coupling α.
        frequencies: Dressed photon frequencies ω_n.
        weights: Emitter weights |F_n(r0)|².
        config: Supplies reference_level, resonance_policy, resonance_tolerance.
    """

    def __init__(
        self,
        dipole: NDArray,
        alpha: float,
        frequencies: ArrayLike,
        weights: ArrayLike,
        config: Optional[SolverConfig] = None
    ):
        self.dipole = np.asarray(dipole)
        self.alpha = float(alpha)
        self.frequencies = np.asarray(frequencies, dtype=float)
        self.weights = np.asarray(weights, dtype=float)
        self.config = config if config is not None else SolverConfig()

        if self.frequencies.shape != self.weights.shape or self.frequencies.ndim != 1:
            raise InvalidInput(
                f"frequencies and weights must be matching 1D arrays, got shapes "
                f"{self.frequencies.shape} and {self.weights.shape}"
            )
        if np.any(self.frequencies <= 0):
            raise InvalidInput("Dressed photon frequencies must be positive")
        if np.any(self.weights < 0):
            raise InvalidInput("Emitter weights must be non-negative")

    @classmethod
    def from_modes(cls, dipole: NDArray, alpha: float, modes: Sequence,
                   config: Optional[SolverConfig] = None) -> "SelfEnergyBuilder":
        """Build from DressedPhotonMode objects (frequency and emitter_weight)."""
        frequencies = [mode.frequency for mode in modes]
        weights = [mode.emitter_weight for mode in modes]
        return cls(dipole, alpha, frequencies, weights, config)

    def build(self, energies: NDArray, states: NDArray) -> SelfEnergyResult:
        """
        Construct Σ for the given eigenpairs.

        Args:
            energies: Current matter eigenvalues E_b.
            states: Current matter eigenvectors ψ_b (columns).

        Returns:
            SelfEnergyResult with a Hermitian N_e x N_e matrix.

        Raises:
            ResonanceFailure: A resonant term under resonance_policy 'fail'.
        """
        cfg = self.config
        energies = np.asarray(energies, dtype=float)
        n_levels = len(energies)
        ref = cfg.reference_level
        if not 0 <= ref < n_levels:
            raise InvalidInput(f"reference_level {ref} out of range for {n_levels} levels")

        P = self.dipole @ states
        if self.alpha == 0.0 or not np.any(self.weights > 0):
            return SelfEnergyResult(
                matrix=np.zeros((n_levels, n_levels), dtype=complex),
                level_coefficients=np.zeros(n_levels)
            )

        active = self.weights > 0
        omega = self.frequencies[active][:, None]
        weight = self.weights[active][:, None]
        mode_ids = np.flatnonzero(active)

        # denominators[n, b] = E_ref - E_b - ω_n
        denominators = energies[ref] - energies[None, :] - omega
        resonant = np.abs(denominators) < cfg.resonance_tolerance
        resonant_terms = [(int(mode_ids[n]), int(b)) for n, b in zip(*np.nonzero(resonant))]

        skipped = clamped = 0
        if resonant_terms:
            if cfg.resonance_policy == "fail":
                n, b = resonant_terms[0]
                raise ResonanceFailure(
                    f"Resonant self-energy term: mode {n} (ω = {self.frequencies[n]:.12g}) "
                    f"with level {b} (E_ref - E_b = {energies[ref] - energies[b]:.12g})",
                    diagnostics={
                        'resonant_terms': resonant_terms,
                        'resonance_tolerance': cfg.resonance_tolerance,
                    },
                )
            if cfg.resonance_policy == "clamp":
                signs = np.where(denominators[resonant] < 0, -1.0, 1.0)
                denominators = denominators.copy()
                denominators[resonant] = signs * cfg.resonance_tolerance
                clamped = len(resonant_terms)
            else:
                denominators = np.where(resonant, 1.0, denominators)
                skipped = len(resonant_terms)
            warnings.warn(
                f"{len(resonant_terms)} resonant self-energy term(s) "
                f"{'clamped' if clamped else 'skipped'} "
                f"(|E_ref - E_b - ω_n| < {cfg.resonance_tolerance:.1e})",
                ResonanceWarning,
                stacklevel=2,
            )

        terms = weight / (omega * denominators)
        if skipped:
            terms[resonant] = 0.0
        coefficients = self.alpha * np.sum(terms, axis=0)

        sigma = (P * coefficients[None, :]) @ P.conj().T
        sigma = 0.5 * (sigma + sigma.conj().T)

        return SelfEnergyResult(
            matrix=sigma,
            level_coefficients=coefficients,
            skipped=skipped,
            clamped=clamped,
            resonant_terms=resonant_terms,
        )
