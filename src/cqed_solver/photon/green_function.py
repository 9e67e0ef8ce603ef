"""
Spectral Green's function of the vacuum cavity.

    G(r, r', ω) = Σ_k F_k0(r) F_k0(r')^† / (ω_k0² - ω²)

    ∂G/∂ω     = Σ_k F_k0(r) F_k0(r')^† · 2ω / (ω_k0² - ω²)²

Both are d x d matrices. Evaluation within ``pole_epsilon`` of a vacuum
frequency raises DivergentEvaluation instead of returning Inf/NaN, which
is what keeps the root search strictly inside its brackets.
"""

import numpy as np
from numpy.typing import NDArray, ArrayLike
from typing import Optional

from cqed_solver.core.systems import PhotonSystem
from cqed_solver.core.errors import DivergentEvaluation, InvalidInput
from cqed_solver.core.constants import POLE_EPSILON


class SpectralGreenFunction:
    """
    Sum-over-modes Green's function for a PhotonSystem.

    Attributes:
        photon: Vacuum photon system.
        emitter_position: Emitter location r0.
        pole_epsilon: Minimum allowed distance |ω - ω_k0|.
        mode_indices: Vacuum modes included in the sum.
        poles: Vacuum frequencies of the included modes.
    """

    def __init__(
        self,
        photon: PhotonSystem,
        emitter_position: float,
        pole_epsilon: float = POLE_EPSILON,
        mode_indices: Optional[ArrayLike] = None
    ):
        if pole_epsilon <= 0:
            raise InvalidInput(f"pole_epsilon must be positive, got {pole_epsilon}")
        self.photon = photon
        self.emitter_position = float(emitter_position)
        self.pole_epsilon = pole_epsilon

        if mode_indices is None:
            indices = np.arange(photon.n_modes)
        else:
            indices = np.unique(np.asarray(mode_indices, dtype=int))
            if len(indices) and (indices[0] < 0 or indices[-1] >= photon.n_modes):
                raise InvalidInput(f"mode_indices out of range for {photon.n_modes} modes")
        self.mode_indices = indices
        self.poles = photon.frequencies[indices]

        # Mode values at r0 are needed at every root-search step
        self._emitter_values = photon.mode_values(self.emitter_position)[indices]

    @property
    def dimension(self) -> int:
        return self.photon.dimension

    @property
    def emitter_values(self) -> NDArray:
        """F_k0(r0) for the included modes, shape (n, d)."""
        return self._emitter_values

    @property
    def emitter_weights(self) -> NDArray:
        """|F_k0(r0)|² for the included modes."""
        return np.sum(np.abs(self._emitter_values)**2, axis=1)

    def restricted(self, mode_indices: ArrayLike) -> "SpectralGreenFunction":
        """Green's function over a subset of the vacuum modes."""
        return SpectralGreenFunction(
            self.photon, self.emitter_position, self.pole_epsilon, mode_indices
        )

    def _values(self, r: float) -> NDArray:
        if float(r) == self.emitter_position:
            return self._emitter_values
        return self.photon.mode_values(r)[self.mode_indices]

    def _check_pole(self, omega: float):
        if len(self.poles) == 0:
            return
        distance = np.abs(self.poles - omega)
        k = int(np.argmin(distance))
        if distance[k] < self.pole_epsilon:
            raise DivergentEvaluation(
                f"ω = {omega:.12g} is within {self.pole_epsilon:.1e} of vacuum pole "
                f"ω_{self.mode_indices[k]} = {self.poles[k]:.12g}",
                diagnostics={
                    'omega': omega,
                    'pole_index': int(self.mode_indices[k]),
                    'pole_frequency': float(self.poles[k]),
                    'distance': float(distance[k]),
                },
            )

    def _spectral_sum(self, r: float, r_prime: float, weights: NDArray) -> NDArray:
        F_r = self._values(r)
        F_rp = self._values(r_prime)
        return np.einsum('k,ki,kj->ij', weights, F_r, F_rp.conj())

    def evaluate(self, r: float, r_prime: float, omega: float) -> NDArray:
        """G(r, r', ω) as a d x d matrix."""
        omega = float(omega)
        self._check_pole(omega)
        weights = 1.0 / (self.poles**2 - omega**2)
        return self._spectral_sum(r, r_prime, weights)

    def derivative(self, r: float, r_prime: float, omega: float) -> NDArray:
        """∂G(r, r', ω)/∂ω as a d x d matrix."""
        omega = float(omega)
        self._check_pole(omega)
        weights = 2.0 * omega / (self.poles**2 - omega**2)**2
        return self._spectral_sum(r, r_prime, weights)

    def at_emitter(self, omega: float) -> NDArray:
        """G(r0, r0, ω)."""
        return self.evaluate(self.emitter_position, self.emitter_position, omega)

    def derivative_at_emitter(self, omega: float) -> NDArray:
        """∂G(r0, r0, ω)/∂ω."""
        return self.derivative(self.emitter_position, self.emitter_position, omega)


def split_dark_modes(green: SpectralGreenFunction, dark_mode_tolerance: float):
    """
    Partition the modes of ``green`` by their weight |F_k0(r0)|² at the emitter.

    Returns:
        (bright_indices, dark_indices) as integer arrays of vacuum mode indices.
    """
    weights = green.emitter_weights
    bright = green.mode_indices[weights >= dark_mode_tolerance]
    dark = green.mode_indices[weights < dark_mode_tolerance]
    return bright, dark
