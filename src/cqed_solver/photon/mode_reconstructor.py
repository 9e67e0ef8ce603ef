"""
Dressed photon mode profiles.

For a converged root ω_n with unit null vector u_n of I + λ G(r0, r0, ω_n),

    F_n(r) = c_n · G(r, r0, ω_n) · u_n

which on the root equals -λ G(r, r0, ω_n) F_n(r0): the profile is fixed by
its value at the emitter up to one overall scale. The scale follows the
unit-residue convention

    c_n² = 2 ω_n / (u_n^† ∂G/∂ω(r0, r0, ω_n) u_n)

under which the dressed Green's function G - Gλ(I + λG)^{-1}G equals
Σ_n F_n(r) F_n(r')^† / (ω_n² - ω²). Two consequences serve as checks:
as λ → 0 every dressed mode tends to its vacuum parent, and the dressed
modes satisfy the same completeness sum Σ_n F_n(r) F_n(r')^† as the bare
ones. The overall phase is chosen so that F_n(r0) overlaps its vacuum
parent F_k0(r0) with a non-negative real amplitude.
"""

import numpy as np
from numpy.typing import NDArray, ArrayLike
from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple
from scipy.linalg import svd

from cqed_solver.core.coupling import CouplingParameters
from cqed_solver.core.errors import RootNotFound
from cqed_solver.core.parameters import SolverConfig
from cqed_solver.core.systems import PhotonSystem, frozen_array
from cqed_solver.photon.green_function import SpectralGreenFunction, split_dark_modes
from cqed_solver.photon.root_solver import PhotonRoot, PhotonRootResult


@dataclass(frozen=True, eq=False)
class DressedPhotonMode:
    """
    One dressed cavity mode (ω_n, F_n).

    Attributes:
        frequency: Dressed frequency ω_n.
        mode_index: Parent vacuum mode.
        emitter_value: F_n(r0), shape (d,).
        coupled: False for modes that do not see the emitter (returned undressed).
    """
    frequency: float
    mode_index: int
    emitter_value: NDArray
    coupled: bool
    green: SpectralGreenFunction = field(repr=False)
    null_vector: Optional[NDArray] = field(default=None, repr=False)
    scale: complex = field(default=1.0, repr=False)

    def __post_init__(self):
        object.__setattr__(self, "emitter_value", frozen_array(self.emitter_value))
        if self.null_vector is not None:
            object.__setattr__(self, "null_vector", frozen_array(self.null_vector))

    @property
    def emitter_weight(self) -> float:
        """|F_n(r0)|², the weight entering the matter self-energy."""
        return float(np.sum(np.abs(self.emitter_value)**2))

    def profile(self, r: float) -> NDArray:
        """F_n(r), shape (d,)."""
        if not self.coupled:
            return self.green.photon.mode_values(r)[self.mode_index]
        G = self.green.evaluate(r, self.green.emitter_position, self.frequency)
        value = self.scale * (G @ self.null_vector)
        return value.real if np.isrealobj(self.emitter_value) else value

    def sample(self, positions: ArrayLike) -> NDArray:
        """F_n on a set of positions, shape (len(positions), d)."""
        return np.array([self.profile(r) for r in np.atleast_1d(positions)])


class PhotonModeReconstructor:
    """
    Converts dressed roots into normalized dressed mode profiles.

    Attributes:
        green: Green's function of all vacuum modes.
        bright_green: Green's function restricted to modes seen by the emitter.
    """

    def __init__(self, green: SpectralGreenFunction, config: Optional[SolverConfig] = None):
        self.green = green
        self.config = config if config is not None else SolverConfig()
        bright, _ = split_dark_modes(green, self.config.dark_mode_tolerance)
        self.bright_green = green.restricted(bright)

    def reconstruct(self, root: PhotonRoot, coupling: CouplingParameters) -> DressedPhotonMode:
        """
        Build the normalized dressed profile for one root.

        Raises:
            RootNotFound: If ω_n is not a simple root (vanishing residue).
        """
        photon = self.green.photon
        r0 = self.green.emitter_position
        parent = photon.mode_values(r0)[root.mode_index]

        if not root.coupled:
            return DressedPhotonMode(
                frequency=root.frequency, mode_index=root.mode_index,
                emitter_value=np.array(parent), coupled=False, green=self.green
            )

        omega = root.frequency
        d = self.green.dimension
        G = self.bright_green.at_emitter(omega)
        dG = self.bright_green.derivative_at_emitter(omega)
        M = np.eye(d, dtype=complex) + coupling.lambda_matrix(d) @ G

        # Right singular vector of the smallest singular value spans the null space
        _, _, Vh = svd(M)
        u = Vh[-1].conj()
        pivot = int(np.argmax(np.abs(u)))
        u = u * (np.conj(u[pivot]) / abs(u[pivot]))

        residue = float(np.real(np.vdot(u, dG @ u)))
        if residue <= 0:
            raise RootNotFound(
                f"Dressed mode {root.mode_index} at ω = {omega:.12g} has a non-positive "
                f"residue denominator ({residue:.3e})",
                diagnostics={'mode_index': root.mode_index, 'omega': omega, 'residue': residue},
            )
        scale = np.sqrt(2.0 * omega / residue) + 0j
        emitter_value = scale * (G @ u)

        # Phase convention: non-negative overlap with the vacuum parent
        overlap = np.vdot(parent, emitter_value)
        if abs(overlap) > 0:
            phase = np.conj(overlap) / abs(overlap)
            scale *= phase
            emitter_value = emitter_value * phase

        if not np.iscomplexobj(parent) and np.allclose(emitter_value.imag, 0.0):
            emitter_value = emitter_value.real

        return DressedPhotonMode(
            frequency=omega, mode_index=root.mode_index, emitter_value=emitter_value,
            coupled=True, green=self.bright_green, null_vector=u, scale=scale
        )

    def reconstruct_all(self, roots: PhotonRootResult) -> Tuple[DressedPhotonMode, ...]:
        """Reconstruct every root of a photon solve, keeping the frequency order."""
        return tuple(self.reconstruct(root, roots.coupling) for root in roots.roots)


def completeness_matrix(modes: Sequence[DressedPhotonMode], r: float, r_prime: float) -> NDArray:
    """Σ_n F_n(r) F_n(r')^† over a set of modes."""
    return sum(np.outer(mode.profile(r), mode.profile(r_prime).conj()) for mode in modes)


def completeness_residual(
    modes: Sequence[DressedPhotonMode],
    photon: PhotonSystem,
    r: float,
    r_prime: float
) -> float:
    """
    Largest deviation between the dressed and bare completeness sums.

    Σ_n F_n(r) F_n(r')^† - Σ_k F_k0(r) F_k0(r')^†, which vanishes for a
    complete set of unit-residue dressed modes.
    """
    F_r = photon.mode_values(r)
    F_rp = photon.mode_values(r_prime)
    bare = np.einsum('ki,kj->ij', F_r, F_rp.conj())
    return float(np.max(np.abs(completeness_matrix(modes, r, r_prime) - bare)))
