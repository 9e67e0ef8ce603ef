"""
Self-consistent matter eigenproblem.

Solves the nonlinear eigenvalue problem

    (H + Σ[E, ψ]) ψ_i = E_i ψ_i

where the photon-induced self-energy Σ depends on the eigenpairs
themselves. The iteration map T takes the current (E, ψ), builds Σ,
diagonalizes H + Σ and aligns the gauge of the new eigenvectors with the
old ones (a phase per level, a unitary rotation inside degenerate
clusters), so that the stacked vector x = (E, vec ψ) has a meaningful
residual T(x) - x. Iterates are combined by Anderson mixing and the
eigenvector block is re-orthonormalized (Löwdin) after every mixed step.

Oscillating residuals are the typical failure mode; they call for a
deeper mixing history and a smaller damping.
"""

import warnings
import numpy as np
from numpy.typing import NDArray
from scipy.linalg import eigh, svd
from typing import List, Optional, Sequence, Tuple
from dataclasses import dataclass

from cqed_solver.core.errors import InvalidInput, NonConvergence
from cqed_solver.core.parameters import SolverConfig
from cqed_solver.core.systems import MatterSystem, frozen_array
from cqed_solver.eigensolver.mixing import AndersonMixer, ConvergenceInfo
from cqed_solver.eigensolver.self_energy import SelfEnergyBuilder, SelfEnergyResult


@dataclass
class FixedPointStep:
    """One application of the iteration map, without mixing."""
    energies: NDArray
    states: NDArray
    residual: float
    self_energy: SelfEnergyResult


@dataclass(frozen=True, eq=False)
class MatterFixedPointResult:
    """Converged dressed matter eigenpairs (read-only)."""
    energies: NDArray
    states: NDArray
    self_energy: NDArray
    info: ConvergenceInfo
    skipped_terms: int = 0
    clamped_terms: int = 0

    def __post_init__(self):
        for name in ("energies", "states", "self_energy"):
            object.__setattr__(self, name, frozen_array(getattr(self, name)))

    @property
    def converged(self) -> bool:
        return self.info.converged

    @property
    def iterations(self) -> int:
        return self.info.iterations

    @property
    def final_residual(self) -> float:
        return self.info.final_residual


def degenerate_clusters(energies: NDArray, tolerance: float) -> List[NDArray]:
    """Group consecutive sorted levels closer than ``tolerance``."""
    clusters = []
    start = 0
    for i in range(1, len(energies) + 1):
        if i == len(energies) or energies[i] - energies[i - 1] >= tolerance:
            clusters.append(np.arange(start, i))
            start = i
    return clusters


def align_gauge(new_states: NDArray, old_states: NDArray, new_energies: NDArray,
                tolerance: float) -> NDArray:
    """
    Rotate new eigenvectors towards the old ones.

    Within each degenerate cluster the unitary R minimizing
    ||ψ'_c R - ψ_c|| is U V^† from the SVD of ψ'_c^† ψ_c (orthogonal
    Procrustes); for an isolated level this is the phase of <ψ'|ψ>.
    """
    aligned = np.array(new_states, dtype=complex, copy=True)
    for cluster in degenerate_clusters(new_energies, tolerance):
        overlap = new_states[:, cluster].conj().T @ old_states[:, cluster]
        U, _, Vh = svd(overlap)
        aligned[:, cluster] = new_states[:, cluster] @ (U @ Vh)
    return aligned


def lowdin_orthonormalize(states: NDArray) -> NDArray:
    """Symmetric orthonormalization ψ S^{-1/2}, S = ψ^† ψ."""
    overlap = states.conj().T @ states
    s, V = eigh(overlap)
    if np.min(s) <= 0:
        raise InvalidInput("Mixed eigenvectors are linearly dependent")
    inv_sqrt = (V * (1.0 / np.sqrt(s))[None, :]) @ V.conj().T
    return states @ inv_sqrt


def residuals_oscillate(history: Sequence[float], window: int = 6) -> bool:
    """True when the last ``window`` residuals alternate up and down."""
    if len(history) < window:
        return False
    steps = np.diff(np.asarray(history[-window:]))
    sign_changes = np.sum(np.sign(steps[1:]) != np.sign(steps[:-1]))
    return bool(sign_changes >= window - 2)


class MatterFixedPointSolver:
    """
    Anderson-mixed fixed-point iteration for the dressed matter levels.

    Attributes:
        matter: Bare matter system (H, p).
        builder: Self-energy builder holding α and the photon data.
        config: fixedpoint_tolerance, fixedpoint_max_iter, mixing_depth,
            damping, degeneracy_tolerance, verbose.
    """

    def __init__(
        self,
        matter: MatterSystem,
        builder: SelfEnergyBuilder,
        config: Optional[SolverConfig] = None
    ):
        self.matter = matter
        self.builder = builder
        self.config = config if config is not None else SolverConfig()
        self.verbose = self.config.verbose

        if builder.dipole.shape != matter.hamiltonian.shape:
            raise InvalidInput(
                f"Self-energy dipole shape {builder.dipole.shape} does not match "
                f"the Hamiltonian {matter.hamiltonian.shape}"
            )

    @classmethod
    def from_modes(cls, matter: MatterSystem, alpha: float, modes: Sequence,
                   config: Optional[SolverConfig] = None) -> "MatterFixedPointSolver":
        """Convenience constructor from dressed photon modes."""
        builder = SelfEnergyBuilder.from_modes(matter.dipole, alpha, modes, config)
        return cls(matter, builder, config)

    # -------------------------------------------------------------------------
    # Packing
    # -------------------------------------------------------------------------

    @staticmethod
    def _pack(energies: NDArray, states: NDArray) -> NDArray:
        return np.concatenate([np.asarray(energies, dtype=complex), states.ravel()])

    def _unpack(self, x: NDArray) -> Tuple[NDArray, NDArray]:
        n = self.matter.dimension
        return x[:n].real.copy(), x[n:].reshape(n, n).copy()

    # -------------------------------------------------------------------------
    # Iteration map
    # -------------------------------------------------------------------------

    def _map(self, energies: NDArray, states: NDArray) -> Tuple[NDArray, NDArray, SelfEnergyResult]:
        sigma = self.builder.build(energies, states)
        new_energies, new_states = eigh(self.matter.hamiltonian + sigma.matrix)
        new_states = align_gauge(new_states, states, new_energies,
                                 self.config.degeneracy_tolerance)
        return new_energies, new_states, sigma

    def step(self, energies: NDArray, states: NDArray) -> FixedPointStep:
        """
        One unmixed iteration from (E, ψ).

        Returns:
            FixedPointStep with the new eigenpairs and ||T(x) - x||.
        """
        energies, states = self._check_guess(energies, states)
        new_energies, new_states, sigma = self._map(energies, states)
        residual = float(np.linalg.norm(
            self._pack(new_energies, new_states) - self._pack(energies, states)
        ))
        return FixedPointStep(new_energies, new_states, residual, sigma)

    def _check_guess(self, energies: Optional[NDArray], states: Optional[NDArray]):
        n = self.matter.dimension
        if energies is None:
            energies = self.matter.bare_energies
        if states is None:
            states = self.matter.bare_states
        energies = np.array(energies, dtype=float)
        states = np.array(states, dtype=complex)
        if energies.shape != (n,) or states.shape != (n, n):
            raise InvalidInput(
                f"Initial guess must have shapes ({n},) and ({n}, {n}), got "
                f"{energies.shape} and {states.shape}"
            )
        return energies, states

    # -------------------------------------------------------------------------
    # Solve
    # -------------------------------------------------------------------------

    def solve(
        self,
        initial_energies: Optional[NDArray] = None,
        initial_states: Optional[NDArray] = None
    ) -> MatterFixedPointResult:
        """
        Iterate to self-consistency.

        Args:
            initial_energies: Starting E (default: bare eigenvalues).
            initial_states: Starting ψ (default: bare eigenvectors).

        Returns:
            MatterFixedPointResult holding the latest diagonalization.

        Raises:
            NonConvergence: If fixedpoint_max_iter is reached.
            ResonanceFailure: From the self-energy under policy 'fail'.
        """
        cfg = self.config
        energies, states = self._check_guess(initial_energies, initial_states)
        mixer = AndersonMixer(depth=cfg.mixing_depth, beta=cfg.damping)
        substitution = mixer.method == "substitution"

        if self.verbose:
            print("\n=== MatterFixedPointSolver ===")
            print(f"  Levels: {self.matter.dimension}, alpha = {self.builder.alpha:.6g}")
            print(f"  Mixing: {mixer.method} (m = {cfg.mixing_depth}, beta = {cfg.damping})")

        residual_history: List[float] = []
        energy_history: List[NDArray] = []
        warned_oscillation = False
        skipped = clamped = 0

        for iteration in range(1, cfg.fixedpoint_max_iter + 1):
            new_energies, new_states, sigma = self._map(energies, states)
            skipped += sigma.skipped
            clamped += sigma.clamped

            x_old = self._pack(energies, states)
            x_step = self._pack(new_energies, new_states)
            residual = float(np.linalg.norm(x_step - x_old))
            residual_history.append(residual)
            energy_history.append(new_energies.copy())

            if self.verbose and (iteration <= 5 or iteration % 10 == 0):
                print(f"  Iter {iteration:4d}: residual = {residual:.3e}, "
                      f"E_ref = {new_energies[cfg.reference_level]:.10f}")

            if residual < cfg.fixedpoint_tolerance:
                if self.verbose:
                    print(f"  Converged after {iteration} iterations (residual {residual:.2e})")
                info = ConvergenceInfo(
                    converged=True,
                    iterations=iteration,
                    energy_history=energy_history,
                    residual_history=residual_history,
                    final_residual=residual,
                    mixing_method=mixer.method,
                )
                return MatterFixedPointResult(
                    energies=new_energies,
                    states=new_states,
                    self_energy=sigma.matrix,
                    info=info,
                    skipped_terms=skipped,
                    clamped_terms=clamped,
                )

            if not warned_oscillation and residuals_oscillate(residual_history):
                warnings.warn(
                    "Matter fixed-point residual is oscillating; consider a larger "
                    "mixing_depth and a smaller damping",
                    RuntimeWarning,
                    stacklevel=2,
                )
                warned_oscillation = True

            if substitution:
                energies, states = new_energies, new_states
            else:
                energies, states = self._unpack(mixer.mix(x_old, x_step))
                states = lowdin_orthonormalize(states)

        oscillating = residuals_oscillate(residual_history)
        hint = (" The residual oscillates: increase mixing_depth and reduce damping."
                if oscillating else "")
        raise NonConvergence(
            f"Matter fixed point did not converge in {cfg.fixedpoint_max_iter} iterations "
            f"(residual {residual_history[-1]:.3e} > {cfg.fixedpoint_tolerance:.1e}).{hint}",
            diagnostics={
                'iterations': cfg.fixedpoint_max_iter,
                'final_residual': residual_history[-1],
                'residual_history': residual_history,
                'oscillating': oscillating,
                'mixing_depth': cfg.mixing_depth,
                'damping': cfg.damping,
            },
        )
