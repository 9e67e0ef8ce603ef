"""
Dressed photon frequencies by bracketed Newton search.

The dressed cavity frequencies are the roots of the pole equation

    f(ω) = det(I_d + λ G(r0, r0, ω)) = 0          (f = 1 + λG for d = 1)

with f'(ω) = tr(adj(I + λG) · λ ∂G/∂ω) from the adjugate rule.

Bracket policy: between two vacuum poles, G(r0, r0, ω) is monotonically
increasing (∂G/∂ω is positive semidefinite), so for λ ⪰ 0 the dressed
partner of vacuum mode k lies just above ω_k0, in (ω_k0, ω_(k+1)0), and
the highest dressed mode lies above the highest vacuum frequency. For
λ ⪯ 0 everything shifts down: mode k lives in (ω_(k-1)0, ω_k0) and the
lowest mode below ω_10. The open-ended outermost bracket starts at
``boundary_factor`` times the adjacent vacuum spacing and is doubled
while it contains no sign change.

For weak coupling the root sits within about λ|F_k0(r0)|²/2ω_k0 of its
parent pole. The pole margin is shrunk by decades down to
``10 * pole_epsilon`` until the sign change appears. Roots closer still
are located with h(ω) = (ω_k0² - ω²) f(ω), which is finite at ω_k0.

Modes that vanish at the emitter (dark modes) do not couple and are
returned undressed.
"""

import numpy as np
from numpy.typing import NDArray
from dataclasses import dataclass
from typing import List, Optional, Tuple

from cqed_solver.core.coupling import CouplingParameters
from cqed_solver.core.errors import RootNotFound
from cqed_solver.core.parameters import SolverConfig
from cqed_solver.photon.green_function import SpectralGreenFunction, split_dark_modes


@dataclass(frozen=True)
class PhotonRoot:
    """One dressed photon frequency and how it was found."""
    frequency: float
    mode_index: int  # Parent vacuum mode
    bracket: Tuple[float, float]
    iterations: int
    residual: float  # |f(ω)| at the returned frequency, |h(ω)|/2ω_k next to the pole
    coupled: bool = True


@dataclass(frozen=True)
class PhotonRootResult:
    """All N_p dressed roots, sorted by frequency."""
    roots: Tuple[PhotonRoot, ...]
    coupling: CouplingParameters

    @property
    def frequencies(self) -> NDArray:
        return np.array([root.frequency for root in self.roots])

    @property
    def total_iterations(self) -> int:
        return sum(root.iterations for root in self.roots)

    @property
    def max_residual(self) -> float:
        return max((root.residual for root in self.roots), default=0.0)


@dataclass
class _Bracket:
    mode_index: int
    lower: float
    upper: float
    lower_is_pole: bool
    upper_is_pole: bool


def adjugate(M: NDArray) -> NDArray:
    """Adjugate (transposed cofactor matrix) of a small square matrix."""
    d = M.shape[0]
    if d == 1:
        return np.ones((1, 1), dtype=M.dtype)
    cofactors = np.empty_like(M)
    for i in range(d):
        for j in range(d):
            minor = np.delete(np.delete(M, i, axis=0), j, axis=1)
            cofactors[i, j] = (-1)**(i + j) * np.linalg.det(minor)
    return cofactors.T


class PhotonRootSolver:
    """
    Finds the N_p dressed photon frequencies, one per bracket.

    Attributes:
        green: Spectral Green's function of the vacuum modes.
        config: Solver settings (root_tolerance, root_max_iter,
            bracket_margin, boundary_factor, step_policy, ...).
    """

    def __init__(self, green: SpectralGreenFunction, config: Optional[SolverConfig] = None):
        self.green = green
        self.config = config if config is not None else SolverConfig()
        self.verbose = self.config.verbose

        self.bright_modes, self.dark_modes = split_dark_modes(green, self.config.dark_mode_tolerance)
        # Dark modes contribute nothing at r0 but would still trip the pole check
        self.bright_green = green.restricted(self.bright_modes)

    # -------------------------------------------------------------------------
    # Pole equation
    # -------------------------------------------------------------------------

    def pole_function(self, omega: float, coupling: CouplingParameters) -> float:
        """f(ω) = det(I + λ G(r0, r0, ω))."""
        return self._evaluate(omega, coupling.lambda_matrix(self.green.dimension))[0]

    def pole_function_derivative(self, omega: float, coupling: CouplingParameters) -> float:
        """f'(ω) from the adjugate rule."""
        return self._evaluate(omega, coupling.lambda_matrix(self.green.dimension))[1]

    def _evaluate(self, omega: float, lam: NDArray) -> Tuple[float, float]:
        G = self.bright_green.at_emitter(omega)
        dG = self.bright_green.derivative_at_emitter(omega)
        M = np.eye(len(lam), dtype=complex) + lam @ G
        f = np.linalg.det(M)
        df = np.trace(adjugate(M) @ (lam @ dG))
        # Real for Hermitian semidefinite λ and Hermitian G
        return float(np.real(f)), float(np.real(df))

    # -------------------------------------------------------------------------
    # Brackets
    # -------------------------------------------------------------------------

    def brackets(self, sign: int) -> List[_Bracket]:
        """Search interval for every bright mode given the sign of λ."""
        freqs = self.green.photon.frequencies
        bright = list(self.bright_modes)
        n = len(bright)
        factor = self.config.boundary_factor
        result = []
        if sign > 0:
            for i, k in enumerate(bright):
                if i + 1 < n:
                    result.append(_Bracket(k, freqs[k], freqs[bright[i + 1]], True, True))
                else:
                    spacing = freqs[k] - freqs[bright[i - 1]] if n > 1 else freqs[k]
                    result.append(_Bracket(k, freqs[k], freqs[k] + factor * spacing, True, False))
        else:
            for i, k in enumerate(bright):
                if i > 0:
                    result.append(_Bracket(k, freqs[bright[i - 1]], freqs[k], True, True))
                else:
                    spacing = freqs[bright[1]] - freqs[k] if n > 1 else freqs[k]
                    lower = max(0.0, freqs[k] - factor * spacing)
                    result.append(_Bracket(k, lower, freqs[k], False, True))
        return result

    # -------------------------------------------------------------------------
    # Solve
    # -------------------------------------------------------------------------

    def solve(self, coupling: CouplingParameters) -> PhotonRootResult:
        """
        Find all dressed frequencies for the given coupling.

        Args:
            coupling: Coupling parameters; only λ enters the pole equation.

        Returns:
            PhotonRootResult with exactly N_p roots sorted by frequency.

        Raises:
            RootNotFound: If any bracket fails; no partial result is returned.
            DivergentEvaluation: If a search point hits a vacuum pole.
        """
        freqs = self.green.photon.frequencies
        sign = coupling.sign

        if self.verbose:
            print("\n=== PhotonRootSolver ===")
            print(f"  Modes: {len(self.green.mode_indices)} "
                  f"({len(self.bright_modes)} bright, {len(self.dark_modes)} dark)")
            print(f"  lambda = {coupling.lambda_eff}")

        roots = []
        undressed = self.green.mode_indices if sign == 0 else self.dark_modes
        for k in undressed:
            roots.append(PhotonRoot(
                frequency=float(freqs[k]), mode_index=int(k),
                bracket=(float(freqs[k]), float(freqs[k])),
                iterations=0, residual=0.0, coupled=False
            ))

        if sign != 0 and len(self.bright_modes) > 0:
            lam = coupling.lambda_matrix(self.green.dimension)
            for bracket in self.brackets(sign):
                roots.append(self._solve_bracket(bracket, lam, sign))

        roots.sort(key=lambda root: root.frequency)
        return PhotonRootResult(roots=tuple(roots), coupling=coupling)

    def _solve_bracket(self, bracket: _Bracket, lam: NDArray, sign: int) -> PhotonRoot:
        cfg = self.config
        a, b = bracket.lower, bracket.upper
        min_delta = 10.0 * cfg.pole_epsilon
        delta = max(cfg.bracket_margin * (b - a), min_delta)

        def limits(a, b, delta):
            lo = a + delta if bracket.lower_is_pole else a
            hi = b - delta if bracket.upper_is_pole else b
            return lo, hi

        lo, hi = limits(a, b, delta)
        if not lo < hi:
            raise RootNotFound(
                f"Bracket ({a:.12g}, {b:.12g}) for mode {bracket.mode_index} is narrower "
                f"than the pole margin",
                diagnostics={'mode_index': bracket.mode_index, 'bracket': (a, b)},
            )
        f_lo = self._evaluate(lo, lam)[0]
        f_hi = self._evaluate(hi, lam)[0]

        expansions = 0
        while f_lo * f_hi > 0:
            can_widen = (
                not (bracket.lower_is_pole and bracket.upper_is_pole)
                and expansions < cfg.boundary_max_expansions
                and (bracket.lower_is_pole or a > 0.0)
            )
            if delta > min_delta:
                # Weak coupling leaves the root closer to its parent pole than the margin
                delta = max(0.1 * delta, min_delta)
            elif can_widen:
                width = b - a
                if bracket.upper_is_pole:
                    a = max(0.0, b - 2.0 * width)
                else:
                    b = a + 2.0 * width
                expansions += 1
            else:
                root = self._root_at_parent_pole(bracket, lam, sign, lo, hi, f_lo, f_hi)
                if root is not None:
                    return root
                raise RootNotFound(
                    f"No sign change of the pole equation in bracket ({a:.12g}, {b:.12g}) "
                    f"for mode {bracket.mode_index} (f = {f_lo:.3e} .. {f_hi:.3e}); "
                    f"retry with a different bracket_margin or boundary_factor",
                    diagnostics={
                        'mode_index': bracket.mode_index,
                        'bracket': (a, b),
                        'f_lower': f_lo,
                        'f_upper': f_hi,
                        'margin': delta,
                        'expansions': expansions,
                    },
                )
            lo, hi = limits(a, b, delta)
            f_lo = self._evaluate(lo, lam)[0]
            f_hi = self._evaluate(hi, lam)[0]

        if self.verbose and expansions:
            print(f"  Mode {bracket.mode_index}: boundary bracket widened {expansions}x "
                  f"to ({a:.6g}, {b:.6g})")

        omega, iterations, residual = self._newton(bracket.mode_index, lo, hi, f_lo, f_hi, lam)

        if self.verbose:
            print(f"  Mode {bracket.mode_index}: omega = {omega:.12g} in ({a:.6g}, {b:.6g}), "
                  f"{iterations} iterations, |f| = {residual:.2e}")

        return PhotonRoot(
            frequency=omega, mode_index=int(bracket.mode_index), bracket=(float(a), float(b)),
            iterations=iterations, residual=residual, coupled=True
        )

    def _pole_limit(self, mode_index: int, lam: NDArray) -> float:
        """
        h(ω_k) for h(ω) = (ω_k² - ω²) f(ω), which stays finite at ω_k.

        By the matrix determinant lemma h(ω_k) = F_k† adj(I + λ G') λ F_k,
        where G' omits mode k.
        """
        pole = self.green.photon.frequencies[mode_index]
        others = [k for k in self.bright_modes if k != mode_index]
        G_rest = self.bright_green.restricted(others).at_emitter(pole)
        F = self.green.photon.mode_values(self.green.emitter_position)[mode_index]
        M = np.eye(len(lam), dtype=complex) + lam @ G_rest
        return float(np.real(F.conj() @ adjugate(M) @ lam @ F))

    def _root_at_parent_pole(
        self,
        bracket: _Bracket,
        lam: NDArray,
        sign: int,
        lo: float,
        hi: float,
        f_lo: float,
        f_hi: float
    ) -> Optional[PhotonRoot]:
        """
        Root lying between the parent pole and the innermost search point.

        A sign change of h between ω_k and the search point next to it puts
        the root within ``10 * pole_epsilon`` of ω_k. The search point is
        returned when that distance is below ``root_tolerance``; the
        reported residual is |h| / 2ω_k, the approximate distance to the
        root.
        """
        cfg = self.config
        if 10.0 * cfg.pole_epsilon > cfg.root_tolerance:
            return None
        k = bracket.mode_index
        pole = float(self.green.photon.frequencies[k])
        omega, f = (lo, f_lo) if sign > 0 else (hi, f_hi)
        h_near = (pole**2 - omega**2) * f
        if self._pole_limit(k, lam) * h_near >= 0:
            return None

        if self.verbose:
            print(f"  Mode {k}: root within {abs(omega - pole):.1e} of its vacuum pole, "
                  f"omega = {omega:.12g}")

        return PhotonRoot(
            frequency=float(omega), mode_index=int(k),
            bracket=(float(bracket.lower), float(bracket.upper)),
            iterations=0, residual=abs(h_near) / (2.0 * pole), coupled=True
        )

    def _newton(
        self,
        mode_index: int,
        lo: float,
        hi: float,
        f_lo: float,
        f_hi: float,
        lam: NDArray
    ) -> Tuple[float, int, float]:
        """
        Newton iteration from the bracket midpoint.

        Keeps a sign-change interval [x_neg, x_pos]; with step_policy
        'clamp' a step leaving it is replaced by bisection, with 'fail' a
        step leaving the bracket raises RootNotFound.
        """
        cfg = self.config
        tol = cfg.root_tolerance
        if f_lo == 0.0:
            return lo, 0, 0.0
        if f_hi == 0.0:
            return hi, 0, 0.0

        x_neg, x_pos = (lo, hi) if f_lo < 0 else (hi, lo)
        omega = 0.5 * (lo + hi)
        f, df = self._evaluate(omega, lam)

        for iteration in range(1, cfg.root_max_iter + 1):
            if abs(f) < tol:
                return omega, iteration - 1, abs(f)

            if f < 0:
                x_neg = omega
            else:
                x_pos = omega
            lower, upper = min(x_neg, x_pos), max(x_neg, x_pos)

            candidate = omega - f / df if df != 0.0 and np.isfinite(df) else np.nan
            if cfg.step_policy == "fail":
                if not lo <= candidate <= hi:
                    raise RootNotFound(
                        f"Newton step for mode {mode_index} leaves the bracket "
                        f"({lo:.12g}, {hi:.12g}) at iteration {iteration}",
                        diagnostics={
                            'mode_index': mode_index,
                            'iterations': iteration,
                            'omega': omega,
                            'residual': abs(f),
                            'step_target': candidate,
                        },
                    )
            elif not lower < candidate < upper:
                candidate = 0.5 * (lower + upper)

            step = candidate - omega
            omega = candidate
            f, df = self._evaluate(omega, lam)

            if abs(step) < tol or upper - lower < tol:
                return omega, iteration, abs(f)

        raise RootNotFound(
            f"Newton search for mode {mode_index} did not converge in "
            f"{cfg.root_max_iter} iterations",
            diagnostics={
                'mode_index': mode_index,
                'iterations': cfg.root_max_iter,
                'omega': omega,
                'residual': abs(f),
                'bracket': (lo, hi),
            },
        )
