"""
Fixed-point acceleration.

Anderson mixing (Anderson acceleration) for the matter fixed point
x = T(x). With history depth m the mixer keeps m + 1 pairs of iterates
and update steps; m = 0 reduces to damped substitution

    x_new = x + β (T(x) - x)

and m = 0, β = 1 to plain substitution x_new = T(x).

For m > 0, with update steps f_i = T(x_i) - x_i and the difference
matrices ΔX = [x_(i+1) - x_i], ΔF = [f_(i+1) - f_i] over the stored
history, the mixed iterate is

    x_new = x + β f - (ΔX + β ΔF) γ,    γ = argmin ||f - ΔF γ||

Reference: Anderson, J. ACM 12, 547 (1965)
"""

import numpy as np
from numpy.typing import NDArray
from scipy.linalg import lstsq
from collections import deque
from typing import Deque, Tuple
from dataclasses import dataclass

from cqed_solver.core.errors import InvalidInput
from cqed_solver.core.systems import frozen_array


@dataclass(frozen=True, eq=False)
class ConvergenceInfo:
    """Fixed-point convergence record; histories are stored as tuples."""
    converged: bool
    iterations: int
    energy_history: Tuple[NDArray, ...] = ()
    residual_history: Tuple[float, ...] = ()
    final_residual: float = np.inf
    mixing_method: str = "substitution"

    def __post_init__(self):
        object.__setattr__(self, "energy_history",
                           tuple(frozen_array(energies) for energies in self.energy_history))
        object.__setattr__(self, "residual_history",
                           tuple(float(residual) for residual in self.residual_history))


class AndersonMixer:
    """
    Anderson mixing of real or complex iterate vectors.

    Attributes:
        depth: Number of difference columns used (m).
        beta: Damping applied to the update step.
        max_vectors: History length, m + 1.
    """

    def __init__(self, depth: int = 0, beta: float = 1.0):
        """
        Args:
            depth: History depth m >= 0; 0 means damped substitution.
            beta: Damping in (0, 1].
        """
        if depth < 0:
            raise InvalidInput(f"Anderson depth must be non-negative, got {depth}")
        if not 0.0 < beta <= 1.0:
            raise InvalidInput(f"Anderson damping must be in (0, 1], got {beta}")
        self.depth = depth
        self.beta = beta
        self.max_vectors = depth + 1

        self.x_history: Deque[NDArray] = deque(maxlen=self.max_vectors)
        self.f_history: Deque[NDArray] = deque(maxlen=self.max_vectors)

    @property
    def method(self) -> str:
        if self.depth == 0:
            return "substitution" if self.beta == 1.0 else "damped"
        return "anderson"

    def reset(self):
        """Forget all stored iterates."""
        self.x_history.clear()
        self.f_history.clear()

    def mix(self, x_old: NDArray, x_step: NDArray) -> NDArray:
        """
        Next iterate from x_old and its image x_step = T(x_old).

        Returns a new array; the inputs are copied into the history.
        """
        f = x_step - x_old
        self.x_history.append(np.array(x_old, copy=True))
        self.f_history.append(np.array(f, copy=True))

        linear = x_old + self.beta * f
        if len(self.x_history) < 2:
            return linear

        X = np.column_stack(self.x_history)
        F = np.column_stack(self.f_history)
        dX = np.diff(X, axis=1)
        dF = np.diff(F, axis=1)

        try:
            gamma = lstsq(dF, f, lapack_driver='gelsy')[0]
        except np.linalg.LinAlgError:
            return linear

        return linear - (dX + self.beta * dF) @ gamma
