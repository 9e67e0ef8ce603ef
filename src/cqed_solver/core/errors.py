"""
Exception taxonomy for the cavity QED solver.

Every solver failure derives from CQEDSolverError and carries a
``diagnostics`` dictionary (iteration count, last residual, which bracket
or term failed) so callers can decide whether to retry with relaxed
settings. Recoverable resonances are reported as warnings instead.
"""

from typing import Any, Dict, Optional


class CQEDSolverError(Exception):
    """Base class for all solver failures."""

    def __init__(self, message: str, diagnostics: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.diagnostics: Dict[str, Any] = dict(diagnostics or {})


class InvalidInput(CQEDSolverError, ValueError):
    """Malformed system data or configuration, raised at construction time."""


class DivergentEvaluation(CQEDSolverError, ArithmeticError):
    """Green's function requested within epsilon of a vacuum pole."""


class RootNotFound(CQEDSolverError, RuntimeError):
    """Newton search for a dressed photon frequency failed in its bracket."""


class ResonanceFailure(CQEDSolverError, ArithmeticError):
    """Self-energy denominator vanished under the 'fail' resonance policy."""


class NonConvergence(CQEDSolverError, RuntimeError):
    """Matter fixed-point iteration exceeded its iteration cap."""


class ResonanceWarning(UserWarning):
    """Self-energy denominator near zero; term skipped or clamped."""
