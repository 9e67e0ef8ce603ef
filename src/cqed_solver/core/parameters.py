"""
SolverConfig dataclass for configuring the cavity QED solver.

The configuration collects every tolerance, iteration cap and policy the
photon root search, the self-energy builder and the matter fixed-point
iteration recognize. Defaults come from solver_config.json.
"""

from dataclasses import dataclass, asdict, fields, replace as dc_replace
from typing import Any, Dict, Optional, Union
from pathlib import Path

from cqed_solver.core.constants import (
    _LOADED_CONFIG,
    RESONANCE_POLICIES,
    STEP_POLICIES,
    load_config_from_json,
    save_config_to_json,
)
from cqed_solver.core.errors import InvalidInput


@dataclass(frozen=True)
class SolverConfig:
    """
    Settings for one solve invocation.

    Attributes:
        root_tolerance: Newton stops when |f(ω)| or |Δω| drops below this.
        root_max_iter: Newton iteration cap per bracket.
        pole_epsilon: Distance from a vacuum frequency below which the
            Green's function refuses to evaluate.
        bracket_margin: Relative margin kept between search points and the
            bracket ends.
        boundary_factor: Width of the outermost bracket in units of the
            adjacent vacuum spacing.
        boundary_max_expansions: How many times the outermost bracket may
            be doubled when it contains no sign change.
        step_policy: 'clamp' (bisect when Newton leaves the bracket) or
            'fail' (raise RootNotFound).
        dark_mode_tolerance: Modes with |F_k0(r0)|² below this do not couple
            to the emitter and are returned undressed.
        fixedpoint_tolerance: Residual norm at which the matter iteration stops.
        fixedpoint_max_iter: Matter iteration cap.
        mixing_depth: Anderson history depth m (0 = plain substitution).
        damping: Anderson damping β, 0 < β ≤ 1.
        degeneracy_tolerance: Energy window used to group degenerate levels
            when aligning eigenvector gauges.
        resonance_policy: 'skip', 'clamp' or 'fail' for near-zero
            self-energy denominators.
        resonance_tolerance: Denominator magnitude treated as resonant.
        reference_level: Index of the reference level E_1 (0 = lowest).
        verbose: Print iteration progress.
    """

    root_tolerance: float = _LOADED_CONFIG["root_tolerance"]
    root_max_iter: int = _LOADED_CONFIG["root_max_iter"]
    pole_epsilon: float = _LOADED_CONFIG["pole_epsilon"]
    bracket_margin: float = _LOADED_CONFIG["bracket_margin"]
    boundary_factor: float = _LOADED_CONFIG["boundary_factor"]
    boundary_max_expansions: int = _LOADED_CONFIG["boundary_max_expansions"]
    step_policy: str = _LOADED_CONFIG["step_policy"]
    dark_mode_tolerance: float = _LOADED_CONFIG["dark_mode_tolerance"]

    fixedpoint_tolerance: float = _LOADED_CONFIG["fixedpoint_tolerance"]
    fixedpoint_max_iter: int = _LOADED_CONFIG["fixedpoint_max_iter"]
    mixing_depth: int = _LOADED_CONFIG["mixing_depth"]
    damping: float = _LOADED_CONFIG["damping"]
    degeneracy_tolerance: float = _LOADED_CONFIG["degeneracy_tolerance"]

    resonance_policy: str = _LOADED_CONFIG["resonance_policy"]
    resonance_tolerance: float = _LOADED_CONFIG["resonance_tolerance"]
    reference_level: int = _LOADED_CONFIG["reference_level"]

    verbose: bool = _LOADED_CONFIG["verbose"]

    def __post_init__(self):
        self._validate()

    def _validate(self):
        """Validate setting values."""
        for name in ("root_tolerance", "pole_epsilon", "fixedpoint_tolerance",
                     "resonance_tolerance", "boundary_factor"):
            value = getattr(self, name)
            if not value > 0:
                raise InvalidInput(f"{name} must be positive, got {value}")
        if not 0 < self.bracket_margin < 0.5:
            raise InvalidInput(f"bracket_margin must lie in (0, 0.5), got {self.bracket_margin}")
        if self.dark_mode_tolerance < 0:
            raise InvalidInput(
                f"dark_mode_tolerance must be non-negative, got {self.dark_mode_tolerance}"
            )
        if self.degeneracy_tolerance < 0:
            raise InvalidInput(
                f"degeneracy_tolerance must be non-negative, got {self.degeneracy_tolerance}"
            )
        for name in ("root_max_iter", "fixedpoint_max_iter"):
            value = getattr(self, name)
            if int(value) != value or value < 1:
                raise InvalidInput(f"{name} must be a positive integer, got {value}")
        if int(self.boundary_max_expansions) != self.boundary_max_expansions or self.boundary_max_expansions < 0:
            raise InvalidInput(
                f"boundary_max_expansions must be a non-negative integer, "
                f"got {self.boundary_max_expansions}"
            )
        if int(self.mixing_depth) != self.mixing_depth or self.mixing_depth < 0:
            raise InvalidInput(f"mixing_depth must be a non-negative integer, got {self.mixing_depth}")
        if not 0 < self.damping <= 1:
            raise InvalidInput(f"damping must lie in (0, 1], got {self.damping}")
        if int(self.reference_level) != self.reference_level or self.reference_level < 0:
            raise InvalidInput(
                f"reference_level must be a non-negative integer, got {self.reference_level}"
            )
        if self.resonance_policy not in RESONANCE_POLICIES:
            raise InvalidInput(
                f"resonance_policy must be one of {RESONANCE_POLICIES}, got {self.resonance_policy!r}"
            )
        if self.step_policy not in STEP_POLICIES:
            raise InvalidInput(
                f"step_policy must be one of {STEP_POLICIES}, got {self.step_policy!r}"
            )

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> "SolverConfig":
        """Create a configuration from a dictionary, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(config_dict) - known)
        if unknown:
            raise InvalidInput(f"Unknown configuration keys: {', '.join(unknown)}")
        return cls(**config_dict)

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> "SolverConfig":
        """Load a configuration file, filling missing keys from the defaults."""
        return cls.from_dict(load_config_from_json(path))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def save(self, path: Union[str, Path]) -> None:
        save_config_to_json(self.to_dict(), path)

    def replace(self, **changes) -> "SolverConfig":
        """Return a copy with some settings changed (validated again)."""
        return dc_replace(self, **changes)


def resolve_config(config: Optional[Union[SolverConfig, Dict[str, Any]]] = None, **overrides) -> SolverConfig:
    """
    Normalize the accepted configuration forms into a SolverConfig.

    Args:
        config: None (defaults), a SolverConfig, or a plain dictionary.
        **overrides: Individual settings applied on top.

    Returns:
        Validated SolverConfig.
    """
    if config is None:
        resolved = SolverConfig()
    elif isinstance(config, SolverConfig):
        resolved = config
    elif isinstance(config, dict):
        resolved = SolverConfig.from_dict(config)
    else:
        raise InvalidInput(f"config must be a SolverConfig or dict, got {type(config).__name__}")
    if overrides:
        resolved = resolved.replace(**overrides)
    return resolved
