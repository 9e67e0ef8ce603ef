"""
Default solver settings for the cavity QED solver.

Defaults are loaded from solver_config.json (same directory as this file)
if available, otherwise the in-code values below are used. Values present
in the JSON file override the in-code defaults key by key.
"""

import json
import warnings
from pathlib import Path
from typing import Dict, Any, Optional, Union

# =============================================================================
# Load Default Settings from JSON
# =============================================================================

# Path to solver_config.json (same directory as this file)
_CONFIG_JSON_PATH = Path(__file__).parent / "solver_config.json"

# In-code defaults (used if solver_config.json is missing or incomplete)
_DEFAULT_CONFIG: Dict[str, Any] = {
    # Photon root search
    "root_tolerance": 1e-10,
    "root_max_iter": 200,
    "pole_epsilon": 1e-12,
    "bracket_margin": 1e-9,
    "boundary_factor": 1.0,
    "boundary_max_expansions": 30,
    "step_policy": "clamp",
    "dark_mode_tolerance": 1e-14,
    # Matter fixed point
    "fixedpoint_tolerance": 1e-9,
    "fixedpoint_max_iter": 200,
    "mixing_depth": 0,
    "damping": 1.0,
    "degeneracy_tolerance": 1e-8,
    # Self-energy
    "resonance_policy": "skip",
    "resonance_tolerance": 1e-8,
    "reference_level": 0,
    # Output
    "verbose": False,
}


def load_config_from_json(path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """
    Load solver settings from a JSON file.

    If the file doesn't exist or is invalid, returns default values.

    Args:
        path: JSON file to read. Defaults to the packaged solver_config.json.

    Returns:
        Dictionary with setting names as keys and values.
    """
    json_path = Path(path) if path is not None else _CONFIG_JSON_PATH
    if not json_path.exists():
        return _DEFAULT_CONFIG.copy()
    try:
        with open(json_path, 'r', encoding='utf-8') as f:
            loaded = json.load(f)
    except (json.JSONDecodeError, IOError) as e:
        warnings.warn(f"Failed to load {json_path.name}: {e}. Using defaults.")
        return _DEFAULT_CONFIG.copy()

    # Merge with defaults to ensure all keys exist
    result = _DEFAULT_CONFIG.copy()
    result.update(loaded)
    return result


def save_config_to_json(config: Dict[str, Any], path: Optional[Union[str, Path]] = None) -> None:
    """
    Save solver settings to a JSON file.

    Args:
        config: Dictionary with setting names and values.
        path: Destination. Defaults to the packaged solver_config.json.
    """
    json_path = Path(path) if path is not None else _CONFIG_JSON_PATH
    with open(json_path, 'w', encoding='utf-8') as f:
        json.dump(config, f, indent=4)


def get_config_json_path() -> Path:
    """Return the path to the packaged solver_config.json file."""
    return _CONFIG_JSON_PATH


def default_config_dict() -> Dict[str, Any]:
    """Return a copy of the in-code defaults, ignoring any JSON file."""
    return _DEFAULT_CONFIG.copy()


# Load settings at module import time
_LOADED_CONFIG = load_config_from_json()

# =============================================================================
# Module-level defaults (from JSON or in-code values)
# =============================================================================

ROOT_TOLERANCE: float = _LOADED_CONFIG["root_tolerance"]
ROOT_MAX_ITER: int = _LOADED_CONFIG["root_max_iter"]
POLE_EPSILON: float = _LOADED_CONFIG["pole_epsilon"]

FIXEDPOINT_TOLERANCE: float = _LOADED_CONFIG["fixedpoint_tolerance"]
FIXEDPOINT_MAX_ITER: int = _LOADED_CONFIG["fixedpoint_max_iter"]
MIXING_DEPTH: int = _LOADED_CONFIG["mixing_depth"]
DAMPING: float = _LOADED_CONFIG["damping"]

RESONANCE_POLICY: str = _LOADED_CONFIG["resonance_policy"]
RESONANCE_TOLERANCE: float = _LOADED_CONFIG["resonance_tolerance"]

# Recognized policy names
RESONANCE_POLICIES = ("skip", "clamp", "fail")
STEP_POLICIES = ("clamp", "fail")
