"""
Pytest configuration for CQED Solver test suite.

Shared systems: a 4-site tight-binding chain and a 5-mode Fabry-Perot
cavity with the emitter at r0 = 0.3.
"""

import pytest
import sys
import numpy as np
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from cqed_solver.core.systems import MatterSystem, PhotonSystem
from cqed_solver.core.parameters import SolverConfig
from cqed_solver.photon.green_function import SpectralGreenFunction


def pytest_configure(config):
    """Called after command line options have been parsed."""
    # Add markers for test organization
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )


@pytest.fixture
def chain():
    """Tight-binding chain: N_e = 4, zero on-site potential, t = 0.25, radius 1."""
    return MatterSystem.from_tight_binding(np.zeros(4), tunneling=0.25, radius=1)


@pytest.fixture
def cavity():
    """Fabry-Perot cavity of length 1 with 5 modes, ω_k = kπ."""
    return PhotonSystem.fabry_perot(5, length=1.0)


@pytest.fixture
def emitter_position():
    return 0.3


@pytest.fixture
def green(cavity, emitter_position):
    return SpectralGreenFunction(cavity, emitter_position)


@pytest.fixture
def config():
    """Defaults, independent of any local solver_config.json edits."""
    return SolverConfig(
        root_tolerance=1e-10,
        root_max_iter=200,
        fixedpoint_tolerance=1e-9,
        fixedpoint_max_iter=200,
        mixing_depth=0,
        damping=1.0,
        resonance_policy="skip",
        step_policy="clamp",
        verbose=False,
    )
