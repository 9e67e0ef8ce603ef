"""
Matter and photon system definitions.

MatterSystem holds the bare electronic Hamiltonian H and the dipole
(momentum) operator p; PhotonSystem holds the vacuum cavity modes
(ω_k0, F_k0(r)). Both are validated eagerly and are read-only for the
lifetime of a solve: arrays are copied and marked non-writeable.
"""

import numpy as np
from numpy.typing import NDArray, ArrayLike
from dataclasses import dataclass, field
from typing import Callable, Optional, Tuple, Union
from scipy.linalg import eigh

from cqed_solver.core.errors import InvalidInput


# Relative tolerance for Hermiticity checks (scaled by the matrix norm)
HERMITICITY_RTOL = 1e-10


def frozen_array(array: ArrayLike) -> NDArray:
    """Non-writeable copy of ``array``."""
    array = np.array(array, copy=True)
    array.setflags(write=False)
    return array


def _check_hermitian(name: str, matrix: ArrayLike, dimension: Optional[int] = None) -> NDArray:
    """Validate that ``matrix`` is a finite square Hermitian array."""
    M = np.asarray(matrix)
    if M.ndim != 2 or M.shape[0] != M.shape[1]:
        raise InvalidInput(f"{name} must be a square matrix, got shape {M.shape}")
    if dimension is not None and M.shape[0] != dimension:
        raise InvalidInput(f"{name} must be {dimension}x{dimension}, got {M.shape}")
    if M.shape[0] == 0:
        raise InvalidInput(f"{name} must have positive dimension")
    if not np.all(np.isfinite(M)):
        raise InvalidInput(f"{name} contains non-finite entries")
    scale = max(1.0, float(np.max(np.abs(M))))
    deviation = float(np.max(np.abs(M - M.conj().T)))
    if deviation > HERMITICITY_RTOL * scale:
        raise InvalidInput(f"{name} is not Hermitian (max |M - M^†| = {deviation:.3e})")
    return M


# =============================================================================
# Tight-binding builders
# =============================================================================

def build_tight_binding_hamiltonian(
    onsite: ArrayLike,
    tunneling: float,
    radius: int,
    dimension: Optional[int] = None
) -> NDArray:
    """
    Build a 1D tight-binding Hamiltonian.

    H_ii = onsite_i and H_ij = -t for 0 < |i - j| <= radius.

    Args:
        onsite: On-site potential, a vector of length N_e or a scalar
            (requires ``dimension``).
        tunneling: Hopping amplitude t.
        radius: Range cutoff on |i - j| (0 = no hopping).
        dimension: Number of sites N_e. Inferred from ``onsite`` if omitted.

    Returns:
        Real symmetric N_e x N_e matrix.
    """
    onsite = np.asarray(onsite, dtype=float)
    if onsite.ndim == 0:
        if dimension is None:
            raise InvalidInput("dimension is required when onsite is a scalar")
        onsite = np.full(int(dimension), float(onsite))
    elif onsite.ndim != 1:
        raise InvalidInput(f"onsite must be a vector, got shape {onsite.shape}")
    if dimension is not None and len(onsite) != dimension:
        raise InvalidInput(
            f"onsite has length {len(onsite)} but dimension is {dimension}"
        )
    n_sites = len(onsite)
    if n_sites < 1:
        raise InvalidInput("dimension must be a positive integer")
    if not np.all(np.isfinite(onsite)):
        raise InvalidInput("onsite contains non-finite entries")
    if not np.isfinite(tunneling) or np.iscomplexobj(tunneling):
        raise InvalidInput(f"tunneling must be a finite real number, got {tunneling}")
    if int(radius) != radius or radius < 0:
        raise InvalidInput(f"radius must be a non-negative integer, got {radius}")

    i, j = np.indices((n_sites, n_sites))
    distance = np.abs(i - j)
    hopping = (distance > 0) & (distance <= radius)
    return np.diag(onsite) - float(tunneling) * hopping.astype(float)


def site_positions(n_sites: int, lattice_spacing: float = 1.0) -> NDArray:
    """Site coordinates centred on the origin."""
    return lattice_spacing * (np.arange(n_sites) - 0.5 * (n_sites - 1))


def momentum_operator(hamiltonian: NDArray, positions: NDArray) -> NDArray:
    """
    Velocity (momentum, unit mass) operator p = i[H, X].

    Hermitian whenever H is Hermitian and X is real diagonal.
    """
    X = np.diag(positions)
    return 1j * (hamiltonian @ X - X @ hamiltonian)


# =============================================================================
# Matter system
# =============================================================================

@dataclass(eq=False)
class MatterSystem:
    """
    Bare electronic system: Hamiltonian H and dipole operator p.

    Attributes:
        hamiltonian: N_e x N_e Hermitian matrix.
        dipole: N_e x N_e Hermitian dipole/momentum operator.
        bare_energies: Eigenvalues of H, ascending.
        bare_states: Orthonormal eigenvectors of H (columns).
    """
    hamiltonian: NDArray
    dipole: NDArray
    bare_energies: NDArray = field(init=False, repr=False)
    bare_states: NDArray = field(init=False, repr=False)

    def __post_init__(self):
        H = _check_hermitian("hamiltonian", self.hamiltonian)
        p = _check_hermitian("dipole", self.dipole, dimension=H.shape[0])
        self.hamiltonian = frozen_array(H)
        self.dipole = frozen_array(p)

        energies, states = eigh(self.hamiltonian)
        self.bare_energies = frozen_array(energies)
        self.bare_states = frozen_array(states)

    @property
    def dimension(self) -> int:
        """Number of matter levels N_e."""
        return self.hamiltonian.shape[0]

    @classmethod
    def from_tight_binding(
        cls,
        onsite: ArrayLike,
        tunneling: float,
        radius: int,
        dimension: Optional[int] = None,
        lattice_spacing: float = 1.0,
        dipole: Union[str, ArrayLike] = "momentum"
    ) -> "MatterSystem":
        """
        Build a tight-binding chain.

        Args:
            onsite: On-site potential vector (or scalar with ``dimension``).
            tunneling: Hopping amplitude t.
            radius: Range cutoff on |i - j|.
            dimension: Number of sites N_e.
            lattice_spacing: Distance between neighbouring sites.
            dipole: 'momentum' for p = i[H, X], 'position' for p = X, or an
                explicit Hermitian matrix.

        Returns:
            MatterSystem instance.
        """
        H = build_tight_binding_hamiltonian(onsite, tunneling, radius, dimension)
        if lattice_spacing <= 0:
            raise InvalidInput(f"lattice_spacing must be positive, got {lattice_spacing}")
        positions = site_positions(H.shape[0], lattice_spacing)

        if isinstance(dipole, str):
            if dipole == "momentum":
                p = momentum_operator(H, positions)
            elif dipole == "position":
                p = np.diag(positions)
            else:
                raise InvalidInput(f"dipole must be 'momentum', 'position' or a matrix, got {dipole!r}")
        else:
            p = dipole
        return cls(hamiltonian=H, dipole=p)


# =============================================================================
# Photon system
# =============================================================================

ProfileFunction = Callable[[float], ArrayLike]


@dataclass(eq=False)
class PhotonSystem:
    """
    Vacuum cavity modes.

    Mode profiles are either sampled on a 1D grid (``profiles`` with shape
    (N_p, n_grid, d) or (N_p, n_grid) for d = 1, plus ``positions``) and
    linearly interpolated between grid points, or supplied in closed form
    as ``profile_function(r) -> (N_p, d)``.

    Attributes:
        frequencies: Vacuum frequencies ω_k0, strictly positive and ascending.
        profiles: Sampled mode profiles, or None.
        positions: Sample coordinates (strictly ascending), or None.
        profile_function: Closed-form profiles, or None.
        dimension: Mode-vector length d.
        domain: (r_min, r_max) where profiles may be evaluated.
    """
    frequencies: NDArray
    profiles: Optional[NDArray] = None
    positions: Optional[NDArray] = None
    profile_function: Optional[ProfileFunction] = None
    dimension: Optional[int] = None
    domain: Optional[Tuple[float, float]] = None

    def __post_init__(self):
        freqs = np.asarray(self.frequencies, dtype=float)
        if freqs.ndim != 1 or len(freqs) == 0:
            raise InvalidInput(f"frequencies must be a non-empty vector, got shape {freqs.shape}")
        if not np.all(np.isfinite(freqs)):
            raise InvalidInput("frequencies contain non-finite entries")
        if np.any(freqs <= 0):
            raise InvalidInput(f"vacuum frequencies must be strictly positive, got min {freqs.min()}")
        if np.any(np.diff(freqs) <= 0):
            raise InvalidInput("vacuum frequencies must be distinct and sorted ascending")
        self.frequencies = frozen_array(freqs)

        sampled = self.profiles is not None
        closed_form = self.profile_function is not None
        if sampled == closed_form:
            raise InvalidInput("provide exactly one of profiles (with positions) or profile_function")

        if sampled:
            self._init_sampled()
        else:
            d = 1 if self.dimension is None else self.dimension
            if int(d) != d or d < 1:
                raise InvalidInput(f"dimension must be a positive integer, got {d}")
            self.dimension = int(d)
            if self.domain is not None:
                lo, hi = self.domain
                if not lo < hi:
                    raise InvalidInput(f"domain must satisfy r_min < r_max, got {self.domain}")

    def _init_sampled(self):
        if self.positions is None:
            raise InvalidInput("positions are required with sampled profiles")
        x = np.asarray(self.positions, dtype=float)
        if x.ndim != 1 or len(x) < 2:
            raise InvalidInput("positions must be a vector with at least two points")
        if np.any(np.diff(x) <= 0):
            raise InvalidInput("positions must be strictly ascending")

        F = np.asarray(self.profiles)
        if F.ndim == 2:
            F = F[:, :, np.newaxis]
        if F.ndim != 3:
            raise InvalidInput(f"profiles must have shape (N_p, n_grid, d), got {F.shape}")
        if F.shape[0] != self.n_modes:
            raise InvalidInput(
                f"{F.shape[0]} mode profiles supplied for {self.n_modes} vacuum frequencies"
            )
        if F.shape[1] != len(x):
            raise InvalidInput(
                f"profiles sampled on {F.shape[1]} points but {len(x)} positions given"
            )
        if self.dimension is not None and F.shape[2] != self.dimension:
            raise InvalidInput(
                f"profiles have spatial dimension {F.shape[2]}, expected {self.dimension}"
            )
        if not np.all(np.isfinite(F)):
            raise InvalidInput("profiles contain non-finite entries")

        self.positions = frozen_array(x)
        self.profiles = frozen_array(F)
        self.dimension = F.shape[2]
        self.domain = (float(x[0]), float(x[-1]))

    # -------------------------------------------------------------------------
    # Constructors
    # -------------------------------------------------------------------------

    @classmethod
    def from_arrays(
        cls,
        frequencies: ArrayLike,
        profiles: ArrayLike,
        positions: ArrayLike
    ) -> "PhotonSystem":
        """Wrap mode data produced by an external electromagnetic solver."""
        return cls(frequencies=frequencies, profiles=profiles, positions=positions)

    @classmethod
    def fabry_perot(cls, n_modes: int, length: float, speed_of_light: float = 1.0) -> "PhotonSystem":
        """
        Closed-form modes of an ideal 1D cavity on [0, L].

        ω_k = kπc/L and F_k(x) = sqrt(2/L) sin(kπx/L), k = 1..n_modes,
        orthonormal on [0, L].
        """
        if int(n_modes) != n_modes or n_modes < 1:
            raise InvalidInput(f"n_modes must be a positive integer, got {n_modes}")
        if length <= 0 or speed_of_light <= 0:
            raise InvalidInput("length and speed_of_light must be positive")
        k = np.arange(1, int(n_modes) + 1)
        frequencies = k * np.pi * speed_of_light / length
        amplitude = np.sqrt(2.0 / length)

        def profile(r: float) -> NDArray:
            return (amplitude * np.sin(k * np.pi * r / length))[:, np.newaxis]

        return cls(frequencies=frequencies, profile_function=profile, dimension=1,
                   domain=(0.0, float(length)))

    # -------------------------------------------------------------------------
    # Evaluation
    # -------------------------------------------------------------------------

    @property
    def n_modes(self) -> int:
        """Number of vacuum modes N_p."""
        return len(self.frequencies)

    def mode_values(self, r: float) -> NDArray:
        """
        Evaluate every vacuum mode at position r.

        Returns:
            Array of shape (N_p, d).
        """
        r = float(r)
        if self.domain is not None:
            lo, hi = self.domain
            slack = 1e-12 * max(1.0, abs(lo), abs(hi))
            if r < lo - slack or r > hi + slack:
                raise InvalidInput(f"position {r} lies outside the mode domain [{lo}, {hi}]")

        if self.profile_function is not None:
            values = np.asarray(self.profile_function(r))
            if values.ndim == 1:
                values = values[:, np.newaxis]
            if values.shape != (self.n_modes, self.dimension):
                raise InvalidInput(
                    f"profile_function returned shape {values.shape}, "
                    f"expected {(self.n_modes, self.dimension)}"
                )
            return values

        x = self.positions
        idx = int(np.clip(np.searchsorted(x, r), 1, len(x) - 1))
        w = (r - x[idx - 1]) / (x[idx] - x[idx - 1])
        return (1.0 - w) * self.profiles[:, idx - 1, :] + w * self.profiles[:, idx, :]
