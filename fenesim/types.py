"""Core data structures for fenesim.

Small immutable records are NamedTuples, as in the rest of the package.
Mutable state (particle arrays, bond lists, cached results) lives in the
store and compute classes that own it.
"""

from typing import NamedTuple

import numpy as np


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------


class Box(NamedTuple):
    """Periodic simulation box with three (possibly different) extents."""
    lengths: np.ndarray            # (3,) float64, all > 0

    @property
    def volume(self) -> float:
        return float(np.prod(self.lengths))


# ---------------------------------------------------------------------------
# Bonds and parameters
# ---------------------------------------------------------------------------


class FENEParams(NamedTuple):
    """Per-type FENE + WCA parameters."""
    k: float          # spring constant
    r0: float         # maximum bond extension
    sigma: float      # WCA length scale
    epsilon: float    # WCA well depth


class Bond(NamedTuple):
    """A typed bond between two particle tags (never slots)."""
    type_id: int
    tag_a: int
    tag_b: int


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class ForceArrays(NamedTuple):
    """Per-particle results, indexed by physical slot."""
    force: np.ndarray    # (N, 3)
    energy: np.ndarray   # (N,)
    virial: np.ndarray   # (N,)


class ParityReport(NamedTuple):
    """Deviation of a candidate backend from the reference backend.

    max_rel_* are the largest elementwise relative deviations,
    msd_* the summed squared deviation divided by particle count.
    """
    n_particles: int
    max_rel_force: float
    max_rel_energy: float
    max_rel_virial: float
    msd_force: float
    msd_energy: float
    msd_virial: float


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class ComputeConfig(NamedTuple):
    """Evaluator selection (not part of the physical state)."""
    backend: str = "reference"     # "reference" or "jax"
    jit: bool = True               # jax backend only: compile the kernel
