"""Bond force evaluators and their per-step result cache.

The cache is a two-state machine:

    DIRTY --commit(step)--> FRESH(step) --invalidate()--> DIRTY

compute(step) is a no-op in FRESH(step); any other state recomputes every
bond. The particle and bond stores call invalidate() on reorders, position
changes, particle additions, bond additions and parameter changes.

Each evaluator owns its cache. Two backends evaluating the same stores keep
two independent caches, which is how backend parity is checked.
"""

import logging
from enum import Enum

import numpy as np

from .energy import bond_virial, fene_bond_terms
from .exceptions import BondCollapsed, BondOverextended, InvalidType, StaleResultsError
from .particles import ParticleStore
from .space import minimum_image
from .topology import BondTopology
from .types import ComputeConfig, ForceArrays

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result cache
# ---------------------------------------------------------------------------


class CacheState(Enum):
    DIRTY = "dirty"
    FRESH = "fresh"


class ResultCache:
    """Per-particle force, energy and virial arrays for the last computed step."""

    def __init__(self):
        self._arrays = None
        self.state = CacheState.DIRTY
        self.last_step = None

    @property
    def n_particles(self) -> int:
        return 0 if self._arrays is None else int(self._arrays.energy.shape[0])

    @property
    def arrays(self) -> ForceArrays:
        """Writable arrays, for evaluators only."""
        return self._arrays

    def is_fresh(self, step) -> bool:
        return self.state is CacheState.FRESH and self.last_step == step

    def invalidate(self):
        self.state = CacheState.DIRTY

    def ensure_size(self, n: int) -> ForceArrays:
        """Allocate arrays for n particles; existing arrays are reused if n is unchanged."""
        if self._arrays is None or self.n_particles != n:
            self._arrays = ForceArrays(
                force=np.zeros((n, 3), dtype=np.float64),
                energy=np.zeros(n, dtype=np.float64),
                virial=np.zeros(n, dtype=np.float64),
            )
            self.invalidate()
        return self._arrays

    def zero(self):
        for array in self._arrays:
            array.fill(0.0)

    def commit(self, step):
        self.state = CacheState.FRESH
        self.last_step = step

    def view(self) -> ForceArrays:
        """Read-only views of the cached arrays."""
        views = []
        for array in self._arrays:
            v = array.view()
            v.flags.writeable = False
            views.append(v)
        return ForceArrays(*views)


# ---------------------------------------------------------------------------
# Shared evaluator behaviour
# ---------------------------------------------------------------------------


def check_separation(type_id, tag_a, tag_b, rsq, r0):
    """Raise if a bond sits at a singular point of the force law."""
    if rsq >= r0 * r0:
        raise BondOverextended(type_id, tag_a, tag_b, np.sqrt(rsq), r0)
    if rsq <= 0.0:
        raise BondCollapsed(type_id, tag_a, tag_b, 0.0)


class BondForceCompute:
    """Base class: caching, parameter forwarding and result access.

    Subclasses implement _evaluate(arrays), which accumulates into zeroed
    ForceArrays sized to the current particle count.

    Args:
        particles: ParticleStore (read-shared)
        topology: BondTopology over the same particles (read-shared)
    """

    backend = None

    def __init__(self, particles: ParticleStore, topology: BondTopology):
        if topology.particles is not particles:
            raise ValueError("topology must be built over the same ParticleStore")
        self.particles = particles
        self.topology = topology
        self.cache = ResultCache()
        particles.subscribe(self.cache.invalidate)
        topology.subscribe(self.cache.invalidate)

    def set_params(self, type_id, k, r0, sigma, epsilon):
        """Set FENE parameters for a bond type (shared by all evaluators of the topology)."""
        self.topology.set_parameters(type_id, k, r0, sigma, epsilon)

    def compute(self, step: int):
        """Compute forces for step, unless they are already cached for it.

        Errors propagate and leave the cache DIRTY.
        """
        if self.cache.is_fresh(step):
            logger.debug("%s: step %s served from cache", self.backend, step)
            return

        arrays = self.cache.ensure_size(self.particles.n_particles)
        self.cache.invalidate()
        self.cache.zero()
        logger.debug("%s: evaluating %d bonds at step %s",
                     self.backend, self.topology.n_bonds, step)
        self._evaluate(arrays)
        self.cache.commit(step)

    def acquire(self) -> ForceArrays:
        """Read-only per-slot results of the last compute().

        Raises:
            StaleResultsError: nothing computed yet, or a mutation happened since
        """
        if self.cache.state is not CacheState.FRESH:
            raise StaleResultsError(
                f"{self.backend}: results are stale; call compute() after the last mutation"
            )
        return self.cache.view()

    def _evaluate(self, arrays: ForceArrays):
        raise NotImplementedError


# ---------------------------------------------------------------------------
# Sequential reference backend
# ---------------------------------------------------------------------------


class FENEBondForce(BondForceCompute):
    """Reference backend: one bond at a time, NumPy float64."""

    backend = "reference"

    def _evaluate(self, arrays: ForceArrays):
        positions = self.particles.read_positions()
        box = self.particles.box
        params = self.topology.parameters
        force, energy, virial = arrays

        for bond in self.topology.for_each_bond():
            p = params.get(bond.type_id)
            if p is None:
                raise InvalidType(f"Bond type {bond.type_id} has no registered parameters")

            # Resolve tags at the moment of use
            a = self.particles.slot_of(bond.tag_a)
            b = self.particles.slot_of(bond.tag_b)

            dr = minimum_image(positions[b] - positions[a], box.lengths)
            rsq = float(np.dot(dr, dr))
            check_separation(bond.type_id, bond.tag_a, bond.tag_b, rsq, p.r0)

            force_divr, bond_eng = fene_bond_terms(rsq, p.k, p.r0, p.sigma, p.epsilon)
            force_divr = float(force_divr)

            f_b = force_divr * dr
            force[b] += f_b
            force[a] -= f_b

            half_eng = 0.5 * float(bond_eng)
            energy[a] += half_eng
            energy[b] += half_eng

            half_vir = 0.5 * bond_virial(force_divr, rsq)
            virial[a] += half_vir
            virial[b] += half_vir


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def make_bond_force(particles: ParticleStore, topology: BondTopology,
                    config: ComputeConfig = None) -> BondForceCompute:
    """Build the evaluator named by config.backend ("reference" or "jax")."""
    if config is None:
        config = ComputeConfig()

    if config.backend == "reference":
        return FENEBondForce(particles, topology)
    if config.backend == "jax":
        from .accelerated import FENEBondForceJAX
        return FENEBondForceJAX(particles, topology, jit=config.jit)
    raise ValueError(f"Unknown backend {config.backend!r}; expected 'reference' or 'jax'")
