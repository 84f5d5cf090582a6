"""Bond topology: append-only typed bonds between particle tags.

Bonds always name particles by tag. Slots are resolved by the evaluators at
the moment of use, so bonds stay valid across any particle reordering.
"""

import logging

import numpy as np

from .exceptions import InvalidTag, InvalidType
from .parameters import check_type_id, make_fene_params, parameter_arrays
from .particles import ParticleStore
from .types import Bond, FENEParams
from .utils import InvalidationSignal

logger = logging.getLogger(__name__)


class BondTopology:
    """Bond list plus the per-type FENE parameter table.

    Args:
        particles: the ParticleStore whose tags the bonds reference
    """

    def __init__(self, particles: ParticleStore):
        self.particles = particles
        self._bonds = []            # list of Bond, creation order
        self._params = {}           # type_id -> FENEParams
        self._arrays = None         # cached (type_ids, tag_pairs)
        self._invalidated = InvalidationSignal()

    @property
    def n_bonds(self) -> int:
        return len(self._bonds)

    @property
    def type_ids(self) -> list:
        """Registered bond type ids, sorted."""
        return sorted(self._params)

    @property
    def parameters(self) -> dict:
        """Copy of the {type_id: FENEParams} table."""
        return dict(self._params)

    def subscribe(self, callback):
        """Register a callback fired on every bond or parameter change."""
        self._invalidated.connect(callback)

    # ------------------------------------------------------------------
    # Parameters
    # ------------------------------------------------------------------

    def set_parameters(self, type_id, k, r0, sigma, epsilon):
        """Register (or overwrite) FENE parameters for a bond type.

        Raises:
            InvalidType: type_id is not a non-negative integer
            DomainError: r0 <= 0, sigma < 0, or a non-finite value
        """
        type_id = check_type_id(type_id)
        self._params[type_id] = make_fene_params(k, r0, sigma, epsilon)
        logger.debug("Bond type %d parameters set to %s", type_id, self._params[type_id])
        self._invalidated.emit()

    def get_parameters(self, type_id) -> FENEParams:
        type_id = check_type_id(type_id)
        try:
            return self._params[type_id]
        except KeyError:
            raise InvalidType(f"Bond type {type_id} has no registered parameters") from None

    def parameter_arrays(self) -> tuple:
        """Dense (k, r0, sigma, epsilon) arrays indexed by type id."""
        return parameter_arrays(self._params)

    # ------------------------------------------------------------------
    # Bonds
    # ------------------------------------------------------------------

    def add_bond(self, type_id, tag_a, tag_b):
        """Append a bond between two live tags.

        The type check is eager: parameters must be registered first.

        Raises:
            InvalidType: type_id has no registered parameters
            InvalidTag: a tag is not live, or tag_a == tag_b
        """
        type_id = check_type_id(type_id)
        if type_id not in self._params:
            raise InvalidType(f"Bond type {type_id} has no registered parameters")
        for tag in (tag_a, tag_b):
            if not self.particles.is_live(tag):
                raise InvalidTag(
                    f"Bond {tag_a}-{tag_b} references tag {tag}, which is not live"
                )
        if int(tag_a) == int(tag_b):
            raise InvalidTag(f"Bond endpoints must differ, got {tag_a} twice")

        self._bonds.append(Bond(type_id=type_id, tag_a=int(tag_a), tag_b=int(tag_b)))
        self._arrays = None
        self._invalidated.emit()

    def for_each_bond(self):
        """Iterate bonds in creation order.

        Each call starts a fresh pass. Bonds appended during a pass are not
        visited by that pass.
        """
        n = len(self._bonds)
        for i in range(n):
            yield self._bonds[i]

    def as_arrays(self) -> tuple:
        """Bonds as arrays, cached until the next add_bond().

        Returns:
            type_ids: (B,) int32
            tag_pairs: (B, 2) int64, columns (tag_a, tag_b)
        """
        if self._arrays is None:
            if self._bonds:
                table = np.array(self._bonds, dtype=np.int64)   # (B, 3)
                type_ids = table[:, 0].astype(np.int32)
                tag_pairs = table[:, 1:3].copy()
            else:
                type_ids = np.zeros(0, dtype=np.int32)
                tag_pairs = np.zeros((0, 2), dtype=np.int64)
            type_ids.flags.writeable = False
            tag_pairs.flags.writeable = False
            self._arrays = (type_ids, tag_pairs)
        return self._arrays
