"""Particle store: positions by physical slot, stable tags, scoped mutation.

Each particle has an immutable tag (its logical identity) and a slot (its
current row in the position array). Two parallel arrays keep the mapping:

    tag[slot]  -> tag held in that slot
    rtag[tag]  -> slot currently holding that tag

Anything that refers to particles across a mutation boundary (bonds, in
particular) must hold tags and resolve them with slot_of()/slots_of() at the
moment of use.
"""

import logging
import threading
from typing import NamedTuple

import numpy as np

from .exceptions import ConcurrentMutationViolation, InvalidTag
from .types import Box
from .utils import InvalidationSignal

logger = logging.getLogger(__name__)


class ParticleView(NamedTuple):
    """Writable arrays handed out by ParticleStore.begin_mutation()."""
    positions: np.ndarray   # (N, 3) float64, by slot
    tag: np.ndarray         # (N,) int64, slot -> tag
    rtag: np.ndarray        # (N,) int64, tag -> slot


class MutationGuard:
    """Scoped exclusive write access to a ParticleStore.

    Use as a context manager, or call release() explicitly; release is
    idempotent. On release the tag/slot bijection is validated: a broken
    mapping rolls the store back to its pre-mutation state and raises
    InvalidTag. A changed slot assignment triggers notify_reordered(); moved
    positions alone also invalidate every dependent cache.
    """

    def __init__(self, store: "ParticleStore"):
        self._store = store
        self._released = False
        self.view = ParticleView(store._positions, store._tag, store._rtag)
        self._snapshot = (
            store._positions.copy(),
            store._tag.copy(),
            store._rtag.copy(),
        )

    def __enter__(self) -> ParticleView:
        return self.view

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False

    def release(self):
        if self._released:
            return
        self._released = True
        self._store._finish_mutation(self._snapshot)
        self._snapshot = None


class ParticleStore:
    """Positions indexed by slot plus the tag <-> slot bijection.

    Args:
        positions: (N, 3) initial positions; particle i gets tag i in slot i
        box: periodic Box used by force evaluators
    """

    def __init__(self, positions, box: Box):
        positions = np.array(positions, dtype=np.float64).reshape(-1, 3)
        n = positions.shape[0]
        self._positions = positions
        self._tag = np.arange(n, dtype=np.int64)
        self._rtag = np.arange(n, dtype=np.int64)
        self._box = box
        self._writer = threading.Lock()
        self._invalidated = InvalidationSignal()

    # ------------------------------------------------------------------
    # Basic properties
    # ------------------------------------------------------------------

    @property
    def n_particles(self) -> int:
        return int(self._positions.shape[0])

    @property
    def box(self) -> Box:
        return self._box

    def subscribe(self, callback):
        """Register a callback fired whenever slot-indexed derived state goes stale."""
        self._invalidated.connect(callback)

    # ------------------------------------------------------------------
    # Tag <-> slot lookup
    # ------------------------------------------------------------------

    def is_live(self, tag) -> bool:
        if isinstance(tag, (bool, np.bool_)):
            return False
        try:
            value = int(tag)
        except (TypeError, ValueError, OverflowError):
            return False
        if value != tag:
            return False
        return 0 <= value < self.n_particles

    def slot_of(self, tag) -> int:
        """Current slot of a live tag."""
        self._require_no_writer()
        if not self.is_live(tag):
            raise InvalidTag(f"Tag {tag} is not live ({self.n_particles} particles)")
        return int(self._rtag[int(tag)])

    def tag_of(self, slot) -> int:
        """Tag currently held in a slot."""
        self._require_no_writer()
        if not self.is_live(slot):
            raise InvalidTag(f"Slot {slot} out of range ({self.n_particles} particles)")
        return int(self._tag[int(slot)])

    def slots_of(self, tags) -> np.ndarray:
        """Vectorised slot_of for an integer array of any shape."""
        self._require_no_writer()
        tags = np.asarray(tags, dtype=np.int64)
        if tags.size and (tags.min() < 0 or tags.max() >= self.n_particles):
            bad = tags[(tags < 0) | (tags >= self.n_particles)]
            raise InvalidTag(
                f"Tag {int(bad.flat[0])} is not live ({self.n_particles} particles)"
            )
        return self._rtag[tags]

    def tags_by_slot(self) -> np.ndarray:
        """Copy of the slot -> tag array."""
        self._require_no_writer()
        return self._tag.copy()

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def read_positions(self) -> np.ndarray:
        """Read-only (N, 3) view of positions by slot.

        Valid until the next mutating call. Refused while a mutable view is
        outstanding, so readers never see a half-updated array.
        """
        self._require_no_writer()
        view = self._positions.view()
        view.flags.writeable = False
        return view

    def positions_by_tag(self) -> np.ndarray:
        """Copy of positions ordered by tag."""
        self._require_no_writer()
        return self._positions[self._rtag]

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def begin_mutation(self) -> MutationGuard:
        """Acquire exclusive write access.

        Raises:
            ConcurrentMutationViolation: if a mutable view is already outstanding
        """
        if not self._writer.acquire(blocking=False):
            raise ConcurrentMutationViolation(
                "begin_mutation() called while a mutable view is outstanding"
            )
        return MutationGuard(self)

    def notify_reordered(self):
        """Signal that slot-indexed derived state is stale. Moves no data."""
        logger.debug("Particle order changed; invalidating %d dependents",
                     len(self._invalidated))
        self._invalidated.emit()

    def permute(self, order):
        """Move the particle in old slot order[i] to new slot i.

        Args:
            order: (N,) permutation of 0..N-1
        """
        n = self.n_particles
        order = np.asarray(order, dtype=np.int64)
        if order.shape != (n,) or not np.array_equal(np.sort(order), np.arange(n)):
            raise InvalidTag(f"Slot order must be a permutation of 0..{n - 1}")

        with self.begin_mutation() as view:
            view.positions[:] = view.positions[order]
            view.tag[:] = view.tag[order]
            view.rtag[view.tag] = np.arange(n, dtype=np.int64)

    def add_particle(self, position) -> int:
        """Append a particle in the last slot and return its new tag."""
        if not self._writer.acquire(blocking=False):
            raise ConcurrentMutationViolation(
                "add_particle() called while a mutable view is outstanding"
            )
        try:
            tag = self.n_particles
            position = np.asarray(position, dtype=np.float64).reshape(1, 3)
            self._positions = np.concatenate([self._positions, position], axis=0)
            self._tag = np.append(self._tag, tag)
            self._rtag = np.append(self._rtag, tag)
        finally:
            self._writer.release()
        self._invalidated.emit()
        return tag

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_no_writer(self):
        if self._writer.locked():
            raise ConcurrentMutationViolation(
                "Particle data cannot be read while a mutable view is outstanding"
            )

    def _check_mapping(self):
        n = self._tag.shape[0]
        if self._rtag.shape[0] != n or self._positions.shape != (n, 3):
            raise InvalidTag("Particle arrays changed length during mutation")
        if n == 0:
            return
        if self._tag.min() < 0 or self._tag.max() >= n:
            raise InvalidTag("tag array holds a tag outside 0..N-1")
        if self._rtag.min() < 0 or self._rtag.max() >= n:
            raise InvalidTag("rtag array holds a slot outside 0..N-1")
        if not np.array_equal(self._rtag[self._tag], np.arange(n)):
            raise InvalidTag("tag and rtag arrays are not inverse permutations")

    def _finish_mutation(self, snapshot):
        old_positions, old_tag, old_rtag = snapshot
        try:
            try:
                self._check_mapping()
            except InvalidTag:
                self._positions[...] = old_positions
                self._tag[...] = old_tag
                self._rtag[...] = old_rtag
                raise
            reordered = not np.array_equal(self._tag, old_tag)
            moved = not np.array_equal(self._positions, old_positions)
        finally:
            self._writer.release()
        if reordered:
            self.notify_reordered()
        elif moved:
            logger.debug("Particle positions changed; invalidating %d dependents",
                         len(self._invalidated))
            self._invalidated.emit()
