"""Periodic boundary conditions: box construction, minimum image, wrapping.

minimum_image() takes an array module so NumPy and jitted JAX code share it.
"""

import numpy as np

from .exceptions import DomainError
from .types import Box


def make_box(lx: float, ly: float = None, lz: float = None) -> Box:
    """Build a periodic box. A single extent gives a cube.

    Raises:
        DomainError: if any extent is not a positive finite number
    """
    ly = lx if ly is None else ly
    lz = lx if lz is None else lz
    lengths = np.array([lx, ly, lz], dtype=np.float64)
    if not np.all(np.isfinite(lengths)) or np.any(lengths <= 0.0):
        raise DomainError(f"Box extents must be positive and finite, got {lengths.tolist()}")
    return Box(lengths=lengths)


def minimum_image(dr, box_size, xp=np):
    """Minimum image of displacement(s) dr, shape (3,) or (M, 3).

    The reference backend calls this with NumPy, the jitted kernels with
    xp=jax.numpy, so both wrap identically.
    """
    return dr - box_size * xp.round(dr / box_size)


def periodic_wrap(positions, box_size):
    """Wrap positions into the primary box [0, box_size).

    Works on NumPy or JAX arrays; the result has the input's array type.
    """
    return positions % box_size
