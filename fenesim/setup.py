"""System builders: lattices, perturbations, bonded chains.

Used by the parity harness, scripts and tests to assemble particle and bond
stores. Particle i of a lattice gets tag i; on an m x m x m lattice tag
i*m*m + j*m + k sits at cell (i, j, k), so consecutive k form a line along z.
"""

import jax
import jax.numpy as jnp
import numpy as np

from .particles import ParticleStore
from .space import make_box
from .topology import BondTopology
from .types import Box, FENEParams


def simple_cubic_lattice(m: int, spacing: float) -> tuple:
    """Place m**3 particles on a simple cubic lattice filling a cubic box.

    Returns:
        (positions (m**3, 3) float64, Box of side m * spacing)
    """
    box = make_box(m * spacing)
    idx = np.arange(m)
    grid = np.stack(np.meshgrid(idx, idx, idx, indexing="ij"), axis=-1).reshape(-1, 3)
    positions = (grid + 0.5) * spacing
    return positions.astype(np.float64), box


def perturb_positions(
    positions: np.ndarray,
    box: Box,
    key: jnp.ndarray,
    scale=(0.01, 0.05, 0.001),
) -> np.ndarray:
    """Add uniform noise in [-scale/2, scale/2) per axis, clamped to [0, L].

    Args:
        positions: (N, 3)
        box: simulation box
        key: JAX PRNG key
        scale: (3,) full width of the noise along x, y, z
    """
    noise = (jax.random.uniform(key, positions.shape) - 0.5) * jnp.asarray(scale)
    moved = np.asarray(positions, dtype=np.float64) + np.asarray(noise, dtype=np.float64)
    return np.clip(moved, 0.0, box.lengths)


def linear_chain_bonds(m: int) -> np.ndarray:
    """Bonds joining lattice neighbours along z into m*m chains of length m.

    Returns:
        (m*m*(m-1), 2) int64 tag pairs
    """
    pairs = []
    for i in range(m):
        for j in range(m):
            base = i * m * m + j * m
            for k in range(m - 1):
                pairs.append((base + k, base + k + 1))
    if not pairs:
        return np.zeros((0, 2), dtype=np.int64)
    return np.array(pairs, dtype=np.int64)


def build_chain_system(
    m: int = 10,
    spacing: float = 1.5,
    params: FENEParams = FENEParams(k=300.0, r0=1.6, sigma=1.0, epsilon=0.25),
    key: jnp.ndarray = None,
    type_id: int = 0,
) -> tuple:
    """Perturbed simple cubic lattice with linear FENE chains along z.

    Args:
        m: particles per box edge (N = m**3)
        spacing: lattice spacing (and unperturbed bond length)
        params: FENE parameters for the chain bond type
        key: JAX PRNG key for the perturbation; None for an exact lattice
        type_id: bond type id used for all chain bonds

    Returns:
        (ParticleStore, BondTopology)
    """
    positions, box = simple_cubic_lattice(m, spacing)
    if key is not None:
        positions = perturb_positions(positions, box, key)

    particles = ParticleStore(positions, box)
    topology = BondTopology(particles)
    topology.set_parameters(type_id, *params)
    for tag_a, tag_b in linear_chain_bonds(m):
        topology.add_bond(type_id, int(tag_a), int(tag_b))
    return particles, topology
