"""FENE bond law with a WCA repulsive core.

fene_bond_terms() is the only place the force law is written down. The
sequential reference backend calls it once per bond with NumPy scalars; the
JAX backend calls it once with whole bond arrays inside a jitted kernel.

Per bond, with Δ = minimum_image(pos_b - pos_a) and r² = Δ·Δ:

  FENE:  F/r = -k / (1 - r²/r0²)
         E   = -0.5 * k * r0² * ln(1 - r²/r0²)
  WCA:   F/r = 24 * eps * [2 (sigma/r)^12 - (sigma/r)^6] / r²
         E   = 4 * eps * [(sigma/r)^12 - (sigma/r)^6] + eps
         only for r < 2^(1/6) * sigma, zero beyond

Force on b is (F/r) * Δ, force on a is its negation. Energy and virial are
split equally between the two endpoints.
"""

import jax.numpy as jnp
import numpy as np

from .space import minimum_image


WCA_CUTOFF_SQ_FACTOR = 2.0 ** (1.0 / 3.0)   # (2^(1/6))^2


def wca_cutoff(sigma: float) -> float:
    """Distance beyond which the WCA core vanishes."""
    return sigma * 2.0 ** (1.0 / 6.0)


def fene_bond_terms(rsq, k, r0, sigma, epsilon, xp=np):
    """Force-over-distance and energy of one bond, or of many elementwise.

    Callers must have excluded rsq >= r0**2 (overextended) and rsq == 0
    (collapsed); both give non-finite values here.

    Args:
        rsq: squared minimum-image separation
        k, r0, sigma, epsilon: FENE + WCA parameters, broadcastable to rsq
        xp: array module, numpy or jax.numpy

    Returns:
        (force_divr, energy): force magnitude per unit separation and the
        total bond energy
    """
    r0sq = r0 * r0
    stretch = rsq / r0sq
    fene_force_divr = -k / (1.0 - stretch)
    fene_eng = -0.5 * k * r0sq * xp.log(1.0 - stretch)

    sigma_sq = sigma * sigma
    in_core = rsq < WCA_CUTOFF_SQ_FACTOR * sigma_sq
    r2inv = 1.0 / rsq
    sr6 = (sigma_sq * r2inv) ** 3
    sr12 = sr6 * sr6
    wca_force_divr = 24.0 * epsilon * (2.0 * sr12 - sr6) * r2inv
    wca_eng = 4.0 * epsilon * (sr12 - sr6) + epsilon

    force_divr = fene_force_divr + xp.where(in_core, wca_force_divr, 0.0)
    energy = fene_eng + xp.where(in_core, wca_eng, 0.0)
    return force_divr, energy


def bond_virial(force_divr, rsq):
    """Bond virial W = (Δ · F) / 3; each endpoint receives W / 2."""
    return force_divr * rsq / 3.0


def fene_energy(
    positions: jnp.ndarray,
    slot_pairs: jnp.ndarray,
    bond_types: jnp.ndarray,
    k: jnp.ndarray,
    r0: jnp.ndarray,
    sigma: jnp.ndarray,
    epsilon: jnp.ndarray,
    box_size: jnp.ndarray,
) -> jnp.ndarray:
    """Total FENE + WCA energy, differentiable in positions.

    Args:
        positions: (N, 3) positions by slot
        slot_pairs: (N_bonds, 2) int, slots of (a, b)
        bond_types: (N_bonds,) int
        k, r0, sigma, epsilon: (N_bond_types,) per-type parameters
        box_size: (3,) box dimensions for PBC

    Returns:
        Scalar total bond energy
    """
    if slot_pairs.shape[0] == 0:
        return jnp.asarray(0.0, dtype=positions.dtype)

    r_a = positions[slot_pairs[:, 0]]  # (N_bonds, 3)
    r_b = positions[slot_pairs[:, 1]]  # (N_bonds, 3)

    # Minimum image displacement
    dr = minimum_image(r_b - r_a, box_size, xp=jnp)
    rsq = jnp.sum(dr ** 2, axis=-1)

    _, energies = fene_bond_terms(
        rsq, k[bond_types], r0[bond_types], sigma[bond_types], epsilon[bond_types],
        xp=jnp,
    )
    return jnp.sum(energies)
