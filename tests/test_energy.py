"""Tests for the FENE + WCA bond law.

Validates:
- Force and energy against hand-computed values
- WCA core switches off at 2^(1/6) sigma
- NumPy and jax.numpy evaluation agree
- Evaluator forces are the negative gradient of the total energy
"""

import jax
import jax.numpy as jnp
import numpy as np
import pytest

from fenesim.compute import FENEBondForce
from fenesim.energy import (
    WCA_CUTOFF_SQ_FACTOR, bond_virial, fene_bond_terms, fene_energy, wca_cutoff,
)
from fenesim.particles import ParticleStore
from fenesim.space import make_box
from fenesim.topology import BondTopology


def _pure_fene(rsq, k, r0):
    stretch = rsq / (r0 * r0)
    return -k / (1.0 - stretch), -0.5 * k * r0 * r0 * np.log(1.0 - stretch)


class TestBondLaw:

    def test_known_values(self):
        """r=0.9, (k, r0, sigma, eps) = (1.5, 1.1, 1.0, 0.25)."""
        force_divr, energy = fene_bond_terms(0.81, 1.5, 1.1, 1.0, 0.25)
        assert force_divr * 0.9 == pytest.approx(30.581156, rel=1e-6)
        assert energy == pytest.approx(2.0 * (1.33177578 + 0.125), rel=1e-6)

    def test_virial(self):
        force_divr, _ = fene_bond_terms(0.81, 1.5, 1.1, 1.0, 0.25)
        assert 0.5 * bond_virial(force_divr, 0.81) == pytest.approx(4.58717, rel=1e-5)

    def test_cutoff(self):
        assert wca_cutoff(1.0) ** 2 == pytest.approx(WCA_CUTOFF_SQ_FACTOR)
        assert wca_cutoff(2.0) == pytest.approx(2.0 * 2.0 ** (1.0 / 6.0))

    def test_no_core_beyond_cutoff(self):
        rsq = 1.2 ** 2
        force_divr, energy = fene_bond_terms(rsq, 30.0, 1.5, 1.0, 1.0)
        fene_f, fene_e = _pure_fene(rsq, 30.0, 1.5)
        assert force_divr == pytest.approx(fene_f, rel=1e-12)
        assert energy == pytest.approx(fene_e, rel=1e-12)

    def test_core_continuous_at_cutoff(self):
        """The shifted WCA energy vanishes at the cutoff, so E is continuous."""
        rc = wca_cutoff(1.0)
        _, inside = fene_bond_terms((rc * (1 - 1e-9)) ** 2, 30.0, 1.5, 1.0, 1.0)
        _, outside = fene_bond_terms((rc * (1 + 1e-9)) ** 2, 30.0, 1.5, 1.0, 1.0)
        assert inside == pytest.approx(outside, abs=1e-6)

    def test_zero_sigma_is_pure_fene(self):
        rsq = 0.3
        force_divr, energy = fene_bond_terms(rsq, 30.0, 1.5, 0.0, 1.0)
        fene_f, fene_e = _pure_fene(rsq, 30.0, 1.5)
        assert force_divr == pytest.approx(fene_f, rel=1e-12)
        assert energy == pytest.approx(fene_e, rel=1e-12)

    def test_fene_is_attractive(self):
        force_divr, _ = fene_bond_terms(1.4 ** 2, 30.0, 1.5, 1.0, 1.0)
        assert force_divr < 0.0

    def test_core_is_repulsive_at_short_range(self):
        force_divr, _ = fene_bond_terms(0.8 ** 2, 30.0, 1.5, 1.0, 1.0)
        assert force_divr > 0.0

    def test_numpy_and_jax_agree(self):
        rsq = np.linspace(0.5, 2.2, 50)
        k = np.full(50, 30.0)
        r0 = np.full(50, 1.5)
        sigma = np.full(50, 1.0)
        eps = np.full(50, 1.0)
        f_np, e_np = fene_bond_terms(rsq, k, r0, sigma, eps)
        f_jx, e_jx = fene_bond_terms(jnp.asarray(rsq), jnp.asarray(k), jnp.asarray(r0),
                                     jnp.asarray(sigma), jnp.asarray(eps), xp=jnp)
        np.testing.assert_allclose(np.asarray(f_jx), f_np, rtol=1e-12)
        np.testing.assert_allclose(np.asarray(e_jx), e_np, rtol=1e-12)


class TestEnergyGradient:

    def _bent_chain(self):
        # the middle bead sits across the x boundary from the other two
        positions = [[9.6, 0.0, 0.0], [0.5, 0.2, 0.0], [0.9, 1.1, 0.1]]
        particles = ParticleStore(positions, make_box(10.0))
        topology = BondTopology(particles)
        topology.set_parameters(0, 30.0, 1.5, 1.0, 1.0)
        topology.set_parameters(1, 10.0, 1.6, 0.9, 0.5)
        topology.add_bond(0, 0, 1)
        topology.add_bond(1, 1, 2)
        return particles, topology

    def test_total_energy_matches_per_particle_sum(self):
        particles, topology = self._bent_chain()
        fc = FENEBondForce(particles, topology)
        fc.compute(0)
        k, r0, sigma, epsilon = topology.parameter_arrays()
        type_ids, tag_pairs = topology.as_arrays()
        total = fene_energy(
            jnp.asarray(particles.read_positions()),
            jnp.asarray(particles.slots_of(tag_pairs)),
            jnp.asarray(type_ids),
            jnp.asarray(k), jnp.asarray(r0), jnp.asarray(sigma), jnp.asarray(epsilon),
            jnp.asarray(particles.box.lengths),
        )
        assert float(total) == pytest.approx(float(np.sum(fc.acquire().energy)), rel=1e-10)

    def test_force_is_negative_gradient(self):
        particles, topology = self._bent_chain()
        fc = FENEBondForce(particles, topology)
        fc.compute(0)
        k, r0, sigma, epsilon = topology.parameter_arrays()
        type_ids, tag_pairs = topology.as_arrays()
        grad = jax.grad(fene_energy)(
            jnp.asarray(particles.read_positions()),
            jnp.asarray(particles.slots_of(tag_pairs)),
            jnp.asarray(type_ids),
            jnp.asarray(k), jnp.asarray(r0), jnp.asarray(sigma), jnp.asarray(epsilon),
            jnp.asarray(particles.box.lengths),
        )
        np.testing.assert_allclose(fc.acquire().force, -np.asarray(grad), rtol=1e-8, atol=1e-8)

    def test_empty_bond_list(self):
        total = fene_energy(
            jnp.zeros((2, 3)), jnp.zeros((0, 2), dtype=jnp.int32), jnp.zeros(0, dtype=jnp.int32),
            jnp.zeros(0), jnp.zeros(0), jnp.zeros(0), jnp.zeros(0), jnp.ones(3),
        )
        assert float(total) == 0.0
