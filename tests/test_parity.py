"""Backend parity: the JAX backend must reproduce the reference backend.

Validates:
- Chain system on a perturbed 10 x 10 x 10 lattice
- Parity survives spatial sorting
- Parity holds with JAX left in float32 mode
- The parity check itself reports failures
"""

import jax
import numpy as np
import pytest

from fenesim.accelerated import FENEBondForceJAX
from fenesim.analysis import (
    arrays_by_tag, bonded_pressure, check_parity, compare_force_arrays, net_force,
    total_energy, total_virial,
)
from fenesim.compute import FENEBondForce
from fenesim.partition import sort_particles
from fenesim.setup import build_chain_system
from fenesim.types import ForceArrays


@pytest.fixture(scope="module")
def chain_results():
    particles, topology = build_chain_system(m=10, key=jax.random.PRNGKey(0))
    reference = FENEBondForce(particles, topology)
    accelerated = FENEBondForceJAX(particles, topology)
    reference.compute(0)
    accelerated.compute(0)
    return particles, reference.acquire(), accelerated.acquire()


class TestChainParity:

    def test_within_tolerance(self, chain_results):
        _, ref, acc = chain_results
        report = compare_force_arrays(ref, acc)
        assert report.n_particles == 1000
        check_parity(report, rtol=1e-2, msd_tol=1e-6)

    def test_float64_agreement_is_tight(self, chain_results):
        _, ref, acc = chain_results
        np.testing.assert_allclose(acc.force, ref.force, rtol=1e-8, atol=1e-8)
        np.testing.assert_allclose(acc.energy, ref.energy, rtol=1e-10)
        np.testing.assert_allclose(acc.virial, ref.virial, rtol=1e-10)

    def test_totals_agree(self, chain_results):
        particles, ref, acc = chain_results
        assert total_energy(acc) == pytest.approx(total_energy(ref), rel=1e-10)
        assert total_virial(acc) == pytest.approx(total_virial(ref), rel=1e-10)
        assert bonded_pressure(acc, particles.box) == pytest.approx(
            bonded_pressure(ref, particles.box), rel=1e-10)
        np.testing.assert_allclose(net_force(ref), 0.0, atol=1e-8)

    def test_chain_ends_have_half_energy(self, chain_results):
        """Chain end beads have one bond, interior beads two."""
        _, ref, _ = chain_results
        energy = np.asarray(ref.energy).reshape(100, 10)
        assert np.all(energy[:, 0] < energy[:, 1])
        assert np.all(energy[:, -1] < energy[:, -2])


@pytest.fixture
def jax_float32_default():
    """Run one test with JAX in its out-of-the-box float32 mode."""
    jax.config.update("jax_enable_x64", False)
    try:
        yield
    finally:
        jax.config.update("jax_enable_x64", True)


class TestDefaultPrecision:

    def test_parity_without_x64(self, jax_float32_default):
        """The accelerated kernel keeps float64 when JAX defaults to float32."""
        particles, topology = build_chain_system(m=10, key=jax.random.PRNGKey(0))
        reference = FENEBondForce(particles, topology)
        accelerated = FENEBondForceJAX(particles, topology)
        reference.compute(0)
        accelerated.compute(0)
        ref = reference.acquire()
        acc = accelerated.acquire()

        check_parity(compare_force_arrays(ref, acc), rtol=1e-2, msd_tol=1e-6)
        np.testing.assert_allclose(acc.force, ref.force, rtol=1e-8, atol=1e-8)
        np.testing.assert_allclose(acc.energy, ref.energy, rtol=1e-10)


class TestParityAfterSort:

    def test_sorted_store(self):
        particles, topology = build_chain_system(m=6, key=jax.random.PRNGKey(1))
        reference = FENEBondForce(particles, topology)
        accelerated = FENEBondForceJAX(particles, topology)
        reference.compute(0)
        unsorted = arrays_by_tag(reference.acquire(), particles.tags_by_slot())

        order = sort_particles(particles, cell_size=3.0)
        assert not np.array_equal(order, np.arange(particles.n_particles))

        reference.compute(0)
        accelerated.compute(0)
        check_parity(compare_force_arrays(reference.acquire(), accelerated.acquire()))

        tags = particles.tags_by_slot()
        resorted = arrays_by_tag(accelerated.acquire(), tags)
        np.testing.assert_allclose(resorted.force, unsorted.force, rtol=1e-8, atol=1e-8)
        np.testing.assert_allclose(resorted.energy, unsorted.energy, rtol=1e-10)


class TestParityCheck:

    def test_reports_failure(self, chain_results):
        _, ref, _ = chain_results
        doctored = ForceArrays(
            force=np.array(ref.force),
            energy=np.array(ref.energy) * 1.05,
            virial=np.array(ref.virial),
        )
        report = compare_force_arrays(ref, doctored)
        assert report.max_rel_force == 0.0
        assert report.max_rel_energy == pytest.approx(0.05 / 1.05, rel=1e-6)
        with pytest.raises(AssertionError, match="energy"):
            check_parity(report)

    def test_size_mismatch(self, chain_results):
        _, ref, _ = chain_results
        short = ForceArrays(ref.force[:10], ref.energy[:10], ref.virial[:10])
        with pytest.raises(ValueError):
            compare_force_arrays(ref, short)

    def test_empty_report(self):
        empty = ForceArrays(np.zeros((0, 3)), np.zeros(0), np.zeros(0))
        check_parity(compare_force_arrays(empty, empty))
