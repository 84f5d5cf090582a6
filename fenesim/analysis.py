"""Validation and reduction of per-particle bond results.

Provides:
- Backend parity reports (relative and mean-squared deviation)
- Reordering results from slot order into tag order
- System totals: bonded energy, virial, pressure contribution
"""

import numpy as np

from .types import Box, ForceArrays, ParityReport


def arrays_by_tag(arrays: ForceArrays, tags_by_slot: np.ndarray) -> ForceArrays:
    """Reorder slot-indexed results so that row t belongs to tag t.

    Args:
        arrays: results indexed by slot
        tags_by_slot: (N,) slot -> tag, e.g. ParticleStore.tags_by_slot()
    """
    order = np.empty_like(tags_by_slot)
    order[tags_by_slot] = np.arange(tags_by_slot.shape[0])
    return ForceArrays(
        force=np.asarray(arrays.force)[order],
        energy=np.asarray(arrays.energy)[order],
        virial=np.asarray(arrays.virial)[order],
    )


def relative_deviation(a, b, floor: float = 1e-6) -> np.ndarray:
    """Elementwise |a - b| / max(|a|, |b|, floor)."""
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    scale = np.maximum(np.maximum(np.abs(a), np.abs(b)), floor)
    return np.abs(a - b) / scale


def compare_force_arrays(reference: ForceArrays, candidate: ForceArrays,
                         floor: float = 1e-6) -> ParityReport:
    """Compare two result sets laid out in the same slot order.

    Returns:
        ParityReport; msd_force sums all three components per particle
    """
    n = int(np.asarray(reference.energy).shape[0])
    if np.asarray(candidate.energy).shape[0] != n:
        raise ValueError(
            f"Result sets differ in size: {n} vs {np.asarray(candidate.energy).shape[0]}"
        )
    if n == 0:
        return ParityReport(0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0)

    def _msd(a, b):
        d = np.asarray(a, dtype=np.float64) - np.asarray(b, dtype=np.float64)
        return float(np.sum(d * d) / n)

    return ParityReport(
        n_particles=n,
        max_rel_force=float(np.max(relative_deviation(reference.force, candidate.force, floor))),
        max_rel_energy=float(np.max(relative_deviation(reference.energy, candidate.energy, floor))),
        max_rel_virial=float(np.max(relative_deviation(reference.virial, candidate.virial, floor))),
        msd_force=_msd(reference.force, candidate.force),
        msd_energy=_msd(reference.energy, candidate.energy),
        msd_virial=_msd(reference.virial, candidate.virial),
    )


def check_parity(report: ParityReport, rtol: float = 1e-2, msd_tol: float = 1e-6):
    """Raise AssertionError naming every quantity outside tolerance."""
    failures = []
    for name in ("force", "energy", "virial"):
        rel = getattr(report, f"max_rel_{name}")
        msd = getattr(report, f"msd_{name}")
        if not rel <= rtol:
            failures.append(f"{name}: max relative deviation {rel:.3e} > {rtol:.1e}")
        if not msd <= msd_tol:
            failures.append(f"{name}: mean-squared deviation {msd:.3e} > {msd_tol:.1e}")
    if failures:
        raise AssertionError("Backend parity failed: " + "; ".join(failures))


def total_energy(arrays: ForceArrays) -> float:
    """Total bonded energy (each bond counted once thanks to the equal split)."""
    return float(np.sum(arrays.energy))


def total_virial(arrays: ForceArrays) -> float:
    return float(np.sum(arrays.virial))


def bonded_pressure(arrays: ForceArrays, box: Box) -> float:
    """Bonded contribution to the pressure, sum(virial) / V."""
    return total_virial(arrays) / box.volume


def net_force(arrays: ForceArrays) -> np.ndarray:
    """Sum of all forces; zero up to roundoff for pairwise bonds."""
    return np.sum(np.asarray(arrays.force), axis=0)
