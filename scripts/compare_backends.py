#!/usr/bin/env python
"""Backend parity and timing on a perturbed lattice of FENE chains.

Builds an M x M x M simple cubic lattice, joins each line along z into a
chain, evaluates the bonds with both backends and reports the deviation and
the time per evaluation. With --plot, saves a scatter of accelerated vs.
reference force components (requires matplotlib).

Output: results/compare_backends/parity.png (with --plot)
"""

import argparse
import logging
import os
import sys
import time

import jax
import numpy as np

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from fenesim.analysis import bonded_pressure, check_parity, compare_force_arrays, total_energy
from fenesim.compute import make_bond_force
from fenesim.setup import build_chain_system
from fenesim.types import ComputeConfig, FENEParams


# ── Configuration ─────────────────────────────────────────────────────────────

M            = 10
SPACING      = 1.5
PARAMS       = FENEParams(k=300.0, r0=1.6, sigma=1.0, epsilon=0.25)
SEED         = 0
N_REPEATS    = 20
RTOL         = 1e-2
MSD_TOL      = 1e-6
OUTDIR = "results/compare_backends"

# ── Helpers ───────────────────────────────────────────────────────────────────

def time_backend(fc, n_repeats):
    """Mean wall time of compute() with the cache forced stale each step."""
    fc.compute(0)  # warm-up (jit compile for the jax backend)
    t0 = time.perf_counter()
    for step in range(1, n_repeats + 1):
        fc.compute(step)
    return (time.perf_counter() - t0) / n_repeats


def plot_parity(ref, acc, path):
    import matplotlib
    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    fig, axes = plt.subplots(1, 3, figsize=(12, 4))
    for ax, name in zip(axes, ("force", "energy", "virial")):
        x = np.ravel(getattr(ref, name))
        y = np.ravel(getattr(acc, name))
        ax.scatter(x, y, s=2)
        lo, hi = min(x.min(), y.min()), max(x.max(), y.max())
        ax.plot([lo, hi], [lo, hi], "k--", lw=0.5)
        ax.set_xlabel(f"reference {name}")
        ax.set_ylabel(f"jax {name}")
    fig.tight_layout()
    fig.savefig(path, dpi=150)
    plt.close(fig)

# ── Main ──────────────────────────────────────────────────────────────────────

def main():
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--m", type=int, default=M, help="particles per box edge")
    parser.add_argument("--seed", type=int, default=SEED)
    parser.add_argument("--repeats", type=int, default=N_REPEATS)
    parser.add_argument("--plot", action="store_true")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="%(name)s %(levelname)s: %(message)s")

    print("=" * 70)
    print("FENESIM — Backend parity")
    print("=" * 70)

    particles, topology = build_chain_system(
        m=args.m, spacing=SPACING, params=PARAMS, key=jax.random.PRNGKey(args.seed),
    )
    print(f"  Particles: {particles.n_particles}")
    print(f"  Bonds:     {topology.n_bonds}")
    print(f"  Box:       {particles.box.lengths.tolist()}")

    reference = make_bond_force(particles, topology, ComputeConfig(backend="reference"))
    accelerated = make_bond_force(particles, topology, ComputeConfig(backend="jax"))

    t_ref = time_backend(reference, args.repeats)
    t_acc = time_backend(accelerated, args.repeats)
    ref = reference.acquire()
    acc = accelerated.acquire()

    report = compare_force_arrays(ref, acc)
    print()
    print(f"  {'':10s} {'max rel':>12s} {'msd':>12s}")
    for name in ("force", "energy", "virial"):
        print(f"  {name:10s} {getattr(report, 'max_rel_' + name):12.3e} "
              f"{getattr(report, 'msd_' + name):12.3e}")
    print()
    print(f"  Total energy:     ref {total_energy(ref):.6f}  jax {total_energy(acc):.6f}")
    print(f"  Bonded pressure:  ref {bonded_pressure(ref, particles.box):.6f}  "
          f"jax {bonded_pressure(acc, particles.box):.6f}")
    print(f"  Time/compute:     ref {t_ref * 1e3:.3f} ms  jax {t_acc * 1e3:.3f} ms  "
          f"(speedup {t_ref / t_acc:.1f}x)")

    if args.plot:
        os.makedirs(OUTDIR, exist_ok=True)
        path = os.path.join(OUTDIR, "parity.png")
        plot_parity(ref, acc, path)
        print(f"  Saved {path}")

    try:
        check_parity(report, rtol=RTOL, msd_tol=MSD_TOL)
    except AssertionError as err:
        print(f"\n  FAILED: {err}")
        return 1
    print("\n  PASSED")
    return 0


if __name__ == "__main__":
    sys.exit(main())
