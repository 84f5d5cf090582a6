"""fenesim - FENE bonded-force core for particle simulations

Computes per-particle forces, energies and virials of FENE bonds with a WCA
core, on a particle store that may be reordered in memory, with a NumPy
reference backend and a JAX data-parallel backend.
"""

import logging

__version__ = "0.1.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())
