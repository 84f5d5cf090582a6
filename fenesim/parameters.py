"""FENE bond parameters: validation, standard sets, dense lookup tables.

Values are in reduced (Lennard-Jones) units:
  - Length: sigma
  - Energy: epsilon
  - Spring constant: epsilon / sigma^2

Standard set from:
  - Kremer & Grest, J. Chem. Phys. 92, 5057 (1990)
"""

import math

import numpy as np

from .exceptions import DomainError, InvalidType
from .types import FENEParams


def check_type_id(type_id) -> int:
    """Return type_id as an int, or raise InvalidType if it is not a non-negative integer."""
    if isinstance(type_id, (bool, np.bool_)):
        raise InvalidType(f"Bond type id must be an integer, got {type_id!r}")
    try:
        value = int(type_id)
    except (TypeError, ValueError, OverflowError):
        raise InvalidType(f"Bond type id must be an integer, got {type_id!r}") from None
    if value != type_id or value < 0:
        raise InvalidType(f"Bond type id must be a non-negative integer, got {type_id!r}")
    return value


def make_fene_params(k: float, r0: float, sigma: float, epsilon: float) -> FENEParams:
    """Validate and build a FENEParams record.

    Raises:
        DomainError: if r0 <= 0, sigma < 0, or any value is not finite
    """
    values = {"k": k, "r0": r0, "sigma": sigma, "epsilon": epsilon}
    for name, value in values.items():
        if not math.isfinite(float(value)):
            raise DomainError(f"FENE parameter {name} must be finite, got {value!r}")
    if r0 <= 0.0:
        raise DomainError(f"FENE r0 must be positive, got {r0!r}")
    if sigma < 0.0:
        raise DomainError(f"FENE sigma must be non-negative, got {sigma!r}")
    return FENEParams(k=float(k), r0=float(r0), sigma=float(sigma), epsilon=float(epsilon))


def kremer_grest_params() -> FENEParams:
    """The standard bead-spring polymer bond: k=30, r0=1.5, sigma=epsilon=1."""
    return make_fene_params(k=30.0, r0=1.5, sigma=1.0, epsilon=1.0)


def parameter_arrays(table: dict) -> tuple:
    """Pack a {type_id: FENEParams} table into dense arrays indexed by type id.

    Unregistered ids inside the range get NaN so that any accidental use
    shows up as a non-finite result rather than a silent zero.

    Returns:
        (k, r0, sigma, epsilon), each (max_type_id + 1,) float64
    """
    n_types = max(table) + 1 if table else 0
    k = np.full(n_types, np.nan)
    r0 = np.full(n_types, np.nan)
    sigma = np.full(n_types, np.nan)
    epsilon = np.full(n_types, np.nan)
    for type_id, p in table.items():
        k[type_id] = p.k
        r0[type_id] = p.r0
        sigma[type_id] = p.sigma
        epsilon[type_id] = p.epsilon
    return k, r0, sigma, epsilon
