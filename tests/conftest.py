"""Shared test configuration.

Both backends run in float64 so that parity checks measure algorithmic
differences rather than single-precision roundoff.
"""

import jax

jax.config.update("jax_enable_x64", True)

import pytest

from fenesim.accelerated import FENEBondForceJAX
from fenesim.compute import FENEBondForce


@pytest.fixture(params=[FENEBondForce, FENEBondForceJAX], ids=["reference", "jax"])
def force_cls(request):
    """Evaluator class; tests using it run once per backend."""
    return request.param
