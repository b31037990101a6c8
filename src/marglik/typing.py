"""Shared typing aliases for the marglik package."""

from __future__ import annotations

from typing import Any, Callable, Dict

import jax
import jax.numpy as jnp

Array = jnp.ndarray
PRNGKey = jax.Array
PyTree = Any
ParamDict = Dict[str, Array]
StateLogJointFn = Callable[[Array], Array]


__all__ = [
    "Array",
    "PRNGKey",
    "PyTree",
    "ParamDict",
    "StateLogJointFn",
]
