"""JAX configuration and helper utilities used throughout the package."""

from __future__ import annotations

import os
from typing import Any, Callable

os.environ.setdefault("JAX_USE_PJRT_C_API_ON_CPU", "0")

import jax
import jax.numpy as jnp

from ..errors import SamplingError
from ..typing import Array

jax.config.update("jax_platform_name", "cpu")
jax.config.update("jax_enable_x64", True)


def vmap(fn: Callable[..., Array], *args, **kwargs) -> Callable[..., Array]:
    """Thin wrapper over :func:`jax.vmap` to keep imports centralised."""

    return jax.vmap(fn, *args, **kwargs)


def vjit(fn: Callable[..., Array]) -> Callable[..., Array]:
    """Wrapper adding :func:`jax.jit` with ``static_argnums=()`` by default."""

    return jax.jit(fn, static_argnums=())


def nan_guard(name: str, *trees: Any) -> None:
    """Raise with diagnostics if any leaf of ``trees`` contains NaNs or infs."""

    for tree in trees:
        for leaf in jax.tree_util.tree_leaves(tree):
            tensor = jnp.asarray(leaf)
            if tensor.size and bool(jnp.any(~jnp.isfinite(tensor))):
                stats = {
                    "min": float(jnp.nanmin(tensor)),
                    "max": float(jnp.nanmax(tensor)),
                    "mean": float(jnp.nanmean(tensor)),
                }
                raise SamplingError(f"{name}: detected non-finite values with stats {stats}")


__all__ = ["vmap", "vjit", "nan_guard"]
