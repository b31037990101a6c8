"""Parameter space transforms between unconstrained and constrained values.

Each ``*_constrain`` function maps real vectors onto the parameter's support
and returns the log absolute determinant of the Jacobian so that samplers
working on the unconstrained space target the right density.  The matching
``*_unconstrain`` function is its inverse and is used to build initial
positions from constrained guesses.
"""
from __future__ import annotations

from typing import Tuple

import jax
import jax.numpy as jnp
from jax.nn import log_sigmoid

from ..typing import Array


def softplus(x: Array) -> Array:
    return jax.nn.softplus(jnp.asarray(x, dtype=jnp.float64))


def inv_softplus(y: Array, min: float = 1e-12) -> Array:
    """Inverse of :func:`softplus` on the positive real line."""

    y_adj = jnp.maximum(jnp.asarray(y, dtype=jnp.float64), min)
    return y_adj + jnp.log(-jnp.expm1(-y_adj))


def positive_constrain(z: Array) -> Tuple[Array, Array]:
    z = jnp.asarray(z, dtype=jnp.float64)
    return softplus(z), jnp.sum(log_sigmoid(z))


def positive_unconstrain(x: Array) -> Array:
    return inv_softplus(x)


def unit_interval_constrain(z: Array) -> Tuple[Array, Array]:
    """Logistic map onto ``(0, 1)``; ``d sigmoid = sigmoid (1 - sigmoid)``."""

    z = jnp.asarray(z, dtype=jnp.float64)
    return jax.nn.sigmoid(z), jnp.sum(log_sigmoid(z) + log_sigmoid(-z))


def unit_interval_unconstrain(p: Array) -> Array:
    p = jnp.asarray(p, dtype=jnp.float64)
    return jnp.log(p) - jnp.log1p(-p)


def ordered_constrain(z: Array) -> Tuple[Array, Array]:
    """Map ``z`` to an increasing vector ``x_0 = z_0, x_k = x_{k-1} + exp(z_k)``."""

    z = jnp.asarray(z, dtype=jnp.float64)
    increments = jnp.concatenate((z[:1], jnp.exp(z[1:])))
    return jnp.cumsum(increments), jnp.sum(z[1:])


def ordered_unconstrain(x: Array) -> Array:
    x = jnp.asarray(x, dtype=jnp.float64)
    return jnp.concatenate((x[:1], jnp.log(jnp.diff(x))))


def simplex_constrain(z: Array) -> Tuple[Array, Array]:
    """Additive log-ratio map from ``K - 1`` reals onto the ``K``-simplex.

    With ``w = softmax((z, 0))`` the Jacobian of ``z -> w[:-1]`` has
    determinant ``prod_k w_k`` over all ``K`` components.
    """

    z = jnp.asarray(z, dtype=jnp.float64)
    logits = jnp.concatenate((z, jnp.zeros((1,), dtype=z.dtype)))
    log_w = jax.nn.log_softmax(logits)
    return jnp.exp(log_w), jnp.sum(log_w)


def simplex_unconstrain(w: Array) -> Array:
    log_w = jnp.log(jnp.asarray(w, dtype=jnp.float64))
    return log_w[:-1] - log_w[-1]


__all__ = [
    "softplus",
    "inv_softplus",
    "positive_constrain",
    "positive_unconstrain",
    "unit_interval_constrain",
    "unit_interval_unconstrain",
    "ordered_constrain",
    "ordered_unconstrain",
    "simplex_constrain",
    "simplex_unconstrain",
]
