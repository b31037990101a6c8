"""Log-density kernels and parameter domain checks.

Every kernel is written with JAX primitives so that it can be traced by
:func:`jax.jit` and differentiated by :func:`jax.grad`.  The ``check_*``
helpers raise :class:`~marglik.errors.InvalidParameter` when they are handed
concrete values outside the parameter domain; traced values are skipped
because inside the sampler the constrained parameters are produced by the
transforms in :mod:`marglik.core.transforms` and satisfy the constraints by
construction.
"""
from __future__ import annotations

from typing import Optional

import jax
import jax.numpy as jnp
import numpy as np
from jax.nn import log_sigmoid
from jax.scipy import stats as jstats
from jax.scipy.special import xlog1py, xlogy

from ..errors import InvalidParameter
from ..typing import Array

SIMPLEX_ATOL = 1e-8


def _concrete(value) -> Optional[np.ndarray]:
    """Return ``value`` as a NumPy array, or ``None`` when it is a tracer."""

    try:
        return np.asarray(value, dtype=float)
    except (jax.errors.TracerArrayConversionError, jax.errors.ConcretizationTypeError):
        return None


def check_probability(name: str, value) -> None:
    """Ensure every entry of ``value`` lies in ``[0, 1]``."""

    arr = _concrete(value)
    if arr is None:
        return
    if np.any(np.isnan(arr)) or np.any(arr < 0.0) or np.any(arr > 1.0):
        raise InvalidParameter(f"{name} must lie in [0, 1], received {arr.tolist()}")


def check_simplex(name: str, value, atol: float = SIMPLEX_ATOL) -> None:
    """Ensure ``value`` holds probabilities summing to one along the last axis."""

    check_probability(name, value)
    arr = _concrete(value)
    if arr is None:
        return
    totals = np.sum(arr, axis=-1)
    if not np.allclose(totals, 1.0, rtol=0.0, atol=atol):
        raise InvalidParameter(f"{name} must sum to 1, received totals {np.atleast_1d(totals).tolist()}")


def check_non_negative(name: str, value) -> None:
    """Ensure every entry of ``value`` is ``>= 0``."""

    arr = _concrete(value)
    if arr is None:
        return
    if np.any(np.isnan(arr)) or np.any(arr < 0.0):
        raise InvalidParameter(f"{name} must be non-negative, received {arr.tolist()}")


def check_positive(name: str, value) -> None:
    """Ensure every entry of ``value`` is strictly positive."""

    arr = _concrete(value)
    if arr is None:
        return
    if np.any(np.isnan(arr)) or np.any(arr <= 0.0):
        raise InvalidParameter(f"{name} must be strictly positive, received {arr.tolist()}")


def bernoulli_logit_lpmf(y: Array, eta: Array) -> Array:
    """``log p(y | logit^-1(eta))`` for binary ``y``, elementwise."""

    y = jnp.asarray(y, dtype=jnp.float64)
    eta = jnp.asarray(eta, dtype=jnp.float64)
    return y * log_sigmoid(eta) + (1.0 - y) * log_sigmoid(-eta)


def bernoulli_lpmf(y: Array, p: Array) -> Array:
    """``log p(y | p)`` for binary ``y``.

    ``xlogy`` keeps ``0 * log(0)`` at zero so that a probability of exactly
    zero or one only produces ``-inf`` for the outcome it rules out.
    """

    y = jnp.asarray(y, dtype=jnp.float64)
    p = jnp.asarray(p, dtype=jnp.float64)
    return xlogy(y, p) + xlog1py(1.0 - y, -p)


def normal_lpdf(x: Array, loc: Array, scale: Array) -> Array:
    return jstats.norm.logpdf(x, loc=loc, scale=scale)


def gamma_lpdf(x: Array, shape: Array, rate: Array) -> Array:
    """Gamma log-density in the shape/rate parameterisation."""

    rate = jnp.asarray(rate, dtype=jnp.float64)
    return jstats.gamma.logpdf(x, shape, scale=1.0 / rate)


def beta_lpdf(x: Array, a: Array, b: Array) -> Array:
    return jstats.beta.logpdf(x, a, b)


def dirichlet_lpdf(w: Array, alpha: Array) -> Array:
    w = jnp.asarray(w, dtype=jnp.float64)
    alpha = jnp.broadcast_to(jnp.asarray(alpha, dtype=jnp.float64), w.shape)
    return jstats.dirichlet.logpdf(w, alpha)


__all__ = [
    "SIMPLEX_ATOL",
    "check_probability",
    "check_simplex",
    "check_non_negative",
    "check_positive",
    "bernoulli_logit_lpmf",
    "bernoulli_lpmf",
    "normal_lpdf",
    "gamma_lpdf",
    "beta_lpdf",
    "dirichlet_lpdf",
]
