"""Discrete latent-state marginalisation with log-sum-exp.

The module provides the numerical pattern shared by every model whose
likelihood is a finite sum over an unobserved discrete state:

``log_sum_exp``
    Stable evaluation of ``log(sum(exp(terms)))`` along one axis.  The largest
    term is factored out so that neither the exponentials nor their sum can
    overflow or underflow, and an all ``-inf`` slice returns ``-inf`` with a
    zero (not NaN) gradient.

``marginalize``
    Higher-order helper that evaluates a per-state log-joint callback for every
    state ``s = 0, ..., H - 1`` and combines the terms with ``log_sum_exp``.
    Models only have to write the joint density for a fixed state.

``state_posterior``
    Recovers ``P(state = s | data, params) = exp(term[s] - M)`` from the terms
    and their marginal ``M``.  This is a reporting quantity evaluated once per
    posterior draw and never enters the log-density handed to the sampler.

All functions are pure JAX code and can be jitted, vmapped and differentiated.
"""
from __future__ import annotations

from typing import Tuple

import jax
import jax.numpy as jnp
from jax import lax

from ..typing import Array, StateLogJointFn


def log_sum_exp(terms: Array, axis: int = -1) -> Array:
    """Return ``log(sum(exp(terms), axis))`` without overflow or underflow.

    Parameters
    ----------
    terms:
        Log-scale values.  Entries may be ``-inf`` (an impossible state).
    axis:
        Axis that is summed out.

    Returns
    -------
    Array
        ``max + log(sum(exp(terms - max)))`` with ``axis`` removed.  When every
        entry of a slice is ``-inf`` the slice evaluates to ``-inf``; the shift
        is replaced by zero there so that ``-inf - (-inf)`` is never formed.
    """

    terms = jnp.asarray(terms, dtype=jnp.float64)
    shift = lax.stop_gradient(jnp.max(terms, axis=axis, keepdims=True))
    degenerate = shift == -jnp.inf
    safe_shift = jnp.where(degenerate, 0.0, shift)
    summed = jnp.sum(jnp.exp(terms - safe_shift), axis=axis, keepdims=True)
    safe_summed = jnp.where(degenerate, 1.0, summed)
    out = jnp.where(degenerate, -jnp.inf, safe_shift + jnp.log(safe_summed))
    return jnp.squeeze(out, axis=axis)


def marginalize(log_joint: StateLogJointFn, num_states: int) -> Tuple[Array, Array]:
    """Sum a discrete state out of ``log_joint`` in log space.

    Parameters
    ----------
    log_joint:
        Callable receiving a scalar integer state ``s`` and returning the joint
        log-density ``log p(data, state = s | params)`` for every observation,
        i.e. an array of shape ``batch_shape``.
    num_states:
        Size ``H`` of the state support ``{0, ..., H - 1}``.

    Returns
    -------
    Tuple[Array, Array]
        ``(marginal, terms)`` where ``terms`` has shape ``batch_shape + (H,)``
        and ``marginal`` has shape ``batch_shape``.
    """

    if num_states < 1:
        raise ValueError(f"num_states must be at least 1, received {num_states}")
    states = jnp.arange(num_states)
    terms = jax.vmap(log_joint)(states)
    terms = jnp.moveaxis(jnp.asarray(terms, dtype=jnp.float64), 0, -1)
    return log_sum_exp(terms, axis=-1), terms


def state_posterior(terms: Array, marginal: Array | None = None) -> Array:
    """Conditional probabilities of each state given the data.

    ``marginal`` defaults to ``log_sum_exp(terms)``.  Rows whose marginal is
    ``-inf`` carry no information about the state and are returned as NaN.
    """

    terms = jnp.asarray(terms, dtype=jnp.float64)
    if marginal is None:
        marginal = log_sum_exp(terms, axis=-1)
    marginal = jnp.asarray(marginal, dtype=jnp.float64)[..., None]
    degenerate = marginal == -jnp.inf
    probs = jnp.exp(terms - jnp.where(degenerate, 0.0, marginal))
    return jnp.where(degenerate, jnp.nan, probs)


__all__ = ["log_sum_exp", "marginalize", "state_posterior"]
