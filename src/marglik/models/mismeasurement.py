"""Logistic regression with a misclassified binary covariate.

The outcome model is ``y ~ Bernoulli(logit^-1(b_0 + b_1 x + Z g))`` where the
binary exposure ``x`` is only available for a validation subset.  Every row
carries a surrogate ``x*`` observed with error:

.. math::

    P(x^* = 1 \\mid x = s) = \\phi_s \\quad\\text{or}\\quad
    P(x^* = 1 \\mid x = s, y) = \\phi_{y, s}

for non-differential and differential misclassification respectively, and
the exposure prevalence is ``P(x = 1) = \\psi``.

Rows with a validated ``x`` are *complete* and contribute the joint density at
the known value.  The remaining *reduced* rows contribute

.. math::

    \\log \\sum_{s \\in \\{0, 1\\}} p(y \\mid s)\\, p(x^* \\mid s)\\, p(s)

evaluated with :func:`~marglik.core.logsumexp.marginalize`.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

import jax.numpy as jnp
import numpy as np
from numpy.typing import NDArray

from ..core.densities import (
    bernoulli_logit_lpmf,
    bernoulli_lpmf,
    beta_lpdf,
    check_probability,
    normal_lpdf,
)
from ..core.logsumexp import marginalize, state_posterior
from ..core.transforms import unit_interval_constrain, unit_interval_unconstrain
from ..errors import ModelDataError
from ..typing import Array, ParamDict
from .base import LatentStateModel, as_readonly, scatter

logger = logging.getLogger(__name__)

NUM_STATES = 2


def _check_binary(name: str, values: NDArray) -> None:
    if not np.all(np.isin(values, (0.0, 1.0))):
        raise ModelDataError(f"{name} must contain only 0/1 values.")


@dataclass(frozen=True)
class MismeasurementData:
    """Observed inputs for :class:`MismeasurementModel`.

    Attributes
    ----------
    y:
        Binary outcome, shape ``(n,)``.
    x_obs:
        Binary surrogate for the exposure, shape ``(n,)``.
    x_true:
        Validated exposure with ``NaN`` where it was not measured, shape
        ``(n,)``.  The NaN pattern fixes the complete/reduced partition.
    covariates:
        Additional outcome-model covariates, shape ``(n, p)``; ``p`` may be 0.
    """

    y: NDArray[np.float64]
    x_obs: NDArray[np.float64]
    x_true: NDArray[np.float64]
    covariates: NDArray[np.float64]
    observed: NDArray[np.bool_] = field(init=False)

    def __post_init__(self) -> None:
        y = as_readonly(self.y)
        x_obs = as_readonly(self.x_obs)
        x_true = as_readonly(self.x_true)
        covariates = np.asarray(self.covariates, dtype=float)
        if covariates.ndim == 1:
            covariates = covariates[:, None]
        covariates = as_readonly(covariates)

        n = y.shape[0]
        if y.ndim != 1 or x_obs.shape != (n,) or x_true.shape != (n,):
            raise ModelDataError(
                f"y, x_obs and x_true must be vectors of equal length, received "
                f"{y.shape}, {x_obs.shape}, {x_true.shape}."
            )
        if covariates.shape[0] != n:
            raise ModelDataError(f"covariates must have {n} rows, received {covariates.shape}.")
        _check_binary("y", y)
        _check_binary("x_obs", x_obs)
        observed = ~np.isnan(x_true)
        _check_binary("x_true", x_true[observed])

        object.__setattr__(self, "y", y)
        object.__setattr__(self, "x_obs", x_obs)
        object.__setattr__(self, "x_true", x_true)
        object.__setattr__(self, "covariates", covariates)
        object.__setattr__(self, "observed", as_readonly(observed, dtype=bool))

    @classmethod
    def from_arrays(
        cls,
        y,
        x_obs,
        x_true=None,
        covariates=None,
    ) -> "MismeasurementData":
        y = np.asarray(y, dtype=float)
        if x_true is None:
            x_true = np.full(y.shape, np.nan)
        if covariates is None:
            covariates = np.zeros((y.shape[0], 0))
        return cls(y=y, x_obs=x_obs, x_true=x_true, covariates=covariates)

    @property
    def n(self) -> int:
        return int(self.y.shape[0])

    @property
    def num_covariates(self) -> int:
        return int(self.covariates.shape[1])

    @property
    def complete_index(self) -> NDArray[np.int64]:
        return np.flatnonzero(self.observed)

    @property
    def reduced_index(self) -> NDArray[np.int64]:
        return np.flatnonzero(~self.observed)


@dataclass(frozen=True)
class MismeasurementPriors:
    """Hyper-parameters of the mismeasurement model.

    ``phi_a`` and ``phi_b`` are broadcast against ``phi``, so a pair of
    values gives separate Beta priors for the false-positive rate
    ``phi[0] = P(x* = 1 | x = 0)`` and the sensitivity ``phi[1]``.
    """

    beta_scale: float = 2.5
    phi_a: Tuple[float, ...] = (1.0, 1.0)
    phi_b: Tuple[float, ...] = (1.0, 1.0)
    psi_a: float = 1.0
    psi_b: float = 1.0


def check_parameters(params: ParamDict) -> None:
    """Raise :class:`~marglik.errors.InvalidParameter` for probabilities outside ``[0, 1]``."""

    check_probability("phi", params["phi"])
    check_probability("psi", params["psi"])


def error_probability(phi: Array, state: Array, y: Array, differential: bool) -> Array:
    """``P(x* = 1 | x = state)`` for each row, optionally depending on ``y``."""

    if differential:
        return jnp.where(jnp.asarray(y) > 0.5, phi[1, state], phi[0, state])
    return phi[state]


def state_log_joint(
    params: ParamDict,
    state: Array,
    y: Array,
    x_obs: Array,
    covariates: Array,
    differential: bool = False,
) -> Array:
    """Joint log-density of outcome, surrogate and exposure at ``x = state``.

    The three addends are the outcome model, the misclassification model and
    the exposure prevalence.
    """

    beta = jnp.asarray(params["beta"], dtype=jnp.float64)
    phi = jnp.asarray(params["phi"], dtype=jnp.float64)
    psi = jnp.asarray(params["psi"], dtype=jnp.float64)
    covariates = jnp.asarray(covariates, dtype=jnp.float64)
    state_f = jnp.asarray(state, dtype=jnp.float64)

    eta = beta[0] + beta[1] * state_f + covariates @ beta[2:]
    p_obs = error_probability(phi, state, y, differential)
    return (
        bernoulli_logit_lpmf(y, eta)
        + bernoulli_lpmf(x_obs, p_obs)
        + bernoulli_lpmf(state_f, psi)
    )


def observation_log_terms(
    params: ParamDict,
    y: Array,
    x_obs: Array,
    covariates: Optional[Array] = None,
    differential: bool = False,
) -> Tuple[Array, Array]:
    """Marginal log-likelihood and per-state terms for rows with unknown ``x``.

    ``y`` and ``x_obs`` may be scalars or vectors; ``covariates`` defaults to
    no extra columns.  Returns ``(marginal, terms)`` with ``terms[..., s]`` the
    joint log-density at ``x = s``.
    """

    check_parameters(params)
    y = jnp.asarray(y, dtype=jnp.float64)
    x_obs = jnp.asarray(x_obs, dtype=jnp.float64)
    if covariates is None:
        covariates = jnp.zeros(y.shape + (0,), dtype=jnp.float64)

    def log_joint(state: Array) -> Array:
        return state_log_joint(params, state, y, x_obs, covariates, differential)

    return marginalize(log_joint, NUM_STATES)


class MismeasurementModel(LatentStateModel):
    """Outcome regression corrected for a misclassified binary exposure."""

    name = "mismeasurement"

    def __init__(
        self,
        data: MismeasurementData,
        priors: Optional[MismeasurementPriors] = None,
        differential: bool = False,
    ) -> None:
        self.data = data
        self.priors = priors or MismeasurementPriors()
        self.differential = bool(differential)

        c_idx = data.complete_index
        r_idx = data.reduced_index
        self._complete_index = c_idx
        self._reduced_index = r_idx
        self._complete = (
            jnp.asarray(data.y[c_idx]),
            jnp.asarray(data.x_obs[c_idx]),
            jnp.asarray(data.x_true[c_idx].astype(np.int64)),
            jnp.asarray(data.covariates[c_idx]),
        )
        self._reduced = (
            jnp.asarray(data.y[r_idx]),
            jnp.asarray(data.x_obs[r_idx]),
            jnp.asarray(data.covariates[r_idx]),
        )
        logger.debug(
            "Mismeasurement model with %d complete and %d reduced rows.",
            c_idx.size,
            r_idx.size,
        )

    @property
    def phi_shape(self) -> Tuple[int, ...]:
        return (2, NUM_STATES) if self.differential else (NUM_STATES,)

    def constrain(self, unconstrained: ParamDict) -> Tuple[ParamDict, Array]:
        phi, log_jac_phi = unit_interval_constrain(unconstrained["phi"])
        psi, log_jac_psi = unit_interval_constrain(unconstrained["psi"])
        params = {"beta": jnp.asarray(unconstrained["beta"], dtype=jnp.float64), "phi": phi, "psi": psi}
        return params, log_jac_phi + log_jac_psi

    def unconstrain(self, params: ParamDict) -> ParamDict:
        return {
            "beta": jnp.asarray(params["beta"], dtype=jnp.float64),
            "phi": unit_interval_unconstrain(params["phi"]),
            "psi": unit_interval_unconstrain(params["psi"]),
        }

    def validate(self, params: ParamDict) -> None:
        check_parameters(params)

    def default_params(self) -> ParamDict:
        prevalence = float(np.clip(np.mean(self.data.x_obs), 0.05, 0.95))
        phi = np.broadcast_to(np.array([0.2, 0.8]), self.phi_shape)
        return {
            "beta": jnp.zeros((2 + self.data.num_covariates,), dtype=jnp.float64),
            "phi": jnp.asarray(phi, dtype=jnp.float64),
            "psi": jnp.asarray(prevalence, dtype=jnp.float64),
        }

    def log_prior(self, params: ParamDict) -> Array:
        pri = self.priors
        phi_a = jnp.broadcast_to(jnp.asarray(pri.phi_a, dtype=jnp.float64), self.phi_shape)
        phi_b = jnp.broadcast_to(jnp.asarray(pri.phi_b, dtype=jnp.float64), self.phi_shape)
        return (
            jnp.sum(normal_lpdf(params["beta"], 0.0, pri.beta_scale))
            + jnp.sum(beta_lpdf(params["phi"], phi_a, phi_b))
            + beta_lpdf(params["psi"], pri.psi_a, pri.psi_b)
        )

    def _reduced_terms(self, params: ParamDict) -> Tuple[Array, Array]:
        y, x_obs, covariates = self._reduced
        return observation_log_terms(params, y, x_obs, covariates, self.differential)

    def _complete_log_likelihood(self, params: ParamDict) -> Array:
        y, x_obs, x_true, covariates = self._complete
        return state_log_joint(params, x_true, y, x_obs, covariates, self.differential)

    def pointwise_log_likelihood(self, params: ParamDict) -> Array:
        self.validate(params)
        marginal, _ = self._reduced_terms(params)
        complete = self._complete_log_likelihood(params)
        out = scatter(self.data.n, self._reduced_index, marginal)
        return out.at[self._complete_index].set(complete)

    def generated_quantities(self, params: ParamDict) -> Dict[str, Array]:
        marginal, terms = self._reduced_terms(params)
        probs = state_posterior(terms, marginal)
        complete = self._complete_log_likelihood(params)
        log_lik = scatter(self.data.n, self._reduced_index, marginal)
        log_lik = log_lik.at[self._complete_index].set(complete)
        return {"x_true_prob": probs[..., 1], "log_lik": log_lik}


__all__ = [
    "MismeasurementData",
    "MismeasurementPriors",
    "MismeasurementModel",
    "check_parameters",
    "error_probability",
    "state_log_joint",
    "observation_log_terms",
]
