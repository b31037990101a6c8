"""Finite mixture of univariate normal distributions."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import jax.numpy as jnp
import numpy as np
from numpy.typing import NDArray

from ..core.densities import (
    check_positive,
    check_simplex,
    dirichlet_lpdf,
    gamma_lpdf,
    normal_lpdf,
)
from ..core.logsumexp import marginalize, state_posterior
from ..core.transforms import (
    ordered_constrain,
    ordered_unconstrain,
    positive_constrain,
    positive_unconstrain,
    simplex_constrain,
    simplex_unconstrain,
)
from ..errors import ModelDataError
from ..typing import Array, ParamDict
from .base import LatentStateModel, as_readonly, scatter

logger = logging.getLogger(__name__)

UNLABELLED = -1


@dataclass(frozen=True)
class MixtureData:
    """Observations for :class:`NormalMixtureModel`.

    ``labels`` holds the known component of each observation or ``-1`` when
    it is unknown; ``grid`` is an optional set of points on which the fitted
    density is reported.
    """

    y: NDArray[np.float64]
    num_components: int
    labels: Optional[NDArray[np.int64]] = None
    grid: Optional[NDArray[np.float64]] = None

    def __post_init__(self) -> None:
        y = as_readonly(self.y)
        if y.ndim != 1:
            raise ModelDataError(f"y must be a vector, received shape {y.shape}.")
        if int(self.num_components) < 1:
            raise ModelDataError("num_components must be at least 1.")
        labels = np.full(y.shape, UNLABELLED) if self.labels is None else np.asarray(self.labels)
        if labels.shape != y.shape:
            raise ModelDataError(f"labels must have shape {y.shape}, received {labels.shape}.")
        known = labels[labels != UNLABELLED]
        if np.any((known < 0) | (known >= self.num_components)):
            raise ModelDataError(
                f"labels must be -1 or lie in [0, {self.num_components - 1}]."
            )
        object.__setattr__(self, "y", y)
        object.__setattr__(self, "num_components", int(self.num_components))
        object.__setattr__(self, "labels", as_readonly(labels, dtype=np.int64))
        if self.grid is not None:
            object.__setattr__(self, "grid", as_readonly(np.ravel(self.grid)))

    @property
    def n(self) -> int:
        return int(self.y.shape[0])

    @property
    def complete_index(self) -> NDArray[np.int64]:
        return np.flatnonzero(self.labels != UNLABELLED)

    @property
    def reduced_index(self) -> NDArray[np.int64]:
        return np.flatnonzero(self.labels == UNLABELLED)


@dataclass(frozen=True)
class MixturePriors:
    """``w ~ Dirichlet(alpha)``, ``mu ~ Normal(mu_loc, mu_scale)``, ``sigma ~ Gamma(shape, rate)``."""

    alpha: float = 1.0
    mu_loc: float = 0.0
    mu_scale: float = 10.0
    sigma_shape: float = 2.0
    sigma_rate: float = 1.0


def check_parameters(params: ParamDict) -> None:
    check_simplex("weights", params["weights"])
    check_positive("sigma", params["sigma"])


def component_log_joint(params: ParamDict, state: Array, y: Array) -> Array:
    """``log w_k + log Normal(y | mu_k, sigma_k)`` for component ``k = state``."""

    log_w = jnp.log(jnp.asarray(params["weights"], dtype=jnp.float64))
    mu = jnp.asarray(params["mu"], dtype=jnp.float64)
    sigma = jnp.asarray(params["sigma"], dtype=jnp.float64)
    return log_w[state] + normal_lpdf(y, mu[state], sigma[state])


def mixture_log_terms(params: ParamDict, y: Array) -> Tuple[Array, Array]:
    """Mixture log-density of ``y`` and the per-component terms."""

    check_parameters(params)
    y = jnp.asarray(y, dtype=jnp.float64)
    num_components = jnp.shape(params["weights"])[-1]
    return marginalize(lambda k: component_log_joint(params, k, y), num_components)


class NormalMixtureModel(LatentStateModel):
    """K-component normal mixture with ordered component means."""

    name = "mixture"

    def __init__(self, data: MixtureData, priors: Optional[MixturePriors] = None) -> None:
        self.data = data
        self.priors = priors or MixturePriors()
        self.num_components = data.num_components
        self._complete_index = data.complete_index
        self._reduced_index = data.reduced_index
        self._complete = (
            jnp.asarray(data.y[self._complete_index]),
            jnp.asarray(data.labels[self._complete_index]),
        )
        self._reduced_y = jnp.asarray(data.y[self._reduced_index])
        self._grid = None if data.grid is None else jnp.asarray(data.grid)
        logger.debug(
            "Normal mixture with K=%d, %d labelled and %d unlabelled observations.",
            self.num_components,
            self._complete_index.size,
            self._reduced_index.size,
        )

    def constrain(self, unconstrained: ParamDict) -> Tuple[ParamDict, Array]:
        weights, log_jac_w = simplex_constrain(unconstrained["weights"])
        mu, log_jac_mu = ordered_constrain(unconstrained["mu"])
        sigma, log_jac_sigma = positive_constrain(unconstrained["sigma"])
        params = {"weights": weights, "mu": mu, "sigma": sigma}
        return params, log_jac_w + log_jac_mu + log_jac_sigma

    def unconstrain(self, params: ParamDict) -> ParamDict:
        return {
            "weights": simplex_unconstrain(params["weights"]),
            "mu": ordered_unconstrain(params["mu"]),
            "sigma": positive_unconstrain(params["sigma"]),
        }

    def validate(self, params: ParamDict) -> None:
        check_parameters(params)

    def default_params(self) -> ParamDict:
        K = self.num_components
        y = self.data.y
        if K == 1:
            mu = np.array([np.mean(y)])
        else:
            mu = np.quantile(y, (np.arange(K) + 0.5) / K)
            mu = mu + 1e-3 * np.arange(K)  # strictly increasing for ties
        spread = float(np.std(y)) / K if y.size > 1 else 1.0
        return {
            "weights": jnp.full((K,), 1.0 / K, dtype=jnp.float64),
            "mu": jnp.asarray(mu, dtype=jnp.float64),
            "sigma": jnp.full((K,), max(spread, 1e-3), dtype=jnp.float64),
        }

    def log_prior(self, params: ParamDict) -> Array:
        pri = self.priors
        return (
            dirichlet_lpdf(params["weights"], pri.alpha)
            + jnp.sum(normal_lpdf(params["mu"], pri.mu_loc, pri.mu_scale))
            + jnp.sum(gamma_lpdf(params["sigma"], pri.sigma_shape, pri.sigma_rate))
        )

    def _complete_log_likelihood(self, params: ParamDict) -> Array:
        y, labels = self._complete
        return component_log_joint(params, labels, y)

    def pointwise_log_likelihood(self, params: ParamDict) -> Array:
        self.validate(params)
        marginal, _ = mixture_log_terms(params, self._reduced_y)
        out = scatter(self.data.n, self._reduced_index, marginal)
        return out.at[self._complete_index].set(self._complete_log_likelihood(params))

    def density(self, params: ParamDict, grid: Array) -> Array:
        """Mixture density evaluated at ``grid``."""

        return jnp.exp(mixture_log_terms(params, grid)[0])

    def generated_quantities(self, params: ParamDict) -> Dict[str, Array]:
        marginal, terms = mixture_log_terms(params, self._reduced_y)
        log_lik = scatter(self.data.n, self._reduced_index, marginal)
        log_lik = log_lik.at[self._complete_index].set(self._complete_log_likelihood(params))
        out = {"responsibilities": state_posterior(terms, marginal), "log_lik": log_lik}
        if self._grid is not None:
            out["density"] = self.density(params, self._grid)
        return out


__all__ = [
    "UNLABELLED",
    "MixtureData",
    "MixturePriors",
    "NormalMixtureModel",
    "check_parameters",
    "component_log_joint",
    "mixture_log_terms",
]
