"""Common interface shared by the latent-state models.

A model owns fixed observation data and exposes pure functions of a
parameter dictionary.  Two parameterisations are involved:

* the *constrained* dictionary, whose entries live on their natural support
  (probabilities, positive rates, simplexes) and which every density is
  written against; and
* the *unconstrained* dictionary handed to the sampler, mapped to the
  constrained one by :meth:`LatentStateModel.constrain` together with the log
  absolute Jacobian determinant.

:meth:`LatentStateModel.log_density` is the single scalar returned to the
inference engine, and :meth:`LatentStateModel.value_and_grad` is its gradient
companion.  :meth:`LatentStateModel.generated_quantities` is the reporting
side channel evaluated once per posterior draw.
"""
from __future__ import annotations

import abc
from typing import Dict, Tuple

import jax
import jax.numpy as jnp
import numpy as np
from numpy.typing import NDArray

from ..typing import Array, ParamDict, PRNGKey


def as_readonly(values, dtype=float) -> NDArray:
    """Copy ``values`` to a NumPy array that cannot be modified in place."""

    arr = np.array(values, dtype=dtype, copy=True)
    arr.setflags(write=False)
    return arr


def scatter(n: int, index: NDArray, values: Array) -> Array:
    """Place ``values`` at positions ``index`` of a length-``n`` vector."""

    out = jnp.zeros((n,), dtype=jnp.float64)
    return out.at[index].set(values)


class LatentStateModel(abc.ABC):
    """Base class for models evaluated as pure log-density functions."""

    #: Name used in configuration files and reports.
    name: str = "model"

    @abc.abstractmethod
    def constrain(self, unconstrained: ParamDict) -> Tuple[ParamDict, Array]:
        """Map unconstrained values to the support; return ``(params, log_jac)``."""

    @abc.abstractmethod
    def unconstrain(self, params: ParamDict) -> ParamDict:
        """Inverse of :meth:`constrain`."""

    @abc.abstractmethod
    def validate(self, params: ParamDict) -> None:
        """Raise :class:`~marglik.errors.InvalidParameter` for out-of-domain values."""

    @abc.abstractmethod
    def default_params(self) -> ParamDict:
        """Constrained starting values derived from the data."""

    @abc.abstractmethod
    def log_prior(self, params: ParamDict) -> Array:
        ...

    @abc.abstractmethod
    def pointwise_log_likelihood(self, params: ParamDict) -> Array:
        """Log-likelihood contribution of every observation, in data order."""

    def generated_quantities(self, params: ParamDict) -> Dict[str, Array]:
        return {"log_lik": self.pointwise_log_likelihood(params)}

    def log_likelihood(self, params: ParamDict) -> Array:
        return jnp.sum(self.pointwise_log_likelihood(params))

    def log_posterior(self, params: ParamDict) -> Array:
        """Log-prior plus log-likelihood on the constrained space."""

        self.validate(params)
        return self.log_prior(params) + self.log_likelihood(params)

    def log_density(self, unconstrained: ParamDict) -> Array:
        """Log-posterior on the unconstrained space, Jacobian included."""

        params, log_jac = self.constrain(unconstrained)
        return self.log_posterior(params) + log_jac

    def value_and_grad(self, unconstrained: ParamDict) -> Tuple[Array, ParamDict]:
        return jax.value_and_grad(self.log_density)(unconstrained)

    def initial_position(self, key: PRNGKey, radius: float = 1.0) -> ParamDict:
        """Jitter the unconstrained defaults uniformly within ``radius``."""

        base = self.unconstrain(self.default_params())
        leaves, treedef = jax.tree_util.tree_flatten(base)
        keys = jax.random.split(key, len(leaves))
        jittered = [
            jnp.asarray(leaf, dtype=jnp.float64)
            + jax.random.uniform(k, jnp.shape(leaf), minval=-radius, maxval=radius, dtype=jnp.float64)
            for leaf, k in zip(leaves, keys)
        ]
        return jax.tree_util.tree_unflatten(treedef, jittered)


__all__ = ["LatentStateModel", "as_readonly", "scatter"]
