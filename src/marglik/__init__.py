"""marglik
==========

Marginalised likelihoods for Bayesian models with discrete latent states.

Discrete states (an unobserved binary exposure, a mixture label) are summed
out with log-sum-exp inside pure JAX log-densities, so the models can be
differentiated and handed to a gradient-based sampler.  A piecewise-constant
hazard survival model shares the same interface.
"""

from .utils import jax_setup as _jax_setup  # noqa: F401  (enables float64)

from .core.logsumexp import log_sum_exp, marginalize, state_posterior
from .errors import InvalidParameter, MarglikError, ModelDataError, SamplingError

__version__ = "0.1.0"

__all__ = [
    "log_sum_exp",
    "marginalize",
    "state_posterior",
    "InvalidParameter",
    "MarglikError",
    "ModelDataError",
    "SamplingError",
    "__version__",
]
