"""Numerical core: log-sum-exp marginalisation, densities and transforms."""
from __future__ import annotations

from .densities import (
    bernoulli_logit_lpmf,
    bernoulli_lpmf,
    beta_lpdf,
    check_non_negative,
    check_positive,
    check_probability,
    check_simplex,
    dirichlet_lpdf,
    gamma_lpdf,
    normal_lpdf,
)
from .logsumexp import log_sum_exp, marginalize, state_posterior

__all__ = [
    "bernoulli_logit_lpmf",
    "bernoulli_lpmf",
    "beta_lpdf",
    "check_non_negative",
    "check_positive",
    "check_probability",
    "check_simplex",
    "dirichlet_lpdf",
    "gamma_lpdf",
    "normal_lpdf",
    "log_sum_exp",
    "marginalize",
    "state_posterior",
]
