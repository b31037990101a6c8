"""Synthetic datasets for the latent-state models.

The generators mirror the data-generating process of each model so that a
fit can be checked against known parameter values.
"""

from __future__ import annotations

from typing import Optional, Sequence

import numpy as np

from .models.mismeasurement import MismeasurementData
from .models.mixture import UNLABELLED, MixtureData
from .models.piecewise_hazard import PiecewiseHazardData


def _sigmoid(x: np.ndarray) -> np.ndarray:
    return 1.0 / (1.0 + np.exp(-x))


def simulate_mismeasurement(
    rng: np.random.Generator,
    n: int = 500,
    beta: Sequence[float] = (-0.5, 1.0),
    phi: Sequence[float] = (0.1, 0.8),
    psi: float = 0.3,
    validation_fraction: float = 0.2,
    differential: bool = False,
) -> MismeasurementData:
    """Draw outcomes, exposures and surrogates; keep ``x`` for a validation subset.

    ``beta`` holds the intercept, the exposure effect and then one coefficient
    per extra standard-normal covariate.  ``phi`` is ``P(x* = 1 | x = s)``, or
    a ``(2, 2)`` table indexed ``[y, s]`` when ``differential``.
    """

    beta = np.asarray(beta, dtype=float)
    phi = np.asarray(phi, dtype=float)
    num_covariates = beta.size - 2
    covariates = rng.standard_normal((n, num_covariates))

    x = rng.binomial(1, psi, size=n).astype(float)
    eta = beta[0] + beta[1] * x + covariates @ beta[2:]
    y = rng.binomial(1, _sigmoid(eta)).astype(float)
    x_idx = x.astype(int)
    p_obs = phi[y.astype(int), x_idx] if differential else phi[x_idx]
    x_obs = rng.binomial(1, p_obs).astype(float)

    x_true = np.where(rng.random(n) < validation_fraction, x, np.nan)
    return MismeasurementData.from_arrays(y, x_obs, x_true=x_true, covariates=covariates)


def simulate_mixture(
    rng: np.random.Generator,
    n: int = 500,
    weights: Sequence[float] = (0.3, 0.7),
    mu: Sequence[float] = (-2.0, 2.0),
    sigma: Sequence[float] = (1.0, 1.0),
    labelled_fraction: float = 0.0,
    grid: Optional[Sequence[float]] = None,
) -> MixtureData:
    """Normal-mixture observations, a fraction of them with known labels."""

    weights = np.asarray(weights, dtype=float)
    mu = np.asarray(mu, dtype=float)
    sigma = np.asarray(sigma, dtype=float)
    z = rng.choice(weights.size, size=n, p=weights / weights.sum())
    y = rng.normal(mu[z], sigma[z])
    labels = np.where(rng.random(n) < labelled_fraction, z, UNLABELLED)
    return MixtureData(
        y=y,
        num_components=weights.size,
        labels=labels,
        grid=None if grid is None else np.asarray(grid, dtype=float),
    )


def simulate_piecewise_hazard(
    rng: np.random.Generator,
    n: int = 300,
    hazard: Sequence[float] = (0.05, 0.1, 0.2),
    cutpoints: Sequence[float] = (0.0, 5.0, 10.0, np.inf),
    beta: Sequence[float] = (0.5,),
    censor_time: float = 20.0,
    grid: Optional[Sequence[float]] = None,
) -> PiecewiseHazardData:
    """Event times by inverting the cumulative hazard, with censoring.

    Times are administratively censored at ``censor_time`` and randomly
    censored at a uniform time on ``[0, 2 * censor_time]``.  The last cutpoint
    is replaced by ``inf`` when it does not exceed every simulated time.
    """

    hazard = np.asarray(hazard, dtype=float)
    cutpoints = np.asarray(cutpoints, dtype=float)
    beta = np.asarray(beta, dtype=float)
    covariates = rng.standard_normal((n, beta.size))
    eta = covariates @ beta

    widths = np.diff(cutpoints)
    boundary = np.concatenate(([0.0], np.cumsum(hazard[:-1] * widths[:-1])))
    target = rng.exponential(size=n) / np.exp(eta)
    k = np.searchsorted(boundary, target, side="right") - 1
    event_time = cutpoints[k] + (target - boundary[k]) / hazard[k]

    censor = np.minimum(censor_time, rng.uniform(0.0, 2.0 * censor_time, size=n))
    time = np.minimum(event_time, censor)
    event = (event_time <= censor).astype(float)

    if not cutpoints[-1] > np.max(time):
        cutpoints = cutpoints.copy()
        cutpoints[-1] = np.inf
    return PiecewiseHazardData(
        time=time,
        event=event,
        cutpoints=cutpoints,
        covariates=covariates,
        grid=None if grid is None else np.asarray(grid, dtype=float),
    )


__all__ = ["simulate_mismeasurement", "simulate_mixture", "simulate_piecewise_hazard"]
