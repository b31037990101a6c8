"""Proportional-hazards survival model with a piecewise-constant baseline.

The baseline hazard equals ``h_k`` on ``[s_k, s_{k+1})`` for cutpoints
``0 = s_0 < s_1 < ... < s_K`` with ``s_K`` beyond the largest observed time
(``inf`` is allowed).  With ``eta_i = x_i^T beta`` observation ``i`` adds, for
every interval ``k``, exactly one of

* ``-exp(eta_i) h_k (s_{k+1} - s_k)`` when ``t_i >= s_{k+1}``;
* ``-exp(eta_i) h_k (t_i - s_k)`` plus ``eta_i + log h_k`` for events, when
  ``s_k <= t_i < s_{k+1}``;
* nothing when ``t_i < s_k``.

Which case applies depends only on the data, so :func:`interval_exposure`
resolves it once with NumPy and the log-likelihood is a smooth function of
``h`` and ``beta``.

Hazard, cumulative hazard and survival curves on an evaluation grid are
reported per draw.  ``"left_point"`` accumulation attributes each whole grid
step to the hazard at the preceding grid point, which is only exact when
every cutpoint is also a grid point; ``"exact"`` integrates the step function.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple, Union

import jax.numpy as jnp
import numpy as np
from numpy.typing import NDArray

from ..core.densities import check_non_negative, gamma_lpdf, normal_lpdf
from ..core.transforms import positive_constrain, positive_unconstrain
from ..errors import ModelDataError
from ..typing import Array, ParamDict
from .base import LatentStateModel, as_readonly

logger = logging.getLogger(__name__)

CURVE_METHODS = ("left_point", "exact")


def interval_exposure(time, cutpoints) -> Tuple[NDArray[np.float64], NDArray[np.bool_]]:
    """Time at risk in each interval and the interval containing each time.

    Returns ``(exposure, inside)`` of shape ``(n, K)``.  ``exposure[i, k]`` is
    the full width, the elapsed part, or zero according to the three cases;
    ``inside[i, k]`` flags ``s_k <= t_i < s_{k+1}``.
    """

    time = np.atleast_1d(np.asarray(time, dtype=float))[:, None]
    cutpoints = np.asarray(cutpoints, dtype=float)
    start = cutpoints[None, :-1]
    end = cutpoints[None, 1:]
    width = end - start

    full = time >= end
    inside = (time >= start) & (time < end)
    exposure = np.where(full, width, np.where(inside, time - start, 0.0))
    return exposure, inside


def check_cutpoints(cutpoints, time) -> None:
    """Raise :class:`ModelDataError` unless ``0 = s_0 < ... < s_K`` covers every time."""

    cutpoints = np.asarray(cutpoints, dtype=float)
    time = np.atleast_1d(np.asarray(time, dtype=float))
    if cutpoints.ndim != 1 or cutpoints.size < 2:
        raise ModelDataError("cutpoints must be a vector with at least two entries.")
    if cutpoints[0] != 0.0 or np.any(np.diff(cutpoints) <= 0.0):
        raise ModelDataError("cutpoints must start at 0 and be strictly increasing.")
    if np.any(time < 0.0) or np.any(np.isnan(time)):
        raise ModelDataError("time must be non-negative.")
    if time.size and not cutpoints[-1] > np.max(time):
        raise ModelDataError(
            f"the last cutpoint ({cutpoints[-1]}) must exceed the largest time ({np.max(time)})."
        )


def pointwise_hazard_log_likelihood(
    hazard: Array, eta: Array, exposure: Array, event_at: Array
) -> Array:
    """Per-observation log-likelihood given precomputed exposure matrices.

    ``event_at[i, k]`` is one when observation ``i`` is an event falling in
    interval ``k``.  The log hazard is only taken where an event occurs, so a
    zero hazard elsewhere leaves both the value and the gradient finite.
    """

    hazard = jnp.asarray(hazard, dtype=jnp.float64)
    eta = jnp.asarray(eta, dtype=jnp.float64)
    exposure = jnp.asarray(exposure, dtype=jnp.float64)
    event_at = jnp.asarray(event_at, dtype=jnp.float64)

    has_event = event_at > 0.0
    safe_hazard = jnp.where(has_event, hazard[None, :], 1.0)
    log_hazard = jnp.where(has_event, event_at * jnp.log(safe_hazard), 0.0)

    survival_term = -jnp.exp(eta) * (exposure @ hazard)
    hazard_term = jnp.sum(log_hazard, axis=-1) + jnp.sum(event_at, axis=-1) * eta
    return survival_term + hazard_term


def observation_log_likelihood(
    time: float,
    event: bool,
    hazard: Array,
    cutpoints,
    eta: Union[float, Array] = 0.0,
) -> Array:
    """Log-likelihood of a single (possibly censored) survival time."""

    check_cutpoints(cutpoints, time)
    check_non_negative("hazard", hazard)
    exposure, inside = interval_exposure([time], cutpoints)
    event_at = inside & bool(event)
    return pointwise_hazard_log_likelihood(hazard, jnp.atleast_1d(eta), exposure, event_at)[0]


def _interval_of(grid: Array, cutpoints: Array) -> Array:
    K = cutpoints.shape[0] - 1
    idx = jnp.searchsorted(cutpoints, grid, side="right") - 1
    return jnp.clip(idx, 0, K - 1)


def hazard_on_grid(hazard: Array, cutpoints, grid) -> Array:
    hazard = jnp.asarray(hazard, dtype=jnp.float64)
    cutpoints = jnp.asarray(cutpoints, dtype=jnp.float64)
    return hazard[_interval_of(jnp.asarray(grid, dtype=jnp.float64), cutpoints)]


def cumulative_hazard_left_point(hazard: Array, cutpoints, grid) -> Array:
    """Cumulative baseline hazard by left-point accumulation.

    The step ``(g_{j-1}, g_j]`` (with ``g_{-1} = 0``) contributes
    ``h(g_{j-1}) * (g_j - g_{j-1})``.  A step that straddles a cutpoint is
    charged entirely at the earlier interval's rate.
    """

    grid = jnp.asarray(grid, dtype=jnp.float64)
    previous = jnp.concatenate((jnp.zeros((1,), dtype=grid.dtype), grid[:-1]))
    steps = grid - previous
    return jnp.cumsum(hazard_on_grid(hazard, cutpoints, previous) * steps)


def cumulative_hazard_exact(hazard: Array, cutpoints, grid) -> Array:
    """Cumulative baseline hazard ``sum_k h_k |[s_k, s_{k+1}) cap [0, t)|``."""

    grid = jnp.asarray(grid, dtype=jnp.float64)
    cutpoints = jnp.asarray(cutpoints, dtype=jnp.float64)
    start = cutpoints[None, :-1]
    width = cutpoints[None, 1:] - start
    exposure = jnp.clip(grid[:, None] - start, 0.0, width)
    return exposure @ jnp.asarray(hazard, dtype=jnp.float64)


def survival_curve(cumulative_hazard: Array, eta: Union[float, Array] = 0.0) -> Array:
    return jnp.exp(-jnp.exp(jnp.asarray(eta, dtype=jnp.float64)) * cumulative_hazard)


@dataclass(frozen=True)
class PiecewiseHazardData:
    """Right-censored survival data and the interval partition.

    ``event`` is one for an observed event and zero for a censored time;
    ``covariates`` has shape ``(n, p)`` with ``p`` possibly zero.
    """

    time: NDArray[np.float64]
    event: NDArray[np.float64]
    cutpoints: NDArray[np.float64]
    covariates: Optional[NDArray[np.float64]] = None
    grid: Optional[NDArray[np.float64]] = None

    def __post_init__(self) -> None:
        time = as_readonly(self.time)
        event = as_readonly(self.event)
        cutpoints = as_readonly(self.cutpoints)
        n = time.shape[0]
        if time.ndim != 1 or event.shape != (n,):
            raise ModelDataError("time and event must be vectors of equal length.")
        if not np.all(np.isin(event, (0.0, 1.0))):
            raise ModelDataError("event must contain only 0/1 values.")
        check_cutpoints(cutpoints, time)
        covariates = np.zeros((n, 0)) if self.covariates is None else np.asarray(self.covariates, dtype=float)
        if covariates.ndim == 1:
            covariates = covariates[:, None]
        if covariates.shape[0] != n:
            raise ModelDataError(f"covariates must have {n} rows, received {covariates.shape}.")

        object.__setattr__(self, "time", time)
        object.__setattr__(self, "event", event)
        object.__setattr__(self, "cutpoints", cutpoints)
        object.__setattr__(self, "covariates", as_readonly(covariates))
        if self.grid is not None:
            grid = as_readonly(np.ravel(self.grid))
            if np.any(grid < 0.0) or np.any(np.diff(grid) < 0.0):
                raise ModelDataError("grid must be non-negative and sorted.")
            object.__setattr__(self, "grid", grid)

    @property
    def n(self) -> int:
        return int(self.time.shape[0])

    @property
    def num_intervals(self) -> int:
        return int(self.cutpoints.shape[0] - 1)

    @property
    def num_covariates(self) -> int:
        return int(self.covariates.shape[1])


@dataclass(frozen=True)
class HazardPriors:
    """Gamma priors on the interval hazards and a normal prior on ``beta``.

    ``h_k ~ Gamma(precision * expected_hazard, precision)`` so that the prior
    mean is ``expected_hazard`` and ``precision`` acts as a prior sample size.
    The first interval takes ``first_expected_hazard``/``first_precision``
    when given.
    """

    expected_hazard: float = 0.1
    precision: float = 1.0
    first_expected_hazard: Optional[float] = None
    first_precision: Optional[float] = None
    beta_scale: float = 2.5

    def gamma_parameters(self, num_intervals: int) -> Tuple[NDArray, NDArray]:
        mean = np.full(num_intervals, float(self.expected_hazard))
        precision = np.full(num_intervals, float(self.precision))
        if self.first_expected_hazard is not None:
            mean[0] = float(self.first_expected_hazard)
        if self.first_precision is not None:
            precision[0] = float(self.first_precision)
        return precision * mean, precision


class PiecewiseHazardModel(LatentStateModel):
    """Piecewise-exponential proportional-hazards regression."""

    name = "piecewise_hazard"

    def __init__(
        self,
        data: PiecewiseHazardData,
        priors: Optional[HazardPriors] = None,
        curve_method: str = "left_point",
    ) -> None:
        if curve_method not in CURVE_METHODS:
            raise ValueError(f"curve_method must be one of {CURVE_METHODS}, received {curve_method!r}.")
        self.data = data
        self.priors = priors or HazardPriors()
        self.curve_method = curve_method

        exposure, inside = interval_exposure(data.time, data.cutpoints)
        self._exposure = jnp.asarray(exposure)
        self._event_at = jnp.asarray(inside & (data.event[:, None] > 0.5), dtype=jnp.float64)
        self._covariates = jnp.asarray(data.covariates)
        shape, rate = self.priors.gamma_parameters(data.num_intervals)
        self._gamma_shape = jnp.asarray(shape)
        self._gamma_rate = jnp.asarray(rate)
        empty = np.flatnonzero(np.sum(exposure, axis=0) == 0.0)
        if empty.size:
            logger.info("Intervals %s have no time at risk; their hazards follow the prior.", empty.tolist())

    def constrain(self, unconstrained: ParamDict) -> Tuple[ParamDict, Array]:
        hazard, log_jac = positive_constrain(unconstrained["hazard"])
        return {"hazard": hazard, "beta": jnp.asarray(unconstrained["beta"], dtype=jnp.float64)}, log_jac

    def unconstrain(self, params: ParamDict) -> ParamDict:
        return {
            "hazard": positive_unconstrain(params["hazard"]),
            "beta": jnp.asarray(params["beta"], dtype=jnp.float64),
        }

    def validate(self, params: ParamDict) -> None:
        check_non_negative("hazard", params["hazard"])

    def default_params(self) -> ParamDict:
        events = float(np.sum(self.data.event))
        at_risk = float(np.sum(self.data.time))
        rate = (events + 1.0) / (at_risk + 1.0)
        return {
            "hazard": jnp.full((self.data.num_intervals,), rate, dtype=jnp.float64),
            "beta": jnp.zeros((self.data.num_covariates,), dtype=jnp.float64),
        }

    def log_prior(self, params: ParamDict) -> Array:
        return jnp.sum(gamma_lpdf(params["hazard"], self._gamma_shape, self._gamma_rate)) + jnp.sum(
            normal_lpdf(params["beta"], 0.0, self.priors.beta_scale)
        )

    def linear_predictor(self, params: ParamDict) -> Array:
        return self._covariates @ jnp.asarray(params["beta"], dtype=jnp.float64)

    def pointwise_log_likelihood(self, params: ParamDict) -> Array:
        self.validate(params)
        return pointwise_hazard_log_likelihood(
            params["hazard"], self.linear_predictor(params), self._exposure, self._event_at
        )

    def curves(self, params: ParamDict, grid, eta: Union[float, Array] = 0.0) -> Dict[str, Array]:
        """Hazard, cumulative hazard and survival on ``grid`` for predictor ``eta``."""

        hazard = params["hazard"]
        cutpoints = self.data.cutpoints
        if self.curve_method == "exact":
            cumulative = cumulative_hazard_exact(hazard, cutpoints, grid)
        else:
            cumulative = cumulative_hazard_left_point(hazard, cutpoints, grid)
        scale = jnp.exp(jnp.asarray(eta, dtype=jnp.float64))
        return {
            "hazard": scale * hazard_on_grid(hazard, cutpoints, grid),
            "cumulative_hazard": scale * cumulative,
            "survival": survival_curve(cumulative, eta),
        }

    def generated_quantities(self, params: ParamDict) -> Dict[str, Array]:
        out = {"log_lik": self.pointwise_log_likelihood(params)}
        if self.data.grid is not None:
            out.update(self.curves(params, self.data.grid))
        return out


__all__ = [
    "CURVE_METHODS",
    "HazardPriors",
    "PiecewiseHazardData",
    "PiecewiseHazardModel",
    "check_cutpoints",
    "interval_exposure",
    "pointwise_hazard_log_likelihood",
    "observation_log_likelihood",
    "hazard_on_grid",
    "cumulative_hazard_left_point",
    "cumulative_hazard_exact",
    "survival_curve",
]
