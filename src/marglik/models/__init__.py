"""Latent-state models expressed as pure JAX log-density functions."""
from __future__ import annotations

from .base import LatentStateModel
from .mismeasurement import (
    MismeasurementData,
    MismeasurementModel,
    MismeasurementPriors,
    observation_log_terms,
)
from .mixture import MixtureData, MixturePriors, NormalMixtureModel, mixture_log_terms
from .piecewise_hazard import (
    HazardPriors,
    PiecewiseHazardData,
    PiecewiseHazardModel,
    cumulative_hazard_exact,
    cumulative_hazard_left_point,
    observation_log_likelihood,
)

__all__ = [
    "LatentStateModel",
    "MismeasurementData",
    "MismeasurementModel",
    "MismeasurementPriors",
    "observation_log_terms",
    "MixtureData",
    "MixturePriors",
    "NormalMixtureModel",
    "mixture_log_terms",
    "HazardPriors",
    "PiecewiseHazardData",
    "PiecewiseHazardModel",
    "cumulative_hazard_exact",
    "cumulative_hazard_left_point",
    "observation_log_likelihood",
]
