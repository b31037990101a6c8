"""Exception hierarchy for the marglik package."""

from __future__ import annotations


class MarglikError(Exception):
    """Base class for all marglik errors."""


class InvalidParameter(MarglikError, ValueError):
    """A probability, simplex, rate or scale parameter is outside its domain."""


class ModelDataError(MarglikError, ValueError):
    """Observation data does not match what a model expects."""


class SamplingError(MarglikError, RuntimeError):
    """The sampler was handed a non-finite log-density or gradient."""


__all__ = ["MarglikError", "InvalidParameter", "ModelDataError", "SamplingError"]
