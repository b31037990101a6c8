"""Utility helpers for the :mod:`marglik` package."""

from .jax_setup import nan_guard, vjit, vmap
from .logging import WorkUnitLogger, setup_logging

__all__ = [
    "nan_guard",
    "vjit",
    "vmap",
    "WorkUnitLogger",
    "setup_logging",
]
