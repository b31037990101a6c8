"""Convergence diagnostics and helpers for writing them to disk."""

from __future__ import annotations

import json
import os
from typing import Any, Dict, Mapping

import numpy as np
from blackjax import diagnostics as bjx_diagnostics


def ebfmi(energy: np.ndarray) -> float:
    """Energy Bayesian fraction of missing information of one chain."""

    energy = np.asarray(energy, dtype=float)
    if energy.size < 2:
        return float("nan")
    numerator = np.sum(np.diff(energy) ** 2)
    denominator = np.sum((energy - np.mean(energy)) ** 2) + 1e-12
    return float(numerator / denominator)


def chain_diagnostics(draws: Mapping[str, np.ndarray]) -> Dict[str, Any]:
    """R-hat and effective sample size for every ``(chain, draw, ...)`` array.

    R-hat needs at least two chains and is reported as NaN otherwise.
    """

    rhat: Dict[str, np.ndarray] = {}
    ess: Dict[str, np.ndarray] = {}
    for name, value in draws.items():
        arr = np.asarray(value, dtype=float)
        if arr.ndim < 2 or arr.shape[1] < 4 or arr[0, 0].size == 0:
            continue
        if arr.shape[0] > 1:
            rhat[name] = np.asarray(
                bjx_diagnostics.potential_scale_reduction(arr, chain_axis=0, sample_axis=1)
            )
        else:
            rhat[name] = np.full(arr.shape[2:], np.nan)
        ess[name] = np.asarray(bjx_diagnostics.effective_sample_size(arr, chain_axis=0, sample_axis=1))

    rhat_values = [v.ravel() for v in rhat.values() if np.size(v)]
    ess_values = [v.ravel() for v in ess.values() if np.size(v)]
    rhat_all = np.concatenate(rhat_values) if rhat_values else np.array([np.nan])
    ess_all = np.concatenate(ess_values) if ess_values else np.array([np.nan])
    return {
        "rhat": rhat,
        "ess": ess,
        "rhat_max": float(np.nanmax(rhat_all)) if np.any(np.isfinite(rhat_all)) else float("nan"),
        "ess_min": float(np.nanmin(ess_all)) if np.any(np.isfinite(ess_all)) else float("nan"),
    }


def _jsonable(value: Any) -> Any:
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, (np.floating, np.integer, np.bool_)):
        return value.item()
    if isinstance(value, Mapping):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def write_jsonl(path: str, record: Dict[str, Any]) -> None:
    """Append ``record`` as a JSON document to ``path``."""

    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(path, "a", encoding="utf-8") as handle:
        json.dump(_jsonable(record), handle)
        handle.write("\n")


__all__ = ["ebfmi", "chain_diagnostics", "write_jsonl"]
