"""Summarise posterior draws as arviz objects and tidy tables."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterable, Optional, Sequence

import arviz as az
import numpy as np
import pandas as pd
from rich.console import Console
from rich.table import Table

from ..sampling.nuts import PosteriorDraws

DEFAULT_QUANTILES = (0.05, 0.5, 0.95)


def to_inference_data(draws: PosteriorDraws) -> az.InferenceData:
    """Convert :class:`PosteriorDraws` to :class:`arviz.InferenceData`.

    Model parameters and derived curves go to the ``posterior`` group, the
    pointwise log-likelihood to ``log_likelihood`` and the NUTS statistics to
    ``sample_stats``.
    """

    posterior: Dict[str, np.ndarray] = {k: v for k, v in draws.params.items() if v[0, 0].size}
    log_likelihood: Dict[str, np.ndarray] = {}
    for name, value in draws.generated.items():
        if name == "log_lik":
            log_likelihood["y"] = value
        else:
            posterior[name] = value
    stats = dict(draws.sample_stats)
    stats["diverging"] = stats["diverging"].astype(bool)
    return az.from_dict(
        posterior=posterior,
        log_likelihood=log_likelihood or None,
        sample_stats=stats,
    )


def summarize(
    draws: PosteriorDraws,
    var_names: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """``arviz.summary`` of the model parameters (all of them by default)."""

    idata = to_inference_data(draws)
    if var_names is None:
        var_names = [k for k, v in draws.params.items() if v[0, 0].size]
    return az.summary(idata, var_names=list(var_names), round_to=None)


def draw_quantiles(
    values: np.ndarray,
    quantiles: Iterable[float] = DEFAULT_QUANTILES,
) -> pd.DataFrame:
    """Mean and quantiles over ``(chain, draw)`` for each trailing position."""

    arr = np.asarray(values, dtype=float)
    flat = arr.reshape((-1,) + arr.shape[2:])
    flat = flat.reshape(flat.shape[0], -1)
    columns = {"mean": np.nanmean(flat, axis=0)}
    for q in quantiles:
        columns[f"q{int(round(100 * q)):02d}"] = np.nanquantile(flat, q, axis=0)
    return pd.DataFrame(columns)


def curve_frame(
    draws: PosteriorDraws,
    grid: Sequence[float],
    names: Iterable[str] = ("hazard", "cumulative_hazard", "survival"),
    quantiles: Iterable[float] = DEFAULT_QUANTILES,
) -> pd.DataFrame:
    """Long table of posterior curve summaries evaluated on ``grid``."""

    frames = []
    for name in names:
        if name not in draws.generated:
            continue
        frame = draw_quantiles(draws.generated[name], quantiles)
        frame.insert(0, "grid", np.asarray(grid, dtype=float))
        frame.insert(0, "quantity", name)
        frames.append(frame)
    if not frames:
        return pd.DataFrame()
    return pd.concat(frames, ignore_index=True)


def state_probability_frame(
    draws: PosteriorDraws,
    name: str,
    index: Optional[Sequence[int]] = None,
    quantiles: Iterable[float] = DEFAULT_QUANTILES,
) -> pd.DataFrame:
    """Posterior summary of conditional state probabilities per observation.

    ``index`` labels the rows, typically with the positions of the reduced
    observations in the original data.
    """

    values = draws.generated[name]
    frame = draw_quantiles(values, quantiles)
    if values.ndim == 4:
        obs, states = np.divmod(np.arange(len(frame)), values.shape[-1])
        frame.insert(0, "state", states)
    else:
        obs = np.arange(len(frame))
    labels = np.asarray(index)[obs] if index is not None else obs
    frame.insert(0, "observation", labels)
    return frame


def print_summary(df: pd.DataFrame, title: str = "Posterior summary", console: Optional[Console] = None) -> None:
    """Render a summary DataFrame as a rich table."""

    console = console or Console()
    table = Table(title=title)
    table.add_column("", style="bold")
    for col in df.columns:
        table.add_column(str(col), justify="right")
    for idx, row in df.iterrows():
        cells = [f"{value:.3f}" if isinstance(value, (float, np.floating)) else str(value) for value in row]
        table.add_row(str(idx), *cells)
    console.print(table)


def write_summary(df: pd.DataFrame, output_dir: Path, name: str = "summary") -> Path:
    """Write a summary table to ``output_dir/name.csv``."""

    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / f"{name}.csv"
    df.to_csv(path)
    return path


__all__ = [
    "DEFAULT_QUANTILES",
    "to_inference_data",
    "summarize",
    "draw_quantiles",
    "curve_frame",
    "state_probability_frame",
    "print_summary",
    "write_summary",
]
