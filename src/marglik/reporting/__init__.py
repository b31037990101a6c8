"""Posterior summaries and tables."""

from .summarize import (
    curve_frame,
    draw_quantiles,
    print_summary,
    state_probability_frame,
    summarize,
    to_inference_data,
    write_summary,
)

__all__ = [
    "curve_frame",
    "draw_quantiles",
    "print_summary",
    "state_probability_frame",
    "summarize",
    "to_inference_data",
    "write_summary",
]
