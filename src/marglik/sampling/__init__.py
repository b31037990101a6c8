"""Sampling driver and diagnostics built on :mod:`blackjax`."""

from .diagnostics import chain_diagnostics, ebfmi, write_jsonl
from .nuts import ChainResult, PosteriorDraws, run_chain, run_chains

__all__ = [
    "ChainResult",
    "PosteriorDraws",
    "run_chain",
    "run_chains",
    "chain_diagnostics",
    "ebfmi",
    "write_jsonl",
]
