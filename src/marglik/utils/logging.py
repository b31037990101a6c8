"""Logging helpers for consistent instrumentation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict

from rich.console import Console
from rich.logging import RichHandler


def setup_logging(level: str = "INFO", rich_tracebacks: bool = True) -> None:
    """Configure the root logger with optional rich tracebacks."""

    console = Console(stderr=True)
    handler = RichHandler(console=console, rich_tracebacks=rich_tracebacks)
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[handler],
        force=True,
    )


@dataclass
class WorkUnitLogger:
    """Track warm-up steps, posterior draws and gradient evaluations."""

    warmup_steps: int = 0
    draws: int = 0
    grad_evals: int = 0

    def incr(self, **kwargs: int) -> None:
        for key, value in kwargs.items():
            if key not in ("warmup_steps", "draws", "grad_evals"):
                raise KeyError(f"Unknown work unit {key!r}.")
            setattr(self, key, getattr(self, key) + int(value))

    def as_dict(self) -> Dict[str, int]:
        return {
            "warmup_steps": self.warmup_steps,
            "draws": self.draws,
            "grad_evals": self.grad_evals,
        }


__all__ = ["setup_logging", "WorkUnitLogger"]
