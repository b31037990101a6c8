"""Configuration utilities for fitting the latent-state models."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping

import yaml


@dataclass
class RunConfig:
    """Seed and output location of a fitting run."""

    seed: int = 0
    results_dir: Path = Path("results")
    run_id_prefix: str = "run"


@dataclass
class SamplerConfig:
    """NUTS budgets, adaptation targets and diagnostic thresholds."""

    chains: int = 4
    parallel_chains: int = 1
    num_warmup: int = 1000
    num_samples: int = 1000
    target_accept: float = 0.8
    max_treedepth: int = 10
    dense_mass: bool = False
    init_step_size: float = 1.0
    init_radius: float = 1.0
    rhat_threshold: float = 1.01


@dataclass
class ModelConfig:
    """Which model to fit, its prior hyper-parameters and simulated data."""

    name: str = "mixture"
    priors: Dict[str, Any] = field(default_factory=dict)
    options: Dict[str, Any] = field(default_factory=dict)
    simulation: Dict[str, Any] = field(default_factory=dict)


@dataclass
class LoggingConfig:
    """Logging verbosity and formatting options."""

    level: str = "INFO"
    rich_tracebacks: bool = True


@dataclass
class AppConfig:
    """Top-level configuration object composed of sub-configurations."""

    run: RunConfig
    sampler: SamplerConfig
    model: ModelConfig
    logging: LoggingConfig


def _coerce_path(value: Any) -> Path:
    if isinstance(value, Path):
        return value
    return Path(str(value))


def load_yaml(path: Path) -> Mapping[str, Any]:
    """Load a YAML document and return a mapping."""

    with Path(path).open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}


def app_config_from_mapping(raw: Mapping[str, Any]) -> AppConfig:
    """Build :class:`AppConfig` from a parsed YAML mapping, filling defaults."""

    run = raw.get("run", {}) or {}
    sampler = raw.get("sampler", {}) or {}
    model = raw.get("model", {}) or {}
    logging_cfg = raw.get("logging", {}) or {}

    defaults = SamplerConfig()
    return AppConfig(
        run=RunConfig(
            seed=int(run.get("seed", 0)),
            results_dir=_coerce_path(run.get("results_dir", "results")),
            run_id_prefix=str(run.get("run_id_prefix", "run")),
        ),
        sampler=SamplerConfig(
            chains=int(sampler.get("chains", defaults.chains)),
            parallel_chains=int(sampler.get("parallel_chains", defaults.parallel_chains)),
            num_warmup=int(sampler.get("num_warmup", defaults.num_warmup)),
            num_samples=int(sampler.get("num_samples", defaults.num_samples)),
            target_accept=float(sampler.get("target_accept", defaults.target_accept)),
            max_treedepth=int(sampler.get("max_treedepth", defaults.max_treedepth)),
            dense_mass=bool(sampler.get("dense_mass", defaults.dense_mass)),
            init_step_size=float(sampler.get("init_step_size", defaults.init_step_size)),
            init_radius=float(sampler.get("init_radius", defaults.init_radius)),
            rhat_threshold=float(sampler.get("rhat_threshold", defaults.rhat_threshold)),
        ),
        model=ModelConfig(
            name=str(model.get("name", "mixture")),
            priors=dict(model.get("priors", {}) or {}),
            options=dict(model.get("options", {}) or {}),
            simulation=dict(model.get("simulation", {}) or {}),
        ),
        logging=LoggingConfig(
            level=str(logging_cfg.get("level", "INFO")),
            rich_tracebacks=bool(logging_cfg.get("rich_tracebacks", True)),
        ),
    )


def load_app_config(path: Path) -> AppConfig:
    """Load :class:`AppConfig` from ``path``."""

    return app_config_from_mapping(load_yaml(path))


__all__ = [
    "RunConfig",
    "SamplerConfig",
    "ModelConfig",
    "LoggingConfig",
    "AppConfig",
    "load_yaml",
    "app_config_from_mapping",
    "load_app_config",
]
