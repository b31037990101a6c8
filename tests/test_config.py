from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest

from marglik.config import SamplerConfig, app_config_from_mapping, load_app_config
from marglik.driver import build_model
from marglik.models import MismeasurementModel, NormalMixtureModel, PiecewiseHazardModel

CONFIG_DIR = Path(__file__).resolve().parents[1] / "configs"


def test_defaults_fill_missing_sections(tmp_path: Path) -> None:
    path = tmp_path / "run.yaml"
    path.write_text("sampler:\n  chains: 2\n  dense_mass: true\nmodel:\n  name: piecewise_hazard\n")
    cfg = load_app_config(path)

    assert cfg.sampler.chains == 2
    assert cfg.sampler.dense_mass is True
    assert cfg.sampler.num_warmup == SamplerConfig().num_warmup
    assert cfg.model.name == "piecewise_hazard"
    assert cfg.model.priors == {}
    assert cfg.run.results_dir == Path("results")
    assert cfg.logging.level == "INFO"


def test_empty_document_gives_defaults(tmp_path: Path) -> None:
    path = tmp_path / "empty.yaml"
    path.write_text("")
    cfg = load_app_config(path)
    assert cfg.model.name == "mixture"
    assert cfg.sampler.target_accept == pytest.approx(0.8)


@pytest.mark.parametrize(
    "name, model_cls",
    [
        ("mixture.yaml", NormalMixtureModel),
        ("mismeasurement.yaml", MismeasurementModel),
        ("piecewise_hazard.yaml", PiecewiseHazardModel),
    ],
)
def test_shipped_configs_build_their_models(name: str, model_cls) -> None:
    cfg = load_app_config(CONFIG_DIR / name)
    model = build_model(cfg.model, np.random.default_rng(cfg.run.seed))
    assert isinstance(model, model_cls)
    assert model.name == cfg.model.name


def test_unknown_model_name() -> None:
    cfg = app_config_from_mapping({"model": {"name": "hmm"}})
    with pytest.raises(ValueError, match="Unknown model"):
        build_model(cfg.model, np.random.default_rng(0))
