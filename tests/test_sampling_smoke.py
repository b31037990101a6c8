"""Short NUTS runs end to end."""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest

import jax
import jax.numpy as jnp

jax.config.update("jax_enable_x64", True)

from marglik.config import SamplerConfig, app_config_from_mapping
from marglik.driver import run_from_config
from marglik.errors import SamplingError
from marglik.models import MismeasurementModel, PiecewiseHazardModel
from marglik.reporting import summarize
from marglik.sampling import run_chains
from marglik.simulate import simulate_mismeasurement, simulate_piecewise_hazard

SMOKE = SamplerConfig(chains=2, num_warmup=150, num_samples=100, init_radius=0.5)


def test_piecewise_hazard_posterior_near_event_rate() -> None:
    rng = np.random.default_rng(0)
    data = simulate_piecewise_hazard(
        rng, n=300, hazard=(0.2,), cutpoints=(0.0, np.inf), beta=(0.0,), grid=[0.0, 1.0, 2.0]
    )
    model = PiecewiseHazardModel(data)
    draws = run_chains(model, SMOKE, seed=1)

    assert draws.params["hazard"].shape == (2, 100, 1)
    assert draws.params["beta"].shape == (2, 100, 1)
    assert draws.generated["log_lik"].shape == (2, 100, 300)
    assert draws.generated["survival"].shape == (2, 100, 3)
    assert draws.sample_stats["diverging"].shape == (2, 100)
    assert np.all(draws.params["hazard"] > 0.0)

    rate = np.sum(data.event) / np.sum(data.time)
    assert abs(np.mean(draws.params["hazard"]) / rate - 1.0) < 0.25

    diag = draws.diagnostics
    assert len(diag["step_size"]) == 2
    assert diag["work_units"]["draws"] == 200
    assert diag["work_units"]["grad_evals"] > 0
    assert np.isfinite(diag["rhat_max"])
    assert [set(t) for t in diag["timings"]] == [{"warmup", "sampling"}] * 2
    assert all(t["warmup"] > 0.0 and t["sampling"] > 0.0 for t in diag["timings"])

    df = summarize(draws)
    assert "hazard[0]" in df.index


def test_mismeasurement_draws_report_exposure_probabilities() -> None:
    rng = np.random.default_rng(2)
    data = simulate_mismeasurement(rng, n=150, validation_fraction=0.3)
    model = MismeasurementModel(data)
    cfg = SamplerConfig(chains=2, parallel_chains=2, num_warmup=100, num_samples=50)
    draws = run_chains(model, cfg, seed=3)

    probs = draws.generated["x_true_prob"]
    assert probs.shape == (2, 50, data.reduced_index.size)
    assert np.all((probs >= 0.0) & (probs <= 1.0))
    assert draws.params["phi"].shape == (2, 50, 2)
    assert draws.params["psi"].shape == (2, 50)


def test_non_finite_initial_position_is_rejected() -> None:
    data = simulate_piecewise_hazard(np.random.default_rng(4), n=20, hazard=(0.2,), cutpoints=(0.0, np.inf))
    model = PiecewiseHazardModel(data)
    bad = {"hazard": jnp.array([jnp.nan]), "beta": jnp.zeros((1,))}
    with pytest.raises(SamplingError, match="initial"):
        run_chains(model, SamplerConfig(chains=1, num_warmup=5, num_samples=5), init_positions=[bad])


def test_chain_count_is_validated() -> None:
    data = simulate_piecewise_hazard(np.random.default_rng(5), n=10, hazard=(0.2,), cutpoints=(0.0, np.inf))
    model = PiecewiseHazardModel(data)
    with pytest.raises(ValueError):
        run_chains(model, SamplerConfig(chains=0))
    with pytest.raises(ValueError):
        run_chains(model, SamplerConfig(chains=2), init_positions=[model.unconstrain(model.default_params())])


def test_run_from_config_writes_results(tmp_path: Path) -> None:
    cfg = app_config_from_mapping(
        {
            "run": {"seed": 5, "results_dir": str(tmp_path), "run_id_prefix": "smoke"},
            "sampler": {"chains": 2, "num_warmup": 100, "num_samples": 50},
            "model": {
                "name": "mixture",
                "simulation": {"n": 120, "labelled_fraction": 0.1, "grid": [-2.0, 0.0, 2.0]},
            },
        }
    )
    out = run_from_config(cfg)

    run_dir = tmp_path / out.run_id
    assert out.run_id.startswith("smoke_")
    for name in ("summary.csv", "responsibilities.csv", "diagnostics.jsonl", "metadata.yaml"):
        assert (run_dir / name).exists()
    assert "weights[1]" in out.summary.index
    assert out.draws.generated["density"].shape == (2, 50, 3)


def test_same_seed_gives_identical_chains() -> None:
    data = simulate_piecewise_hazard(np.random.default_rng(6), n=30, hazard=(0.2,), cutpoints=(0.0, np.inf))
    model = PiecewiseHazardModel(data)
    cfg = SamplerConfig(chains=2, num_warmup=20, num_samples=10)
    first = run_chains(model, cfg, seed=7)
    second = run_chains(model, cfg, seed=7)
    np.testing.assert_array_equal(first.params["hazard"], second.params["hazard"])
    # chains start from different keys
    assert not np.array_equal(first.params["hazard"][0], first.params["hazard"][1])
