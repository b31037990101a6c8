import numpy as np

from marglik.models.mixture import UNLABELLED
from marglik.simulate import simulate_mismeasurement, simulate_mixture, simulate_piecewise_hazard


def test_mismeasurement_simulation_partition():
    rng = np.random.default_rng(0)
    data = simulate_mismeasurement(rng, n=2000, beta=(-0.5, 1.0, 0.3), validation_fraction=0.25)
    assert data.n == 2000
    assert data.num_covariates == 1
    assert abs(data.complete_index.size / 2000 - 0.25) < 0.05
    # surrogate agrees with the validated exposure at the configured rates
    x = data.x_true[data.complete_index]
    x_obs = data.x_obs[data.complete_index]
    assert abs(np.mean(x_obs[x == 0]) - 0.1) < 0.06
    assert abs(np.mean(x_obs[x == 1]) - 0.8) < 0.08


def test_differential_simulation_accepts_outcome_table():
    rng = np.random.default_rng(1)
    data = simulate_mismeasurement(rng, n=50, phi=((0.1, 0.8), (0.3, 0.6)), differential=True)
    assert data.x_obs.shape == (50,)


def test_mixture_simulation_labels():
    rng = np.random.default_rng(2)
    data = simulate_mixture(rng, n=1000, labelled_fraction=0.1, grid=[-1.0, 0.0, 1.0])
    labelled = data.labels != UNLABELLED
    assert 50 < labelled.sum() < 150
    assert set(np.unique(data.labels[labelled])) <= {0, 1}
    assert data.grid.shape == (3,)


def test_piecewise_hazard_simulation_recovers_constant_rate():
    rng = np.random.default_rng(3)
    data = simulate_piecewise_hazard(
        rng, n=5000, hazard=(0.2,), cutpoints=(0.0, np.inf), beta=(0.0,), censor_time=10.0
    )
    assert np.all(data.time <= 10.0)
    rate = np.sum(data.event) / np.sum(data.time)
    assert abs(rate - 0.2) < 0.02


def test_piecewise_hazard_simulation_extends_last_cutpoint():
    rng = np.random.default_rng(4)
    data = simulate_piecewise_hazard(rng, n=200, hazard=(0.1, 0.2), cutpoints=(0.0, 5.0, 6.0))
    assert data.cutpoints[-1] == np.inf
    assert data.num_intervals == 2
