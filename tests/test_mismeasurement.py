"""Misclassified binary exposure: marginal likelihood, partition and validation."""

from __future__ import annotations

import numpy as np
import pytest
from scipy.special import expit

import jax
import jax.numpy as jnp

jax.config.update("jax_enable_x64", True)

from marglik.errors import InvalidParameter, ModelDataError
from marglik.models.mismeasurement import (
    MismeasurementData,
    MismeasurementModel,
    MismeasurementPriors,
    observation_log_terms,
    state_log_joint,
)

PARAMS = {
    "beta": jnp.array([0.0, 1.0]),
    "phi": jnp.array([0.1, 0.8]),
    "psi": jnp.asarray(0.3),
}


def _direct_likelihood(y, x_obs, beta, phi, psi, z=None):
    """Sum over the exposure without leaving the probability scale."""

    z = np.zeros(0) if z is None else np.asarray(z)
    total = 0.0
    for s, prior in ((0, 1.0 - psi), (1, psi)):
        p_y = expit(beta[0] + beta[1] * s + z @ beta[2:])
        p_out = p_y if y == 1 else 1.0 - p_y
        p_star = phi[s] if x_obs == 1 else 1.0 - phi[s]
        total += p_out * p_star * prior
    return total


def test_single_reduced_observation_matches_direct_computation():
    marginal, terms = observation_log_terms(PARAMS, y=1.0, x_obs=0.0)
    expected = np.log(0.5 * 0.9 * 0.7 + expit(1.0) * 0.2 * 0.3)
    assert abs(float(marginal) - expected) < 1e-9
    np.testing.assert_allclose(
        np.asarray(terms), [np.log(0.5 * 0.9 * 0.7), np.log(expit(1.0) * 0.2 * 0.3)], rtol=1e-12
    )


def test_vectorised_rows_with_covariates():
    rng = np.random.default_rng(0)
    y = rng.integers(0, 2, size=12).astype(float)
    x_obs = rng.integers(0, 2, size=12).astype(float)
    z = rng.standard_normal((12, 2))
    params = {"beta": jnp.array([-0.3, 1.2, 0.5, -0.7]), "phi": jnp.array([0.15, 0.75]), "psi": jnp.asarray(0.4)}

    marginal, terms = observation_log_terms(params, y, x_obs, z)
    assert marginal.shape == (12,)
    assert terms.shape == (12, 2)
    expected = [
        np.log(_direct_likelihood(y[i], x_obs[i], np.asarray(params["beta"]), [0.15, 0.75], 0.4, z[i]))
        for i in range(12)
    ]
    np.testing.assert_allclose(np.asarray(marginal), expected, rtol=1e-10)


def _small_data():
    y = np.array([1.0, 0.0, 1.0, 1.0, 0.0])
    x_obs = np.array([0.0, 0.0, 1.0, 1.0, 1.0])
    x_true = np.array([np.nan, 0.0, np.nan, 1.0, np.nan])
    return MismeasurementData.from_arrays(y, x_obs, x_true=x_true)


def test_data_partition_and_immutability():
    data = _small_data()
    np.testing.assert_array_equal(data.complete_index, [1, 3])
    np.testing.assert_array_equal(data.reduced_index, [0, 2, 4])
    assert data.num_covariates == 0
    with pytest.raises(ValueError):
        data.y[0] = 0.0


def test_complete_rows_use_the_known_exposure():
    data = _small_data()
    model = MismeasurementModel(data)
    pointwise = np.asarray(model.pointwise_log_likelihood(PARAMS))
    assert pointwise.shape == (5,)

    empty = jnp.zeros((0,))
    for i in data.complete_index:
        known = state_log_joint(PARAMS, int(data.x_true[i]), data.y[i], data.x_obs[i], empty)
        np.testing.assert_allclose(pointwise[i], float(known), rtol=1e-12)
    for i in data.reduced_index:
        expected = np.log(_direct_likelihood(data.y[i], data.x_obs[i], [0.0, 1.0], [0.1, 0.8], 0.3))
        np.testing.assert_allclose(pointwise[i], expected, rtol=1e-12)

    np.testing.assert_allclose(float(model.log_likelihood(PARAMS)), pointwise.sum(), rtol=1e-12)


def test_exposure_probabilities_for_reduced_rows():
    data = _small_data()
    model = MismeasurementModel(data)
    gq = model.generated_quantities(PARAMS)
    probs = np.asarray(gq["x_true_prob"])
    assert probs.shape == (3,)

    for prob, i in zip(probs, data.reduced_index):
        y, x_obs = data.y[i], data.x_obs[i]
        p_y1 = expit(1.0) if y == 1 else 1.0 - expit(1.0)
        joint1 = p_y1 * (0.8 if x_obs == 1 else 0.2) * 0.3
        expected = joint1 / _direct_likelihood(y, x_obs, [0.0, 1.0], [0.1, 0.8], 0.3)
        np.testing.assert_allclose(prob, expected, rtol=1e-10)
    np.testing.assert_allclose(np.asarray(gq["log_lik"]), np.asarray(model.pointwise_log_likelihood(PARAMS)))


def test_differential_error_depends_on_outcome():
    data = _small_data()
    model = MismeasurementModel(data, differential=True)
    assert model.phi_shape == (2, 2)
    phi = jnp.array([[0.1, 0.8], [0.3, 0.6]])
    params = dict(PARAMS, phi=phi)

    marginal, _ = observation_log_terms(params, y=1.0, x_obs=0.0, differential=True)
    expected = np.log(0.5 * 0.7 * 0.7 + expit(1.0) * 0.4 * 0.3)
    assert abs(float(marginal) - expected) < 1e-9

    u = model.unconstrain(model.default_params())
    assert u["phi"].shape == (2, 2)
    assert np.isfinite(float(model.log_density(u)))


@pytest.mark.parametrize(
    "update",
    [{"psi": jnp.asarray(1.2)}, {"psi": jnp.asarray(-0.1)}, {"phi": jnp.array([0.1, 1.5])}],
)
def test_invalid_probabilities_are_rejected(update):
    model = MismeasurementModel(_small_data())
    with pytest.raises(InvalidParameter):
        model.log_posterior(dict(PARAMS, **update))


def test_bad_data_is_rejected():
    with pytest.raises(ModelDataError):
        MismeasurementData.from_arrays([0.0, 2.0], [0.0, 1.0])
    with pytest.raises(ModelDataError):
        MismeasurementData.from_arrays([0.0, 1.0], [0.0, 1.0, 1.0])
    with pytest.raises(ModelDataError):
        MismeasurementData.from_arrays([0.0, 1.0], [0.0, 1.0], x_true=[0.5, np.nan])


def test_log_density_gradient_is_finite_and_deterministic():
    rng = np.random.default_rng(1)
    n = 40
    data = MismeasurementData.from_arrays(
        rng.integers(0, 2, size=n),
        rng.integers(0, 2, size=n),
        x_true=np.where(rng.random(n) < 0.3, rng.integers(0, 2, size=n), np.nan),
        covariates=rng.standard_normal((n, 1)),
    )
    model = MismeasurementModel(data, MismeasurementPriors(phi_a=(1.0, 8.0), phi_b=(8.0, 2.0)))
    u = model.initial_position(jax.random.PRNGKey(0))
    assert u["beta"].shape == (3,)

    value, grad = model.value_and_grad(u)
    assert np.isfinite(float(value))
    for leaf in jax.tree_util.tree_leaves(grad):
        assert np.all(np.isfinite(np.asarray(leaf)))

    again, _ = model.value_and_grad(u)
    assert float(again) == float(value)
    assert float(jax.jit(model.log_density)(u)) == pytest.approx(float(value), rel=1e-12)


def test_log_density_includes_jacobian():
    model = MismeasurementModel(_small_data())
    u = model.unconstrain(PARAMS)
    params, log_jac = model.constrain(u)
    np.testing.assert_allclose(np.asarray(params["phi"]), [0.1, 0.8], rtol=1e-12)
    expected = float(model.log_prior(PARAMS) + model.log_likelihood(PARAMS) + log_jac)
    np.testing.assert_allclose(float(model.log_density(u)), expected, rtol=1e-10)


@pytest.mark.parametrize(
    "update",
    [{"psi": jnp.asarray(1.2)}, {"phi": jnp.array([-0.1, 0.8])}, {"phi": jnp.array([0.1, jnp.nan])}],
)
def test_marginal_evaluator_rejects_invalid_probabilities(update):
    with pytest.raises(InvalidParameter):
        observation_log_terms(dict(PARAMS, **update), y=1.0, x_obs=0.0)


def test_likelihood_rejects_invalid_probabilities_without_the_prior():
    model = MismeasurementModel(_small_data())
    bad = dict(PARAMS, psi=jnp.asarray(1.2))
    with pytest.raises(InvalidParameter):
        model.log_likelihood(bad)
    with pytest.raises(InvalidParameter):
        model.generated_quantities(bad)

    complete_only = MismeasurementData.from_arrays([1.0, 0.0], [1.0, 0.0], x_true=[1.0, 0.0])
    with pytest.raises(InvalidParameter):
        MismeasurementModel(complete_only).pointwise_log_likelihood(bad)
