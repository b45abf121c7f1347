import numpy as np
import pytest
from scipy.special import logit

from false_negatives.model import quantities as q


def test_time_covariate_is_log_one_plus_t():
    days = np.arange(0, 22)
    x = q.time_covariate(days)
    assert x[0] == 0.0
    assert np.allclose(x, np.log(days + 1))
    with pytest.raises(ValueError):
        q.time_covariate([-1])


def test_exposure_shift_matches_onset_curve():
    """
    A record d days after onset sits at exposure day d + t_exp_symp, so the
    exposure-axis curve at t equals the onset-axis curve at t - t_exp_symp.
    """
    beta = np.array([[-1.0, 2.0, -0.3, 0.01]])
    t_exp_symp = 5
    onset_days = np.arange(0, 10)
    by_onset = q.sensitivity(beta, q.time_covariate(q.onset_to_exposure(onset_days, t_exp_symp)))
    exposure_days = np.arange(0, 22)
    by_exposure = q.sensitivity(beta, q.time_covariate(exposure_days))
    assert np.allclose(by_exposure[0, t_exp_symp:t_exp_symp + 10], by_onset[0])


def test_design_matrix_columns_are_powers():
    X = q.design_matrix([0.0, 1.0, 2.0], degree=3)
    assert X.shape == (3, 4)
    assert np.allclose(X[2], [1, 2, 4, 8])


def test_sensitivity_matches_logistic_polynomial():
    beta = np.array([[0.5, 1.0, -0.2, 0.03], [-2.0, 0.0, 0.0, 0.0]])
    x = np.array([0.0, 1.5, 3.0])
    sens = q.sensitivity(beta, x)
    assert sens.shape == (2, 3)
    eta = 0.5 + 1.0 * 1.5 - 0.2 * 1.5 ** 2 + 0.03 * 1.5 ** 3
    assert logit(sens[0, 1]) == pytest.approx(eta)
    assert np.allclose(sens[1], 1 / (1 + np.exp(2.0)))


def test_sens_and_npv_bounded_for_extreme_draws():
    rng = np.random.default_rng(123)
    beta = rng.normal(0, 10, size=(500, 4))
    ar = rng.uniform(0, 1, size=500)
    x = q.time_covariate(np.arange(22))
    sens = q.sensitivity(beta, x)
    npv = q.negative_predictive_value(sens, ar, spec=0.9)
    assert np.all((sens >= 0) & (sens <= 1))
    finite = np.isfinite(npv)
    assert np.all((npv[finite] >= 0) & (npv[finite] <= 1))


def test_npv_strictly_decreasing_in_attack_rate():
    ar = np.linspace(0.01, 0.99, 50)
    for spec in (0.9, 1.0):
        for sens in (0.1, 0.5, 0.95):
            npv = q.negative_predictive_value(np.full((50, 1), sens), ar, spec)[:, 0]
            assert np.all(np.diff(npv) < 0)


def test_npv_goes_to_one_without_infection():
    sens = np.array([[0.0, 0.3, 0.9]])
    npv = q.negative_predictive_value(sens, np.array([0.0]), spec=1.0)
    assert np.allclose(npv, 1.0)
    tiny = q.negative_predictive_value(sens, np.array([1e-9]), spec=1.0)
    assert np.all(tiny > 1 - 1e-8)


def test_npv_formula_and_undefined_case():
    npv = q.negative_predictive_value(np.array([[0.7]]), np.array([0.2]), spec=0.95)
    expected = (0.8 * 0.95) / (0.8 * 0.95 + 0.2 * 0.3)
    assert npv[0, 0] == pytest.approx(expected)
    # everyone infected and a perfect test: no negatives to speak of
    undefined = q.negative_predictive_value(np.array([[1.0]]), np.array([1.0]), spec=1.0)
    assert np.isnan(undefined[0, 0])


def test_risk_measures():
    npv = np.array([[0.95, 0.99]])
    ar = np.array([0.1])
    assert np.allclose(q.false_omission_rate(npv), [[0.05, 0.01]])
    assert np.allclose(q.relative_risk_reduction(npv, ar), [[0.5, 0.9]])
    assert np.allclose(q.absolute_risk_difference(npv, ar), [[0.05, 0.09]])
    assert np.allclose(q.false_negative_rate([0.2, 0.8]), [0.8, 0.2])


def test_relative_risk_undefined_when_attack_rate_zero():
    npv = np.array([[1.0, 1.0], [0.9, 0.95]])
    ar = np.array([0.0, 0.2])
    rr = q.relative_risk_reduction(npv, ar)
    assert np.all(np.isnan(rr[0]))
    assert np.allclose(rr[1], [0.5, 0.75])
