# src/false_negatives/model/quantities.py
# Deterministic transforms applied to every posterior draw.
# All functions broadcast: draws run along axis 0, days along axis 1.

import numpy as np
from scipy.special import expit


def time_covariate(days_since_exposure):
    """log(t + 1) on the exposure-day axis."""
    t = np.asarray(days_since_exposure, dtype=float)
    if np.any(t < 0):
        raise ValueError("days since exposure must be >= 0")
    return np.log1p(t)


def onset_to_exposure(day_since_onset, t_exp_symp: int):
    """Shift a day since symptom onset onto the day-since-exposure axis."""
    return np.asarray(day_since_onset) + t_exp_symp


def design_matrix(x, degree: int = 3) -> np.ndarray:
    """Columns x^0 .. x^degree, shape (len(x), degree + 1)."""
    x = np.asarray(x, dtype=float)
    return np.vander(x, N=degree + 1, increasing=True)


def linear_predictor(beta: np.ndarray, x) -> np.ndarray:
    """beta: (n_draws, degree + 1); x: (n_days,) -> logit sensitivity (n_draws, n_days)."""
    beta = np.atleast_2d(beta)
    X = design_matrix(x, degree=beta.shape[1] - 1)
    return beta @ X.T


def sensitivity(beta: np.ndarray, x) -> np.ndarray:
    return expit(linear_predictor(beta, x))


def negative_predictive_value(sens, attack_rate, spec: float):
    """P(uninfected | negative test).

    attack_rate has one value per draw and is broadcast over days.
    Where the denominator is zero (everyone infected and a perfect test) the
    value is undefined and returned as NaN.
    """
    sens = np.asarray(sens, dtype=float)
    ar = _per_draw(attack_rate, sens.ndim)
    true_neg = (1.0 - ar) * spec
    false_neg = ar * (1.0 - sens)
    denom = true_neg + false_neg
    out = np.full(np.broadcast(true_neg, denom).shape, np.nan)
    np.divide(true_neg, denom, out=out, where=denom > 0)
    return np.clip(out, 0.0, 1.0)


def false_negative_rate(sens):
    return 1.0 - np.asarray(sens, dtype=float)


def false_omission_rate(npv):
    return 1.0 - np.asarray(npv, dtype=float)


def relative_risk_reduction(npv, attack_rate):
    """1 - (1 - npv) / attack_rate; NaN where attack_rate is zero."""
    npv = np.asarray(npv, dtype=float)
    ar = _per_draw(attack_rate, npv.ndim)
    fo = 1.0 - npv
    ratio = np.full(np.broadcast(fo, ar).shape, np.nan)
    np.divide(fo, ar, out=ratio, where=ar > 0)
    return 1.0 - ratio


def absolute_risk_difference(npv, attack_rate):
    npv = np.asarray(npv, dtype=float)
    ar = _per_draw(attack_rate, npv.ndim)
    return ar - (1.0 - npv)


def _per_draw(attack_rate, ndim: int) -> np.ndarray:
    # (n_draws,) -> (n_draws, 1) so it lines up with a (n_draws, n_days) grid
    ar = np.asarray(attack_rate, dtype=float)
    if ndim == 2 and ar.ndim == 1:
        return ar[:, None]
    return ar
