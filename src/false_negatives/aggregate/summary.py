# src/false_negatives/aggregate/summary.py
"""
Per-day posterior summaries of the derived quantities.

Every function here is a pure function of the draw collection: the same
draws always give the same table, and inputs are never modified.
"""

from typing import Dict, Iterable, Mapping, Optional, Sequence, Tuple
import warnings

import numpy as np
import pandas as pd

from ..model import quantities as q
from ..model.specification import ModelSpecification
from ..sampling.sampler import PosteriorDraws

QUANTITIES = (
    "sensitivity",
    "npv",
    "false_negative_rate",
    "false_omission_rate",
    "relative_risk_reduction",
    "absolute_risk_difference",
)

# the four columns of the per-scenario report
REPORTED = (
    "false_negative_rate",
    "false_omission_rate",
    "relative_risk_reduction",
    "absolute_risk_difference",
)

DEFAULT_PROBS = (0.025, 0.5, 0.975)


def derived_draws(draws: PosteriorDraws, spec: ModelSpecification) -> Dict[str, np.ndarray]:
    """Arrays of shape (n_draws, T_max + 1) for every quantity in QUANTITIES."""
    x = spec.prediction_covariate()
    sens = q.sensitivity(draws.beta, x)
    npv = q.negative_predictive_value(sens, draws.attack_rate, spec.hyper.spec)
    return {
        "sensitivity": sens,
        "npv": npv,
        "false_negative_rate": q.false_negative_rate(sens),
        "false_omission_rate": q.false_omission_rate(npv),
        "relative_risk_reduction": q.relative_risk_reduction(npv, draws.attack_rate),
        "absolute_risk_difference": q.absolute_risk_difference(npv, draws.attack_rate),
    }


def column_quantiles(values: np.ndarray, probs: Sequence[float] = DEFAULT_PROBS) -> np.ndarray:
    """Quantiles over axis 0, ignoring NaN; all-NaN columns give NaN.

    Linear interpolation between order statistics, shape (len(probs), n_cols).
    """
    values = np.asarray(values, dtype=float)
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", RuntimeWarning)  # all-NaN slice
        return np.nanquantile(values, probs, axis=0, method="linear")


def summarize_draws(
    draws: PosteriorDraws,
    spec: ModelSpecification,
    quantities: Iterable[str] = QUANTITIES,
    probs: Sequence[float] = DEFAULT_PROBS,
) -> pd.DataFrame:
    """Long table: day, quantity, median, lower (2.5%), upper (97.5%).

    probs are the (lower, median, upper) quantile levels.
    """
    derived = derived_draws(draws, spec)
    days = spec.prediction_days()
    frames = []
    for name in quantities:
        lo, med, hi = column_quantiles(derived[name], probs)
        frames.append(
            pd.DataFrame(
                {
                    "day": days,
                    "quantity": name,
                    "median": med,
                    "lower": lo,
                    "upper": hi,
                }
            )
        )
    return pd.concat(frames, ignore_index=True)


def summarize_attack_rate(draws: PosteriorDraws) -> Dict[str, float]:
    lo, med, hi = column_quantiles(draws.attack_rate[:, None])[:, 0]
    return {"median": float(med), "lower": float(lo), "upper": float(hi)}


def interval_width(summary: pd.DataFrame, quantity: str, day: int) -> float:
    row = summary[(summary["quantity"] == quantity) & (summary["day"] == day)]
    if row.empty:
        raise KeyError(f"no summary for {quantity} on day {day}")
    return float(row["upper"].iloc[0] - row["lower"].iloc[0])


def combine_summaries(summaries: Mapping[str, pd.DataFrame]) -> pd.DataFrame:
    """Stack per-scenario summaries with a leading 'scenario' column.

    Scenario order follows the mapping order.
    """
    frames = []
    for label, df in summaries.items():
        tagged = df.copy()
        tagged.insert(0, "scenario", label)
        frames.append(tagged)
    if not frames:
        return pd.DataFrame(columns=["scenario", "day", "quantity", "median", "lower", "upper"])
    out = pd.concat(frames, ignore_index=True)
    out["scenario"] = pd.Categorical(out["scenario"], categories=list(summaries), ordered=True)
    return out


def wide_table(
    summary: pd.DataFrame,
    quantities: Sequence[str] = REPORTED,
    index: Optional[Tuple[str, ...]] = None,
) -> pd.DataFrame:
    """One row per day (per scenario if present), columns <quantity>_<stat>."""
    if index is None:
        index = ("scenario", "day") if "scenario" in summary.columns else ("day",)
    sub = summary[summary["quantity"].isin(quantities)]
    wide = sub.set_index([*index, "quantity"])[["median", "lower", "upper"]].unstack("quantity")
    cols = []
    for name in quantities:
        for stat in ("median", "lower", "upper"):
            cols.append((stat, name))
    wide = wide.reindex(columns=pd.MultiIndex.from_tuples(cols))
    wide.columns = [f"{name}_{stat}" for stat, name in wide.columns]
    return wide.reset_index()
