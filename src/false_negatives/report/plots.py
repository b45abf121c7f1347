# src/false_negatives/report/plots.py
from pathlib import Path
from typing import Optional, Tuple
import logging

import pandas as pd
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt

from .tables import LABELS

logger = logging.getLogger(__name__)

# ---------- plotting routines ----------

def plot_quantity(
    summary: pd.DataFrame,
    quantity: str = "false_negative_rate",
    save_path: Optional[str] = "figs/false_negative_rate.png",
    incubation_day: Optional[int] = None,
    figsize: Tuple[int, int] = (8, 5),
):
    """Median line with a 95% ribbon against days since exposure.

    If the summary carries a 'scenario' column, each scenario gets its own
    line and ribbon.
    """
    sub = summary[summary["quantity"] == quantity]
    if sub.empty:
        raise ValueError(f"No rows for quantity '{quantity}'")

    fig, ax = plt.subplots(figsize=figsize)
    groups = sub.groupby("scenario", observed=True, sort=False) if "scenario" in sub.columns else [(None, sub)]
    for label, df in groups:
        df = df.sort_values("day")
        line, = ax.plot(df["day"], 100 * df["median"], lw=2, label=label)
        ax.fill_between(df["day"], 100 * df["lower"], 100 * df["upper"], color=line.get_color(), alpha=0.2)

    if incubation_day is not None:
        ax.axvline(incubation_day, color="grey", ls="--", lw=1, label="symptom onset")

    ax.set_xlabel("Days since exposure")
    ax.set_ylabel(f"{LABELS.get(quantity, quantity)} (%)")
    ax.set_ylim(bottom=min(0, 100 * sub["lower"].min(skipna=True)))
    ax.grid(alpha=0.3)
    if "scenario" in sub.columns or incubation_day is not None:
        ax.legend(frameon=False)
    fig.tight_layout()

    if save_path:
        out = Path(save_path)
        out.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(out, dpi=150)
        logger.info("Saved figure %s", out)
    plt.close(fig)
    return fig


def plot_false_negative_curve(summary: pd.DataFrame, save_path: str, incubation_day: Optional[int] = None):
    return plot_quantity(summary, "false_negative_rate", save_path, incubation_day=incubation_day)


def plot_scenarios(combined: pd.DataFrame, quantity: str, save_path: str):
    return plot_quantity(combined, quantity, save_path)
