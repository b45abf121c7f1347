# src/false_negatives/report/tables.py
"""Percentage tables and atomic file output for finished scenarios."""

from pathlib import Path
from typing import Dict, Mapping, Optional, Sequence, Union
import json
import logging
import math
import os
import tempfile

import numpy as np
import pandas as pd

from ..aggregate.summary import REPORTED, wide_table
from ..sampling.diagnostics import Diagnostics

logger = logging.getLogger(__name__)

LABELS = {
    "sensitivity": "Sensitivity",
    "npv": "NPV",
    "false_negative_rate": "False-negative rate",
    "false_omission_rate": "False-omission rate",
    "relative_risk_reduction": "Relative risk reduction",
    "absolute_risk_difference": "Absolute risk difference",
}


def _pct(value: float, decimals: int) -> str:
    if value is None or not np.isfinite(value):
        return "NA"
    # ties round up (38.5 -> 39), not to even
    scale = 10 ** decimals
    out = math.floor(100.0 * float(value) * scale + 0.5) / scale
    if decimals == 0:
        return str(int(out))
    return f"{out:.{decimals}f}"


def format_interval(median: float, lower: float, upper: float, decimals: int = 0) -> str:
    """e.g. '38 (18, 65)'; missing values print as NA."""
    return f"{_pct(median, decimals)} ({_pct(lower, decimals)}, {_pct(upper, decimals)})"


def percent_table(
    summary: pd.DataFrame,
    quantities: Sequence[str] = REPORTED,
    decimals: int = 0,
) -> pd.DataFrame:
    """Report table: one row per day, one 'median (2.5%, 97.5%)' cell per quantity."""
    wide = wide_table(summary, quantities)
    keys = [c for c in ("scenario", "day") if c in wide.columns]
    out = wide[keys].copy()
    for name in quantities:
        out[LABELS.get(name, name)] = [
            format_interval(m, lo, hi, decimals)
            for m, lo, hi in zip(wide[f"{name}_median"], wide[f"{name}_lower"], wide[f"{name}_upper"])
        ]
    return out


def attack_rate_text(attack: Mapping[str, float], decimals: int = 0) -> str:
    return "Attack rate: " + format_interval(attack["median"], attack["lower"], attack["upper"], decimals) + "%"


def _atomic_write(path: Path, write) -> Path:
    """Write through a temp file in the same directory, then rename into place."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", newline="") as fh:
            write(fh)
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise
    logger.info("Wrote %s", path)
    return path


def write_table_atomic(df: pd.DataFrame, path: Union[str, Path]) -> Path:
    return _atomic_write(Path(path), lambda fh: df.to_csv(fh, index=False))


def write_json_atomic(payload: Dict, path: Union[str, Path]) -> Path:
    return _atomic_write(Path(path), lambda fh: json.dump(payload, fh, indent=2, default=float))


def write_diagnostics(
    diagnostics: Diagnostics,
    path: Union[str, Path],
    context: Optional[Dict] = None,
) -> Path:
    """Sampler diagnostics as JSON; `context` keys (scenario, inputs) go alongside."""
    payload = dict(context or {})
    payload["diagnostics"] = diagnostics.as_dict()
    return write_json_atomic(payload, path)


def slugify(label: str) -> str:
    keep = [c.lower() if c.isalnum() else "_" for c in label.strip()]
    slug = "".join(keep).strip("_")
    while "__" in slug:
        slug = slug.replace("__", "_")
    return slug or "scenario"
