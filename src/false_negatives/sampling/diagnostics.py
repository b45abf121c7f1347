# src/false_negatives/sampling/diagnostics.py
"""Convergence checks for a finished run.

Nothing here raises on a poor run: problems are collected as messages and
the run is flagged as provisional.
"""

from dataclasses import asdict, dataclass, field
from typing import Dict, Mapping, Optional, Sequence, Tuple
import logging
import warnings

import arviz as az
import numpy as np
import pandas as pd

from .config import SamplerConfig

logger = logging.getLogger(__name__)

# free parameters checked for R-hat and ESS
CHECKED_VARS = ["theta", "beta", "sigma_u", "z_study", "attack_rate"]
LOO_VAR = "test_pos"


@dataclass(frozen=True)
class Diagnostics:
    n_draws: int
    n_chains: int
    n_divergent: int = 0
    n_max_treedepth: int = 0
    max_rhat: float = float("nan")
    min_ess_bulk: float = float("nan")
    min_ess_tail: float = float("nan")
    loo_elpd: Optional[float] = None
    loo_se: Optional[float] = None
    p_loo: Optional[float] = None
    n_high_pareto_k: Optional[int] = None
    messages: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def converged(self) -> bool:
        return not self.messages

    @property
    def provisional(self) -> bool:
        return not self.converged

    def as_dict(self) -> Dict[str, object]:
        out = asdict(self)
        out["messages"] = list(self.messages)
        out["converged"] = self.converged
        return out


def _max_over(ds) -> float:
    vals = np.concatenate([np.ravel(ds[v].values) for v in ds.data_vars])
    return float(np.nanmax(vals)) if np.any(np.isfinite(vals)) else float("nan")


def _min_over(ds) -> float:
    vals = np.concatenate([np.ravel(ds[v].values) for v in ds.data_vars])
    return float(np.nanmin(vals)) if np.any(np.isfinite(vals)) else float("nan")


def summarize_diagnostics(idata, config: SamplerConfig) -> Diagnostics:
    """Divergences, tree-depth saturation, split R-hat, ESS and PSIS-LOO."""
    stats = idata.sample_stats
    n_chains = int(idata.posterior.sizes["chain"])
    n_draws = int(idata.posterior.sizes["draw"])

    n_divergent = int(stats["diverging"].sum()) if "diverging" in stats else 0
    if "reached_max_treedepth" in stats:
        n_max_depth = int(stats["reached_max_treedepth"].sum())
    elif "tree_depth" in stats:
        n_max_depth = int((stats["tree_depth"] >= config.max_treedepth).sum())
    else:
        n_max_depth = 0

    var_names = [v for v in CHECKED_VARS if v in idata.posterior]
    max_rhat = _max_over(az.rhat(idata, var_names=var_names))
    ess_bulk = _min_over(az.ess(idata, var_names=var_names, method="bulk"))
    ess_tail = _min_over(az.ess(idata, var_names=var_names, method="tail"))

    messages = []
    if n_divergent:
        messages.append(f"{n_divergent} divergent transitions after warm-up")
    if n_max_depth:
        messages.append(f"{n_max_depth} iterations saturated max_treedepth={config.max_treedepth}")
    if not np.isfinite(max_rhat) or max_rhat > config.rhat_threshold:
        messages.append(f"split R-hat {max_rhat:.3f} exceeds {config.rhat_threshold}")
    if not np.isfinite(ess_bulk) or ess_bulk < config.min_ess:
        messages.append(f"bulk ESS {ess_bulk:.0f} below {config.min_ess:.0f}")
    if not np.isfinite(ess_tail) or ess_tail < config.min_ess:
        messages.append(f"tail ESS {ess_tail:.0f} below {config.min_ess:.0f}")

    loo_elpd = loo_se = p_loo = n_bad_k = None
    if config.compute_loo and "log_likelihood" in idata.groups():
        with warnings.catch_warnings():
            # high Pareto k is reported through n_high_pareto_k instead
            warnings.simplefilter("ignore", UserWarning)
            loo = az.loo(idata, var_name=LOO_VAR, pointwise=True)
        loo_elpd = float(loo.elpd_loo)
        loo_se = float(loo.se)
        p_loo = float(loo.p_loo)
        n_bad_k = int((np.asarray(loo.pareto_k) > 0.7).sum())

    for msg in messages:
        logger.warning("Sampler diagnostic: %s", msg)

    return Diagnostics(
        n_draws=n_draws,
        n_chains=n_chains,
        n_divergent=n_divergent,
        n_max_treedepth=n_max_depth,
        max_rhat=max_rhat,
        min_ess_bulk=ess_bulk,
        min_ess_tail=ess_tail,
        loo_elpd=loo_elpd,
        loo_se=loo_se,
        p_loo=p_loo,
        n_high_pareto_k=n_bad_k,
        messages=tuple(messages),
    )


def compare_models(idatas: Mapping[str, object]) -> pd.DataFrame:
    """Rank fitted models by expected log predictive density (PSIS-LOO).

    idatas maps a label (e.g. "cubic") to an InferenceData carrying a
    log_likelihood group.
    """
    if len(idatas) < 2:
        raise ValueError("compare_models needs at least two fitted models")
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", UserWarning)
        return az.compare(dict(idatas), ic="loo", var_name=LOO_VAR)


def describe(diag: Diagnostics) -> Sequence[str]:
    """Human readable lines for logs and reports."""
    lines = [
        f"chains={diag.n_chains} draws/chain={diag.n_draws}",
        f"divergent={diag.n_divergent} max_treedepth_hits={diag.n_max_treedepth}",
        f"max R-hat={diag.max_rhat:.3f} min ESS bulk={diag.min_ess_bulk:.0f} tail={diag.min_ess_tail:.0f}",
    ]
    if diag.loo_elpd is not None:
        lines.append(f"elpd_loo={diag.loo_elpd:.1f} (se {diag.loo_se:.1f}) p_loo={diag.p_loo:.1f}")
    lines.append("converged" if diag.converged else "PROVISIONAL: " + "; ".join(diag.messages))
    return lines
