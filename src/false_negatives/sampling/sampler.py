# src/false_negatives/sampling/sampler.py
"""
Drive NUTS (via pymc) against a ModelSpecification.

Chains are sampled independently; diagnostics are computed across chains
first and only then are the chains pooled into one draw collection.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional
import logging
import time

import numpy as np
import pymc as pm

from ..model.specification import ModelSpecification
from ..observations.dataset import ObservationDataset
from .config import SamplerConfig
from .diagnostics import Diagnostics, summarize_diagnostics

logger = logging.getLogger(__name__)


def _readonly(a) -> np.ndarray:
    arr = np.array(a, dtype=float)
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True)
class PosteriorDraws:
    """Pooled posterior draws, draw index on axis 0.

    beta: (n, degree + 1); sigma_u: (n,); study_effects: (n, J); attack_rate: (n,)
    """
    beta: np.ndarray
    sigma_u: np.ndarray
    study_effects: np.ndarray
    attack_rate: np.ndarray

    def __post_init__(self):
        for name in ("beta", "sigma_u", "study_effects", "attack_rate"):
            object.__setattr__(self, name, _readonly(getattr(self, name)))
        n = self.beta.shape[0]
        if self.beta.ndim != 2:
            raise ValueError("beta draws must be 2-D (draw, coef)")
        for name in ("sigma_u", "study_effects", "attack_rate"):
            if getattr(self, name).shape[0] != n:
                raise ValueError(f"{name} has {getattr(self, name).shape[0]} draws, beta has {n}")

    @property
    def n_draws(self) -> int:
        return self.beta.shape[0]


@dataclass(frozen=True)
class SamplerResult:
    draws: PosteriorDraws
    diagnostics: Diagnostics
    idata: Optional[Any] = None


def pool_draws(idata) -> PosteriorDraws:
    """Flatten (chain, draw) into a single sample axis."""
    post = idata.posterior.stack(sample=("chain", "draw"))
    return PosteriorDraws(
        beta=post["beta"].transpose("sample", "coef").values,
        sigma_u=post["sigma_u"].values,
        study_effects=post["u_study"].transpose("sample", "study").values,
        attack_rate=post["attack_rate"].values,
    )


class Sampler(ABC):
    """Anything that turns (model, data, config) into draws plus diagnostics."""

    @abstractmethod
    def run(
        self,
        model: ModelSpecification,
        dataset: ObservationDataset,
        config: SamplerConfig,
    ) -> SamplerResult:
        ...


class NutsSampler(Sampler):
    """pymc's NUTS implementation."""

    def run(self, model, dataset, config):
        # configuration and input errors surface before any compilation
        config.validate()
        model.validate()
        dataset.validate(model.hyper.t_max)

        pm_model = model.build(dataset)
        logger.info(
            "Sampling %d chains x %d draws (warm-up %d, adapt_delta=%.3f, max_treedepth=%d)",
            config.chains, config.n_draws, config.n_warmup, config.adapt_delta, config.max_treedepth,
        )
        t0 = time.perf_counter()
        with pm_model:
            idata = pm.sample(
                draws=config.n_draws,
                tune=config.n_warmup,
                chains=config.chains,
                cores=config.cores,
                initvals=model.initial_values(dataset),
                random_seed=config.random_seed,
                progressbar=config.progressbar,
                nuts={"target_accept": config.adapt_delta, "max_treedepth": config.max_treedepth},
                idata_kwargs={"log_likelihood": config.compute_loo},
                return_inferencedata=True,
            )
        logger.info("Sampling finished in %.1fs", time.perf_counter() - t0)

        diagnostics = summarize_diagnostics(idata, config)
        draws = pool_draws(idata)
        logger.debug("Pooled %d draws", draws.n_draws)
        return SamplerResult(draws=draws, diagnostics=diagnostics, idata=idata)
