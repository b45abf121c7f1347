# src/false_negatives/model/specification.py
"""
Hierarchical model for RT-PCR sensitivity by time since exposure.

    test_pos[i]  ~ Binomial(n[i], inv_logit(mu[i]))
    mu[i]        = sum_k beta[k] * x[i]^k + u[study[i]]
    x[i]         = log(day_since_onset[i] + t_exp_symp + 1)
    u[j]         = sigma_u * z[j],  z[j] ~ Normal(0, 1)
    beta[k]      ~ Normal(0, beta_sigma)
    sigma_u      ~ HalfNormal(sigma_u_scale)
    exposed_pos  ~ Binomial(exposed_n, attack_rate)
    attack_rate  ~ Beta(attack_alpha, attack_beta)

By default beta is sampled through the QR rotation of the design matrix
(theta = R beta) with the Normal prior still placed on beta.

Specificity and the incubation period are fixed per run. Sensitivity, NPV
and the risk measures are computed from the draws afterwards
(see quantities.py); predictions use the population curve (u = 0).
"""

from dataclasses import dataclass, field
from typing import Dict, List, Tuple
import logging

import numpy as np
import pymc as pm

from ..errors import ConfigurationError
from ..observations.dataset import ObservationDataset
from .quantities import design_matrix, onset_to_exposure, time_covariate

logger = logging.getLogger(__name__)

DEFAULT_T_MAX = 21
DEFAULT_T_EXP_SYMP = 5


def qr_factors(X: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Scaled thin QR of the design matrix: X = Q R, returns (Q, R^-1).

    Powers of log time are close to collinear; sampling theta = R beta on the
    orthogonal columns of Q removes that correlation from the posterior.
    """
    n = X.shape[0]
    Q, R = np.linalg.qr(X, mode="reduced")
    scale = np.sqrt(n - 1)
    Q = Q * scale
    R = R / scale
    return Q, np.linalg.inv(R)


@dataclass(frozen=True)
class Priors:
    beta_sigma: float = 10.0
    sigma_u_scale: float = 1.0
    attack_alpha: float = 1.0
    attack_beta: float = 1.0


@dataclass(frozen=True)
class HyperParameters:
    t_max: int = DEFAULT_T_MAX
    t_exp_symp: int = DEFAULT_T_EXP_SYMP
    spec: float = 1.0

    def validate(self) -> None:
        if self.t_max < 0:
            raise ConfigurationError(f"T_max must be >= 0, got {self.t_max}")
        if self.t_exp_symp < 0:
            raise ConfigurationError(f"t_exp_symp must be >= 0, got {self.t_exp_symp}")
        if not 0.0 < self.spec <= 1.0:
            raise ConfigurationError(f"spec must lie in (0, 1], got {self.spec}")


@dataclass(frozen=True)
class ModelSpecification:
    hyper: HyperParameters = field(default_factory=HyperParameters)
    priors: Priors = field(default_factory=Priors)
    degree: int = 3
    # sample rotated coefficients theta = R beta (same posterior over beta)
    qr: bool = True

    def validate(self) -> None:
        self.hyper.validate()
        if self.degree < 1:
            raise ConfigurationError(f"polynomial degree must be >= 1, got {self.degree}")
        p = self.priors
        if min(p.beta_sigma, p.sigma_u_scale, p.attack_alpha, p.attack_beta) <= 0:
            raise ConfigurationError(f"prior scales must be positive: {p}")

    # ---------- time axis ----------

    def prediction_days(self) -> np.ndarray:
        """Days since exposure 0..T_max inclusive."""
        return np.arange(self.hyper.t_max + 1)

    def prediction_covariate(self) -> np.ndarray:
        return time_covariate(self.prediction_days())

    def record_covariate(self, dataset: ObservationDataset) -> np.ndarray:
        return time_covariate(onset_to_exposure(dataset.day, self.hyper.t_exp_symp))

    def coef_names(self) -> List[str]:
        return [f"log_t^{k}" for k in range(self.degree + 1)]

    def coords(self, dataset: ObservationDataset) -> Dict[str, list]:
        return {
            "coef": self.coef_names(),
            "study": dataset.studies,
            "obs": list(range(dataset.n_records)),
        }

    # ---------- model ----------

    def uses_qr(self, dataset: ObservationDataset) -> bool:
        # R must be invertible: enough distinct days for every power of log t
        if not self.qr or dataset.n_records <= self.degree + 1:
            return False
        X = design_matrix(self.record_covariate(dataset), self.degree)
        return np.linalg.matrix_rank(X) == self.degree + 1

    def build(self, dataset: ObservationDataset) -> pm.Model:
        """Return the pymc model for one run; nothing is sampled here."""
        self.validate()
        dataset.validate(self.hyper.t_max)

        X = design_matrix(self.record_covariate(dataset), self.degree)
        study = dataset.study_idx - 1
        p = self.priors

        with pm.Model(coords=self.coords(dataset)) as model:
            if self.uses_qr(dataset):
                Q, R_inv = qr_factors(X)
                theta = pm.Flat("theta", dims="coef")
                beta = pm.Deterministic("beta", pm.math.dot(R_inv, theta), dims="coef")
                # linear map, so the prior on beta needs no Jacobian term
                pm.Potential(
                    "beta_prior",
                    pm.logp(pm.Normal.dist(mu=0.0, sigma=p.beta_sigma), beta).sum(),
                )
                fixed = pm.math.dot(Q, theta)
            else:
                beta = pm.Normal("beta", mu=0.0, sigma=p.beta_sigma, dims="coef")
                fixed = pm.math.dot(X, beta)
            sigma_u = pm.HalfNormal("sigma_u", sigma=p.sigma_u_scale)
            z = pm.Normal("z_study", mu=0.0, sigma=1.0, dims="study")
            u = pm.Deterministic("u_study", sigma_u * z, dims="study")

            # logit parameterisation keeps the binomial terms in log space
            mu = fixed + u[study]
            pm.Binomial(
                "test_pos",
                n=np.array(dataset.n_tested, dtype="int64"),
                logit_p=mu,
                observed=np.array(dataset.n_positive, dtype="int64"),
                dims="obs",
            )

            attack_rate = pm.Beta("attack_rate", alpha=p.attack_alpha, beta=p.attack_beta)
            pm.Binomial(
                "exposed_pos",
                n=dataset.attack.exposed_n,
                p=attack_rate,
                observed=dataset.attack.exposed_pos,
            )

        logger.debug(
            "Built model: %d records, %d studies, degree %d, t_exp_symp=%d",
            dataset.n_records, dataset.n_studies, self.degree, self.hyper.t_exp_symp,
        )
        return model

    def initial_values(self, dataset: ObservationDataset) -> Dict[str, np.ndarray]:
        # raw proportion kept off the boundary so the logit transform is finite
        ar = float(np.clip(dataset.attack.raw_rate, 0.01, 0.99))
        coef = "theta" if self.uses_qr(dataset) else "beta"
        return {
            coef: np.zeros(self.degree + 1),
            "sigma_u": np.array(1.0),
            "z_study": np.zeros(dataset.n_studies),
            "attack_rate": np.array(ar),
        }
