# src/false_negatives/sampling/config.py
from dataclasses import dataclass
from typing import Optional

from ..errors import ConfigurationError


@dataclass(frozen=True)
class SamplerConfig:
    """Settings for one sampler run.

    n_iter counts warm-up plus kept iterations per chain, so each chain keeps
    n_iter - n_warmup draws. adapt_delta is the NUTS target acceptance rate.
    """
    n_iter: int = 2000
    n_warmup: int = 1000
    chains: int = 4
    cores: Optional[int] = None
    adapt_delta: float = 0.99
    max_treedepth: int = 15
    random_seed: Optional[int] = None
    rhat_threshold: float = 1.01
    min_ess: float = 400.0
    progressbar: bool = False
    compute_loo: bool = True

    @property
    def n_draws(self) -> int:
        return self.n_iter - self.n_warmup

    def validate(self) -> None:
        if self.n_warmup < 0:
            raise ConfigurationError(f"n_warmup must be >= 0, got {self.n_warmup}")
        if self.n_warmup >= self.n_iter:
            raise ConfigurationError(
                f"n_iter ({self.n_iter}) must be greater than n_warmup ({self.n_warmup})"
            )
        if not 0.0 < self.adapt_delta < 1.0:
            raise ConfigurationError(f"adapt_delta must lie in (0, 1), got {self.adapt_delta}")
        if self.max_treedepth < 1:
            raise ConfigurationError(f"max_treedepth must be >= 1, got {self.max_treedepth}")
        if self.chains < 1:
            raise ConfigurationError(f"chains must be >= 1, got {self.chains}")
        if self.cores is not None and self.cores < 1:
            raise ConfigurationError(f"cores must be >= 1, got {self.cores}")
        if self.rhat_threshold <= 1.0:
            raise ConfigurationError(f"rhat_threshold must be > 1, got {self.rhat_threshold}")
