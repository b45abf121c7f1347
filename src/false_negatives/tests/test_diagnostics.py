import json

import arviz as az
import numpy as np
import pytest

from false_negatives.errors import ConfigurationError
from false_negatives.report.tables import write_diagnostics
from false_negatives.sampling.config import SamplerConfig
from false_negatives.sampling.diagnostics import compare_models, describe, summarize_diagnostics
from false_negatives.sampling.sampler import PosteriorDraws, pool_draws

DIMS = {"beta": ["coef"], "z_study": ["study"], "u_study": ["study"]}


def fake_idata(chains=4, draws=500, shift=0.0, divergent=0, seed=123):
    """Independent normal draws; `shift` moves chain 0 away from the others."""
    rng = np.random.default_rng(seed)
    posterior = {
        "beta": rng.normal(0, 1, size=(chains, draws, 4)),
        "sigma_u": np.abs(rng.normal(0, 1, size=(chains, draws))),
        "z_study": rng.normal(0, 1, size=(chains, draws, 3)),
        "attack_rate": rng.beta(78, 610, size=(chains, draws)),
    }
    posterior["u_study"] = posterior["sigma_u"][..., None] * posterior["z_study"]
    posterior["beta"][0] += shift
    diverging = np.zeros((chains, draws), dtype=bool)
    diverging.flat[:divergent] = True
    return az.from_dict(
        posterior=posterior,
        sample_stats={"diverging": diverging, "reached_max_treedepth": np.zeros((chains, draws), dtype=bool)},
        dims=DIMS,
        coords={"coef": ["c0", "c1", "c2", "c3"], "study": ["a", "b", "c"]},
    )


def test_well_mixed_chains_pass():
    config = SamplerConfig(compute_loo=False, min_ess=400)
    diag = summarize_diagnostics(fake_idata(), config)
    assert diag.n_chains == 4
    assert diag.n_draws == 500
    assert diag.n_divergent == 0
    assert diag.max_rhat < 1.01
    assert diag.min_ess_bulk > 400
    assert diag.converged
    assert not diag.provisional
    assert describe(diag)[-1] == "converged"


def test_divergences_and_bad_rhat_are_reported_not_raised():
    config = SamplerConfig(compute_loo=False)
    diag = summarize_diagnostics(fake_idata(shift=3.0, divergent=5), config)
    assert diag.n_divergent == 5
    assert diag.max_rhat > 1.1
    assert diag.provisional
    text = " ".join(diag.messages)
    assert "divergent" in text
    assert "R-hat" in text
    assert describe(diag)[-1].startswith("PROVISIONAL")
    assert diag.as_dict()["converged"] is False


def test_pool_draws_flattens_chains():
    idata = fake_idata(chains=3, draws=50)
    draws = pool_draws(idata)
    assert draws.n_draws == 150
    assert draws.beta.shape == (150, 4)
    assert draws.study_effects.shape == (150, 3)
    assert draws.attack_rate.shape == (150,)
    # chain 0's draws come first
    assert np.allclose(draws.attack_rate[:50], idata.posterior["attack_rate"].values[0])


def test_posterior_draws_checks_lengths():
    with pytest.raises(ValueError):
        PosteriorDraws(
            beta=np.zeros((10, 4)),
            sigma_u=np.zeros(9),
            study_effects=np.zeros((10, 2)),
            attack_rate=np.zeros(10),
        )


@pytest.mark.parametrize(
    "kwargs",
    [
        {"n_iter": 100, "n_warmup": 100},
        {"n_iter": 100, "n_warmup": -1},
        {"adapt_delta": 1.0},
        {"adapt_delta": 0.0},
        {"max_treedepth": 0},
        {"chains": 0},
        {"cores": 0},
    ],
)
def test_invalid_sampler_config(kwargs):
    with pytest.raises(ConfigurationError):
        SamplerConfig(**kwargs).validate()


def test_sampler_config_draw_count():
    config = SamplerConfig(n_iter=2000, n_warmup=1000)
    config.validate()
    assert config.n_draws == 1000


def with_log_likelihood(idata, shift, seed):
    rng = np.random.default_rng(seed)
    chains, draws = idata.posterior.sizes["chain"], idata.posterior.sizes["draw"]
    ll = rng.normal(-2.0 - shift, 0.1, size=(chains, draws, 12))
    idata.add_groups({"log_likelihood": {"test_pos": ll}}, dims={"test_pos": ["obs"]})
    return idata


def test_compare_models_ranks_by_elpd():
    good = with_log_likelihood(fake_idata(seed=1), shift=0.0, seed=1)
    worse = with_log_likelihood(fake_idata(seed=2), shift=1.0, seed=2)
    table = compare_models({"degree 3": good, "degree 2": worse})
    assert table.index[0] == "degree 3"
    assert table.loc["degree 3", "rank"] == 0
    with pytest.raises(ValueError):
        compare_models({"degree 3": good})


def test_loo_reported_when_log_likelihood_present():
    idata = with_log_likelihood(fake_idata(), shift=0.0, seed=3)
    diag = summarize_diagnostics(idata, SamplerConfig(compute_loo=True))
    assert diag.loo_elpd is not None
    assert diag.loo_elpd < 0
    assert diag.n_high_pareto_k is not None


def test_write_diagnostics_json(tmp_path):
    diag = summarize_diagnostics(fake_idata(divergent=2), SamplerConfig(compute_loo=False))
    path = write_diagnostics(diag, tmp_path / "out" / "diagnostics.json", context={"scenario": "baseline"})
    payload = json.loads(path.read_text())
    assert payload["scenario"] == "baseline"
    assert payload["diagnostics"]["n_divergent"] == 2
    assert payload["diagnostics"]["converged"] is False
    assert any("divergent" in m for m in payload["diagnostics"]["messages"])
