import numpy as np
import pytest
from scipy.special import logit

from false_negatives.aggregate.summary import interval_width, summarize_attack_rate, summarize_draws
from false_negatives.model.specification import HyperParameters, ModelSpecification
from false_negatives.observations.dataset import ObservationDataset, records_from_rows
from false_negatives.sampling.config import SamplerConfig
from false_negatives.sampling.sampler import NutsSampler

# sensitivity by day since symptom onset used to simulate the studies
ONSET_CURVE = {0: 0.35, 1: 0.50, 2: 0.65, 3: 0.75, 4: 0.80, 5: 0.80, 6: 0.78,
               7: 0.75, 8: 0.72, 10: 0.66, 12: 0.60, 14: 0.55}


def synthetic_dataset():
    rows = []
    for k, study in enumerate(["alpha", "beta", "gamma"]):
        for day, sens in ONSET_CURVE.items():
            if (day + k) % 3 == 2:
                continue
            rows.append((study, day, 80, int(round(80 * sens))))
    return ObservationDataset(records=records_from_rows(rows))


def test_model_has_named_parameters():
    dataset = synthetic_dataset()
    spec = ModelSpecification()
    model = spec.build(dataset)
    names = set(model.named_vars)
    assert {"theta", "beta", "sigma_u", "z_study", "u_study", "attack_rate", "test_pos", "exposed_pos"} <= names
    assert model.coords["study"] == ("alpha", "beta", "gamma")
    init = spec.initial_values(dataset)
    assert init["theta"].shape == (4,)
    assert float(init["attack_rate"]) == pytest.approx(77 / 686)


def test_model_without_qr_samples_beta_directly():
    dataset = synthetic_dataset()
    spec = ModelSpecification(qr=False)
    model = spec.build(dataset)
    assert "theta" not in model.named_vars
    assert "beta" in {v.name for v in model.free_RVs}
    assert "beta" in spec.initial_values(dataset)


def test_too_few_records_fall_back_to_plain_coefficients():
    dataset = ObservationDataset(records=records_from_rows([("a", 0, 10, 3), ("a", 2, 10, 6)]))
    assert not ModelSpecification().uses_qr(dataset)


@pytest.fixture(scope="module")
def fitted():
    dataset = synthetic_dataset()
    spec = ModelSpecification(HyperParameters(t_max=21, t_exp_symp=5, spec=1.0))
    config = SamplerConfig(
        n_iter=1000, n_warmup=500, chains=2, cores=1,
        adapt_delta=0.9, max_treedepth=10, random_seed=20200429,
    )
    return spec, NutsSampler().run(spec, dataset, config)


@pytest.mark.slow
def test_attack_rate_posterior_centres_on_raw_rate(fitted):
    _, result = fitted
    attack = summarize_attack_rate(result.draws)
    assert 0.09 < attack["median"] < 0.13
    assert attack["lower"] < 77 / 686 < attack["upper"]


@pytest.mark.slow
def test_false_omission_falls_after_exposure(fitted):
    """
    Testing on the day of symptom onset (day 5) leaves less residual risk
    than testing the day after exposure.
    """
    spec, result = fitted
    summary = summarize_draws(result.draws, spec)
    fo = summary[summary["quantity"] == "false_omission_rate"].set_index("day")["median"]
    assert fo[5] < fo[1] - 0.01


@pytest.mark.slow
def test_extrapolated_days_are_less_certain(fitted):
    spec, result = fitted
    summary = summarize_draws(result.draws, spec)
    sens = summary[summary["quantity"] == "sensitivity"].set_index("day")
    width = logit(sens["upper"]) - logit(sens["lower"])
    # day 0 is before any observed record, day 10 is in the middle of them
    assert width[0] > width[10]
    assert interval_width(summary, "sensitivity", 10) > 0


@pytest.mark.slow
def test_fitted_series_and_diagnostics(fitted):
    spec, result = fitted
    summary = summarize_draws(result.draws, spec)
    for name in ("sensitivity", "npv"):
        sub = summary[summary["quantity"] == name]
        assert sub["day"].tolist() == list(range(22))
        assert sub[["lower", "median", "upper"]].stack().between(0, 1).all()

    diag = result.diagnostics
    assert diag.n_chains == 2
    assert diag.n_draws == 500
    assert result.draws.n_draws == 1000
    assert result.draws.study_effects.shape == (1000, 3)
    assert np.isfinite(diag.max_rhat)
    assert diag.loo_elpd is not None
