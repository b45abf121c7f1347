# src/false_negatives/scenarios/scenario_runner.py
"""
Run the baseline model and its sensitivity analyses.

Each scenario derives its own hyperparameters and dataset from the shared
base inputs (which are never modified), samples, aggregates and, if an
output directory is configured, writes its tables as soon as it finishes.
A scenario that fails validation is marked FAILED and the rest carry on.
"""

from concurrent.futures import ProcessPoolExecutor
from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Sequence
import logging

import pandas as pd

from ..aggregate.summary import combine_summaries, summarize_attack_rate, summarize_draws
from ..errors import ConfigurationError, InputValidationError
from ..model.specification import HyperParameters, ModelSpecification, Priors
from ..observations.dataset import ObservationDataset
from ..report import tables
from ..sampling.config import SamplerConfig
from ..sampling.diagnostics import describe
from ..sampling.sampler import NutsSampler, Sampler, SamplerResult

logger = logging.getLogger(__name__)


class ScenarioState(Enum):
    CONFIGURED = "configured"
    SAMPLING = "sampling"
    AGGREGATED = "aggregated"
    REPORTED = "reported"
    FAILED = "failed"


_NEXT = {
    ScenarioState.CONFIGURED: {ScenarioState.SAMPLING, ScenarioState.FAILED},
    ScenarioState.SAMPLING: {ScenarioState.AGGREGATED, ScenarioState.FAILED},
    ScenarioState.AGGREGATED: {ScenarioState.REPORTED, ScenarioState.FAILED},
    ScenarioState.REPORTED: set(),
    ScenarioState.FAILED: set(),
}


@dataclass(frozen=True)
class Scenario:
    """A named change to the baseline inputs; None keeps the baseline value."""
    label: str
    t_exp_symp: Optional[int] = None
    spec: Optional[float] = None
    attack_scale: float = 1.0

    def hyper(self, base: HyperParameters) -> HyperParameters:
        changes = {}
        if self.t_exp_symp is not None:
            changes["t_exp_symp"] = self.t_exp_symp
        if self.spec is not None:
            changes["spec"] = self.spec
        return replace(base, **changes)

    def dataset(self, base: ObservationDataset) -> ObservationDataset:
        if self.attack_scale == 1.0:
            return base
        return base.with_attack(base.attack.scaled(self.attack_scale))


def default_scenarios() -> List[Scenario]:
    return [
        Scenario("baseline"),
        Scenario("specificity 90%", spec=0.9),
        Scenario("half attack rate", attack_scale=0.5),
        Scenario("double attack rate", attack_scale=2.0),
        Scenario("quadruple attack rate", attack_scale=4.0),
        Scenario("incubation 3 days", t_exp_symp=3),
        Scenario("incubation 7 days", t_exp_symp=7),
    ]


@dataclass
class ScenarioRun:
    scenario: Scenario
    state: ScenarioState = ScenarioState.CONFIGURED
    model: Optional[ModelSpecification] = None
    result: Optional[SamplerResult] = None
    summary: Optional[pd.DataFrame] = None
    attack: Optional[Dict[str, float]] = None
    error: Optional[str] = None
    outputs: List[Path] = field(default_factory=list)

    @property
    def label(self) -> str:
        return self.scenario.label

    @property
    def completed(self) -> bool:
        return self.state in (ScenarioState.AGGREGATED, ScenarioState.REPORTED)

    @property
    def provisional(self) -> bool:
        return self.result is not None and self.result.diagnostics.provisional

    def advance(self, state: ScenarioState) -> None:
        if state not in _NEXT[self.state]:
            raise RuntimeError(f"Scenario '{self.label}': cannot move from {self.state.value} to {state.value}")
        logger.debug("Scenario '%s': %s -> %s", self.label, self.state.value, state.value)
        self.state = state

    def fail(self, exc: Exception) -> None:
        self.error = f"{type(exc).__name__}: {exc}"
        self.advance(ScenarioState.FAILED)
        logger.error("Scenario '%s' failed: %s", self.label, self.error)


@dataclass(frozen=True)
class RunnerOptions:
    """Everything a batch of scenarios shares; passed explicitly, never global."""
    sampler: SamplerConfig = field(default_factory=SamplerConfig)
    base_hyper: HyperParameters = field(default_factory=HyperParameters)
    priors: Priors = field(default_factory=Priors)
    degree: int = 3
    max_workers: int = 1
    output_dir: Optional[str] = None
    percent_decimals: int = 0
    make_plots: bool = True
    keep_idata: bool = True


def write_scenario_outputs(run: ScenarioRun, options: RunnerOptions) -> List[Path]:
    """Per-scenario artefacts; each file appears complete or not at all."""
    out_dir = Path(options.output_dir)
    slug = tables.slugify(run.label)
    paths = [
        tables.write_table_atomic(
            tables.percent_table(run.summary, decimals=options.percent_decimals),
            out_dir / f"{slug}_table.csv",
        ),
        tables.write_table_atomic(run.summary, out_dir / f"{slug}_summary.csv"),
        tables.write_diagnostics(
            run.result.diagnostics,
            out_dir / f"{slug}_diagnostics.json",
            context={
                "scenario": run.label,
                "hyperparameters": asdict(run.model.hyper),
                "attack_rate": run.attack,
            },
        ),
    ]
    if options.make_plots:
        # imported here so headless batch runs without plots skip matplotlib
        from ..report.plots import plot_false_negative_curve

        fig_path = out_dir / f"{slug}_false_negative_rate.png"
        plot_false_negative_curve(run.summary, str(fig_path), incubation_day=run.model.hyper.t_exp_symp)
        paths.append(fig_path)
    return paths


def run_scenario(
    scenario: Scenario,
    dataset: ObservationDataset,
    options: RunnerOptions,
    sampler: Sampler,
) -> ScenarioRun:
    """CONFIGURED -> SAMPLING -> AGGREGATED (-> REPORTED) for one scenario."""
    run = ScenarioRun(scenario)
    try:
        model = ModelSpecification(scenario.hyper(options.base_hyper), options.priors, options.degree)
        data = scenario.dataset(dataset)
        model.validate()
        options.sampler.validate()
        data.validate(model.hyper.t_max)
    except (InputValidationError, ConfigurationError) as exc:
        run.fail(exc)
        return run
    run.model = model

    logger.info("Scenario '%s': sampling (%s)", run.label, model.hyper)
    run.advance(ScenarioState.SAMPLING)
    try:
        result = sampler.run(model, data, options.sampler)
        for line in describe(result.diagnostics):
            logger.info("Scenario '%s': %s", run.label, line)
        if not options.keep_idata:
            result = replace(result, idata=None)
        summary = summarize_draws(result.draws, model)
        attack = summarize_attack_rate(result.draws)
    except (InputValidationError, ConfigurationError) as exc:
        run.fail(exc)
        return run
    except Exception as exc:
        # e.g. pymc failing to evaluate the model at the initial point
        logger.exception("Scenario '%s': sampling or aggregation raised", run.label)
        run.fail(exc)
        return run
    run.result = result
    run.summary = summary
    run.attack = attack
    run.advance(ScenarioState.AGGREGATED)

    if options.output_dir:
        run.outputs = write_scenario_outputs(run, options)
        run.advance(ScenarioState.REPORTED)
    return run


class ScenarioRunner:
    def __init__(self, options: Optional[RunnerOptions] = None, sampler: Optional[Sampler] = None):
        self.options = options or RunnerOptions()
        self.sampler = sampler or NutsSampler()

    def run(
        self,
        dataset: ObservationDataset,
        scenarios: Optional[Sequence[Scenario]] = None,
    ) -> Dict[str, ScenarioRun]:
        """Run every scenario; results keyed by label in input order."""
        scenarios = list(default_scenarios() if scenarios is None else scenarios)
        labels = [s.label for s in scenarios]
        if len(set(labels)) != len(labels):
            raise ConfigurationError(f"scenario labels must be unique: {labels}")

        if self.options.max_workers > 1 and len(scenarios) > 1:
            runs = self._run_parallel(dataset, scenarios)
        else:
            runs = [run_scenario(s, dataset, self.options, self.sampler) for s in scenarios]

        out = {r.label: r for r in runs}
        n_ok = sum(r.completed for r in runs)
        logger.info("%d/%d scenarios completed", n_ok, len(runs))
        if self.options.output_dir and n_ok:
            self.write_comparison(out)
        return out

    def _run_parallel(self, dataset, scenarios) -> List[ScenarioRun]:
        # no shared mutable state: each worker gets pickled copies of the inputs
        with ProcessPoolExecutor(max_workers=self.options.max_workers) as pool:
            futures = [
                pool.submit(run_scenario, s, dataset, self.options, self.sampler)
                for s in scenarios
            ]
            runs = []
            for scenario, future in zip(scenarios, futures):
                try:
                    runs.append(future.result())
                except Exception as exc:
                    # worker died or the result could not be pickled back
                    logger.exception("Scenario '%s': worker raised", scenario.label)
                    run = ScenarioRun(scenario)
                    run.fail(exc)
                    runs.append(run)
            return runs

    @staticmethod
    def comparison(runs: Dict[str, ScenarioRun]) -> pd.DataFrame:
        """Long table of all completed scenarios tagged by label."""
        return combine_summaries({label: r.summary for label, r in runs.items() if r.completed})

    @staticmethod
    def attack_rates(runs: Dict[str, ScenarioRun]) -> pd.DataFrame:
        rows = [{"scenario": label, **r.attack} for label, r in runs.items() if r.completed]
        return pd.DataFrame(rows, columns=["scenario", "median", "lower", "upper"])

    def write_comparison(self, runs: Dict[str, ScenarioRun]) -> List[Path]:
        out_dir = Path(self.options.output_dir)
        combined = self.comparison(runs)
        paths = [
            tables.write_table_atomic(
                tables.percent_table(combined, decimals=self.options.percent_decimals),
                out_dir / "comparison_table.csv",
            ),
            tables.write_table_atomic(self.attack_rates(runs), out_dir / "attack_rates.csv"),
        ]
        if self.options.make_plots:
            from ..report.plots import plot_scenarios

            fig_path = out_dir / "comparison_false_omission_rate.png"
            plot_scenarios(combined, "false_omission_rate", str(fig_path))
            paths.append(fig_path)
        return paths
