#!/usr/bin/env python3
# src/false_negatives/runner.py: pipeline runner
"""
Run examples:
  PYTHONPATH=src python -m false_negatives.runner scenarios
  PYTHONPATH=src python -m false_negatives.runner run --data data/example_sensitivity.csv --out results
  PYTHONPATH=src python -m false_negatives.runner run --data data/example_sensitivity.csv --scenario baseline --iter 1000 --warmup 500
  PYTHONPATH=src python -m false_negatives.runner compare --data data/example_sensitivity.csv --degrees 2 3
"""

import argparse
import logging
import sys
import time
from typing import List, Optional

from .errors import ConfigurationError, InputValidationError
from .model.specification import HyperParameters, ModelSpecification
from .observations.dataset import DEFAULT_EXPOSED_N, DEFAULT_EXPOSED_POS, load_observations
from .report.tables import attack_rate_text, percent_table
from .sampling.config import SamplerConfig
from .sampling.diagnostics import compare_models
from .sampling.sampler import NutsSampler
from .scenarios.scenario_runner import RunnerOptions, ScenarioRunner, default_scenarios

logger = logging.getLogger(__name__)


def add_data_args(p: argparse.ArgumentParser):
    p.add_argument("--data", required=True, metavar="PATH",
                   help="CSV with columns study, day, n, test_pos")
    p.add_argument("--exposed-n", type=int, default=DEFAULT_EXPOSED_N,
                   help=f"Exposed contacts followed up (default: {DEFAULT_EXPOSED_N})")
    p.add_argument("--exposed-pos", type=int, default=DEFAULT_EXPOSED_POS,
                   help=f"Exposed contacts infected (default: {DEFAULT_EXPOSED_POS})")
    p.add_argument("--t-max", type=int, default=21, help="Last day since exposure to predict (default: 21)")
    p.add_argument("--incubation", type=int, default=5, help="Baseline incubation period in days (default: 5)")
    p.add_argument("--spec", type=float, default=1.0, help="Baseline test specificity (default: 1.0)")


def add_sampler_args(p: argparse.ArgumentParser):
    p.add_argument("--iter", dest="n_iter", type=int, default=2000,
                   help="Iterations per chain including warm-up (default: 2000)")
    p.add_argument("--warmup", dest="n_warmup", type=int, default=1000,
                   help="Warm-up iterations per chain (default: 1000)")
    p.add_argument("--chains", type=int, default=4, help="Number of chains (default: 4)")
    p.add_argument("--cores", type=int, default=None, help="Processes used for chains (default: pymc's choice)")
    p.add_argument("--adapt-delta", type=float, default=0.99, help="NUTS target acceptance (default: 0.99)")
    p.add_argument("--max-treedepth", type=int, default=15, help="NUTS max tree depth (default: 15)")
    p.add_argument("--seed", type=int, default=None, help="RNG seed for reproducibility")


def sampler_config(args) -> SamplerConfig:
    return SamplerConfig(
        n_iter=args.n_iter,
        n_warmup=args.n_warmup,
        chains=args.chains,
        cores=args.cores,
        adapt_delta=args.adapt_delta,
        max_treedepth=args.max_treedepth,
        random_seed=args.seed,
    )


def base_hyper(args) -> HyperParameters:
    return HyperParameters(t_max=args.t_max, t_exp_symp=args.incubation, spec=args.spec)


def cmd_scenarios(args) -> int:
    for s in default_scenarios():
        parts = []
        if s.spec is not None:
            parts.append(f"spec={s.spec}")
        if s.t_exp_symp is not None:
            parts.append(f"t_exp_symp={s.t_exp_symp}")
        if s.attack_scale != 1.0:
            parts.append(f"attack x{s.attack_scale}")
        print(f"{s.label:<24} {', '.join(parts) or 'baseline settings'}")
    return 0


def cmd_run(args) -> int:
    dataset = load_observations(args.data, args.exposed_n, args.exposed_pos)
    scenarios = default_scenarios()
    if args.scenario:
        wanted = set(args.scenario)
        unknown = wanted - {s.label for s in scenarios}
        if unknown:
            raise ConfigurationError(f"Unknown scenario(s): {sorted(unknown)}")
        scenarios = [s for s in scenarios if s.label in wanted]

    options = RunnerOptions(
        sampler=sampler_config(args),
        base_hyper=base_hyper(args),
        degree=args.degree,
        max_workers=args.workers,
        output_dir=args.out,
        percent_decimals=args.decimals,
        make_plots=not args.no_plots,
        keep_idata=False,
    )
    runs = ScenarioRunner(options).run(dataset, scenarios)

    failed = 0
    for label, run in runs.items():
        print(f"\n=== {label} [{run.state.value}] ===")
        if not run.completed:
            failed += 1
            print(run.error)
            continue
        if run.provisional:
            print("WARNING: provisional result: " + "; ".join(run.result.diagnostics.messages))
        print(attack_rate_text(run.attack, args.decimals))
        print(percent_table(run.summary, decimals=args.decimals).to_string(index=False))
    return 1 if failed else 0


def cmd_compare(args) -> int:
    dataset = load_observations(args.data, args.exposed_n, args.exposed_pos)
    config = sampler_config(args)
    sampler = NutsSampler()
    fits = {}
    for degree in args.degrees:
        model = ModelSpecification(hyper=base_hyper(args), degree=degree)
        result = sampler.run(model, dataset, config)
        fits[f"degree {degree}"] = result.idata
    print(compare_models(fits).to_string())
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    p = argparse.ArgumentParser(description="False-negative RT-PCR risk by day since exposure")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = p.add_subparsers(dest="cmd", required=True)

    # ---------- scenarios ----------
    sub.add_parser("scenarios", help="List the sensitivity-analysis scenarios")

    # ---------- run ----------
    run_p = sub.add_parser("run", help="Sample, summarise and report every scenario")
    add_data_args(run_p)
    add_sampler_args(run_p)
    run_p.add_argument("--scenario", action="append", metavar="LABEL",
                       help="Run only this scenario (repeatable; default: all)")
    run_p.add_argument("--degree", type=int, default=3, help="Polynomial degree in log time (default: 3)")
    run_p.add_argument("--workers", type=int, default=1, help="Scenarios run in parallel (default: 1)")
    run_p.add_argument("--out", default=None, metavar="DIR", help="Directory for tables, diagnostics and figures")
    run_p.add_argument("--decimals", type=int, default=0, help="Decimals for percentages (default: 0)")
    run_p.add_argument("--no-plots", action="store_true", help="Skip figures")

    # ---------- compare ----------
    cmp_p = sub.add_parser("compare", help="PSIS-LOO comparison of polynomial degrees")
    add_data_args(cmp_p)
    add_sampler_args(cmp_p)
    cmp_p.add_argument("--degrees", type=int, nargs="+", default=[2, 3])

    args = p.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )

    t0 = time.perf_counter()
    handlers = {"scenarios": cmd_scenarios, "run": cmd_run, "compare": cmd_compare}
    try:
        status = handlers[args.cmd](args)
    except (InputValidationError, ConfigurationError, FileNotFoundError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    logger.info("Done in %.2fs", time.perf_counter() - t0)
    return status


if __name__ == "__main__":
    sys.exit(main())
