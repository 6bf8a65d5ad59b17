#!/usr/bin/env python3
# src/reproduction_numbers/runner.py

import argparse
import json
import logging
import re
import time
from typing import List, Optional, Tuple

import pandas as pd

from .cache import ResultCache, make_key
from .config import EstimatorConfig, ObservationModel, SEIRParameters
from .errors import InvalidParameter
from .estimate.case_reproduction import integrate_case_reproduction
from .estimate.cohort import estimate_cohort
from .estimate.results import estimates_to_frame
from .estimate.sliding_window import estimate_sliding_window
from .io import load_incidence_csv, save_table
from .simulate.generator import simulate_epidemic
from .simulate.schedule import TransmissionSchedule
from .simulate.serial_interval import SerialIntervalModel

logger = logging.getLogger(__name__)

ESTIMATORS = {
    "sliding_window": estimate_sliding_window,
    "cohort": estimate_cohort,
}


# Parser for breakpoints like 20:0.5,40:1.2
def parse_breakpoints(s: Optional[str]) -> List[Tuple[float, float]]:
    if not s:
        return [(0.0, 1.0)]
    points = []
    for tok in [x for x in re.split(r"[,\s;]+", s.strip()) if x]:
        t, m = tok.split(":")
        points.append((float(t), float(m)))
    return points


def run_estimator(
    method: str,
    incidence,
    config: EstimatorConfig,
    times=None,
    serial_interval: Optional[SerialIntervalModel] = None,
    cache: Optional[ResultCache] = None,
) -> pd.DataFrame:
    """Run one estimator and return its output table, through the cache if given."""
    if method not in ESTIMATORS:
        raise InvalidParameter(f"unknown estimator {method!r}; choose from {sorted(ESTIMATORS)}", parameter="method")
    if serial_interval is None:
        serial_interval = config.serial_interval()

    def compute():
        return estimates_to_frame(ESTIMATORS[method](incidence, serial_interval, config, times=times))

    if cache is None:
        return compute()

    key_config = config.as_dict()
    # The pmf is part of the key so custom serial intervals never collide
    key_config["serial_interval_pmf"] = [round(float(w), 15) for w in serial_interval.pmf]
    key = make_key(method, key_config, incidence, times)
    return cache.get_or_compute(key, compute, config={"method": method, **key_config})


def _seir_params(args) -> SEIRParameters:
    return SEIRParameters(
        population=args.population,
        initial_exposed=args.initial_exposed,
        initial_infectious=args.initial_infectious,
        latent_period=args.latent_period,
        infectious_period=args.infectious_period,
        horizon=args.horizon,
        dt=args.dt,
    )


def _add_seir_arguments(p):
    p.add_argument("--population", type=float, default=1_000_000.0, metavar="N",
                   help="Population size (default: 1e6)")
    p.add_argument("--initial-exposed", type=float, default=10.0, metavar="E0")
    p.add_argument("--initial-infectious", type=float, default=10.0, metavar="I0")
    p.add_argument("--latent-period", type=float, default=2.0, metavar="DAYS",
                   help="Mean latent duration 1/sigma (default: 2)")
    p.add_argument("--infectious-period", type=float, default=3.0, metavar="DAYS",
                   help="Mean infectious duration 1/gamma (default: 3)")
    p.add_argument("--horizon", type=int, default=100, metavar="DAYS")
    p.add_argument("--dt", type=float, default=0.01, help="Integration step; must divide one day")
    p.add_argument("--r0", type=float, default=1.5,
                   help="Basic reproduction number before any intervention (default: 1.5)")
    p.add_argument("--breakpoints", type=str, default=None, metavar="LIST",
                   help="Rate multipliers as time:multiplier pairs, e.g. '30:0.5,60:1.2'")


def main(argv=None):
    p = argparse.ArgumentParser(description="Rt estimation benchmark runner")
    p.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    sub = p.add_subparsers(dest="cmd", required=True)

    # ---------- simulate ----------
    sim_p = sub.add_parser("simulate", help="Simulate an SEIR epidemic with ground-truth Rt")
    _add_seir_arguments(sim_p)
    sim_p.add_argument("--mode", choices=("deterministic", "stochastic"), default="deterministic")
    sim_p.add_argument("--seed", type=int, default=42, metavar="SEED",
                       help="RNG seed for stochastic mode (default: 42)")
    sim_p.add_argument("--delay-mean", type=float, default=5.0,
                       help="Mean infection-to-report delay; 0 disables the delay")
    sim_p.add_argument("--delay-sd", type=float, default=2.0)
    sim_p.add_argument("--reporting-fraction", type=float, default=1.0)
    sim_p.add_argument("--out", default="data/simulation.csv", metavar="PATH")

    # ---------- estimate ----------
    est_p = sub.add_parser("estimate", help="Estimate Rt from an incidence CSV")
    est_p.add_argument("--input", required=True, metavar="PATH",
                       help="CSV with columns time, incidence[, observed_cases]")
    est_p.add_argument("--column", choices=("incidence", "observed_cases"), default="incidence")
    est_p.add_argument("--method", choices=("sliding_window", "cohort", "both"), default="both")
    est_p.add_argument("--config", default=None, metavar="JSON",
                       help="JSON file of estimator options; command-line values override it")
    est_p.add_argument("--window-width", type=int, default=None)
    est_p.add_argument("--window-alignment", choices=("start", "middle", "end"), default=None)
    est_p.add_argument("--serial-interval-mean", type=float, default=None)
    est_p.add_argument("--serial-interval-sd", type=float, default=None)
    est_p.add_argument("--confidence-level", type=float, default=None)
    est_p.add_argument("--resample-count", type=int, default=None)
    est_p.add_argument("--resample-model", choices=("renewal", "poisson", "multinomial"), default=None)
    est_p.add_argument("--random-seed", type=int, default=None)
    est_p.add_argument("--n-jobs", type=int, default=None)
    est_p.add_argument("--allow-fractional", action="store_true",
                       help="Accept non-integer incidence (deterministic simulations)")
    est_p.add_argument("--cache-dir", default=None, metavar="DIR")
    est_p.add_argument("--out", default="data/estimates.csv", metavar="PATH")

    # ---------- reference ----------
    ref_p = sub.add_parser("reference", help="Integrate the deterministic case reproduction number")
    _add_seir_arguments(ref_p)
    ref_p.add_argument("--kind", choices=("instantaneous", "cohort"), default="instantaneous")
    ref_p.add_argument("--solver", choices=("rk4", "euler"), default="rk4")
    ref_p.add_argument("--out", default="data/case_reproduction.csv", metavar="PATH")

    args = p.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    t0 = time.perf_counter()

    if args.cmd == "simulate":
        params = _seir_params(args)
        schedule = TransmissionSchedule.from_reproduction_number(
            args.r0, args.infectious_period, parse_breakpoints(args.breakpoints)
        )
        observation = ObservationModel(
            delay_mean=args.delay_mean if args.delay_mean > 0 else None,
            delay_sd=args.delay_sd if args.delay_mean > 0 else None,
            reporting_fraction=args.reporting_fraction,
        )
        state = simulate_epidemic(params, schedule, mode=args.mode, seed=args.seed, observation=observation)
        save_table(args.out, state.to_frame())
        print("Simulation done ->", args.out)

    elif args.cmd == "estimate":
        options = {}
        if args.config:
            with open(args.config, encoding="utf-8") as fh:
                options.update(json.load(fh))
        overrides = {
            "window_width": args.window_width,
            "window_alignment": args.window_alignment,
            "serial_interval_mean": args.serial_interval_mean,
            "serial_interval_sd": args.serial_interval_sd,
            "confidence_level": args.confidence_level,
            "resample_count": args.resample_count,
            "resample_model": args.resample_model,
            "random_seed": args.random_seed,
            "n_jobs": args.n_jobs,
        }
        options.update({k: v for k, v in overrides.items() if v is not None})
        config = EstimatorConfig.from_mapping(options)

        df = load_incidence_csv(args.input, allow_fractional=args.allow_fractional)
        if args.column not in df.columns:
            p.error(f"column {args.column!r} not found in {args.input}")
        cache = ResultCache(args.cache_dir) if args.cache_dir else None
        methods = ["sliding_window", "cohort"] if args.method == "both" else [args.method]

        tables = [
            run_estimator(m, df[args.column].to_numpy(), config, times=df["time"].to_numpy(), cache=cache)
            for m in methods
        ]
        save_table(args.out, pd.concat(tables, ignore_index=True))
        print("Estimates ->", args.out)

    elif args.cmd == "reference":
        params = _seir_params(args)
        schedule = TransmissionSchedule.from_reproduction_number(
            args.r0, args.infectious_period, parse_breakpoints(args.breakpoints)
        )
        result = integrate_case_reproduction(schedule, params, kind=args.kind, method=args.solver)
        save_table(args.out, result.to_frame())
        print("Case reproduction number ->", args.out)

    logger.info("Done in %.2fs", time.perf_counter() - t0)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
