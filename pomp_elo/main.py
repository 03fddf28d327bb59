"""Main CLI interface for the POMP-ELO team-strength engine."""

import argparse
import json
import logging
import sys

import pandas as pd

from .data.loader import DataLoader
from .data.validators import InputValidationError
from .models.params import ParameterVector
from .pipeline.fit import FitConfig, run_fit_pipeline_to_file
from .pomp.global_search import GlobalSearchError
from .pomp.particle_filter import DegenerateFilterError, ParticleFilter
from .pomp.transition import DEFAULT_K_FACTOR
from .pomp.variants import ModelVariant, build_model
from .predictors.elo import EloPredictor
from .predictors.logistic import LogisticPredictor
from .simulation.simulator import SimulationConfig, Simulator

VARIANTS = [v.value for v in ModelVariant]


def load_params(args) -> ParameterVector:
    """Parameter vector from --params JSON, overridden by individual flags."""
    values = {}
    if args.params:
        with open(args.params, "r") as f:
            data = json.load(f)
        # accept a fit report as well as a bare mapping
        values.update(data.get("best", {}).get("params", data))
    for name in ("beta1", "beta2", "sigma", "alpha", "home_court_advantage"):
        flag = getattr(args, name, None)
        if flag is not None:
            values[name] = flag
    return ParameterVector.from_dict(values)


def load_season(args):
    """Season from --input, or built for --team from a --league-log."""
    if getattr(args, "league_log", None):
        return DataLoader.load_league_series(args.league_log, args.team)
    return DataLoader.load_series(args.input, team=args.team)


def create_sample(args):
    """Create sample data file."""
    print(f"Creating sample season at {args.output}...")
    series = DataLoader.create_sample_data(args.output, n_games=args.games, seed=args.seed)
    print(f"✓ Sample season created ({len(series)} games, {int(series.outcome.sum())} wins)")
    print("\nYou can now fit it with:")
    print(f"  pomp-elo fit --input {args.output} --output fit_report.json")
    return 0


def run_filter(args):
    """Estimate the log-likelihood at a fixed parameter vector."""
    series = load_season(args)
    model = build_model(args.variant, k_factor=args.k_factor)
    params = load_params(args)
    pf = ParticleFilter(model, n_particles=args.particles, resampling=args.resampling)

    print(f"Filtering {len(series)} games with {args.particles} particles ({args.variant} variant)...")
    try:
        result = pf.run(series, params, seed=args.seed)
    except DegenerateFilterError as exc:
        print(f"Error: {exc}")
        return 1

    print(f"Log-likelihood: {result.loglik:.4f}")
    print(f"Minimum ESS: {result.ess.min():.1f}")
    if args.output:
        DataLoader.save_frame(result.to_frame(), args.output)
        print(f"✓ Per-game filter output written to {args.output}")
    return 0


def run_fit(args):
    """Run the global search pipeline."""
    if args.config:
        config = FitConfig.from_json(args.config)
    else:
        config = FitConfig()
    config.data_path = args.input or config.data_path
    config.league_log = args.league_log or config.league_log
    config.team = args.team or config.team
    config.variant = args.variant or config.variant
    for name in (
        "n_starts", "n_replicates", "replicate_particles", "n_iterations", "n_particles",
        "num_simulations", "parallel_workers",
    ):
        value = getattr(args, name)
        if value is not None:
            setattr(config, name, value)
    if args.k_factor is not None:
        config.k_factor = args.k_factor
    if args.seed is not None:
        config.random_seed = args.seed

    print(f"Fitting {config.variant} variant with {config.n_starts} restarts...")
    try:
        report = run_fit_pipeline_to_file(config, args.output)
    except (GlobalSearchError, InputValidationError) as exc:
        print(f"Error: {exc}")
        return 1

    best = report["best"]
    print(f"✓ Fit complete. Results written to {args.output}")
    print(f"Best log-likelihood: {best['loglik']:.3f} (se {best['se']:.3f})")
    for name, value in best["params"].items():
        print(f"  {name:<22} {value:10.4f}")
    if args.trace_output:
        DataLoader.save_frame(pd.DataFrame(report["trace"]), args.trace_output)
        print(f"✓ IF2 trace written to {args.trace_output}")
    return 0


def run_simulate(args):
    """Simulate seasons at a fixed parameter vector."""
    series = load_season(args)
    model = build_model(args.variant, k_factor=args.k_factor)
    params = load_params(args)
    simulator = Simulator(
        model,
        SimulationConfig(
            num_simulations=args.simulations,
            random_seed=args.seed,
            parallel_workers=args.workers,
        ),
    )

    print(f"Simulating {args.simulations} seasons of {len(series)} games...")
    result = simulator.simulate(series, params)
    metrics = result.outcome_metrics()
    print(f"Observed wins: {metrics['observed_wins']}")
    print(f"Simulated wins (mean): {metrics['simulated_wins_mean']:.1f}")
    print(f"Accuracy of mean win probability: {metrics['accuracy']:.3f}")
    if args.output:
        DataLoader.save_frame(result.to_frame(), args.output)
        print(f"✓ Per-game simulation summary written to {args.output}")
    return 0


def run_baseline(args):
    """Score the ELO and logistic baselines on a season."""
    series = load_season(args)
    rows = []
    try:
        rows.append(EloPredictor().evaluate(series))
    except InputValidationError as exc:
        print(f"ELO baseline skipped: {exc}")
    try:
        rows.append(LogisticPredictor().fit(series).evaluate(series))
    except ValueError as exc:
        print(f"Logistic baseline skipped: {exc}")

    print(f"\n{'Model':<10} {'Accuracy':>9} {'Brier':>8} {'LogLoss':>8}")
    for row in rows:
        print(f"{row['model']:<10} {row['accuracy']:9.3f} {row['brier_score']:8.4f} {row['log_loss']:8.4f}")
    if args.output:
        DataLoader.save_report({"baselines": rows}, args.output)
        print(f"✓ Baseline metrics written to {args.output}")
    return 0


def add_input_flags(parser, required=True):
    source = parser.add_mutually_exclusive_group(required=required)
    source.add_argument("--input", "-i", default=None, help="Season CSV/JSON")
    source.add_argument("--league-log", default=None, help="League game log CSV/JSON; needs --team")
    parser.add_argument("--team", default=None, help="Tracked team when the table holds several")


def add_param_flags(parser):
    parser.add_argument("--params", default=None, help="Parameter JSON (mapping or fit report)")
    parser.add_argument("--beta1", type=float, default=None)
    parser.add_argument("--beta2", type=float, default=None)
    parser.add_argument("--sigma", type=float, default=None)
    parser.add_argument("--alpha", type=float, default=None)
    parser.add_argument("--home-court-advantage", dest="home_court_advantage", type=float, default=None)


def main(argv=None):
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="POMP-ELO: partially observed ELO team-strength model for NBA seasons"
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (default: WARNING)",
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    sample_parser = subparsers.add_parser("sample", help="Create a synthetic season")
    sample_parser.add_argument("--output", "-o", default="sample_season.csv", help="Output CSV")
    sample_parser.add_argument("--games", type=int, default=82, help="Season length (default: 82)")
    sample_parser.add_argument("--seed", type=int, default=7, help="Random seed")

    filter_parser = subparsers.add_parser("filter", help="Particle-filter log-likelihood at fixed parameters")
    add_input_flags(filter_parser)
    filter_parser.add_argument("--variant", choices=VARIANTS, default="covariate")
    filter_parser.add_argument("--k-factor", type=float, default=DEFAULT_K_FACTOR, help="ELO K for the correction")
    filter_parser.add_argument("--particles", type=int, default=1000, help="Particle count (default: 1000)")
    filter_parser.add_argument("--resampling", choices=["systematic", "multinomial"], default="systematic")
    filter_parser.add_argument("--seed", type=int, default=None, help="Random seed")
    filter_parser.add_argument("--output", "-o", default=None, help="Optional per-game CSV")
    add_param_flags(filter_parser)

    fit_parser = subparsers.add_parser("fit", help="Global search for maximum-likelihood parameters")
    add_input_flags(fit_parser, required=False)
    fit_parser.add_argument("--config", "-c", default=None, help="Fit config JSON")
    fit_parser.add_argument("--output", "-o", default="fit_report.json", help="Output report JSON")
    fit_parser.add_argument("--trace-output", default=None, help="Optional CSV of the best restart's IF2 trace")
    fit_parser.add_argument("--variant", choices=VARIANTS, default=None)
    fit_parser.add_argument("--k-factor", type=float, default=None, help="ELO K for the correction")
    fit_parser.add_argument("--starts", dest="n_starts", type=int, default=None, help="Random restarts")
    fit_parser.add_argument("--replicates", dest="n_replicates", type=int, default=None, help="Likelihood replicates")
    fit_parser.add_argument("--iterations", dest="n_iterations", type=int, default=None, help="IF2 iterations")
    fit_parser.add_argument("--particles", dest="n_particles", type=int, default=None, help="IF2 particles")
    fit_parser.add_argument(
        "--replicate-particles", dest="replicate_particles", type=int, default=None, help="Particles per likelihood replicate"
    )
    fit_parser.add_argument("--simulations", dest="num_simulations", type=int, default=None)
    fit_parser.add_argument("--workers", dest="parallel_workers", type=int, default=None, help="Worker processes")
    fit_parser.add_argument("--seed", type=int, default=None, help="Random seed")

    simulate_parser = subparsers.add_parser("simulate", help="Simulate seasons at fixed parameters")
    add_input_flags(simulate_parser)
    simulate_parser.add_argument("--variant", choices=VARIANTS, default="covariate")
    simulate_parser.add_argument("--k-factor", type=float, default=DEFAULT_K_FACTOR, help="ELO K for the correction")
    simulate_parser.add_argument("--simulations", type=int, default=100, help="Simulated seasons (default: 100)")
    simulate_parser.add_argument("--workers", type=int, default=None, help="Worker processes")
    simulate_parser.add_argument("--seed", type=int, default=None, help="Random seed")
    simulate_parser.add_argument("--output", "-o", default=None, help="Optional per-game CSV")
    add_param_flags(simulate_parser)

    baseline_parser = subparsers.add_parser("baseline", help="Score ELO and logistic baselines")
    add_input_flags(baseline_parser)
    baseline_parser.add_argument("--output", "-o", default=None, help="Optional metrics JSON")

    args = parser.parse_args(argv)
    if getattr(args, "league_log", None) and not args.team:
        parser.error("--league-log requires --team")
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "sample":
        return create_sample(args)
    elif args.command == "filter":
        return run_filter(args)
    elif args.command == "fit":
        return run_fit(args)
    elif args.command == "simulate":
        return run_simulate(args)
    elif args.command == "baseline":
        return run_baseline(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
