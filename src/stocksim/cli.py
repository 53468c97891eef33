from __future__ import annotations

import argparse
import logging
import sys

from stocksim import __version__
from stocksim.errors import ConfigurationError
from stocksim.runner.config.loader import load_config
from stocksim.runner.run import run


# ============================================================
# Command: simulate
# ============================================================


def cmd_simulate(args):
    cfg = load_config(args.config)
    if cfg.simulation is None:
        raise ConfigurationError(f"{args.config} has no 'simulation' section")
    if args.save_dir is not None:
        cfg.save.directory = str(args.save_dir)
    cfg = cfg.model_copy(update={"convergence": None})

    print(f"[stocksim] Simulating: {args.config}")
    result = run(cfg)
    sim = cfg.simulation
    terminal = result.paths.terminal().mean()

    print("\n========== Simulation Complete ==========")
    print(f"Method: {sim.method.value}  paths: {sim.sample_count}  steps: {sim.n_steps}")
    print(f"Mean terminal stock: {terminal['stock']:.6f}")
    print(f"Mean terminal vol:   {terminal['vol']:.6f}")
    print(f"Mean terminal xi:    {terminal['xi']:.6f}")
    print("=========================================\n")


# ============================================================
# Command: convergence
# ============================================================


def cmd_convergence(args):
    cfg = load_config(args.config)
    if cfg.convergence is None:
        raise ConfigurationError(f"{args.config} has no 'convergence' section")
    if args.save_dir is not None:
        cfg.save.directory = str(args.save_dir)
    cfg = cfg.model_copy(update={"simulation": None})

    print(f"[stocksim] Convergence study: {args.config}")
    result = run(cfg).convergence

    print("\n========== Weak Error (Euler vs Milstein reference) ==========")
    print(result.to_frame().to_string(float_format=lambda x: f"{x:.6g}"))
    if len(result.errors) > 1:
        try:
            print(f"\nObserved weak order: {result.observed_order():.3f}")
        except ValueError as e:
            print(f"\nObserved weak order unavailable: {e}")
    print("==============================================================\n")


# ============================================================
# Command: version
# ============================================================


def cmd_version(args):
    print(__version__)


# ============================================================
# Main CLI
# ============================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stocksim", description="Stochastic-volatility path simulator"
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    # ------------------------------------------------------------------
    # simulate
    # ------------------------------------------------------------------
    p_sim = sub.add_parser("simulate", help="Simulate paths from a config file")
    p_sim.add_argument("--config", required=True, help="Path to config JSON/YAML")
    p_sim.add_argument(
        "--save-dir", required=False, default=None, help="Directory to save results"
    )
    p_sim.set_defaults(func=cmd_simulate)

    # ------------------------------------------------------------------
    # convergence
    # ------------------------------------------------------------------
    p_conv = sub.add_parser("convergence", help="Run a weak-convergence study")
    p_conv.add_argument("--config", required=True, help="Path to config JSON/YAML")
    p_conv.add_argument(
        "--save-dir", required=False, default=None, help="Directory to save results"
    )
    p_conv.set_defaults(func=cmd_convergence)

    # ------------------------------------------------------------------
    # version
    # ------------------------------------------------------------------
    p_ver = sub.add_parser("version", help="Show version")
    p_ver.set_defaults(func=cmd_version)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        args.func(args)
    except (ConfigurationError, FileNotFoundError) as e:
        print(f"[stocksim] error: {e}", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
