from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import pandas as pd

from stocksim.runner.config.loader import load_config
from stocksim.runner.config.models import RunConfig, SaveSettings
from stocksim.sde.convergence import ConvergenceResult, run_convergence
from stocksim.sde.simulators.simulator import PathSet, run_simulation

LOGGER = logging.getLogger(__name__)


@dataclass
class RunResult:
    name: str
    paths: Optional[PathSet] = None
    convergence: Optional[ConvergenceResult] = None


# ======================================================================
# Main entrypoint
# ======================================================================


def run(cfg: RunConfig) -> RunResult:
    result = RunResult(name=cfg.name)

    if cfg.simulation is None and cfg.convergence is None:
        LOGGER.warning("Config '%s' has neither simulation nor convergence", cfg.name)

    if cfg.simulation is not None:
        LOGGER.info("Running path simulation…")
        result.paths = run_simulation(cfg.simulation, workers=cfg.workers)

    if cfg.convergence is not None:
        LOGGER.info("Running convergence study…")
        result.convergence = run_convergence(cfg.convergence)

    if cfg.save.directory:
        _persist_results(cfg.save, result)

    return result


def run_from_config(
    path: str | Path,
    save_dir: str | Path | None = None,
) -> RunResult:
    LOGGER.info("Loading config: %s", path)
    cfg = load_config(path)

    if save_dir is not None:
        cfg.save.directory = str(save_dir)

    return run(cfg)


# ======================================================================
# Save outputs
# ======================================================================


def save_pathset(
    paths: PathSet, out_dir: str | Path, save_averages: bool = True
) -> None:
    """One CSV per state variable (rows = samples, columns = grid times)."""
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    columns = pd.Index(paths.times, name="t")
    for name in ("stock", "vol", "xi"):
        frame = pd.DataFrame(getattr(paths, name), columns=columns)
        frame.index.name = "sample"
        frame.to_csv(out_dir / f"{name}_paths.csv")

    if save_averages:
        paths.averages().to_csv(out_dir / "averages.csv")


def save_convergence(result: ConvergenceResult, out_dir: str | Path) -> None:
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    result.to_frame().to_csv(out_dir / "convergence.csv")

    if result.terminal_samples is not None:
        cols = ["fine"] + [f"dt={h:g}" for h in result.step_sizes]
        frame = pd.DataFrame(result.terminal_samples, columns=cols)
        frame.index.name = "repetition"
        frame.to_csv(out_dir / "terminal_samples.csv")


def _persist_results(save: SaveSettings, result: RunResult) -> None:
    out_dir = Path(save.directory)
    LOGGER.info("Saving results to: %s", out_dir)

    if result.paths is not None:
        if save.save_paths:
            save_pathset(result.paths, out_dir, save_averages=save.save_averages)
        elif save.save_averages:
            out_dir.mkdir(parents=True, exist_ok=True)
            result.paths.averages().to_csv(out_dir / "averages.csv")

    if result.convergence is not None and save.save_convergence:
        save_convergence(result.convergence, out_dir)
