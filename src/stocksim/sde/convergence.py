# src/stocksim/sde/convergence.py
from __future__ import annotations

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
from pydantic import BaseModel, ConfigDict, Field
from scipy.stats import norm

from stocksim.sde.schemas import ConvergenceConfig, Method, validate_convergence
from stocksim.sde.schemes import NumericalScheme, resolve_scheme
from stocksim.sde.simulators.simulator import iterate_states
from stocksim.sde.streams import derive_streams

LOGGER = logging.getLogger(__name__)

REFERENCE_METHOD = Method.MILSTEIN
COARSE_METHOD = Method.EULER


class ConvergenceResult(BaseModel):
    """
    Empirical weak error of the coarse scheme at the common horizon.

    errors maps coarse step size -> |mean(S_coarse(T)) - mean(S_fine(T))|.
    terminal_samples, when kept, is shaped (repetitions, 1 + n_levels) with
    the fine reference in column 0 and coarse levels in ascending step order.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    fine_dt: float = Field(..., gt=0.0)
    horizon: float = Field(..., gt=0.0)
    repetitions: int = Field(..., ge=1)
    fine_mean: float
    coarse_means: Dict[float, float]
    errors: Dict[float, float]
    standard_errors: Dict[float, float]
    terminal_samples: Optional[np.ndarray] = None

    @property
    def step_sizes(self) -> List[float]:
        return sorted(self.errors)

    def to_frame(self) -> pd.DataFrame:
        rows = [
            {
                "dt": h,
                "mean": self.coarse_means[h],
                "weak_error": self.errors[h],
                "std_error": self.standard_errors[h],
            }
            for h in self.step_sizes
        ]
        return pd.DataFrame(rows).set_index("dt")

    def confidence_interval(self, level: float = 0.95) -> pd.DataFrame:
        """Normal-approximation interval of the signed bias at each step size."""
        if not 0.0 < level < 1.0:
            raise ValueError("level must be in (0, 1)")
        z = float(norm.ppf(0.5 + level / 2.0))
        bias = pd.Series(
            {h: self.coarse_means[h] - self.fine_mean for h in self.step_sizes}
        )
        se = pd.Series(self.standard_errors).loc[bias.index]
        out = pd.DataFrame({"lower": bias - z * se, "upper": bias + z * se})
        out.index.name = "dt"
        return out

    def observed_order(self) -> float:
        """Slope of log(error) against log(dt); ~1 for Euler."""
        h = np.array(self.step_sizes, dtype=float)
        err = np.array([self.errors[x] for x in h], dtype=float)
        mask = err > 0.0
        if mask.sum() < 2:
            raise ValueError("need at least two non-zero errors to fit an order")
        slope, _ = np.polyfit(np.log(h[mask]), np.log(err[mask]), 1)
        return float(slope)


def _aggregate(dw: np.ndarray, factor: int) -> np.ndarray:
    """Sum consecutive groups of `factor` increments along the time axis."""
    n_rows, n_inc = dw.shape
    return dw.reshape(n_rows, n_inc // factor, factor).sum(axis=2)


def _terminal_stock(
    scheme: NumericalScheme,
    dt: float,
    dw_stock: np.ndarray,
    dw_vol: np.ndarray,
    cfg: ConvergenceConfig,
) -> np.ndarray:
    stock = np.full(dw_stock.shape[0], cfg.s0, dtype=float)
    for stock, _, _ in iterate_states(
        scheme,
        dt,
        dw_stock,
        dw_vol,
        cfg.s0,
        cfg.sigma0,
        cfg.xi0,
        cfg.mu,
        cfg.p,
        cfg.alpha,
    ):
        pass
    return stock


def _run_batch(cfg: ConvergenceConfig, factors: Sequence[int], reps: np.ndarray):
    """Terminal stock values for a batch of repetitions, fine level first."""
    fine = resolve_scheme(REFERENCE_METHOD)
    coarse = resolve_scheme(COARSE_METHOD)
    sqrt_dt = math.sqrt(cfg.fine_dt)

    dw_stock = np.empty((reps.size, cfg.fine_steps), dtype=float)
    dw_vol = np.empty((reps.size, cfg.fine_steps), dtype=float)
    for row, rep in enumerate(reps):
        a, b = derive_streams(cfg.seed, int(rep))
        dw_stock[row] = a.draws(cfg.fine_steps) * sqrt_dt
        dw_vol[row] = b.draws(cfg.fine_steps) * sqrt_dt

    out = np.empty((reps.size, 1 + len(factors)), dtype=float)
    out[:, 0] = _terminal_stock(fine, cfg.fine_dt, dw_stock, dw_vol, cfg)
    for col, k in enumerate(factors, start=1):
        out[:, col] = _terminal_stock(
            coarse,
            k * cfg.fine_dt,
            _aggregate(dw_stock, k),
            _aggregate(dw_vol, k),
            cfg,
        )
    return out


def run_convergence(cfg: ConvergenceConfig | dict) -> ConvergenceResult:
    """
    Weak-error study with common random numbers.

    Every repetition draws one fine Wiener path per noise source from
    derive_streams(seed, repetition). The fine Milstein path is the reference;
    each coarse Euler path uses the fine increments summed in groups of k, so
    the comparison only sees discretisation bias, not sampling noise.
    """
    cfg = validate_convergence(cfg)
    factors = sorted(cfg.coarse_factors)

    LOGGER.info(
        "Weak convergence: %d repetitions, fine_dt=%g, %d fine steps, factors=%s",
        cfg.repetitions,
        cfg.fine_dt,
        cfg.fine_steps,
        factors,
    )

    batches = [
        np.arange(start, min(start + cfg.batch_size, cfg.repetitions))
        for start in range(0, cfg.repetitions, cfg.batch_size)
    ]
    if cfg.workers is None:
        parts = [_run_batch(cfg, factors, reps) for reps in batches]
    else:
        with ThreadPoolExecutor(max_workers=cfg.workers) as pool:
            parts = list(pool.map(lambda reps: _run_batch(cfg, factors, reps), batches))

    samples = np.vstack(parts)
    means = samples.mean(axis=0)
    fine_mean = float(means[0])

    coarse_means: Dict[float, float] = {}
    errors: Dict[float, float] = {}
    std_errors: Dict[float, float] = {}
    for col, k in enumerate(factors, start=1):
        h = k * cfg.fine_dt
        coarse_means[h] = float(means[col])
        errors[h] = abs(float(means[col]) - fine_mean)
        if cfg.repetitions > 1:
            diff = samples[:, col] - samples[:, 0]
            std_errors[h] = float(diff.std(ddof=1) / math.sqrt(cfg.repetitions))
        else:
            std_errors[h] = float("nan")
        LOGGER.debug("dt=%g mean=%.6f weak_error=%.6g", h, means[col], errors[h])

    return ConvergenceResult(
        fine_dt=cfg.fine_dt,
        horizon=cfg.horizon,
        repetitions=cfg.repetitions,
        fine_mean=fine_mean,
        coarse_means=coarse_means,
        errors=errors,
        standard_errors=std_errors,
        terminal_samples=samples if cfg.keep_samples else None,
    )


def estimate_weak_error(
    fine_dt: float,
    fine_steps: int,
    coarse_factors: Sequence[int],
    repetitions: int,
    **settings: Any,
) -> ConvergenceResult:
    """
    Estimate the Euler weak error against a fine Milstein reference.

    Extra settings (seed, s0, sigma0, xi0, mu, p, alpha, batch_size, workers,
    keep_samples) are passed to ConvergenceConfig; invalid values raise
    ConfigurationError.
    """
    return run_convergence(
        dict(
            fine_dt=fine_dt,
            fine_steps=fine_steps,
            coarse_factors=list(coarse_factors),
            repetitions=repetitions,
            **settings,
        )
    )


__all__ = ["ConvergenceResult", "run_convergence", "estimate_weak_error"]
