# src/stocksim/sde/simulators/simulator.py
from __future__ import annotations

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Iterator, Mapping, Optional, Tuple

import numpy as np
import pandas as pd

from stocksim.sde.integrators import rk4_step
from stocksim.sde.schemas import SimulationParameters, validate_parameters
from stocksim.sde.schemes import NumericalScheme, resolve_scheme
from stocksim.sde.streams import RandomStream, create_streams, derive_streams

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class PathSet:
    """
    Simulated paths, each matrix shaped (sample_count, n_steps).

    Column 0 holds the initial values. The arrays are read-only.
    """

    stock: np.ndarray
    vol: np.ndarray
    xi: np.ndarray
    dt: float

    def __post_init__(self):
        for arr in (self.stock, self.vol, self.xi):
            arr.setflags(write=False)

    @property
    def shape(self) -> Tuple[int, int]:
        return self.stock.shape

    @property
    def times(self) -> np.ndarray:
        return np.arange(self.stock.shape[1]) * self.dt

    def terminal(self) -> pd.DataFrame:
        """Last value of every path, one row per sample."""
        return pd.DataFrame(
            {
                "stock": self.stock[:, -1],
                "vol": self.vol[:, -1],
                "xi": self.xi[:, -1],
            }
        )

    def averages(self) -> pd.DataFrame:
        """Sample mean of stock, vol and xi at every grid time."""
        return pd.DataFrame(
            {
                "stock": self.stock.mean(axis=0),
                "vol": self.vol.mean(axis=0),
                "xi": self.xi.mean(axis=0),
            },
            index=pd.Index(self.times, name="t"),
        )


def iterate_states(
    scheme: NumericalScheme,
    dt: float,
    dw_stock: np.ndarray,
    dw_vol: np.ndarray,
    s0,
    vol0,
    xi0,
    mu: float,
    p: float,
    alpha: float,
) -> Iterator[Tuple[np.ndarray, np.ndarray, np.ndarray]]:
    """
    Advance (stock, vol, xi) one increment column at a time.

    dw_stock and dw_vol are Wiener increments shaped (n_rows, n_increments);
    rows are independent paths. Yields the state after every step. xi uses
    RK4 with vol taken at the start of the step.
    """
    n_rows = dw_stock.shape[0]
    stock = np.full(n_rows, s0, dtype=float)
    vol = np.full(n_rows, vol0, dtype=float)
    xi = np.full(n_rows, xi0, dtype=float)

    for j in range(dw_stock.shape[1]):
        stock_next = scheme.stock_step(stock, vol, mu, dt, dw_stock[:, j])
        vol_next = scheme.vol_step(vol, xi, p, dt, dw_vol[:, j])
        xi = rk4_step(vol, xi, dt, alpha)
        stock, vol = stock_next, vol_next
        yield stock, vol, xi


def _integrate(
    params: SimulationParameters,
    scheme: NumericalScheme,
    z_stock: np.ndarray,
    z_vol: np.ndarray,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    n_rows = z_stock.shape[0]
    n_steps = params.n_steps
    sqrt_dt = math.sqrt(params.dt)

    stock = np.empty((n_rows, n_steps), dtype=float)
    vol = np.empty((n_rows, n_steps), dtype=float)
    xi = np.empty((n_rows, n_steps), dtype=float)
    stock[:, 0] = params.s0
    vol[:, 0] = params.sigma0
    xi[:, 0] = params.xi0

    states = iterate_states(
        scheme,
        params.dt,
        z_stock * sqrt_dt,
        z_vol * sqrt_dt,
        params.s0,
        params.sigma0,
        params.xi0,
        params.mu,
        params.p,
        params.alpha,
    )
    for j, (s, v, x) in enumerate(states, start=1):
        stock[:, j] = s
        vol[:, j] = v
        xi[:, j] = x
    return stock, vol, xi


def simulate_paths(
    params: SimulationParameters,
    scheme: NumericalScheme,
    stream_a: RandomStream,
    stream_b: RandomStream,
) -> PathSet:
    """
    Simulate params.sample_count paths with the given scheme.

    stream_a drives the stock equation and stream_b the volatility. Each
    sample takes n_steps - 1 draws from each stream, sample after sample.
    """
    shape = (params.sample_count, params.n_steps - 1)
    z_stock = stream_a.draws(shape)
    z_vol = stream_b.draws(shape)
    stock, vol, xi = _integrate(params, scheme, z_stock, z_vol)
    return PathSet(stock=stock, vol=vol, xi=xi, dt=params.dt)


def _sample_noise(
    params: SimulationParameters, indices: np.ndarray
) -> Tuple[np.ndarray, np.ndarray]:
    n_inc = params.n_steps - 1
    z_stock = np.empty((indices.size, n_inc), dtype=float)
    z_vol = np.empty((indices.size, n_inc), dtype=float)
    for row, idx in enumerate(indices):
        a, b = derive_streams(params.seed, int(idx))
        z_stock[row] = a.draws(n_inc)
        z_vol[row] = b.draws(n_inc)
    return z_stock, z_vol


def simulate_paths_parallel(
    params: SimulationParameters,
    scheme: NumericalScheme,
    workers: Optional[int] = None,
    batch_size: int = 256,
) -> PathSet:
    """
    Simulate paths on a thread pool.

    Sample i draws from derive_streams(params.seed, i), so the output does
    not depend on the number of workers or on scheduling.
    """
    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")

    n = params.sample_count
    stock = np.empty((n, params.n_steps), dtype=float)
    vol = np.empty_like(stock)
    xi = np.empty_like(stock)

    batches = [
        np.arange(start, min(start + batch_size, n))
        for start in range(0, n, batch_size)
    ]

    def _job(indices: np.ndarray):
        z_stock, z_vol = _sample_noise(params, indices)
        return indices, _integrate(params, scheme, z_stock, z_vol)

    with ThreadPoolExecutor(max_workers=workers) as pool:
        for indices, (s, v, x) in pool.map(_job, batches):
            stock[indices] = s
            vol[indices] = v
            xi[indices] = x

    return PathSet(stock=stock, vol=vol, xi=xi, dt=params.dt)


def run_simulation(
    params: SimulationParameters | Mapping[str, Any],
    workers: Optional[int] = None,
) -> PathSet:
    """
    Validate, resolve the scheme, create the streams and simulate.

    With workers=None the two run streams (seed, seed + 1) are used; with a
    worker count, every sample gets its own derived stream pair.
    Configuration errors are raised before any stream exists.
    """
    params = validate_parameters(params)
    scheme = resolve_scheme(params.method)

    LOGGER.info(
        "Simulating %d paths x %d steps with %s (seed=%d)",
        params.sample_count,
        params.n_steps,
        scheme.method.value,
        params.seed,
    )

    if workers is None:
        stream_a, stream_b = create_streams(params.seed)
        paths = simulate_paths(params, scheme, stream_a, stream_b)
    else:
        paths = simulate_paths_parallel(params, scheme, workers=workers)

    n_negative = int(np.count_nonzero(np.any(paths.vol < 0.0, axis=1)))
    if n_negative:
        LOGGER.warning(
            "Volatility went negative on %d of %d paths", n_negative, params.sample_count
        )
    return paths


__all__ = [
    "PathSet",
    "iterate_states",
    "simulate_paths",
    "simulate_paths_parallel",
    "run_simulation",
]
