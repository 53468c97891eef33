# src/stocksim/sde/schemes.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict

from stocksim.errors import ConfigurationError
from stocksim.sde.integrators import (
    euler_maruyama_step,
    milstein_step,
    platen_step,
    platen_support,
)
from stocksim.sde.schemas import Method

# stock_step(s, vol, mu, dt, dW) and vol_step(vol, xi, p, dt, dW')
StepFn = Callable[..., object]


# ---------------------------------------------------------------------
# Euler-Maruyama
# ---------------------------------------------------------------------


def euler_stock(s, vol, mu: float, dt: float, dW):
    return euler_maruyama_step(s, mu * s, vol * s, dt, dW)


def euler_vol(vol, xi, p: float, dt: float, dW):
    return euler_maruyama_step(vol, -(vol - xi), p * vol, dt, dW)


# ---------------------------------------------------------------------
# Milstein
# ---------------------------------------------------------------------


def milstein_stock(s, vol, mu: float, dt: float, dW):
    return milstein_step(s, mu * s, vol * s, vol, dt, dW)


def milstein_vol(vol, xi, p: float, dt: float, dW):
    return milstein_step(vol, -(vol - xi), p * vol, p, dt, dW)


# ---------------------------------------------------------------------
# Stochastic Runge-Kutta (Platen)
# ---------------------------------------------------------------------


def rk_stock(s, vol, mu: float, dt: float, dW):
    drift = mu * s
    diffusion = vol * s
    support = platen_support(s, drift, diffusion, dt)
    return platen_step(s, drift, diffusion, vol * support, dt, dW)


def rk_vol(vol, xi, p: float, dt: float, dW):
    drift = -(vol - xi)
    diffusion = p * vol
    support = platen_support(vol, drift, diffusion, dt)
    return platen_step(vol, drift, diffusion, p * support, dt, dW)


@dataclass(frozen=True)
class NumericalScheme:
    """Step functions for the stock and volatility SDEs of one method."""

    method: Method
    stock_step: StepFn
    vol_step: StepFn


SCHEMES: Dict[Method, NumericalScheme] = {
    Method.EULER: NumericalScheme(Method.EULER, euler_stock, euler_vol),
    Method.MILSTEIN: NumericalScheme(Method.MILSTEIN, milstein_stock, milstein_vol),
    Method.RK: NumericalScheme(Method.RK, rk_stock, rk_vol),
}


def resolve_scheme(method: Method | str) -> NumericalScheme:
    """
    Look up the scheme for a method name or Method.

    Raises ConfigurationError for anything other than euler, milstein or rk.
    """
    if not isinstance(method, Method):
        try:
            method = Method(str(method).strip().lower())
        except ValueError:
            raise ConfigurationError(
                f"Unknown method '{method}'. "
                f"Available: {[m.value for m in Method]}"
            ) from None
    return SCHEMES[method]


__all__ = [
    "NumericalScheme",
    "SCHEMES",
    "resolve_scheme",
    "euler_stock",
    "euler_vol",
    "milstein_stock",
    "milstein_vol",
    "rk_stock",
    "rk_vol",
]
