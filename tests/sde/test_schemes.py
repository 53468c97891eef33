# tests/sde/test_schemes.py
import math

import numpy as np
import pytest

from stocksim.errors import ConfigurationError
from stocksim.sde.schemas import Method
from stocksim.sde.schemes import (
    SCHEMES,
    euler_stock,
    euler_vol,
    milstein_stock,
    milstein_vol,
    resolve_scheme,
    rk_stock,
    rk_vol,
)


@pytest.mark.parametrize(
    "name, expected",
    [
        ("euler", Method.EULER),
        ("Milstein", Method.MILSTEIN),
        (" RK ", Method.RK),
        (Method.MILSTEIN, Method.MILSTEIN),
    ],
)
def test_resolve_scheme(name, expected):
    scheme = resolve_scheme(name)
    assert scheme.method is expected
    assert scheme is SCHEMES[expected]


@pytest.mark.parametrize("name", ["heun", "", "eulerx", "runge-kutta"])
def test_resolve_unknown_method_raises(name):
    with pytest.raises(ConfigurationError):
        resolve_scheme(name)


def test_euler_formulas():
    s, vol, mu, dt, dw = 50.0, 0.2, 0.1, 0.01, 0.03
    assert math.isclose(euler_stock(s, vol, mu, dt, dw), s + mu * s * dt + vol * s * dw)

    xi, p = 0.25, 1.0
    assert math.isclose(euler_vol(vol, xi, p, dt, dw), vol - (vol - xi) * dt + p * vol * dw)


def test_milstein_formulas():
    s, vol, mu, dt, dw = 50.0, 0.2, 0.1, 0.01, 0.03
    expected = s + mu * s * dt + vol * s * dw + 0.5 * vol**2 * s * (dw**2 - dt)
    assert math.isclose(milstein_stock(s, vol, mu, dt, dw), expected)

    xi, p = 0.25, 0.8
    expected = vol - (vol - xi) * dt + p * vol * dw + 0.5 * p**2 * vol * (dw**2 - dt)
    assert math.isclose(milstein_vol(vol, xi, p, dt, dw), expected)


def test_rk_close_to_milstein_for_small_steps():
    # For linear diffusion coefficients Platen agrees with Milstein up to O(dt^1.5)
    s, vol, mu, dt = 50.0, 0.2, 0.1, 1e-6
    dw = 0.7 * math.sqrt(dt)
    assert math.isclose(rk_stock(s, vol, mu, dt, dw), milstein_stock(s, vol, mu, dt, dw), rel_tol=1e-9)
    assert math.isclose(rk_vol(vol, 0.25, 1.0, dt, dw), milstein_vol(vol, 0.25, 1.0, dt, dw), rel_tol=1e-9)


@pytest.mark.parametrize("method", [Method.MILSTEIN, Method.RK])
def test_zero_diffusion_reduces_to_euler(method):
    rng = np.random.default_rng(0)
    s = 50.0 + rng.random(10)
    xi = rng.random(10)
    dw = rng.normal(size=10) * 0.1
    vol = np.zeros(10)
    scheme = resolve_scheme(method)
    euler = resolve_scheme(Method.EULER)

    assert np.array_equal(
        scheme.stock_step(s, vol, 0.1, 0.01, dw), euler.stock_step(s, vol, 0.1, 0.01, dw)
    )
    vol = rng.random(10)
    assert np.array_equal(
        scheme.vol_step(vol, xi, 0.0, 0.01, dw), euler.vol_step(vol, xi, 0.0, 0.01, dw)
    )


def test_rk_drift_only_without_diffusion():
    s, mu, dt = 50.0, 0.1, 0.01
    assert rk_stock(s, 0.0, mu, dt, 0.0) == s + mu * s * dt
