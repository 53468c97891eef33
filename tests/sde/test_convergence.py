# tests/sde/test_convergence.py
import math

import numpy as np
import pytest

from stocksim.errors import ConfigurationError
from stocksim.sde.convergence import ConvergenceResult, estimate_weak_error, run_convergence
from stocksim.sde.schemas import ConvergenceConfig


def _study(**overrides):
    # Scaled-down study: the classic configuration (ConvergenceConfig defaults,
    # mu=0.1, p=1, 10000 x 32000 steps) is the examples/weak_convergence.yaml run.
    # Mild vol-of-vol and a large drift make the Euler bias S0 e^{mu T} mu^2 T dt / 2
    # dominate the Monte-Carlo noise of the common-random-number estimator.
    settings = dict(
        fine_dt=1.0 / 1024.0,
        fine_steps=1024,
        coarse_factors=[32, 64, 128, 256],
        repetitions=400,
        seed=7,
        s0=50.0,
        sigma0=0.2,
        xi0=0.2,
        mu=1.0,
        p=0.2,
        alpha=1.0,
        batch_size=200,
    )
    settings.update(overrides)
    return settings


def test_weak_error_grows_with_step_size():
    settings = _study()
    result = estimate_weak_error(
        settings.pop("fine_dt"),
        settings.pop("fine_steps"),
        settings.pop("coarse_factors"),
        settings.pop("repetitions"),
        **settings,
    )
    assert isinstance(result, ConvergenceResult)
    steps = result.step_sizes
    assert steps == [32 / 1024, 64 / 1024, 128 / 1024, 256 / 1024]
    errors = [result.errors[h] for h in steps]
    assert all(e >= 0.0 for e in errors)
    assert errors == sorted(errors)
    assert math.isclose(result.horizon, 1.0)

    # E[S_T] under Euler is S0 (1 + mu h)^(T/h) exactly; the estimate must agree
    fine_exact = 50.0 * (1.0 + 1.0 / 1024.0) ** 1024
    for h in steps:
        exact = 50.0 * (1.0 + h) ** round(1.0 / h) - fine_exact
        bias = result.coarse_means[h] - result.fine_mean
        assert abs(bias - exact) < 6.0 * result.standard_errors[h] + 1e-6


def test_observed_order_close_to_one():
    result = run_convergence(_study())
    assert 0.7 < result.observed_order() < 1.3


def test_deterministic_model_gives_analytic_errors():
    # zero diffusion: every path is S0 (1 + mu dt)^n for its own grid
    result = run_convergence(
        dict(
            fine_dt=0.01,
            fine_steps=64,
            coarse_factors=[8, 2, 4],
            repetitions=3,
            sigma0=0.0,
            xi0=0.0,
            p=0.0,
            mu=0.5,
            s0=10.0,
        )
    )
    fine = 10.0 * (1.0 + 0.5 * 0.01) ** 64
    assert math.isclose(result.fine_mean, fine, rel_tol=1e-12)
    for k in (2, 4, 8):
        h = k * 0.01
        coarse = 10.0 * (1.0 + 0.5 * h) ** (64 // k)
        assert math.isclose(result.errors[h], abs(coarse - fine), rel_tol=1e-9)
        assert result.standard_errors[h] < 1e-9


def test_coarse_levels_share_the_fine_noise():
    # factor 1 feeds the coarse Euler path the fine increments themselves, so it
    # only differs from the Milstein reference by the Ito correction terms
    result = run_convergence(
        _study(coarse_factors=[1], repetitions=50, keep_samples=True, p=0.0)
    )
    samples = result.terminal_samples
    assert samples.shape == (50, 2)
    assert not np.array_equal(samples[:, 0], samples[:, 1])
    assert np.max(np.abs(samples[:, 0] - samples[:, 1])) < 1.0
    # terminal values themselves spread far wider than the scheme difference
    assert samples[:, 0].std() > 10.0


def test_results_independent_of_workers_and_batching():
    base = _study(repetitions=30, fine_steps=256, coarse_factors=[16, 32], keep_samples=True)
    serial = run_convergence(dict(base, batch_size=30))
    threaded = run_convergence(dict(base, batch_size=30, workers=3))
    np.testing.assert_array_equal(serial.terminal_samples, threaded.terminal_samples)

    small_batches = run_convergence(dict(base, batch_size=4, workers=2))
    np.testing.assert_allclose(
        serial.terminal_samples, small_batches.terminal_samples, rtol=1e-12
    )
    assert serial.errors.keys() == small_batches.errors.keys()


def test_samples_dropped_unless_requested():
    result = run_convergence(_study(repetitions=10, fine_steps=256, coarse_factors=[32]))
    assert result.terminal_samples is None


def test_frames_and_intervals():
    result = run_convergence(_study(repetitions=60, fine_steps=512, coarse_factors=[64, 32]))
    frame = result.to_frame()
    assert list(frame.columns) == ["mean", "weak_error", "std_error"]
    assert frame.index.name == "dt"
    assert list(frame.index) == sorted(frame.index)

    ci = result.confidence_interval(0.95)
    assert (ci["lower"] <= ci["upper"]).all()
    with pytest.raises(ValueError):
        result.confidence_interval(1.5)


def test_single_repetition_has_nan_standard_error():
    result = run_convergence(_study(repetitions=1, fine_steps=256, coarse_factors=[32]))
    assert math.isnan(result.standard_errors[32 / 1024])
    assert result.errors[32 / 1024] >= 0.0


@pytest.mark.parametrize(
    "overrides",
    [
        {"coarse_factors": [3]},
        {"coarse_factors": [0]},
        {"coarse_factors": []},
        {"coarse_factors": [32, 32]},
        {"fine_dt": 0.0},
        {"fine_dt": float("inf")},
        {"fine_dt": float("nan")},
        {"fine_dt": 1e308, "fine_steps": 1024},
        {"alpha": float("inf")},
        {"repetitions": 0},
        {"alpha": 0.0},
        {"unknown": 1},
    ],
)
def test_invalid_settings_raise(overrides):
    with pytest.raises(ConfigurationError):
        run_convergence(_study(**overrides))


def test_default_settings_follow_classic_study():
    cfg = ConvergenceConfig()
    assert cfg.coarse_factors == [32, 64, 128, 256]
    assert math.isclose(cfg.horizon, 3.2)
    assert (cfg.s0, cfg.sigma0, cfg.xi0, cfg.mu, cfg.p, cfg.alpha) == (
        50.0,
        0.2,
        0.2,
        0.1,
        1.0,
        1.0,
    )
