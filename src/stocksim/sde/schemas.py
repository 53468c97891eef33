# src/stocksim/sde/schemas.py
from __future__ import annotations

import math
from enum import Enum
from typing import Any, List, Mapping, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from stocksim.errors import ConfigurationError


class Method(str, Enum):
    """Numerical scheme used for the stock and volatility SDEs."""

    EULER = "euler"
    MILSTEIN = "milstein"
    RK = "rk"


def _lower_method(value: Any) -> Any:
    if isinstance(value, str) and not isinstance(value, Method):
        return value.strip().lower()
    return value


def step_count(horizon: float, dt: float) -> int:
    """Number of grid points, horizon / dt rounded half away from zero."""
    ratio = horizon / dt
    if not math.isfinite(ratio):
        raise ValueError(f"horizon / dt is not finite (horizon={horizon}, dt={dt})")
    return int(math.floor(ratio + 0.5))


class SimulationParameters(BaseModel):
    """
    Immutable run configuration for the stock / volatility / relaxation model.

        dS     = mu S dt + sigma S dW
        dsigma = -(sigma - xi) dt + p sigma dW'
        dxi    = (sigma - xi) / alpha dt

    Paths hold n_steps = round(horizon / dt) points including t=0.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    seed: int = 0
    sample_count: int = Field(..., gt=0, description="Number of sample paths.")
    dt: float = Field(..., gt=0.0, allow_inf_nan=False, description="Step size.")
    sigma0: float = Field(..., description="Initial volatility.")
    s0: float = Field(..., description="Initial stock price.")
    xi0: float = Field(..., description="Initial relaxation variable.")
    mu: float = Field(..., description="Stock drift.")
    p: float = Field(..., description="Volatility of volatility.")
    alpha: float = Field(
        ..., gt=0.0, allow_inf_nan=False, description="Relaxation time of xi."
    )
    horizon: float = Field(
        ..., gt=0.0, allow_inf_nan=False, description="Simulated time span T."
    )
    method: Method = Method.EULER

    @field_validator("method", mode="before")
    @classmethod
    def _normalise_method(cls, value: Any) -> Any:
        return _lower_method(value)

    @model_validator(mode="after")
    def _check_grid(self) -> "SimulationParameters":
        if step_count(self.horizon, self.dt) < 1:
            raise ValueError(
                f"horizon={self.horizon} and dt={self.dt} give fewer than one step"
            )
        return self

    @property
    def n_steps(self) -> int:
        return step_count(self.horizon, self.dt)


class ConvergenceConfig(BaseModel):
    """
    Weak-convergence study settings.

    A Milstein reference path on fine_dt with fine_steps increments is compared
    against Euler paths on k * fine_dt for each k in coarse_factors, all driven
    by the same Wiener increments. Model defaults follow the classic study
    (S0=50, sigma0=xi0=0.2, mu=0.1, p=1, alpha=1).
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    fine_dt: float = Field(0.0001, gt=0.0, allow_inf_nan=False)
    fine_steps: int = Field(32000, ge=1)
    coarse_factors: List[int] = Field(default_factory=lambda: [32, 64, 128, 256])
    repetitions: int = Field(10000, ge=1)
    seed: int = 0

    s0: float = 50.0
    sigma0: float = 0.2
    xi0: float = 0.2
    mu: float = 0.1
    p: float = 1.0
    alpha: float = Field(1.0, gt=0.0, allow_inf_nan=False)

    batch_size: int = Field(128, ge=1, description="Repetitions advanced together.")
    workers: Optional[int] = Field(default=None, ge=1)
    keep_samples: bool = False

    @model_validator(mode="after")
    def _check_factors(self) -> "ConvergenceConfig":
        if not math.isfinite(self.horizon):
            raise ValueError("fine_steps * fine_dt is not finite")
        if not self.coarse_factors:
            raise ValueError("coarse_factors must not be empty")
        for k in self.coarse_factors:
            if k < 1:
                raise ValueError(f"coarse factor must be >= 1 (got {k})")
            if self.fine_steps % k != 0:
                raise ValueError(
                    f"fine_steps={self.fine_steps} is not a multiple of coarse factor {k}"
                )
        if len(set(self.coarse_factors)) != len(self.coarse_factors):
            raise ValueError("coarse_factors must be distinct")
        return self

    @property
    def horizon(self) -> float:
        return self.fine_steps * self.fine_dt


def validate_parameters(
    params: SimulationParameters | Mapping[str, Any],
) -> SimulationParameters:
    """Coerce a mapping into SimulationParameters, raising ConfigurationError."""
    if isinstance(params, SimulationParameters):
        return params
    try:
        return SimulationParameters.model_validate(dict(params))
    except ValidationError as e:
        raise ConfigurationError(f"Invalid simulation parameters: {e}") from e


def validate_convergence(
    cfg: ConvergenceConfig | Mapping[str, Any],
) -> ConvergenceConfig:
    if isinstance(cfg, ConvergenceConfig):
        return cfg
    try:
        return ConvergenceConfig.model_validate(dict(cfg))
    except ValidationError as e:
        raise ConfigurationError(f"Invalid convergence settings: {e}") from e


__all__ = [
    "Method",
    "SimulationParameters",
    "ConvergenceConfig",
    "step_count",
    "validate_parameters",
    "validate_convergence",
]
