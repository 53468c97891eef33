from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, ConfigDict

from stocksim.sde.schemas import ConvergenceConfig, SimulationParameters


# ============================================================
# Save Settings
# ============================================================


class SaveSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    directory: Optional[str] = None
    save_paths: bool = True
    save_averages: bool = True
    save_convergence: bool = True


# ============================================================
# Top-level RunConfig
# ============================================================


class RunConfig(BaseModel):
    """
    A run file holds a path simulation, a convergence study, or both.
    """

    model_config = ConfigDict(extra="forbid")

    name: str = "default_run"

    simulation: Optional[SimulationParameters] = None
    convergence: Optional[ConvergenceConfig] = None
    workers: Optional[int] = Field(
        default=None,
        ge=1,
        description="Thread count for path simulation; None runs single-threaded.",
    )

    save: SaveSettings = Field(default_factory=SaveSettings)
