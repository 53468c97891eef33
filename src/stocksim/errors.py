# src/stocksim/errors.py
from __future__ import annotations


class ConfigurationError(ValueError):
    """Raised when simulation or convergence settings are invalid."""

    pass
