from __future__ import annotations

import json
import yaml
from pathlib import Path

from pydantic import ValidationError

from stocksim.errors import ConfigurationError
from stocksim.runner.config.models import RunConfig


def load_config(path: str | Path) -> RunConfig:
    """
    Load a RunConfig from YAML or JSON.

    Parse and validation failures raise ConfigurationError.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file does not exist: {path}")

    text = path.read_text()

    suffix = path.suffix.lower()
    if suffix not in {".yaml", ".yml", ".json"}:
        raise ConfigurationError("Config path must be YAML or JSON.")

    try:
        if suffix == ".json":
            raw = json.loads(text)
        else:
            raw = yaml.safe_load(text)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Failed to parse config: {e}") from e

    if raw is None:
        raw = {}

    try:
        return RunConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid RunConfig: {e}") from e
