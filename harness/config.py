"""Simulator configuration with YAML support."""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import Field

from simulator.schemas import BaseSchema, ResourceBudget, SimulatorPolicy


class SimulatorConfig(BaseSchema):
    """Budget, policy and logging settings for a simulator session."""

    budget: ResourceBudget = Field(default_factory=ResourceBudget)
    policy: SimulatorPolicy = Field(default_factory=SimulatorPolicy)
    log_level: str = "WARNING"

    def with_budget_overrides(self, **overrides: object) -> SimulatorConfig:
        """Return a copy whose budget has the non-None overrides applied."""
        changes = {key: value for key, value in overrides.items() if value is not None}
        if not changes:
            return self
        budget = ResourceBudget.model_validate({**self.budget.model_dump(), **changes})
        return self.model_copy(update={"budget": budget})


def load_config(yaml_path: str | Path) -> SimulatorConfig:
    """Load simulator configuration from YAML file.

    Args:
        yaml_path: Path to YAML configuration file

    Returns:
        SimulatorConfig instance

    Raises:
        FileNotFoundError: If YAML file doesn't exist
        ValueError: If YAML is invalid or has invalid fields
    """
    yaml_path = Path(yaml_path)

    if not yaml_path.exists():
        raise FileNotFoundError(f"Config file not found: {yaml_path}")

    with open(yaml_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if not data or not isinstance(data, dict):
        raise ValueError(f"Empty or invalid YAML file: {yaml_path}")

    try:
        return SimulatorConfig.from_dict(data)
    except Exception as e:
        raise ValueError(f"Invalid configuration in {yaml_path}: {e}") from e


def save_config(config: SimulatorConfig, yaml_path: str | Path) -> None:
    """Save simulator configuration to YAML file.

    Args:
        config: SimulatorConfig to save
        yaml_path: Path where to save YAML file
    """
    yaml_path = Path(yaml_path)
    yaml_path.parent.mkdir(parents=True, exist_ok=True)

    with open(yaml_path, "w") as f:
        f.write(dump_config(config))


def dump_config(config: SimulatorConfig) -> str:
    return yaml.dump(config.model_dump(mode="json"), default_flow_style=False, sort_keys=False, indent=2)
