"""Engine settings schema and loading."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .errors import ConfigurationError

SETTINGS_ENV_VAR = "HYPERSEARCH_CONFIG"


class BootstrapSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    max_suggestions: int = 5
    fraction: float = 0.1

    @model_validator(mode="after")
    def validate_numbers(self) -> "BootstrapSettings":
        if self.max_suggestions < 0:
            raise ValueError("bootstrap.max_suggestions must be non-negative")
        if not 0.0 <= self.fraction <= 1.0:
            raise ValueError("bootstrap.fraction must be between 0 and 1")
        return self


class ConvergenceSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    window: int = 10
    stop_threshold: float = 0.95
    plateau_window: int = 10
    improvement_epsilon: float = 1e-3
    early_stop_window: int = 5
    early_stop_confidence: float = 0.8
    oscillation_ratio: float = 0.7

    @model_validator(mode="after")
    def validate_numbers(self) -> "ConvergenceSettings":
        if self.window < 2:
            raise ValueError("convergence.window must be at least 2")
        if self.plateau_window <= 0:
            raise ValueError("convergence.plateau_window must be positive")
        if self.early_stop_window <= 0:
            raise ValueError("convergence.early_stop_window must be positive")
        if not 0.0 <= self.stop_threshold <= 1.0:
            raise ValueError("convergence.stop_threshold must be between 0 and 1")
        if self.improvement_epsilon < 0:
            raise ValueError("convergence.improvement_epsilon must be non-negative")
        if not 0.0 <= self.early_stop_confidence <= 1.0:
            raise ValueError("convergence.early_stop_confidence must be between 0 and 1")
        if not 0.0 < self.oscillation_ratio <= 1.0:
            raise ValueError("convergence.oscillation_ratio must be in (0, 1]")
        return self


class ExplorationSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    initial_rate: float = 0.8
    decay: float = 2.0

    @model_validator(mode="after")
    def validate_numbers(self) -> "ExplorationSettings":
        if not 0.0 <= self.initial_rate <= 1.0:
            raise ValueError("exploration.initial_rate must be between 0 and 1")
        if self.decay < 0:
            raise ValueError("exploration.decay must be non-negative")
        return self


class StrategyDefaults(BaseModel):
    model_config = ConfigDict(extra="forbid")

    mutation_rate: float = 0.1
    perturbation_scale: float = 0.1
    warm_start_top_k: int = 5

    @model_validator(mode="after")
    def validate_numbers(self) -> "StrategyDefaults":
        if not 0.0 <= self.mutation_rate <= 1.0:
            raise ValueError("strategies.mutation_rate must be between 0 and 1")
        if self.perturbation_scale < 0:
            raise ValueError("strategies.perturbation_scale must be non-negative")
        if self.warm_start_top_k <= 0:
            raise ValueError("strategies.warm_start_top_k must be positive")
        return self


class EngineSettings(BaseModel):
    """Tunable constants of the engine; defaults reproduce the documented behaviour."""

    model_config = ConfigDict(extra="forbid")

    bootstrap: BootstrapSettings = Field(default_factory=BootstrapSettings)
    convergence: ConvergenceSettings = Field(default_factory=ConvergenceSettings)
    exploration: ExplorationSettings = Field(default_factory=ExplorationSettings)
    strategies: StrategyDefaults = Field(default_factory=StrategyDefaults)
    importance_increment: float = 0.1
    seconds_per_evaluation: float = 300.0
    log_level: str = "INFO"

    @model_validator(mode="after")
    def validate_all(self) -> "EngineSettings":
        if self.importance_increment <= 0:
            raise ValueError("importance_increment must be positive")
        if self.seconds_per_evaluation <= 0:
            raise ValueError("seconds_per_evaluation must be positive")
        level = self.log_level.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError("log_level must be a standard logging level name")
        self.log_level = level
        return self


def resolve_settings_path(path: Path | str | None = None) -> Path | None:
    """Return the settings file to load, preferring the explicit argument."""

    if path is not None:
        return Path(path)
    env_path = os.environ.get(SETTINGS_ENV_VAR)
    if env_path:
        return Path(env_path)
    return None


def load_settings(path: Path | str | None = None) -> EngineSettings:
    """Load settings from YAML, falling back to defaults when no file is configured."""

    settings_path = resolve_settings_path(path)
    if settings_path is None:
        return EngineSettings()
    if not settings_path.exists():
        raise ConfigurationError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh)
    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        raise ConfigurationError("Settings root must be a mapping (YAML dictionary).")
    return settings_from_mapping(data)


def settings_from_mapping(data: Mapping[str, Any]) -> EngineSettings:
    try:
        return EngineSettings.model_validate(dict(data))
    except ValidationError as exc:
        raise ConfigurationError(
            "Settings validation failed:\n" + "\n".join(format_validation_errors(exc))
        ) from exc


def format_validation_errors(exc: ValidationError, *, prefix: str = "") -> list[str]:
    """Flatten a pydantic error into ``location: message`` lines."""

    details = []
    for error in exc.errors(include_url=False):
        location = ".".join(str(loc) for loc in error["loc"])
        if prefix:
            location = f"{prefix}.{location}" if location else prefix
        details.append(f"{location or '<root>'}: {error['msg']}")
    return details


__all__ = [
    "EngineSettings",
    "SETTINGS_ENV_VAR",
    "format_validation_errors",
    "load_settings",
    "resolve_settings_path",
    "settings_from_mapping",
]
