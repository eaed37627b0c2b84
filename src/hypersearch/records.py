"""Immutable records produced while a session runs."""
from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import datetime
from types import MappingProxyType
from typing import Any, Dict, Mapping, Tuple

from pydantic import BaseModel, ConfigDict, model_validator
from pydantic.alias_generators import to_camel


@dataclass(frozen=True)
class ParameterConfiguration:
    """One concrete assignment of a value to every parameter of a space."""

    id: str
    parameters: Mapping[str, Any]
    origin: str = "random"
    score: float | None = None
    metrics: Mapping[str, float] = field(default_factory=dict)
    resource_budget: float | None = None
    parent_ids: Tuple[str, ...] = ()
    stability: float | None = None
    generalization: float | None = None

    def with_score(self, score: float, metrics: Mapping[str, float] | None = None) -> "ParameterConfiguration":
        return replace(self, score=score, metrics=dict(metrics or {}))

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "parameters": dict(self.parameters),
            "origin": self.origin,
            "score": self.score,
            "metrics": dict(self.metrics),
        }
        if self.resource_budget is not None:
            payload["resource_budget"] = self.resource_budget
        if self.parent_ids:
            payload["parent_ids"] = list(self.parent_ids)
        if self.stability is not None:
            payload["stability"] = self.stability
        if self.generalization is not None:
            payload["generalization"] = self.generalization
        return payload


class ResourceUsage(BaseModel):
    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )

    cpu_time: float = 0.0
    memory_peak: float = 0.0
    gpu_utilization: float = 0.0
    network_io: float = 0.0
    disk_io: float = 0.0

    @model_validator(mode="after")
    def validate_numbers(self) -> "ResourceUsage":
        for name, value in self.model_dump().items():
            if not math.isfinite(value) or value < 0:
                raise ValueError(f"{name} must be a finite non-negative number")
        return self


@dataclass(frozen=True)
class EvaluationResult:
    """Reported outcome of one configuration. Never mutated after creation."""

    configuration_id: str
    parameters: Mapping[str, Any]
    primary_metric: float
    timestamp: datetime
    auxiliary_metrics: Mapping[str, float] = field(default_factory=dict)
    train_time: float = 0.0
    validation_time: float = 0.0
    resource_usage: ResourceUsage = field(default_factory=ResourceUsage)
    stability: float = 1.0

    def __post_init__(self) -> None:
        # read-only views over private copies
        object.__setattr__(self, "parameters", MappingProxyType(dict(self.parameters)))
        object.__setattr__(self, "auxiliary_metrics", MappingProxyType(dict(self.auxiliary_metrics)))

    @property
    def evaluation_time(self) -> float:
        return self.train_time + self.validation_time

    def to_payload(self) -> Dict[str, Any]:
        return {
            "configuration_id": self.configuration_id,
            "parameters": dict(self.parameters),
            "primary_metric": self.primary_metric,
            "auxiliary_metrics": dict(self.auxiliary_metrics),
            "train_time": self.train_time,
            "validation_time": self.validation_time,
            "resource_usage": self.resource_usage.model_dump(),
            "stability": self.stability,
            "timestamp": self.timestamp.isoformat(),
        }


__all__ = ["EvaluationResult", "ParameterConfiguration", "ResourceUsage"]
