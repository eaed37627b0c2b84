"""Session-level knobs and how they adapt to progress."""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, model_validator
from pydantic.alias_generators import to_camel

from .config import ExplorationSettings
from .errors import InvalidConfiguration

ADAPTATION_GOALS = ("speed", "quality", "efficiency", "robustness")


class AdaptiveSettings(BaseModel):
    model_config = ConfigDict(
        extra="forbid",
        populate_by_name=True,
        alias_generator=to_camel,
        validate_assignment=True,
    )

    exploration_rate: float = 0.8
    convergence_threshold: float = 0.01
    diversity_maintenance: bool = True
    parallelism: int = 1
    resource_adaptation: bool = True

    @model_validator(mode="after")
    def validate_numbers(self) -> "AdaptiveSettings":
        if not 0.0 <= self.exploration_rate <= 1.0:
            raise ValueError("exploration_rate must be between 0 and 1")
        if self.convergence_threshold < 0:
            raise ValueError("convergence_threshold must be non-negative")
        if self.parallelism < 1:
            raise ValueError("parallelism must be at least 1")
        return self


@dataclass(frozen=True)
class PerformanceAnalysis:
    convergence_speed: float
    exploration_efficiency: float
    resource_utilization: float
    quality_improvement: float

    def to_payload(self) -> Dict[str, float]:
        return {
            "convergence_speed": self.convergence_speed,
            "exploration_efficiency": self.exploration_efficiency,
            "resource_utilization": self.resource_utilization,
            "quality_improvement": self.quality_improvement,
        }


@dataclass(frozen=True)
class StrategyOptimization:
    type: str
    description: str
    parameters: Dict[str, Any] = field(default_factory=dict)
    expected_improvement: float = 0.0

    def to_payload(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "description": self.description,
            "parameters": dict(self.parameters),
            "expected_improvement": self.expected_improvement,
        }


class AdaptiveScheduler:
    """Owns a session's :class:`AdaptiveSettings`.

    The exploration rate follows ``initial * scale * exp(-decay * done / total)``;
    only :meth:`apply` changes ``scale``, so for a fixed total the rate never
    rises as evaluations accumulate.
    """

    def __init__(
        self,
        adaptive: AdaptiveSettings,
        exploration: ExplorationSettings | None = None,
    ) -> None:
        self.settings = adaptive
        self.exploration = exploration or ExplorationSettings()
        self.initial_rate = adaptive.exploration_rate
        self.scale = 1.0

    def exploration_rate(self, completed: int, total: int) -> float:
        fraction = completed / total if total > 0 else 1.0
        rate = self.initial_rate * self.scale * math.exp(-self.exploration.decay * fraction)
        return min(1.0, max(0.0, rate))

    def update(self, completed: int, total: int) -> AdaptiveSettings:
        self.settings.exploration_rate = self.exploration_rate(completed, total)
        return self.settings

    def plan(
        self,
        goal: str,
        analysis: PerformanceAnalysis,
        *,
        total_evaluations: int,
        time_per_evaluation: float,
        oscillating: bool,
    ) -> List[StrategyOptimization]:
        """Propose adjustments that serve ``goal``; nothing is applied here."""

        if goal not in ADAPTATION_GOALS:
            raise InvalidConfiguration(
                [f"adaptation_goal must be one of {', '.join(ADAPTATION_GOALS)}"]
            )

        plans: List[StrategyOptimization] = []
        rate = self.settings.exploration_rate
        if goal == "speed" and analysis.convergence_speed < 0.5:
            plans.append(
                StrategyOptimization(
                    type="increase_exploration",
                    description="Raise the exploration rate to escape slow progress",
                    parameters={"exploration_rate": min(1.0, rate * 1.2), "scale_factor": 1.2},
                    expected_improvement=0.1,
                )
            )
        elif goal == "quality":
            plans.append(
                StrategyOptimization(
                    type="extend_search",
                    description="Extend the evaluation budget by half",
                    parameters={"max_evaluations": math.ceil(total_evaluations * 1.5)},
                    expected_improvement=0.05,
                )
            )
        elif goal == "efficiency":
            if analysis.exploration_efficiency < 0.8:
                plans.append(
                    StrategyOptimization(
                        type="maintain_diversity",
                        description="Avoid re-evaluating duplicate configurations",
                        parameters={"diversity_maintenance": True},
                        expected_improvement=0.03,
                    )
                )
            if time_per_evaluation > 600 and not self.settings.resource_adaptation:
                plans.append(
                    StrategyOptimization(
                        type="enable_resource_adaptation",
                        description="Adapt resource allocation for slow evaluations",
                        parameters={"resource_adaptation": True},
                        expected_improvement=0.02,
                    )
                )
        elif goal == "robustness" and oscillating:
            plans.append(
                StrategyOptimization(
                    type="decrease_exploration",
                    description="Lower the exploration rate to damp oscillating scores",
                    parameters={"exploration_rate": rate * 0.8, "scale_factor": 0.8},
                    expected_improvement=0.02,
                )
            )
        return plans

    def apply(self, optimization: StrategyOptimization) -> bool:
        """Apply an adjustment owned by the scheduler; False if it is not one."""

        params = optimization.parameters
        if optimization.type in {"increase_exploration", "decrease_exploration"}:
            self.scale *= float(params["scale_factor"])
            self.settings.exploration_rate = min(1.0, max(0.0, float(params["exploration_rate"])))
            return True
        if optimization.type == "maintain_diversity":
            self.settings.diversity_maintenance = True
            return True
        if optimization.type == "enable_resource_adaptation":
            self.settings.resource_adaptation = True
            return True
        return False


def analyse_performance(
    *,
    convergence_indicator: float,
    completed: int,
    total: int,
    elapsed: float,
    time_per_evaluation: float,
    exploration_efficiency: float,
    best_score: float | None,
    average_score: float,
) -> PerformanceAnalysis:
    progress = completed / total if total > 0 else 0.0
    busy = completed * time_per_evaluation
    return PerformanceAnalysis(
        convergence_speed=convergence_indicator / progress if progress > 0 else 0.0,
        exploration_efficiency=exploration_efficiency,
        resource_utilization=elapsed / busy if busy > 0 else 0.0,
        quality_improvement=(best_score - average_score) if best_score is not None else 0.0,
    )


__all__ = [
    "ADAPTATION_GOALS",
    "AdaptiveScheduler",
    "AdaptiveSettings",
    "PerformanceAnalysis",
    "StrategyOptimization",
    "analyse_performance",
]
