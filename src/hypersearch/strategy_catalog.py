"""Catalog of search strategies, their profiles and the recommendation heuristic."""
from __future__ import annotations

import re
import warnings
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping

from .config import StrategyDefaults
from .errors import StrategyNotFound
from .space import ComplexityEstimate, SearchSpace


class StrategyKind(str, Enum):
    RANDOM = "random"
    PERTURBATION = "perturbation"
    GENETIC = "genetic"
    RESOURCE_STAGED = "resource_staged"


STRATEGY_ALIASES: dict[str, StrategyKind] = {
    "random_search": StrategyKind.RANDOM,
    "bayesian": StrategyKind.PERTURBATION,
    "bayesian_optimization": StrategyKind.PERTURBATION,
    "evolutionary": StrategyKind.GENETIC,
    "genetic_algorithm": StrategyKind.GENETIC,
    "hyperband": StrategyKind.RESOURCE_STAGED,
    "successive_halving": StrategyKind.RESOURCE_STAGED,
    "resource-staged": StrategyKind.RESOURCE_STAGED,
}


@dataclass(frozen=True)
class Suitability:
    parameter_count_min: int
    parameter_count_max: int
    evaluation_cost: str
    noise_level: str
    multi_objective: bool
    parallelizable: bool

    def to_payload(self) -> Dict[str, Any]:
        return {
            "parameter_count": {
                "min": self.parameter_count_min,
                "max": self.parameter_count_max,
            },
            "evaluation_cost": self.evaluation_cost,
            "noise_level": self.noise_level,
            "multi_objective": self.multi_objective,
            "parallelizable": self.parallelizable,
        }


@dataclass(frozen=True)
class ExpectedPerformance:
    convergence_speed: float
    final_quality: float
    robustness: float
    resource_efficiency: float
    scalability: float

    def to_payload(self) -> Dict[str, float]:
        return {
            "convergence_speed": self.convergence_speed,
            "final_quality": self.final_quality,
            "robustness": self.robustness,
            "resource_efficiency": self.resource_efficiency,
            "scalability": self.scalability,
        }


@dataclass(frozen=True)
class StrategyProfile:
    """Static description of a strategy used for ranking and reporting."""

    kind: StrategyKind
    name: str
    suitability: Suitability
    performance: ExpectedPerformance
    default_parameters: Mapping[str, Any] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "id": self.kind.value,
            "name": self.name,
            "parameters": dict(self.default_parameters),
            "suitability": self.suitability.to_payload(),
            "expected_performance": self.performance.to_payload(),
        }


PROFILES: dict[StrategyKind, StrategyProfile] = {
    StrategyKind.RANDOM: StrategyProfile(
        kind=StrategyKind.RANDOM,
        name="Random Search",
        suitability=Suitability(1, 1000, "low", "high", False, True),
        performance=ExpectedPerformance(0.5, 0.6, 0.9, 0.5, 1.0),
    ),
    StrategyKind.PERTURBATION: StrategyProfile(
        kind=StrategyKind.PERTURBATION,
        name="Perturbation-Guided Search",
        suitability=Suitability(2, 50, "high", "medium", False, True),
        performance=ExpectedPerformance(0.8, 0.9, 0.8, 0.9, 0.7),
        default_parameters={"perturbation_scale": 0.1},
    ),
    StrategyKind.GENETIC: StrategyProfile(
        kind=StrategyKind.GENETIC,
        name="Genetic Algorithm",
        suitability=Suitability(5, 200, "medium", "high", True, True),
        performance=ExpectedPerformance(0.6, 0.8, 0.9, 0.6, 0.9),
        default_parameters={"mutation_rate": 0.1, "crossover_probability": 0.5},
    ),
    StrategyKind.RESOURCE_STAGED: StrategyProfile(
        kind=StrategyKind.RESOURCE_STAGED,
        name="Successive Halving",
        suitability=Suitability(1, 100, "high", "low", False, True),
        performance=ExpectedPerformance(0.9, 0.7, 0.7, 0.95, 0.8),
        default_parameters={
            "min_resource": 1,
            "max_resource": 81,
            "reduction_factor": 3,
            "bracket_size": None,
        },
    ),
}


@dataclass(frozen=True)
class StrategyRecommendation:
    strategy: StrategyKind
    name: str
    score: float
    reasoning: List[str]

    def to_payload(self) -> Dict[str, Any]:
        return {
            "strategy": self.strategy.value,
            "name": self.name,
            "score": self.score,
            "reasoning": list(self.reasoning),
        }


def resolve_strategy(name: str | StrategyKind) -> StrategyKind:
    """Map a strategy name or alias onto :class:`StrategyKind`."""

    if isinstance(name, StrategyKind):
        return name
    key = str(name).strip().lower()
    if key in STRATEGY_ALIASES:
        return STRATEGY_ALIASES[key]
    try:
        return StrategyKind(key.replace("-", "_"))
    except ValueError:
        raise StrategyNotFound(str(name)) from None


def merge_strategy_params(
    kind: StrategyKind,
    params: Mapping[str, Any] | None,
    defaults: StrategyDefaults | None = None,
) -> Dict[str, Any]:
    """Combine caller parameters with the profile defaults.

    Unknown keys are dropped with a :class:`RuntimeWarning`; camelCase keys are
    accepted and normalised to snake_case.
    """

    defaults = defaults or StrategyDefaults()
    merged: Dict[str, Any] = dict(PROFILES[kind].default_parameters)
    if kind is StrategyKind.PERTURBATION:
        merged["perturbation_scale"] = defaults.perturbation_scale
    elif kind is StrategyKind.GENETIC:
        merged["mutation_rate"] = defaults.mutation_rate

    ignored: List[str] = []
    for raw_key, value in (params or {}).items():
        key = _snake_case(str(raw_key))
        if key in merged:
            merged[key] = value
        else:
            ignored.append(str(raw_key))
    if ignored:
        warnings.warn(
            f"Ignoring unknown {kind.value} strategy parameters: {', '.join(sorted(ignored))}",
            RuntimeWarning,
            stacklevel=2,
        )
    return merged


def recommend_strategies(
    space: SearchSpace, complexity: ComplexityEstimate
) -> List[StrategyRecommendation]:
    """Rank every profile by how well it fits the space."""

    noise = space.metadata.noise_level
    ranked: List[StrategyRecommendation] = []
    for profile in PROFILES.values():
        suitability = profile.suitability
        performance = profile.performance
        score = 0.5
        in_window = (
            suitability.parameter_count_min
            <= complexity.dimensionality
            <= suitability.parameter_count_max
        )
        if in_window:
            score += 0.3
        if complexity.overall_complexity == "low" and performance.convergence_speed > 0.7:
            score += 0.2
        if complexity.overall_complexity == "high" and performance.scalability > 0.7:
            score += 0.2
        if noise is not None and noise == suitability.noise_level:
            score += 0.1
        ranked.append(
            StrategyRecommendation(
                strategy=profile.kind,
                name=profile.name,
                score=round(score, 6),
                reasoning=_reasoning(profile, complexity),
            )
        )
    ranked.sort(key=lambda item: item.score, reverse=True)
    return ranked


def _reasoning(profile: StrategyProfile, complexity: ComplexityEstimate) -> List[str]:
    reasoning: List[str] = []
    if complexity.dimensionality <= profile.suitability.parameter_count_max:
        reasoning.append(f"Suitable for {complexity.dimensionality} parameters")
    if profile.performance.convergence_speed > 0.8:
        reasoning.append("Fast convergence expected")
    if profile.suitability.parallelizable:
        reasoning.append("Supports parallel evaluation")
    if profile.performance.resource_efficiency > 0.8:
        reasoning.append("Efficient resource utilization")
    return reasoning


_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def _snake_case(name: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", name).lower()


__all__ = [
    "PROFILES",
    "STRATEGY_ALIASES",
    "StrategyKind",
    "StrategyProfile",
    "StrategyRecommendation",
    "merge_strategy_params",
    "recommend_strategies",
    "resolve_strategy",
]
