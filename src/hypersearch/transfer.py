"""Knowledge transfer between sessions."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

from .errors import StrategyNotFound
from .identifiers import IdGenerator
from .records import EvaluationResult, ParameterConfiguration
from .sampling import ParameterSampler
from .space import SearchSpace

logger = logging.getLogger(__name__)

NOT_YET_EFFECTIVE = "not_yet_effective"

TRANSFER_ALIASES = {
    "warmstart": "warmstart",
    "warm_start": "warmstart",
    "meta_learning": "meta_learning",
    "surrogate_transfer": "surrogate_transfer",
}


@dataclass(frozen=True)
class SourceSnapshot:
    """Copy of a source session's history taken under that session's lock."""

    session_id: str
    results: Sequence[EvaluationResult]


@dataclass
class TransferResult:
    method: str
    source_sessions: List[str]
    status: str
    expected_speedup: float = 1.0
    configurations: List[ParameterConfiguration] = field(default_factory=list)
    details: Dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "method": self.method,
            "source_sessions": list(self.source_sessions),
            "status": self.status,
            "expected_speedup": self.expected_speedup,
            "configurations": [config.to_payload() for config in self.configurations],
            **self.details,
        }


def resolve_transfer_strategy(name: str) -> str:
    key = str(name).strip().lower()
    if key not in TRANSFER_ALIASES:
        raise StrategyNotFound(str(name))
    return TRANSFER_ALIASES[key]


class TransferEngine:
    """Seeds a target session from the histories of earlier sessions.

    Reported speedups are never estimated: each method reports 1.0 until a
    measured comparison exists.
    """

    def __init__(self, *, top_k: int = 5) -> None:
        self.top_k = top_k

    def transfer(
        self,
        strategy: str,
        sources: Sequence[SourceSnapshot],
        target: SearchSpace,
        *,
        sampler: ParameterSampler,
        id_generator: IdGenerator,
    ) -> TransferResult:
        method = resolve_transfer_strategy(strategy)
        if method == "warmstart":
            return self.warmstart(sources, target, sampler=sampler, id_generator=id_generator)
        if method == "meta_learning":
            return self.meta_learning(sources)
        return self.surrogate_transfer(sources)

    def warmstart(
        self,
        sources: Sequence[SourceSnapshot],
        target: SearchSpace,
        *,
        sampler: ParameterSampler,
        id_generator: IdGenerator,
    ) -> TransferResult:
        pooled = [result for source in sources for result in source.results]
        ranked = sorted(pooled, key=lambda result: result.primary_metric, reverse=True)
        configurations = [
            ParameterConfiguration(
                id=id_generator.new_id("config"),
                parameters=remap_parameters(result.parameters, target, sampler),
                origin="warm_start",
                parent_ids=(result.configuration_id,),
            )
            for result in ranked[: self.top_k]
        ]
        logger.info(
            "Warm start selected %d of %d source evaluations", len(configurations), len(pooled)
        )
        return TransferResult(
            method="warmstart",
            source_sessions=[source.session_id for source in sources],
            status="applied" if configurations else "no_data",
            configurations=configurations,
            details={"transferred_configurations": len(configurations)},
        )

    def meta_learning(self, sources: Sequence[SourceSnapshot]) -> TransferResult:
        patterns = extract_meta_patterns(sources)
        return TransferResult(
            method="meta_learning",
            source_sessions=[source.session_id for source in sources],
            status=NOT_YET_EFFECTIVE,
            details={"patterns_extracted": len(patterns), "patterns": patterns},
        )

    def surrogate_transfer(self, sources: Sequence[SourceSnapshot]) -> TransferResult:
        return TransferResult(
            method="surrogate_transfer",
            source_sessions=[source.session_id for source in sources],
            status=NOT_YET_EFFECTIVE,
            details={"models_transferred": len(sources)},
        )


def remap_parameters(
    parameters: Dict[str, Any] | Any, target: SearchSpace, sampler: ParameterSampler
) -> Dict[str, Any]:
    """Project a source configuration onto ``target``'s parameters."""

    remapped: Dict[str, Any] = {}
    for definition in target.parameters:
        value = parameters.get(definition.name)
        if value is not None and definition.contains(value):
            remapped[definition.name] = value
        elif definition.default_value is not None:
            remapped[definition.name] = definition.default_value
        else:
            remapped[definition.name] = sampler.sample(definition)
    return remapped


def extract_meta_patterns(sources: Sequence[SourceSnapshot]) -> List[Dict[str, Any]]:
    counts = {"early_peak": 0, "gradual_improvement": 0}
    observed = 0
    for source in sources:
        scores = [result.primary_metric for result in source.results]
        if not scores:
            continue
        observed += 1
        peak_index = scores.index(max(scores))
        if peak_index < 0.3 * len(scores):
            counts["early_peak"] += 1
        else:
            counts["gradual_improvement"] += 1
    if not observed:
        return []
    return [
        {"pattern": name, "frequency": count / observed}
        for name, count in counts.items()
        if count
    ]


__all__ = [
    "NOT_YET_EFFECTIVE",
    "SourceSnapshot",
    "TransferEngine",
    "TransferResult",
    "extract_meta_patterns",
    "remap_parameters",
    "resolve_transfer_strategy",
]
