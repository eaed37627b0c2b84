"""Append-only evaluation log and the statistics derived from it."""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List

import numpy as np

from .records import EvaluationResult


class EvaluationHistory:
    """Ordered audit trail of every reported evaluation of a session."""

    def __init__(self) -> None:
        self._results: List[EvaluationResult] = []

    def append(self, result: EvaluationResult) -> None:
        self._results.append(result)

    def __iter__(self) -> Iterator[EvaluationResult]:
        return iter(tuple(self._results))

    def __len__(self) -> int:
        return len(self._results)

    def __getitem__(self, index: int) -> EvaluationResult:
        return self._results[index]

    def scores(self) -> List[float]:
        return [result.primary_metric for result in self._results]

    def last(self, count: int) -> List[EvaluationResult]:
        if count <= 0:
            return []
        return list(self._results[-count:])

    def top(self, count: int) -> List[EvaluationResult]:
        """Best ``count`` results by primary metric; ties keep report order."""

        ranked = sorted(self._results, key=lambda result: result.primary_metric, reverse=True)
        return ranked[:count]

    def best(self) -> EvaluationResult | None:
        best: EvaluationResult | None = None
        for result in self._results:
            if best is None or result.primary_metric > best.primary_metric:
                best = result
        return best

    def reported_ids(self) -> set[str]:
        return {result.configuration_id for result in self._results}


@dataclass(frozen=True)
class TuningStatistics:
    best_score: float | None = None
    average_score: float = 0.0
    score_variance: float = 0.0
    time_per_evaluation: float = 0.0
    improvement_rate: float = 0.0
    exploration_efficiency: float = 0.0
    parameter_importance: Dict[str, float] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "best_score": self.best_score,
            "average_score": self.average_score,
            "score_variance": self.score_variance,
            "time_per_evaluation": self.time_per_evaluation,
            "improvement_rate": self.improvement_rate,
            "exploration_efficiency": self.exploration_efficiency,
            "parameter_importance": dict(self.parameter_importance),
        }


def compute_statistics(
    history: EvaluationHistory,
    *,
    elapsed: float = 0.0,
    importance_increment: float = 0.1,
    window: int = 10,
) -> TuningStatistics:
    """Recompute every aggregate from ``history``."""

    if not len(history):
        return TuningStatistics()

    scores = np.asarray(history.scores(), dtype=float)
    importance: Dict[str, float] = {}
    snapshots = set()
    durations = []
    for result in history:
        for name in result.parameters:
            importance[name] = round(importance.get(name, 0.0) + importance_increment, 10)
        snapshots.add(_snapshot_key(result.parameters))
        durations.append(result.evaluation_time)

    if any(duration > 0 for duration in durations):
        time_per_evaluation = float(np.mean(durations))
    else:
        time_per_evaluation = float(elapsed) / len(scores)

    return TuningStatistics(
        best_score=float(scores.max()),
        average_score=float(scores.mean()),
        score_variance=float(scores.var()),
        time_per_evaluation=time_per_evaluation,
        improvement_rate=_improvement_rate(scores, window),
        exploration_efficiency=len(snapshots) / len(scores),
        parameter_importance=importance,
    )


def _improvement_rate(scores: np.ndarray, window: int) -> float:
    running = np.maximum.accumulate(scores)
    improved = np.empty(len(scores), dtype=bool)
    improved[0] = True
    improved[1:] = scores[1:] > running[:-1]
    recent = improved[-window:]
    return float(recent.mean())


def _snapshot_key(parameters: Any) -> str:
    return json.dumps(dict(parameters), sort_keys=True, default=str)


__all__ = ["EvaluationHistory", "TuningStatistics", "compute_statistics"]
