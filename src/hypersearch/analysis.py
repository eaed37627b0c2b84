"""Post-hoc analysis of a session's history.

Every function here is a pure view over the session: it reads history,
statistics and settings, never mutates them, and returns plain payloads so
repeated calls on an unchanged session compare equal.
"""
from __future__ import annotations

import math
from itertools import combinations
from typing import Any, Callable, Dict, List, Sequence, Tuple

import numpy as np

from .errors import InvalidConfiguration
from .session import TuningSession
from .space import ParameterDefinition

ANALYSIS_TYPES = ("sensitivity", "interactions", "convergence", "recommendations", "comprehensive")
MIN_INTERACTION_SAMPLES = 6


def analyze(session: TuningSession, analysis_type: str = "comprehensive") -> Dict[str, Any]:
    if analysis_type not in ANALYSIS_TYPES:
        raise InvalidConfiguration(
            [f"analysis_type must be one of {', '.join(ANALYSIS_TYPES)}"]
        )
    if analysis_type == "comprehensive":
        return {name: _ANALYSES[name](session) for name in ANALYSIS_TYPES[:-1]}
    return {analysis_type: _ANALYSES[analysis_type](session)}


# ---------------------------------------------------------------------------
# Sensitivity
# ---------------------------------------------------------------------------
def analyze_sensitivity(session: TuningSession) -> List[Dict[str, Any]]:
    importance = session.statistics.parameter_importance
    history = list(session.history)
    top_count = max(1, math.ceil(len(history) / 4))
    top = session.history.top(top_count)

    results = []
    for definition in session.space.parameters:
        pairs = [
            (result.parameters[definition.name], result.primary_metric)
            for result in history
            if definition.name in result.parameters
        ]
        values = [value for value, _ in pairs]
        scores = np.asarray([score for _, score in pairs], dtype=float)
        top_values = [
            result.parameters[definition.name]
            for result in top
            if definition.name in result.parameters
        ]
        if _is_numeric(definition):
            x = np.asarray(values, dtype=float)
            sensitivity = _r_squared(x, scores)
            optimal_range = (
                {"min": float(min(top_values)), "max": float(max(top_values))}
                if top_values
                else None
            )
            marginal = _tercile_means(x, scores)
        else:
            sensitivity = _correlation_ratio(values, scores)
            optimal_range = {"values": _unique(top_values)} if top_values else None
            marginal = _group_means(values, scores)
        results.append(
            {
                "parameter": definition.name,
                "importance": importance.get(definition.name, 0.0),
                "sensitivity": sensitivity,
                "optimal_range": optimal_range,
                "marginal_effect": marginal,
                "certainty": min(1.0, len(pairs) / 30),
            }
        )
    return results


def _r_squared(x: np.ndarray, y: np.ndarray) -> float:
    if len(x) < 2 or np.ptp(x) == 0 or np.ptp(y) == 0:
        return 0.0
    r = float(np.corrcoef(x, y)[0, 1])
    return r * r if math.isfinite(r) else 0.0


def _correlation_ratio(values: Sequence[Any], y: np.ndarray) -> float:
    if len(y) < 2:
        return 0.0
    total = float(((y - y.mean()) ** 2).sum())
    if total == 0.0:
        return 0.0
    between = 0.0
    for _, members in _groups(values, y):
        between += len(members) * (float(members.mean()) - float(y.mean())) ** 2
    return min(1.0, between / total)


def _tercile_means(x: np.ndarray, y: np.ndarray) -> List[Dict[str, Any]]:
    if len(x) < 3:
        return []
    order = np.argsort(x, kind="stable")
    effects = []
    for label, chunk in zip(("low", "mid", "high"), np.array_split(order, 3)):
        effects.append(
            {
                "group": label,
                "range": {"min": float(x[chunk].min()), "max": float(x[chunk].max())},
                "mean_score": float(y[chunk].mean()),
            }
        )
    return effects


def _group_means(values: Sequence[Any], y: np.ndarray) -> List[Dict[str, Any]]:
    return [
        {"group": key, "count": int(len(members)), "mean_score": float(members.mean())}
        for key, members in _groups(values, y)
    ]


def _groups(values: Sequence[Any], y: np.ndarray) -> List[Tuple[Any, np.ndarray]]:
    keys = _unique(values)
    grouped = []
    for key in keys:
        mask = np.asarray([_same(value, key) for value in values], dtype=bool)
        grouped.append((key, y[mask]))
    return grouped


# ---------------------------------------------------------------------------
# Interactions
# ---------------------------------------------------------------------------
def analyze_interactions(session: TuningSession) -> List[Dict[str, Any]]:
    numeric = [definition.name for definition in session.space.parameters if _is_numeric(definition)]
    history = list(session.history)
    effects = []
    for first, second in combinations(numeric, 2):
        rows = [
            (float(result.parameters[first]), float(result.parameters[second]), result.primary_metric)
            for result in history
            if first in result.parameters and second in result.parameters
        ]
        if len(rows) < MIN_INTERACTION_SAMPLES:
            continue
        data = np.asarray(rows, dtype=float)
        a, b, y = _standardise(data[:, 0]), _standardise(data[:, 1]), data[:, 2]
        if a is None or b is None or np.ptp(y) == 0:
            continue
        ones = np.ones_like(y)
        additive = np.column_stack([ones, a, b])
        full = np.column_stack([ones, a, b, a * b])
        r2_additive, _ = _fit(additive, y)
        r2_full, coefficients = _fit(full, y)
        effects.append(
            {
                "parameters": [first, second],
                "effect_strength": max(0.0, r2_full - r2_additive),
                "synergistic": bool(coefficients[3] > 0),
                "confidence": min(1.0, len(rows) / 30),
            }
        )
    effects.sort(key=lambda effect: effect["effect_strength"], reverse=True)
    return effects


def _standardise(values: np.ndarray) -> np.ndarray | None:
    std = float(values.std())
    if std == 0.0:
        return None
    return (values - values.mean()) / std


def _fit(design: np.ndarray, y: np.ndarray) -> Tuple[float, np.ndarray]:
    coefficients, *_ = np.linalg.lstsq(design, y, rcond=None)
    residual = y - design @ coefficients
    total = float(((y - y.mean()) ** 2).sum())
    return 1.0 - float((residual ** 2).sum()) / total, coefficients


# ---------------------------------------------------------------------------
# Convergence
# ---------------------------------------------------------------------------
def analyze_convergence(session: TuningSession) -> Dict[str, Any]:
    scores = session.history.scores()
    bounds = session.space.search_bounds
    tracker = session.tracker
    return {
        "indicator": tracker.indicator(scores),
        "plateau": tracker.plateau(
            scores,
            patience=bounds.early_stopping_patience,
            threshold=bounds.improvement_threshold,
        ),
        "oscillating": tracker.oscillating(scores),
        "early_stop": tracker.early_stop_recommendation(scores).to_payload(),
        "phases": convergence_phases(len(scores)),
    }


def convergence_phases(count: int) -> List[Dict[str, Any]]:
    if count < 20:
        return []
    exploit_start = math.floor(count * 0.3)
    converge_start = math.floor(count * 0.8)
    return [
        {
            "phase": "exploration",
            "start_evaluation": 0,
            "end_evaluation": exploit_start,
            "characteristics": ["high_variance", "diverse_sampling"],
        },
        {
            "phase": "exploitation",
            "start_evaluation": exploit_start,
            "end_evaluation": converge_start,
            "characteristics": ["focused_search", "improving_trend"],
        },
        {
            "phase": "convergence",
            "start_evaluation": converge_start,
            "end_evaluation": count,
            "characteristics": ["low_variance", "marginal_improvements"],
        },
    ]


# ---------------------------------------------------------------------------
# Recommendations
# ---------------------------------------------------------------------------
def generate_recommendations(session: TuningSession) -> List[Dict[str, Any]]:
    scores = session.history.scores()
    bounds = session.space.search_bounds
    tracker = session.tracker
    adaptive = session.scheduler.settings
    statistics = session.statistics

    recommendations = []
    if session.progress.convergence_indicator > 0.8:
        recommendations.append(
            _recommendation(
                "early_stopping",
                "high",
                "Consider stopping tuning as convergence has been achieved",
                0.001,
                0.9,
            )
        )
    stalled = len(scores) >= 10 and statistics.improvement_rate < 0.01
    plateau = tracker.plateau(
        scores,
        patience=bounds.early_stopping_patience,
        threshold=bounds.improvement_threshold,
    )
    if stalled or (len(scores) > 1 and plateau):
        recommendations.append(
            _recommendation(
                "parameter_adjustment",
                "high",
                "Consider expanding search range for key parameters",
                0.05,
                0.7,
            )
        )
    if adaptive.exploration_rate < 0.1:
        recommendations.append(
            _recommendation(
                "search_strategy",
                "medium",
                "Increase exploration to discover new promising regions",
                0.03,
                0.6,
            )
        )
    if tracker.oscillating(scores):
        recommendations.append(
            _recommendation(
                "search_strategy",
                "medium",
                "Scores are oscillating; reduce exploration or increase evaluation fidelity",
                0.02,
                0.6,
            )
        )
    if statistics.time_per_evaluation > 600 and adaptive.resource_adaptation:
        recommendations.append(
            _recommendation(
                "resource_allocation",
                "medium",
                "Consider reducing model complexity or using early stopping for individual evaluations",
                0.02,
                0.7,
            )
        )
    return recommendations


def _recommendation(
    kind: str, priority: str, description: str, expected: float, confidence: float
) -> Dict[str, Any]:
    return {
        "type": kind,
        "priority": priority,
        "description": description,
        "expected_improvement": expected,
        "confidence": confidence,
    }


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------
def _is_numeric(definition: ParameterDefinition) -> bool:
    return definition.kind in {"continuous", "discrete"}


def _same(value: Any, key: Any) -> bool:
    return type(value) is type(key) and value == key


def _unique(values: Sequence[Any]) -> List[Any]:
    seen: List[Any] = []
    for value in values:
        if not any(_same(value, existing) for existing in seen):
            seen.append(value)
    return seen


_ANALYSES: Dict[str, Callable[[TuningSession], Any]] = {
    "sensitivity": analyze_sensitivity,
    "interactions": analyze_interactions,
    "convergence": analyze_convergence,
    "recommendations": generate_recommendations,
}


__all__ = [
    "ANALYSIS_TYPES",
    "analyze",
    "analyze_convergence",
    "analyze_interactions",
    "analyze_sensitivity",
    "convergence_phases",
    "generate_recommendations",
]
