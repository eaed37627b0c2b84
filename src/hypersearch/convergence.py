"""Convergence indicator, plateau / oscillation flags and stop decisions."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Sequence

import numpy as np

from .config import ConvergenceSettings

MAX_EVALUATIONS_REASON = "Maximum evaluations reached."
TARGET_REACHED_REASON = "Target value reached."
CONVERGED_REASON = "Convergence detected."
NO_IMPROVEMENT_REASON = "No significant improvement in recent evaluations."
CONTINUE_REASON = "Continuing search."


@dataclass(frozen=True)
class EarlyStopRecommendation:
    recommend: bool
    reason: str
    confidence: float | None = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"recommend": self.recommend, "reason": self.reason}
        if self.confidence is not None:
            payload["confidence"] = self.confidence
        return payload


@dataclass(frozen=True)
class ContinuationDecision:
    proceed: bool
    reason: str


class ConvergenceTracker:
    """Derives convergence signals from a score sequence.

    The tracker holds only settings; every method is a pure function of the
    scores passed in, so the same history always yields the same answer.
    """

    def __init__(self, settings: ConvergenceSettings | None = None) -> None:
        self.settings = settings or ConvergenceSettings()

    def indicator(self, scores: Sequence[float]) -> float:
        window = self.settings.window
        if len(scores) < window:
            return 0.0
        recent = np.asarray(scores[-window:], dtype=float)
        variance = float(recent.var())
        peak = float(recent.max())
        denominator = peak if peak > 0 else float(np.abs(recent).max())
        if denominator == 0.0:
            return 1.0
        return float(min(1.0, max(0.0, 1.0 - variance / denominator)))

    def plateau(
        self,
        scores: Sequence[float],
        *,
        patience: int,
        threshold: float,
    ) -> bool:
        """True when the running best has not moved by ``threshold`` for ``patience`` evaluations."""

        if not scores:
            return False
        best = scores[0]
        last_improvement = 0
        for index, score in enumerate(scores[1:], start=1):
            if score - best >= threshold:
                last_improvement = index
            best = max(best, score)
        return (len(scores) - 1 - last_improvement) >= patience

    def oscillating(self, scores: Sequence[float]) -> bool:
        recent = np.asarray(scores[-self.settings.window :], dtype=float)
        if len(recent) < 5:
            return False
        signs = np.sign(np.diff(recent))
        signs = signs[signs != 0]
        if len(signs) < 4:
            return False
        flips = np.count_nonzero(signs[1:] != signs[:-1])
        return flips / (len(signs) - 1) >= self.settings.oscillation_ratio

    def continuation(
        self,
        scores: Sequence[float],
        *,
        completed: int,
        total: int,
        target_value: float | None = None,
    ) -> ContinuationDecision:
        """Decide whether a session should hand out another suggestion."""

        if completed >= total:
            return ContinuationDecision(False, MAX_EVALUATIONS_REASON)
        if target_value is not None and scores and max(scores) >= target_value:
            return ContinuationDecision(False, TARGET_REACHED_REASON)
        if self.indicator(scores) > self.settings.stop_threshold:
            return ContinuationDecision(False, CONVERGED_REASON)
        window = self.settings.plateau_window
        # the window must be preceded by at least one evaluation
        if len(scores) > window:
            gain = max(scores[-window:]) - max(scores[:-window])
            if gain < self.settings.improvement_epsilon:
                return ContinuationDecision(False, NO_IMPROVEMENT_REASON)
        return ContinuationDecision(True, CONTINUE_REASON)

    def early_stop_recommendation(self, scores: Sequence[float]) -> EarlyStopRecommendation:
        window = self.settings.early_stop_window
        if len(scores) < window:
            return EarlyStopRecommendation(False, "Insufficient data")
        before = scores[:-window]
        if not before:
            return EarlyStopRecommendation(False, "Still improving")
        gain = max(scores[-window:]) - max(before)
        if gain < self.settings.improvement_epsilon:
            return EarlyStopRecommendation(
                True,
                "No significant improvement in recent evaluations",
                self.settings.early_stop_confidence,
            )
        return EarlyStopRecommendation(False, "Still improving")


__all__ = [
    "CONTINUE_REASON",
    "CONVERGED_REASON",
    "ContinuationDecision",
    "ConvergenceTracker",
    "EarlyStopRecommendation",
    "MAX_EVALUATIONS_REASON",
    "NO_IMPROVEMENT_REASON",
    "TARGET_REACHED_REASON",
]
