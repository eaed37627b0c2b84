from __future__ import annotations

import pytest

from hypersearch.config import ConvergenceSettings
from hypersearch.convergence import (
    CONTINUE_REASON,
    CONVERGED_REASON,
    MAX_EVALUATIONS_REASON,
    NO_IMPROVEMENT_REASON,
    TARGET_REACHED_REASON,
    ConvergenceTracker,
)


@pytest.fixture()
def tracker() -> ConvergenceTracker:
    return ConvergenceTracker(ConvergenceSettings())


def test_indicator_needs_a_full_window(tracker: ConvergenceTracker) -> None:
    assert tracker.indicator([1.0] * 9) == 0.0
    assert tracker.indicator([]) == 0.0


def test_indicator_of_a_flat_zero_window_is_one(tracker: ConvergenceTracker) -> None:
    assert tracker.indicator([0.0] * 10) == 1.0


def test_indicator_with_non_positive_scores(tracker: ConvergenceTracker) -> None:
    # variance 1, largest magnitude 3
    scores = [-1.0, -3.0] * 5
    assert tracker.indicator(scores) == pytest.approx(1.0 - 1.0 / 3.0)


def test_indicator_is_clamped(tracker: ConvergenceTracker) -> None:
    scores = [0.0, 10.0] * 5
    # variance 25 exceeds the peak
    assert tracker.indicator(scores) == 0.0


def test_continuation_stops_at_max_evaluations(tracker: ConvergenceTracker) -> None:
    decision = tracker.continuation([0.1, 0.2], completed=20, total=20)
    assert not decision.proceed
    assert decision.reason == MAX_EVALUATIONS_REASON


def test_continuation_stops_at_target(tracker: ConvergenceTracker) -> None:
    decision = tracker.continuation([0.2, 0.9], completed=2, total=50, target_value=0.8)
    assert not decision.proceed
    assert decision.reason == TARGET_REACHED_REASON


def test_continuation_stops_when_converged(tracker: ConvergenceTracker) -> None:
    decision = tracker.continuation([0.5] * 10, completed=10, total=50)
    assert decision.reason == CONVERGED_REASON


def test_continuation_stops_on_plateau(tracker: ConvergenceTracker) -> None:
    scores = [10.0] + [0.0, 1.0] * 5
    assert tracker.indicator(scores) == pytest.approx(0.75)

    decision = tracker.continuation(scores, completed=len(scores), total=100)

    assert not decision.proceed
    assert decision.reason == NO_IMPROVEMENT_REASON


def test_window_starting_at_first_evaluation_keeps_going(tracker: ConvergenceTracker) -> None:
    scores = [round(0.1 * i, 1) for i in range(1, 11)]

    decision = tracker.continuation(scores, completed=10, total=100)

    assert decision.proceed
    assert decision.reason == CONTINUE_REASON


def test_no_improvement_check_needs_more_than_a_window(tracker: ConvergenceTracker) -> None:
    window = [0.0, 1.0] * 5

    exactly = tracker.continuation(window, completed=10, total=100)
    preceded = tracker.continuation([5.0] + window, completed=11, total=100)

    assert exactly.proceed
    assert not preceded.proceed
    assert preceded.reason == NO_IMPROVEMENT_REASON


def test_plateau_uses_patience_and_threshold(tracker: ConvergenceTracker) -> None:
    scores = [1.0, 1.0005, 1.0, 1.0]
    assert tracker.plateau(scores, patience=3, threshold=1e-3)
    assert not tracker.plateau(scores, patience=4, threshold=1e-3)
    assert not tracker.plateau([1.0, 2.0, 3.0, 4.0], patience=2, threshold=1e-3)
    assert not tracker.plateau([], patience=1, threshold=0.0)


def test_oscillation_detection(tracker: ConvergenceTracker) -> None:
    assert tracker.oscillating([0.0, 1.0] * 5)
    assert not tracker.oscillating([float(i) for i in range(10)])
    assert not tracker.oscillating([0.0, 1.0, 0.0])


def test_early_stop_recommendation(tracker: ConvergenceTracker) -> None:
    insufficient = tracker.early_stop_recommendation([0.1, 0.2, 0.3, 0.4])
    assert not insufficient.recommend
    assert insufficient.reason == "Insufficient data"

    first_window = tracker.early_stop_recommendation([0.1, 0.2, 0.3, 0.4, 0.5])
    assert not first_window.recommend
    assert first_window.reason == "Still improving"

    stalled = tracker.early_stop_recommendation([1.0, 0.5, 0.5, 0.5, 0.5, 0.5])
    assert stalled.recommend
    assert stalled.confidence == pytest.approx(0.8)
    assert stalled.to_payload()["reason"] == "No significant improvement in recent evaluations"

    improving = tracker.early_stop_recommendation([0.1, 0.2, 0.3, 0.4, 0.5, 0.6])
    assert not improving.recommend
    assert "confidence" not in improving.to_payload()
