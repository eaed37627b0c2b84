"""Tuning session state and its status machine."""
from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Deque, Dict, Iterable, List

from .config import EngineSettings
from .convergence import ConvergenceTracker
from .errors import SessionStateError
from .generators import CandidateGenerator
from .history import EvaluationHistory, TuningStatistics, compute_statistics
from .records import EvaluationResult, ParameterConfiguration
from .sampling import ParameterSampler
from .scheduler import AdaptiveScheduler
from .space import SearchSpace
from .strategy_catalog import StrategyKind


class SessionStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"


_TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.PENDING: frozenset({SessionStatus.RUNNING, SessionStatus.FAILED}),
    SessionStatus.RUNNING: frozenset(
        {SessionStatus.PAUSED, SessionStatus.COMPLETED, SessionStatus.FAILED}
    ),
    SessionStatus.PAUSED: frozenset({SessionStatus.RUNNING, SessionStatus.FAILED}),
    SessionStatus.COMPLETED: frozenset(),
    SessionStatus.FAILED: frozenset(),
}

TERMINAL_STATUSES = frozenset({SessionStatus.COMPLETED, SessionStatus.FAILED})


@dataclass
class TuningProgress:
    total_evaluations: int
    evaluations_completed: int = 0
    elapsed_time: float = 0.0
    estimated_time_remaining: float = 0.0
    current_best_score: float | None = None
    improvement_rate: float = 0.0
    convergence_indicator: float = 0.0

    def to_payload(self) -> Dict[str, Any]:
        return {
            "evaluations_completed": self.evaluations_completed,
            "total_evaluations": self.total_evaluations,
            "elapsed_time": self.elapsed_time,
            "estimated_time_remaining": self.estimated_time_remaining,
            "current_best_score": self.current_best_score,
            "improvement_rate": self.improvement_rate,
            "convergence_indicator": self.convergence_indicator,
        }


@dataclass
class TuningSession:
    """Mutable state of one search. Only the engine mutates it, under ``lock``."""

    id: str
    space: SearchSpace
    strategy: StrategyKind
    strategy_params: Dict[str, Any]
    generator: CandidateGenerator
    scheduler: AdaptiveScheduler
    tracker: ConvergenceTracker
    settings: EngineSettings
    sampler: ParameterSampler
    started_at: datetime
    progress: TuningProgress
    status: SessionStatus = SessionStatus.PENDING
    history: EvaluationHistory = field(default_factory=EvaluationHistory)
    statistics: TuningStatistics = field(default_factory=TuningStatistics)
    best_configuration: ParameterConfiguration | None = None
    insights: List[Dict[str, Any]] = field(default_factory=list)
    ended_at: datetime | None = None
    completion_reason: str | None = None
    failure: BaseException | None = None
    pool: Deque[ParameterConfiguration] = field(default_factory=deque)
    issued: Dict[str, ParameterConfiguration] = field(default_factory=dict)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    # ------------------------------------------------------------------
    # status machine
    # ------------------------------------------------------------------
    def require(self, allowed: Iterable[SessionStatus], operation: str) -> None:
        if self.status not in set(allowed):
            raise SessionStateError(self.id, self.status.value, operation)

    def transition(self, target: SessionStatus, *, operation: str, now: datetime | None = None) -> None:
        if target not in _TRANSITIONS[self.status]:
            raise SessionStateError(self.id, self.status.value, operation)
        self.status = target
        if target in TERMINAL_STATUSES:
            self.ended_at = now

    def fail(self, error: BaseException, now: datetime) -> None:
        self.failure = error
        if self.status not in TERMINAL_STATUSES:
            self.status = SessionStatus.FAILED
            self.ended_at = now

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    # ------------------------------------------------------------------
    # configurations
    # ------------------------------------------------------------------
    def register(self, configuration: ParameterConfiguration) -> ParameterConfiguration:
        self.issued[configuration.id] = configuration
        return configuration

    def queue(self, configurations: Iterable[ParameterConfiguration]) -> None:
        for configuration in configurations:
            self.pool.append(self.register(configuration))

    def replace_pool(self, configurations: Iterable[ParameterConfiguration]) -> None:
        """Queue ``configurations`` in place of the pending suggestions.

        Configurations already handed out stay registered, so their results
        are still accepted.
        """

        self.pool.clear()
        self.queue(configurations)

    def next_pooled(self) -> ParameterConfiguration | None:
        reported = self.history.reported_ids()
        while self.pool:
            configuration = self.pool.popleft()
            if configuration.id not in reported:
                return configuration
        return None

    # ------------------------------------------------------------------
    # evaluation bookkeeping
    # ------------------------------------------------------------------
    def record(self, result: EvaluationResult, now: datetime) -> bool:
        """Append ``result`` and refresh every derived view; True if it is the new best."""

        self.history.append(result)
        self.generator.observe(result)

        improved = False
        best = self.best_configuration
        if best is None or best.score is None or result.primary_metric > best.score:
            source = self.issued.get(result.configuration_id)
            if source is None:
                source = ParameterConfiguration(
                    id=result.configuration_id,
                    parameters=dict(result.parameters),
                    origin="external",
                )
            self.best_configuration = source.with_score(
                result.primary_metric, result.auxiliary_metrics
            )
            improved = True

        self.refresh(now)
        return improved

    def refresh(self, now: datetime) -> None:
        progress = self.progress
        progress.elapsed_time = max(0.0, (now - self.started_at).total_seconds())
        progress.evaluations_completed = len(self.history)
        self.statistics = compute_statistics(
            self.history,
            elapsed=progress.elapsed_time,
            importance_increment=self.settings.importance_increment,
            window=self.settings.convergence.window,
        )
        if self.best_configuration is not None:
            progress.current_best_score = self.best_configuration.score
        progress.improvement_rate = self.statistics.improvement_rate
        progress.convergence_indicator = self.tracker.indicator(self.history.scores())
        remaining = max(0, progress.total_evaluations - progress.evaluations_completed)
        progress.estimated_time_remaining = remaining * self.statistics.time_per_evaluation
        self.scheduler.update(progress.evaluations_completed, progress.total_evaluations)

    # ------------------------------------------------------------------
    # views
    # ------------------------------------------------------------------
    def summary(self) -> Dict[str, Any]:
        return {
            "session_id": self.id,
            "space_id": self.space.id,
            "status": self.status.value,
            "total_evaluations": self.progress.evaluations_completed,
            "best_score": self.statistics.best_score,
            "time_elapsed": self.progress.elapsed_time,
            "strategy": self.strategy.value,
            "convergence_status": self.progress.convergence_indicator,
            "completion_reason": self.completion_reason,
            "failure": _describe(self.failure),
        }

    def final_results(self) -> Dict[str, Any]:
        best = self.best_configuration
        return {
            "best_configuration": best.to_payload() if best else None,
            "total_evaluations": self.progress.evaluations_completed,
            "best_score": self.statistics.best_score,
            "average_score": self.statistics.average_score,
            "total_time": self.progress.elapsed_time,
            "convergence_achieved": self.progress.convergence_indicator > 0.9,
        }

    def to_payload(self) -> Dict[str, Any]:
        return {
            **self.summary(),
            "strategy_params": dict(self.strategy_params),
            "adaptive_settings": self.scheduler.settings.model_dump(),
            "progress": self.progress.to_payload(),
            "statistics": self.statistics.to_payload(),
            "best_configuration": (
                self.best_configuration.to_payload() if self.best_configuration else None
            ),
            "history": [result.to_payload() for result in self.history],
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
        }


def _describe(error: BaseException | None) -> str | None:
    if error is None:
        return None
    return f"{type(error).__name__}: {error}"


__all__ = [
    "SessionStatus",
    "TERMINAL_STATUSES",
    "TuningProgress",
    "TuningSession",
]
