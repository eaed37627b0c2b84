"""Session manager facade exposing the tuning operations."""
from __future__ import annotations

import logging
import math
import random
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, List, Mapping, Sequence

import optuna
from pydantic import ValidationError

from .analysis import analyze, generate_recommendations
from .config import EngineSettings, format_validation_errors
from .convergence import ConvergenceTracker, EarlyStopRecommendation
from .errors import (
    ConfigurationNotFound,
    HyperSearchError,
    InternalFailure,
    InvalidConfiguration,
    SessionNotFound,
    SessionStateError,
    SpaceNotFound,
)
from .generators import GenerationContext, create_generator
from .identifiers import IdGenerator, UUIDIdGenerator
from .optuna_bridge import export_study
from .persistence import NullStore, SearchSpaceStore
from .records import EvaluationResult, ParameterConfiguration, ResourceUsage
from .sampling import ParameterSampler
from .scheduler import AdaptiveScheduler, AdaptiveSettings, analyse_performance
from .session import SessionStatus, TuningProgress, TuningSession
from .space import (
    ComplexityEstimate,
    SearchSpace,
    ValidationReport,
    build_search_space,
    estimate_complexity,
)
from .strategy_catalog import (
    PROFILES,
    StrategyKind,
    StrategyRecommendation,
    merge_strategy_params,
    recommend_strategies,
    resolve_strategy,
)
from .transfer import SourceSnapshot, TransferEngine, TransferResult, resolve_transfer_strategy

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class SpaceDefinition:
    space_id: str
    search_space: SearchSpace
    validation: ValidationReport
    complexity: ComplexityEstimate
    recommended_strategies: List[StrategyRecommendation]
    persisted: bool

    def to_payload(self) -> Dict[str, Any]:
        return {
            "space_id": self.space_id,
            "search_space": self.search_space.to_payload(),
            "validation": self.validation.to_payload(),
            "complexity_estimate": self.complexity.to_payload(),
            "recommended_strategies": [item.to_payload() for item in self.recommended_strategies],
            "persisted": self.persisted,
        }


@dataclass(frozen=True)
class TuningStart:
    session_id: str
    initial_suggestions: List[ParameterConfiguration]
    estimated_duration: str
    strategy: Dict[str, Any]

    def to_payload(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "initial_suggestions": [config.to_payload() for config in self.initial_suggestions],
            "estimated_duration": self.estimated_duration,
            "strategy": dict(self.strategy),
        }


@dataclass(frozen=True)
class Suggestion:
    suggestion: ParameterConfiguration | None
    reason: str
    progress: Dict[str, Any]
    adaptive_settings: Dict[str, Any]
    final_results: Dict[str, Any] | None = None

    def to_payload(self) -> Dict[str, Any]:
        payload = {
            "suggestion": self.suggestion.to_payload() if self.suggestion else None,
            "reason": self.reason,
            "progress": dict(self.progress),
            "adaptive_settings": dict(self.adaptive_settings),
        }
        if self.final_results is not None:
            payload["final_results"] = dict(self.final_results)
        return payload


@dataclass(frozen=True)
class EvaluationReport:
    evaluation: EvaluationResult
    best_score: float | None
    progress: Dict[str, Any]
    insights: List[Dict[str, Any]]
    early_stop_recommendation: EarlyStopRecommendation
    improved: bool = False

    def to_payload(self) -> Dict[str, Any]:
        return {
            "evaluation": self.evaluation.to_payload(),
            "best_score": self.best_score,
            "improved": self.improved,
            "progress": dict(self.progress),
            "insights": {"recommendations": list(self.insights)},
            "early_stop_recommendation": self.early_stop_recommendation.to_payload(),
        }


@dataclass(frozen=True)
class Analysis:
    results: Dict[str, Any]
    session_summary: Dict[str, Any]

    def to_payload(self) -> Dict[str, Any]:
        return {"results": self.results, "session_summary": self.session_summary}


@dataclass(frozen=True)
class StrategyAdjustment:
    session_id: str
    adaptation_goal: str
    performance_analysis: Dict[str, float]
    optimizations: List[Dict[str, Any]]
    applied_optimizations: List[Dict[str, Any]]
    expected_improvement: float

    def to_payload(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "adaptation_goal": self.adaptation_goal,
            "performance_analysis": dict(self.performance_analysis),
            "optimizations": list(self.optimizations),
            "applied_optimizations": list(self.applied_optimizations),
            "expected_improvement": self.expected_improvement,
        }


@dataclass(frozen=True)
class TransferOutcome:
    transfer_result: TransferResult
    expected_speedup: float
    skipped_sources: List[str] = field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "transfer_result": self.transfer_result.to_payload(),
            "expected_speedup": self.expected_speedup,
            "skipped_sources": list(self.skipped_sources),
        }


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------
class HyperparameterTuner:
    """Owns search spaces and sessions and serialises work per session.

    Each session carries its own lock, so different sessions proceed in
    parallel while ``suggest`` and ``report`` on one session never interleave.
    """

    def __init__(
        self,
        settings: EngineSettings | None = None,
        store: SearchSpaceStore | None = None,
        id_generator: IdGenerator | None = None,
        rng: random.Random | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.settings = settings or EngineSettings()
        self.store: SearchSpaceStore = store or NullStore()
        self.ids: IdGenerator = id_generator or UUIDIdGenerator()
        self._rng = rng or random.Random()
        self._clock: Clock = clock or (lambda: datetime.now(timezone.utc))
        self._spaces: Dict[str, SearchSpace] = {}
        self._sessions: Dict[str, TuningSession] = {}
        self._registry_lock = threading.Lock()
        self.transfer_engine = TransferEngine(top_k=self.settings.strategies.warm_start_top_k)

    # ------------------------------------------------------------------
    # search spaces
    # ------------------------------------------------------------------
    def define_search_space(
        self,
        name: str,
        parameters: Sequence[Mapping[str, Any]] | None,
        constraints: Sequence[Mapping[str, Any]] | None = None,
        search_bounds: Mapping[str, Any] | None = None,
        sampling_strategy: str = "perturbation",
        description: str = "",
        metadata: Mapping[str, Any] | None = None,
    ) -> SpaceDefinition:
        space, report = build_search_space(
            "",
            name=name,
            parameters=parameters,
            constraints=constraints,
            search_bounds=search_bounds,
            sampling_strategy=sampling_strategy,
            description=description,
            metadata=metadata,
        )
        space = replace(space, id=self.ids.new_id("space"))
        complexity = estimate_complexity(space)
        recommendations = recommend_strategies(space, complexity)

        with self._registry_lock:
            self._spaces[space.id] = space
        persisted = self._persist(self.store.save_search_space, space, f"search space {space.id}")
        logger.info(
            "Defined search space %s (%s) with %d parameters, complexity %s",
            space.id,
            name,
            complexity.dimensionality,
            complexity.overall_complexity,
        )
        return SpaceDefinition(
            space_id=space.id,
            search_space=space,
            validation=report,
            complexity=complexity,
            recommended_strategies=recommendations,
            persisted=persisted,
        )

    def get_search_space(self, space_id: str) -> SearchSpace:
        with self._registry_lock:
            space = self._spaces.get(space_id)
        if space is None:
            raise SpaceNotFound(space_id)
        return space

    # ------------------------------------------------------------------
    # session lifecycle
    # ------------------------------------------------------------------
    def start_tuning(
        self,
        space_id: str,
        strategy: str | StrategyKind,
        strategy_params: Mapping[str, Any] | None = None,
        adaptive_settings: Mapping[str, Any] | None = None,
    ) -> TuningStart:
        space = self.get_search_space(space_id)
        kind = resolve_strategy(strategy)
        params = merge_strategy_params(kind, strategy_params, self.settings.strategies)
        adaptive = self._adaptive_settings(adaptive_settings)
        generator = create_generator(kind, params)

        now = self._clock()
        session = TuningSession(
            id=self.ids.new_id("session"),
            space=space,
            strategy=kind,
            strategy_params=params,
            generator=generator,
            scheduler=AdaptiveScheduler(adaptive, self.settings.exploration),
            tracker=ConvergenceTracker(self.settings.convergence),
            settings=self.settings,
            sampler=ParameterSampler(random.Random(self._rng.getrandbits(64))),
            started_at=now,
            progress=TuningProgress(total_evaluations=space.search_bounds.max_evaluations),
        )
        session.transition(SessionStatus.RUNNING, operation="start")

        context = self._context(session)
        initial = [
            context.new_configuration(context.random_parameters(), "bootstrap")
            for _ in range(self._bootstrap_size(space))
        ]
        session.queue(initial)

        with self._registry_lock:
            self._sessions[session.id] = session
        logger.info(
            "Started session %s on space %s with %s strategy (%d bootstrap suggestions)",
            session.id,
            space.id,
            kind.value,
            len(initial),
        )

        profile = PROFILES[kind]
        return TuningStart(
            session_id=session.id,
            initial_suggestions=initial,
            estimated_duration=format_duration(
                self.settings.seconds_per_evaluation
                * space.search_bounds.max_evaluations
                / adaptive.parallelism
            ),
            strategy={
                **profile.to_payload(),
                "parameters": dict(params),
                "adaptive_settings": adaptive.model_dump(),
            },
        )

    def suggest_configuration(self, session_id: str) -> Suggestion:
        session = self._session(session_id)
        with session.lock:
            session.require({SessionStatus.RUNNING}, "suggest for")
            with self._guard(session, "suggest"):
                now = self._clock()
                session.refresh(now)
                progress = session.progress
                decision = session.tracker.continuation(
                    session.history.scores(),
                    completed=progress.evaluations_completed,
                    total=progress.total_evaluations,
                    target_value=session.space.search_bounds.target_value,
                )
                if not decision.proceed:
                    session.completion_reason = decision.reason
                    session.transition(SessionStatus.COMPLETED, operation="complete", now=now)
                    self._persist(self.store.save_session, session.summary(), f"session {session.id}")
                    logger.info("Session %s completed: %s", session.id, decision.reason)
                    return Suggestion(
                        suggestion=None,
                        reason=decision.reason,
                        progress=progress.to_payload(),
                        adaptive_settings=session.scheduler.settings.model_dump(),
                        final_results=session.final_results(),
                    )

                configuration = session.next_pooled()
                if configuration is None:
                    configuration = session.register(
                        session.generator.propose(self._context(session))
                    )
                logger.debug(
                    "Session %s suggested %s (%s)", session.id, configuration.id, configuration.origin
                )
                return Suggestion(
                    suggestion=configuration,
                    reason=_suggestion_reason(configuration),
                    progress=progress.to_payload(),
                    adaptive_settings=session.scheduler.settings.model_dump(),
                )

    def report_evaluation(
        self,
        session_id: str,
        configuration_id: str,
        primary_metric: float,
        auxiliary_metrics: Mapping[str, float] | None = None,
        resource_usage: Mapping[str, Any] | None = None,
        parameters: Mapping[str, Any] | None = None,
        train_time: float = 0.0,
        validation_time: float = 0.0,
        stability: float = 1.0,
    ) -> EvaluationReport:
        session = self._session(session_id)
        with session.lock:
            session.require({SessionStatus.RUNNING, SessionStatus.PAUSED}, "report to")
            snapshot, usage = self._validate_report(
                session,
                configuration_id,
                primary_metric,
                auxiliary_metrics or {},
                resource_usage,
                parameters,
                {"train_time": train_time, "validation_time": validation_time, "stability": stability},
            )
            with self._guard(session, "report"):
                now = self._clock()
                result = EvaluationResult(
                    configuration_id=configuration_id,
                    parameters=snapshot,
                    primary_metric=float(primary_metric),
                    auxiliary_metrics={k: float(v) for k, v in (auxiliary_metrics or {}).items()},
                    train_time=float(train_time),
                    validation_time=float(validation_time),
                    resource_usage=usage,
                    stability=float(stability),
                    timestamp=now,
                )
                improved = session.record(result, now)
                session.insights = generate_recommendations(session)
                early_stop = session.tracker.early_stop_recommendation(session.history.scores())
                logger.debug(
                    "Session %s recorded %s = %s (best %s)",
                    session.id,
                    configuration_id,
                    result.primary_metric,
                    session.progress.current_best_score,
                )
                return EvaluationReport(
                    evaluation=result,
                    best_score=session.best_configuration.score if session.best_configuration else None,
                    progress=session.progress.to_payload(),
                    insights=list(session.insights),
                    early_stop_recommendation=early_stop,
                    improved=improved,
                )

    def analyze_results(self, session_id: str, analysis_type: str = "comprehensive") -> Analysis:
        session = self._session(session_id)
        with session.lock:
            return Analysis(results=analyze(session, analysis_type), session_summary=session.summary())

    def optimize_strategy(self, session_id: str, adaptation_goal: str) -> StrategyAdjustment:
        session = self._session(session_id)
        with session.lock:
            session.require({SessionStatus.RUNNING, SessionStatus.PAUSED}, "optimize")
            statistics = session.statistics
            progress = session.progress
            performance = analyse_performance(
                convergence_indicator=progress.convergence_indicator,
                completed=progress.evaluations_completed,
                total=progress.total_evaluations,
                elapsed=progress.elapsed_time,
                time_per_evaluation=statistics.time_per_evaluation,
                exploration_efficiency=statistics.exploration_efficiency,
                best_score=statistics.best_score,
                average_score=statistics.average_score,
            )
            plans = session.scheduler.plan(
                adaptation_goal,
                performance,
                total_evaluations=progress.total_evaluations,
                time_per_evaluation=statistics.time_per_evaluation,
                oscillating=session.tracker.oscillating(session.history.scores()),
            )
            applied = []
            for plan in plans:
                if plan.type == "extend_search":
                    progress.total_evaluations = int(plan.parameters["max_evaluations"])
                    success = True
                else:
                    success = session.scheduler.apply(plan)
                applied.append({"type": plan.type, "success": success})
            logger.info(
                "Session %s optimised for %s: %s",
                session.id,
                adaptation_goal,
                ", ".join(plan.type for plan in plans) or "no change",
            )
            return StrategyAdjustment(
                session_id=session.id,
                adaptation_goal=adaptation_goal,
                performance_analysis=performance.to_payload(),
                optimizations=[plan.to_payload() for plan in plans],
                applied_optimizations=applied,
                expected_improvement=sum(plan.expected_improvement for plan in plans),
            )

    def transfer_knowledge(
        self,
        source_session_ids: Sequence[str],
        target_session_id: str,
        transfer_strategy: str = "warmstart",
    ) -> TransferOutcome:
        resolve_transfer_strategy(transfer_strategy)
        target = self._session(target_session_id)

        snapshots: List[SourceSnapshot] = []
        skipped: List[str] = []
        for source_id in source_session_ids:
            with self._registry_lock:
                source = self._sessions.get(source_id)
            if source is None or source is target:
                skipped.append(source_id)
                continue
            with source.lock:
                snapshots.append(SourceSnapshot(source.id, tuple(source.history)))
        if skipped:
            logger.warning("Transfer into %s skipped sources: %s", target.id, ", ".join(skipped))
        if not snapshots:
            raise SessionNotFound(", ".join(source_session_ids) or "<none>")

        with target.lock:
            if target.is_terminal:
                raise SessionStateError(target.id, target.status.value, "transfer into")
            with self._guard(target, "transfer"):
                result = self.transfer_engine.transfer(
                    transfer_strategy,
                    snapshots,
                    target.space,
                    sampler=target.sampler,
                    id_generator=self.ids,
                )
                if result.configurations:
                    target.replace_pool(result.configurations)
        logger.info(
            "Transferred knowledge into %s via %s from %d sessions (%s)",
            target.id,
            result.method,
            len(snapshots),
            result.status,
        )
        return TransferOutcome(
            transfer_result=result,
            expected_speedup=result.expected_speedup,
            skipped_sources=skipped,
        )

    def pause_session(self, session_id: str) -> Dict[str, Any]:
        session = self._session(session_id)
        with session.lock:
            session.transition(SessionStatus.PAUSED, operation="pause")
            logger.info("Session %s paused", session.id)
            return session.summary()

    def resume_session(self, session_id: str) -> Dict[str, Any]:
        session = self._session(session_id)
        with session.lock:
            session.require({SessionStatus.PAUSED}, "resume")
            session.transition(SessionStatus.RUNNING, operation="resume")
            logger.info("Session %s resumed", session.id)
            return session.summary()

    # ------------------------------------------------------------------
    # inspection
    # ------------------------------------------------------------------
    def get_session(self, session_id: str) -> Dict[str, Any]:
        session = self._session(session_id)
        with session.lock:
            return session.to_payload()

    def list_sessions(self, status: str | SessionStatus | None = None) -> List[Dict[str, Any]]:
        with self._registry_lock:
            sessions = list(self._sessions.values())
        wanted = SessionStatus(status) if status is not None else None
        summaries = []
        for session in sessions:
            with session.lock:
                if wanted is None or session.status is wanted:
                    summaries.append(session.summary())
        return summaries

    def export_optuna_study(self, session_id: str) -> optuna.study.Study:
        session = self._session(session_id)
        with session.lock:
            return export_study(session)

    def health(self) -> Dict[str, Any]:
        with self._registry_lock:
            spaces = len(self._spaces)
            statuses = [session.status for session in self._sessions.values()]
        return {
            "status": "healthy",
            "timestamp": self._clock().isoformat(),
            "search_spaces": spaces,
            "active_sessions": statuses.count(SessionStatus.RUNNING),
            "paused_sessions": statuses.count(SessionStatus.PAUSED),
            "completed_sessions": statuses.count(SessionStatus.COMPLETED),
            "failed_sessions": statuses.count(SessionStatus.FAILED),
            "strategies": len(StrategyKind),
        }

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def _session(self, session_id: str) -> TuningSession:
        with self._registry_lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    def _context(self, session: TuningSession) -> GenerationContext:
        return GenerationContext(
            space=session.space,
            history=session.history,
            sampler=session.sampler,
            id_generator=self.ids,
            average_score=session.statistics.average_score,
            params=session.strategy_params,
        )

    def _bootstrap_size(self, space: SearchSpace) -> int:
        bootstrap = self.settings.bootstrap
        return min(
            bootstrap.max_suggestions,
            math.floor(bootstrap.fraction * space.search_bounds.max_evaluations),
        )

    def _adaptive_settings(self, overrides: Mapping[str, Any] | None) -> AdaptiveSettings:
        payload: Dict[str, Any] = {"exploration_rate": self.settings.exploration.initial_rate}
        payload.update(overrides or {})
        if "explorationRate" in payload:
            payload.pop("exploration_rate", None)
        try:
            return AdaptiveSettings.model_validate(payload)
        except ValidationError as exc:
            raise InvalidConfiguration(
                format_validation_errors(exc, prefix="adaptive_settings")
            ) from exc

    def _validate_report(
        self,
        session: TuningSession,
        configuration_id: str,
        primary_metric: Any,
        auxiliary_metrics: Mapping[str, Any],
        resource_usage: Mapping[str, Any] | None,
        parameters: Mapping[str, Any] | None,
        numbers: Mapping[str, Any],
    ) -> tuple[Dict[str, Any], ResourceUsage]:
        errors: List[str] = []
        if not _is_finite(primary_metric):
            errors.append("primary_metric must be a finite number")
        for key, value in auxiliary_metrics.items():
            if not _is_finite(value):
                errors.append(f"auxiliary_metrics.{key} must be a finite number")
        for key, value in numbers.items():
            if not _is_finite(value) or value < 0:
                errors.append(f"{key} must be a finite non-negative number")

        usage = ResourceUsage()
        try:
            usage = ResourceUsage.model_validate(dict(resource_usage or {}))
        except ValidationError as exc:
            errors.extend(format_validation_errors(exc, prefix="resource_usage"))

        issued = session.issued.get(configuration_id)
        if issued is not None:
            snapshot = dict(issued.parameters)
        elif parameters is None:
            raise ConfigurationNotFound(configuration_id)
        else:
            snapshot = dict(parameters)
            errors.extend(_parameter_errors(session.space, snapshot))

        if errors:
            raise InvalidConfiguration(errors)
        return snapshot, usage

    @contextmanager
    def _guard(self, session: TuningSession, operation: str) -> Iterator[None]:
        try:
            yield
        except HyperSearchError:
            raise
        except Exception as exc:
            session.fail(exc, self._clock())
            logger.error("Session %s failed during %s", session.id, operation, exc_info=True)
            self._persist(self.store.save_session, session.summary(), f"session {session.id}")
            raise InternalFailure(session.id, exc) from exc

    def _persist(self, action: Callable[[Any], None], payload: Any, label: str) -> bool:
        try:
            action(payload)
        except Exception:
            logger.warning("Persisting %s failed; continuing in memory", label, exc_info=True)
            return False
        return True


def format_duration(seconds: float) -> str:
    total = max(0, int(seconds))
    hours, remainder = divmod(total, 3600)
    return f"{hours}h {remainder // 60}m"


def _suggestion_reason(configuration: ParameterConfiguration) -> str:
    if configuration.origin == "bootstrap":
        return "Bootstrap configuration from initial random batch."
    if configuration.origin == "warm_start":
        return "Warm start configuration transferred from a previous session."
    return f"Generated by {configuration.origin} strategy."


def _is_finite(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _parameter_errors(space: SearchSpace, parameters: Mapping[str, Any]) -> List[str]:
    errors = []
    known = set(space.parameter_names)
    for name in parameters:
        if name not in known:
            errors.append(f"Unknown parameter: {name}")
    for definition in space.parameters:
        if definition.name not in parameters:
            errors.append(f"Missing parameter: {definition.name}")
        elif not definition.contains(parameters[definition.name]):
            errors.append(f"Parameter {definition.name} value is outside its range")
    return errors


__all__ = [
    "Analysis",
    "EvaluationReport",
    "HyperparameterTuner",
    "SpaceDefinition",
    "StrategyAdjustment",
    "Suggestion",
    "TransferOutcome",
    "TuningStart",
    "format_duration",
]
