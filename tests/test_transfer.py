from __future__ import annotations

import logging
import random
from datetime import datetime, timezone

import pytest

from hypersearch.engine import HyperparameterTuner
from hypersearch.errors import SessionNotFound, StrategyNotFound
from hypersearch.identifiers import SequentialIdGenerator
from hypersearch.records import EvaluationResult
from hypersearch.transfer import NOT_YET_EFFECTIVE, SourceSnapshot, extract_meta_patterns

LR = {"name": "lr", "kind": "continuous", "range": {"min": 0.0001, "max": 0.1}}
MOMENTUM = {
    "name": "momentum",
    "kind": "continuous",
    "range": {"min": 0.0, "max": 1.0},
    "default_value": 0.9,
}


@pytest.fixture()
def tuner() -> HyperparameterTuner:
    return HyperparameterTuner(id_generator=SequentialIdGenerator(), rng=random.Random(11))


def _session(tuner: HyperparameterTuner, parameters: list[dict]) -> str:
    space_id = tuner.define_search_space(
        "transfer", parameters, search_bounds={"max_evaluations": 50}
    ).space_id
    return tuner.start_tuning(space_id, "random").session_id


@pytest.fixture()
def source(tuner: HyperparameterTuner) -> str:
    session_id = _session(tuner, [LR])
    for index, (lr, score) in enumerate([(0.01, 0.4), (0.05, 0.9), (0.002, 0.6)]):
        tuner.report_evaluation(session_id, f"src_{index}", score, parameters={"lr": lr})
    return session_id


def test_warm_start_seeds_target_with_best_source_configurations(
    tuner: HyperparameterTuner, source: str
) -> None:
    target = _session(tuner, [LR, MOMENTUM])

    outcome = tuner.transfer_knowledge([source], target, "warmstart")

    result = outcome.transfer_result
    assert result.status == "applied"
    assert outcome.expected_speedup == 1.0
    assert [config.parent_ids[0] for config in result.configurations] == ["src_1", "src_2", "src_0"]
    first = result.configurations[0]
    assert first.origin == "warm_start"
    assert first.parameters == {"lr": 0.05, "momentum": 0.9}

    suggestion = tuner.suggest_configuration(target)
    assert suggestion.suggestion.id == first.id
    assert suggestion.reason == "Warm start configuration transferred from a previous session."


def test_warm_start_keeps_handed_out_bootstrap_configurations(
    tuner: HyperparameterTuner, source: str
) -> None:
    space_id = tuner.define_search_space(
        "transfer", [LR], search_bounds={"max_evaluations": 50}
    ).space_id
    start = tuner.start_tuning(space_id, "random")
    bootstrap = start.initial_suggestions[0]

    tuner.transfer_knowledge([source], start.session_id, "warmstart")
    report = tuner.report_evaluation(start.session_id, bootstrap.id, 0.5)

    assert report.evaluation.configuration_id == bootstrap.id
    assert dict(report.evaluation.parameters) == dict(bootstrap.parameters)
    assert tuner.suggest_configuration(start.session_id).suggestion.origin == "warm_start"


def test_warm_start_keeps_top_k() -> None:
    tuner = HyperparameterTuner(id_generator=SequentialIdGenerator(), rng=random.Random(1))
    tuner.transfer_engine.top_k = 2
    source_id = _session(tuner, [LR])
    for index in range(4):
        tuner.report_evaluation(source_id, f"s{index}", float(index), parameters={"lr": 0.01})
    target = _session(tuner, [LR])

    outcome = tuner.transfer_knowledge([source_id], target, "warm_start")

    assert len(outcome.transfer_result.configurations) == 2
    assert outcome.transfer_result.to_payload()["transferred_configurations"] == 2


@pytest.mark.parametrize("strategy", ["meta_learning", "surrogate_transfer"])
def test_unimplemented_methods_report_status(
    tuner: HyperparameterTuner, source: str, strategy: str
) -> None:
    target = _session(tuner, [LR])

    outcome = tuner.transfer_knowledge([source], target, strategy)

    assert outcome.transfer_result.status == NOT_YET_EFFECTIVE
    assert outcome.expected_speedup == 1.0
    assert outcome.transfer_result.configurations == []


def test_unknown_sources_are_skipped(
    tuner: HyperparameterTuner, source: str, caplog: pytest.LogCaptureFixture
) -> None:
    target = _session(tuner, [LR])

    with caplog.at_level(logging.WARNING, logger="hypersearch.engine"):
        outcome = tuner.transfer_knowledge(["session_missing", target, source], target)

    assert outcome.skipped_sources == ["session_missing", target]
    assert outcome.transfer_result.source_sessions == [source]
    assert "session_missing" in caplog.text


def test_no_usable_source_raises(tuner: HyperparameterTuner) -> None:
    target = _session(tuner, [LR])

    with pytest.raises(SessionNotFound):
        tuner.transfer_knowledge(["session_missing"], target)
    with pytest.raises(SessionNotFound):
        tuner.transfer_knowledge([target], target)


def test_unknown_transfer_strategy(tuner: HyperparameterTuner, source: str) -> None:
    target = _session(tuner, [LR])

    with pytest.raises(StrategyNotFound):
        tuner.transfer_knowledge([source], target, "distillation")


def test_meta_patterns_describe_where_sources_peak() -> None:
    def results(scores):
        return tuple(
            EvaluationResult(
                configuration_id=f"c{i}",
                parameters={},
                primary_metric=score,
                timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
            )
            for i, score in enumerate(scores)
        )

    patterns = extract_meta_patterns(
        [
            SourceSnapshot("a", results([0.9, 0.1, 0.2, 0.3])),
            SourceSnapshot("b", results([0.1, 0.2, 0.3, 0.9])),
            SourceSnapshot("c", ()),
        ]
    )

    assert patterns == [
        {"pattern": "early_peak", "frequency": 0.5},
        {"pattern": "gradual_improvement", "frequency": 0.5},
    ]
