from __future__ import annotations

import json
import logging
import random
from pathlib import Path

import pytest

from hypersearch.engine import HyperparameterTuner
from hypersearch.errors import PersistenceError
from hypersearch.identifiers import SequentialIdGenerator
from hypersearch.persistence import SEARCH_SPACES_FILE, SESSIONS_FILE, JsonlStore

LR = {"name": "lr", "kind": "continuous", "range": {"min": 0.0001, "max": 0.1}}


class BrokenStore:
    def save_search_space(self, space) -> None:
        raise PersistenceError("disk full")

    def save_session(self, summary) -> None:
        raise PersistenceError("disk full")


def test_jsonl_store_appends_and_replaces(tmp_path: Path) -> None:
    store = JsonlStore(tmp_path / "records")

    store.save_session({"session_id": "s1", "status": "running"})
    store.save_session({"session_id": "s2", "status": "running"})
    store.save_session({"session_id": "s1", "status": "completed"})

    lines = (tmp_path / "records" / SESSIONS_FILE).read_text(encoding="utf-8").splitlines()
    assert [json.loads(line) for line in lines] == [
        {"session_id": "s1", "status": "completed"},
        {"session_id": "s2", "status": "running"},
    ]
    assert store.load_sessions()[0]["status"] == "completed"


def test_engine_writes_search_spaces_and_completed_sessions(tmp_path: Path) -> None:
    store = JsonlStore(tmp_path)
    tuner = HyperparameterTuner(
        store=store, id_generator=SequentialIdGenerator(), rng=random.Random(0)
    )
    definition = tuner.define_search_space(
        "stored", [LR], search_bounds={"max_evaluations": 1}
    )
    session_id = tuner.start_tuning(definition.space_id, "random").session_id
    tuner.report_evaluation(session_id, "ext_1", 0.5, parameters={"lr": 0.01})
    tuner.suggest_configuration(session_id)

    spaces = store.load_search_spaces()
    assert (tmp_path / SEARCH_SPACES_FILE).exists()
    assert [entry["id"] for entry in spaces] == [definition.space_id]
    assert spaces[0]["parameters"][0]["name"] == "lr"

    sessions = store.load_sessions()
    assert sessions[0]["session_id"] == session_id
    assert sessions[0]["status"] == "completed"


def test_store_failures_are_logged_not_raised(caplog: pytest.LogCaptureFixture) -> None:
    tuner = HyperparameterTuner(store=BrokenStore(), id_generator=SequentialIdGenerator())

    with caplog.at_level(logging.WARNING, logger="hypersearch.engine"):
        definition = tuner.define_search_space(
            "volatile", [LR], search_bounds={"max_evaluations": 5}
        )

    assert definition.persisted is False
    assert "Persisting search space space_0001 failed" in caplog.text
    assert tuner.get_search_space(definition.space_id) is definition.search_space


def test_unwritable_root_raises_persistence_error(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    store = JsonlStore(blocker)

    with pytest.raises(PersistenceError):
        store.save_session({"session_id": "s1"})
