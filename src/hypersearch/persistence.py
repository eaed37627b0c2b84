"""Durable record stores for search spaces and session summaries."""
from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any, Mapping, Protocol

from .errors import PersistenceError
from .space import SearchSpace

SEARCH_SPACES_FILE = "search_spaces.jsonl"
SESSIONS_FILE = "sessions.jsonl"


class SearchSpaceStore(Protocol):
    def save_search_space(self, space: SearchSpace) -> None:
        ...

    def save_session(self, summary: Mapping[str, Any]) -> None:
        ...


class NullStore:
    """Store that keeps nothing; the engine's in-memory state is authoritative."""

    def save_search_space(self, space: SearchSpace) -> None:
        return None

    def save_session(self, summary: Mapping[str, Any]) -> None:
        return None


class JsonlStore:
    """Append JSON lines under ``root``, replacing a line that has the same id."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)
        self._lock = threading.Lock()

    @property
    def search_spaces_path(self) -> Path:
        return self.root / SEARCH_SPACES_FILE

    @property
    def sessions_path(self) -> Path:
        return self.root / SESSIONS_FILE

    def save_search_space(self, space: SearchSpace) -> None:
        self._persist(space.to_payload(), self.search_spaces_path, key="id")

    def save_session(self, summary: Mapping[str, Any]) -> None:
        self._persist(dict(summary), self.sessions_path, key="session_id")

    def load_search_spaces(self) -> list[dict[str, Any]]:
        return _load_lines(self.search_spaces_path)

    def load_sessions(self) -> list[dict[str, Any]]:
        return _load_lines(self.sessions_path)

    def _persist(self, payload: dict[str, Any], path: Path, *, key: str) -> None:
        try:
            with self._lock:
                path.parent.mkdir(parents=True, exist_ok=True)
                existing = _load_lines(path)
                for idx, entry in enumerate(existing):
                    if entry.get(key) == payload.get(key):
                        existing[idx] = payload
                        serialized = "\n".join(
                            json.dumps(item, ensure_ascii=False, default=str) for item in existing
                        )
                        path.write_text(serialized + "\n", encoding="utf-8")
                        return
                with path.open("a", encoding="utf-8") as handle:
                    handle.write(json.dumps(payload, ensure_ascii=False, default=str) + "\n")
        except OSError as exc:
            raise PersistenceError(f"Could not write {path}: {exc}") from exc


def _load_lines(path: Path) -> list[dict[str, Any]]:
    if not path.exists():
        return []
    entries: list[dict[str, Any]] = []
    with path.open("r", encoding="utf-8") as handle:
        for line in handle:
            text = line.strip()
            if not text:
                continue
            try:
                entries.append(json.loads(text))
            except json.JSONDecodeError:
                continue
    return entries


__all__ = ["JsonlStore", "NullStore", "SearchSpaceStore"]
