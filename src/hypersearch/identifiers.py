"""Identifier generators injected into the engine."""
from __future__ import annotations

import threading
from collections import defaultdict
from typing import Dict, Protocol
from uuid import uuid4


class IdGenerator(Protocol):
    def new_id(self, kind: str) -> str:
        """Return a fresh identifier for an object of ``kind``."""


class UUIDIdGenerator:
    """Default generator: ``<kind>_<uuid4 hex>``."""

    def new_id(self, kind: str) -> str:
        return f"{kind}_{uuid4().hex}"


class SequentialIdGenerator:
    """Monotonic per-kind counters, handy for deterministic tests.

    >>> ids = SequentialIdGenerator()
    >>> ids.new_id("space"), ids.new_id("space"), ids.new_id("session")
    ('space_0001', 'space_0002', 'session_0001')
    """

    def __init__(self, *, width: int = 4) -> None:
        self._width = width
        self._counters: Dict[str, int] = defaultdict(int)
        self._lock = threading.Lock()

    def new_id(self, kind: str) -> str:
        with self._lock:
            self._counters[kind] += 1
            value = self._counters[kind]
        return f"{kind}_{value:0{self._width}d}"


__all__ = ["IdGenerator", "SequentialIdGenerator", "UUIDIdGenerator"]
