"""Exception hierarchy shared by the search engine."""
from __future__ import annotations

from typing import Iterable, List


class HyperSearchError(Exception):
    """Base class for every error raised by :mod:`hypersearch`."""


class ConfigurationError(HyperSearchError):
    """Engine settings could not be loaded or validated."""


class SearchValidationError(HyperSearchError):
    """A caller supplied payload violated one or more rules.

    All violations are collected so callers can fix them in a single pass.
    """

    def __init__(self, errors: Iterable[str], *, prefix: str = "Validation failed") -> None:
        self.errors: List[str] = [str(error) for error in errors]
        message = prefix
        if self.errors:
            message = f"{prefix}: " + "; ".join(self.errors)
        super().__init__(message)


class InvalidSearchSpace(SearchValidationError):
    def __init__(self, errors: Iterable[str]) -> None:
        super().__init__(errors, prefix="Invalid search space")


class InvalidConfiguration(SearchValidationError):
    def __init__(self, errors: Iterable[str]) -> None:
        super().__init__(errors, prefix="Invalid configuration")


class NotFoundError(HyperSearchError):
    """Lookup of an unknown identifier."""

    kind = "object"

    def __init__(self, identifier: str, message: str | None = None) -> None:
        self.identifier = identifier
        super().__init__(message or f"{self.kind} not found: {identifier}")


class SpaceNotFound(NotFoundError):
    kind = "Search space"


class SessionNotFound(NotFoundError):
    kind = "Session"


class StrategyNotFound(NotFoundError):
    kind = "Strategy"


class ConfigurationNotFound(NotFoundError):
    kind = "Configuration"


class SessionStateError(HyperSearchError):
    """Operation is not allowed in the session's current status."""

    def __init__(self, session_id: str, status: str, operation: str) -> None:
        self.session_id = session_id
        self.status = status
        self.operation = operation
        super().__init__(
            f"Cannot {operation} session {session_id} while it is {status}"
        )


class InternalFailure(HyperSearchError):
    """Unexpected error during strategy execution; the session is now failed."""

    def __init__(self, session_id: str, cause: BaseException) -> None:
        self.session_id = session_id
        self.cause = cause
        super().__init__(
            f"Session {session_id} failed: {type(cause).__name__}: {cause}"
        )


class PersistenceError(HyperSearchError):
    """Raised by record stores. The engine logs these and carries on."""


__all__ = [
    "ConfigurationError",
    "ConfigurationNotFound",
    "HyperSearchError",
    "InternalFailure",
    "InvalidConfiguration",
    "InvalidSearchSpace",
    "NotFoundError",
    "PersistenceError",
    "SearchValidationError",
    "SessionNotFound",
    "SessionStateError",
    "SpaceNotFound",
    "StrategyNotFound",
]
