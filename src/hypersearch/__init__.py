"""Hyperparameter search sessions with pluggable candidate strategies."""

from .config import EngineSettings, load_settings
from .engine import HyperparameterTuner
from .errors import (
    ConfigurationError,
    ConfigurationNotFound,
    HyperSearchError,
    InternalFailure,
    InvalidConfiguration,
    InvalidSearchSpace,
    NotFoundError,
    PersistenceError,
    SearchValidationError,
    SessionNotFound,
    SessionStateError,
    SpaceNotFound,
    StrategyNotFound,
)
from .identifiers import SequentialIdGenerator, UUIDIdGenerator
from .persistence import JsonlStore, NullStore
from .sampling import ParameterSampler
from .session import SessionStatus
from .space import ParameterDefinition, SearchSpace
from .strategy_catalog import StrategyKind

__all__ = [
    "ConfigurationError",
    "ConfigurationNotFound",
    "EngineSettings",
    "HyperSearchError",
    "HyperparameterTuner",
    "InternalFailure",
    "InvalidConfiguration",
    "InvalidSearchSpace",
    "JsonlStore",
    "NotFoundError",
    "NullStore",
    "ParameterDefinition",
    "ParameterSampler",
    "PersistenceError",
    "SearchSpace",
    "SearchValidationError",
    "SequentialIdGenerator",
    "SessionNotFound",
    "SessionStateError",
    "SessionStatus",
    "SpaceNotFound",
    "StrategyKind",
    "UUIDIdGenerator",
    "load_settings",
]
