"""Search space schema, validation and complexity estimation."""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Mapping, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, ValidationError, model_validator
from pydantic.alias_generators import to_camel

from .config import format_validation_errors
from .errors import InvalidSearchSpace

ParameterKind = Literal["continuous", "discrete", "categorical", "boolean"]
Distribution = Literal["uniform", "normal", "log_uniform", "log_normal"]
Scale = Literal["linear", "log", "sqrt"]
Importance = Literal["critical", "high", "medium", "low"]
NoiseLevel = Literal["low", "medium", "high"]

_LOG_DISTRIBUTIONS = {"log_uniform", "log_normal"}
_NUMERIC_KINDS = {"continuous", "discrete"}


class _Schema(BaseModel):
    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )


class ParameterDependency(_Schema):
    """Conditional rule attached to a parameter. Recorded, never evaluated."""

    parameter: str
    condition: str = ""
    effect: Literal["enable", "disable", "modify_range", "modify_distribution"] = "enable"


class ParameterConstraint(_Schema):
    """Advisory relation between parameters; callers detect violations."""

    type: Literal["equality", "inequality", "conditional", "mutual_exclusion"]
    parameters: List[str]
    condition: str = ""
    violation_penalty: float = 0.0


class ParameterDefinition(_Schema):
    name: str = ""
    kind: ParameterKind
    range: Any = None
    distribution: Distribution = "uniform"
    scale: Scale = "linear"
    importance: Importance = "medium"
    dependencies: List[ParameterDependency] = []
    default_value: Any = None

    @model_validator(mode="before")
    @classmethod
    def normalise_payload(cls, data: Any) -> Any:
        if not isinstance(data, Mapping):
            return data
        payload = dict(data)
        # payloads may name the kind "type"
        if "kind" not in payload and "type" in payload:
            payload["kind"] = payload.pop("type")
        if payload.get("distribution") == "categorical":
            payload["distribution"] = "uniform"
        if payload.get("kind") == "boolean" and payload.get("range") is None:
            payload["range"] = [False, True]
        return payload

    @property
    def low(self) -> float:
        return self.range["min"]

    @property
    def high(self) -> float:
        return self.range["max"]

    @property
    def choices(self) -> List[Any]:
        if self.kind == "boolean":
            return [False, True]
        return list(self.range)

    @property
    def uses_log(self) -> bool:
        return self.distribution in _LOG_DISTRIBUTIONS or self.scale == "log"

    def contains(self, value: Any) -> bool:
        """Return whether ``value`` is a legal value for this parameter."""

        if self.kind == "boolean":
            return isinstance(value, bool)
        if self.kind == "categorical":
            return any(_same_choice(value, choice) for choice in self.choices)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False
        if not math.isfinite(value):
            return False
        if self.kind == "discrete" and not float(value).is_integer():
            return False
        return self.low <= value <= self.high

    def clamp(self, value: float) -> float:
        return max(self.low, min(self.high, value))


class SearchBounds(_Schema):
    max_evaluations: int
    max_time_seconds: float | None = None
    early_stopping_patience: int = 10
    target_metric: str = "score"
    target_value: float | None = None
    improvement_threshold: float = 1e-3


class SpaceMetadata(BaseModel):
    model_config = ConfigDict(
        extra="allow",
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )

    task_type: str = ""
    model_type: str = ""
    noise_level: NoiseLevel | None = None


@dataclass(frozen=True)
class SearchSpace:
    """Validated, read-only description of one tuning problem."""

    id: str
    name: str
    parameters: Tuple[ParameterDefinition, ...]
    search_bounds: SearchBounds
    constraints: Tuple[ParameterConstraint, ...] = ()
    description: str = ""
    sampling_strategy: str = "perturbation"
    metadata: SpaceMetadata = field(default_factory=SpaceMetadata)

    @property
    def parameter_names(self) -> List[str]:
        return [param.name for param in self.parameters]

    def parameter(self, name: str) -> ParameterDefinition:
        for param in self.parameters:
            if param.name == name:
                return param
        raise KeyError(name)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "parameters": [param.model_dump(mode="json") for param in self.parameters],
            "constraints": [item.model_dump(mode="json") for item in self.constraints],
            "search_bounds": self.search_bounds.model_dump(mode="json"),
            "sampling_strategy": self.sampling_strategy,
            "metadata": self.metadata.model_dump(mode="json"),
        }


@dataclass(frozen=True)
class ValidationReport:
    is_valid: bool
    errors: List[str]
    warnings: List[str]

    def to_payload(self) -> Dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }


@dataclass(frozen=True)
class ComplexityEstimate:
    dimensionality: int
    continuous_params: int
    discrete_params: int
    categorical_params: int
    boolean_params: int
    constraints: int
    overall_complexity: str
    estimated_evaluations: float

    def to_payload(self) -> Dict[str, Any]:
        return {
            "dimensionality": self.dimensionality,
            "continuous_params": self.continuous_params,
            "discrete_params": self.discrete_params,
            "categorical_params": self.categorical_params,
            "boolean_params": self.boolean_params,
            "constraints": self.constraints,
            "overall_complexity": self.overall_complexity,
            "estimated_evaluations": self.estimated_evaluations,
        }


def build_search_space(
    space_id: str,
    *,
    name: str,
    parameters: Sequence[Mapping[str, Any] | ParameterDefinition] | None,
    search_bounds: Mapping[str, Any] | SearchBounds | None,
    constraints: Sequence[Mapping[str, Any] | ParameterConstraint] | None = None,
    sampling_strategy: str = "perturbation",
    description: str = "",
    metadata: Mapping[str, Any] | SpaceMetadata | None = None,
) -> Tuple[SearchSpace, ValidationReport]:
    """Parse and validate a search space definition.

    Every violation is collected before :class:`InvalidSearchSpace` is raised,
    so a caller sees the complete list in one response.
    """

    errors: List[str] = []

    parsed_params: List[ParameterDefinition] = []
    for idx, raw in enumerate(parameters or []):
        try:
            parsed_params.append(_coerce(ParameterDefinition, raw))
        except ValidationError as exc:
            errors.extend(format_validation_errors(exc, prefix=f"parameters[{idx}]"))

    parsed_constraints: List[ParameterConstraint] = []
    for idx, raw in enumerate(constraints or []):
        try:
            parsed_constraints.append(_coerce(ParameterConstraint, raw))
        except ValidationError as exc:
            errors.extend(format_validation_errors(exc, prefix=f"constraints[{idx}]"))

    bounds: SearchBounds | None = None
    try:
        bounds = _coerce(SearchBounds, search_bounds or {})
    except ValidationError as exc:
        errors.extend(format_validation_errors(exc, prefix="search_bounds"))

    parsed_metadata = SpaceMetadata()
    try:
        parsed_metadata = _coerce(SpaceMetadata, metadata or {})
    except ValidationError as exc:
        errors.extend(format_validation_errors(exc, prefix="metadata"))

    if not parameters:
        errors.insert(0, "Search space must have at least one parameter")

    errors.extend(_parameter_errors(parsed_params))
    known = {param.name for param in parsed_params}
    for constraint in parsed_constraints:
        for ref in constraint.parameters:
            if ref not in known:
                errors.append(f"Constraint references unknown parameter: {ref}")
    for param in parsed_params:
        for dependency in param.dependencies:
            if dependency.parameter not in known:
                errors.append(
                    f"Parameter {param.name} depends on unknown parameter: {dependency.parameter}"
                )

    if bounds is not None:
        errors.extend(_bounds_errors(bounds))

    if errors or bounds is None:
        raise InvalidSearchSpace(errors)

    warnings: List[str] = []
    if parsed_constraints:
        warnings.append("Constraints are advisory; violation detection is left to the caller")
    if any(param.dependencies for param in parsed_params):
        warnings.append("Parameter dependencies are recorded but not evaluated")

    space = SearchSpace(
        id=space_id,
        name=name,
        description=description,
        parameters=tuple(parsed_params),
        constraints=tuple(parsed_constraints),
        search_bounds=bounds,
        sampling_strategy=sampling_strategy,
        metadata=parsed_metadata,
    )
    return space, ValidationReport(is_valid=True, errors=[], warnings=warnings)


def estimate_complexity(space: SearchSpace) -> ComplexityEstimate:
    kinds = [param.kind for param in space.parameters]
    dimensionality = len(kinds)
    constraints = len(space.constraints)

    complexity = "low"
    if dimensionality > 10 or constraints > 5:
        complexity = "medium"
    if dimensionality > 50 or constraints > 10:
        complexity = "high"

    return ComplexityEstimate(
        dimensionality=dimensionality,
        continuous_params=kinds.count("continuous"),
        discrete_params=kinds.count("discrete"),
        categorical_params=kinds.count("categorical"),
        boolean_params=kinds.count("boolean"),
        constraints=constraints,
        overall_complexity=complexity,
        estimated_evaluations=min(
            float(space.search_bounds.max_evaluations), 10 ** (dimensionality / 5)
        ),
    )


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------
def _coerce(model: type, raw: Any) -> Any:
    if isinstance(raw, model):
        return raw
    return model.model_validate(raw)


def _parameter_errors(params: Sequence[ParameterDefinition]) -> List[str]:
    errors: List[str] = []
    seen: set[str] = set()
    for param in params:
        if not param.name.strip():
            errors.append("Parameter names cannot be empty")
        elif param.name in seen:
            errors.append(f"Duplicate parameter name: {param.name}")
        seen.add(param.name)

        if param.range is None:
            errors.append(f"Parameter {param.name} must have a range defined")
            continue
        range_errors = _range_errors(param)
        errors.extend(range_errors)
        if range_errors:
            continue
        if param.default_value is not None and not param.contains(param.default_value):
            errors.append(f"Parameter {param.name} default value is outside its range")
    return errors


def _range_errors(param: ParameterDefinition) -> List[str]:
    name = param.name
    if param.kind in _NUMERIC_KINDS:
        value = param.range
        if not isinstance(value, Mapping) or "min" not in value or "max" not in value:
            return [f"Parameter {name} range must define min and max"]
        low, high = value["min"], value["max"]
        if not all(_is_number(bound) for bound in (low, high)):
            return [f"Parameter {name} range bounds must be finite numbers"]
        if param.kind == "continuous" and low >= high:
            return [f"Parameter {name} requires min < max"]
        if param.kind == "discrete":
            if not (float(low).is_integer() and float(high).is_integer()):
                return [f"Parameter {name} discrete bounds must be integers"]
            if low > high:
                return [f"Parameter {name} requires min <= max"]
        if param.uses_log and low <= 0:
            return [f"Parameter {name} uses a log distribution and requires min > 0"]
        return []

    if param.kind == "categorical":
        if isinstance(param.range, (str, bytes, Mapping)) or not isinstance(param.range, Sequence):
            return [f"Parameter {name} range must be a list of choices"]
        if not param.range:
            return [f"Parameter {name} requires at least one choice"]
    return []


def _bounds_errors(bounds: SearchBounds) -> List[str]:
    errors: List[str] = []
    if bounds.max_evaluations <= 0:
        errors.append("Max evaluations must be positive")
    if bounds.max_time_seconds is not None and bounds.max_time_seconds <= 0:
        errors.append("Max time must be positive when provided")
    if bounds.early_stopping_patience <= 0:
        errors.append("Early stopping patience must be positive")
    if bounds.improvement_threshold < 0:
        errors.append("Improvement threshold must be non-negative")
    return errors


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _same_choice(value: Any, choice: Any) -> bool:
    # keep True distinct from 1 when matching categorical choices
    if isinstance(value, bool) != isinstance(choice, bool):
        return False
    return value == choice


__all__ = [
    "ComplexityEstimate",
    "ParameterConstraint",
    "ParameterDefinition",
    "ParameterDependency",
    "SearchBounds",
    "SearchSpace",
    "SpaceMetadata",
    "ValidationReport",
    "build_search_space",
    "estimate_complexity",
]
