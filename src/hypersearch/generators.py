"""Candidate generators, one per :class:`StrategyKind`."""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Mapping, Tuple

from .errors import InvalidConfiguration
from .history import EvaluationHistory
from .identifiers import IdGenerator
from .records import EvaluationResult, ParameterConfiguration
from .sampling import ParameterSampler
from .space import SearchSpace
from .strategy_catalog import StrategyKind

logger = logging.getLogger(__name__)


@dataclass
class GenerationContext:
    """Everything a generator may read when proposing a configuration."""

    space: SearchSpace
    history: EvaluationHistory
    sampler: ParameterSampler
    id_generator: IdGenerator
    average_score: float = 0.0
    params: Mapping[str, Any] = field(default_factory=dict)

    def new_configuration(
        self,
        parameters: Mapping[str, Any],
        origin: str,
        *,
        resource_budget: float | None = None,
        parent_ids: Tuple[str, ...] = (),
    ) -> ParameterConfiguration:
        return ParameterConfiguration(
            id=self.id_generator.new_id("config"),
            parameters=dict(parameters),
            origin=origin,
            resource_budget=resource_budget,
            parent_ids=parent_ids,
        )

    def random_parameters(self) -> Dict[str, Any]:
        return self.sampler.sample_all(self.space.parameters)


class CandidateGenerator(ABC):
    """Strategy interface: propose the next configuration to evaluate."""

    kind: StrategyKind

    def __init__(self, params: Mapping[str, Any] | None = None) -> None:
        self.params: Dict[str, Any] = dict(params or {})

    @abstractmethod
    def propose(self, context: GenerationContext) -> ParameterConfiguration:
        ...

    def observe(self, result: EvaluationResult) -> None:
        """Receive a reported result. Stateless generators ignore it."""


class RandomGenerator(CandidateGenerator):
    kind = StrategyKind.RANDOM

    def propose(self, context: GenerationContext) -> ParameterConfiguration:
        return context.new_configuration(context.random_parameters(), self.kind.value)


class PerturbationGenerator(CandidateGenerator):
    """Perturb a configuration that scored above the running average."""

    kind = StrategyKind.PERTURBATION

    def __init__(self, params: Mapping[str, Any] | None = None) -> None:
        super().__init__(params)
        self.scale = float(self.params.get("perturbation_scale", 0.1))
        if self.scale < 0:
            raise InvalidConfiguration(["perturbation_scale must be non-negative"])

    def propose(self, context: GenerationContext) -> ParameterConfiguration:
        if not len(context.history):
            return context.new_configuration(context.random_parameters(), self.kind.value)

        rng = context.sampler.rng
        promising = [
            result
            for result in context.history
            if result.primary_metric > context.average_score
        ]
        reference = rng.choice(promising or list(context.history))

        values: Dict[str, Any] = {}
        for definition in context.space.parameters:
            value = reference.parameters.get(definition.name)
            if value is None or not definition.contains(value):
                values[definition.name] = context.sampler.sample(definition)
            elif definition.kind == "continuous":
                factor = 1.0 + rng.uniform(-self.scale, self.scale)
                values[definition.name] = definition.clamp(float(value) * factor)
            else:
                values[definition.name] = value
        return context.new_configuration(
            values, self.kind.value, parent_ids=(reference.configuration_id,)
        )


class GeneticGenerator(CandidateGenerator):
    """Uniform crossover of the two best results followed by mutation."""

    kind = StrategyKind.GENETIC

    def __init__(self, params: Mapping[str, Any] | None = None) -> None:
        super().__init__(params)
        self.mutation_rate = float(self.params.get("mutation_rate", 0.1))
        self.crossover_probability = float(self.params.get("crossover_probability", 0.5))
        errors = []
        if not 0.0 <= self.mutation_rate <= 1.0:
            errors.append("mutation_rate must be between 0 and 1")
        if not 0.0 <= self.crossover_probability <= 1.0:
            errors.append("crossover_probability must be between 0 and 1")
        if errors:
            raise InvalidConfiguration(errors)

    def propose(self, context: GenerationContext) -> ParameterConfiguration:
        if len(context.history) < 2:
            return context.new_configuration(context.random_parameters(), self.kind.value)

        rng = context.sampler.rng
        first, second = context.history.top(2)
        child: Dict[str, Any] = {}
        for definition in context.space.parameters:
            donor = first if rng.random() < self.crossover_probability else second
            value = donor.parameters.get(definition.name)
            if value is None or not definition.contains(value):
                value = context.sampler.sample(definition)
            if rng.random() < self.mutation_rate:
                value = context.sampler.sample(definition)
            child[definition.name] = value
        return context.new_configuration(
            child,
            self.kind.value,
            parent_ids=(first.configuration_id, second.configuration_id),
        )


class ResourceStagedGenerator(CandidateGenerator):
    """Successive halving over a resource budget.

    A bracket starts with ``bracket_size`` random configurations at
    ``min_resource``. Once every member of a rung has a score the best
    ``1 / reduction_factor`` share is re-issued at ``reduction_factor`` times
    the budget. The bracket ends with a single survivor or at
    ``max_resource``. While a rung waits for results, extra random
    configurations keep callers busy and seed the next bracket.
    """

    kind = StrategyKind.RESOURCE_STAGED

    def __init__(self, params: Mapping[str, Any] | None = None) -> None:
        super().__init__(params)
        self.min_resource = float(self.params.get("min_resource", 1))
        self.max_resource = float(self.params.get("max_resource", 81))
        self.reduction_factor = int(self.params.get("reduction_factor", 3))
        bracket_size = self.params.get("bracket_size")
        self.bracket_size = (
            int(bracket_size) if bracket_size is not None else self.reduction_factor ** 2
        )
        errors = []
        if self.min_resource <= 0:
            errors.append("min_resource must be positive")
        if self.max_resource < self.min_resource:
            errors.append("max_resource must be at least min_resource")
        if self.reduction_factor < 2:
            errors.append("reduction_factor must be at least 2")
        if self.bracket_size < 1:
            errors.append("bracket_size must be at least 1")
        if errors:
            raise InvalidConfiguration(errors)

        self.budget = self.min_resource
        self.bracket = 0
        self._rung: List[str] = []
        self._queue: Deque[ParameterConfiguration] = deque()
        self._seeds: List[str] = []
        self._issued: Dict[str, ParameterConfiguration] = {}
        self._scores: Dict[str, float] = {}

    @property
    def rung(self) -> List[str]:
        return list(self._rung)

    def observe(self, result: EvaluationResult) -> None:
        if result.configuration_id in self._issued:
            self._scores[result.configuration_id] = result.primary_metric

    def propose(self, context: GenerationContext) -> ParameterConfiguration:
        if not self._rung:
            self._start_bracket(context)
        elif not self._queue and self._rung_complete():
            self._promote(context)

        if self._queue:
            return self._issue(self._queue.popleft())

        # rung still waiting on results: explore at the entry budget
        filler = context.new_configuration(
            context.random_parameters(),
            self.kind.value,
            resource_budget=self.min_resource,
        )
        self._seeds.append(filler.id)
        return self._issue(filler)

    def _issue(self, configuration: ParameterConfiguration) -> ParameterConfiguration:
        self._issued[configuration.id] = configuration
        return configuration

    def _rung_complete(self) -> bool:
        return all(config_id in self._scores for config_id in self._rung)

    def _start_bracket(self, context: GenerationContext) -> None:
        self.bracket += 1
        self.budget = self.min_resource
        self._rung = list(self._seeds)
        self._seeds = []
        while len(self._rung) < self.bracket_size:
            configuration = context.new_configuration(
                context.random_parameters(),
                self.kind.value,
                resource_budget=self.budget,
            )
            self._rung.append(configuration.id)
            self._queue.append(configuration)
        logger.debug(
            "Bracket %d started with %d configurations at budget %s",
            self.bracket,
            len(self._rung),
            self.budget,
        )
        if not self._queue and self._rung_complete():
            self._promote(context)

    def _promote(self, context: GenerationContext) -> None:
        if len(self._rung) <= 1 or self.budget >= self.max_resource:
            self._rung = []
            self._start_bracket(context)
            return

        ranked = sorted(self._rung, key=lambda config_id: self._scores[config_id], reverse=True)
        keep = ranked[: max(1, len(ranked) // self.reduction_factor)]
        self.budget = min(self.budget * self.reduction_factor, self.max_resource)
        self._rung = []
        for parent_id in keep:
            parent = self._issued[parent_id]
            configuration = context.new_configuration(
                parent.parameters,
                self.kind.value,
                resource_budget=self.budget,
                parent_ids=(parent_id,),
            )
            self._rung.append(configuration.id)
            self._queue.append(configuration)
        logger.debug(
            "Promoted %d of %d configurations to budget %s",
            len(keep),
            len(ranked),
            self.budget,
        )


_GENERATORS: dict[StrategyKind, type[CandidateGenerator]] = {
    StrategyKind.RANDOM: RandomGenerator,
    StrategyKind.PERTURBATION: PerturbationGenerator,
    StrategyKind.GENETIC: GeneticGenerator,
    StrategyKind.RESOURCE_STAGED: ResourceStagedGenerator,
}
assert set(_GENERATORS) == set(StrategyKind)


def create_generator(
    kind: StrategyKind, params: Mapping[str, Any] | None = None
) -> CandidateGenerator:
    """Instantiate the generator bound to ``kind`` for one session."""

    return _GENERATORS[kind](params)


__all__ = [
    "CandidateGenerator",
    "GenerationContext",
    "GeneticGenerator",
    "PerturbationGenerator",
    "RandomGenerator",
    "ResourceStagedGenerator",
    "create_generator",
]
