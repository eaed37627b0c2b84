"""Draw values for individual parameter definitions."""
from __future__ import annotations

import math
import random
from typing import Any, Dict, Iterable

from .space import ParameterDefinition


class ParameterSampler:
    """Samples one value per :class:`ParameterDefinition`.

    The sampler never looks at evaluation history; its only state is the
    injected random source, so two samplers seeded identically produce the
    same stream of values.
    """

    def __init__(self, rng: random.Random | None = None) -> None:
        self.rng = rng or random.Random()

    def sample(self, definition: ParameterDefinition) -> Any:
        kind = definition.kind
        if kind == "boolean":
            return self.rng.random() < 0.5
        if kind == "categorical":
            return self.rng.choice(definition.choices)
        if kind == "discrete":
            return self._sample_discrete(definition)
        return self._sample_continuous(definition)

    def sample_all(self, definitions: Iterable[ParameterDefinition]) -> Dict[str, Any]:
        return {definition.name: self.sample(definition) for definition in definitions}

    def _sample_discrete(self, definition: ParameterDefinition) -> int:
        low, high = int(definition.low), int(definition.high)
        value = math.floor(low + self.rng.random() * (high - low + 1))
        return int(min(value, high))

    def _sample_continuous(self, definition: ParameterDefinition) -> float:
        low, high = float(definition.low), float(definition.high)
        distribution = definition.distribution

        if distribution == "log_uniform":
            return self._log_uniform(low, high)
        if distribution == "normal":
            value = self._gaussian((low + high) / 2.0, (high - low) / 6.0)
            return definition.clamp(value)
        if distribution == "log_normal":
            log_low, log_high = math.log(low), math.log(high)
            value = self._gaussian((log_low + log_high) / 2.0, (log_high - log_low) / 6.0)
            return definition.clamp(math.exp(value))

        if definition.scale == "log":
            return self._log_uniform(low, high)
        if definition.scale == "sqrt" and low >= 0:
            root_low, root_high = math.sqrt(low), math.sqrt(high)
            root = root_low + self.rng.random() * (root_high - root_low)
            return definition.clamp(root * root)
        return definition.clamp(low + self.rng.random() * (high - low))

    def _log_uniform(self, low: float, high: float) -> float:
        log_low, log_high = math.log(low), math.log(high)
        value = math.exp(log_low + self.rng.random() * (log_high - log_low))
        return max(low, min(high, value))

    def _gaussian(self, mean: float, std: float) -> float:
        # Box-Muller; 1 - random() keeps the log argument in (0, 1]
        u1 = 1.0 - self.rng.random()
        u2 = self.rng.random()
        z = math.sqrt(-2.0 * math.log(u1)) * math.cos(2.0 * math.pi * u2)
        return mean + z * std


__all__ = ["ParameterSampler"]
