from __future__ import annotations

import math
import random

import pytest

from hypersearch.sampling import ParameterSampler
from hypersearch.space import ParameterDefinition

DEFINITIONS = [
    {"name": "uniform", "kind": "continuous", "range": {"min": -2.0, "max": 3.0}},
    {"name": "log", "kind": "continuous", "range": {"min": 1e-5, "max": 1.0}, "distribution": "log_uniform"},
    {"name": "normal", "kind": "continuous", "range": {"min": 0.0, "max": 1.0}, "distribution": "normal"},
    {"name": "lognormal", "kind": "continuous", "range": {"min": 0.01, "max": 10.0}, "distribution": "log_normal"},
    {"name": "logscale", "kind": "continuous", "range": {"min": 0.1, "max": 100.0}, "scale": "log"},
    {"name": "sqrtscale", "kind": "continuous", "range": {"min": 0.0, "max": 4.0}, "scale": "sqrt"},
    {"name": "discrete", "kind": "discrete", "range": {"min": 2, "max": 5}},
    {"name": "categorical", "kind": "categorical", "range": ["relu", "gelu", 3]},
    {"name": "flag", "kind": "boolean"},
]


@pytest.mark.parametrize("payload", DEFINITIONS, ids=[item["name"] for item in DEFINITIONS])
def test_samples_stay_in_domain(payload: dict) -> None:
    definition = ParameterDefinition.model_validate(payload)
    sampler = ParameterSampler(random.Random(7))

    for _ in range(500):
        value = sampler.sample(definition)
        assert definition.contains(value), value


def test_discrete_sampling_covers_both_bounds() -> None:
    definition = ParameterDefinition.model_validate(DEFINITIONS[6])
    sampler = ParameterSampler(random.Random(1))

    values = {sampler.sample(definition) for _ in range(400)}

    assert values == {2, 3, 4, 5}
    assert all(isinstance(value, int) for value in values)


def test_log_uniform_spreads_over_magnitudes() -> None:
    definition = ParameterDefinition.model_validate(DEFINITIONS[1])
    sampler = ParameterSampler(random.Random(3))

    exponents = {math.floor(math.log10(sampler.sample(definition))) for _ in range(500)}

    assert {-5, -4, -3, -2, -1}.issubset(exponents)


def test_same_seed_reproduces_samples() -> None:
    definitions = [ParameterDefinition.model_validate(item) for item in DEFINITIONS]

    first = ParameterSampler(random.Random(42)).sample_all(definitions)
    second = ParameterSampler(random.Random(42)).sample_all(definitions)

    assert first == second
    assert list(first) == [item["name"] for item in DEFINITIONS]


def test_contains_rejects_wrong_types() -> None:
    continuous = ParameterDefinition.model_validate(DEFINITIONS[0])
    discrete = ParameterDefinition.model_validate(DEFINITIONS[6])
    flag = ParameterDefinition.model_validate(DEFINITIONS[8])
    categorical = ParameterDefinition.model_validate(DEFINITIONS[7])

    assert not continuous.contains(True)
    assert not continuous.contains(float("nan"))
    assert not continuous.contains(3.5)
    assert not discrete.contains(2.5)
    assert discrete.contains(3.0)
    assert not flag.contains(1)
    assert not categorical.contains("tanh")
    assert categorical.contains(3)
