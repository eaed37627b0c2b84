"""Export a tuning session as an optuna study."""
from __future__ import annotations

from typing import Any, Dict

import optuna
from optuna.distributions import (
    BaseDistribution,
    CategoricalDistribution,
    FloatDistribution,
    IntDistribution,
)

from .session import TuningSession
from .space import ParameterDefinition

_CHOICE_TYPES = (type(None), bool, int, float, str)


def to_distribution(definition: ParameterDefinition) -> BaseDistribution:
    if definition.kind == "continuous":
        return FloatDistribution(
            float(definition.low), float(definition.high), log=definition.uses_log
        )
    if definition.kind == "discrete":
        return IntDistribution(
            int(definition.low), int(definition.high), log=definition.uses_log
        )
    if definition.kind == "boolean":
        return CategoricalDistribution((False, True))
    return CategoricalDistribution(tuple(_choice(value) for value in definition.choices))


def export_study(session: TuningSession, *, study_name: str | None = None) -> optuna.study.Study:
    """Build an in-memory study holding one completed trial per evaluation."""

    distributions = {
        definition.name: to_distribution(definition) for definition in session.space.parameters
    }
    study = optuna.create_study(
        study_name=study_name or session.id,
        direction="maximize",
    )
    study.set_user_attr("space_id", session.space.id)
    study.set_user_attr("strategy", session.strategy.value)
    for result in session.history:
        params = _trial_params(session, result.parameters)
        trial = optuna.trial.create_trial(
            params=params,
            distributions={name: distributions[name] for name in params},
            value=float(result.primary_metric),
            user_attrs={
                "configuration_id": result.configuration_id,
                "auxiliary_metrics": dict(result.auxiliary_metrics),
            },
        )
        study.add_trial(trial)
    return study


def _trial_params(session: TuningSession, parameters: Any) -> Dict[str, Any]:
    params: Dict[str, Any] = {}
    for definition in session.space.parameters:
        if definition.name not in parameters:
            continue
        value = parameters[definition.name]
        if definition.kind == "discrete":
            value = int(value)
        elif definition.kind == "continuous":
            value = float(value)
        elif definition.kind == "categorical":
            value = _choice(value)
        params[definition.name] = value
    return params


def _choice(value: Any) -> Any:
    # optuna only stores primitive categorical choices
    if isinstance(value, _CHOICE_TYPES):
        return value
    return str(value)


__all__ = ["export_study", "to_distribution"]
