"""Command line interface for defining search spaces and replaying trial logs."""
from __future__ import annotations

import argparse
import csv
import json
import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Sequence

import yaml

from .analysis import ANALYSIS_TYPES
from .config import load_settings
from .engine import HyperparameterTuner
from .errors import ConfigurationError, HyperSearchError, SearchValidationError
from .persistence import JsonlStore, NullStore
from .space import ParameterDefinition, SearchSpace

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s"

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Define hyperparameter search spaces and replay evaluation logs."
    )
    parser.add_argument(
        "--settings",
        type=Path,
        help="Engine settings YAML (defaults to $HYPERSEARCH_CONFIG when set).",
    )
    parser.add_argument(
        "--log-level",
        help="Override the log level from the settings file.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    define_parser = subparsers.add_parser(
        "define",
        help="Validate a search space and print its complexity and ranked strategies.",
    )
    define_parser.add_argument("space", type=Path, help="Search space YAML file.")
    _add_store_argument(define_parser)

    replay_parser = subparsers.add_parser(
        "replay",
        help="Report every row of a trial log to a new session and print the analysis.",
    )
    replay_parser.add_argument("space", type=Path, help="Search space YAML file.")
    replay_parser.add_argument("log", type=Path, help="Trial log CSV with param_<name> columns.")
    replay_parser.add_argument(
        "--strategy",
        default="random",
        help="Strategy bound to the replay session (default: random).",
    )
    replay_parser.add_argument(
        "--metric",
        help="Metric column name; metric_<name> is tried first (default: target metric).",
    )
    replay_parser.add_argument(
        "--analysis",
        choices=ANALYSIS_TYPES,
        default="comprehensive",
        help="Analysis to print after replaying the log.",
    )
    _add_store_argument(replay_parser)
    return parser


def _add_store_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--store",
        type=Path,
        help="Directory for JSONL records of spaces and sessions (default: in memory only).",
    )


def load_space_document(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise SystemExit(f"Search space file not found: {path}")

    with path.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh)

    if not isinstance(data, dict):
        raise SystemExit("Search space root must be a mapping (YAML dictionary).")
    return data


def define_from_document(tuner: HyperparameterTuner, document: Mapping[str, Any]):
    try:
        return tuner.define_search_space(
            name=str(document.get("name", "search-space")),
            parameters=document.get("parameters"),
            constraints=document.get("constraints"),
            search_bounds=document.get("search_bounds", document.get("searchBounds")),
            sampling_strategy=str(
                document.get("sampling_strategy", document.get("samplingStrategy", "perturbation"))
            ),
            description=str(document.get("description", "")),
            metadata=document.get("metadata"),
        )
    except SearchValidationError as exc:
        details = "\n".join(f"- {error}" for error in exc.errors)
        raise SystemExit("Search space validation failed:\n" + details) from exc


def read_trial_log(path: Path, space: SearchSpace, metric: str) -> list[Dict[str, Any]]:
    """Parse rows of ``path`` into report payloads."""

    if not path.exists():
        raise SystemExit(f"Trial log not found: {path}")

    rows: list[Dict[str, Any]] = []
    with path.open("r", encoding="utf-8", newline="") as handle:
        reader = csv.DictReader(handle)
        fieldnames = reader.fieldnames or []
        metric_column = f"metric_{metric}" if f"metric_{metric}" in fieldnames else metric
        if metric_column not in fieldnames:
            raise SystemExit(f"Metric column not found in {path}: {metric}")
        for index, row in enumerate(reader):
            value = (row.get(metric_column) or "").strip()
            if not value:
                logger.warning("Skipping row %d without a %s value", index, metric_column)
                continue
            try:
                parameters = {
                    definition.name: _coerce_cell(definition, row.get(f"param_{definition.name}"))
                    for definition in space.parameters
                }
                primary_metric = float(value)
            except (ValueError, OverflowError) as exc:
                raise SystemExit(f"Invalid value in {path} row {index}: {exc}") from exc
            trial = (row.get("trial") or "").strip() or str(index)
            rows.append(
                {
                    "configuration_id": f"trial_{trial}",
                    "primary_metric": primary_metric,
                    "parameters": parameters,
                }
            )
    return rows


def _coerce_cell(definition: ParameterDefinition, raw: str | None) -> Any:
    if raw is None:
        return None
    text = raw.strip()
    if definition.kind == "continuous":
        return float(text)
    if definition.kind == "discrete":
        return int(float(text))
    if definition.kind == "boolean":
        return text.lower() in {"1", "true", "yes"}
    for choice in definition.choices:
        if str(choice) == text:
            return choice
    return text


def _make_tuner(args: argparse.Namespace, settings) -> HyperparameterTuner:
    store = JsonlStore(args.store) if args.store else NullStore()
    return HyperparameterTuner(settings=settings, store=store)


def _handle_define(args: argparse.Namespace, settings) -> None:
    tuner = _make_tuner(args, settings)
    definition = define_from_document(tuner, load_space_document(args.space))
    print(json.dumps(definition.to_payload(), indent=2, ensure_ascii=False, default=str))


def _handle_replay(args: argparse.Namespace, settings) -> None:
    tuner = _make_tuner(args, settings)
    definition = define_from_document(tuner, load_space_document(args.space))
    space = definition.search_space
    metric = args.metric or space.search_bounds.target_metric

    start = tuner.start_tuning(definition.space_id, args.strategy)
    rows = read_trial_log(args.log, space, metric)
    for row in rows:
        tuner.report_evaluation(start.session_id, **row)
    logger.info("Replayed %d evaluations into %s", len(rows), start.session_id)

    analysis = tuner.analyze_results(start.session_id, args.analysis)
    print(json.dumps(analysis.to_payload(), indent=2, ensure_ascii=False, default=str))


def configure_logging(level: str) -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)


def main(argv: Sequence[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    try:
        settings = load_settings(args.settings)
    except ConfigurationError as exc:
        raise SystemExit(str(exc)) from exc
    configure_logging(args.log_level or settings.log_level)

    try:
        if args.command == "define":
            _handle_define(args, settings)
        elif args.command == "replay":
            _handle_replay(args, settings)
    except HyperSearchError as exc:
        raise SystemExit(str(exc)) from exc


if __name__ == "__main__":
    main()
