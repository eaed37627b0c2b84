from __future__ import annotations

import contextlib
import io
import json
import tempfile
from pathlib import Path
from unittest import TestCase

from hypersearch import cli

SPACE_YAML = """\
name: lr-search
parameters:
  - name: lr
    type: continuous
    range: {min: 0.0001, max: 0.1}
  - name: optimizer
    type: categorical
    range: [adam, sgd]
searchBounds:
  maxEvaluations: 20
"""


class CliTests(TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.space_path = self.root / "space.yaml"
        self.space_path.write_text(SPACE_YAML, encoding="utf-8")

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _invoke(self, *args: str) -> str:
        stdout = io.StringIO()
        with contextlib.redirect_stdout(stdout):
            cli.main(list(args))
        return stdout.getvalue()

    def test_define_prints_validation_and_strategies(self) -> None:
        output = json.loads(self._invoke("define", str(self.space_path)))

        self.assertTrue(output["validation"]["is_valid"])
        self.assertEqual(output["complexity_estimate"]["dimensionality"], 2)
        self.assertEqual(len(output["recommended_strategies"]), 4)
        self.assertEqual(output["search_space"]["search_bounds"]["max_evaluations"], 20)

    def test_define_persists_to_store(self) -> None:
        store = self.root / "records"
        output = json.loads(self._invoke("define", str(self.space_path), "--store", str(store)))

        lines = (store / "search_spaces.jsonl").read_text(encoding="utf-8").splitlines()
        self.assertEqual(json.loads(lines[0])["id"], output["space_id"])

    def test_define_lists_every_violation(self) -> None:
        bad = self.root / "bad.yaml"
        bad.write_text(
            "name: broken\nparameters:\n  - name: lr\n    type: continuous\n"
            "    range: {min: 1.0, max: 0.5}\nsearchBounds:\n  maxEvaluations: 0\n",
            encoding="utf-8",
        )

        with self.assertRaises(SystemExit) as ctx:
            self._invoke("define", str(bad))

        message = str(ctx.exception)
        self.assertIn("Search space validation failed:", message)
        self.assertIn("- Parameter lr requires min < max", message)
        self.assertIn("- Max evaluations must be positive", message)

    def test_missing_and_malformed_documents(self) -> None:
        with self.assertRaises(SystemExit) as ctx:
            self._invoke("define", str(self.root / "absent.yaml"))
        self.assertIn("Search space file not found", str(ctx.exception))

        listing = self.root / "list.yaml"
        listing.write_text("- 1\n", encoding="utf-8")
        with self.assertRaises(SystemExit) as ctx:
            self._invoke("define", str(listing))
        self.assertIn("must be a mapping", str(ctx.exception))

    def test_replay_reports_trial_log(self) -> None:
        log = self.root / "trials.csv"
        log.write_text(
            "trial,param_lr,param_optimizer,metric_score\n"
            "0,0.01,adam,0.4\n"
            "1,0.02,sgd,0.7\n"
            "2,0.03,adam,\n"
            "3,0.05,sgd,0.6\n",
            encoding="utf-8",
        )

        output = json.loads(
            self._invoke("replay", str(self.space_path), str(log), "--analysis", "convergence")
        )

        summary = output["session_summary"]
        self.assertEqual(summary["total_evaluations"], 3)
        self.assertEqual(summary["best_score"], 0.7)
        self.assertEqual(summary["strategy"], "random")
        self.assertEqual(set(output["results"]), {"convergence"})

    def test_replay_rejects_unknown_metric(self) -> None:
        log = self.root / "trials.csv"
        log.write_text("trial,param_lr,param_optimizer,loss\n0,0.01,adam,0.4\n", encoding="utf-8")

        with self.assertRaises(SystemExit) as ctx:
            self._invoke("replay", str(self.space_path), str(log))

        self.assertIn("Metric column not found", str(ctx.exception))

    def test_replay_uses_plain_metric_column(self) -> None:
        log = self.root / "trials.csv"
        log.write_text("trial,param_lr,param_optimizer,loss\n0,0.01,adam,0.4\n", encoding="utf-8")

        output = json.loads(
            self._invoke("replay", str(self.space_path), str(log), "--metric", "loss")
        )

        self.assertEqual(output["session_summary"]["best_score"], 0.4)

    def test_out_of_range_rows_exit_with_details(self) -> None:
        log = self.root / "trials.csv"
        log.write_text("trial,param_lr,param_optimizer,metric_score\n0,5.0,adam,0.4\n", encoding="utf-8")

        with self.assertRaises(SystemExit) as ctx:
            self._invoke("replay", str(self.space_path), str(log))

        self.assertIn("Parameter lr value is outside its range", str(ctx.exception))

    def test_malformed_cells_exit_with_row(self) -> None:
        log = self.root / "trials.csv"
        log.write_text(
            "trial,param_lr,param_optimizer,metric_score\n0,0.01,adam,0.4\n1,,sgd,0.5\n",
            encoding="utf-8",
        )

        with self.assertRaises(SystemExit) as ctx:
            self._invoke("replay", str(self.space_path), str(log))
        self.assertIn(f"Invalid value in {log} row 1:", str(ctx.exception))

        log.write_text(
            "trial,param_lr,param_optimizer,metric_score\n0,0.01,adam,high\n", encoding="utf-8"
        )
        with self.assertRaises(SystemExit) as ctx:
            self._invoke("replay", str(self.space_path), str(log))
        self.assertIn(f"Invalid value in {log} row 0:", str(ctx.exception))
