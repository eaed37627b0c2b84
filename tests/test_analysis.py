from __future__ import annotations

import random
import unittest

from hypersearch.analysis import convergence_phases
from hypersearch.engine import HyperparameterTuner
from hypersearch.errors import InvalidConfiguration
from hypersearch.identifiers import SequentialIdGenerator

PARAMETERS = [
    {"name": "lr", "kind": "continuous", "range": {"min": 0.0001, "max": 0.1}},
    {"name": "depth", "kind": "discrete", "range": {"min": 1, "max": 4}},
    {"name": "act", "kind": "categorical", "range": ["relu", "tanh"]},
]


class AnalysisTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tuner = HyperparameterTuner(id_generator=SequentialIdGenerator(), rng=random.Random(3))
        space_id = self.tuner.define_search_space(
            "analysis", PARAMETERS, search_bounds={"max_evaluations": 100}
        ).space_id
        self.session_id = self.tuner.start_tuning(space_id, "random").session_id
        for i in range(24):
            lr = 0.001 * (i + 1)
            self.tuner.report_evaluation(
                self.session_id,
                f"ext_{i}",
                lr * 10,
                parameters={"lr": lr, "depth": i % 4 + 1, "act": "relu" if i % 2 else "tanh"},
            )

    def test_comprehensive_covers_every_analysis(self) -> None:
        analysis = self.tuner.analyze_results(self.session_id)

        self.assertEqual(
            set(analysis.results),
            {"sensitivity", "interactions", "convergence", "recommendations"},
        )
        self.assertEqual(analysis.session_summary["total_evaluations"], 24)

    def test_analysis_is_repeatable(self) -> None:
        first = self.tuner.analyze_results(self.session_id, "comprehensive")
        second = self.tuner.analyze_results(self.session_id, "comprehensive")

        self.assertEqual(first.results, second.results)
        self.assertEqual(first.session_summary, second.session_summary)

    def test_sensitivity_tracks_a_linear_parameter(self) -> None:
        results = self.tuner.analyze_results(self.session_id, "sensitivity").results
        by_name = {item["parameter"]: item for item in results["sensitivity"]}

        lr = by_name["lr"]
        self.assertAlmostEqual(lr["sensitivity"], 1.0, places=6)
        self.assertAlmostEqual(lr["optimal_range"]["min"], 0.019)
        self.assertAlmostEqual(lr["optimal_range"]["max"], 0.024)
        self.assertEqual([group["group"] for group in lr["marginal_effect"]], ["low", "mid", "high"])
        self.assertAlmostEqual(lr["importance"], 2.4)
        self.assertAlmostEqual(lr["certainty"], 0.8)

        act = by_name["act"]
        self.assertEqual({group["group"] for group in act["marginal_effect"]}, {"relu", "tanh"})
        self.assertTrue(0.0 <= act["sensitivity"] <= 1.0)

    def test_interactions_need_numeric_pairs(self) -> None:
        results = self.tuner.analyze_results(self.session_id, "interactions").results

        effects = results["interactions"]
        self.assertEqual(len(effects), 1)
        self.assertEqual(effects[0]["parameters"], ["lr", "depth"])
        self.assertGreaterEqual(effects[0]["effect_strength"], 0.0)

    def test_convergence_reports_phases(self) -> None:
        convergence = self.tuner.analyze_results(self.session_id, "convergence").results["convergence"]

        phases = convergence["phases"]
        self.assertEqual([phase["phase"] for phase in phases], ["exploration", "exploitation", "convergence"])
        self.assertEqual(phases[1]["start_evaluation"], 7)
        self.assertEqual(phases[2]["start_evaluation"], 19)
        self.assertEqual(phases[2]["end_evaluation"], 24)
        self.assertFalse(convergence["plateau"])

    def test_invalid_analysis_type(self) -> None:
        with self.assertRaises(InvalidConfiguration):
            self.tuner.analyze_results(self.session_id, "forecast")


class ConvergencePhaseTests(unittest.TestCase):
    def test_short_histories_have_no_phases(self) -> None:
        self.assertEqual(convergence_phases(19), [])

    def test_boundaries(self) -> None:
        phases = convergence_phases(20)
        self.assertEqual(
            [(phase["start_evaluation"], phase["end_evaluation"]) for phase in phases],
            [(0, 6), (6, 16), (16, 20)],
        )


if __name__ == "__main__":
    unittest.main()
