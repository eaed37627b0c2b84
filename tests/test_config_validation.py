from __future__ import annotations

import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from hypersearch.config import SETTINGS_ENV_VAR, EngineSettings, load_settings, settings_from_mapping
from hypersearch.errors import ConfigurationError


class EngineSettingsTests(unittest.TestCase):
    def test_defaults_match_documented_constants(self) -> None:
        settings = EngineSettings()

        self.assertEqual(settings.bootstrap.max_suggestions, 5)
        self.assertAlmostEqual(settings.bootstrap.fraction, 0.1)
        self.assertEqual(settings.convergence.window, 10)
        self.assertAlmostEqual(settings.convergence.stop_threshold, 0.95)
        self.assertAlmostEqual(settings.convergence.improvement_epsilon, 1e-3)
        self.assertAlmostEqual(settings.exploration.initial_rate, 0.8)
        self.assertAlmostEqual(settings.strategies.mutation_rate, 0.1)
        self.assertEqual(settings.strategies.warm_start_top_k, 5)
        self.assertEqual(settings.log_level, "INFO")

    def test_invalid_values_list_every_location(self) -> None:
        with self.assertRaises(ConfigurationError) as ctx:
            settings_from_mapping(
                {
                    "convergence": {"window": 1},
                    "exploration": {"initial_rate": 1.5},
                }
            )

        message = str(ctx.exception)
        self.assertIn("convergence.window must be at least 2", message)
        self.assertIn("exploration.initial_rate must be between 0 and 1", message)

    def test_unknown_keys_are_rejected(self) -> None:
        with self.assertRaises(ConfigurationError):
            settings_from_mapping({"bootstrap": {"size": 3}})

    def test_log_level_is_normalised(self) -> None:
        settings = settings_from_mapping({"log_level": "debug"})
        self.assertEqual(settings.log_level, "DEBUG")


class LoadSettingsTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_load_from_explicit_path(self) -> None:
        path = self.root / "settings.yaml"
        path.write_text("bootstrap:\n  max_suggestions: 2\nseconds_per_evaluation: 60\n", encoding="utf-8")

        settings = load_settings(path)

        self.assertEqual(settings.bootstrap.max_suggestions, 2)
        self.assertEqual(settings.seconds_per_evaluation, 60)

    def test_load_from_environment(self) -> None:
        path = self.root / "env.yaml"
        path.write_text("convergence:\n  window: 5\n", encoding="utf-8")

        with patch.dict(os.environ, {SETTINGS_ENV_VAR: str(path)}):
            settings = load_settings()

        self.assertEqual(settings.convergence.window, 5)

    def test_defaults_without_file(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            self.assertEqual(load_settings(), EngineSettings())

    def test_missing_file_and_bad_root(self) -> None:
        with self.assertRaises(ConfigurationError):
            load_settings(self.root / "absent.yaml")

        path = self.root / "list.yaml"
        path.write_text("- 1\n- 2\n", encoding="utf-8")
        with self.assertRaises(ConfigurationError):
            load_settings(path)

    def test_empty_file_yields_defaults(self) -> None:
        path = self.root / "empty.yaml"
        path.write_text("", encoding="utf-8")
        self.assertEqual(load_settings(path), EngineSettings())


if __name__ == "__main__":
    unittest.main()
