"""Tests for config persistence and input sanitization.

Ensures malformed config data is safely normalized on load.
"""

from __future__ import annotations

import tempfile
import unittest
from pathlib import Path
from unittest import mock

from orgcompare import config


class ConfigBehaviorTests(unittest.TestCase):
    def test_missing_or_malformed_config_loads_empty(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            config_path = Path(tmp) / "config.json"
            with mock.patch("orgcompare.config.CONFIG_PATH", config_path):
                self.assertEqual(config.load_config(), {})
                config_path.write_text("{broken", encoding="utf-8")
                self.assertEqual(config.load_config(), {})
                config_path.write_text("[1, 2]", encoding="utf-8")
                self.assertEqual(config.load_config(), {})

    def test_max_compare_files_round_trip_and_clamp(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            config_path = Path(tmp) / "nested" / "config.json"
            with mock.patch("orgcompare.config.CONFIG_PATH", config_path):
                self.assertEqual(config.load_max_compare_files(), config.DEFAULT_MAX_COMPARE_FILES)
                config.save_max_compare_files(3)
                self.assertEqual(config.load_max_compare_files(), 3)
                config.save_max_compare_files(50)
                self.assertEqual(config.load_max_compare_files(), config.HARD_MAX_COMPARE_FILES)
                config.save_config({"max_compare_files": True})
                self.assertEqual(config.load_max_compare_files(), config.DEFAULT_MAX_COMPARE_FILES)

    def test_invalid_values_fall_back_to_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            config_path = Path(tmp) / "config.json"
            with mock.patch("orgcompare.config.CONFIG_PATH", config_path):
                config.save_config(
                    {
                        "api_version": "12.0",
                        "retrieval_timeout_seconds": -5,
                        "cli_command": "   ",
                        "log_level": "loud",
                        "enabled_metadata_types": ["NotAType", 7],
                        "organizations": ["bad", {"id": "00D1", "username": "u"}],
                    }
                )
                settings = config.load_settings()
                self.assertEqual(settings.api_version, config.DEFAULT_API_VERSION)
                self.assertEqual(settings.retrieval_timeout_seconds, config.DEFAULT_RETRIEVAL_TIMEOUT_SECONDS)
                self.assertIsNone(settings.cli_command)
                self.assertEqual(settings.log_level, "info")
                self.assertEqual(settings.enabled_metadata_types, config.DEFAULT_METADATA_TYPES)
                self.assertEqual(config.load_organization_records(), [{"id": "00D1", "username": "u"}])

    def test_valid_values_are_used(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            config_path = Path(tmp) / "config.json"
            with mock.patch("orgcompare.config.CONFIG_PATH", config_path):
                config.save_config(
                    {
                        "api_version": "60.0",
                        "retrieval_timeout_seconds": 15,
                        "cli_command": "sfdx",
                        "log_level": "DEBUG",
                        "cache_dir": str(Path(tmp) / "cache"),
                    }
                )
                config.save_enabled_metadata_types(["ApexClass", "Bogus", "Flow"])
                settings = config.load_settings()
                self.assertEqual(settings.api_version, "60.0")
                self.assertEqual(settings.retrieval_timeout_seconds, 15.0)
                self.assertEqual(settings.cli_command, "sfdx")
                self.assertEqual(settings.log_level, "debug")
                self.assertEqual(settings.cache_dir, Path(tmp) / "cache")
                self.assertEqual(settings.enabled_metadata_types, ("ApexClass", "Flow"))

    def test_save_preserves_unrelated_keys(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            config_path = Path(tmp) / "config.json"
            with mock.patch("orgcompare.config.CONFIG_PATH", config_path):
                config.save_config({"custom": 1})
                config.save_organization_records([{"id": "x", "username": "y"}])
                self.assertEqual(config.load_config()["custom"], 1)
                self.assertTrue(config_path.read_text(encoding="utf-8").endswith("\n"))


if __name__ == "__main__":
    unittest.main()
