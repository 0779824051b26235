import json
import os
import tempfile
import unittest
from dataclasses import asdict
from pathlib import Path
from unittest import mock

from config import Config
import config_persistence


class TestConfigPersistence(unittest.TestCase):
    def test_save_and_load_roundtrip(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            cfg_file = Path(tmpdir) / "config.json"
            cfg = Config()
            cfg.analysis.max_lag_ms = 20.0
            cfg.audio.input_device = 2

            with mock.patch.object(config_persistence, "get_config_file", return_value=cfg_file):
                self.assertTrue(config_persistence.save_config(cfg))
                loaded = config_persistence.load_config()

            self.assertAlmostEqual(loaded.analysis.max_lag_ms, 20.0, places=6)
            self.assertEqual(loaded.audio.input_device, 2)
            self.assertIsNone(loaded.audio.output_device)

    def test_load_default_when_missing(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            cfg_file = Path(tmpdir) / "config.json"
            with mock.patch.object(config_persistence, "get_config_file", return_value=cfg_file):
                loaded = config_persistence.load_config()
            self.assertIsInstance(loaded, Config)
            self.assertFalse(cfg_file.exists())

    def test_load_migrates_and_autosaves(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            cfg_file = Path(tmpdir) / "config.json"
            legacy = Config()
            legacy.version = 0
            legacy_data = asdict(legacy)
            legacy_data["scoring"]["optimal_score"] = None
            legacy_data["session"]["default_signal"] = "pink"
            with open(cfg_file, "w", encoding="utf-8") as f:
                json.dump(legacy_data, f)

            with mock.patch.object(config_persistence, "get_config_file", return_value=cfg_file):
                loaded = config_persistence.load_config()

            self.assertEqual(loaded.version, 1)
            self.assertEqual(loaded.scoring.optimal_score, 85)
            self.assertEqual(loaded.session.default_signal, "noise")
            with open(cfg_file, "r", encoding="utf-8") as f:
                self.assertEqual(json.load(f)["version"], 1)

    def test_load_invalid_json_returns_default(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            cfg_file = Path(tmpdir) / "config.json"
            with open(cfg_file, "w", encoding="utf-8") as f:
                f.write("{invalid json")

            with mock.patch.object(config_persistence, "get_config_file", return_value=cfg_file):
                loaded = config_persistence.load_config()

            self.assertIsInstance(loaded, Config)

    def test_load_null_section_keeps_defaults(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            cfg_file = Path(tmpdir) / "config.json"
            with open(cfg_file, "w", encoding="utf-8") as f:
                json.dump({"version": 1, "scoring": None, "analysis": {"max_lag_ms": 20.0}}, f)

            with mock.patch.object(config_persistence, "get_config_file", return_value=cfg_file):
                loaded = config_persistence.load_config()

            self.assertEqual(loaded.scoring.optimal_score, 85)
            self.assertAlmostEqual(loaded.analysis.max_lag_ms, 20.0, places=6)

    def test_load_unexpected_error_returns_default(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            cfg_file = Path(tmpdir) / "config.json"
            with open(cfg_file, "w", encoding="utf-8") as f:
                json.dump({"version": 1}, f)

            with mock.patch.object(config_persistence, "get_config_file", return_value=cfg_file), \
                    mock.patch.object(config_persistence, "migrate_config",
                                      side_effect=AttributeError("boom")):
                loaded = config_persistence.load_config()

            self.assertIsInstance(loaded, Config)
            self.assertEqual(loaded.scoring.optimal_score, 85)

    def test_save_failure_returns_false(self):
        cfg = Config()

        with mock.patch.object(config_persistence, "get_config_file", side_effect=OSError("boom")):
            self.assertFalse(config_persistence.save_config(cfg))

    def test_config_dir_env_override(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            target = Path(tmpdir) / "nested"
            with mock.patch.dict(os.environ, {config_persistence.CONFIG_DIR_ENV: str(target)}):
                self.assertEqual(config_persistence.get_config_file(), target / "config.json")
            self.assertTrue(target.is_dir())


if __name__ == "__main__":
    unittest.main()
