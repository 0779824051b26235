import unittest

from config import (
    AudioConfig,
    Config,
    CURRENT_CONFIG_VERSION,
    ScoringConfig,
    apply_dict_to_dataclass,
    migrate_config,
)


class TestConfigMigration(unittest.TestCase):
    def test_missing_version_sets_defaults_and_bumps(self):
        cfg = Config()
        data = {
            # version intentionally omitted to simulate legacy file
            "audio": {},
            "scoring": {},
        }

        apply_dict_to_dataclass(cfg, data)
        migrate_config(cfg, data.get("version"))

        self.assertEqual(cfg.version, CURRENT_CONFIG_VERSION)
        self.assertEqual(cfg.audio.sample_rate, 48000)
        self.assertEqual(cfg.scoring.optimal_score, 85)
        self.assertEqual(cfg.session.default_signal, "noise")

    def test_none_values_are_sanitized(self):
        cfg = Config()
        data = {
            "version": 0,
            "audio": {"fft_size": None, "noise_seed": None, "input_device": None},
            "analysis": {"noise_floor_db": None, "tilt_split_hz": None},
            "session": {"tick_ms": None},
            "log_level": None,
        }

        apply_dict_to_dataclass(cfg, data)
        migrate_config(cfg, data.get("version"))

        self.assertEqual(cfg.version, CURRENT_CONFIG_VERSION)
        self.assertEqual(cfg.audio.fft_size, 8192)
        self.assertIsNone(cfg.audio.noise_seed)
        self.assertIsNone(cfg.audio.input_device)
        self.assertEqual(cfg.analysis.noise_floor_db, -70.0)
        self.assertIsNone(cfg.analysis.tilt_split_hz)
        self.assertEqual(cfg.session.tick_ms, 50)
        self.assertEqual(cfg.log_level, "INFO")

    def test_preserves_custom_values(self):
        cfg = Config()
        data = {
            "version": 1,
            "audio": {"noise_seed": 11, "output_device": 4, "highpass_hz": 0.0},
            "analysis": {"max_lag_ms": 20.0, "tilt_split_hz": 800.0},
            "scoring": {"optimal_score": 90},
            "session": {"default_signal": "sweep", "pre_delay_s": 2.5},
            "log_level": "DEBUG",
        }

        apply_dict_to_dataclass(cfg, data)
        migrate_config(cfg, data.get("version"))

        self.assertEqual(cfg.audio.noise_seed, 11)
        self.assertEqual(cfg.audio.output_device, 4)
        self.assertEqual(cfg.audio.highpass_hz, 0.0)
        self.assertEqual(cfg.analysis.max_lag_ms, 20.0)
        self.assertEqual(cfg.analysis.tilt_split_hz, 800.0)
        self.assertEqual(cfg.scoring.optimal_score, 90)
        self.assertEqual(cfg.session.default_signal, "sweep")
        self.assertEqual(cfg.session.pre_delay_s, 2.5)
        self.assertEqual(cfg.log_level, "DEBUG")

    def test_unsafe_values_are_clamped(self):
        cfg = Config()
        data = {
            "version": 1,
            "audio": {"sweep_amplitude": 3.0, "noise_rows": 100},
            "analysis": {"ambiguity_ratio": -1.0},
            "scoring": {"weak_signal_score_cap": 500, "optimal_score": "high"},
            "session": {"tick_ms": 1, "pre_delay_s": 60.0, "default_signal": "chirp"},
        }

        apply_dict_to_dataclass(cfg, data)
        migrate_config(cfg, data.get("version"))

        self.assertEqual(cfg.audio.sweep_amplitude, 1.0)
        self.assertEqual(cfg.audio.noise_rows, 32)
        self.assertEqual(cfg.analysis.ambiguity_ratio, 0.0)
        self.assertEqual(cfg.scoring.weak_signal_score_cap, 100)
        self.assertEqual(cfg.scoring.optimal_score, 85)
        self.assertEqual(cfg.session.tick_ms, 10)
        self.assertEqual(cfg.session.pre_delay_s, 5.0)
        self.assertEqual(cfg.session.default_signal, "noise")

    def test_legacy_pink_signal_name(self):
        cfg = Config()
        data = {"version": 0, "session": {"default_signal": "pink"}}

        apply_dict_to_dataclass(cfg, data)
        migrate_config(cfg, data.get("version"))

        self.assertEqual(cfg.session.default_signal, "noise")

    def test_unknown_keys_are_ignored(self):
        cfg = Config()
        apply_dict_to_dataclass(cfg, {"audio": {"bogus": 1}, "extra_section": {}})

        self.assertFalse(hasattr(cfg.audio, "bogus"))
        self.assertFalse(hasattr(cfg, "extra_section"))

    def test_non_object_sections_keep_defaults(self):
        cfg = Config()
        data = {"version": 1, "scoring": None, "audio": 5, "session": {"tick_ms": 20}}

        apply_dict_to_dataclass(cfg, data)
        migrate_config(cfg, data.get("version"))

        self.assertIsInstance(cfg.scoring, ScoringConfig)
        self.assertIsInstance(cfg.audio, AudioConfig)
        self.assertEqual(cfg.scoring.optimal_score, 85)
        self.assertEqual(cfg.audio.sample_rate, 48000)
        self.assertEqual(cfg.session.tick_ms, 20)

    def test_tilt_split_must_fall_inside_band_range(self):
        for value in (10.0, 50000.0, "abc", 20.0):
            cfg = Config()
            cfg.analysis.tilt_split_hz = value
            migrate_config(cfg, 1)
            self.assertIsNone(cfg.analysis.tilt_split_hz, value)

        cfg = Config()
        cfg.analysis.tilt_split_hz = "800"
        migrate_config(cfg, 1)
        self.assertEqual(cfg.analysis.tilt_split_hz, 800.0)

    def test_min_correlation_peak_is_clamped(self):
        cfg = Config()
        cfg.analysis.min_correlation_peak = 4.0
        migrate_config(cfg, 1)
        self.assertEqual(cfg.analysis.min_correlation_peak, 1.0)

        cfg.analysis.min_correlation_peak = None
        migrate_config(cfg, 1)
        self.assertEqual(cfg.analysis.min_correlation_peak, 0.3)


if __name__ == "__main__":
    unittest.main()
