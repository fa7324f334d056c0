import json
import tempfile
from dataclasses import asdict
from pathlib import Path
import unittest
from unittest import mock

from config import (
    Config,
    CURRENT_CONFIG_VERSION,
    apply_dict_to_dataclass,
    migrate_config,
)
import config_persistence as config_persistence_module


class TestConfigMigration(unittest.TestCase):
    def test_missing_version_sets_defaults_and_bumps(self):
        cfg = Config()
        data = {
            # version intentionally omitted to simulate legacy file
            "detection": {},
            "tempo": {},
        }

        apply_dict_to_dataclass(cfg, data)
        migrate_config(cfg, data.get("version"))

        self.assertEqual(cfg.version, CURRENT_CONFIG_VERSION)
        self.assertEqual(cfg.detection.kick_threshold, 0.1)
        self.assertEqual(cfg.tempo.update_interval_ms, 1000)
        self.assertEqual(cfg.confidence.tempo_ratios, (0.25, 0.5, 1.0, 2.0, 4.0))

    def test_none_values_are_sanitized(self):
        cfg = Config()
        data = {
            "version": 0,
            "detection": {"onset_threshold": None, "kick_frequency_range": None},
            "confidence": {"tempo_tolerance": None},
            "audio": {"device_index": None},
        }

        apply_dict_to_dataclass(cfg, data)
        migrate_config(cfg, data.get("version"))

        self.assertEqual(cfg.version, CURRENT_CONFIG_VERSION)
        self.assertEqual(cfg.detection.onset_threshold, 0.05)
        self.assertEqual(cfg.detection.kick_frequency_range.max, 200.0)
        self.assertEqual(cfg.confidence.tempo_tolerance, 0.15)
        self.assertIsNone(cfg.audio.device_index)

    def test_preserves_custom_values(self):
        cfg = Config()
        data = {
            "version": 1,
            "detection": {
                "kick_frequency_range": {"min": 40, "max": 120},
                "kick_cooldown_ms": 150,
                "adaptive_multiplier": 1.5,
            },
            "tempo": {"smoothing_factor": 0.5},
            "confidence": {"tempo_ratios": [0.5, 1.0, 2.0]},
            "log_level": "DEBUG",
        }

        apply_dict_to_dataclass(cfg, data)
        migrate_config(cfg, data.get("version"))

        self.assertEqual(cfg.detection.kick_frequency_range.min, 40.0)
        self.assertEqual(cfg.detection.kick_frequency_range.max, 120.0)
        self.assertEqual(cfg.detection.kick_cooldown_ms, 150)
        self.assertEqual(cfg.detection.adaptive_multiplier, 1.5)
        self.assertEqual(cfg.tempo.smoothing_factor, 0.5)
        self.assertEqual(cfg.confidence.tempo_ratios, (0.5, 1.0, 2.0))
        self.assertEqual(cfg.log_level, "DEBUG")

    def test_out_of_range_values_are_clamped(self):
        cfg = Config()
        data = {
            "version": 1,
            "detection": {
                "energy_window_size": 0,
                "kick_cooldown_ms": -5,
                "snare_frequency_range": {"min": 5000, "max": 200},
            },
            "tempo": {"smoothing_factor": 3.0, "min_bin_members": 0},
            "audio": {"min_decibels": -10, "max_decibels": -90},
        }

        apply_dict_to_dataclass(cfg, data)
        migrate_config(cfg, data.get("version"))

        self.assertEqual(cfg.detection.energy_window_size, 1)
        self.assertEqual(cfg.detection.kick_cooldown_ms, 0)
        self.assertEqual(cfg.detection.snare_frequency_range.min, 200.0)
        self.assertEqual(cfg.detection.snare_frequency_range.max, 5000.0)
        self.assertEqual(cfg.tempo.smoothing_factor, 1.0)
        self.assertEqual(cfg.tempo.min_bin_members, 1)
        self.assertEqual(cfg.audio.min_decibels, -90.0)
        self.assertEqual(cfg.audio.max_decibels, -10.0)

    def test_bad_values_keep_defaults(self):
        cfg = Config()
        with mock.patch("config.log_event") as log_event_mock:
            apply_dict_to_dataclass(cfg, {
                "detection": {"kick_threshold": "loud"},
                "tempo": "fast",
                "unknown_section": {"x": 1},
            })

        self.assertEqual(cfg.detection.kick_threshold, 0.1)
        self.assertEqual(cfg.tempo.window_ms, 10000)
        self.assertEqual(log_event_mock.call_count, 2)

    def test_load_config_auto_saves_bumped_version(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            cfg_file = Path(tmpdir) / "config.json"
            legacy_cfg = Config()
            legacy_cfg.version = 0
            legacy_data = asdict(legacy_cfg)
            legacy_data["detection"]["onset_threshold"] = None  # force migration path
            with open(cfg_file, "w", encoding="utf-8") as f:
                json.dump(legacy_data, f)

            calls = {}

            def fake_save_config(cfg, path=None):
                calls["saved"] = path
                with open(cfg_file, "w", encoding="utf-8") as f:
                    json.dump(asdict(cfg), f)
                return True

            with mock.patch.object(config_persistence_module, "get_config_file", return_value=cfg_file), \
                    mock.patch.object(config_persistence_module, "save_config", side_effect=fake_save_config):
                cfg = config_persistence_module.load_config()

            self.assertEqual(cfg.version, CURRENT_CONFIG_VERSION)
            self.assertEqual(cfg.detection.onset_threshold, 0.05)
            self.assertEqual(calls.get("saved"), cfg_file)

            with open(cfg_file, "r", encoding="utf-8") as f:
                persisted = json.load(f)
            self.assertEqual(persisted.get("version"), CURRENT_CONFIG_VERSION)


if __name__ == "__main__":
    unittest.main()
