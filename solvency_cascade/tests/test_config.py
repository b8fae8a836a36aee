"""Unit tests for the configuration module."""

from __future__ import annotations
import json, sys, tempfile, unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent.parent))
from solvency_cascade.config import (
    DEFAULT_SENSITIVITY_CONFIG, load_config, sensitivity_settings,
)

VALID_CFG = {
    "network": {"type": "random", "n": 20, "density": 0.2, "seed": 42},
    "initial_failed": [0],
    "max_steps": None,
    "top_k": 5,
}

def _write_cfg(d):
    f = tempfile.NamedTemporaryFile(suffix=".json", delete=False, mode="w")
    json.dump(d, f); f.close()
    return Path(f.name)


class TestLoadConfig(unittest.TestCase):

    def test_valid_config_loads(self):
        cfg = load_config(_write_cfg(VALID_CFG))
        self.assertEqual(cfg["network"]["seed"], 42)

    def test_minimal_config_loads(self):
        cfg = load_config(_write_cfg({"network": {"type": "file", "path": "net.json"}}))
        self.assertEqual(cfg["network"]["type"], "file")

    def test_missing_network_raises(self):
        with self.assertRaises(ValueError):
            load_config(_write_cfg({"initial_failed": []}))

    def test_invalid_network_type_raises(self):
        bad = {**VALID_CFG, "network": {"type": "unknown", "n": 10}}
        with self.assertRaises(ValueError):
            load_config(_write_cfg(bad))

    def test_missing_type_params_raise(self):
        for net in ({"type": "random", "n": 10},
                    {"type": "scale_free", "n": 10},
                    {"type": "custom"},
                    {"type": "file"}):
            with self.assertRaises(ValueError):
                load_config(_write_cfg({"network": net}))

    def test_initial_failed_must_be_list(self):
        with self.assertRaises(ValueError):
            load_config(_write_cfg({**VALID_CFG, "initial_failed": 0}))

    def test_counts_must_be_non_negative_ints(self):
        for key in ("max_steps", "top_k"):
            for value in (-1, 2.5, "3", True):
                with self.assertRaises(ValueError):
                    load_config(_write_cfg({**VALID_CFG, key: value}))

    def test_zero_counts_allowed(self):
        cfg = load_config(_write_cfg({**VALID_CFG, "max_steps": 0, "top_k": 0}))
        self.assertEqual(cfg["max_steps"], 0)

    def test_bad_sensitivity_target_raises(self):
        bad = {**VALID_CFG, "sensitivity_config": {"target": "amount"}}
        with self.assertRaises(ValueError):
            load_config(_write_cfg(bad))

    def test_sensitivity_config_must_be_object(self):
        with self.assertRaises(ValueError):
            load_config(_write_cfg({**VALID_CFG, "sensitivity_config": [1]}))

    def test_non_object_config_raises(self):
        with self.assertRaises(ValueError):
            load_config(_write_cfg([1, 2, 3]))

    def test_file_not_found_raises(self):
        with self.assertRaises(FileNotFoundError):
            load_config("/nonexistent/path/config.json")


class TestSensitivitySettings(unittest.TestCase):

    def test_defaults(self):
        self.assertEqual(sensitivity_settings(VALID_CFG), DEFAULT_SENSITIVITY_CONFIG)

    def test_override(self):
        cfg = {**VALID_CFG, "sensitivity_config": {"target": "capital"}}
        merged = sensitivity_settings(cfg)
        self.assertEqual(merged["target"], "capital")
        self.assertEqual(merged["max_seed_entities"], 20)
        self.assertEqual(DEFAULT_SENSITIVITY_CONFIG["target"], "buffer")


class TestShippedConfigs(unittest.TestCase):

    def test_shipped_configs_validate(self):
        configs = Path(__file__).parent.parent.parent / "configs"
        paths = sorted(configs.glob("config_*.json"))
        self.assertTrue(paths)
        for path in paths:
            load_config(path)


if __name__ == "__main__":
    unittest.main()
