"""
Configuration loader for the solvency cascade engine.

Loads JSON config files and validates fields up front so that malformed
experiments fail before any network is built.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any


# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------

ConfigDict = dict[str, Any]


# ---------------------------------------------------------------------------
# Schema constants
# ---------------------------------------------------------------------------

NETWORK_TYPES = {"random", "scale_free", "custom", "file"}
SENSITIVITY_TARGETS = {"buffer", "capital"}

_NETWORK_REQUIRED_PARAMS: dict[str, list[str]] = {
    "random":     ["n", "density"],
    "scale_free": ["n", "m"],
    "custom":     ["entities"],
    "file":       ["path"],
}

DEFAULT_SENSITIVITY_CONFIG: ConfigDict = {
    "perturbation_values": [-0.2, -0.1, -0.05, 0.0, 0.05, 0.1, 0.2],
    "target": "buffer",
    "max_seed_entities": 20,
}


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------


def load_config(path: str | Path) -> ConfigDict:
    """Load and validate a JSON configuration file.

    Parameters
    ----------
    path : str or Path
        Path to the JSON configuration file.

    Returns
    -------
    ConfigDict
        Validated configuration dictionary.

    Raises
    ------
    ValueError
        If required fields are missing or values are invalid.
    FileNotFoundError
        If the config file does not exist.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with path.open("r") as fh:
        cfg: ConfigDict = json.load(fh)

    _validate_config(cfg)
    return cfg


def _check_optional_count(cfg: ConfigDict, key: str) -> None:
    value = cfg.get(key)
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"{key} must be a non-negative integer or null, got {value!r}")


def _validate_config(cfg: ConfigDict) -> None:
    """Validate top-level config fields.

    Parameters
    ----------
    cfg : ConfigDict
        Raw configuration dictionary to validate.

    Raises
    ------
    ValueError
        On any validation failure.
    """
    if not isinstance(cfg, dict):
        raise ValueError(f"Config must be a JSON object, got {type(cfg).__name__}")

    if "network" not in cfg:
        raise ValueError("Config missing required field: 'network'")

    network_cfg = cfg["network"]
    if not isinstance(network_cfg, dict) or "type" not in network_cfg:
        raise ValueError("network.type is required")
    if network_cfg["type"] not in NETWORK_TYPES:
        raise ValueError(
            f"network.type must be one of {NETWORK_TYPES}, got {network_cfg['type']!r}"
        )

    ntype = network_cfg["type"]
    missing_params = [
        p for p in _NETWORK_REQUIRED_PARAMS[ntype] if p not in network_cfg
    ]
    if missing_params:
        raise ValueError(
            f"network config for type {ntype!r} is missing required "
            f"parameter(s): {missing_params}"
        )

    if not isinstance(cfg.get("initial_failed", []), list):
        raise ValueError(
            f"initial_failed must be a list of entity ids, got {cfg['initial_failed']!r}"
        )

    _check_optional_count(cfg, "max_steps")
    _check_optional_count(cfg, "top_k")

    sens_cfg = cfg.get("sensitivity_config", {})
    if not isinstance(sens_cfg, dict):
        raise ValueError("sensitivity_config must be an object")
    target = sens_cfg.get("target", "buffer")
    if target not in SENSITIVITY_TARGETS:
        raise ValueError(
            f"sensitivity_config.target must be one of {SENSITIVITY_TARGETS}, got {target!r}"
        )


def sensitivity_settings(cfg: ConfigDict) -> ConfigDict:
    """Return the sensitivity sub-config merged over the defaults."""
    merged = dict(DEFAULT_SENSITIVITY_CONFIG)
    merged.update(cfg.get("sensitivity_config", {}))
    return merged
