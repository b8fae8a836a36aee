"""
JSON persistence for networks, scenarios and cascade results.

A scenario is a network plus an initial failure set.  Ids in a loaded
scenario are validated against its network before anything can run on it.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Iterable

from .network import EntityId, Network, network_from_dict, network_to_dict
from .propagation import CascadeResult


def _read_json(path: str | Path) -> dict:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    with path.open("r", encoding="utf-8") as fh:
        return json.load(fh)


def _write_json(path: str | Path, payload: dict) -> Path:
    path = Path(path)
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# Networks
# ---------------------------------------------------------------------------


def save_network(network: Network, path: str | Path) -> Path:
    return _write_json(path, network_to_dict(network))


def load_network(path: str | Path) -> Network:
    """Load a network JSON file.

    Raises
    ------
    FileNotFoundError
        If ``path`` does not exist.
    StructuralError
        If the stored network is malformed.
    """
    return network_from_dict(_read_json(path))


# ---------------------------------------------------------------------------
# Scenarios
# ---------------------------------------------------------------------------


def save_scenario(
    network: Network,
    initial_failed: Iterable[EntityId],
    path: str | Path,
) -> Path:
    """Write ``network`` and its initial failure set to ``path``.

    Raises
    ------
    UnknownEntityError
        If ``initial_failed`` references an id outside ``network``.
    """
    initial = network.validate_ids(initial_failed)
    payload = {
        "network": network_to_dict(network),
        "initial_failed": sorted(initial),
    }
    return _write_json(path, payload)


def load_scenario(path: str | Path) -> tuple[Network, frozenset]:
    """Load a scenario file as ``(network, initial_failed)``.

    Raises
    ------
    FileNotFoundError
        If ``path`` does not exist.
    StructuralError
        If the stored network is malformed.
    UnknownEntityError
        If the initial failure set references an id outside the network.
    """
    data = _read_json(path)
    network = network_from_dict(data["network"])
    initial = network.validate_ids(data.get("initial_failed", []))
    return network, initial


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


def save_result(result: CascadeResult, path: str | Path) -> Path:
    return _write_json(path, result.to_dict())
