from __future__ import annotations

import json

import numpy as np
import pytest

from solvency_cascade.network import StructuralError, UnknownEntityError, build_network
from solvency_cascade.propagation import run_cascade
from solvency_cascade.scenario import (
    load_network,
    load_scenario,
    save_network,
    save_result,
    save_scenario,
)


def _network():
    return build_network(
        [("A", "Alpha", 100, 20), ("B", "Beta", 50, 40), ("C", "Gamma", 30, 10)],
        [("A", "B", 70), ("A", "B", 5)],
    )


def test_network_round_trip(tmp_path):
    path = save_network(_network(), tmp_path / "net.json")
    assert load_network(path) == _network()


def test_scenario_round_trip(tmp_path):
    save_scenario(_network(), ["B", "A", "A"], tmp_path / "scenario.json")

    data = json.loads((tmp_path / "scenario.json").read_text(encoding="utf-8"))
    assert data["initial_failed"] == ["A", "B"]

    network, initial = load_scenario(tmp_path / "scenario.json")
    assert network == _network()
    assert initial == frozenset({"A", "B"})


def test_save_scenario_rejects_unknown_ids(tmp_path):
    with pytest.raises(UnknownEntityError):
        save_scenario(_network(), ["Z"], tmp_path / "scenario.json")
    assert not (tmp_path / "scenario.json").exists()


def test_load_scenario_rejects_unknown_ids(tmp_path):
    path = tmp_path / "scenario.json"
    payload = {
        "network": {"entities": [{"id": 1, "capital": 10, "buffer": 1}]},
        "initial_failed": [1, 2],
    }
    path.write_text(json.dumps(payload), encoding="utf-8")

    with pytest.raises(UnknownEntityError) as excinfo:
        load_scenario(path)
    assert excinfo.value.unknown_ids == (2,)


def test_load_scenario_without_initial_set(tmp_path):
    path = tmp_path / "scenario.json"
    path.write_text(json.dumps({"network": {"entities": []}}), encoding="utf-8")

    network, initial = load_scenario(path)
    assert len(network) == 0
    assert initial == frozenset()


def test_malformed_network_file(tmp_path):
    path = tmp_path / "net.json"
    path.write_text(json.dumps({"entities": [{"id": "A", "capital": 1}]}), encoding="utf-8")

    with pytest.raises(StructuralError):
        load_network(path)


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_network(tmp_path / "missing.json")
    with pytest.raises(FileNotFoundError):
        load_scenario(tmp_path / "missing.json")


def test_loaded_scenario_reproduces_cascade(tmp_path):
    save_scenario(_network(), {"A"}, tmp_path / "scenario.json")
    network, initial = load_scenario(tmp_path / "scenario.json")

    assert run_cascade(network, initial).to_dict() == run_cascade(_network(), {"A"}).to_dict()


def test_save_result(tmp_path):
    result = run_cascade(_network(), {"A"})
    save_result(result, tmp_path / "result.json")

    data = json.loads((tmp_path / "result.json").read_text(encoding="utf-8"))
    assert data["failed"] == ["A", "B"]
    assert data["steps"][0]["losses"] == [{"entity_id": "B", "unpaid_loss": 75.0}]
    assert data["converged"] is True


def test_scenario_with_numpy_ids_is_json(tmp_path):
    network = build_network([(0, 10, 0), (1, 50, 40)], [(0, 1, 70)])
    save_scenario(network, [np.int64(1)], tmp_path / "scenario.json")

    _, initial = load_scenario(tmp_path / "scenario.json")
    assert initial == frozenset({1})
    assert all(type(x) is int for x in initial)
