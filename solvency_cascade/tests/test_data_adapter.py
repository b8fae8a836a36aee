from __future__ import annotations

import json

import pytest

from solvency_cascade.config import load_config
from solvency_cascade.generator import network_from_config
from tools.data_adapter import (
    build_network_dict,
    load_entities,
    load_obligations,
    main,
    normalise_ids,
)


def _write(path, text):
    path.write_text(text, encoding="utf-8")
    return path


def test_normalise_ids_integers():
    ids = normalise_ids([3, "7", 3])
    assert ids["int_ids"] is True
    assert ids["mapping"] == {3: 3, "7": 7}


def test_normalise_ids_falls_back_to_strings():
    ids = normalise_ids(["A", 1, " B "])
    assert ids["int_ids"] is False
    assert ids["mapping"] == {"A": "A", 1: "1", " B ": "B"}


def test_load_obligations_drops_na_rows(tmp_path):
    csv_path = _write(tmp_path / "ob.csv", "source,target,amount\n0,1,10\n1,,5\n1,2,3\n")
    df = load_obligations(csv_path)
    assert len(df) == 2
    assert df["amount"].tolist() == [10.0, 3.0]


def test_load_obligations_rejects_negative_amount(tmp_path):
    csv_path = _write(tmp_path / "ob.csv", "source,target,amount\n0,1,-10\n")
    with pytest.raises(ValueError):
        load_obligations(csv_path)


def test_load_obligations_missing_column(tmp_path):
    csv_path = _write(tmp_path / "ob.csv", "source,target\n0,1\n")
    with pytest.raises(ValueError):
        load_obligations(csv_path)


def test_load_obligations_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_obligations(tmp_path / "nope.csv")


def test_load_entities_rejects_duplicates(tmp_path):
    csv_path = _write(tmp_path / "ent.csv", "id,capital,buffer\nA,10,1\nA,20,2\n")
    with pytest.raises(ValueError):
        load_entities(csv_path)


def test_build_network_dict_strips_self_and_keeps_parallel(tmp_path):
    ob = load_obligations(_write(
        tmp_path / "ob.csv",
        "source,target,amount\nA,B,35\nA,B,35\nB,B,9\nB,C,5\n",
    ))
    ent = load_entities(_write(
        tmp_path / "ent.csv",
        "id,name,capital,buffer\nA,Alpha,100,20\nB,Beta,100,40\n",
    ))
    network, stats = build_network_dict(ob, ent, default_capital=30, default_buffer=10)

    assert [e["id"] for e in network["entities"]] == ["A", "B", "C"]
    assert network["entities"][0]["name"] == "Alpha"
    assert network["entities"][2] == {"id": "C", "name": "C", "capital": 30.0, "buffer": 10.0}
    assert len(network["obligations"]) == 3
    assert stats["n_self_obligations_stripped"] == 1
    assert stats["n_parallel_obligations"] == 1
    assert stats["n_entities_defaulted"] == 1
    assert stats["int_ids"] is False


def test_cli_writes_runnable_config(tmp_path):
    ob = _write(tmp_path / "ob.csv", "source,target,amount\n0,1,35\n0,1,35\n1,2,80\n")
    out = tmp_path / "config_ledger.json"
    main([str(ob), "--output", str(out), "--initial-failed", "0", "--top-k", "2",
          "--default-capital", "100", "--default-buffer", "40"])

    cfg = load_config(out)
    assert cfg["initial_failed"] == [0]
    assert cfg["top_k"] == 2
    assert cfg["sensitivity_analysis"] is False

    network = network_from_config(cfg["network"])
    assert network.ids == (0, 1, 2)
    assert len(network.obligations) == 3


def test_cli_enable_sensitivity(tmp_path):
    ob = _write(tmp_path / "ob.csv", "source,target,amount\nX,Y,1\n")
    out = tmp_path / "cfg.json"
    main([str(ob), "--output", str(out), "--enable-sensitivity"])

    cfg = json.loads(out.read_text())
    assert cfg["sensitivity_analysis"] is True
    assert cfg["sensitivity_config"]["target"] == "buffer"


def test_cli_unknown_initial_failed_exits(tmp_path):
    ob = _write(tmp_path / "ob.csv", "source,target,amount\nX,Y,1\n")
    with pytest.raises(SystemExit) as excinfo:
        main([str(ob), "--output", str(tmp_path / "cfg.json"), "--initial-failed", "Z"])
    assert excinfo.value.code == 1


def test_normalise_ids_accepts_integral_floats():
    ids = normalise_ids([0, 1.0, 2.0])
    assert ids["int_ids"] is True
    assert ids["mapping"] == {0: 0, 1.0: 1, 2.0: 2}
    assert all(type(v) is int for v in ids["mapping"].values())


def test_cli_integer_ids_survive_na_rows(tmp_path):
    ob = _write(tmp_path / "ob.csv", "source,target,amount\n0,1,35\n1,,5\n1,2,80\n")
    out = tmp_path / "cfg.json"
    main([str(ob), "--output", str(out), "--initial-failed", "1"])

    cfg = load_config(out)
    assert cfg["initial_failed"] == [1]
    assert [e["id"] for e in cfg["network"]["entities"]] == [0, 1, 2]
    assert cfg["network"]["obligations"][1] == {"from": 1, "to": 2, "amount": 80.0}
