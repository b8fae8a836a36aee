#!/usr/bin/env python3
"""
data_adapter.py — Ingestor
==========================
Convert CSV exports of an obligation ledger into a solvency_cascade
runner configuration file.

The obligations CSV must contain the columns ``source`` (debtor), ``target``
(creditor) and ``amount``.  An optional entities CSV supplies ``id``,
``capital``, ``buffer`` and optionally ``name``; entities that appear only in
the obligations CSV receive ``--default-capital`` / ``--default-buffer``.

Entity ids may be integers or string labels.  They are kept as-is (all
integers when every label parses as one, strings otherwise).

Self-obligations are stripped and reported.  Parallel obligations between
the same ordered pair are kept: each one is an independent unpaid loss.

Usage examples
--------------
# Obligations only, uniform balance sheets
python3 tools/data_adapter.py obligations.csv --output configs/config_ledger.json \\
    --default-capital 100 --default-buffer 20 --initial-failed 3

# With an entities file and criticality top-k
python3 tools/data_adapter.py obligations.csv \\
    --entities entities.csv \\
    --output configs/config_ledger.json \\
    --top-k 5 \\
    --enable-sensitivity
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

import numpy as np
import pandas as pd


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

REQUIRED_OBLIGATION_COLUMNS = {"source", "target", "amount"}
REQUIRED_ENTITY_COLUMNS = {"id", "capital", "buffer"}
DEFAULT_SENSITIVITY_CONFIG = {
    "perturbation_values": [-0.2, -0.1, -0.05, 0.0, 0.05, 0.1, 0.2],
    "target": "buffer",
    "max_seed_entities": 20,
}


# ---------------------------------------------------------------------------
# CSV ingestion
# ---------------------------------------------------------------------------


def _load_csv(csv_path: Path, required: set[str], what: str) -> pd.DataFrame:
    if not csv_path.exists():
        raise FileNotFoundError(f"Input CSV not found: {csv_path}")

    try:
        df = pd.read_csv(csv_path)
    except Exception as exc:
        raise ValueError(f"Failed to parse CSV '{csv_path}': {exc}") from exc

    if df.empty:
        raise ValueError(f"CSV '{csv_path}' contains no rows.")

    # Normalise column names: strip whitespace and lower-case
    df.columns = [c.strip().lower() for c in df.columns]

    missing = required - set(df.columns)
    if missing:
        raise ValueError(
            f"{what} CSV is missing required column(s): {sorted(missing)}. "
            f"Found: {sorted(df.columns.tolist())}."
        )
    return df


def load_obligations(csv_path: Path) -> pd.DataFrame:
    """Load and validate an obligations CSV.

    Returns
    -------
    pd.DataFrame
        Validated DataFrame with at least ``source``, ``target``, ``amount``.

    Raises
    ------
    FileNotFoundError
        If the CSV file does not exist.
    ValueError
        If required columns are missing, amounts are negative or
        non-numeric, or the file is empty / malformed.
    """
    df = _load_csv(csv_path, REQUIRED_OBLIGATION_COLUMNS, "Obligations")

    before = len(df)
    df = df.dropna(subset=["source", "target", "amount"])
    dropped = before - len(df)
    if dropped:
        print(f"  [data_adapter] Warning: dropped {dropped} row(s) with missing source/target/amount.", file=sys.stderr)

    if df.empty:
        raise ValueError("No valid obligations remain after dropping NA rows.")

    amounts = pd.to_numeric(df["amount"], errors="coerce")
    if amounts.isna().any():
        raise ValueError("Obligation amounts must be numeric.")
    if (amounts < 0).any():
        raise ValueError("Obligation amounts must be non-negative.")
    df = df.assign(amount=amounts.astype(float))
    return df


def load_entities(csv_path: Path) -> pd.DataFrame:
    """Load and validate an entities CSV (``id``, ``capital``, ``buffer``, ``name``)."""
    df = _load_csv(csv_path, REQUIRED_ENTITY_COLUMNS, "Entities")
    for col in ("capital", "buffer"):
        values = pd.to_numeric(df[col], errors="coerce")
        if values.isna().any() or (values < 0).any():
            raise ValueError(f"Entity column {col!r} must be numeric and non-negative.")
        df[col] = values.astype(float)
    if df["id"].duplicated().any():
        dupes = sorted(str(x) for x in df.loc[df["id"].duplicated(), "id"].unique())
        raise ValueError(f"Duplicate entity id(s) in entities CSV: {dupes}")
    return df


# ---------------------------------------------------------------------------
# Id normalisation
# ---------------------------------------------------------------------------


def _as_int(label) -> int:
    if isinstance(label, (int, np.integer)) and not isinstance(label, bool):
        return int(label)
    # a column with NA rows is read as float64; 1.0 stays entity 1
    if isinstance(label, (float, np.floating)) and float(label).is_integer():
        return int(label)
    if isinstance(label, str) and label.strip().lstrip("-").isdigit():
        return int(label.strip())
    raise ValueError(f"not an integer label: {label!r}")


def normalise_ids(labels) -> dict:
    """Map raw labels to one id type.

    Returns
    -------
    dict
        ``{"mapping": {raw_label: id}, "int_ids": bool}``.  Ids are ``int``
        when every label parses as an integer, ``str`` otherwise.
    """
    raw = list(dict.fromkeys(labels))
    try:
        return {"mapping": {x: _as_int(x) for x in raw}, "int_ids": True}
    except ValueError:
        return {"mapping": {x: str(x).strip() for x in raw}, "int_ids": False}


# ---------------------------------------------------------------------------
# Network assembly
# ---------------------------------------------------------------------------


def build_network_dict(
    obligations: pd.DataFrame,
    entities: pd.DataFrame | None,
    default_capital: float,
    default_buffer: float,
) -> tuple[dict, dict]:
    """Assemble the structured network description.

    Returns
    -------
    network : dict
        ``{"entities": [...], "obligations": [...]}`` as read by
        ``solvency_cascade.network_from_dict``.
    stats : dict
        Ingestion counts: self-obligations stripped, parallel obligations
        kept, entities defaulted.
    """
    labels = []
    if entities is not None:
        labels.extend(entities["id"].tolist())
    labels.extend(obligations["source"].tolist())
    labels.extend(obligations["target"].tolist())
    ids = normalise_ids(labels)
    mapping = ids["mapping"]

    ent_rows: dict = {}
    if entities is not None:
        names = entities["name"] if "name" in entities.columns else entities["id"]
        for raw_id, name, capital, buffer in zip(
            entities["id"], names, entities["capital"], entities["buffer"]
        ):
            eid = mapping[raw_id]
            ent_rows[eid] = {
                "id": eid,
                "name": str(name) if pd.notna(name) else str(eid),
                "capital": float(capital),
                "buffer": float(buffer),
            }

    n_defaulted = 0
    obligation_rows = []
    n_self = 0
    seen_pairs: set = set()
    n_parallel = 0
    for raw_u, raw_v, amount in zip(
        obligations["source"], obligations["target"], obligations["amount"]
    ):
        u, v = mapping[raw_u], mapping[raw_v]
        for eid in (u, v):
            if eid not in ent_rows:
                ent_rows[eid] = {
                    "id": eid,
                    "name": str(eid),
                    "capital": float(default_capital),
                    "buffer": float(default_buffer),
                }
                n_defaulted += 1
        if u == v:
            n_self += 1
            continue
        if (u, v) in seen_pairs:
            n_parallel += 1
        seen_pairs.add((u, v))
        obligation_rows.append({"from": u, "to": v, "amount": float(amount)})

    network = {"entities": list(ent_rows.values()), "obligations": obligation_rows}
    stats = {
        "n_entities": len(ent_rows),
        "n_obligations": len(obligation_rows),
        "n_self_obligations_stripped": n_self,
        "n_parallel_obligations": n_parallel,
        "n_entities_defaulted": n_defaulted,
        "int_ids": ids["int_ids"],
    }
    return network, stats


def assemble_config(network: dict, args: argparse.Namespace, adapter_meta: dict) -> dict:
    """Assemble the full runner JSON config."""
    cfg: dict = {
        "network": {"type": "custom", **network},
        "initial_failed": list(args.initial_failed or []),
        "max_steps": None,
        "top_k": args.top_k,
        # Provenance block (informational; runner ignores unknown top-level keys)
        "_adapter_meta": adapter_meta,
    }
    if args.enable_sensitivity:
        cfg["sensitivity_analysis"] = True
        cfg["sensitivity_config"] = DEFAULT_SENSITIVITY_CONFIG.copy()
    else:
        cfg["sensitivity_analysis"] = False
    return cfg


def coerce_initial_failed(raw: list[str], int_ids: bool) -> list:
    return [int(x) for x in raw] if int_ids else list(raw)


# ---------------------------------------------------------------------------
# Summary reporter
# ---------------------------------------------------------------------------


def print_summary(csv_path: Path, output_path: Path, stats: dict) -> None:
    """Print a concise ingestion summary to stdout."""
    sep = "─" * 56
    print(sep)
    print("  data_adapter — Ingestion Summary")
    print(sep)
    print(f"  Obligations CSV        : {csv_path}")
    print(f"  Output config          : {output_path}")
    print(f"  Entities               : {stats['n_entities']}")
    print(f"  Obligations            : {stats['n_obligations']}")
    print(f"  Self-obligations dropped : {stats['n_self_obligations_stripped']}")
    print(f"  Parallel obligations kept : {stats['n_parallel_obligations']}")
    print(f"  Entities with default balance sheet : {stats['n_entities_defaulted']}")
    print(f"  Id type                : {'int' if stats['int_ids'] else 'str'}")
    print(sep)


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        description=(
            "Convert an obligations CSV to a solvency_cascade JSON configuration file.\n\n"
            "Required obligations columns: source, target, amount\n"
            "Entities CSV columns:         id, capital, buffer [, name]"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    p.add_argument("input", type=Path, help="Path to the obligations CSV file.")
    p.add_argument(
        "--entities",
        type=Path,
        default=None,
        metavar="PATH",
        help="Optional entities CSV with balance sheets.",
    )
    p.add_argument(
        "--output", "-o",
        type=Path,
        default=Path("config_ledger.json"),
        metavar="PATH",
        help="Path for the output JSON config file (default: config_ledger.json).",
    )
    p.add_argument("--default-capital", dest="default_capital", type=float, default=100.0)
    p.add_argument("--default-buffer", dest="default_buffer", type=float, default=20.0)
    p.add_argument(
        "--initial-failed",
        dest="initial_failed",
        nargs="*",
        default=[],
        help="Entity ids failed at the start of the shock scenario.",
    )
    p.add_argument("--top-k", dest="top_k", type=int, default=None)
    p.add_argument(
        "--enable-sensitivity",
        dest="enable_sensitivity",
        action="store_true",
        help="Enable sensitivity analysis block in the output config.",
    )
    return p


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.default_capital < 0 or args.default_buffer < 0:
        print("ERROR: --default-capital and --default-buffer must be >= 0.", file=sys.stderr)
        sys.exit(1)

    # ── 1. Load CSVs ─────────────────────────────────────────────────────────
    print(f"  [data_adapter] Reading CSV: {args.input}")
    try:
        obligations = load_obligations(args.input)
        entities = load_entities(args.entities) if args.entities is not None else None
    except (FileNotFoundError, ValueError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        sys.exit(1)

    # ── 2. Build network ──────────────────────────────────────────────────────
    network, stats = build_network_dict(
        obligations, entities, args.default_capital, args.default_buffer
    )
    if stats["n_self_obligations_stripped"]:
        print(
            f"  [data_adapter] Warning: {stats['n_self_obligations_stripped']} "
            "self-obligation(s) stripped.",
            file=sys.stderr,
        )

    try:
        args.initial_failed = coerce_initial_failed(args.initial_failed, stats["int_ids"])
    except ValueError as exc:
        print(f"ERROR in --initial-failed: {exc}", file=sys.stderr)
        sys.exit(1)
    known = {e["id"] for e in network["entities"]}
    unknown = [x for x in args.initial_failed if x not in known]
    if unknown:
        print(f"ERROR: --initial-failed references unknown entity id(s): {unknown}", file=sys.stderr)
        sys.exit(1)

    # ── 3. Assemble and write config ──────────────────────────────────────────
    adapter_meta = {
        "source_csv": str(args.input.resolve()),
        "entities_csv": str(args.entities.resolve()) if args.entities else None,
        **stats,
    }
    cfg = assemble_config(network, args, adapter_meta)

    output_path = args.output
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(json.dumps(cfg, indent=2))

    print_summary(args.input, output_path, stats)
    print(f"\n  Config written to: {output_path.resolve()}")
    print(f"  Run with: python3 runner.py {output_path} --output-dir results/\n")


if __name__ == "__main__":
    main()
