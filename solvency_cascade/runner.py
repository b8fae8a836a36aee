"""
Runner script for the solvency cascade engine.

Loads a JSON config, builds the network, runs the configured shock scenario,
ranks every entity by single-failure impact and optionally sweeps buffer or
capital sensitivity.

Outputs
-------
network.json, cascade_result.json, cascade_trace.csv, entity_states.csv,
criticality.csv, summary.json and, when enabled, sensitivity_results.csv and
sensitivity_aggregate.csv.

Usage
-----
    python runner.py config.json [--output-dir results/]

All outputs are written to the specified directory.  A config snapshot
with SHA-256 hash is always saved alongside results for reproducibility.

Exit status is 1 when the initial failure set names an unknown entity and 2
when the cascade does not converge within ``max_steps``.
"""

from __future__ import annotations

import argparse
import csv
import hashlib
import json
import math
import sys
import time
from pathlib import Path

from .config import load_config, sensitivity_settings
from .criticality import CriticalityReport, rank_criticality
from .generator import network_from_config
from .metrics import cascade_size, exposure_vectors, impact_summary, spearman_correlation
from .network import Network, UnknownEntityError
from .propagation import CascadeResult, NonConvergenceError, run_cascade
from .scenario import save_network, save_result
from .sensitivity import (
    buffer_sensitivity,
    sensitivity_aggregate_by_perturbation,
    sensitivity_to_records,
)


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Solvency cascade engine — shock scenario and criticality runner."
    )
    parser.add_argument("config", help="Path to JSON configuration file.")
    parser.add_argument(
        "--output-dir",
        default="results",
        help="Directory for output files (default: results/).",
    )
    return parser.parse_args(argv)


# ---------------------------------------------------------------------------
# Filesystem helpers
# ---------------------------------------------------------------------------


def _ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def _write_csv(path: Path, fieldnames: list[str], rows: list[dict]) -> None:
    with path.open("w", newline="") as fh:
        writer = csv.DictWriter(fh, fieldnames=fieldnames)
        writer.writeheader()
        writer.writerows(rows)


def _config_hash(cfg: dict) -> str:
    """Compute a SHA-256 hash of the JSON-serialised config for reproducibility."""
    serialised = json.dumps(cfg, sort_keys=True).encode("utf-8")
    return hashlib.sha256(serialised).hexdigest()


def _nan_to_none(v):
    """Replace float NaN with None for valid JSON serialisation."""
    return None if (isinstance(v, float) and math.isnan(v)) else v


def _save_config_snapshot(output_dir: Path, cfg: dict) -> None:
    snapshot = {
        "config": cfg,
        "sha256": _config_hash(cfg),
    }
    (output_dir / "config_snapshot.json").write_text(json.dumps(snapshot, indent=2))


# ---------------------------------------------------------------------------
# Shock scenario
# ---------------------------------------------------------------------------


def _write_cascade_outputs(network: Network, result: CascadeResult, output_dir: Path) -> None:
    save_result(result, output_dir / "cascade_result.json")

    names = {e.entity_id: e.name for e in network.entities}
    trace_rows = []
    for step in result.steps:
        for eid, loss in step.losses.items():
            trace_rows.append({
                "step": step.step,
                "entity_id": eid,
                "name": names[eid],
                "unpaid_loss": loss,
                "newly_failed": eid in step.newly_failed,
            })
    _write_csv(
        output_dir / "cascade_trace.csv",
        ["step", "entity_id", "name", "unpaid_loss", "newly_failed"],
        trace_rows,
    )

    _write_csv(
        output_dir / "entity_states.csv",
        ["entity_id", "name", "capital", "buffer", "alive", "failed_step"],
        [
            {
                "entity_id": e.entity_id,
                "name": e.name,
                "capital": e.capital,
                "buffer": e.buffer,
                "alive": s.alive,
                "failed_step": "" if s.failed_step is None else s.failed_step,
            }
            for e, s in zip(network.entities, result.states)
        ],
    )


def _run_shock(cfg: dict, network: Network, output_dir: Path) -> CascadeResult:
    """Run the configured initial failure set through the cascade engine."""
    initial = cfg.get("initial_failed", [])
    result = run_cascade(network, initial, max_steps=cfg.get("max_steps"))
    _write_cascade_outputs(network, result, output_dir)
    return result


# ---------------------------------------------------------------------------
# Criticality
# ---------------------------------------------------------------------------


def _run_criticality(cfg: dict, network: Network, output_dir: Path) -> tuple[CriticalityReport, float]:
    t0 = time.perf_counter()
    full = rank_criticality(network, max_steps=cfg.get("max_steps"))
    elapsed = time.perf_counter() - t0

    names = {e.entity_id: e.name for e in network.entities}
    _write_csv(
        output_dir / "criticality.csv",
        ["rank", "entity_id", "name", "impact", "frac_failed"],
        [
            {
                "rank": rank,
                "entity_id": r.entity_id,
                "name": names[r.entity_id],
                "impact": r.impact,
                "frac_failed": round(r.impact / len(network), 4),
            }
            for rank, r in enumerate(full, start=1)
        ],
    )
    return full, elapsed


# ---------------------------------------------------------------------------
# Sensitivity sub-pipeline
# ---------------------------------------------------------------------------


def _run_sensitivity(
    cfg: dict,
    network: Network,
    ranking: CriticalityReport,
    output_dir: Path,
) -> None:
    """Run buffer/capital sensitivity analysis and write results."""
    sens_cfg = sensitivity_settings(cfg)
    perturbations: list[float] = list(sens_cfg["perturbation_values"])
    target: str = sens_cfg["target"]
    # Default: the highest-impact entities as seeds
    max_seed: int = int(sens_cfg["max_seed_entities"])
    seed_ids = ranking.ids()[:max_seed]

    print(
        f"[Sensitivity] target={target} | {len(perturbations)} perturbations | "
        f"{len(seed_ids)} seed entities"
    )
    t0 = time.perf_counter()
    points = buffer_sensitivity(
        network,
        perturbation_values=perturbations,
        seed_ids=seed_ids,
        target=target,
        max_steps=cfg.get("max_steps"),
    )
    elapsed = time.perf_counter() - t0
    print(f"[Sensitivity] Done in {elapsed:.2f}s — {len(points)} records")

    _write_csv(
        output_dir / "sensitivity_results.csv",
        ["perturbation", "seed_entity", "n_failed", "failed_fraction",
         "n_steps", "target", "clamped"],
        sensitivity_to_records(points),
    )
    _write_csv(
        output_dir / "sensitivity_aggregate.csv",
        ["perturbation", "mean_failed_fraction", "std_failed_fraction",
         "max_n_failed", "n_seed_entities", "target", "clamped"],
        sensitivity_aggregate_by_perturbation(points),
    )
    print("[Sensitivity] Wrote sensitivity_results.csv and sensitivity_aggregate.csv")


# ---------------------------------------------------------------------------
# Summary
# ---------------------------------------------------------------------------


def _summarise(
    cfg: dict,
    network: Network,
    result: CascadeResult,
    ranking: CriticalityReport,
    elapsed_rank: float,
) -> dict:
    n = len(network)
    impacts = [r.impact for r in sorted(ranking, key=lambda r: network.index_of(r.entity_id))]
    top_k = cfg.get("top_k")
    top = ranking.records if top_k is None else ranking.records[:top_k]

    summary = {
        "n_entities": n,
        "n_obligations": len(network.obligations),
        "cascade": cascade_size(result, n),
        "failed": sorted(result.failed),
        "top_critical": [r.to_dict() for r in top],
        "elapsed_criticality_s": round(elapsed_rank, 4),
    }
    if n > 0:
        summary["impact"] = impact_summary(impacts)
    if n >= 3:
        incoming, _ = exposure_vectors(network)
        rho = spearman_correlation(impacts, incoming)
        summary["impact_vs_incoming_exposure"] = {
            k: _nan_to_none(v) for k, v in rho.items()
        }
    return summary


def _print_summary(network: Network, summary: dict) -> None:
    sep = "-" * 58
    n = summary["n_entities"]
    cs = summary["cascade"]
    names = {e.entity_id: e.name for e in network.entities}
    print(sep)
    print("  Solvency Cascade Engine")
    print(sep)
    print(f"  Entities              : {n}")
    print(f"  Obligations           : {summary['n_obligations']}")
    print()
    print("  Shock Scenario")
    print(f"    Initial failures : {cs['n_initial']}")
    print(f"    Failed           : {cs['n_failed']} / {n}")
    print(f"    Induced          : {cs['n_induced']} / {n}")
    print(f"    Steps            : {cs['n_steps']}")
    if "impact" in summary:
        imp = summary["impact"]
        print()
        print("  Single-Failure Impact (failed entities per seed)")
        print(f"    Mean   : {imp['mean']:.2f}")
        print(f"    Median : {imp['median']:.0f}")
        print(f"    P90    : {imp['p90']:.0f}")
        print(f"    Max    : {imp['max']:.0f}")
    if summary["top_critical"]:
        print()
        print("  Most Critical Entities")
        print(f"  {'Rank':>6}  {'Entity':>10}  {'Impact':>7}")
        for rank, r in enumerate(summary["top_critical"], start=1):
            print(f"  {rank:>6}  {names[r['entity_id']]:>10}  {r['impact']:>7}")
    print(sep)


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    output_dir = Path(args.output_dir)
    _ensure_dir(output_dir)

    config_path = Path(args.config)
    cfg = load_config(config_path)
    _save_config_snapshot(output_dir, cfg)

    (output_dir / "experiment_metadata.json").write_text(
        json.dumps(
            {
                "config_file": str(config_path.resolve()),
                "output_dir": str(output_dir.resolve()),
                "config_sha256": _config_hash(cfg),
                "timestamp": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
            },
            indent=2,
        )
    )

    network = network_from_config(cfg["network"], base_dir=config_path.parent)
    save_network(network, output_dir / "network.json")
    print(f"[Network] {len(network)} entities | {len(network.obligations)} obligations")

    try:
        result = _run_shock(cfg, network, output_dir)
        ranking, elapsed_rank = _run_criticality(cfg, network, output_dir)
    except UnknownEntityError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        sys.exit(1)
    except NonConvergenceError as exc:
        print(f"ERROR: {exc} Re-run with a larger max_steps.", file=sys.stderr)
        save_result(exc.partial, output_dir / "cascade_partial.json")
        sys.exit(2)

    summary = _summarise(cfg, network, result, ranking, elapsed_rank)
    (output_dir / "summary.json").write_text(json.dumps(summary, indent=2))
    _print_summary(network, summary)

    if cfg.get("sensitivity_analysis", False):
        _run_sensitivity(cfg, network, ranking, output_dir)

    print(f"  Results saved to : {output_dir.resolve()}")


if __name__ == "__main__":
    main()
