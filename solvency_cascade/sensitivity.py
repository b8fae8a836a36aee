"""
Sensitivity analysis module for the solvency cascade engine.

Quantifies how cascade size changes as buffers (regulatory tightening) or
capital (uniform recapitalisation / erosion) are scaled.  For each
perturbation delta the target field of every entity is multiplied by
``1 + delta``:

    buffer_p  = max(0, buffer  * (1 + delta))      target="buffer"
    capital_p = max(0, capital * (1 + delta))      target="capital"

A delta below -1 would produce negative values; those are clamped at zero and
a ``UserWarning`` is emitted.

Design
------
* Pure functions: no global state, no side effects.
* Perturbations build a new Network per level; the base network is never
  mutated.
* Results are returned as structured records ready for CSV export.
"""

from __future__ import annotations

import warnings
from collections import defaultdict
from dataclasses import dataclass

import numpy as np

from .network import Entity, EntityId, Network
from .propagation import run_cascade


TARGETS = ("buffer", "capital")


# ---------------------------------------------------------------------------
# Result containers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SensitivityPoint:
    """Result for a single perturbation level and seed entity.

    Attributes
    ----------
    perturbation : float
        The relative delta applied to the target field.
    seed_entity : entity id
        Which entity was failed initially.
    n_failed : int
        Final failed-set size.
    failed_fraction : float
        ``n_failed`` divided by the entity count.
    n_steps : int
        Length of the cascade trace.
    target : str
        ``"buffer"`` or ``"capital"``.
    clamped : bool
        Whether the perturbation had to be clamped at zero.
    """
    perturbation: float
    seed_entity: EntityId
    n_failed: int
    failed_fraction: float
    n_steps: int
    target: str = "buffer"
    clamped: bool = False

    def to_dict(self) -> dict:
        return {
            "perturbation": self.perturbation,
            "seed_entity": self.seed_entity,
            "n_failed": self.n_failed,
            "failed_fraction": self.failed_fraction,
            "n_steps": self.n_steps,
            "target": self.target,
            "clamped": self.clamped,
        }


# ---------------------------------------------------------------------------
# Perturbation helper
# ---------------------------------------------------------------------------


def perturb_network(
    network: Network,
    delta: float,
    target: str = "buffer",
    warn_stacklevel: int = 2,
) -> tuple[Network, bool]:
    """Scale ``target`` of every entity by ``1 + delta``.

    Returns
    -------
    perturbed : Network
        A new network; ``network`` is untouched.
    clamped : bool
        True when the factor was negative and values were floored at zero.
    """
    if target not in TARGETS:
        raise ValueError(f"target must be one of {TARGETS}; got {target!r}.")

    factor = 1.0 + float(delta)
    clamped = factor < 0.0
    if clamped:
        warnings.warn(
            f"buffer_sensitivity: delta={delta:.4f} would make every {target} "
            f"negative; {target} values have been clamped at 0.",
            UserWarning,
            stacklevel=warn_stacklevel,
        )
        factor = 0.0

    if target == "buffer":
        return network.with_scaled_buffers(factor), clamped

    entities = tuple(
        Entity(e.entity_id, e.name, float(e.capital) * factor, e.buffer)
        for e in network.entities
    )
    return Network(entities, network.obligations), clamped


# ---------------------------------------------------------------------------
# Core sensitivity runner
# ---------------------------------------------------------------------------


def buffer_sensitivity(
    network: Network,
    perturbation_values: list[float],
    seed_ids: list | None = None,
    target: str = "buffer",
    max_steps: int | None = None,
) -> list[SensitivityPoint]:
    """Run buffer (or capital) sensitivity analysis.

    Parameters
    ----------
    network : Network
        Base network.
    perturbation_values : list of float
        Relative deltas to sweep (e.g., [-0.2, -0.1, 0.0, 0.1, 0.2]).
    seed_ids : list of entity ids or None, optional
        Entities to use as single initial failures.  Defaults to all.
    target : {"buffer", "capital"}, optional
        Which entity field to scale (default "buffer").
    max_steps : int or None, optional
        Passed through to ``run_cascade``.

    Returns
    -------
    list of SensitivityPoint
        One record per (perturbation, seed entity) combination.

    Raises
    ------
    ValueError
        If ``target`` is not recognised.
    UnknownEntityError
        If ``seed_ids`` references an id outside the network.
    """
    if target not in TARGETS:
        raise ValueError(f"target must be one of {TARGETS}; got {target!r}.")

    if seed_ids is None:
        seed_ids = list(network.ids)
    else:
        network.validate_ids(seed_ids)
        seed_ids = [network.entity(s).entity_id for s in seed_ids]

    n = len(network)
    results: list[SensitivityPoint] = []

    for delta in perturbation_values:
        perturbed, clamped = perturb_network(network, delta, target, warn_stacklevel=3)

        for seed_entity in seed_ids:
            res = run_cascade(perturbed, {seed_entity}, max_steps=max_steps)
            results.append(SensitivityPoint(
                perturbation=float(delta),
                seed_entity=seed_entity,
                n_failed=res.n_failed,
                failed_fraction=res.n_failed / n if n > 0 else 0.0,
                n_steps=res.n_steps,
                target=target,
                clamped=clamped,
            ))

    return results


def sensitivity_to_records(points: list[SensitivityPoint]) -> list[dict]:
    """Convert a list of SensitivityPoints to a list of dicts for CSV export."""
    return [p.to_dict() for p in points]


def sensitivity_aggregate_by_perturbation(
    points: list[SensitivityPoint],
) -> list[dict]:
    """Aggregate sensitivity results by perturbation level.

    For each unique perturbation delta, compute the mean and std of the failed
    fraction across all seed entities.

    Returns
    -------
    list of dict
        Sorted by perturbation.  Each dict has keys: perturbation,
        mean_failed_fraction, std_failed_fraction, max_n_failed,
        n_seed_entities, target, clamped.
    """
    grouped: dict[float, list] = defaultdict(list)
    for p in points:
        grouped[p.perturbation].append(p)

    agg = []
    for delta in sorted(grouped.keys()):
        pts = grouped[delta]
        vals = np.array([p.failed_fraction for p in pts])
        agg.append({
            "perturbation": delta,
            "mean_failed_fraction": float(np.mean(vals)),
            "std_failed_fraction": float(np.std(vals, ddof=1)) if len(vals) > 1 else 0.0,
            "max_n_failed": max(p.n_failed for p in pts),
            "n_seed_entities": len(vals),
            "target": pts[0].target,
            "clamped": pts[0].clamped,
        })
    return agg
