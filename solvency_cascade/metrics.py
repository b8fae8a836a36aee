"""
Metrics module for the solvency cascade engine.

All metrics are pure functions with no global state.

* ``cascade_size``          – failed / alive / induced counts of one run.
* ``impact_summary``        – distribution summary of an impact vector.
* ``exposure_vectors``      – incoming and outgoing obligation totals.
* ``spearman_correlation``  – Spearman rank correlation via scipy.stats.
* ``inspect_entity``        – why one entity fails or survives a failed set.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

import numpy as np
import scipy.stats as _scipy_stats

from .network import EntityId, Network
from .propagation import CascadeResult


# ---------------------------------------------------------------------------
# Basic cascade metrics
# ---------------------------------------------------------------------------


def cascade_size(result: CascadeResult, n_total: int) -> dict[str, int | float]:
    """Compute cascade size statistics from a cascade result.

    Parameters
    ----------
    result : CascadeResult
    n_total : int
        Number of entities in the network the result came from.

    Returns
    -------
    dict
        Dictionary with keys:

        - ``n_total`` : total number of entities
        - ``n_initial`` : entities in the initial failure set
        - ``n_failed`` : entities failed at the fixed point
        - ``n_induced`` : failed entities that were not initially failed
        - ``n_alive`` : surviving entities
        - ``frac_failed`` : fraction of entities failed
        - ``frac_induced`` : fraction of entities failed by contagion
        - ``n_steps`` : length of the step trace
    """
    n_failed = result.n_failed
    n_induced = len(result.induced)
    return {
        "n_total": n_total,
        "n_initial": len(result.initial_failed),
        "n_failed": n_failed,
        "n_induced": n_induced,
        "n_alive": n_total - n_failed,
        "frac_failed": n_failed / n_total if n_total > 0 else 0.0,
        "frac_induced": n_induced / n_total if n_total > 0 else 0.0,
        "n_steps": result.n_steps,
    }


def impact_summary(impacts: np.ndarray) -> dict[str, float]:
    """Summarise an impact vector.

    Parameters
    ----------
    impacts : np.ndarray, shape (n,)
        Impact vector as returned by ``criticality.impact_vector``.

    Returns
    -------
    dict
        Summary statistics: ``mean``, ``std``, ``min``, ``max``, ``median``,
        ``p90`` (90th percentile).

    Raises
    ------
    ValueError
        If ``impacts`` is empty.
    """
    impacts = np.asarray(impacts, dtype=np.float64)
    if impacts.size == 0:
        raise ValueError("impacts must not be empty.")
    return {
        "mean": float(np.mean(impacts)),
        "std": float(np.std(impacts)),
        "min": float(np.min(impacts)),
        "max": float(np.max(impacts)),
        "median": float(np.median(impacts)),
        "p90": float(np.percentile(impacts, 90)),
    }


def exposure_vectors(network: Network) -> tuple[np.ndarray, np.ndarray]:
    """Total obligation amounts per entity.

    Returns
    -------
    incoming : np.ndarray, shape (n,)
        Sum of amounts owed *to* each entity (its credit exposure).
    outgoing : np.ndarray, shape (n,)
        Sum of amounts each entity owes.
    """
    n = len(network)
    incoming = np.bincount(network.target_index, weights=network.amount, minlength=n)
    outgoing = np.bincount(network.source_index, weights=network.amount, minlength=n)
    return incoming.astype(np.float64), outgoing.astype(np.float64)


def spearman_correlation(x: np.ndarray, y: np.ndarray) -> dict[str, float]:
    """Compute Spearman rank correlation coefficient and p-value.

    Used to check how far the impact ranking is explained by plain exposure.

    Parameters
    ----------
    x : np.ndarray, shape (m,)
    y : np.ndarray, shape (m,)

    Returns
    -------
    dict with keys:
        - ``rho``     : Spearman correlation coefficient in [-1, 1]
          (NaN when either input is constant).
        - ``p_value`` : Two-tailed p-value for the null hypothesis rho == 0.

    Raises
    ------
    ValueError
        If arrays differ in shape or have fewer than 3 elements.
    """
    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    if x.shape != y.shape:
        raise ValueError(
            f"x and y must have the same shape; got {x.shape} vs {y.shape}."
        )
    if x.size < 3:
        raise ValueError("Spearman correlation requires at least 3 elements.")
    result = _scipy_stats.spearmanr(x, y)
    return {
        "rho": float(result.statistic),
        "p_value": float(result.pvalue),
    }


# ---------------------------------------------------------------------------
# Inspector
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EntityInspection:
    """Solvency breakdown of one entity against a failed set."""
    entity_id: EntityId
    unpaid_incoming: float
    net: float
    buffer: float

    @property
    def solvent(self) -> bool:
        return self.net >= self.buffer

    def to_dict(self) -> dict:
        return {
            "entity_id": self.entity_id,
            "unpaid_incoming": self.unpaid_incoming,
            "net": self.net,
            "buffer": self.buffer,
            "solvent": self.solvent,
        }


def inspect_entity(
    network: Network,
    entity_id: EntityId,
    failed: Iterable[EntityId] = (),
) -> EntityInspection:
    """Explain an entity's position given a set of failed counterparties.

    Parameters
    ----------
    network : Network
    entity_id : entity id
        Entity to inspect.
    failed : iterable of entity ids, optional
        Failed set to evaluate against, e.g. ``CascadeResult.failed``.

    Returns
    -------
    EntityInspection
        ``unpaid_incoming`` is the sum of obligations owed to the entity by
        failed debtors; ``net = capital - unpaid_incoming``.

    Raises
    ------
    UnknownEntityError
        If ``entity_id`` or any id in ``failed`` is not in the network.
    """
    entity = network.entity(entity_id)
    failed_ids = network.validate_ids(failed)
    unpaid = float(sum(
        float(o.amount) for o in network.incoming(entity_id) if o.source in failed_ids
    ))
    return EntityInspection(
        entity_id=entity.entity_id,
        unpaid_incoming=unpaid,
        net=float(entity.capital) - unpaid,
        buffer=float(entity.buffer),
    )
