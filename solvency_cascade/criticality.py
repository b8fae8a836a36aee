"""
Criticality analysis: brute-force search for single points of failure.

For every entity e the cascade engine is run from the initial failure set
{e}; the impact of e is the size of the final failed set (e included).
Entities are ranked by impact, descending, ties broken by ascending id.

The search is exhaustive and exact: n independent cascade runs over the same
read-only network.  No run shares mutable state with another.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from .network import EntityId, Network
from .propagation import run_cascade


# ---------------------------------------------------------------------------
# Result containers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ImpactRecord:
    """Impact of failing ``entity_id`` alone."""
    entity_id: EntityId
    impact: int

    def to_dict(self) -> dict:
        return {"entity_id": self.entity_id, "impact": self.impact}


@dataclass(frozen=True)
class CriticalityReport:
    """Entities ordered by single-failure impact.

    Attributes
    ----------
    records : tuple of ImpactRecord
        Sorted by impact descending, then entity id ascending.  Truncated to
        ``top_k`` when one was requested.
    n_entities : int
        Number of entities in the analysed network.
    """
    records: tuple
    n_entities: int

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self):
        return iter(self.records)

    def top(self) -> ImpactRecord | None:
        """Most critical entity, or ``None`` for an empty report."""
        return self.records[0] if self.records else None

    def ids(self) -> list:
        return [r.entity_id for r in self.records]

    def to_dict(self) -> dict:
        return {
            "n_entities": self.n_entities,
            "ranking": [r.to_dict() for r in self.records],
        }


# ---------------------------------------------------------------------------
# Impact vector
# ---------------------------------------------------------------------------


def impact_vector(network: Network, max_steps: int | None = None) -> np.ndarray:
    """Compute the single-failure impact of every entity.

    Parameters
    ----------
    network : Network
    max_steps : int or None, optional
        Passed through to ``run_cascade``.

    Returns
    -------
    np.ndarray, shape (n,), dtype int64
        impacts[i] = final failed-set size when entity i alone fails, in
        network order.  Always >= 1.

    Notes
    -----
    This runs ``n`` independent cascades.  Each run is bounded by
    ``max_steps`` rounds, so total work grows roughly quadratically with n.
    """
    impacts = np.empty(len(network), dtype=np.int64)
    for i, entity in enumerate(network.entities):
        result = run_cascade(network, {entity.entity_id}, max_steps=max_steps)
        impacts[i] = result.n_failed
    return impacts


# ---------------------------------------------------------------------------
# Ranking
# ---------------------------------------------------------------------------


def rank_criticality(
    network: Network,
    top_k: int | None = None,
    max_steps: int | None = None,
) -> CriticalityReport:
    """Rank entities by the size of the cascade their lone failure triggers.

    Parameters
    ----------
    network : Network
    top_k : int or None, optional
        Keep only the ``top_k`` highest-impact entities.  ``None`` or a value
        above the entity count keeps all of them.
    max_steps : int or None, optional
        Passed through to ``run_cascade``.

    Returns
    -------
    CriticalityReport

    Raises
    ------
    ValueError
        If ``top_k`` is negative.
    NonConvergenceError
        Only when a caller-supplied ``max_steps`` is too small.
    """
    if top_k is not None and top_k < 0:
        raise ValueError(f"top_k must be non-negative; got {top_k}.")

    impacts = impact_vector(network, max_steps=max_steps)
    records = [
        ImpactRecord(entity_id=eid, impact=int(impacts[i]))
        for i, eid in enumerate(network.ids)
    ]
    records.sort(key=lambda r: (-r.impact, r.entity_id))

    if top_k is not None:
        records = records[:top_k]
    return CriticalityReport(records=tuple(records), n_entities=len(network))
