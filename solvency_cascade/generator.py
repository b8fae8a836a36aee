"""
Network generation utilities for the solvency cascade engine.

Uses NetworkX only for topology construction and a single seeded NumPy
Generator for entity and obligation values.  Randomness lives here and only
here: the propagation engine itself is fully deterministic.

Value model
-----------
* capital  ~ round(U(60, 200))
* buffer   = max(6, round(capital * U(0.08 * f, 0.35 * f + 0.15)))
* amount   = round(U(6, max(10, 0.25 * capital_of_debtor)))

where ``f`` is the fragility parameter: higher values skew buffers upward.
"""

from __future__ import annotations

from pathlib import Path

import networkx as nx
import numpy as np
from numpy.random import Generator, default_rng

from .network import Entity, Network, Obligation, network_from_dict
from .scenario import load_network


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _draw_entities(n: int, fragility: float, rng: Generator) -> list[Entity]:
    capital = np.round(rng.uniform(60.0, 200.0, size=n))
    ratio = rng.uniform(0.08 * fragility, 0.35 * fragility + 0.15, size=n)
    buffer = np.maximum(6.0, np.round(capital * ratio))
    return [
        Entity(entity_id=i, name=f"B{i}", capital=float(capital[i]), buffer=float(buffer[i]))
        for i in range(n)
    ]


def _draw_obligations(
    G: nx.DiGraph,
    entities: list[Entity],
    rng: Generator,
) -> list[Obligation]:
    """One obligation per directed edge u -> v, sized by the debtor's capital.

    Edges are visited in sorted order so the draw sequence is independent of
    NetworkX's internal edge ordering.
    """
    obligations = []
    for u, v in sorted(G.edges()):
        if u == v:
            continue
        high = max(10.0, entities[u].capital * 0.25)
        amount = float(np.round(rng.uniform(6.0, high)))
        obligations.append(Obligation(source=u, target=v, amount=amount))
    return obligations


def _check_params(n: int, fragility: float) -> None:
    if n < 0:
        raise ValueError(f"n must be non-negative; got {n}.")
    if fragility < 0:
        raise ValueError(f"fragility must be non-negative; got {fragility}.")


# ---------------------------------------------------------------------------
# Public generators
# ---------------------------------------------------------------------------


def generate_random_network(
    n: int,
    density: float,
    fragility: float,
    seed: int,
) -> Network:
    """Generate an Erdős–Rényi obligation network.

    Each ordered pair (u, v), u != v, carries an obligation independently with
    probability ``density``.

    Parameters
    ----------
    n : int
        Number of entities (ids 0..n-1).
    density : float
        Obligation probability in [0, 1].
    fragility : float
        Buffer skew parameter (non-negative).
    seed : int
        Random seed for reproducibility.

    Returns
    -------
    Network
    """
    _check_params(n, fragility)
    if not 0.0 <= density <= 1.0:
        raise ValueError(f"density must be in [0, 1]; got {density}.")
    rng = default_rng(seed)
    entities = _draw_entities(n, fragility, rng)
    G: nx.DiGraph = nx.gnp_random_graph(n, density, seed=seed, directed=True)
    return Network(tuple(entities), tuple(_draw_obligations(G, entities, rng)))


def generate_scale_free_network(
    n: int,
    m: int,
    fragility: float,
    seed: int,
) -> Network:
    """Generate a Barabási–Albert obligation network.

    NetworkX produces an undirected BA graph; each undirected edge {u, v}
    becomes two reciprocal obligations u -> v and v -> u with independently
    drawn amounts.

    Parameters
    ----------
    n : int
        Number of entities.
    m : int
        Edges attached per new entity (1 <= m < n).
    fragility : float
        Buffer skew parameter.
    seed : int
        Random seed for reproducibility.

    Returns
    -------
    Network
    """
    _check_params(n, fragility)
    rng = default_rng(seed)
    entities = _draw_entities(n, fragility, rng)
    G: nx.Graph = nx.barabasi_albert_graph(n, m, seed=seed)
    return Network(tuple(entities), tuple(_draw_obligations(G.to_directed(), entities, rng)))


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def network_from_config(network_cfg: dict, base_dir: str | Path | None = None) -> Network:
    """Build a network from a ``network`` config sub-dict.

    Parameters
    ----------
    network_cfg : dict
        Must contain ``type``.  Supported types: ``random`` (``n``,
        ``density``, optional ``fragility`` and ``seed``), ``scale_free``
        (``n``, ``m``, optional ``fragility`` and ``seed``), ``custom``
        (``entities`` and ``obligations`` in structured form) and ``file``
        (``path`` to a network JSON file, resolved against ``base_dir``).
    base_dir : str or Path or None, optional
        Directory relative ``file`` paths are resolved against.

    Returns
    -------
    Network

    Raises
    ------
    ValueError
        For unsupported network types.
    """
    ntype = network_cfg["type"]
    seed = int(network_cfg.get("seed", 0))
    fragility = float(network_cfg.get("fragility", 0.32))

    if ntype == "random":
        return generate_random_network(
            int(network_cfg["n"]), float(network_cfg["density"]), fragility, seed
        )
    if ntype == "scale_free":
        return generate_scale_free_network(
            int(network_cfg["n"]), int(network_cfg["m"]), fragility, seed
        )
    if ntype == "custom":
        return network_from_dict(network_cfg)
    if ntype == "file":
        path = Path(network_cfg["path"])
        if base_dir is not None and not path.is_absolute():
            path = Path(base_dir) / path
        return load_network(path)

    raise ValueError(f"Unsupported network type: {ntype!r}")
