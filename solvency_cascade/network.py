"""
Network model for the solvency cascade engine.

Entities (nodes) carry a capital stock and a minimum-solvency buffer;
obligations (edges) are directed debts owed by ``source`` to ``target``.
A :class:`Network` is a validated, immutable value: all structural checks
run once at construction and the propagation engine never re-validates.

Convention: entity order is construction order.  The engine iterates entities
in this order and the vectorised arrays below are indexed by it.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Hashable, Iterable, Iterator, Sequence

import networkx as nx
import numpy as np


EntityId = Hashable


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class StructuralError(ValueError):
    """Raised when a network violates a structural invariant at construction."""


class UnknownEntityError(KeyError):
    """Raised when an entity id does not resolve to an entity of the network."""

    def __init__(self, unknown_ids: Iterable[EntityId]):
        self.unknown_ids = tuple(unknown_ids)
        super().__init__(f"Unknown entity id(s): {list(self.unknown_ids)}")

    def __str__(self) -> str:
        return str(self.args[0])


# ---------------------------------------------------------------------------
# Value types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Entity:
    """A participant with a capital stock and a solvency buffer.

    Attributes
    ----------
    entity_id : int or str
        Unique identifier within a network.
    name : str
        Display name.
    capital : float
        Non-negative resource available to absorb unpaid obligations.
    buffer : float
        Non-negative minimum-solvency threshold.  May exceed ``capital``.
    """
    entity_id: EntityId
    name: str
    capital: float
    buffer: float


@dataclass(frozen=True)
class Obligation:
    """A directed debt of ``amount`` owed by ``source`` to ``target``."""
    source: EntityId
    target: EntityId
    amount: float


def _check_amount(value: Any, label: str) -> float:
    try:
        v = float(value)
    except (TypeError, ValueError) as exc:
        raise StructuralError(f"{label} must be numeric; got {value!r}.") from exc
    if not math.isfinite(v):
        raise StructuralError(f"{label} must be finite; got {value!r}.")
    if v < 0:
        raise StructuralError(f"{label} must be non-negative; got {value!r}.")
    return v


# ---------------------------------------------------------------------------
# Network
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Network:
    """Validated mapping of entities plus the list of obligations between them.

    Parameters
    ----------
    entities : sequence of Entity
        Entities in canonical iteration order.  Ids must be unique and all of
        one type (all ``int`` or all ``str``) so that they order consistently.
    obligations : sequence of Obligation
        Directed debts.  Parallel obligations are kept; self-obligations are
        rejected.

    Raises
    ------
    StructuralError
        On duplicate or mixed-type ids, negative or non-finite numeric fields,
        dangling obligation endpoints, or self-obligations.
    """
    entities: tuple[Entity, ...]
    obligations: tuple[Obligation, ...] = ()
    _index: dict = field(init=False, repr=False, compare=False)
    _arrays: dict = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        entities = tuple(self.entities)
        obligations = tuple(self.obligations)

        index: dict[EntityId, int] = {}
        id_types = set()
        for pos, e in enumerate(entities):
            if not isinstance(e, Entity):
                raise StructuralError(f"Expected Entity at position {pos}; got {type(e).__name__}.")
            if isinstance(e.entity_id, bool) or not isinstance(e.entity_id, (int, str)):
                raise StructuralError(
                    f"Entity ids must be int or str; got {e.entity_id!r}."
                )
            if e.entity_id in index:
                raise StructuralError(f"Duplicate entity id: {e.entity_id!r}.")
            _check_amount(e.capital, f"capital of entity {e.entity_id!r}")
            _check_amount(e.buffer, f"buffer of entity {e.entity_id!r}")
            id_types.add(type(e.entity_id))
            index[e.entity_id] = pos

        if len(id_types) > 1:
            raise StructuralError(
                "Entity ids must all share one type (int or str); "
                f"got {sorted(t.__name__ for t in id_types)}."
            )

        for k, ob in enumerate(obligations):
            if not isinstance(ob, Obligation):
                raise StructuralError(f"Expected Obligation at position {k}; got {type(ob).__name__}.")
            dangling = [x for x in (ob.source, ob.target) if x not in index]
            if dangling:
                raise StructuralError(
                    f"Obligation {k} ({ob.source!r} -> {ob.target!r}) references "
                    f"unknown entity id(s): {dangling}."
                )
            if ob.source == ob.target:
                raise StructuralError(
                    f"Obligation {k} is a self-obligation on entity {ob.source!r}."
                )
            _check_amount(ob.amount, f"amount of obligation {k}")

        n = len(entities)
        arrays = {
            "capital": np.array([float(e.capital) for e in entities], dtype=np.float64).reshape(n),
            "buffer": np.array([float(e.buffer) for e in entities], dtype=np.float64).reshape(n),
            "source_index": np.array([index[o.source] for o in obligations], dtype=np.int64),
            "target_index": np.array([index[o.target] for o in obligations], dtype=np.int64),
            "amount": np.array([float(o.amount) for o in obligations], dtype=np.float64),
        }
        for arr in arrays.values():
            arr.setflags(write=False)

        # frozen dataclass: bypass __setattr__ for normalised / derived fields
        object.__setattr__(self, "entities", entities)
        object.__setattr__(self, "obligations", obligations)
        object.__setattr__(self, "_index", index)
        object.__setattr__(self, "_arrays", arrays)

    # -- container protocol -------------------------------------------------

    def __len__(self) -> int:
        return len(self.entities)

    def __iter__(self) -> Iterator[Entity]:
        return iter(self.entities)

    def __contains__(self, entity_id: object) -> bool:
        # bool hashes like 0 / 1 but is never a valid id
        if isinstance(entity_id, (bool, np.bool_)):
            return False
        try:
            return entity_id in self._index
        except TypeError:
            return False

    # -- lookup -------------------------------------------------------------

    @property
    def ids(self) -> tuple[EntityId, ...]:
        return tuple(e.entity_id for e in self.entities)

    def index_of(self, entity_id: EntityId) -> int:
        if entity_id not in self:
            raise UnknownEntityError([entity_id])
        return self._index[entity_id]

    def entity(self, entity_id: EntityId) -> Entity:
        return self.entities[self.index_of(entity_id)]

    def outgoing(self, entity_id: EntityId) -> tuple[Obligation, ...]:
        eid = self.entity(entity_id).entity_id
        return tuple(o for o in self.obligations if o.source == eid)

    def incoming(self, entity_id: EntityId) -> tuple[Obligation, ...]:
        eid = self.entity(entity_id).entity_id
        return tuple(o for o in self.obligations if o.target == eid)

    def validate_ids(self, entity_ids: Iterable[EntityId]) -> frozenset:
        """Resolve ``entity_ids`` to a frozenset of this network's own ids.

        Ids equal to an entity id (e.g. ``numpy.int64(3)`` for ``3``) are
        replaced by the stored id, so results only ever hold plain ``int`` or
        ``str`` values.

        Raises
        ------
        UnknownEntityError
            If any id is not an entity of this network.  ``bool`` values are
            always unknown.
        """
        ids = list(entity_ids)
        unknown: list = []
        for x in ids:
            if x not in self and not any(type(x) is type(u) and x == u for u in unknown):
                unknown.append(x)
        if unknown:
            raise UnknownEntityError(unknown)
        return frozenset(self.entities[self._index[x]].entity_id for x in ids)

    # -- vectorised view ----------------------------------------------------

    @property
    def capital(self) -> np.ndarray:
        return self._arrays["capital"]

    @property
    def buffer(self) -> np.ndarray:
        return self._arrays["buffer"]

    @property
    def source_index(self) -> np.ndarray:
        return self._arrays["source_index"]

    @property
    def target_index(self) -> np.ndarray:
        return self._arrays["target_index"]

    @property
    def amount(self) -> np.ndarray:
        return self._arrays["amount"]

    # -- value transforms ---------------------------------------------------

    def with_capital_injection(self, entity_id: EntityId, amount: float) -> "Network":
        """Return a copy where ``entity_id`` holds ``amount`` more capital."""
        pos = self.index_of(entity_id)
        e = self.entities[pos]
        injected = Entity(e.entity_id, e.name, float(e.capital) + float(amount), e.buffer)
        entities = self.entities[:pos] + (injected,) + self.entities[pos + 1:]
        return Network(entities, self.obligations)

    def without_obligations(self, indices: Iterable[int]) -> "Network":
        """Return a copy with the obligations at positions ``indices`` removed."""
        drop = set(indices)
        bad = sorted(k for k in drop if not 0 <= k < len(self.obligations))
        if bad:
            raise IndexError(
                f"Obligation index out of range [0, {len(self.obligations) - 1}]: {bad}"
            )
        kept = tuple(o for k, o in enumerate(self.obligations) if k not in drop)
        return Network(self.entities, kept)

    def with_scaled_buffers(self, factor: float) -> "Network":
        """Return a copy with every buffer multiplied by ``factor``."""
        if factor < 0:
            raise ValueError(f"factor must be non-negative; got {factor}.")
        entities = tuple(
            Entity(e.entity_id, e.name, e.capital, float(e.buffer) * factor)
            for e in self.entities
        )
        return Network(entities, self.obligations)


# ---------------------------------------------------------------------------
# Structured form
# ---------------------------------------------------------------------------


def network_to_dict(network: Network) -> dict:
    """Return a JSON-serialisable dict describing ``network``."""
    return {
        "entities": [
            {"id": e.entity_id, "name": e.name, "capital": e.capital, "buffer": e.buffer}
            for e in network.entities
        ],
        "obligations": [
            {"from": o.source, "to": o.target, "amount": o.amount}
            for o in network.obligations
        ],
    }


def network_from_dict(data: dict) -> Network:
    """Build a :class:`Network` from the structure produced by ``network_to_dict``.

    Missing ``name`` defaults to ``str(id)``.

    Raises
    ------
    StructuralError
        If required keys are missing or the network is malformed.
    """
    try:
        entities = [
            Entity(
                entity_id=raw["id"],
                name=str(raw.get("name", raw["id"])),
                capital=raw["capital"],
                buffer=raw["buffer"],
            )
            for raw in data["entities"]
        ]
        obligations = [
            Obligation(source=raw["from"], target=raw["to"], amount=raw["amount"])
            for raw in data.get("obligations", [])
        ]
    except (KeyError, TypeError) as exc:
        raise StructuralError(f"Malformed network description: missing {exc}.") from exc
    return Network(tuple(entities), tuple(obligations))


def build_network(
    entities: Sequence[tuple],
    obligations: Sequence[tuple] = (),
) -> Network:
    """Convenience constructor from plain tuples.

    Parameters
    ----------
    entities : sequence of (id, capital, buffer) or (id, name, capital, buffer)
    obligations : sequence of (source, target, amount)
    """
    ents = []
    for row in entities:
        if len(row) == 3:
            eid, capital, buffer = row
            name = str(eid)
        else:
            eid, name, capital, buffer = row
        ents.append(Entity(eid, name, capital, buffer))
    obs = [Obligation(s, t, a) for s, t, a in obligations]
    return Network(tuple(ents), tuple(obs))


# ---------------------------------------------------------------------------
# Graph view
# ---------------------------------------------------------------------------


def to_digraph(network: Network) -> nx.MultiDiGraph:
    """Convert ``network`` to a NetworkX multigraph (one edge per obligation)."""
    G = nx.MultiDiGraph()
    for e in network.entities:
        G.add_node(e.entity_id, name=e.name, capital=e.capital, buffer=e.buffer)
    for o in network.obligations:
        G.add_edge(o.source, o.target, amount=o.amount)
    return G


def downstream_closure(network: Network, entity_ids: Iterable[EntityId]) -> frozenset:
    """Every entity reachable from ``entity_ids`` along obligations, inclusive.

    A shock on ``entity_ids`` can only ever reach entities in this set.
    """
    seeds = network.validate_ids(entity_ids)
    G = to_digraph(network)
    reached = set(seeds)
    for s in seeds:
        reached |= nx.descendants(G, s)
    return frozenset(reached)
