"""
Core cascade propagation engine.

Implements a vectorised, synchronous, discrete-time solvency cascade over a
directed weighted obligation graph.  When an entity fails, every obligation
it owes becomes an unpaid loss to its creditor.  An alive entity fails when

    capital - unpaid_incoming_loss < buffer        (strict)

Losses are recomputed each step from the *full* current failed set, and every
alive entity is judged against the failed set as it stood before the step, so
an entity failing in step t contributes losses only from step t + 1.  The
failed set is monotonically non-decreasing.

All functions are pure (no global mutable state) and deterministic.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

import numpy as np

from .network import EntityId, Network, UnknownEntityError


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# failed_step recorded for entities in the initial failure set
SEED_STEP: int = -1


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class NonConvergenceError(RuntimeError):
    """Raised when ``max_steps`` is exhausted before a fixed point is reached.

    Attributes
    ----------
    max_steps : int
        The step budget that was exhausted.
    pending : tuple
        Ids that would still fail in the next step.
    partial : CascadeResult
        The state reached when the budget ran out (``converged=False``).
    """

    def __init__(self, max_steps: int, pending: tuple, partial: "CascadeResult"):
        self.max_steps = max_steps
        self.pending = pending
        self.partial = partial
        super().__init__(
            f"Cascade did not reach a fixed point within max_steps={max_steps}; "
            f"{len(pending)} entit{'y' if len(pending) == 1 else 'ies'} still pending "
            f"failure: {list(pending)[:10]}{'...' if len(pending) > 10 else ''}."
        )


# ---------------------------------------------------------------------------
# Result containers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EntityState:
    """Final state of one entity.

    ``failed_step`` is ``None`` for survivors, ``SEED_STEP`` for initial
    failures and otherwise the index of the step in which the entity failed.
    """
    entity_id: EntityId
    alive: bool
    failed_step: int | None

    def to_dict(self) -> dict:
        return {
            "entity_id": self.entity_id,
            "alive": self.alive,
            "failed_step": self.failed_step,
        }


@dataclass(frozen=True)
class CascadeStep:
    """One propagation round of the trace.

    Attributes
    ----------
    step : int
        Zero-based step index.
    newly_failed : tuple
        Ids that failed in this step, in network order.
    losses : dict
        Unpaid incoming loss per entity, computed from the failed set before
        this step.  Only entities owed at least one unpaid obligation appear.
    """
    step: int
    newly_failed: tuple
    losses: dict

    def to_dict(self) -> dict:
        return {
            "step": self.step,
            "newly_failed": list(self.newly_failed),
            "losses": [
                {"entity_id": eid, "unpaid_loss": loss}
                for eid, loss in self.losses.items()
            ],
        }


@dataclass(frozen=True)
class CascadeResult:
    """Immutable outcome of a single cascade run.

    Attributes
    ----------
    states : tuple of EntityState
        Final per-entity state in network order.
    failed : frozenset
        Every failed id (initial and induced).
    initial_failed : frozenset
        The validated initial failure set.
    steps : tuple of CascadeStep
        Append-only trace ordered by step index.
    converged : bool
        ``True`` when the final state is a fixed point.  Only partial results
        attached to :class:`NonConvergenceError` carry ``False``.

    Notes
    -----
    A converged trace normally ends with a step that fails nobody.  When an
    explicit ``max_steps`` runs out exactly at the fixed point, the confirming
    step is evaluated but not recorded, so the last recorded step may still
    list newly failed entities (and ``max_steps=0`` gives an empty trace).
    """
    states: tuple
    failed: frozenset
    initial_failed: frozenset
    steps: tuple
    converged: bool = True

    @property
    def n_failed(self) -> int:
        return len(self.failed)

    @property
    def n_steps(self) -> int:
        return len(self.steps)

    @property
    def induced(self) -> frozenset:
        """Ids that failed as a consequence of the shock."""
        return self.failed - self.initial_failed

    def state(self, entity_id: EntityId) -> EntityState:
        for s in self.states:
            if s.entity_id == entity_id:
                return s
        raise UnknownEntityError([entity_id])

    def to_dict(self) -> dict:
        """Return a plain JSON-serialisable structure.

        Failed id lists are sorted ascending so that equal results serialise
        byte-identically.
        """
        return {
            "converged": self.converged,
            "initial_failed": sorted(self.initial_failed),
            "failed": sorted(self.failed),
            "entities": [s.to_dict() for s in self.states],
            "steps": [s.to_dict() for s in self.steps],
        }


# ---------------------------------------------------------------------------
# Single propagation step
# ---------------------------------------------------------------------------


def default_max_steps(network: Network) -> int:
    """Step budget that always suffices to reach and confirm the fixed point.

    Every step that does not terminate the run fails at least one alive
    entity, so at most ``n`` failing steps can occur, plus the confirming step.
    """
    return len(network) + 1


def unpaid_losses(network: Network, failed_mask: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Sum unpaid incoming obligations caused by the failed entities.

    Parameters
    ----------
    network : Network
    failed_mask : np.ndarray, shape (n,), dtype bool
        ``True`` for every currently failed entity.

    Returns
    -------
    losses : np.ndarray, shape (n,), dtype float64
        losses[i] = sum of amounts of obligations j -> i with j failed.
    exposed : np.ndarray, shape (n,), dtype bool
        ``True`` where entity i is owed at least one unpaid obligation.
    """
    n = len(network)
    # active[k] is True iff the debtor of obligation k is failed
    active = failed_mask[network.source_index]
    targets = network.target_index[active]
    losses = np.bincount(targets, weights=network.amount[active], minlength=n)
    exposed = np.zeros(n, dtype=bool)
    exposed[targets] = True
    return losses.astype(np.float64), exposed


def propagation_step(
    network: Network,
    failed_mask: np.ndarray,
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Compute one synchronous propagation step.

    Parameters
    ----------
    network : Network
    failed_mask : np.ndarray, shape (n,), dtype bool
        Failed set before the step.  Never mutated.

    Returns
    -------
    next_mask : np.ndarray, shape (n,), dtype bool
        Failed set after the step (a superset of ``failed_mask``).
    losses : np.ndarray, shape (n,)
        Unpaid incoming loss per entity, from ``failed_mask``.
    exposed : np.ndarray, shape (n,), dtype bool
        Entities owed at least one unpaid obligation.

    Notes
    -----
    Update rule (applied simultaneously for all alive i):

        net_i = capital_i - losses_i
        fails iff net_i < buffer_i

    Entities at exactly ``buffer`` are solvent.
    """
    losses, exposed = unpaid_losses(network, failed_mask)
    net = network.capital - losses
    newly = ~failed_mask & (net < network.buffer)
    return failed_mask | newly, losses, exposed


# ---------------------------------------------------------------------------
# Full cascade runner
# ---------------------------------------------------------------------------


def _build_result(
    network: Network,
    initial: frozenset,
    failed_mask: np.ndarray,
    failed_step: list,
    steps: list,
    converged: bool,
) -> CascadeResult:
    ids = network.ids
    states = tuple(
        EntityState(eid, not bool(failed_mask[i]), failed_step[i])
        for i, eid in enumerate(ids)
    )
    failed = frozenset(eid for i, eid in enumerate(ids) if failed_mask[i])
    return CascadeResult(
        states=states,
        failed=failed,
        initial_failed=initial,
        steps=tuple(steps),
        converged=converged,
    )


def run_cascade(
    network: Network,
    initial_failed: Iterable[EntityId],
    max_steps: int | None = None,
) -> CascadeResult:
    """Run the cascade from ``initial_failed`` until a fixed point.

    Parameters
    ----------
    network : Network
        Validated network.  Never mutated.
    initial_failed : iterable of entity ids
        Initial failure set.  Duplicates collapse.
    max_steps : int or None, optional
        Maximum number of propagation rounds.  Defaults to
        ``default_max_steps(network)``, which always suffices.

    Returns
    -------
    CascadeResult
        Final states, failed set and step trace.  The last step of a run that
        reached its fixed point within budget has no newly failed entities.

    Raises
    ------
    UnknownEntityError
        If ``initial_failed`` contains an id not in ``network``.  Raised
        before any step runs.
    NonConvergenceError
        If the budget is exhausted while entities are still pending failure.
    ValueError
        If ``max_steps`` is negative.
    """
    initial = network.validate_ids(initial_failed)
    if max_steps is None:
        max_steps = default_max_steps(network)
    max_steps = int(max_steps)
    if max_steps < 0:
        raise ValueError(f"max_steps must be non-negative; got {max_steps}.")

    ids = network.ids
    n = len(ids)

    failed_mask = np.zeros(n, dtype=bool)
    for eid in initial:
        failed_mask[network.index_of(eid)] = True
    failed_step: list[int | None] = [SEED_STEP if failed_mask[i] else None for i in range(n)]

    steps: list[CascadeStep] = []
    converged = False
    for step in range(max_steps):
        next_mask, losses, exposed = propagation_step(network, failed_mask)
        newly_idx = np.flatnonzero(next_mask & ~failed_mask)

        for i in newly_idx:
            failed_step[i] = step
        steps.append(CascadeStep(
            step=step,
            newly_failed=tuple(ids[i] for i in newly_idx),
            losses={ids[i]: float(losses[i]) for i in np.flatnonzero(exposed)},
        ))
        failed_mask = next_mask

        if newly_idx.size == 0:
            converged = True
            break

    if not converged:
        # Budget exhausted: probe whether the state is nonetheless a fixed point.
        probe_mask, _, _ = propagation_step(network, failed_mask)
        pending_idx = np.flatnonzero(probe_mask & ~failed_mask)
        if pending_idx.size > 0:
            partial = _build_result(network, initial, failed_mask, failed_step, steps, False)
            raise NonConvergenceError(
                max_steps, tuple(ids[i] for i in pending_idx), partial
            )

    return _build_result(network, initial, failed_mask, failed_step, steps, True)

