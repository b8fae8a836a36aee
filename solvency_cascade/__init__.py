"""
solvency_cascade — Deterministic Solvency Cascade Engine
========================================================

Models contagion in a network of financially coupled entities.  When an
entity fails, the obligations it owes become unpaid losses to its creditors;
any creditor whose capital net of those losses drops below its buffer fails
in turn.  Propagation runs to a fixed point with no randomness.

  Cascade engine
      ``run_cascade`` computes the final failed set and a step-by-step trace
      of newly failed entities and unpaid-loss snapshots.

  Criticality analysis
      ``rank_criticality`` fails every entity alone, one fresh run each, and
      ranks entities by the size of the cascade they trigger.

Quick start
-----------
>>> from solvency_cascade import build_network, run_cascade, rank_criticality
>>> net = build_network(
...     [("A", 100, 20), ("B", 50, 40), ("C", 30, 10)],
...     [("A", "B", 70)],
... )
>>> result = run_cascade(net, {"A"})
>>> sorted(result.failed)
['A', 'B']
>>> [r.entity_id for r in rank_criticality(net, top_k=1)]
['A']
"""

from .network import (
    Entity,
    Obligation,
    Network,
    StructuralError,
    UnknownEntityError,
    build_network,
    network_to_dict,
    network_from_dict,
    to_digraph,
    downstream_closure,
)
from .propagation import (
    run_cascade,
    propagation_step,
    unpaid_losses,
    default_max_steps,
    CascadeResult,
    CascadeStep,
    EntityState,
    NonConvergenceError,
    SEED_STEP,
)
from .criticality import rank_criticality, impact_vector, CriticalityReport, ImpactRecord
from .metrics import (
    cascade_size,
    impact_summary,
    exposure_vectors,
    spearman_correlation,
    inspect_entity,
    EntityInspection,
)
from .sensitivity import buffer_sensitivity, perturb_network, SensitivityPoint
from .generator import (
    generate_random_network,
    generate_scale_free_network,
    network_from_config,
)
from .scenario import save_network, load_network, save_scenario, load_scenario, save_result

__all__ = [
    # network
    "Entity", "Obligation", "Network", "StructuralError", "UnknownEntityError",
    "build_network", "network_to_dict", "network_from_dict",
    "to_digraph", "downstream_closure",
    # propagation
    "run_cascade", "propagation_step", "unpaid_losses", "default_max_steps",
    "CascadeResult", "CascadeStep", "EntityState", "NonConvergenceError", "SEED_STEP",
    # criticality
    "rank_criticality", "impact_vector", "CriticalityReport", "ImpactRecord",
    # metrics
    "cascade_size", "impact_summary", "exposure_vectors",
    "spearman_correlation", "inspect_entity", "EntityInspection",
    # sensitivity
    "buffer_sensitivity", "perturb_network", "SensitivityPoint",
    # generator
    "generate_random_network", "generate_scale_free_network", "network_from_config",
    # scenario
    "save_network", "load_network", "save_scenario", "load_scenario", "save_result",
]
