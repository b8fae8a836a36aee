"""
Unit tests for single-failure criticality ranking.
"""

from __future__ import annotations

import sys
import unittest
from pathlib import Path

import numpy as np

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from solvency_cascade.network import Network, build_network
from solvency_cascade.criticality import impact_vector, rank_criticality
from solvency_cascade.generator import generate_random_network
from solvency_cascade.propagation import NonConvergenceError, run_cascade


def two_pair_network():
    """Two independent A->B style pairs, listed in reverse id order."""
    return build_network(
        [("D", 50, 40), ("C", 100, 20), ("B", 50, 40), ("A", 100, 20)],
        [("A", "B", 70), ("C", "D", 70)],
    )


class TestRanking(unittest.TestCase):

    def test_no_obligations_all_impact_one(self):
        net = build_network([(3, 10, 1), (1, 10, 1), (2, 10, 1)])
        report = rank_criticality(net)
        self.assertEqual(report.ids(), [1, 2, 3])
        self.assertTrue(all(r.impact == 1 for r in report))
        self.assertEqual(report.n_entities, 3)

    def test_ties_broken_by_ascending_id(self):
        report = rank_criticality(two_pair_network())
        self.assertEqual(report.ids(), ["A", "C", "B", "D"])
        self.assertEqual([r.impact for r in report], [2, 2, 1, 1])
        self.assertEqual(report.top().entity_id, "A")

    def test_single_hop_example(self):
        net = build_network(
            [("A", 100, 20), ("B", 50, 40), ("C", 30, 10)],
            [("A", "B", 70)],
        )
        report = rank_criticality(net)
        self.assertEqual(report.ids(), ["A", "B", "C"])
        self.assertEqual([r.impact for r in report], [2, 1, 1])

    def test_impact_matches_cascade(self):
        net = generate_random_network(12, 0.25, 0.6, seed=3)
        report = rank_criticality(net)
        for rec in report:
            self.assertEqual(rec.impact, run_cascade(net, {rec.entity_id}).n_failed)

    def test_ranking_sorted(self):
        net = generate_random_network(15, 0.2, 0.5, seed=5)
        records = rank_criticality(net).records
        keys = [(-r.impact, r.entity_id) for r in records]
        self.assertEqual(keys, sorted(keys))


class TestTopK(unittest.TestCase):

    def test_top_k_truncates(self):
        report = rank_criticality(two_pair_network(), top_k=2)
        self.assertEqual(report.ids(), ["A", "C"])
        self.assertEqual(report.n_entities, 4)

    def test_top_k_larger_than_network(self):
        self.assertEqual(len(rank_criticality(two_pair_network(), top_k=10)), 4)

    def test_top_k_zero(self):
        report = rank_criticality(two_pair_network(), top_k=0)
        self.assertEqual(len(report), 0)
        self.assertIsNone(report.top())

    def test_negative_top_k_raises(self):
        with self.assertRaises(ValueError):
            rank_criticality(two_pair_network(), top_k=-1)


class TestImpactVector(unittest.TestCase):

    def test_network_order(self):
        impacts = impact_vector(two_pair_network())
        np.testing.assert_array_equal(impacts, [1, 2, 1, 2])
        self.assertEqual(impacts.dtype, np.int64)

    def test_impact_at_least_one(self):
        net = generate_random_network(10, 0.3, 0.5, seed=1)
        self.assertTrue((impact_vector(net) >= 1).all())

    def test_empty_network(self):
        self.assertEqual(impact_vector(Network(())).shape, (0,))
        self.assertEqual(len(rank_criticality(Network(()))), 0)

    def test_tight_budget_propagates_error(self):
        net = build_network(
            [("A", 100, 20), ("B", 50, 40), ("C", 30, 10)],
            [("A", "B", 70), ("B", "C", 25)],
        )
        with self.assertRaises(NonConvergenceError):
            rank_criticality(net, max_steps=1)


class TestSerialisation(unittest.TestCase):

    def test_to_dict(self):
        d = rank_criticality(two_pair_network(), top_k=1).to_dict()
        self.assertEqual(d, {"n_entities": 4, "ranking": [{"entity_id": "A", "impact": 2}]})


if __name__ == "__main__":
    unittest.main()
