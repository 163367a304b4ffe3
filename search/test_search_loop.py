#!/usr/bin/env python3
"""
Tests for the online accept/reject search and the seed-set measurements.
"""

from __future__ import annotations

import random
import unittest
from typing import List, Tuple

from search.search_loop import (
    SearchLoop,
    SeedSampler,
    coverage_distribution,
    measure_coverage,
    random_seeds,
)
from sim.map_builder import MapEvaluator


class _SpreadEvaluator:
    """Cheap stand-in for map generation: criteria derived from the seed alone."""

    def __init__(self) -> None:
        self.calls = 0

    def criteria(self, seed: int) -> Tuple[float, float, float]:
        self.calls += 1
        rng = random.Random(seed & ((1 << 64) - 1))
        return (rng.uniform(0.0, 35.0), rng.uniform(0.0, 240.0), rng.uniform(0.0, 60.0))


class _ConstantEvaluator:
    def criteria(self, seed: int) -> Tuple[float, float, float]:
        return (0.0, 0.0, 0.0)


class SearchLoopTests(unittest.TestCase):
    def test_zero_budget_evaluates_nothing(self) -> None:
        evaluator = _SpreadEvaluator()
        result = SearchLoop(evaluator, 0, search_seed=1).run()

        self.assertEqual(result.iterations, 0)
        self.assertEqual(result.accepted, [])
        self.assertEqual(result.percentage_covered, 0.0)
        self.assertEqual(evaluator.calls, 0)

    def test_budget_and_matrix_agree(self) -> None:
        result = SearchLoop(_SpreadEvaluator(), 100, search_seed=12345).run()

        self.assertLessEqual(result.iterations, 100)
        self.assertEqual(len(set(result.accepted)), len(result.accepted))
        self.assertEqual(int(result.matrix.sum()), len(result.accepted))
        self.assertEqual(result.space.covered_boxes, len(result.accepted))
        self.assertEqual(result.rejected, result.iterations - len(result.accepted))
        self.assertTrue(result.matrix.max() <= 1)

    def test_same_search_seed_same_outcome(self) -> None:
        first = SearchLoop(_SpreadEvaluator(), 60, search_seed=99).run()
        second = SearchLoop(_SpreadEvaluator(), 60, search_seed=99).run()

        self.assertEqual(first.accepted, second.accepted)
        self.assertTrue((first.matrix == second.matrix).all())

    def test_parallel_matches_sequential(self) -> None:
        sequential = SearchLoop(_SpreadEvaluator(), 50, search_seed=7).run()
        parallel = SearchLoop(
            _SpreadEvaluator(), 50, search_seed=7, n_jobs=2, batch_size=7, backend="threading",
        ).run()

        self.assertEqual(parallel.iterations, sequential.iterations)
        self.assertEqual(parallel.accepted, sequential.accepted)
        self.assertTrue((parallel.matrix == sequential.matrix).all())

    def test_full_coverage_stops_early(self) -> None:
        result = SearchLoop(_ConstantEvaluator(), 1000, categories=1, quota=3, search_seed=3).run()

        self.assertEqual(result.iterations, 3)
        self.assertEqual(result.percentage_covered, 1.0)
        self.assertEqual(len(result.accepted), 3)

    def test_saturated_box_rejects(self) -> None:
        accepted: List[int] = []
        result = SearchLoop(
            _ConstantEvaluator(), 10, quota=2, search_seed=5, on_accept=accepted.append,
        ).run()

        self.assertEqual(result.iterations, 10)
        self.assertEqual(len(result.accepted), 2)
        self.assertEqual(result.rejected, 8)
        self.assertEqual(accepted, result.accepted)
        self.assertEqual(int(result.matrix[0, 0, 0]), 2)

    def test_runs_against_generated_maps(self) -> None:
        result = SearchLoop(MapEvaluator(), 3, search_seed=2024).run()

        self.assertEqual(result.iterations, 3)
        self.assertGreaterEqual(len(result.accepted), 1)
        self.assertEqual(len(result.matrix_lines()), 6 * 9 + 2)


class SeedSetTests(unittest.TestCase):
    def test_sampler_yields_distinct_signed_seeds(self) -> None:
        seeds = SeedSampler(11).take(500)
        self.assertEqual(len(set(seeds)), 500)
        for seed in seeds:
            self.assertGreaterEqual(seed, -(1 << 63))
            self.assertLess(seed, 1 << 63)

    def test_random_seeds_reproducible(self) -> None:
        self.assertEqual(random_seeds(10, 4), random_seeds(10, 4))
        self.assertNotEqual(random_seeds(10, 4), random_seeds(10, 5))

    def test_measure_coverage_applies_quota(self) -> None:
        result = measure_coverage([1, 2, 3], _ConstantEvaluator(), quota=1)

        self.assertEqual(result.accepted, [1])
        self.assertEqual(result.iterations, 3)
        self.assertEqual(result.space.covered_boxes, 1)

    def test_distribution_is_uncapped(self) -> None:
        histogram = coverage_distribution([1, 2, 3], _ConstantEvaluator())

        self.assertEqual(histogram.shape, (6, 6, 6))
        self.assertEqual(int(histogram[0, 0, 0]), 3)
        self.assertEqual(int(histogram.sum()), 3)


if __name__ == "__main__":
    unittest.main()
