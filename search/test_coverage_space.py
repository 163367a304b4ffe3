#!/usr/bin/env python3
"""
Tests for criterion bucketing and the quota-capped coverage grid.
"""

from __future__ import annotations

import unittest

from search.coverage_space import CoverageSpace, categorize, format_pct


class CategorizeTests(unittest.TestCase):
    def test_obstacle_distance_buckets(self) -> None:
        self.assertEqual(categorize(0.0, 1), 0)
        self.assertEqual(categorize(6.0, 1), 0)
        self.assertEqual(categorize(6.5, 1), 1)
        self.assertEqual(categorize(26.5, 1), 5)
        # values beyond 31 m saturate in the top bucket
        self.assertEqual(categorize(31.0, 1), 5)
        self.assertEqual(categorize(500.0, 1), 5)

    def test_obstacle_distance_never_decreases(self) -> None:
        values = [i / 100.0 for i in range(3101)]
        buckets = [categorize(v, 1) for v in values]
        for lower, higher in zip(buckets, buckets[1:]):
            self.assertLessEqual(lower, higher)
        self.assertEqual(buckets[0], 0)
        self.assertEqual(buckets[-1], categorize(100.0, 1))

    def test_ego_distance_buckets(self) -> None:
        self.assertEqual(categorize(0.0, 2), 0)
        self.assertEqual(categorize(39.99, 2), 0)
        self.assertEqual(categorize(40.0, 2), 1)
        self.assertEqual(categorize(200.0, 2), 5)

    def test_previous_junction_buckets_are_capped(self) -> None:
        self.assertEqual(categorize(9.99, 3), 0)
        self.assertEqual(categorize(10.0, 3), 1)
        self.assertEqual(categorize(55.0, 3), 5)
        self.assertEqual(categorize(200.0, 3), 5)

    def test_results_stay_in_range(self) -> None:
        for value in (0.0, 0.5, 3.3, 12.7, 31.0, 45.0, 99.9, 150.0, 199.9):
            for criterion in (1, 3):
                self.assertIn(categorize(value, criterion), range(6))
        for value in (0.0, 45.0, 120.0, 239.9):
            self.assertIn(categorize(value, 2), range(6))

    def test_unknown_criterion_rejected(self) -> None:
        with self.assertRaises(ValueError):
            categorize(1.0, 4)


class CoverageSpaceTests(unittest.TestCase):
    def test_record_caps_at_quota(self) -> None:
        space = CoverageSpace(categories=6, quota=2)
        box = (1, 2, 3)
        self.assertFalse(space.record(box))
        self.assertTrue(space.record(box))
        self.assertFalse(space.is_open(box))
        self.assertFalse(space.record(box))
        self.assertEqual(int(space.counts[box]), 2)
        self.assertEqual(space.covered_boxes, 1)

    def test_percentage_and_full(self) -> None:
        space = CoverageSpace(categories=2, quota=1)
        self.assertEqual(space.total_boxes, 8)
        for c1 in range(2):
            for c2 in range(2):
                for c3 in range(2):
                    space.record((c1, c2, c3))
        self.assertTrue(space.is_full)
        self.assertEqual(space.percentage_covered, 1.0)

    def test_box_for_clamps_each_bucket(self) -> None:
        space = CoverageSpace()
        self.assertEqual(space.box_for((0.0, 1000.0, -5.0)), (0, 5, 0))
        self.assertEqual(space.box_for((16.5, 85.0, 23.0)), (3, 2, 2))

    def test_invalid_dimensions_rejected(self) -> None:
        with self.assertRaises(ValueError):
            CoverageSpace(categories=0)
        with self.assertRaises(ValueError):
            CoverageSpace(quota=0)

    def test_matrix_dump_layout(self) -> None:
        space = CoverageSpace()
        space.record((2, 1, 0))
        lines = space.matrix_lines(1234.4)

        self.assertEqual(len(lines), 6 * 9 + 2)
        self.assertEqual(lines[0], "Criterion #3 : Category 0.")
        self.assertEqual(lines[1], "Criterion #2, 0, 1, 2, 3, 4, 5")
        self.assertEqual(lines[3], "1, 0, 0, 1, 0, 0, 0")
        self.assertEqual(lines[8], "")
        self.assertEqual(lines[-2], "Situation Coverage = 1/216 = 0.00.")
        self.assertEqual(lines[-1], "Duration of Search = 1234.")

    def test_format_pct_rounds_half_up(self) -> None:
        self.assertEqual(format_pct(0.125), "0.13")
        self.assertEqual(format_pct(0.005), "0.01")
        self.assertEqual(format_pct(1.0), "1.00")


if __name__ == "__main__":
    unittest.main()
