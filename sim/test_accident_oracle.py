#!/usr/bin/env python3
"""
Classification tests for the accident oracle and its output files.
"""

from __future__ import annotations

import tempfile
import unittest
from typing import List

from sim.accident_oracle import (
    SUMMARY_FIELDS,
    AccidentCategory,
    AccidentLog,
    AccidentOracle,
    AccidentRecord,
    AccidentSummary,
)
from sim.context import SimContext
from sim.map_builder import Evaluation, MapStats
from sim.network import Direction, Junction, Obstacle, Road, RoadNetwork
from sim.traffic_policy import SimPolicy
from sim.vehicle import Role, Vehicle


def _context(obstacles=()) -> SimContext:
    road = Road(0, 0.0, 50.0, 200.0, 50.0)
    junction = Junction(0, 100.0, 50.0, {Direction.WEST: 100.0, Direction.EAST: 100.0})
    return SimContext(
        RoadNetwork([road], [junction], obstacles),
        internal_seed=3,
        external_seed=4,
        target=(180.0, 48.5),
    )


def _stats() -> MapStats:
    return MapStats(1, 1, 0, 1, 200.0, 1.5, 1.5, 80.0, (0,) * 8)


def _evaluation() -> Evaluation:
    return Evaluation(4, (200.0, 130.25, 12.3456), _stats())


def _categories(records: List[AccidentRecord]) -> List[AccidentCategory]:
    return [r.category for r in records]


class OracleTests(unittest.TestCase):
    def setUp(self) -> None:
        self.ctx = _context()
        self.oracle = AccidentOracle()
        self.ego = Vehicle(0, 50.0, 48.5, 90.0, 2.5, role=Role.EGO)
        self.ctx.add_vehicle(self.ego)
        self.oracle.track(0)

    def _add_other(self, x: float, y: float, bearing: float, speed: float = 2.5) -> Vehicle:
        other = Vehicle(1, x, y, bearing, speed)
        self.ctx.add_vehicle(other)
        return other

    def test_clean_tick_records_nothing(self) -> None:
        self.ego.prev_location = (47.5, 48.5)
        self.assertEqual(self.oracle.observe(self.ctx), [])

    def test_leave_road(self) -> None:
        self.ego.y = 80.0
        self.assertEqual(_categories(self.oracle.observe(self.ctx)), [AccidentCategory.LEAVE_ROAD])

    def test_crash_obstacle(self) -> None:
        self.ctx = _context([Obstacle(0, 52.0, 48.0, 90.0)])
        self.ctx.add_vehicle(self.ego)
        records = self.oracle.observe(self.ctx)
        self.assertEqual(_categories(records), [AccidentCategory.CRASH_OBSTACLE])
        self.assertIn("obstacle id = 0", records[0].detail)

    def test_centre_line_crossing(self) -> None:
        self.ego.prev_location = (50.0, 48.5)
        self.ego.x, self.ego.y = 52.0, 51.5

        records = self.oracle.observe(self.ctx)

        self.assertEqual(_categories(records), [AccidentCategory.CROSS_CENTRE])
        self.assertAlmostEqual(records[0].location[0], 51.0)
        self.assertAlmostEqual(records[0].location[1], 50.0)

    def test_near_kerb_crossing(self) -> None:
        self.ego.prev_location = (50.0, 48.0)
        self.ego.x, self.ego.y = 52.0, 47.1

        records = self.oracle.observe(self.ctx)

        self.assertEqual(_categories(records), [AccidentCategory.CROSS_NEAR])
        self.assertAlmostEqual(records[0].location[0], 50.0 + 2.0 * 0.725 / 0.9)
        self.assertAlmostEqual(records[0].location[1], 47.275)

    def test_far_kerb_crossing(self) -> None:
        self.ego.prev_location = (150.0, 52.0)
        self.ego.x, self.ego.y = 152.0, 52.9

        records = self.oracle.observe(self.ctx)

        self.assertEqual(_categories(records), [AccidentCategory.CROSS_FAR])
        self.assertEqual(records[0].detail, "far line")
        self.assertAlmostEqual(records[0].location[1], 52.725)

    def test_crossing_excused_while_overtaking(self) -> None:
        self.ego.prev_location = (50.0, 48.5)
        self.ego.x, self.ego.y = 52.0, 51.5
        self.ego.overtaking = True
        self.assertEqual(self.oracle.observe(self.ctx), [])

    def test_crossing_inside_junction_suppressed(self) -> None:
        self.ego.prev_location = (99.0, 48.5)
        self.ego.x, self.ego.y = 101.0, 51.5
        self.assertEqual(self.oracle.observe(self.ctx), [])

    def test_degenerate_step_is_no_crossing(self) -> None:
        self.ego.prev_location = (40.0, 50.0)
        self.ego.x, self.ego.y = 42.0, 50.0
        self.assertNotIn(AccidentCategory.CROSS_CENTRE, _categories(self.oracle.observe(self.ctx)))

    def test_rear_end_is_crash(self) -> None:
        self._add_other(53.0, 48.5, 90.0)
        records = self.oracle.observe(self.ctx)
        self.assertEqual(_categories(records), [AccidentCategory.CRASH_VEHICLE])
        self.assertIn("collision with car: 1", records[0].detail)

    def test_zero_area_contact_is_no_crash(self) -> None:
        self._add_other(55.0, 48.5, 90.0)
        self.assertEqual(self.oracle.observe(self.ctx), [])

    def test_stationary_ego_never_crashes(self) -> None:
        self._add_other(53.0, 48.5, 90.0)
        self.ego.speed = 0.0
        self.assertEqual(self.oracle.observe(self.ctx), [])

    def test_dead_vehicle_ignored(self) -> None:
        other = self._add_other(53.0, 48.5, 90.0)
        other.alive = False
        self.assertEqual(self.oracle.observe(self.ctx), [])

    def test_other_in_opposite_lane_excused(self) -> None:
        self._add_other(53.0, 50.2, 270.0)
        self.assertEqual(self.oracle.observe(self.ctx), [])

    def test_other_straddling_centre_line_excused(self) -> None:
        # same lane, same direction, same speed: only the centre-line rule applies
        self._add_other(53.0, 49.2, 90.0)
        self.assertEqual(self.oracle.observe(self.ctx), [])

    def test_oncoming_in_own_lane_excused_away_from_junction(self) -> None:
        self._add_other(53.0, 48.5, 270.0)
        self.assertEqual(self.oracle.observe(self.ctx), [])

    def test_lane_rule_lapses_at_junction(self) -> None:
        self.ego.x = 96.0
        self._add_other(99.0, 48.5, 270.0)

        records = self.oracle.observe(self.ctx)

        self.assertEqual(_categories(records), [AccidentCategory.CRASH_VEHICLE])

    def test_slower_ego_excused(self) -> None:
        self.ego.speed = 1.0
        self._add_other(53.0, 48.5, 90.0, speed=2.5)
        self.assertEqual(self.oracle.observe(self.ctx), [])

    def test_watchdog_terminates_run(self) -> None:
        oracle = AccidentOracle(SimPolicy(watchdog_ticks=5))
        oracle.track(0)
        self.ctx.tick = 5
        self.assertEqual(oracle.observe(self.ctx), [])
        self.ctx.tick = 6

        records = oracle.observe(self.ctx)

        self.assertEqual(_categories(records), [AccidentCategory.TIMEOUT])
        self.assertTrue(self.ctx.terminated)
        self.assertEqual(self.ctx.termination_reason, "timeout")

    def test_end_run_builds_row_and_resets(self) -> None:
        self.ego.y = 80.0
        self.oracle.observe(self.ctx)
        self.oracle.observe(self.ctx)
        self.ctx.tick = 2

        row = self.oracle.end_run(self.ctx, _evaluation(), fault_count=1)

        self.assertEqual(list(row), SUMMARY_FIELDS)
        self.assertEqual(row["#Accidents"], 2)
        self.assertEqual(row["#LeaveRoad"], 2)
        self.assertEqual(row["#Steps"], 2)
        self.assertEqual(row["RandomSeed"], 3)
        self.assertEqual(row["DistTargetToObs"], 200.0)
        self.assertEqual(row["DistEgoToTarget"], 130.25)
        self.assertEqual(row["DistPrevJctToTarget"], 12.346)
        self.assertEqual(self.oracle.total, 0)
        self.assertEqual(self.oracle.records, [])


class OutputFileTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.dir = self._tmp.name

    def test_log_line_format(self) -> None:
        record = AccidentRecord(AccidentCategory.LEAVE_ROAD, 0, 17, (1.0, 2.346))
        self.assertEqual(record.log_line(), "LEAVE_ROAD:- car: 0; time: 17 steps; location: (1.00, 2.35); ")

    def test_summary_header_written_once(self) -> None:
        row = {name: 0 for name in SUMMARY_FIELDS}
        AccidentSummary(self.dir, 0.05, 100).append(row)
        again = AccidentSummary(self.dir, 0.05, 100)
        again.append(row)

        self.assertTrue(again.path.endswith("AccidentSummary0.05_100.txt"))
        with open(again.path, encoding="utf-8") as fh:
            lines = fh.read().splitlines()
        self.assertEqual(len(lines), 3)
        self.assertTrue(lines[0].startswith("RandomSeed, ExternalRandomSeed, #Junctions"))

    def test_log_brackets_each_run(self) -> None:
        ctx = _context()
        ctx.tick = 9
        records = [AccidentRecord(AccidentCategory.CROSS_FAR, 0, 4, (3.0, 4.0), "far line")]

        log = AccidentLog(self.dir, 0.0, "7_drift")
        log.write_run(ctx, _stats(), ["drift"], records)

        self.assertTrue(log.path.endswith("AccidentLog0.00_7_drift.txt"))
        with open(log.path, encoding="utf-8") as fh:
            lines = fh.read().splitlines()
        self.assertEqual(len(lines), 3)
        self.assertTrue(lines[0].startswith("*** Run, Seed = 3, External Seed = 4;"))
        self.assertIn("Faults = drift", lines[0])
        self.assertTrue(lines[1].startswith("CROSS_FAR:- car: 0; time: 4 steps"))
        self.assertIn("NoAccidents = 1; NoSteps = 9", lines[2])


if __name__ == "__main__":
    unittest.main()
