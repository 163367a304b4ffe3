#!/usr/bin/env python3
"""
Geometry tests for roads, junctions, markings and the crossing projection.
"""

from __future__ import annotations

import unittest

from sim.network import (
    Direction,
    Junction,
    LineKind,
    Road,
    RoadNetwork,
    compass_direction,
)
from sim.physics import crossing_point, oriented_rectangle, shapes_overlap


class PhysicsTests(unittest.TestCase):
    def test_crossing_projection(self) -> None:
        point = crossing_point((50.0, 48.5), (52.0, 51.5), False, 50.0)
        self.assertAlmostEqual(point[0], 51.0)
        self.assertAlmostEqual(point[1], 50.0)

    def test_degenerate_projection_is_no_crossing(self) -> None:
        # step parallel to an east-west line: zero denominator
        self.assertIsNone(crossing_point((10.0, 50.0), (12.0, 50.0), False, 50.0))
        # step parallel to a north-south line
        self.assertIsNone(crossing_point((30.0, 10.0), (30.0, 14.0), True, 30.0))

    def test_touching_rectangles_do_not_overlap(self) -> None:
        a = oriented_rectangle(50.0, 48.5, 90.0, 5.0, 2.0)
        b = oriented_rectangle(55.0, 48.5, 90.0, 5.0, 2.0)
        c = oriented_rectangle(54.0, 48.5, 90.0, 5.0, 2.0)
        self.assertFalse(shapes_overlap(a, b))
        self.assertTrue(shapes_overlap(a, c))

    def test_compass_quantisation(self) -> None:
        self.assertIs(compass_direction(0.0), Direction.SOUTH)
        self.assertIs(compass_direction(100.0), Direction.EAST)
        self.assertIs(compass_direction(181.0), Direction.NORTH)
        self.assertIs(compass_direction(-80.0), Direction.WEST)


class RoadNetworkTests(unittest.TestCase):
    def setUp(self) -> None:
        self.east_west = Road(0, 200.0, 50.0, 0.0, 50.0)
        self.north_south = Road(1, 100.0, 50.0, 100.0, 100.0)
        self.tee = Junction(
            0, 100.0, 50.0,
            {Direction.WEST: 100.0, Direction.EAST: 100.0, Direction.SOUTH: 50.0},
        )
        self.net = RoadNetwork([self.east_west, self.north_south], [self.tee])

    def test_endpoints_normalised(self) -> None:
        self.assertEqual(self.east_west.endpoints(), ((0.0, 50.0), (200.0, 50.0)))
        self.assertFalse(self.east_west.runs_north_south)
        self.assertEqual(self.east_west.length, 200.0)

    def test_lanes_keep_left(self) -> None:
        self.assertEqual(self.net.lane_at(40.0, 48.5), 1)
        self.assertEqual(self.net.lane_at(40.0, 51.5), 2)
        self.assertIs(self.east_west.lane_direction(1), Direction.EAST)
        self.assertEqual(self.net.lane_at(98.5, 80.0), 1)
        self.assertIs(self.north_south.lane_direction(1), Direction.NORTH)
        self.assertIsNone(self.net.lane_at(40.0, 80.0))

    def test_road_lookup_last_match_wins(self) -> None:
        self.assertIs(self.net.road_at(100.0, 52.0), self.north_south)
        self.assertIs(self.net.road_at(40.0, 50.0), self.east_west)

    def test_junction_lookups(self) -> None:
        self.assertIs(self.net.junction_at_point(103.0, 47.0), self.tee)
        self.assertIsNone(self.net.junction_at_point(110.0, 50.0))
        body = oriented_rectangle(105.0, 48.5, 90.0, 5.0, 2.0)
        self.assertIs(self.net.junction_touching(body), self.tee)

    def test_dead_end_from_arms(self) -> None:
        self.assertFalse(self.tee.is_dead_end)
        dead_end = Junction(1, 3.0, 50.0, {Direction.EAST: 197.0})
        self.assertTrue(dead_end.is_dead_end)

    def test_exit_points_sit_in_the_outgoing_lane(self) -> None:
        x, y = self.tee.exit_point(Direction.EAST, 1.5)
        self.assertAlmostEqual(x, 104.5)
        self.assertEqual(self.net.lane_at(x, y), 1)
        x, y = self.tee.exit_point(Direction.SOUTH, 1.0)
        self.assertAlmostEqual(y, 54.0)
        self.assertEqual(self.net.lane_at(x, y), 2)

    def test_release_ignores_other_vehicle(self) -> None:
        self.tee.occupy(4, 10)
        self.assertFalse(self.tee.release(5))
        self.assertEqual(self.tee.occupier_id, 4)
        self.assertTrue(self.tee.release(4))
        self.assertIsNone(self.tee.occupier_id)

    def test_centre_crossing(self) -> None:
        point = self.net.crossing(LineKind.CENTRE, (40.0, 48.5), (42.0, 51.5))
        self.assertAlmostEqual(point[0], 41.0)
        self.assertAlmostEqual(point[1], 50.0)
        self.assertIsNone(self.net.crossing(LineKind.CENTRE, (40.0, 48.5), (42.0, 48.5)))
        self.assertIsNone(self.net.crossing(LineKind.NEAR, (40.0, 48.5), (42.0, 51.5)))

    def test_step_along_the_line_is_no_crossing(self) -> None:
        self.assertIsNone(self.net.crossing(LineKind.CENTRE, (10.0, 50.0), (12.0, 50.0)))

    def test_degenerate_later_road_keeps_earlier_crossing(self) -> None:
        # the step crosses the east-west centre line and runs along the north-south one
        point = self.net.crossing(LineKind.CENTRE, (100.0, 48.0), (100.0, 52.0))
        self.assertIsNotNone(point)
        self.assertAlmostEqual(point[0], 100.0)
        self.assertAlmostEqual(point[1], 50.0)

    def test_approach_zone_extends_arms(self) -> None:
        zone = self.tee.approach_zone(23.0)
        self.assertTrue(zone.covers(oriented_rectangle(120.0, 48.5, 90.0, 5.0, 2.0)))
        self.assertFalse(zone.intersects(oriented_rectangle(100.0, 40.0, 0.0, 5.0, 2.0)))


if __name__ == "__main__":
    unittest.main()
