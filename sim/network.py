"""
sim/network.py
==============
Road-network model consumed by the junction arbiter and the accident oracle.

Defines :class:`Road`, :class:`Junction`, :class:`Obstacle` and
:class:`RoadNetwork`: an arena of entities keyed by integer id that answers
the geometric questions the core needs: which road a point lies on, which
lane direction it belongs to, whether a shape touches a junction footprint
or a painted line, and where a step crosses a marking.

All roads are axis aligned.  Lane 1 carries northbound traffic on a
north–south road and eastbound traffic on an east–west road; lane 2 carries
the opposite direction (vehicles keep left).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from functools import cached_property
from typing import Dict, Iterable, List, Optional, Tuple

from shapely.geometry import LineString, Point, Polygon, box
from shapely.ops import unary_union

from sim.physics import Point2, correct_angle, crossing_point, oriented_rectangle


# ── Enumerations ──────────────────────────────────────────────────────────────

class Direction(str, Enum):
    """Compass direction of a junction arm or of travel."""

    NORTH = "N"
    EAST = "E"
    SOUTH = "S"
    WEST = "W"

    @property
    def bearing(self) -> float:
        return _BEARINGS[self]

    @property
    def lane_code(self) -> int:
        """1 for northbound / eastbound travel, 2 otherwise."""
        return 1 if self in (Direction.NORTH, Direction.EAST) else 2

    @property
    def opposite(self) -> "Direction":
        return _OPPOSITE[self]


_BEARINGS: Dict[Direction, float] = {
    Direction.SOUTH: 0.0,
    Direction.EAST: 90.0,
    Direction.NORTH: 180.0,
    Direction.WEST: 270.0,
}
_OPPOSITE: Dict[Direction, Direction] = {
    Direction.NORTH: Direction.SOUTH,
    Direction.SOUTH: Direction.NORTH,
    Direction.EAST: Direction.WEST,
    Direction.WEST: Direction.EAST,
}

# Probe order used by guided exit selection.
EXIT_ORDER: Tuple[Direction, ...] = (
    Direction.EAST, Direction.SOUTH, Direction.WEST, Direction.NORTH,
)


def compass_direction(bearing: float) -> Direction:
    """Quantise a bearing to the nearest compass direction."""
    angle = correct_angle(bearing)
    if angle >= 315.0 or angle < 45.0:
        return Direction.SOUTH
    if angle < 135.0:
        return Direction.EAST
    if angle < 225.0:
        return Direction.NORTH
    return Direction.WEST


class LineKind(str, Enum):
    """Painted marking on a road."""

    CENTRE = "centre"
    NEAR = "near"      # kerb line on the lane-1 side (lower coordinate)
    FAR = "far"        # kerb line on the lane-2 side (higher coordinate)


class JunctionKind(str, Enum):
    """How a junction request is arbitrated: guided (CONTROLLED) or random-turn."""

    CONTROLLED = "controlled"
    UNCONTROLLED = "uncontrolled"


# ── Road ──────────────────────────────────────────────────────────────────────

@dataclass
class Road:
    """A straight two-lane road between ``(x1, y1)`` and ``(x2, y2)``.

    Endpoints are normalised so that ``x1 <= x2`` and ``y1 <= y2``; either
    the x or the y coordinates are equal.
    """

    id: int
    x1: float
    y1: float
    x2: float
    y2: float
    width: float = 6.0

    def __post_init__(self) -> None:
        if self.x1 > self.x2:
            self.x1, self.x2 = self.x2, self.x1
        if self.y1 > self.y2:
            self.y1, self.y2 = self.y2, self.y1

    @property
    def runs_north_south(self) -> bool:
        return self.x1 == self.x2

    @property
    def length(self) -> float:
        return (self.y2 - self.y1) if self.runs_north_south else (self.x2 - self.x1)

    @property
    def axis(self) -> float:
        """Constant coordinate of the road centre line."""
        return self.x1 if self.runs_north_south else self.y1

    @property
    def span(self) -> Tuple[float, float]:
        """Extent of the road along its running direction."""
        if self.runs_north_south:
            return (self.y1, self.y2)
        return (self.x1, self.x2)

    @cached_property
    def surface(self) -> Polygon:
        hw = self.width / 2.0
        if self.runs_north_south:
            return box(self.x1 - hw, self.y1, self.x2 + hw, self.y2)
        return box(self.x1, self.y1 - hw, self.x2, self.y2 + hw)

    def marking_band(self, kind: LineKind, line_width: float, edge_offset: float) -> Tuple[float, float]:
        """Cross-road extent ``(low, high)`` of a painted line."""
        hw = self.width / 2.0
        if kind is LineKind.CENTRE:
            low = self.axis - line_width / 2.0
        elif kind is LineKind.NEAR:
            low = self.axis - hw + edge_offset
        else:
            low = self.axis + hw - edge_offset - line_width
        return (low, low + line_width)

    def marking(self, kind: LineKind, line_width: float, edge_offset: float) -> Polygon:
        low, high = self.marking_band(kind, line_width, edge_offset)
        if self.runs_north_south:
            return box(low, self.y1, high, self.y2)
        return box(self.x1, low, self.x2, high)

    def covers(self, x: float, y: float) -> bool:
        return self.surface.covers(Point(x, y))

    def lane_at(self, x: float, y: float) -> int:
        """Lane code of a point on this road (1 = N/E, 2 = S/W)."""
        if self.runs_north_south:
            return 2 if x >= self.x1 else 1
        return 2 if y >= self.y1 else 1

    def lane_direction(self, lane: int) -> Direction:
        if self.runs_north_south:
            return Direction.NORTH if lane == 1 else Direction.SOUTH
        return Direction.EAST if lane == 1 else Direction.WEST

    def point_at(self, along: float, offset: float = 0.0) -> Point2:
        """World point *along* the running axis, *offset* across it."""
        if self.runs_north_south:
            return (self.axis + offset, along)
        return (along, self.axis + offset)

    def endpoints(self) -> Tuple[Point2, Point2]:
        return ((self.x1, self.y1), (self.x2, self.y2))


# ── Junction ──────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Occupancy:
    """Lease held on a junction."""

    occupier_id: int
    since_tick: int


@dataclass
class Junction:
    """Intersection entity with an arbitration lock.

    Parameters
    ----------
    id : int
        Arena key.
    x, y : float
        Centre of the square footprint.
    arms : dict
        Arm length (metres from the centre) per :class:`Direction`;
        missing or zero means no arm.
    width : float
        Side of the footprint square, equal to the road width.
    """

    id: int
    x: float
    y: float
    arms: Dict[Direction, float] = field(default_factory=dict)
    width: float = 6.0
    occupancy: Optional[Occupancy] = None
    visits: Dict[int, Dict[Direction, int]] = field(default_factory=dict, repr=False)

    # ── topology ──────────────────────────────────────────────────────────
    def arm_length(self, direction: Direction) -> float:
        return self.arms.get(direction, 0.0)

    def has_arm(self, direction: Direction) -> bool:
        return self.arm_length(direction) > 0.0

    @property
    def arm_count(self) -> int:
        return sum(1 for d in Direction if self.has_arm(d))

    @property
    def is_dead_end(self) -> bool:
        return self.arm_count == 1

    # ── geometry ──────────────────────────────────────────────────────────
    @cached_property
    def footprint(self) -> Polygon:
        hw = self.width / 2.0
        return box(self.x - hw, self.y - hw, self.x + hw, self.y + hw)

    def contains(self, x: float, y: float) -> bool:
        """Boundary-inclusive point test against the footprint."""
        return self.footprint.covers(Point(x, y))

    def approach_zone(self, approach_len: float) -> Polygon:
        """Footprint plus the approach/exit stretch of every arm."""
        hw = self.width / 2.0
        parts = [self.footprint]
        for d in Direction:
            reach = min(self.arm_length(d), approach_len)
            if reach <= 0.0:
                continue
            if d is Direction.EAST:
                parts.append(box(self.x + hw, self.y - hw, self.x + hw + reach, self.y + hw))
            elif d is Direction.WEST:
                parts.append(box(self.x - hw - reach, self.y - hw, self.x - hw, self.y + hw))
            elif d is Direction.SOUTH:
                parts.append(box(self.x - hw, self.y + hw, self.x + hw, self.y + hw + reach))
            else:
                parts.append(box(self.x - hw, self.y - hw - reach, self.x + hw, self.y - hw))
        return unary_union(parts)

    def exit_point(self, direction: Direction, offset: float) -> Point2:
        """Lane-centre point just beyond the footprint edge on *direction*."""
        lw = self.width / 2.0
        if direction is Direction.EAST:
            return (self.x + lw + offset, self.y - lw / 2.0)
        if direction is Direction.SOUTH:
            return (self.x + lw / 2.0, self.y + lw + offset)
        if direction is Direction.WEST:
            return (self.x - lw - offset, self.y + lw / 2.0)
        return (self.x - lw / 2.0, self.y - lw - offset)

    def entry_point(self, heading: Direction) -> Point2:
        """Lane-centre point where traffic heading *heading* enters the footprint."""
        lw = self.width / 2.0
        if heading is Direction.EAST:
            return (self.x - lw, self.y - lw / 2.0)
        if heading is Direction.SOUTH:
            return (self.x + lw / 2.0, self.y - lw)
        if heading is Direction.WEST:
            return (self.x + lw, self.y + lw / 2.0)
        return (self.x - lw / 2.0, self.y + lw)

    # ── occupancy ─────────────────────────────────────────────────────────
    @property
    def occupier_id(self) -> Optional[int]:
        return self.occupancy.occupier_id if self.occupancy else None

    def occupy(self, vehicle_id: int, tick: int) -> None:
        self.occupancy = Occupancy(vehicle_id, tick)

    def release(self, vehicle_id: int) -> bool:
        """Clear the lease if *vehicle_id* holds it; otherwise do nothing."""
        if self.occupancy is None or self.occupancy.occupier_id != vehicle_id:
            return False
        self.occupancy = None
        return True

    # ── visit history ─────────────────────────────────────────────────────
    def visit_count(self, vehicle_id: int, direction: Direction) -> int:
        return self.visits.get(vehicle_id, {}).get(direction, 0)

    def record_visit(self, vehicle_id: int, direction: Direction) -> None:
        history = self.visits.setdefault(vehicle_id, {})
        history[direction] = history.get(direction, 0) + 1


# ── Obstacle ──────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Obstacle:
    """A parked car snapped to the kerb."""

    id: int
    x: float
    y: float
    bearing: float
    length: float = 5.0
    width: float = 2.0

    @property
    def footprint(self) -> Polygon:
        return oriented_rectangle(self.x, self.y, self.bearing, self.length, self.width)


# ── Road network ──────────────────────────────────────────────────────────────

class RoadNetwork:
    """Arena of roads, junctions and obstacles keyed by integer id.

    Provides the queries used by :class:`~sim.junction_arbiter.JunctionArbiter`
    and :class:`~sim.accident_oracle.AccidentOracle`:

    * **road_at / lane_at**: road and lane under a point (last match wins).
    * **junction_at_point / junction_touching**: footprint lookups.
    * **marking_touched / crossing**: painted-line tests.
    """

    def __init__(
        self,
        roads: Iterable[Road],
        junctions: Iterable[Junction],
        obstacles: Iterable[Obstacle] = (),
        *,
        centre_line_width: float = 0.1,
        edge_line_width: float = 0.1,
        edge_offset: float = 0.225,
    ) -> None:
        self.roads: List[Road] = list(roads)
        self.junctions: Dict[int, Junction] = {j.id: j for j in junctions}
        self.obstacles: List[Obstacle] = list(obstacles)
        self.centre_line_width = centre_line_width
        self.edge_line_width = edge_line_width
        self.edge_offset = edge_offset

        # Pre-compute marking polygons:  kind → [(road, polygon), ...]
        self._markings: Dict[LineKind, List[Tuple[Road, Polygon]]] = {
            kind: [(r, r.marking(kind, self._line_width(kind), edge_offset)) for r in self.roads]
            for kind in LineKind
        }

    def _line_width(self, kind: LineKind) -> float:
        return self.centre_line_width if kind is LineKind.CENTRE else self.edge_line_width

    # ── roads and lanes ───────────────────────────────────────────────────

    def road_at(self, x: float, y: float) -> Optional[Road]:
        found = None
        for road in self.roads:
            if road.covers(x, y):
                found = road
        return found

    def on_road(self, x: float, y: float) -> bool:
        return any(road.covers(x, y) for road in self.roads)

    def lane_at(self, x: float, y: float) -> Optional[int]:
        """Lane code under *(x, y)*, or ``None`` off the network."""
        road = self.road_at(x, y)
        return road.lane_at(x, y) if road is not None else None

    # ── junctions ─────────────────────────────────────────────────────────

    def junction_at_point(self, x: float, y: float) -> Optional[Junction]:
        for junction in self.junctions.values():
            if junction.contains(x, y):
                return junction
        return None

    def junction_touching(self, shape: Polygon) -> Optional[Junction]:
        for junction in self.junctions.values():
            if junction.footprint.intersects(shape):
                return junction
        return None

    # ── markings ──────────────────────────────────────────────────────────

    def markings(self, kind: LineKind) -> List[Tuple[Road, Polygon]]:
        return self._markings[kind]

    def marking_touched(self, kind: LineKind, shape: Polygon) -> bool:
        return any(poly.intersects(shape) for _road, poly in self._markings[kind])

    def crossing(self, kind: LineKind, prev: Point2, cur: Point2) -> Optional[Point2]:
        """Where the step *prev* → *cur* crosses a *kind* marking.

        Among the roads whose marking the step touches, the last one with a
        well-defined projection decides; roads whose projection degenerates
        are skipped.
        """
        step = LineString([prev, cur])
        result: Optional[Point2] = None
        for road, poly in self._markings[kind]:
            if not step.intersects(poly):
                continue
            low, high = road.marking_band(kind, self._line_width(kind), self.edge_offset)
            point = crossing_point(prev, cur, road.runs_north_south, (low + high) / 2.0)
            if point is not None:
                result = point
        return result
