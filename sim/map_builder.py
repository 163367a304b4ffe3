"""
sim/map_builder.py
==================
Seeded map generation and the :class:`MapEvaluator` boundary used by the
coverage search.

A map is a pure function of its external seed and of the fixed generation
parameters in :class:`MapParams`: the same seed always yields the same
roads, junctions, obstacles, target and vehicle placements.  Evaluating a
map never steps the simulation; it only measures the three coverage
criteria and a handful of complexity statistics.

Generation outline
------------------
1. One straight road at a random position and orientation.
2. T-junctions: a point on an existing road, with a new perpendicular road
   that leaves it without overlapping any other road.
3. Dead-end junctions at every road end not already inside a junction.
4. Parked obstacles snapped to the kerb, clear of junction approaches.
5. Target, ego (snapped to a lane) and the other cars.
"""

from __future__ import annotations

import bisect
import logging
import random
from dataclasses import dataclass, field
from itertools import combinations
from typing import Any, Dict, List, Optional, Tuple

from shapely.geometry import Point, Polygon

from config import (
    MAX_CARS,
    MAX_ITERATIONS,
    MAX_JUNCTIONS,
    MAX_OBSTACLES,
    MIN_CARS,
    MIN_JUNCTIONS,
    MIN_OBSTACLES,
    WORLD_X,
    WORLD_Y,
)
from sim.network import Direction, Junction, Obstacle, Road, RoadNetwork
from sim.physics import Point2, distance, oriented_rectangle
from sim.traffic_policy import SimPolicy

log = logging.getLogger("map_builder")

MASK_64 = (1 << 64) - 1
NO_DISTANCE = 200.0                     # reported when nothing is in range

# Upper edges of the adjacent-junction separation bands (metres).
JCT_SEP_EDGES: Tuple[float, ...] = (3.0, 6.0, 12.0, 23.0, 46.0, 100.0, 150.0)
JCT_SEP_LABELS: Tuple[str, ...] = (
    "<3", "3-6", "6-12", "12-23", "23-46", "46-100", "100-150", "150+",
)

# Column names of the three coverage criteria, in criterion order.
CRITERIA_COLUMNS: Tuple[str, ...] = ("DistTargetToObs", "DistEgoToTarget", "DistPrevJctToTarget")


class MapGenerationError(RuntimeError):
    """A mandatory entity could not be placed within the attempt ceiling."""


@dataclass(frozen=True)
class MapParams:
    """Fixed generation parameters shared by every seed of an experiment."""

    world_x: float = WORLD_X
    world_y: float = WORLD_Y
    min_junctions: int = MIN_JUNCTIONS
    max_junctions: int = MAX_JUNCTIONS
    min_obstacles: int = MIN_OBSTACLES
    max_obstacles: int = MAX_OBSTACLES
    min_cars: int = MIN_CARS
    max_cars: int = MAX_CARS
    max_iterations: int = MAX_ITERATIONS
    junction_road_tries: int = 20
    placement_ceiling: int = 10_000


@dataclass(frozen=True)
class Placement:
    """Initial pose of a vehicle."""

    x: float
    y: float
    bearing: float


@dataclass
class MapLayout:
    """Everything needed to start a run on a generated map."""

    seed: int
    network: RoadNetwork
    target: Point2
    ego: Placement
    cars: List[Placement] = field(default_factory=list)


@dataclass(frozen=True)
class MapStats:
    """Complexity measures of a map, reported beside each run."""

    junction_count: int
    road_count: int
    obstacle_count: int
    car_count: int
    min_junction_separation: float
    target_centre_separation: float
    target_kerb_separation: float
    next_junction_distance: float
    junction_separation_bands: Tuple[int, ...]

    def as_dict(self) -> Dict[str, Any]:
        row: Dict[str, Any] = {
            "#Junctions": self.junction_count,
            "#Roads": self.road_count,
            "#Obstacles": self.obstacle_count,
            "#Cars": self.car_count,
            "MinJctSeparation": round(self.min_junction_separation, 3),
            "TargetCentreSeparation": round(self.target_centre_separation, 3),
            "TargetKerbSeparation": round(self.target_kerb_separation, 3),
            "NextJctDistance": round(self.next_junction_distance, 3),
        }
        for label, count in zip(JCT_SEP_LABELS, self.junction_separation_bands):
            row[f"JctSep{label}"] = count
        return row


@dataclass(frozen=True)
class Evaluation:
    """Result of scoring one seed: the three criteria and the map stats."""

    seed: int
    criteria: Tuple[float, float, float]
    stats: MapStats

    def criteria_dict(self) -> Dict[str, float]:
        return {name: round(value, 3) for name, value in zip(CRITERIA_COLUMNS, self.criteria)}


# ── Builder ───────────────────────────────────────────────────────────────────

class _MapBuilder:
    """Single-use generator holding the working state for one seed."""

    def __init__(self, seed: int, params: MapParams, policy: SimPolicy) -> None:
        self.seed = seed
        self.params = params
        self.policy = policy
        # random.Random folds negative ints onto their absolute value
        self.rng = random.Random(seed & MASK_64)
        self.roads: List[Road] = []
        self.junctions: List[Junction] = []
        self.obstacles: List[Obstacle] = []

    @property
    def _w(self) -> float:
        return self.policy.road_width_m

    def build(self) -> MapLayout:
        p = self.params
        rng = self.rng
        n_junctions = rng.randint(p.min_junctions, p.max_junctions)
        n_obstacles = rng.randint(p.min_obstacles, p.max_obstacles)
        n_cars = rng.randint(p.min_cars, p.max_cars)

        self.roads.append(self._first_road())
        for _ in range(n_junctions):
            self._add_t_junction()
        self._add_dead_ends()

        zones = [j.approach_zone(self.policy.junction_approach_m) for j in self.junctions]
        for _ in range(n_obstacles):
            self._add_obstacle(zones)

        network = RoadNetwork(
            self.roads,
            self.junctions,
            self.obstacles,
            centre_line_width=self.policy.centre_line_width_m,
            edge_line_width=self.policy.edge_line_width_m,
            edge_offset=self.policy.edge_offset_m,
        )
        target = self._place_target(network)
        ego = self._place_vehicle(network, [], None, "ego")
        if ego is None:
            raise MapGenerationError(f"seed {self.seed}: could not place the ego vehicle")
        cars: List[Placement] = []
        for _ in range(n_cars):
            car = self._place_vehicle(network, [ego] + cars, ego, "car")
            if car is not None:
                cars.append(car)

        log.debug(
            "seed %d: %d roads, %d junctions, %d obstacles, %d cars",
            self.seed, len(self.roads), len(self.junctions), len(self.obstacles), len(cars),
        )
        return MapLayout(self.seed, network, target, ego, cars)

    # ── roads and junctions ───────────────────────────────────────────────

    def _first_road(self) -> Road:
        p, rng, w = self.params, self.rng, self._w
        min_len = self.policy.junction_approach_m
        for _ in range(p.placement_ceiling):
            x = rng.uniform(w, p.world_x - w)
            y = rng.uniform(w, p.world_y - w)
            if rng.random() < 0.5:
                end = min(max(x + rng.uniform(-p.world_x, p.world_x), 0.0), p.world_x)
                if abs(end - x) >= min_len:
                    return Road(0, x, y, end, y, w)
            else:
                end = min(max(y + rng.uniform(-p.world_y, p.world_y), 0.0), p.world_y)
                if abs(end - y) >= min_len:
                    return Road(0, x, y, x, end, w)
        raise MapGenerationError(f"seed {self.seed}: could not place the first road")

    def _add_t_junction(self) -> bool:
        rng, w = self.rng, self._w
        min_len = self.policy.junction_approach_m
        parent = rng.choice(self.roads)
        lo, hi = parent.span
        margin = 1.5 * w
        if hi - lo <= 2.0 * margin:
            return False
        along = rng.uniform(lo + margin, hi - margin)
        cx, cy = parent.point_at(along)
        candidate = Junction(-1, cx, cy, width=w)
        if any(candidate.footprint.distance(j.footprint) < w for j in self.junctions):
            return False

        side = rng.choice((-1.0, 1.0))
        for attempt in range(self.params.junction_road_tries):
            if attempt == self.params.junction_road_tries // 2:
                side = -side
            if parent.runs_north_south:
                room = (self.params.world_x - cx) if side > 0 else cx
            else:
                room = (self.params.world_y - cy) if side > 0 else cy
            if room < min_len:
                continue
            length = rng.uniform(min_len, room)
            if parent.runs_north_south:
                road = Road(len(self.roads), cx, cy, cx + side * length, cy, w)
            else:
                road = Road(len(self.roads), cx, cy, cx, cy + side * length, w)
            stub = road.surface.difference(parent.surface)
            if any(stub.intersects(r.surface) for r in self.roads if r is not parent):
                continue
            self.roads.append(road)
            self.junctions.append(Junction(
                len(self.junctions), cx, cy, self._t_arms(parent, cx, cy, side, length), width=w,
            ))
            return True
        return False

    @staticmethod
    def _t_arms(parent: Road, cx: float, cy: float, side: float, length: float) -> Dict[Direction, float]:
        if parent.runs_north_south:
            arms = {Direction.NORTH: cy - parent.y1, Direction.SOUTH: parent.y2 - cy}
            arms[Direction.EAST if side > 0 else Direction.WEST] = length
        else:
            arms = {Direction.WEST: cx - parent.x1, Direction.EAST: parent.x2 - cx}
            arms[Direction.SOUTH if side > 0 else Direction.NORTH] = length
        return arms

    def _add_dead_ends(self) -> None:
        hw = self._w / 2.0
        for road in self.roads:
            lo, hi = road.span
            for end, inward in ((lo, 1.0), (hi, -1.0)):
                cx, cy = road.point_at(end + inward * hw)
                if any(j.contains(cx, cy) for j in self.junctions):
                    continue
                if road.runs_north_south:
                    arm = Direction.SOUTH if inward > 0 else Direction.NORTH
                else:
                    arm = Direction.EAST if inward > 0 else Direction.WEST
                self.junctions.append(Junction(
                    len(self.junctions), cx, cy, {arm: road.length - hw}, width=self._w,
                ))

    # ── static entities ───────────────────────────────────────────────────

    def _add_obstacle(self, zones: List[Polygon]) -> bool:
        rng, pol = self.rng, self.policy
        kerb = self._w / 2.0 - pol.obstacle_width_m / 2.0
        for _ in range(self.params.max_iterations):
            road = rng.choice(self.roads)
            lo, hi = road.span
            along = rng.uniform(lo + pol.obstacle_length_m / 2.0, hi - pol.obstacle_length_m / 2.0)
            lane = rng.choice((1, 2))
            x, y = road.point_at(along, -kerb if lane == 1 else kerb)
            obstacle = Obstacle(
                len(self.obstacles), x, y, road.lane_direction(lane).bearing,
                pol.obstacle_length_m, pol.obstacle_width_m,
            )
            shape = obstacle.footprint
            if not road.surface.buffer(1e-9).covers(shape):
                continue
            if any(shape.intersects(zone) for zone in zones):
                continue
            if any(shape.distance(o.footprint) < pol.obstacle_buffer_m for o in self.obstacles):
                continue
            self.obstacles.append(obstacle)
            return True
        return False

    def _place_target(self, network: RoadNetwork) -> Point2:
        rng, hw = self.rng, self._w / 2.0
        for _ in range(self.params.placement_ceiling):
            road = rng.choice(self.roads)
            lo, hi = road.span
            x, y = road.point_at(rng.uniform(lo, hi), rng.uniform(-hw, hw))
            if network.junction_at_point(x, y) is not None:
                continue
            spot = Point(x, y)
            if any(o.footprint.covers(spot) for o in self.obstacles):
                continue
            return (x, y)
        raise MapGenerationError(f"seed {self.seed}: could not place the target")

    def _place_vehicle(
        self,
        network: RoadNetwork,
        others: List[Placement],
        ego: Optional[Placement],
        what: str,
    ) -> Optional[Placement]:
        rng, pol = self.rng, self.policy
        lane_centre = self._w / 4.0
        tries = self.params.placement_ceiling if ego is None else self.params.max_iterations
        for _ in range(tries):
            road = rng.choice(self.roads)
            lo, hi = road.span
            lane = rng.choice((1, 2))
            x, y = road.point_at(rng.uniform(lo, hi), -lane_centre if lane == 1 else lane_centre)
            bearing = road.lane_direction(lane).bearing
            shape = oriented_rectangle(x, y, bearing, pol.vehicle_length_m, pol.vehicle_width_m)
            if not road.surface.buffer(1e-9).covers(shape):
                continue
            if network.junction_touching(shape) is not None:
                continue
            if any(shape.intersects(o.footprint) for o in self.obstacles):
                continue
            if ego is not None and distance((x, y), (ego.x, ego.y)) < pol.min_car_to_ego_m:
                continue
            if any(shape.intersects(_footprint(o, pol)) for o in others):
                continue
            return Placement(x, y, bearing)
        log.debug("seed %d: gave up placing a %s", self.seed, what)
        return None


def _footprint(placement: Placement, policy: SimPolicy) -> Polygon:
    return oriented_rectangle(
        placement.x, placement.y, placement.bearing,
        policy.vehicle_length_m, policy.vehicle_width_m,
    )


# ── Measurement ───────────────────────────────────────────────────────────────

def _junctions_on(road: Road, junctions: List[Junction]) -> List[float]:
    """Positions along *road* of the junction centres lying on its axis."""
    lo, hi = road.span
    found = []
    for j in junctions:
        across, along = (j.x, j.y) if road.runs_north_south else (j.y, j.x)
        if abs(across - road.axis) < 1e-9 and lo <= along <= hi:
            found.append(along)
    return sorted(found)


def target_separations(network: RoadNetwork, target: Point2) -> Tuple[float, float]:
    """Distance from *target* to the previous and the next junction.

    "Previous" is the nearest junction behind the target for traffic in the
    target's lane; "next" the nearest one ahead.  Missing junctions report
    :data:`NO_DISTANCE`.
    """
    road = network.road_at(*target)
    if road is None:
        return (NO_DISTANCE, NO_DISTANCE)
    position = target[1] if road.runs_north_south else target[0]
    plus = minus = NO_DISTANCE
    for along in _junctions_on(road, list(network.junctions.values())):
        gap = along - position
        if gap >= 0:
            plus = min(plus, gap)
        else:
            minus = min(minus, -gap)
    lane = road.lane_at(*target)
    behind_is_plus = road.runs_north_south if lane == 1 else not road.runs_north_south
    return (plus, minus) if behind_is_plus else (minus, plus)


def measure(layout: MapLayout, policy: Optional[SimPolicy] = None) -> Evaluation:
    """Compute coverage criteria and statistics for a generated map."""
    policy = policy or SimPolicy()
    net = layout.network
    target = layout.target

    dist_target_obs = min(
        (distance(target, (o.x, o.y)) for o in net.obstacles), default=NO_DISTANCE,
    )
    dist_ego_target = distance((layout.ego.x, layout.ego.y), target)
    prev_jct, next_jct = target_separations(net, target)

    junctions = list(net.junctions.values())
    min_sep = min(
        (distance((a.x, a.y), (b.x, b.y)) for a, b in combinations(junctions, 2)),
        default=NO_DISTANCE,
    )
    road = net.road_at(*target)
    centre_sep = abs((target[0] if road.runs_north_south else target[1]) - road.axis) if road else 0.0

    bands = [0] * len(JCT_SEP_LABELS)
    for r in net.roads:
        positions = _junctions_on(r, junctions)
        for a, b in zip(positions, positions[1:]):
            bands[bisect.bisect_right(JCT_SEP_EDGES, b - a)] += 1

    stats = MapStats(
        junction_count=len(junctions),
        road_count=len(net.roads),
        obstacle_count=len(net.obstacles),
        car_count=len(layout.cars),
        min_junction_separation=min_sep,
        target_centre_separation=centre_sep,
        target_kerb_separation=policy.road_width_m / 2.0 - centre_sep,
        next_junction_distance=next_jct,
        junction_separation_bands=tuple(bands),
    )
    return Evaluation(layout.seed, (dist_target_obs, dist_ego_target, prev_jct), stats)


def build_map(
    seed: int,
    params: Optional[MapParams] = None,
    policy: Optional[SimPolicy] = None,
) -> MapLayout:
    """Generate the map for *seed*.  Pure: no global state is read or written."""
    return _MapBuilder(seed, params or MapParams(), policy or SimPolicy()).build()


class MapEvaluator:
    """Seed → criteria boundary consumed by the coverage search.

    Instances are cheap, stateless and picklable, so they can be shipped to
    :mod:`joblib` workers.
    """

    def __init__(self, params: Optional[MapParams] = None, policy: Optional[SimPolicy] = None) -> None:
        self.params = params or MapParams()
        self.policy = policy or SimPolicy()

    def build(self, seed: int) -> MapLayout:
        return build_map(seed, self.params, self.policy)

    def evaluate(self, seed: int) -> Evaluation:
        return measure(self.build(seed), self.policy)

    def criteria(self, seed: int) -> Tuple[float, float, float]:
        return self.evaluate(seed).criteria
