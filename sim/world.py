#!/usr/bin/env python3
"""
sim/world.py
============
Replay harness for one (external seed, internal seed) pair.

This module rebuilds the map of an external seed, registers the ego and
the other cars, optionally injects ego faults drawn from the internal PRNG,
and advances everything in fixed registration order once per tick.

Vehicles move at constant speed, follow waypoints through junctions and
change lane around parked obstacles.  There is no vehicle dynamics model:
the harness exists to exercise the
:class:`~sim.junction_arbiter.JunctionArbiter` and the
:class:`~sim.accident_oracle.AccidentOracle` end to end.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from shapely import affinity
from shapely.geometry import LineString, Point

from config import DEFAULT_PERCENTAGE_FAULTS
from sim.accident_oracle import AccidentOracle, AccidentRecord
from sim.context import SimContext
from sim.junction_arbiter import ExitDecision, JunctionArbiter
from sim.map_builder import MapParams, build_map, measure
from sim.network import Direction, Junction, Obstacle, Road, compass_direction
from sim.physics import Point2, heading_vector, shapes_overlap
from sim.traffic_policy import SimPolicy
from sim.vehicle import Role, Vehicle

log = logging.getLogger("world")


class FaultKind(str, Enum):
    """Faults that can be injected into the ego."""

    DRIFT = "drift"                        # heading error accumulates off-route
    OVERSPEED = "overspeed"                # cruise speed multiplied
    IGNORE_JUNCTION = "ignore_junction"    # never asks for right of way
    NO_HEADWAY = "no_headway"              # does not wait for vehicles ahead
    STALL_IN_JUNCTION = "stall_in_junction"  # stops for good once inside a junction


@dataclass
class RunOutcome:
    """Everything a batch driver needs after a run."""

    external_seed: int
    internal_seed: int
    steps: int
    reached_target: bool
    faults: List[FaultKind]
    records: List[AccidentRecord]
    summary: Dict[str, Any] = field(default_factory=dict)


class World:
    """One scenario run.

    Parameters
    ----------
    external_seed : int
        Seed of the map and of the initial vehicle placement.
    internal_seed : int
        Seed of the run PRNG (fault draw, exit choices).
    percentage_faults : float
        Probability with which each :class:`FaultKind` is activated when
        *faults* is not given.
    faults : sequence of FaultKind, optional
        Explicit fault set; bypasses the random draw.
    """

    def __init__(
        self,
        external_seed: int,
        internal_seed: int,
        *,
        policy: Optional[SimPolicy] = None,
        params: Optional[MapParams] = None,
        percentage_faults: float = DEFAULT_PERCENTAGE_FAULTS,
        faults: Optional[Sequence[FaultKind]] = None,
    ) -> None:
        self.policy = policy or SimPolicy()
        self.layout = build_map(external_seed, params, self.policy)
        self.evaluation = measure(self.layout, self.policy)
        self.ctx = SimContext(
            self.layout.network,
            internal_seed=internal_seed,
            external_seed=external_seed,
            target=self.layout.target,
        )
        self.arbiter = JunctionArbiter(self.policy)
        self.oracle = AccidentOracle(self.policy)
        self.records: List[AccidentRecord] = []
        self.reached_target = False
        self._stalled = False
        self._cleared: Dict[int, int] = {}    # vehicle id → junction it was routed through

        self._spawn()
        if faults is None:
            self.faults = [f for f in FaultKind if self.ctx.random_uniform() < percentage_faults]
        else:
            self.faults = list(faults)
        if FaultKind.OVERSPEED in self.faults:
            self.ego.cruise_speed *= self.policy.overspeed_factor
            self.ego.resume()
        log.info(
            "run %d/%d: %d vehicles, faults=%s",
            internal_seed, external_seed, len(self.ctx.vehicles),
            [f.value for f in self.faults] or "none",
        )

    def _spawn(self) -> None:
        pol = self.policy
        placements = [(Role.EGO, self.layout.ego)] + [(Role.OTHER, p) for p in self.layout.cars]
        for vid, (role, p) in enumerate(placements):
            self.ctx.add_vehicle(Vehicle(
                id=vid, x=p.x, y=p.y, bearing=p.bearing, speed=pol.car_speed_m, role=role,
                length=pol.vehicle_length_m, width=pol.vehicle_width_m,
            ))
        self.oracle.track(0)

    @property
    def ego(self) -> Vehicle:
        return self.ctx.vehicles[0]

    def has_fault(self, fault: FaultKind) -> bool:
        return fault in self.faults

    # ── main loop ─────────────────────────────────────────────────────────

    def tick(self) -> List[AccidentRecord]:
        """Advance one tick and return the accidents it produced."""
        if self.ctx.terminated:
            return []
        self.ctx.step()
        for vehicle in self.ctx.ordered_vehicles():
            if vehicle.alive:
                self._drive(vehicle)
        found = self.oracle.observe(self.ctx)
        self.records.extend(found)
        self._check_target()
        return found

    def run(self, max_ticks: Optional[int] = None) -> RunOutcome:
        """Tick until the ego arrives, the watchdog fires or *max_ticks* pass."""
        while not self.ctx.terminated:
            if max_ticks is not None and self.ctx.now() >= max_ticks:
                self.ctx.terminate("tick budget")
                break
            self.tick()
        log.info(
            "run %d/%d finished after %d ticks (%s), %d accidents",
            self.ctx.internal_seed, self.ctx.external_seed, self.ctx.now(),
            self.ctx.termination_reason, len(self.records),
        )
        return RunOutcome(
            external_seed=self.ctx.external_seed,
            internal_seed=self.ctx.internal_seed,
            steps=self.ctx.now(),
            reached_target=self.reached_target,
            faults=list(self.faults),
            records=list(self.records),
        )

    def _check_target(self) -> None:
        segment = self.ego.step_segment()
        if segment is None or segment[0] == segment[1]:
            return
        path = LineString(segment)
        if path.distance(Point(self.ctx.target)) <= self.policy.target_reached_m:
            self.reached_target = True
            self.ctx.terminate("target reached")

    # ── per-vehicle behaviour ─────────────────────────────────────────────

    def _drive(self, v: Vehicle) -> None:
        net = self.ctx.network
        self._release_if_clear(v)

        if v.is_ego and self._stalled:
            v.wait()
            v.move()
            return

        if not v.is_turning:
            v.overtaking = False
            v.u_turning = False
            junction = self._junction_ahead(v)
            if junction is not None and not (v.is_ego and self.has_fault(FaultKind.IGNORE_JUNCTION)):
                target = self.ctx.target if v.is_ego else None
                decision = self.arbiter.request(self.ctx, v, junction.id, target)
                if not decision.granted:
                    v.wait()
                    v.move()
                    return
                self._route_through(v, junction, decision)
                self._cleared[v.id] = junction.id
            elif junction is None:
                obstacle = self._obstacle_ahead(v)
                if obstacle is not None:
                    self._overtake(v, obstacle)

        if v.is_ego and self.has_fault(FaultKind.STALL_IN_JUNCTION) and v.junction_id is not None:
            if net.junctions[v.junction_id].contains(v.x, v.y):
                log.debug("tick %d: ego stalled in junction %d", self.ctx.now(), v.junction_id)
                self._stalled = True
                v.wait()
                v.move()
                return

        if self._blocked(v):
            v.wait()
        else:
            v.resume()
        if v.is_ego and self.has_fault(FaultKind.DRIFT) and not v.is_turning:
            v.bearing = (v.bearing + self.policy.drift_deg_per_tick) % 360.0
        v.move()

        if not v.is_ego and not net.on_road(v.x, v.y):
            log.debug("tick %d: vehicle %d left the network", self.ctx.now(), v.id)
            v.alive = False

    def _release_if_clear(self, v: Vehicle) -> None:
        junction_id = self._cleared.get(v.id)
        if junction_id is None or v.is_turning:
            return
        junction = self.ctx.network.junctions[junction_id]
        if junction.footprint.intersects(v.footprint()):
            return
        self.arbiter.release(self.ctx, junction_id, v.id)
        del self._cleared[v.id]

    def _junction_ahead(self, v: Vehicle) -> Optional[Junction]:
        dx, dy = heading_vector(compass_direction(v.bearing).bearing)
        reach = v.length / 2.0 + self.policy.junction_lookahead_m
        probe = LineString([v.location, (v.x + dx * reach, v.y + dy * reach)])
        nearest: Optional[Junction] = None
        nearest_dist = 0.0
        for junction in self.ctx.network.junctions.values():
            if junction.id == self._cleared.get(v.id) or not probe.intersects(junction.footprint):
                continue
            dist = Point(v.location).distance(junction.footprint)
            if nearest is None or dist < nearest_dist:
                nearest, nearest_dist = junction, dist
        return nearest

    def _route_through(self, v: Vehicle, junction: Junction, decision: ExitDecision) -> None:
        heading = compass_direction(v.bearing)
        direction = decision.direction
        offset = self.policy.exit_offset(v.is_ego)
        if not junction.has_arm(direction) or direction is heading.opposite:
            # u-turn: leave along the arm we came in on
            v.u_turning = True
            out = heading.opposite
            v.set_route(
                [junction.entry_point(heading), (junction.x, junction.y), junction.exit_point(out, offset)],
                out.bearing,
            )
            return
        v.set_route([junction.entry_point(heading), decision.point], direction.bearing)

    def _obstacle_ahead(self, v: Vehicle) -> Optional[Obstacle]:
        dx, dy = heading_vector(v.bearing)
        reach = v.length + 2.0 * v.cruise_speed
        probe = affinity.translate(v.footprint(), xoff=dx * reach, yoff=dy * reach)
        for obstacle in self.ctx.network.obstacles:
            if shapes_overlap(probe, obstacle.footprint):
                return obstacle
        return None

    def _overtake(self, v: Vehicle, obstacle: Obstacle) -> None:
        road: Optional[Road] = self.ctx.network.road_at(v.x, v.y)
        if road is None:
            return
        heading = compass_direction(v.bearing)
        sign = 1.0 if heading in (Direction.SOUTH, Direction.EAST) else -1.0
        own = (v.x if road.runs_north_south else v.y) - road.axis
        start = v.y if road.runs_north_south else v.x
        past = (obstacle.y if road.runs_north_south else obstacle.x) + sign * (
            obstacle.length / 2.0 + v.length + 2.0
        )
        route: List[Point2] = [
            road.point_at(start + sign * 3.0, -own),
            road.point_at(past, -own),
            road.point_at(past + sign * 3.0, own),
        ]
        v.overtaking = True
        v.set_route(route, heading.bearing)

    def _blocked(self, v: Vehicle) -> bool:
        if v.is_ego and self.has_fault(FaultKind.NO_HEADWAY):
            return False
        dx, dy = heading_vector(v.bearing)
        ahead = affinity.translate(v.footprint(), xoff=dx * v.cruise_speed, yoff=dy * v.cruise_speed)
        for other in self.ctx.ordered_vehicles():
            if other.id == v.id or not other.alive:
                continue
            if (other.x - v.x) * dx + (other.y - v.y) * dy <= 0.0:
                continue
            if shapes_overlap(ahead, other.footprint()):
                return True
        return False
