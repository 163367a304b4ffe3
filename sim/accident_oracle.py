#!/usr/bin/env python3
"""
sim/accident_oracle.py
======================
Per-tick accident classifier and its log / summary writers.

:class:`AccidentOracle` observes every tracked vehicle once per tick and
appends an immutable :class:`AccidentRecord` for each fault it detects:

* ``CRASH_OBSTACLE``: footprint overlaps a parked obstacle.
* ``LEAVE_ROAD``: the vehicle centre is on no road surface.
* ``CROSS_CENTRE`` / ``CROSS_NEAR`` / ``CROSS_FAR``: the step since the
  previous tick crosses a painted line outside any junction, while the
  vehicle is neither overtaking nor u-turning.
* ``CRASH_VEHICLE``: footprint overlaps another live vehicle and no
  exculpating rule applies.
* ``TIMEOUT``: the run exceeded the watchdog ceiling; the run is ended.

Counts accumulate per run and are flushed into a summary row by
:meth:`AccidentOracle.end_run`, which then resets them.

Inconclusive geometry (degenerate crossing projections) never produces
a record.
"""

from __future__ import annotations

import logging
import os
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from shapely.geometry import Polygon

from sim.context import SimContext
from sim.map_builder import CRITERIA_COLUMNS, JCT_SEP_LABELS, Evaluation, MapStats
from sim.network import LineKind, compass_direction
from sim.physics import Point2, shapes_overlap
from sim.traffic_policy import SimPolicy, is_near_parallel
from sim.vehicle import Vehicle

log = logging.getLogger("oracle")


class AccidentCategory(str, Enum):
    CRASH_OBSTACLE = "CRASH_OBSTACLE"
    LEAVE_ROAD = "LEAVE_ROAD"
    CROSS_CENTRE = "CROSS_CENTRE"
    CROSS_NEAR = "CROSS_NEAR"
    CROSS_FAR = "CROSS_FAR"
    CRASH_VEHICLE = "CRASH_VEHICLE"
    TIMEOUT = "TIMEOUT"


_LINE_CATEGORY: Dict[LineKind, AccidentCategory] = {
    LineKind.CENTRE: AccidentCategory.CROSS_CENTRE,
    LineKind.NEAR: AccidentCategory.CROSS_NEAR,
    LineKind.FAR: AccidentCategory.CROSS_FAR,
}

# Summary column per category, in file order.
CATEGORY_COLUMNS: Dict[AccidentCategory, str] = {
    AccidentCategory.LEAVE_ROAD: "#LeaveRoad",
    AccidentCategory.CROSS_CENTRE: "#CrossCentre",
    AccidentCategory.CROSS_NEAR: "#CrossNear",
    AccidentCategory.CROSS_FAR: "#CrossFar",
    AccidentCategory.CRASH_OBSTACLE: "#CrashObstacle",
    AccidentCategory.CRASH_VEHICLE: "#CrashVehicle",
    AccidentCategory.TIMEOUT: "#Timeout",
}

SUMMARY_FIELDS: List[str] = (
    ["RandomSeed", "ExternalRandomSeed", "#Junctions", "#Roads", "#Obstacles", "#Cars",
     "MinJctSeparation"]
    + list(CRITERIA_COLUMNS)
    + ["TargetCentreSeparation", "TargetKerbSeparation", "NextJctDistance"]
    + [f"JctSep{label}" for label in JCT_SEP_LABELS]
    + ["#Faults", "#Steps", "#Accidents"]
    + list(CATEGORY_COLUMNS.values())
)


@dataclass(frozen=True)
class AccidentRecord:
    """One classified fault event."""

    category: AccidentCategory
    vehicle_id: int
    tick: int
    location: Point2
    detail: str = ""

    def log_line(self) -> str:
        x, y = self.location
        return (
            f"{self.category.value}:- car: {self.vehicle_id}; time: {self.tick} steps; "
            f"location: ({x:.2f}, {y:.2f}); {self.detail}"
        )


class AccidentOracle:
    """Classify tracked vehicles every tick.

    Parameters
    ----------
    policy : SimPolicy, optional
        Supplies the watchdog ceiling and the parallel-heading tolerance.
    """

    def __init__(self, policy: Optional[SimPolicy] = None) -> None:
        self.policy = policy or SimPolicy()
        self.tracked: List[int] = []
        self.records: List[AccidentRecord] = []
        self.counts: Counter = Counter()

    def track(self, vehicle_id: int) -> None:
        if vehicle_id not in self.tracked:
            self.tracked.append(vehicle_id)

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    # ── per-tick classification ───────────────────────────────────────────

    def observe(self, ctx: SimContext) -> List[AccidentRecord]:
        """Check every tracked vehicle at the current tick.

        Returns the records added during this call.
        """
        start = len(self.records)
        for vehicle_id in self.tracked:
            vehicle = ctx.vehicles.get(vehicle_id)
            if vehicle is None or not vehicle.alive:
                continue
            self._check_vehicle(ctx, vehicle)

        if ctx.now() > self.policy.watchdog_ticks and self.tracked:
            subject = ctx.vehicles.get(self.tracked[0])
            where = subject.location if subject is not None else (0.0, 0.0)
            target = ctx.target or (0.0, 0.0)
            self._add(
                AccidentCategory.TIMEOUT, self.tracked[0], ctx.now(), where,
                f"run terminated without reaching target location ({target[0]:.2f}, {target[1]:.2f})",
            )
            ctx.terminate("timeout")
        return self.records[start:]

    def _check_vehicle(self, ctx: SimContext, vehicle: Vehicle) -> None:
        net = ctx.network
        now = ctx.now()
        shape = vehicle.footprint()

        for obstacle in net.obstacles:
            if shapes_overlap(shape, obstacle.footprint):
                self._add(
                    AccidentCategory.CRASH_OBSTACLE, vehicle.id, now, vehicle.location,
                    f"with obstacle id = {obstacle.id}",
                )

        if not net.on_road(vehicle.x, vehicle.y):
            self._add(AccidentCategory.LEAVE_ROAD, vehicle.id, now, vehicle.location)

        for kind in LineKind:
            point = self.line_crossing(ctx, vehicle, kind)
            if point is not None:
                self._add(_LINE_CATEGORY[kind], vehicle.id, now, point, f"{kind.value} line")

        if vehicle.speed == 0.0:
            return
        for other in ctx.ordered_vehicles():
            if other.id == vehicle.id or not other.alive:
                continue
            other_shape = other.footprint()
            if not shapes_overlap(shape, other_shape):
                continue
            if self.is_exculpated(ctx, vehicle, other, shape, other_shape):
                log.debug(
                    "tick %d: contact between %d and %d excused", now, vehicle.id, other.id,
                )
                continue
            self._add(
                AccidentCategory.CRASH_VEHICLE, vehicle.id, now, vehicle.location,
                f"collision with car: {other.id} ({other.x:.2f}, {other.y:.2f})",
            )

    def line_crossing(self, ctx: SimContext, vehicle: Vehicle, kind: LineKind) -> Optional[Point2]:
        """Crossing point of *kind* during the last step, or ``None``."""
        segment = vehicle.step_segment()
        if segment is None or vehicle.overtaking or vehicle.u_turning:
            return None
        prev, cur = segment
        if prev == cur:
            return None
        point = ctx.network.crossing(kind, prev, cur)
        if point is None:
            return None
        if ctx.network.junction_at_point(*point) is not None:
            return None
        return point

    def is_exculpated(
        self,
        ctx: SimContext,
        ego: Vehicle,
        other: Vehicle,
        ego_shape: Polygon,
        other_shape: Polygon,
    ) -> bool:
        """Rules under which a vehicle contact is not the ego's fault."""
        net = ctx.network
        if net.junction_touching(ego_shape) is None:
            ego_lane = net.lane_at(ego.x, ego.y)
            other_lane = net.lane_at(other.x, other.y)
            ego_travel = compass_direction(ego.bearing).lane_code
            other_travel = compass_direction(other.bearing).lane_code
            if ego_lane != other_lane or (ego_travel != other_travel and ego_travel == ego_lane):
                return True

        if ego.speed < other.speed and is_near_parallel(
            ego.bearing, other.bearing, self.policy.parallel_heading_deg,
        ):
            return True

        return net.marking_touched(LineKind.CENTRE, other_shape)

    def _add(
        self,
        category: AccidentCategory,
        vehicle_id: int,
        tick: int,
        location: Point2,
        detail: str = "",
    ) -> AccidentRecord:
        record = AccidentRecord(category, vehicle_id, tick, (float(location[0]), float(location[1])), detail)
        self.records.append(record)
        self.counts[category] += 1
        log.debug(record.log_line())
        return record

    # ── run boundaries ────────────────────────────────────────────────────

    def end_run(
        self,
        ctx: SimContext,
        evaluation: Evaluation,
        fault_count: int,
    ) -> Dict[str, Any]:
        """Build the summary row for the finished run and reset counters.

        The row carries the map criteria beside the accident counts so that
        runs can be grouped by coverage box.
        """
        row: Dict[str, Any] = {
            "RandomSeed": ctx.internal_seed,
            "ExternalRandomSeed": ctx.external_seed,
        }
        row.update(evaluation.stats.as_dict())
        row.update(evaluation.criteria_dict())
        row["#Faults"] = fault_count
        row["#Steps"] = ctx.now()
        row["#Accidents"] = self.total
        for category, column in CATEGORY_COLUMNS.items():
            row[column] = self.counts[category]
        self.records = []
        self.counts = Counter()
        return {name: row[name] for name in SUMMARY_FIELDS}


# ── Output files ─────────────────────────────────────────────────────────────

def format_pct(pct: float) -> str:
    return f"{pct:.2f}"


class AccidentLog:
    """Append-only ``AccidentLog<pct>_<mapNo>.txt`` writer."""

    def __init__(self, out_dir: str, pct_faults: float, map_no: Union[int, str]) -> None:
        self.path = os.path.join(out_dir, f"AccidentLog{format_pct(pct_faults)}_{map_no}.txt")

    def write_run(
        self,
        ctx: SimContext,
        stats: MapStats,
        faults: Sequence[str],
        records: Iterable[AccidentRecord],
    ) -> None:
        with open(self.path, "a", encoding="utf-8") as fh:
            fh.write(
                f"*** Run, Seed = {ctx.internal_seed}, External Seed = {ctx.external_seed}; "
                f"NoJunctions = {stats.junction_count}; NoRoads = {stats.road_count}; "
                f"NoObstacles = {stats.obstacle_count}; NoCars = {stats.car_count}; "
                f"Faults = {', '.join(faults) or 'none'}\n"
            )
            count = 0
            for record in records:
                fh.write(record.log_line() + "\n")
                count += 1
            fh.write(
                f"*** End of run; NoAccidents = {count}; NoSteps = {ctx.now()}; "
                f"Termination = {ctx.termination_reason or 'none'}.\n"
            )


class AccidentSummary:
    """``AccidentSummary<pct>_<mapNo>.txt``: fixed header, one row per run."""

    def __init__(self, out_dir: str, pct_faults: float, map_no: Union[int, str]) -> None:
        self.path = os.path.join(out_dir, f"AccidentSummary{format_pct(pct_faults)}_{map_no}.txt")
        if not os.path.exists(self.path):
            with open(self.path, "w", encoding="utf-8") as fh:
                fh.write(", ".join(SUMMARY_FIELDS) + "\n")

    def append(self, row: Dict[str, Any]) -> None:
        with open(self.path, "a", encoding="utf-8") as fh:
            fh.write(", ".join(str(row[name]) for name in SUMMARY_FIELDS) + "\n")
