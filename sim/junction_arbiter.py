#!/usr/bin/env python3
"""
sim/junction_arbiter.py
=======================
Mutually exclusive right-of-way at junctions.

Each junction carries a lease (:class:`~sim.network.Occupancy`).  A vehicle
at a junction calls :meth:`JunctionArbiter.request` once per tick until it
is granted; a refused vehicle simply stays put and retries on a later tick.
A lease ends when its holder calls :meth:`JunctionArbiter.release`, or when
it outlives the timeout of the competing request, so a stalled vehicle
cannot block a junction forever.  A guided request (one with a target) is
CONTROLLED and clears leases older than 80 ticks; a random-turn request is
UNCONTROLLED and clears leases older than 30 ticks, at any junction.

On a grant the arbiter also picks the exit the vehicle should take:

* **guided**: the vehicle has a target.  Unvisited arms are always
  acceptable; from the second probe on, an arm already taken ``n`` times is
  acceptable with probability ``0.8 ** n``.  The acceptable arm whose exit
  point is nearest the target wins.
* **random**: one of the four directions is drawn per probe and kept if
  the arm exists (or, at a dead end, if the vehicle is heading that way).

Both loops stop after ``exit_probe_limit`` probes and report
:attr:`ExitStatus.NO_EXIT` rather than raising.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from sim.context import SimContext
from sim.network import (
    EXIT_ORDER,
    Direction,
    Junction,
    JunctionKind,
    compass_direction,
)
from sim.physics import Point2, distance
from sim.traffic_policy import SimPolicy, revisit_acceptance
from sim.vehicle import Vehicle

log = logging.getLogger("arbiter")


class ExitStatus(str, Enum):
    GRANTED = "granted"
    BUSY = "busy"
    NO_EXIT = "no_exit"


@dataclass(frozen=True)
class ExitDecision:
    """Outcome of a junction request.

    ``direction`` and ``point`` are only set when ``status`` is GRANTED.
    """

    status: ExitStatus
    junction_id: int
    direction: Optional[Direction] = None
    point: Optional[Point2] = None

    @property
    def granted(self) -> bool:
        return self.status is ExitStatus.GRANTED


class JunctionArbiter:
    """Lease-style lock over the junctions of a :class:`SimContext`."""

    def __init__(self, policy: Optional[SimPolicy] = None) -> None:
        self.policy = policy or SimPolicy()

    # ── lease bookkeeping ─────────────────────────────────────────────────

    def timeout_for(self, kind: JunctionKind) -> int:
        if kind is JunctionKind.UNCONTROLLED:
            return self.policy.uncontrolled_timeout_ticks
        return self.policy.controlled_timeout_ticks

    def is_expired(self, junction: Junction, now: int, kind: JunctionKind) -> bool:
        """True when the lease on *junction* is older than the *kind* timeout."""
        if junction.occupancy is None:
            return False
        return now - junction.occupancy.since_tick > self.timeout_for(kind)

    def occupier(self, ctx: SimContext, junction_id: int) -> Optional[int]:
        return ctx.network.junctions[junction_id].occupier_id

    def release(self, ctx: SimContext, junction_id: int, vehicle_id: int) -> bool:
        """Free *junction_id* if *vehicle_id* holds it.

        Returns
        -------
        bool
            True if the lease was cleared; a mismatched id is a no-op.
        """
        released = ctx.network.junctions[junction_id].release(vehicle_id)
        if released:
            log.debug("tick %d: vehicle %d released junction %d", ctx.now(), vehicle_id, junction_id)
        return released

    # ── request protocol ──────────────────────────────────────────────────

    def request(
        self,
        ctx: SimContext,
        vehicle: Vehicle,
        junction_id: int,
        target: Optional[Point2] = None,
    ) -> ExitDecision:
        """Try to take *junction_id* for *vehicle* and choose its exit.

        Parameters
        ----------
        ctx : SimContext
            Supplies the network, the clock and the run PRNG.
        vehicle : Vehicle
            The requester.
        junction_id : int
            Junction being entered.
        target : tuple of float, optional
            Destination used for guided exit selection; ``None`` selects an
            exit at random.
        """
        junction = ctx.network.junctions[junction_id]
        now = ctx.now()
        guided = target is not None
        kind = JunctionKind.CONTROLLED if guided else JunctionKind.UNCONTROLLED

        if junction.occupancy is not None:
            if not self.is_expired(junction, now, kind):
                return ExitDecision(ExitStatus.BUSY, junction_id)
            log.info(
                "tick %d: lease of vehicle %d on junction %d expired (since %d)",
                now, junction.occupancy.occupier_id, junction_id, junction.occupancy.since_tick,
            )
            junction.occupancy = None

        if vehicle.junction_id is not None and vehicle.junction_id != junction_id:
            held = ctx.network.junctions.get(vehicle.junction_id)
            if held is not None:
                held.release(vehicle.id)

        junction.occupy(vehicle.id, now)
        vehicle.junction_id = junction_id
        log.debug("tick %d: vehicle %d occupies junction %d", now, vehicle.id, junction_id)

        if guided:
            direction = self._guided_exit(ctx, vehicle, junction, target)
        else:
            direction = self._random_exit(ctx, vehicle, junction)
        if direction is None:
            log.warning(
                "tick %d: no exit found for vehicle %d at junction %d", now, vehicle.id, junction_id,
            )
            return ExitDecision(ExitStatus.NO_EXIT, junction_id)

        junction.record_visit(vehicle.id, direction)
        point = junction.exit_point(direction, self.policy.exit_offset(guided))
        return ExitDecision(ExitStatus.GRANTED, junction_id, direction, point)

    # ── exit selection ────────────────────────────────────────────────────

    def _guided_exit(
        self, ctx: SimContext, vehicle: Vehicle, junction: Junction, target: Point2,
    ) -> Optional[Direction]:
        offset = self.policy.guided_exit_offset_m
        for probe in range(self.policy.exit_probe_limit):
            best: Optional[Direction] = None
            best_dist = 0.0
            for direction in EXIT_ORDER:
                if not junction.has_arm(direction):
                    continue
                visits = junction.visit_count(vehicle.id, direction)
                acceptable = visits == 0 or (
                    probe > 0 and ctx.random_uniform() < revisit_acceptance(visits, self.policy)
                )
                if not acceptable:
                    continue
                dist = distance(junction.exit_point(direction, offset), target)
                if best is None or dist < best_dist:
                    best, best_dist = direction, dist
            if best is not None:
                return best
        return None

    def _random_exit(
        self, ctx: SimContext, vehicle: Vehicle, junction: Junction,
    ) -> Optional[Direction]:
        heading = compass_direction(vehicle.bearing)
        for _ in range(self.policy.exit_probe_limit):
            direction = EXIT_ORDER[ctx.random_int(len(EXIT_ORDER))]
            if junction.has_arm(direction):
                return direction
            if junction.is_dead_end and direction is heading:
                return direction
        return None
