#!/usr/bin/env python3
"""
sim/traffic_policy.py
=====================
Tunable geometry, arbitration and oracle parameters for the scenario
simulation.  Every constant lives in the frozen :class:`SimPolicy`
dataclass so that experiments can swap policies without touching code.

Also provides two stateless helpers:

* :func:`revisit_acceptance`: probability of re-using an exit already taken.
* :func:`is_near_parallel`: heading tolerance test used by the oracle.
"""

from __future__ import annotations

from dataclasses import dataclass

from sim.physics import correct_angle


@dataclass(frozen=True)
class SimPolicy:
    """Immutable bag of every tunable simulation parameter.

    Groups: road geometry, entity footprints, junction arbitration,
    accident oracle, fault injection.
    """

    # ── Road geometry ─────────────────────────────────────────────────────
    road_width_m: float = 6.0
    """Full width of every road, both lanes."""

    centre_line_width_m: float = 0.1
    """Width of the painted centre line."""

    edge_line_width_m: float = 0.1
    """Width of the painted kerb-side lines."""

    edge_offset_m: float = 0.225
    """Gap between the road edge and the kerb-side line."""

    junction_approach_m: float = 23.0
    """Length of the approach / exit zone kept clear around a junction.

    Reflects a car at cruise speed stopping within 20 m, plus one step.
    """

    # ── Entity footprints ─────────────────────────────────────────────────
    vehicle_length_m: float = 5.0
    vehicle_width_m: float = 2.0
    obstacle_length_m: float = 5.0
    obstacle_width_m: float = 2.0

    obstacle_buffer_m: float = 2.0
    """Minimum clearance between two parked obstacles."""

    car_speed_m: float = 2.5
    """Cruise speed in metres per tick (45 km/h at 5 ticks per second)."""

    min_car_to_ego_m: float = 5.0
    """Other cars are never placed closer than this to the ego."""

    # ── Junction arbitration ──────────────────────────────────────────────
    controlled_timeout_ticks: int = 80
    """Lease age a guided (targeted) request will override."""

    uncontrolled_timeout_ticks: int = 30
    """Lease age a random-turn request will override."""

    exit_probe_limit: int = 1000
    """Hard cap on exit-selection probes before giving up."""

    revisit_decay: float = 0.8
    """Base of the ``decay ** visits`` acceptance for a visited exit."""

    guided_exit_offset_m: float = 1.5
    """Distance beyond the junction edge of a target-guided exit point."""

    random_exit_offset_m: float = 1.0
    """Distance beyond the junction edge of a random exit point."""

    junction_lookahead_m: float = 5.0
    """A vehicle negotiates a junction once this close to its footprint."""

    # ── Accident oracle ───────────────────────────────────────────────────
    watchdog_ticks: int = 5000
    """Runs longer than this are terminated as TIMEOUT."""

    parallel_heading_deg: float = 45.0
    """Headings closer than this count as travelling in parallel."""

    target_reached_m: float = 2.5
    """The ego has arrived once its path passes this close to the target."""

    # ── Fault injection ───────────────────────────────────────────────────
    drift_deg_per_tick: float = 2.0
    """Heading error accumulated per tick by a drifting ego."""

    overspeed_factor: float = 1.6
    """Speed multiplier applied by the overspeed fault."""

    def exit_offset(self, guided: bool) -> float:
        return self.guided_exit_offset_m if guided else self.random_exit_offset_m


def revisit_acceptance(visits: int, policy: SimPolicy) -> float:
    """Probability of accepting an exit already taken *visits* times.

    An unvisited exit is always acceptable.
    """
    if visits <= 0:
        return 1.0
    return policy.revisit_decay ** visits


def is_near_parallel(bearing_a: float, bearing_b: float, tolerance_deg: float) -> bool:
    """True when two bearings differ by less than *tolerance_deg* either way.

    Parameters
    ----------
    bearing_a, bearing_b : float
        Compass bearings in degrees (0 = +y).
    tolerance_deg : float
        Half-width of the accepted band.
    """
    diff = abs(correct_angle(bearing_a) - correct_angle(bearing_b))
    return diff < tolerance_deg or diff > 360.0 - tolerance_deg
