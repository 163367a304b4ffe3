#!/usr/bin/env python3
"""
sim/vehicle.py
==============
The :class:`Vehicle` entity shared by the world harness, the junction
arbiter and the accident oracle.

Manoeuvre state is carried as explicit capability flags (``overtaking``,
``u_turning``) rather than vehicle subclasses, so the oracle can decide
whether a line crossing is excused by reading the record alone.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from shapely.geometry import Polygon

from sim.physics import Point2, bearing_between, heading_vector, oriented_rectangle


class Role(str, Enum):
    EGO = "ego"
    OTHER = "other"


@dataclass
class Vehicle:
    """A moving vehicle.

    Attributes
    ----------
    id : int
        Arena key; the ego is registered first.
    x, y : float
        Centre of the footprint in world metres.
    bearing : float
        Heading in compass degrees (0 = +y).
    speed : float
        Metres travelled per tick; 0 while waiting.
    junction_id : int or None
        Junction this vehicle currently holds or last negotiated.
    prev_location : tuple or None
        Location at the end of the previous tick.
    """

    id: int
    x: float
    y: float
    bearing: float
    speed: float
    role: Role = Role.OTHER
    length: float = 5.0
    width: float = 2.0
    alive: bool = True
    junction_id: Optional[int] = None
    overtaking: bool = False
    u_turning: bool = False
    prev_location: Optional[Point2] = None
    cruise_speed: float = field(default=0.0, repr=False)
    exit_bearing: Optional[float] = field(default=None, repr=False)
    _waypoints: List[Point2] = field(default_factory=list, repr=False)
    """Remaining waypoints through the current junction."""

    def __post_init__(self) -> None:
        if self.cruise_speed <= 0.0:
            self.cruise_speed = self.speed

    @property
    def location(self) -> Point2:
        return (self.x, self.y)

    @property
    def is_ego(self) -> bool:
        return self.role is Role.EGO

    @property
    def is_turning(self) -> bool:
        """True while the vehicle is following junction waypoints."""
        return len(self._waypoints) > 0

    def footprint(self) -> Polygon:
        return oriented_rectangle(self.x, self.y, self.bearing, self.length, self.width)

    def set_route(self, waypoints: List[Point2], exit_bearing: float) -> None:
        self._waypoints = list(waypoints)
        self.exit_bearing = exit_bearing

    def clear_route(self) -> None:
        self._waypoints = []
        self.exit_bearing = None

    def wait(self) -> None:
        self.speed = 0.0

    def resume(self) -> None:
        self.speed = self.cruise_speed

    # ── movement ──────────────────────────────────────────────────────────
    def move(self) -> None:
        """Advance one tick, along the waypoints if any, else straight ahead."""
        self.prev_location = self.location
        if self.speed <= 0.0:
            return
        if self._waypoints:
            self._move_along_waypoints(self.speed)
        else:
            dx, dy = heading_vector(self.bearing)
            self.x += dx * self.speed
            self.y += dy * self.speed

    def _move_along_waypoints(self, budget: float) -> None:
        """Steer toward the next waypoint, consuming it when reached."""
        while budget > 1e-6 and self._waypoints:
            wx, wy = self._waypoints[0]
            gap = math.hypot(wx - self.x, wy - self.y)
            if gap < 1e-6:
                self._waypoints.pop(0)
                continue
            self.bearing = bearing_between(self.x, self.y, wx, wy)
            if budget < gap:
                share = budget / gap
                self.x += (wx - self.x) * share
                self.y += (wy - self.y) * share
                budget = 0.0
                break
            self.x, self.y = wx, wy
            budget -= gap
            self._waypoints.pop(0)
        if not self._waypoints and self.exit_bearing is not None:
            self.bearing = self.exit_bearing
            self.exit_bearing = None
            if budget > 1e-6:
                ux, uy = heading_vector(self.bearing)
                self.x += ux * budget
                self.y += uy * budget

    def step_segment(self) -> Optional[Tuple[Point2, Point2]]:
        """The path covered during the last tick, if any."""
        if self.prev_location is None:
            return None
        return (self.prev_location, self.location)
