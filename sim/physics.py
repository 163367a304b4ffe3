#!/usr/bin/env python3
"""
sim/physics.py
==============
Low-level geometry helpers used by :mod:`sim.network`, :mod:`sim.vehicle`
and :mod:`sim.accident_oracle`.

Keeping these in a separate module avoids circular imports and makes unit
testing straightforward.  Bearings are compass-style degrees measured from
the +y axis (y grows "south"), so bearing 90 points along +x.
"""

from __future__ import annotations

import math
from typing import Optional, Tuple

from shapely import affinity
from shapely.geometry import Polygon, box

Point2 = Tuple[float, float]


def correct_angle(bearing: float) -> float:
    """Normalise *bearing* into ``[0, 360)``."""
    return float(bearing) % 360.0


def heading_vector(bearing: float) -> Point2:
    """Unit vector for a compass bearing (0 → +y, 90 → +x)."""
    rad = math.radians(bearing)
    return (math.sin(rad), math.cos(rad))


def bearing_between(x0: float, y0: float, x1: float, y1: float) -> float:
    """Compass bearing of the direction from *(x0, y0)* towards *(x1, y1)*."""
    return correct_angle(math.degrees(math.atan2(x1 - x0, y1 - y0)))


def distance(a: Point2, b: Point2) -> float:
    return math.hypot(a[0] - b[0], a[1] - b[1])


def oriented_rectangle(
    x: float, y: float, bearing: float, length: float, width: float,
) -> Polygon:
    """Footprint of a *length* × *width* body centred on *(x, y)*.

    The long side is aligned with *bearing*.

    Parameters
    ----------
    x, y : float
        Centre of the body in world coordinates.
    bearing : float
        Heading in compass degrees.
    length, width : float
        Extent along and across the heading, in metres.
    """
    upright = box(-width / 2.0, -length / 2.0, width / 2.0, length / 2.0)
    # shapely rotates counter-clockwise; compass bearings run the other way
    turned = affinity.rotate(upright, -bearing, origin=(0.0, 0.0))
    return affinity.translate(turned, xoff=x, yoff=y)


def shapes_overlap(a: Polygon, b: Polygon) -> bool:
    """True only when two footprints share a region of non-zero area.

    Touching edges or corners do not count.
    """
    if not a.intersects(b):
        return False
    return a.intersection(b).area > 0.0


def crossing_point(
    prev: Point2, cur: Point2, along_y: bool, line_centre: float,
) -> Optional[Point2]:
    """Project where the step *prev* → *cur* meets a straight lane marking.

    Parameters
    ----------
    prev, cur : tuple of float
        Previous and current vehicle location.
    along_y : bool
        True for a marking running north–south (constant x), False for one
        running east–west (constant y).
    line_centre : float
        The constant coordinate of the marking centre.

    Returns
    -------
    tuple of float or None
        The crossing point, or ``None`` when the projection is degenerate
        (zero denominator, NaN or infinite result).
    """
    x1, y1 = prev
    x2, y2 = cur
    try:
        if along_y:
            angle = math.atan((y1 - y2) / (x1 - x2))
            opp = (x2 - line_centre) * math.tan(angle)
            point = (line_centre, y2 - opp)
        else:
            angle = math.atan((x1 - x2) / (y1 - y2))
            opp = (y2 - line_centre) * math.tan(angle)
            point = (x2 - opp, line_centre)
    except ZeroDivisionError:
        return None
    if not (math.isfinite(point[0]) and math.isfinite(point[1])):
        return None
    return point
