"""
boundary.py — Distance from a point to the nearest edge of a polygon.

Used by the label placer to keep labels away from county borders.
"""

from __future__ import annotations

import math
from typing import Optional, Sequence

from county_labels.geo import Coordinate, Ring, distance


def distance_to_segment(point: Coordinate, start: Coordinate, end: Coordinate) -> float:
    """
    Metres from ``point`` to the closest point of the segment ``start``-``end``.

    The projection is done in degree space and the clamped foot point is then
    measured with the haversine distance. Degenerate segments collapse to
    their start point.
    """
    a = point.lat - start.lat
    b = point.lng - start.lng
    c = end.lat - start.lat
    d = end.lng - start.lng

    length_sq = c * c + d * d
    t = (a * c + b * d) / length_sq if length_sq != 0 else 0.0
    t = max(0.0, min(1.0, t))

    foot = Coordinate(start.lat + t * c, start.lng + t * d)
    return distance(point, foot)


def min_distance_to_boundary(point: Coordinate, rings: Optional[Sequence[Ring]]) -> float:
    """
    Minimum distance from a point to any edge of any ring.

    Args:
        point: Coordinate to measure from.
        rings: Closed rings of one feature.

    Returns:
        Distance in metres, or ``math.inf`` when there is no geometry. An
        infinite result always passes a "clearance >= threshold" check.
    """
    best = math.inf
    for ring in rings or ():
        for start, end in zip(ring, ring[1:]):
            best = min(best, distance_to_segment(point, start, end))
    return best
