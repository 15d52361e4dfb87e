"""
raycast.py — Point-in-polygon test for county rings.

Uses the ray-casting method: cast a ray from the test point towards
increasing longitude, counting boundary crossings. An odd count means the
point is inside the ring. Rings are (lat, lng) sequences; for the casting
math longitude is the x-axis and latitude the y-axis.

Boundary convention: an edge counts only when its endpoints straddle the
point's latitude with the upper endpoint strictly above it, and only when
the crossing lies strictly east of the point. For an axis-aligned ring this
makes points on the southern and western edges inside and points on the
northern and eastern edges outside.

Reference:
    W. Randolph Franklin, "PNPOLY – Point Inclusion in Polygon Test"
    https://wrfranklin.org/Research/Short_Notes/pnpoly.html
"""

from __future__ import annotations

from typing import Optional, Sequence

from county_labels.geo import Coordinate, Ring


def _is_point_in_ring(lng: float, lat: float, ring: Ring) -> bool:
    """
    Run the ray-casting test for a single closed ring.

    Args:
        lng:  Longitude (x-axis) of the test point.
        lat:  Latitude  (y-axis) of the test point.
        ring: Closed sequence of Coordinates.

    Returns:
        True if the point is inside the ring, False otherwise.
    """
    inside = False
    n = len(ring)

    # Iterate over each edge (ring[j], ring[i])
    j = n - 1
    for i in range(n):
        yi, xi = ring[i]
        yj, xj = ring[j]

        if ((yi > lat) != (yj > lat)) and (lng < (xj - xi) * (lat - yi) / (yj - yi) + xi):
            inside = not inside

        j = i

    return inside


def contains(point: Optional[Coordinate], rings: Optional[Sequence[Ring]]) -> bool:
    """
    Test whether a point falls inside any of the supplied outer rings.

    Rings are treated as independent outer boundaries: a point inside two
    overlapping rings is still inside, there is no even-odd hole subtraction.

    Args:
        point: The coordinate to test.
        rings: Outer rings of one feature.

    Returns:
        True if any ring contains the point; False for missing geometry.
    """
    if point is None or not rings:
        return False
    return any(_is_point_in_ring(point.lng, point.lat, ring) for ring in rings if ring)
