"""
geo.py — Coordinate, bounding-box and distance primitives.

Every other module works on these types only. Coordinates are (lat, lng)
pairs in WGS84 degrees; distances are metres on a spherical Earth with the
same radius the map widget uses, so server-side and client-side distances
agree.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterable, NamedTuple, Optional, Sequence

# ── Constants ────────────────────────────────────────────────────────────────
EARTH_RADIUS_M = 6_371_000.0
COORD_EPSILON = 1e-7


class Coordinate(NamedTuple):
    """A (latitude, longitude) pair in degrees."""

    lat: float
    lng: float


Ring = Sequence[Coordinate]


def coordinates_equal(a: Optional[Coordinate], b: Optional[Coordinate]) -> bool:
    """True when both coordinates agree within COORD_EPSILON on each axis."""
    if a is None or b is None:
        return False
    return abs(a.lat - b.lat) < COORD_EPSILON and abs(a.lng - b.lng) < COORD_EPSILON


def distance(a: Coordinate, b: Coordinate) -> float:
    """
    Great-circle (haversine) distance between two coordinates.

    Args:
        a: First coordinate.
        b: Second coordinate.

    Returns:
        Distance in metres.
    """
    lat1 = math.radians(a.lat)
    lat2 = math.radians(b.lat)
    d_lat = lat2 - lat1
    d_lng = math.radians(b.lng - a.lng)

    h = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lng / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(h)))


def vertex_centroid(coords: Iterable[Coordinate]) -> Optional[Coordinate]:
    """Arithmetic mean of the given vertices, or None when there are none."""
    sum_lat = sum_lng = 0.0
    count = 0
    for coord in coords:
        sum_lat += coord.lat
        sum_lng += coord.lng
        count += 1
    if count == 0:
        return None
    return Coordinate(sum_lat / count, sum_lng / count)


# ── Bounding boxes ───────────────────────────────────────────────────────────

@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned box in degrees. Edges are inclusive."""

    south: float
    north: float
    west: float
    east: float

    @classmethod
    def around(cls, coords: Iterable[Coordinate]) -> Optional[BoundingBox]:
        """Smallest box containing every coordinate, or None for no input."""
        lats: list[float] = []
        lngs: list[float] = []
        for coord in coords:
            lats.append(coord.lat)
            lngs.append(coord.lng)
        if not lats:
            return None
        return cls(south=min(lats), north=max(lats), west=min(lngs), east=max(lngs))

    @property
    def height(self) -> float:
        return self.north - self.south

    @property
    def width(self) -> float:
        return self.east - self.west

    @property
    def area(self) -> float:
        """Area in square degrees; only meaningful as a ratio between boxes."""
        return max(0.0, self.height) * max(0.0, self.width)

    @property
    def middle(self) -> Coordinate:
        return Coordinate((self.south + self.north) / 2, (self.west + self.east) / 2)

    @property
    def south_west(self) -> Coordinate:
        return Coordinate(self.south, self.west)

    @property
    def north_west(self) -> Coordinate:
        return Coordinate(self.north, self.west)

    @property
    def south_east(self) -> Coordinate:
        return Coordinate(self.south, self.east)

    def contains(self, point: Coordinate) -> bool:
        return self.south <= point.lat <= self.north and self.west <= point.lng <= self.east

    def intersects(self, other: BoundingBox) -> bool:
        return (
            self.north >= other.south and self.south <= other.north
            and self.east >= other.west and self.west <= other.east
        )

    def intersection(self, other: BoundingBox) -> Optional[BoundingBox]:
        """
        Overlap of two boxes.

        Returns:
            The overlapping box, or None when the overlap has no area
            (boxes that only touch along an edge count as disjoint here).
        """
        south = max(self.south, other.south)
        north = min(self.north, other.north)
        west = max(self.west, other.west)
        east = min(self.east, other.east)
        if south >= north or west >= east:
            return None
        return BoundingBox(south=south, north=north, west=west, east=east)

    def sample_grid(self, steps: int) -> Iterable[Coordinate]:
        """
        Yield (steps + 1)² sample points, one at the centre of each cell of
        an even (steps + 1) x (steps + 1) subdivision of the box.

        Cell centres never sit on the box edges, where a polygon sharing
        that edge would be classified by the boundary convention alone.
        """
        cells = steps + 1
        for i in range(cells):
            lat = self.south + self.height * ((i + 0.5) / cells)
            for j in range(cells):
                yield Coordinate(lat, self.west + self.width * ((j + 0.5) / cells))


@dataclass(frozen=True)
class Viewport(BoundingBox):
    """
    The map widget's visible rectangle plus its center point.

    When no center is given the middle of the rectangle is used, which is
    what the widget reports for an unrotated map.
    """

    center: Optional[Coordinate] = field(default=None)

    def __post_init__(self) -> None:
        if self.south >= self.north or self.west >= self.east:
            raise ValueError(
                f"Viewport must have south < north and west < east, got "
                f"({self.south}, {self.north}, {self.west}, {self.east})"
            )
        if self.center is None:
            object.__setattr__(self, "center", self.middle)
