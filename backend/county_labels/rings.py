"""
rings.py — Join unordered boundary segments into closed polygon rings.

OpenStreetMap relations describe a county outline as a bag of "way"
members. The ways are neither ordered nor consistently directed, so they
have to be chained end to end before they can be used as a polygon ring.
"""

from __future__ import annotations

import logging
from typing import Sequence

from county_labels.geo import Coordinate, coordinates_equal

logger = logging.getLogger(__name__)

MIN_RING_POINTS = 4  # triangle + closing point


def _is_closed(ring: list[Coordinate]) -> bool:
    return len(ring) > 2 and coordinates_equal(ring[0], ring[-1])


def assemble_rings(segments: Sequence[Sequence[Coordinate]]) -> list[list[Coordinate]]:
    """
    Chain open segments into closed rings.

    A ring stops growing as soon as its tail returns to its head. A segment is attached to the ring's tail when either of its endpoints
    matches the tail; segments matched on their last point are appended in
    reverse. A ring that cannot be extended any further but already holds
    at least four points is closed by repeating its head, which tolerates
    small gaps in the source data. Anything shorter is discarded.

    Args:
        segments: Open polylines, each a sequence of at least two coordinates.

    Returns:
        Closed rings in the order they were assembled. Disconnected groups
        of segments produce separate rings; no hole detection is done.
    """
    pool = [list(segment) for segment in segments if len(segment) >= 2]
    rings: list[list[Coordinate]] = []

    while pool:
        ring = pool.pop(0)

        while pool and not _is_closed(ring):
            tail = ring[-1]
            for index, segment in enumerate(pool):
                if coordinates_equal(tail, segment[0]):
                    ring.extend(segment[1:])
                    break
                if coordinates_equal(tail, segment[-1]):
                    ring.extend(reversed(segment[:-1]))
                    break
            else:
                break
            del pool[index]

        if len(ring) < MIN_RING_POINTS:
            logger.debug("Discarding %d-point fragment starting at %s", len(ring), ring[0])
            continue
        if not _is_closed(ring):
            logger.debug("Force-closing ring of %d points (gap %s -> %s)", len(ring), ring[-1], ring[0])
            ring.append(ring[0])

        rings.append(ring)

    return rings
