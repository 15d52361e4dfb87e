"""
visibility.py — Estimate how much of a county is inside the viewport.
"""

from __future__ import annotations

from county_labels.geo import BoundingBox
from county_labels.models import PolygonFeature
from county_labels.raycast import contains

DEFAULT_GRID_STEPS = 10


def visible_area_ratio(
    feature: PolygonFeature,
    viewport: BoundingBox,
    steps: int = DEFAULT_GRID_STEPS,
) -> float:
    """
    Estimate the fraction of the feature's area that lies in the viewport.

    A (steps + 1)² sample grid is laid over the feature's bounding box once.
    Samples inside the polygon estimate its whole area; those that are also
    inside the viewport estimate the visible part. Both counts come from the
    same fixed points, so shrinking the viewport can only drop samples from
    the visible count.

    Args:
        feature:  The county polygon.
        viewport: Current visible bounds.
        steps:    Grid subdivisions per axis.

    Returns:
        A ratio in [0, 1]. Zero when the viewport misses the feature's box
        or when no sample of the box falls inside the polygon.
    """
    if feature.bbox.intersection(viewport) is None:
        return 0.0

    total_inside = 0
    visible_inside = 0
    for point in feature.bbox.sample_grid(steps):
        if not contains(point, feature.rings):
            continue
        total_inside += 1
        if viewport.contains(point):
            visible_inside += 1

    if total_inside == 0:
        return 0.0
    return visible_inside / total_inside
