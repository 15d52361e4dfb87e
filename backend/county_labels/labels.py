"""
labels.py — Choose where to draw a county's name for the current viewport.

A label position must be inside the viewport, inside the county, clear of
the user's location marker and well away from the county border. The
placer first tries the county centroid, then spirals outwards from the
viewport center; if nothing is clear enough it repeats the spiral with half
the border clearance. No position is forced: when every pass fails the
county simply goes unlabelled for this viewport.
"""

from __future__ import annotations

import logging
import math
from typing import Optional

from county_labels.boundary import min_distance_to_boundary
from county_labels.geo import BoundingBox, Coordinate, Viewport, distance
from county_labels.models import PolygonFeature
from county_labels.raycast import contains
from county_labels.settings import settings
from county_labels.visibility import visible_area_ratio

logger = logging.getLogger(__name__)


class LabelPlacer:
    """
    Label-point search with tunable thresholds.

    Defaults come from ``settings``; pass keyword arguments to override
    them (tests do this to keep searches small).
    """

    def __init__(
        self,
        *,
        min_reference_distance: float = settings.min_reference_distance_m,
        reference_margin: float = settings.reference_margin,
        clearance_fraction: float = settings.clearance_fraction,
        relaxed_clearance_factor: float = settings.relaxed_clearance_factor,
        min_visible_ratio: float = settings.min_visible_ratio,
        angle_step: int = settings.angle_step_deg,
        radial_divisions: int = settings.radial_divisions,
        grid_steps: int = settings.grid_steps,
    ) -> None:
        self.min_reference_distance = min_reference_distance
        self.reference_margin = reference_margin
        self.clearance_fraction = clearance_fraction
        self.relaxed_clearance_factor = relaxed_clearance_factor
        self.min_visible_ratio = min_visible_ratio
        self.angle_step = angle_step
        self.radial_divisions = radial_divisions
        self.grid_steps = grid_steps

    # ── Public API ───────────────────────────────────────────────────────────

    def place(
        self,
        feature: PolygonFeature,
        viewport: Viewport,
        reference: Optional[Coordinate] = None,
    ) -> Optional[Coordinate]:
        """
        Find a label position for one county.

        Args:
            feature:   County polygon to label.
            viewport:  Current visible bounds and center.
            reference: Optional location marker the label must stay clear of.

        Returns:
            The chosen coordinate, or None when the county is mostly off
            screen or no candidate satisfies the constraints.
        """
        if visible_area_ratio(feature, viewport, self.grid_steps) <= self.min_visible_ratio:
            return None

        visible = feature.bbox.intersection(viewport)
        if visible is None:
            return None

        clearance = self.clearance_threshold(visible)

        if self._acceptable(feature.centroid, feature, viewport, reference,
                            self.min_reference_distance, clearance):
            return feature.centroid

        spiral_reference_distance = self.min_reference_distance * self.reference_margin
        for threshold in (clearance, clearance * self.relaxed_clearance_factor):
            found = self._spiral_search(feature, viewport, visible, reference,
                                        spiral_reference_distance, threshold)
            if found is not None:
                return found

        logger.debug("No label position for %s (%d) in %s", feature.name, feature.id, viewport)
        return None

    def clearance_threshold(self, visible: BoundingBox) -> float:
        """Required border clearance in metres for the visible part of a county."""
        height_m = distance(visible.south_west, visible.north_west)
        width_m = distance(visible.south_west, visible.south_east)
        return min(height_m, width_m) * self.clearance_fraction

    # ── Helpers ──────────────────────────────────────────────────────────────

    def _acceptable(
        self,
        candidate: Coordinate,
        feature: PolygonFeature,
        viewport: Viewport,
        reference: Optional[Coordinate],
        reference_distance: float,
        clearance: float,
    ) -> bool:
        # Cheapest checks first; boundary distance walks every edge.
        if not viewport.contains(candidate):
            return False
        if not contains(candidate, feature.rings):
            return False
        if reference is not None and distance(candidate, reference) < reference_distance:
            return False
        return min_distance_to_boundary(candidate, feature.rings) >= clearance

    def _spiral_search(
        self,
        feature: PolygonFeature,
        viewport: Viewport,
        visible: BoundingBox,
        reference: Optional[Coordinate],
        reference_distance: float,
        clearance: float,
    ) -> Optional[Coordinate]:
        """
        Walk concentric circles around the viewport center and return the
        accepted point nearest the center on the first circle that has one.
        """
        center = viewport.center
        extent = max(visible.height, visible.width)
        step = extent / self.radial_divisions
        circles = math.floor((extent / 2) / step + 1e-9)

        for k in range(circles + 1):
            radius = k * step
            best: Optional[Coordinate] = None
            best_distance = math.inf

            angles = range(0, 360, self.angle_step) if k else (0,)
            for angle in angles:
                rad = math.radians(angle)
                candidate = Coordinate(center.lat + radius * math.cos(rad),
                                       center.lng + radius * math.sin(rad))
                if not self._acceptable(candidate, feature, viewport, reference,
                                        reference_distance, clearance):
                    continue
                d = distance(candidate, center)
                if d < best_distance:
                    best, best_distance = candidate, d

            if best is not None:
                return best

        return None
