"""
models.py — Domain objects shared across the county-label pipeline.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from county_labels.geo import BoundingBox, Coordinate, Ring, vertex_centroid


@dataclass(frozen=True)
class RelationMember:
    """One member of an administrative relation as returned by Overpass."""

    type: str
    role: str
    geometry: tuple[Coordinate, ...] = ()

    @property
    def is_outer_way(self) -> bool:
        return self.type == "way" and self.role == "outer" and len(self.geometry) >= 2


@dataclass(frozen=True)
class Relation:
    """
    Raw boundary of a named administrative area.

    Attributes:
        id:      OSM relation id.
        tags:    OSM tag map (``name``, ``admin_level``, ...).
        members: Member ways, in source order.
    """

    id: int
    tags: Mapping[str, str] = field(default_factory=dict)
    members: tuple[RelationMember, ...] = ()

    @property
    def name(self) -> str:
        return self.tags.get("name") or self.tags.get("name:en") or "Unknown County"

    def centroid(self) -> Optional[Coordinate]:
        """Mean of every way-member vertex regardless of role."""
        return vertex_centroid(
            coord
            for member in self.members
            if member.type == "way"
            for coord in member.geometry
        )

    def outer_segments(self) -> list[tuple[Coordinate, ...]]:
        return [member.geometry for member in self.members if member.is_outer_way]


@dataclass
class PolygonFeature:
    """
    A county polygon ready for labelling.

    Geometry is fixed at construction; only ``is_main`` changes, when the
    user picks a different county.
    """

    id: int
    name: str
    rings: tuple[Ring, ...]
    centroid: Coordinate
    tags: Mapping[str, str] = field(default_factory=dict)
    is_main: bool = False
    bbox: BoundingBox = field(init=False)

    def __post_init__(self) -> None:
        bbox = BoundingBox.around(coord for ring in self.rings for coord in ring)
        if bbox is None:
            raise ValueError(f"Feature {self.id} has no geometry")
        self.bbox = bbox


@dataclass(frozen=True)
class LabelPlacement:
    """Where to draw one county's name for the current viewport."""

    feature_id: int
    name: str
    position: Coordinate
    is_main: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "feature_id": self.feature_id,
            "name": self.name,
            "lat": self.position.lat,
            "lng": self.position.lng,
            "is_main": self.is_main,
        }


@dataclass(frozen=True)
class StateInfo:
    """The state (admin level 4) containing the main county."""

    name: str
    id: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "id": self.id}
