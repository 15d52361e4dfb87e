"""
loader.py — Conversion between Overpass payloads, domain objects and GeoJSON.

Responsible for:
    - Parsing Overpass ``out geom`` JSON into Relation objects.
    - Assembling a relation's outer ways into a PolygonFeature.
    - Rendering PolygonFeatures as a GeoJSON FeatureCollection for the map.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

from county_labels.errors import GeometryAssemblyFailure
from county_labels.geo import Coordinate
from county_labels.models import PolygonFeature, Relation, RelationMember
from county_labels.rings import assemble_rings

logger = logging.getLogger(__name__)

# ── Styles ────────────────────────────────────────────────────────────────────
MAIN_COLOR  = "#8A2BE2"
OTHER_COLOR = "#666666"


def county_style(is_main: bool) -> dict:
    """Outline-only path style for a county; the main county is drawn heavier."""
    return {
        "color": MAIN_COLOR if is_main else OTHER_COLOR,
        "weight": 3 if is_main else 2,
        "opacity": 0.9 if is_main else 0.7,
        "fillOpacity": 0,
        "fill": False,
    }


# ── Overpass payload → Relation ───────────────────────────────────────────────

def _parse_geometry(raw: Any) -> tuple[Coordinate, ...]:
    coords = []
    for point in raw or ():
        try:
            coords.append(Coordinate(float(point["lat"]), float(point["lon"])))
        except (KeyError, TypeError, ValueError):
            # Overpass emits null entries for nodes outside the query bbox
            continue
    return tuple(coords)


def parse_relations(payload: dict, admin_level: Optional[str] = None) -> list[Relation]:
    """
    Extract administrative relations from an Overpass JSON response.

    Args:
        payload:     Decoded Overpass response (``{"elements": [...]}``).
        admin_level: When given, keep only relations tagged with this level.

    Returns:
        Relations in source order. Elements that are not relations, have
        no tags, or have no integer id are skipped.
    """
    relations: list[Relation] = []
    for element in payload.get("elements") or ():
        if element.get("type") != "relation" or not element.get("tags"):
            continue
        tags = element["tags"]
        if admin_level is not None and tags.get("admin_level") != admin_level:
            continue
        try:
            relation_id = int(element["id"])
        except (KeyError, TypeError, ValueError):
            logger.warning("Skipping relation without a usable id: %r", tags.get("name"))
            continue

        members = tuple(
            RelationMember(
                type=member.get("type", ""),
                role=member.get("role", ""),
                geometry=_parse_geometry(member.get("geometry")),
            )
            for member in element.get("members") or ()
        )
        relations.append(Relation(id=relation_id, tags=dict(tags), members=members))

    logger.debug("Parsed %d relations", len(relations))
    return relations


# ── Relation → PolygonFeature ─────────────────────────────────────────────────

def build_feature(relation: Relation) -> PolygonFeature:
    """
    Assemble a relation's outer ways into a PolygonFeature.

    Raises:
        GeometryAssemblyFailure: If no outer ring with at least four points
            could be assembled.
    """
    rings = assemble_rings(relation.outer_segments())
    centroid = relation.centroid()
    if not rings or centroid is None:
        raise GeometryAssemblyFailure(relation.id)

    return PolygonFeature(
        id=relation.id,
        name=relation.name,
        rings=tuple(tuple(ring) for ring in rings),
        centroid=centroid,
        tags=relation.tags,
    )


def build_features(relations: Iterable[Relation]) -> list[PolygonFeature]:
    """Build a feature per relation, dropping those whose geometry fails."""
    features = []
    for relation in relations:
        try:
            features.append(build_feature(relation))
        except GeometryAssemblyFailure as exc:
            logger.warning("Dropping county %r: %s", relation.name, exc)
    return features


# ── PolygonFeature → GeoJSON ──────────────────────────────────────────────────

def feature_to_geojson(feature: PolygonFeature) -> dict:
    """GeoJSON Feature with ``[lng, lat]`` ring coordinates and display properties."""
    return {
        "type": "Feature",
        "properties": {
            "id": feature.id,
            "name": feature.name,
            "tags": dict(feature.tags),
            "is_main": feature.is_main,
            "style": county_style(feature.is_main),
        },
        "geometry": {
            "type": "Polygon",
            "coordinates": [[[lng, lat] for lat, lng in ring] for ring in feature.rings],
        },
    }


def features_to_geojson(features: Iterable[PolygonFeature]) -> dict:
    return {"type": "FeatureCollection", "features": [feature_to_geojson(f) for f in features]}
