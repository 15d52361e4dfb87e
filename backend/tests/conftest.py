"""
conftest.py — Shared pytest fixtures for the County Labels test suite.

Provides:
    - Builders for Overpass-style relation elements so tests never touch
      the network.
    - A fake boundary source and a ready CountySelectionEngine.
    - Common rings, features and viewports.
"""

from __future__ import annotations

import pytest

from county_labels.errors import SourceUnavailable
from county_labels.geo import Coordinate, Viewport
from county_labels.labels import LabelPlacer
from county_labels.loader import build_feature, parse_relations
from county_labels.services import CountySelectionEngine

# Query point used throughout: the middle of Alpha County.
QUERY_POINT = Coordinate(40.05, -99.95)


# ── Overpass element builders ─────────────────────────────────────────────────

def _way(*coords):
    return {
        "type": "way",
        "role": "outer",
        "geometry": [{"lat": lat, "lon": lng} for lat, lng in coords],
    }


def _square_relation(relation_id, name, south, west, size=0.1, **extra_tags):
    """
    A square county whose outline is split into two ways. The second way
    runs in the opposite direction, as real OSM data often does.
    """
    north, east = south + size, west + size
    tags = {"admin_level": "6", "boundary": "administrative", "name": name, **extra_tags}
    return {
        "type": "relation",
        "id": relation_id,
        "tags": tags,
        "members": [
            _way((south, west), (south, east), (north, east)),
            _way((south, west), (north, west), (north, east)),
            {"type": "node", "role": "admin_centre", "lat": south, "lon": west},
        ],
    }


@pytest.fixture
def square_relation():
    """Factory fixture: build a square county relation element."""
    return _square_relation


@pytest.fixture
def outer_way():
    """Factory fixture: build an outer way member from (lat, lng) pairs."""
    return _way


@pytest.fixture
def county_payload() -> dict:
    """
    Overpass response with five counties in scrambled order, plus noise.

    Alpha (101) is centred on QUERY_POINT; Bravo (102) lies east, Charlie
    (103) north, Delta (104) north-east and Echo (105) far north.
    """
    return {
        "elements": [
            _square_relation(104, "Delta County", 40.1, -99.9),
            {"type": "node", "id": 1, "lat": 40.0, "lon": -100.0},
            _square_relation(103, "Charlie County", 40.1, -100.0),
            _square_relation(101, "Alpha County", 40.0, -100.0, **{"is_in:state": "Kansas"}),
            {"type": "relation", "id": 900, "tags": {"admin_level": "4", "name": "Kansas"}},
            _square_relation(105, "Echo County", 40.6, -100.0),
            _square_relation(102, "Bravo County", 40.0, -99.9),
        ]
    }


@pytest.fixture
def state_payload() -> dict:
    return {"elements": [{"type": "relation", "id": 161, "tags": {"admin_level": "4", "name": "Nebraska"}}]}


# ── Geometry fixtures ─────────────────────────────────────────────────────────

@pytest.fixture
def unit_square() -> list[Coordinate]:
    return [Coordinate(0, 0), Coordinate(0, 1), Coordinate(1, 1), Coordinate(1, 0), Coordinate(0, 0)]


@pytest.fixture
def alpha_feature(square_relation):
    """Alpha County as a PolygonFeature: 40.0–40.1 N, 100.0–99.9 W."""
    relation = parse_relations({"elements": [square_relation(101, "Alpha County", 40.0, -100.0)]})[0]
    return build_feature(relation)


@pytest.fixture
def l_shaped_feature(outer_way):
    """
    An L-shaped county filling the west and south edges of a 0.1° box,
    arms 0.04° wide. Nowhere inside is it 30% of the box's short side
    away from the border, but it is 15% away in places.
    """
    element = {
        "type": "relation",
        "id": 201,
        "tags": {"admin_level": "6", "name": "Ell County"},
        "members": [
            outer_way((40.0, -100.0), (40.0, -99.9), (40.04, -99.9), (40.04, -99.96)),
            outer_way((40.0, -100.0), (40.1, -100.0), (40.1, -99.96), (40.04, -99.96)),
        ],
    }
    return build_feature(parse_relations({"elements": [element]})[0])


@pytest.fixture
def wide_viewport() -> Viewport:
    """Viewport comfortably containing Alpha County, centred on it."""
    return Viewport(south=39.95, north=40.15, west=-100.05, east=-99.85)


# ── Engine fixtures ───────────────────────────────────────────────────────────

class FakeSource:
    """In-memory stand-in for OverpassClient that records its calls."""

    def __init__(self, counties=None, state=None, county_error=None, state_error=None):
        self.counties = counties if counties is not None else {"elements": []}
        self.state = state if state is not None else {"elements": []}
        self.county_error = county_error
        self.state_error = state_error
        self.county_calls: list[Coordinate] = []
        self.state_calls: list[Coordinate] = []

    async def fetch_counties(self, point):
        self.county_calls.append(point)
        if self.county_error is not None:
            raise self.county_error
        return self.counties

    async def fetch_state(self, point):
        self.state_calls.append(point)
        if self.state_error is not None:
            raise self.state_error
        return self.state


@pytest.fixture
def fake_source(county_payload, state_payload) -> FakeSource:
    return FakeSource(counties=county_payload, state=state_payload)


@pytest.fixture
def failing_source() -> FakeSource:
    return FakeSource(county_error=SourceUnavailable.from_status(429, "Too Many Requests"))


@pytest.fixture
def fast_placer() -> LabelPlacer:
    """A coarser placer so spiral searches stay quick in tests."""
    return LabelPlacer(angle_step=15, radial_divisions=40)


@pytest.fixture
def engine(fake_source, fast_placer) -> CountySelectionEngine:
    return CountySelectionEngine(fake_source, fast_placer)
