"""
main.py — FastAPI application entry point for County Labels.

Exposes:
    GET  /                                  — health check (root)
    GET  /health                            — selection state and county count
    POST /api/v1/counties/load              — activate the layer around a point
    POST /api/v1/counties/deactivate        — switch the layer off
    GET  /api/v1/counties                   — loaded counties as GeoJSON
    POST /api/v1/counties/{county_id}/activate  — make a county the main one
    POST /api/v1/viewport                   — report a pan/zoom, get labels back
    GET  /api/v1/labels                     — labels for the last viewport
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from county_labels.errors import (
    CountyLabelError,
    LoadInProgress,
    NoDataFound,
    SourceUnavailable,
    UnknownFeature,
)
from county_labels.geo import Coordinate, Viewport
from county_labels.loader import features_to_geojson
from county_labels.overpass import OverpassClient
from county_labels.services import CountySelectionEngine
from county_labels.settings import settings

# ── Logging ──────────────────────────────────────────────────────────────────
logging.basicConfig(level=settings.log_level, format="%(levelname)s: %(message)s")
logger = logging.getLogger(__name__)

# ── Application-level engine (one map session per process) ────────────────────
engine: CountySelectionEngine | None = None


def create_engine() -> CountySelectionEngine:
    return CountySelectionEngine(OverpassClient())


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the selection engine before accepting requests."""
    global engine
    engine = create_engine()
    logger.info("County selection engine ready (Overpass: %s)", settings.overpass_url)
    yield
    logger.info("Shutting down — discarding county selection.")


# ── FastAPI app ───────────────────────────────────────────────────────────────
app = FastAPI(
    title="County Labels API",
    description=(
        "Finds the county nearest the map center plus its neighbours and "
        "keeps their name labels inside the visible part of each county."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

_ERROR_STATUS: dict[type, int] = {
    NoDataFound: 404,
    UnknownFeature: 404,
    LoadInProgress: 409,
    SourceUnavailable: 502,
}


# ── Helpers ───────────────────────────────────────────────────────────────────

def _require_engine() -> CountySelectionEngine:
    if engine is None:
        raise HTTPException(status_code=503, detail="Selection engine not initialised.")
    return engine


def _http_error(exc: CountyLabelError) -> HTTPException:
    status = next((code for cls, code in _ERROR_STATUS.items() if isinstance(exc, cls)), 500)
    return HTTPException(status_code=status, detail=exc.status_message)


def _viewport(
    south: Optional[float],
    north: Optional[float],
    west: Optional[float],
    east: Optional[float],
    center_lat: Optional[float] = None,
    center_lon: Optional[float] = None,
) -> Optional[Viewport]:
    bounds = (south, north, west, east)
    if all(v is None for v in bounds):
        return None
    if any(v is None for v in bounds):
        raise HTTPException(status_code=422, detail="Viewport needs south, north, west and east.")
    center = _point(center_lat, center_lon)
    try:
        return Viewport(south=south, north=north, west=west, east=east, center=center)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


def _point(lat: Optional[float], lon: Optional[float]) -> Optional[Coordinate]:
    if lat is None or lon is None:
        return None
    return Coordinate(lat, lon)


def _labels_response(labels) -> dict:
    return {"labels": [label.to_dict() for label in labels]}


# ── Routes ────────────────────────────────────────────────────────────────────

@app.get("/", tags=["health"])
def root():
    """Root health-check endpoint."""
    return {"status": "ok", "message": "County Labels API is running."}


@app.get("/health", tags=["health"])
def health():
    """Detailed health check: selection state and number of loaded counties."""
    current = _require_engine()
    return {
        "status": "ok",
        "selection_state": current.state.value,
        "counties_loaded": len(current.session.features),
    }


@app.post("/api/v1/counties/load", tags=["counties"])
async def load_counties(
    lat: float = Query(..., ge=-90, le=90, description="Query latitude"),
    lon: float = Query(..., ge=-180, le=180, description="Query longitude"),
    south: Optional[float] = Query(None, ge=-90, le=90),
    north: Optional[float] = Query(None, ge=-90, le=90),
    west: Optional[float] = Query(None, ge=-180, le=180),
    east: Optional[float] = Query(None, ge=-180, le=180),
    ref_lat: Optional[float] = Query(None, ge=-90, le=90, description="Location marker latitude"),
    ref_lon: Optional[float] = Query(None, ge=-180, le=180, description="Location marker longitude"),
):
    """
    Activate the county layer around (lat, lon).

    Returns the loaded counties as GeoJSON together with the main county
    id, the containing state and, when a viewport was supplied, labels.

    Raises:
        HTTPException 404: No usable county near the point.
        HTTPException 409: A load is already in flight.
        HTTPException 502: Overpass failed (bad request, rate limit, timeout, network).
    """
    current = _require_engine()
    viewport = _viewport(south, north, west, east)

    try:
        result = await current.load_near(Coordinate(lat, lon), viewport, _point(ref_lat, ref_lon))
    except LoadInProgress as exc:
        raise _http_error(exc) from exc

    if result.error is not None:
        raise _http_error(result.error)

    return {
        "main_id": result.main_id,
        "state": result.state_info.to_dict() if result.state_info else None,
        "status": result.status,
        "counties": features_to_geojson(result.features),
        **_labels_response(current.session.labels),
    }


@app.post("/api/v1/counties/deactivate", tags=["counties"])
def deactivate_counties():
    """Switch the county layer off."""
    current = _require_engine()
    current.deactivate()
    return {"status": current.session.status}


@app.get("/api/v1/counties", tags=["counties"])
def list_counties():
    """Return the loaded counties as a GeoJSON FeatureCollection."""
    current = _require_engine()
    session = current.session
    return {
        "selection_state": session.state.value,
        "main_id": session.main_id,
        "state": session.state_info.to_dict() if session.state_info else None,
        "status": session.status,
        "counties": features_to_geojson(session.features),
    }


@app.post("/api/v1/counties/{county_id}/activate", tags=["counties"])
def activate_county(county_id: int):
    """
    Make a loaded county the main one and return the recomputed labels.

    Raises:
        HTTPException 404: If the county is not loaded.
    """
    current = _require_engine()
    try:
        labels = current.on_feature_activated(county_id)
    except UnknownFeature as exc:
        raise _http_error(exc) from exc
    return {"main_id": current.session.main_id, **_labels_response(labels)}


@app.post("/api/v1/viewport", tags=["labels"])
def update_viewport(
    south: float = Query(..., ge=-90, le=90),
    north: float = Query(..., ge=-90, le=90),
    west: float = Query(..., ge=-180, le=180),
    east: float = Query(..., ge=-180, le=180),
    center_lat: Optional[float] = Query(None, ge=-90, le=90),
    center_lon: Optional[float] = Query(None, ge=-180, le=180),
    ref_lat: Optional[float] = Query(None, ge=-90, le=90),
    ref_lon: Optional[float] = Query(None, ge=-180, le=180),
):
    """Record the current viewport and return freshly placed labels."""
    current = _require_engine()
    viewport = _viewport(south, north, west, east, center_lat, center_lon)
    labels = current.on_viewport_changed(viewport, _point(ref_lat, ref_lon))
    return _labels_response(labels)


@app.get("/api/v1/labels", tags=["labels"])
def get_labels():
    """Labels computed for the most recent viewport."""
    current = _require_engine()
    return _labels_response(current.session.labels)
