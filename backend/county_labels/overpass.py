"""
overpass.py — Async client for the Overpass API (OpenStreetMap queries).

Fetches county relations with full member geometry around a point, and the
tags of the state relations covering it. All transport and HTTP failures
surface as SourceUnavailable so the caller can report a categorised status.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from county_labels.cache import SimpleCache
from county_labels.errors import SourceUnavailable
from county_labels.geo import Coordinate
from county_labels.settings import settings

logger = logging.getLogger(__name__)


def _bbox(point: Coordinate, radius_deg: float) -> str:
    """Overpass bbox filter order: south, west, north, east."""
    return (
        f"{point.lat - radius_deg},{point.lng - radius_deg},"
        f"{point.lat + radius_deg},{point.lng + radius_deg}"
    )


def county_query(point: Coordinate, radius_deg: float, admin_level: str) -> str:
    return (
        f"[out:json][timeout:{int(settings.overpass_timeout)}];"
        f'(rel["admin_level"="{admin_level}"]["boundary"="administrative"]({_bbox(point, radius_deg)}););'
        "out geom;"
    )


def state_query(point: Coordinate, radius_deg: float, admin_level: str) -> str:
    bbox = _bbox(point, radius_deg)
    return (
        f"[out:json][timeout:{int(settings.overpass_timeout)}];"
        "("
        f'rel["admin_level"="{admin_level}"]["boundary"="administrative"]({bbox});'
        f'rel["admin_level"="{admin_level}"]["place"="state"]({bbox});'
        ");"
        "out tags;"
    )


class OverpassClient:
    """
    Thin wrapper over ``httpx.AsyncClient`` that posts Overpass QL queries.

    Args:
        url:       Interpreter endpoint.
        timeout:   Request timeout in seconds.
        cache:     Response cache; pass ``SimpleCache(ttl=0)`` to disable.
        transport: Optional httpx transport (tests use ``httpx.MockTransport``).
    """

    def __init__(
        self,
        url: str = settings.overpass_url,
        timeout: float = settings.overpass_timeout,
        cache: Optional[SimpleCache] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self.cache = cache if cache is not None else SimpleCache(ttl=settings.cache_ttl)
        self._transport = transport

    async def run_query(self, query: str) -> dict:
        """
        POST one query and return the decoded JSON body.

        Raises:
            SourceUnavailable: On timeouts, transport errors, non-2xx
                responses or a body that is not JSON.
        """
        cached = self.cache.get(query)
        if cached is not None:
            logger.debug("Overpass cache hit")
            return cached

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                r = await client.post(self.url, data={"data": query})
                r.raise_for_status()
                payload = r.json()
        except httpx.TimeoutException as exc:
            logger.warning("Overpass timeout: %s", exc)
            raise SourceUnavailable("timeout", f"timeout: {exc}") from exc
        except httpx.HTTPStatusError as exc:
            response = exc.response
            logger.warning("Overpass returned HTTP %d", response.status_code)
            raise SourceUnavailable.from_status(response.status_code, response.reason_phrase) from exc
        except httpx.TransportError as exc:
            logger.warning("Overpass unreachable: %s", exc)
            raise SourceUnavailable("network", f"network error: {exc}") from exc
        except ValueError as exc:
            logger.warning("Overpass returned invalid JSON: %s", exc)
            raise SourceUnavailable("unknown", f"invalid response: {exc}") from exc

        self.cache.set(query, payload)
        return payload

    async def fetch_counties(
        self,
        point: Coordinate,
        radius_deg: float = settings.search_radius_deg,
        admin_level: str = settings.admin_level,
    ) -> dict:
        """County relations with member geometry in a box around ``point``."""
        return await self.run_query(county_query(point, radius_deg, admin_level))

    async def fetch_state(
        self,
        point: Coordinate,
        radius_deg: float = settings.state_radius_deg,
        admin_level: str = settings.state_admin_level,
    ) -> dict:
        """Tags of the state-level relations near ``point``."""
        return await self.run_query(state_query(point, radius_deg, admin_level))
