"""
services.py — County selection state for one map session.

Responsibilities:
    - Fetching county relations near a point and picking the nearest few
      by centroid distance (the nearest becomes the "main" county).
    - Resolving the state that contains the main county.
    - Tracking the selection through its lifecycle (empty, loading,
      populated, switching, cleared).
    - Recomputing every label whenever the viewport or the main county
      changes.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field, replace
from typing import Optional, Protocol, Sequence

from county_labels.errors import (
    CountyLabelError,
    LoadInProgress,
    NoDataFound,
    SourceUnavailable,
    UnknownFeature,
)
from county_labels.geo import Coordinate, Viewport, distance
from county_labels.labels import LabelPlacer
from county_labels.loader import build_features, parse_relations
from county_labels.models import LabelPlacement, PolygonFeature, Relation, StateInfo
from county_labels.settings import settings

logger = logging.getLogger(__name__)


class BoundarySource(Protocol):
    """What the engine needs from the data source (see overpass.OverpassClient)."""

    async def fetch_counties(self, point: Coordinate) -> dict: ...

    async def fetch_state(self, point: Coordinate) -> dict: ...


class SelectionState(str, enum.Enum):
    EMPTY = "empty"
    LOADING = "loading"
    POPULATED = "populated"
    SWITCHING = "switching"
    CLEARED = "cleared"


@dataclass(frozen=True)
class SelectionSession:
    """
    Everything the boundary layer shows at one moment.

    Replaced as a whole on every load cycle, so a failed load never leaves
    a half-updated feature set behind.
    """

    state: SelectionState = SelectionState.EMPTY
    features: tuple[PolygonFeature, ...] = ()
    main_id: Optional[int] = None
    state_info: Optional[StateInfo] = None
    labels: tuple[LabelPlacement, ...] = ()
    viewport: Optional[Viewport] = None
    reference: Optional[Coordinate] = None
    status: str = ""

    def feature(self, feature_id: int) -> Optional[PolygonFeature]:
        return next((f for f in self.features if f.id == feature_id), None)


@dataclass
class LoadResult:
    """Outcome of ``load_near``: the feature set, or the reason there is none."""

    features: list[PolygonFeature] = field(default_factory=list)
    main_id: Optional[int] = None
    state_info: Optional[StateInfo] = None
    status: str = ""
    error: Optional[CountyLabelError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


# ── Selection helpers ─────────────────────────────────────────────────────────

def select_nearest(
    relations: Sequence[Relation],
    point: Coordinate,
    limit: int = settings.max_features,
) -> list[Relation]:
    """
    Return the ``limit`` relations whose vertex-mean centroid is nearest ``point``.

    Relations without any way geometry are ignored. The sort is stable, so
    relations at exactly the same distance keep their source order.
    """
    ranked = []
    for relation in relations:
        centroid = relation.centroid()
        if centroid is None:
            continue
        ranked.append((distance(point, centroid), relation))
    ranked.sort(key=lambda pair: pair[0])

    logger.debug("Nearest counties: %s",
                 [(r.name, round(d / 1000, 2)) for d, r in ranked[:limit]])
    return [relation for _, relation in ranked[:limit]]


def resolve_state(payload: Optional[dict], main: Relation, admin_level: str) -> Optional[StateInfo]:
    """
    Find the state containing the main county.

    Prefers a state relation from ``payload``; falls back to the county's
    own ``is_in:state`` / ``addr:state`` / ``state`` tags.
    """
    for relation in parse_relations(payload or {}, admin_level=admin_level):
        return StateInfo(name=relation.tags.get("name") or relation.tags.get("name:en") or "Unknown",
                         id=relation.id)

    tags = main.tags
    alt_name = tags.get("is_in:state") or tags.get("addr:state") or tags.get("state")
    if alt_name:
        return StateInfo(name=alt_name)
    return None


# ── Engine ────────────────────────────────────────────────────────────────────

class CountySelectionEngine:
    """
    Owns the county selection for one map session.

    The map client calls ``load_near`` when the boundary layer is switched
    on, ``on_viewport_changed`` after every pan or zoom,
    ``on_feature_activated`` when a county or its label is clicked, and
    ``deactivate`` when the layer is switched off.
    """

    def __init__(
        self,
        source: BoundarySource,
        placer: Optional[LabelPlacer] = None,
        *,
        admin_level: str = settings.admin_level,
        state_admin_level: str = settings.state_admin_level,
        max_features: int = settings.max_features,
    ) -> None:
        self.source = source
        self.placer = placer or LabelPlacer()
        self.admin_level = admin_level
        self.state_admin_level = state_admin_level
        self.max_features = max_features
        self.session = SelectionSession()
        # bumped by deactivate; a fetch started under an older value is discarded
        self._generation = 0
        self._fetching = False

    @property
    def state(self) -> SelectionState:
        return self.session.state

    # ── Loading ──────────────────────────────────────────────────────────────

    async def load_near(
        self,
        point: Coordinate,
        viewport: Optional[Viewport] = None,
        reference: Optional[Coordinate] = None,
    ) -> LoadResult:
        """
        Activate the boundary layer around ``point``.

        Fetches counties, selects the nearest ``max_features`` of them and
        makes the closest one main. When the layer is already populated the
        current selection is returned without fetching again, with labels
        recomputed for ``viewport`` if one is given. A fetch that finishes
        after ``deactivate`` is thrown away.

        Args:
            point:     Query point (normally the viewport center).
            viewport:  Current viewport; when given labels are computed
                       straight away.
            reference: Location marker the labels must avoid.

        Returns:
            LoadResult with the features, or with ``error`` set.

        Raises:
            LoadInProgress: If a fetch is still running, including one whose
                activation has since been switched off.
        """
        if self._fetching:
            raise LoadInProgress()
        if self.session.state in (SelectionState.POPULATED, SelectionState.SWITCHING):
            if viewport is not None:
                self.on_viewport_changed(viewport, reference)
            return self._result()

        generation = self._generation
        self._fetching = True

        self.session = SelectionSession(
            state=SelectionState.LOADING,
            viewport=viewport or self.session.viewport,
            reference=reference or self.session.reference,
            status="Finding county at map center...",
        )
        try:
            features, main_id, state_info = await self._fetch_selection(point)
        except (NoDataFound, SourceUnavailable) as exc:
            if generation != self._generation:
                return self._discarded(point)
            logger.warning("Loading counties near (%.5f, %.5f) failed: %s", point.lat, point.lng, exc)
            self.session = replace(self.session, state=SelectionState.EMPTY,
                                   status=exc.status_message)
            return LoadResult(status=exc.status_message, error=exc)
        except BaseException:
            if generation == self._generation:
                self.session = replace(self.session, state=SelectionState.EMPTY, status="")
            raise
        finally:
            self._fetching = False

        if generation != self._generation:
            return self._discarded(point)

        status = f"{len(features)} counties loaded"
        self.session = replace(
            self.session,
            state=SelectionState.POPULATED,
            features=tuple(features),
            main_id=main_id,
            state_info=state_info,
            status=status,
        )
        logger.info("Loaded %d counties near (%.4f, %.4f), main: %s",
                    len(features), point.lat, point.lng, self.session.feature(main_id).name)
        self.recompute_labels()
        return self._result()

    async def _fetch_selection(
        self, point: Coordinate
    ) -> tuple[list[PolygonFeature], int, Optional[StateInfo]]:
        payload = await self.source.fetch_counties(point)
        relations = parse_relations(payload, admin_level=self.admin_level)
        selected = select_nearest(relations, point, self.max_features)
        if not selected:
            raise NoDataFound()

        features = build_features(selected)
        if not features:
            raise NoDataFound("Could not build county geometry")

        # build_features keeps distance order, so the first survivor is nearest
        main_id = features[0].id
        for feature in features:
            feature.is_main = feature.id == main_id

        main_relation = next(r for r in selected if r.id == main_id)
        try:
            state_payload = await self.source.fetch_state(point)
        except SourceUnavailable as exc:
            logger.warning("State lookup failed, using county tags: %s", exc)
            state_payload = None
        state_info = resolve_state(state_payload, main_relation, self.state_admin_level)

        return features, main_id, state_info

    def deactivate(self) -> None:
        """Switch the boundary layer off, discarding features, labels and selection."""
        self._generation += 1
        self.session = SelectionSession(
            state=SelectionState.CLEARED,
            viewport=self.session.viewport,
            reference=self.session.reference,
            status="Counties hidden",
        )
        logger.info("Counties hidden")

    # ── Events ───────────────────────────────────────────────────────────────

    def on_viewport_changed(
        self,
        viewport: Viewport,
        reference: Optional[Coordinate] = None,
    ) -> list[LabelPlacement]:
        """Record a new viewport snapshot and recompute every label."""
        self.session = replace(self.session, viewport=viewport,
                               reference=reference or self.session.reference)
        return self.recompute_labels()

    def on_feature_activated(self, feature_id: int) -> list[LabelPlacement]:
        """
        Make ``feature_id`` the main county.

        Raises:
            UnknownFeature: If no loaded county has that id.
        """
        target = self.session.feature(feature_id)
        if target is None:
            raise UnknownFeature(feature_id)
        if feature_id == self.session.main_id:
            return list(self.session.labels)

        logger.info("Switching main county from %s to %s", self.session.main_id, feature_id)
        self.session = replace(self.session, state=SelectionState.SWITCHING)
        for feature in self.session.features:
            feature.is_main = feature.id == feature_id
        self.session = replace(self.session, main_id=feature_id,
                               state=SelectionState.POPULATED,
                               status=f"{len(self.session.features)} counties loaded")
        return self.recompute_labels()

    def recompute_labels(self) -> list[LabelPlacement]:
        """Place a label for every county in view; counties without a spot get none."""
        viewport = self.session.viewport
        if viewport is None or not self.session.features:
            self.session = replace(self.session, labels=())
            return []

        labels = []
        for feature in self.session.features:
            if not viewport.intersects(feature.bbox):
                continue
            position = self.placer.place(feature, viewport, self.session.reference)
            if position is None:
                continue
            labels.append(LabelPlacement(feature.id, feature.name, position, feature.is_main))

        self.session = replace(self.session, labels=tuple(labels))
        return labels

    # ── Helpers ──────────────────────────────────────────────────────────────

    def _discarded(self, point: Coordinate) -> LoadResult:
        logger.info("Discarding counties fetched near (%.4f, %.4f): layer was switched off",
                    point.lat, point.lng)
        return LoadResult(status=self.session.status)

    def _result(self) -> LoadResult:
        return LoadResult(
            features=list(self.session.features),
            main_id=self.session.main_id,
            state_info=self.session.state_info,
            status=self.session.status,
        )
