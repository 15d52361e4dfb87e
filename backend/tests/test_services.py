"""
test_services.py — Tests for county selection and the session lifecycle.

Coverage:
    - Nearest-N selection and its tie-break
    - State resolution (state relation, tag fallback)
    - load_near happy path, failures, already-loaded and in-flight guards
    - Main-county switching and label recomputation
    - Deactivation and reactivation
"""

from __future__ import annotations

import asyncio
from unittest.mock import patch

import pytest

from county_labels.errors import LoadInProgress, NoDataFound, SourceUnavailable, UnknownFeature
from county_labels.geo import Coordinate, Viewport, distance
from county_labels.models import Relation, RelationMember
from county_labels.raycast import contains
from county_labels.services import (
    CountySelectionEngine,
    SelectionState,
    resolve_state,
    select_nearest,
)

from conftest import QUERY_POINT, FakeSource

KM_PER_DEG_LAT = 111.19492664455873


class SlowSource(FakeSource):
    """FakeSource whose county fetch waits until ``release`` is set."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.release = asyncio.Event()

    async def fetch_counties(self, point):
        await self.release.wait()
        return await super().fetch_counties(point)


def _point_relation(relation_id: int, centre: Coordinate) -> Relation:
    half = 0.001
    ring = (
        Coordinate(centre.lat - half, centre.lng - half),
        Coordinate(centre.lat - half, centre.lng + half),
        Coordinate(centre.lat + half, centre.lng + half),
        Coordinate(centre.lat + half, centre.lng - half),
    )
    return Relation(
        id=relation_id,
        tags={"name": f"County {relation_id}", "admin_level": "6"},
        members=(RelationMember("way", "outer", ring),),
    )


# ════════════════════════════════════════════════════════════════
#  select_nearest
# ════════════════════════════════════════════════════════════════

class TestSelectNearest:

    def test_three_closest_in_ascending_order(self):
        origin = Coordinate(40.0, -100.0)
        # centroids 1..5 km due north, supplied out of order
        relations = [
            _point_relation(km, Coordinate(origin.lat + km / KM_PER_DEG_LAT, origin.lng))
            for km in (3, 1, 5, 2, 4)
        ]
        selected = select_nearest(relations, origin, limit=3)
        assert [r.id for r in selected] == [1, 2, 3]
        distances = [distance(origin, r.centroid()) for r in selected]
        assert distances == sorted(distances)
        assert distances[0] == pytest.approx(1000, rel=1e-3)

    def test_equal_distances_keep_source_order(self):
        origin = Coordinate(40.0, -100.0)
        same = Coordinate(40.01, -100.0)
        relations = [_point_relation(7, same), _point_relation(3, same), _point_relation(5, same)]
        assert [r.id for r in select_nearest(relations, origin, limit=2)] == [7, 3]

    def test_relations_without_geometry_are_skipped(self):
        origin = Coordinate(40.0, -100.0)
        bare = Relation(id=1, tags={"name": "Bare"})
        near = _point_relation(2, Coordinate(40.01, -100.0))
        assert select_nearest([bare, near], origin) == [near]

    def test_fewer_candidates_than_limit(self):
        origin = Coordinate(40.0, -100.0)
        only = _point_relation(1, origin)
        assert select_nearest([only], origin, limit=3) == [only]


# ════════════════════════════════════════════════════════════════
#  resolve_state
# ════════════════════════════════════════════════════════════════

class TestResolveState:

    def test_state_relation_wins(self, state_payload):
        main = Relation(id=1, tags={"is_in:state": "Kansas"})
        info = resolve_state(state_payload, main, "4")
        assert info.name == "Nebraska"
        assert info.id == 161

    @pytest.mark.parametrize("tag", ["is_in:state", "addr:state", "state"])
    def test_falls_back_to_county_tags(self, tag):
        main = Relation(id=1, tags={tag: "Kansas"})
        info = resolve_state({"elements": []}, main, "4")
        assert info.name == "Kansas"
        assert info.id is None

    def test_nothing_known(self):
        assert resolve_state(None, Relation(id=1), "4") is None


# ════════════════════════════════════════════════════════════════
#  load_near
# ════════════════════════════════════════════════════════════════

class TestLoadNear:

    def test_selects_three_nearest_and_marks_main(self, engine, fake_source):
        result = asyncio.run(engine.load_near(QUERY_POINT))
        assert result.ok
        assert [f.id for f in result.features] == [101, 102, 103]
        assert result.main_id == 101
        assert [f.is_main for f in result.features] == [True, False, False]
        assert result.status == "3 counties loaded"
        assert result.state_info.name == "Nebraska"
        assert engine.state is SelectionState.POPULATED
        assert fake_source.county_calls == [QUERY_POINT]

    def test_labels_computed_when_viewport_supplied(self, engine):
        viewport = Viewport(south=39.99, north=40.11, west=-100.01, east=-99.89)
        asyncio.run(engine.load_near(QUERY_POINT, viewport))
        labels = engine.session.labels
        assert [label.feature_id for label in labels] == [101]
        assert labels[0].is_main is True

    def test_no_labels_without_viewport(self, engine):
        asyncio.run(engine.load_near(QUERY_POINT))
        assert engine.session.labels == ()

    def test_state_lookup_failure_uses_tags(self, county_payload, fast_placer):
        source = FakeSource(counties=county_payload,
                            state_error=SourceUnavailable("timeout", "timeout"))
        engine = CountySelectionEngine(source, fast_placer)
        result = asyncio.run(engine.load_near(QUERY_POINT))
        assert result.ok
        assert result.state_info.name == "Kansas"

    def test_no_relations_is_no_data(self, fast_placer):
        engine = CountySelectionEngine(FakeSource(), fast_placer)
        result = asyncio.run(engine.load_near(QUERY_POINT))
        assert isinstance(result.error, NoDataFound)
        assert result.features == []
        assert result.status == "No counties found in this area"
        assert engine.state is SelectionState.EMPTY
        assert engine.session.features == ()

    def test_unbuildable_geometry_is_no_data(self, outer_way, fast_placer):
        payload = {"elements": [{
            "type": "relation", "id": 9, "tags": {"admin_level": "6", "name": "Stub"},
            "members": [outer_way((40.0, -100.0), (40.0, -99.9))],
        }]}
        engine = CountySelectionEngine(FakeSource(counties=payload), fast_placer)
        result = asyncio.run(engine.load_near(QUERY_POINT))
        assert isinstance(result.error, NoDataFound)
        assert result.status == "Could not build county geometry"
        assert engine.state is SelectionState.EMPTY

    def test_nearest_buildable_county_becomes_main(self, county_payload, outer_way, fast_placer):
        alpha = next(e for e in county_payload["elements"] if e.get("id") == 101)
        alpha["members"] = [outer_way((40.0, -100.0), (40.1, -99.9))]
        engine = CountySelectionEngine(FakeSource(counties=county_payload), fast_placer)
        result = asyncio.run(engine.load_near(QUERY_POINT))
        assert [f.id for f in result.features] == [102, 103]
        assert result.main_id == 102
        assert sum(f.is_main for f in result.features) == 1

    def test_source_failure_is_reported(self, failing_source, fast_placer):
        engine = CountySelectionEngine(failing_source, fast_placer)
        result = asyncio.run(engine.load_near(QUERY_POINT))
        assert isinstance(result.error, SourceUnavailable)
        assert result.error.category == "rate_limited"
        assert "Too many requests" in result.status
        assert engine.state is SelectionState.EMPTY

    def test_failure_does_not_retry(self, failing_source, fast_placer):
        engine = CountySelectionEngine(failing_source, fast_placer)
        asyncio.run(engine.load_near(QUERY_POINT))
        assert len(failing_source.county_calls) == 1

    def test_already_loaded_does_not_fetch_again(self, engine, fake_source):
        first = asyncio.run(engine.load_near(QUERY_POINT))
        second = asyncio.run(engine.load_near(Coordinate(41.0, -99.0)))
        assert len(fake_source.county_calls) == 1
        assert [f.id for f in second.features] == [f.id for f in first.features]

    def test_already_loaded_uses_the_new_viewport(self, engine, fake_source):
        asyncio.run(engine.load_near(QUERY_POINT))
        assert engine.session.labels == ()
        viewport = Viewport(south=39.99, north=40.11, west=-100.01, east=-99.89)
        asyncio.run(engine.load_near(QUERY_POINT, viewport))
        assert len(fake_source.county_calls) == 1
        assert engine.session.viewport == viewport
        assert [label.feature_id for label in engine.session.labels] == [101]

    def test_second_load_while_in_flight_is_refused(self, county_payload, fast_placer):
        async def scenario():
            source = SlowSource(counties=county_payload)
            engine = CountySelectionEngine(source, fast_placer)
            first = asyncio.create_task(engine.load_near(QUERY_POINT))
            await asyncio.sleep(0)
            assert engine.state is SelectionState.LOADING
            with pytest.raises(LoadInProgress):
                await engine.load_near(QUERY_POINT)
            source.release.set()
            result = await first
            return engine, source, result

        engine, source, result = asyncio.run(scenario())
        assert result.ok
        assert len(source.county_calls) == 1
        assert engine.state is SelectionState.POPULATED


# ════════════════════════════════════════════════════════════════
#  Switching, viewport changes, deactivation
# ════════════════════════════════════════════════════════════════

class TestMainCountySwitch:

    def test_switch_updates_exactly_one_flag(self, engine):
        asyncio.run(engine.load_near(QUERY_POINT))
        engine.on_feature_activated(103)
        flags = {f.id: f.is_main for f in engine.session.features}
        assert flags == {101: False, 102: False, 103: True}
        assert engine.session.main_id == 103
        assert engine.state is SelectionState.POPULATED

    def test_switch_triggers_label_recompute(self, engine):
        asyncio.run(engine.load_near(QUERY_POINT))
        with patch.object(engine, "recompute_labels", wraps=engine.recompute_labels) as spy:
            engine.on_feature_activated(102)
        spy.assert_called_once()

    def test_same_county_is_a_no_op(self, engine):
        asyncio.run(engine.load_near(QUERY_POINT))
        with patch.object(engine, "recompute_labels") as spy:
            engine.on_feature_activated(101)
        spy.assert_not_called()

    def test_unknown_county(self, engine):
        asyncio.run(engine.load_near(QUERY_POINT))
        with pytest.raises(UnknownFeature):
            engine.on_feature_activated(999)
        assert engine.session.main_id == 101

    def test_labels_follow_main_flag(self, engine):
        viewport = Viewport(south=39.99, north=40.11, west=-100.01, east=-99.89)
        asyncio.run(engine.load_near(QUERY_POINT, viewport))
        labels = engine.on_feature_activated(102)
        assert [(label.feature_id, label.is_main) for label in labels] == [(101, False)]


class TestViewportChanges:

    def test_labels_for_each_visible_county(self, engine):
        asyncio.run(engine.load_near(QUERY_POINT))
        viewport = Viewport(south=39.95, north=40.25, west=-100.05, east=-99.75)
        labels = engine.on_viewport_changed(viewport)
        assert sorted(label.feature_id for label in labels) == [101, 102, 103]
        for label in labels:
            feature = engine.session.feature(label.feature_id)
            assert viewport.contains(label.position)
            assert contains(label.position, feature.rings)

    def test_labels_avoid_marker(self, engine):
        asyncio.run(engine.load_near(QUERY_POINT))
        viewport = Viewport(south=39.95, north=40.25, west=-100.05, east=-99.75)
        marker = Coordinate(40.05, -99.95)
        labels = engine.on_viewport_changed(viewport, marker)
        assert labels
        for label in labels:
            assert distance(label.position, marker) >= engine.placer.min_reference_distance

    def test_each_change_replaces_labels(self, engine):
        asyncio.run(engine.load_near(QUERY_POINT))
        engine.on_viewport_changed(Viewport(south=39.95, north=40.25, west=-100.05, east=-99.75))
        assert len(engine.session.labels) == 3
        engine.on_viewport_changed(Viewport(south=45.0, north=45.1, west=-90.0, east=-89.9))
        assert engine.session.labels == ()

    def test_viewport_before_load(self, engine):
        labels = engine.on_viewport_changed(Viewport(south=39.95, north=40.25, west=-100.05, east=-99.75))
        assert labels == []
        assert engine.session.viewport is not None


class TestDeactivate:

    def test_clears_everything(self, engine):
        viewport = Viewport(south=39.99, north=40.11, west=-100.01, east=-99.89)
        asyncio.run(engine.load_near(QUERY_POINT, viewport))
        engine.deactivate()
        session = engine.session
        assert session.state is SelectionState.CLEARED
        assert session.features == ()
        assert session.labels == ()
        assert session.main_id is None
        assert session.status == "Counties hidden"

    def test_reactivation_fetches_again(self, engine, fake_source):
        asyncio.run(engine.load_near(QUERY_POINT))
        engine.deactivate()
        result = asyncio.run(engine.load_near(QUERY_POINT))
        assert result.ok
        assert len(fake_source.county_calls) == 2
        assert engine.state is SelectionState.POPULATED

    def test_load_finishing_after_deactivate_is_discarded(self, county_payload, fast_placer):

        async def scenario():
            source = SlowSource(counties=county_payload)
            engine = CountySelectionEngine(source, fast_placer)
            first = asyncio.create_task(engine.load_near(QUERY_POINT))
            await asyncio.sleep(0)
            engine.deactivate()
            # the switched-off fetch is still running, so no second one starts
            with pytest.raises(LoadInProgress):
                await engine.load_near(QUERY_POINT)
            source.release.set()
            result = await first
            return engine, source, result

        engine, source, result = asyncio.run(scenario())
        assert result.features == []
        assert len(source.county_calls) == 1
        assert engine.state is SelectionState.CLEARED
        assert engine.session.features == ()
        assert engine.session.status == "Counties hidden"

    def test_reactivation_after_discarded_load(self, county_payload, fast_placer):

        async def scenario():
            source = SlowSource(counties=county_payload)
            engine = CountySelectionEngine(source, fast_placer)
            first = asyncio.create_task(engine.load_near(QUERY_POINT))
            await asyncio.sleep(0)
            engine.deactivate()
            source.release.set()
            await first
            return engine, source, await engine.load_near(QUERY_POINT)

        engine, source, result = asyncio.run(scenario())
        assert result.ok
        assert [f.id for f in result.features] == [101, 102, 103]
        assert len(source.county_calls) == 2
        assert engine.state is SelectionState.POPULATED
