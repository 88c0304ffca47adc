"""Tests for folding a cluster's rings into one holding geometry."""

import pytest
from shapely.errors import GEOSException
from shapely.geometry import MultiPolygon, Polygon
from shapely.geometry.base import BaseGeometry

from parcel_holdings.clustering.merger import Degraded, Merged, PolygonMerger
from parcel_holdings.exceptions import BudgetExceededError
from parcel_holdings.mapping.geometry_utils import area_acres


@pytest.fixture
def merger():
    return PolygonMerger()


# =============================================================================
# TestMerged
# =============================================================================


class TestMerged:
    def test_adjacent_cells_become_one_polygon(self, grid, merger):
        result = merger.merge([grid.ring(0, 0), grid.ring(1, 0), grid.ring(0, 1)])
        assert isinstance(result, Merged)
        assert isinstance(result.shape, Polygon)
        assert result.shape.is_valid
        assert area_acres(result.shape) == pytest.approx(3.0, rel=1e-3)

    def test_single_ring(self, grid, merger):
        ring = grid.ring(0, 0)
        result = merger.merge([ring])
        assert isinstance(result, Merged)
        assert list(result.shape.exterior.coords) == [tuple(p) for p in ring]

    def test_disjoint_parts_stay_separate(self, grid, merger):
        result = merger.merge([grid.ring(0, 0), grid.ring(3, 0)])
        assert isinstance(result, Merged)
        assert isinstance(result.shape, MultiPolygon)
        assert len(result.shape.geoms) == 2

    def test_geometry_is_geojson(self, grid, merger):
        result = merger.merge([grid.ring(0, 0), grid.ring(1, 0)])
        assert result.geometry["type"] == "Polygon"

    def test_empty_cluster_rejected(self, merger):
        with pytest.raises(ValueError):
            merger.merge([])


# =============================================================================
# TestDegraded
# =============================================================================


class TestDegraded:
    def test_invalid_member_keeps_rings(self, grid, merger):
        rings = [grid.ring(0, 0), grid.self_intersecting_ring(1, 0)]
        result = merger.merge(rings)
        assert isinstance(result, Degraded)
        assert result.reason
        assert result.geometry == {
            "type": "MultiPolygon",
            "coordinates": [[rings[0]], [rings[1]]],
        }

    def test_union_error_degrades(self, grid, merger, monkeypatch):
        def broken_union(self, other, grid_size=None):
            raise GEOSException("TopologyException: side location conflict")

        monkeypatch.setattr(BaseGeometry, "union", broken_union)
        rings = [grid.ring(0, 0), grid.ring(1, 0)]
        result = merger.merge(rings)
        assert isinstance(result, Degraded)
        assert "side location conflict" in result.reason
        assert result.geometry["coordinates"] == [[rings[0]], [rings[1]]]

    def test_unbuildable_ring_degrades(self, grid, merger):
        rings = [grid.ring(0, 0), [[0, 0], [1, 1]]]
        result = merger.merge(rings)
        assert isinstance(result, Degraded)
        assert len(result.geometry["coordinates"]) == 2
        # Area counts only the rings that form polygons
        assert area_acres(result.shape) == pytest.approx(1.0, rel=1e-3)

    def test_degraded_area_sums_parts(self, grid):
        result = Degraded(rings=[grid.ring(0, 0), grid.ring(1, 0)])
        assert area_acres(result.shape) == pytest.approx(2.0, rel=1e-3)


# =============================================================================
# TestBudget
# =============================================================================


class TestBudget:
    def test_stop_raises_instead_of_degrading(self, grid, merger):
        with pytest.raises(BudgetExceededError):
            merger.merge([grid.ring(0, 0), grid.ring(1, 0)], should_stop=lambda: True)

    def test_stop_polled_per_step(self, grid, merger):
        calls = []

        def stop_on_second_step():
            calls.append(1)
            return len(calls) >= 2

        rings = [grid.ring(i, 0) for i in range(4)]
        with pytest.raises(BudgetExceededError) as exc:
            merger.merge(rings, should_stop=stop_on_second_step)
        assert "step 2 of 3" in exc.value.detail

    def test_single_ring_never_polls(self, grid, merger):
        result = merger.merge([grid.ring(0, 0)], should_stop=lambda: True)
        assert isinstance(result, Merged)
