"""
Unit Tests for the Pole Placer.

Tests the five placement phases: mandatory anchors, gap filling, bounded
span repair and building avoidance.
"""

import pytest

from data_models import Coordinate, Street, Building, TerrainSnapshot, Severity, DesignInputError
from backend.config import PlannerSettings
from backend.services.geometry import (
    offset_by_meters, distance, distance_along_polyline, point_in_polygon, expand_polygon,
)
from backend.services.pole_placer import PolePlacer, AnchorKind, place_poles

BASE = Coordinate(lat=-2.53, lon=-44.30)


def at(east_m: float, north_m: float) -> Coordinate:
    return offset_by_meters(BASE, east_m, north_m)


def spans(anchors):
    return [distance(a.coordinate, b.coordinate) for a, b in zip(anchors, anchors[1:])]


class TestStraightLine:
    """Placement on a straight, empty route."""

    def setup_method(self):
        self.settings = PlannerSettings()
        self.placer = PolePlacer(ideal_span_m=100.0, max_span_m=120.0, min_span_m=40.0, settings=self.settings)
        self.route = [at(0, 0), at(0, 500)]

    def test_even_spacing(self):
        result = self.placer.place(self.route, TerrainSnapshot())
        assert len(result.anchors) == 6, f"500m at 100m spans needs 6 poles, got {len(result.anchors)}"
        for span in spans(result.anchors):
            assert abs(span - 100.0) < 0.5, f"Span {span:.1f}m should be ~100m"

    def test_endpoints_kept(self):
        result = self.placer.place(self.route, TerrainSnapshot())
        assert result.anchors[0].kind == AnchorKind.ORIGIN
        assert result.anchors[-1].kind == AnchorKind.DESTINATION
        assert result.anchors[0].coordinate == self.route[0], "Origin pole sits on the route start"
        assert result.anchors[-1].coordinate == self.route[-1], "Destination pole sits on the route end"

    def test_statistics(self):
        result = self.placer.place(self.route, TerrainSnapshot())
        assert result.statistics.total_poles == 6
        assert abs(result.statistics.total_distance_m - 500.0) < 0.1
        assert result.repair_converged and result.repair_iterations == 0, "No repair needed"
        assert not result.findings

    def test_deterministic(self):
        first = self.placer.place(self.route, TerrainSnapshot())
        second = self.placer.place(self.route, TerrainSnapshot())
        assert [a.coordinate for a in first.anchors] == [a.coordinate for a in second.anchors], \
            "Same inputs should give identical anchors"

    def test_short_route_needs_no_intermediates(self):
        result = self.placer.place([at(0, 0), at(0, 90)], TerrainSnapshot())
        assert len(result.anchors) == 2, "A 90m line fits in one span"

    @pytest.mark.parametrize("length_m", [200.0, 300.0, 400.0, 600.0, 1000.0])
    def test_exact_multiple_of_ideal_span(self, length_m):
        result = self.placer.place([at(0, 0), at(0, length_m)], TerrainSnapshot())
        expected = int(length_m / 100.0) + 1
        assert len(result.anchors) == expected, \
            f"{length_m:.0f}m at 100m spans needs {expected} poles, got {len(result.anchors)}"
        for span in spans(result.anchors):
            assert abs(span - 100.0) < 0.5, f"Span {span:.1f}m should be ~100m"

    def test_insufficient_route(self):
        result = self.placer.place([at(0, 0)], TerrainSnapshot())
        assert result.anchors == [], "Fewer than 2 route points gives no anchors"

    def test_invalid_spans_rejected(self):
        with pytest.raises(DesignInputError):
            PolePlacer(ideal_span_m=0.0, max_span_m=120.0, settings=self.settings)
        with pytest.raises(DesignInputError):
            PolePlacer(ideal_span_m=100.0, max_span_m=-1.0, settings=self.settings)

    def test_wrapper(self):
        result = place_poles(self.route, TerrainSnapshot(), 100.0, 120.0, settings=self.settings)
        assert len(result.anchors) == 6


class TestCrossingsAndCorners:
    """Mandatory crossing pairs and corner preference."""

    def setup_method(self):
        self.settings = PlannerSettings()
        self.placer = PolePlacer(ideal_span_m=100.0, max_span_m=120.0, min_span_m=40.0, settings=self.settings)
        self.route = [at(0, 0), at(0, 500)]

    def test_crossing_pair_around_primary_street(self):
        terrain = TerrainSnapshot(streets=(
            Street(id="P", name="Av. Principal", highway="primary", points=(at(-100, 250), at(100, 250))),
        ))
        result = self.placer.place(self.route, terrain)
        kinds = [a.kind for a in result.anchors]
        assert AnchorKind.CROSSING_BEFORE in kinds and AnchorKind.CROSSING_AFTER in kinds, \
            "Crossing should seed a pole pair"

        before_index = kinds.index(AnchorKind.CROSSING_BEFORE)
        after_index = kinds.index(AnchorKind.CROSSING_AFTER)
        assert after_index == before_index + 1, "Crossing poles should be consecutive"

        crossing_point = at(0, 250)
        for index in (before_index, after_index):
            d = distance(result.anchors[index].coordinate, crossing_point)
            assert abs(d - 15.0) < 0.05, f"Crossing pole should be 15m from the street axis, got {d:.2f}m"

        for span in spans(result.anchors):
            assert span <= 120.0 + 1e-6, f"Span {span:.1f}m exceeds the maximum"
        assert result.statistics.crossing_poles == 2

    def test_anchors_ordered_along_route(self):
        terrain = TerrainSnapshot(streets=(
            Street(id="P", name="BR-135", highway="trunk", points=(at(-100, 150), at(100, 150))),
            Street(id="Q", name="MA-201", highway="primary", points=(at(-100, 380), at(100, 380))),
        ))
        result = self.placer.place(self.route, terrain)
        chainages = [distance_along_polyline(a.coordinate, self.route) for a in result.anchors]
        assert chainages == sorted(chainages), "Anchors must be ordered from origin to destination"

    def test_corner_preferred_for_intermediate(self):
        terrain = TerrainSnapshot(streets=(
            Street(id="A", name="Rua A", highway="residential", points=(at(0, -50), at(0, 550))),
            Street(id="B", name="Rua B", highway="residential", points=(at(-60, 210), at(60, 210))),
        ))
        result = self.placer.place(self.route, terrain)
        corners = [a for a in result.anchors if a.kind == AnchorKind.CORNER]
        assert len(corners) == 1, "The corner near the 200m target should be used"
        assert distance(corners[0].coordinate, at(0, 210)) < 0.01
        assert corners[0].justification.startswith("Corner"), "Corner poles explain their street pair"
        assert result.statistics.poles_at_corners == 1


class TestSpanRepair:
    """Bounded midpoint insertion."""

    def setup_method(self):
        self.settings = PlannerSettings()
        self.route = [at(0, 0), at(0, 1000)]

    def test_repair_converges(self):
        placer = PolePlacer(ideal_span_m=1000.0, max_span_m=300.0, settings=self.settings)
        result = placer.place(self.route, TerrainSnapshot())
        assert result.repair_converged
        assert result.repair_iterations == 2, "1000m -> 500m -> 250m takes two passes"
        assert len(result.anchors) == 5
        assert max(spans(result.anchors)) <= 300.0

    def test_repair_cap_reported(self):
        placer = PolePlacer(ideal_span_m=1000.0, max_span_m=40.0, settings=self.settings, max_repair_iterations=1)
        result = placer.place(self.route, TerrainSnapshot())
        assert not result.repair_converged, "One pass cannot bring 1000m under 40m"
        assert result.repair_iterations == 1
        assert len(result.anchors) == 3, "Partial repair result is kept"

        assert len(result.findings) == 1
        finding = result.findings[0]
        assert finding.field == "placement.span_repair"
        assert finding.severity == Severity.WARNING

    def test_repair_cap_from_settings(self):
        settings = PlannerSettings(max_repair_iterations=2)
        placer = PolePlacer(ideal_span_m=1000.0, max_span_m=40.0, settings=settings)
        result = placer.place(self.route, TerrainSnapshot())
        assert result.repair_iterations == 2 and not result.repair_converged


class TestBuildingAvoidance:
    """Anchors inside buffered footprints are moved out."""

    def setup_method(self):
        self.settings = PlannerSettings()
        self.placer = PolePlacer(ideal_span_m=100.0, max_span_m=120.0, min_span_m=40.0, settings=self.settings)
        self.route = [at(0, 0), at(0, 500)]
        # House straddling the route at 200m, centered 3m east of it
        self.footprint = (at(-2, 195), at(8, 195), at(8, 205), at(-2, 205))
        self.terrain = TerrainSnapshot(
            buildings=(Building(id="B1", category="house", points=self.footprint),),
        )

    def test_anchor_moved_out_of_building(self):
        result = self.placer.place(self.route, self.terrain)
        buffered = expand_polygon(self.footprint, 1.5)
        for anchor in result.anchors:
            assert not point_in_polygon(anchor.coordinate, buffered), \
                f"Anchor '{anchor.justification}' is inside the building zone"

        adjusted = [a for a in result.anchors if a.justification.endswith(PolePlacer.BUILDING_ADJUSTMENT_NOTE)]
        assert len(adjusted) == 1, "Only the anchor at 200m should move"
        assert distance(adjusted[0].coordinate, at(0, 200)) < 10.0, "Escape should stay near the original spot"
        assert result.statistics.total_exclusion_zones == 1

    def test_anchor_on_centroid_moves_north(self):
        footprint = (at(-5, 195), at(5, 195), at(5, 205), at(-5, 205))
        terrain = TerrainSnapshot(buildings=(Building(id="B2", category="house", points=footprint),))
        result = self.placer.place(self.route, terrain)
        adjusted = [a for a in result.anchors if a.justification.endswith(PolePlacer.BUILDING_ADJUSTMENT_NOTE)]
        assert len(adjusted) == 1
        assert adjusted[0].coordinate.lat > at(0, 200).lat, "Anchor on the centroid escapes due north"
        assert not point_in_polygon(adjusted[0].coordinate, expand_polygon(footprint, 1.5))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
