"""
Unit Tests for the Route Analyzer.

Tests corner, crossing and exclusion zone detection on hand-built street
layouts near Sao Luis.
"""

import pytest

from data_models import (
    Coordinate, Street, Building, Obstacle, ObstacleKind, ObstacleShape, TerrainSnapshot,
)
from backend.config import PlannerSettings
from backend.services.geometry import offset_by_meters, distance, distance_along_polyline, point_in_polygon
from backend.services.route_analyzer import RouteAnalyzer, CrossingKind

BASE = Coordinate(lat=-2.53, lon=-44.30)


def at(east_m: float, north_m: float) -> Coordinate:
    return offset_by_meters(BASE, east_m, north_m)


def street(street_id: str, highway: str, *points, width_m=None) -> Street:
    return Street(id=street_id, name=f"Rua {street_id}", highway=highway, points=tuple(points), width_m=width_m)


class TestCorners:
    """Street intersections near the route."""

    def setup_method(self):
        self.settings = PlannerSettings()
        self.route = [at(0, 0), at(0, 500)]

    def test_perpendicular_corner(self):
        terrain = TerrainSnapshot(streets=(
            street("A", "residential", at(0, -100), at(0, 700)),
            street("B", "residential", at(-100, 250), at(150, 250)),
        ))
        analyzer = RouteAnalyzer(self.route, terrain, self.settings)
        assert len(analyzer.corners) == 1, f"Expected one corner, got {len(analyzer.corners)}"

        corner = analyzer.corners[0]
        assert corner.id == "CORNER-001"
        assert corner.streets == ("Rua A", "Rua B")
        assert distance(corner.coordinate, at(0, 250)) < 0.01, "Corner should be at the intersection"
        assert corner.priority == pytest.approx(80.0, abs=0.1), "Perpendicular corners have top priority"

    def test_oblique_corner_priority(self):
        terrain = TerrainSnapshot(streets=(
            street("A", "residential", at(0, -100), at(0, 700)),
            street("B", "residential", at(-100, 150), at(100, 350)),
        ))
        corner = RouteAnalyzer(self.route, terrain, self.settings).corners[0]
        assert corner.priority == pytest.approx(57.5, abs=0.5), "45 degree corners score 57.5"
        assert 0.0 <= corner.angle_deg < 360.0

    def test_far_intersection_ignored(self):
        terrain = TerrainSnapshot(streets=(
            street("A", "residential", at(100, -100), at(100, 700)),
            street("B", "residential", at(50, 250), at(150, 250)),
        ))
        analyzer = RouteAnalyzer(self.route, terrain, self.settings)
        assert not analyzer.corners, "Intersection 100m from the route is not a corner"

    def test_intersection_on_shared_vertex_counted_once(self):
        terrain = TerrainSnapshot(streets=(
            street("A", "residential", at(0, -100), at(0, 250), at(0, 700)),
            street("B", "residential", at(-100, 250), at(150, 250)),
        ))
        analyzer = RouteAnalyzer(self.route, terrain, self.settings)
        assert len(analyzer.corners) == 1, "Vertex intersection must be deduplicated"


class TestCrossings:
    """Highways, avenues, railways and rivers crossed by the route."""

    def setup_method(self):
        self.settings = PlannerSettings()
        self.route = [at(0, 0), at(0, 500)]

    def test_primary_street_crossing(self):
        terrain = TerrainSnapshot(streets=(street("P", "primary", at(-100, 250), at(100, 250)),))
        analyzer = RouteAnalyzer(self.route, terrain, self.settings)
        assert len(analyzer.crossings) == 1, "Primary street should be crossed once"

        crossing = analyzer.crossings[0]
        assert crossing.kind == CrossingKind.HIGHWAY
        assert crossing.requires_double_poles
        assert crossing.min_clearance_height_m == 7.0
        assert crossing.width_m == 20.0, "Default highway width is 20m"
        assert abs(distance(crossing.before, crossing.intersection) - 15.0) < 0.05, \
            "Pole offset is half the width plus 5m"
        assert abs(distance(crossing.after, crossing.intersection) - 15.0) < 0.05
        assert (distance_along_polyline(crossing.before, self.route) <
                distance_along_polyline(crossing.after, self.route)), "before must precede after"

    def test_street_width_and_clearance_setting(self):
        terrain = TerrainSnapshot(streets=(street("P", "secondary", at(-100, 250), at(100, 250), width_m=30.0),))
        settings = PlannerSettings(crossing_pole_clearance_m=10.0)
        crossing = RouteAnalyzer(self.route, terrain, settings).crossings[0]
        assert crossing.kind == CrossingKind.AVENUE
        assert abs(distance(crossing.before, crossing.intersection) - 25.0) < 0.05, \
            "Offset should use the street width and configured clearance"

    def test_local_street_is_not_a_crossing(self):
        terrain = TerrainSnapshot(streets=(street("R", "residential", at(-100, 250), at(100, 250)),))
        assert not RouteAnalyzer(self.route, terrain, self.settings).crossings

    def test_railway_obstacle(self):
        railway = Obstacle(
            id="RW1", kind=ObstacleKind.RAILWAY, shape=ObstacleShape.LINE,
            points=(at(-200, 100), at(200, 100)), name="EFC",
        )
        crossing = RouteAnalyzer(self.route, TerrainSnapshot(obstacles=(railway,)), self.settings).crossings[0]
        assert crossing.kind == CrossingKind.RAILWAY
        assert crossing.name == "EFC"
        assert crossing.min_clearance_height_m == 9.0
        assert crossing.source_id == "RW1"

    def test_river_polygon_crossed_as_one_span(self):
        river = Obstacle(
            id="RV1", kind=ObstacleKind.RIVER, shape=ObstacleShape.POLYGON,
            points=(at(-50, 300), at(50, 300), at(50, 320), at(-50, 320)),
        )
        crossings = RouteAnalyzer(self.route, TerrainSnapshot(obstacles=(river,)), self.settings).crossings
        assert len(crossings) == 1, "Entry and exit banks make one crossing"

        crossing = crossings[0]
        assert crossing.kind == CrossingKind.RIVER
        assert crossing.width_m == pytest.approx(20.0, abs=0.05), "Width is the distance between banks"
        assert distance(crossing.intersection, at(0, 310)) < 0.05
        assert distance(crossing.before, at(0, 295)) < 0.05, "Before pole stands outside the entry bank"
        assert distance(crossing.after, at(0, 325)) < 0.05, "After pole stands outside the exit bank"
        water = river.points
        assert not point_in_polygon(crossing.before, water) and not point_in_polygon(crossing.after, water)

    def test_route_ending_inside_river_polygon(self):
        river = Obstacle(
            id="RV1", kind=ObstacleKind.RIVER, shape=ObstacleShape.POLYGON,
            points=(at(-50, 480), at(50, 480), at(50, 600), at(-50, 600)),
        )
        crossings = RouteAnalyzer(self.route, TerrainSnapshot(obstacles=(river,)), self.settings).crossings
        assert len(crossings) == 1, "Unpaired bank is still a crossing"
        assert crossings[0].width_m == 20.0, "Unpaired bank uses the default river width"
        assert distance(crossings[0].intersection, at(0, 480)) < 0.05

    def test_crossing_on_route_vertex_counted_once(self):
        route = [at(0, 0), at(0, 250), at(0, 500)]
        terrain = TerrainSnapshot(streets=(street("P", "primary", at(-100, 250), at(100, 250)),))
        analyzer = RouteAnalyzer(route, terrain, self.settings)
        assert len(analyzer.crossings) == 1, "Route vertex on the street is one crossing"
        assert analyzer.crossings[0].id == "CROSS-001"


class TestExclusionZones:

    def setup_method(self):
        self.settings = PlannerSettings()
        self.route = [at(0, 0), at(0, 500)]

    def test_buildings_become_buffered_zones(self):
        footprint = (at(5, 100), at(15, 100), at(15, 110), at(5, 110))
        terrain = TerrainSnapshot(buildings=(
            Building(id="B1", category="house", points=footprint, name="Casa"),
            Building(id="B2", category="shed", points=(at(5, 200), at(15, 200))),
        ))
        analyzer = RouteAnalyzer(self.route, terrain, self.settings)
        assert len(analyzer.exclusion_zones) == 1, "Footprints under 3 points are skipped"

        zone = analyzer.exclusion_zones[0]
        assert zone.id == "EXCL-B1"
        assert zone.buffer_m == 1.5
        assert point_in_polygon(at(4.5, 105), zone.buffered), "Buffer covers the facade clearance"
        assert not point_in_polygon(at(4.5, 105), zone.polygon)


class TestDegenerateRoutes:

    def test_short_route_detects_nothing(self):
        terrain = TerrainSnapshot(streets=(street("P", "primary", at(-100, 0), at(100, 0)),))
        analyzer = RouteAnalyzer([at(0, 0)], terrain, PlannerSettings())
        assert not analyzer.corners and not analyzer.crossings and not analyzer.exclusion_zones
        assert analyzer.total_distance() == 0.0
        assert analyzer.statistics()["total_crossings"] == 0

    def test_statistics(self):
        terrain = TerrainSnapshot(streets=(street("P", "primary", at(-100, 250), at(100, 250)),))
        stats = RouteAnalyzer([at(0, 0), at(0, 500)], terrain, PlannerSettings()).statistics()
        assert stats["total_crossings"] == 1
        assert stats["total_corners"] == 0
        assert stats["total_distance_m"] == pytest.approx(500.0, abs=0.1)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
