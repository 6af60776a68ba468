"""
Unit Tests for the Geometry Kernel.

Distances are checked against the haversine reference values; planar helpers
against small hand-built shapes near the equator.
"""

import math

import pytest

from data_models import Coordinate, DesignInputError
from backend.services.geometry import (
    distance, meters_to_degrees_lat, meters_to_degrees_lng, meters_per_degree_lng,
    METERS_PER_DEGREE_LAT, offset_by_meters, local_offset_m,
    point_to_segment_distance, point_to_polyline_distance, snap_to_polyline,
    polyline_length, distance_along_polyline, point_in_polygon, segment_intersection,
    bearing_degrees, deflection_angle, polygon_centroid, expand_polygon,
    interpolate, bounding_box_around, slope_percent,
)

BASE = Coordinate(lat=-2.53, lon=-44.30)


def square(center: Coordinate, half_side_m: float):
    return (
        offset_by_meters(center, -half_side_m, -half_side_m),
        offset_by_meters(center, half_side_m, -half_side_m),
        offset_by_meters(center, half_side_m, half_side_m),
        offset_by_meters(center, -half_side_m, half_side_m),
    )


class TestDistances:
    """Haversine distance and unit conversions."""

    def test_distance_zero_and_symmetric(self):
        other = offset_by_meters(BASE, 120.0, 80.0)
        assert distance(BASE, BASE) == 0.0, "Distance of a point to itself should be 0"
        assert abs(distance(BASE, other) - distance(other, BASE)) < 1e-9, \
            "Distance should be symmetric"

    def test_one_degree_of_latitude(self):
        a = Coordinate(lat=0.0, lon=0.0)
        b = Coordinate(lat=1.0, lon=0.0)
        assert abs(distance(a, b) - METERS_PER_DEGREE_LAT) < 1.0, \
            "One degree of latitude should be ~111195m"

    def test_conversions_round_trip_distance(self):
        north = Coordinate(lat=BASE.lat + meters_to_degrees_lat(250.0), lon=BASE.lon)
        east = Coordinate(lat=BASE.lat, lon=BASE.lon + meters_to_degrees_lng(250.0, BASE.lat))
        assert abs(distance(BASE, north) - 250.0) < 0.01, "250m north should measure 250m"
        assert abs(distance(BASE, east) - 250.0) < 0.05, "250m east should measure 250m"

    def test_longitude_degrees_undefined_at_pole(self):
        with pytest.raises(ValueError):
            meters_per_degree_lng(90.0)

    def test_local_offset_inverts_offset_by_meters(self):
        moved = offset_by_meters(BASE, 30.0, -45.0)
        east, north = local_offset_m(BASE, moved)
        assert abs(east - 30.0) < 1e-6, f"East offset {east} should be 30"
        assert abs(north + 45.0) < 1e-6, f"North offset {north} should be -45"


class TestSegmentsAndPolylines:
    """Projection, snapping and polyline measures."""

    def setup_method(self):
        self.a = BASE
        self.b = offset_by_meters(BASE, 0.0, 100.0)

    def test_point_beside_segment(self):
        p = offset_by_meters(BASE, 10.0, 50.0)
        d = point_to_segment_distance(p, self.a, self.b)
        assert abs(d - 10.0) < 0.05, f"Perpendicular distance {d} should be ~10m"

    def test_point_beyond_segment_measures_to_endpoint(self):
        p = offset_by_meters(BASE, 0.0, 130.0)
        d = point_to_segment_distance(p, self.a, self.b)
        assert abs(d - 30.0) < 0.05, f"Distance {d} should be measured to the end point"

    def test_zero_length_segment(self):
        p = offset_by_meters(BASE, 20.0, 0.0)
        assert abs(point_to_segment_distance(p, self.a, self.a) - distance(p, self.a)) < 1e-9, \
            "Degenerate segment should measure to its single point"

    def test_snap_lands_on_route(self):
        route = [self.a, self.b, offset_by_meters(BASE, 100.0, 100.0)]
        p = offset_by_meters(BASE, 8.0, 40.0)
        snapped = snap_to_polyline(p, route)
        assert point_to_polyline_distance(snapped, route) < 1e-6, "Snapped point should lie on the route"
        assert abs(snapped.lon - BASE.lon) < 1e-9, "Snap should land on the first segment"

    def test_polyline_length_and_chainage(self):
        corner = self.b
        end = offset_by_meters(corner, 50.0, 0.0)
        route = [self.a, corner, end]
        assert abs(polyline_length(route) - 150.0) < 0.1, "L-shaped route should measure 150m"
        chainage = distance_along_polyline(offset_by_meters(corner, 20.0, 0.0), route)
        assert abs(chainage - 120.0) < 0.1, f"Chainage {chainage} should be ~120m"

    def test_interpolate_midpoint(self):
        mid = interpolate(self.a, self.b, 0.5)
        assert abs(distance(self.a, mid) - 50.0) < 0.01, "Midpoint should be halfway"


class TestPolygonsAndIntersections:
    """Ray casting, intersections and buffers."""

    def setup_method(self):
        self.ring = square(BASE, 10.0)

    def test_point_in_polygon(self):
        assert point_in_polygon(BASE, self.ring), "Center should be inside"
        assert not point_in_polygon(offset_by_meters(BASE, 20.0, 0.0), self.ring), \
            "Point 20m east should be outside a 20m square"

    def test_degenerate_polygon_contains_nothing(self):
        assert not point_in_polygon(BASE, self.ring[:2]), "Fewer than 3 points is not a polygon"

    def test_crossing_segments_intersect(self):
        a1 = offset_by_meters(BASE, 0.0, -50.0)
        a2 = offset_by_meters(BASE, 0.0, 50.0)
        b1 = offset_by_meters(BASE, -50.0, 0.0)
        b2 = offset_by_meters(BASE, 50.0, 0.0)
        point = segment_intersection(a1, a2, b1, b2)
        assert point is not None, "Perpendicular segments should intersect"
        assert distance(point, BASE) < 0.01, "Intersection should be at the shared center"

    def test_parallel_and_disjoint_segments(self):
        a1 = BASE
        a2 = offset_by_meters(BASE, 0.0, 100.0)
        parallel = (offset_by_meters(BASE, 10.0, 0.0), offset_by_meters(BASE, 10.0, 100.0))
        short = (offset_by_meters(BASE, 5.0, 50.0), offset_by_meters(BASE, 50.0, 50.0))
        assert segment_intersection(a1, a2, *parallel) is None, "Parallel segments never intersect"
        assert segment_intersection(a1, a2, *short) is None, "Segment stopping short should not intersect"

    def test_centroid_ignores_closing_vertex(self):
        closed = self.ring + (self.ring[0],)
        assert distance(polygon_centroid(closed), BASE) < 0.01, "Closed ring centroid should be the center"
        assert distance(polygon_centroid(self.ring), BASE) < 0.01, "Open ring centroid should be the center"

    def test_expand_polygon_pushes_vertices_out(self):
        expanded = expand_polygon(self.ring, 1.5)
        assert len(expanded) == len(self.ring), "Buffer keeps the vertex count"
        for original, grown in zip(self.ring, expanded):
            gain = distance(BASE, grown) - distance(BASE, original)
            assert abs(gain - 1.5) < 0.01, f"Vertex should move 1.5m outwards, moved {gain:.3f}m"

    def test_expand_polygon_keeps_degenerate_rings(self):
        assert expand_polygon(self.ring[:2], 1.5) == self.ring[:2], "Rings under 3 points are unchanged"


class TestAngles:
    """Bearings and deflection angles."""

    def test_bearings(self):
        north = offset_by_meters(BASE, 0.0, 100.0)
        east = offset_by_meters(BASE, 100.0, 0.0)
        assert abs(bearing_degrees(BASE, north)) < 0.01, "Due north should be 0"
        assert abs(bearing_degrees(BASE, east) - 90.0) < 0.01, "Due east should be 90"

    def test_deflection(self):
        b = offset_by_meters(BASE, 0.0, 100.0)
        straight = offset_by_meters(BASE, 0.0, 200.0)
        turn = offset_by_meters(b, 100.0, 0.0)
        assert deflection_angle(BASE, b, straight) < 0.01, "Straight line has no deflection"
        assert abs(deflection_angle(BASE, b, turn) - 90.0) < 0.1, "Right-angle turn should be ~90"

    def test_deflection_range(self):
        b = offset_by_meters(BASE, 0.0, 100.0)
        for east, north in ((50, 10), (-50, 10), (-5, -80), (30, -30)):
            angle = deflection_angle(BASE, b, offset_by_meters(b, east, north))
            assert 0.0 <= angle <= 180.0, f"Deflection {angle} out of range"


class TestBoundingBoxAndSlope:

    def test_bounding_box_margin(self):
        other = offset_by_meters(BASE, 100.0, 100.0)
        bbox = bounding_box_around([BASE, other], margin_m=50.0)
        assert bbox.contains(BASE) and bbox.contains(other), "Box should contain its points"
        assert not bbox.contains(offset_by_meters(BASE, -80.0, 0.0)), "Margin should be 50m"

    def test_bounding_box_requires_points(self):
        with pytest.raises(DesignInputError):
            bounding_box_around([])

    def test_slope(self):
        assert slope_percent(100.0, 12.0) == pytest.approx(12.0)
        assert slope_percent(100.0, -12.0) == pytest.approx(12.0), "Slope is absolute"
        assert slope_percent(0.0, 5.0) == 0.0, "Zero run has zero slope"
        assert math.isfinite(slope_percent(1e-3, 1.0))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
