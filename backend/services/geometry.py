"""
Geometry Kernel.

Pure geodesic and planar helpers over WGS84 coordinates. Distances are always
haversine meters; planar tests (projection, intersection, ray casting) work in
raw degree space, which is accurate enough at street scale.

Every meter/degree conversion goes through the named functions below so that
the same Earth radius backs all of them.
"""

import math
from typing import List, Optional, Sequence, Tuple

from data_models import Coordinate, BoundingBox, DesignInputError

EARTH_RADIUS_M = 6371000.0
METERS_PER_DEGREE_LAT = math.pi * EARTH_RADIUS_M / 180.0  # ~111195 m
EPSILON = 1e-10


def distance(a: Coordinate, b: Coordinate) -> float:
    """
    Great-circle distance between two points (haversine).

    Args:
        a: First point
        b: Second point

    Returns:
        Distance in meters
    """
    lat1 = math.radians(a.lat)
    lat2 = math.radians(b.lat)
    dlat = lat2 - lat1
    dlon = math.radians(b.lon - a.lon)

    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    h = min(1.0, max(0.0, h))
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def meters_to_degrees_lat(meters: float) -> float:
    """Convert a north-south distance in meters to degrees of latitude."""
    return meters / METERS_PER_DEGREE_LAT


def meters_per_degree_lng(at_latitude: float) -> float:
    """
    Length in meters of one degree of longitude at a given latitude.

    Raises:
        ValueError: At the poles, where longitude degrees have no length
    """
    cos_lat = math.cos(math.radians(at_latitude))
    if cos_lat < 1e-9:
        raise ValueError(f"Longitude degrees are undefined at latitude {at_latitude}")
    return METERS_PER_DEGREE_LAT * cos_lat


def meters_to_degrees_lng(meters: float, at_latitude: float) -> float:
    """Convert an east-west distance in meters to degrees of longitude."""
    return meters / meters_per_degree_lng(at_latitude)


def local_offset_m(origin: Coordinate, point: Coordinate) -> Tuple[float, float]:
    """
    Position of a point in a local east/north frame centered on origin.

    Returns:
        (east_m, north_m)
    """
    east = (point.lon - origin.lon) * meters_per_degree_lng(origin.lat)
    north = (point.lat - origin.lat) * METERS_PER_DEGREE_LAT
    return east, north


def offset_by_meters(origin: Coordinate, east_m: float, north_m: float) -> Coordinate:
    """Move a point by a local east/north displacement."""
    return Coordinate(
        lat=origin.lat + meters_to_degrees_lat(north_m),
        lon=origin.lon + meters_to_degrees_lng(east_m, origin.lat),
    )


def project_onto_segment(p: Coordinate, a: Coordinate, b: Coordinate) -> Tuple[Coordinate, float]:
    """
    Orthogonal projection of p onto segment a-b, clamped to the segment.

    Returns:
        (projected point, parameter t in [0, 1])
    """
    dx = b.lon - a.lon
    dy = b.lat - a.lat
    length_sq = dx * dx + dy * dy
    if length_sq < EPSILON * EPSILON:
        return a, 0.0

    t = ((p.lon - a.lon) * dx + (p.lat - a.lat) * dy) / length_sq
    t = max(0.0, min(1.0, t))
    return Coordinate(lat=a.lat + t * dy, lon=a.lon + t * dx), t


def point_to_segment_distance(p: Coordinate, a: Coordinate, b: Coordinate) -> float:
    """Distance in meters from p to the closest point of segment a-b."""
    projected, _ = project_onto_segment(p, a, b)
    return distance(p, projected)


def nearest_segment(p: Coordinate, line: Sequence[Coordinate]) -> Optional[Tuple[int, Coordinate, float]]:
    """
    Find the polyline segment closest to p.

    Returns:
        (segment index, projected point, distance in meters), or None for
        polylines with fewer than two points
    """
    best = None
    for i in range(len(line) - 1):
        projected, _ = project_onto_segment(p, line[i], line[i + 1])
        d = distance(p, projected)
        if best is None or d < best[2]:
            best = (i, projected, d)
    return best


def point_to_polyline_distance(p: Coordinate, line: Sequence[Coordinate]) -> float:
    """Distance in meters from p to a polyline (inf when empty)."""
    if not line:
        return math.inf
    if len(line) == 1:
        return distance(p, line[0])
    return nearest_segment(p, line)[2]


def snap_to_polyline(p: Coordinate, line: Sequence[Coordinate]) -> Coordinate:
    """Closest point of a polyline to p."""
    if len(line) < 2:
        return line[0] if line else p
    return nearest_segment(p, line)[1]


def polyline_length(line: Sequence[Coordinate]) -> float:
    return sum(distance(line[i], line[i + 1]) for i in range(len(line) - 1))


def distance_along_polyline(p: Coordinate, line: Sequence[Coordinate]) -> float:
    """
    Chainage of p along a polyline: length up to the nearest segment plus
    the distance from that segment's start to the projection of p.
    """
    if len(line) < 2:
        return distance(line[0], p) if line else 0.0

    index, projected, _ = nearest_segment(p, line)
    travelled = sum(distance(line[i], line[i + 1]) for i in range(index))
    return travelled + distance(line[index], projected)


def point_in_polygon(p: Coordinate, ring: Sequence[Coordinate]) -> bool:
    """
    Ray-casting point-in-polygon test (lon as x, lat as y).

    Rings with fewer than 3 vertices contain nothing.
    """
    n = len(ring)
    if n < 3:
        return False

    inside = False
    j = n - 1
    for i in range(n):
        xi, yi = ring[i].lon, ring[i].lat
        xj, yj = ring[j].lon, ring[j].lat
        if (yi > p.lat) != (yj > p.lat):
            x_cross = (xj - xi) * (p.lat - yi) / (yj - yi) + xi
            if p.lon < x_cross:
                inside = not inside
        j = i
    return inside


def segment_intersection(
    a1: Coordinate,
    a2: Coordinate,
    b1: Coordinate,
    b2: Coordinate,
) -> Optional[Coordinate]:
    """
    Intersection point of segments a1-a2 and b1-b2.

    Returns:
        The intersection when both segment parameters lie in [0, 1];
        None for parallel, collinear or non-touching segments
    """
    d1x = a2.lon - a1.lon
    d1y = a2.lat - a1.lat
    d2x = b2.lon - b1.lon
    d2y = b2.lat - b1.lat

    det = d1x * d2y - d1y * d2x
    if abs(det) < EPSILON:
        return None

    wx = b1.lon - a1.lon
    wy = b1.lat - a1.lat
    t = (wx * d2y - wy * d2x) / det
    u = (wx * d1y - wy * d1x) / det

    if 0.0 <= t <= 1.0 and 0.0 <= u <= 1.0:
        return Coordinate(lat=a1.lat + t * d1y, lon=a1.lon + t * d1x)
    return None


def bearing_degrees(a: Coordinate, b: Coordinate) -> float:
    """Initial bearing from a to b, clockwise from north, in [0, 360)."""
    lat1 = math.radians(a.lat)
    lat2 = math.radians(b.lat)
    dlon = math.radians(b.lon - a.lon)

    y = math.sin(dlon) * math.cos(lat2)
    x = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(dlon)
    return (math.degrees(math.atan2(y, x)) + 360.0) % 360.0


def deflection_angle(p1: Coordinate, p2: Coordinate, p3: Coordinate) -> float:
    """
    Absolute turning angle at p2 in [0, 180].

    0 degrees = straight line, 90 degrees = right-angle turn.
    """
    diff = abs(bearing_degrees(p2, p3) - bearing_degrees(p1, p2))
    if diff > 180.0:
        diff = 360.0 - diff
    return diff


def polygon_centroid(ring: Sequence[Coordinate]) -> Coordinate:
    """Vertex average of a ring (closing vertex counted once)."""
    vertices = list(ring)
    if len(vertices) > 1 and vertices[0] == vertices[-1]:
        vertices = vertices[:-1]
    n = len(vertices)
    return Coordinate(
        lat=sum(v.lat for v in vertices) / n,
        lon=sum(v.lon for v in vertices) / n,
    )


def expand_polygon(ring: Sequence[Coordinate], buffer_m: float) -> Tuple[Coordinate, ...]:
    """
    Approximate outward buffer: every vertex is pushed radially away from
    the centroid by buffer_m (converted with the latitude factor).

    Exact for convex shapes near the centroid only; concave shapes are
    under-buffered at their notches. Rings with fewer than 3 points are
    returned unchanged, as are vertices sitting on the centroid.
    """
    if len(ring) < 3:
        return tuple(ring)

    center = polygon_centroid(ring)
    buffer_deg = meters_to_degrees_lat(buffer_m)

    expanded: List[Coordinate] = []
    for v in ring:
        dx = v.lon - center.lon
        dy = v.lat - center.lat
        dist = math.hypot(dx, dy)
        if dist < EPSILON:
            expanded.append(v)
            continue
        factor = (dist + buffer_deg) / dist
        expanded.append(Coordinate(lat=center.lat + dy * factor, lon=center.lon + dx * factor))
    return tuple(expanded)


def interpolate(a: Coordinate, b: Coordinate, fraction: float) -> Coordinate:
    return Coordinate(
        lat=a.lat + (b.lat - a.lat) * fraction,
        lon=a.lon + (b.lon - a.lon) * fraction,
    )


def bounding_box_around(points: Sequence[Coordinate], margin_m: float = 200.0) -> BoundingBox:
    """
    Bounding box of a set of points, grown by margin_m on every side.

    Raises:
        DesignInputError: If no points are given
    """
    if not points:
        raise DesignInputError("Cannot compute a bounding box without points")

    lats = [p.lat for p in points]
    lons = [p.lon for p in points]
    mid_lat = (min(lats) + max(lats)) / 2
    margin_lat = meters_to_degrees_lat(margin_m)
    margin_lon = meters_to_degrees_lng(margin_m, mid_lat)

    return BoundingBox(
        south=min(lats) - margin_lat,
        west=min(lons) - margin_lon,
        north=max(lats) + margin_lat,
        east=max(lons) + margin_lon,
    )


def slope_percent(horizontal_m: float, rise_m: float) -> float:
    """Absolute grade in percent (0 for zero horizontal distance)."""
    if horizontal_m <= 0:
        return 0.0
    return abs(rise_m) / horizontal_m * 100.0
