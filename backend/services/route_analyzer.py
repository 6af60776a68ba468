"""
Route Analyzer Service.

Detects the geometric features of a routed line that decide where poles must
stand:
- Corners: street intersections near the route (good pole spots)
- Crossings: highways, avenues, railways and rivers cut by the route
  (double poles, one on each side)
- Exclusion zones: building footprints plus facade clearance
"""

import math
import logging
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Dict, List, Optional, Sequence, Set, Tuple

from data_models import (
    Coordinate, TerrainSnapshot, Street, ObstacleKind, ObstacleShape, DesignInputError,
)
from backend.config import PlannerSettings, get_settings
from backend.services.geometry import (
    distance, segment_intersection, point_to_polyline_distance, polyline_length,
    local_offset_m, offset_by_meters, expand_polygon, distance_along_polyline,
    interpolate, point_in_polygon,
)

logger = logging.getLogger(__name__)


class CrossingKind(Enum):
    """Features that force a pair of poles around the crossing point."""
    AVENUE = "avenue"
    HIGHWAY = "highway"
    RAILWAY = "railway"
    RIVER = "river"


@dataclass(frozen=True)
class Corner:
    """Street intersection within reach of the route."""
    id: str
    coordinate: Coordinate
    streets: Tuple[str, str]
    angle_deg: float  # Angle between the two streets, [0, 360)
    priority: float  # 35 (nearly parallel) to 80 (perpendicular)


@dataclass(frozen=True)
class Crossing:
    """
    Feature crossed by the route.

    before/after sit on the route line on each side of the intersection, at
    half the feature width plus the pole clearance. For polygon features
    they sit the pole clearance outside the entry and exit banks and
    intersection is the midpoint between the banks.
    """
    id: str
    kind: CrossingKind
    name: str
    intersection: Coordinate
    before: Coordinate
    after: Coordinate
    width_m: float
    min_clearance_height_m: float
    source_id: str
    requires_double_poles: bool = True


@dataclass(frozen=True)
class ExclusionZone:
    """Building footprint where no pole may stand."""
    id: str
    kind: str
    polygon: Tuple[Coordinate, ...]
    buffered: Tuple[Coordinate, ...]
    buffer_m: float
    name: Optional[str] = None


class RouteAnalyzer:
    """
    Detects corners, crossings and exclusion zones along a route.

    Detection runs once, on construction; the results are plain lists.
    """

    HIGHWAY_TAGS = frozenset({"motorway", "trunk", "primary", "motorway_link", "trunk_link"})
    AVENUE_TAGS = frozenset({"secondary", "tertiary"})

    # (default width m, minimum clearance height m)
    CROSSING_PROFILES = MappingProxyType({
        CrossingKind.HIGHWAY: (20.0, 7.0),
        CrossingKind.AVENUE: (12.0, 6.0),
        CrossingKind.RAILWAY: (15.0, 9.0),
        CrossingKind.RIVER: (20.0, 6.0),
    })

    OBSTACLE_CROSSINGS = MappingProxyType({
        ObstacleKind.RAILWAY: CrossingKind.RAILWAY,
        ObstacleKind.RIVER: CrossingKind.RIVER,
    })

    MIN_SEGMENT_LENGTH_M = 1e-6

    def __init__(
        self,
        route: Sequence[Coordinate],
        terrain: TerrainSnapshot,
        settings: Optional[PlannerSettings] = None,
    ):
        """
        Initialize route analyzer.

        Args:
            route: Routed polyline from origin to destination
            terrain: Terrain snapshot around the route
            settings: Planner settings (clearances, search radius)
        """
        if route is None or terrain is None:
            raise DesignInputError("Route and terrain are required")

        self.route = list(route)
        self.terrain = terrain
        self.settings = settings or get_settings()

        self.corners: List[Corner] = []
        self.crossings: List[Crossing] = []
        self.exclusion_zones: List[ExclusionZone] = []

        if len(self.route) < 2:
            logger.warning("Insufficient route coordinates for route analysis")
            return

        self._detect_corners()
        self._detect_crossings()
        self._build_exclusion_zones()

        logger.info(
            f"Route analyzed: {len(self.corners)} corners, {len(self.crossings)} crossings, "
            f"{len(self.exclusion_zones)} exclusion zones over {self.total_distance():.0f}m"
        )

    def total_distance(self) -> float:
        return polyline_length(self.route)

    def statistics(self) -> Dict[str, float]:
        """Feature counts and route length."""
        return {
            "total_corners": len(self.corners),
            "total_crossings": len(self.crossings),
            "total_exclusion_zones": len(self.exclusion_zones),
            "total_distance_m": self.total_distance(),
        }

    # ------------------------------------------------------------------
    # Corners
    # ------------------------------------------------------------------

    def _detect_corners(self) -> None:
        streets = [s for s in self.terrain.streets if len(s.points) >= 2]
        radius = self.settings.corner_search_radius_m
        seen: Set[Tuple[float, float]] = set()

        for i, street_a in enumerate(streets):
            for street_b in streets[i + 1:]:
                if street_a.id == street_b.id:
                    continue
                for a1, a2 in zip(street_a.points, street_a.points[1:]):
                    for b1, b2 in zip(street_b.points, street_b.points[1:]):
                        point = segment_intersection(a1, a2, b1, b2)
                        if point is None:
                            continue
                        if point_to_polyline_distance(point, self.route) > radius:
                            continue
                        key = point.rounded(6)
                        if key in seen:
                            continue
                        seen.add(key)

                        angle = self._street_angle(point, a1, a2, b1, b2)
                        priority = 80.0 - abs(90.0 - abs(angle - 180.0)) / 2.0
                        self.corners.append(Corner(
                            id=f"CORNER-{len(self.corners) + 1:03d}",
                            coordinate=point,
                            streets=(street_a.name, street_b.name),
                            angle_deg=angle,
                            priority=priority,
                        ))
                        logger.debug(
                            f"Corner {street_a.name} x {street_b.name} at "
                            f"({point.lat:.6f}, {point.lon:.6f}), angle {angle:.1f}"
                        )

    @staticmethod
    def _street_angle(
        point: Coordinate,
        a1: Coordinate,
        a2: Coordinate,
        b1: Coordinate,
        b2: Coordinate,
    ) -> float:
        """
        Angle from street A to street B at their intersection, in [0, 360).

        Each street direction points from the intersection to the farther
        endpoint of its segment, so an intersection on a vertex never yields
        a zero vector.
        """
        far_a = a2 if distance(point, a2) >= distance(point, a1) else a1
        far_b = b2 if distance(point, b2) >= distance(point, b1) else b1
        ax, ay = local_offset_m(point, far_a)
        bx, by = local_offset_m(point, far_b)

        cross = ax * by - ay * bx
        dot = ax * bx + ay * by
        return (math.degrees(math.atan2(cross, dot)) + 360.0) % 360.0

    # ------------------------------------------------------------------
    # Crossings
    # ------------------------------------------------------------------

    def _street_crossing_kind(self, street: Street) -> Optional[CrossingKind]:
        if street.highway in self.HIGHWAY_TAGS:
            return CrossingKind.HIGHWAY
        if street.highway in self.AVENUE_TAGS:
            return CrossingKind.AVENUE
        return None

    def _detect_crossings(self) -> None:
        seen: Set[Tuple[str, Tuple[float, float]]] = set()

        for street in self.terrain.streets:
            kind = self._street_crossing_kind(street)
            if kind is None or len(street.points) < 2:
                continue
            default_width, min_height = self.CROSSING_PROFILES[kind]
            width = street.width_m or default_width
            self._cross_feature(street.points, kind, street.name or kind.value, width, min_height, street.id, seen)

        for obstacle in self.terrain.obstacles:
            kind = self.OBSTACLE_CROSSINGS.get(obstacle.kind)
            if kind is None or obstacle.shape == ObstacleShape.POINT or len(obstacle.points) < 2:
                continue
            name = obstacle.name or kind.value
            width, min_height = self.CROSSING_PROFILES[kind]
            if obstacle.shape == ObstacleShape.POLYGON and len(obstacle.points) > 2:
                ring = list(obstacle.points) + [obstacle.points[0]]
                self._cross_area(ring, kind, name, min_height, obstacle.id, seen)
            else:
                self._cross_feature(obstacle.points, kind, name, width, min_height, obstacle.id, seen)

    def _cross_feature(
        self,
        feature: Sequence[Coordinate],
        kind: CrossingKind,
        name: str,
        width_m: float,
        min_height_m: float,
        source_id: str,
        seen: Set[Tuple[str, Tuple[float, float]]],
    ) -> None:
        offset_m = width_m / 2.0 + self.settings.crossing_pole_clearance_m

        for r1, r2 in zip(self.route, self.route[1:]):
            east, north = local_offset_m(r1, r2)
            norm = math.hypot(east, north)
            if norm < self.MIN_SEGMENT_LENGTH_M:
                continue
            ux, uy = east / norm, north / norm

            for f1, f2 in zip(feature, feature[1:]):
                point = segment_intersection(r1, r2, f1, f2)
                if point is None:
                    continue
                # Route vertex lying on the feature is hit by both adjacent segments
                key = (source_id, point.rounded(6))
                if key in seen:
                    continue
                seen.add(key)

                self._add_crossing(
                    kind, name, point,
                    offset_by_meters(point, -ux * offset_m, -uy * offset_m),
                    offset_by_meters(point, ux * offset_m, uy * offset_m),
                    width_m, min_height_m, source_id,
                )

    def _cross_area(
        self,
        ring: Sequence[Coordinate],
        kind: CrossingKind,
        name: str,
        min_height_m: float,
        source_id: str,
        seen: Set[Tuple[str, Tuple[float, float]]],
    ) -> None:
        """
        Cross a polygon feature as one span per entry/exit pair of banks, with
        the poles outside both banks. A bank without a partner, where the
        route starts or ends inside the polygon, is crossed like a line of
        the default width.
        """
        clearance_m = self.settings.crossing_pole_clearance_m
        default_width, _ = self.CROSSING_PROFILES[kind]

        hits = []
        for r1, r2 in zip(self.route, self.route[1:]):
            east, north = local_offset_m(r1, r2)
            norm = math.hypot(east, north)
            if norm < self.MIN_SEGMENT_LENGTH_M:
                continue
            for f1, f2 in zip(ring, ring[1:]):
                point = segment_intersection(r1, r2, f1, f2)
                if point is None:
                    continue
                key = (source_id, point.rounded(6))
                if key in seen:
                    continue
                seen.add(key)
                hits.append((distance_along_polyline(point, self.route), point, east / norm, north / norm))
        hits.sort(key=lambda hit: hit[0])

        def single_bank(hit) -> None:
            _, point, ux, uy = hit
            offset_m = default_width / 2.0 + clearance_m
            self._add_crossing(
                kind, name, point,
                offset_by_meters(point, -ux * offset_m, -uy * offset_m),
                offset_by_meters(point, ux * offset_m, uy * offset_m),
                default_width, min_height_m, source_id,
            )

        if hits and point_in_polygon(self.route[0], ring):
            single_bank(hits.pop(0))

        for (_, entry, ex, ey), (_, exit_point, xx, xy) in zip(hits[0::2], hits[1::2]):
            self._add_crossing(
                kind, name, interpolate(entry, exit_point, 0.5),
                offset_by_meters(entry, -ex * clearance_m, -ey * clearance_m),
                offset_by_meters(exit_point, xx * clearance_m, xy * clearance_m),
                distance(entry, exit_point), min_height_m, source_id,
            )

        if len(hits) % 2:
            single_bank(hits[-1])

    def _add_crossing(
        self,
        kind: CrossingKind,
        name: str,
        intersection: Coordinate,
        before: Coordinate,
        after: Coordinate,
        width_m: float,
        min_height_m: float,
        source_id: str,
    ) -> None:
        self.crossings.append(Crossing(
            id=f"CROSS-{len(self.crossings) + 1:03d}",
            kind=kind,
            name=name,
            intersection=intersection,
            before=before,
            after=after,
            width_m=width_m,
            min_clearance_height_m=min_height_m,
            source_id=source_id,
        ))
        logger.debug(f"Crossing {kind.value} '{name}' at ({intersection.lat:.6f}, {intersection.lon:.6f})")


    # ------------------------------------------------------------------
    # Exclusion zones
    # ------------------------------------------------------------------

    def _build_exclusion_zones(self) -> None:
        buffer_m = self.settings.facade_clearance_m
        for building in self.terrain.buildings:
            if len(building.points) < 3:
                continue
            self.exclusion_zones.append(ExclusionZone(
                id=f"EXCL-{building.id}",
                kind="building",
                polygon=tuple(building.points),
                buffered=expand_polygon(building.points, buffer_m),
                buffer_m=buffer_m,
                name=building.name,
            ))
