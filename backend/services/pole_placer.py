"""
Pole Placement Module.

Implements the 5-phase pole placement algorithm:
1. Seed mandatory anchors (origin, crossing pairs, destination)
2. Order anchors along the route
3. Fill long gaps (corners preferred, otherwise snapped to the route)
4. Repair spans still above the maximum (bounded midpoint insertion)
5. Move anchors out of building exclusion zones
"""

import math
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional, Sequence, Set, Tuple

from data_models import (
    Coordinate, TerrainSnapshot, ValidationFinding, Severity, DesignInputError,
)
from backend.config import PlannerSettings, get_settings
from backend.services.geometry import (
    distance, interpolate, snap_to_polyline, distance_along_polyline,
    point_in_polygon, polygon_centroid, local_offset_m, offset_by_meters,
)
from backend.services.route_analyzer import RouteAnalyzer, Corner, Crossing, ExclusionZone

logger = logging.getLogger(__name__)


class AnchorKind(Enum):
    ORIGIN = "origin"
    DESTINATION = "destination"
    CORNER = "corner"
    CROSSING_BEFORE = "crossing_before"
    CROSSING_AFTER = "crossing_after"
    INTERMEDIATE = "intermediate"


@dataclass(frozen=True)
class Anchor:
    """Chosen pole position with the reason it was chosen."""
    coordinate: Coordinate
    kind: AnchorKind
    priority: float
    justification: str
    corner: Optional[Corner] = None
    crossing: Optional[Crossing] = None


@dataclass
class PlacementStatistics:
    total_corners: int = 0
    total_crossings: int = 0
    total_exclusion_zones: int = 0
    total_distance_m: float = 0.0
    poles_at_corners: int = 0
    crossing_poles: int = 0
    total_poles: int = 0


@dataclass
class PlacementResult:
    """Ordered anchors from origin to destination plus the detected features."""
    anchors: List[Anchor] = field(default_factory=list)
    corners: List[Corner] = field(default_factory=list)
    crossings: List[Crossing] = field(default_factory=list)
    exclusion_zones: List[ExclusionZone] = field(default_factory=list)
    route: List[Coordinate] = field(default_factory=list)
    statistics: PlacementStatistics = field(default_factory=PlacementStatistics)
    repair_iterations: int = 0
    repair_converged: bool = True
    findings: List[ValidationFinding] = field(default_factory=list)


class PolePlacer:
    """
    Places pole anchors along a route.

    The final anchor list respects max_span between every consecutive pair
    unless the repair phase hit its iteration cap, which is reported in the
    result instead of raised.
    """

    ENDPOINT_PRIORITY = 100.0
    CROSSING_PRIORITY = 90.0
    INTERMEDIATE_PRIORITY = 50.0
    # Haversine lengths of exact multiples land a few ulps off
    SPAN_TOLERANCE_M = 1e-6
    BUILDING_ADJUSTMENT_NOTE = " (adjusted to avoid building)"

    def __init__(
        self,
        ideal_span_m: float,
        max_span_m: float,
        min_span_m: float = 0.0,
        settings: Optional[PlannerSettings] = None,
        max_repair_iterations: Optional[int] = None,
    ):
        """
        Initialize pole placer.

        Args:
            ideal_span_m: Target span used to fill long gaps
            max_span_m: Maximum allowed span length
            min_span_m: Minimum allowed span length (reported, not enforced)
            settings: Planner settings; defaults to the environment settings
            max_repair_iterations: Overrides the configured repair cap
        """
        if ideal_span_m is None or ideal_span_m <= 0:
            raise DesignInputError(f"Ideal span must be positive, got {ideal_span_m}")
        if max_span_m is None or max_span_m <= 0:
            raise DesignInputError(f"Maximum span must be positive, got {max_span_m}")
        if min_span_m < 0:
            raise DesignInputError(f"Minimum span cannot be negative, got {min_span_m}")

        self.ideal_span_m = ideal_span_m
        self.max_span_m = max_span_m
        self.min_span_m = min_span_m
        self.settings = settings or get_settings()
        self.max_repair_iterations = max_repair_iterations or self.settings.max_repair_iterations

    def place(self, route: Sequence[Coordinate], terrain: TerrainSnapshot) -> PlacementResult:
        """
        Place poles along a route.

        Args:
            route: Routed polyline from origin to destination
            terrain: Terrain snapshot around the route

        Returns:
            PlacementResult; empty when the route has fewer than 2 points
        """
        if route is None or terrain is None:
            raise DesignInputError("Route and terrain are required for placement")

        route = list(route)
        if len(route) < 2:
            logger.warning("Insufficient route coordinates for pole placement")
            return PlacementResult(route=route)

        analyzer = RouteAnalyzer(route, terrain, self.settings)

        # Phase 1: Seed mandatory anchors
        anchors = self._phase1_seed(route, analyzer.crossings)
        logger.info(f"Phase 1: Seeded {len(anchors)} mandatory anchors")

        # Phase 2: Order along the route
        anchors = self._phase2_order(anchors, route)

        # Phase 3: Fill long gaps
        anchors = self._phase3_fill(anchors, route, analyzer.corners)
        logger.info(f"Phase 3: {len(anchors)} anchors after filling gaps > {self.max_span_m:.0f}m")

        # Phase 4: Repair remaining long spans
        anchors, iterations, converged = self._phase4_repair(anchors, route)
        findings: List[ValidationFinding] = []
        if not converged:
            longest = self._longest_span(anchors)
            logger.warning(
                f"Phase 4: Span repair stopped after {iterations} iterations, "
                f"longest span {longest:.1f}m > {self.max_span_m:.0f}m"
            )
            findings.append(ValidationFinding(
                field="placement.span_repair",
                actual=f"{longest:.1f}",
                expected=f"<= {self.max_span_m:g}",
                severity=Severity.WARNING,
                message=(f"Span repair did not converge after {iterations} iterations; "
                         f"longest span {longest:.1f}m"),
            ))
        elif iterations:
            logger.info(f"Phase 4: Span repair converged in {iterations} iterations")

        # Phase 5: Avoid buildings
        anchors = self._phase5_avoid_buildings(anchors, analyzer.exclusion_zones)

        statistics = PlacementStatistics(
            **analyzer.statistics(),
            poles_at_corners=sum(1 for a in anchors if a.kind == AnchorKind.CORNER),
            crossing_poles=sum(
                1 for a in anchors if a.kind in (AnchorKind.CROSSING_BEFORE, AnchorKind.CROSSING_AFTER)
            ),
            total_poles=len(anchors),
        )
        logger.info(
            f"Placement complete: {statistics.total_poles} poles over {statistics.total_distance_m:.0f}m "
            f"({statistics.poles_at_corners} at corners, {statistics.crossing_poles} at crossings)"
        )

        return PlacementResult(
            anchors=anchors,
            corners=list(analyzer.corners),
            crossings=list(analyzer.crossings),
            exclusion_zones=list(analyzer.exclusion_zones),
            route=route,
            statistics=statistics,
            repair_iterations=iterations,
            repair_converged=converged,
            findings=findings,
        )

    def _phase1_seed(self, route: List[Coordinate], crossings: Sequence[Crossing]) -> List[Anchor]:
        anchors = [Anchor(route[0], AnchorKind.ORIGIN, self.ENDPOINT_PRIORITY, "Line origin")]
        for crossing in crossings:
            label = f"Crossing {crossing.name} ({crossing.kind.value})"
            anchors.append(Anchor(
                crossing.before, AnchorKind.CROSSING_BEFORE, self.CROSSING_PRIORITY,
                f"{label} - before", crossing=crossing,
            ))
            anchors.append(Anchor(
                crossing.after, AnchorKind.CROSSING_AFTER, self.CROSSING_PRIORITY,
                f"{label} - after", crossing=crossing,
            ))
        anchors.append(Anchor(route[-1], AnchorKind.DESTINATION, self.ENDPOINT_PRIORITY, "Line destination"))
        return anchors

    def _phase2_order(self, anchors: List[Anchor], route: List[Coordinate]) -> List[Anchor]:
        # sorted() is stable: ties keep seeding order
        return sorted(anchors, key=lambda a: distance_along_polyline(a.coordinate, route))

    def _phase3_fill(
        self,
        anchors: List[Anchor],
        route: List[Coordinate],
        corners: Sequence[Corner],
    ) -> List[Anchor]:
        filled = [anchors[0]]
        used_corners: Set[str] = set()

        for current in anchors[1:]:
            previous = filled[-1]
            gap = distance(previous.coordinate, current.coordinate)
            if gap > self.max_span_m + self.SPAN_TOLERANCE_M:
                count = math.ceil((gap - self.SPAN_TOLERANCE_M) / self.ideal_span_m) - 1
                for k in range(1, count + 1):
                    target = interpolate(previous.coordinate, current.coordinate, k / (count + 1))
                    filled.append(self._intermediate_anchor(target, route, corners, used_corners))
            filled.append(current)

        return filled

    def _intermediate_anchor(
        self,
        target: Coordinate,
        route: List[Coordinate],
        corners: Sequence[Corner],
        used_corners: Set[str],
    ) -> Anchor:
        """Nearest unused corner within half an ideal span, else the route point nearest target."""
        best_corner = None
        best_distance = self.ideal_span_m / 2.0
        for corner in corners:
            if corner.id in used_corners:
                continue
            d = distance(target, corner.coordinate)
            if d < best_distance:
                best_distance = d
                best_corner = corner

        if best_corner is not None:
            used_corners.add(best_corner.id)
            streets = " x ".join(best_corner.streets)
            return Anchor(
                best_corner.coordinate, AnchorKind.CORNER, best_corner.priority,
                f"Corner {streets}", corner=best_corner,
            )

        return Anchor(
            snap_to_polyline(target, route), AnchorKind.INTERMEDIATE, self.INTERMEDIATE_PRIORITY,
            f"Intermediate pole (ideal span {self.ideal_span_m:.0f}m)",
        )

    def _longest_span(self, anchors: Sequence[Anchor]) -> float:
        return max(
            (distance(a.coordinate, b.coordinate) for a, b in zip(anchors, anchors[1:])),
            default=0.0,
        )

    def _phase4_repair(self, anchors: List[Anchor], route: List[Coordinate]) -> Tuple[List[Anchor], int, bool]:
        """
        Insert a route-snapped midpoint into every span above the maximum,
        until a pass finds none or the iteration cap is reached.

        Returns:
            (anchors, iterations performed, converged)
        """
        iterations = 0
        while self._longest_span(anchors) > self.max_span_m + self.SPAN_TOLERANCE_M:
            if iterations >= self.max_repair_iterations:
                return anchors, iterations, False

            repaired = [anchors[0]]
            for current in anchors[1:]:
                previous = repaired[-1]
                span = distance(previous.coordinate, current.coordinate)
                if span > self.max_span_m + self.SPAN_TOLERANCE_M:
                    midpoint = interpolate(previous.coordinate, current.coordinate, 0.5)
                    repaired.append(Anchor(
                        snap_to_polyline(midpoint, route), AnchorKind.INTERMEDIATE,
                        self.INTERMEDIATE_PRIORITY, "Intermediate pole (span repair)",
                    ))
                repaired.append(current)
            anchors = repaired
            iterations += 1

        return anchors, iterations, True

    def _phase5_avoid_buildings(
        self,
        anchors: List[Anchor],
        zones: Sequence[ExclusionZone],
    ) -> List[Anchor]:
        adjusted = []
        for anchor in anchors:
            for zone in zones:
                if point_in_polygon(anchor.coordinate, zone.buffered):
                    anchor = self._escape_zone(anchor, zone)
                    break
            adjusted.append(anchor)
        return adjusted

    def _escape_zone(self, anchor: Anchor, zone: ExclusionZone) -> Anchor:
        """
        Move an anchor radially away from the zone centroid in steps of
        buffer + margin until it leaves the buffered polygon. An anchor on
        the centroid moves due north.
        """
        center = polygon_centroid(zone.polygon)
        step_m = zone.buffer_m + self.settings.exclusion_escape_margin_m

        east, north = local_offset_m(center, anchor.coordinate)
        norm = math.hypot(east, north)
        if norm < 1e-6:
            ux, uy = 0.0, 1.0
        else:
            ux, uy = east / norm, north / norm

        point = anchor.coordinate
        for _ in range(self.settings.max_exclusion_escape_steps):
            point = offset_by_meters(point, ux * step_m, uy * step_m)
            if not point_in_polygon(point, zone.buffered):
                break
        else:
            logger.warning(f"Anchor '{anchor.justification}' still inside {zone.id} after relocation")

        logger.debug(
            f"Anchor moved {distance(anchor.coordinate, point):.1f}m out of {zone.id}"
        )
        return replace(
            anchor,
            coordinate=point,
            justification=anchor.justification + self.BUILDING_ADJUSTMENT_NOTE,
        )


def place_poles(
    route: Sequence[Coordinate],
    terrain: TerrainSnapshot,
    ideal_span_m: float,
    max_span_m: float,
    min_span_m: float = 0.0,
    settings: Optional[PlannerSettings] = None,
) -> PlacementResult:
    """Convenience wrapper around PolePlacer.place."""
    placer = PolePlacer(ideal_span_m, max_span_m, min_span_m, settings=settings)
    return placer.place(route, terrain)
