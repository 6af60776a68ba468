"""
Barrier Detector Service.

Reports what every finished span has to deal with: rivers, railways, roads
and power lines it crosses, vegetation to clear, trees to trim and steep
terrain. Crossings that need a third-party authorization are critical.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import List, Optional, Sequence

from shapely.geometry import LineString, Polygon, Point

from data_models import Coordinate, TerrainSnapshot, Obstacle, ObstacleKind, ObstacleShape, PoleRecord
from backend.services.geometry import distance, point_to_segment_distance

logger = logging.getLogger(__name__)


class BarrierKind(Enum):
    WATER_CROSSING = "water_crossing"
    RAILWAY_CROSSING = "railway_crossing"
    ROAD_CROSSING = "road_crossing"
    POWER_LINE_CROSSING = "power_line_crossing"
    VEGETATION_CLEARING = "vegetation_clearing"
    TREE_TRIMMING = "tree_trimming"
    STEEP_SLOPE = "steep_slope"


class BarrierSeverity(Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


@dataclass(frozen=True)
class BarrierImpact:
    note: str
    requires_authorization: bool
    min_height_m: Optional[float] = None
    right_of_way_m: Optional[float] = None
    authority: Optional[str] = None


BARRIER_IMPACTS = MappingProxyType({
    BarrierKind.WATER_CROSSING: BarrierImpact(
        "Water crossing requires 6m minimum height and navy/water agency authorization.",
        True, 6.0, 15.0, "Navy / ANA",
    ),
    BarrierKind.RAILWAY_CROSSING: BarrierImpact(
        "Railway crossing requires 9m minimum height and ANTT/operator authorization.",
        True, 9.0, 20.0, "ANTT / Operator",
    ),
    BarrierKind.ROAD_CROSSING: BarrierImpact(
        "Road crossing requires minimum height according to the road class.",
        True, 7.0, 15.0, "DNIT / DER",
    ),
    BarrierKind.POWER_LINE_CROSSING: BarrierImpact(
        "Crossing a transmission line requires minimum safety distance.",
        True, 6.0, 25.0, "Transmission line owner",
    ),
    BarrierKind.VEGETATION_CLEARING: BarrierImpact(
        "Vegetation area requires clearing to keep a 3m safety strip on each side.",
        False, None, 6.0,
    ),
    BarrierKind.TREE_TRIMMING: BarrierImpact(
        "Branch trimming required to keep the safety strip.",
        False, None, 4.0,
    ),
    BarrierKind.STEEP_SLOPE: BarrierImpact(
        "Slope above 20% - check whether a special structure is needed.",
        False,
    ),
})

OBSTACLE_BARRIERS = MappingProxyType({
    ObstacleKind.RIVER: BarrierKind.WATER_CROSSING,
    ObstacleKind.LAKE: BarrierKind.WATER_CROSSING,
    ObstacleKind.RAILWAY: BarrierKind.RAILWAY_CROSSING,
    ObstacleKind.ROAD: BarrierKind.ROAD_CROSSING,
    ObstacleKind.POWER_LINE: BarrierKind.POWER_LINE_CROSSING,
    ObstacleKind.GREEN_AREA: BarrierKind.VEGETATION_CLEARING,
    ObstacleKind.TREE: BarrierKind.TREE_TRIMMING,
})

TREE_PROXIMITY_M = 5.0
STEEP_SLOPE_PERCENT = 20.0
CRITICAL_SLOPE_PERCENT = 35.0


@dataclass(frozen=True)
class Barrier:
    id: str
    kind: BarrierKind
    description: str
    pole_before_id: str
    pole_after_id: str
    severity: BarrierSeverity
    impact: BarrierImpact
    coordinate: Optional[Coordinate] = None
    distance_m: Optional[float] = None  # From the pole before
    name: Optional[str] = None


@dataclass
class BarrierSummary:
    total: int = 0
    critical: int = 0
    warnings: int = 0
    informational: int = 0
    water_crossings: int = 0
    railway_crossings: int = 0
    road_crossings: int = 0
    power_line_crossings: int = 0
    vegetation_areas: int = 0
    trees_to_trim: int = 0
    steep_slopes: int = 0


@dataclass
class BarrierReport:
    barriers: List[Barrier] = field(default_factory=list)
    summary: BarrierSummary = field(default_factory=BarrierSummary)


def _obstacle_geometry(obstacle: Obstacle):
    coords = [(p.lon, p.lat) for p in obstacle.points]
    if obstacle.shape == ObstacleShape.POLYGON and len(coords) >= 3:
        return Polygon(coords).exterior
    if len(coords) >= 2:
        return LineString(coords)
    return None


def _intersection_points(geometry) -> List[Point]:
    if geometry.is_empty:
        return []
    if geometry.geom_type == "Point":
        return [geometry]
    if hasattr(geometry, "geoms"):
        return [p for part in geometry.geoms for p in _intersection_points(part)]
    # Collinear overlap: report where the overlap starts
    return [Point(geometry.coords[0])]


def detect_barriers(
    poles: Sequence[PoleRecord],
    terrain: TerrainSnapshot,
    max_slope_percent: Optional[float] = None,
) -> BarrierReport:
    """
    Detect barriers span by span.

    Args:
        poles: Poles in line order
        terrain: Terrain snapshot with obstacles
        max_slope_percent: Steepest grade of the elevation profile, if known

    Returns:
        BarrierReport with every barrier and the summary counts
    """
    barriers: List[Barrier] = []

    def add(kind, description, before, after, severity, impact, coordinate=None, dist=None, name=None):
        barriers.append(Barrier(
            id=f"BAR-{len(barriers) + 1:03d}",
            kind=kind,
            description=description,
            pole_before_id=before.id,
            pole_after_id=after.id,
            severity=severity,
            impact=impact,
            coordinate=coordinate,
            distance_m=dist,
            name=name,
        ))

    for before, after in zip(poles, poles[1:]):
        start, end = before.coordinate, after.coordinate
        span = LineString([(start.lon, start.lat), (end.lon, end.lat)])

        for obstacle in terrain.obstacles:
            kind = OBSTACLE_BARRIERS.get(obstacle.kind, BarrierKind.VEGETATION_CLEARING)

            if obstacle.shape == ObstacleShape.POINT:
                if obstacle.kind != ObstacleKind.TREE or not obstacle.points:
                    continue
                tree = obstacle.points[0]
                d = point_to_segment_distance(tree, start, end)
                if d <= TREE_PROXIMITY_M:
                    add(BarrierKind.TREE_TRIMMING, f"Tree {d:.1f}m from the line", before, after,
                        BarrierSeverity.INFO, BARRIER_IMPACTS[BarrierKind.TREE_TRIMMING],
                        coordinate=tree, dist=d, name=obstacle.name)
                continue

            geometry = _obstacle_geometry(obstacle)
            if geometry is None:
                continue
            impact = BARRIER_IMPACTS[kind]
            severity = BarrierSeverity.CRITICAL if impact.requires_authorization else BarrierSeverity.WARNING
            for point in _intersection_points(span.intersection(geometry)):
                crossing = Coordinate(lat=point.y, lon=point.x)
                add(kind, f"Crossing of {obstacle.name or obstacle.kind.value}", before, after,
                    severity, impact, coordinate=crossing, dist=distance(start, crossing), name=obstacle.name)

        if max_slope_percent is not None and max_slope_percent > STEEP_SLOPE_PERCENT:
            critical = max_slope_percent > CRITICAL_SLOPE_PERCENT
            base = BARRIER_IMPACTS[BarrierKind.STEEP_SLOPE]
            impact = BarrierImpact(
                note=(f"Slope of {max_slope_percent:.1f}% - "
                      f"{'special structure required' if critical else 'check foundation'}"),
                requires_authorization=base.requires_authorization,
            )
            add(BarrierKind.STEEP_SLOPE, f"Slope of {max_slope_percent:.1f}% on the span", before, after,
                BarrierSeverity.CRITICAL if critical else BarrierSeverity.WARNING, impact)

    report = BarrierReport(barriers=barriers, summary=summarize(barriers))
    logger.info(
        f"Barriers detected: {report.summary.total} "
        f"({report.summary.critical} critical, {report.summary.warnings} warnings, "
        f"{report.summary.informational} info)"
    )
    return report


def summarize(barriers: Sequence[Barrier]) -> BarrierSummary:
    """Count barriers by severity and by kind."""
    summary = BarrierSummary(total=len(barriers))
    kind_counters = {
        BarrierKind.WATER_CROSSING: "water_crossings",
        BarrierKind.RAILWAY_CROSSING: "railway_crossings",
        BarrierKind.ROAD_CROSSING: "road_crossings",
        BarrierKind.POWER_LINE_CROSSING: "power_line_crossings",
        BarrierKind.VEGETATION_CLEARING: "vegetation_areas",
        BarrierKind.TREE_TRIMMING: "trees_to_trim",
        BarrierKind.STEEP_SLOPE: "steep_slopes",
    }
    for barrier in barriers:
        if barrier.severity == BarrierSeverity.CRITICAL:
            summary.critical += 1
        elif barrier.severity == BarrierSeverity.WARNING:
            summary.warnings += 1
        else:
            summary.informational += 1
        counter = kind_counters[barrier.kind]
        setattr(summary, counter, getattr(summary, counter) + 1)
    return summary
