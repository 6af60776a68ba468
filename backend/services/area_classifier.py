"""
Area Classifier Service.

Decides whether a project area is urban or rural from the density of
buildings and streets in the terrain snapshot, and holds the per-area span
rules used to pick the ideal span of a line.

Urban areas get shorter spans (safety); rural areas longer ones (economy).
The maximum span of a concrete project is always decided by the rules
engine; this table only provides the ideal target and the span window of
each individual network type.
"""

import math
import logging
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Optional, Tuple

from data_models import AreaType, NetworkType, TerrainSnapshot, BoundingBox, ProjectConfig
from backend.services.geometry import polyline_length, meters_per_degree_lng, METERS_PER_DEGREE_LAT

logger = logging.getLogger(__name__)


class SpanNetwork(Enum):
    """Network kinds with their own span window."""
    MV_CONVENTIONAL = "mv_conventional"
    MV_COMPACT = "mv_compact"
    LV_MULTIPLEXED = "lv_multiplexed"
    LV_CONVENTIONAL = "lv_conventional"


@dataclass(frozen=True)
class SpanRules:
    """Span window (m) and minimum clearance heights (m) for one network kind."""
    min_span_m: float
    max_span_m: float
    ideal_span_m: float
    min_height_mv_m: float
    min_height_lv_m: float


SPAN_RULES = MappingProxyType({
    AreaType.URBAN: MappingProxyType({
        SpanNetwork.MV_CONVENTIONAL: SpanRules(30, 80, 50, 6.0, 5.5),
        SpanNetwork.MV_COMPACT: SpanRules(25, 40, 35, 5.5, 5.0),
        SpanNetwork.LV_MULTIPLEXED: SpanRules(20, 35, 30, 0.0, 5.5),
        SpanNetwork.LV_CONVENTIONAL: SpanRules(20, 30, 25, 0.0, 6.0),
    }),
    AreaType.RURAL: MappingProxyType({
        SpanNetwork.MV_CONVENTIONAL: SpanRules(40, 150, 100, 6.0, 5.5),
        SpanNetwork.MV_COMPACT: SpanRules(35, 80, 60, 5.5, 5.0),
        SpanNetwork.LV_MULTIPLEXED: SpanRules(25, 40, 35, 0.0, 5.5),
        SpanNetwork.LV_CONVENTIONAL: SpanRules(25, 35, 30, 0.0, 6.0),
    }),
})

URBAN_BUILDING_DENSITY = 100.0  # buildings per km2
RURAL_BUILDING_DENSITY = 20.0  # buildings per km2
URBAN_STREET_DENSITY = 10.0  # km of streets per km2

OBSTACLE_SPAN_FACTOR = 0.8
SLOPE_REDUCTION_START = 15.0  # percent
MIN_SLOPE_FACTOR = 0.7


@dataclass(frozen=True)
class AreaClassification:
    """Outcome of the density analysis."""
    area_type: AreaType
    confidence: float  # 0-1
    building_density_per_km2: float = 0.0
    street_density_km_per_km2: float = 0.0
    built_percent: float = 0.0


def span_network_for(config: ProjectConfig) -> SpanNetwork:
    """Span table entry of the MV line described by a project config."""
    if config.network_type == NetworkType.COMPACT:
        return SpanNetwork.MV_COMPACT
    return SpanNetwork.MV_CONVENTIONAL


def bounding_box_area_km2(bbox: BoundingBox) -> float:
    mid_lat = (bbox.north + bbox.south) / 2
    width_km = (bbox.east - bbox.west) * meters_per_degree_lng(mid_lat) / 1000.0
    height_km = (bbox.north - bbox.south) * METERS_PER_DEGREE_LAT / 1000.0
    return width_km * height_km


def classify_area(terrain: TerrainSnapshot) -> AreaClassification:
    """
    Classify the snapshot area as urban or rural.

    Dense buildings or dense streets make an area urban; sparse buildings
    and sparse streets make it rural. Intermediate areas lean urban above
    twice the rural building density, with low confidence.
    """
    bbox = terrain.bounding_box
    area_km2 = bounding_box_area_km2(bbox) if bbox is not None else 0.0
    if area_km2 <= 0:
        logger.warning("No usable bounding box for area classification, assuming rural")
        return AreaClassification(AreaType.RURAL, 0.5)

    building_density = len(terrain.buildings) / area_km2
    street_km = sum(polyline_length(street.points) for street in terrain.streets) / 1000.0
    street_density = street_km / area_km2
    built_percent = min(100.0, building_density / 5)

    if building_density >= URBAN_BUILDING_DENSITY or street_density >= URBAN_STREET_DENSITY:
        area_type = AreaType.URBAN
        confidence = min(0.9, 0.5 + (building_density / URBAN_BUILDING_DENSITY) * 0.4)
    elif building_density <= RURAL_BUILDING_DENSITY and street_density < URBAN_STREET_DENSITY / 2:
        area_type = AreaType.RURAL
        confidence = min(0.9, 0.7 + (1 - building_density / RURAL_BUILDING_DENSITY) * 0.2)
    else:
        area_type = AreaType.URBAN if building_density > RURAL_BUILDING_DENSITY * 2 else AreaType.RURAL
        confidence = 0.5

    logger.info(
        f"Area classified as {area_type.value} (confidence {confidence:.0%}): "
        f"{building_density:.1f} buildings/km2, {street_density:.1f} km streets/km2"
    )
    return AreaClassification(area_type, confidence, building_density, street_density, built_percent)


def span_rules(area_type: AreaType, network: SpanNetwork) -> SpanRules:
    return SPAN_RULES[area_type][network]


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def ideal_span(
    area_type: AreaType,
    network: SpanNetwork,
    has_obstacles: bool = False,
    max_slope_percent: float = 0.0,
) -> float:
    """
    Ideal span for a network kind, reduced for obstacles and steep terrain.

    Args:
        area_type: Urban or rural
        network: Network kind
        has_obstacles: Whether the route meets obstacles (x0.8)
        max_slope_percent: Steepest grade along the route; above 15% the span
            shrinks linearly down to 70%

    Returns:
        Rounded ideal span in meters, never below the table minimum
    """
    rules = span_rules(area_type, network)
    span = rules.ideal_span_m

    if has_obstacles:
        span = max(rules.min_span_m, span * OBSTACLE_SPAN_FACTOR)

    if max_slope_percent > SLOPE_REDUCTION_START:
        factor = max(MIN_SLOPE_FACTOR, 1 - (max_slope_percent - SLOPE_REDUCTION_START) / 50)
        span = max(rules.min_span_m, span * factor)

    return float(_round_half_up(span))


def validate_span(length_m: float, area_type: AreaType, network: SpanNetwork) -> Tuple[bool, Optional[str]]:
    """Check a span length against the window of its network kind."""
    rules = span_rules(area_type, network)
    if length_m < rules.min_span_m:
        return False, (f"Span of {length_m:.1f}m below the minimum of {rules.min_span_m:.0f}m "
                       f"for {area_type.value} area")
    if length_m > rules.max_span_m:
        return False, (f"Span of {length_m:.1f}m above the maximum of {rules.max_span_m:.0f}m "
                       f"for {area_type.value} area")
    return True, None
