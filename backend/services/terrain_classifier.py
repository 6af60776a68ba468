"""
Terrain Classifier Service.

Maps any coordinate to a terrain category and traversal cost given a terrain
snapshot, and builds diagnostic cost grids over a bounding box. Lower cost is
easier to build along; buildings are impassable (infinite cost).
"""

import math
import logging
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from data_models import (
    Coordinate, BoundingBox, TerrainSnapshot, Obstacle, ObstacleKind,
    ObstacleShape, ElevationPoint, DesignInputError,
)
from backend.config import get_settings
from backend.services.geometry import (
    distance, point_in_polygon, point_to_polyline_distance,
    meters_to_degrees_lat, meters_to_degrees_lng, meters_per_degree_lng,
    METERS_PER_DEGREE_LAT, slope_percent,
)

logger = logging.getLogger(__name__)


class TerrainCategory(Enum):
    """Terrain categories with a traversal cost."""
    PRINCIPAL_ROAD = "principal_road"
    LOCAL_ROAD = "local_road"
    RURAL_ROAD = "rural_road"
    URBAN = "urban"
    PASTURE = "pasture"
    OPEN_FIELD = "open_field"
    FARMLAND = "farmland"
    SILVICULTURE = "silviculture"
    FOREST = "forest"
    RAILWAY = "railway"
    WETLAND = "wetland"
    WATER = "water"
    BUILDING = "building"


TERRAIN_COSTS = MappingProxyType({
    TerrainCategory.PRINCIPAL_ROAD: 1.0,
    TerrainCategory.LOCAL_ROAD: 1.5,
    TerrainCategory.RURAL_ROAD: 2.0,
    TerrainCategory.URBAN: 2.0,
    TerrainCategory.PASTURE: 3.0,
    TerrainCategory.OPEN_FIELD: 3.0,
    TerrainCategory.FARMLAND: 5.0,
    TerrainCategory.SILVICULTURE: 8.0,
    TerrainCategory.FOREST: 15.0,
    TerrainCategory.RAILWAY: 30.0,
    TerrainCategory.WETLAND: 50.0,
    TerrainCategory.WATER: 100.0,
    TerrainCategory.BUILDING: math.inf,
})

PRINCIPAL_ROAD_TAGS = frozenset({"motorway", "trunk", "primary", "secondary"})
RURAL_ROAD_TAGS = frozenset({"track", "unclassified", "service", "path", "footway"})

# Obstacle kinds that change the terrain category when a point is on/near them
OBSTACLE_CATEGORIES = MappingProxyType({
    ObstacleKind.RIVER: TerrainCategory.WATER,
    ObstacleKind.LAKE: TerrainCategory.WATER,
    ObstacleKind.RAILWAY: TerrainCategory.RAILWAY,
    ObstacleKind.GREEN_AREA: TerrainCategory.FOREST,
})

SLOPE_FACTOR_STEPS = ((10.0, 1.0), (20.0, 1.3), (30.0, 1.8))
STEEP_SLOPE_FACTOR = 2.5


@dataclass(frozen=True)
class TerrainClassification:
    """Category and cost of a single point."""
    category: TerrainCategory
    cost: float
    source_id: Optional[str] = None  # Feature that decided the category


@dataclass(eq=False)
class CostGrid:
    """
    Regular grid of traversal costs over a bounding box.

    Row 0 is the southern edge, column 0 the western edge; values are cell
    center costs.
    """
    bounding_box: BoundingBox
    cell_size_m: float
    lat_step: float
    lon_step: float
    costs: np.ndarray

    @property
    def shape(self) -> Tuple[int, int]:
        return self.costs.shape

    def cell_center(self, row: int, col: int) -> Coordinate:
        return Coordinate(
            lat=self.bounding_box.south + (row + 0.5) * self.lat_step,
            lon=self.bounding_box.west + (col + 0.5) * self.lon_step,
        )

    def cell_index(self, point: Coordinate) -> Optional[Tuple[int, int]]:
        if not self.bounding_box.contains(point):
            return None
        rows, cols = self.costs.shape
        row = min(rows - 1, int((point.lat - self.bounding_box.south) / self.lat_step))
        col = min(cols - 1, int((point.lon - self.bounding_box.west) / self.lon_step))
        return row, col

    def cost_at(self, point: Coordinate) -> float:
        """Cost of the cell containing point; infinite outside the grid."""
        index = self.cell_index(point)
        if index is None:
            return math.inf
        return float(self.costs[index])


@dataclass
class GridStatistics:
    """Summary of a cost grid."""
    total_cells: int
    impassable_cells: int
    mean_cost: float
    min_cost: float
    max_cost: float
    distribution: Dict[str, int] = field(default_factory=dict)


def road_category(highway: str) -> TerrainCategory:
    """Road category for an OSM highway tag; unknown tags count as local roads."""
    if highway in PRINCIPAL_ROAD_TAGS:
        return TerrainCategory.PRINCIPAL_ROAD
    if highway in RURAL_ROAD_TAGS:
        return TerrainCategory.RURAL_ROAD
    return TerrainCategory.LOCAL_ROAD


def _outline(obstacle: Obstacle) -> Sequence[Coordinate]:
    if obstacle.shape == ObstacleShape.POLYGON and len(obstacle.points) > 2:
        return tuple(obstacle.points) + (obstacle.points[0],)
    return obstacle.points


def _obstacle_match(point: Coordinate, obstacle: Obstacle, proximity_m: float) -> bool:
    if obstacle.shape == ObstacleShape.POLYGON and point_in_polygon(point, obstacle.points):
        return True
    if obstacle.shape == ObstacleShape.POINT:
        return False
    return point_to_polyline_distance(point, _outline(obstacle)) <= proximity_m


class TerrainClassifier:
    """
    Classifies coordinates against one terrain snapshot.

    Precedence: buildings, then obstacles (most restrictive match wins),
    then the nearest street within snapping distance, then open field.
    """

    STREET_SNAP_DISTANCE_M = 15.0
    OBSTACLE_PROXIMITY_M = 10.0
    POWER_LINE_COST_FACTOR = 1.5
    SLOPE_PROFILE_RADIUS_M = 500.0
    # Upper bound on cells x samples held in memory per nearest-sample pass
    SLOPE_SEARCH_BLOCK = 2_000_000

    def __init__(self, terrain: TerrainSnapshot):
        if terrain is None:
            raise DesignInputError("Terrain snapshot is required")
        self.terrain = terrain

    def classify(self, point: Coordinate) -> TerrainClassification:
        for building in self.terrain.buildings:
            if point_in_polygon(point, building.points):
                return TerrainClassification(TerrainCategory.BUILDING, math.inf, building.id)

        best: Optional[TerrainClassification] = None
        for obstacle in self.terrain.obstacles:
            if obstacle.kind == ObstacleKind.POWER_LINE:
                if point_to_polyline_distance(point, obstacle.points) <= self.OBSTACLE_PROXIMITY_M:
                    candidate = TerrainClassification(
                        TerrainCategory.OPEN_FIELD,
                        TERRAIN_COSTS[TerrainCategory.OPEN_FIELD] * self.POWER_LINE_COST_FACTOR,
                        obstacle.id,
                    )
                else:
                    continue
            else:
                category = OBSTACLE_CATEGORIES.get(obstacle.kind)
                if category is None or not _obstacle_match(point, obstacle, self.OBSTACLE_PROXIMITY_M):
                    continue
                candidate = TerrainClassification(category, TERRAIN_COSTS[category], obstacle.id)

            if best is None or candidate.cost > best.cost:
                best = candidate
        if best is not None:
            return best

        nearest_street = None
        nearest_distance = math.inf
        for street in self.terrain.streets:
            d = point_to_polyline_distance(point, street.points)
            if d < nearest_distance:
                nearest_distance = d
                nearest_street = street
        if nearest_street is not None and nearest_distance <= self.STREET_SNAP_DISTANCE_M:
            category = road_category(nearest_street.highway)
            return TerrainClassification(category, TERRAIN_COSTS[category], nearest_street.id)

        return TerrainClassification(TerrainCategory.OPEN_FIELD, TERRAIN_COSTS[TerrainCategory.OPEN_FIELD])

    def classify_route(self, route: Sequence[Coordinate]) -> List[TerrainClassification]:
        return [self.classify(point) for point in route]

    def build_cost_grid(
        self,
        bounding_box: Optional[BoundingBox] = None,
        cell_size_m: Optional[float] = None,
    ) -> CostGrid:
        """
        Classify every cell center of a regular grid.

        Args:
            bounding_box: Grid extent; defaults to the snapshot's bounding box
            cell_size_m: Cell edge in meters; defaults to PLANNER_COST_GRID_CELL_SIZE_M

        Returns:
            A new CostGrid (each call allocates its own array)
        """
        bbox = bounding_box or self.terrain.bounding_box
        if bbox is None:
            raise DesignInputError("A bounding box is required to build a cost grid")
        cell_size_m = cell_size_m or get_settings().cost_grid_cell_size_m
        if cell_size_m <= 0:
            raise DesignInputError(f"Cell size must be positive, got {cell_size_m}")

        mid_lat = (bbox.south + bbox.north) / 2
        lat_step = meters_to_degrees_lat(cell_size_m)
        lon_step = meters_to_degrees_lng(cell_size_m, mid_lat)
        rows = max(1, math.ceil((bbox.north - bbox.south) / lat_step))
        cols = max(1, math.ceil((bbox.east - bbox.west) / lon_step))

        grid = CostGrid(bbox, cell_size_m, lat_step, lon_step, np.empty((rows, cols), dtype=float))
        for row in range(rows):
            for col in range(cols):
                grid.costs[row, col] = self.classify(grid.cell_center(row, col)).cost

        logger.info(f"Cost grid built: {rows}x{cols} cells of {cell_size_m:.1f}m")
        return grid

    def apply_slope_factors(self, grid: CostGrid, profile: Sequence[ElevationPoint]) -> CostGrid:
        """
        Scale finite cell costs by the slope of the nearest profile sample.

        Cells farther than SLOPE_PROFILE_RADIUS_M from every sample keep their
        cost. Returns a new grid; the input grid is not modified.
        """
        costs = grid.costs.copy()
        if len(profile) < 2:
            return CostGrid(grid.bounding_box, grid.cell_size_m, grid.lat_step, grid.lon_step, costs)

        factors = np.array([slope_factor(s) for s in profile_slopes(profile)])
        sample_lat = np.array([p.coordinate.lat for p in profile])
        sample_lon = np.array([p.coordinate.lon for p in profile])

        rows, cols = costs.shape
        bbox = grid.bounding_box
        center_lat = bbox.south + (np.arange(rows) + 0.5) * grid.lat_step
        center_lon = bbox.west + (np.arange(cols) + 0.5) * grid.lon_step
        lon_scale = meters_per_degree_lng((bbox.south + bbox.north) / 2)

        nearest = np.empty((rows, cols), dtype=np.intp)
        nearest_dist = np.empty((rows, cols), dtype=float)
        dx = (center_lon[:, None] - sample_lon[None, :]) * lon_scale
        block_rows = max(1, self.SLOPE_SEARCH_BLOCK // (cols * len(profile)))
        for start in range(0, rows, block_rows):
            stop = min(rows, start + block_rows)
            dy = (center_lat[start:stop, None, None] - sample_lat[None, None, :]) * METERS_PER_DEGREE_LAT
            dist = np.hypot(dy, dx[None, :, :])
            nearest[start:stop] = np.argmin(dist, axis=2)
            nearest_dist[start:stop] = np.take_along_axis(
                dist, nearest[start:stop, :, None], axis=2
            )[:, :, 0]

        mask = (nearest_dist <= self.SLOPE_PROFILE_RADIUS_M) & np.isfinite(costs)
        costs[mask] = costs[mask] * factors[nearest][mask]

        logger.debug(f"Slope factors applied to {int(mask.sum())} cells")
        return CostGrid(grid.bounding_box, grid.cell_size_m, grid.lat_step, grid.lon_step, costs)


def slope_factor(slope: float) -> float:
    """Cost multiplier for a terrain grade in percent."""
    for limit, factor in SLOPE_FACTOR_STEPS:
        if slope <= limit:
            return factor
    return STEEP_SLOPE_FACTOR


def profile_slopes(profile: Sequence[ElevationPoint]) -> List[float]:
    """
    Slope in percent at each profile sample.

    Each sample takes the grade from the previous sample; the first one
    takes the grade towards the second.
    """
    if len(profile) < 2:
        return [0.0] * len(profile)

    grades = []
    for a, b in zip(profile, profile[1:]):
        grades.append(slope_percent(distance(a.coordinate, b.coordinate), b.elevation_m - a.elevation_m))
    return [grades[0]] + grades


def max_slope_percent(profile: Sequence[ElevationPoint]) -> float:
    slopes = profile_slopes(profile)
    return max(slopes) if slopes else 0.0


def grid_statistics(grid: CostGrid) -> GridStatistics:
    """Cell counts, cost range and cost distribution of a grid."""
    costs = grid.costs
    finite = costs[np.isfinite(costs)]

    distribution = {
        "very_low": int(np.count_nonzero(finite <= 2)),
        "low": int(np.count_nonzero((finite > 2) & (finite <= 5))),
        "medium": int(np.count_nonzero((finite > 5) & (finite <= 15))),
        "high": int(np.count_nonzero((finite > 15) & (finite <= 50))),
        "very_high": int(np.count_nonzero(finite > 50)),
        "impassable": int(costs.size - finite.size),
    }

    if finite.size == 0:
        mean_cost = min_cost = max_cost = 0.0
    else:
        mean_cost = float(finite.mean())
        min_cost = float(finite.min())
        max_cost = float(finite.max())

    return GridStatistics(
        total_cells=int(costs.size),
        impassable_cells=distribution["impassable"],
        mean_cost=mean_cost,
        min_cost=min_cost,
        max_cost=max_cost,
        distribution=distribution,
    )
