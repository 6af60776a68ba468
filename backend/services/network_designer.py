"""
Network Design Service.

Orchestrates area classification + route analysis + pole placement + pole
classification + validation + barrier detection into one NetworkDesign.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from data_models import (
    Coordinate, TerrainSnapshot, ProjectConfig, ElevationPoint, PoleRecord,
    ConductorRecord, VoltageLevel, ValidationReport, DesignInputError,
)
from rules_engine import RulesEngine, ConductorSpec, create_rules_engine
from backend.config import PlannerSettings, get_settings
from backend.services.geometry import distance, bounding_box_around
from backend.services.area_classifier import (
    AreaClassification, classify_area, ideal_span, span_network_for,
)
from backend.services.terrain_classifier import (
    TerrainClassifier, CostGrid, GridStatistics, grid_statistics, max_slope_percent,
)
from backend.services.pole_placer import PolePlacer, PlacementResult
from backend.services.pole_classifier import classify_anchors
from backend.services.barrier_detector import BarrierReport, detect_barriers

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SpanTargets:
    ideal_span_m: float
    max_span_m: float
    min_span_m: float


@dataclass
class NetworkDesign:
    """Everything produced for one origin-destination line."""
    config: ProjectConfig
    area: AreaClassification
    span_targets: SpanTargets
    placement: PlacementResult
    poles: List[PoleRecord]
    conductors: List[ConductorRecord]
    conductor_spec: ConductorSpec
    report: ValidationReport
    barriers: BarrierReport
    cost_grid: Optional[CostGrid] = None
    cost_grid_statistics: Optional[GridStatistics] = None

    @property
    def is_valid(self) -> bool:
        return self.report.is_valid


def compute_span_targets(
    config: ProjectConfig,
    engine: RulesEngine,
    has_obstacles: bool = False,
    max_slope: float = 0.0,
) -> SpanTargets:
    """
    Span targets for a project.

    The maximum and minimum come from the rules engine; the ideal span from
    the per-area table, clamped into [min, max].
    """
    max_span = engine.max_span(config)
    min_span = engine.min_span(config)
    ideal = ideal_span(config.area_type, span_network_for(config), has_obstacles, max_slope)
    ideal = min(max(ideal, min_span), max_span)
    return SpanTargets(ideal_span_m=ideal, max_span_m=max_span, min_span_m=min_span)


def build_conductors(
    poles: Sequence[PoleRecord],
    config: ProjectConfig,
    spec: ConductorSpec,
) -> List[ConductorRecord]:
    """One MV conductor per span, plus an LV conductor when the LV line is conjugated."""
    conductors: List[ConductorRecord] = []
    for i, (origin, destination) in enumerate(zip(poles, poles[1:]), start=1):
        length = distance(origin.coordinate, destination.coordinate)
        conductors.append(ConductorRecord(
            id=f"CMT-{i:03d}",
            from_pole_id=origin.id,
            to_pole_id=destination.id,
            level=VoltageLevel.MV,
            cable=spec.mv,
            length_m=length,
        ))
        if config.with_lv:
            conductors.append(ConductorRecord(
                id=f"CBT-{i:03d}",
                from_pole_id=origin.id,
                to_pole_id=destination.id,
                level=VoltageLevel.LV,
                cable=spec.lv,
                length_m=length,
            ))
    return conductors


def design_network(
    route: Sequence[Coordinate],
    terrain: TerrainSnapshot,
    config: ProjectConfig,
    engine: Optional[RulesEngine] = None,
    elevation_profile: Sequence[ElevationPoint] = (),
    transformer_kva: Optional[float] = None,
    transformer_index: Optional[int] = None,
    has_sectioning: bool = False,
    include_cost_grid: bool = False,
    settings: Optional[PlannerSettings] = None,
) -> NetworkDesign:
    """
    Design a distribution line along a routed polyline.

    Process:
    1. Classify the area and derive span targets
    2. Place poles (route analysis runs inside the placer)
    3. Classify, dimension and equip every pole
    4. Build conductors and validate the project
    5. Detect barriers span by span

    Args:
        route: Routed polyline from origin to destination
        terrain: Terrain snapshot around the route
        config: Project configuration
        engine: Rules engine; defaults to the configured utility's engine
        elevation_profile: Already-fetched elevation samples along the route
        transformer_kva: Transformer rating, if any
        transformer_index: Pole position of the transformer
        has_sectioning: Whether angle poles carry sectioning switches
        include_cost_grid: Also build the diagnostic terrain cost grid
        settings: Planner settings

    Returns:
        NetworkDesign; validation problems are findings in its report
    """
    if route is None or terrain is None or config is None:
        raise DesignInputError("Route, terrain and config are required")

    settings = settings or get_settings()
    engine = engine or create_rules_engine(config.utility)
    logger.info(f"Designing network with {engine.standard_name}")

    area = classify_area(terrain)
    if area.area_type != config.area_type:
        logger.info(
            f"Configured area {config.area_type.value} differs from terrain estimate {area.area_type.value}"
        )

    slope = max_slope_percent(elevation_profile)
    targets = compute_span_targets(config, engine, bool(terrain.obstacles), slope)
    logger.info(
        f"Span targets: ideal {targets.ideal_span_m:.0f}m, "
        f"max {targets.max_span_m:.0f}m, min {targets.min_span_m:.0f}m"
    )

    placer = PolePlacer(targets.ideal_span_m, targets.max_span_m, targets.min_span_m, settings=settings)
    placement = placer.place(route, terrain)

    poles = classify_anchors(
        placement.anchors, config, engine,
        transformer_kva=transformer_kva,
        transformer_index=transformer_index,
        has_sectioning=has_sectioning,
    )
    spec = engine.select_conductor(config)
    conductors = build_conductors(poles, config, spec)

    report = engine.validate_project(poles, conductors, config)
    report.extend(placement.findings)

    barriers = detect_barriers(poles, terrain, slope if elevation_profile else None)

    cost_grid = None
    statistics = None
    if include_cost_grid and len(placement.route) >= 2:
        classifier = TerrainClassifier(terrain)
        bbox = terrain.bounding_box or bounding_box_around(placement.route)
        cost_grid = classifier.build_cost_grid(bbox, settings.cost_grid_cell_size_m)
        if elevation_profile:
            cost_grid = classifier.apply_slope_factors(cost_grid, elevation_profile)
        statistics = grid_statistics(cost_grid)

    logger.info(
        f"Network designed: {len(poles)} poles, {len(conductors)} conductors, "
        f"{'valid' if report.is_valid else 'INVALID'} ({len(report.errors)} errors)"
    )

    return NetworkDesign(
        config=config,
        area=area,
        span_targets=targets,
        placement=placement,
        poles=poles,
        conductors=conductors,
        conductor_spec=spec,
        report=report,
        barriers=barriers,
        cost_grid=cost_grid,
        cost_grid_statistics=statistics,
    )


def run_design(payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate a request payload, design the network and return the canonical
    response as plain JSON-compatible data.

    Raises:
        pydantic.ValidationError: If the payload is malformed
    """
    from backend.models.request import NetworkDesignRequest
    from backend.services.canonical_converter import convert_to_canonical

    request = NetworkDesignRequest.model_validate(payload)
    terrain = request.terrain.to_domain()

    area_type = request.config.area_type
    if area_type is None:
        area_type = classify_area(terrain).area_type
    config = request.config.to_domain(area_type)

    design = design_network(
        route=[c.to_domain() for c in request.route],
        terrain=terrain,
        config=config,
        elevation_profile=[p.to_domain() for p in request.elevation_profile],
        transformer_kva=request.transformer_kva,
        transformer_index=request.transformer_index,
        has_sectioning=request.has_sectioning,
        include_cost_grid=request.include_cost_grid,
    )
    return convert_to_canonical(design).model_dump(mode="json")
