"""
Canonical Result Converter.

Converts a NetworkDesign into the canonical NetworkDesignResponse schema.

This module only reshapes data: validity, findings and pole attributes are
copied from the design, never recomputed here.
"""

from dataclasses import asdict
from typing import Optional

from data_models import Coordinate
from backend.models.canonical import (
    NetworkDesignResponse,
    AreaResponse,
    SpanTargetsResponse,
    AnchorResponse,
    PoleResponse,
    ConductorResponse,
    CornerResponse,
    CrossingResponse,
    CoordinateResponse,
    FindingResponse,
    PlacementSummaryResponse,
    BarrierResponse,
    BarrierSummaryResponse,
)
from backend.services.network_designer import NetworkDesign


def _coordinate(point: Coordinate) -> CoordinateResponse:
    return CoordinateResponse(lat=point.lat, lon=point.lon)


def convert_to_canonical(design: NetworkDesign) -> NetworkDesignResponse:
    """
    Convert a network design to the canonical response.

    Args:
        design: Result of network_designer.design_network

    Returns:
        NetworkDesignResponse
    """
    placement = design.placement
    stats = placement.statistics

    anchors = [
        AnchorResponse(
            index=i,
            lat=a.coordinate.lat,
            lon=a.coordinate.lon,
            kind=a.kind.value,
            priority=a.priority,
            justification=a.justification,
        )
        for i, a in enumerate(placement.anchors)
    ]

    poles = [
        PoleResponse(
            id=p.id,
            lat=p.coordinate.lat,
            lon=p.coordinate.lon,
            height_m=p.height_m,
            resistance_dan=p.resistance_dan,
            annotation=p.annotation,
            structure=p.structure,
            function=p.function.value,
            deflection_deg=round(p.deflection_deg, 2),
            grounded=p.grounded,
            transformer_kva=p.transformer_kva,
            fuse_switch=p.fuse_switch,
            surge_arrester=p.surge_arrester,
            guy_wire=p.guy_wire,
            justification=p.justification,
        )
        for p in design.poles
    ]

    conductors = [
        ConductorResponse(
            id=c.id,
            from_pole_id=c.from_pole_id,
            to_pole_id=c.to_pole_id,
            level=c.level.value,
            cable=c.cable,
            length_m=round(c.length_m, 2),
        )
        for c in design.conductors
    ]

    corners = [
        CornerResponse(
            id=c.id,
            lat=c.coordinate.lat,
            lon=c.coordinate.lon,
            streets=list(c.streets),
            angle_deg=round(c.angle_deg, 2),
            priority=round(c.priority, 2),
        )
        for c in placement.corners
    ]

    crossings = [
        CrossingResponse(
            id=c.id,
            kind=c.kind.value,
            name=c.name,
            intersection=_coordinate(c.intersection),
            before=_coordinate(c.before),
            after=_coordinate(c.after),
            width_m=c.width_m,
            min_clearance_height_m=c.min_clearance_height_m,
        )
        for c in placement.crossings
    ]

    findings = [
        FindingResponse(
            field=f.field,
            actual=f.actual,
            expected=f.expected,
            severity=f.severity.value,
            message=f.message,
        )
        for f in design.report.findings
    ]

    barriers = [
        BarrierResponse(
            id=b.id,
            kind=b.kind.value,
            description=b.description,
            pole_before_id=b.pole_before_id,
            pole_after_id=b.pole_after_id,
            severity=b.severity.value,
            requires_authorization=b.impact.requires_authorization,
            authority=b.impact.authority,
            min_height_m=b.impact.min_height_m,
            right_of_way_m=b.impact.right_of_way_m,
            lat=b.coordinate.lat if b.coordinate else None,
            lon=b.coordinate.lon if b.coordinate else None,
            distance_m=round(b.distance_m, 2) if b.distance_m is not None else None,
        )
        for b in design.barriers.barriers
    ]

    grid_stats: Optional[dict] = None
    if design.cost_grid_statistics is not None:
        grid_stats = asdict(design.cost_grid_statistics)

    return NetworkDesignResponse(
        is_valid=design.is_valid,
        area=AreaResponse(
            area_type=design.area.area_type.value,
            confidence=round(design.area.confidence, 2),
            building_density_per_km2=round(design.area.building_density_per_km2, 2),
            street_density_km_per_km2=round(design.area.street_density_km_per_km2, 2),
        ),
        span_targets=SpanTargetsResponse(
            ideal_span_m=design.span_targets.ideal_span_m,
            max_span_m=design.span_targets.max_span_m,
            min_span_m=design.span_targets.min_span_m,
        ),
        mv_conductor_annotation=design.conductor_spec.mv_annotation,
        lv_conductor_annotation=design.conductor_spec.lv_annotation,
        placement_summary=PlacementSummaryResponse(
            total_distance_m=round(stats.total_distance_m, 2),
            total_poles=stats.total_poles,
            total_corners=stats.total_corners,
            total_crossings=stats.total_crossings,
            total_exclusion_zones=stats.total_exclusion_zones,
            poles_at_corners=stats.poles_at_corners,
            crossing_poles=stats.crossing_poles,
            repair_iterations=placement.repair_iterations,
            repair_converged=placement.repair_converged,
        ),
        anchors=anchors,
        poles=poles,
        conductors=conductors,
        corners=corners,
        crossings=crossings,
        findings=findings,
        barriers=barriers,
        barrier_summary=BarrierSummaryResponse(**asdict(design.barriers.summary)),
        cost_grid_statistics=grid_stats,
    )
