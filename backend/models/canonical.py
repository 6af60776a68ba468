"""
Canonical NetworkDesign Schema.

This module defines the SINGLE output format of network_designer.run_design.
Every consumer reads this schema; nothing is recomputed downstream.
"""

from pydantic import BaseModel, Field
from typing import Any, List, Optional, Dict


class CoordinateResponse(BaseModel):
    lat: float
    lon: float


class AreaResponse(BaseModel):
    area_type: str = Field(..., description="urban / rural")
    confidence: float = Field(..., description="Classification confidence (0-1)")
    building_density_per_km2: float
    street_density_km_per_km2: float


class SpanTargetsResponse(BaseModel):
    ideal_span_m: float = Field(..., description="Target span used to fill gaps")
    max_span_m: float = Field(..., description="Maximum span from the utility norms")
    min_span_m: float = Field(..., description="Minimum span from the utility norms")


class AnchorResponse(BaseModel):
    """Single placed position in anchors[] array."""
    index: int = Field(..., description="Position along the line (0-based)")
    lat: float
    lon: float
    kind: str = Field(..., description="origin / destination / corner / crossing_before / crossing_after / intermediate")
    priority: float
    justification: str


class PoleResponse(BaseModel):
    """Single pole in poles[] array."""
    id: str = Field(..., description="P001, P002, ...")
    lat: float
    lon: float
    height_m: float
    resistance_dan: float
    annotation: str = Field(..., description="Drawing annotation, e.g. 'DT 11/300'")
    structure: str = Field(..., description="Structure code, e.g. N1, CE3, U2")
    function: str = Field(..., description="tangent / angle / anchor / end / derivation / equipment")
    deflection_deg: float
    grounded: bool
    transformer_kva: Optional[float] = None
    fuse_switch: bool
    surge_arrester: bool
    guy_wire: bool
    justification: str


class ConductorResponse(BaseModel):
    id: str = Field(..., description="CMT-001 (MV) or CBT-001 (LV)")
    from_pole_id: str
    to_pole_id: str
    level: str = Field(..., description="mv / lv")
    cable: str
    length_m: float


class CornerResponse(BaseModel):
    id: str
    lat: float
    lon: float
    streets: List[str]
    angle_deg: float
    priority: float


class CrossingResponse(BaseModel):
    id: str
    kind: str = Field(..., description="avenue / highway / railway / river")
    name: str
    intersection: CoordinateResponse
    before: CoordinateResponse
    after: CoordinateResponse
    width_m: float
    min_clearance_height_m: float


class FindingResponse(BaseModel):
    field: str
    actual: str
    expected: str
    severity: str = Field(..., description="error / warning / info")
    message: str


class PlacementSummaryResponse(BaseModel):
    total_distance_m: float
    total_poles: int
    total_corners: int
    total_crossings: int
    total_exclusion_zones: int
    poles_at_corners: int
    crossing_poles: int
    repair_iterations: int
    repair_converged: bool


class BarrierResponse(BaseModel):
    id: str
    kind: str
    description: str
    pole_before_id: str
    pole_after_id: str
    severity: str = Field(..., description="critical / warning / info")
    requires_authorization: bool
    authority: Optional[str] = None
    min_height_m: Optional[float] = None
    right_of_way_m: Optional[float] = None
    lat: Optional[float] = None
    lon: Optional[float] = None
    distance_m: Optional[float] = None


class BarrierSummaryResponse(BaseModel):
    total: int
    critical: int
    warnings: int
    informational: int
    water_crossings: int
    railway_crossings: int
    road_crossings: int
    power_line_crossings: int
    vegetation_areas: int
    trees_to_trim: int
    steep_slopes: int


class NetworkDesignResponse(BaseModel):
    """
    Complete network design.

    is_valid is false whenever any error finding is present.
    """
    is_valid: bool
    area: AreaResponse
    span_targets: SpanTargetsResponse
    mv_conductor_annotation: str
    lv_conductor_annotation: str
    placement_summary: PlacementSummaryResponse
    anchors: List[AnchorResponse]
    poles: List[PoleResponse]
    conductors: List[ConductorResponse]
    corners: List[CornerResponse]
    crossings: List[CrossingResponse]
    findings: List[FindingResponse]
    barriers: List[BarrierResponse]
    barrier_summary: BarrierSummaryResponse
    cost_grid_statistics: Optional[Dict[str, Any]] = Field(
        None, description="Present only when the cost grid was requested"
    )
