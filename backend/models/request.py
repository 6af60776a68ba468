"""
Network Design Request Models.

Payload accepted by network_designer.run_design. Each model converts itself
to the immutable domain objects in data_models.
"""

from pydantic import BaseModel, Field, field_validator, model_validator
from typing import List, Optional

from data_models import (
    Coordinate, Street, Building, Obstacle, BoundingBox, TerrainSnapshot,
    ElevationPoint, ProjectConfig, AreaType, NetworkType, NetworkNature,
    CorrosionZone, Utility, ObstacleKind, ObstacleShape,
)


class CoordinateIn(BaseModel):
    """Single WGS84 point."""
    lat: float = Field(..., ge=-90, le=90, description="Latitude in decimal degrees")
    lon: float = Field(..., ge=-180, le=180, description="Longitude in decimal degrees")

    def to_domain(self) -> Coordinate:
        return Coordinate(lat=self.lat, lon=self.lon)


class StreetIn(BaseModel):
    id: str
    name: str = ""
    highway: str = Field("residential", description="OSM highway tag (primary, residential, track, ...)")
    points: List[CoordinateIn] = Field(..., min_length=2)
    width_m: Optional[float] = Field(None, gt=0, description="Carriageway width in meters")
    one_way: bool = False

    def to_domain(self) -> Street:
        return Street(
            id=self.id,
            name=self.name,
            highway=self.highway,
            points=tuple(p.to_domain() for p in self.points),
            width_m=self.width_m,
            one_way=self.one_way,
        )


class BuildingIn(BaseModel):
    id: str
    category: str = "building"
    points: List[CoordinateIn] = Field(..., min_length=3, description="Footprint polygon")
    height_m: Optional[float] = Field(None, gt=0)
    name: Optional[str] = None

    def to_domain(self) -> Building:
        return Building(
            id=self.id,
            category=self.category,
            points=tuple(p.to_domain() for p in self.points),
            height_m=self.height_m,
            name=self.name,
        )


class ObstacleIn(BaseModel):
    """
    Non-building obstacle.

    When shape is omitted it is inferred: one point is a point obstacle,
    lakes and green areas with 3+ points are polygons, anything else a line.
    """
    id: str
    kind: ObstacleKind
    shape: Optional[ObstacleShape] = None
    points: List[CoordinateIn] = Field(..., min_length=1)
    name: Optional[str] = None

    @model_validator(mode="after")
    def infer_shape(self):
        if self.shape is None:
            if len(self.points) == 1:
                self.shape = ObstacleShape.POINT
            elif self.kind in (ObstacleKind.LAKE, ObstacleKind.GREEN_AREA) and len(self.points) >= 3:
                self.shape = ObstacleShape.POLYGON
            else:
                self.shape = ObstacleShape.LINE
        return self

    def to_domain(self) -> Obstacle:
        return Obstacle(
            id=self.id,
            kind=self.kind,
            shape=self.shape,
            points=tuple(p.to_domain() for p in self.points),
            name=self.name,
        )


class BoundingBoxIn(BaseModel):
    south: float = Field(..., ge=-90, le=90)
    west: float = Field(..., ge=-180, le=180)
    north: float = Field(..., ge=-90, le=90)
    east: float = Field(..., ge=-180, le=180)

    @model_validator(mode="after")
    def validate_extent(self):
        if self.north < self.south or self.east < self.west:
            raise ValueError("Bounding box north/east must not be below south/west")
        return self

    def to_domain(self) -> BoundingBox:
        return BoundingBox(south=self.south, west=self.west, north=self.north, east=self.east)


class TerrainIn(BaseModel):
    streets: List[StreetIn] = Field(default_factory=list)
    buildings: List[BuildingIn] = Field(default_factory=list)
    obstacles: List[ObstacleIn] = Field(default_factory=list)
    bounding_box: Optional[BoundingBoxIn] = None

    def to_domain(self) -> TerrainSnapshot:
        return TerrainSnapshot(
            streets=tuple(s.to_domain() for s in self.streets),
            buildings=tuple(b.to_domain() for b in self.buildings),
            obstacles=tuple(o.to_domain() for o in self.obstacles),
            bounding_box=self.bounding_box.to_domain() if self.bounding_box else None,
        )


class ElevationPointIn(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)
    elevation_m: float

    def to_domain(self) -> ElevationPoint:
        return ElevationPoint(coordinate=Coordinate(lat=self.lat, lon=self.lon), elevation_m=self.elevation_m)


class ProjectConfigIn(BaseModel):
    """Project configuration; area_type None means classify from the terrain."""
    area_type: Optional[AreaType] = None
    network_type: NetworkType = NetworkType.CONVENTIONAL
    network_nature: NetworkNature = NetworkNature.TRIPHASE
    corrosion_zone: CorrosionZone = CorrosionZone.NORMAL
    utility: Utility = Utility.EQUATORIAL
    state: str = "MA"
    mv_voltage_kv: float = Field(13.8, gt=0, description="MV voltage in kV (13.8, 23.1, 34.5)")
    lv_voltage_v: float = Field(380.0, gt=0, description="LV voltage in V (220, 380)")
    mv_conductor: str = "1/0 AWG"
    lv_conductor: str = "35(35)"
    with_lv: bool = Field(False, description="LV line conjugated with the MV line")

    @field_validator("state")
    @classmethod
    def normalize_state(cls, v):
        return v.strip().upper()

    def to_domain(self, area_type: AreaType) -> ProjectConfig:
        return ProjectConfig(
            area_type=self.area_type or area_type,
            network_type=self.network_type,
            network_nature=self.network_nature,
            corrosion_zone=self.corrosion_zone,
            utility=self.utility,
            state=self.state,
            mv_voltage_kv=self.mv_voltage_kv,
            lv_voltage_v=self.lv_voltage_v,
            mv_conductor=self.mv_conductor,
            lv_conductor=self.lv_conductor,
            with_lv=self.with_lv,
        )


class NetworkDesignRequest(BaseModel):
    """
    Request model for a full network design.

    The route is the already-routed polyline from origin to destination.
    """
    route: List[CoordinateIn] = Field(
        ...,
        min_length=2,
        description="Routed polyline. Minimum 2 points required."
    )
    terrain: TerrainIn = Field(default_factory=TerrainIn)
    config: ProjectConfigIn = Field(default_factory=ProjectConfigIn)
    elevation_profile: List[ElevationPointIn] = Field(default_factory=list)
    transformer_kva: Optional[float] = Field(None, gt=0, description="Transformer rating in kVA")
    transformer_index: Optional[int] = Field(None, ge=0, description="Pole position of the transformer")
    has_sectioning: bool = False
    include_cost_grid: bool = False

    @model_validator(mode="after")
    def validate_transformer(self):
        if self.transformer_kva is not None and self.transformer_index is None:
            raise ValueError("transformer_index is required when transformer_kva is given")
        return self
