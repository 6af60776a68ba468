"""
Data models for the distribution network placement and rules engine.

This module defines the core data structures used throughout the system.
Terrain inputs are read-only snapshots; configuration is an explicit
immutable value passed to every component that needs it.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, List, Tuple


class DesignInputError(ValueError):
    """Raised when a caller passes structurally invalid arguments."""
    pass


class Utility(Enum):
    """Utilities whose technical norms are supported."""
    EQUATORIAL = "equatorial"


class AreaType(Enum):
    """Area classification driving span limits and pole heights."""
    URBAN = "urban"
    RURAL = "rural"


class NetworkType(Enum):
    """Medium-voltage network construction type."""
    CONVENTIONAL = "conventional"  # Bare conductors on crossarms
    COMPACT = "compact"  # Covered conductors on spacers


class NetworkNature(Enum):
    """Number of phases of the medium-voltage line."""
    MONOPHASE = "monophase"
    BIPHASE = "biphase"
    TRIPHASE = "triphase"


class CorrosionZone(Enum):
    """Corrosion (salinity) zone of the project site."""
    NORMAL = "normal"
    P1 = "p1"  # Moderate salinity
    P2 = "p2"  # Severe salinity, coastal


class VoltageLevel(Enum):
    """Voltage level of a conductor run."""
    MV = "mv"
    LV = "lv"


class PoleFunction(Enum):
    """Mechanical function of a pole in the line."""
    TANGENT = "tangent"
    ANGLE = "angle"
    ANCHOR = "anchor"
    END = "end"
    DERIVATION = "derivation"
    EQUIPMENT = "equipment"


class ObstacleKind(Enum):
    """Kinds of non-building terrain obstacles."""
    RIVER = "river"
    LAKE = "lake"
    RAILWAY = "railway"
    ROAD = "road"
    POWER_LINE = "power_line"
    TREE = "tree"
    GREEN_AREA = "green_area"


class ObstacleShape(Enum):
    """Geometry carried by an obstacle's point list."""
    POINT = "point"
    LINE = "line"
    POLYGON = "polygon"


class Severity(Enum):
    """Severity of a validation finding or barrier."""
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass(frozen=True)
class Coordinate:
    """Geographic point in WGS84 decimal degrees."""
    lat: float
    lon: float

    def rounded(self, digits: int = 6) -> Tuple[float, float]:
        return (round(self.lat, digits), round(self.lon, digits))


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned geographic box."""
    south: float
    west: float
    north: float
    east: float

    def contains(self, point: Coordinate) -> bool:
        return (self.south <= point.lat <= self.north and
                self.west <= point.lon <= self.east)


@dataclass(frozen=True)
class Street:
    """Street polyline with its road-class tag (e.g. 'primary', 'residential')."""
    id: str
    name: str
    highway: str
    points: Tuple[Coordinate, ...]
    width_m: Optional[float] = None
    one_way: bool = False


@dataclass(frozen=True)
class Building:
    """Building footprint as a closed polygon."""
    id: str
    category: str
    points: Tuple[Coordinate, ...]
    height_m: Optional[float] = None
    name: Optional[str] = None


@dataclass(frozen=True)
class Obstacle:
    """
    Non-building obstacle.

    The shape tag states how the point list is read: a single point (trees),
    a polyline (rivers, railways, power lines) or a closed polygon (lakes,
    green areas).
    """
    id: str
    kind: ObstacleKind
    shape: ObstacleShape
    points: Tuple[Coordinate, ...]
    name: Optional[str] = None


@dataclass(frozen=True)
class TerrainSnapshot:
    """Read-only terrain context shared by the analysis components."""
    streets: Tuple[Street, ...] = ()
    buildings: Tuple[Building, ...] = ()
    obstacles: Tuple[Obstacle, ...] = ()
    bounding_box: Optional[BoundingBox] = None

    @property
    def is_empty(self) -> bool:
        return not (self.streets or self.buildings or self.obstacles)


@dataclass(frozen=True)
class ElevationPoint:
    """Elevation sample along the route (already fetched by the caller)."""
    coordinate: Coordinate
    elevation_m: float


@dataclass(frozen=True)
class ProjectConfig:
    """
    Project configuration consumed by the rules engine.

    Voltages: MV in kV, LV in V. Conductor specs are free-text gauges as
    written on the utility drawings (e.g. '1/0 AWG', '35(35)').
    """
    area_type: AreaType
    network_type: NetworkType
    network_nature: NetworkNature
    corrosion_zone: CorrosionZone = CorrosionZone.NORMAL
    utility: Utility = Utility.EQUATORIAL
    state: str = "MA"
    mv_voltage_kv: float = 13.8
    lv_voltage_v: float = 380.0
    mv_conductor: str = "1/0 AWG"
    lv_conductor: str = "35(35)"
    with_lv: bool = False  # LV line conjugated with the MV line

    def __post_init__(self):
        if self.mv_voltage_kv <= 0:
            raise DesignInputError(f"MV voltage must be positive, got {self.mv_voltage_kv}")
        if self.lv_voltage_v <= 0:
            raise DesignInputError(f"LV voltage must be positive, got {self.lv_voltage_v}")

    @classmethod
    def default(cls, area_type: AreaType = AreaType.RURAL) -> "ProjectConfig":
        """Default rural triphase 13.8 kV conventional configuration."""
        return cls(
            area_type=area_type,
            network_type=NetworkType.CONVENTIONAL,
            network_nature=NetworkNature.TRIPHASE,
        )


@dataclass(frozen=True)
class PoleRecord:
    """
    Pole derived from a placed anchor.

    Heights in meters, resistance in daN.
    """
    id: str
    coordinate: Coordinate
    height_m: float
    resistance_dan: float
    structure: str
    function: PoleFunction
    grounded: bool = False
    transformer_kva: Optional[float] = None
    fuse_switch: bool = False
    surge_arrester: bool = False
    guy_wire: bool = False
    deflection_deg: float = 0.0
    justification: str = ""
    annotation: str = ""  # "DT height/resistance"


@dataclass(frozen=True)
class ConductorRecord:
    """Conductor run between two consecutive poles."""
    id: str
    from_pole_id: str
    to_pole_id: str
    level: VoltageLevel
    cable: str
    length_m: float


@dataclass(frozen=True)
class ValidationFinding:
    """Single constraint check outcome."""
    field: str
    actual: str
    expected: str
    severity: Severity
    message: str


@dataclass
class ValidationReport:
    """Aggregated findings; validity depends only on the absence of errors."""
    findings: List[ValidationFinding] = field(default_factory=list)

    @property
    def errors(self) -> List[ValidationFinding]:
        return [f for f in self.findings if f.severity == Severity.ERROR]

    @property
    def warnings(self) -> List[ValidationFinding]:
        return [f for f in self.findings if f.severity == Severity.WARNING]

    @property
    def infos(self) -> List[ValidationFinding]:
        return [f for f in self.findings if f.severity == Severity.INFO]

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def extend(self, findings: List[ValidationFinding]) -> None:
        self.findings.extend(findings)
