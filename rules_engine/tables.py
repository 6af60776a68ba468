"""
Equatorial Energia norm tables.

NT.00005 (spans, crossing clearances), NT.00006 (poles, structures),
NT.00008 (corrosion zones) and NT.00047 (grounding). All tables are
read-only mappings keyed by enums so lookups cannot be mistyped.
"""

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import NamedTuple, Optional, Tuple

from data_models import AreaType, NetworkType, CorrosionZone


class StructureFamily(Enum):
    """MV structure families."""
    U = "U"  # Single-phase rural
    N = "N"  # Three-phase normal
    T = "T"  # Three-phase triangular
    CE = "CE"  # Compact


class StructureSlot(Enum):
    """Slots of a structure family table."""
    TANGENT = "tangent"
    ANGLE = "angle"
    DERIVATION = "derivation"
    END = "end"
    ANGLE_SECTIONING = "angle_sectioning"
    ANCHOR = "anchor"


class HeightRule(Enum):
    MV_COMPACT = "mv_compact"
    MV_CONJUGATED = "mv_conjugated"
    MV_CONVENTIONAL = "mv_conventional"
    RURAL_ANY = "rural_any"
    WITH_TRANSFORMER = "with_transformer"
    WITH_RECLOSER = "with_recloser"
    WITH_REGULATOR = "with_regulator"


class ResistanceRule(Enum):
    NORMAL_ALIGNMENT = "normal_alignment"
    END_MONO = "end_mono"
    END_TRI = "end_tri"
    DERIVATION_MONO = "derivation_mono"
    DERIVATION_TRI = "derivation_tri"
    ANCHOR = "anchor"
    HEAVY_CONDUCTOR = "heavy_conductor"
    TRANSFORMER_UP_TO_112KVA = "transformer_up_to_112kva"
    TRANSFORMER_150KVA = "transformer_150kva"
    TRANSFORMER_225KVA_PLUS = "transformer_225kva_plus"
    RECLOSER = "recloser"
    REGULATOR = "regulator"


class CrossingPlace(Enum):
    """Places a line may cross, for minimum clearance lookup."""
    STREET = "street"
    AVENUE = "avenue"
    STATE_HIGHWAY = "state_highway"
    FEDERAL_HIGHWAY = "federal_highway"
    RAILWAY = "railway"
    ELECTRIFIED_RAILWAY = "electrified_railway"


class ClearanceHeights(NamedTuple):
    lv: Optional[float]  # None: LV crossing not permitted
    mv: float


@dataclass(frozen=True)
class CorrosionRule:
    """Material restrictions of a corrosion zone."""
    conductors: Tuple[str, ...]
    pole_classes: Tuple[str, ...]
    pole_materials: Tuple[str, ...]
    min_conductor: Optional[str] = None
    min_bushing: Optional[str] = None


# Spans (m)
CROSSING_MAX_SPAN_M = 40.0
SHARP_ANGLE_DEG = 60.0
MONOPHASE_RURAL_MAX_SPAN_M = 150.0

MAX_SPANS_M = MappingProxyType({
    (NetworkType.CONVENTIONAL, AreaType.RURAL): 120.0,
    (NetworkType.CONVENTIONAL, AreaType.URBAN): 80.0,
    (NetworkType.COMPACT, AreaType.RURAL): 80.0,
    (NetworkType.COMPACT, AreaType.URBAN): 60.0,
})

CONJUGATED_MAX_SPANS_M = MappingProxyType({
    AreaType.RURAL: 80.0,
    AreaType.URBAN: 45.0,
})

MIN_SPANS_M = MappingProxyType({
    AreaType.URBAN: 30.0,
    AreaType.RURAL: 40.0,
})

# Poles
POLE_HEIGHTS_M = MappingProxyType({
    HeightRule.MV_COMPACT: 11,
    HeightRule.MV_CONJUGATED: 11,
    HeightRule.MV_CONVENTIONAL: 11,
    HeightRule.RURAL_ANY: 11,
    HeightRule.WITH_TRANSFORMER: 12,
    HeightRule.WITH_RECLOSER: 12,
    HeightRule.WITH_REGULATOR: 12,
})

POLE_RESISTANCES_DAN = MappingProxyType({
    ResistanceRule.NORMAL_ALIGNMENT: 300,
    ResistanceRule.END_MONO: 300,
    ResistanceRule.END_TRI: 600,
    ResistanceRule.DERIVATION_MONO: 300,
    ResistanceRule.DERIVATION_TRI: 600,
    ResistanceRule.ANCHOR: 600,
    ResistanceRule.HEAVY_CONDUCTOR: 600,
    ResistanceRule.TRANSFORMER_UP_TO_112KVA: 600,
    ResistanceRule.TRANSFORMER_150KVA: 1000,
    ResistanceRule.TRANSFORMER_225KVA_PLUS: 1500,
    ResistanceRule.RECLOSER: 600,
    ResistanceRule.REGULATOR: 600,
})

CONCRETED_EMBEDDING_MIN_DAN = 600
POLE_TYPE = "DT"  # Double-T concrete

HEAVY_CONDUCTORS = (
    "4/0 AWG",
    "4/0AWG",
    "336,4 MCM",
    "336.4 MCM",
    "185mm²",
    "185 mm²",
)

# Structures
MV_STRUCTURES = MappingProxyType({
    StructureFamily.U: MappingProxyType({
        StructureSlot.TANGENT: "U1",
        StructureSlot.ANGLE: "U2",
        StructureSlot.DERIVATION: "U3",
        StructureSlot.END: "U3",
        StructureSlot.ANGLE_SECTIONING: "U4",
    }),
    StructureFamily.N: MappingProxyType({
        StructureSlot.TANGENT: "N1",
        StructureSlot.ANGLE: "N2",
        StructureSlot.DERIVATION: "N3",
        StructureSlot.END: "N3",
        StructureSlot.ANGLE_SECTIONING: "N4",
    }),
    StructureFamily.T: MappingProxyType({
        StructureSlot.TANGENT: "T1",
        StructureSlot.ANGLE: "T2",
        StructureSlot.DERIVATION: "T3",
        StructureSlot.END: "T3",
        StructureSlot.ANGLE_SECTIONING: "T4",
    }),
    # Compact has no dedicated small-angle structure
    StructureFamily.CE: MappingProxyType({
        StructureSlot.TANGENT: "CE1",
        StructureSlot.ANGLE: "CE1",
        StructureSlot.DERIVATION: "CE3",
        StructureSlot.END: "CE3",
        StructureSlot.ANCHOR: "CE3",
    }),
})

LV_STRUCTURES = MappingProxyType({
    StructureSlot.TANGENT: "SI1",
    StructureSlot.DERIVATION: "SI3",
    StructureSlot.END: "SI4",
})

# Crossing clearances (m above ground)
CROSSING_CLEARANCES_M = MappingProxyType({
    CrossingPlace.STREET: ClearanceHeights(lv=5.5, mv=6.0),
    CrossingPlace.AVENUE: ClearanceHeights(lv=5.5, mv=6.0),
    CrossingPlace.STATE_HIGHWAY: ClearanceHeights(lv=7.0, mv=7.0),
    CrossingPlace.FEDERAL_HIGHWAY: ClearanceHeights(lv=7.0, mv=7.0),
    CrossingPlace.RAILWAY: ClearanceHeights(lv=6.0, mv=9.0),
    CrossingPlace.ELECTRIFIED_RAILWAY: ClearanceHeights(lv=None, mv=12.0),
})

# Corrosion zones
CORROSION_RULES = MappingProxyType({
    CorrosionZone.NORMAL: CorrosionRule(
        conductors=("CAA",),
        pole_classes=("II",),
        pole_materials=("concrete", "wood"),
    ),
    CorrosionZone.P1: CorrosionRule(
        conductors=("CA", "CAL"),
        pole_classes=("II", "IV"),
        pole_materials=("concrete",),
        min_conductor="1/0 AWG",
    ),
    CorrosionZone.P2: CorrosionRule(
        conductors=("CA", "CAL"),
        pole_classes=("IV",),
        pole_materials=("concrete", "fiberglass"),
        min_conductor="1/0 AWG",
        min_bushing="25kV",
    ),
})

CORROSION_ALLOWED_MV_GAUGES = ("1/0 AWG", "4/0 AWG", "336,4 MCM")

# Grounding (NT.00047)
GROUNDING_MAX_INTERVAL_M = 200.0
GROUNDING_RECOMMENDED_INTERVAL_M = 150.0

# Accumulated haversine lengths drift a few ulps from the exact sum
LENGTH_TOLERANCE_M = 1e-6

# Pole function thresholds
ANCHOR_DEFLECTION_DEG = 60.0
ANGLE_DEFLECTION_DEG = 30.0
