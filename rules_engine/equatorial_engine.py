"""
Equatorial Energia Rules Engine.

Implements the distribution norms of Equatorial Energia:
- NT.00005: Distribution network design criteria (spans, clearances)
- NT.00006: 13.8 kV and LV structure standard (poles, structures)
- NT.00008: Material standardization by corrosion environment
- NT.00047: Grounding criteria
"""

import logging
from types import MappingProxyType
from typing import Dict, Optional, Sequence

from data_models import (
    ProjectConfig, PoleFunction, PoleRecord, ConductorRecord, AreaType,
    NetworkType, NetworkNature, CorrosionZone, VoltageLevel, Severity,
    ValidationReport,
)
from rules_engine.base import (
    RulesEngine, PoleOptions, PoleDimensioning, ConductorSpec, MaterialSpec,
    Embedding, CorrosionComponent,
)
from rules_engine import tables
from rules_engine.tables import (
    StructureFamily, StructureSlot, HeightRule, ResistanceRule, CrossingPlace,
)

logger = logging.getLogger(__name__)

# Function -> structure slot; ANGLE and ANCHOR are resolved with fallbacks
FUNCTION_SLOTS = MappingProxyType({
    PoleFunction.TANGENT: StructureSlot.TANGENT,
    PoleFunction.ANGLE: StructureSlot.ANGLE,
    PoleFunction.DERIVATION: StructureSlot.DERIVATION,
    PoleFunction.END: StructureSlot.END,
    PoleFunction.ANCHOR: StructureSlot.ANCHOR,
    PoleFunction.EQUIPMENT: StructureSlot.DERIVATION,
})


def _normalize_gauge(spec: str) -> str:
    return spec.replace(" ", "").upper()


class EquatorialEngine(RulesEngine):
    """
    Equatorial Energia rules engine.

    Stateless: every answer depends only on the arguments and the norm
    tables in rules_engine.tables.
    """

    def __init__(self):
        super().__init__("Equatorial Energia (NT.00005, NT.00006, NT.00008, NT.00047)")

    # ------------------------------------------------------------------
    # Spans
    # ------------------------------------------------------------------

    def max_span(self, config: ProjectConfig, is_crossing: bool = False, deflection_deg: float = 0.0) -> float:
        """
        Maximum span for the configuration.

        Crossings and sharp angles (> 60 degrees) are always limited to 40 m.
        Rural single-phase conventional lines allow the longest spans; lines
        carrying a conjugated LV circuit are limited by area.
        """
        if is_crossing or deflection_deg > tables.SHARP_ANGLE_DEG:
            return tables.CROSSING_MAX_SPAN_M

        if (config.network_nature == NetworkNature.MONOPHASE and
                config.area_type == AreaType.RURAL and
                config.network_type == NetworkType.CONVENTIONAL):
            return tables.MONOPHASE_RURAL_MAX_SPAN_M

        if config.with_lv:
            return tables.CONJUGATED_MAX_SPANS_M[config.area_type]

        return tables.MAX_SPANS_M[(config.network_type, config.area_type)]

    def min_span(self, config: ProjectConfig) -> float:
        return tables.MIN_SPANS_M[config.area_type]

    # ------------------------------------------------------------------
    # Poles and structures
    # ------------------------------------------------------------------

    def _pole_height(self, config: ProjectConfig, options: PoleOptions) -> float:
        if options.transformer_kva:
            return tables.POLE_HEIGHTS_M[HeightRule.WITH_TRANSFORMER]
        if options.recloser:
            return tables.POLE_HEIGHTS_M[HeightRule.WITH_RECLOSER]
        if options.regulator:
            return tables.POLE_HEIGHTS_M[HeightRule.WITH_REGULATOR]
        if config.network_type == NetworkType.COMPACT:
            return tables.POLE_HEIGHTS_M[HeightRule.MV_COMPACT]
        if config.with_lv:
            return tables.POLE_HEIGHTS_M[HeightRule.MV_CONJUGATED]
        if config.area_type == AreaType.RURAL:
            return tables.POLE_HEIGHTS_M[HeightRule.RURAL_ANY]
        return tables.POLE_HEIGHTS_M[HeightRule.MV_CONVENTIONAL]

    def _pole_resistance(self, config: ProjectConfig, function: PoleFunction, options: PoleOptions) -> float:
        resistances = tables.POLE_RESISTANCES_DAN
        if options.transformer_kva:
            if options.transformer_kva >= 225:
                return resistances[ResistanceRule.TRANSFORMER_225KVA_PLUS]
            if options.transformer_kva >= 150:
                return resistances[ResistanceRule.TRANSFORMER_150KVA]
            return resistances[ResistanceRule.TRANSFORMER_UP_TO_112KVA]
        if options.recloser:
            return resistances[ResistanceRule.RECLOSER]
        if options.regulator:
            return resistances[ResistanceRule.REGULATOR]
        if options.heavy_conductor:
            return resistances[ResistanceRule.HEAVY_CONDUCTOR]
        if function == PoleFunction.ANCHOR:
            return resistances[ResistanceRule.ANCHOR]

        triphase = config.network_nature == NetworkNature.TRIPHASE
        if function == PoleFunction.END:
            return resistances[ResistanceRule.END_TRI if triphase else ResistanceRule.END_MONO]
        if function == PoleFunction.DERIVATION:
            return resistances[ResistanceRule.DERIVATION_TRI if triphase else ResistanceRule.DERIVATION_MONO]
        return resistances[ResistanceRule.NORMAL_ALIGNMENT]

    def dimension_pole(
        self,
        config: ProjectConfig,
        function: PoleFunction,
        options: PoleOptions = PoleOptions(),
    ) -> PoleDimensioning:
        """
        Minimum pole for a function and its equipment.

        Height and resistance follow fixed precedence chains (transformer
        first, plain alignment last). Poles of 600 daN and above are
        concreted; the concrete class follows the corrosion zone.
        """
        height = self._pole_height(config, options)
        resistance = self._pole_resistance(config, function, options)

        if resistance >= tables.CONCRETED_EMBEDDING_MIN_DAN:
            embedding = Embedding.CONCRETED
        else:
            embedding = Embedding.SIMPLE

        if config.corrosion_zone == CorrosionZone.P2:
            concrete_class = "IV"
        elif config.corrosion_zone == CorrosionZone.P1:
            concrete_class = "IV" if resistance >= tables.CONCRETED_EMBEDDING_MIN_DAN else "II"
        else:
            concrete_class = "II"

        return PoleDimensioning(
            height_m=height,
            resistance_dan=resistance,
            pole_type=tables.POLE_TYPE,
            concrete_class=concrete_class,
            embedding=embedding,
            annotation=f"{tables.POLE_TYPE} {height:g}/{resistance:g}",
        )

    def structure_family(self, config: ProjectConfig) -> StructureFamily:
        if config.network_type == NetworkType.COMPACT:
            return StructureFamily.CE
        if config.network_nature == NetworkNature.MONOPHASE:
            return StructureFamily.U
        return StructureFamily.N

    def select_structure(
        self,
        config: ProjectConfig,
        function: PoleFunction,
        deflection_deg: float = 0.0,
        has_sectioning: bool = False,
    ) -> str:
        """
        MV structure code for a pole function.

        A slot missing from the family table falls back to the family's
        tangent structure; anchors without an anchor slot use the end one.
        """
        family = tables.MV_STRUCTURES[self.structure_family(config)]
        slot = FUNCTION_SLOTS.get(function, StructureSlot.TANGENT)

        if function == PoleFunction.ANGLE and has_sectioning and StructureSlot.ANGLE_SECTIONING in family:
            slot = StructureSlot.ANGLE_SECTIONING
        if slot == StructureSlot.ANCHOR and slot not in family:
            slot = StructureSlot.END

        return family.get(slot, family[StructureSlot.TANGENT])

    def select_lv_structure(self, function: PoleFunction) -> str:
        """SI (multiplexed LV) structure code; tangent for unsupported functions."""
        slot = {
            PoleFunction.DERIVATION: StructureSlot.DERIVATION,
            PoleFunction.END: StructureSlot.END,
        }.get(function, StructureSlot.TANGENT)
        return tables.LV_STRUCTURES[slot]

    def pole_function(
        self,
        deflection_deg: float,
        is_end: bool = False,
        is_derivation: bool = False,
        has_equipment: bool = False,
    ) -> PoleFunction:
        if has_equipment:
            return PoleFunction.EQUIPMENT
        if is_end:
            return PoleFunction.END
        if is_derivation:
            return PoleFunction.DERIVATION
        if deflection_deg > tables.ANCHOR_DEFLECTION_DEG:
            return PoleFunction.ANCHOR
        if deflection_deg > tables.ANGLE_DEFLECTION_DEG:
            return PoleFunction.ANGLE
        return PoleFunction.TANGENT

    # ------------------------------------------------------------------
    # Conductors and materials
    # ------------------------------------------------------------------

    def is_heavy_conductor(self, conductor: str) -> bool:
        """Whether a conductor gauge requires a reinforced pole."""
        normalized = _normalize_gauge(conductor)
        return any(_normalize_gauge(heavy) in normalized for heavy in tables.HEAVY_CONDUCTORS)

    def select_conductor(self, config: ProjectConfig) -> ConductorSpec:
        """
        Conductor specs and their drawing annotations.

        Corrosive zones (P1/P2) force the MV gauge to at least 1/0 AWG.
        """
        mv = config.mv_conductor or "1/0 AWG"
        lv = config.lv_conductor or "35(35)"

        if config.corrosion_zone != CorrosionZone.NORMAL:
            normalized = _normalize_gauge(mv)
            if not any(_normalize_gauge(g) in normalized for g in tables.CORROSION_ALLOWED_MV_GAUGES):
                logger.debug(f"MV conductor {mv} not allowed in zone {config.corrosion_zone.value}, using 1/0 AWG")
                mv = "1/0 AWG"

        if config.network_nature == NetworkNature.MONOPHASE:
            mv_phases, mv_count = "AC", 2
            lv_phases, lv_count = "AN", 1
        elif config.network_nature == NetworkNature.BIPHASE:
            mv_phases, mv_count = "AB", 2
            lv_phases, lv_count = "ABCN", 4
        else:
            mv_phases, mv_count = "ABC", 3
            lv_phases, lv_count = "ABCN", 4

        cable = "XLPE" if config.network_type == NetworkType.COMPACT else "CAA"
        lv_annotation = f"{lv_phases} {lv_count} #{lv} MULT" if config.with_lv else ""

        return ConductorSpec(
            mv=mv,
            lv=lv,
            mv_annotation=f"{mv_phases} {mv_count} #{mv} {cable}",
            lv_annotation=lv_annotation,
        )

    def select_corrosion_material(self, config: ProjectConfig, component: CorrosionComponent) -> MaterialSpec:
        zone = config.corrosion_zone
        rule = tables.CORROSION_RULES[zone]

        if component == CorrosionComponent.CONDUCTOR:
            spec = f"Minimum {rule.min_conductor}" if rule.min_conductor else "Standard"
            return MaterialSpec(rule.conductors[0], spec)
        if component == CorrosionComponent.POLE:
            return MaterialSpec(rule.pole_materials[0], f"Class {rule.pole_classes[0]}")
        if component == CorrosionComponent.HARDWARE:
            if zone == CorrosionZone.P2:
                return MaterialSpec("Stainless or hot-dip galvanized steel", "Zone P2")
            if zone == CorrosionZone.P1:
                return MaterialSpec("Hot-dip galvanized steel", "Zone P1")
            return MaterialSpec("Galvanized steel", "Normal")
        if zone == CorrosionZone.P2:
            return MaterialSpec("Polymeric or glazed porcelain", f"Bushing min {rule.min_bushing}")
        return MaterialSpec("Porcelain or polymeric", "Standard")

    # ------------------------------------------------------------------
    # Clearances and grounding
    # ------------------------------------------------------------------

    def crossing_clearance_height(self, place: CrossingPlace, level: VoltageLevel) -> Optional[float]:
        """Minimum conductor height over a crossed place; None where LV may not cross."""
        heights = tables.CROSSING_CLEARANCES_M[place]
        return heights.lv if level == VoltageLevel.LV else heights.mv

    def needs_grounding(self, distance_since_last_m: float) -> bool:
        return distance_since_last_m >= tables.GROUNDING_RECOMMENDED_INTERVAL_M - tables.LENGTH_TOLERANCE_M

    def grounding_mandatory(self, distance_since_last_m: float) -> bool:
        return distance_since_last_m >= tables.GROUNDING_MAX_INTERVAL_M - tables.LENGTH_TOLERANCE_M

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_project(
        self,
        poles: Sequence[PoleRecord],
        conductors: Sequence[ConductorRecord],
        config: ProjectConfig,
    ) -> ValidationReport:
        """
        Validate spans, pole minimums and grounding spacing.

        Checks in order:
        1. Conductor length above max span (error) / below min span (warning)
        2. Pole height and resistance minimums (error)
        3. Ungrounded MV run longer than 200 m (warning)
        4. Informational summary
        """
        report = ValidationReport()
        max_span = self.max_span(config)
        min_span = self.min_span(config)

        # Check 1: Spans
        for conductor in conductors:
            field = f"conductor.{conductor.id}.length"
            if conductor.length_m > max_span:
                report.findings.append(self._finding(
                    field, f"{conductor.length_m:.1f}", f"<= {max_span:g}", Severity.ERROR,
                    f"Span of {conductor.length_m:.1f}m exceeds maximum of {max_span:g}m",
                ))
            if conductor.length_m < min_span:
                report.findings.append(self._finding(
                    field, f"{conductor.length_m:.1f}", f">= {min_span:g}", Severity.WARNING,
                    f"Span of {conductor.length_m:.1f}m below minimum of {min_span:g}m",
                ))

        # Check 2: Poles
        if config.network_type == NetworkType.COMPACT:
            min_height = tables.POLE_HEIGHTS_M[HeightRule.MV_COMPACT]
        else:
            min_height = tables.POLE_HEIGHTS_M[HeightRule.MV_CONVENTIONAL]
        min_resistance = tables.POLE_RESISTANCES_DAN[ResistanceRule.NORMAL_ALIGNMENT]

        for pole in poles:
            if pole.height_m < min_height:
                report.findings.append(self._finding(
                    f"pole.{pole.id}.height", f"{pole.height_m:g}", f">= {min_height:g}", Severity.ERROR,
                    f"Pole {pole.id} height {pole.height_m:g}m below minimum {min_height:g}m",
                ))
            if pole.resistance_dan < min_resistance:
                report.findings.append(self._finding(
                    f"pole.{pole.id}.resistance", f"{pole.resistance_dan:g}", f">= {min_resistance:g}",
                    Severity.ERROR,
                    f"Pole {pole.id} resistance {pole.resistance_dan:g}daN below minimum",
                ))

        # Check 3: Grounding spacing along the MV run
        poles_by_id: Dict[str, PoleRecord] = {pole.id: pole for pole in poles}
        accumulated = 0.0
        for conductor in conductors:
            if conductor.level != VoltageLevel.MV:
                continue
            accumulated += conductor.length_m
            destination = poles_by_id.get(conductor.to_pole_id)
            if destination is not None and destination.grounded:
                accumulated = 0.0
                continue
            if accumulated > tables.GROUNDING_MAX_INTERVAL_M + tables.LENGTH_TOLERANCE_M:
                report.findings.append(self._finding(
                    "grounding", f"{accumulated:.0f}", f"<= {tables.GROUNDING_MAX_INTERVAL_M:g}",
                    Severity.WARNING,
                    f"Ungrounded distance of {accumulated:.0f}m exceeds maximum",
                ))
                accumulated = 0.0

        # Check 4: Summary
        description = f"{config.network_type.value} {config.network_nature.value} {config.area_type.value}"
        report.findings.append(self._finding(
            "configuration", description, "-", Severity.INFO,
            f"Project {config.network_type.value} {config.network_nature.value} "
            f"in {config.area_type.value} area",
        ))
        report.findings.append(self._finding(
            "totals", f"poles={len(poles)} conductors={len(conductors)}", "-", Severity.INFO,
            f"Total: {len(poles)} poles, {len(conductors)} spans",
        ))
        report.findings.append(self._finding(
            "spans", f"min={min_span:g} max={max_span:g}", "-", Severity.INFO,
            f"Allowed spans: {min_span:g}m - {max_span:g}m",
        ))

        logger.info(
            f"Project validated: {len(report.errors)} errors, {len(report.warnings)} warnings"
        )
        return report

    def constants(self) -> Dict[str, object]:
        """All norm tables, for documentation and debugging."""
        return {
            "max_spans_m": tables.MAX_SPANS_M,
            "conjugated_max_spans_m": tables.CONJUGATED_MAX_SPANS_M,
            "crossing_max_span_m": tables.CROSSING_MAX_SPAN_M,
            "monophase_rural_max_span_m": tables.MONOPHASE_RURAL_MAX_SPAN_M,
            "min_spans_m": tables.MIN_SPANS_M,
            "pole_heights_m": tables.POLE_HEIGHTS_M,
            "pole_resistances_dan": tables.POLE_RESISTANCES_DAN,
            "mv_structures": tables.MV_STRUCTURES,
            "lv_structures": tables.LV_STRUCTURES,
            "crossing_clearances_m": tables.CROSSING_CLEARANCES_M,
            "corrosion_rules": tables.CORROSION_RULES,
            "grounding_max_interval_m": tables.GROUNDING_MAX_INTERVAL_M,
            "grounding_recommended_interval_m": tables.GROUNDING_RECOMMENDED_INTERVAL_M,
        }
