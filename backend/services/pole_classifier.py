"""
Pole Classifier Module.

Turns the ordered anchor list into pole records: deflection at each pole,
mechanical function, minimum pole, structure code and equipment flags.

All decisions are geometry-driven; dimensioning and structure codes come
from the rules engine.
"""

import logging
from typing import List, Optional, Sequence, Tuple

from data_models import ProjectConfig, PoleFunction, PoleRecord
from rules_engine import RulesEngine, PoleOptions
from backend.services.geometry import deflection_angle
from backend.services.pole_placer import Anchor, AnchorKind

logger = logging.getLogger(__name__)

CROSSING_ANCHOR_KINDS = (AnchorKind.CROSSING_BEFORE, AnchorKind.CROSSING_AFTER)
GUY_WIRE_DEFLECTION_DEG = 30.0
ANGLE_POLE_DEFLECTION_DEG = 15.0


def anchor_deflections(anchors: Sequence[Anchor]) -> List[float]:
    """Deflection angle at every anchor; 0 at the line ends."""
    deflections = [0.0] * len(anchors)
    for i in range(1, len(anchors) - 1):
        deflections[i] = deflection_angle(
            anchors[i - 1].coordinate, anchors[i].coordinate, anchors[i + 1].coordinate
        )
    return deflections


def classify_pole_function(
    index: int,
    total: int,
    anchor: Anchor,
    deflection_deg: float,
    has_transformer: bool = False,
    has_switch: bool = False,
) -> Tuple[PoleFunction, str]:
    """
    Function of the pole at position index of a line with total poles.

    Equipment decides first: a transformer makes an equipment pole and a
    sectioning switch a derivation pole. Then position: line start
    (anchored), line end, crossing poles (anchored on both sides of the
    crossing). Interior poles bending more than ANGLE_POLE_DEFLECTION_DEG
    are angle poles, the rest tangent.

    Returns:
        Tuple of (PoleFunction, classification_reason)
    """
    if has_transformer:
        return PoleFunction.EQUIPMENT, "Transformer pole"
    if has_switch:
        return PoleFunction.DERIVATION, "Sectioning switch"
    if index == 0:
        return PoleFunction.ANCHOR, "Anchor at line start"
    if index == total - 1:
        return PoleFunction.END, "End of line"
    if anchor.kind in CROSSING_ANCHOR_KINDS:
        return PoleFunction.ANCHOR, "Anchor at crossing"
    if deflection_deg > ANGLE_POLE_DEFLECTION_DEG:
        return PoleFunction.ANGLE, f"Route bend (deflection {deflection_deg:.1f})"
    return PoleFunction.TANGENT, f"Straight alignment (deflection {deflection_deg:.1f})"


def classify_anchors(
    anchors: Sequence[Anchor],
    config: ProjectConfig,
    engine: RulesEngine,
    transformer_kva: Optional[float] = None,
    transformer_index: Optional[int] = None,
    has_sectioning: bool = False,
    switch_indices: Sequence[int] = (),
) -> List[PoleRecord]:
    """
    Build pole records for an ordered anchor list.

    Args:
        anchors: Anchors from origin to destination
        config: Project configuration
        engine: Rules engine for dimensioning and structures
        transformer_kva: Transformer rating, if the line carries one
        transformer_index: Position of the transformer pole
        has_sectioning: Whether angle poles carry sectioning switches
        switch_indices: Positions of poles carrying a sectioning switch

    Returns:
        One PoleRecord per anchor, ids P001, P002, ...
    """
    deflections = anchor_deflections(anchors)
    heavy_conductor = engine.is_heavy_conductor(config.mv_conductor)
    total = len(anchors)
    poles: List[PoleRecord] = []

    for index, anchor in enumerate(anchors):
        deflection = deflections[index]
        has_transformer = bool(transformer_kva) and transformer_index == index
        function, reason = classify_pole_function(
            index, total, anchor, deflection, has_transformer, index in switch_indices,
        )

        dimensioning = engine.dimension_pole(config, function, PoleOptions(
            transformer_kva=transformer_kva if has_transformer else 0.0,
            heavy_conductor=heavy_conductor,
        ))
        structure = engine.select_structure(config, function, deflection, has_sectioning)

        is_origin = index == 0
        is_destination = index == total - 1
        poles.append(PoleRecord(
            id=f"P{index + 1:03d}",
            coordinate=anchor.coordinate,
            height_m=dimensioning.height_m,
            resistance_dan=dimensioning.resistance_dan,
            structure=structure,
            annotation=dimensioning.annotation,
            function=function,
            grounded=is_origin or is_destination or has_transformer or function == PoleFunction.END,
            transformer_kva=transformer_kva if has_transformer else None,
            fuse_switch=has_transformer or function == PoleFunction.DERIVATION,
            surge_arrester=has_transformer or is_destination,
            guy_wire=(function in (PoleFunction.END, PoleFunction.ANCHOR) or
                      deflection > GUY_WIRE_DEFLECTION_DEG),
            deflection_deg=deflection,
            justification=anchor.justification,
        ))
        logger.debug(f"P{index + 1:03d}: {function.value} {dimensioning.annotation} {structure} ({reason})")

    if transformer_kva and (transformer_index is None or not 0 <= transformer_index < total):
        logger.warning(f"Transformer position {transformer_index} is outside the line, no transformer placed")

    return poles
