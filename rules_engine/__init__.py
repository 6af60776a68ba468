"""
Rules Engine Module.

This module contains the utility rules engines that enforce distribution
network norms.

CRITICAL PRINCIPLES:
- Answers span, pole and structure questions from fixed norm tables
- Reports violations as findings, never as exceptions
- NEVER places poles
- NEVER reads terrain
"""

from data_models import Utility
from rules_engine.base import (
    RulesEngine, PoleOptions, PoleDimensioning, ConductorSpec, MaterialSpec,
    Embedding, CorrosionComponent,
)
from rules_engine.equatorial_engine import EquatorialEngine

__all__ = [
    'RulesEngine',
    'EquatorialEngine',
    'PoleOptions',
    'PoleDimensioning',
    'ConductorSpec',
    'MaterialSpec',
    'Embedding',
    'CorrosionComponent',
    'create_rules_engine',
]


def create_rules_engine(utility: Utility) -> RulesEngine:
    """
    Factory function to create the rules engine of a utility.

    Raises:
        ValueError: If the utility has no rules engine
    """
    if utility == Utility.EQUATORIAL:
        return EquatorialEngine()
    raise ValueError(f"Unsupported utility: {utility}")
