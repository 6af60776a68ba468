"""
Base Rules Engine Abstract Class.

This defines the interface that every utility rules engine must implement.
The rules engine is responsible ONLY for engineering norms - span limits,
pole dimensioning, structure selection and project validation. It never
places poles and never reads terrain.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Sequence

from data_models import (
    ProjectConfig, PoleFunction, PoleRecord, ConductorRecord,
    ValidationReport, ValidationFinding, Severity,
)


class Embedding(Enum):
    """How the pole base is set in the ground."""
    SIMPLE = "simple"
    CONCRETED = "concreted"


class CorrosionComponent(Enum):
    CONDUCTOR = "conductor"
    POLE = "pole"
    HARDWARE = "hardware"
    INSULATOR = "insulator"


@dataclass(frozen=True)
class PoleOptions:
    """Equipment and loading that strengthen a pole."""
    transformer_kva: float = 0.0
    heavy_conductor: bool = False
    recloser: bool = False
    regulator: bool = False


@dataclass(frozen=True)
class PoleDimensioning:
    """Minimum pole for a function; height in m, resistance in daN."""
    height_m: float
    resistance_dan: float
    pole_type: str
    concrete_class: str
    embedding: Embedding
    annotation: str  # e.g. "DT 11/300"


@dataclass(frozen=True)
class ConductorSpec:
    mv: str
    lv: str
    mv_annotation: str  # e.g. "ABC 3 #1/0 AWG CAA"
    lv_annotation: str  # e.g. "ABCN 4 #35(35) MULT", empty without LV


@dataclass(frozen=True)
class MaterialSpec:
    material: str
    specification: str


class RulesEngine(ABC):
    """
    Abstract base class for utility rules engines.

    RESPONSIBILITIES:
    - Span limits for a project configuration
    - Pole dimensioning and structure selection
    - Whole-project validation as findings

    NOT RESPONSIBLE FOR:
    - Pole placement
    - Terrain analysis

    All methods are pure functions of their arguments.
    """

    def __init__(self, standard_name: str):
        """
        Initialize rules engine.

        Args:
            standard_name: Human-readable name of the norm set
        """
        self.standard_name = standard_name

    @abstractmethod
    def max_span(self, config: ProjectConfig, is_crossing: bool = False, deflection_deg: float = 0.0) -> float:
        """Maximum span in meters for the configuration."""
        pass

    @abstractmethod
    def min_span(self, config: ProjectConfig) -> float:
        """Minimum span in meters for the configuration."""
        pass

    @abstractmethod
    def dimension_pole(
        self,
        config: ProjectConfig,
        function: PoleFunction,
        options: PoleOptions = PoleOptions(),
    ) -> PoleDimensioning:
        pass

    @abstractmethod
    def select_structure(
        self,
        config: ProjectConfig,
        function: PoleFunction,
        deflection_deg: float = 0.0,
        has_sectioning: bool = False,
    ) -> str:
        pass

    @abstractmethod
    def pole_function(
        self,
        deflection_deg: float,
        is_end: bool = False,
        is_derivation: bool = False,
        has_equipment: bool = False,
    ) -> PoleFunction:
        pass

    @abstractmethod
    def select_conductor(self, config: ProjectConfig) -> ConductorSpec:
        pass

    @abstractmethod
    def is_heavy_conductor(self, conductor: str) -> bool:
        """Whether a conductor gauge requires a reinforced pole."""
        pass

    @abstractmethod
    def validate_project(
        self,
        poles: Sequence[PoleRecord],
        conductors: Sequence[ConductorRecord],
        config: ProjectConfig,
    ) -> ValidationReport:
        """
        Validate a finished project.

        Never raises for constraint violations; every problem becomes a
        finding. The report is valid when it holds no error findings.
        """
        pass

    @staticmethod
    def _finding(field: str, actual, expected: str, severity: Severity, message: str) -> ValidationFinding:
        return ValidationFinding(
            field=field,
            actual=str(actual),
            expected=expected,
            severity=severity,
            message=message,
        )
