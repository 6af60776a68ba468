"""
Planner configuration from environment variables.

Only tunables of the placement algorithms live here. Utility norms (span
limits, pole tables, structure codes) are fixed tables in rules_engine.tables.
"""
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class PlannerSettings(BaseSettings):
    """Planner settings loaded from PLANNER_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="PLANNER_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    # Route analysis
    corner_search_radius_m: float = Field(15.0, gt=0)
    facade_clearance_m: float = Field(1.5, ge=0)
    crossing_pole_clearance_m: float = Field(5.0, ge=0)

    # Placement
    max_repair_iterations: int = Field(10, ge=1)
    exclusion_escape_margin_m: float = Field(2.0, ge=0)
    max_exclusion_escape_steps: int = Field(20, ge=1)

    # Diagnostics
    cost_grid_cell_size_m: float = Field(10.0, gt=0)

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v):
        """Accept 'debug', 'Info', ... from the environment."""
        if isinstance(v, str):
            return v.strip().upper()
        return v


@lru_cache
def get_settings() -> PlannerSettings:
    """Get cached settings instance."""
    return PlannerSettings()
