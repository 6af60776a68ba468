"""
Integration Tests for the network design pipeline.

Runs area classification, placement, classification, validation and
barrier detection end to end on small synthetic lines.
"""

import pytest

from data_models import (
    Coordinate, ProjectConfig, AreaType, NetworkType, NetworkNature, VoltageLevel,
    PoleFunction, Street, TerrainSnapshot, ElevationPoint, DesignInputError,
)
from rules_engine import EquatorialEngine
from backend.config import PlannerSettings
from backend.services.geometry import offset_by_meters
from backend.services.network_designer import (
    compute_span_targets, build_conductors, design_network,
)

BASE = Coordinate(lat=-2.53, lon=-44.30)


def at(east_m: float, north_m: float) -> Coordinate:
    return offset_by_meters(BASE, east_m, north_m)


class TestSpanTargets:

    def setup_method(self):
        self.engine = EquatorialEngine()

    def test_rural_conventional(self):
        targets = compute_span_targets(ProjectConfig.default(), self.engine)
        assert (targets.ideal_span_m, targets.max_span_m, targets.min_span_m) == (100.0, 120.0, 40.0)

    def test_ideal_clamped_to_norm_window(self):
        compact = ProjectConfig(AreaType.URBAN, NetworkType.COMPACT, NetworkNature.TRIPHASE)
        targets = compute_span_targets(compact, self.engine, has_obstacles=True)
        assert targets.max_span_m == 60.0
        assert targets.ideal_span_m == 30.0, "28m ideal is raised to the 30m urban minimum"

    def test_conjugated_lv_caps_ideal(self):
        conjugated = ProjectConfig(AreaType.RURAL, NetworkType.CONVENTIONAL, NetworkNature.TRIPHASE, with_lv=True)
        targets = compute_span_targets(conjugated, self.engine)
        assert targets.ideal_span_m == 80.0, "Ideal span never exceeds the maximum"


class TestDesignNetwork:
    """End-to-end design of a 500m rural line."""

    def setup_method(self):
        self.settings = PlannerSettings()
        self.route = [at(0, 0), at(0, 500)]
        self.config = ProjectConfig.default()

    def test_straight_rural_line(self):
        design = design_network(self.route, TerrainSnapshot(), self.config, settings=self.settings)
        assert len(design.poles) == 6, f"Expected 6 poles, got {len(design.poles)}"
        assert len(design.conductors) == 5
        assert all(c.level == VoltageLevel.MV for c in design.conductors)
        assert all(c.length_m <= design.span_targets.max_span_m for c in design.conductors)
        assert design.is_valid, f"Unexpected errors: {design.report.errors}"
        assert design.area.area_type == AreaType.RURAL
        assert design.conductor_spec.mv_annotation == "ABC 3 #1/0 AWG CAA"

    def test_grounding_warning_on_long_ungrounded_run(self):
        design = design_network(self.route, TerrainSnapshot(), self.config, settings=self.settings)
        grounding = [f for f in design.report.warnings if f.field == "grounding"]
        assert len(grounding) == 1, "300m without grounding on a 500m line"

    def test_conjugated_lv_line(self):
        config = ProjectConfig(AreaType.RURAL, NetworkType.CONVENTIONAL, NetworkNature.TRIPHASE, with_lv=True)
        design = design_network(self.route, TerrainSnapshot(), config, settings=self.settings)
        assert len(design.conductors) == 2 * (len(design.poles) - 1), "One MV and one LV run per span"
        lv = [c for c in design.conductors if c.level == VoltageLevel.LV]
        assert lv and all(c.id.startswith("CBT-") for c in lv)
        assert all(c.length_m <= 80.0 + 1e-6 for c in design.conductors), "Conjugated lines span at most 80m"

    def test_transformer_on_line(self):
        design = design_network(
            self.route, TerrainSnapshot(), self.config,
            transformer_kva=112.5, transformer_index=2, settings=self.settings,
        )
        transformer = design.poles[2]
        assert transformer.function == PoleFunction.EQUIPMENT
        assert transformer.height_m == 12

    def test_crossing_line_is_valid(self):
        terrain = TerrainSnapshot(streets=(
            Street(id="P", name="BR-135", highway="trunk", points=(at(-100, 250), at(100, 250))),
        ))
        design = design_network(self.route, terrain, self.config, settings=self.settings)
        assert design.placement.statistics.crossing_poles == 2
        assert len(design.placement.crossings) == 1
        assert design.is_valid

    def test_cost_grid_and_slopes(self):
        profile = [ElevationPoint(at(0, 0), 10.0), ElevationPoint(at(0, 500), 140.0)]
        design = design_network(
            self.route, TerrainSnapshot(), self.config,
            elevation_profile=profile, include_cost_grid=True, settings=self.settings,
        )
        assert design.cost_grid is not None
        assert design.cost_grid_statistics.total_cells == design.cost_grid.costs.size
        assert design.barriers.summary.steep_slopes == len(design.poles) - 1, \
            "26% grade flags every span"

    def test_gap_filling_needs_no_repair(self):
        design = design_network(
            self.route, TerrainSnapshot(), self.config,
            settings=PlannerSettings(max_repair_iterations=1),
        )
        assert design.placement.repair_converged, "Gap filling already meets the maximum"
        assert not [f for f in design.report.findings if f.field == "placement.span_repair"]

    def test_missing_inputs(self):
        with pytest.raises(DesignInputError):
            design_network(None, TerrainSnapshot(), self.config, settings=self.settings)


class TestBuildConductors:

    def test_conductor_ids(self):
        design = design_network(
            [at(0, 0), at(0, 200)], TerrainSnapshot(), ProjectConfig.default(), settings=PlannerSettings(),
        )
        conductors = build_conductors(design.poles, design.config, design.conductor_spec)
        assert [c.id for c in conductors] == ["CMT-001", "CMT-002"]
        assert conductors[0].from_pole_id == "P001" and conductors[-1].to_pole_id == "P003"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
