"""
Unit tests for the Plotly UI components.

Tests cover:
- World rendering from a live world and from a save payload
- The static type legend
- KPI charts built from a MetricsCollector DataFrame
- Objective progress bars
"""

import plotly.graph_objects as go
import pytest

from ruleweaver.core.config import SimConfig
from ruleweaver.core.entity import EntityType
from ruleweaver.simulation.engine import SimulationEngine
from ruleweaver.simulation.metrics import MetricsCollector
from ruleweaver.simulation.objectives import default_objectives
from ruleweaver.simulation.rules import BOOLEAN_RULES, SETTABLE_RULES
from ruleweaver.ui.components.charts import (
    energy_distribution,
    energy_over_time,
    objective_progress,
    population_over_time,
    trait_evolution,
)
from ruleweaver.ui.components.world_view import _SYMBOLS, render_saved_world, render_world, type_legend
from ruleweaver.ui.pages.sim_runner import _SLIDER_RANGES


@pytest.fixture
def engine(tmp_path) -> SimulationEngine:
    cfg = SimConfig()
    cfg.world.width = 200
    cfg.world.height = 150
    cfg.population.herbivores = 3
    cfg.population.carnivores = 1
    cfg.population.traders = 1
    cfg.population.resources = 4
    cfg.persistence.save_dir = str(tmp_path / "saves")
    eng = SimulationEngine(cfg, seed=11)
    eng.initialize()
    return eng


@pytest.fixture
def kpi_frame(engine):
    collector = MetricsCollector(engine.config)
    for _ in range(5):
        engine.tick()
        collector.collect(engine)
    return collector.to_dataframe()


class TestWorldView:
    def test_one_trace_per_type(self, engine):
        fig = render_world(engine.world)
        assert isinstance(fig, go.Figure)
        names = [t.name for t in fig.data]
        assert names == ["Resources (4)", "Herbivores (3)", "Carnivores (1)", "Traders (1)"]

    def test_axes_match_world(self, engine):
        fig = render_world(engine.world)
        assert list(fig.layout.xaxis.range) == [0, 200]
        assert list(fig.layout.yaxis.range) == [150, 0]

    def test_empty_types_skipped(self, engine):
        for e in engine.world.get_entities():
            if e.type is EntityType.TRADER:
                e.die("test")
        names = [t.name for t in render_world(engine.world).data]
        assert not any(n.startswith("Traders") for n in names)

    def test_saved_world(self, engine):
        world_data = engine.export_state()["world"]
        fig = render_saved_world(world_data)
        assert sum(len(t.x) for t in fig.data) == 9
        assert fig.layout.title.text == "Saved World (200x150)"

    def test_legend_covers_types(self):
        assert {row["type"] for row in type_legend()} == {t.value for t in EntityType}

    def test_symbol_for_every_type(self):
        assert set(_SYMBOLS) == set(EntityType)


class TestRuleControls:
    def test_every_rule_has_a_control(self):
        assert set(_SLIDER_RANGES) | BOOLEAN_RULES == set(SETTABLE_RULES)
        assert not set(_SLIDER_RANGES) & BOOLEAN_RULES


class TestCharts:
    def test_population_lines(self, kpi_frame):
        fig = population_over_time(kpi_frame)
        assert [t.name for t in fig.data] == ["Herbivores", "Carnivores", "Traders", "Total"]
        assert len(fig.data[0].x) == 5

    def test_population_with_resources(self, kpi_frame):
        fig = population_over_time(kpi_frame, include_resources=True)
        assert "Resources" in [t.name for t in fig.data]

    def test_energy_over_time(self, kpi_frame):
        fig = energy_over_time(kpi_frame)
        assert list(fig.data[0].y) == kpi_frame["total_energy"].tolist()

    def test_energy_distribution(self, engine):
        energies = [e.energy for e in engine.world.live_entities() if not e.is_resource]
        fig = energy_distribution(energies, bins=10)
        assert fig.data[0].nbinsx == 10

    def test_trait_subset(self, kpi_frame):
        fig = trait_evolution(kpi_frame, traits=["size", "aggression"])
        assert [t.name for t in fig.data] == ["Size", "Aggression"]

    def test_empty_frame(self):
        df = MetricsCollector(SimConfig()).to_dataframe()
        assert len(population_over_time(df).data) == 4
        assert len(trait_evolution(df).data) == 5

    def test_objective_progress(self):
        objectives = default_objectives()
        objectives[1].completed = True
        fig = objective_progress(objectives)
        bar = fig.data[0]
        assert list(bar.y) == [o.title for o in objectives]
        assert bar.x[1] == 100
        assert bar.marker.color[1] == "#2ecc71"
