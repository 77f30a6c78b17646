"""
Unit tests for KPI logging and metrics.

Tests cover:
- MetricsCollector:
  - KPI computation from known world states
  - Energy statistics (avg, median, min, max, std)
  - Per-type counts and extinction flag
  - Trait means and trait diversity
  - History tracking and DataFrame export
  - Empty world edge cases
- CSVLogger:
  - Header written on first row
  - Incremental appending
  - Write-all mode
  - Read-back verification
- SnapshotManager:
  - Save/load roundtrip
  - Slot listing and deletion
  - Missing / corrupted slot errors
- RunManager:
  - Directory creation
  - Config copy
  - Metrics, events and summary files
  - Run listing
"""

import json

import numpy as np
import pandas as pd
import pytest

from ruleweaver.core.config import SimConfig, load_config
from ruleweaver.core.entity import Entity, EntityType, Traits, reset_entity_id_counter
from ruleweaver.logging.csv_logger import CSVLogger
from ruleweaver.logging.event_log import EventLog, Severity
from ruleweaver.logging.run_manager import RunManager
from ruleweaver.logging.snapshot import SAVE_PREFIX, SnapshotManager
from ruleweaver.simulation.engine import SimulationEngine
from ruleweaver.simulation.metrics import MetricsCollector


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def reset_ids():
    reset_entity_id_counter()
    yield
    reset_entity_id_counter()


@pytest.fixture
def config(tmp_path) -> SimConfig:
    cfg = SimConfig()
    cfg.world.width = 200
    cfg.world.height = 200
    cfg.population.herbivores = 0
    cfg.population.carnivores = 0
    cfg.population.traders = 0
    cfg.population.resources = 0
    cfg.persistence.save_dir = str(tmp_path / "saves")
    return cfg


@pytest.fixture
def engine(config) -> SimulationEngine:
    """Initialized engine with an empty world."""
    eng = SimulationEngine(config)
    eng.initialize()
    return eng


def place(engine: SimulationEngine, entity_type: EntityType, energy: float = None,
          x: float = 100, y: float = 100, **traits) -> Entity:
    e = Entity(x, y, entity_type, engine.rng, traits=Traits(**traits))
    if energy is not None:
        e.energy = energy
    engine.world.add_entity(e)
    return e


# ---------------------------------------------------------------------------
# MetricsCollector
# ---------------------------------------------------------------------------

class TestMetricsCollectorBasic:
    def test_collect_returns_dict(self, config, engine):
        place(engine, EntityType.HERBIVORE)
        kpis = MetricsCollector(config).collect(engine)
        assert isinstance(kpis, dict)
        assert kpis["tick"] == 0

    def test_all_kpi_names_present(self, config, engine):
        place(engine, EntityType.HERBIVORE)
        kpis = MetricsCollector(config).collect(engine)
        assert set(MetricsCollector.kpi_names()) == set(kpis)

    def test_type_counts(self, config, engine):
        place(engine, EntityType.HERBIVORE)
        place(engine, EntityType.HERBIVORE)
        place(engine, EntityType.CARNIVORE)
        place(engine, EntityType.RESOURCE)
        kpis = MetricsCollector(config).collect(engine)
        assert kpis["population"] == 3
        assert kpis["herbivores"] == 2
        assert kpis["carnivores"] == 1
        assert kpis["traders"] == 0
        assert kpis["resources"] == 1

    def test_extinction_flag(self, config, engine):
        place(engine, EntityType.RESOURCE)
        assert MetricsCollector(config).collect(engine)["extinction_flag"] is True

    def test_tick_totals_passed_through(self, config, engine):
        totals = {"births": 3, "deaths": 2, "resources_consumed": 4, "resources_spawned": 5}
        kpis = MetricsCollector(config).collect(engine, totals)
        assert (kpis["births"], kpis["deaths"]) == (3, 2)
        assert (kpis["resources_consumed"], kpis["resources_spawned"]) == (4, 5)


class TestEnergyStatistics:
    def test_known_energies(self, config, engine):
        for energy in (10.0, 20.0, 60.0):
            place(engine, EntityType.TRADER, energy=energy)
        place(engine, EntityType.RESOURCE)
        kpis = MetricsCollector(config).collect(engine)
        assert kpis["total_energy"] == 90
        assert kpis["avg_energy"] == pytest.approx(30.0)
        assert kpis["median_energy"] == pytest.approx(20.0)
        assert kpis["min_energy"] == 10.0
        assert kpis["max_energy"] == 60.0
        assert kpis["std_energy"] == pytest.approx(np.std([10.0, 20.0, 60.0]))

    def test_empty_world(self, config, engine):
        kpis = MetricsCollector(config).collect(engine)
        assert kpis["population"] == 0
        assert kpis["avg_energy"] == 0.0
        assert kpis["trait_diversity"] == 0.0
        assert kpis["avg_size"] == 0.0


class TestTraits:
    def test_trait_means(self, config, engine):
        place(engine, EntityType.HERBIVORE, efficiency=0.6, size=1.0)
        place(engine, EntityType.HERBIVORE, efficiency=0.8, size=0.8)
        kpis = MetricsCollector(config).collect(engine)
        assert kpis["avg_efficiency"] == pytest.approx(0.7)
        assert kpis["avg_size"] == pytest.approx(0.9)

    def test_identical_population_zero_diversity(self, config, engine):
        for _ in range(4):
            place(engine, EntityType.HERBIVORE)
        assert MetricsCollector(config).collect(engine)["trait_diversity"] == 0.0

    def test_diverse_population_positive(self, config, engine):
        place(engine, EntityType.HERBIVORE, aggression=0.0)
        place(engine, EntityType.HERBIVORE, aggression=1.0)
        assert MetricsCollector(config).collect(engine)["trait_diversity"] > 0.0

    def test_resources_excluded_from_traits(self, config, engine):
        place(engine, EntityType.HERBIVORE, size=1.0)
        place(engine, EntityType.RESOURCE, size=0.0)
        assert MetricsCollector(config).collect(engine)["avg_size"] == 1.0


class TestMetricsHistory:
    def test_history_appended(self, config, engine):
        collector = MetricsCollector(config)
        place(engine, EntityType.HERBIVORE)
        for _ in range(3):
            engine.tick()
            collector.collect(engine)
        assert len(collector.get_history()) == 3
        assert collector.get_kpi_series("tick") == [1, 2, 3]

    def test_history_capped(self, config, engine):
        config.viz.max_history = 3
        collector = MetricsCollector(config)
        place(engine, EntityType.HERBIVORE)
        for _ in range(5):
            engine.tick()
            collector.collect(engine)
        assert collector.get_kpi_series("tick") == [3, 4, 5]
        assert collector.get_last()["tick"] == 5

    def test_zero_cap_keeps_everything(self, config, engine):
        config.viz.max_history = 0
        collector = MetricsCollector(config)
        for _ in range(5):
            collector.collect(engine)
        assert len(collector.history) == 5

    def test_get_last_empty(self, config):
        assert MetricsCollector(config).get_last() is None

    def test_derived_rules_reported(self, config, engine):
        collector = MetricsCollector(config)
        place(engine, EntityType.HERBIVORE)
        engine.tick()
        kpis = collector.collect(engine)
        assert kpis["population_pressure"] == 0.5
        assert kpis["extinction_threat"] == pytest.approx(0.8)
        assert kpis["weather_phase"] == "clear"

    def test_dataframe_columns(self, config, engine):
        collector = MetricsCollector(config)
        place(engine, EntityType.HERBIVORE)
        collector.collect(engine)
        df = collector.to_dataframe()
        assert isinstance(df, pd.DataFrame)
        assert list(df.columns) == MetricsCollector.kpi_names()
        assert len(df) == 1

    def test_empty_dataframe(self, config):
        df = MetricsCollector(config).to_dataframe()
        assert df.empty
        assert list(df.columns) == MetricsCollector.kpi_names()


# ---------------------------------------------------------------------------
# CSVLogger
# ---------------------------------------------------------------------------

class TestCSVLogger:
    def test_log_row_creates_file(self, tmp_path):
        logger = CSVLogger(tmp_path / "m.csv", columns=["tick", "population"])
        logger.log_row({"tick": 1, "population": 5})
        assert logger.file_path.exists()
        assert logger.rows_written == 1

    def test_header_written_once(self, tmp_path):
        logger = CSVLogger(tmp_path / "m.csv", columns=["tick", "population"])
        logger.log_row({"tick": 1, "population": 5})
        logger.log_row({"tick": 2, "population": 6})
        lines = logger.file_path.read_text().strip().splitlines()
        assert lines == ["tick,population", "1,5", "2,6"]

    def test_extra_keys_dropped(self, tmp_path):
        logger = CSVLogger(tmp_path / "m.csv", columns=["tick"])
        logger.log_row({"tick": 1, "noise": 99})
        assert logger.read_back().columns.tolist() == ["tick"]

    def test_log_all_overwrites(self, tmp_path):
        logger = CSVLogger(tmp_path / "m.csv", columns=["tick"])
        logger.log_row({"tick": 1})
        logger.log_all([{"tick": 5}, {"tick": 6}])
        assert logger.read_back()["tick"].tolist() == [5, 6]
        assert logger.rows_written == 2

    def test_read_back_empty(self, tmp_path):
        df = CSVLogger(tmp_path / "m.csv").read_back()
        assert df.empty
        assert list(df.columns) == MetricsCollector.kpi_names()

    def test_default_columns_match_kpis(self, config, engine, tmp_path):
        place(engine, EntityType.HERBIVORE)
        kpis = MetricsCollector(config).collect(engine)
        logger = CSVLogger(tmp_path / "m.csv")
        logger.log_row(kpis)
        df = logger.read_back()
        assert df.loc[0, "population"] == 1


# ---------------------------------------------------------------------------
# SnapshotManager
# ---------------------------------------------------------------------------

class TestSnapshotManager:
    def test_roundtrip(self, tmp_path):
        saves = SnapshotManager(tmp_path / "saves")
        path = saves.save({"tick": 3, "value": np.float64(1.5), "n": np.int64(4)}, 1)
        assert path.name == f"{SAVE_PREFIX}1.json"
        assert saves.load(1) == {"tick": 3, "value": 1.5, "n": 4}

    def test_no_tmp_file_left(self, tmp_path):
        saves = SnapshotManager(tmp_path)
        saves.save({"a": 1}, 0)
        assert [p.name for p in tmp_path.iterdir()] == [f"{SAVE_PREFIX}0.json"]

    def test_failed_save_keeps_previous(self, tmp_path):
        saves = SnapshotManager(tmp_path)
        saves.save({"a": 1}, 0)
        with pytest.raises(TypeError):
            saves.save({"a": object()}, 0)
        assert saves.load(0) == {"a": 1}

    def test_list_and_delete(self, tmp_path):
        saves = SnapshotManager(tmp_path)
        for slot in (2, 0, 1):
            saves.save({"slot": slot}, slot)
        assert saves.list_slots() == [0, 1, 2]
        assert saves.delete(1) is True
        assert saves.delete(1) is False
        assert saves.list_slots() == [0, 2]

    def test_missing_slot(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            SnapshotManager(tmp_path).load(5)

    def test_not_an_object(self, tmp_path):
        saves = SnapshotManager(tmp_path)
        saves.path_for(0).write_text("[1, 2]")
        with pytest.raises(ValueError):
            saves.load(0)


# ---------------------------------------------------------------------------
# RunManager
# ---------------------------------------------------------------------------

class TestRunManager:
    def test_creates_run_dir_and_config(self, tmp_path):
        config = SimConfig()
        config.world.seed = 7
        rm = RunManager(config, base_dir=tmp_path, run_name="run1")
        assert rm.run_dir == tmp_path / "run1"
        assert rm.config_path.exists()
        assert load_config(rm.config_path).to_dict() == config.to_dict()

    def test_metrics_written(self, config, engine, tmp_path):
        rm = RunManager(config, base_dir=tmp_path, run_name="run1")
        place(engine, EntityType.HERBIVORE)
        rm.log_metrics(MetricsCollector(config).collect(engine))
        assert pd.read_csv(rm.metrics_path)["population"].tolist() == [1]

    def test_events_and_summary(self, config, tmp_path):
        rm = RunManager(config, base_dir=tmp_path, run_name="run1")
        log = EventLog()
        log.log("first")
        log.log("second", Severity.CRITICAL)
        events_path = rm.write_events(log)
        events = json.loads(events_path.read_text())
        assert [e["message"] for e in events] == ["second", "first"]

        rm.finalize({"ticks": 10})
        assert json.loads((rm.run_dir / "summary.json").read_text()) == {"ticks": 10}

    def test_saves_dir(self, config, tmp_path):
        rm = RunManager(config, base_dir=tmp_path, run_name="run1")
        rm.snapshot_manager.save({"a": 1}, 0)
        assert (rm.saves_dir / f"{SAVE_PREFIX}0.json").exists()

    def test_list_runs(self, config, tmp_path):
        RunManager(config, base_dir=tmp_path, run_name="b")
        RunManager(config, base_dir=tmp_path, run_name="a")
        (tmp_path / "not_a_run").mkdir()
        assert RunManager.list_runs(tmp_path) == ["a", "b"]
        assert RunManager.list_runs(tmp_path / "missing") == []
