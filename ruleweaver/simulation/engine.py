"""
Simulation Engine - main tick loop for Ruleweaver.

The engine owns every stateful component (world, entity manager, rules
engine, objective manager, event log, random generator) and threads them
through each call; nothing is reachable globally.

Each tick runs in a fixed order:
  1. Advance the tick counter
  2. RulesEngine.update_derived_rules (from fresh statistics, plus weather)
  3. EntityManager.update (every entity, then dead removal, then respawn)
  4. RulesEngine.apply_rule_modifications on every remaining entity
  5. ObjectiveManager.update (from fresh statistics)
  6. Extinction check, periodic log line, autosave, callbacks

The engine also saves and restores whole-game snapshots. A failed save or
load is logged as a critical event and leaves the running game untouched.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import numpy as np

from ruleweaver.core.config import SimConfig
from ruleweaver.core.entity import Entity, reset_entity_id_counter
from ruleweaver.core.world import World
from ruleweaver.logging.event_log import EventEntry, EventLog, Severity
from ruleweaver.logging.snapshot import SnapshotManager
from ruleweaver.simulation.entity_manager import EntityManager, WorldStatistics
from ruleweaver.simulation.objectives import ObjectiveManager
from ruleweaver.simulation.rules import RulesEngine

logger = logging.getLogger(__name__)

SAVE_VERSION = "1.0"


def _expect(value: Any, kind: type, what: str) -> Any:
    """Return `value` if it has the expected JSON shape, else raise ValueError."""
    if not isinstance(value, kind):
        raise ValueError(
            f"Malformed save data: {what} must be a {kind.__name__}, got {type(value).__name__}"
        )
    return value


# ---------------------------------------------------------------------------
# Tick statistics - lightweight counters for one tick
# ---------------------------------------------------------------------------

@dataclass
class TickStats:
    """Statistics collected during a single tick."""
    tick: int = 0
    population: int = 0
    births: int = 0
    deaths: int = 0
    resources_consumed: int = 0
    resources_spawned: int = 0
    objectives_completed: int = 0
    extinct: bool = False


# ---------------------------------------------------------------------------
# Run result
# ---------------------------------------------------------------------------

@dataclass
class RunResult:
    """Result of a headless multi-tick run."""
    config: SimConfig
    seed: int
    total_ticks: int = 0
    final_population: int = 0
    extinct: bool = False
    extinction_tick: Optional[int] = None
    respawns: int = 0
    score: int = 0
    objectives_completed: int = 0
    max_generation: int = 0
    tick_stats_history: list[TickStats] = field(default_factory=list)

    def to_summary(self) -> dict[str, Any]:
        """JSON-friendly summary without the per-tick history."""
        return {
            "seed": self.seed,
            "total_ticks": self.total_ticks,
            "final_population": self.final_population,
            "extinct": self.extinct,
            "extinction_tick": self.extinction_tick,
            "respawns": self.respawns,
            "score": self.score,
            "objectives_completed": self.objectives_completed,
            "max_generation": self.max_generation,
            "total_births": sum(s.births for s in self.tick_stats_history),
            "total_deaths": sum(s.deaths for s in self.tick_stats_history),
        }


# ---------------------------------------------------------------------------
# Simulation Engine
# ---------------------------------------------------------------------------

class SimulationEngine:
    """
    Core simulation engine.

    Attributes:
        config: Simulation configuration.
        rng: Master random generator (seeded), shared with the world.
        event_log: Event sink shared with every component.
        entity_manager: Owner of the entity collection.
        rules_engine: Global rules and derived values.
        objective_manager: Objectives and score.
        world: The current world (None until initialize()).
        paused: Whether tick() is currently a no-op.
        extinct: Whether the last tick ended with no living entities.
        snapshot_manager: Slot store for saves.
        autosave: Whether to save to the autosave slot periodically.
        on_tick: Optional callback invoked after each tick(tick_number, engine).
        on_extinction: Optional callback invoked on extinction(tick_number, engine).
    """

    def __init__(
        self,
        config: SimConfig,
        seed: Optional[int] = None,
        snapshot_manager: Optional[SnapshotManager] = None,
        autosave: bool = False,
    ):
        """
        Create a simulation engine.

        Args:
            config: Simulation configuration.
            seed: Random seed override. None = use config.world.seed.
            snapshot_manager: Save slot store. None = created on first save
                under config.persistence.save_dir.
            autosave: Save to the autosave slot every
                persistence.autosave_every_ticks ticks.
        """
        self.config = config
        if seed is not None:
            self.config.world.seed = seed

        self.rng = np.random.default_rng(self.config.world.seed)
        self.event_log = EventLog(capacity=config.persistence.log_capacity)

        self.entity_manager = EntityManager(self.config, self.rng, self.event_log)
        self.rules_engine = RulesEngine(self.config, self.event_log)
        self.objective_manager = ObjectiveManager(self.config, self.event_log)

        self.world: Optional[World] = None
        self.paused: bool = False
        self.extinct: bool = False
        self.respawns: int = 0

        self._snapshot_manager = snapshot_manager
        self.autosave = autosave

        self.tick_stats = TickStats()
        self._accumulated_tick_stats: list[TickStats] = []

        self.on_tick: Optional[Callable[[int, "SimulationEngine"], None]] = None
        self.on_extinction: Optional[Callable[[int, "SimulationEngine"], None]] = None

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    def initialize(self) -> World:
        """Create the world and spawn the starting population."""
        reset_entity_id_counter()
        self.world = self.entity_manager.initialize_world(
            self.config.world.width,
            self.config.world.height,
        )
        self.paused = False
        self.extinct = False
        self.event_log.tick = 0
        self.event_log.log("World initialized with starting population")
        return self.world

    def reset(self) -> World:
        """Start over: fresh world, default rules, default objectives."""
        self.rules_engine.reset_to_defaults()
        self.objective_manager.reset()
        self.event_log.clear()
        self._accumulated_tick_stats = []
        self.respawns = 0
        world = self.initialize()
        self.event_log.log("Simulation reset to initial state", Severity.IMPORTANT)
        return world

    def _require_world(self) -> World:
        if self.world is None:
            raise RuntimeError("Engine not initialized: call initialize() first")
        return self.world

    # ------------------------------------------------------------------
    # Core tick
    # ------------------------------------------------------------------

    def tick(self) -> Optional[TickStats]:
        """
        Execute one simulation tick.

        Returns:
            TickStats for this tick, or None if the engine is paused.
        """
        world = self._require_world()
        if self.paused:
            return None

        world.tick_count += 1
        tick = world.tick_count
        self.event_log.tick = tick

        # --- 1. Derived rules from this tick's statistics ---
        self.rules_engine.update_derived_rules(self.entity_manager.get_statistics(), tick)
        rules = self.rules_engine.effective_rules(tick)

        # --- 2. Entities ---
        report = self.entity_manager.update(world, rules)

        # --- 3. Global rule modifiers ---
        for entity in world.get_entities():
            self.rules_engine.apply_rule_modifications(entity, world)

        # --- 4. Objectives ---
        stats = self.entity_manager.get_statistics()
        completed = self.objective_manager.update(world, stats, tick)

        tick_stats = TickStats(
            tick=tick,
            population=stats.population,
            births=report.births,
            deaths=report.deaths,
            resources_consumed=report.resources_consumed,
            resources_spawned=report.resources_spawned,
            objectives_completed=len(completed),
            extinct=stats.population == 0,
        )

        # --- 5. Extinction ---
        if tick_stats.extinct:
            self._handle_extinction(tick)

        # --- 6. Periodic log line and autosave ---
        if tick % self.config.viz.log_stats_every_ticks == 0:
            self._log_periodic_stats(stats)

        every = self.config.persistence.autosave_every_ticks
        if self.autosave and every > 0 and tick % every == 0:
            self.autosave_game()

        self.tick_stats = tick_stats
        self._accumulated_tick_stats.append(tick_stats)

        if self.on_tick is not None:
            self.on_tick(tick, self)

        return tick_stats

    def _log_periodic_stats(self, stats: WorldStatistics) -> None:
        self.event_log.log(
            f"Population: {stats.population}, Energy: {stats.total_energy}, "
            f"Generation: {stats.generations}",
            Severity.IMPORTANT,
        )

    def _handle_extinction(self, tick: int) -> None:
        self.extinct = True
        self.paused = True
        self.event_log.log("EXTINCTION EVENT: All entities have perished!", Severity.CRITICAL)
        if self.on_extinction is not None:
            self.on_extinction(tick, self)

    # ------------------------------------------------------------------
    # Multi-tick run
    # ------------------------------------------------------------------

    def run(self, max_ticks: int, auto_respawn: bool = False) -> RunResult:
        """
        Run the simulation for up to `max_ticks` ticks.

        Stops early on extinction unless `auto_respawn` is set, in which case
        the starting population is reseeded and the run continues.

        Returns:
            RunResult with summary statistics.
        """
        self._require_world()
        result = RunResult(config=self.config, seed=self.config.world.seed)
        history: list[TickStats] = []

        ticks_run = 0
        while ticks_run < max_ticks:
            stats = self.tick()
            if stats is None:
                break
            ticks_run += 1
            history.append(stats)

            if stats.extinct:
                if result.extinction_tick is None:
                    result.extinction_tick = stats.tick
                if not auto_respawn:
                    result.extinct = True
                    break
                self.respawn_population()

        final = self.entity_manager.get_statistics()
        result.total_ticks = ticks_run
        result.final_population = final.population
        result.max_generation = final.generations
        result.respawns = self.respawns
        result.score = self.objective_manager.score
        result.objectives_completed = len(self.objective_manager.completed_objectives)
        result.tick_stats_history = history
        return result

    # ------------------------------------------------------------------
    # Controls
    # ------------------------------------------------------------------

    def pause(self) -> None:
        if not self.paused:
            self.paused = True
            self.event_log.log("Simulation paused")

    def resume(self) -> bool:
        """Resume ticking. Refused while the world is extinct."""
        if self.world is not None and self.world.is_extinct:
            self.event_log.log(
                "Cannot resume: no entities alive, respawn the population first",
                Severity.IMPORTANT,
            )
            return False
        if self.paused:
            self.paused = False
            self.event_log.log("Simulation resumed")
        return True

    def respawn_population(self) -> list[Entity]:
        """
        Recovery after extinction: drop every non-resource, reseed the
        starting population (resources are kept) and resume.
        """
        world = self._require_world()
        for entity in world.get_entities():
            if not entity.is_resource:
                world.remove_entity(entity)

        spawned = self.entity_manager.spawn_initial_population(include_resources=False)
        self.respawns += 1
        self.extinct = False
        self.paused = False
        self.event_log.log(
            "Emergency respawn: New entities introduced to prevent total collapse",
            Severity.IMPORTANT,
        )
        return spawned

    def set_rule(self, name: str, value: Any) -> None:
        """Change a rule through the rules engine, stamped with the current tick."""
        self.rules_engine.update_rule(name, value, tick=self.current_tick)

    def spawn_resource_at(self, x: float, y: float) -> Optional[Entity]:
        return self.entity_manager.spawn_resource_at(x, y)

    def inspect_entity(self, x: float, y: float) -> Optional[Entity]:
        entity = self.entity_manager.find_entity_at(x, y)
        if entity is not None:
            self.event_log.log(
                f"Entity inspected: {entity.type.value} (Gen {entity.generation})"
            )
        return entity

    # ------------------------------------------------------------------
    # Accumulated statistics helpers
    # ------------------------------------------------------------------

    def get_accumulated_stats(self) -> dict[str, int]:
        """Sum the per-tick counters since the last reset."""
        totals = {"births": 0, "deaths": 0, "resources_consumed": 0, "resources_spawned": 0}
        for stats in self._accumulated_tick_stats:
            for key in totals:
                totals[key] += getattr(stats, key)
        return totals

    def reset_accumulated_stats(self) -> list[TickStats]:
        old = self._accumulated_tick_stats
        self._accumulated_tick_stats = []
        return old

    def get_game_stats(self) -> dict[str, Any]:
        """Combined status for the dashboard and CLI."""
        stats = self.entity_manager.get_statistics()
        return {
            "tick": self.current_tick,
            "paused": self.paused,
            "extinct": self.extinct,
            "world": stats.to_dict(),
            "rules": self.rules_engine.get_current_rules().to_dict(),
            "weather": self.rules_engine.weather.get_status(),
            "objectives": self.objective_manager.get_completion_stats(),
        }

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    @property
    def snapshot_manager(self) -> SnapshotManager:
        if self._snapshot_manager is None:
            self._snapshot_manager = SnapshotManager(self.config.persistence.save_dir)
        return self._snapshot_manager

    @snapshot_manager.setter
    def snapshot_manager(self, manager: SnapshotManager) -> None:
        self._snapshot_manager = manager

    def export_state(self) -> dict[str, Any]:
        """Serialize the whole game into the save payload."""
        world = self._require_world()
        return {
            "version": SAVE_VERSION,
            "timestamp": time.time(),
            "tick": world.tick_count,
            "world": {
                "width": world.width,
                "height": world.height,
                "resource_countdown": self.entity_manager.resource_countdown,
                "entities": [e.to_dict() for e in world.live_entities()],
            },
            "rules": self.rules_engine.export_rules(),
            "objectives": self.objective_manager.export_objectives(),
            "event_log": self.event_log.export(self.config.persistence.saved_log_entries),
        }

    def restore_state(self, data: dict[str, Any]) -> None:
        """
        Replace the whole game with a decoded save payload.

        Everything is decoded into fresh objects first; the live state is
        swapped only once decoding has succeeded.

        Raises:
            KeyError, TypeError, ValueError: On malformed data.
        """
        _expect(data, dict, "payload")
        version = str(data["version"])
        if version.split(".")[0] != SAVE_VERSION.split(".")[0]:
            raise ValueError(f"Unsupported save version {version}")

        tick = int(data["tick"])
        world_data = _expect(data["world"], dict, "world")
        width = float(world_data["width"])
        height = float(world_data["height"])
        if width <= 0 or height <= 0:
            raise ValueError(f"Invalid world size {width}x{height}")

        entities = []
        for d in _expect(world_data["entities"], list, "world.entities"):
            entities.append(Entity.from_dict(_expect(d, dict, "entity"), self.rng))
        ids = [e.id for e in entities]
        if len(set(ids)) != len(ids):
            raise ValueError("Duplicate entity ids in save data")
        countdown = int(world_data.get("resource_countdown", 0))

        rules_engine = RulesEngine(self.config)
        rules_engine.import_rules(_expect(data["rules"], dict, "rules"))
        objective_manager = ObjectiveManager(self.config)
        objective_manager.import_objectives(_expect(data["objectives"], dict, "objectives"))
        events = [EventEntry.from_dict(d) for d in _expect(data.get("event_log", []), list, "event_log")]

        # --- swap ---
        world = World(self.config, width, height, rng=self.rng, event_log=self.event_log)
        world.tick_count = tick
        self.entity_manager.restore(world, entities, countdown)
        self.world = world

        rules_engine.event_log = self.event_log
        rules_engine.weather.event_log = self.event_log
        self.rules_engine = rules_engine
        objective_manager.event_log = self.event_log
        self.objective_manager = objective_manager

        self.event_log.entries = events[: self.event_log.capacity]
        self.event_log.tick = tick
        self._accumulated_tick_stats = []

        self.extinct = world.is_extinct
        self.paused = self.extinct

    def save_game(self, slot: Optional[int] = None) -> bool:
        """Save to a slot. Returns False (and logs a critical event) on failure."""
        if slot is None:
            slot = self.config.persistence.autosave_slot
        try:
            payload = self.export_state()
            self.snapshot_manager.save(payload, slot)
        except (OSError, TypeError, ValueError) as e:
            logger.error("Save to slot %d failed: %s", slot, e)
            self.event_log.log(f"Failed to save game: {e}", Severity.CRITICAL)
            return False

        self.event_log.log(f"Game saved to slot {slot}", Severity.SUCCESS)
        return True

    def load_game(self, slot: Optional[int] = None) -> bool:
        """
        Load a slot, replacing the whole game. Returns False on failure, in
        which case the running game is untouched.
        """
        if slot is None:
            slot = self.config.persistence.autosave_slot
        if not self.snapshot_manager.exists(slot):
            self.event_log.log(f"No save data found in slot {slot}", Severity.IMPORTANT)
            return False

        try:
            data = self.snapshot_manager.load(slot)
            self.restore_state(data)
        except (OSError, AttributeError, KeyError, TypeError, ValueError) as e:
            logger.error("Load from slot %d failed: %s", slot, e)
            self.event_log.log(f"Failed to load game: {e}", Severity.CRITICAL)
            return False

        self.event_log.log(f"Game loaded from slot {slot}", Severity.SUCCESS)
        return True

    def autosave_game(self) -> bool:
        return self.save_game(self.config.persistence.autosave_slot)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def current_tick(self) -> int:
        return self.world.tick_count if self.world is not None else 0

    @property
    def population(self) -> int:
        return self.world.population if self.world is not None else 0

    @property
    def is_extinct(self) -> bool:
        return self.world is not None and self.world.is_extinct

    def __repr__(self) -> str:
        return (
            f"SimulationEngine(tick={self.current_tick}, "
            f"population={self.population}, "
            f"paused={self.paused}, "
            f"score={self.objective_manager.score})"
        )
