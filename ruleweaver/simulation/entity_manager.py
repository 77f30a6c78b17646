"""
Entity Manager for Ruleweaver.

Owns the world's entity collection and everything that happens to it in
bulk: the starting spawn, the per-tick update pass, the single-pass removal
of the dead, periodic resource respawning, and the statistics every other
component reads.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Optional

import numpy as np

from ruleweaver.core.config import SimConfig
from ruleweaver.core.entity import Entity, EntityType, reserve_entity_ids
from ruleweaver.core.world import World
from ruleweaver.logging.event_log import EventLog
from ruleweaver.simulation.rules import RuleSet
from ruleweaver.utils.spatial import random_point

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------

@dataclass
class WorldStatistics:
    """
    Aggregate view of the live world. Computed fresh on every call to
    EntityManager.get_statistics(), never cached.

    Attributes:
        population: Live non-resource entities.
        total_energy: Floored sum of their energy.
        average_age: Floored mean age (0 when empty).
        generations: Highest generation alive (0 when empty).
        by_type: Live count per EntityType, resources included.
    """
    population: int = 0
    total_energy: int = 0
    average_age: int = 0
    generations: int = 0
    by_type: dict[EntityType, int] = field(
        default_factory=lambda: {t: 0 for t in EntityType}
    )

    def count(self, entity_type: EntityType) -> int:
        return self.by_type.get(entity_type, 0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "population": self.population,
            "total_energy": self.total_energy,
            "average_age": self.average_age,
            "generations": self.generations,
            "by_type": {t.value: n for t, n in self.by_type.items()},
        }


@dataclass
class UpdateReport:
    """What happened to the collection during one update pass."""
    births: int = 0
    deaths: int = 0
    resources_consumed: int = 0
    resources_spawned: int = 0
    death_causes: dict[str, int] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Entity manager
# ---------------------------------------------------------------------------

class EntityManager:
    """
    Sole mutator of the world's entity collection.

    Attributes:
        config: Simulation configuration.
        rng: Shared random generator.
        event_log: Optional event sink handed to every world it creates.
        world: The current world (None until initialize_world).
        resource_countdown: Ticks until the next respawn check.
    """

    def __init__(
        self,
        config: SimConfig,
        rng: np.random.Generator,
        event_log: Optional[EventLog] = None,
    ):
        self.config = config
        self.rng = rng
        self.event_log = event_log
        self.world: Optional[World] = None
        self.resource_countdown: int = 0

    # ------------------------------------------------------------------
    # Spawning
    # ------------------------------------------------------------------

    def initialize_world(self, width: Optional[float] = None, height: Optional[float] = None) -> World:
        """Create a fresh world and spawn the configured starting population."""
        self.world = World(
            self.config,
            width=width,
            height=height,
            rng=self.rng,
            event_log=self.event_log,
        )
        self.resource_countdown = 0
        self.spawn_initial_population(include_resources=True)
        logger.info("World initialized: %s", self.world)
        return self.world

    def spawn_initial_population(self, include_resources: bool = True) -> list[Entity]:
        """Spawn the configured starting counts. Used at init and to reseed after extinction."""
        pop = self.config.population
        spawned = []
        spawned += self.spawn_entities(EntityType.HERBIVORE, pop.herbivores)
        spawned += self.spawn_entities(EntityType.CARNIVORE, pop.carnivores)
        spawned += self.spawn_entities(EntityType.TRADER, pop.traders)
        if include_resources:
            spawned += self.spawn_entities(EntityType.RESOURCE, pop.resources)
        return spawned

    def spawn_entities(self, entity_type: EntityType, count: int) -> list[Entity]:
        """Spawn `count` entities of one type at random positions inside the margin."""
        world = self._require_world()
        margin = self.config.resources.spawn_margin
        spawned = []
        for _ in range(count):
            x, y = random_point(world.width, world.height, margin, self.rng)
            entity = Entity(x, y, entity_type, self.rng)
            world.add_entity(entity)
            spawned.append(entity)
        return spawned

    def spawn_resource_at(self, x: float, y: float) -> Optional[Entity]:
        """Place one resource at (x, y). Points too close to an edge are ignored."""
        world = self._require_world()
        margin = self.config.resources.spawn_margin
        if not (margin <= x <= world.width - margin and margin <= y <= world.height - margin):
            return None
        resource = Entity(x, y, EntityType.RESOURCE, self.rng)
        world.add_entity(resource)
        world.emit(f"Resource placed at ({x:.0f}, {y:.0f})")
        return resource

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def update(self, world: Optional[World], rules: RuleSet) -> UpdateReport:
        """
        One update pass.

        Every entity present at the start of the pass is updated (dead ones
        are skipped by Entity.update). Removal happens only afterwards, in a
        single pass. Then the resource respawn countdown advances.
        """
        world = world if world is not None else self._require_world()
        report = UpdateReport()

        snapshot = world.get_entities()
        before_ids = set(world.entities)
        resources_before = sum(1 for e in snapshot if e.is_resource)

        for entity in snapshot:
            entity.update(world, rules)

        born = [
            e for eid, e in world.entities.items()
            if eid not in before_ids and not e.is_resource
        ]
        report.births = len(born)

        removed = world.purge_dead()
        for entity in removed:
            if entity.is_resource:
                continue
            report.deaths += 1
            cause = entity.death_cause or "unknown"
            report.death_causes[cause] = report.death_causes.get(cause, 0) + 1

        resources_after = sum(1 for e in world.live_entities() if e.is_resource)
        report.resources_consumed = max(0, resources_before - resources_after)

        report.resources_spawned = self._tick_resource_respawn(world, rules)
        return report

    def _tick_resource_respawn(self, world: World, rules: RuleSet) -> int:
        self.resource_countdown -= 1
        if self.resource_countdown > 0:
            return 0

        res = self.config.resources
        self.resource_countdown = res.respawn_interval

        live_resources = sum(1 for e in world.live_entities() if e.is_resource)
        if live_resources >= res.max_resources:
            return 0

        count = int(math.floor(res.respawn_batch * rules.resource_abundance))
        self.spawn_entities(EntityType.RESOURCE, count)
        return count

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_statistics(self) -> WorldStatistics:
        """Fresh aggregate statistics over the live world."""
        world = self._require_world()
        stats = WorldStatistics()

        living = []
        for e in world.live_entities():
            stats.by_type[e.type] += 1
            if not e.is_resource:
                living.append(e)

        stats.population = len(living)
        if living:
            stats.total_energy = int(math.floor(sum(e.energy for e in living)))
            stats.average_age = int(math.floor(sum(e.age for e in living) / len(living)))
            stats.generations = max(e.generation for e in living)
        return stats

    def find_entity_at(self, x: float, y: float) -> Optional[Entity]:
        return self._require_world().entity_at(x, y)

    @property
    def entities(self) -> list[Entity]:
        if self.world is None:
            return []
        return self.world.get_entities()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def restore(self, world: World, entities: list[Entity], resource_countdown: int = 0) -> None:
        """Adopt a decoded world wholesale. Callers decode everything first."""
        world.clear()
        for entity in entities:
            world.add_entity(entity)
        if entities:
            reserve_entity_ids(max(e.id for e in entities))
        self.world = world
        self.resource_countdown = resource_countdown

    def _require_world(self) -> World:
        if self.world is None:
            raise RuntimeError("No world: call initialize_world() first")
        return self.world

    def __repr__(self) -> str:
        return f"EntityManager(world={self.world!r}, resource_countdown={self.resource_countdown})"
