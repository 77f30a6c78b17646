"""
World (Simulation Environment) for Ruleweaver.

A bounded, continuous rectangle holding every entity by id. The world owns
the tick counter, the shared random generator and a reference to the event
log; entities reach all three through the world passed to their update.

Spatial queries are linear scans. Populations stay in the tens to low
hundreds, so a spatial index would cost more than it saves.
"""

from __future__ import annotations

from typing import Iterator, Optional

import numpy as np

from ruleweaver.core.config import SimConfig
from ruleweaver.core.entity import Entity, EntityType
from ruleweaver.logging.event_log import EventLog, Severity
from ruleweaver.utils.spatial import distance_sq


class World:
    """
    The simulation world.

    Attributes:
        config: Simulation configuration.
        width: World width in continuous units.
        height: World height in continuous units.
        tick_count: Current simulation tick.
        entities: Dict of entity_id -> Entity. Dead entities stay here
            until purge_dead() runs at the end of the update pass.
        rng: Seeded random generator shared with every entity.
        event_log: Optional event sink.
    """

    def __init__(
        self,
        config: SimConfig,
        width: Optional[float] = None,
        height: Optional[float] = None,
        rng: Optional[np.random.Generator] = None,
        event_log: Optional[EventLog] = None,
    ):
        self.config = config
        self.width = float(width if width is not None else config.world.width)
        self.height = float(height if height is not None else config.world.height)
        self.rng = rng if rng is not None else np.random.default_rng(config.world.seed)
        self.event_log = event_log

        self.tick_count: int = 0
        self.entities: dict[int, Entity] = {}

    # ------------------------------------------------------------------
    # Entity management
    # ------------------------------------------------------------------

    def add_entity(self, entity: Entity) -> None:
        """Add an entity. Ids must be unique."""
        if entity.id in self.entities:
            raise ValueError(f"Entity id {entity.id} already present in world")
        self.entities[entity.id] = entity

    def remove_entity(self, entity: Entity) -> None:
        self.entities.pop(entity.id, None)

    def get_entity(self, entity_id: int) -> Optional[Entity]:
        return self.entities.get(entity_id)

    def contains(self, entity: Entity) -> bool:
        return self.entities.get(entity.id) is entity

    def get_entities(self) -> list[Entity]:
        """Snapshot list of all entities, in insertion order."""
        return list(self.entities.values())

    def live_entities(self) -> Iterator[Entity]:
        return (e for e in self.entities.values() if not e.is_dead)

    def entities_of_type(self, entity_type: EntityType) -> list[Entity]:
        return [e for e in self.live_entities() if e.type is entity_type]

    def count_by_type(self) -> dict[EntityType, int]:
        counts = {t: 0 for t in EntityType}
        for e in self.live_entities():
            counts[e.type] += 1
        return counts

    def purge_dead(self) -> list[Entity]:
        """Drop every dead entity in one pass. Returns the removed entities."""
        dead = [e for e in self.entities.values() if e.is_dead]
        if dead:
            self.entities = {eid: e for eid, e in self.entities.items() if not e.is_dead}
        return dead

    def clear(self) -> None:
        self.entities = {}

    @property
    def population(self) -> int:
        """Live non-resource entities."""
        return sum(1 for e in self.live_entities() if not e.is_resource)

    @property
    def is_extinct(self) -> bool:
        return self.population == 0

    # ------------------------------------------------------------------
    # Spatial queries
    # ------------------------------------------------------------------

    def entities_in_range(self, entity: Entity, radius: float) -> list[Entity]:
        """Live entities other than `entity` within `radius` (inclusive)."""
        r_sq = radius * radius
        return [
            other for other in self.live_entities()
            if other is not entity
            and distance_sq(entity.x, entity.y, other.x, other.y) <= r_sq
        ]

    def entity_at(self, x: float, y: float) -> Optional[Entity]:
        """First live entity whose radius covers (x, y)."""
        for e in self.live_entities():
            if distance_sq(x, y, e.x, e.y) <= e.radius * e.radius:
                return e
        return None

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def emit(self, message: str, severity: Severity = Severity.NORMAL) -> None:
        """Forward an event to the log, if one is attached."""
        if self.event_log is not None:
            self.event_log.log(message, severity)

    def __repr__(self) -> str:
        return (
            f"World({self.width:.0f}x{self.height:.0f}, tick={self.tick_count}, "
            f"entities={len(self.entities)}, population={self.population})"
        )
