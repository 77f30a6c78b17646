"""
Entity (agent) for Ruleweaver.

Every inhabitant of the world is an Entity of one of four closed types:
herbivores graze on resources, carnivores hunt, traders exchange energy
with other species, and resources are stationary food. Living entities
carry heritable traits in [0, 1], burn energy every tick, age, pick a
target, move toward it and act when they reach it.

Targets are held by id and re-resolved against the world every tick, so a
target that died or was eaten in the meantime is simply dropped.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict, fields
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

import numpy as np

from ruleweaver.logging.event_log import Severity
from ruleweaver.utils.numeric import clamp
from ruleweaver.utils.spatial import clamp_to_bounds, distance, nearest, step_toward

if TYPE_CHECKING:
    from ruleweaver.core.world import World
    from ruleweaver.simulation.rules import RuleSet


# ---------------------------------------------------------------------------
# Closed type tags
# ---------------------------------------------------------------------------

class EntityType(Enum):
    """The four kinds of entity. Every per-type table below is keyed by this."""
    HERBIVORE = "herbivore"
    CARNIVORE = "carnivore"
    TRADER = "trader"
    RESOURCE = "resource"


class Mood(Enum):
    """Informational classification of an entity's energy/aggression state."""
    HUNGRY = "hungry"
    CONTENT = "content"
    AGGRESSIVE = "aggressive"
    NEUTRAL = "neutral"


@dataclass(frozen=True)
class TypeProfile:
    """Base values for one entity type."""
    initial_energy: float
    max_age: float
    reproduction_threshold: float
    speed: float
    sight_range: float
    color: tuple[int, int, int]


TYPE_PROFILES: dict[EntityType, TypeProfile] = {
    EntityType.HERBIVORE: TypeProfile(80.0, 200.0, 60.0, 1.5, 40.0, (76, 175, 80)),
    EntityType.CARNIVORE: TypeProfile(100.0, 150.0, 80.0, 2.0, 60.0, (244, 67, 54)),
    EntityType.TRADER: TypeProfile(120.0, 300.0, 100.0, 1.8, 80.0, (255, 152, 0)),
    EntityType.RESOURCE: TypeProfile(0.0, 1000.0, 0.0, 0.0, 0.0, (33, 150, 243)),
}

LIVING_TYPES: tuple[EntityType, ...] = (
    EntityType.HERBIVORE,
    EntityType.CARNIVORE,
    EntityType.TRADER,
)

MATING_COOLDOWN_AGE = 50        # ticks of age between two reproductions
INTERACTION_PADDING = 2.0       # added to the sum of both radii
RESOURCE_ENERGY_GAIN = 30.0
HUNT_ENERGY_SHARE = 0.6
FAILED_HUNT_PREDATOR_LOSS = 10.0
FAILED_HUNT_PREY_LOSS = 5.0
TRADE_BASE_VALUE = 15.0
TRADE_MAX_SHARE = 0.1
TRADE_MIN_TRANSFER = 5.0
TRADE_RECEIVER_BONUS = 1.2
TRADE_MIN_SOCIABILITY = 0.3
PREY_SIZE_RATIO = 1.2
OFFSPRING_JITTER = 10.0


# ---------------------------------------------------------------------------
# Unique IDs
# ---------------------------------------------------------------------------

_next_entity_id: int = 0


def _get_next_id() -> int:
    """Generate a process-wide unique entity ID."""
    global _next_entity_id
    eid = _next_entity_id
    _next_entity_id += 1
    return eid


def reset_entity_id_counter() -> None:
    """Reset the ID counter (useful for tests)."""
    global _next_entity_id
    _next_entity_id = 0


def reserve_entity_ids(max_used_id: int) -> None:
    """Make sure newly created entities never reuse `max_used_id` or below."""
    global _next_entity_id
    _next_entity_id = max(_next_entity_id, max_used_id + 1)


# ---------------------------------------------------------------------------
# Traits
# ---------------------------------------------------------------------------

@dataclass(slots=True)
class Traits:
    """
    Heritable traits, each a float in [0, 1].

    Attributes:
        efficiency: Energy gain multiplier; scales speed and mating threshold.
        aggression: Hunting strength; high values make carnivores aggressive.
        sociability: Willingness to trade.
        adaptability: Defence against hunts.
        size: Body size; scales energy decay, render radius and hunt odds.
    """
    efficiency: float = 0.5
    aggression: float = 0.5
    sociability: float = 0.5
    adaptability: float = 0.5
    size: float = 0.9

    def __post_init__(self) -> None:
        for f in fields(self):
            setattr(self, f.name, clamp(float(getattr(self, f.name)), 0.0, 1.0))

    @classmethod
    def names(cls) -> tuple[str, ...]:
        return tuple(f.name for f in fields(cls))

    @classmethod
    def random(cls, rng: np.random.Generator) -> Traits:
        """Fresh traits for a world-spawned entity."""
        return cls(
            efficiency=float(rng.uniform(0.5, 1.0)),
            aggression=float(rng.uniform(0.0, 1.0)),
            sociability=float(rng.uniform(0.0, 1.0)),
            adaptability=float(rng.uniform(0.0, 1.0)),
            size=float(rng.uniform(0.8, 1.0)),
        )

    @classmethod
    def inherit(
        cls,
        a: Traits,
        b: Traits,
        mutation_chance: float,
        rng: np.random.Generator,
    ) -> Traits:
        """
        Parental mean of each trait plus a uniform perturbation in
        [-mutation_chance, +mutation_chance], clamped to [0, 1].
        """
        values = {}
        for name in cls.names():
            mean = (getattr(a, name) + getattr(b, name)) / 2
            mutation = float(rng.uniform(-mutation_chance, mutation_chance)) if mutation_chance > 0 else 0.0
            values[name] = mean + mutation
        return cls(**values)

    def to_dict(self) -> dict[str, float]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Traits:
        if not isinstance(data, dict):
            raise ValueError(f"traits must be a mapping, got {type(data).__name__}")
        known = set(cls.names())
        return cls(**{k: float(v) for k, v in data.items() if k in known})


def hunt_succeeds(
    aggression: float,
    predator_size: float,
    prey_size: float,
    prey_adaptability: float,
) -> bool:
    """A hunt succeeds iff aggression * predator size beats prey size * adaptability."""
    return aggression * predator_size > prey_size * prey_adaptability


def entity_color(entity_type: EntityType, traits: Traits) -> str:
    """Base colour of the type, shifted by aggression (r), efficiency (g), sociability (b)."""
    r, g, b = TYPE_PROFILES[entity_type].color
    variation = 0.2 * 255
    r = clamp(r + (traits.aggression - 0.5) * variation, 0, 255)
    g = clamp(g + (traits.efficiency - 0.5) * variation, 0, 255)
    b = clamp(b + (traits.sociability - 0.5) * variation, 0, 255)
    return f"rgb({int(r)}, {int(g)}, {int(b)})"


def entity_radius(traits: Traits) -> float:
    """Render/collision radius derived from the size trait."""
    return clamp(traits.size * 6, 3.0, 8.0)


# ---------------------------------------------------------------------------
# Entity
# ---------------------------------------------------------------------------

class Entity:
    """
    A single agent (or resource) in the world.

    Attributes:
        id: Unique identifier.
        type: EntityType tag.
        generation: 1 for spawned entities, max(parents) + 1 for offspring.
        x, y: Position inside the world rectangle.
        vx, vy: Last velocity (informational; movement recomputes it).
        traits: Heritable traits.
        energy: Current energy, in [0, max_energy].
        max_energy: Twice the type's initial energy.
        age: Ticks alive.
        max_age: Age at which the entity dies.
        base_reproduction_threshold / reproduction_threshold: Energy needed to
            look for a mate; the rules engine rescales the latter every tick.
        base_max_speed / max_speed: Movement per tick, likewise rescaled.
        aggression_modifier: Multiplier applied to aggression when hunting.
        last_reproduction: Age at the last successful reproduction.
        target_id: Id of the current target, re-validated every tick.
        mood: Current Mood.
        is_reproducing: Set for a few ticks after reproducing.
        is_dead: Terminal flag; dead entities are inert until purged.
        death_cause: Why the entity died (None while alive).
        color, radius: Display values derived from traits.
    """

    def __init__(
        self,
        x: float,
        y: float,
        entity_type: EntityType,
        rng: np.random.Generator,
        generation: int = 1,
        traits: Optional[Traits] = None,
        entity_id: Optional[int] = None,
    ):
        self.id = _get_next_id() if entity_id is None else entity_id
        self.type = entity_type
        self.generation = generation
        self.x = float(x)
        self.y = float(y)
        self.vx = 0.0
        self.vy = 0.0

        self.traits = traits if traits is not None else Traits.random(rng)

        profile = TYPE_PROFILES[entity_type]
        self.energy = profile.initial_energy
        self.max_energy = profile.initial_energy * 2
        self.age = 0
        self.max_age = profile.max_age * float(rng.uniform(0.8, 1.2))
        self.sight_range = profile.sight_range
        self.last_reproduction = 0

        self.base_reproduction_threshold = 0.0
        self.reproduction_threshold = 0.0
        self.base_max_speed = 0.0
        self.max_speed = 0.0
        self.aggression_modifier = 1.0
        self.color = ""
        self.radius = 0.0
        self.refresh_derived()

        self.target_id: Optional[int] = None
        self.mood = Mood.NEUTRAL
        self.is_reproducing = False
        self._cooldown_remaining = 0
        self.is_dead = False
        self.death_cause: Optional[str] = None

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    def refresh_derived(self) -> None:
        """Recompute every value that is a function of type and traits."""
        profile = TYPE_PROFILES[self.type]
        self.base_reproduction_threshold = profile.reproduction_threshold * self.traits.efficiency
        self.reproduction_threshold = self.base_reproduction_threshold
        self.base_max_speed = profile.speed * (0.8 + self.traits.efficiency * 0.4)
        self.max_speed = self.base_max_speed
        self.color = entity_color(self.type, self.traits)
        self.radius = entity_radius(self.traits)

    @property
    def position(self) -> tuple[float, float]:
        return (self.x, self.y)

    @property
    def is_resource(self) -> bool:
        return self.type is EntityType.RESOURCE

    @property
    def effective_aggression(self) -> float:
        return self.traits.aggression * self.aggression_modifier

    @property
    def energy_ratio(self) -> float:
        if self.max_energy <= 0:
            return 0.0
        return self.energy / self.max_energy

    def distance_to(self, other: Entity) -> float:
        return distance(self.x, self.y, other.x, other.y)

    def can_seek_mate(self) -> bool:
        """Enough energy and enough age since the last reproduction."""
        return (
            self.energy >= self.reproduction_threshold
            and self.age - self.last_reproduction >= MATING_COOLDOWN_AGE
        )

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def update(self, world: World, rules: RuleSet) -> None:
        """
        Advance this entity by one tick.

        Order: cooldown, age, energy decay, mood, then (living types only)
        target selection, movement and interaction, then the survival check.
        """
        if self.is_dead:
            return

        self._tick_cooldown()
        self.age += 1
        self.apply_energy_decay(rules)
        self.update_mood()

        if not self.is_resource:
            target = self.find_target(world)
            self.move_toward_target(world, rules, target)
            self.perform_actions(world, rules)

        self.check_survival()

    def apply_energy_decay(self, rules: RuleSet) -> float:
        """
        Burn energy proportional to size and age. Resources are exempt.

        Returns:
            Energy actually lost.
        """
        if self.is_resource:
            return 0.0
        age_modifier = 1 + (self.age / self.max_age) * 0.5
        decay = rules.energy_decay * self.traits.size * age_modifier * 100
        old = self.energy
        self.energy = max(0.0, self.energy - decay)
        return old - self.energy

    def update_mood(self) -> Mood:
        if self.is_resource:
            self.mood = Mood.NEUTRAL
            return self.mood

        ratio = self.energy_ratio
        if ratio < 0.3:
            self.mood = Mood.HUNGRY
        elif ratio > 0.8:
            self.mood = Mood.CONTENT
        elif self.type is EntityType.CARNIVORE and self.traits.aggression > 0.7:
            self.mood = Mood.AGGRESSIVE
        else:
            self.mood = Mood.NEUTRAL
        return self.mood

    # ------------------------------------------------------------------
    # Target selection
    # ------------------------------------------------------------------

    def find_target(self, world: World) -> Optional[Entity]:
        """Pick this tick's target among live entities in sight and remember its id."""
        visible = world.entities_in_range(self, self.sight_range)

        target: Optional[Entity]
        if not visible:
            target = None
        elif self.type is EntityType.HERBIVORE:
            target = self.find_nearest_resource(visible) or self.find_mate(visible)
        elif self.type is EntityType.CARNIVORE:
            if self.mood is Mood.HUNGRY:
                target = self.find_prey(visible)
            else:
                target = self.find_mate(visible)
        elif self.type is EntityType.TRADER:
            target = self.find_trading_partner(visible) or self.find_mate(visible)
        elif self.type is EntityType.RESOURCE:
            target = None
        else:
            raise ValueError(f"Unhandled entity type: {self.type}")

        self.target_id = target.id if target is not None else None
        return target

    def resolve_target(self, world: World) -> Optional[Entity]:
        """Look the target up by id; drop it if it is gone or dead."""
        if self.target_id is None:
            return None
        target = world.get_entity(self.target_id)
        if target is None or target.is_dead:
            self.target_id = None
            return None
        return target

    def _nearest(self, candidates: list[Entity]) -> Optional[Entity]:
        return nearest(self.x, self.y, candidates, lambda e: e.position)

    def find_nearest_resource(self, visible: list[Entity]) -> Optional[Entity]:
        return self._nearest([e for e in visible if e.is_resource])

    def find_prey(self, visible: list[Entity]) -> Optional[Entity]:
        return self._nearest([
            e for e in visible
            if e.type in (EntityType.HERBIVORE, EntityType.TRADER)
            and e.traits.size <= self.traits.size * PREY_SIZE_RATIO
        ])

    def find_mate(self, visible: list[Entity]) -> Optional[Entity]:
        if not self.can_seek_mate():
            return None
        return self._nearest([
            e for e in visible
            if e.type is self.type and e.can_seek_mate() and not e.is_reproducing
        ])

    def find_trading_partner(self, visible: list[Entity]) -> Optional[Entity]:
        return self._nearest([
            e for e in visible
            if not e.is_resource
            and e.type is not self.type
            and e.traits.sociability > TRADE_MIN_SOCIABILITY
        ])

    # ------------------------------------------------------------------
    # Movement
    # ------------------------------------------------------------------

    def move_toward_target(
        self,
        world: World,
        rules: RuleSet,
        target: Optional[Entity],
    ) -> None:
        """Step toward the target at max_speed; gravity nudges the vertical step."""
        if target is None or self.max_speed == 0:
            return

        vx, vy = step_toward(self.x, self.y, target.x, target.y, self.max_speed)
        if vx == 0 and vy == 0:
            return

        self.vx = vx
        self.vy = vy + rules.gravity * 0.1
        self.x, self.y = clamp_to_bounds(
            self.x + self.vx, self.y + self.vy,
            world.width, world.height,
            margin=self.radius,
        )

    # ------------------------------------------------------------------
    # Interactions
    # ------------------------------------------------------------------

    def in_interaction_range(self, other: Entity) -> bool:
        return self.distance_to(other) <= self.radius + other.radius + INTERACTION_PADDING

    def perform_actions(self, world: World, rules: RuleSet) -> None:
        """Act on the (re-validated) target if it is within reach."""
        target = self.resolve_target(world)
        if target is None or not self.in_interaction_range(target):
            return

        if self.type is EntityType.HERBIVORE:
            if target.is_resource:
                self.consume_resource(target, world, rules)
            elif target.type is EntityType.HERBIVORE:
                self.reproduce(target, world, rules)
        elif self.type is EntityType.CARNIVORE:
            if target.type in (EntityType.HERBIVORE, EntityType.TRADER):
                self.hunt(target, world, rules)
            elif target.type is EntityType.CARNIVORE:
                self.reproduce(target, world, rules)
        elif self.type is EntityType.TRADER:
            if target.type is EntityType.TRADER:
                self.reproduce(target, world, rules)
            elif not target.is_resource:
                self.trade(target, world, rules)

    def gain_energy(self, amount: float) -> float:
        """Add energy, capped at max_energy. Returns the amount actually gained."""
        old = self.energy
        self.energy = min(self.max_energy, self.energy + amount)
        return self.energy - old

    def lose_energy(self, amount: float) -> float:
        """Remove energy, floored at 0. Returns the amount actually lost."""
        old = self.energy
        self.energy = max(0.0, self.energy - amount)
        return old - self.energy

    def consume_resource(self, resource: Entity, world: World, rules: RuleSet) -> float:
        """
        Eat a resource: gain 30 * efficiency * resource_abundance energy and
        remove the resource from the world.

        Returns:
            Energy gained (0 if the resource was already gone).
        """
        if resource.is_dead or not world.contains(resource):
            return 0.0

        energy_gain = RESOURCE_ENERGY_GAIN * self.traits.efficiency * rules.resource_abundance
        self.gain_energy(energy_gain)

        resource.die("consumed")
        world.remove_entity(resource)
        world.emit(f"{self.type.value} consumed resource, gained {energy_gain:.1f} energy")
        return energy_gain

    def hunt(self, prey: Entity, world: World, rules: RuleSet) -> bool:
        """
        Attack prey. The outcome depends only on aggression, both sizes and
        the prey's adaptability.

        Returns:
            True if the prey was killed.
        """
        if prey.is_dead:
            return False

        if hunt_succeeds(
            self.effective_aggression,
            self.traits.size,
            prey.traits.size,
            prey.traits.adaptability,
        ):
            energy_gain = prey.energy * HUNT_ENERGY_SHARE * self.traits.efficiency
            self.gain_energy(energy_gain)
            prey.die("hunted")
            world.emit(
                f"{self.type.value} hunted {prey.type.value}, gained {energy_gain:.1f} energy",
                Severity.IMPORTANT,
            )
            return True

        self.lose_energy(FAILED_HUNT_PREDATOR_LOSS)
        prey.lose_energy(FAILED_HUNT_PREY_LOSS)
        world.emit(f"{self.type.value} failed to hunt {prey.type.value}")
        return False

    def trade(self, partner: Entity, world: World, rules: RuleSet) -> float:
        """
        Give energy to a sociable partner, who receives 1.2x what was sent.

        Returns:
            Energy sent (0 if no trade happened).
        """
        if partner.is_dead or partner.traits.sociability <= TRADE_MIN_SOCIABILITY:
            return 0.0

        trade_value = TRADE_BASE_VALUE * rules.trade_efficiency
        transfer = min(trade_value, self.energy * TRADE_MAX_SHARE)
        if transfer <= TRADE_MIN_TRANSFER:
            return 0.0

        self.energy -= transfer
        partner.gain_energy(transfer * TRADE_RECEIVER_BONUS)
        world.emit(
            f"{self.type.value} traded with {partner.type.value}, transferred {transfer:.1f} energy"
        )
        return transfer

    def reproduce(self, mate: Entity, world: World, rules: RuleSet) -> Optional[Entity]:
        """
        Produce one offspring with a same-type mate.

        Both parents must not be reproducing and must each afford
        rules.reproduction_cost; both pay it and enter the cooldown.

        Returns:
            The offspring, or None if reproduction did not happen.
        """
        if mate is self or mate.type is not self.type or mate.is_dead:
            return None
        if mate.is_reproducing or self.is_reproducing:
            return None

        cost = rules.reproduction_cost
        if self.energy < cost or mate.energy < cost:
            return None

        offspring = self.create_offspring(mate, world, rules)
        world.add_entity(offspring)

        self.energy -= cost
        mate.energy -= cost

        self.last_reproduction = self.age
        mate.last_reproduction = mate.age
        cooldown = world.config.rules.reproduction_cooldown_ticks
        self.start_reproduction_cooldown(cooldown)
        mate.start_reproduction_cooldown(cooldown)

        world.emit(
            f"{self.type.value} reproduced, offspring created (gen {offspring.generation})",
            Severity.SUCCESS,
        )
        return offspring

    def create_offspring(self, mate: Entity, world: World, rules: RuleSet) -> Entity:
        """Child near the parents' midpoint with averaged, mutated traits."""
        rng = world.rng
        margin = world.config.resources.spawn_margin
        offset_x = float(rng.uniform(-OFFSPRING_JITTER, OFFSPRING_JITTER))
        offset_y = float(rng.uniform(-OFFSPRING_JITTER, OFFSPRING_JITTER))
        child_x, child_y = clamp_to_bounds(
            (self.x + mate.x) / 2 + offset_x,
            (self.y + mate.y) / 2 + offset_y,
            world.width, world.height,
            margin=margin,
        )

        traits = Traits.inherit(self.traits, mate.traits, rules.mutation_chance, rng)
        return Entity(
            x=child_x,
            y=child_y,
            entity_type=self.type,
            rng=rng,
            generation=max(self.generation, mate.generation) + 1,
            traits=traits,
        )

    # ------------------------------------------------------------------
    # Cooldown / survival
    # ------------------------------------------------------------------

    def start_reproduction_cooldown(self, ticks: int) -> None:
        self.is_reproducing = True
        self._cooldown_remaining = max(1, ticks)

    def _tick_cooldown(self) -> None:
        if not self.is_reproducing:
            return
        self._cooldown_remaining -= 1
        if self._cooldown_remaining <= 0:
            self._cooldown_remaining = 0
            self.is_reproducing = False

    def check_survival(self) -> bool:
        """Mark the entity dead if it starved or reached max_age. Returns alive."""
        if self.is_dead:
            return False
        if not self.is_resource and self.energy <= 0:
            self.die("starvation")
        elif self.age >= self.max_age:
            self.die("age")
        return not self.is_dead

    def die(self, cause: str) -> None:
        self.is_dead = True
        self.death_cause = cause
        self.target_id = None
        self.is_reproducing = False

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Persisted fields only; display values are recomputed on load."""
        return {
            "id": self.id,
            "x": self.x,
            "y": self.y,
            "type": self.type.value,
            "generation": self.generation,
            "energy": self.energy,
            "age": self.age,
            "traits": self.traits.to_dict(),
            "last_reproduction": self.last_reproduction,
            "max_age": self.max_age,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], rng: np.random.Generator) -> Entity:
        """
        Rebuild an entity from saved data.

        Colour, radius, speed and threshold come from the restored traits.
        A missing max_age is re-drawn for the type.

        Raises:
            KeyError: If a required field is missing.
            ValueError: If the type tag is unknown.
        """
        entity = cls(
            x=float(data["x"]),
            y=float(data["y"]),
            entity_type=EntityType(data["type"]),
            rng=rng,
            generation=int(data.get("generation", 1)),
            traits=Traits.from_dict(data["traits"]),
            entity_id=int(data["id"]),
        )
        entity.energy = clamp(float(data["energy"]), 0.0, entity.max_energy)
        entity.age = int(data.get("age", 0))
        entity.last_reproduction = int(data.get("last_reproduction", 0))
        if data.get("max_age") is not None:
            entity.max_age = float(data["max_age"])
        return entity

    def inspect(self) -> dict[str, Any]:
        """Human-oriented summary for tooltips and the CLI."""
        return {
            "id": self.id,
            "type": self.type.value,
            "generation": self.generation,
            "age": f"{self.age}/{int(self.max_age)}",
            "energy": f"{int(self.energy)}/{int(self.max_energy)}",
            "mood": self.mood.value,
            "efficiency": round(self.traits.efficiency, 2),
            "aggression": round(self.traits.aggression, 2),
            "size": round(self.traits.size, 2),
        }

    def __repr__(self) -> str:
        status = "alive" if not self.is_dead else f"dead({self.death_cause})"
        return (
            f"Entity(id={self.id}, type={self.type.value}, gen={self.generation}, "
            f"pos=({self.x:.1f},{self.y:.1f}), energy={self.energy:.1f}, "
            f"age={self.age}, status={status})"
        )
