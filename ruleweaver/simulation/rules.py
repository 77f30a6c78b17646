"""
Rules Engine for Ruleweaver.

Holds the eight user-tunable global rules plus two derived values that are
recomputed from live statistics every tick:

  - population_pressure = clamp(population / ideal, 0.5, 2.0)
  - extinction_threat   = max(0, (floor - population) / floor)

Every user-facing change goes through update_rule(), which records it in an
append-only history and invalidates the derived values until the next
update_derived_rules() call. Reading derived values for a tick they were not
computed for raises StaleRulesError.
"""

from __future__ import annotations

import logging
import time
from collections import Counter
from dataclasses import dataclass, field, fields, asdict, replace
from typing import TYPE_CHECKING, Any, Optional

from ruleweaver.core.config import SimConfig
from ruleweaver.core.entity import Entity, EntityType
from ruleweaver.logging.event_log import EventLog, Severity
from ruleweaver.simulation.weather import WeatherSystem
from ruleweaver.utils.numeric import clamp

if TYPE_CHECKING:
    from ruleweaver.core.world import World
    from ruleweaver.simulation.entity_manager import WorldStatistics

logger = logging.getLogger(__name__)

BASELINE_ENERGY_DECAY = 0.02

SETTABLE_RULES: tuple[str, ...] = (
    "gravity",
    "energy_decay",
    "reproduction_cost",
    "mutation_chance",
    "trade_efficiency",
    "resource_abundance",
    "enable_predators",
    "enable_weather",
)
BOOLEAN_RULES = frozenset({"enable_predators", "enable_weather"})
DERIVED_RULES: tuple[str, ...] = ("population_pressure", "extinction_threat")


class StaleRulesError(RuntimeError):
    """Derived rules were read for a tick they were not computed for."""


# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------

@dataclass
class RuleSet:
    """The eight settable rules and the two derived values."""
    gravity: float = 1.0
    energy_decay: float = BASELINE_ENERGY_DECAY
    reproduction_cost: float = 50.0
    mutation_chance: float = 0.05
    trade_efficiency: float = 1.0
    resource_abundance: float = 1.0
    enable_predators: bool = False
    enable_weather: bool = False

    population_pressure: float = 1.0
    extinction_threat: float = 0.0

    @classmethod
    def from_config(cls, config: SimConfig) -> RuleSet:
        return cls(**config.rules.rule_defaults())

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RuleSet:
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def copy(self) -> RuleSet:
        return replace(self)


@dataclass
class RuleChange:
    """One entry of the append-only rule history."""
    rule: str
    old_value: Any
    new_value: Any
    tick: int
    timestamp: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RuleChange:
        return cls(
            rule=str(data["rule"]),
            old_value=data["old_value"],
            new_value=data["new_value"],
            tick=int(data.get("tick", 0)),
            timestamp=float(data.get("timestamp", 0.0)),
        )


@dataclass
class RuleEffects:
    """Qualitative description of what a rule influences at its current value."""
    direct: list[str] = field(default_factory=list)
    indirect: list[str] = field(default_factory=list)
    severity: str = "low"


@dataclass
class RuleAnalysis:
    most_changed: str
    impact_score: int
    recommendation: str


_DESCRIPTIONS: dict[str, dict[Any, str]] = {
    "gravity": {
        "name": "Gravity",
        "increase": "increased physical forces",
        "decrease": "reduced physical constraints",
    },
    "energy_decay": {
        "name": "Energy Decay",
        "increase": "accelerated entropy",
        "decrease": "improved energy conservation",
    },
    "reproduction_cost": {
        "name": "Reproduction Cost",
        "increase": "made reproduction harder",
        "decrease": "made reproduction easier",
    },
    "mutation_chance": {
        "name": "Mutation Rate",
        "increase": "increased genetic diversity",
        "decrease": "stabilized genetics",
    },
    "trade_efficiency": {
        "name": "Trade Efficiency",
        "increase": "improved cooperation benefits",
        "decrease": "reduced trading advantages",
    },
    "resource_abundance": {
        "name": "Resource Abundance",
        "increase": "enriched the environment",
        "decrease": "created scarcity",
    },
    "enable_predators": {
        "name": "Predation",
        True: "enabled natural selection",
        False: "created peaceful coexistence",
    },
    "enable_weather": {
        "name": "Weather Systems",
        True: "added environmental challenges",
        False: "stabilized conditions",
    },
}


# ---------------------------------------------------------------------------
# Rules engine
# ---------------------------------------------------------------------------

class RulesEngine:
    """
    Central store of global rules.

    Attributes:
        config: Simulation configuration (defaults and derived constants).
        rules: Current RuleSet.
        history: Append-only list of RuleChange entries.
        weather: Tick-driven weather oscillator.
    """

    def __init__(self, config: SimConfig, event_log: Optional[EventLog] = None):
        self.config = config
        self.event_log = event_log
        self.rules = RuleSet.from_config(config)
        self.history: list[RuleChange] = []
        self.weather = WeatherSystem(config.rules.weather_frequency, event_log)
        self._effects_cache: dict[str, RuleEffects] = {}
        self._derived_tick: Optional[int] = None

    # ------------------------------------------------------------------
    # Rule writes
    # ------------------------------------------------------------------

    def update_rule(self, name: str, value: Any, tick: int = 0) -> RuleChange:
        """
        Change one settable rule and record it.

        Raises:
            ValueError: If `name` is a derived rule or the value is invalid.
            KeyError: If `name` is not a rule at all.
        """
        if name in DERIVED_RULES:
            raise ValueError(f"'{name}' is derived and cannot be set directly")
        if name not in SETTABLE_RULES:
            raise KeyError(f"Unknown rule '{name}'")

        value = self._coerce(name, value)
        old_value = getattr(self.rules, name)
        setattr(self.rules, name, value)

        change = RuleChange(
            rule=name,
            old_value=old_value,
            new_value=value,
            tick=tick,
            timestamp=time.time(),
        )
        self.history.append(change)
        self._effects_cache.pop(name, None)
        self._derived_tick = None

        if name in BOOLEAN_RULES or abs(value - old_value) > 0.1:
            self._log(
                f"Rule changed: {self.describe_rule_change(name, old_value, value)}",
                Severity.IMPORTANT,
            )
        return change

    @staticmethod
    def _coerce(name: str, value: Any) -> Any:
        if name in BOOLEAN_RULES:
            if not isinstance(value, bool):
                raise ValueError(f"Rule '{name}' expects a bool, got {value!r}")
            return value
        value = float(value)
        if value < 0:
            raise ValueError(f"Rule '{name}' must be >= 0, got {value}")
        return value

    def set_rules(self, mapping: dict[str, Any]) -> None:
        """Bulk-assign settable rules without recording history (load/reset)."""
        for name, value in mapping.items():
            if name in SETTABLE_RULES:
                setattr(self.rules, name, self._coerce(name, value))
        self._effects_cache.clear()
        self._derived_tick = None

    def reset_to_defaults(self) -> None:
        self.set_rules(self.config.rules.rule_defaults())
        self.weather.reset()
        self._log("Rules reset to default values", Severity.IMPORTANT)

    # ------------------------------------------------------------------
    # Derived rules
    # ------------------------------------------------------------------

    def update_derived_rules(self, statistics: WorldStatistics, tick: int) -> None:
        """Recompute the derived values (and weather) for `tick`."""
        cfg = self.config.rules
        population = statistics.population

        self.rules.population_pressure = clamp(population / cfg.ideal_population, 0.5, 2.0)
        if population < cfg.extinction_floor:
            self.rules.extinction_threat = (cfg.extinction_floor - population) / cfg.extinction_floor
        else:
            self.rules.extinction_threat = 0.0

        self.weather.check_tick(tick, self.rules.enable_weather)
        self._derived_tick = tick

    def derived_are_fresh(self, tick: int) -> bool:
        return self._derived_tick == tick

    def _require_fresh(self, tick: int) -> None:
        if not self.derived_are_fresh(tick):
            raise StaleRulesError(
                f"Derived rules were computed for tick {self._derived_tick}, not tick {tick}"
            )

    def effective_rules(self, tick: int) -> RuleSet:
        """Snapshot of the rules in force for `tick`, with weather applied to energy decay."""
        self._require_fresh(tick)
        effective = self.rules.copy()
        effective.energy_decay = self.rules.energy_decay * self.weather.decay_multiplier
        return effective

    def get_current_rules(self) -> RuleSet:
        """Copy of the rules as set by the user, plus the last derived values."""
        return self.rules.copy()

    # ------------------------------------------------------------------
    # Per-entity modifiers
    # ------------------------------------------------------------------

    def apply_rule_modifications(self, entity: Entity, world: World) -> None:
        """
        Apply the global rules to one entity, after its own update.

        Reproduction threshold and max speed are rebuilt from the entity's
        base values, so the modifiers never compound across ticks.
        """
        self._require_fresh(world.tick_count)
        if entity.is_dead:
            return

        rules = self.rules
        if rules.gravity != 1.0:
            entity.vy += (rules.gravity - 1.0) * 0.5

        energy_decay = rules.energy_decay * self.weather.decay_multiplier
        if energy_decay != BASELINE_ENERGY_DECAY and not entity.is_resource:
            decay_modifier = energy_decay / BASELINE_ENERGY_DECAY
            entity.lose_energy(entity.energy * 0.001 * decay_modifier)

        threshold_factor = 1.0
        speed_factor = 1.0
        if rules.population_pressure > 1.5:
            entity.traits.aggression = min(1.0, entity.traits.aggression + 0.01)
            threshold_factor *= 1.2
        elif rules.population_pressure < 0.7:
            threshold_factor *= 0.9

        if rules.extinction_threat > 0.5:
            threshold_factor *= 0.7
            speed_factor *= 1.1

        entity.reproduction_threshold = entity.base_reproduction_threshold * threshold_factor
        entity.max_speed = entity.base_max_speed * speed_factor

        if entity.type is EntityType.CARNIVORE and not rules.enable_predators:
            entity.aggression_modifier = 0.5
        else:
            entity.aggression_modifier = 1.0

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def describe_rule_change(self, name: str, old_value: Any, new_value: Any) -> str:
        desc = _DESCRIPTIONS.get(name)
        if desc is None:
            return f"{name}: {old_value} -> {new_value}"
        if isinstance(new_value, bool):
            return f"{desc['name']}: {desc[new_value]}"
        direction = "increase" if new_value > old_value else "decrease"
        return f"{desc['name']}: {desc[direction]}"

    def get_rule_effects(self, name: str) -> RuleEffects:
        """Cached qualitative effects of a rule at its current value."""
        if name not in SETTABLE_RULES:
            raise KeyError(f"Unknown rule '{name}'")
        if name not in self._effects_cache:
            self._effects_cache[name] = self._calculate_rule_effects(name)
        return self._effects_cache[name]

    def _calculate_rule_effects(self, name: str) -> RuleEffects:
        value = getattr(self.rules, name)
        if name == "gravity":
            return RuleEffects(
                ["Movement patterns"],
                ["Energy expenditure", "Migration behavior"],
                "high" if value > 1.5 else "medium",
            )
        if name == "energy_decay":
            return RuleEffects(
                ["Entity lifespan", "Activity levels"],
                ["Population dynamics", "Evolution pressure"],
                "high" if value > 0.05 else "medium",
            )
        if name == "reproduction_cost":
            return RuleEffects(
                ["Birth rate", "Population growth"],
                ["Genetic diversity", "Age distribution"],
                "high" if value > 80 else "medium",
            )
        if name == "mutation_chance":
            return RuleEffects(
                ["Genetic variation", "Adaptation speed"],
                ["Species resilience", "Trait distribution"],
                "high" if value > 0.1 else "low",
            )
        if name == "trade_efficiency":
            return RuleEffects(
                ["Cooperation behavior", "Energy transfer"],
                ["Social structures", "Symbiosis"],
                "medium" if abs(value - 1.0) > 0.5 else "low",
            )
        if name == "resource_abundance":
            return RuleEffects(
                ["Food availability", "Competition intensity"],
                ["Territorial behavior", "Population limits"],
                "high" if value < 0.5 or value > 2.0 else "medium",
            )
        if name == "enable_predators":
            return RuleEffects(
                ["Predation pressure", "Fear responses"],
                ["Evolutionary arms race", "Ecosystem balance"],
                "high",
            )
        if name == "enable_weather":
            return RuleEffects(
                ["Environmental variability"],
                ["Adaptation pressure", "Migration patterns"],
                "medium",
            )
        raise KeyError(f"Unknown rule '{name}'")

    def analyze_rule_effectiveness(self) -> Optional[RuleAnalysis]:
        """
        Look at the last ten changes and name the most frequently touched
        rule. Returns None with fewer than two changes on record.
        """
        if len(self.history) < 2:
            return None

        frequency = Counter(change.rule for change in self.history[-10:])
        most_changed, count = frequency.most_common(1)[0]

        recommendation = "Continue experimenting with different rule combinations"
        if count > 3:
            recommendation = f"Consider stabilizing {most_changed} to observe long-term effects"
        return RuleAnalysis(most_changed, count, recommendation)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def export_rules(self) -> dict[str, Any]:
        limit = self.config.rules.history_export_limit
        history = self.history[-limit:] if limit > 0 else []
        return {
            "rules": self.rules.to_dict(),
            "history": [change.to_dict() for change in history],
            "timestamp": time.time(),
        }

    def import_rules(self, data: dict[str, Any]) -> None:
        """
        Replace rules and history from exported data.

        Raises:
            KeyError, TypeError, ValueError: On malformed data. Nothing is
                modified in that case.
        """
        history = [RuleChange.from_dict(d) for d in data.get("history", [])]
        rules = data.get("rules", {})
        staged = RuleSet.from_dict(self.rules.to_dict())
        for name, value in rules.items():
            if name in SETTABLE_RULES:
                setattr(staged, name, self._coerce(name, value))

        self.set_rules({name: getattr(staged, name) for name in SETTABLE_RULES})
        self.history = history
        self._log("Rules loaded from save data", Severity.SUCCESS)

    def _log(self, message: str, severity: Severity) -> None:
        if self.event_log is not None:
            self.event_log.log(message, severity)
        else:
            logger.info(message)

    def __repr__(self) -> str:
        return (
            f"RulesEngine(pressure={self.rules.population_pressure:.2f}, "
            f"threat={self.rules.extinction_threat:.2f}, changes={len(self.history)})"
        )
