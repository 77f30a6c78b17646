"""
Configuration system for Ruleweaver.

Provides a hierarchical dataclass-based config with JSON serialization,
validation, and sensible defaults for all simulation parameters.
"""

from __future__ import annotations

import json
import warnings
from copy import deepcopy
from dataclasses import dataclass, field, fields, asdict
from pathlib import Path
from typing import Any


# ---------------------------------------------------------------------------
# Sub-config dataclasses (grouped by domain)
# ---------------------------------------------------------------------------

@dataclass
class WorldConfig:
    """World bounds and seeding."""
    width: int = 800
    height: int = 600
    seed: int = 42

    def validate(self) -> list[str]:
        errors = []
        if self.width < 50:
            errors.append(f"world.width must be >= 50, got {self.width}")
        if self.height < 50:
            errors.append(f"world.height must be >= 50, got {self.height}")
        if self.width > 10_000:
            errors.append(f"world.width must be <= 10000, got {self.width}")
        if self.height > 10_000:
            errors.append(f"world.height must be <= 10000, got {self.height}")
        return errors


@dataclass
class PopulationConfig:
    """Starting population spawned by initialize_world and extinction reseeds."""
    herbivores: int = 15
    carnivores: int = 5
    traders: int = 3
    resources: int = 20

    def validate(self) -> list[str]:
        errors = []
        for name in ("herbivores", "carnivores", "traders", "resources"):
            value = getattr(self, name)
            if value < 0:
                errors.append(f"population.{name} must be >= 0, got {value}")
            if value > 10_000:
                errors.append(f"population.{name} must be <= 10000, got {value}")
        if self.herbivores + self.carnivores + self.traders == 0:
            errors.append("population must contain at least one living entity")
        return errors


@dataclass
class ResourceConfig:
    """Periodic resource respawning."""
    respawn_interval: int = 30      # ticks between respawn checks
    max_resources: int = 30         # no respawn while this many resources live
    respawn_batch: int = 5          # scaled by rules.resource_abundance
    spawn_margin: float = 10.0      # keep spawns this far from the edges

    def validate(self) -> list[str]:
        errors = []
        if self.respawn_interval < 1:
            errors.append(f"resources.respawn_interval must be >= 1, got {self.respawn_interval}")
        if self.max_resources < 0:
            errors.append(f"resources.max_resources must be >= 0, got {self.max_resources}")
        if self.respawn_batch < 0:
            errors.append(f"resources.respawn_batch must be >= 0, got {self.respawn_batch}")
        if self.spawn_margin < 0:
            errors.append(f"resources.spawn_margin must be >= 0, got {self.spawn_margin}")
        return errors


@dataclass
class RulesConfig:
    """Default rule values and the constants the rules engine derives from."""
    gravity: float = 1.0
    energy_decay: float = 0.02
    reproduction_cost: float = 50.0
    mutation_chance: float = 0.05
    trade_efficiency: float = 1.0
    resource_abundance: float = 1.0
    enable_predators: bool = False
    enable_weather: bool = False

    ideal_population: int = 30
    extinction_floor: int = 5
    reproduction_cooldown_ticks: int = 1
    weather_frequency: float = 1.0      # radians per tick
    history_export_limit: int = 50

    def validate(self) -> list[str]:
        errors = []
        if not (0.0 <= self.gravity <= 5.0):
            errors.append(f"rules.gravity must be in [0, 5], got {self.gravity}")
        if not (0.0 <= self.energy_decay <= 1.0):
            errors.append(f"rules.energy_decay must be in [0, 1], got {self.energy_decay}")
        if self.reproduction_cost < 0:
            errors.append(f"rules.reproduction_cost must be >= 0, got {self.reproduction_cost}")
        if not (0.0 <= self.mutation_chance <= 1.0):
            errors.append(f"rules.mutation_chance must be in [0, 1], got {self.mutation_chance}")
        if self.trade_efficiency < 0:
            errors.append(f"rules.trade_efficiency must be >= 0, got {self.trade_efficiency}")
        if self.resource_abundance < 0:
            errors.append(f"rules.resource_abundance must be >= 0, got {self.resource_abundance}")
        if self.ideal_population < 1:
            errors.append(f"rules.ideal_population must be >= 1, got {self.ideal_population}")
        if self.extinction_floor < 1:
            errors.append(f"rules.extinction_floor must be >= 1, got {self.extinction_floor}")
        if self.reproduction_cooldown_ticks < 1:
            errors.append(
                f"rules.reproduction_cooldown_ticks must be >= 1, got {self.reproduction_cooldown_ticks}"
            )
        if self.weather_frequency <= 0:
            errors.append(f"rules.weather_frequency must be > 0, got {self.weather_frequency}")
        if self.history_export_limit < 0:
            errors.append(f"rules.history_export_limit must be >= 0, got {self.history_export_limit}")
        return errors

    def rule_defaults(self) -> dict[str, Any]:
        """The eight user-settable rules as a flat dict."""
        return {
            "gravity": self.gravity,
            "energy_decay": self.energy_decay,
            "reproduction_cost": self.reproduction_cost,
            "mutation_chance": self.mutation_chance,
            "trade_efficiency": self.trade_efficiency,
            "resource_abundance": self.resource_abundance,
            "enable_predators": self.enable_predators,
            "enable_weather": self.enable_weather,
        }


@dataclass
class ObjectiveConfig:
    """Objective generation settings."""
    min_active: int = 5
    enable_emergency: bool = True

    def validate(self) -> list[str]:
        errors = []
        if self.min_active < 1:
            errors.append(f"objectives.min_active must be >= 1, got {self.min_active}")
        return errors


@dataclass
class PersistenceConfig:
    """Save slots, autosave and event log retention."""
    save_dir: str = "saves"
    slots: int = 3
    autosave_slot: int = 0
    autosave_every_ticks: int = 30      # 0 = disabled
    log_capacity: int = 100
    saved_log_entries: int = 20

    def validate(self) -> list[str]:
        errors = []
        if self.slots < 1:
            errors.append(f"persistence.slots must be >= 1, got {self.slots}")
        if not (0 <= self.autosave_slot <= self.slots):
            errors.append(
                f"persistence.autosave_slot must be in [0, {self.slots}], got {self.autosave_slot}"
            )
        if self.autosave_every_ticks < 0:
            errors.append(
                f"persistence.autosave_every_ticks must be >= 0, got {self.autosave_every_ticks}"
            )
        if self.log_capacity < 1:
            errors.append(f"persistence.log_capacity must be >= 1, got {self.log_capacity}")
        if not (0 <= self.saved_log_entries <= self.log_capacity):
            errors.append("persistence.saved_log_entries must be in [0, log_capacity]")
        return errors


@dataclass
class VizConfig:
    """Output and reporting cadence."""
    output_dir: str = "runs"
    stats_every_ticks: int = 100        # KPI row cadence for headless runs
    log_stats_every_ticks: int = 500    # periodic "important" population event
    max_history: int = 2000             # KPI samples kept in memory, 0 = unbounded

    def validate(self) -> list[str]:
        errors = []
        if self.stats_every_ticks < 1:
            errors.append(f"viz.stats_every_ticks must be >= 1, got {self.stats_every_ticks}")
        if self.log_stats_every_ticks < 1:
            errors.append(
                f"viz.log_stats_every_ticks must be >= 1, got {self.log_stats_every_ticks}"
            )
        if self.max_history < 0:
            errors.append(f"viz.max_history must be >= 0, got {self.max_history}")
        return errors


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------

@dataclass
class SimConfig:
    """
    Top-level simulation configuration.

    All parameters are adjustable. Nested dataclasses group related settings.
    Load from JSON with `load_config()`, validate with `validate()`.
    """
    world: WorldConfig = field(default_factory=WorldConfig)
    population: PopulationConfig = field(default_factory=PopulationConfig)
    resources: ResourceConfig = field(default_factory=ResourceConfig)
    rules: RulesConfig = field(default_factory=RulesConfig)
    objectives: ObjectiveConfig = field(default_factory=ObjectiveConfig)
    persistence: PersistenceConfig = field(default_factory=PersistenceConfig)
    viz: VizConfig = field(default_factory=VizConfig)

    def validate(self) -> list[str]:
        """Validate all config sections. Returns list of error messages (empty = valid)."""
        errors = []
        for f in fields(self):
            sub = getattr(self, f.name)
            if hasattr(sub, "validate"):
                errors.extend(sub.validate())
        return errors

    def to_dict(self) -> dict[str, Any]:
        """Convert to nested dict for JSON serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SimConfig:
        """Create SimConfig from nested dict, merging with defaults."""
        config = cls()
        _merge_into_dataclass(config, data)
        return config

    def copy(self) -> SimConfig:
        """Deep copy of this config."""
        return deepcopy(self)


# ---------------------------------------------------------------------------
# JSON I/O helpers
# ---------------------------------------------------------------------------

def _merge_into_dataclass(target: Any, source: dict[str, Any]) -> None:
    """
    Recursively merge a dict into a dataclass instance.
    Unknown keys emit a warning but don't raise.
    """
    if not isinstance(source, dict):
        return

    known_fields = {f.name for f in fields(target)}
    for key, value in source.items():
        if key not in known_fields:
            warnings.warn(
                f"Unknown config key '{key}' in section {type(target).__name__} - ignored.",
                UserWarning,
                stacklevel=3,
            )
            continue

        current = getattr(target, key)

        if hasattr(current, "__dataclass_fields__") and isinstance(value, dict):
            _merge_into_dataclass(current, value)
        else:
            setattr(target, key, value)


def load_config(path: str | Path) -> SimConfig:
    """
    Load config from a JSON file. Missing fields use defaults.

    Args:
        path: Path to JSON config file.

    Returns:
        Validated SimConfig instance.

    Raises:
        FileNotFoundError: If path doesn't exist.
        json.JSONDecodeError: If JSON is malformed.
        ValueError: If config values are invalid.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    config = SimConfig.from_dict(data)

    errors = config.validate()
    if errors:
        msg = "Invalid configuration:\n" + "\n".join(f"  - {e}" for e in errors)
        raise ValueError(msg)

    return config


def save_config(config: SimConfig, path: str | Path) -> None:
    """Save config to JSON file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(config.to_dict(), f, indent=2, ensure_ascii=False)


def get_default_config() -> SimConfig:
    """Return a fresh default config (all defaults, validated)."""
    config = SimConfig()
    errors = config.validate()
    assert not errors, f"Default config is invalid: {errors}"
    return config


def apply_param_override(config: SimConfig, dotted_key: str, value: Any) -> None:
    """
    Apply a single parameter override using dot notation.

    Example:
        apply_param_override(config, "population.herbivores", 40)
        apply_param_override(config, "rules.energy_decay", 0.01)

    Raises:
        KeyError: If the path doesn't exist.
    """
    parts = dotted_key.split(".")
    obj = config
    for part in parts[:-1]:
        if not hasattr(obj, part):
            raise KeyError(f"Config path '{dotted_key}' invalid: '{part}' not found in {type(obj).__name__}")
        obj = getattr(obj, part)

    final_key = parts[-1]
    if not hasattr(obj, final_key):
        raise KeyError(f"Config path '{dotted_key}' invalid: '{final_key}' not found in {type(obj).__name__}")

    setattr(obj, final_key, value)
