"""
Objective Manager for Ruleweaver.

Player-facing goals driven by world statistics:
  - Five default objectives, one per category (population, energy,
    survival, evolution, balance).
  - Every tick, the progress of each incomplete objective is recomputed and
    its completion condition checked. Completion is one-way: the objective is
    frozen, its points are added to the score exactly once, and it is never
    updated again.
  - After any completion, new objectives scaled to the current statistics
    are synthesized while fewer than `min_active` objectives remain active.
  - Emergency objectives appear when the population or total energy
    collapses.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field, asdict, replace
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

from ruleweaver.core.config import SimConfig
from ruleweaver.core.entity import EntityType
from ruleweaver.logging.event_log import EventLog, Severity
from ruleweaver.utils.numeric import round_up_to

if TYPE_CHECKING:
    from ruleweaver.core.world import World
    from ruleweaver.simulation.entity_manager import WorldStatistics
    from ruleweaver.simulation.rules import RuleSet

logger = logging.getLogger(__name__)


class ObjectiveType(Enum):
    POPULATION = "population"
    ENERGY = "energy"
    SURVIVAL = "survival"
    EVOLUTION = "evolution"
    BALANCE = "balance"
    SPECIAL = "special"


class Condition(Enum):
    GREATER_EQUAL = "greater_equal"
    EQUAL = "equal"
    SPECIAL = "special"


@dataclass
class Objective:
    """
    A goal with progress, a completion condition and a point reward.

    `duration` objectives must hold their condition for that many consecutive
    ticks; `duration_counter` resets to 0 on any regression.
    """
    id: str
    type: ObjectiveType
    title: str
    description: str
    target: int
    points: int
    category: str
    condition: Condition = Condition.GREATER_EQUAL
    current: int = 0
    duration: Optional[int] = None
    duration_counter: int = 0
    completed: bool = False
    completed_at: Optional[int] = None
    emergency: bool = False

    @property
    def progress(self) -> float:
        """Fraction of the way to completion, in [0, 1]."""
        if self.completed:
            return 1.0
        if self.duration:
            return min(1.0, self.duration_counter / self.duration)
        if self.target <= 0:
            return 0.0
        return max(0.0, min(1.0, self.current / self.target))

    @property
    def status(self) -> str:
        if self.completed:
            return "COMPLETED"
        if self.duration:
            return f"{self.duration_counter}/{self.duration}"
        return f"{self.current}/{self.target}"

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["type"] = self.type.value
        data["condition"] = self.condition.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Objective:
        return cls(
            id=str(data["id"]),
            type=ObjectiveType(data["type"]),
            title=str(data["title"]),
            description=str(data.get("description", "")),
            target=int(data["target"]),
            points=int(data["points"]),
            category=str(data.get("category", "")),
            condition=Condition(data.get("condition", Condition.GREATER_EQUAL.value)),
            current=int(data.get("current", 0)),
            duration=data.get("duration"),
            duration_counter=int(data.get("duration_counter", 0)),
            completed=bool(data.get("completed", False)),
            completed_at=data.get("completed_at"),
            emergency=bool(data.get("emergency", False)),
        )


@dataclass
class Recommendation:
    text: str
    priority: str
    rules: list[str] = field(default_factory=list)


def default_objectives() -> list[Objective]:
    """The five objectives every game starts with."""
    return [
        Objective(
            id="population_sustain",
            type=ObjectiveType.POPULATION,
            title="Sustain 100+ entities",
            description="Maintain a stable population of at least 100 living entities",
            target=100,
            duration=50,
            points=1000,
            category="survival",
        ),
        Objective(
            id="energy_accumulate",
            type=ObjectiveType.ENERGY,
            title="Reach 10,000 total energy",
            description="Accumulate a total energy pool of 10,000 across all entities",
            target=10_000,
            points=1500,
            category="prosperity",
        ),
        Objective(
            id="survival_marathon",
            type=ObjectiveType.SURVIVAL,
            title="Prevent extinction for 500 ticks",
            description="Keep at least one entity alive for 500 consecutive simulation ticks",
            target=500,
            points=2000,
            category="endurance",
        ),
        Objective(
            id="evolution_diversity",
            type=ObjectiveType.EVOLUTION,
            title="Reach generation 10",
            description="Guide evolution to produce entities of the 10th generation",
            target=10,
            points=1200,
            category="evolution",
        ),
        Objective(
            id="ecosystem_balance",
            type=ObjectiveType.BALANCE,
            title="Maintain ecosystem balance",
            description="Keep all entity types alive simultaneously for 100 ticks",
            target=100,
            condition=Condition.SPECIAL,
            points=2500,
            category="harmony",
        ),
    ]


class ObjectiveManager:
    """
    Tracks objectives and the score.

    Attributes:
        objectives: All objectives, active and completed, in creation order.
        completed_objectives: Frozen copies taken at completion time.
        history: Completion records (objective id, tick, points).
        score: Sum of points of completed objectives.
    """

    def __init__(self, config: SimConfig, event_log: Optional[EventLog] = None):
        self.config = config
        self.event_log = event_log
        self.objectives: list[Objective] = default_objectives()
        self.completed_objectives: list[Objective] = []
        self.history: list[dict[str, Any]] = []
        self.score: int = 0

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def update(self, world: Optional[World], stats: WorldStatistics, tick: int) -> list[Objective]:
        """
        Recompute progress of every active objective and complete those
        whose condition holds.

        Returns:
            Objectives completed this tick.
        """
        completed_now = []
        for objective in self.objectives:
            if objective.completed:
                continue
            self._update_progress(objective, stats)
            if self._check_completion(objective):
                self._complete(objective, tick)
                completed_now.append(objective)

        if completed_now:
            self.generate_new_objectives(stats, tick)
        if self.config.objectives.enable_emergency:
            self.check_emergencies(stats, tick)
        return completed_now

    def _update_progress(self, objective: Objective, stats: WorldStatistics) -> None:
        otype = objective.type
        if otype is ObjectiveType.POPULATION:
            objective.current = stats.population
        elif otype is ObjectiveType.ENERGY:
            objective.current = stats.total_energy
        elif otype is ObjectiveType.SURVIVAL:
            objective.current = objective.current + 1 if stats.population > 0 else 0
        elif otype is ObjectiveType.EVOLUTION:
            objective.current = stats.generations
        elif otype is ObjectiveType.BALANCE:
            all_present = all(stats.count(t) > 0 for t in EntityType)
            objective.current = objective.current + 1 if all_present else 0
        elif otype is ObjectiveType.SPECIAL:
            peaceful = stats.count(EntityType.CARNIVORE) == 0
            objective.current = objective.current + 1 if peaceful else 0
        else:
            raise ValueError(f"Unhandled objective type: {otype}")

        if objective.duration:
            if objective.current >= objective.target:
                objective.duration_counter += 1
            else:
                objective.duration_counter = 0

    @staticmethod
    def _check_completion(objective: Objective) -> bool:
        if objective.condition is Condition.GREATER_EQUAL:
            if objective.duration:
                return objective.duration_counter >= objective.duration
            return objective.current >= objective.target
        if objective.condition is Condition.EQUAL:
            return objective.current == objective.target
        if objective.condition is Condition.SPECIAL:
            return objective.current >= objective.target
        return False

    def _complete(self, objective: Objective, tick: int) -> None:
        objective.completed = True
        objective.completed_at = tick
        self.completed_objectives.append(replace(objective))
        self.score += objective.points
        self.history.append({
            "type": "completed",
            "objective": objective.id,
            "tick": tick,
            "score": objective.points,
        })
        self._log(
            f"OBJECTIVE COMPLETED: {objective.title} (+{objective.points} points)",
            Severity.SUCCESS,
        )

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    @property
    def active_objectives(self) -> list[Objective]:
        return [o for o in self.objectives if not o.completed]

    def _has_active(self, otype: ObjectiveType, emergency: Optional[bool] = None) -> bool:
        return any(
            o.type is otype and (emergency is None or o.emergency == emergency)
            for o in self.active_objectives
        )

    def generate_new_objectives(self, stats: WorldStatistics, tick: int) -> list[Objective]:
        """Add dynamic objectives while fewer than min_active remain active."""
        if len(self.active_objectives) >= self.config.objectives.min_active:
            return []

        added = []
        for objective in self.create_dynamic_objectives(stats, tick):
            if self._has_active(objective.type):
                continue
            self.objectives.append(objective)
            added.append(objective)
            self._log(f"New objective: {objective.title}", Severity.IMPORTANT)
        return added

    @staticmethod
    def create_dynamic_objectives(stats: WorldStatistics, tick: int) -> list[Objective]:
        """Candidate objectives scaled to the current statistics."""
        objectives = []
        difficulty = tick // 1000 + 1

        if stats.population > 50:
            target = stats.population + 50
            objectives.append(Objective(
                id=f"population_grow_{tick}",
                type=ObjectiveType.POPULATION,
                title=f"Reach {target} entities",
                description=f"Grow the population to {target} living entities",
                target=target,
                current=stats.population,
                points=500 * difficulty,
                category="growth",
            ))

        if stats.total_energy > 5000:
            target = round_up_to(stats.total_energy * 1.5, 1000)
            objectives.append(Objective(
                id=f"energy_boost_{tick}",
                type=ObjectiveType.ENERGY,
                title=f"Reach {target} total energy",
                description=f"Accumulate {target} units of total energy",
                target=target,
                current=stats.total_energy,
                points=300 * difficulty,
                category="efficiency",
            ))

        if stats.generations >= 3:
            target = stats.generations + 5
            objectives.append(Objective(
                id=f"evolution_advance_{tick}",
                type=ObjectiveType.EVOLUTION,
                title=f"Reach generation {target}",
                description=f"Guide evolution to generation {target}",
                target=target,
                current=stats.generations,
                points=400 * difficulty,
                category="evolution",
            ))

        if stats.count(EntityType.CARNIVORE) == 0 and stats.count(EntityType.HERBIVORE) > 10:
            objectives.append(Objective(
                id=f"peaceful_world_{tick}",
                type=ObjectiveType.SPECIAL,
                title="Maintain peaceful world for 200 ticks",
                description="Keep a world with no carnivores for 200 ticks",
                target=200,
                condition=Condition.SPECIAL,
                points=1500,
                category="peace",
            ))

        return objectives

    @staticmethod
    def create_emergency_objectives(stats: WorldStatistics, tick: int) -> list[Objective]:
        objectives = []
        if stats.population < 5:
            objectives.append(Objective(
                id=f"emergency_population_{tick}",
                type=ObjectiveType.POPULATION,
                title="EMERGENCY: Prevent extinction!",
                description="Increase population to at least 10 entities to avoid total collapse",
                target=10,
                current=stats.population,
                points=3000,
                category="emergency",
                emergency=True,
            ))
        if stats.total_energy < 100:
            objectives.append(Objective(
                id=f"emergency_energy_{tick}",
                type=ObjectiveType.ENERGY,
                title="EMERGENCY: Energy crisis!",
                description="Restore total energy to at least 500 to stabilize the ecosystem",
                target=500,
                current=stats.total_energy,
                points=2000,
                category="emergency",
                emergency=True,
            ))
        return objectives

    def check_emergencies(self, stats: WorldStatistics, tick: int) -> list[Objective]:
        """Add emergency objectives for crises that have no active emergency yet."""
        added = []
        for objective in self.create_emergency_objectives(stats, tick):
            if self._has_active(objective.type, emergency=True):
                continue
            self.objectives.append(objective)
            added.append(objective)
            self._log(f"New objective: {objective.title}", Severity.CRITICAL)
        return added

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_objectives_by_category(self, category: str) -> list[Objective]:
        return [o for o in self.objectives if o.category == category]

    def get_completion_stats(self) -> dict[str, Any]:
        total = len(self.objectives)
        completed = len(self.completed_objectives)
        return {
            "total": total,
            "completed": completed,
            "in_progress": len(self.active_objectives),
            "completion_rate": (completed / total) * 100 if total > 0 else 0.0,
            "total_score": self.score,
        }

    def get_achievement_summary(self) -> dict[str, Any]:
        categories: dict[str, dict[str, Any]] = {}
        for obj in self.completed_objectives:
            entry = categories.setdefault(obj.category, {"count": 0, "points": 0, "objectives": []})
            entry["count"] += 1
            entry["points"] += obj.points
            entry["objectives"].append(obj.title)

        n = len(self.completed_objectives)
        return {
            "categories": categories,
            "total_achievements": n,
            "total_points": self.score,
            "average_points_per_achievement": self.score / n if n > 0 else 0.0,
        }

    def get_recommendations(self, stats: WorldStatistics, rules: RuleSet) -> list[Recommendation]:
        """Rule tweaks that would help the currently active objectives."""
        recommendations = []
        for objective in self.active_objectives:
            otype = objective.type
            if otype is ObjectiveType.POPULATION and objective.current < objective.target * 0.5:
                recommendations.append(Recommendation(
                    "To increase population, try reducing reproduction cost or energy decay",
                    "high",
                    ["reproduction_cost", "energy_decay"],
                ))
            elif otype is ObjectiveType.ENERGY and objective.current < objective.target * 0.3:
                recommendations.append(Recommendation(
                    "To boost energy, increase resource abundance or reduce energy decay",
                    "medium",
                    ["resource_abundance", "energy_decay"],
                ))
            elif otype is ObjectiveType.SURVIVAL and stats.population < 10:
                recommendations.append(Recommendation(
                    "Population is critically low - disable predators and increase resources",
                    "critical",
                    ["enable_predators", "resource_abundance", "reproduction_cost"],
                ))
            elif otype is ObjectiveType.EVOLUTION and rules.mutation_chance < 0.02:
                recommendations.append(Recommendation(
                    "To accelerate evolution, increase mutation chance",
                    "low",
                    ["mutation_chance"],
                ))
        return recommendations

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def export_objectives(self) -> dict[str, Any]:
        return {
            "objectives": [o.to_dict() for o in self.objectives],
            "completed_objectives": [o.to_dict() for o in self.completed_objectives],
            "history": list(self.history),
            "score": self.score,
            "timestamp": time.time(),
        }

    def import_objectives(self, data: dict[str, Any]) -> None:
        """
        Replace all objective state from exported data.

        Raises:
            KeyError, TypeError, ValueError: On malformed data. Nothing is
                modified in that case.
        """
        objectives = [Objective.from_dict(d) for d in data.get("objectives", [])]
        completed = [Objective.from_dict(d) for d in data.get("completed_objectives", [])]
        history = [dict(h) for h in data.get("history", [])]
        score = int(data.get("score", 0))

        self.objectives = objectives or default_objectives()
        self.completed_objectives = completed
        self.history = history
        self.score = score
        self._log("Objectives loaded from save data", Severity.SUCCESS)

    def reset(self) -> None:
        self.objectives = default_objectives()
        self.completed_objectives = []
        self.history = []
        self.score = 0

    def _log(self, message: str, severity: Severity) -> None:
        if self.event_log is not None:
            self.event_log.log(message, severity)
        else:
            logger.info(message)

    def __repr__(self) -> str:
        return (
            f"ObjectiveManager(active={len(self.active_objectives)}, "
            f"completed={len(self.completed_objectives)}, score={self.score})"
        )
