"""
KPI Metrics collection for Ruleweaver.

MetricsCollector samples the engine every few ticks and produces a flat
dictionary of Key Performance Indicators, suitable for CSV export, the
dashboard charts, and pandas analysis.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

import numpy as np
import pandas as pd

from ruleweaver.core.config import SimConfig
from ruleweaver.core.entity import Entity, EntityType, Traits

if TYPE_CHECKING:
    from ruleweaver.simulation.engine import SimulationEngine


# ---------------------------------------------------------------------------
# MetricsCollector
# ---------------------------------------------------------------------------

class MetricsCollector:
    """
    Collects and computes KPIs.

    Usage:
      1. Every `viz.stats_every_ticks` ticks, call `collect(engine, totals)`
      2. Resulting dict is appended to `history`, which keeps the newest
         `viz.max_history` samples
      3. Call `to_dataframe()` for analysis or plotting

    Attributes:
        config: Simulation configuration.
        history: List of KPI dicts, one per sample.
    """

    def __init__(self, config: SimConfig):
        self.config = config
        self.history: list[dict] = []

    def collect(
        self,
        engine: SimulationEngine,
        tick_stats_totals: Optional[dict[str, int]] = None,
    ) -> dict:
        """
        Compute all KPIs for the engine's current state and append to history.

        Args:
            engine: The simulation engine (must be initialized).
            tick_stats_totals: Counters accumulated since the last sample
                (from engine.get_accumulated_stats()).

        Returns:
            Dict of KPI_name -> value.
        """
        totals = tick_stats_totals or {}
        stats = engine.entity_manager.get_statistics()
        rules = engine.rules_engine.rules
        world = engine.world

        living = [e for e in world.live_entities() if not e.is_resource] if world else []

        kpis: dict = {}
        kpis["tick"] = engine.current_tick
        kpis["population"] = stats.population
        kpis["herbivores"] = stats.count(EntityType.HERBIVORE)
        kpis["carnivores"] = stats.count(EntityType.CARNIVORE)
        kpis["traders"] = stats.count(EntityType.TRADER)
        kpis["resources"] = stats.count(EntityType.RESOURCE)
        kpis["extinction_flag"] = stats.population == 0

        # --- Births / deaths since the last sample ---
        kpis["births"] = totals.get("births", 0)
        kpis["deaths"] = totals.get("deaths", 0)
        kpis["resources_consumed"] = totals.get("resources_consumed", 0)
        kpis["resources_spawned"] = totals.get("resources_spawned", 0)

        # --- Energy statistics ---
        kpis["total_energy"] = stats.total_energy
        if living:
            energies = np.array([e.energy for e in living])
            kpis["avg_energy"] = float(np.mean(energies))
            kpis["median_energy"] = float(np.median(energies))
            kpis["min_energy"] = float(np.min(energies))
            kpis["max_energy"] = float(np.max(energies))
            kpis["std_energy"] = float(np.std(energies))
        else:
            kpis["avg_energy"] = 0.0
            kpis["median_energy"] = 0.0
            kpis["min_energy"] = 0.0
            kpis["max_energy"] = 0.0
            kpis["std_energy"] = 0.0

        # --- Traits ---
        trait_matrix = self._trait_matrix(living)
        for i, name in enumerate(Traits.names()):
            kpis[f"avg_{name}"] = float(np.mean(trait_matrix[:, i])) if living else 0.0
        kpis["trait_diversity"] = self._compute_trait_diversity(trait_matrix)

        kpis["average_age"] = stats.average_age
        kpis["max_generation"] = stats.generations

        # --- Rules and objectives ---
        kpis["population_pressure"] = rules.population_pressure
        kpis["extinction_threat"] = rules.extinction_threat
        kpis["weather_phase"] = engine.rules_engine.weather.phase.value
        kpis["score"] = engine.objective_manager.score
        kpis["objectives_completed"] = len(engine.objective_manager.completed_objectives)

        self.history.append(kpis)
        cap = self.config.viz.max_history
        if cap and len(self.history) > cap:
            del self.history[: len(self.history) - cap]
        return kpis

    # ------------------------------------------------------------------
    # Trait helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _trait_matrix(entities: list[Entity]) -> np.ndarray:
        """N x 5 matrix of trait values, in Traits.names() order."""
        names = Traits.names()
        if not entities:
            return np.zeros((0, len(names)))
        return np.array([[getattr(e.traits, n) for n in names] for e in entities])

    @staticmethod
    def _compute_trait_diversity(matrix: np.ndarray) -> float:
        """
        Mean per-trait standard deviation across the living population.

        0.0 for fewer than two entities.
        """
        if matrix.shape[0] < 2:
            return 0.0
        return float(np.mean(np.std(matrix, axis=0)))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_history(self) -> list[dict]:
        """Return all collected KPI snapshots."""
        return list(self.history)

    def get_last(self) -> Optional[dict]:
        """Return the last collected KPI snapshot, or None."""
        return self.history[-1] if self.history else None

    def get_kpi_series(self, kpi_name: str) -> list:
        """Extract a single KPI as a list across all samples."""
        return [snap[kpi_name] for snap in self.history if kpi_name in snap]

    def to_dataframe(self) -> pd.DataFrame:
        """History as a DataFrame with the KPI columns in canonical order."""
        return pd.DataFrame(self.history, columns=self.kpi_names())

    @staticmethod
    def kpi_names() -> list[str]:
        """Return the ordered list of all KPI names."""
        return [
            "tick",
            "population",
            "herbivores",
            "carnivores",
            "traders",
            "resources",
            "extinction_flag",
            "births",
            "deaths",
            "resources_consumed",
            "resources_spawned",
            "total_energy",
            "avg_energy",
            "median_energy",
            "min_energy",
            "max_energy",
            "std_energy",
            *(f"avg_{name}" for name in Traits.names()),
            "trait_diversity",
            "average_age",
            "max_generation",
            "population_pressure",
            "extinction_threat",
            "weather_phase",
            "score",
            "objectives_completed",
        ]
