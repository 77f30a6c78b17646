"""
Weather System for Ruleweaver.

A toy oscillator driven by the simulation tick count:

    intensity = sin(tick * frequency) * 0.5 + 0.5

Above 0.8 it is stormy and energy decays 20% faster; below 0.2 it is calm
and energy decays 10% slower. The weather never rewrites the user's
energy_decay rule; the rules engine asks for the multiplier instead.

Because the phase depends only on the tick, a replay from the same seed
sees the same weather regardless of pauses.
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Optional

from ruleweaver.logging.event_log import EventLog, Severity


STORM_THRESHOLD = 0.8
CALM_THRESHOLD = 0.2
STORM_DECAY_MULTIPLIER = 1.2
CALM_DECAY_MULTIPLIER = 0.9


class WeatherPhase(Enum):
    CLEAR = "clear"
    STORM = "storm"
    CALM = "calm"


class WeatherSystem:
    """
    Tracks the current weather phase.

    Attributes:
        frequency: Radians of phase per tick.
        active: Whether weather is currently being applied.
        phase: Current WeatherPhase (CLEAR while inactive).
        intensity: Last computed intensity in [0, 1].
        storms: Number of storms started so far.
    """

    def __init__(self, frequency: float = 1.0, event_log: Optional[EventLog] = None):
        self.frequency = frequency
        self.event_log = event_log
        self.active: bool = False
        self.phase = WeatherPhase.CLEAR
        self.intensity: float = 0.5
        self.storms: int = 0

    def intensity_at(self, tick: int) -> float:
        return math.sin(tick * self.frequency) * 0.5 + 0.5

    def check_tick(self, tick: int, enabled: bool) -> str:
        """
        Advance the weather to `tick`.

        Returns:
            Event string: "storm", "calm", "cleared", "disabled" or "none".
        """
        if not enabled:
            was_active = self.active
            self.active = False
            self.phase = WeatherPhase.CLEAR
            return "disabled" if was_active else "none"

        self.active = True
        self.intensity = self.intensity_at(tick)

        if self.intensity > STORM_THRESHOLD:
            new_phase = WeatherPhase.STORM
        elif self.intensity < CALM_THRESHOLD:
            new_phase = WeatherPhase.CALM
        else:
            new_phase = WeatherPhase.CLEAR

        if new_phase is self.phase:
            return "none"

        self.phase = new_phase
        if new_phase is WeatherPhase.STORM:
            self.storms += 1
            if self.event_log is not None:
                self.event_log.log("Storm intensifies - entities seek shelter", Severity.IMPORTANT)
            return "storm"
        if new_phase is WeatherPhase.CALM:
            return "calm"
        return "cleared"

    @property
    def decay_multiplier(self) -> float:
        if self.phase is WeatherPhase.STORM:
            return STORM_DECAY_MULTIPLIER
        if self.phase is WeatherPhase.CALM:
            return CALM_DECAY_MULTIPLIER
        return 1.0

    def reset(self) -> None:
        self.active = False
        self.phase = WeatherPhase.CLEAR
        self.intensity = 0.5
        self.storms = 0

    def get_status(self) -> dict:
        """Return a status dict for logging/UI."""
        return {
            "active": self.active,
            "phase": self.phase.value,
            "intensity": self.intensity,
            "decay_multiplier": self.decay_multiplier,
            "storms": self.storms,
        }

    def __repr__(self) -> str:
        return (
            f"WeatherSystem(active={self.active}, phase={self.phase.value}, "
            f"intensity={self.intensity:.2f})"
        )
