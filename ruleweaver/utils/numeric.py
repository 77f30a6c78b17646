"""
Small numeric helpers shared by the simulation modules.
"""

from __future__ import annotations

import math


def clamp(value: float, low: float, high: float) -> float:
    """Clamp a value to [low, high]."""
    return max(low, min(high, value))


def round_up_to(value: float, step: int) -> int:
    """
    Round a value up to the next multiple of `step`.

    Examples:
        >>> round_up_to(7501, 1000)
        8000
        >>> round_up_to(9000, 1000)
        9000
    """
    return int(math.ceil(value / step) * step)
