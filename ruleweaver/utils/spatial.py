"""
Spatial utilities for Ruleweaver.

Continuous 2D geometry inside a bounded rectangle: distances, clamping to
the world edges, stepping toward a point, and nearest-candidate selection.

Unlike a wrap-around grid, positions never wrap: anything that would leave
the rectangle is clamped back inside it.
"""

from __future__ import annotations

import math
from typing import Callable, Iterable, Optional, TypeVar

import numpy as np

from ruleweaver.utils.numeric import clamp

T = TypeVar("T")


def distance_sq(x1: float, y1: float, x2: float, y2: float) -> float:
    """
    Squared Euclidean distance.

    Using squared distance avoids a sqrt and is sufficient for comparisons.
    """
    dx = x2 - x1
    dy = y2 - y1
    return dx * dx + dy * dy


def distance(x1: float, y1: float, x2: float, y2: float) -> float:
    """Euclidean distance between two points."""
    return math.sqrt(distance_sq(x1, y1, x2, y2))


def clamp_to_bounds(
    x: float, y: float,
    width: float, height: float,
    margin: float = 0.0,
) -> tuple[float, float]:
    """
    Clamp (x, y) into [margin, width - margin] x [margin, height - margin].

    If the margin is wider than half the rectangle, the point collapses onto
    the centre line of that axis.
    """
    low_x, high_x = margin, width - margin
    low_y, high_y = margin, height - margin
    if low_x > high_x:
        low_x = high_x = width / 2
    if low_y > high_y:
        low_y = high_y = height / 2
    return clamp(x, low_x, high_x), clamp(y, low_y, high_y)


def step_toward(
    cx: float, cy: float,
    tx: float, ty: float,
    speed: float,
) -> tuple[float, float]:
    """
    Velocity vector of length `speed` pointing from (cx, cy) to (tx, ty).

    Returns (0, 0) when the points coincide.
    """
    dx = tx - cx
    dy = ty - cy
    dist = math.sqrt(dx * dx + dy * dy)
    if dist == 0:
        return 0.0, 0.0
    return dx / dist * speed, dy / dist * speed


def nearest(
    x: float, y: float,
    candidates: Iterable[T],
    position: Callable[[T], tuple[float, float]],
) -> Optional[T]:
    """
    Return the candidate closest to (x, y), or None if there are none.

    Ties keep the first candidate seen, so the result is stable for a
    stable input order.
    """
    best: Optional[T] = None
    best_dist_sq = math.inf
    for candidate in candidates:
        cx, cy = position(candidate)
        d = distance_sq(x, y, cx, cy)
        if d < best_dist_sq:
            best_dist_sq = d
            best = candidate
    return best


def random_point(
    width: float, height: float,
    margin: float,
    rng: np.random.Generator,
) -> tuple[float, float]:
    """
    Uniform random point at least `margin` away from every edge.

    Args:
        width, height: Rectangle size.
        margin: Minimum distance from the edges.
        rng: NumPy random generator.
    """
    x = float(rng.uniform(margin, max(margin, width - margin)))
    y = float(rng.uniform(margin, max(margin, height - margin)))
    return x, y
