# solvers.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Callable

from dca_engine.config import BISECTION_MAX_ITERATIONS, BISECTION_TOLERANCE


@dataclass(frozen=True)
class BisectionResult:
    value: float
    iterations: int
    converged: bool
    residual: float  # |fn(value) - target|


def bisect_monotonic(
    fn: Callable[[float], float],
    target: float,
    lo: float,
    hi: float,
    tolerance: float = BISECTION_TOLERANCE,
    max_iterations: int = BISECTION_MAX_ITERATIONS,
) -> BisectionResult:
    """
    Find x in [lo, hi] with fn(x) ~= target for a non-decreasing ``fn``.

    Stops once |fn(mid) - target| < tolerance or after ``max_iterations``
    midpoints. When the cap is hit the midpoint with the smallest residual is
    returned with ``converged=False``; a target outside [fn(lo), fn(hi)]
    therefore ends at the nearer bound.
    """
    if max_iterations < 1:
        raise ValueError(f"max_iterations ({max_iterations}) must be >= 1")
    if tolerance <= 0:
        raise ValueError(f"tolerance ({tolerance}) must be positive")
    if lo > hi:
        lo, hi = hi, lo

    best_x = (lo + hi) / 2.0
    best_residual = float("inf")

    for iteration in range(1, max_iterations + 1):
        mid = (lo + hi) / 2.0
        value = fn(mid)
        residual = abs(value - target)
        if residual < best_residual:
            best_x, best_residual = mid, residual
        if residual < tolerance:
            return BisectionResult(mid, iteration, True, residual)
        if value < target:
            lo = mid
        else:
            hi = mid

    return BisectionResult(best_x, max_iterations, False, best_residual)
