# min_notional.py
from __future__ import annotations
from dataclasses import dataclass
import math
from typing import Optional, Tuple

from dca_engine.config import BISECTION_MAX_ITERATIONS, BISECTION_TOLERANCE
from dca_engine.exceptions import ConfigurationError
from dca_engine.instrumentation import NullTracer
from dca_engine.ports import ScheduleTracer
from dca_engine.rules.sizing import weight_sum, weights
from dca_engine.solvers import bisect_monotonic


@dataclass(frozen=True)
class MinNotionalResolution:
    q1: float
    effective_growth_factor: float
    growth_factor_adjusted: bool
    converged: bool
    iterations: int
    original_q1: float
    weights: Tuple[float, ...]

    @property
    def total_weight(self) -> float:
        return sum(self.weights)


def floor_base_quantity(min_notional: float, entry_price: float) -> float:
    """min_notional / entry_price, nudged up by ulps until q1 * entry_price >= min_notional."""
    q1 = min_notional / entry_price
    while q1 * entry_price < min_notional:
        q1 = math.nextafter(q1, math.inf)
    return q1


def resolve_min_notional(
    q1: float,
    entry_price: float,
    min_notional: float,
    growth: float,
    max_layers: int,
    tolerance: float = BISECTION_TOLERANCE,
    max_iterations: int = BISECTION_MAX_ITERATIONS,
    tracer: Optional[ScheduleTracer] = None,
) -> MinNotionalResolution:
    """
    Lift layer 1 to the exchange minimum order value while keeping total size
    (q1 * Σw) roughly unchanged.

    When q1 * P0 < min_notional, q1 is floored to min_notional / P0 and the
    growth factor is lowered until Σ g_eff^(k-1) = q1_old * Σ g^(k-1) / q1_new.
    Σ g^(k-1) is increasing in g, so the search bisects [1, g] (or [0, g] for
    g < 1). An unconverged search returns its best midpoint, still flagged as
    adjusted.
    """
    tracer = tracer or NullTracer()
    if entry_price <= 0:
        raise ValueError(f"entry_price ({entry_price}) must be positive")
    if growth <= 0:
        raise ConfigurationError(f"size_growth ({growth}) must be positive")
    if max_layers < 1:
        raise ConfigurationError(f"max_layers ({max_layers}) must be >= 1")

    layer1_notional = q1 * entry_price
    if min_notional <= 0 or layer1_notional >= min_notional:
        return MinNotionalResolution(
            q1=q1,
            effective_growth_factor=growth,
            growth_factor_adjusted=False,
            converged=True,
            iterations=0,
            original_q1=q1,
            weights=tuple(weights(growth, max_layers)),
        )

    q1_new = floor_base_quantity(min_notional, entry_price)
    target = q1 * weight_sum(growth, max_layers) / q1_new
    lo = 1.0 if growth >= 1.0 else 0.0

    tracer.event("min_notional_adjustment", {
        "layer1_notional": layer1_notional,
        "min_notional": min_notional,
        "q1_old": q1,
        "q1_new": q1_new,
        "target_weight_sum": target,
    })

    result = bisect_monotonic(
        lambda g: weight_sum(g, max_layers),
        target,
        lo,
        growth,
        tolerance=tolerance,
        max_iterations=max_iterations,
    )
    if not result.converged:
        tracer.event("bisection_not_converged", {
            "iterations": result.iterations,
            "residual": result.residual,
            "growth_factor": result.value,
        })

    tracer.event("growth_factor_adjusted", {
        "configured": growth,
        "effective": result.value,
        "iterations": result.iterations,
    })

    return MinNotionalResolution(
        q1=q1_new,
        effective_growth_factor=result.value,
        growth_factor_adjusted=True,
        converged=result.converged,
        iterations=result.iterations,
        original_q1=q1,
        weights=tuple(weights(result.value, max_layers)),
    )
