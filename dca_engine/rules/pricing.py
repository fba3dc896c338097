# rules/pricing.py
from __future__ import annotations
from typing import List, Optional, Sequence
import math
from dca_engine.contracts import Side
from dca_engine.exceptions import ConfigurationError
from dca_engine.strategy_config import StrategyDCAParams


def volatility_multiplier(atr_percent: Optional[float], volatility_ref: Optional[float]) -> float:
    """max(1, ATR% / Vref); 1 when either input is missing or non-positive."""
    if atr_percent is None or volatility_ref is None:
        return 1.0
    if math.isnan(atr_percent) or math.isnan(volatility_ref):
        return 1.0
    if atr_percent <= 0 or volatility_ref <= 0:
        return 1.0
    return max(1.0, atr_percent / volatility_ref)


def distances(start_step_percent: float, convexity: float, atr_percent: Optional[float],
              volatility_ref: Optional[float], max_layers: int) -> List[float]:
    """
    c_k = Δ1 * k^p * max(1, ATR% / Vref), k = 1..N  (percent from entry)
    """
    if max_layers < 1:
        raise ConfigurationError(f"max_layers ({max_layers}) must be >= 1")
    if convexity <= 0:
        raise ConfigurationError(f"spacing_convexity ({convexity}) must be positive")
    if start_step_percent <= 0:
        raise ConfigurationError(f"start_step_percent ({start_step_percent}) must be positive")
    vol = volatility_multiplier(atr_percent, volatility_ref)
    return [start_step_percent * (k ** convexity) * vol for k in range(1, max_layers + 1)]


def level_price(entry_price: float, side: Side, distance_percent: float) -> float:
    """Long: P0 * (1 - c/100); short: P0 * (1 + c/100)."""
    if side is Side.LONG and distance_percent >= 100.0:
        raise ValueError(
            f"Long layer {distance_percent:.2f}% below entry would price at or below zero; "
            f"reduce start_step_percent, spacing_convexity or max_layers"
        )
    return entry_price * (1.0 + side.direction * distance_percent / 100.0)


def prices(entry_price: float, side: Side, cumulative_distances: Sequence[float]) -> List[float]:
    side = Side.parse(side)
    return [level_price(entry_price, side, ck) for ck in cumulative_distances]


class PowerLawPriceEngine:
    """
    Layer k sits c_k percent away from the entry, with c_k growing as k^p and
    widened when current volatility exceeds the reference volatility.
    """

    def __init__(self, params: StrategyDCAParams) -> None:
        self.params = params

    def distances(self, atr_percent: Optional[float]) -> List[float]:
        p = self.params
        return distances(p.start_step_percent, p.spacing_convexity, atr_percent,
                         p.volatility_ref, p.max_layers)

    def distance(self, level: int, atr_percent: Optional[float]) -> float:
        """c_k for a single level (no need to build the whole ladder)."""
        p = self.params
        if level < 1:
            raise ValueError(f"level ({level}) must be >= 1")
        vol = volatility_multiplier(atr_percent, p.volatility_ref)
        return p.start_step_percent * (level ** p.spacing_convexity) * vol

    def prices(self, entry_price: float, side: Side, atr_percent: Optional[float]) -> List[float]:
        return prices(entry_price, side, self.distances(atr_percent))

    @classmethod
    def validate_config(cls, config: StrategyDCAParams, name: str = "PowerLawPriceEngine") -> bool:
        """Validate PowerLawPriceEngine configuration."""
        if config.max_layers < 1:
            raise ConfigurationError(f"Invalid {name} configuration: max_layers ({config.max_layers}) must be >= 1")
        if config.spacing_convexity <= 0:
            raise ConfigurationError(
                f"Invalid {name} configuration: spacing_convexity ({config.spacing_convexity}) must be positive"
            )
        if config.start_step_percent <= 0:
            raise ConfigurationError(
                f"Invalid {name} configuration: start_step_percent ({config.start_step_percent}) must be positive"
            )
        return True
