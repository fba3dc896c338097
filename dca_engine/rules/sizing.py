# rules/sizing.py
from __future__ import annotations
from typing import List, Optional, Sequence
from dca_engine.exceptions import ConfigurationError
from dca_engine.strategy_config import StrategyDCAParams


def weights(growth: float, max_layers: int) -> List[float]:
    """w_k = g^(k-1), k = 1..N"""
    if max_layers < 1:
        raise ConfigurationError(f"max_layers ({max_layers}) must be >= 1")
    if growth <= 0:
        raise ConfigurationError(f"size_growth ({growth}) must be positive")
    return [growth ** (k - 1) for k in range(1, max_layers + 1)]


def weight_sum(growth: float, max_layers: int) -> float:
    return sum(weights(growth, max_layers))


def weighted_average(layer_weights: Sequence[float], layer_prices: Sequence[float]) -> float:
    """Σ(w_k * P_k) / Σ w_k"""
    if len(layer_weights) != len(layer_prices):
        raise ValueError(
            f"weights ({len(layer_weights)}) and prices ({len(layer_prices)}) must have the same length"
        )
    total = sum(layer_weights)
    if total <= 0:
        raise ValueError("Sum of weights must be positive")
    return sum(w * p for w, p in zip(layer_weights, layer_prices)) / total


def base_quantity(balance: float, margin_percent: float, start_step_percent: float,
                  leverage: float, entry_price: float) -> float:
    """
    q1 = (balance * margin%/100 * Δ1/100) * leverage / P0
    """
    if entry_price <= 0:
        raise ValueError(f"entry_price ({entry_price}) must be positive")
    return (balance * margin_percent / 100.0 * start_step_percent / 100.0) * leverage / entry_price


class GeometricSizeEngine:
    """
    q_k = q1 * g^(k-1)
    The growth factor may be overridden by the minimum-notional resolver.
    """

    def __init__(self, params: StrategyDCAParams) -> None:
        self.params = params

    def base_quantity(self, balance: float, entry_price: float) -> float:
        p = self.params
        return base_quantity(balance, p.margin_amount_percent, p.start_step_percent, p.leverage, entry_price)

    def weights(self, growth: Optional[float] = None) -> List[float]:
        return weights(self.params.size_growth if growth is None else growth, self.params.max_layers)

    def quantities(self, q1: float, growth: Optional[float] = None) -> List[float]:
        return [q1 * w for w in self.weights(growth)]

    def quantity_at(self, q1: float, level: int, growth: Optional[float] = None) -> float:
        """Size of layer ``level`` (1-based)."""
        if level < 1:
            raise ValueError(f"level ({level}) must be >= 1")
        g = self.params.size_growth if growth is None else growth
        return q1 * (g ** (level - 1))

    @classmethod
    def validate_config(cls, config: StrategyDCAParams, name: str = "GeometricSizeEngine") -> bool:
        """Validate GeometricSizeEngine configuration."""
        if config.size_growth <= 0:
            raise ConfigurationError(f"Invalid {name} configuration: size_growth ({config.size_growth}) must be positive")
        if config.max_layers < 1:
            raise ConfigurationError(f"Invalid {name} configuration: max_layers ({config.max_layers}) must be >= 1")
        if config.leverage < 1:
            raise ConfigurationError(f"Invalid {name} configuration: leverage ({config.leverage}) must be >= 1")
        return True
