# rules/exit.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Protocol
import numpy as np
from dca_engine.contracts import Side
from dca_engine.exceptions import ConfigurationError
from dca_engine.strategy_config import StrategyDCAParams

# A long stop at or beyond 100% would put the price at or below zero
MAX_LONG_STOP_PERCENT = 99.99


@dataclass(frozen=True)
class ExitPrices:
    take_profit_price: float
    stop_loss_price: float
    take_profit_percent: float
    stop_loss_percent: float


def take_profit_price(price: float, side: Side, percent: float) -> float:
    """Favourable side of ``price``: above for long, below for short."""
    pct = max(0.0, percent)
    return price * (1.0 - side.direction * pct / 100.0)


def stop_loss_price(price: float, side: Side, percent: float) -> float:
    """Adverse side of ``price``: below for long, above for short."""
    pct = max(0.0, percent)
    if side is Side.LONG:
        pct = min(pct, MAX_LONG_STOP_PERCENT)
    return price * (1.0 + side.direction * pct / 100.0)


class ExitRule(Protocol):
    def percent(self, atr_percent: float) -> float: ...


class AdaptiveTakeProfit:
    """TP% = clamp(ATR% × multiplier, [min, max])"""

    def __init__(self, params: StrategyDCAParams):
        self.multiplier = params.tp_atr_multiplier
        self.min_pct = params.min_tp_percent
        self.max_pct = params.max_tp_percent

    def percent(self, atr_percent: float) -> float:
        return float(np.clip(atr_percent * self.multiplier, self.min_pct, self.max_pct))

    @classmethod
    def validate_config(cls, config: StrategyDCAParams, name: str = "AdaptiveTakeProfit") -> bool:
        if config.min_tp_percent < 0 or config.max_tp_percent < 0:
            raise ConfigurationError(f"Invalid {name} configuration: TP clamps must not be negative")
        if config.min_tp_percent > config.max_tp_percent:
            raise ConfigurationError(
                f"Invalid {name} configuration: min_tp_percent ({config.min_tp_percent}) "
                f"> max_tp_percent ({config.max_tp_percent})"
            )
        return True


class CushionTakeProfit:
    """TP% = exit cushion × ATR%"""

    def __init__(self, params: StrategyDCAParams):
        self.cushion = params.exit_cushion_multiplier

    def percent(self, atr_percent: float) -> float:
        return self.cushion * atr_percent

    @classmethod
    def validate_config(cls, config: StrategyDCAParams, name: str = "CushionTakeProfit") -> bool:
        if config.exit_cushion_multiplier < 0:
            raise ConfigurationError(
                f"Invalid {name} configuration: exit_cushion_multiplier ({config.exit_cushion_multiplier}) must not be negative"
            )
        return True


class AdaptiveStopLoss:
    """SL% = clamp(ATR% × multiplier, [min, max])"""

    def __init__(self, params: StrategyDCAParams):
        self.multiplier = params.sl_atr_multiplier
        self.min_pct = params.min_sl_percent
        self.max_pct = params.max_sl_percent

    def percent(self, atr_percent: float) -> float:
        return float(np.clip(atr_percent * self.multiplier, self.min_pct, self.max_pct))

    @classmethod
    def validate_config(cls, config: StrategyDCAParams, name: str = "AdaptiveStopLoss") -> bool:
        if config.min_sl_percent < 0 or config.max_sl_percent < 0:
            raise ConfigurationError(f"Invalid {name} configuration: SL clamps must not be negative")
        if config.min_sl_percent > config.max_sl_percent:
            raise ConfigurationError(
                f"Invalid {name} configuration: min_sl_percent ({config.min_sl_percent}) "
                f"> max_sl_percent ({config.max_sl_percent})"
            )
        return True


class FixedStopLoss:
    """SL% = configured stop_loss_percent"""

    def __init__(self, params: StrategyDCAParams):
        self.stop_loss_percent = params.stop_loss_percent

    def percent(self, atr_percent: float) -> float:
        return self.stop_loss_percent

    @classmethod
    def validate_config(cls, config: StrategyDCAParams, name: str = "FixedStopLoss") -> bool:
        if config.stop_loss_percent < 0:
            raise ConfigurationError(
                f"Invalid {name} configuration: stop_loss_percent ({config.stop_loss_percent}) must not be negative"
            )
        return True


class ExitEngine:
    """Applies one TP rule and one SL rule at a fixed ATR% to any reference price."""

    def __init__(self, take_profit: ExitRule, stop_loss: ExitRule, atr_percent: float):
        self.take_profit = take_profit
        self.stop_loss = stop_loss
        self.atr_percent = atr_percent
        self._tp_pct = take_profit.percent(atr_percent)
        self._sl_pct = stop_loss.percent(atr_percent)

    @property
    def take_profit_percent(self) -> float:
        return self._tp_pct

    @property
    def stop_loss_percent(self) -> float:
        return self._sl_pct

    def exits_for(self, price: float, side: Side) -> ExitPrices:
        return ExitPrices(
            take_profit_price=take_profit_price(price, side, self._tp_pct),
            stop_loss_price=stop_loss_price(price, side, self._sl_pct),
            take_profit_percent=self._tp_pct,
            stop_loss_percent=self._sl_pct,
        )


def create_exit_engine(params: StrategyDCAParams, atr_percent: float) -> ExitEngine:
    """Pick adaptive or fallback rules per leg from the strategy toggles."""
    tp_cls = AdaptiveTakeProfit if params.adaptive_tp_enabled else CushionTakeProfit
    sl_cls = AdaptiveStopLoss if params.adaptive_sl_enabled else FixedStopLoss
    tp_cls.validate_config(params)
    sl_cls.validate_config(params)
    return ExitEngine(tp_cls(params), sl_cls(params), atr_percent)
