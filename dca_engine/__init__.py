# dca_engine package initialization

from .contracts import DCALevel, DCASchedule, MarketSnapshot, OpenPosition, Side
from .exceptions import ConfigurationError, ScheduleValidationError
from .strategy_config import StrategyDCAParams
from .schedule import calculate_schedule, validate_schedule, reserved_risk_percent
from .min_notional import resolve_min_notional, MinNotionalResolution
from .next_layer import (
    Cached, LegacyBase, Recompute, ScheduleSource,
    LayerStatus, LayerLookup, NextLayer,
    select_schedule_source, resolve_next_layer,
    is_price_progressing, layer_risk_dollars,
)
from .risk import (
    recalculate_reserved_risk, ReservedRiskReport,
    layer_fits_reserved_budget, summarize_portfolio_risk, PortfolioRisk,
)
from .volatility import compute_atr_percent, resolve_atr_percent
from .instrumentation import LoggingTracer, NullTracer

__all__ = [
    'DCALevel',
    'DCASchedule',
    'MarketSnapshot',
    'OpenPosition',
    'Side',
    'ConfigurationError',
    'ScheduleValidationError',
    'StrategyDCAParams',

    'calculate_schedule',
    'validate_schedule',
    'reserved_risk_percent',
    'resolve_min_notional',
    'MinNotionalResolution',

    'Cached',
    'LegacyBase',
    'Recompute',
    'ScheduleSource',
    'LayerStatus',
    'LayerLookup',
    'NextLayer',
    'select_schedule_source',
    'resolve_next_layer',
    'is_price_progressing',
    'layer_risk_dollars',

    'recalculate_reserved_risk',
    'ReservedRiskReport',
    'layer_fits_reserved_budget',
    'summarize_portfolio_risk',
    'PortfolioRisk',

    'compute_atr_percent',
    'resolve_atr_percent',
    'LoggingTracer',
    'NullTracer',
]
