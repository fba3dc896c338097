# schedule.py
from __future__ import annotations
from typing import List, Optional

from dca_engine.contracts import DCALevel, DCASchedule, MarketSnapshot, Side
from dca_engine.exceptions import ScheduleValidationError
from dca_engine.instrumentation import NullTracer
from dca_engine.min_notional import resolve_min_notional
from dca_engine.ports import ScheduleTracer
from dca_engine.rules.exit import create_exit_engine
from dca_engine.rules.pricing import PowerLawPriceEngine
from dca_engine.rules.sizing import GeometricSizeEngine, weighted_average
from dca_engine.strategy_config import StrategyDCAParams
from dca_engine.volatility import resolve_atr_percent


def calculate_schedule(
    params: StrategyDCAParams,
    snapshot: MarketSnapshot,
    tracer: Optional[ScheduleTracer] = None,
) -> DCASchedule:
    """
    Build the full layer ladder for a new (or recalculated) position.

    Pure: identical inputs give identical schedules, which is what lets a
    stored schedule be replayed layer by layer instead of recomputed.
    """
    tracer = tracer or NullTracer()
    params.validate()
    PowerLawPriceEngine.validate_config(params)
    GeometricSizeEngine.validate_config(params)

    side = Side.parse(snapshot.side)
    entry_price = float(snapshot.entry_price)
    if entry_price <= 0:
        raise ValueError(f"entry_price ({entry_price}) must be positive")

    atr_percent, substituted = resolve_atr_percent(snapshot.atr_percent)
    if substituted:
        tracer.event("atr_substituted", {"supplied": snapshot.atr_percent, "used": atr_percent})

    price_engine = PowerLawPriceEngine(params)
    size_engine = GeometricSizeEngine(params)

    # 1) raw base size, 2) minimum-notional floor
    raw_q1 = size_engine.base_quantity(snapshot.current_balance, entry_price)
    resolution = resolve_min_notional(
        raw_q1,
        entry_price,
        snapshot.min_notional,
        params.size_growth,
        params.max_layers,
        tracer=tracer,
    )
    q1 = resolution.q1
    layer_weights = list(resolution.weights)

    # 3) geometry with the effective growth factor
    cumulative = price_engine.distances(atr_percent)
    layer_prices = price_engine.prices(entry_price, side, atr_percent)
    quantities = [q1 * w for w in layer_weights]
    avg_price = weighted_average(layer_weights, layer_prices)

    tracer.event("geometry", {
        "atr_percent": atr_percent,
        "q1": q1,
        "effective_growth_factor": resolution.effective_growth_factor,
        "weighted_avg_price": avg_price,
    })

    # 4) exits per level and at the weighted average
    exit_engine = create_exit_engine(params, atr_percent)
    levels: List[DCALevel] = []
    running_qty = 0.0
    running_cost = 0.0
    for k, (ck, price, qty) in enumerate(zip(cumulative, layer_prices, quantities), start=1):
        running_qty += qty
        running_cost += qty * price
        exits = exit_engine.exits_for(price, side)
        levels.append(DCALevel(
            level=k,
            cumulative_distance_percent=ck,
            price=price,
            quantity=qty,
            take_profit_price=exits.take_profit_price,
            stop_loss_price=exits.stop_loss_price,
            cumulative_quantity=running_qty,
            avg_entry_price=running_cost / running_qty if running_qty > 0 else price,
        ))

    reference = exit_engine.exits_for(avg_price, side)
    total_weight = sum(layer_weights)
    total_risk = q1 * total_weight * abs(avg_price - reference.stop_loss_price)
    max_notional = sum(quantities) * avg_price * params.leverage

    schedule = DCASchedule(
        levels=tuple(levels),
        q1=q1,
        weighted_avg_price=avg_price,
        stop_loss_price=reference.stop_loss_price,
        take_profit_price=reference.take_profit_price,
        total_risk_dollars=total_risk,
        max_notional=max_notional,
        effective_growth_factor=resolution.effective_growth_factor,
        growth_factor_adjusted=resolution.growth_factor_adjusted,
        configured_growth_factor=params.size_growth,
        total_weight=total_weight,
        atr_percent=atr_percent,
        side=side,
        entry_price=entry_price,
    )
    tracer.schedule(schedule)
    return schedule


def reserved_risk_percent(schedule: DCASchedule, balance: float) -> float:
    """Reserved risk as a percentage of account balance."""
    if balance <= 0:
        raise ValueError(f"balance ({balance}) must be positive")
    return schedule.total_risk_dollars / balance * 100.0


def validate_schedule(
    schedule: DCASchedule,
    balance: float,
    max_portfolio_risk_percent: Optional[float] = None,
) -> bool:
    """Reject schedules that exceed the risk limit or cannot be traded."""
    if not schedule.levels:
        raise ScheduleValidationError("Invalid position sizing: no DCA levels generated")
    if not schedule.q1 or schedule.q1 <= 0:
        raise ScheduleValidationError("Invalid position sizing: base layer size (q1) must be > 0")
    if max_portfolio_risk_percent is not None:
        risk_pct = reserved_risk_percent(schedule, balance)
        if risk_pct > max_portfolio_risk_percent:
            raise ScheduleValidationError(
                f"Reserved risk {risk_pct:.2f}% exceeds maximum {max_portfolio_risk_percent:.2f}%. "
                f"Reduce position size or increase max risk."
            )
    return True
