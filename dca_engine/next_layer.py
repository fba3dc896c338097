# next_layer.py
from __future__ import annotations
from dataclasses import dataclass, replace
from enum import Enum
import math
from typing import Optional, Union

from dca_engine.contracts import DCALevel, DCASchedule, MarketSnapshot, OpenPosition, Side
from dca_engine.instrumentation import NullTracer
from dca_engine.logger_config import logger
from dca_engine.ports import ScheduleTracer
from dca_engine.rules.exit import create_exit_engine
from dca_engine.rules.pricing import PowerLawPriceEngine, level_price
from dca_engine.rules.sizing import GeometricSizeEngine
from dca_engine.schedule import calculate_schedule
from dca_engine.strategy_config import StrategyDCAParams
from dca_engine.volatility import resolve_atr_percent


# ---------- schedule sources (in precedence order) ----------

@dataclass(frozen=True)
class Cached:
    """A stored schedule that reaches the requested layer; replayed verbatim."""
    schedule: DCASchedule


@dataclass(frozen=True)
class LegacyBase:
    """Only the original base size q1 was stored."""
    q1: float


@dataclass(frozen=True)
class Recompute:
    """Nothing stored: rebuild the whole schedule from the original entry."""


ScheduleSource = Union[Cached, LegacyBase, Recompute]


def select_schedule_source(position: OpenPosition, level: Optional[int] = None) -> ScheduleSource:
    """
    Cached(schedule) if the stored schedule contains ``level``
    (default: the next unfilled layer), else LegacyBase(q1) if a positive q1
    was stored, else Recompute().
    """
    level = position.layers_filled + 1 if level is None else level
    schedule = DCASchedule.parse(position.dca_schedule)
    if schedule is not None and schedule.level(level) is not None:
        return Cached(schedule)
    q1 = _stored_base_size(position)
    if q1 is not None:
        return LegacyBase(q1)
    return Recompute()


def _stored_base_size(position: OpenPosition) -> Optional[float]:
    """Stored legacy q1 when it is a positive finite number; anything else counts as absent."""
    raw = position.dca_base_size
    if raw is None:
        return None
    try:
        q1 = float(raw)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring unparsable stored base size {raw!r} for position {position.id}")
        return None
    if not math.isfinite(q1) or q1 <= 0:
        return None
    return q1


# ---------- results ----------

class LayerStatus(Enum):
    READY = "ready"
    EXHAUSTED = "exhausted"      # every configured layer is already placed
    UNAVAILABLE = "unavailable"  # could not be computed; caller skips this layer


@dataclass(frozen=True)
class NextLayer:
    level: int
    price: float
    quantity: float
    take_profit_price: float
    stop_loss_price: float

    @classmethod
    def from_level(cls, lvl: DCALevel) -> 'NextLayer':
        return cls(
            level=lvl.level,
            price=lvl.price,
            quantity=lvl.quantity,
            take_profit_price=lvl.take_profit_price,
            stop_loss_price=lvl.stop_loss_price,
        )


@dataclass(frozen=True)
class LayerLookup:
    status: LayerStatus
    layer: Optional[NextLayer] = None
    source: Optional[ScheduleSource] = None
    reason: str = ""

    @property
    def ready(self) -> bool:
        return self.status is LayerStatus.READY


# ---------- resolver ----------

def resolve_next_layer(
    params: StrategyDCAParams,
    position: OpenPosition,
    snapshot: MarketSnapshot,
    tracer: Optional[ScheduleTracer] = None,
) -> LayerLookup:
    """
    Next unfilled layer for an open position.

    A stored schedule wins so sizing and spacing stay fixed for the life of
    the position however balance or volatility drift. ``snapshot`` supplies
    current balance, ATR% and min notional for the fallback sources; its
    entry price is ignored in favour of the position's original entry.
    """
    tracer = tracer or NullTracer()
    params.validate()

    current_layer = int(position.layers_filled)
    if current_layer >= params.max_layers:
        return LayerLookup(
            LayerStatus.EXHAUSTED,
            reason=f"Max layers reached ({params.max_layers})",
        )

    next_level = current_layer + 1
    source = select_schedule_source(position, next_level)
    tracer.event("next_layer_source", {
        "position": position.id,
        "level": next_level,
        "source": type(source).__name__,
    })

    if isinstance(source, Cached):
        return LayerLookup(LayerStatus.READY, NextLayer.from_level(source.schedule.level(next_level)), source)

    if isinstance(source, LegacyBase):
        try:
            layer = _legacy_layer(params, position, Side.parse(position.side), source.q1, next_level, snapshot.atr_percent)
        except Exception as e:
            logger.exception(f"Legacy layer {next_level} calculation failed for {position.symbol}: {e}")
            return LayerLookup(LayerStatus.UNAVAILABLE, source=source, reason=str(e))
        return LayerLookup(LayerStatus.READY, layer, source)

    try:
        anchored = replace(snapshot, entry_price=position.anchor_price, side=Side.parse(position.side))
        schedule = calculate_schedule(params, anchored, tracer=tracer)
    except Exception as e:
        logger.exception(f"DCA recompute failed for {position.symbol} layer {next_level}: {e}")
        return LayerLookup(LayerStatus.UNAVAILABLE, source=source, reason=str(e))

    lvl = schedule.level(next_level)
    if lvl is None:
        logger.warning(f"Level {next_level} not found in recomputed schedule for {position.symbol}")
        return LayerLookup(LayerStatus.UNAVAILABLE, source=source, reason=f"Level {next_level} not found")
    return LayerLookup(LayerStatus.READY, NextLayer.from_level(lvl), source)


def _legacy_layer(params: StrategyDCAParams, position: OpenPosition, side: Side, q1: float,
                  level: int, atr_percent: Optional[float]) -> NextLayer:
    """Analytic layer from the original entry with the configured (unadjusted) growth curve."""
    atr, _ = resolve_atr_percent(atr_percent)
    anchor = position.anchor_price
    if anchor <= 0:
        raise ValueError(f"Position {position.id} has no usable entry price")
    distance = PowerLawPriceEngine(params).distance(level, atr)
    price = level_price(anchor, side, distance)
    quantity = GeometricSizeEngine(params).quantity_at(q1, level)
    exits = create_exit_engine(params, atr).exits_for(price, side)
    return NextLayer(
        level=level,
        price=price,
        quantity=quantity,
        take_profit_price=exits.take_profit_price,
        stop_loss_price=exits.stop_loss_price,
    )


# ---------- layer guards ----------

def is_price_progressing(side: Side, price: float, last_layer_price: Optional[float]) -> bool:
    """A new layer must sit strictly beyond the previous one (lower for long, higher for short)."""
    if not last_layer_price:
        return True
    side = Side.parse(side)
    if side is Side.LONG:
        return price < last_layer_price
    return price > last_layer_price


def layer_risk_dollars(side: Side, price: float, quantity: float, stop_loss_price: float) -> float:
    """Loss on ``quantity`` filled at ``price`` if the stop is hit."""
    side = Side.parse(side)
    loss_per_unit = price - stop_loss_price if side is Side.LONG else stop_loss_price - price
    return loss_per_unit * quantity
