# risk.py
from __future__ import annotations
from dataclasses import dataclass, field
import math
from typing import Dict, Iterable, List, Optional, Tuple

from dca_engine.config import RESERVED_BUDGET_TOLERANCE
from dca_engine.contracts import DCASchedule, MarketSnapshot, OpenPosition, Side
from dca_engine.exceptions import ConfigurationError
from dca_engine.logger_config import logger
from dca_engine.next_layer import NextLayer, layer_risk_dollars
from dca_engine.ports import MinNotionalSource, PositionStore, ScheduleTracer, VolatilitySource
from dca_engine.schedule import calculate_schedule
from dca_engine.strategy_config import StrategyDCAParams


@dataclass(frozen=True)
class ReservedRiskUpdate:
    position_id: str
    symbol: str
    dollars: float
    percent: float


@dataclass(frozen=True)
class ReservedRiskFailure:
    position_id: str
    symbol: str
    error: str


@dataclass
class ReservedRiskReport:
    updates: List[ReservedRiskUpdate] = field(default_factory=list)
    failures: List[ReservedRiskFailure] = field(default_factory=list)

    @property
    def total_dollars(self) -> float:
        return sum(u.dollars for u in self.updates)

    @property
    def total_percent(self) -> float:
        return sum(u.percent for u in self.updates)


def recalculate_reserved_risk(
    params: StrategyDCAParams,
    positions: Iterable[OpenPosition],
    balance: float,
    volatility: VolatilitySource,
    min_notionals: MinNotionalSource,
    store: PositionStore,
    tracer: Optional[ScheduleTracer] = None,
) -> ReservedRiskReport:
    """
    Recompute every open position's full-ladder risk under the current
    parameters and hand it to the position store.

    A failure on one position (e.g. its volatility fetch) is logged and
    reported; the remaining positions are still processed.
    """
    params.validate()
    if balance <= 0:
        raise ConfigurationError(f"balance ({balance}) must be positive to express risk as a percentage")

    report = ReservedRiskReport()
    for position in positions:
        try:
            snapshot = MarketSnapshot(
                entry_price=position.anchor_price,
                side=Side.parse(position.side),
                current_balance=balance,
                atr_percent=volatility.atr_percent(position.symbol),
                min_notional=min_notionals.min_notional(position.symbol),
            )
            schedule = calculate_schedule(params, snapshot, tracer=tracer)
            dollars = schedule.total_risk_dollars
            percent = dollars / balance * 100.0
            store.update_reserved_risk(position.id, dollars, percent)
        except Exception as e:
            logger.exception(f"Reserved risk recalculation failed for {position.symbol} ({position.id}): {e}")
            report.failures.append(ReservedRiskFailure(position.id, position.symbol, str(e)))
            continue

        logger.info(
            f"Reserved risk for {position.symbol} {snapshot.side.value}: "
            f"${dollars:.2f} ({percent:.2f}% of balance)"
        )
        report.updates.append(ReservedRiskUpdate(position.id, position.symbol, dollars, percent))

    if report.failures:
        logger.warning(
            f"Reserved risk recalculated for {len(report.updates)} positions, "
            f"{len(report.failures)} skipped"
        )
    return report


def _stop_loss_per_unit(entry_price: float, stop_loss_percent: float) -> float:
    """Loss per unit at a fixed-percent stop from ``entry_price`` (same for long and short)."""
    return abs(entry_price) * stop_loss_percent / 100.0


def layer_fits_reserved_budget(
    position: OpenPosition,
    layer: NextLayer,
    stop_loss_percent: float,
    tolerance: float = RESERVED_BUDGET_TOLERANCE,
) -> bool:
    """
    True when filled risk plus the new layer's risk stays within the
    position's reserved budget (with ``tolerance`` slack for float noise).
    Positions without a reserved budget always fit; global limits are checked elsewhere.
    """
    layer_risk = layer_risk_dollars(position.side, layer.price, layer.quantity, layer.stop_loss_price)
    if not math.isfinite(layer_risk) or layer_risk < 0:
        raise ValueError(f"Invalid layer risk calculation: layerRisk=${layer_risk}")

    reserved = position.reserved_risk_dollars
    if not reserved:
        return True

    filled_risk = _stop_loss_per_unit(position.avg_entry_price, stop_loss_percent) * abs(position.total_quantity)
    projected = filled_risk + layer_risk
    fits = projected <= reserved * (1.0 + tolerance)
    if not fits:
        logger.info(
            f"Reserved budget exceeded for {position.symbol}: filled=${filled_risk:.2f}, "
            f"+layer=${layer_risk:.2f}, reserved=${reserved:.2f}"
        )
    return fits


@dataclass(frozen=True)
class PortfolioRisk:
    open_position_count: int = 0
    hedged_symbol_count: int = 0
    duplicate_records: int = 0
    filled_risk: float = 0.0
    filled_risk_percent: float = 0.0
    reserved_risk: float = 0.0
    reserved_risk_percent: float = 0.0


def _deduplicate(positions: Iterable[OpenPosition]) -> Tuple[List[OpenPosition], int]:
    """One record per (symbol, side), keeping the larger quantity."""
    unique: Dict[Tuple[str, Side], OpenPosition] = {}
    total = 0
    for pos in positions:
        total += 1
        key = (pos.symbol, Side.parse(pos.side))
        existing = unique.get(key)
        if existing is None or abs(pos.total_quantity) > abs(existing.total_quantity):
            unique[key] = pos
    return list(unique.values()), total - len(unique)


def summarize_portfolio_risk(
    positions: Iterable[OpenPosition],
    balance: float,
    stop_loss_percent: float,
) -> PortfolioRisk:
    """
    Filled risk (current exposure at the stop) and reserved risk (full DCA
    potential) across open positions. Hedged long/short pairs on one symbol
    count as a single open position.
    """
    deduped, duplicates = _deduplicate(positions)
    if duplicates:
        logger.warning(f"Duplicate positions detected: {duplicates} extra symbol/side records ignored")

    sides_by_symbol: Dict[str, set] = {}
    for pos in deduped:
        sides_by_symbol.setdefault(pos.symbol, set()).add(Side.parse(pos.side))
    open_count = len(sides_by_symbol)
    hedged = sum(1 for sides in sides_by_symbol.values() if len(sides) == 2)

    if open_count == 0:
        return PortfolioRisk()

    total_filled = 0.0
    total_reserved = 0.0
    for pos in deduped:
        loss_per_unit = _stop_loss_per_unit(pos.avg_entry_price, stop_loss_percent)
        filled = loss_per_unit * abs(pos.total_quantity)
        reserved = filled
        if pos.reserved_risk_dollars:
            reserved = float(pos.reserved_risk_dollars)
        else:
            schedule = DCASchedule.parse(pos.dca_schedule)
            if schedule is not None and schedule.q1 and schedule.total_weight:
                reserved = loss_per_unit * schedule.q1 * schedule.total_weight
        total_filled += filled
        total_reserved += reserved

    if balance <= 0:
        logger.warning("Invalid account balance for risk calculation")
        return PortfolioRisk(open_count, hedged, duplicates, total_filled, 0.0, total_reserved, 0.0)

    return PortfolioRisk(
        open_position_count=open_count,
        hedged_symbol_count=hedged,
        duplicate_records=duplicates,
        filled_risk=total_filled,
        filled_risk_percent=total_filled / balance * 100.0,
        reserved_risk=total_reserved,
        reserved_risk_percent=total_reserved / balance * 100.0,
    )
