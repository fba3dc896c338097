# instrumentation.py
from typing import Any, Mapping
from rich.table import Table
from dca_engine.contracts import DCASchedule
from dca_engine.logger_config import logger

# Events that indicate degraded output rather than routine progress
WARNING_EVENTS = {"atr_substituted", "bisection_not_converged"}


class NullTracer:
    """Default tracer: calculators stay side-effect free."""

    def event(self, name: str, payload: Mapping[str, Any]) -> None:
        return None

    def schedule(self, schedule: DCASchedule) -> None:
        return None


class LoggingTracer:
    """SRP: logging-only; calculators own the math."""

    def __init__(self, debug: bool = False):
        self.debug = debug

    def event(self, name: str, payload: Mapping[str, Any]) -> None:
        details = ", ".join(f"{k}={_fmt(v)}" for k, v in payload.items())
        if name in WARNING_EVENTS:
            logger.warning(f"[DCA] {name}: {details}")
        elif self.debug:
            logger.debug(f"[DCA] {name}: {details}")

    def schedule(self, schedule: DCASchedule) -> None:
        if not self.debug:
            return
        logger.debug(schedule_table(schedule))


def schedule_table(schedule: DCASchedule) -> Table:
    """Render a schedule as a rich Table (logged through RichColoredFormatter)."""
    growth_note = (
        f"g={schedule.effective_growth_factor:.4f} (adjusted from {schedule.configured_growth_factor:.4f})"
        if schedule.growth_factor_adjusted
        else f"g={schedule.effective_growth_factor:.4f}"
    )
    table = Table(
        title=(
            f"DCA {schedule.side.value.upper()} @ {schedule.entry_price:.8g} | q1={schedule.q1:.8g} | "
            f"{growth_note} | ATR%={schedule.atr_percent:.3f}"
        )
    )
    for column in ("Layer", "ck %", "Price", "Qty", "TP", "SL", "Cum Qty", "Avg Entry"):
        table.add_column(column, justify="right")
    for lvl in schedule.levels:
        table.add_row(
            str(lvl.level),
            f"{lvl.cumulative_distance_percent:.4f}",
            f"{lvl.price:.8g}",
            f"{lvl.quantity:.8g}",
            f"{lvl.take_profit_price:.8g}",
            f"{lvl.stop_loss_price:.8g}",
            f"{lvl.cumulative_quantity:.8g}",
            f"{lvl.avg_entry_price:.8g}",
        )
    table.caption = (
        f"WAP={schedule.weighted_avg_price:.8g} TP={schedule.take_profit_price:.8g} "
        f"SL={schedule.stop_loss_price:.8g} risk=${schedule.total_risk_dollars:.2f} "
        f"max notional=${schedule.max_notional:.2f}"
    )
    return table


def _fmt(value: Any) -> str:
    if isinstance(value, float):
        return f"{value:.8g}"
    return str(value)
