# contracts.py
from __future__ import annotations
from dataclasses import dataclass, asdict
from enum import Enum
import json
from typing import Any, Dict, Optional, Tuple, Union

from dca_engine.logger_config import logger


class Side(Enum):
    LONG = "long"
    SHORT = "short"

    @classmethod
    def parse(cls, value: Union[str, 'Side']) -> 'Side':
        if isinstance(value, Side):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValueError(f"Invalid side '{value}'. Must be 'long' or 'short'") from None

    @property
    def direction(self) -> int:
        """-1 when adverse moves are downward (long), +1 when upward (short)."""
        return -1 if self is Side.LONG else 1


@dataclass(slots=True, frozen=True)
class MarketSnapshot:
    entry_price: float
    side: Side
    current_balance: float
    atr_percent: Optional[float] = None
    min_notional: float = 0.0


@dataclass(slots=True, frozen=True)
class DCALevel:
    level: int
    cumulative_distance_percent: float
    price: float
    quantity: float
    take_profit_price: float
    stop_loss_price: float
    # Position state if layers 1..level all fill
    cumulative_quantity: float = 0.0
    avg_entry_price: float = 0.0


@dataclass(slots=True, frozen=True)
class DCASchedule:
    levels: Tuple[DCALevel, ...]
    q1: float
    weighted_avg_price: float
    stop_loss_price: float
    take_profit_price: float
    total_risk_dollars: float
    max_notional: float
    effective_growth_factor: float
    growth_factor_adjusted: bool
    configured_growth_factor: float
    total_weight: float = 0.0
    atr_percent: float = 0.0
    side: Side = Side.LONG
    entry_price: float = 0.0

    def level(self, k: int) -> Optional[DCALevel]:
        """Level with index ``k`` (1-based), or None when the schedule does not reach it."""
        if 1 <= k <= len(self.levels):
            found = self.levels[k - 1]
            if found.level == k:
                return found
        for lvl in self.levels:
            if lvl.level == k:
                return lvl
        return None

    @property
    def total_quantity(self) -> float:
        return sum(lvl.quantity for lvl in self.levels)

    # ---------- persistence ----------
    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["side"] = self.side.value
        data["levels"] = [asdict(lvl) for lvl in self.levels]
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> 'DCASchedule':
        payload = dict(data)
        payload["levels"] = tuple(DCALevel(**lvl) for lvl in payload.get("levels", []))
        payload["side"] = Side.parse(payload.get("side", Side.LONG))
        return DCASchedule(**payload)

    @staticmethod
    def from_json(raw: str) -> 'DCASchedule':
        return DCASchedule.from_dict(json.loads(raw))

    @staticmethod
    def parse(value: Union[None, str, Dict[str, Any], 'DCASchedule']) -> Optional['DCASchedule']:
        """
        Accept whatever the position store hands back (schedule, dict, JSON text or None).
        Unparsable input yields None so callers fall through to the next schedule source.
        """
        if value is None or isinstance(value, DCASchedule):
            return value
        try:
            if isinstance(value, str):
                return DCASchedule.from_json(value)
            if isinstance(value, dict):
                return DCASchedule.from_dict(value)
        except (ValueError, TypeError, KeyError) as e:
            logger.warning(f"Failed to parse stored DCA schedule: {e}")
            return None
        logger.warning(f"Unsupported stored DCA schedule type: {type(value).__name__}")
        return None


@dataclass(slots=True)
class OpenPosition:
    id: str
    symbol: str
    side: Side
    avg_entry_price: float
    total_quantity: float
    layers_filled: int
    initial_entry_price: Optional[float] = None
    dca_schedule: Union[None, str, Dict[str, Any], DCASchedule] = None
    dca_base_size: Optional[float] = None
    reserved_risk_dollars: Optional[float] = None
    last_layer_price: Optional[float] = None

    @property
    def anchor_price(self) -> float:
        """P0 for all layer math: the original entry, falling back to the average entry."""
        if self.initial_entry_price:
            return float(self.initial_entry_price)
        return float(self.avg_entry_price)
