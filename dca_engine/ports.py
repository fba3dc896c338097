# ports.py
from __future__ import annotations
from typing import Any, Mapping, Optional, Protocol, runtime_checkable
from dca_engine.contracts import DCASchedule

@runtime_checkable
class VolatilitySource(Protocol):
    def atr_percent(self, symbol: str) -> Optional[float]: ...

@runtime_checkable
class MinNotionalSource(Protocol):
    def min_notional(self, symbol: str) -> float: ...

@runtime_checkable
class PositionStore(Protocol):
    def update_reserved_risk(self, position_id: str, dollars: float, percent: float) -> None: ...

@runtime_checkable
class ScheduleTracer(Protocol):
    def event(self, name: str, payload: Mapping[str, Any]) -> None: ...
    def schedule(self, schedule: DCASchedule) -> None: ...
