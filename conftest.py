import os
import tempfile

# Keep test runs from writing rotating logs into the package directory
os.environ.setdefault("DCA_ENGINE_LOG_DIR", tempfile.mkdtemp(prefix="dca_engine_logs_"))

import pytest

from dca_engine.contracts import MarketSnapshot, Side
from dca_engine.strategy_config import StrategyDCAParams


def _default_params(**overrides):
    values = dict(
        start_step_percent=0.4,
        spacing_convexity=1.2,
        size_growth=1.8,
        volatility_ref=1.0,
        max_layers=5,
        exit_cushion_multiplier=0.6,
        stop_loss_percent=2.0,
        margin_amount_percent=10.0,
        leverage=5,
    )
    values.update(overrides)
    return StrategyDCAParams(**values)


@pytest.fixture
def make_params():
    """Factory for strategy parameters matching the reference long scenario."""
    return _default_params


@pytest.fixture
def make_snapshot():
    def _make(**overrides):
        values = dict(
            entry_price=100.0,
            side=Side.LONG,
            current_balance=10_000.0,
            atr_percent=1.0,
            min_notional=5.0,
        )
        values.update(overrides)
        return MarketSnapshot(**values)
    return _make
