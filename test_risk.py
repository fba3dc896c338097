import pytest

from dca_engine.contracts import MarketSnapshot, OpenPosition, Side
from dca_engine.exceptions import ConfigurationError
from dca_engine.next_layer import NextLayer
from dca_engine.ports import MinNotionalSource, PositionStore, VolatilitySource
from dca_engine.risk import (
    PortfolioRisk,
    layer_fits_reserved_budget,
    recalculate_reserved_risk,
    summarize_portfolio_risk,
)
from dca_engine.rules.sizing import weight_sum
from dca_engine.schedule import calculate_schedule


class StubVolatility:
    def __init__(self, values, failing=()):
        self.values = values
        self.failing = set(failing)

    def atr_percent(self, symbol):
        if symbol in self.failing:
            raise ConnectionError(f"kline fetch timed out for {symbol}")
        return self.values.get(symbol)


class StubMinNotional:
    def min_notional(self, symbol):
        return 5.0


class RecordingStore:
    def __init__(self):
        self.updates = {}

    def update_reserved_risk(self, position_id, dollars, percent):
        self.updates[position_id] = (dollars, percent)


def create_position(position_id, symbol, side=Side.LONG, avg=100.0, qty=0.2, **overrides):
    values = dict(
        id=position_id,
        symbol=symbol,
        side=side,
        avg_entry_price=avg,
        total_quantity=qty,
        layers_filled=1,
        initial_entry_price=avg,
    )
    values.update(overrides)
    return OpenPosition(**values)


def test_stubs_satisfy_ports():
    assert isinstance(StubVolatility({}), VolatilitySource)
    assert isinstance(StubMinNotional(), MinNotionalSource)
    assert isinstance(RecordingStore(), PositionStore)


# ---------- reserved risk aggregation ----------

def test_one_failing_position_does_not_stop_the_batch(make_params):
    params = make_params()
    positions = [
        create_position("p1", "BTCUSDT", avg=100.0),
        create_position("p2", "ETHUSDT", avg=50.0),
        create_position("p3", "SOLUSDT", side=Side.SHORT, avg=20.0),
    ]
    store = RecordingStore()
    volatility = StubVolatility({"BTCUSDT": 1.0, "SOLUSDT": 2.0}, failing={"ETHUSDT"})

    report = recalculate_reserved_risk(params, positions, 10_000.0, volatility, StubMinNotional(), store)

    assert [u.position_id for u in report.updates] == ["p1", "p3"]
    assert len(report.failures) == 1
    assert report.failures[0].symbol == "ETHUSDT"
    assert "timed out" in report.failures[0].error
    assert set(store.updates) == {"p1", "p3"}

    expected = calculate_schedule(params, MarketSnapshot(100.0, Side.LONG, 10_000.0, 1.0, 5.0))
    dollars, percent = store.updates["p1"]
    assert dollars == pytest.approx(expected.total_risk_dollars)
    assert percent == pytest.approx(expected.total_risk_dollars / 10_000.0 * 100.0)
    assert report.total_dollars == pytest.approx(sum(d for d, _ in store.updates.values()))
    assert report.total_percent == pytest.approx(sum(p for _, p in store.updates.values()))


def test_store_failure_is_reported(make_params):
    class BrokenStore:
        def update_reserved_risk(self, position_id, dollars, percent):
            raise RuntimeError("database is locked")

    report = recalculate_reserved_risk(
        make_params(), [create_position("p1", "BTCUSDT")], 10_000.0,
        StubVolatility({"BTCUSDT": 1.0}), StubMinNotional(), BrokenStore(),
    )
    assert not report.updates
    assert report.failures[0].error == "database is locked"


def test_reserved_risk_needs_positive_balance(make_params):
    with pytest.raises(ConfigurationError):
        recalculate_reserved_risk(make_params(), [], 0.0, StubVolatility({}), StubMinNotional(), RecordingStore())


# ---------- per-layer budget ----------

def create_layer(price=99.0, quantity=0.36, stop=97.02):
    return NextLayer(level=2, price=price, quantity=quantity, take_profit_price=price * 1.006, stop_loss_price=stop)


@pytest.mark.parametrize("reserved,expected", [
    (None, True),
    (1.2, True),
    (1.105, True),   # within 1% slack of 1.1128
    (1.0, False),
])
def test_layer_against_reserved_budget(reserved, expected):
    # filled: 100 * 2% * 0.2 = 0.4, layer: (99 - 97.02) * 0.36 = 0.7128
    position = create_position("p1", "BTCUSDT", reserved_risk_dollars=reserved)
    assert layer_fits_reserved_budget(position, create_layer(), stop_loss_percent=2.0) is expected


def test_budget_without_slack():
    position = create_position("p1", "BTCUSDT", reserved_risk_dollars=1.105)
    assert not layer_fits_reserved_budget(position, create_layer(), stop_loss_percent=2.0, tolerance=0.0)


def test_invalid_layer_risk_is_rejected():
    position = create_position("p1", "BTCUSDT", reserved_risk_dollars=1.0)
    with pytest.raises(ValueError):
        layer_fits_reserved_budget(position, create_layer(stop=101.0), stop_loss_percent=2.0)


# ---------- portfolio summary ----------

def test_portfolio_risk_counts_hedges_and_duplicates(make_params, make_snapshot):
    eth_schedule = calculate_schedule(make_params(), make_snapshot(entry_price=50.0))
    positions = [
        create_position("btc-long", "BTCUSDT", avg=100.0, qty=1.0, reserved_risk_dollars=10.0),
        create_position("btc-short", "BTCUSDT", side=Side.SHORT, avg=100.0, qty=0.5),
        create_position("eth-stale", "ETHUSDT", avg=50.0, qty=2.0),
        create_position("eth", "ETHUSDT", avg=50.0, qty=4.0, dca_schedule=eth_schedule.to_dict()),
    ]

    summary = summarize_portfolio_risk(positions, balance=1000.0, stop_loss_percent=2.0)

    eth_reserved = 50.0 * 0.02 * 0.4 * weight_sum(1.8, 5)
    assert summary.open_position_count == 2
    assert summary.hedged_symbol_count == 1
    assert summary.duplicate_records == 1
    assert summary.filled_risk == pytest.approx(2.0 + 1.0 + 4.0)
    assert summary.reserved_risk == pytest.approx(10.0 + 1.0 + eth_reserved)
    assert summary.filled_risk_percent == pytest.approx(0.7)
    assert summary.reserved_risk_percent == pytest.approx((11.0 + eth_reserved) / 10.0)


def test_portfolio_risk_without_balance():
    positions = [create_position("p1", "BTCUSDT", qty=1.0)]
    summary = summarize_portfolio_risk(positions, balance=0.0, stop_loss_percent=2.0)
    assert summary.filled_risk == pytest.approx(2.0)
    assert summary.filled_risk_percent == 0.0
    assert summary.reserved_risk_percent == 0.0


def test_empty_portfolio():
    assert summarize_portfolio_risk([], balance=1000.0, stop_loss_percent=2.0) == PortfolioRisk()
