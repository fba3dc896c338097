import pytest

from dca_engine.contracts import OpenPosition, Side
from dca_engine.next_layer import (
    Cached,
    LayerStatus,
    LegacyBase,
    NextLayer,
    Recompute,
    is_price_progressing,
    layer_risk_dollars,
    resolve_next_layer,
    select_schedule_source,
)
from dca_engine.schedule import calculate_schedule


def create_position(**overrides):
    values = dict(
        id="pos-1",
        symbol="BTCUSDT",
        side=Side.LONG,
        avg_entry_price=99.8,
        total_quantity=0.56,
        layers_filled=1,
        initial_entry_price=100.0,
    )
    values.update(overrides)
    return OpenPosition(**values)


class RecordingTracer:
    def __init__(self):
        self.events = []

    def event(self, name, payload):
        self.events.append((name, dict(payload)))

    def schedule(self, schedule):
        pass


# ---------- source precedence ----------

def test_stored_schedule_wins(make_params, make_snapshot):
    schedule = calculate_schedule(make_params(), make_snapshot())
    position = create_position(dca_schedule=schedule.to_json(), dca_base_size=0.2)
    source = select_schedule_source(position)
    assert isinstance(source, Cached)
    assert source.schedule == schedule


def test_short_schedule_falls_back_to_base_size(make_params, make_snapshot):
    schedule = calculate_schedule(make_params(max_layers=2), make_snapshot())
    position = create_position(layers_filled=2, dca_schedule=schedule, dca_base_size=0.2)
    assert select_schedule_source(position) == LegacyBase(0.2)


def test_corrupt_schedule_falls_back_to_base_size():
    position = create_position(dca_schedule="{broken", dca_base_size=0.2)
    assert select_schedule_source(position) == LegacyBase(0.2)


@pytest.mark.parametrize("base_size", [None, 0.0])
def test_nothing_stored_means_recompute(base_size):
    position = create_position(dca_base_size=base_size)
    assert isinstance(select_schedule_source(position), Recompute)


@pytest.mark.parametrize("base_size", ["n/a", float("nan"), float("inf"), -0.2, [0.2]])
def test_unusable_base_size_means_recompute(base_size):
    position = create_position(dca_base_size=base_size)
    assert isinstance(select_schedule_source(position), Recompute)


def test_unusable_base_size_still_resolves_by_recompute(make_params, make_snapshot):
    params = make_params()
    position = create_position(dca_base_size="n/a")
    lookup = resolve_next_layer(params, position, make_snapshot())

    expected = calculate_schedule(params, make_snapshot()).level(2)
    assert lookup.ready
    assert isinstance(lookup.source, Recompute)
    assert lookup.layer == NextLayer.from_level(expected)


def test_explicit_level_is_checked_against_schedule(make_params, make_snapshot):
    schedule = calculate_schedule(make_params(max_layers=3), make_snapshot())
    position = create_position(dca_schedule=schedule)
    assert isinstance(select_schedule_source(position, level=3), Cached)
    assert isinstance(select_schedule_source(position, level=4), Recompute)


# ---------- resolution ----------

def test_cached_layer_is_replayed_verbatim(make_params, make_snapshot):
    params = make_params()
    schedule = calculate_schedule(params, make_snapshot())
    position = create_position(dca_schedule=schedule.to_json())

    # balance and volatility drifted a lot since entry
    drifted = make_snapshot(current_balance=1_000_000.0, atr_percent=5.0)
    lookup = resolve_next_layer(params, position, drifted)

    assert lookup.ready
    assert isinstance(lookup.source, Cached)
    assert lookup.layer == NextLayer.from_level(schedule.level(2))


def test_legacy_layer_uses_configured_growth(make_params, make_snapshot):
    params = make_params()
    position = create_position(layers_filled=2, dca_base_size=0.2)
    lookup = resolve_next_layer(params, position, make_snapshot())

    assert lookup.status is LayerStatus.READY
    assert isinstance(lookup.source, LegacyBase)
    layer = lookup.layer
    expected_price = 100.0 * (1 - 0.4 * 3 ** 1.2 / 100)
    assert layer.level == 3
    assert layer.price == pytest.approx(expected_price)
    assert layer.quantity == pytest.approx(0.2 * 1.8 ** 2)
    assert layer.take_profit_price == pytest.approx(expected_price * 1.006)
    assert layer.stop_loss_price == pytest.approx(expected_price * 0.98)


def test_legacy_layer_anchors_on_average_entry_without_initial(make_params, make_snapshot):
    position = create_position(initial_entry_price=None, avg_entry_price=50.0, dca_base_size=1.0)
    lookup = resolve_next_layer(make_params(), position, make_snapshot())
    assert lookup.layer.price == pytest.approx(50.0 * (1 - 0.4 * 2 ** 1.2 / 100))


def test_recompute_anchors_on_original_entry(make_params, make_snapshot):
    params = make_params()
    position = create_position(avg_entry_price=99.0)
    # the snapshot's entry price is ignored in favour of the position's
    lookup = resolve_next_layer(params, position, make_snapshot(entry_price=50.0))

    expected = calculate_schedule(params, make_snapshot(entry_price=100.0)).level(2)
    assert lookup.ready
    assert isinstance(lookup.source, Recompute)
    assert lookup.layer == NextLayer.from_level(expected)


def test_recompute_failure_skips_layer(make_params, make_snapshot):
    position = create_position(initial_entry_price=None, avg_entry_price=0.0)
    lookup = resolve_next_layer(make_params(), position, make_snapshot())
    assert lookup.status is LayerStatus.UNAVAILABLE
    assert lookup.layer is None
    assert not lookup.ready
    assert lookup.reason


def test_legacy_failure_skips_layer(make_params, make_snapshot):
    position = create_position(initial_entry_price=None, avg_entry_price=0.0, dca_base_size=0.2)
    lookup = resolve_next_layer(make_params(), position, make_snapshot())
    assert lookup.status is LayerStatus.UNAVAILABLE
    assert isinstance(lookup.source, LegacyBase)


@pytest.mark.parametrize("overrides", [
    dict(current_balance=None),
    dict(min_notional=None),
    dict(min_notional="5"),
])
def test_bad_market_inputs_skip_recomputed_layer(make_params, make_snapshot, overrides):
    lookup = resolve_next_layer(make_params(), create_position(), make_snapshot(**overrides))
    assert lookup.status is LayerStatus.UNAVAILABLE
    assert isinstance(lookup.source, Recompute)
    assert lookup.layer is None


def test_bad_stored_side_skips_layer(make_params, make_snapshot):
    for base_size in (None, 0.2):
        position = create_position(side="sideways", dca_base_size=base_size)
        lookup = resolve_next_layer(make_params(), position, make_snapshot())
        assert lookup.status is LayerStatus.UNAVAILABLE
        assert "Invalid side" in lookup.reason


def test_ladder_through_zero_skips_legacy_layer(make_params, make_snapshot):
    # layer 5 of 10 * 5^2 = 250% would price a long below zero
    params = make_params(start_step_percent=10.0, spacing_convexity=2.0)
    position = create_position(layers_filled=4, dca_base_size=0.2)
    lookup = resolve_next_layer(params, position, make_snapshot())
    assert lookup.status is LayerStatus.UNAVAILABLE
    assert isinstance(lookup.source, LegacyBase)


def test_terminal_layer_is_exhausted_not_an_error(make_params, make_snapshot):
    position = create_position(layers_filled=5, dca_base_size=0.2)
    lookup = resolve_next_layer(make_params(), position, make_snapshot())
    assert lookup.status is LayerStatus.EXHAUSTED
    assert lookup.layer is None
    assert "Max layers" in lookup.reason


def test_source_is_traced(make_params, make_snapshot):
    tracer = RecordingTracer()
    resolve_next_layer(make_params(), create_position(dca_base_size=0.2), make_snapshot(), tracer=tracer)
    name, payload = tracer.events[0]
    assert name == "next_layer_source"
    assert payload["source"] == "LegacyBase"
    assert payload["level"] == 2


# ---------- guards ----------

@pytest.mark.parametrize("side,price,last,expected", [
    (Side.LONG, 99.0, 100.0, True),
    (Side.LONG, 100.0, 100.0, False),
    (Side.LONG, 101.0, 100.0, False),
    (Side.SHORT, 101.0, 100.0, True),
    (Side.SHORT, 99.0, 100.0, False),
    ("long", 99.0, None, True),
])
def test_price_progression(side, price, last, expected):
    assert is_price_progressing(side, price, last) is expected


def test_layer_risk_dollars():
    assert layer_risk_dollars(Side.LONG, 99.0, 2.0, 97.0) == pytest.approx(4.0)
    assert layer_risk_dollars(Side.SHORT, 101.0, 2.0, 103.0) == pytest.approx(4.0)
