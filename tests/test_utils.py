from decimal import Decimal

import pytest

from shared.utils.client_order_id import make_client_order_id
from shared.utils.precision import floor_to_scale, format_scaled, to_decimal
from shared.utils.timeframe import timeframe_to_ms


def test_to_decimal_avoids_binary_noise():
    assert to_decimal(0.1) == Decimal("0.1")
    with pytest.raises(ValueError):
        to_decimal("abc")


def test_floor_to_scale_only_rounds_down():
    assert floor_to_scale(0.129999, 2) == Decimal("0.12")
    assert floor_to_scale("1.5", 0) == Decimal("1")
    with pytest.raises(ValueError):
        floor_to_scale(1, -1)


def test_format_scaled_fixed_digits():
    assert format_scaled(0.5, 6) == "0.500000"
    assert format_scaled(0.0000009, 6) == "0.000000"


@pytest.mark.parametrize(
    "tf,ms",
    [("1m", 60_000), ("5m", 300_000), ("15m", 900_000), ("1h", 3_600_000), ("4h", 14_400_000), ("1d", 86_400_000)],
)
def test_timeframe_to_ms(tf, ms):
    assert timeframe_to_ms(tf) == ms


@pytest.mark.parametrize("tf", ["0m", "1w", "abc", "", "-1h"])
def test_timeframe_invalid(tf):
    with pytest.raises(ValueError):
        timeframe_to_ms(tf)


def test_client_order_id_is_deterministic():
    kwargs = dict(strategy_id="rsi", symbol="BTC", side="SELL", candle_end_ms=60_000, cycle_slot=1, reason="x")
    a = make_client_order_id(**kwargs)
    b = make_client_order_id(**kwargs)
    assert a == b
    assert a.startswith("rsi_")
    assert len(a) == 4 + 24
    assert make_client_order_id(**{**kwargs, "cycle_slot": 2}) != a
