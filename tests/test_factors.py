from __future__ import annotations

import math

import numpy as np
import pandas as pd
import pytest

from factors.rsi import RSIFactor, wilder_rsi, wilder_rsi_series

REFERENCE_CLOSES = [
    44.0, 44.34, 44.09, 44.15, 43.61, 44.33, 44.83, 45.10,
    45.42, 45.84, 46.08, 45.89, 46.03, 45.61, 46.28,
]


def test_rsi_warmup_returns_none():
    assert wilder_rsi([], 14) is None
    assert wilder_rsi(REFERENCE_CLOSES[:14], 14) is None
    assert wilder_rsi(REFERENCE_CLOSES, 14) is not None


def test_rsi_reference_series_matches_wilder_seed():
    # 14 个差分：涨幅合计 3.68，跌幅合计 1.40
    expected = 100 - 100 / (1 + 3.68 / 1.40)
    value = wilder_rsi(REFERENCE_CLOSES, 14)
    assert value == pytest.approx(expected, abs=1e-6)
    assert value == pytest.approx(72.44, abs=0.01)


def test_rsi_applies_wilder_smoothing_after_seed():
    closes = REFERENCE_CLOSES + [46.0]
    avg_gain = 3.68 / 14
    avg_loss = 1.40 / 14
    avg_gain = (avg_gain * 13 + 0.0) / 14
    avg_loss = (avg_loss * 13 + 0.28) / 14
    expected = 100 - 100 / (1 + avg_gain / avg_loss)
    assert wilder_rsi(closes, 14) == pytest.approx(expected, abs=1e-6)


def test_rsi_all_gains_is_100_and_all_losses_is_0():
    assert wilder_rsi([1, 2, 3, 4, 5], 3) == 100.0
    assert wilder_rsi([5, 4, 3, 2, 1], 3) == 0.0


def test_rsi_flat_prices_is_100():
    assert wilder_rsi([10.0] * 20, 14) == 100.0


def test_rsi_bounded_on_noisy_series():
    rng = np.random.default_rng(7)
    closes = 100 + np.cumsum(rng.normal(0, 1, 300))
    series = wilder_rsi_series(closes, 14)
    assert np.isnan(series[:14]).all()
    valid = series[14:]
    assert ((valid >= 0) & (valid <= 100)).all()


def test_series_last_value_equals_scalar():
    closes = REFERENCE_CLOSES + [46.1, 45.9, 46.4]
    series = wilder_rsi_series(closes, 14)
    assert series[-1] == pytest.approx(wilder_rsi(closes, 14))
    assert series[14] == pytest.approx(wilder_rsi(REFERENCE_CLOSES, 14))


def test_rsi_invalid_period():
    with pytest.raises(ValueError):
        wilder_rsi_series([1, 2, 3], 0)
    with pytest.raises(ValueError):
        RSIFactor(period=0)


def test_rsi_factor_adds_column():
    df = pd.DataFrame({"close": REFERENCE_CLOSES})
    out = RSIFactor(period=14).compute(df)
    assert "rsi_14" in out.columns
    assert out["rsi_14"].isna().sum() == 14
    assert out["rsi_14"].iloc[-1] == pytest.approx(72.44, abs=0.01)


def test_rsi_factor_missing_column_raises():
    with pytest.raises(ValueError):
        RSIFactor(period=3).compute(pd.DataFrame({"price": [1, 2, 3, 4]}))


def test_rsi_factor_short_frame_is_all_nan():
    out = RSIFactor(period=14, out_col="rsi").compute(pd.DataFrame({"close": [1.0, 2.0]}))
    assert all(math.isnan(v) for v in out["rsi"])
