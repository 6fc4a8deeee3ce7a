import asyncio
from pathlib import Path

import pandas as pd
import pytest

from strategies.rsi_runner.runner import RSIRunnerParams
from strategies.rsi_runner.sim.replay import candles_from_ticks, load_ticks_csv, replay_ticks


def _write_ticks(path: Path, closes):
    rows = []
    for i, c in enumerate(closes):
        # 每根 K 线两笔 Tick
        rows.append({"ts": i * 60_000, "price": c - 0.5, "bid": c - 0.6, "bid_qty": 5, "ask": c - 0.4, "ask_qty": 5})
        rows.append({"ts": i * 60_000 + 30_000, "price": c, "bid": c - 0.1, "bid_qty": 5, "ask": c + 0.1, "ask_qty": 5})
    pd.DataFrame(rows).to_csv(path, index=False)


def test_load_ticks_csv_validates_columns(tmp_path: Path):
    bad = tmp_path / "bad.csv"
    pd.DataFrame({"ts": [1], "price": [1.0]}).to_csv(bad, index=False)
    with pytest.raises(ValueError):
        load_ticks_csv(bad)


def test_candles_from_ticks_matches_bucket_rules(tmp_path: Path):
    path = tmp_path / "ticks.csv"
    _write_ticks(path, [100, 101, 102, 103])
    ticks = load_ticks_csv(path)
    candles = candles_from_ticks(ticks, 60_000, period=3)

    assert list(candles["start"]) == [0, 60_000, 120_000, 180_000]
    assert list(candles["close"]) == [100, 101, 102, 103]
    assert candles["rsi_3"].iloc[-1] == 100.0


def test_replay_runs_runner_with_paper_fills(tmp_path: Path):
    path = tmp_path / "ticks.csv"
    _write_ticks(path, [100, 101, 102, 103, 104, 103, 105, 106])
    ticks = load_ticks_csv(path)
    params = RSIRunnerParams(symbol="BTC", notional_usd=20.0, quantity_scale=6, candle_ms=60_000, period=3)

    report = asyncio.run(replay_ticks(ticks, params))

    assert report.ticks == 16
    assert report.candles == 8
    # 空仓起步：第一个名额空平仓，回中性后第二个名额开空
    assert report.submissions == 1
    assert report.orders[0]["side"] == "SELL"
    assert report.final_state["side"] == "SHORT"
    assert report.candle_frame["rsi_3"].iloc[-1] == pytest.approx(
        report.final_state["rsi"], abs=0.01
    )
