"""Tick CSV 回放：把历史 Tick 逐条推给 runner（PaperExecutor，不联网）。"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List

import pandas as pd

from factors.rsi import RSIFactor
from strategies.rsi_runner.core.executor import PaperExecutor
from strategies.rsi_runner.runner import RSIRunner, RSIRunnerParams
from strategies.rsi_runner.sim.fakes import FakePriceFeed

logger = logging.getLogger(__name__)

TICK_COLUMNS = ["ts", "price", "bid", "bid_qty", "ask", "ask_qty"]


@dataclass
class ReplayReport:
    symbol: str
    ticks: int
    candles: int
    submissions: int
    skipped_depth: int
    final_state: Dict = field(default_factory=dict)
    orders: List[Dict] = field(default_factory=list)
    candle_frame: pd.DataFrame | None = None


def load_ticks_csv(path: str | Path) -> pd.DataFrame:
    df = pd.read_csv(path)
    missing = [c for c in TICK_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"tick csv missing columns: {missing}")
    df = df[TICK_COLUMNS].dropna().copy()
    df["ts"] = df["ts"].astype("int64")
    return df.sort_values("ts", kind="stable").reset_index(drop=True)


def candles_from_ticks(ticks: pd.DataFrame, candle_ms: int, period: int) -> pd.DataFrame:
    """按与 CandleAggregator 相同的桶规则重采样，并附上 RSIFactor 列。"""
    bucket = (ticks["ts"] // candle_ms) * candle_ms
    grouped = ticks.groupby(bucket, sort=True)["price"]
    candles = pd.DataFrame(
        {
            "open": grouped.first(),
            "high": grouped.max(),
            "low": grouped.min(),
            "close": grouped.last(),
        }
    )
    candles.index.name = "start"
    candles = candles.reset_index()
    return RSIFactor(period=period).compute(candles)


async def replay_ticks(ticks: pd.DataFrame, params: RSIRunnerParams) -> ReplayReport:
    feed = FakePriceFeed()
    executor = PaperExecutor(history_size=None)
    runner = RSIRunner(feed, executor, params, strategy_id="replay")
    executor.publish = runner.post

    await runner.start()
    for row in ticks.itertuples(index=False):
        feed.emit_price(
            runner.symbol,
            int(row.ts),
            float(row.price),
            bids=[(float(row.bid), float(row.bid_qty))],
            asks=[(float(row.ask), float(row.ask_qty))],
        )
        await runner.drain()
    await runner.stop()

    logger.info(f"🎬 replayed {len(ticks)} ticks for {runner.symbol}")
    return ReplayReport(
        symbol=runner.symbol,
        ticks=len(ticks),
        candles=runner.stats["candles"],
        submissions=runner.stats["submissions"],
        skipped_depth=runner.stats["skipped_depth"],
        final_state=runner.status(),
        orders=[
            {"side": o.side.value, "quantity": o.quantity, "price": o.price, "reason": o.reason}
            for o in executor.order_history
        ],
        candle_frame=candles_from_ticks(ticks, params.candle_ms, params.period),
    )
