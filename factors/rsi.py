"""RSI 因子（Wilder 平滑版本）。"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Sequence

import numpy as np
import pandas as pd

from shared.utils.logging import setup_logger

_LOGGER = setup_logger("factor-rsi")


def wilder_rsi_series(closes: Sequence[float], period: int = 14) -> np.ndarray:
    """逐根计算 Wilder RSI。

    第 i 个值等于 `wilder_rsi(closes[: i + 1], period)`；前 `period` 个为 NaN（预热）。

    算法：
    1. 用前 `period` 个差分的简单均值作为 avg_gain / avg_loss 种子；
    2. 之后每个差分做 Wilder 平滑 `avg = (avg * (period - 1) + cur) / period`；
    3. avg_loss == 0 时取 100（避免除零），否则 `100 - 100 / (1 + avg_gain / avg_loss)`。
    """
    if period <= 0:
        raise ValueError("RSI period must be > 0")
    prices = np.asarray(closes, dtype=float)
    out = np.full(prices.shape[0], np.nan)
    if prices.shape[0] < period + 1:
        return out

    deltas = np.diff(prices)
    gains = np.clip(deltas, 0.0, None)
    losses = np.clip(-deltas, 0.0, None)

    avg_gain = float(gains[:period].sum()) / period
    avg_loss = float(losses[:period].sum()) / period
    out[period] = _rsi_from_averages(avg_gain, avg_loss)

    for i in range(period, deltas.shape[0]):
        avg_gain = (avg_gain * (period - 1) + float(gains[i])) / period
        avg_loss = (avg_loss * (period - 1) + float(losses[i])) / period
        out[i + 1] = _rsi_from_averages(avg_gain, avg_loss)
    return out


def _rsi_from_averages(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100.0 - 100.0 / (1.0 + rs)


def wilder_rsi(closes: Sequence[float], period: int = 14) -> float | None:
    """对整段收盘价重新计算最新 RSI；不足 `period + 1` 根返回 None（预热中）。"""
    if len(closes) < period + 1:
        return None
    return float(wilder_rsi_series(closes, period)[-1])


@dataclass(frozen=True)
class RSIFactor:
    """相对强弱指数（RSI，Wilder 版本），输出与 runner 在线计算一致。"""

    period: int = 14
    price_col: str = "close"
    out_col: str | None = None
    name: str = "rsi"
    params: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.period <= 0:
            raise ValueError("RSI period must be > 0")
        object.__setattr__(
            self,
            "params",
            {
                "period": self.period,
                "price_col": self.price_col,
                "out_col": self.out_col,
            },
        )

    def compute(self, df: pd.DataFrame) -> pd.DataFrame:
        if self.price_col not in df.columns:
            raise ValueError(f"RSIFactor requires column: {self.price_col}")
        out = self.out_col or f"rsi_{self.period}"

        values = df[self.price_col].astype(float).to_numpy()
        if values.shape[0] < self.period + 1:
            _LOGGER.debug(f"RSIFactor: {values.shape[0]} rows < period+1, column is all NaN")
        df[out] = wilder_rsi_series(values, self.period)
        return df
