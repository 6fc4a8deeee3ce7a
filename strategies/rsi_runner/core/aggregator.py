from __future__ import annotations

from typing import Callable, Optional

from shared.models.models import Candle, Tick


class CandleAggregator:
    """
    K 线聚合器 (Tick -> Candle)

    按固定宽度的时间桶聚合 Tick：
    1. 每个桶 [start, start + interval) 维护一根可变 K 线
    2. 第一个落在桶外 (ts >= end) 的 Tick 到来时，旧 K 线封口并同步回调
    3. K 线携带桶内最后一次观察到的订单簿快照
    """

    def __init__(self, interval_ms: int, on_close: Callable[[Candle], None]):
        if int(interval_ms) <= 0:
            raise ValueError("interval_ms must be > 0")
        self.interval_ms = int(interval_ms)
        self.on_close = on_close
        self.current: Optional[Candle] = None

    def ingest(self, tick: Tick) -> None:
        bucket_start = (int(tick.ts) // self.interval_ms) * self.interval_ms
        cur = self.current

        if cur is None or tick.ts >= cur.end:
            if cur is not None:
                self.on_close(cur)
            self.current = Candle(
                start=bucket_start,
                end=bucket_start + self.interval_ms,
                open=tick.price,
                high=tick.price,
                low=tick.price,
                close=tick.price,
                order_book=tick.order_book,
            )
            return

        cur.high = max(cur.high, tick.price)
        cur.low = min(cur.low, tick.price)
        cur.close = tick.price
        cur.order_book = tick.order_book

    def flush(self) -> Optional[Candle]:
        """封口并回调当前 K 线（停机时调用），返回被封口的 K 线。"""
        cur = self.current
        if cur is None:
            return None
        self.current = None
        self.on_close(cur)
        return cur
