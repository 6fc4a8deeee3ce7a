from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from shared.models.models import OrderBookLevel, OrderBookSnapshot, OrderResult, RunnerEvent, Side, Tick
from strategies.rsi_runner.core.errors import SubmissionError
from strategies.rsi_runner.core.executor import PaperExecutor


class FakeClock:
    """毫秒时钟，只在 advance 时前进。"""

    def __init__(self, start_ms: Optional[int] = None):
        self._ms = int(time.time() * 1000 if start_ms is None else start_ms)

    def now(self) -> int:
        return self._ms

    def advance(self, ms: int) -> int:
        self._ms += int(ms)
        return self._ms


def make_book(
    symbol: str,
    *,
    bids: List[Tuple[float, float]],
    asks: List[Tuple[float, float]],
) -> OrderBookSnapshot:
    bids_sorted = sorted(((float(p), float(q)) for p, q in bids), key=lambda x: x[0], reverse=True)
    asks_sorted = sorted(((float(p), float(q)) for p, q in asks), key=lambda x: x[0])
    return OrderBookSnapshot(
        symbol=symbol.upper(),
        bids=tuple(OrderBookLevel(p, q) for p, q in bids_sorted),
        asks=tuple(OrderBookLevel(p, q) for p, q in asks_sorted),
    )


class FakePriceFeed:
    """脚本化行情：测试/仿真里手动 emit Tick。"""

    def __init__(self):
        self.subscribers: Dict[str, Callable[[Tick], None]] = {}
        self.intervals: Dict[str, int] = {}
        self.stopped: List[str] = []

    def start(self, symbol: str, interval_ms: int, on_tick: Callable[[Tick], None]) -> Callable[[], None]:
        key = symbol.upper()
        self.subscribers[key] = on_tick
        self.intervals[key] = int(interval_ms)

        def stop() -> None:
            if self.subscribers.pop(key, None) is not None:
                self.stopped.append(key)

        return stop

    def emit(self, tick: Tick) -> bool:
        on_tick = self.subscribers.get(tick.order_book.symbol.upper())
        if on_tick is None:
            return False
        on_tick(tick)
        return True

    def emit_price(
        self,
        symbol: str,
        ts_ms: int,
        price: float,
        *,
        bids: Optional[List[Tuple[float, float]]] = None,
        asks: Optional[List[Tuple[float, float]]] = None,
        depth_qty: float = 5.0,
    ) -> bool:
        book = make_book(
            symbol,
            bids=bids if bids is not None else [(price - 0.1, depth_qty)],
            asks=asks if asks is not None else [(price + 0.1, depth_qty)],
        )
        return self.emit(Tick(ts=int(ts_ms), price=float(price), order_book=book))


class FakeExecutor(PaperExecutor):
    """
    记录所有提交；可配置前 N 次失败。
    传入 publish 时按 PaperExecutor 的方式回推 FILLED + 仓位快照，
    不传则订单永远停留在 inflight。
    """

    def __init__(
        self,
        *,
        clock: Optional[FakeClock] = None,
        publish: Optional[Callable[[RunnerEvent], None]] = None,
        fail_times: int = 0,
    ):
        super().__init__(publish=publish)
        self.clock = clock or FakeClock()
        self.fail_times = int(fail_times)
        self.submissions: List[Dict] = []
        self.error_count = 0

    def _fill(
        self,
        side: Side,
        symbol: str,
        quantity: str,
        price: float,
        reason: str,
        client_order_id: Optional[str],
    ) -> OrderResult:
        record = {
            "ts": self.clock.now(),
            "symbol": symbol,
            "side": side.value,
            "quantity": quantity,
            "price": price,
            "reason": reason,
            "client_order_id": client_order_id,
        }
        if self.fail_times > 0:
            self.fail_times -= 1
            self.error_count += 1
            raise SubmissionError(f"simulated failure: {side.value} {symbol} qty={quantity}")
        self.submissions.append(record)
        return super()._fill(side, symbol, quantity, price, reason, client_order_id)


@dataclass(frozen=True)
class ScenarioStep:
    """一根 K 线：收盘价 + 可选订单簿 + 可选仓位快照（在该 K 线的 Tick 之前推送）。"""

    close: float
    bids: Optional[List[Tuple[float, float]]] = None
    asks: Optional[List[Tuple[float, float]]] = None
    position: Optional[float] = None
