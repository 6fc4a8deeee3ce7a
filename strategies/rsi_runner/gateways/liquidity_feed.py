from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Callable, Dict, List, Optional

import websockets
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from shared.models.models import OrderBookLevel, OrderBookSnapshot, Tick

logger = logging.getLogger(__name__)


class RawLevel(BaseModel):
    """{"p": price, "q": quantity, "dp": display price}"""

    model_config = ConfigDict(extra="ignore")

    price: float = Field(alias="p")
    quantity: float = Field(default=0.0, alias="q")
    display_price: Optional[str] = Field(default=None, alias="dp")


class RawBookFrame(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    symbol: Optional[str] = Field(default=None, alias="s")
    status: Optional[str] = None
    bids: List[RawLevel] = Field(default_factory=list)
    asks: List[RawLevel] = Field(default_factory=list)


def parse_order_book(raw: str | bytes | Dict, symbol: str) -> Optional[OrderBookSnapshot]:
    """
    解析一条流动性推送

    返回 None 的情况（直接丢弃）:
    - 非 JSON / 结构不合法
    - 缺 bids 或 asks（订阅确认等控制帧）
    - symbol 与订阅的不一致（大小写不敏感）
    """
    try:
        data = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
        frame = RawBookFrame.model_validate(data)
    except (ValueError, ValidationError) as e:
        logger.debug(f"liquidity frame dropped: {e}")
        return None

    if frame.status:
        logger.info(f"📡 {symbol} liquidity status: {frame.status}")
    if not frame.bids or not frame.asks:
        return None
    if (frame.symbol or "").upper() != symbol.upper():
        return None

    return OrderBookSnapshot(
        symbol=symbol.upper(),
        bids=tuple(OrderBookLevel(lv.price, lv.quantity) for lv in frame.bids),
        asks=tuple(OrderBookLevel(lv.price, lv.quantity) for lv in frame.asks),
    )


def book_to_tick(book: OrderBookSnapshot, ts_ms: int) -> Tick:
    return Tick(ts=ts_ms, price=book.mid, order_book=book)


class LiquidityFeed:
    """
    流动性 WebSocket 行情源

    每个 symbol 一条连接：
    1. 连接后发送 {"symbol": ..., "unsubscribe": 0} 订阅
    2. 每条订单簿推送 -> Tick(ts=本地毫秒时间, price=mid)
    3. 断线后等待 reconnect_backoff_s 重连，直到 stop() 被调用
    """

    def __init__(
        self,
        url: str,
        reconnect_backoff_s: float = 1.0,
        clock: Callable[[], int] = lambda: int(time.time() * 1000),
    ):
        self.url = url
        self.reconnect_backoff_s = reconnect_backoff_s
        self.clock = clock
        self._tasks: Dict[str, asyncio.Task] = {}

    def start(self, symbol: str, interval_ms: int, on_tick: Callable[[Tick], None]) -> Callable[[], None]:
        """开始推送，返回 stop 回调。必须在运行中的事件循环里调用。"""
        key = symbol.upper()
        old = self._tasks.pop(key, None)
        if old is not None:
            old.cancel()

        task = asyncio.get_running_loop().create_task(self._run(key, interval_ms, on_tick))
        self._tasks[key] = task

        def stop() -> None:
            if self._tasks.get(key) is task:
                del self._tasks[key]
            task.cancel()

        return stop

    async def _run(self, symbol: str, interval_ms: int, on_tick: Callable[[Tick], None]):
        while True:
            try:
                async with websockets.connect(self.url) as ws:
                    await ws.send(json.dumps({"symbol": symbol, "unsubscribe": 0}))
                    logger.info(f"✅ Liquidity feed connected: {symbol} (candle={interval_ms}ms)")

                    async for raw in ws:
                        book = parse_order_book(raw, symbol)
                        if book is None or book.mid is None:
                            continue
                        on_tick(book_to_tick(book, self.clock()))

                logger.warning(f"⚠️ Liquidity feed closed: {symbol}")
            except asyncio.CancelledError:
                logger.info(f"🛑 Liquidity feed stopped: {symbol}")
                raise
            except Exception as e:
                logger.error(f"❌ Liquidity feed error ({symbol}): {e}")

            await asyncio.sleep(self.reconnect_backoff_s)
            logger.info(f"🔄 Liquidity feed reconnecting: {symbol}")

    async def close(self):
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for t in tasks:
            t.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
