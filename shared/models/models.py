"""核心数据结构：Tick/OrderBook/Candle/外部推送（仓位、订单）。

所有来自 feed 的弱类型 JSON 都在网关边界解析成这里的强类型对象，
策略核心只接触这些类型。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Tuple, Union


class Side(str, Enum):
    """下单方向。"""

    BUY = "BUY"
    SELL = "SELL"


class PositionSide(str, Enum):
    """逻辑持仓方向。"""

    FLAT = "FLAT"
    LONG = "LONG"
    SHORT = "SHORT"


class OrderStatus(str, Enum):
    NEW = "NEW"
    PARTIALLY_FILLED = "PARTIALLY_FILLED"
    FILLED = "FILLED"
    REJECTED = "REJECTED"
    CANCELED = "CANCELED"
    EXPIRED = "EXPIRED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {OrderStatus.FILLED, OrderStatus.REJECTED, OrderStatus.CANCELED, OrderStatus.EXPIRED}
)


@dataclass(frozen=True)
class OrderBookLevel:
    """单档深度 (price, quantity)。"""

    price: float
    quantity: float


@dataclass(frozen=True)
class OrderBookSnapshot:
    """订单簿快照。

    bids 按价格从高到低、asks 从低到高（由 feed 保证），
    因此 bids[0]/asks[0] 即最优买/卖价。
    """

    symbol: str
    bids: Tuple[OrderBookLevel, ...] = ()
    asks: Tuple[OrderBookLevel, ...] = ()

    @property
    def best_bid(self) -> OrderBookLevel | None:
        return self.bids[0] if self.bids else None

    @property
    def best_ask(self) -> OrderBookLevel | None:
        return self.asks[0] if self.asks else None

    @property
    def mid(self) -> float | None:
        bid, ask = self.best_bid, self.best_ask
        if bid is None or ask is None:
            return None
        return (bid.price + ask.price) / 2


@dataclass(frozen=True)
class Tick:
    """行情 Tick（毫秒时间戳 + 中间价 + 当时的订单簿）。"""

    ts: int
    price: float
    order_book: OrderBookSnapshot


@dataclass
class Candle:
    """K 线。[start, end) 左闭右开；未封口前可变。"""

    start: int
    end: int
    open: float
    high: float
    low: float
    close: float
    order_book: OrderBookSnapshot


@dataclass(frozen=True)
class ExternalPositionUpdate:
    """账户推送的权威仓位快照。net_qty 正=多，负=空，0=平。"""

    symbol: str
    net_qty: float
    avg_entry_price: float | None = None
    ts: int | None = None

    @property
    def side(self) -> PositionSide:
        if self.net_qty > 0:
            return PositionSide.LONG
        if self.net_qty < 0:
            return PositionSide.SHORT
        return PositionSide.FLAT


@dataclass(frozen=True)
class ExternalOrderUpdate:
    """账户推送的订单状态更新。"""

    client_order_id: str
    symbol: str
    side: Side
    status: OrderStatus
    quantity: float | None = None
    order_id: str | None = None
    exec_id: str | None = None
    fill_price: float | None = None
    filled_qty: float | None = None
    price: float | None = None
    cum_qty: float | None = None
    avg_fill_price: float | None = None
    reason: str | None = None
    ts: int | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


@dataclass(frozen=True)
class TickEvent:
    tick: Tick


@dataclass(frozen=True)
class PositionEvent:
    update: ExternalPositionUpdate


@dataclass(frozen=True)
class OrderEvent:
    update: ExternalOrderUpdate


# 单个 symbol 的有序队列里只会出现这三种事件
RunnerEvent = Union[TickEvent, PositionEvent, OrderEvent]


@dataclass(frozen=True)
class OrderResult:
    """下单结果（执行器返回）。"""

    symbol: str
    side: Side
    quantity: str
    price: float
    reason: str
    client_order_id: str
    order_id: str | None = None
    raw: dict = field(default_factory=dict)
