from __future__ import annotations

import asyncio
import json
import logging
from typing import Callable, Dict, List, Optional

import websockets
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from shared.models.models import ExternalOrderUpdate, ExternalPositionUpdate, OrderStatus, Side

logger = logging.getLogger(__name__)

QUOTE_ASSETS = frozenset({"USD", "USDC", "USDT"})
TRADED_EXEC_TYPES = frozenset({"B", "C", "F"})

# FIX OrdStatus
_ORD_STATUS = {
    "1": OrderStatus.PARTIALLY_FILLED,
    "2": OrderStatus.FILLED,
    "4": OrderStatus.CANCELED,
    "8": OrderStatus.REJECTED,
    "C": OrderStatus.EXPIRED,
}


class _Frame(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True, populate_by_name=True)


class RawOrderTrade(_Frame):
    symbol: str = Field(default="", alias="s")
    side: Optional[str] = Field(default=None, alias="S")
    client_order_id: str = Field(default="", alias="c")
    order_id: Optional[str] = Field(default=None, alias="i")
    ord_status: Optional[str] = Field(default=None, alias="X")
    exec_type: Optional[str] = Field(default=None, alias="x")
    exec_id: Optional[str] = Field(default=None, alias="t")
    cum_qty: Optional[float] = Field(default=None, alias="z")
    leaves_qty: Optional[float] = Field(default=None, alias="lv")
    quantity: Optional[float] = Field(default=None, alias="q")
    last_qty: Optional[float] = Field(default=None, alias="l")
    price: Optional[float] = Field(default=None, alias="p")
    last_price: Optional[float] = Field(default=None, alias="L")
    avg_price: Optional[float] = Field(default=None, alias="a")
    reason: Optional[str] = Field(default=None, alias="br")
    ts: Optional[int] = Field(default=None, alias="T")


class RawBalanceRow(_Frame):
    symbol: Optional[str] = Field(default=None, alias="s")
    asset: Optional[str] = Field(default=None, alias="a")
    position_amt: Optional[float] = Field(default=None, alias="pa")
    wallet_balance: Optional[float] = Field(default=None, alias="wb")
    avg_cost: Optional[float] = Field(default=None, alias="uacb")


class RawAccount(_Frame):
    balances: List[RawBalanceRow] = Field(default_factory=list, alias="B")
    positions: List[RawBalanceRow] = Field(default_factory=list, alias="P")


def normalize_symbol(raw: str) -> str:
    """'BTC/USD' -> 'BTC'"""
    return (raw or "").split("/")[0].strip().upper()


def map_side(raw: Optional[str]) -> Side:
    value = (raw or "").strip().upper()
    if value in ("SELL", "2"):
        return Side.SELL
    return Side.BUY


def map_order_status(o: RawOrderTrade) -> OrderStatus:
    status = _ORD_STATUS.get((o.ord_status or "").strip().upper())
    if status is not None:
        return status

    cum = o.cum_qty or 0.0
    leaves = o.leaves_qty or 0.0
    if (o.exec_type or "").upper() in TRADED_EXEC_TYPES and cum > 0:
        return OrderStatus.PARTIALLY_FILLED if leaves > 0 else OrderStatus.FILLED
    return OrderStatus.NEW


def parse_order_trade(payload: Dict) -> Optional[ExternalOrderUpdate]:
    """ORDER_TRADE_UPDATE 的 o 字段 -> ExternalOrderUpdate；无 symbol 的丢弃。"""
    try:
        o = RawOrderTrade.model_validate(payload)
    except ValidationError as e:
        logger.debug(f"order frame dropped: {e}")
        return None

    symbol = normalize_symbol(o.symbol)
    if not symbol:
        return None

    return ExternalOrderUpdate(
        client_order_id=o.client_order_id,
        symbol=symbol,
        side=map_side(o.side),
        status=map_order_status(o),
        quantity=o.quantity,
        order_id=o.order_id,
        exec_id=o.exec_id,
        fill_price=o.last_price,
        filled_qty=o.last_qty,
        price=o.price,
        cum_qty=o.cum_qty,
        avg_fill_price=o.avg_price,
        reason=o.reason,
        ts=o.ts,
    )


def parse_account_positions(payload: Dict, ts: Optional[int] = None) -> List[ExternalPositionUpdate]:
    """
    ACCOUNT_UPDATE 的 a 字段 -> 每个标的一条仓位快照

    B（余额）与 P（仓位）两类行合并处理；计价资产 (USD/USDC/USDT) 跳过。
    数量优先取 pa，其次 wb。
    """
    try:
        account = RawAccount.model_validate(payload or {})
    except ValidationError as e:
        logger.debug(f"account frame dropped: {e}")
        return []

    updates: List[ExternalPositionUpdate] = []
    for row in [*account.balances, *account.positions]:
        symbol = normalize_symbol(row.symbol or row.asset or "")
        if not symbol or symbol in QUOTE_ASSETS:
            continue
        if row.position_amt is not None:
            qty = row.position_amt
        elif row.wallet_balance is not None:
            qty = row.wallet_balance
        else:
            qty = 0.0
        updates.append(ExternalPositionUpdate(symbol=symbol, net_qty=qty, avg_entry_price=row.avg_cost, ts=ts))
    return updates


class ListenKeyFeed:
    """
    账户推送 (Listen-Key WebSocket)

    单条连接，按事件类型分发：
    - ACCOUNT_UPDATE      -> on_position(ExternalPositionUpdate)
    - ORDER_TRADE_UPDATE  -> on_order(ExternalOrderUpdate)
    断线后 reconnect_backoff_s 秒重连。
    """

    def __init__(
        self,
        url: str,
        api_key: str,
        channel: str = "LIQUIDITY",
        reconnect_backoff_s: float = 1.0,
    ):
        self.url = url
        self.api_key = api_key
        self.channel = channel
        self.reconnect_backoff_s = reconnect_backoff_s
        self.running = False

        self.on_position: Optional[Callable[[ExternalPositionUpdate], None]] = None
        self.on_order: Optional[Callable[[ExternalOrderUpdate], None]] = None

    def subscribe_message(self) -> str:
        return json.dumps({
            "account": "",
            "unsubscribe": 0,
            "requestToken": self.api_key,
            "channel": self.channel,
        })

    def handle_message(self, raw: str | bytes | Dict) -> int:
        """解析并分发一条推送，返回分发的更新条数。"""
        try:
            data = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
        except ValueError:
            logger.debug("listen-key frame is not JSON, dropped")
            return 0
        if not isinstance(data, dict):
            return 0

        event = data.get("e")
        ts = data.get("E") or data.get("T")
        count = 0

        if event == "ACCOUNT_UPDATE":
            for update in parse_account_positions(data.get("a") or {}, ts=ts):
                if self.on_position is not None:
                    self.on_position(update)
                count += 1
        elif event == "ORDER_TRADE_UPDATE":
            update = parse_order_trade(data.get("o") or {})
            if update is not None:
                if self.on_order is not None:
                    self.on_order(update)
                count += 1
        return count

    async def run(self):
        self.running = True
        while self.running:
            try:
                async with websockets.connect(self.url) as ws:
                    await ws.send(self.subscribe_message())
                    logger.info("✅ Listen-key feed connected")
                    async for raw in ws:
                        self.handle_message(raw)
                        if not self.running:
                            break
                if self.running:
                    logger.warning("⚠️ Listen-key feed closed")
            except asyncio.CancelledError:
                self.running = False
                raise
            except Exception as e:
                logger.error(f"❌ Listen-key feed error: {e}")

            if self.running:
                await asyncio.sleep(self.reconnect_backoff_s)
                logger.info("🔄 Listen-key feed reconnecting...")

    def stop(self):
        self.running = False
