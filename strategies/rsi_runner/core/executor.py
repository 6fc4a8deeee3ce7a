from __future__ import annotations

import logging
from collections import deque
from typing import Callable, Dict, Optional

import requests

from shared.models.models import (
    ExternalOrderUpdate,
    ExternalPositionUpdate,
    OrderEvent,
    OrderResult,
    OrderStatus,
    PositionEvent,
    RunnerEvent,
    Side,
)
from shared.utils.precision import to_decimal
from strategies.rsi_runner.core.errors import SubmissionError
from strategies.rsi_runner.core.http import HttpService

logger = logging.getLogger(__name__)


class TradeExecutor:
    """
    实盘执行器 (Market Order Executor)

    1. 市价单 POST /order（requests 同步调用，run_in_executor 不阻塞事件循环）
    2. 任何失败（网络/HTTP/响应缺 clientOrderId）统一抛 SubmissionError
    3. 记录最近的下单历史和错误计数，summary() 供状态面板使用
    """

    def __init__(self, http: HttpService, payment_currency: str = "USD"):
        self.http = http
        self.payment_currency = payment_currency
        self.order_history = deque(maxlen=20)
        self.total_orders = 0
        self.error_count = 0

    async def buy(
        self,
        symbol: str,
        quantity: str,
        price: float,
        reason: str,
        *,
        client_order_id: Optional[str] = None,
    ) -> OrderResult:
        return await self._submit(Side.BUY, symbol, quantity, price, reason, client_order_id)

    async def sell(
        self,
        symbol: str,
        quantity: str,
        price: float,
        reason: str,
        *,
        client_order_id: Optional[str] = None,
    ) -> OrderResult:
        return await self._submit(Side.SELL, symbol, quantity, price, reason, client_order_id)

    def _build_body(self, side: Side, symbol: str, quantity: str, client_order_id: Optional[str]) -> Dict:
        body = {
            "liquidityOrder": 1,
            "symbol": symbol,
            "side": side.value,
            "type": "MARKET",
            "quantity": float(to_decimal(quantity)),
            "paymentCurrency": self.payment_currency,
            "timestamp": self.http.now_ms(),
        }
        if client_order_id:
            body["clientOrderId"] = client_order_id
        return body

    async def _submit(
        self,
        side: Side,
        symbol: str,
        quantity: str,
        price: float,
        reason: str,
        client_order_id: Optional[str],
    ) -> OrderResult:
        body = self._build_body(side, symbol, quantity, client_order_id)
        self.total_orders += 1
        try:
            data = await self.http.apost("/order", body)
        except (requests.RequestException, ValueError) as e:
            self.error_count += 1
            logger.error(f"❌ {side.value} {symbol} qty={quantity} failed: {e}")
            raise SubmissionError(f"{side.value} {symbol} failed: {e}") from e

        cid = data.get("clientOrderId") if isinstance(data, dict) else None
        if not cid:
            self.error_count += 1
            logger.error(f"❌ {side.value} {symbol}: response missing clientOrderId: {data}")
            raise SubmissionError(f"{side.value} {symbol}: response missing clientOrderId")

        order_id = data.get("orderId")
        result = OrderResult(
            symbol=symbol,
            side=side,
            quantity=quantity,
            price=price,
            reason=reason,
            client_order_id=str(cid),
            order_id=str(order_id) if order_id is not None else None,
            raw=data,
        )
        self.order_history.append(result)
        logger.info(f"🚀 {side.value} {symbol} qty={quantity} @~{price} cid={cid} • {reason}")
        return result

    def summary(self) -> Dict:
        last = self.order_history[-1] if self.order_history else None
        return {
            "mode": "real",
            "orders": self.total_orders,
            "errors": self.error_count,
            "last": f"{last.side.value} {last.symbol} {last.quantity}" if last else None,
        }


class PaperExecutor:
    """
    模拟执行器 (Paper Trading)

    不发任何请求。每笔下单立即按传入价成交，并通过 publish 回调
    推送一条 FILLED 订单更新 + 一条新的净仓位快照，
    走与实盘完全相同的事件通道（feed -> registry -> runner 队列）。
    """

    def __init__(
        self,
        publish: Optional[Callable[[RunnerEvent], None]] = None,
        history_size: Optional[int] = 20,
    ):
        self.publish = publish
        self.positions: Dict[str, float] = {}
        self.order_history = deque(maxlen=history_size)
        self.total_orders = 0

    async def buy(self, symbol: str, quantity: str, price: float, reason: str, *, client_order_id: Optional[str] = None) -> OrderResult:
        return self._fill(Side.BUY, symbol, quantity, price, reason, client_order_id)

    async def sell(self, symbol: str, quantity: str, price: float, reason: str, *, client_order_id: Optional[str] = None) -> OrderResult:
        return self._fill(Side.SELL, symbol, quantity, price, reason, client_order_id)

    def _fill(
        self,
        side: Side,
        symbol: str,
        quantity: str,
        price: float,
        reason: str,
        client_order_id: Optional[str],
    ) -> OrderResult:
        self.total_orders += 1
        cid = client_order_id or f"paper_{self.total_orders}"
        qty = float(to_decimal(quantity))
        key = symbol.upper()

        prev = to_decimal(self.positions.get(key, 0.0))
        delta = to_decimal(quantity) if side == Side.BUY else -to_decimal(quantity)
        net = float(prev + delta)
        self.positions[key] = net

        logger.info(f"🧪 [PAPER] {side.value} {symbol} qty={quantity} @ {price} • {reason}")
        result = OrderResult(
            symbol=symbol,
            side=side,
            quantity=quantity,
            price=price,
            reason=reason,
            client_order_id=cid,
            order_id=f"paper-{self.total_orders}",
        )
        self.order_history.append(result)

        if self.publish is not None:
            self.publish(OrderEvent(ExternalOrderUpdate(
                client_order_id=cid,
                symbol=key,
                side=side,
                status=OrderStatus.FILLED,
                quantity=qty,
                order_id=result.order_id,
                fill_price=price,
                filled_qty=qty,
                price=price,
                cum_qty=qty,
                avg_fill_price=price,
            )))
            self.publish(PositionEvent(ExternalPositionUpdate(
                symbol=key,
                net_qty=net,
                avg_entry_price=price if net != 0 else None,
            )))
        return result

    def summary(self) -> Dict:
        last = self.order_history[-1] if self.order_history else None
        return {
            "mode": "paper",
            "orders": self.total_orders,
            "errors": 0,
            "last": f"{last.side.value} {last.symbol} {last.quantity}" if last else None,
        }
