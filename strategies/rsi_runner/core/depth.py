"""按深度定量：USD 名义金额 -> 数量，以及订单簿单档覆盖检查。"""

from __future__ import annotations

from typing import Optional

from shared.models.models import OrderBookSnapshot, Side
from shared.utils.precision import format_scaled, to_decimal
from strategies.rsi_runner.core.errors import InvalidSizing


def quantity_for_notional(notional_usd: float, price: float, quantity_scale: int) -> str:
    """
    名义金额换算下单数量

    raw = notional / price，按 quantity_scale 位小数向下截断（绝不向上取整），
    并格式化为恰好 quantity_scale 位小数的字符串。

    Raises:
        InvalidSizing: notional_usd <= 0 或 price <= 0
    """
    if notional_usd is None or notional_usd <= 0:
        raise InvalidSizing(f"notional_usd must be > 0 (got {notional_usd})")
    if price is None or price <= 0:
        raise InvalidSizing(f"price must be > 0 (got {price})")
    raw = to_decimal(notional_usd) / to_decimal(price)
    return format_scaled(raw, quantity_scale)


def matching_level(order_book: OrderBookSnapshot, quantity: float, side: Side) -> Optional[float]:
    """
    找到能单档吃下 `quantity` 的第一个价位

    BUY 扫 asks，SELL 扫 bids；不跨档累加。
    返回 None 表示深度不足（调用方跳过本次，不重试）。
    """
    levels = order_book.asks if side == Side.BUY else order_book.bids
    qty = float(quantity)
    for level in levels:
        if level.quantity >= qty:
            return level.price
    return None
