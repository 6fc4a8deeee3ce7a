"""订单/仓位推送的可读日志。"""

from __future__ import annotations

import logging
from typing import Optional

from shared.models.models import ExternalOrderUpdate, ExternalPositionUpdate, OrderStatus

logger = logging.getLogger("rsi-runner.trades")


def _fmt(value, digits: int = 6) -> str:
    if value is None:
        return "-"
    return f"{float(value):.{digits}f}".rstrip("0").rstrip(".")


def describe_order_update(u: ExternalOrderUpdate) -> str:
    head = f"{u.symbol} {u.side.value}"
    if u.status == OrderStatus.NEW:
        return f"🆕 ACCEPTED • {head} qty={_fmt(u.quantity)} cid={u.client_order_id}"
    if u.status == OrderStatus.PARTIALLY_FILLED:
        return (
            f"🧩 PARTIAL FILL • {head} +{_fmt(u.filled_qty)} @ {_fmt(u.fill_price)} "
            f"(cum={_fmt(u.cum_qty)}) cid={u.client_order_id}"
        )
    if u.status == OrderStatus.FILLED:
        avg = u.avg_fill_price if u.avg_fill_price is not None else u.fill_price
        return f"✅ FILLED • {head} qty={_fmt(u.cum_qty or u.quantity)} avg={_fmt(avg)} cid={u.client_order_id}"
    if u.status == OrderStatus.REJECTED:
        return f"⛔ REJECTED • {head} reason={u.reason or 'unknown'} cid={u.client_order_id}"
    return f"🚫 {u.status.value} • {head} cid={u.client_order_id}"


def log_order_update(u: ExternalOrderUpdate) -> None:
    msg = describe_order_update(u)
    if u.status == OrderStatus.REJECTED:
        logger.warning(msg)
    else:
        logger.info(msg)


def log_position(prev: Optional[ExternalPositionUpdate], cur: ExternalPositionUpdate) -> None:
    """首次推送记快照；之后只在净仓位变化时记录。"""
    if prev is None:
        logger.info(
            f"📦 POSITION SNAPSHOT • {cur.symbol} {cur.side.value} net={_fmt(cur.net_qty)} "
            f"avg={_fmt(cur.avg_entry_price)}"
        )
        return
    if float(prev.net_qty) == float(cur.net_qty):
        return
    logger.info(
        f"🔄 POSITION CHANGE • {cur.symbol} {_fmt(prev.net_qty)} -> {_fmt(cur.net_qty)} "
        f"({prev.side.value} -> {cur.side.value}) avg={_fmt(cur.avg_entry_price)}"
    )
