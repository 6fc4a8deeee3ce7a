"""订单幂等 ID（client_order_id）生成。

要求：
- 同一交易意图（symbol/side/K 线/周期内序号）可重建（deterministic）。
- 长度可控，适配交易所 client id 字段限制（用 hash 缩短）。
"""

from __future__ import annotations

import hashlib


def make_client_order_id(
    *,
    strategy_id: str,
    symbol: str,
    side: str,
    candle_end_ms: int,
    cycle_slot: int,
    reason: str | None = None,
) -> str:
    raw = "|".join(
        [
            str(strategy_id),
            str(symbol),
            str(side),
            str(int(candle_end_ms)),
            str(int(cycle_slot)),
            str(reason or ""),
        ]
    )
    digest = hashlib.sha256(raw.encode("utf-8")).hexdigest()[:24]
    return f"rsi_{digest}"
