"""周期字符串工具。"""

from __future__ import annotations

import re

_UNIT_MS = {
    "m": 60_000,
    "h": 3_600_000,
    "d": 86_400_000,
}

_TF_RE = re.compile(r"^\s*(\d+)\s*([a-zA-Z]+)\s*$")


def timeframe_to_ms(tf: str) -> int:
    """'1m' / '5m' / '1h' / '1d' -> 毫秒。

    Raises
    ------
    ValueError
        数值非正或单位不支持。
    """
    m = _TF_RE.match(str(tf))
    if not m:
        raise ValueError(f"Invalid timeframe: {tf}")
    n = int(m.group(1))
    unit = m.group(2).lower()
    if n <= 0:
        raise ValueError(f"Invalid timeframe: {tf}")
    if unit not in _UNIT_MS:
        raise ValueError(f"Unsupported timeframe unit in: {tf} (use 1m|5m|15m|1h|4h|1d)")
    return n * _UNIT_MS[unit]
