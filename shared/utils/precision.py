"""精度工具（用于 qty 的向下裁剪与定长格式化）。"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_FLOOR


def to_decimal(value: float | str | Decimal) -> Decimal:
    """float 先转 str 再转 Decimal，避免二进制噪声（0.1 -> 0.1000000000000000055...）。"""
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"Not a number: {value!r}") from exc


def floor_to_scale(value: float | str | Decimal, scale: int) -> Decimal:
    """把 value 向下裁剪到 `scale` 位小数（只舍不入）。"""
    s = int(scale)
    if s < 0:
        raise ValueError("scale must be >= 0")
    quantum = Decimal(1).scaleb(-s)
    return to_decimal(value).quantize(quantum, rounding=ROUND_FLOOR)


def format_scaled(value: float | str | Decimal, scale: int) -> str:
    """向下裁剪并格式化为恰好 `scale` 位小数的字符串，例如 0.0123 / 6 -> '0.012300'。"""
    d = floor_to_scale(value, scale)
    return f"{d:.{int(scale)}f}"
