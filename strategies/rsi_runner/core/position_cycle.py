from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict

from shared.models.models import ExternalOrderUpdate, ExternalPositionUpdate, PositionSide


class Band(str, Enum):
    NONE = "NONE"
    UPPER = "UPPER"
    LOWER = "LOWER"


@dataclass
class PositionCycle:
    """
    仓位周期状态机 (Position-Cycle State Machine)

    每个 symbol 一份，只由该 symbol 的 runner 修改：
    1. 信号周期：active_band / orders_in_cycle / armed（band 进入、消耗、中性区重新上膛）
    2. 在途订单：inflight（提交时置位，收到终态订单推送时清除）
    3. 仓位：side / qty_abs（完全由外部仓位快照覆盖）

    两类字段互不干扰：仓位快照不动周期字段，周期逻辑也不推断仓位。
    所有外部输入的处理都是幂等的，重连回放重复推送不会改变结果。
    """

    max_orders_per_cycle: int = 2
    side: PositionSide = PositionSide.FLAT
    qty_abs: float = 0.0
    active_band: Band = Band.NONE
    orders_in_cycle: int = 0
    armed: bool = True
    inflight: bool = False

    def __post_init__(self):
        if self.max_orders_per_cycle < 1:
            raise ValueError("max_orders_per_cycle must be >= 1")

    # ---- 信号周期 ----

    def enter_band(self, band: Band) -> bool:
        """进入超买/超卖区；切换 band 时重置周期。返回是否发生了重置。"""
        if band == self.active_band:
            return False
        self.active_band = band
        self.orders_in_cycle = 0
        self.armed = True
        return True

    def rearm_from_neutral(self) -> None:
        """RSI 回到中性区：允许同一 band 的下一次下单。"""
        self.armed = True

    def consume_and_disarm(self) -> None:
        """消耗周期内的一个下单名额并解除上膛。"""
        self.orders_in_cycle = min(self.orders_in_cycle + 1, self.max_orders_per_cycle)
        self.armed = False

    @property
    def cycle_exhausted(self) -> bool:
        return self.orders_in_cycle >= self.max_orders_per_cycle

    # ---- 外部推送 ----

    def apply_position(self, update: ExternalPositionUpdate) -> bool:
        """按内容覆盖 side/qty（last-write-wins）。返回状态是否变化。"""
        side = update.side
        qty_abs = abs(float(update.net_qty))
        if side == self.side and qty_abs == self.qty_abs:
            return False
        self.side = side
        self.qty_abs = qty_abs
        return True

    def apply_order_update(self, update: ExternalOrderUpdate) -> bool:
        """终态订单清除 inflight；NEW/PARTIALLY_FILLED 不处理。返回是否清除了 inflight。"""
        if not update.is_terminal:
            return False
        return self.clear_inflight()

    def clear_inflight(self) -> bool:
        if not self.inflight:
            return False
        self.inflight = False
        return True

    def snapshot(self) -> Dict:
        return {
            "side": self.side.value,
            "qty_abs": self.qty_abs,
            "active_band": self.active_band.value,
            "orders_in_cycle": self.orders_in_cycle,
            "max_orders_per_cycle": self.max_orders_per_cycle,
            "armed": self.armed,
            "inflight": self.inflight,
        }
