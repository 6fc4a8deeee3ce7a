from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from shared.models.models import (
    ExternalOrderUpdate,
    ExternalPositionUpdate,
    OrderEvent,
    PositionEvent,
    RunnerEvent,
    TickEvent,
)
from strategies.rsi_runner.runner import RSIRunner

logger = logging.getLogger(__name__)


class RunnerRegistry:
    """symbol -> RSIRunner；同一 symbol 同时最多一个 runner。"""

    def __init__(self):
        self._runners: Dict[str, RSIRunner] = {}

    def __contains__(self, symbol: str) -> bool:
        return symbol.upper() in self._runners

    def __len__(self) -> int:
        return len(self._runners)

    def get(self, symbol: str) -> Optional[RSIRunner]:
        return self._runners.get(symbol.upper())

    def list(self) -> List[str]:
        return sorted(self._runners)

    async def enable(self, runner: RSIRunner) -> bool:
        key = runner.symbol
        if key in self._runners:
            logger.warning(f"⚠️ {key}: runner already enabled")
            return False
        self._runners[key] = runner
        await runner.start()
        return True

    async def disable(self, symbol: str) -> bool:
        runner = self._runners.pop(symbol.upper(), None)
        if runner is None:
            return False
        await runner.stop()
        return True

    async def stop_all(self):
        for symbol in self.list():
            await self.disable(symbol)

    def status(self, symbol: Optional[str] = None) -> Any:
        if symbol is not None:
            runner = self.get(symbol)
            return runner.status() if runner is not None else None
        return [self._runners[s].status() for s in self.list()]

    # ---- 事件路由 ----

    def route(self, event: RunnerEvent) -> bool:
        if isinstance(event, TickEvent):
            symbol = event.tick.order_book.symbol
        else:
            symbol = event.update.symbol
        runner = self.get(symbol)
        if runner is None:
            logger.debug(f"no runner for {symbol}, {type(event).__name__} dropped")
            return False
        return runner.post(event)

    def route_position(self, update: ExternalPositionUpdate) -> bool:
        return self.route(PositionEvent(update))

    def route_order(self, update: ExternalOrderUpdate) -> bool:
        return self.route(OrderEvent(update))
