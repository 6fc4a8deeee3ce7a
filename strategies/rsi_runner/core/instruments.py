from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from strategies.rsi_runner.core.errors import InstrumentNotFound
from strategies.rsi_runner.core.http import HttpService

logger = logging.getLogger(__name__)

DEFAULT_QUANTITY_SCALE = 6


class InstrumentClient:
    """交易对元数据（目前只用到 quantityScale）。"""

    def __init__(self, http: HttpService):
        self.http = http
        self._cache: Dict[str, Dict[str, Any]] = {}

    async def list_instruments(self) -> List[Dict[str, Any]]:
        data = await self.http.aget("/getInstrumentPairs")
        pairs = (data or {}).get("instrumentPairs") if isinstance(data, dict) else None
        return list(pairs or [])

    async def get_instrument(self, symbol: str) -> Dict[str, Any]:
        key = symbol.upper()
        if key in self._cache:
            return self._cache[key]

        for pair in await self.list_instruments():
            name = str(pair.get("symbol", "")).upper()
            if name:
                self._cache[name] = pair

        meta = self._cache.get(key)
        if meta is None:
            raise InstrumentNotFound(f"Instrument not found for symbol: {symbol}")
        return meta

    async def get_quantity_scale(self, symbol: str) -> int:
        meta = await self.get_instrument(symbol)
        scale: Optional[Any] = meta.get("quantityScale")
        if scale is None:
            logger.warning(f"⚠️ {symbol}: quantityScale missing, using {DEFAULT_QUANTITY_SCALE}")
            return DEFAULT_QUANTITY_SCALE
        return int(scale)
