from __future__ import annotations

import asyncio
import hashlib
import hmac
import json
import logging
import time
from typing import Any, Callable, Dict, Optional

import requests

logger = logging.getLogger(__name__)

Signer = Callable[[str], str]


def hmac_sha256_signer(secret: str) -> Signer:
    """signature = hex(HMAC-SHA256(secret, payload))"""
    key = secret.encode()

    def _sign(payload: str) -> str:
        return hmac.new(key, payload.encode(), hashlib.sha256).hexdigest()

    return _sign


class HttpService:
    """
    REST 访问层 (同步 requests + run_in_executor 包装成异步)

    签名约定：
    - POST: payload = json.dumps(body)（body 里已追加 channel 字段）
    - GET:  payload = json.dumps(path)
    签名方案本身可替换（signer 注入），默认 HMAC-SHA256。
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        api_secret: Optional[str] = None,
        *,
        channel: str = "LIQUIDITY",
        timeout_s: float = 10.0,
        signer: Optional[Signer] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = (base_url or "").rstrip("/")
        self.api_key = api_key
        self.channel = channel
        self.timeout_s = float(timeout_s)
        if signer is None and api_secret:
            signer = hmac_sha256_signer(api_secret)
        self.signer = signer
        self.session = session or requests.Session()

    @property
    def configured(self) -> bool:
        return bool(self.base_url)

    def _headers(self, payload: str) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.signer is not None:
            headers["signature"] = self.signer(payload)
        if self.api_key:
            headers["X-Mbx-Apikey"] = self.api_key
        return headers

    def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.base_url}{path}"
        headers = self._headers(json.dumps(path))
        resp = self.session.get(url, params=params or {}, headers=headers, timeout=self.timeout_s)
        resp.raise_for_status()
        return resp.json()

    def post(self, path: str, body: Dict[str, Any]) -> Any:
        url = f"{self.base_url}{path}"
        payload_body = {**body, "channel": self.channel}
        data = json.dumps(payload_body)
        headers = self._headers(data)
        logger.debug(f"POST {path} {data}")
        resp = self.session.post(url, data=data, headers=headers, timeout=self.timeout_s)
        resp.raise_for_status()
        return resp.json()

    async def aget(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.get, path, params)

    async def apost(self, path: str, body: Dict[str, Any]) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.post, path, body)

    @staticmethod
    def now_ms() -> int:
        return int(time.time() * 1000)

    def close(self):
        self.session.close()
