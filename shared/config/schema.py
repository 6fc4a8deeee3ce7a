"""配置架构定义（Pydantic Schema）。

目标：
- 让配置成为“强类型”的边界协议；
- 启动阶段尽早失败，避免 typo/类型错误在实盘中“隐蔽爆炸”。
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from shared.utils.timeframe import timeframe_to_ms


class ApiConfig(BaseModel):
    """REST 接口配置。"""
    base_url: str = ""
    api_key: Optional[str] = None
    api_secret: Optional[str] = None
    timeout_s: float = Field(default=10.0, gt=0)
    # 请求体里附带的渠道字段
    channel: str = "LIQUIDITY"

    model_config = ConfigDict(extra="forbid")


class FeedsConfig(BaseModel):
    """WebSocket 行情/账户推送配置。"""
    liquidity_ws_url: str = ""
    listen_key_ws_url: str = ""
    reconnect_backoff_s: float = Field(default=1.0, ge=0)

    model_config = ConfigDict(extra="forbid")


class RunnerConfig(BaseModel):
    """RSI runner 参数。"""
    timeframe: str = "1m"
    period: int = Field(default=14, ge=1)
    low: float = Field(default=30.0, ge=0, le=100)
    high: float = Field(default=70.0, ge=0, le=100)
    notional_usd: float = Field(default=20.0, gt=0)
    max_orders_per_cycle: int = Field(default=2, ge=1)
    close_retention: int = Field(default=2000, ge=2)
    status_interval_s: float = Field(default=60.0, gt=0)

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    @field_validator("timeframe")
    @classmethod
    def _check_timeframe(cls, v: str) -> str:
        timeframe_to_ms(v)
        return v.strip().lower()

    @model_validator(mode="after")
    def _check_bands(self) -> "RunnerConfig":
        if self.low >= self.high:
            raise ValueError(f"runner.low ({self.low}) must be < runner.high ({self.high})")
        if self.close_retention < self.period + 1:
            raise ValueError("runner.close_retention must be >= period + 1")
        return self

    @property
    def candle_ms(self) -> int:
        return timeframe_to_ms(self.timeframe)


class LoggingConfig(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    model_config = ConfigDict(extra="forbid")


class AppConfig(BaseModel):
    """应用总配置。"""
    mode: Literal["paper", "real"] = "paper"
    api: ApiConfig = Field(default_factory=ApiConfig)
    feeds: FeedsConfig = Field(default_factory=FeedsConfig)
    runner: RunnerConfig = Field(default_factory=RunnerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    @field_validator("mode", mode="before")
    @classmethod
    def _normalize_mode(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @property
    def is_real(self) -> bool:
        return self.mode == "real"
