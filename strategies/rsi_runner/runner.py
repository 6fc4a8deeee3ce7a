from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Deque, Dict, Optional, Protocol, Set

from factors.rsi import wilder_rsi
from shared.config.schema import RunnerConfig
from shared.models.models import (
    Candle,
    ExternalOrderUpdate,
    ExternalPositionUpdate,
    OrderEvent,
    OrderResult,
    PositionEvent,
    PositionSide,
    RunnerEvent,
    Side,
    Tick,
    TickEvent,
)
from shared.utils.client_order_id import make_client_order_id
from shared.utils.precision import format_scaled
from strategies.rsi_runner.core import trade_logger
from strategies.rsi_runner.core.aggregator import CandleAggregator
from strategies.rsi_runner.core.depth import matching_level, quantity_for_notional
from strategies.rsi_runner.core.errors import InvalidSizing
from strategies.rsi_runner.core.position_cycle import Band, PositionCycle

logger = logging.getLogger(__name__)


class PriceFeed(Protocol):
    def start(self, symbol: str, interval_ms: int, on_tick: Callable[[Tick], None]) -> Callable[[], None]: ...


class Executor(Protocol):
    async def buy(self, symbol: str, quantity: str, price: float, reason: str, **kwargs: Any) -> OrderResult: ...

    async def sell(self, symbol: str, quantity: str, price: float, reason: str, **kwargs: Any) -> OrderResult: ...


@dataclass
class RSIRunnerParams:
    symbol: str
    notional_usd: float
    quantity_scale: int = 6
    candle_ms: int = 60_000
    period: int = 14
    low: float = 30.0
    high: float = 70.0
    max_orders_per_cycle: int = 2
    close_retention: int = 2000

    def __post_init__(self):
        self.symbol = self.symbol.upper()
        if self.notional_usd is None or self.notional_usd <= 0:
            raise InvalidSizing(f"notional_usd must be > 0 (got {self.notional_usd})")
        if self.quantity_scale < 0:
            raise ValueError("quantity_scale must be >= 0")
        if self.candle_ms <= 0:
            raise ValueError("candle_ms must be > 0")
        if self.period < 1:
            raise ValueError("period must be >= 1")
        if not (0 <= self.low < self.high <= 100):
            raise ValueError(f"invalid RSI bands: low={self.low} high={self.high}")
        if self.close_retention < self.period + 1:
            raise ValueError("close_retention must be >= period + 1")

    @classmethod
    def from_config(
        cls,
        symbol: str,
        cfg: RunnerConfig,
        quantity_scale: int,
        **overrides: Any,
    ) -> "RSIRunnerParams":
        values = dict(
            symbol=symbol,
            notional_usd=cfg.notional_usd,
            quantity_scale=quantity_scale,
            candle_ms=cfg.candle_ms,
            period=cfg.period,
            low=cfg.low,
            high=cfg.high,
            max_orders_per_cycle=cfg.max_orders_per_cycle,
            close_retention=cfg.close_retention,
        )
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


def _iso(ts_ms: int) -> str:
    return datetime.fromtimestamp(ts_ms / 1000, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class RSIRunner:
    """
    单 symbol 的 RSI 交易 Runner

    所有输入（Tick / 仓位快照 / 订单更新）都进入同一个有序队列，
    由一个消费协程串行处理，因此策略状态只会被一个上下文修改：

    Tick -> CandleAggregator -> 收盘价序列 -> Wilder RSI -> 仓位周期 -> 深度检查 -> 下单

    下单在独立的 Task 中等待执行器返回，期间队列继续被消费（行情照常聚合），
    inflight 标志阻止新的交易决策，直到执行器返回或收到终态订单推送。
    """

    def __init__(
        self,
        feed: PriceFeed,
        executor: Executor,
        params: RSIRunnerParams,
        *,
        strategy_id: str = "rsi",
    ):
        self.feed = feed
        self.executor = executor
        self.params = params
        self.strategy_id = strategy_id

        self.closes: Deque[float] = deque(maxlen=params.close_retention)
        self.cycle = PositionCycle(max_orders_per_cycle=params.max_orders_per_cycle)
        self.aggregator = CandleAggregator(params.candle_ms, self.on_candle)
        self.last_rsi: Optional[float] = None
        self.last_position: Optional[ExternalPositionUpdate] = None

        self.running = False
        self._halted = False
        self._queue: asyncio.Queue = asyncio.Queue()
        self._consumer: Optional[asyncio.Task] = None
        self._stop_feed: Optional[Callable[[], None]] = None
        self._submissions: Set[asyncio.Task] = set()

        self.stats: Dict[str, int] = {
            "candles": 0,
            "submissions": 0,
            "skipped_depth": 0,
            "failures": 0,
            "noop_flattens": 0,
        }

    @property
    def symbol(self) -> str:
        return self.params.symbol

    # ---- 生命周期 ----

    async def start(self):
        if self.running:
            return
        self.running = True
        self._halted = False
        self._consumer = asyncio.create_task(self._consume(), name=f"rsi-runner-{self.symbol}")
        self._stop_feed = self.feed.start(self.symbol, self.params.candle_ms, self.post_tick)

        p = self.params
        logger.info(
            f"🚀 RSI runner started: {self.symbol} period={p.period} bands={p.low}/{p.high} "
            f"notional=${p.notional_usd:g} scale={p.quantity_scale} candle={p.candle_ms}ms"
        )
        logger.info(f"⏳ {self.symbol}: warming up, need {p.period + 1} candles before first signal")

    async def stop(self, submit_timeout_s: float = 10.0):
        """
        停止 runner

        1. 断开行情，丢弃尚未处理的事件
        2. 封口当前 K 线并计入收盘价（不再触发交易）
        3. 在途订单不撤销；最多等待 submit_timeout_s 让提交请求返回，
           避免调用方随后关闭 HTTP 会话时请求仍在途
        """
        if not self.running:
            return
        self._halted = True
        if self._stop_feed is not None:
            self._stop_feed()
            self._stop_feed = None

        if self._consumer is not None:
            self._consumer.cancel()
            await asyncio.gather(self._consumer, return_exceptions=True)
            self._consumer = None

        pending = [t for t in self._submissions if not t.done()]
        if pending:
            logger.info(f"⏳ {self.symbol}: waiting for {len(pending)} pending submission(s)")
            _, still_pending = await asyncio.wait(pending, timeout=submit_timeout_s)
            if still_pending:
                logger.warning(
                    f"⚠️ {self.symbol}: {len(still_pending)} submission(s) still pending after {submit_timeout_s}s"
                )

        self.aggregator.flush()
        self.running = False
        logger.info(f"🛑 RSI runner stopped: {self.symbol} (candles={len(self.closes)})")

    # ---- 事件入口 ----

    def post(self, event: RunnerEvent) -> bool:
        if not self.running:
            logger.debug(f"{self.symbol}: runner not running, event dropped")
            return False
        self._queue.put_nowait(event)
        return True

    def post_tick(self, tick: Tick) -> None:
        self.post(TickEvent(tick))

    async def _consume(self):
        while True:
            event = await self._queue.get()
            try:
                self.dispatch(event)
            except Exception:
                logger.exception(f"❌ {self.symbol}: failed to handle {type(event).__name__}")
            finally:
                self._queue.task_done()

    def dispatch(self, event: RunnerEvent) -> None:
        if isinstance(event, TickEvent):
            self.aggregator.ingest(event.tick)
        elif isinstance(event, PositionEvent):
            self.apply_position(event.update)
        elif isinstance(event, OrderEvent):
            self.handle_order_update(event.update)
        else:
            raise TypeError(f"unknown runner event: {event!r}")

    async def drain(self):
        """等待队列清空以及所有在途提交完成。"""
        while True:
            if self.running:
                await self._queue.join()
            pending = [t for t in self._submissions if not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    # ---- 外部推送 ----

    def apply_position(self, update: ExternalPositionUpdate) -> bool:
        trade_logger.log_position(self.last_position, update)
        self.last_position = update
        return self.cycle.apply_position(update)

    def handle_order_update(self, update: ExternalOrderUpdate) -> bool:
        trade_logger.log_order_update(update)
        cleared = self.cycle.apply_order_update(update)
        if cleared:
            logger.debug(f"{self.symbol}: inflight cleared by {update.status.value} ({update.client_order_id})")
        return cleared

    def clear_inflight(self) -> bool:
        return self.cycle.clear_inflight()

    @property
    def submission_pending(self) -> bool:
        return any(not t.done() for t in self._submissions)

    # ---- 策略 ----

    def on_candle(self, candle: Candle) -> Optional[asyncio.Task]:
        """K 线收盘回调。返回本次触发的下单 Task（没有下单则为 None）。"""
        p = self.params
        self.closes.append(float(candle.close))
        self.stats["candles"] += 1
        rsi = wilder_rsi(self.closes, p.period)
        self.last_rsi = rsi
        when = _iso(candle.end)

        if rsi is None:
            logger.info(
                f"⏳ [{when}] {self.symbol} warming up {len(self.closes)}/{p.period + 1} "
                f"O={candle.open} H={candle.high} L={candle.low} C={candle.close}"
            )
            return None

        logger.info(f"📊 [{when}] {self.symbol} C={candle.close} RSI={rsi:.2f}")

        if self._halted:
            return None

        if p.low <= rsi <= p.high:
            self.cycle.rearm_from_neutral()
            return None

        # 终态推送可能早于 REST 响应到达，提交 Task 未结束前同样视为在途
        if self.cycle.inflight or self.submission_pending:
            logger.debug(f"{self.symbol}: order inflight, signal ignored")
            return None

        band = Band.UPPER if rsi > p.high else Band.LOWER
        return self._on_band(band, rsi, candle)

    def _on_band(self, band: Band, rsi: float, candle: Candle) -> Optional[asyncio.Task]:
        p = self.params
        if self.cycle.enter_band(band):
            logger.info(f"🎯 {self.symbol} entered {band.value} band (RSI={rsi:.2f}), cycle reset")

        if not self.cycle.armed or self.cycle.cycle_exhausted:
            return None

        if band == Band.UPPER:
            held, side, label = PositionSide.LONG, Side.SELL, f"RSI {rsi:.2f} > {p.high:g}"
        else:
            held, side, label = PositionSide.SHORT, Side.BUY, f"RSI {rsi:.2f} < {p.low:g}"

        if self.cycle.orders_in_cycle == 0:
            return self._flatten(held, side, label, candle)
        return self._open(side, label, candle)

    def _flatten(self, held: PositionSide, side: Side, label: str, candle: Candle) -> Optional[asyncio.Task]:
        qty = format_scaled(self.cycle.qty_abs, self.params.quantity_scale)
        if self.cycle.side != held or Decimal(qty) <= 0:
            self.cycle.consume_and_disarm()
            self.stats["noop_flattens"] += 1
            logger.info(f"↪️ {self.symbol} no {held.value} position to flatten ({label}), slot consumed")
            return None

        price = matching_level(candle.order_book, float(qty), side)
        if price is None:
            self._log_skip(side, qty, f"flatten {held.value}", candle)
            return None
        return self._submit(side, qty, price, f"Flatten {held.value.lower()} ({label})", candle)

    def _open(self, side: Side, label: str, candle: Candle) -> Optional[asyncio.Task]:
        p = self.params
        qty = quantity_for_notional(p.notional_usd, candle.close, p.quantity_scale)
        if Decimal(qty) <= 0:
            logger.warning(f"⚠️ {self.symbol} ${p.notional_usd:g} @ {candle.close} rounds to zero qty, skipped")
            return None

        price = matching_level(candle.order_book, float(qty), side)
        target = "long" if side == Side.BUY else "short"
        if price is None:
            self._log_skip(side, qty, f"open {target}", candle)
            return None
        return self._submit(side, qty, price, f"Open {target} ${p.notional_usd:g} ({label})", candle)

    def _log_skip(self, side: Side, qty: str, action: str, candle: Candle):
        self.stats["skipped_depth"] += 1
        if side == Side.BUY:
            book_side, best = "ask", candle.order_book.best_ask
        else:
            book_side, best = "bid", candle.order_book.best_bid
        best_txt = f"best {book_side} {best.quantity:g} @ {best.price}" if best is not None else f"{book_side} side empty"
        logger.info(
            f"⏭️ SKIPPED TRADE • {self.symbol} {side.value} {action} qty={qty} "
            f"- no {book_side} level covers requested quantity ({best_txt})"
        )

    def _submit(self, side: Side, qty: str, price: float, reason: str, candle: Candle) -> asyncio.Task:
        self.cycle.inflight = True
        cid = make_client_order_id(
            strategy_id=self.strategy_id,
            symbol=self.symbol,
            side=side.value,
            candle_end_ms=candle.end,
            cycle_slot=self.cycle.orders_in_cycle + 1,
            reason=reason,
        )
        logger.info(f"📤 {self.symbol} {side.value} qty={qty} @ {price} • {reason}")
        task = asyncio.get_running_loop().create_task(self._do_submit(side, qty, price, reason, cid))
        self._submissions.add(task)
        task.add_done_callback(self._submissions.discard)
        return task

    async def _do_submit(self, side: Side, qty: str, price: float, reason: str, cid: str) -> Optional[OrderResult]:
        submit = self.executor.buy if side == Side.BUY else self.executor.sell
        try:
            result = await submit(self.symbol, qty, price, reason, client_order_id=cid)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # 失败不消耗名额，下一根满足条件的 K 线重试
            self.cycle.inflight = False
            self.stats["failures"] += 1
            logger.error(f"❌ {self.symbol} {side.value} submit failed: {e}")
            return None

        self.cycle.consume_and_disarm()
        self.stats["submissions"] += 1
        return result

    # ---- 状态 ----

    def status(self) -> Dict[str, Any]:
        rsi = wilder_rsi(self.closes, self.params.period)
        return {
            "symbol": self.symbol,
            "candles": len(self.closes),
            "rsi": "warming-up" if rsi is None else round(rsi, 2),
            "period": self.params.period,
            "low": self.params.low,
            "high": self.params.high,
            "running": self.running,
            **self.cycle.snapshot(),
        }
