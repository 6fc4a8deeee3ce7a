from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from shared.models.models import ExternalPositionUpdate, PositionEvent
from strategies.rsi_runner.runner import RSIRunner, RSIRunnerParams
from strategies.rsi_runner.sim.fakes import FakeClock, FakeExecutor, FakePriceFeed, ScenarioStep

SIM_CANDLE_MS = 60_000


@dataclass(frozen=True)
class Scenario:
    steps: List[ScenarioStep]
    initial_position: float = 0.0
    fail_times: int = 0
    period: int = 3
    notional_usd: float = 20.0
    quantity_scale: int = 6


@dataclass
class SimReport:
    symbol: str
    steps: int
    candles: int
    submissions: int
    skipped_depth: int
    failures: int
    final_state: Dict = field(default_factory=dict)
    orders: List[Dict] = field(default_factory=list)


async def run_scenario(symbol: str, scenario: Scenario) -> Tuple[RSIRunner, SimReport]:
    """
    离线跑一个场景（无网络、无真实下单）

    每个 step 对应一根 K 线：在该桶内推送一个 Tick，下一个 step 的 Tick 到来时封口。
    最后再推一个 Tick 把最后一根 K 线封口，然后停止 runner。
    """
    clock = FakeClock(start_ms=0)
    feed = FakePriceFeed()
    params = RSIRunnerParams(
        symbol=symbol,
        notional_usd=scenario.notional_usd,
        quantity_scale=scenario.quantity_scale,
        candle_ms=SIM_CANDLE_MS,
        period=scenario.period,
        low=30.0,
        high=70.0,
        close_retention=max(2000, scenario.period + 1),
    )
    executor = FakeExecutor(clock=clock, fail_times=scenario.fail_times)
    runner = RSIRunner(feed, executor, params, strategy_id="sim")
    executor.publish = runner.post

    await runner.start()

    if scenario.initial_position:
        executor.positions[runner.symbol] = float(scenario.initial_position)
        runner.post(PositionEvent(ExternalPositionUpdate(symbol=runner.symbol, net_qty=scenario.initial_position)))

    for step in scenario.steps:
        if step.position is not None:
            executor.positions[runner.symbol] = float(step.position)
            runner.post(PositionEvent(ExternalPositionUpdate(symbol=runner.symbol, net_qty=step.position)))
        feed.emit_price(runner.symbol, clock.now(), step.close, bids=step.bids, asks=step.asks)
        await runner.drain()
        clock.advance(SIM_CANDLE_MS)

    last = scenario.steps[-1] if scenario.steps else None
    if last is not None:
        feed.emit_price(runner.symbol, clock.now(), last.close, bids=last.bids, asks=last.asks)
        await runner.drain()

    await runner.stop()

    report = SimReport(
        symbol=runner.symbol,
        steps=len(scenario.steps),
        candles=runner.stats["candles"],
        submissions=runner.stats["submissions"],
        skipped_depth=runner.stats["skipped_depth"],
        failures=runner.stats["failures"],
        final_state=runner.status(),
        orders=list(executor.submissions),
    )
    return runner, report


def _steps(*closes: float) -> List[ScenarioStep]:
    return [ScenarioStep(close=c) for c in closes]


def build_default_scenarios(symbol: str) -> Dict[str, Scenario]:
    # period=3: 第 4 根 K 线开始出 RSI
    return {
        # LONG 0.5 -> 超买平多 -> 仍超买不动 -> 回中性 -> 再超买开空
        "flatten_then_reverse": Scenario(
            steps=_steps(100, 101, 102, 103, 104, 103, 105),
            initial_position=0.5,
        ),
        # 平多需要 0.5，买一档只有 0.1 -> 跳过
        "insufficient_depth": Scenario(
            steps=[
                ScenarioStep(close=c, bids=[(c - 0.1, 0.1)], asks=[(c + 0.1, 5.0)])
                for c in (100, 101, 102, 103)
            ],
            initial_position=0.5,
        ),
        # 第一次提交失败，下一根仍超买的 K 线重试成功
        "submission_failure_retry": Scenario(
            steps=_steps(100, 101, 102, 103, 104),
            initial_position=0.5,
            fail_times=1,
        ),
        # 超买区用满两个名额后跌入超卖区，周期重置并平空
        "band_switch_resets_cycle": Scenario(
            steps=_steps(100, 101, 102, 103, 102, 105, 100, 96),
        ),
    }
