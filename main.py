"""RSI Runner 统一命令行入口。

子命令：

- `enable`：为一个或多个 symbol 启动 RSI runner（paper / real），直到 SIGINT/SIGTERM。
- `simulate`：离线仿真场景（无网络、无真实下单）。
- `replay`：把 Tick CSV 回放给 runner（PaperExecutor），并输出 RSIFactor 对照。
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
from dataclasses import asdict
from typing import Any, Dict, List

from rich.console import Console

from shared.config.config_loader import load_config
from shared.config.schema import AppConfig, RunnerConfig
from shared.utils.logging import configure_logging
from strategies.rsi_runner.core.errors import InstrumentNotFound
from strategies.rsi_runner.core.executor import PaperExecutor, TradeExecutor
from strategies.rsi_runner.core.http import HttpService
from strategies.rsi_runner.core.instruments import DEFAULT_QUANTITY_SCALE, InstrumentClient
from strategies.rsi_runner.gateways.liquidity_feed import LiquidityFeed
from strategies.rsi_runner.gateways.listenkey_feed import ListenKeyFeed
from strategies.rsi_runner.registry import RunnerRegistry
from strategies.rsi_runner.runner import RSIRunner, RSIRunnerParams
from strategies.rsi_runner.sim.harness import build_default_scenarios, run_scenario
from strategies.rsi_runner.sim.replay import load_ticks_csv, replay_ticks
from strategies.rsi_runner.status_view import print_status

logger = logging.getLogger("rsi-runner")
console = Console()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="rsi-runner", description="Headless RSI band runner")
    sub = parser.add_subparsers(dest="task", required=True)

    p_enable = sub.add_parser("enable", help="启动 RSI runner（paper/real）")
    p_enable.add_argument("--symbol", action="append", required=True, help="可重复：--symbol BTC --symbol ETH")
    p_enable.add_argument("--config", default="config/config.yml", help="配置文件路径 (默认: config/config.yml)")
    p_enable.add_argument("--mode", choices=["paper", "real"], default=None)
    p_enable.add_argument("--notional-usd", type=float, default=None)
    p_enable.add_argument("--timeframe", default=None, help="1m/5m/15m/1h/4h/1d")
    p_enable.add_argument("--period", type=int, default=None)
    p_enable.add_argument("--low", type=float, default=None)
    p_enable.add_argument("--high", type=float, default=None)
    p_enable.add_argument("--max-orders-per-cycle", type=int, default=None)

    p_sim = sub.add_parser("simulate", help="离线仿真（无网络）")
    p_sim.add_argument("--symbol", default="BTC")
    p_sim.add_argument("--scenario", default="flatten_then_reverse")
    p_sim.add_argument("--all", action="store_true", help="运行全部内置场景")
    p_sim.add_argument("--json", action="store_true", help="输出 JSON 报告")

    p_replay = sub.add_parser("replay", help="回放 Tick CSV")
    p_replay.add_argument("--csv", required=True, help="列: ts,price,bid,bid_qty,ask,ask_qty")
    p_replay.add_argument("--symbol", required=True)
    p_replay.add_argument("--config", default=None, help="可选：读取 runner 参数")
    p_replay.add_argument("--notional-usd", type=float, default=20.0)
    p_replay.add_argument("--quantity-scale", type=int, default=DEFAULT_QUANTITY_SCALE)
    p_replay.add_argument("--timeframe", default=None)
    p_replay.add_argument("--period", type=int, default=None)

    return parser


def apply_overrides(cfg: AppConfig, args: argparse.Namespace) -> AppConfig:
    """CLI 参数覆盖配置文件（只覆盖显式给出的项）。"""
    if getattr(args, "mode", None):
        cfg.mode = args.mode
    runner_overrides = {
        "notional_usd": getattr(args, "notional_usd", None),
        "timeframe": getattr(args, "timeframe", None),
        "period": getattr(args, "period", None),
        "low": getattr(args, "low", None),
        "high": getattr(args, "high", None),
        "max_orders_per_cycle": getattr(args, "max_orders_per_cycle", None),
    }
    updates = {k: v for k, v in runner_overrides.items() if v is not None}
    if updates:
        merged = {**cfg.runner.model_dump(), **updates}
        cfg.runner = RunnerConfig.model_validate(merged)
    return cfg


async def resolve_scales(cfg: AppConfig, http: HttpService, symbols: List[str]) -> Dict[str, int]:
    if not http.configured:
        if cfg.is_real:
            raise ValueError("api.base_url is required in real mode")
        logger.warning(f"⚠️ api.base_url not set, paper mode uses quantityScale={DEFAULT_QUANTITY_SCALE}")
        return {s: DEFAULT_QUANTITY_SCALE for s in symbols}

    instruments = InstrumentClient(http)
    return {s: await instruments.get_quantity_scale(s) for s in symbols}


async def run_enable(args: argparse.Namespace) -> int:
    cfg = apply_overrides(load_config(args.config), args)
    configure_logging(cfg.logging.level)
    if cfg.is_real and not cfg.feeds.listen_key_ws_url:
        # 实盘依赖账户推送清除 inflight / 同步仓位，缺失时拒绝启动
        raise ValueError("feeds.listen_key_ws_url is required in real mode")

    symbols: List[str] = []
    for s in args.symbol:
        if s.upper() in symbols:
            logger.warning(f"⚠️ {s.upper()}: runner already enabled")
            continue
        symbols.append(s.upper())

    http = HttpService(
        cfg.api.base_url,
        cfg.api.api_key,
        cfg.api.api_secret,
        channel=cfg.api.channel,
        timeout_s=cfg.api.timeout_s,
    )
    try:
        scales = await resolve_scales(cfg, http, symbols)
    except InstrumentNotFound as e:
        logger.error(f"❌ {e}")
        http.close()
        return 1

    registry = RunnerRegistry()
    if cfg.is_real:
        executor = TradeExecutor(http)
    else:
        executor = PaperExecutor(publish=registry.route)
    logger.info(f"🔧 Mode: {cfg.mode.upper()}")

    feed = LiquidityFeed(cfg.feeds.liquidity_ws_url, reconnect_backoff_s=cfg.feeds.reconnect_backoff_s)

    account_feed = None
    account_task = None
    if cfg.is_real:
        account_feed = ListenKeyFeed(
            cfg.feeds.listen_key_ws_url,
            cfg.api.api_key or "",
            channel=cfg.api.channel,
            reconnect_backoff_s=cfg.feeds.reconnect_backoff_s,
        )
        account_feed.on_position = registry.route_position
        account_feed.on_order = registry.route_order

    for symbol in symbols:
        params = RSIRunnerParams.from_config(symbol, cfg.runner, scales[symbol])
        await registry.enable(RSIRunner(feed, executor, params))

    if account_feed is not None:
        account_task = asyncio.create_task(account_feed.run())

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows 事件循环不支持，退回 KeyboardInterrupt
            pass

    try:
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=cfg.runner.status_interval_s)
            except asyncio.TimeoutError:
                print_status(console, registry.status(), executor.summary())
    finally:
        logger.info("🛑 Shutting down...")
        await registry.stop_all()
        if account_feed is not None:
            account_feed.stop()
        if account_task is not None:
            account_task.cancel()
            await asyncio.gather(account_task, return_exceptions=True)
        await feed.close()
        http.close()
    return 0


async def run_simulate(args: argparse.Namespace) -> int:
    scenarios = build_default_scenarios(args.symbol)
    names = list(scenarios.keys())
    to_run = names if args.all else [args.scenario]
    for name in to_run:
        if name not in scenarios:
            raise SystemExit(f"Unknown scenario: {name}. Available: {', '.join(names)}")

    for name in to_run:
        _, report = await run_scenario(args.symbol, scenarios[name])
        if args.json:
            print(json.dumps({"scenario": name, **asdict(report)}, ensure_ascii=False, indent=2))
        else:
            print(f"\n=== {name} ===")
            print(f"Symbol: {report.symbol}")
            print(f"Candles: {report.candles}")
            print(f"Submissions: {report.submissions}")
            print(f"Skipped (depth): {report.skipped_depth}")
            print(f"Failures: {report.failures}")
            print(f"Final state: {report.final_state}")
    return 0


async def run_replay(args: argparse.Namespace) -> int:
    runner_cfg = load_config(args.config).runner if args.config else RunnerConfig()
    overrides = {"timeframe": args.timeframe, "period": args.period}
    updates = {k: v for k, v in overrides.items() if v is not None}
    if updates:
        runner_cfg = RunnerConfig.model_validate({**runner_cfg.model_dump(), **updates})

    params = RSIRunnerParams.from_config(
        args.symbol,
        runner_cfg,
        args.quantity_scale,
        notional_usd=args.notional_usd,
    )
    ticks = load_ticks_csv(args.csv)
    report = await replay_ticks(ticks, params)

    print(f"\n=== replay {report.symbol} ===")
    print(f"Ticks: {report.ticks}  Candles: {report.candles}")
    print(f"Submissions: {report.submissions}  Skipped (depth): {report.skipped_depth}")
    for o in report.orders:
        print(f"  {o['side']} {o['quantity']} @ {o['price']} • {o['reason']}")
    if report.candle_frame is not None:
        print(report.candle_frame.tail(10).to_string(index=False))
    print(f"Final state: {report.final_state}")
    return 0


def main(argv: list[str] | None = None) -> Any:
    args = build_parser().parse_args(argv)

    if args.task == "enable":
        return asyncio.run(run_enable(args))

    configure_logging("INFO")
    if args.task == "simulate":
        return asyncio.run(run_simulate(args))
    if args.task == "replay":
        return asyncio.run(run_replay(args))

    raise ValueError(f"Unknown task: {args.task}")


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        sys.exit(130)
