from unittest.mock import AsyncMock, MagicMock

import pytest

from shared.models.models import (
    ExternalOrderUpdate,
    ExternalPositionUpdate,
    OrderStatus,
    PositionSide,
    Side,
)
from strategies.rsi_runner.registry import RunnerRegistry
from strategies.rsi_runner.runner import RSIRunner, RSIRunnerParams
from strategies.rsi_runner.sim.fakes import FakePriceFeed


@pytest.fixture
def feed():
    return FakePriceFeed()


def _runner(feed, symbol: str) -> RSIRunner:
    executor = MagicMock()
    executor.buy = AsyncMock()
    executor.sell = AsyncMock()
    return RSIRunner(feed, executor, RSIRunnerParams(symbol=symbol, notional_usd=20.0))


@pytest.mark.asyncio
async def test_enable_and_duplicate(feed):
    registry = RunnerRegistry()
    assert await registry.enable(_runner(feed, "btc")) is True
    assert await registry.enable(_runner(feed, "BTC")) is False
    assert await registry.enable(_runner(feed, "ETH")) is True

    assert registry.list() == ["BTC", "ETH"]
    assert "btc" in registry
    assert set(feed.subscribers) == {"BTC", "ETH"}
    await registry.stop_all()


@pytest.mark.asyncio
async def test_route_by_symbol(feed):
    registry = RunnerRegistry()
    await registry.enable(_runner(feed, "BTC"))

    assert registry.route_position(ExternalPositionUpdate(symbol="BTC", net_qty=0.5)) is True
    assert registry.route_position(ExternalPositionUpdate(symbol="DOGE", net_qty=1.0)) is False

    runner = registry.get("BTC")
    await runner.drain()
    assert runner.cycle.side == PositionSide.LONG

    runner.cycle.inflight = True
    registry.route_order(
        ExternalOrderUpdate(client_order_id="c", symbol="BTC", side=Side.SELL, status=OrderStatus.CANCELED)
    )
    await runner.drain()
    assert runner.cycle.inflight is False
    await registry.stop_all()


@pytest.mark.asyncio
async def test_disable_stops_runner_and_ignores_later_events(feed):
    registry = RunnerRegistry()
    await registry.enable(_runner(feed, "BTC"))
    runner = registry.get("BTC")

    assert await registry.disable("btc") is True
    assert await registry.disable("btc") is False
    assert runner.running is False
    assert registry.route_position(ExternalPositionUpdate(symbol="BTC", net_qty=1.0)) is False
    assert runner.cycle.side == PositionSide.FLAT


@pytest.mark.asyncio
async def test_status(feed):
    registry = RunnerRegistry()
    await registry.enable(_runner(feed, "ETH"))
    await registry.enable(_runner(feed, "BTC"))

    rows = registry.status()
    assert [r["symbol"] for r in rows] == ["BTC", "ETH"]
    assert rows[0]["rsi"] == "warming-up"
    assert registry.status("eth")["symbol"] == "ETH"
    assert registry.status("DOGE") is None

    await registry.stop_all()
    assert len(registry) == 0
    assert registry.status() == []
