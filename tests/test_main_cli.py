import json
from pathlib import Path

import pytest

import main as cli
from shared.config.schema import AppConfig


def test_parser_enable_multi_symbol():
    args = cli.build_parser().parse_args(
        ["enable", "--symbol", "BTC", "--symbol", "eth", "--notional-usd", "50", "--timeframe", "5m", "--mode", "real"]
    )
    assert args.task == "enable"
    assert args.symbol == ["BTC", "eth"]
    assert args.notional_usd == 50.0
    assert args.config == "config/config.yml"


def test_parser_requires_task():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args([])


def test_apply_overrides_only_explicit_fields():
    cfg = AppConfig()
    args = cli.build_parser().parse_args(["enable", "--symbol", "BTC", "--period", "7", "--high", "80", "--mode", "real"])
    out = cli.apply_overrides(cfg, args)
    assert out.mode == "real"
    assert out.runner.period == 7
    assert out.runner.high == 80
    assert out.runner.low == 30
    assert out.runner.notional_usd == 20


def test_apply_overrides_validates():
    args = cli.build_parser().parse_args(["enable", "--symbol", "BTC", "--low", "90"])
    with pytest.raises(ValueError):
        cli.apply_overrides(AppConfig(), args)


def test_simulate_json(capsys):
    assert cli.main(["simulate", "--scenario", "insufficient_depth", "--json"]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["scenario"] == "insufficient_depth"
    assert payload["skipped_depth"] == 1


def test_simulate_unknown_scenario():
    with pytest.raises(SystemExit):
        cli.main(["simulate", "--scenario", "nope"])


def test_enable_unknown_symbol_exits_1(monkeypatch, tmp_path: Path):
    monkeypatch.delenv("MODE", raising=False)
    cfg_path = tmp_path / "config.yml"
    cfg_path.write_text("mode: paper\napi:\n  base_url: https://api.example.invalid\n", encoding="utf-8")

    async def fake_scale(self, symbol):
        from strategies.rsi_runner.core.errors import InstrumentNotFound

        raise InstrumentNotFound(symbol)

    monkeypatch.setattr(cli.InstrumentClient, "get_quantity_scale", fake_scale)
    assert cli.main(["enable", "--symbol", "NOPE", "--config", str(cfg_path)]) == 1


def test_enable_real_mode_requires_account_feed(monkeypatch, tmp_path: Path):
    monkeypatch.delenv("MODE", raising=False)
    cfg_path = tmp_path / "config.yml"
    cfg_path.write_text(
        "mode: real\napi:\n  base_url: https://api.example.invalid\nfeeds:\n  listen_key_ws_url: ''\n",
        encoding="utf-8",
    )
    called = []

    async def fake_scale(self, symbol):
        called.append(symbol)
        return 6

    monkeypatch.setattr(cli.InstrumentClient, "get_quantity_scale", fake_scale)
    with pytest.raises(ValueError, match="listen_key_ws_url"):
        cli.main(["enable", "--symbol", "BTC", "--config", str(cfg_path)])
    assert called == []
