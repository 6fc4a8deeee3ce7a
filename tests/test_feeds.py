import json

import pytest

from shared.models.models import OrderStatus, Side
from strategies.rsi_runner.gateways.liquidity_feed import book_to_tick, parse_order_book
from strategies.rsi_runner.gateways.listenkey_feed import (
    ListenKeyFeed,
    parse_account_positions,
    parse_order_trade,
)


# ---- liquidity feed ----

def _book_msg(symbol="BTC", bids=None, asks=None, **extra):
    payload = {
        "s": symbol,
        "bids": bids if bids is not None else [{"p": 99.5, "q": 1.2, "dp": "99.50"}, {"p": 99.0, "q": 3}],
        "asks": asks if asks is not None else [{"p": 100.5, "q": 0.8, "dp": "100.50"}],
    }
    payload.update(extra)
    return json.dumps(payload)


def test_parse_order_book_builds_snapshot_and_mid():
    book = parse_order_book(_book_msg(symbol="btc"), "BTC")
    assert book is not None
    assert book.symbol == "BTC"
    assert book.bids[0].price == 99.5
    assert book.bids[1].quantity == 3.0
    assert book.asks[0].quantity == 0.8
    assert book.mid == pytest.approx(100.0)

    tick = book_to_tick(book, 1_700_000_000_000)
    assert tick.ts == 1_700_000_000_000
    assert tick.price == pytest.approx(100.0)


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        json.dumps({"status": "subscribed"}),
        _book_msg(bids=[]),
        _book_msg(asks=[]),
        _book_msg(symbol="ETH"),
        json.dumps({"s": "BTC", "bids": [{"q": 1}], "asks": [{"p": 1, "q": 1}]}),
        json.dumps([1, 2, 3]),
    ],
)
def test_parse_order_book_drops_invalid_frames(raw):
    assert parse_order_book(raw, "BTC") is None


def test_parse_order_book_missing_qty_defaults_to_zero():
    book = parse_order_book(_book_msg(asks=[{"p": 101}]), "BTC")
    assert book.asks[0].quantity == 0.0


# ---- listen-key feed ----

def _order(**overrides):
    o = {
        "s": "BTC/USD",
        "S": "SELL",
        "c": "rsi_abc",
        "i": 123,
        "X": "0",
        "x": "A",
        "t": 9,
        "z": "0",
        "lv": "0.5",
        "q": "0.5",
        "l": "0",
        "p": "100.0",
        "L": None,
        "a": None,
        "T": 1700000000000,
    }
    o.update(overrides)
    return o


def test_parse_order_trade_new():
    u = parse_order_trade(_order())
    assert u.symbol == "BTC"
    assert u.side == Side.SELL
    assert u.status == OrderStatus.NEW
    assert u.client_order_id == "rsi_abc"
    assert u.order_id == "123"
    assert u.quantity == 0.5
    assert u.ts == 1700000000000


@pytest.mark.parametrize(
    "fields,status",
    [
        ({"X": "8", "br": "insufficient balance"}, OrderStatus.REJECTED),
        ({"X": "4"}, OrderStatus.CANCELED),
        ({"X": 2}, OrderStatus.FILLED),
        ({"X": "C"}, OrderStatus.EXPIRED),
        ({"x": "F", "z": "0.2", "lv": "0.3"}, OrderStatus.PARTIALLY_FILLED),
        ({"x": "F", "z": "0.5", "lv": "0"}, OrderStatus.FILLED),
        ({"x": "B", "z": "0", "lv": "0.5"}, OrderStatus.NEW),
        ({"x": "Z", "z": "0.5", "lv": "0"}, OrderStatus.NEW),
    ],
)
def test_parse_order_trade_status_mapping(fields, status):
    assert parse_order_trade(_order(**fields)).status == status


@pytest.mark.parametrize("raw,side", [("BUY", Side.BUY), ("1", Side.BUY), ("2", Side.SELL), ("sell", Side.SELL), (None, Side.BUY)])
def test_parse_order_trade_side_mapping(raw, side):
    assert parse_order_trade(_order(S=raw)).side == side


def test_parse_order_trade_fill_fields():
    u = parse_order_trade(_order(x="F", z="0.5", lv="0", l="0.5", L="99.8", a="99.8"))
    assert u.filled_qty == 0.5
    assert u.fill_price == 99.8
    assert u.avg_fill_price == 99.8
    assert u.cum_qty == 0.5


def test_parse_order_trade_without_symbol_dropped():
    assert parse_order_trade(_order(s="")) is None


def test_parse_account_positions_merges_rows_and_skips_quote():
    payload = {
        "B": [
            {"a": "USD", "wb": "1000"},
            {"a": "ETH", "wb": "2.5"},
        ],
        "P": [
            {"s": "BTC/USD", "pa": "-0.4", "uacb": "101.5"},
            {"s": "SOL/USDT"},
            {"s": "USDT", "pa": "5"},
        ],
    }
    updates = parse_account_positions(payload, ts=42)
    by_symbol = {u.symbol: u for u in updates}

    assert set(by_symbol) == {"ETH", "BTC", "SOL"}
    assert by_symbol["ETH"].net_qty == 2.5
    assert by_symbol["BTC"].net_qty == -0.4
    assert by_symbol["BTC"].avg_entry_price == 101.5
    assert by_symbol["SOL"].net_qty == 0.0
    assert all(u.ts == 42 for u in updates)


def test_parse_account_positions_prefers_position_amount():
    updates = parse_account_positions({"P": [{"s": "BTC", "pa": "0.1", "wb": "9"}]})
    assert updates[0].net_qty == 0.1


def test_listen_key_feed_dispatches_events():
    feed = ListenKeyFeed("wss://example.invalid", api_key="k")
    positions, orders = [], []
    feed.on_position = positions.append
    feed.on_order = orders.append

    n = feed.handle_message(json.dumps({"e": "ACCOUNT_UPDATE", "E": 7, "a": {"P": [{"s": "BTC/USD", "pa": "0.5"}]}}))
    assert n == 1
    assert positions[0].symbol == "BTC" and positions[0].ts == 7

    n = feed.handle_message(json.dumps({"e": "ORDER_TRADE_UPDATE", "o": _order(X="2")}))
    assert n == 1
    assert orders[0].status == OrderStatus.FILLED

    assert feed.handle_message("garbage") == 0
    assert feed.handle_message(json.dumps({"e": "OTHER"})) == 0


def test_listen_key_subscribe_message():
    feed = ListenKeyFeed("wss://example.invalid", api_key="token", channel="LIQUIDITY")
    msg = json.loads(feed.subscribe_message())
    assert msg == {"account": "", "unsubscribe": 0, "requestToken": "token", "channel": "LIQUIDITY"}
