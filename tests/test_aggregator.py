import pytest

from shared.models.models import OrderBookLevel, OrderBookSnapshot, Tick
from strategies.rsi_runner.core.aggregator import CandleAggregator


def _tick(ts: int, price: float, bid_qty: float = 1.0) -> Tick:
    book = OrderBookSnapshot(
        symbol="BTC",
        bids=(OrderBookLevel(price - 1, bid_qty),),
        asks=(OrderBookLevel(price + 1, 1.0),),
    )
    return Tick(ts=ts, price=price, order_book=book)


def test_first_tick_opens_candle_without_emitting():
    closed = []
    agg = CandleAggregator(60_000, closed.append)
    agg.ingest(_tick(61_000, 100.0))

    assert closed == []
    assert agg.current.start == 60_000
    assert agg.current.end == 120_000
    assert agg.current.open == agg.current.close == 100.0


def test_ticks_in_bucket_update_ohlc_and_book():
    closed = []
    agg = CandleAggregator(60_000, closed.append)
    agg.ingest(_tick(0, 100.0))
    agg.ingest(_tick(10_000, 105.0))
    agg.ingest(_tick(20_000, 95.0))
    agg.ingest(_tick(59_999, 101.0, bid_qty=7.0))

    c = agg.current
    assert (c.open, c.high, c.low, c.close) == (100.0, 105.0, 95.0, 101.0)
    assert c.order_book.bids[0].quantity == 7.0
    assert closed == []


def test_tick_at_bucket_end_seals_previous_candle():
    closed = []
    agg = CandleAggregator(60_000, closed.append)
    agg.ingest(_tick(0, 100.0))
    agg.ingest(_tick(30_000, 102.0))
    agg.ingest(_tick(60_000, 103.0))

    assert len(closed) == 1
    sealed = closed[0]
    assert (sealed.start, sealed.end) == (0, 60_000)
    assert sealed.close == 102.0
    assert agg.current.start == 60_000
    assert agg.current.open == 103.0


def test_gap_skips_empty_buckets():
    closed = []
    agg = CandleAggregator(60_000, closed.append)
    agg.ingest(_tick(0, 100.0))
    agg.ingest(_tick(5 * 60_000 + 1, 110.0))

    assert len(closed) == 1
    assert agg.current.start == 5 * 60_000


def test_candles_respect_ohlc_bounds():
    closed = []
    agg = CandleAggregator(1_000, closed.append)
    prices = [100, 99.5, 101.2, 100.7, 98.1, 102.3, 101.0, 100.4, 99.9, 103.3]
    for i, p in enumerate(prices):
        agg.ingest(_tick(i * 400, float(p)))
    agg.flush()

    assert closed
    for c in closed:
        assert c.low <= c.open <= c.high
        assert c.low <= c.close <= c.high


def test_flush_emits_current_once():
    closed = []
    agg = CandleAggregator(60_000, closed.append)
    assert agg.flush() is None

    agg.ingest(_tick(0, 100.0))
    sealed = agg.flush()
    assert sealed is closed[0]
    assert agg.current is None
    assert agg.flush() is None
    assert len(closed) == 1


def test_invalid_interval_raises():
    with pytest.raises(ValueError):
        CandleAggregator(0, lambda c: None)
