import queue
import threading
from datetime import datetime, timedelta, timezone

import pytest

from logcore.clock import DEFAULT_CLOCK, SystemClock, Ticker


def test_system_clock_ticker_delivers_ticks():
    ticker = DEFAULT_CLOCK.new_ticker(0.001)
    try:
        ticks = [ticker.get(timeout=2) for _ in range(3)]
    finally:
        ticker.stop()
    assert all(isinstance(tick, datetime) for tick in ticks)
    assert ticks == sorted(ticks)


def test_ticker_accepts_timedelta():
    ticker = SystemClock().new_ticker(timedelta(milliseconds=1))
    try:
        first = ticker.get(timeout=2)
        second = ticker.get(timeout=2)
    finally:
        ticker.stop()
    assert isinstance(first, datetime)
    assert isinstance(second, datetime)
    assert first <= second
    assert ticker.get(timeout=0.05) is None


def test_stopped_ticker_returns_none():
    ticker = Ticker(0.001)
    ticker.stop()
    assert ticker.get(timeout=0.05) is None


def test_stop_wakes_waiting_reader():
    ticker = Ticker(100)
    results = []
    reader = threading.Thread(target=lambda: results.append(ticker.get()))
    reader.start()
    ticker.stop()
    reader.join(timeout=2)
    assert not reader.is_alive()
    assert results == [None]


def test_get_times_out():
    ticker = Ticker(100)
    try:
        assert ticker.get(timeout=0.01) is None
    finally:
        ticker.stop()


def test_external_tick_queue():
    moment = datetime(2020, 1, 1, tzinfo=timezone.utc)
    ticks = queue.Queue()
    ticks.put(moment)
    ticker = Ticker(1, ticks)
    assert ticker.get(timeout=0) == moment
    assert ticker.get(timeout=0) is None


@pytest.mark.parametrize("interval", [0, -1, timedelta(0)])
def test_invalid_interval(interval):
    with pytest.raises(ValueError):
        Ticker(interval)


def test_now_is_current_local_time():
    now = SystemClock().now()
    assert now.tzinfo is not None
    assert abs((datetime.now(timezone.utc) - now).total_seconds()) < 5