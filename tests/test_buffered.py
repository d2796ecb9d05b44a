import queue
import threading
import time
from datetime import datetime, timezone

import pytest

from logcore.buffered import BufferedWriteSyncer
from logcore.clock import Clock, Ticker


class _BytesSink:
    def __init__(self) -> None:
        self.data = bytearray()
        self.syncs = 0
        self._lock = threading.Lock()

    def write(self, data: bytes) -> int:
        with self._lock:
            self.data.extend(data)
        return len(data)

    def sync(self) -> None:
        self.syncs += 1

    def text(self) -> str:
        with self._lock:
            return self.data.decode()


class _FailWriteSink:
    def write(self, data: bytes) -> int:
        raise OSError("failed")

    def sync(self) -> None:
        return None


class _FailAllSink:
    def write(self, data: bytes) -> int:
        raise OSError("write failed")

    def sync(self) -> None:
        raise OSError("sync failed")


class _MockClock(Clock):
    def __init__(self) -> None:
        self.queues: list[queue.Queue] = []

    def now(self) -> datetime:
        return datetime(1970, 1, 1, tzinfo=timezone.utc)

    def new_ticker(self, interval):
        ticks: queue.Queue = queue.Queue()
        self.queues.append(ticks)
        return Ticker(interval, ticks)

    def tick(self) -> None:
        for ticks in self.queues:
            ticks.put(self.now())


def _wait_for(predicate, timeout=2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


def _write_foo(ws: BufferedWriteSyncer) -> None:
    assert ws.write(b"foo") == 3


def test_sync_flushes_buffer():
    sink = _BytesSink()
    ws = BufferedWriteSyncer(sink)
    _write_foo(ws)
    assert sink.text() == ""
    ws.sync()
    assert sink.text() == "foo"
    ws.stop()
    assert sink.text() == "foo"


def test_stop_flushes_buffer():
    sink = _BytesSink()
    ws = BufferedWriteSyncer(sink)
    _write_foo(ws)
    assert sink.text() == ""
    ws.stop()
    assert sink.text() == "foo"


def test_context_manager_stops():
    sink = _BytesSink()
    with BufferedWriteSyncer(sink) as ws:
        _write_foo(ws)
        assert sink.text() == ""
    assert sink.text() == "foo"


def test_stop_twice_only_first_fails():
    ws = BufferedWriteSyncer(_FailWriteSink())
    assert ws.write(b"foo") == 3
    with pytest.raises(OSError, match="failed"):
        ws.stop()
    assert ws.stop() is None


def test_wrap_twice():
    sink = _BytesSink()
    inner = BufferedWriteSyncer(sink)
    ws = BufferedWriteSyncer(inner)
    _write_foo(ws)
    assert sink.text() == ""
    ws.sync()
    assert sink.text() == "foo"
    ws.stop()
    inner.stop()
    assert sink.text() == "foo"


def test_small_buffer_flushes_before_overflow():
    sink = _BytesSink()
    ws = BufferedWriteSyncer(sink, size=5)
    _write_foo(ws)
    assert sink.text() == ""
    _write_foo(ws)
    assert sink.text() == "foo"
    ws.stop()
    assert sink.text() == "foofoo"


def test_large_write_into_empty_buffer_goes_straight_through():
    sink = _BytesSink()
    ws = BufferedWriteSyncer(sink, size=4)
    assert ws.write(b"0123456789") == 10
    assert sink.text() == "0123456789"
    ws.stop()
    assert sink.text() == "0123456789"


def test_flush_error_is_reported_by_write_and_stop():
    ws = BufferedWriteSyncer(_FailWriteSink(), size=4)
    assert ws.write(b"foo") == 3
    with pytest.raises(OSError):
        ws.write(b"foo")
    with pytest.raises(OSError):
        ws.stop()


def test_flush_and_sync_errors_are_combined():
    ws = BufferedWriteSyncer(_FailAllSink())
    ws.write(b"foo")
    with pytest.raises(ExceptionGroup) as info:
        ws.sync()
    messages = sorted(str(exc) for exc in info.value.exceptions)
    assert messages == ["sync failed", "write failed"]
    with pytest.raises(ExceptionGroup):
        ws.stop()


def test_flush_timer():
    sink = _BytesSink()
    clock = _MockClock()
    ws = BufferedWriteSyncer(sink, size=6, flush_interval=1e-6, clock=clock)
    _write_foo(ws)
    clock.tick()
    assert _wait_for(lambda: sink.text() == "foo")

    _write_foo(ws)
    clock.tick()
    assert _wait_for(lambda: sink.text() == "foofoo")
    ws.stop()
    assert sink.text() == "foofoo"


def test_concurrent_writes_are_all_flushed():
    sink = _BytesSink()
    ws = BufferedWriteSyncer(sink, size=16)

    def worker() -> None:
        for _ in range(50):
            ws.write(b"ab")

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    ws.stop()
    assert sink.text() == "ab" * 200


def test_stop_without_start():
    sink = _BytesSink()
    ws = BufferedWriteSyncer(sink)
    assert ws.stop() is None
    assert sink.text() == ""
    assert sink.syncs == 0


def test_sync_without_start():
    sink = _BytesSink()
    ws = BufferedWriteSyncer(sink)
    assert ws.sync() is None
    assert sink.syncs == 1
    assert sink.text() == ""