"""A write syncer that buffers writes in memory and flushes them in batches."""

from __future__ import annotations

import threading
from datetime import timedelta
from typing import Any

from .clock import DEFAULT_CLOCK, Clock, Ticker

DEFAULT_BUFFER_SIZE = 256 * 1024
DEFAULT_FLUSH_INTERVAL = 30.0


def _seconds(interval: float | timedelta) -> float:
    if isinstance(interval, timedelta):
        return interval.total_seconds()
    return float(interval)


def _raise_all(errors: list[Exception]) -> None:
    if len(errors) == 1:
        raise errors[0]
    if errors:
        raise ExceptionGroup("sync failed", errors)


class BufferedWriteSyncer:
    """Buffers writes and flushes them to ``ws`` when full or at an interval.

    ``size`` defaults to 256 kB and ``flush_interval`` (seconds or a
    timedelta) to 30 seconds. Safe for use from several threads. Call
    ``stop`` (or use it as a context manager) when done with it.
    """

    def __init__(
        self,
        ws: Any,
        size: int = 0,
        flush_interval: float | timedelta = 0,
        clock: Clock | None = None,
    ) -> None:
        self.ws = ws
        self.size = size
        self.flush_interval = flush_interval
        self.clock = clock
        self._lock = threading.Lock()
        self._initialized = False
        self._stopped = False
        self._buffer = bytearray()
        self._capacity = 0
        self._error: Exception | None = None
        self._ticker: Ticker | None = None
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def __enter__(self) -> BufferedWriteSyncer:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.stop()

    def _initialize(self) -> None:
        self._capacity = self.size or DEFAULT_BUFFER_SIZE
        interval = _seconds(self.flush_interval) or DEFAULT_FLUSH_INTERVAL
        if self.clock is None:
            self.clock = DEFAULT_CLOCK
        self._ticker = self.clock.new_ticker(interval)
        self._initialized = True
        self._thread = threading.Thread(target=self._flush_loop, daemon=True)
        self._thread.start()

    def _available(self) -> int:
        return self._capacity - len(self._buffer)

    def _flush(self) -> None:
        if self._error is not None:
            raise self._error
        if not self._buffer:
            return
        try:
            self.ws.write(bytes(self._buffer))
        except Exception as exc:
            self._error = exc
            raise
        self._buffer.clear()

    def _write_buffered(self, data: bytes) -> None:
        if self._error is not None:
            raise self._error
        view = memoryview(data)
        while len(view) > self._available():
            if not self._buffer:
                try:
                    self.ws.write(bytes(view))
                except Exception as exc:
                    self._error = exc
                    raise
                return
            take = self._available()
            self._buffer.extend(view[:take])
            view = view[take:]
            self._flush()
        self._buffer.extend(view)

    def write(self, data: bytes) -> int:
        """Buffer ``data``; a write that does not fit flushes the buffer first."""
        data = bytes(data)
        with self._lock:
            if not self._initialized:
                self._initialize()
            if len(data) > self._available() and self._buffer:
                self._flush()
            self._write_buffered(data)
            return len(data)

    def sync(self) -> None:
        """Flush buffered data and sync the wrapped write syncer."""
        with self._lock:
            errors: list[Exception] = []
            if self._initialized:
                try:
                    self._flush()
                except Exception as exc:  # noqa: BLE001 - combined below
                    errors.append(exc)
            try:
                self.ws.sync()
            except Exception as exc:  # noqa: BLE001 - combined below
                errors.append(exc)
            _raise_all(errors)

    def _flush_loop(self) -> None:
        ticker = self._ticker
        while not self._stop_event.is_set():
            tick = ticker.get()
            if tick is None or self._stop_event.is_set():
                return
            try:
                self.sync()
            except Exception:  # noqa: BLE001 - the error is kept and reported by sync
                pass

    def stop(self) -> None:
        """Stop the periodic flushing and flush what remains.

        Only the first call flushes; later calls do nothing.
        """
        with self._lock:
            if not self._initialized or self._stopped:
                return
            self._stopped = True
            self._stop_event.set()
            self._ticker.stop()
            thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()
        self.sync()