"""Sources of time and periodic tickers."""

from __future__ import annotations

import queue
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta

_STOPPED = object()


def _seconds(interval: float | timedelta) -> float:
    if isinstance(interval, timedelta):
        return interval.total_seconds()
    return float(interval)


class Ticker:
    """Delivers the time at a fixed interval until stopped.

    When no queue of ticks is given, a background thread produces them from
    the system clock. At most one tick waits unread; slow readers miss ticks.
    """

    def __init__(self, interval: float | timedelta, ticks: queue.Queue | None = None) -> None:
        seconds = _seconds(interval)
        if seconds <= 0:
            raise ValueError("non-positive interval for ticker")
        self.interval = seconds
        self._stopped = threading.Event()
        if ticks is None:
            self._ticks: queue.Queue = queue.Queue(maxsize=1)
            thread = threading.Thread(target=self._run, daemon=True)
            thread.start()
        else:
            self._ticks = ticks

    def _run(self) -> None:
        while not self._stopped.wait(self.interval):
            try:
                self._ticks.put_nowait(datetime.now().astimezone())
            except queue.Full:
                pass

    def get(self, timeout: float | None = None) -> datetime | None:
        """Wait for the next tick; None once stopped or on timeout."""
        if self._stopped.is_set():
            return None
        try:
            item = self._ticks.get(timeout=timeout)
        except queue.Empty:
            return None
        if item is _STOPPED:
            try:
                self._ticks.put_nowait(_STOPPED)
            except queue.Full:
                pass
            return None
        return item

    def stop(self) -> None:
        """Stop the ticker and wake any waiting reader."""
        self._stopped.set()
        while True:
            try:
                self._ticks.get_nowait()
            except queue.Empty:
                break
        try:
            self._ticks.put_nowait(_STOPPED)
        except queue.Full:
            pass


class Clock(ABC):
    """A source of time for log entries and flushing."""

    @abstractmethod
    def now(self) -> datetime:
        """Return the current local time."""

    @abstractmethod
    def new_ticker(self, interval: float | timedelta) -> Ticker:
        """Return a ticker firing every ``interval``."""


class SystemClock(Clock):
    """A clock backed by the system time."""

    def now(self) -> datetime:
        return datetime.now().astimezone()

    def new_ticker(self, interval: float | timedelta) -> Ticker:
        return Ticker(interval)


DEFAULT_CLOCK = SystemClock()