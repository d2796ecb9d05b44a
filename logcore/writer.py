"""Write syncers: destinations that accept bytes and can be flushed."""

from __future__ import annotations

import io
import os
import re
import sys
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence
from urllib.parse import unquote, urlsplit

_SCHEME_PREFIX = re.compile(r"^([^/?#:]*):")
_VALID_SCHEME = re.compile(r"[A-Za-z][A-Za-z0-9+.\-]*")


def _as_bytes(data: Any) -> bytes:
    if isinstance(data, str):
        return data.encode("utf-8")
    return bytes(data)


def _raise_combined(errors: list[Exception], message: str) -> None:
    if len(errors) == 1:
        raise errors[0]
    if errors:
        raise ExceptionGroup(message, errors)


class SyncedWriter:
    """Gives a plain writer a ``sync`` method that flushes it."""

    def __init__(self, writer: Any) -> None:
        self.writer = writer

    def write(self, data: Any) -> int:
        payload = _as_bytes(data)
        if isinstance(self.writer, io.TextIOBase):
            self.writer.write(payload.decode("utf-8", errors="replace"))
            return len(payload)
        written = self.writer.write(payload)
        return len(payload) if written is None else written

    def sync(self) -> None:
        flush = getattr(self.writer, "flush", None)
        if callable(flush):
            flush()


class LockedWriteSyncer:
    """Serialises access to a write syncer with a lock."""

    def __init__(self, ws: Any) -> None:
        self.ws = ws
        self._lock = threading.Lock()

    def write(self, data: Any) -> int:
        with self._lock:
            return self.ws.write(data)

    def sync(self) -> None:
        with self._lock:
            self.ws.sync()


class MultiWriteSyncer:
    """Duplicates writes and syncs to several write syncers."""

    def __init__(self, writers: Sequence[Any]) -> None:
        self.writers = tuple(writers)

    def write(self, data: Any) -> int:
        payload = _as_bytes(data)
        errors: list[Exception] = []
        counts: list[int] = []
        for writer in self.writers:
            try:
                written = writer.write(payload)
            except Exception as exc:  # noqa: BLE001 - combined below
                errors.append(exc)
                continue
            counts.append(len(payload) if written is None else written)
        _raise_combined(errors, "write failed")
        return min(counts, default=len(payload))

    def sync(self) -> None:
        errors: list[Exception] = []
        for writer in self.writers:
            try:
                writer.sync()
            except Exception as exc:  # noqa: BLE001 - combined below
                errors.append(exc)
        _raise_combined(errors, "sync failed")


@dataclass
class DiscardWriteSyncer:
    """Accepts and drops every write, keeping count of what it dropped."""

    discarded: int = field(default=0, compare=False)
    syncs: int = field(default=0, compare=False)

    def write(self, data: Any) -> int:
        size = len(data)
        self.discarded += size
        return size

    def sync(self) -> None:
        self.syncs += 1


def add_sync(writer: Any) -> Any:
    """Return ``writer`` as a write syncer, wrapping it if it has no sync."""
    if callable(getattr(writer, "write", None)) and callable(getattr(writer, "sync", None)):
        return writer
    return SyncedWriter(writer)


def lock(ws: Any) -> LockedWriteSyncer:
    """Wrap ``ws`` in a lock, unless it is already locked."""
    if isinstance(ws, LockedWriteSyncer):
        return ws
    return LockedWriteSyncer(ws)


def new_multi_write_syncer(*writers: Any) -> Any:
    """Combine write syncers so each write goes to all of them."""
    if len(writers) == 1:
        return writers[0]
    return MultiWriteSyncer(writers)


def combine_write_syncers(*writers: Any) -> Any:
    """Combine write syncers into one locked syncer; discard if none."""
    if not writers:
        return DiscardWriteSyncer()
    return lock(new_multi_write_syncer(*writers))


class _FileSink:
    def __init__(self, path: str) -> None:
        self._file = open(path, "ab", buffering=0)  # noqa: SIM115 - closed by close()

    def write(self, data: Any) -> int:
        return self._file.write(_as_bytes(data))

    def sync(self) -> None:
        os.fsync(self._file.fileno())

    def close(self) -> None:
        self._file.close()


class _StreamSink(SyncedWriter):
    def close(self) -> None:
        # Standard streams stay open; flush what is pending instead.
        self.sync()


def _open_file_url(path: str) -> _FileSink:
    parts = urlsplit(path)
    if parts.username is not None or parts.password is not None:
        raise ValueError(f"user and password not allowed with file URLs: got {path}")
    if parts.fragment:
        raise ValueError(f"fragments not allowed with file URLs: got {path}")
    if parts.query:
        raise ValueError(f"query parameters not allowed with file URLs: got {path}")
    try:
        port = parts.port
    except ValueError as exc:
        raise ValueError(f"invalid port in file URL: got {path}") from exc
    if port is not None:
        raise ValueError(f"ports not allowed with file URLs: got {path}")
    if parts.hostname not in (None, "", "localhost"):
        raise ValueError(f"file URLs must leave host empty or use localhost: got {path}")
    return _FileSink(unquote(parts.path))


def _new_sink(path: str) -> Any:
    match = _SCHEME_PREFIX.match(path)
    if match is None:
        if path == "stdout":
            return _StreamSink(sys.stdout)
        if path == "stderr":
            return _StreamSink(sys.stderr)
        return _FileSink(path)
    scheme = match.group(1)
    if not scheme:
        raise ValueError(f"parse {path!r}: missing protocol scheme")
    if not _VALID_SCHEME.fullmatch(scheme):
        raise ValueError(f"parse {path!r}: first path segment in URL cannot contain colon")
    if scheme.lower() == "file":
        return _open_file_url(path)
    raise ValueError(f"no sink found for scheme {scheme!r}")


def _wrap_error(path: str, exc: Exception) -> Exception:
    prefix = f"open sink {path!r}: "
    try:
        if isinstance(exc, OSError) and exc.errno is not None:
            wrapped: Exception = type(exc)(exc.errno, prefix + (exc.strerror or ""), exc.filename)
        else:
            wrapped = type(exc)(prefix + str(exc))
    except TypeError:
        wrapped = ValueError(prefix + str(exc))
    wrapped.__cause__ = exc
    return wrapped


def open_sinks(*paths: str) -> tuple[Any, Callable[[], None]]:
    """Open every path and combine them into one locked write syncer.

    Paths may be ``stdout``, ``stderr``, file paths or ``file://`` URLs.
    Returns the syncer and a function closing the opened files. If any path
    fails, the opened ones are closed and an ExceptionGroup is raised.
    """
    sinks: list[Any] = []
    errors: list[Exception] = []
    for path in paths:
        try:
            sinks.append(_new_sink(path))
        except Exception as exc:  # noqa: BLE001 - gathered into a group
            errors.append(_wrap_error(path, exc))

    def close() -> None:
        for sink in sinks:
            sink.close()

    if errors:
        close()
        raise ExceptionGroup("failed to open sinks", errors)
    return combine_write_syncers(*sinks), close