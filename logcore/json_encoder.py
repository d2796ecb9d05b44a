"""A JSON encoder for log entries and their structured context."""

from __future__ import annotations

import base64
import dataclasses
import json
import math
import re
import struct
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Iterable

from .encoder import (
    DEFAULT_LINE_ENDING,
    RFC3339_NANO,
    EncoderConfig,
    format_time_layout,
    full_name_encoder,
)
from .entry import Entry
from .field import Field, add_fields

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MICROSECOND = timedelta(microseconds=1)

_ESCAPE_RE = re.compile('[\x00-\x1f"\\\\\ud800-\udfff]')
_ESCAPES = {
    "\\": "\\\\",
    '"': '\\"',
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
}


def _escape_char(match: re.Match[str]) -> str:
    char = match.group()
    known = _ESCAPES.get(char)
    if known is not None:
        return known
    code = ord(char)
    if code >= 0xD800:
        return "\\ufffd"
    return f"\\u{code:04x}"


def _escape(text: str) -> str:
    return _ESCAPE_RE.sub(_escape_char, text)


def _to_float32(value: float) -> float:
    try:
        return struct.unpack("f", struct.pack("f", value))[0]
    except OverflowError:
        return math.copysign(math.inf, value)


def _format_float(value: float, bits: int) -> str:
    """Shortest decimal form without an exponent, as used inside JSON numbers."""
    value = float(value)
    if bits == 32:
        value = _to_float32(value)
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if bits == 32:
        digits = repr(value)
        for precision in range(1, 10):
            candidate = f"{value:.{precision}g}"
            if _to_float32(float(candidate)) == value:
                digits = candidate
                break
    else:
        digits = repr(value)
    text = format(Decimal(digits), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def _duration_nanos(value: Any) -> int:
    if isinstance(value, timedelta):
        return value // _MICROSECOND * 1000
    return int(value)


def _unix_nanos(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.astimezone()
    return (value - _EPOCH) // _MICROSECOND * 1000


def _json_default(obj: Any) -> Any:
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {item.name: getattr(obj, item.name) for item in dataclasses.fields(obj)}
    if isinstance(obj, (bytes, bytearray)):
        return base64.b64encode(bytes(obj)).decode("ascii")
    if isinstance(obj, (set, frozenset)):
        return list(obj)
    if isinstance(obj, datetime):
        return format_time_layout(obj, RFC3339_NANO)
    if isinstance(obj, timedelta):
        return _duration_nanos(obj)
    if hasattr(obj, "__dict__") and not callable(obj):
        return {k: v for k, v in vars(obj).items() if not k.startswith("_")}
    raise TypeError(f"json: unsupported type: {type(obj).__name__}")


def default_reflected_encoder(value: Any) -> str:
    """Serialise an arbitrary value to compact JSON text."""
    return json.dumps(
        value,
        ensure_ascii=False,
        allow_nan=False,
        separators=(",", ":"),
        default=_json_default,
    )


class _Buffer:
    __slots__ = ("parts", "length")

    def __init__(self) -> None:
        self.parts: list[str] = []
        self.length = 0

    def append(self, text: str) -> None:
        if text:
            self.parts.append(text)
            self.length += len(text)

    def last(self) -> str:
        return self.parts[-1][-1] if self.parts else ""

    def text(self) -> str:
        return "".join(self.parts)


class JSONEncoder:
    """Encodes entries and context fields as JSON objects, one per line.

    Keys are not deduplicated, so the same key may appear more than once.
    """

    def __init__(self, config: EncoderConfig, spaced: bool = False) -> None:
        cfg = dataclasses.replace(config)
        if cfg.skip_line_ending:
            cfg.line_ending = ""
        elif not cfg.line_ending:
            cfg.line_ending = DEFAULT_LINE_ENDING
        if cfg.new_reflected_encoder is None:
            cfg.new_reflected_encoder = default_reflected_encoder
        self.config = cfg
        self.spaced = spaced
        self._buf = _Buffer()
        self._open_namespaces = 0

    # Internals shared with other entry encoders.

    def _empty_like(self) -> JSONEncoder:
        clone = JSONEncoder.__new__(JSONEncoder)
        clone.config = self.config
        clone.spaced = self.spaced
        clone._buf = _Buffer()
        clone._open_namespaces = self._open_namespaces
        return clone

    def _contents(self) -> str:
        return self._buf.text()

    def _close_open_namespaces(self) -> None:
        self._buf.append("}" * self._open_namespaces)
        self._open_namespaces = 0

    def _add_element_separator(self) -> None:
        last = self._buf.last()
        if not last or last in "{[:, ":
            return
        self._buf.append(", " if self.spaced else ",")

    def _add_key(self, key: str) -> None:
        self._add_element_separator()
        self._buf.append(f'"{_escape(key)}":')
        if self.spaced:
            self._buf.append(" ")

    def _encode_reflected(self, value: Any) -> str:
        if value is None:
            return "null"
        text = self.config.new_reflected_encoder(value)
        if isinstance(text, (bytes, bytearray)):
            text = bytes(text).decode("utf-8")
        if text.endswith("\n"):
            text = text[:-1]
        return text

    def _append_complex(self, value: complex, bits: int) -> None:
        self._add_element_separator()
        value = complex(value)
        real, imag = value.real, value.imag
        if bits == 32:
            real, imag = _to_float32(real), _to_float32(imag)
        sign = "+" if imag >= 0 else ""
        self._buf.append(f'"{_format_float(real, bits)}{sign}{_format_float(imag, bits)}i"')

    def _append_float(self, value: float, bits: int) -> None:
        self._add_element_separator()
        text = _format_float(value, bits)
        if text in ("NaN", "+Inf", "-Inf"):
            text = f'"{text}"'
        self._buf.append(text)

    # Object encoder.

    def add_array(self, key: str, marshaler: Any) -> None:
        self._add_key(key)
        self.append_array(marshaler)

    def add_object(self, key: str, marshaler: Any) -> None:
        self._add_key(key)
        self.append_object(marshaler)

    def add_binary(self, key: str, value: bytes) -> None:
        self.add_string(key, base64.b64encode(bytes(value)).decode("ascii"))

    def add_byte_string(self, key: str, value: bytes) -> None:
        self._add_key(key)
        self.append_byte_string(value)

    def add_bool(self, key: str, value: bool) -> None:
        self._add_key(key)
        self.append_bool(value)

    def add_complex(self, key: str, value: complex) -> None:
        self._add_key(key)
        self.append_complex(value)

    def add_complex64(self, key: str, value: complex) -> None:
        self._add_key(key)
        self.append_complex64(value)

    def add_duration(self, key: str, value: Any) -> None:
        self._add_key(key)
        self.append_duration(value)

    def add_float(self, key: str, value: float) -> None:
        self._add_key(key)
        self.append_float(value)

    def add_float32(self, key: str, value: float) -> None:
        self._add_key(key)
        self.append_float32(value)

    def add_int(self, key: str, value: int) -> None:
        self._add_key(key)
        self.append_int(value)

    def add_uint(self, key: str, value: int) -> None:
        self._add_key(key)
        self.append_uint(value)

    def add_string(self, key: str, value: str) -> None:
        self._add_key(key)
        self.append_string(value)

    def add_time(self, key: str, value: datetime) -> None:
        self._add_key(key)
        self.append_time(value)

    def add_reflected(self, key: str, value: Any) -> None:
        """Add ``value`` serialised by the reflected encoder; its errors propagate."""
        text = self._encode_reflected(value)
        self._add_key(key)
        self._buf.append(text)

    def open_namespace(self, key: str) -> None:
        """Nest all later fields inside an object under ``key``."""
        self._add_key(key)
        self._buf.append("{")
        self._open_namespaces += 1

    # Array encoder.

    def append_array(self, marshaler: Any) -> None:
        self._add_element_separator()
        self._buf.append("[")
        try:
            marshaler.marshal_log_array(self)
        finally:
            self._buf.append("]")

    def append_object(self, marshaler: Any) -> None:
        old = self._open_namespaces
        self._open_namespaces = 0
        self._add_element_separator()
        self._buf.append("{")
        try:
            marshaler.marshal_log_object(self)
        finally:
            self._buf.append("}")
            self._close_open_namespaces()
            self._open_namespaces = old

    def append_bool(self, value: bool) -> None:
        self._add_element_separator()
        self._buf.append("true" if value else "false")

    def append_byte_string(self, value: bytes) -> None:
        self._add_element_separator()
        text = bytes(value).decode("utf-8", errors="surrogateescape")
        self._buf.append(f'"{_escape(text)}"')

    def append_complex(self, value: complex) -> None:
        self._append_complex(value, 64)

    def append_complex64(self, value: complex) -> None:
        self._append_complex(value, 32)

    def append_duration(self, value: Any) -> None:
        before = self._buf.length
        encode = self.config.encode_duration
        if encode is not None:
            encode(value, self)
        if before == self._buf.length:
            self.append_int(_duration_nanos(value))

    def append_float(self, value: float) -> None:
        self._append_float(value, 64)

    def append_float32(self, value: float) -> None:
        self._append_float(value, 32)

    def append_int(self, value: int) -> None:
        self._add_element_separator()
        self._buf.append(str(int(value)))

    def append_uint(self, value: int) -> None:
        self._add_element_separator()
        self._buf.append(str(int(value)))

    def append_string(self, value: str) -> None:
        self._add_element_separator()
        self._buf.append(f'"{_escape(value)}"')

    def append_time(self, value: datetime) -> None:
        before = self._buf.length
        encode = self.config.encode_time
        if encode is not None:
            encode(value, self)
        if before == self._buf.length:
            self.append_int(_unix_nanos(value))

    def append_time_layout(self, t: datetime, layout: str) -> None:
        self._add_element_separator()
        self._buf.append(f'"{format_time_layout(t, layout)}"')

    def append_reflected(self, value: Any) -> None:
        text = self._encode_reflected(value)
        self._add_element_separator()
        self._buf.append(text)

    # Entry encoder.

    def clone(self) -> JSONEncoder:
        """Copy the encoder; fields added to the copy leave this one alone."""
        clone = self._empty_like()
        clone._buf.append(self._buf.text())
        return clone

    def encode_entry(self, entry: Entry, fields: Iterable[Field] | None) -> str:
        """Encode an entry, the accumulated context and ``fields`` as one JSON line."""
        cfg = self.config
        final = self._empty_like()
        final._buf.append("{")

        if cfg.level_key and cfg.encode_level is not None:
            final._add_key(cfg.level_key)
            before = final._buf.length
            cfg.encode_level(entry.level, final)
            if before == final._buf.length:
                final.append_string(str(entry.level))
        if cfg.time_key:
            final.add_time(cfg.time_key, entry.time)
        if entry.logger_name and cfg.name_key:
            final._add_key(cfg.name_key)
            before = final._buf.length
            (cfg.encode_name or full_name_encoder)(entry.logger_name, final)
            if before == final._buf.length:
                final.append_string(entry.logger_name)
        if entry.caller.defined:
            if cfg.caller_key:
                final._add_key(cfg.caller_key)
                before = final._buf.length
                if cfg.encode_caller is not None:
                    cfg.encode_caller(entry.caller, final)
                if before == final._buf.length:
                    final.append_string(str(entry.caller))
            if cfg.function_key:
                final._add_key(cfg.function_key)
                final.append_string(entry.caller.function)
        if cfg.message_key:
            final._add_key(cfg.message_key)
            final.append_string(entry.message)
        if self._buf.length > 0:
            final._add_element_separator()
            final._buf.append(self._buf.text())
        add_fields(final, fields or ())
        final._close_open_namespaces()
        if entry.stack and cfg.stacktrace_key:
            final.add_string(cfg.stacktrace_key, entry.stack)
        final._buf.append("}")
        final._buf.append(cfg.line_ending)
        return final._buf.text()


def new_json_encoder(config: EncoderConfig) -> JSONEncoder:
    """Create a compact JSON encoder from ``config``."""
    return JSONEncoder(config)