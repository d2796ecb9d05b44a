"""Typed key-value fields and how they are added to an encoder."""

from __future__ import annotations

import contextlib
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import IntEnum
from typing import Any, Callable, Iterable

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class FieldType(IntEnum):
    """Which value a Field carries and how it is serialised."""

    UNKNOWN = 0
    ARRAY_MARSHALER = 1
    OBJECT_MARSHALER = 2
    BINARY = 3
    BOOL = 4
    BYTE_STRING = 5
    COMPLEX128 = 6
    COMPLEX64 = 7
    DURATION = 8
    FLOAT64 = 9
    FLOAT32 = 10
    INT64 = 11
    INT32 = 12
    INT16 = 13
    INT8 = 14
    STRING = 15
    TIME = 16
    TIME_FULL = 17
    UINT64 = 18
    UINT32 = 19
    UINT16 = 20
    UINT8 = 21
    UINTPTR = 22
    REFLECT = 23
    NAMESPACE = 24
    STRINGER = 25
    ERROR = 26
    SKIP = 27
    INLINE_MARSHALER = 28


def _signed(value: int, bits: int) -> int:
    value &= (1 << bits) - 1
    if value >= 1 << (bits - 1):
        value -= 1 << bits
    return value


def _unsigned(value: int, bits: int) -> int:
    return value & ((1 << bits) - 1)


def _describe(exc: BaseException) -> str:
    try:
        return str(exc)
    except Exception:  # noqa: BLE001 - the description itself failed
        return f"<unprintable {type(exc).__name__}>"


def _guarded(func: Callable[[Any], Any], value: Any) -> Any:
    try:
        return func(value)
    except Exception as exc:  # noqa: BLE001 - reported as a PANIC error
        raise RuntimeError(f"PANIC={_describe(exc)}") from exc


def _error_text(err: BaseException) -> str:
    if isinstance(err, BaseExceptionGroup) and not callable(getattr(err, "errors", None)):
        return "; ".join(_error_text(inner) for inner in err.exceptions)
    return str(err)


def _causes_of(err: Any) -> list[Any] | None:
    errors = getattr(err, "errors", None)
    if callable(errors):
        return list(errors())
    if isinstance(err, BaseExceptionGroup):
        return list(err.exceptions)
    return None


def _verbose_text(err: Any) -> str | None:
    try:
        return format(err, "+v")
    except (TypeError, ValueError):
        return None


class _ErrorElement:
    """Encodes one error as ``{"error": ...}``."""

    def __init__(self, err: Any) -> None:
        self.err = err

    def marshal_log_array(self, arr: Any) -> None:
        arr.append_object(self)

    def marshal_log_object(self, enc: Any) -> None:
        encode_error("error", self.err, enc)


class _ErrorArray:
    """Encodes a list of errors, skipping None entries."""

    def __init__(self, errors: Iterable[Any]) -> None:
        self.errors = list(errors)

    def marshal_log_array(self, arr: Any) -> None:
        for err in self.errors:
            if err is None:
                continue
            with contextlib.suppress(Exception):
                arr.append_object(_ErrorElement(err))


def encode_error(key: str, err: Any, enc: Any) -> None:
    """Add ``err`` under ``key``, with ``<key>Causes`` or ``<key>Verbose`` when available.

    Raises RuntimeError with a ``PANIC=`` message if describing the error fails.
    """
    if err is None:
        enc.add_string(key, "<nil>")
        return
    basic = _guarded(_error_text, err)
    enc.add_string(key, basic)

    causes = _guarded(_causes_of, err)
    if causes is not None:
        enc.add_array(key + "Causes", _ErrorArray(causes))
        return

    verbose = _guarded(_verbose_text, err)
    if verbose is not None and verbose != basic:
        enc.add_string(key + "Verbose", verbose)


def encode_stringer(key: str, value: Any, enc: Any) -> None:
    """Add ``str(value)`` under ``key``; ``<nil>`` for None.

    Raises RuntimeError with a ``PANIC=`` message if ``str`` fails.
    """
    if value is None:
        enc.add_string(key, "<nil>")
        return
    text = _guarded(str, value)
    enc.add_string(key, text)


def _deep_equal(a: Any, b: Any) -> bool:
    if isinstance(a, BaseException) or isinstance(b, BaseException):
        if type(a) is not type(b):
            return False
        if isinstance(a, BaseExceptionGroup):
            return (
                a.message == b.message
                and len(a.exceptions) == len(b.exceptions)
                and all(_deep_equal(x, y) for x, y in zip(a.exceptions, b.exceptions))
            )
        return a.args == b.args
    return a == b


@dataclass(frozen=True)
class Field:
    """A lazily marshalled key-value pair for a logger's context.

    Integers, booleans (1 is true), durations in nanoseconds and times as
    nanoseconds since the epoch live in ``integer``; strings in ``string``;
    everything else, floats included, in ``interface``. For TIME fields
    ``interface`` may hold the tzinfo to present the time in.
    """

    key: str = ""
    type: FieldType = FieldType.UNKNOWN
    integer: int = 0
    string: str = ""
    interface: Any = None

    def add_to(self, enc: Any) -> None:
        """Add this field to an object encoder.

        Errors raised while marshalling are recorded as ``<key>Error``.
        Raises ValueError for a field of unknown type.
        """
        try:
            self._add(enc)
        except _UnknownFieldType:
            raise ValueError(f"unknown field type: {self!r}") from None
        except Exception as exc:  # noqa: BLE001 - recorded in the output
            enc.add_string(f"{self.key}Error", _error_text(exc))

    def _add(self, enc: Any) -> None:
        key = self.key
        match self.type:
            case FieldType.ARRAY_MARSHALER:
                enc.add_array(key, self.interface)
            case FieldType.OBJECT_MARSHALER:
                enc.add_object(key, self.interface)
            case FieldType.INLINE_MARSHALER:
                self.interface.marshal_log_object(enc)
            case FieldType.BINARY:
                enc.add_binary(key, bytes(self.interface))
            case FieldType.BOOL:
                enc.add_bool(key, self.integer == 1)
            case FieldType.BYTE_STRING:
                enc.add_byte_string(key, bytes(self.interface))
            case FieldType.COMPLEX128:
                enc.add_complex(key, complex(self.interface))
            case FieldType.COMPLEX64:
                enc.add_complex64(key, complex(self.interface))
            case FieldType.DURATION:
                enc.add_duration(key, _signed(self.integer, 64))
            case FieldType.FLOAT64:
                enc.add_float(key, float(self.interface))
            case FieldType.FLOAT32:
                enc.add_float32(key, float(self.interface))
            case FieldType.INT64:
                enc.add_int(key, _signed(self.integer, 64))
            case FieldType.INT32:
                enc.add_int(key, _signed(self.integer, 32))
            case FieldType.INT16:
                enc.add_int(key, _signed(self.integer, 16))
            case FieldType.INT8:
                enc.add_int(key, _signed(self.integer, 8))
            case FieldType.STRING:
                enc.add_string(key, self.string)
            case FieldType.TIME:
                moment = _EPOCH + timedelta(microseconds=self.integer // 1000)
                if self.interface is not None:
                    enc.add_time(key, moment.astimezone(self.interface))
                else:
                    enc.add_time(key, moment.astimezone())
            case FieldType.TIME_FULL:
                enc.add_time(key, self.interface)
            case FieldType.UINT64 | FieldType.UINTPTR:
                enc.add_uint(key, _unsigned(self.integer, 64))
            case FieldType.UINT32:
                enc.add_uint(key, _unsigned(self.integer, 32))
            case FieldType.UINT16:
                enc.add_uint(key, _unsigned(self.integer, 16))
            case FieldType.UINT8:
                enc.add_uint(key, _unsigned(self.integer, 8))
            case FieldType.REFLECT:
                enc.add_reflected(key, self.interface)
            case FieldType.NAMESPACE:
                enc.open_namespace(key)
            case FieldType.STRINGER:
                encode_stringer(key, self.interface, enc)
            case FieldType.ERROR:
                encode_error(key, self.interface, enc)
            case FieldType.SKIP:
                pass
            case _:
                raise _UnknownFieldType()

    def equals(self, other: Field) -> bool:
        """Report whether two fields are equal, comparing complex values deeply."""
        if self.type != other.type or self.key != other.key:
            return False
        match self.type:
            case FieldType.BINARY | FieldType.BYTE_STRING:
                return bytes(self.interface) == bytes(other.interface)
            case (
                FieldType.ARRAY_MARSHALER
                | FieldType.OBJECT_MARSHALER
                | FieldType.ERROR
                | FieldType.REFLECT
            ):
                return _deep_equal(self.interface, other.interface)
            case _:
                return self == other


class _UnknownFieldType(Exception):
    pass


def add_fields(enc: Any, fields: Iterable[Field]) -> None:
    """Add every field to ``enc`` in order."""
    for item in fields:
        item.add_to(enc)