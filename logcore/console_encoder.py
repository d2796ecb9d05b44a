"""A plain-text encoder for people reading logs, with JSON context."""

from __future__ import annotations

import dataclasses
import math
import struct
from decimal import Decimal
from typing import Any, Iterable

from .encoder import EncoderConfig, format_duration, full_name_encoder
from .entry import Entry
from .field import Field, add_fields
from .json_encoder import JSONEncoder


def _float32(value: float) -> float:
    try:
        return struct.unpack("f", struct.pack("f", value))[0]
    except OverflowError:
        return math.copysign(math.inf, value)


def _shortest_digits(value: float, bits: int) -> str:
    if bits == 32:
        for precision in range(1, 10):
            candidate = f"{value:.{precision}g}"
            if _float32(float(candidate)) == value:
                return candidate
    return repr(value)


def _format_float(value: float, bits: int = 64) -> str:
    """Render a float the way a general-purpose value printer does: ``0``, ``1.5``, ``1e+07``."""
    value = float(value)
    if bits == 32:
        value = _float32(value)
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if value == 0:
        return "-0" if math.copysign(1.0, value) < 0 else "0"
    number = Decimal(_shortest_digits(value, bits)).normalize()
    sign, digit_tuple, exponent = number.as_tuple()
    digits = "".join(map(str, digit_tuple))
    exp10 = len(digits) + exponent - 1
    prefix = "-" if sign else ""
    if exp10 < -4 or exp10 >= 6:
        mantissa = digits[0] + ("." + digits[1:] if len(digits) > 1 else "")
        exp_sign = "-" if exp10 < 0 else "+"
        return f"{prefix}{mantissa}e{exp_sign}{abs(exp10):02d}"
    return format(number, "f")


def _format_complex(value: complex, bits: int) -> str:
    real = _format_float(value.real, bits // 2)
    imag = _format_float(value.imag, bits // 2)
    if not imag.startswith(("-", "+")):
        imag = "+" + imag
    return f"({real}{imag}i)"


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, _Float):
        return _format_float(value.value, value.bits)
    if isinstance(value, _Complex):
        return _format_complex(value.value, value.bits)
    if isinstance(value, _Duration):
        return format_duration(value.value)
    if isinstance(value, float):
        return _format_float(value)
    return str(value)


@dataclasses.dataclass(frozen=True)
class _Float:
    value: float
    bits: int


@dataclasses.dataclass(frozen=True)
class _Complex:
    value: complex
    bits: int


@dataclasses.dataclass(frozen=True)
class _Duration:
    value: Any


class _SliceEncoder:
    """Collects primitive values appended by the metadata encoders."""

    def __init__(self) -> None:
        self.elems: list[Any] = []

    def append_bool(self, value: bool) -> None:
        self.elems.append(bool(value))

    def append_byte_string(self, value: bytes) -> None:
        self.elems.append(bytes(value).decode("utf-8", errors="replace"))

    def append_complex(self, value: complex) -> None:
        self.elems.append(_Complex(complex(value), 128))

    def append_complex64(self, value: complex) -> None:
        self.elems.append(_Complex(complex(value), 64))

    def append_float(self, value: float) -> None:
        self.elems.append(_Float(float(value), 64))

    def append_float32(self, value: float) -> None:
        self.elems.append(_Float(float(value), 32))

    def append_int(self, value: int) -> None:
        self.elems.append(int(value))

    def append_uint(self, value: int) -> None:
        self.elems.append(int(value))

    def append_string(self, value: str) -> None:
        self.elems.append(value)

    def append_duration(self, value: Any) -> None:
        self.elems.append(_Duration(value))

    def append_time(self, value: Any) -> None:
        self.elems.append(value)


class ConsoleEncoder(JSONEncoder):
    """Writes entry metadata as separated plain text and the context as JSON.

    Entry keys are not printed, but any part whose key is empty is left out.
    """

    def __init__(self, config: EncoderConfig) -> None:
        cfg = dataclasses.replace(config)
        if not cfg.console_separator:
            cfg.console_separator = "\t"
        super().__init__(cfg, spaced=True)

    def clone(self) -> ConsoleEncoder:
        """Copy the encoder; fields added to the copy leave this one alone."""
        copy = ConsoleEncoder.__new__(ConsoleEncoder)
        vars(copy).update(vars(super().clone()))
        return copy

    def encode_entry(self, entry: Entry, fields: Iterable[Field] | None) -> str:
        """Encode an entry as one line of text followed by its JSON context."""
        cfg = self.config
        sep = cfg.console_separator

        arr = _SliceEncoder()
        if cfg.time_key and cfg.encode_time is not None:
            cfg.encode_time(entry.time, arr)
        if cfg.level_key and cfg.encode_level is not None:
            cfg.encode_level(entry.level, arr)
        if entry.logger_name and cfg.name_key:
            (cfg.encode_name or full_name_encoder)(entry.logger_name, arr)
        if entry.caller.defined:
            if cfg.caller_key and cfg.encode_caller is not None:
                cfg.encode_caller(entry.caller, arr)
            if cfg.function_key:
                arr.append_string(entry.caller.function)

        line = sep.join(_format_value(elem) for elem in arr.elems)

        if cfg.message_key:
            if line:
                line += sep
            line += entry.message

        context = self._context_text(fields or ())
        if context:
            if line:
                line += sep
            line += "{" + context + "}"

        if entry.stack and cfg.stacktrace_key:
            line += "\n" + entry.stack

        return line + cfg.line_ending

    def _context_text(self, fields: Iterable[Field]) -> str:
        context = JSONEncoder.clone(self)
        add_fields(context, fields)
        context._close_open_namespaces()
        return context._contents()


def new_console_encoder(config: EncoderConfig) -> ConsoleEncoder:
    """Create a console encoder; the separator defaults to a tab."""
    return ConsoleEncoder(config)