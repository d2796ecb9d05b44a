"""Primitive encoders for levels, times, durations, callers and names, and encoder configuration."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping

from .entry import EntryCaller, Level

DEFAULT_LINE_ENDING = "\n"
OMIT_KEY = ""

LevelEncoder = Callable[[Level, Any], None]
TimeEncoder = Callable[[datetime, Any], None]
DurationEncoder = Callable[[Any], None] | Callable[[Any, Any], None]
CallerEncoder = Callable[[EntryCaller, Any], None]
NameEncoder = Callable[[str, Any], None]

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MICROSECOND = timedelta(microseconds=1)
_SECOND_NS = 1_000_000_000

RFC3339 = "2006-01-02T15:04:05Z07:00"
RFC3339_NANO = "2006-01-02T15:04:05.999999999Z07:00"
ISO8601 = "2006-01-02T15:04:05.000Z0700"

_MONTHS = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)
_DAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")
_ZONE_TOKENS = ("070000", "07:00:00", "0700", "07:00", "07")


def _text(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8")
    if isinstance(value, str):
        return value
    raise ValueError(f"expected text, got {type(value).__name__}")


# Levels.

def lowercase_level_encoder(level: Level, enc: Any) -> None:
    """Append the level as a lower-case string, e.g. ``info``."""
    enc.append_string(str(level))


def capital_level_encoder(level: Level, enc: Any) -> None:
    """Append the level as an upper-case string, e.g. ``INFO``."""
    enc.append_string(level.capital_string())


def parse_level_encoder(text: str | bytes) -> LevelEncoder:
    """Choose a level encoder by name: ``capital``, anything else lower case."""
    if _text(text) == "capital":
        return capital_level_encoder
    return lowercase_level_encoder


# Times.

def _aware(t: datetime) -> datetime:
    return t if t.tzinfo is not None else t.astimezone()


def _unix_nanos(t: datetime) -> int:
    return (_aware(t) - _EPOCH) // _MICROSECOND * 1000


def epoch_time_encoder(t: datetime, enc: Any) -> None:
    """Append seconds since the Unix epoch as a float."""
    enc.append_float(_unix_nanos(t) / _SECOND_NS)


def epoch_millis_time_encoder(t: datetime, enc: Any) -> None:
    """Append milliseconds since the Unix epoch as a float."""
    enc.append_float(_unix_nanos(t) / 1_000_000)


def epoch_nanos_time_encoder(t: datetime, enc: Any) -> None:
    """Append nanoseconds since the Unix epoch as an integer."""
    enc.append_int(_unix_nanos(t))


def _next_token(layout: str, i: int) -> tuple[str, int] | None:
    rest = layout[i:]
    c = rest[0]
    if c == "J":
        if rest.startswith("January"):
            return "January", 7
        if rest.startswith("Jan"):
            return "Jan", 3
    elif c == "M":
        if rest.startswith("Monday"):
            return "Monday", 6
        if rest.startswith("Mon"):
            return "Mon", 3
        if rest.startswith("MST"):
            return "MST", 3
    elif c == "0":
        if len(rest) > 1 and rest[1] in "123456":
            return rest[:2], 2
        if rest.startswith("002"):
            return "002", 3
    elif c == "1":
        if rest.startswith("15"):
            return "15", 2
        return "1", 1
    elif c == "2":
        if rest.startswith("2006"):
            return "2006", 4
        return "2", 1
    elif c == "_":
        if rest.startswith("_2") and not rest.startswith("_2006"):
            return "_2", 2
        if rest.startswith("__2"):
            return "__2", 3
    elif c in "345":
        return c, 1
    elif c == "P":
        if rest.startswith("PM"):
            return "PM", 2
    elif c == "p":
        if rest.startswith("pm"):
            return "pm", 2
    elif c in "-Z":
        for token in _ZONE_TOKENS:
            if rest.startswith(token, 1):
                return c + token, 1 + len(token)
    elif c in ".,":
        if len(rest) > 1 and rest[1] in "09":
            j = 1
            while j < len(rest) and rest[j] == rest[1]:
                j += 1
            if not (j < len(rest) and rest[j].isdigit()):
                return rest[:j], j
    return None


def _offset_seconds(t: datetime) -> int:
    delta = t.utcoffset()
    return int(delta.total_seconds()) if delta is not None else 0


def _render_zone(token: str, offset: int) -> str:
    if token[0] == "Z" and offset == 0:
        return "Z"
    sign = "-" if offset < 0 else "+"
    hours, rem = divmod(abs(offset), 3600)
    minutes, seconds = divmod(rem, 60)
    body = token[1:]
    if body == "07":
        return f"{sign}{hours:02d}"
    colon = ":" if ":" in body else ""
    text = f"{sign}{hours:02d}{colon}{minutes:02d}"
    if body in ("070000", "07:00:00"):
        text += f"{colon}{seconds:02d}"
    return text


def _zone_name(t: datetime) -> str:
    name = t.tzname()
    if name and not (name.startswith("UTC") and name != "UTC"):
        return name
    offset = _offset_seconds(t) // 60
    sign = "-" if offset < 0 else "+"
    hours, minutes = divmod(abs(offset), 60)
    return f"{sign}{hours:02d}{minutes:02d}"


def _render_fraction(token: str, nanos: int) -> str:
    digits = f"{nanos:09d}"[: min(len(token) - 1, 9)]
    if token[1] == "9":
        digits = digits.rstrip("0")
        if not digits:
            return ""
    return token[0] + digits


def _render(token: str, t: datetime) -> str:
    hour12 = t.hour % 12 or 12
    year_day = t.timetuple().tm_yday
    simple = {
        "January": _MONTHS[t.month - 1],
        "Jan": _MONTHS[t.month - 1][:3],
        "Monday": _DAYS[t.weekday()],
        "Mon": _DAYS[t.weekday()][:3],
        "01": f"{t.month:02d}",
        "1": str(t.month),
        "02": f"{t.day:02d}",
        "2": str(t.day),
        "_2": f"{t.day:2d}",
        "002": f"{year_day:03d}",
        "__2": f"{year_day:3d}",
        "06": f"{t.year % 100:02d}",
        "2006": f"{t.year:04d}",
        "15": f"{t.hour:02d}",
        "3": str(hour12),
        "03": f"{hour12:02d}",
        "04": f"{t.minute:02d}",
        "4": str(t.minute),
        "05": f"{t.second:02d}",
        "5": str(t.second),
        "PM": "PM" if t.hour >= 12 else "AM",
        "pm": "pm" if t.hour >= 12 else "am",
    }
    if token in simple:
        return simple[token]
    if token == "MST":
        return _zone_name(t)
    if token[0] in "-Z":
        return _render_zone(token, _offset_seconds(t))
    return _render_fraction(token, t.microsecond * 1000)


def format_time_layout(t: datetime, layout: str) -> str:
    """Format ``t`` with a reference-time layout such as ``2006-01-02T15:04:05Z07:00``."""
    t = _aware(t)
    out: list[str] = []
    i = 0
    while i < len(layout):
        found = _next_token(layout, i)
        if found is None:
            out.append(layout[i])
            i += 1
            continue
        token, size = found
        out.append(_render(token, t))
        i += size
    return "".join(out)


def _encode_time_layout(t: datetime, layout: str, enc: Any) -> None:
    append_layout = getattr(enc, "append_time_layout", None)
    if callable(append_layout):
        append_layout(t, layout)
        return
    enc.append_string(format_time_layout(t, layout))


def iso8601_time_encoder(t: datetime, enc: Any) -> None:
    """Append an ISO8601 string with millisecond precision."""
    _encode_time_layout(t, ISO8601, enc)


def rfc3339_time_encoder(t: datetime, enc: Any) -> None:
    """Append an RFC3339 string."""
    _encode_time_layout(t, RFC3339, enc)


def rfc3339nano_time_encoder(t: datetime, enc: Any) -> None:
    """Append an RFC3339 string with sub-second precision."""
    _encode_time_layout(t, RFC3339_NANO, enc)


def time_encoder_of_layout(layout: str) -> TimeEncoder:
    """Return a time encoder that formats with ``layout``."""

    def encode(t: datetime, enc: Any) -> None:
        _encode_time_layout(t, layout, enc)

    return encode


_TIME_ENCODERS: dict[str, TimeEncoder] = {
    "rfc3339nano": rfc3339nano_time_encoder,
    "RFC3339Nano": rfc3339nano_time_encoder,
    "rfc3339": rfc3339_time_encoder,
    "RFC3339": rfc3339_time_encoder,
    "iso8601": iso8601_time_encoder,
    "ISO8601": iso8601_time_encoder,
    "millis": epoch_millis_time_encoder,
    "nanos": epoch_nanos_time_encoder,
}


def parse_time_encoder(value: Any) -> TimeEncoder:
    """Choose a time encoder from a name or a mapping with a ``layout`` key.

    Unknown names give the epoch-seconds encoder. Raises ValueError for
    values of any other shape.
    """
    if isinstance(value, Mapping):
        layout = value.get("layout", "")
        if layout is None:
            layout = ""
        return time_encoder_of_layout(_text(layout))
    return _TIME_ENCODERS.get(_text(value), epoch_time_encoder)


# Durations.

def _duration_nanos(d: Any) -> int:
    if isinstance(d, timedelta):
        return d // _MICROSECOND * 1000
    return int(d)


def _decimal(value: int, precision: int) -> str:
    whole, frac = divmod(value, 10**precision)
    digits = f"{frac:0{precision}d}".rstrip("0")
    return f"{whole}.{digits}" if digits else str(whole)


def format_duration(d: Any) -> str:
    """Render a duration in nanoseconds (or a timedelta) like ``1h2m3.5s``."""
    nanos = _duration_nanos(d)
    if nanos == 0:
        return "0s"
    sign = "-" if nanos < 0 else ""
    u = abs(nanos)
    if u < _SECOND_NS:
        if u < 1_000:
            return f"{sign}{u}ns"
        if u < 1_000_000:
            return f"{sign}{_decimal(u, 3)}µs"
        return f"{sign}{_decimal(u, 6)}ms"
    seconds, frac = divmod(u, _SECOND_NS)
    text = _decimal((seconds % 60) * _SECOND_NS + frac, 9) + "s"
    minutes = seconds // 60
    if minutes:
        text = f"{minutes % 60}m" + text
        hours = minutes // 60
        if hours:
            text = f"{hours}h" + text
    return sign + text


def seconds_duration_encoder(d: Any, enc: Any) -> None:
    """Append the duration as floating-point seconds."""
    enc.append_float(_duration_nanos(d) / _SECOND_NS)


def nanos_duration_encoder(d: Any, enc: Any) -> None:
    """Append the duration as integer nanoseconds."""
    enc.append_int(_duration_nanos(d))


def millis_duration_encoder(d: Any, enc: Any) -> None:
    """Append the duration as integer milliseconds, truncated toward zero."""
    nanos = _duration_nanos(d)
    millis = abs(nanos) // 1_000_000
    enc.append_int(-millis if nanos < 0 else millis)


def string_duration_encoder(d: Any, enc: Any) -> None:
    """Append the duration in its human-readable form."""
    enc.append_string(format_duration(d))


def parse_duration_encoder(text: str | bytes) -> Callable[[Any, Any], None]:
    """Choose a duration encoder: ``string``, ``nanos``, ``ms``, else seconds."""
    name = _text(text)
    if name == "string":
        return string_duration_encoder
    if name == "nanos":
        return nanos_duration_encoder
    if name == "ms":
        return millis_duration_encoder
    return seconds_duration_encoder


# Callers and names.

def full_caller_encoder(caller: EntryCaller, enc: Any) -> None:
    """Append the caller as ``/full/path/file:line``."""
    enc.append_string(caller.full_path())


def short_caller_encoder(caller: EntryCaller, enc: Any) -> None:
    """Append the caller as ``dir/file:line``."""
    enc.append_string(caller.trimmed_path())


def parse_caller_encoder(text: str | bytes) -> CallerEncoder:
    """Choose a caller encoder: ``full``, anything else short."""
    if _text(text) == "full":
        return full_caller_encoder
    return short_caller_encoder


def full_name_encoder(name: str, enc: Any) -> None:
    """Append the logger name unchanged."""
    enc.append_string(name)


def parse_name_encoder(text: str | bytes) -> NameEncoder:
    """Choose a name encoder; every name gives the full-name encoder."""
    _text(text)
    return full_name_encoder


# Configuration.

_STRING_KEYS = {
    "messageKey": "message_key",
    "levelKey": "level_key",
    "timeKey": "time_key",
    "nameKey": "name_key",
    "callerKey": "caller_key",
    "functionKey": "function_key",
    "stacktraceKey": "stacktrace_key",
    "lineEnding": "line_ending",
    "consoleSeparator": "console_separator",
}

_ENCODER_KEYS: dict[str, tuple[str, Callable[[Any], Any]]] = {
    "levelEncoder": ("encode_level", parse_level_encoder),
    "timeEncoder": ("encode_time", parse_time_encoder),
    "durationEncoder": ("encode_duration", parse_duration_encoder),
    "callerEncoder": ("encode_caller", parse_caller_encoder),
    "nameEncoder": ("encode_name", parse_name_encoder),
}


@dataclass
class EncoderConfig:
    """Keys and primitive encoders used by the entry encoders.

    An empty key leaves that part of the entry out. ``new_reflected_encoder``
    is an optional callable turning an arbitrary value into JSON text.
    """

    message_key: str = ""
    level_key: str = ""
    time_key: str = ""
    name_key: str = ""
    caller_key: str = ""
    function_key: str = ""
    stacktrace_key: str = ""
    skip_line_ending: bool = False
    line_ending: str = ""
    encode_level: LevelEncoder | None = None
    encode_time: TimeEncoder | None = None
    encode_duration: Callable[[Any, Any], None] | None = None
    encode_caller: CallerEncoder | None = None
    encode_name: NameEncoder | None = None
    new_reflected_encoder: Callable[[Any], str] | None = None
    console_separator: str = ""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> EncoderConfig:
        """Build a config from decoded JSON or YAML using camelCase keys.

        Unknown keys and null values are ignored; values of the wrong shape
        raise ValueError.
        """
        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            if value is None:
                continue
            if key in _STRING_KEYS:
                if not isinstance(value, str):
                    raise ValueError(f"{key}: expected a string, got {value!r}")
                kwargs[_STRING_KEYS[key]] = value
            elif key == "skipLineEnding":
                if not isinstance(value, bool):
                    raise ValueError(f"{key}: expected a boolean, got {value!r}")
                kwargs["skip_line_ending"] = value
            elif key in _ENCODER_KEYS:
                attr, parse = _ENCODER_KEYS[key]
                try:
                    kwargs[attr] = parse(value)
                except ValueError as exc:
                    raise ValueError(f"{key}: {exc}") from exc
        return cls(**kwargs)