# logcore

The low-level building blocks of a structured logger. You get levels, entries,
typed fields, JSON and console encoders, cores that filter and write entries,
and write syncers to send the output somewhere. It uses only the standard
library.

## Modules

- `logcore.entry`
  - `Level` runs from `DEBUG` to `FATAL`. `Level.enabled(level)` tells whether
    a level passes this minimum. `str(level)` gives the lower-case name and
    `capital_string()` gives the upper-case one.
  - `EntryCaller` is a call site. Its `full_path()` and `trimmed_path()`
    return `"undefined"` when the call site is not defined.
  - `new_entry_caller(pc, file, line, ok)` builds an `EntryCaller`.
  - `Entry` holds the level, time, logger name, message, caller and stack.
  - `CheckedEntry` is an entry together with the cores that accepted it.
    `write(*fields)` writes to every one of those cores and then runs the
    after-write hook. A second `write` does not log again. When
    `error_output` is set, that second write and any core write errors are
    reported to it.
  - `add_core` and `after` are module functions. They create a `CheckedEntry`
    when given `None`.
  - `CheckWriteAction` is a hook that can follow a write:
    - `WRITE_THEN_NOOP` does nothing.
    - `WRITE_THEN_GOEXIT` raises `AbortTask`.
    - `WRITE_THEN_PANIC` raises `RuntimeError` with the message.
    - `WRITE_THEN_FATAL` calls `sys.exit(1)`.
- `logcore.field`
  - `Field` and `FieldType` make up a typed key/value pair.
    `Field.add_to(enc)` marshals the pair into an encoder. If marshalling
    fails, the error goes under `<key>Error`, and an unknown type raises
    `ValueError`. `Field.equals(other)` compares two fields.
  - `encode_error` writes an error under its key. For exception groups, or
    objects with an `errors()` method, it adds a `<key>Causes` array.
  - `encode_stringer` writes `str(value)` under the key.
- `logcore.encoder`
  - `EncoderConfig` holds the entry keys, the line ending, the console
    separator and the primitive encoders. `EncoderConfig.from_mapping(data)`
    builds one from decoded JSON or YAML that uses camelCase keys such as
    `messageKey` and `timeEncoder`. A `timeEncoder` may be a name or
    `{"layout": ...}`.
  - Level encoders: `lowercase_level_encoder`, `capital_level_encoder`.
  - Time encoders:
    - `epoch_time_encoder`, `epoch_millis_time_encoder`,
      `epoch_nanos_time_encoder`
    - `iso8601_time_encoder`, `rfc3339_time_encoder`,
      `rfc3339nano_time_encoder`
    - `time_encoder_of_layout(layout)`
  - Duration encoders: `seconds_duration_encoder`, `nanos_duration_encoder`,
    `millis_duration_encoder`, `string_duration_encoder`.
  - Caller and name encoders: `full_caller_encoder`, `short_caller_encoder`,
    `full_name_encoder`.
  - `parse_level_encoder`, `parse_time_encoder`, `parse_duration_encoder`,
    `parse_caller_encoder` and `parse_name_encoder` choose an encoder by name.
  - `format_time_layout(t, layout)` formats a time using a reference layout
    such as `2006-01-02T15:04:05Z07:00`.
  - `format_duration(d)` renders a duration in a form like `1m0s`.
- `logcore.json_encoder`
  - `JSONEncoder` and `new_json_encoder(config)` produce one compact JSON
    object per entry.
  - Namespaces opened with `open_namespace` are closed at the end of the
    entry.
  - Keys are not deduplicated.
- `logcore.console_encoder`
  - `ConsoleEncoder` and `new_console_encoder(config)` print the entry's
    metadata as text, separated by `console_separator` (a tab by default).
  - The structured context follows as JSON, and a stack trace goes on its
    own line.
- `logcore.core`
  - `new_core(encoder, out, enabler)` returns an `IOCore`. Entries above
    `ERROR` also sync the output.
  - `register_hooks(core, *hooks)` returns a `HookedCore`. It calls each hook
    for every entry that is logged.
  - `new_increase_level_core(core, level)` returns a `LevelFilterCore`. It
    raises `ValueError` if the new level would lower the minimum level.
  - `NopCore` logs nothing.
  - `level_of(enabler)` gives the minimum enabled level.
- `logcore.writer`
  - `add_sync(writer)` wraps a plain writer so it has a `sync` method.
  - `lock(ws)` wraps a write syncer in a lock.
  - `new_multi_write_syncer(*ws)` sends each write to every syncer given.
  - `combine_write_syncers(*ws)` joins several syncers under a lock. With
    none, it returns `DiscardWriteSyncer`.
  - `open_sinks(*paths)` opens the given outputs and returns `(syncer, close)`.
    It accepts `stdout`, `stderr`, file paths and `file://` URLs with an
    empty host or `localhost`. Failures are raised together as an
    `ExceptionGroup`.
- `logcore.buffered`
  - `BufferedWriteSyncer(ws, size=0, flush_interval=0, clock=None)` batches
    writes in memory.
  - It flushes when the buffer is full or every flush interval. The defaults
    are 256 kB and 30 seconds.
  - Call `stop()` when you are done, or use it as a context manager.
- `logcore.clock`
  - `Clock`, `SystemClock`, `DEFAULT_CLOCK` and `Ticker` are the sources of
    time used for periodic flushing.

## Installing

```
pip install .
```

## Example

```python
from datetime import datetime, timezone

from logcore.core import new_core
from logcore.encoder import (
    EncoderConfig,
    epoch_time_encoder,
    lowercase_level_encoder,
    seconds_duration_encoder,
    short_caller_encoder,
)
from logcore.entry import Entry, Level
from logcore.field import Field, FieldType
from logcore.json_encoder import new_json_encoder
from logcore.writer import open_sinks

config = EncoderConfig(
    message_key="msg",
    level_key="level",
    time_key="ts",
    encode_level=lowercase_level_encoder,
    encode_time=epoch_time_encoder,
    encode_duration=seconds_duration_encoder,
    encode_caller=short_caller_encoder,
)

out, close = open_sinks("stdout")
core = new_core(new_json_encoder(config), out, Level.INFO)

entry = Entry(level=Level.INFO, time=datetime.now(timezone.utc), message="hello")
checked = core.check(entry, None)
if checked is not None:
    checked.write(Field(key="answer", type=FieldType.INT64, integer=42))
close()
```

`check` drops entries below the core's level by returning its `checked`
argument, here `None`, unchanged.

## What it does not do

This package contains no high-level logger. It has none of the following:

- a `Logger` class with `info` or `error` methods
- helper functions for building fields
- sampling
- a command-line program

Callers build `Entry` and `Field` values themselves and pass them through
`check` and `write`. `open_sinks` knows only standard streams and local
files, and offers no way to register other URL schemes.

## Running the tests

```
pip install .[test]
pytest
```