import io

import pytest

from logcore.core import (
    HookedCore,
    LevelFilterCore,
    NopCore,
    level_of,
    new_core,
    new_increase_level_core,
    register_hooks,
)
from logcore.encoder import (
    EncoderConfig,
    epoch_time_encoder,
    lowercase_level_encoder,
    seconds_duration_encoder,
    short_caller_encoder,
)
from logcore.entry import CheckedEntry, Entry, Level
from logcore.field import Field, FieldType
from logcore.json_encoder import new_json_encoder
from logcore.writer import add_sync, lock


def int_field(key, value):
    return Field(key=key, type=FieldType.INT64, integer=value)


def config(**changes):
    values = dict(
        message_key="msg",
        level_key="level",
        name_key="name",
        time_key="ts",
        caller_key="caller",
        function_key="func",
        stacktrace_key="stacktrace",
        line_ending="\n",
        encode_time=epoch_time_encoder,
        encode_level=lowercase_level_encoder,
        encode_duration=seconds_duration_encoder,
        encode_caller=short_caller_encoder,
    )
    values.update(changes)
    return EncoderConfig(**values)


class RecordingSink:
    def __init__(self, error=None):
        self.error = error
        self.synced = 0
        self.data = b""

    def write(self, data):
        self.data += data
        return len(data)

    def sync(self):
        self.synced += 1
        if self.error is not None:
            raise self.error


class FailWriter:
    def write(self, data):
        raise OSError("failed")

    def sync(self):
        return None


def memory_core(level):
    buf = io.BytesIO()
    core = new_core(new_json_encoder(config(time_key="")), add_sync(buf), level)
    return core, buf


def lines(buf):
    return [line for line in buf.getvalue().decode().split("\n") if line]


ALL_LEVELS = list(Level)


def test_io_core(tmp_path):
    path = tmp_path / "test.log"
    with open(path, "wb") as handle:
        core = new_core(
            new_json_encoder(config(time_key="")), add_sync(handle), Level.INFO
        ).with_fields([int_field("k", 1)])
        assert level_of(core) == Level.INFO

        for level, message, value in [
            (Level.DEBUG, "debug", 2),
            (Level.INFO, "info", 3),
            (Level.WARN, "warn", 4),
        ]:
            ce = core.check(Entry(level=level, message=message), None)
            if ce is not None:
                ce.write(int_field("k", value))
        core.sync()

    assert path.read_text() == (
        '{"level":"info","msg":"info","k":1,"k":3}\n'
        '{"level":"warn","msg":"warn","k":1,"k":4}\n'
    )


def test_io_core_sync_fail():
    err = OSError("failed")
    core = new_core(new_json_encoder(config()), RecordingSink(err), Level.DEBUG)
    with pytest.raises(OSError) as info:
        core.sync()
    assert info.value is err


@pytest.mark.parametrize(
    "level, should_sync",
    [
        (Level.DEBUG, False),
        (Level.INFO, False),
        (Level.WARN, False),
        (Level.ERROR, False),
        (Level.DPANIC, True),
        (Level.PANIC, True),
        (Level.FATAL, True),
    ],
)
def test_io_core_syncs_output(level, should_sync):
    sink = RecordingSink()
    core = new_core(new_json_encoder(config()), sink, Level.DEBUG)
    core.write(Entry(level=level), [])
    assert (sink.synced > 0) is should_sync
    assert sink.data.endswith(b"\n")


def test_io_core_ignores_sync_error_on_high_level():
    sink = RecordingSink(OSError("nope"))
    core = new_core(new_json_encoder(config(time_key="")), sink, Level.DEBUG)
    core.write(Entry(level=Level.FATAL, message="m"), [])
    assert sink.data == b'{"level":"fatal","msg":"m"}\n'


def test_io_core_write_failure():
    core = new_core(new_json_encoder(config()), lock(FailWriter()), Level.DEBUG)
    with pytest.raises(OSError, match="failed"):
        core.write(Entry(), [])


@pytest.mark.parametrize(
    "entry_level, core_level, expect_call",
    [
        (Level.DEBUG, Level.INFO, False),
        (Level.INFO, Level.INFO, True),
        (Level.WARN, Level.INFO, True),
    ],
)
def test_hooks(entry_level, core_level, expect_call):
    core, buf = memory_core(core_level)
    assert level_of(core) == core_level

    ent = Entry(message="bar", level=entry_level)
    seen = []
    hooked = register_hooks(core, seen.append)
    ce = hooked.with_fields([int_field("foo", 42)]).check(ent, None)
    if ce is not None:
        ce.write()

    assert level_of(hooked) == core_level
    if expect_call:
        assert seen == [ent]
        assert lines(buf) == [f'{{"level":"{entry_level}","msg":"bar","foo":42}}']
    else:
        assert seen == []
        assert lines(buf) == []


def test_hook_errors_are_raised():
    core, _ = memory_core(Level.DEBUG)

    def failing(entry):
        raise ValueError("hook failed")

    single = register_hooks(core, failing)
    with pytest.raises(ValueError, match="hook failed"):
        single.write(Entry(), [])

    double = register_hooks(core, failing, failing)
    with pytest.raises(ExceptionGroup) as info:
        double.write(Entry(), [])
    assert len(info.value.exceptions) == 2


def test_hooked_core_delegates():
    sink = RecordingSink()
    core = new_core(new_json_encoder(config()), sink, Level.WARN)
    hooked = register_hooks(core)
    assert isinstance(hooked, HookedCore)
    assert hooked.enabled(Level.ERROR) is True
    assert hooked.enabled(Level.INFO) is False
    hooked.sync()
    assert sink.synced == 1


@pytest.mark.parametrize(
    "core_level, increase_level, want_err, with_fields",
    [
        (Level.INFO, Level.DEBUG, True, []),
        (Level.INFO, Level.INFO, False, []),
        (Level.INFO, Level.ERROR, False, []),
        (Level.INFO, Level.ERROR, False, [Field(key="k", type=FieldType.STRING, string="v")]),
        (Level.ERROR, Level.DEBUG, True, []),
        (Level.ERROR, Level.INFO, True, []),
        (Level.ERROR, Level.WARN, True, []),
        (Level.ERROR, Level.PANIC, False, []),
    ],
)
def test_increase_level(core_level, increase_level, want_err, with_fields):
    core, buf = memory_core(core_level)
    assert level_of(core) == core_level

    if want_err:
        with pytest.raises(ValueError, match="invalid increase level"):
            new_increase_level_core(core, increase_level)
        return

    filtered = new_increase_level_core(core, increase_level)
    if with_fields:
        filtered = filtered.with_fields(with_fields)
    assert isinstance(filtered, LevelFilterCore)
    assert level_of(filtered) == increase_level

    for level in ALL_LEVELS:
        before = len(lines(buf))
        enabled = filtered.enabled(level)
        entry = Entry(level=level)
        ce = filtered.check(entry, None)
        if ce is not None:
            ce.write()
        written = len(lines(buf)) - before

        if level >= increase_level:
            assert enabled is True
            assert ce is not None
            assert written == 1
        else:
            assert enabled is False
            assert ce is None
            assert written == 0

        before = len(lines(buf))
        filtered.write(entry, [])
        filtered.sync()
        assert len(lines(buf)) == before + 1

    if with_fields:
        assert all('"k":"v"' in line for line in lines(buf))