import pytest

from logcore.entry import (
    AbortTask,
    CheckedEntry,
    CheckWriteAction,
    Entry,
    EntryCaller,
    Level,
    add_core,
    after,
    new_entry_caller,
)


class Recorder:
    def __init__(self):
        self.chunks = []
        self.synced = 0

    def write(self, data):
        self.chunks.append(bytes(data))
        return len(data)

    def sync(self):
        self.synced += 1

    @property
    def text(self):
        return b"".join(self.chunks).decode()


class RecordingCore:
    def __init__(self, error=None):
        self.written = []
        self.error = error

    def write(self, entry, fields):
        self.written.append((entry, fields))
        if self.error is not None:
            raise self.error


class CustomHook:
    def __init__(self):
        self.calls = []

    def on_write(self, checked, fields):
        self.calls.append((checked, fields))


@pytest.mark.parametrize(
    "caller, full, short",
    [
        (new_entry_caller(100, "/path/to/foo.go", 42, False), "undefined", "undefined"),
        (new_entry_caller(100, "/path/to/foo.go", 42, True), "/path/to/foo.go:42", "to/foo.go:42"),
        (new_entry_caller(100, "to/foo.go", 42, True), "to/foo.go:42", "to/foo.go:42"),
    ],
)
def test_entry_caller(caller, full, short):
    assert str(caller) == full
    assert caller.full_path() == full
    assert caller.trimmed_path() == short


def test_new_entry_caller_fields():
    caller = new_entry_caller(7, "a/b.py", 3, True)
    assert caller == EntryCaller(defined=True, pc=7, file="a/b.py", line=3)


def test_level_strings():
    assert [str(level) for level in Level] == [
        "debug", "info", "warn", "error", "dpanic", "panic", "fatal",
    ]
    assert Level.DPANIC.capital_string() == "DPANIC"
    assert f"{Level.WARN}" == "warn"


def test_level_enabled():
    assert Level.INFO.enabled(Level.WARN)
    assert Level.INFO.enabled(Level.INFO)
    assert not Level.INFO.enabled(Level.DEBUG)


def test_default_entry_level_is_info():
    assert Entry().level is Level.INFO


def test_new_checked_entry_is_clean():
    checked = CheckedEntry()
    assert checked.cores == ()
    assert checked.hook is None
    assert checked.error_output is None


def test_write_then_panic():
    checked = after(None, Entry(message="boom"), CheckWriteAction.WRITE_THEN_PANIC)
    with pytest.raises(RuntimeError, match="boom"):
        checked.write()


def test_write_then_goexit():
    checked = after(None, Entry(), CheckWriteAction.WRITE_THEN_GOEXIT)
    with pytest.raises(AbortTask):
        checked.write()


def test_write_then_fatal():
    checked = after(None, Entry(), CheckWriteAction.WRITE_THEN_FATAL)
    with pytest.raises(SystemExit) as info:
        checked.write()
    assert info.value.code == 1


def test_should_sets_action():
    checked = CheckedEntry().should(Entry(), CheckWriteAction.WRITE_THEN_PANIC)
    assert checked.hook is CheckWriteAction.WRITE_THEN_PANIC


def test_custom_hook_called_with_fields():
    hook = CustomHook()
    checked = after(None, Entry(), hook)
    checked.write("a", "b")
    assert len(hook.calls) == 1
    assert hook.calls[0][0] is checked
    assert hook.calls[0][1] == ["a", "b"]


def test_add_core_on_none_creates_entry():
    entry = Entry(message="hi")
    core = RecordingCore()
    checked = add_core(None, entry, core)
    assert checked.entry is entry
    assert checked.cores == (core,)


def test_write_reaches_every_core():
    entry = Entry(message="hello")
    first, second = RecordingCore(), RecordingCore()
    checked = add_core(add_core(None, entry, first), entry, second)
    checked.write("field")
    assert first.written == [(entry, ["field"])]
    assert second.written == [(entry, ["field"])]


def test_write_errors_reported_to_error_output():
    entry = Entry(message="hello")
    output = Recorder()
    checked = add_core(None, entry, RecordingCore(ValueError("first")))
    checked.add_core(entry, RecordingCore(ValueError("second")))
    checked.error_output = output
    checked.write()
    assert "write error: first; second" in output.text
    assert output.synced == 1


def test_reuse_is_detected():
    entry = Entry(message="hello")
    core = RecordingCore()
    output = Recorder()
    checked = add_core(None, entry, core)
    checked.error_output = output
    checked.write()
    checked.write()
    assert len(core.written) == 1
    assert "Unsafe CheckedEntry re-use" in output.text