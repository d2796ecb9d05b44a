"""Log levels, call sites, entries and checked entries."""

from __future__ import annotations

import contextlib
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any, Sequence

ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)


class Level(IntEnum):
    """Logging priority; higher values are more important."""

    DEBUG = -1
    INFO = 0
    WARN = 1
    ERROR = 2
    DPANIC = 3
    PANIC = 4
    FATAL = 5

    def __str__(self) -> str:
        return self.name.lower()

    def __format__(self, spec: str) -> str:
        return format(str(self), spec)

    def capital_string(self) -> str:
        """Return the upper-case name of the level."""
        return self.name

    def enabled(self, level: int) -> bool:
        """Report whether messages at ``level`` pass this minimum level."""
        return level >= self


@dataclass(frozen=True)
class EntryCaller:
    """The call site of a logging function."""

    defined: bool = False
    pc: int = 0
    file: str = ""
    line: int = 0
    function: str = ""

    def __str__(self) -> str:
        return self.full_path()

    def full_path(self) -> str:
        """Return ``/full/path/to/file:line``, or ``undefined``."""
        if not self.defined:
            return "undefined"
        return f"{self.file}:{self.line}"

    def trimmed_path(self) -> str:
        """Return ``dir/file:line``, keeping only the leaf directory."""
        if not self.defined:
            return "undefined"
        last = self.file.rfind("/")
        if last == -1:
            return self.full_path()
        previous = self.file.rfind("/", 0, last)
        if previous == -1:
            return self.full_path()
        return f"{self.file[previous + 1:]}:{self.line}"


def new_entry_caller(pc: int, file: str, line: int, ok: bool) -> EntryCaller:
    """Build an EntryCaller; an undefined one when ``ok`` is false."""
    if not ok:
        return EntryCaller()
    return EntryCaller(defined=True, pc=pc, file=file, line=line)


@dataclass
class Entry:
    """A complete log message apart from its structured context."""

    level: Level = Level.INFO
    time: datetime = ZERO_TIME
    logger_name: str = ""
    message: str = ""
    caller: EntryCaller = field(default_factory=EntryCaller)
    stack: str = ""


class AbortTask(BaseException):
    """Raised to end the current task after an entry is written."""


class CheckWriteAction(IntEnum):
    """What to do after an entry is written, in increasing severity."""

    WRITE_THEN_NOOP = 0
    WRITE_THEN_GOEXIT = 1
    WRITE_THEN_PANIC = 2
    WRITE_THEN_FATAL = 3

    def on_write(self, checked: CheckedEntry, fields: Sequence[Any]) -> None:
        """Carry out the action for a written entry."""
        if self is CheckWriteAction.WRITE_THEN_GOEXIT:
            raise AbortTask()
        if self is CheckWriteAction.WRITE_THEN_PANIC:
            raise RuntimeError(checked.entry.message)
        if self is CheckWriteAction.WRITE_THEN_FATAL:
            sys.exit(1)


def _error_text(exc: BaseException) -> str:
    if isinstance(exc, BaseExceptionGroup):
        return "; ".join(_error_text(inner) for inner in exc.exceptions)
    return str(exc)


class CheckedEntry:
    """An entry together with the cores that agreed to log it."""

    def __init__(self, entry: Entry | None = None, error_output: Any = None) -> None:
        self.entry = entry if entry is not None else Entry()
        self.error_output = error_output
        self._dirty = False
        self._hook: Any = None
        self._cores: list[Any] = []

    @property
    def cores(self) -> tuple[Any, ...]:
        """The cores that will receive the entry."""
        return tuple(self._cores)

    @property
    def hook(self) -> Any:
        """The hook run after writing, if any."""
        return self._hook

    def add_core(self, entry: Entry, core: Any) -> CheckedEntry:
        """Add a core that agreed to log this entry."""
        self._cores.append(core)
        return self

    def after(self, entry: Entry, hook: Any) -> CheckedEntry:
        """Set the hook called once the entry has been written."""
        self._hook = hook
        return self

    def should(self, entry: Entry, action: CheckWriteAction) -> CheckedEntry:
        """Set a CheckWriteAction as the after-write hook."""
        return self.after(entry, action)

    def write(self, *fields: Any) -> None:
        """Write the entry to every core, then run the hook."""
        if self._dirty:
            if self.error_output is not None:
                self._report(
                    f"{self.entry.time} Unsafe CheckedEntry re-use near Entry {self.entry!r}.\n"
                )
            return
        self._dirty = True

        field_list = list(fields)
        errors: list[Exception] = []
        for core in self._cores:
            try:
                core.write(self.entry, field_list)
            except Exception as exc:  # noqa: BLE001 - reported to error output
                errors.append(exc)
        if errors and self.error_output is not None:
            text = "; ".join(_error_text(exc) for exc in errors)
            self._report(f"{self.entry.time} write error: {text}\n")

        if self._hook is not None:
            self._hook.on_write(self, field_list)

    def _report(self, message: str) -> None:
        with contextlib.suppress(Exception):
            self.error_output.write(message.encode("utf-8"))
            self.error_output.sync()


def add_core(checked: CheckedEntry | None, entry: Entry, core: Any) -> CheckedEntry:
    """Add ``core`` to ``checked``, creating the checked entry if it is None."""
    if checked is None:
        checked = CheckedEntry(entry)
    return checked.add_core(entry, core)


def after(checked: CheckedEntry | None, entry: Entry, hook: Any) -> CheckedEntry:
    """Set ``hook`` on ``checked``, creating the checked entry if it is None."""
    if checked is None:
        checked = CheckedEntry(entry)
    return checked.after(entry, hook)