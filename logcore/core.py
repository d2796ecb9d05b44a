"""Cores: the pieces that decide whether to log an entry and write it out."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Callable, ClassVar, Iterable, Sequence

from .entry import CheckedEntry, Entry, Level, add_core
from .field import Field, add_fields


def level_of(enabler: Any) -> Level | None:
    """Return the minimum level ``enabler`` allows, or None if it allows none."""
    if isinstance(enabler, Level):
        return enabler
    level = getattr(enabler, "level", None)
    if callable(level):
        return level()
    for candidate in Level:
        if enabler.enabled(candidate):
            return candidate
    return None


def _raise_all(errors: list[Exception]) -> None:
    if len(errors) == 1:
        raise errors[0]
    if errors:
        raise ExceptionGroup("hooks failed", errors)


@dataclass
class NopCore:
    """A core that logs nothing; it only counts what it was handed."""

    _ENABLED_LEVELS: ClassVar[frozenset[int]] = frozenset()

    dropped: int = field(default=0, compare=False)
    syncs: int = field(default=0, compare=False)

    def enabled(self, level: int) -> bool:
        return level in self._ENABLED_LEVELS

    def with_fields(self, fields: Sequence[Field]) -> NopCore:
        return replace(self)

    def check(self, entry: Entry, checked: CheckedEntry | None) -> CheckedEntry | None:
        if self.enabled(entry.level):
            return add_core(checked, entry, self)
        return checked

    def write(self, entry: Entry, fields: Sequence[Field]) -> None:
        self.dropped += 1

    def sync(self) -> None:
        self.syncs += 1


class IOCore:
    """Encodes entries and writes them to a write syncer."""

    def __init__(self, encoder: Any, out: Any, enabler: Any) -> None:
        self.encoder = encoder
        self.out = out
        self.enabler = enabler

    def level(self) -> Level | None:
        return level_of(self.enabler)

    def enabled(self, level: int) -> bool:
        return self.enabler.enabled(level)

    def with_fields(self, fields: Sequence[Field]) -> IOCore:
        clone = IOCore(self.encoder.clone(), self.out, self.enabler)
        add_fields(clone.encoder, fields)
        return clone

    def check(self, entry: Entry, checked: CheckedEntry | None) -> CheckedEntry | None:
        if self.enabled(entry.level):
            return add_core(checked, entry, self)
        return checked

    def write(self, entry: Entry, fields: Sequence[Field]) -> None:
        """Encode and write the entry; above error level the output is synced."""
        data = self.encoder.encode_entry(entry, fields)
        if isinstance(data, str):
            data = data.encode("utf-8")
        self.out.write(data)
        if entry.level > Level.ERROR:
            try:
                self.out.sync()
            except Exception:  # noqa: BLE001 - sync failures are ignored here
                pass

    def sync(self) -> None:
        self.out.sync()


def new_core(encoder: Any, out: Any, enabler: Any) -> IOCore:
    """Create a core writing entries encoded by ``encoder`` to ``out``."""
    return IOCore(encoder, out, enabler)


class HookedCore:
    """Runs callbacks for every entry the wrapped core logs."""

    def __init__(self, core: Any, hooks: Iterable[Callable[[Entry], Any]]) -> None:
        self.core = core
        self.hooks = tuple(hooks)

    def level(self) -> Level | None:
        return level_of(self.core)

    def enabled(self, level: int) -> bool:
        return self.core.enabled(level)

    def with_fields(self, fields: Sequence[Field]) -> HookedCore:
        return HookedCore(self.core.with_fields(fields), self.hooks)

    def check(self, entry: Entry, checked: CheckedEntry | None) -> CheckedEntry | None:
        downstream = self.core.check(entry, checked)
        if downstream is not None:
            return downstream.add_core(entry, self)
        return checked

    def write(self, entry: Entry, fields: Sequence[Field]) -> None:
        """Run every hook; their errors are raised together afterwards."""
        errors: list[Exception] = []
        for hook in self.hooks:
            try:
                hook(entry)
            except Exception as exc:  # noqa: BLE001 - combined below
                errors.append(exc)
        _raise_all(errors)

    def sync(self) -> None:
        self.core.sync()


def register_hooks(core: Any, *hooks: Callable[[Entry], Any]) -> HookedCore:
    """Wrap ``core`` so each hook is called for every logged entry."""
    return HookedCore(core, hooks)


class LevelFilterCore:
    """Raises the minimum level of a wrapped core."""

    def __init__(self, core: Any, level: Any) -> None:
        self.core = core
        self.level_enabler = level

    def level(self) -> Level | None:
        return level_of(self.level_enabler)

    def enabled(self, level: int) -> bool:
        return self.level_enabler.enabled(level)

    def with_fields(self, fields: Sequence[Field]) -> LevelFilterCore:
        return LevelFilterCore(self.core.with_fields(fields), self.level_enabler)

    def check(self, entry: Entry, checked: CheckedEntry | None) -> CheckedEntry | None:
        if not self.enabled(entry.level):
            return checked
        return self.core.check(entry, checked)

    def write(self, entry: Entry, fields: Sequence[Field]) -> None:
        self.core.write(entry, fields)

    def sync(self) -> None:
        self.core.sync()


def new_increase_level_core(core: Any, level: Any) -> LevelFilterCore:
    """Wrap ``core`` with a higher minimum level.

    Raises ValueError if ``level`` would allow a level the core does not.
    """
    for candidate in reversed(Level):
        if not core.enabled(candidate) and level.enabled(candidate):
            raise ValueError(
                f'invalid increase level, as level "{candidate}" is allowed by '
                "increased level, but not by existing core"
            )
    return LevelFilterCore(core, level)