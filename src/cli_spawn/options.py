"""Spawn option types.

Options are immutable and layered: a bound launcher carries a set of
defaults and every call merges its own options on top of them.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, fields, replace
from types import MappingProxyType
from typing import Any

__all__ = [
    "SpawnOptions",
    "OptionsLike",
]


@dataclass(frozen=True)
class SpawnOptions:
    """Options for a single invocation.

    ``None`` means "not specified", which lets an option layer defer to the
    layer below it. The effective defaults are exposed by the ``should_*``
    properties.

    Attributes:
        cwd: Working directory for the child
        env: Environment for the child (None = inherit parent)
        shell: Run through the system shell with placeholder quoting
        stdio: Mode token or per-stream sequence (see ``runtime.stdio``)
        reject: Async only; raise on a failing exit (default True)
        exit: Sync only; exit the interpreter on a failing exit (default True)
        trim_end: Sync only; strip trailing whitespace of stdout (default True)
        json: Decode stdout as JSON (default False)
        encoding: Text encoding for decoded output
        extra: Pass-through keyword arguments for ``subprocess.Popen``
    """

    cwd: Any = None
    env: Mapping[str, str] | None = None
    shell: bool | None = None
    stdio: Any = None
    reject: bool | None = None
    exit: bool | None = None
    trim_end: bool | None = None
    json: bool | None = None
    encoding: str | None = None
    extra: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "SpawnOptions":
        """Build options from a mapping; unknown keys become ``extra``."""
        known = {f.name for f in fields(cls)} - {"extra"}
        kwargs: dict[str, Any] = {}
        extra: dict[str, Any] = dict(values.get("extra") or {})
        for key, value in values.items():
            if key == "extra":
                continue
            if key in known:
                kwargs[key] = value
            else:
                extra[key] = value
        return cls(**kwargs, extra=MappingProxyType(extra))

    @classmethod
    def coerce(cls, value: "OptionsLike | None") -> "SpawnOptions":
        if value is None:
            return cls()
        if isinstance(value, cls):
            return value
        if isinstance(value, Mapping):
            return cls.from_mapping(value)
        raise TypeError(f"options must be a mapping or SpawnOptions, not {type(value).__name__}")

    def merge(self, other: "OptionsLike | None") -> "SpawnOptions":
        """Return new options where the specified fields of ``other`` win."""
        other = SpawnOptions.coerce(other)
        changes: dict[str, Any] = {}
        for f in fields(self):
            if f.name == "extra":
                continue
            value = getattr(other, f.name)
            if value is not None:
                changes[f.name] = value
        if other.extra:
            changes["extra"] = MappingProxyType({**self.extra, **other.extra})
        return replace(self, **changes) if changes else self

    @property
    def use_shell(self) -> bool:
        return bool(self.shell)

    @property
    def should_reject(self) -> bool:
        return self.reject is not False

    @property
    def should_exit(self) -> bool:
        return self.exit is not False

    @property
    def should_trim_end(self) -> bool:
        return self.trim_end is not False

    @property
    def decode_json(self) -> bool:
        return bool(self.json)


OptionsLike = SpawnOptions | Mapping[str, Any]
