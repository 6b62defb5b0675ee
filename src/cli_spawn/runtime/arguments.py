"""Argument normalization for spawn calls.

Turns the loose ``(command, args, options)`` call shape into an
``Invocation``:

- nested argument lists are flattened and falsy entries dropped, so
  ``[verbose and "-v", ["--out", path]]`` works as conditional inclusion
- a mapping in the ``args`` position is taken as the options
- ``%s`` tokens in the command are replaced by arguments, quoted for the
  shell in shell mode
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from ..options import OptionsLike, SpawnOptions
from .quoting import quote_arg

__all__ = [
    "Invocation",
    "PLACEHOLDER",
    "flatten_args",
    "split_call",
    "build_invocation",
]

logger = logging.getLogger(__name__)

PLACEHOLDER = "%s"

# %s not touching a word character, and not escaped as %%s
_SHELL_PLACEHOLDER = re.compile(r"(?<![\w%])%s(?!\w)")


@dataclass(frozen=True)
class Invocation:
    """A normalized command ready to launch.

    Attributes:
        command: Program to run, or the full command line in shell mode
        args: Arguments passed after the program (empty in shell mode)
        options: Effective options (bound defaults merged with call options)
    """

    command: str
    args: tuple[str, ...] = ()
    options: SpawnOptions = field(default_factory=SpawnOptions)

    @property
    def argv(self) -> str | list[str]:
        """What ``subprocess.Popen`` receives as its first argument."""
        if self.options.use_shell:
            return self.command
        return [self.command, *self.args]

    @property
    def spawnargs(self) -> list[str]:
        """The command line as the OS sees it, used in diagnostics."""
        if self.options.use_shell:
            return [_shell_program(), "-c", self.command]
        return [self.command, *self.args]


def _shell_program() -> str:
    return "cmd.exe" if os.name == "nt" else "/bin/sh"


def _is_sequence(value: Any) -> bool:
    return isinstance(value, Iterable) and not isinstance(value, (str, bytes, Mapping))


def _to_str(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, os.PathLike):
        return os.fspath(value)
    return str(value)


def flatten_args(raw: Any) -> list[str]:
    """Flatten nested arguments and drop falsy entries, keeping order."""
    result: list[str] = []
    stack: list[Any] = [iter([raw])]
    while stack:
        try:
            item = next(stack[-1])
        except StopIteration:
            stack.pop()
            continue
        if _is_sequence(item):
            stack.append(iter(item))
        elif item:
            result.append(_to_str(item))
    return result


def split_call(args: Any, options: OptionsLike | None) -> tuple[list[str], SpawnOptions]:
    """Resolve the ``(args, options)`` overload.

    Returns:
        Tuple of (flattened arguments, call options)
    """
    if isinstance(args, (SpawnOptions, Mapping)):
        if options is not None:
            raise TypeError("options given twice: as args and as options")
        return [], SpawnOptions.coerce(args)
    if args is None:
        return [], SpawnOptions.coerce(options)
    return flatten_args(args), SpawnOptions.coerce(options)


def _substitute_shell(command: str, args: list[str]) -> str:
    def replace(match: re.Match[str]) -> str:
        return quote_arg(args.pop(0) if args else "")

    resolved = _SHELL_PLACEHOLDER.sub(replace, command)
    if args:
        # unconsumed arguments are not appended in shell mode
        logger.debug(f"Dropping {len(args)} unconsumed shell argument(s) for: {command}")
    return resolved


def _substitute_words(command: str, args: list[str]) -> tuple[str, list[str]]:
    if " " not in command:
        return command, args
    program, *words = command.split(" ")
    words = [(args.pop(0) if args else "") if word == PLACEHOLDER else word for word in words]
    return program, [*words, *args]


def build_invocation(
    command: str,
    args: Any = None,
    options: OptionsLike | None = None,
    defaults: SpawnOptions | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Invocation:
    """Build an ``Invocation`` from a loosely typed call.

    Args:
        command: Program, optionally followed by space-separated words and
            ``%s`` placeholders; a full command line in shell mode
        args: Nested argument list, or the options when no list is needed
        options: Call options (mapping or ``SpawnOptions``)
        defaults: Bound defaults; call options win over them
        overrides: Keyword options given at the call; win over ``options``

    Returns:
        The normalized invocation
    """
    if not isinstance(command, str) or not command:
        raise ValueError("command must be a non-empty string")

    flat, call_options = split_call(args, options)
    effective = (defaults or SpawnOptions()).merge(call_options).merge(overrides)

    if effective.use_shell:
        return Invocation(_substitute_shell(command, flat), (), effective)

    program, rest = _substitute_words(command, flat)
    return Invocation(program, tuple(rest), effective)
