"""POSIX shell quoting for arguments spliced into a shell command line."""

from __future__ import annotations

import re
from collections.abc import Iterable

__all__ = [
    "quote_arg",
    "join_args",
]

_UNSAFE = re.compile(r"[^A-Za-z0-9_/:=-]")
_LEADING_EMPTY_QUOTES = re.compile(r"^(?:'')+(?=.)")
_ESCAPED_QUOTE_REOPEN = re.compile(r"\\'''")


def quote_arg(value: str) -> str:
    """Quote a value so a POSIX shell reads it back as one literal word.

    Values made only of ``[A-Za-z0-9_/:=-]`` are returned unchanged.

    >>> quote_arg("it's")
    "'it'\\\\''s'"
    """
    if not value:
        return "''"
    if not _UNSAFE.search(value):
        return value
    quoted = "'" + value.replace("'", "'\\''") + "'"
    # "'\''abc'" -> "\'abc'"
    quoted = _LEADING_EMPTY_QUOTES.sub("", quoted)
    # "a'\'''b'" -> "a'\'b'"
    return _ESCAPED_QUOTE_REOPEN.sub("\\'", quoted)


def join_args(values: Iterable[str]) -> str:
    return " ".join(quote_arg(value) for value in values)
