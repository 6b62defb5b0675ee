"""cli-spawn exception classes."""

from __future__ import annotations

import os
import traceback
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .runtime.process_runner import SpawnedProcess

__all__ = [
    "SpawnError",
    "ChildProcessExitError",
    "decorate_error",
]


class SpawnError(Exception):
    """Base exception for cli-spawn."""
    pass


class ChildProcessExitError(SpawnError):
    """A child process exited with a non-zero code or was killed by a signal.

    Instances are allocated when the child is launched so ``call_site``
    points at the code that spawned it, then filled in by
    ``decorate_error`` once the child has exited.

    Attributes:
        call_site: Stack captured at the spawn call
        process: The terminated process (set once)
    """

    def __init__(self, message: str = "", call_site: traceback.StackSummary | None = None) -> None:
        super().__init__(message)
        self.call_site = call_site if call_site is not None else traceback.StackSummary()
        self._process: Any = None

    @property
    def message(self) -> str:
        return self.args[0] if self.args else ""

    @property
    def process(self) -> "SpawnedProcess | Any":
        return self._process

    @property
    def returncode(self) -> int | None:
        return getattr(self._process, "returncode", None)

    @classmethod
    def at_call_site(cls, skip: int = 0) -> "ChildProcessExitError":
        """Allocate an error carrying the caller's stack.

        Args:
            skip: Number of caller frames to leave out (library internals)
        """
        stack = traceback.extract_stack()
        keep = max(len(stack) - 1 - skip, 0)
        return cls(call_site=traceback.StackSummary.from_list(stack[:keep]))


def decorate_error(error: ChildProcessExitError, process: Any) -> ChildProcessExitError:
    """Fill a pre-allocated error with the exited process's details.

    Args:
        error: Error allocated at the spawn call
        process: Exited process exposing ``args``, ``signal`` and ``exit_code``

    Returns:
        The same error object
    """
    if error._process is not None:
        raise AttributeError("process is already attached to this error")

    command_line = " ".join(str(arg) for arg in process.args)
    message = f"The command spawned as:{os.linesep}{os.linesep}"
    message += f"  {command_line}{os.linesep}{os.linesep}"
    message += f"exited with:{os.linesep}{os.linesep}"
    message += f"  signal={process.signal!r} code={process.exit_code}{os.linesep}{os.linesep}"
    message += f"with the following trace:{os.linesep}"
    message += "".join(error.call_site.format())

    error.args = (message,)
    error._process = process
    return error
