"""Blocking process launcher.

``spawn_sync`` is meant for script-style code: run a command, exit if it
fails, and get its output back as a string. It blocks the calling thread,
so do not use it from code that has to stay responsive.
"""

from __future__ import annotations

import json
import logging
import signal
import subprocess
import sys
import traceback
from dataclasses import dataclass
from typing import Any

from ..config import get_config
from ..options import OptionsLike, SpawnOptions
from .arguments import build_invocation
from .process_runner import build_subprocess_kwargs, signal_name
from .quoting import join_args
from .stdio import build_stdio

__all__ = [
    "SyncResult",
    "SYNC_DEFAULTS",
    "spawn_sync",
]

logger = logging.getLogger(__name__)

SYNC_DEFAULTS = SpawnOptions(stdio="inherit")


@dataclass(frozen=True)
class SyncResult:
    """Full result of a blocking invocation (returned when ``exit=False``).

    Attributes:
        args: Command line as launched
        pid: Process id of the child
        status: Exit status, None when killed by a signal
        signal: Name of the signal that killed the child, if any
        stdout: Captured stdout (None when not captured)
        stderr: Captured stderr (None when not captured)
    """

    args: list[str]
    pid: int
    status: int | None
    signal: str | None
    stdout: Any
    stderr: Any

    @property
    def returncode(self) -> int:
        if self.status is not None:
            return self.status
        return -termination_code(self)

    @property
    def ok(self) -> bool:
        return self.status == 0


def termination_code(result: SyncResult) -> int:
    """Code the current process exits with for ``result``: signal number, else status."""
    if result.signal is not None:
        try:
            return signal.Signals[result.signal].value
        except KeyError:
            return int(result.signal.removeprefix("SIG"))
    return result.status or 0


def spawn_sync(
    command: str,
    args: Any = None,
    options: OptionsLike | None = None,
    **kwargs: Any,
) -> Any:
    """Run a command to completion.

    Stdio defaults to inheriting the parent's streams, so output goes
    straight to the terminal and the return value is None; pass
    ``stdio="pipe"`` to capture it.

    Args:
        command: Program with optional words and ``%s`` placeholders
        args: Nested argument list, or options when no list is needed
        options: Call options (mapping or SpawnOptions)
        **kwargs: More call options; unknown names go to subprocess.Popen

    Returns:
        With ``exit`` enabled (default): the stdout (trimmed of trailing
        whitespace, JSON-decoded with ``json=True``), or None if stdout was
        not captured. With ``exit=False``: a SyncResult.

    Raises:
        SystemExit: The child failed and ``exit`` is enabled
        OSError: The program could not be started
    """
    invocation = build_invocation(command, args, options, SYNC_DEFAULTS, overrides=kwargs)
    options = invocation.options
    plan = build_stdio(options.stdio, default="inherit", allow_transformers=False)

    popen_kwargs = build_subprocess_kwargs(invocation, plan)
    popen_kwargs["encoding"] = options.encoding or get_config().encoding
    popen_kwargs.setdefault("errors", "replace")

    with subprocess.Popen(invocation.argv, **popen_kwargs) as popen:
        logger.debug(f"Started subprocess pid={popen.pid} argv={join_args(invocation.spawnargs)}")
        stdout, stderr = popen.communicate()

    if isinstance(stdout, str):
        if options.should_trim_end:
            stdout = stdout.rstrip()
        if options.decode_json and popen.returncode == 0:
            stdout = json.loads(stdout)

    result = SyncResult(
        args=invocation.spawnargs,
        pid=popen.pid,
        status=popen.returncode if popen.returncode >= 0 else None,
        signal=signal_name(popen.returncode),
        stdout=stdout,
        stderr=stderr,
    )
    logger.debug(f"Subprocess completed pid={result.pid} returncode={popen.returncode}")

    if not options.should_exit:
        return result

    if stderr:
        print(stderr, file=sys.stderr)

    code = termination_code(result)
    if code:
        if get_config().trace:
            traceback.print_stack(file=sys.stderr)
        logger.debug(f"Exiting with code {code} after {join_args(result.args)}")
        sys.exit(code)
    return stdout
