"""Async process launcher.

cli-spawn runtime module

This module provides:
- ``spawn()``: launch one child process without blocking the event loop
- ``SpawnedProcess``: the live process handle, also awaitable for its result
- ``SpawnResult``: captured output, decoded lazily on access
- ``Spawner``: launchers bound to default options (``spawn.json``,
  ``spawn.extend(...)``)

Key design points:
- The child is started with ``subprocess.Popen`` so its pid and pipes are
  usable as soon as ``spawn()`` returns
- stdout/stderr draining starts immediately in a background task; blocking
  reads run in anyio worker threads bounded by a per-process limiter
- The result settles when the child exits: a pipe still held open by a
  detached descendant is abandoned once it stays silent for
  ``EXIT_DRAIN_GRACE`` seconds
- The stdin pump waits for readability on the event loop, so no parent
  input is consumed after it is stopped
- Awaiting is shielded: cancelling a waiter leaves the child running and
  its output collected
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
import signal
import stat
import subprocess
import sys
from collections.abc import Callable
from typing import IO, Any, Generator

import anyio

from ..config import get_config
from ..errors import ChildProcessExitError, decorate_error
from ..options import OptionsLike, SpawnOptions
from .arguments import Invocation, build_invocation
from .quoting import join_args
from .stdio import STREAM_NAMES, StdioPipeline, StdioPlan, build_stdio

__all__ = [
    "SpawnedProcess",
    "SpawnResult",
    "Spawner",
    "spawn",
    "build_subprocess_kwargs",
    "signal_name",
]

logger = logging.getLogger(__name__)

# stdout reader, stderr reader, exit waiter, stdin pump
THREADS_PER_PROCESS = 4

# seconds an output read may stay idle after the child has exited
EXIT_DRAIN_GRACE = 0.5


def signal_name(returncode: int | None) -> str | None:
    """Name of the signal that killed a child, from a Popen returncode."""
    if returncode is None or returncode >= 0:
        return None
    try:
        return signal.Signals(-returncode).name
    except ValueError:
        return f"SIG{-returncode}"


def build_subprocess_kwargs(invocation: Invocation, plan: StdioPlan) -> dict[str, Any]:
    """Build kwargs for subprocess.Popen.

    Args:
        invocation: Normalized invocation
        plan: Stdio plan

    Returns:
        Dict of kwargs for subprocess.Popen
    """
    options = invocation.options
    kwargs: dict[str, Any] = dict(options.extra)
    kwargs.update(plan.popen_kwargs())
    kwargs["shell"] = options.use_shell

    if options.cwd is not None:
        kwargs["cwd"] = options.cwd
    if options.env is not None:
        kwargs["env"] = dict(options.env)

    return kwargs


def parent_stdin_fd() -> int | None:
    """File descriptor of the parent's stdin, or None if it has none."""
    try:
        return sys.stdin.fileno()
    except (AttributeError, ValueError, OSError):
        # None, closed, or a replacement without a descriptor
        return None


class SpawnResult:
    """Outcome of a completed child process.

    ``stdout`` and ``stderr`` are decoded from the collected bytes on every
    read and stripped of surrounding whitespace. With ``json=True``,
    ``stdout`` is parsed as JSON, so a decoding error is raised where
    ``stdout`` is read.
    """

    def __init__(
        self,
        process: "SpawnedProcess",
        stdout: bytes,
        stderr: bytes,
        *,
        encoding: str = "utf-8",
        json_output: bool = False,
    ) -> None:
        self.process = process
        self._stdout = stdout
        self._stderr = stderr
        self._encoding = encoding
        self._json_output = json_output

    @property
    def stdout(self) -> Any:
        text = self._stdout.decode(self._encoding, errors="replace").strip()
        return json.loads(text) if self._json_output else text

    @property
    def stderr(self) -> str:
        return self._stderr.decode(self._encoding, errors="replace").strip()

    @property
    def stdout_bytes(self) -> bytes:
        return self._stdout

    @property
    def stderr_bytes(self) -> bytes:
        return self._stderr

    @property
    def args(self) -> list[str]:
        return self.process.args

    @property
    def pid(self) -> int | None:
        return self.process.pid

    @property
    def returncode(self) -> int | None:
        return self.process.returncode

    @property
    def exit_code(self) -> int | None:
        return self.process.exit_code

    @property
    def signal(self) -> str | None:
        return self.process.signal

    @property
    def error(self) -> ChildProcessExitError | None:
        return self.process.error

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def __repr__(self) -> str:
        return (
            f"SpawnResult(args={self.args!r}, pid={self.pid}, "
            f"returncode={self.returncode}, signal={self.signal!r})"
        )


class SpawnedProcess:
    """A running child process that can also be awaited for its result.

    The live handle is reachable directly (``pid``, ``stdin``, ``kill()``,
    ...). ``await`` returns a ``SpawnResult`` once the child has exited and
    its output has been collected, or raises:

    - the raw ``OSError`` if the program could not be started
    - ``ChildProcessExitError`` on a non-zero exit or signal, unless the
      invocation was made with ``reject=False``; in that case the error is
      only attached as ``error``

    Example:
        proc = spawn("git log --format=%s", ["-n1"])
        print(proc.pid)
        result = await proc
        print(result.stdout)
    """

    def __init__(self, invocation: Invocation, plan: StdioPlan) -> None:
        self.invocation = invocation
        self.plan = plan
        self.error: ChildProcessExitError | None = None
        self.outcome: SpawnResult | None = None
        self._popen: subprocess.Popen[bytes] | None = None
        self._future: asyncio.Future[SpawnResult] | None = None
        self._stdin_task: asyncio.Task[None] | None = None
        self._stdout_chunks: list[bytes] = []
        self._stderr_chunks: list[bytes] = []
        self._limiter: anyio.CapacityLimiter | None = None
        self._exited = False
        self._read_scopes: set[anyio.CancelScope] = set()

    # =========================================================================
    # Live process surface
    # =========================================================================

    @property
    def process(self) -> subprocess.Popen[bytes] | None:
        """The underlying Popen object (None if launching failed)."""
        return self._popen

    @property
    def args(self) -> list[str]:
        return self.invocation.spawnargs

    @property
    def pid(self) -> int | None:
        return self._popen.pid if self._popen else None

    @property
    def returncode(self) -> int | None:
        return self._popen.returncode if self._popen else None

    @property
    def exit_code(self) -> int | None:
        """Exit status, or None while running or when killed by a signal."""
        code = self.returncode
        return code if code is not None and code >= 0 else None

    @property
    def signal(self) -> str | None:
        return signal_name(self.returncode)

    @property
    def stdin(self) -> IO[bytes] | None:
        return self._popen.stdin if self._popen else None

    @property
    def stdout(self) -> IO[bytes] | None:
        return self._popen.stdout if self._popen else None

    @property
    def stderr(self) -> IO[bytes] | None:
        return self._popen.stderr if self._popen else None

    @property
    def pipelines(self) -> tuple[StdioPipeline, ...]:
        return tuple(self.plan.pipelines[fd] for fd in sorted(self.plan.pipelines))

    def poll(self) -> int | None:
        return self._require_popen().poll()

    def send_signal(self, sig: int) -> None:
        self._require_popen().send_signal(sig)

    def terminate(self) -> None:
        self._require_popen().terminate()

    def kill(self) -> None:
        self._require_popen().kill()

    def _require_popen(self) -> subprocess.Popen[bytes]:
        if self._popen is None:
            raise ProcessLookupError(f"process was never started: {self.args[0]}")
        return self._popen

    # =========================================================================
    # Deferred result surface
    # =========================================================================

    def __await__(self) -> Generator[Any, None, SpawnResult]:
        return asyncio.shield(self._require_future()).__await__()

    def done(self) -> bool:
        return self._require_future().done()

    def result(self) -> SpawnResult:
        return self._require_future().result()

    def exception(self) -> BaseException | None:
        return self._require_future().exception()

    def add_done_callback(self, fn: Callable[["SpawnedProcess"], Any]) -> None:
        """Call ``fn(self)`` once the result has settled."""
        self._require_future().add_done_callback(lambda _: fn(self))

    def _require_future(self) -> asyncio.Future[SpawnResult]:
        if self._future is None:
            raise RuntimeError("process has not been launched")
        return self._future

    # =========================================================================
    # Launch and completion
    # =========================================================================

    def _launch(self, error: ChildProcessExitError) -> None:
        loop = asyncio.get_running_loop()
        self._limiter = anyio.CapacityLimiter(THREADS_PER_PROCESS)
        kwargs = build_subprocess_kwargs(self.invocation, self.plan)

        try:
            self._popen = subprocess.Popen(self.invocation.argv, **kwargs)
        except OSError as e:
            logger.debug(f"Failed to start {self.args[0]}: {e}")
            self._future = loop.create_future()
            self._future.set_exception(e)
            return

        logger.debug(
            f"Started subprocess pid={self._popen.pid} "
            f"argv={join_args(self.args)} cwd={self.invocation.options.cwd}"
        )

        stdin_pipeline = self.plan.pipelines.get(0)
        if stdin_pipeline is not None:
            self._stdin_task = loop.create_task(self._pump_stdin(stdin_pipeline))
        self._future = loop.create_task(self._complete(error))

    async def _complete(self, error: ChildProcessExitError) -> SpawnResult:
        popen = self._require_popen()
        options = self.invocation.options
        config = get_config()

        async with anyio.create_task_group() as tg:
            if popen.stdout is not None:
                tg.start_soon(self._drain, popen.stdout, self._stdout_chunks, 1, config.chunk_size)
            if popen.stderr is not None:
                tg.start_soon(self._drain, popen.stderr, self._stderr_chunks, 2, config.chunk_size)

            returncode = await anyio.to_thread.run_sync(popen.wait, limiter=self._limiter)
            self._mark_exited()

        await self._finish_stdin()

        logger.debug(f"Subprocess completed pid={popen.pid} returncode={returncode}")

        self.outcome = SpawnResult(
            self,
            b"".join(self._stdout_chunks),
            b"".join(self._stderr_chunks),
            encoding=options.encoding or config.encoding,
            json_output=options.decode_json,
        )

        if returncode != 0:
            self.error = decorate_error(error, self)
            if options.should_reject:
                raise self.error
        return self.outcome

    async def _drain(self, stream: IO[bytes], chunks: list[bytes], fd: int, chunk_size: int) -> None:
        """Collect a child output stream, feeding its pipeline if any."""
        pipeline = self.plan.pipelines.get(fd)
        if pipeline is not None:
            pipeline.attach_parent()
            await pipeline.start()

        while True:
            chunk = await self._read(stream, chunk_size)
            if chunk is None:
                # a detached descendant still holds the write end
                logger.debug(f"Abandoning {STREAM_NAMES[fd]} of pid={self.pid} after exit")
                break
            if not chunk:
                stream.close()
                break
            chunks.append(chunk)
            if pipeline is not None:
                await pipeline.push(chunk)

        if pipeline is not None:
            await pipeline.close()

    async def _read(self, stream: IO[bytes], chunk_size: int) -> bytes | None:
        """Read one chunk in a worker thread.

        Returns:
            The chunk (b"" at end of stream), or None when the read stayed
            idle for ``EXIT_DRAIN_GRACE`` seconds after the child exited
        """
        with anyio.CancelScope() as scope:
            if self._exited:
                scope.deadline = anyio.current_time() + EXIT_DRAIN_GRACE
            self._read_scopes.add(scope)
            try:
                return await anyio.to_thread.run_sync(
                    stream.read1, chunk_size, abandon_on_cancel=True, limiter=self._limiter
                )
            finally:
                self._read_scopes.discard(scope)
        return None

    def _mark_exited(self) -> None:
        self._exited = True
        deadline = anyio.current_time() + EXIT_DRAIN_GRACE
        for scope in self._read_scopes:
            scope.deadline = deadline

    async def _pump_stdin(self, pipeline: StdioPipeline) -> None:
        """Feed the parent's stdin through a transformer into the child.

        Pipes and terminals are read only once the event loop reports them
        readable, so cancelling the pump never leaves a read pending that
        would take input away from the parent.
        """
        popen = self._require_popen()
        assert popen.stdin is not None
        chunk_size = get_config().chunk_size
        pipeline.attach(popen.stdin, binary=True)
        await pipeline.start()

        fd = parent_stdin_fd()
        if fd is None:
            pipeline.abort(OSError("parent stdin is not available"))
            self._close_child_stdin()
            return

        try:
            # regular files are always readable and cannot be polled
            pollable = not stat.S_ISREG(os.fstat(fd).st_mode)
            while not pipeline.aborted:
                if pollable:
                    await anyio.wait_readable(fd)
                    chunk = os.read(fd, chunk_size)
                else:
                    chunk = await anyio.to_thread.run_sync(os.read, fd, chunk_size, limiter=self._limiter)
                if not chunk:
                    await pipeline.close()
                    break
                await pipeline.push(chunk)
        except (OSError, ValueError) as e:
            # parent stdin closed or not readable
            pipeline.abort(e)
        finally:
            self._close_child_stdin()

    async def _finish_stdin(self) -> None:
        """Stop the stdin pump and wait until it has let go of the parent's stdin."""
        if self._stdin_task is not None:
            self._stdin_task.cancel()
            await asyncio.wait([self._stdin_task])
        self._close_child_stdin()

    def _close_child_stdin(self) -> None:
        if self._popen is not None and self._popen.stdin is not None:
            with contextlib.suppress(BrokenPipeError):
                self._popen.stdin.close()

    def __repr__(self) -> str:
        state = "running" if self.returncode is None else f"returncode={self.returncode}"
        return f"SpawnedProcess(args={self.args!r}, pid={self.pid}, {state})"


class Spawner:
    """Async launcher bound to a set of default options.

    Call-site options always win over the bound defaults.

    Example:
        git = spawn.extend(cwd=repo_dir)
        log = await git.json("gh api %s", [endpoint])
    """

    def __init__(self, defaults: OptionsLike | None = None) -> None:
        self.defaults = SpawnOptions.coerce(defaults)

    def __call__(
        self,
        command: str,
        args: Any = None,
        options: OptionsLike | None = None,
        **kwargs: Any,
    ) -> SpawnedProcess:
        """Launch ``command`` and return the running process.

        Args:
            command: Program with optional words and ``%s`` placeholders
            args: Nested argument list, or options when no list is needed
            options: Call options (mapping or SpawnOptions)
            **kwargs: More call options; unknown names go to subprocess.Popen

        Returns:
            The running process, awaitable for its SpawnResult
        """
        error = ChildProcessExitError.at_call_site(skip=1)
        invocation = build_invocation(command, args, options, self.defaults, overrides=kwargs)
        options = invocation.options
        plan = build_stdio(
            options.stdio,
            default="pipe",
            encoding=options.encoding or get_config().encoding,
        )

        process = SpawnedProcess(invocation, plan)
        process._launch(error)
        return process

    def extend(self, defaults: OptionsLike | None = None, **kwargs: Any) -> "Spawner":
        """Return a launcher with more defaults layered on this one's."""
        return Spawner(self.defaults.merge(defaults).merge(kwargs))

    @property
    def json(self) -> "Spawner":
        """Launcher whose results decode stdout as JSON."""
        return self.extend(json=True)

    def __repr__(self) -> str:
        return f"Spawner({self.defaults!r})"


spawn = Spawner()
