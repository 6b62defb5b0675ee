"""Stdio specification handling and stream transformer pipelines.

A stdio spec is either one mode token used for all three standard streams,
or a 3-4 item sequence. Each of the first three items is a mode token or a
stream transformer; the optional fourth item lists extra file descriptors
the child inherits.

Mode tokens:
    "pipe"     capture through a pipe
    "inherit"  share the parent's stream
    "ignore"   connect to os.devnull
    "stdout"   (stderr only) merge into stdout

Anything else (file descriptors, file objects, subprocess constants) is
passed to ``subprocess.Popen`` unchanged.

A transformer position is launched as a pipe and a ``StdioPipeline`` is
bound between the child's stream and the parent's matching stream.
"""

from __future__ import annotations

import codecs
import logging
import subprocess
import sys
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

import anyio

__all__ = [
    "StreamTransformer",
    "FunctionTransformer",
    "StdioPipeline",
    "StdioPlan",
    "as_transformer",
    "build_stdio",
    "STREAM_NAMES",
]

logger = logging.getLogger(__name__)

STREAM_NAMES = ("stdin", "stdout", "stderr")

_MODES: dict[str, Any] = {
    "pipe": subprocess.PIPE,
    "inherit": None,
    "ignore": subprocess.DEVNULL,
}


@runtime_checkable
class StreamTransformer(Protocol):
    """Incremental text transform with an explicit lifecycle.

    ``start`` is called once before the first chunk, ``feed`` once per chunk
    and ``finish`` once after the stream ends. ``feed`` and ``finish`` return
    text to forward, or None/"" to forward nothing.
    """

    def start(self) -> None: ...

    def feed(self, chunk: str) -> str | None: ...

    def finish(self) -> str | None: ...


class FunctionTransformer:
    """Adapts a plain ``fn(chunk) -> str | None`` into a transformer."""

    def __init__(self, fn: Callable[[str], str | None]) -> None:
        self.fn = fn

    def start(self) -> None:
        pass

    def feed(self, chunk: str) -> str | None:
        return self.fn(chunk)

    def finish(self) -> str | None:
        return None

    def __repr__(self) -> str:
        return f"FunctionTransformer({self.fn!r})"


def as_transformer(value: Any) -> StreamTransformer | None:
    """Return a transformer for ``value``, or None if it is a mode token.

    Transformer classes are instantiated so every invocation gets fresh
    state.
    """
    if isinstance(value, (str, bytes, int)) or value is None:
        return None
    if isinstance(value, type):
        if callable(getattr(value, "feed", None)):
            return value()
        return None
    if callable(getattr(value, "feed", None)):
        return value
    if callable(value) and not hasattr(value, "fileno"):
        return FunctionTransformer(value)
    return None


class StdioPipeline:
    """Transformer pipeline bound to one standard stream of a child.

    Any exception raised by the transformer or by the downstream write
    aborts the pipeline: it is kept in ``error`` and later chunks are
    dropped. The child and the invocation are not affected.

    Attributes:
        fd: Stream position (0 stdin, 1 stdout, 2 stderr)
        transformer: The bound transformer
        error: Exception that aborted the pipeline, if any
    """

    def __init__(self, fd: int, transformer: StreamTransformer, encoding: str = "utf-8") -> None:
        self.fd = fd
        self.transformer = transformer
        self.encoding = encoding
        self.error: BaseException | None = None
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._sink: Any = None
        self._binary_sink = False
        self._started = False
        self._finished = False

    @property
    def name(self) -> str:
        return STREAM_NAMES[self.fd]

    @property
    def aborted(self) -> bool:
        return self.error is not None

    @property
    def finished(self) -> bool:
        return self._finished

    def attach(self, sink: Any, *, binary: bool = False) -> None:
        """Set the downstream stream written by this pipeline."""
        self._sink = anyio.wrap_file(sink)
        self._binary_sink = binary

    def attach_parent(self) -> None:
        """Write to the parent's stream matching this position."""
        self.attach(sys.stdout if self.fd == 1 else sys.stderr)

    def abort(self, error: BaseException) -> None:
        if self.error is None:
            self.error = error
            logger.warning(f"{self.name} pipeline aborted: {type(error).__name__}: {error}")

    async def start(self) -> None:
        if self._started or self.aborted:
            return
        self._started = True
        try:
            self.transformer.start()
        except Exception as e:
            self.abort(e)

    async def push(self, chunk: bytes) -> None:
        """Decode a raw chunk, run it through the transformer and forward it."""
        if self.aborted or self._finished:
            return
        text = self._decoder.decode(chunk)
        if not text:
            return
        try:
            await self._emit(self.transformer.feed(text))
        except Exception as e:
            self.abort(e)

    async def close(self) -> None:
        """Finalize the transformer once the stream has ended."""
        if self.aborted or self._finished:
            return
        self._finished = True
        try:
            tail = self._decoder.decode(b"", final=True)
            if tail:
                await self._emit(self.transformer.feed(tail))
            await self._emit(self.transformer.finish())
        except Exception as e:
            self.abort(e)

    async def _emit(self, value: str | None) -> None:
        if not value or self._sink is None:
            return
        data = value.encode(self.encoding) if self._binary_sink else value
        await self._sink.write(data)
        await self._sink.flush()

    def __repr__(self) -> str:
        state = "aborted" if self.aborted else "finished" if self._finished else "open"
        return f"StdioPipeline({self.name}, {self.transformer!r}, {state})"


@dataclass
class StdioPlan:
    """Primitive stdio values for ``subprocess.Popen`` plus bound pipelines."""

    stdin: Any = subprocess.PIPE
    stdout: Any = subprocess.PIPE
    stderr: Any = subprocess.PIPE
    pass_fds: tuple[int, ...] = ()
    pipelines: dict[int, StdioPipeline] = field(default_factory=dict)

    @property
    def captures_stdout(self) -> bool:
        return self.stdout == subprocess.PIPE

    @property
    def captures_stderr(self) -> bool:
        return self.stderr == subprocess.PIPE

    def popen_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "stdin": self.stdin,
            "stdout": self.stdout,
            "stderr": self.stderr,
        }
        if self.pass_fds:
            kwargs["pass_fds"] = self.pass_fds
        return kwargs


def _resolve_mode(value: Any, fd: int) -> Any:
    if isinstance(value, str):
        if value == "stdout":
            if fd != 2:
                raise ValueError(f"'stdout' mode is only valid for stderr, not {STREAM_NAMES[fd]}")
            return subprocess.STDOUT
        try:
            return _MODES[value]
        except KeyError:
            raise ValueError(f"unknown stdio mode: {value!r}") from None
    return value


def build_stdio(
    spec: Any = None,
    *,
    default: Any = "pipe",
    encoding: str = "utf-8",
    allow_transformers: bool = True,
) -> StdioPlan:
    """Convert a stdio spec into a ``StdioPlan``.

    Args:
        spec: Mode token, or sequence of 3-4 entries (None = ``default``)
        default: Spec used when ``spec`` is None
        encoding: Encoding used by transformer pipelines
        allow_transformers: Reject transformers when False (blocking launches)

    Returns:
        The plan

    Raises:
        ValueError: Malformed spec or unknown mode
        TypeError: Transformer given where it cannot be driven
    """
    if spec is None:
        spec = default

    if not isinstance(spec, (list, tuple)):
        if as_transformer(spec) is not None:
            raise ValueError("stream transformers must be given per stream in a sequence")
        modes = [_resolve_mode(spec, fd) for fd in range(3)]
        return StdioPlan(*modes)

    entries = list(spec)
    if len(entries) not in (3, 4):
        raise ValueError(f"stdio sequence must have 3 or 4 entries, got {len(entries)}")

    plan = StdioPlan()
    modes: list[Any] = []
    for fd, entry in enumerate(entries[:3]):
        transformer = as_transformer(entry)
        if transformer is None:
            modes.append(_resolve_mode(entry, fd))
            continue
        if not allow_transformers:
            raise TypeError(
                f"stream transformer for {STREAM_NAMES[fd]} needs an event loop; use spawn()"
            )
        plan.pipelines[fd] = StdioPipeline(fd, transformer, encoding)
        modes.append(subprocess.PIPE)

    plan.stdin, plan.stdout, plan.stderr = modes
    if len(entries) == 4 and entries[3] is not None:
        plan.pass_fds = tuple(int(fd) for fd in entries[3])
    return plan
