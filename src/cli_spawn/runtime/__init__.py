"""Runtime module for launching child processes.

This module provides argument normalization, shell quoting, stdio
pipelines and the async/blocking launchers built on them.
"""

from __future__ import annotations

from .arguments import Invocation, build_invocation, flatten_args
from .process_runner import SpawnedProcess, Spawner, SpawnResult, spawn
from .quoting import join_args, quote_arg
from .stdio import FunctionTransformer, StdioPipeline, StreamTransformer, build_stdio
from .sync_runner import SyncResult, spawn_sync

__all__ = [
    "Invocation",
    "build_invocation",
    "flatten_args",
    "SpawnedProcess",
    "Spawner",
    "SpawnResult",
    "spawn",
    "join_args",
    "quote_arg",
    "FunctionTransformer",
    "StdioPipeline",
    "StreamTransformer",
    "build_stdio",
    "SyncResult",
    "spawn_sync",
]
