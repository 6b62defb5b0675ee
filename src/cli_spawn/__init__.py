"""cli-spawn - launch external programs from Python with less ceremony.

环境变量:
    CLI_SPAWN_TRACE: spawn_sync 失败退出前打印调用栈 (默认 false)
    CLI_SPAWN_ENCODING: 输出解码编码 (默认 utf-8)
    CLI_SPAWN_CHUNK_SIZE: 输出读取块大小 (默认 65536)

用法:
    from cli_spawn import spawn, spawn_sync

    result = await spawn("git rev-parse %s", ["HEAD"])
    head = spawn_sync("git rev-parse HEAD", stdio="pipe")
"""

__version__ = "0.1.0"

from .errors import ChildProcessExitError, SpawnError
from .options import SpawnOptions
from .runtime import (
    FunctionTransformer,
    SpawnedProcess,
    Spawner,
    SpawnResult,
    StreamTransformer,
    SyncResult,
    quote_arg,
    spawn,
    spawn_sync,
)

__all__ = [
    "__version__",
    "ChildProcessExitError",
    "SpawnError",
    "SpawnOptions",
    "FunctionTransformer",
    "SpawnedProcess",
    "Spawner",
    "SpawnResult",
    "StreamTransformer",
    "SyncResult",
    "quote_arg",
    "spawn",
    "spawn_sync",
]
