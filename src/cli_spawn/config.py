"""cli-spawn 环境变量配置管理。

环境变量:
    CLI_SPAWN_TRACE: spawn_sync 因子进程失败而退出前是否打印调用栈
        - true/1/yes/on = 打印
        - false/0/no = 不打印 (默认)

    CLI_SPAWN_ENCODING: 输出解码使用的文本编码
        - 默认 utf-8

    CLI_SPAWN_CHUNK_SIZE: 读取子进程输出时每次读取的字节数
        - 默认 65536
        - 限制在 1024-16777216 范围
"""

from __future__ import annotations

import codecs
import os
from dataclasses import dataclass

__all__ = ["Config", "load_config", "get_config", "reload_config"]

DEFAULT_ENCODING = "utf-8"
DEFAULT_CHUNK_SIZE = 65536
MIN_CHUNK_SIZE = 1024
MAX_CHUNK_SIZE = 16 * 1024 * 1024


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """解析布尔值环境变量。"""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_encoding(value: str | None) -> str:
    """解析编码环境变量，未知编码回退到 utf-8。"""
    if not value or not value.strip():
        return DEFAULT_ENCODING
    try:
        return codecs.lookup(value.strip()).name
    except LookupError:
        return DEFAULT_ENCODING


def _parse_chunk_size(value: str | None) -> int:
    """解析读取块大小环境变量。"""
    if not value:
        return DEFAULT_CHUNK_SIZE
    try:
        size = int(value)
    except ValueError:
        return DEFAULT_CHUNK_SIZE
    return max(MIN_CHUNK_SIZE, min(size, MAX_CHUNK_SIZE))


@dataclass(frozen=True)
class Config:
    """cli-spawn 配置。

    Attributes:
        trace: 同步调用失败退出前打印调用栈
        encoding: 默认文本编码
        chunk_size: 输出读取块大小（字节）
    """

    trace: bool = False
    encoding: str = DEFAULT_ENCODING
    chunk_size: int = DEFAULT_CHUNK_SIZE


def load_config() -> Config:
    """从环境变量加载配置。"""
    return Config(
        trace=_parse_bool(os.environ.get("CLI_SPAWN_TRACE"), default=False),
        encoding=_parse_encoding(os.environ.get("CLI_SPAWN_ENCODING")),
        chunk_size=_parse_chunk_size(os.environ.get("CLI_SPAWN_CHUNK_SIZE")),
    )


# 全局配置实例（延迟加载）
_config: Config | None = None


def get_config() -> Config:
    """获取全局配置实例。"""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """重新加载配置（用于测试）。"""
    global _config
    _config = load_config()
    return _config
