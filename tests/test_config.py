"""Config 模块测试。

测试 CLI_SPAWN_* 环境变量解析和配置管理。
"""

from __future__ import annotations

import os
from unittest import mock

import pytest

from cli_spawn.config import (
    DEFAULT_CHUNK_SIZE,
    MAX_CHUNK_SIZE,
    MIN_CHUNK_SIZE,
    Config,
    get_config,
    load_config,
    reload_config,
)

CLI_SPAWN_VARS = ("CLI_SPAWN_TRACE", "CLI_SPAWN_ENCODING", "CLI_SPAWN_CHUNK_SIZE")


def clean_env() -> dict[str, str]:
    """去掉 CLI_SPAWN_* 变量的环境。"""
    return {k: v for k, v in os.environ.items() if k not in CLI_SPAWN_VARS}


class TestParseBool:
    """测试布尔值解析。"""

    @pytest.mark.parametrize("value", ["true", "True", "TRUE", "1", "yes", "Yes", "on"])
    def test_truthy_values(self, value: str):
        """真值。"""
        with mock.patch.dict(os.environ, {"CLI_SPAWN_TRACE": value}, clear=False):
            config = load_config()
            assert config.trace is True

    @pytest.mark.parametrize("value", ["false", "False", "FALSE", "0", "no", "No", "off", ""])
    def test_falsy_values(self, value: str):
        """假值。"""
        with mock.patch.dict(os.environ, {"CLI_SPAWN_TRACE": value}, clear=False):
            config = load_config()
            assert config.trace is False

    def test_unset_is_false(self):
        """未设置时默认不打印调用栈。"""
        with mock.patch.dict(os.environ, clean_env(), clear=True):
            assert load_config().trace is False


class TestParseEncoding:
    """测试编码解析。"""

    def test_default(self):
        """默认 utf-8。"""
        with mock.patch.dict(os.environ, clean_env(), clear=True):
            assert load_config().encoding == "utf-8"

    def test_normalized(self):
        """编码名被规范化。"""
        with mock.patch.dict(os.environ, {"CLI_SPAWN_ENCODING": " Latin-1 "}, clear=False):
            assert load_config().encoding == "iso8859-1"

    def test_unknown_falls_back(self):
        """未知编码回退到 utf-8。"""
        with mock.patch.dict(os.environ, {"CLI_SPAWN_ENCODING": "no-such-codec"}, clear=False):
            assert load_config().encoding == "utf-8"

    def test_blank_falls_back(self):
        """空白值回退到 utf-8。"""
        with mock.patch.dict(os.environ, {"CLI_SPAWN_ENCODING": "   "}, clear=False):
            assert load_config().encoding == "utf-8"


class TestParseChunkSize:
    """测试读取块大小解析。"""

    def test_default(self):
        """默认 64 KiB。"""
        with mock.patch.dict(os.environ, clean_env(), clear=True):
            assert load_config().chunk_size == DEFAULT_CHUNK_SIZE

    def test_explicit(self):
        """显式设置。"""
        with mock.patch.dict(os.environ, {"CLI_SPAWN_CHUNK_SIZE": "4096"}, clear=False):
            assert load_config().chunk_size == 4096

    @pytest.mark.parametrize(
        "value,expected",
        [("1", MIN_CHUNK_SIZE), ("-5", MIN_CHUNK_SIZE), ("999999999", MAX_CHUNK_SIZE)],
    )
    def test_clamped(self, value: str, expected: int):
        """超出范围时被限制。"""
        with mock.patch.dict(os.environ, {"CLI_SPAWN_CHUNK_SIZE": value}, clear=False):
            assert load_config().chunk_size == expected

    def test_invalid_uses_default(self):
        """非数字使用默认值。"""
        with mock.patch.dict(os.environ, {"CLI_SPAWN_CHUNK_SIZE": "big"}, clear=False):
            assert load_config().chunk_size == DEFAULT_CHUNK_SIZE


class TestGlobalConfig:
    """测试全局配置实例。"""

    def test_get_config_is_cached(self):
        """get_config 返回同一实例。"""
        assert get_config() is get_config()

    def test_reload_picks_up_changes(self):
        """reload_config 重新读取环境变量。"""
        with mock.patch.dict(os.environ, {"CLI_SPAWN_TRACE": "1"}, clear=False):
            config = reload_config()
            assert config.trace is True
            assert get_config() is config

    def test_config_is_frozen(self):
        """配置不可修改。"""
        config = Config()
        with pytest.raises(AttributeError):
            config.trace = True  # type: ignore[misc]
