"""Pytest 配置和 fixtures。"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# 项目根目录
PROJECT_ROOT = Path(__file__).parent.parent

# 添加 src 目录到 Python 路径
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

# 子进程模拟脚本
FAKE_CLI_PATH = PROJECT_ROOT / "tests" / "fixtures" / "fake_cli.py"

IS_WINDOWS = sys.platform == "win32"

# 命令字符串按空格拆分，路径含空格时无法使用占位符用例
PATHS_HAVE_SPACES = " " in sys.executable or " " in str(FAKE_CLI_PATH)


@pytest.fixture(autouse=True)
def fresh_config():
    """每个用例前后重新加载配置，避免环境变量串扰。"""
    from cli_spawn.config import reload_config

    reload_config()
    yield
    reload_config()


@pytest.fixture
def fake_cli() -> list[str]:
    """调用 fake_cli 的命令前缀。"""
    return [sys.executable, str(FAKE_CLI_PATH)]


@pytest.fixture
def fake_cli_command() -> str:
    """以空格拼接的 fake_cli 命令字符串（用于占位符用例）。"""
    if PATHS_HAVE_SPACES:
        pytest.skip("interpreter or fixture path contains spaces")
    return f"{sys.executable} {FAKE_CLI_PATH}"


@pytest.fixture
def temp_workspace(tmp_path: Path) -> Path:
    """临时工作目录。"""
    workspace = tmp_path / "workspace"
    workspace.mkdir()
    return workspace
