"""Pytest 配置和 fixtures。"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest
import pytest_asyncio

# 项目根目录
PROJECT_ROOT = Path(__file__).parent.parent

# 添加 src 目录到 Python 路径
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from desktop_commander.command_manager import CommandManager  # noqa: E402
from desktop_commander.config import Config  # noqa: E402
from desktop_commander.filesystem import FileSystemManager  # noqa: E402
from desktop_commander.handlers import ToolContext  # noqa: E402
from desktop_commander.runtime import TerminalManager  # noqa: E402


@pytest_asyncio.fixture
async def manager():
    """短宽限期的 TerminalManager，测试结束时终止所有会话。"""
    terminal_manager = TerminalManager(grace_period=0.3)
    yield terminal_manager
    await terminal_manager.aclose(timeout=3.0)


@pytest.fixture
def command_manager(tmp_path: Path) -> CommandManager:
    """使用临时配置文件的 CommandManager（默认黑名单）。"""
    return CommandManager(tmp_path / "config.json")


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """文件系统工具的允许目录。"""
    root = tmp_path / "workspace"
    root.mkdir()
    return root


@pytest.fixture
def filesystem(workspace: Path) -> FileSystemManager:
    """只允许 workspace，workspace/restricted 为受限目录。"""
    return FileSystemManager([workspace], restricted_directories=[workspace / "restricted"])


@pytest.fixture
def tool_ctx(
    manager: TerminalManager,
    command_manager: CommandManager,
    filesystem: FileSystemManager,
) -> ToolContext:
    """工具执行上下文。"""
    return ToolContext(
        config=Config(timeout_ms=1000),
        terminal_manager=manager,
        command_manager=command_manager,
        filesystem=filesystem,
    )
