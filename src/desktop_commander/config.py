"""DCM 环境变量配置管理。

环境变量:
    DCM_ENABLE: 启用的工具列表
        - 空/未设置 = 默认工具集（除黑名单管理工具外的全部工具）
        - 逗号分割，忽略大小写
        - 例: "desktop_cmd_run,desktop_cmd_output"

    DCM_DISABLE: 禁用的工具列表（从 enable 中减去）
        - 逗号分割，忽略大小写
        - 例: "desktop_proc_kill" 禁用系统进程终止工具

    DCM_TIMEOUT_MS: desktop_cmd_run 的默认超时（毫秒）
        - 默认 1000

    DCM_CONFIG_FILE: 命令黑名单 JSON 文件路径
        - 默认 ~/.desktop-commander/config.json

    DCM_ALLOWED_DIRS: 文件系统工具允许访问的目录
        - 以 os.pathsep 分割（POSIX 为 ":"，Windows 为 ";"）
        - 空/未设置 = 当前工作目录、用户主目录、临时目录
        - ~/Desktop 始终禁止访问

    DCM_LOG_DEBUG: 日志调试模式
        - true/1/yes = 开启 (日志输出到临时文件)
        - false/0/no = 关闭 (默认，日志输出到 stderr)

    DCM_SIGINT_MODE: SIGINT (Ctrl+C) 处理模式
        - cancel = 终止活动会话（无活动会话则退出）(默认)
        - exit = 直接退出进程
        - cancel_then_exit = 先终止会话，第二次才退出

    DCM_SIGINT_DOUBLE_TAP_WINDOW: 双击退出窗口时间（秒）
        - 默认 1.0 秒
        - 在此时间窗口内第二次 Ctrl+C 将强制退出
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path

from .runtime import DEFAULT_COMMAND_TIMEOUT_MS
from .tool_schema import ADMIN_TOOLS, SUPPORTED_TOOLS

__all__ = ["Config", "load_config", "get_config", "reload_config", "SigintMode"]

DEFAULT_CONFIG_FILE = Path.home() / ".desktop-commander" / "config.json"

# 默认启用的工具（黑名单管理工具需显式启用）
DEFAULT_TOOLS = frozenset(SUPPORTED_TOOLS - ADMIN_TOOLS)


class SigintMode(Enum):
    """SIGINT 处理模式。

    - CANCEL: 终止活动会话，不退出（如果没有活动会话则退出）
    - EXIT: 直接退出进程（传统行为）
    - CANCEL_THEN_EXIT: 先终止会话，第二次 SIGINT 才退出
    """

    CANCEL = "cancel"
    EXIT = "exit"
    CANCEL_THEN_EXIT = "cancel_then_exit"

    @classmethod
    def from_string(cls, value: str) -> "SigintMode":
        """从字符串解析模式，无效值返回 CANCEL。"""
        value = value.lower().strip()
        for mode in cls:
            if mode.value == value:
                return mode
        return cls.CANCEL


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """解析布尔值环境变量。"""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_tool_list(value: str | None) -> set[str]:
    """解析工具列表环境变量（未知工具被忽略）。"""
    if not value or not value.strip():
        return set()

    tools = set()
    for item in value.split(","):
        tool = item.strip().lower()
        if tool and tool in SUPPORTED_TOOLS:
            tools.add(tool)

    return tools


def _compute_enabled_tools(enable: str | None, disable: str | None) -> set[str]:
    """计算最终启用的工具列表。

    Args:
        enable: DCM_ENABLE 环境变量值
        disable: DCM_DISABLE 环境变量值
    """
    enabled = _parse_tool_list(enable)
    disabled = _parse_tool_list(disable)

    # enable 为空时使用默认工具集
    if not enabled:
        enabled = set(DEFAULT_TOOLS)

    return enabled - disabled


def _parse_timeout_ms(value: str | None) -> int:
    """解析默认超时，非法值使用默认值。"""
    if not value:
        return DEFAULT_COMMAND_TIMEOUT_MS
    try:
        return max(0, int(value))
    except ValueError:
        return DEFAULT_COMMAND_TIMEOUT_MS


def _parse_config_file(value: str | None) -> Path:
    if not value or not value.strip():
        return DEFAULT_CONFIG_FILE
    return Path(value.strip()).expanduser()


def _parse_allowed_dirs(value: str | None) -> list[Path]:
    """解析允许目录列表（空列表表示使用默认目录）。"""
    if not value:
        return []
    return [Path(item.strip()).expanduser() for item in value.split(os.pathsep) if item.strip()]


@dataclass
class Config:
    """DCM 配置。

    Attributes:
        tools: 允许的工具集合
        timeout_ms: desktop_cmd_run 默认超时（毫秒）
        config_file: 命令黑名单文件
        allowed_directories: 文件系统工具允许目录（空 = 默认目录）
        log_debug: 日志调试模式（输出到临时文件）
        log_file: 日志文件路径（当 log_debug=True 时自动设置）
        sigint_mode: SIGINT 处理模式
        sigint_double_tap_window: 双击退出窗口时间（秒）
    """

    tools: set[str] = field(default_factory=lambda: set(DEFAULT_TOOLS))
    timeout_ms: int = DEFAULT_COMMAND_TIMEOUT_MS
    config_file: Path = DEFAULT_CONFIG_FILE
    allowed_directories: list[Path] = field(default_factory=list)
    log_debug: bool = False
    log_file: str | None = None
    sigint_mode: SigintMode = SigintMode.CANCEL
    sigint_double_tap_window: float = 1.0

    def is_tool_allowed(self, tool: str) -> bool:
        """检查工具是否允许使用。"""
        return tool.lower() in self.tools

    def __repr__(self) -> str:
        tools_str = ",".join(sorted(self.tools)) or "none"
        return (
            f"Config(tools={tools_str}, "
            f"timeout_ms={self.timeout_ms}, "
            f"config_file={self.config_file}, "
            f"allowed_directories={[str(d) for d in self.allowed_directories]}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file}, "
            f"sigint_mode={self.sigint_mode.value}, "
            f"sigint_double_tap_window={self.sigint_double_tap_window})"
        )


def _generate_log_file_path() -> str:
    """生成临时目录下带时间戳的日志文件路径。"""
    log_dir = Path(tempfile.gettempdir()) / "desktop-commander"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"dcm_debug_{timestamp}.log"

    return str(log_file.resolve())


def _parse_sigint_mode(value: str | None) -> SigintMode:
    """解析 SIGINT 模式环境变量。"""
    if not value:
        return SigintMode.CANCEL
    return SigintMode.from_string(value)


def _parse_double_tap_window(value: str | None) -> float:
    """解析双击窗口时间环境变量。"""
    if not value:
        return 1.0
    try:
        window = float(value)
        return max(0.1, min(window, 10.0))  # 限制在 0.1-10 秒范围
    except ValueError:
        return 1.0


def load_config() -> Config:
    """从环境变量加载配置。"""
    log_debug = _parse_bool(os.environ.get("DCM_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Config(
        tools=_compute_enabled_tools(
            os.environ.get("DCM_ENABLE"),
            os.environ.get("DCM_DISABLE"),
        ),
        timeout_ms=_parse_timeout_ms(os.environ.get("DCM_TIMEOUT_MS")),
        config_file=_parse_config_file(os.environ.get("DCM_CONFIG_FILE")),
        allowed_directories=_parse_allowed_dirs(os.environ.get("DCM_ALLOWED_DIRS")),
        log_debug=log_debug,
        log_file=log_file,
        sigint_mode=_parse_sigint_mode(os.environ.get("DCM_SIGINT_MODE")),
        sigint_double_tap_window=_parse_double_tap_window(
            os.environ.get("DCM_SIGINT_DOUBLE_TAP_WINDOW")
        ),
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
