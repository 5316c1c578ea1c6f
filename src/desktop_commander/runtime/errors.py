"""Runtime 模块异常类。

desktop-commander runtime v0.1.0
"""

from __future__ import annotations

__all__ = [
    "DesktopCommanderError",
    "LaunchError",
    "TerminationError",
]


class DesktopCommanderError(Exception):
    """Runtime 模块基础异常。"""
    pass


class LaunchError(DesktopCommanderError):
    """进程启动失败（未获得 pid，未登记任何会话）。

    Attributes:
        command: 启动失败的命令
    """

    def __init__(self, command: str, message: str = "Failed to get process ID") -> None:
        self.command = command
        self.message = message
        super().__init__(message)


class TerminationError(DesktopCommanderError):
    """信号发送失败。

    Attributes:
        pid: 目标进程 ID
        signal_name: 发送的信号名称
    """

    def __init__(self, pid: int, signal_name: str, reason: str = "") -> None:
        self.pid = pid
        self.signal_name = signal_name
        self.reason = reason
        detail = f": {reason}" if reason else ""
        super().__init__(f"Failed to send {signal_name} to pid={pid}{detail}")
