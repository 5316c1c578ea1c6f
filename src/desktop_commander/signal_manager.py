"""信号管理模块。

把发给服务器的 OS 信号转换为会话级别的操作：
- SIGINT: 终止活动的终端会话（而不是直接退出进程）
- SIGTERM: 优雅退出（终止所有会话 + 清理 + 退出）

子进程运行在独立的 session 中，终端的 Ctrl+C 不会直接到达它们，
因此由这里决定是否终止它们。

支持的配置：
- DCM_SIGINT_MODE: cancel | exit | cancel_then_exit
- DCM_SIGINT_DOUBLE_TAP_WINDOW: 双击退出窗口时间
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
import time
from typing import Callable, Optional

from .config import SigintMode, get_config
from .runtime import TerminalManager

__all__ = ["SignalManager", "SigintMode"]

logger = logging.getLogger(__name__)


class SignalManager:
    """信号管理器。

    Example:
        ```python
        manager = TerminalManager()
        signal_manager = SignalManager(manager)

        async def main():
            await signal_manager.start()
            try:
                await serve()
            finally:
                await signal_manager.stop()
        ```

    Attributes:
        terminal_manager: 会话注册表
        sigint_mode: SIGINT 处理模式
        double_tap_window: 双击退出窗口时间（秒）
    """

    def __init__(
        self,
        terminal_manager: TerminalManager,
        sigint_mode: Optional[SigintMode] = None,
        double_tap_window: Optional[float] = None,
        on_shutdown: Optional[Callable[[], None]] = None,
    ) -> None:
        """初始化信号管理器。

        Args:
            terminal_manager: 会话注册表
            sigint_mode: SIGINT 处理模式（默认从配置读取）
            double_tap_window: 双击退出窗口时间（默认从配置读取）
            on_shutdown: 关闭时的回调函数
        """
        self.terminal_manager = terminal_manager

        config = get_config()
        self.sigint_mode = sigint_mode if sigint_mode is not None else config.sigint_mode
        self.double_tap_window = (
            double_tap_window if double_tap_window is not None else config.sigint_double_tap_window
        )
        self._on_shutdown = on_shutdown

        self._last_sigint_time: float = 0.0
        self._shutdown_requested: bool = False
        self._force_exit: bool = False
        self._shutdown_event: Optional[asyncio.Event] = None
        self._original_sigint_handler = None
        self._running: bool = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def is_shutdown_requested(self) -> bool:
        """是否已请求关闭。"""
        return self._shutdown_requested

    @property
    def is_force_exit(self) -> bool:
        """是否请求强制退出（双击 SIGINT）。"""
        return self._force_exit

    async def start(self) -> None:
        """启动信号监听。

        必须在 asyncio 事件循环中调用。
        """
        if self._running:
            logger.warning("SignalManager already running")
            return

        self._loop = asyncio.get_running_loop()
        self._shutdown_event = asyncio.Event()
        self._running = True

        if sys.platform != "win32":
            self._loop.add_signal_handler(signal.SIGINT, self._handle_sigint)
            self._loop.add_signal_handler(signal.SIGTERM, self._handle_sigterm)
            logger.debug(
                f"Signal handlers installed (mode={self.sigint_mode.value}, "
                f"double_tap_window={self.double_tap_window}s)"
            )
        else:
            # Windows: 信号处理器在主线程同步执行，转回事件循环处理
            self._original_sigint_handler = signal.signal(
                signal.SIGINT,
                lambda sig, frame: self._loop.call_soon_threadsafe(self._handle_sigint),
            )
            logger.debug(
                f"SIGINT handler installed on Windows (mode={self.sigint_mode.value})"
            )

    async def stop(self) -> None:
        """停止信号监听，恢复原始信号处理器。"""
        if not self._running:
            return

        self._running = False

        if sys.platform != "win32" and self._loop:
            try:
                self._loop.remove_signal_handler(signal.SIGINT)
                self._loop.remove_signal_handler(signal.SIGTERM)
            except (RuntimeError, ValueError) as e:
                logger.debug(f"Error removing signal handlers: {e}")
        elif sys.platform == "win32" and self._original_sigint_handler is not None:
            try:
                signal.signal(signal.SIGINT, self._original_sigint_handler)
            except (OSError, ValueError) as e:
                logger.debug(f"Error restoring SIGINT handler: {e}")

        logger.debug("Signal handlers removed")

    async def wait_for_shutdown(self) -> None:
        """等待关闭信号。"""
        if self._shutdown_event:
            await self._shutdown_event.wait()

    def _terminate_sessions(self) -> int:
        if not self.terminal_manager.has_active_sessions():
            return 0
        return self.terminal_manager.terminate_all()

    def _handle_sigint(self) -> None:
        """处理 SIGINT 信号。

        - 有活动会话：终止会话
        - 没有活动会话或模式为 EXIT：请求关闭
        - 在双击窗口内再次收到 SIGINT：强制退出
        """
        current_time = time.time()
        time_since_last = current_time - self._last_sigint_time
        self._last_sigint_time = current_time

        if time_since_last < self.double_tap_window and self._shutdown_requested:
            logger.warning("Double SIGINT detected, forcing shutdown")
            self._force_shutdown()
            return

        if self.sigint_mode == SigintMode.EXIT:
            logger.info("SIGINT received (mode=exit), requesting shutdown")
            self._request_shutdown()

        elif self.sigint_mode == SigintMode.CANCEL:
            count = self._terminate_sessions()
            if count:
                logger.info(f"SIGINT received (mode=cancel), terminating {count} session(s)")
            else:
                logger.info(
                    "SIGINT received (mode=cancel), no active sessions, requesting shutdown"
                )
                self._request_shutdown()

        elif self.sigint_mode == SigintMode.CANCEL_THEN_EXIT:
            count = self._terminate_sessions()
            if count:
                logger.info(
                    f"SIGINT received (mode=cancel_then_exit), terminating {count} session(s). "
                    f"Press Ctrl+C again within {self.double_tap_window}s to exit."
                )
                # 标记为已请求关闭，但不触发实际关闭
                self._shutdown_requested = True
            else:
                logger.info(
                    "SIGINT received (mode=cancel_then_exit), no active sessions, requesting shutdown"
                )
                self._request_shutdown()

    def _handle_sigterm(self) -> None:
        """处理 SIGTERM 信号：终止所有会话并请求关闭。"""
        logger.info("SIGTERM received, initiating graceful shutdown")

        count = self._terminate_sessions()
        if count:
            logger.info(f"Terminating {count} active session(s) for shutdown")

        self._request_shutdown()

    def _notify_shutdown(self) -> None:
        if self._on_shutdown:
            try:
                self._on_shutdown()
            except Exception as e:
                logger.warning(f"Error in shutdown callback: {e}")

        if self._shutdown_event and self._loop:
            self._loop.call_soon_threadsafe(self._shutdown_event.set)

    def _request_shutdown(self) -> None:
        """请求关闭。"""
        self._shutdown_requested = True
        self._notify_shutdown()

    def _force_shutdown(self) -> None:
        """强制退出。

        设置 force_exit 标志并触发 shutdown event，
        实际的进程退出由 run_server() 在清理完成后执行。
        """
        logger.warning("Forcing immediate shutdown")
        self._force_exit = True
        self._shutdown_requested = True

        count = self._terminate_sessions()
        if count:
            logger.info(f"Force shutdown: terminating {count} session(s)")

        self._notify_shutdown()

    def request_graceful_shutdown(self) -> None:
        """程序化请求优雅退出。"""
        logger.info("Programmatic shutdown requested")
        self._terminate_sessions()
        self._request_shutdown()
