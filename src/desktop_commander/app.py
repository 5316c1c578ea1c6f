"""Desktop Commander MCP 应用入口。

包含服务器生命周期管理和主入口点。
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import sys

from mcp.server.stdio import stdio_server

from .command_manager import CommandManager
from .config import get_config
from .filesystem import FileSystemManager
from .runtime import TerminalManager
from .server import create_server
from .signal_manager import SignalManager

__all__ = ["run_server", "main"]

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class JsonSerializingFormatter(logging.Formatter):
    """尝试把日志参数中的对象 JSON 序列化（用于调试日志文件）。"""

    def format(self, record: logging.LogRecord) -> str:
        if record.args and isinstance(record.args, tuple):
            new_args = []
            for arg in record.args:
                if isinstance(arg, (dict, list)):
                    try:
                        new_args.append(json.dumps(arg, ensure_ascii=False, default=str))
                        continue
                    except (TypeError, ValueError):
                        pass
                new_args.append(arg)
            record.args = tuple(new_args)
        return super().format(record)


async def run_server() -> None:
    """运行 MCP Server。

    组合根：创建 TerminalManager / CommandManager / FileSystemManager / Server / SignalManager，
    并在退出时终止仍在运行的会话。

    使用并发任务架构：
    - server_task: 运行 MCP stdio server
    - shutdown_watcher: 监听 shutdown 事件并取消 server_task
    """
    config = get_config()
    logger.info(f"Starting Desktop Commander MCP Server: {config}")

    terminal_manager = TerminalManager(default_timeout_ms=config.timeout_ms)
    command_manager = CommandManager(config.config_file)
    await command_manager.load_blocked_commands()

    filesystem = FileSystemManager(config.allowed_directories)
    logger.info(f"Allowed directories: {[str(d) for d in filesystem.allowed_directories]}")

    server = create_server(terminal_manager, command_manager, config, filesystem)

    def on_shutdown() -> None:
        """信号管理器触发的关闭回调。"""
        logger.info("Shutdown callback triggered")
        # 关闭 stdin 以中断 stdio_server 的阻塞读取
        try:
            sys.stdin.close()
            logger.debug("stdin closed to unblock stdio_server")
        except OSError as e:
            logger.debug(f"Error closing stdin: {e}")

    signal_manager = SignalManager(terminal_manager, on_shutdown=on_shutdown)
    server_task: asyncio.Task | None = None
    shutdown_watcher: asyncio.Task | None = None

    async def _run_server_impl() -> None:
        logger.debug("Starting MCP server with stdio transport")
        async with stdio_server() as (read_stream, write_stream):
            await server.run(
                read_stream,
                write_stream,
                server.create_initialization_options(),
            )
        logger.debug("MCP server completed normally")

    async def _watch_shutdown() -> None:
        await signal_manager.wait_for_shutdown()
        logger.info("Shutdown signal received, cancelling server task...")
        if server_task and not server_task.done():
            server_task.cancel()

    try:
        await signal_manager.start()
        logger.info(
            f"Signal manager started (mode={signal_manager.sigint_mode.value}, "
            f"double_tap_window={signal_manager.double_tap_window}s)"
        )

        server_task = asyncio.create_task(_run_server_impl(), name="mcp-server")
        shutdown_watcher = asyncio.create_task(_watch_shutdown(), name="shutdown-watcher")

        try:
            await server_task
        except asyncio.CancelledError:
            logger.info("Server task cancelled by shutdown signal")

    finally:
        logger.info("run_server: entering finally block")

        if shutdown_watcher and not shutdown_watcher.done():
            shutdown_watcher.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await shutdown_watcher

        await signal_manager.stop()

        if terminal_manager.has_active_sessions():
            logger.info(f"Terminating {terminal_manager.active_count} remaining session(s)")
        await terminal_manager.aclose()

        logger.info("run_server: cleanup completed")

        if signal_manager.is_force_exit:
            logger.warning("Force exit requested, terminating with exit code 130")
            sys.exit(130)  # 128 + SIGINT(2) = 130


def configure_logging(log_debug: bool, log_file: str | None) -> None:
    """配置日志输出。

    stdout 被 MCP stdio 传输占用，日志只写 stderr 或文件。
    """
    handler: logging.Handler
    if log_debug and log_file:
        handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setFormatter(JsonSerializingFormatter(LOG_FORMAT))
        log_level = logging.DEBUG
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_level = logging.INFO

    # 第三方库保持 WARNING，减少噪音
    logging.basicConfig(level=logging.WARNING, handlers=[handler])
    logging.getLogger("desktop_commander").setLevel(log_level)


def main() -> None:
    """主入口点。"""
    config = get_config()
    configure_logging(config.log_debug, config.log_file)
    asyncio.run(run_server())


if __name__ == "__main__":
    main()
