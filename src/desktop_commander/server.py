"""Desktop Commander MCP Server。

提供终端会话管理工具：启动命令、增量读取输出、终止会话、列出会话，
以及系统进程列表/终止、受限目录内的文件操作和命令黑名单管理。

用法:
    uvx desktop-commander-mcp
"""

from __future__ import annotations

import json
import logging
from typing import Any

from mcp.server import Server
from mcp.types import TextContent, Tool

from .command_manager import CommandManager
from .config import Config, get_config
from .filesystem import FileSystemManager
from .handlers import HANDLERS, ToolContext, create_handler
from .response_formatter import format_error_response
from .runtime import TerminalManager
from .tool_schema import SUPPORTED_TOOLS, TOOL_DESCRIPTIONS, TOOL_ORDER, create_tool_schema

__all__ = ["create_server"]

logger = logging.getLogger(__name__)


def _summarize_arguments(arguments: dict[str, Any]) -> str:
    """截断长字符串参数，用于日志。"""
    return json.dumps(
        {k: v[:100] + "..." if isinstance(v, str) and len(v) > 100 else v for k, v in arguments.items()},
        ensure_ascii=False,
        default=str,
    )


def create_server(
    terminal_manager: TerminalManager,
    command_manager: CommandManager,
    config: Config | None = None,
    filesystem: FileSystemManager | None = None,
) -> Server:
    """创建 MCP Server 实例。

    Args:
        terminal_manager: 会话注册表（由组合根持有，所有请求共享）
        command_manager: 命令黑名单
        config: 配置（默认使用全局配置）
        filesystem: 文件系统工具的目录约束（默认按 config.allowed_directories 创建）
    """
    config = config or get_config()
    if filesystem is None:
        filesystem = FileSystemManager(config.allowed_directories)
    server = Server("desktop-commander-mcp")

    tool_ctx = ToolContext(
        config=config,
        terminal_manager=terminal_manager,
        command_manager=command_manager,
        filesystem=filesystem,
    )

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        """列出已启用的工具。"""
        tools = [
            Tool(
                name=name,
                description=TOOL_DESCRIPTIONS[name],
                inputSchema=create_tool_schema(name),
            )
            for name in TOOL_ORDER
            if config.is_tool_allowed(name)
        ]
        logger.debug(
            f"[MCP] list_tools called, returning {len(tools)} tools: "
            f"{[t.name for t in tools]}"
        )
        return tools

    @server.call_tool()
    async def call_tool(name: str, arguments: dict[str, Any] | None) -> list[TextContent]:
        """调用工具。"""
        arguments = arguments or {}
        logger.debug(
            f"[MCP] call_tool request:\n"
            f"  Tool: {name}\n"
            f"  Arguments: {_summarize_arguments(arguments)}"
        )

        if name not in SUPPORTED_TOOLS or name not in HANDLERS:
            return format_error_response(f"Unknown tool '{name}'")

        if not config.is_tool_allowed(name):
            return format_error_response(f"Tool '{name}' is not enabled")

        handler = create_handler(name)
        return await handler.handle(arguments, tool_ctx)

    return server
