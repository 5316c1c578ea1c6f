"""终端会话工具处理器。

处理 desktop_cmd_run / desktop_cmd_output / desktop_cmd_terminate /
desktop_cmd_list_sessions / desktop_cmd_list_completed。
"""

from __future__ import annotations

import logging

from mcp.types import TextContent

from .base import ToolContext, ToolHandler
from ..response_formatter import (
    format_active_sessions,
    format_command_result,
    format_completed_sessions,
    format_error_response,
    text_response,
)
from ..runtime import NO_NEW_OUTPUT
from ..tool_schema import EmptyArgs, ExecuteCommandArgs, PidArgs

__all__ = [
    "ListCompletedHandler",
    "ListSessionsHandler",
    "ReadOutputHandler",
    "RunCommandHandler",
    "TerminateHandler",
]

logger = logging.getLogger(__name__)


class RunCommandHandler(ToolHandler):
    tool_name = "desktop_cmd_run"
    action = "executing command"

    async def execute(self, args: ExecuteCommandArgs, ctx: ToolContext) -> list[TextContent]:
        # 黑名单检查在启动前完成，TerminalManager 本身不做策略判断
        if not ctx.command_manager.is_allowed(args.command):
            logger.info(f"Rejected blocked command: {args.command!r}")
            return format_error_response(f"Command not allowed: {args.command}", self.action)

        timeout_ms = args.timeout_ms if args.timeout_ms is not None else ctx.config.timeout_ms
        result = await ctx.terminal_manager.run(args.command, timeout_ms)
        logger.debug(
            f"[MCP] desktop_cmd_run pid={result.pid} blocked={result.is_blocked} "
            f"output_len={len(result.output)}"
        )
        return text_response(format_command_result(result))


class ReadOutputHandler(ToolHandler):
    tool_name = "desktop_cmd_output"
    action = "reading output"

    async def execute(self, args: PidArgs, ctx: ToolContext) -> list[TextContent]:
        output = ctx.terminal_manager.read_new(args.pid)
        if output is None:
            return text_response(f"No session found for PID {args.pid}")
        return text_response(output if output.strip() else NO_NEW_OUTPUT)


class TerminateHandler(ToolHandler):
    tool_name = "desktop_cmd_terminate"
    action = "terminating process"

    async def execute(self, args: PidArgs, ctx: ToolContext) -> list[TextContent]:
        if ctx.terminal_manager.terminate(args.pid):
            return text_response(f"Successfully initiated termination of session {args.pid}")
        return text_response(f"No active session found for PID {args.pid}")


class ListSessionsHandler(ToolHandler):
    tool_name = "desktop_cmd_list_sessions"
    action = "listing sessions"

    async def execute(self, args: EmptyArgs, ctx: ToolContext) -> list[TextContent]:
        return text_response(format_active_sessions(ctx.terminal_manager.list_active()))


class ListCompletedHandler(ToolHandler):
    tool_name = "desktop_cmd_list_completed"
    action = "listing completed sessions"

    async def execute(self, args: EmptyArgs, ctx: ToolContext) -> list[TextContent]:
        return text_response(format_completed_sessions(ctx.terminal_manager.list_completed()))
