"""命令黑名单管理工具处理器（默认不启用）。"""

from __future__ import annotations

from mcp.types import TextContent

from .base import ToolContext, ToolHandler
from ..response_formatter import text_response
from ..tool_schema import BlockCommandArgs, EmptyArgs

__all__ = ["BlockCommandHandler", "ListBlockedHandler", "UnblockCommandHandler"]


class BlockCommandHandler(ToolHandler):
    tool_name = "desktop_cmd_block"
    action = "blocking command"

    async def execute(self, args: BlockCommandArgs, ctx: ToolContext) -> list[TextContent]:
        if await ctx.command_manager.block_command(args.command):
            return text_response(f"Successfully blocked command: {args.command}")
        return text_response(f"Command is already blocked: {args.command}")


class UnblockCommandHandler(ToolHandler):
    tool_name = "desktop_cmd_unblock"
    action = "unblocking command"

    async def execute(self, args: BlockCommandArgs, ctx: ToolContext) -> list[TextContent]:
        if await ctx.command_manager.unblock_command(args.command):
            return text_response(f"Successfully unblocked command: {args.command}")
        return text_response(f"Command is not blocked: {args.command}")


class ListBlockedHandler(ToolHandler):
    tool_name = "desktop_cmd_list_blocked"
    action = "listing blocked commands"

    async def execute(self, args: EmptyArgs, ctx: ToolContext) -> list[TextContent]:
        blocked = ctx.command_manager.list_blocked_commands()
        return text_response("\n".join(blocked) if blocked else "No blocked commands")
