"""系统进程工具处理器（psutil）。

处理 desktop_proc_list / desktop_proc_kill。与终端会话无关，作用于整个系统的进程表。
"""

from __future__ import annotations

import asyncio
import logging

import psutil
from mcp.types import TextContent

from .base import ToolContext, ToolHandler
from ..response_formatter import format_error_response, text_response
from ..tool_schema import EmptyArgs, KillProcessArgs

__all__ = ["ProcessKillHandler", "ProcessListHandler", "list_processes"]

logger = logging.getLogger(__name__)


def _format_metric(value: float | None) -> str:
    return "N/A" if value is None else f"{value:.1f}"


def list_processes() -> list[str]:
    """列出系统进程，每个进程一行。"""
    lines = []
    for proc in psutil.process_iter(["pid", "name", "cpu_percent", "memory_percent"]):
        info = proc.info
        lines.append(
            f"PID: {info['pid']}, "
            f"Command: {info.get('name') or '[unknown]'}, "
            f"CPU: {_format_metric(info.get('cpu_percent'))}, "
            f"Memory: {_format_metric(info.get('memory_percent'))}"
        )
    return lines


class ProcessListHandler(ToolHandler):
    tool_name = "desktop_proc_list"
    action = "listing processes"

    async def execute(self, args: EmptyArgs, ctx: ToolContext) -> list[TextContent]:
        # process_iter 会遍历 /proc，放到线程中避免阻塞事件循环
        lines = await asyncio.to_thread(list_processes)
        return text_response("\n".join(lines))


class ProcessKillHandler(ToolHandler):
    tool_name = "desktop_proc_kill"
    action = "killing process"

    async def execute(self, args: KillProcessArgs, ctx: ToolContext) -> list[TextContent]:
        try:
            psutil.Process(args.pid).terminate()
        except psutil.NoSuchProcess:
            return format_error_response(f"No such process: {args.pid}", self.action)
        except psutil.AccessDenied:
            return format_error_response(f"Access denied for process {args.pid}", self.action)
        logger.info(f"Terminated system process pid={args.pid}")
        return text_response(f"Successfully terminated process {args.pid}")
