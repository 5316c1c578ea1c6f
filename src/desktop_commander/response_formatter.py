"""MCP 响应格式化。

工具结果统一包装为单个 TextContent。错误以 "Error ...: <message>" 文本返回，
不会以异常形式泄漏到 MCP 框架。
"""

from __future__ import annotations

from mcp.types import TextContent

from .runtime import ActiveSession, CommandResult, CompletedSession

__all__ = [
    "format_active_sessions",
    "format_command_result",
    "format_completed_sessions",
    "format_error_response",
    "format_runtime",
    "text_response",
]


def text_response(text: str) -> list[TextContent]:
    return [TextContent(type="text", text=text)]


def format_error_response(error: str, action: str = "") -> list[TextContent]:
    """统一的错误响应格式化函数。

    Args:
        error: 错误消息
        action: 出错的动作描述（如 "executing command"）
    """
    prefix = f"Error {action}" if action else "Error"
    return text_response(f"{prefix}: {error}")


def format_command_result(result: CommandResult) -> str:
    """格式化 desktop_cmd_run 的结果。"""
    text = f"Command started with PID {result.pid}\n"
    if result.output.strip():
        text += f"Initial output:\n{result.output}\n"
    else:
        text += "No initial output available.\n"
    if result.is_blocked:
        text += "Command is still running. Use desktop_cmd_output to get more output."
    return text


def format_runtime(runtime_ms: int) -> str:
    """把毫秒格式化为 "1m 5s" / "42s"。"""
    total_seconds = int(max(runtime_ms, 0) / 1000 + 0.5)
    minutes, seconds = divmod(total_seconds, 60)
    return f"{minutes}m {seconds}s" if minutes > 0 else f"{seconds}s"


def format_active_sessions(sessions: list[ActiveSession]) -> str:
    if not sessions:
        return "No active sessions"
    return "\n".join(
        f"PID: {s.pid}, "
        f"Status: {'Running (blocked)' if s.is_blocked else 'Running'}, "
        f"Runtime: {format_runtime(s.runtime_ms)}"
        for s in sessions
    )


def format_completed_sessions(sessions: list[CompletedSession]) -> str:
    if not sessions:
        return "No completed sessions"
    lines = []
    for s in sessions:
        line = (
            f"PID: {s.pid}, Exit code: {s.exit_code}, "
            f"Started: {s.start_time.isoformat(timespec='seconds')}, "
            f"Ended: {s.end_time.isoformat(timespec='seconds')}, "
            f"Runtime: {s.runtime_seconds:.2f}s"
        )
        if s.output_truncated:
            line += ", Output truncated"
        lines.append(line)
    return "\n".join(lines)
