"""Tool Schema 定义。

包含工具描述、参数模型（pydantic）和 schema 创建函数。
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

__all__ = [
    "ADMIN_TOOLS",
    "SUPPORTED_TOOLS",
    "TOOL_ARGS",
    "TOOL_DESCRIPTIONS",
    "TOOL_ORDER",
    "BlockCommandArgs",
    "EditBlockArgs",
    "EmptyArgs",
    "ExecuteCommandArgs",
    "KillProcessArgs",
    "MoveFileArgs",
    "PathArgs",
    "PidArgs",
    "SearchFilesArgs",
    "WriteFileArgs",
    "create_tool_schema",
]


class _ToolArgs(BaseModel):
    """工具参数基类（忽略未知参数）。"""

    model_config = ConfigDict(extra="ignore")


class ExecuteCommandArgs(_ToolArgs):
    command: str = Field(description="Shell command to execute")
    timeout_ms: int | None = Field(
        default=None,
        ge=0,
        description="Milliseconds to wait for output before returning (command keeps running)",
    )


class PidArgs(_ToolArgs):
    pid: int = Field(description="Process ID returned by desktop_cmd_run")


class KillProcessArgs(_ToolArgs):
    pid: int = Field(gt=0, description="Process ID to terminate")


class BlockCommandArgs(_ToolArgs):
    command: str = Field(min_length=1, description="Base command name, e.g. 'sudo'")


class EmptyArgs(_ToolArgs):
    pass


class PathArgs(_ToolArgs):
    path: str = Field(min_length=1, description="File or directory path (absolute, relative or ~)")


class WriteFileArgs(_ToolArgs):
    path: str = Field(min_length=1, description="File to write")
    content: str = Field(description="New file content")
    create_directories: bool = Field(
        default=False,
        description="Create missing parent directories",
    )


class MoveFileArgs(_ToolArgs):
    source: str = Field(min_length=1, description="Existing file or directory")
    destination: str = Field(min_length=1, description="New path")


class SearchFilesArgs(_ToolArgs):
    path: str = Field(min_length=1, description="Directory to search from")
    pattern: str = Field(min_length=1, description="Case-insensitive substring of the name")


class EditBlockArgs(_ToolArgs):
    # MCP 参数名为 blockContent
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    block_content: str = Field(
        alias="blockContent",
        description="Edit block: file path line, SEARCH/REPLACE markers and text",
    )


# 工具列表顺序（list_tools 按此顺序输出）
TOOL_ORDER = [
    "desktop_cmd_run",
    "desktop_cmd_output",
    "desktop_cmd_terminate",
    "desktop_cmd_list_sessions",
    "desktop_cmd_list_completed",
    "desktop_proc_list",
    "desktop_proc_kill",
    "desktop_fs_read",
    "desktop_fs_write",
    "desktop_fs_mkdir",
    "desktop_fs_list",
    "desktop_fs_move",
    "desktop_fs_search",
    "desktop_fs_stat",
    "desktop_fs_allowed_dirs",
    "desktop_fs_edit_block",
    "desktop_cmd_block",
    "desktop_cmd_unblock",
    "desktop_cmd_list_blocked",
]

# 支持的工具列表（用于校验）
SUPPORTED_TOOLS = frozenset(TOOL_ORDER)

# 黑名单管理工具（默认不启用）
ADMIN_TOOLS = frozenset({"desktop_cmd_block", "desktop_cmd_unblock", "desktop_cmd_list_blocked"})

TOOL_ARGS: dict[str, type[BaseModel]] = {
    "desktop_cmd_run": ExecuteCommandArgs,
    "desktop_cmd_output": PidArgs,
    "desktop_cmd_terminate": PidArgs,
    "desktop_cmd_list_sessions": EmptyArgs,
    "desktop_cmd_list_completed": EmptyArgs,
    "desktop_proc_list": EmptyArgs,
    "desktop_proc_kill": KillProcessArgs,
    "desktop_fs_read": PathArgs,
    "desktop_fs_write": WriteFileArgs,
    "desktop_fs_mkdir": PathArgs,
    "desktop_fs_list": PathArgs,
    "desktop_fs_move": MoveFileArgs,
    "desktop_fs_search": SearchFilesArgs,
    "desktop_fs_stat": PathArgs,
    "desktop_fs_allowed_dirs": EmptyArgs,
    "desktop_fs_edit_block": EditBlockArgs,
    "desktop_cmd_block": BlockCommandArgs,
    "desktop_cmd_unblock": BlockCommandArgs,
    "desktop_cmd_list_blocked": EmptyArgs,
}

# 工具描述
TOOL_DESCRIPTIONS = {
    "desktop_cmd_run": (
        "Execute a terminal command with optional timeout (in milliseconds). If the timeout is reached, "
        "the command continues running in the background and can be monitored using desktop_cmd_output. "
        "Returns PID and initial output from the command. Use responsibly and avoid potentially "
        "destructive commands without user confirmation. "
        'Example: {"command": "ls -la", "timeout_ms": 5000}'
    ),
    "desktop_cmd_output": (
        "Read new output from a running terminal session. Use this to get additional output "
        "from long-running commands or commands that were started with desktop_cmd_run. "
        "For finished commands, returns the exit code, runtime and final output. "
        'Example: {"pid": 1234}'
    ),
    "desktop_cmd_terminate": (
        "Force terminate a running terminal session. Sends an interrupt first and kills the "
        "process one second later if it is still running. "
        'Example: {"pid": 1234}'
    ),
    "desktop_cmd_list_sessions": (
        "List all active terminal sessions. Returns a list of PIDs, blocked status, and runtime "
        "for commands started with desktop_cmd_run. Useful for managing and monitoring multiple commands."
    ),
    "desktop_cmd_list_completed": (
        "List recently completed terminal sessions (last 100) with exit code, start/end time "
        "and whether output was truncated. Use desktop_cmd_output to read their final output."
    ),
    "desktop_proc_list": (
        "List all running processes on the system. Returns process information including PID, "
        "command name, CPU usage, and memory usage. Results are formatted as "
        "'PID: [pid], Command: [name], CPU: [usage], Memory: [usage]' for each process."
    ),
    "desktop_proc_kill": (
        "Terminate a running process by PID. Use with caution as this will "
        "terminate the specified process. Should only be used for processes "
        'that are unresponsive or causing problems. Example: {"pid": 1234}'
    ),
    "desktop_fs_read": (
        "[Filesystem] Read the complete contents of a UTF-8 text file. "
        "Only works within allowed directories. "
        'Example: {"path": "/home/user/document.txt"}'
    ),
    "desktop_fs_write": (
        "[Filesystem] Completely replace file contents. Best for large changes or when "
        "desktop_fs_edit_block fails. Writes a temporary file and renames it over the target. "
        "Creates new files if they don't exist and, with create_directories, missing parent "
        "directories. Only works within allowed directories. "
        'Example: {"path": "/home/user/file.txt", "content": "New file content here"}'
    ),
    "desktop_fs_mkdir": (
        "[Filesystem] Create a directory, including missing parents (like mkdir -p). "
        "Does not fail if the directory already exists. Only works within allowed directories. "
        'Example: {"path": "/home/user/new/nested/directory"}'
    ),
    "desktop_fs_list": (
        "[Filesystem] List the entries of a directory. Entries are prefixed with [DIR] or [FILE]. "
        "Only works within allowed directories. "
        'Example: {"path": "/home/user/documents"}'
    ),
    "desktop_fs_move": (
        "[Filesystem] Move or rename a file or directory. Both source and destination must be "
        "within allowed directories. "
        'Example: {"source": "/home/user/old.txt", "destination": "/home/user/docs/new.txt"}'
    ),
    "desktop_fs_search": (
        "[Filesystem] Recursively search for files and directories whose name contains the "
        "pattern (case-insensitive). Returns absolute paths. Only searches within allowed "
        'directories. Example: {"path": "/home/user", "pattern": ".txt"}'
    ),
    "desktop_fs_stat": (
        "[Filesystem] Retrieve metadata about a file or directory: size, creation, modification "
        "and access times, type and permissions. Only works within allowed directories. "
        'Example: {"path": "/home/user/document.txt"}'
    ),
    "desktop_fs_allowed_dirs": (
        "[Filesystem] Return the directories this server may access, plus the restricted "
        "locations that are always denied."
    ),
    "desktop_fs_edit_block": (
        "[Filesystem] Apply a search/replace edit to a file.\n\n"
        "Format:\n"
        "1. First line: full path to the file, optionally followed by '::N' where N is the "
        "number of expected replacements\n"
        "2. The exact line <<<<<<< SEARCH\n"
        "3. The exact text to find (including whitespace)\n"
        "4. The exact line =======\n"
        "5. The replacement text\n"
        "6. The exact line >>>>>>> REPLACE\n\n"
        "The file is only changed when the number of matches equals N (default 1). "
        "Line endings are matched leniently (CRLF/LF). When no match is found, the closest "
        "similar text is reported with a character diff. "
        'Example: {"blockContent": "/path/to/file.txt\\n<<<<<<< SEARCH\\nold text\\n'
        '=======\\nnew text\\n>>>>>>> REPLACE"}'
    ),
    "desktop_cmd_block": (
        "Add a command to the blocklist. Blocked commands are rejected by desktop_cmd_run. "
        'Example: {"command": "sudo"}'
    ),
    "desktop_cmd_unblock": (
        "Remove a command from the blocklist. "
        'Example: {"command": "sudo"}'
    ),
    "desktop_cmd_list_blocked": "List all commands currently on the blocklist.",
}


def create_tool_schema(tool_name: str) -> dict[str, Any]:
    """创建工具的 inputSchema。

    Args:
        tool_name: 工具名称

    Returns:
        JSON Schema 字典
    """
    model = TOOL_ARGS[tool_name]
    schema = model.model_json_schema()
    schema.setdefault("properties", {})
    schema.setdefault("required", [])
    schema.pop("title", None)
    return schema
