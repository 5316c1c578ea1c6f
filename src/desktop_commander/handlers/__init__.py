"""Tool Handlers 模块。

提供工具处理器抽象和具体实现。
"""

from .base import ToolContext, ToolHandler
from .blocklist import BlockCommandHandler, ListBlockedHandler, UnblockCommandHandler
from .filesystem import (
    AllowedDirectoriesHandler,
    CreateDirectoryHandler,
    EditBlockHandler,
    FileInfoHandler,
    ListDirectoryHandler,
    MoveFileHandler,
    ReadFileHandler,
    SearchFilesHandler,
    WriteFileHandler,
)
from .process import ProcessKillHandler, ProcessListHandler
from .terminal import (
    ListCompletedHandler,
    ListSessionsHandler,
    ReadOutputHandler,
    RunCommandHandler,
    TerminateHandler,
)

# 工具名 → 处理器类
HANDLERS: dict[str, type[ToolHandler]] = {
    handler.tool_name: handler
    for handler in (
        RunCommandHandler,
        ReadOutputHandler,
        TerminateHandler,
        ListSessionsHandler,
        ListCompletedHandler,
        ProcessListHandler,
        ProcessKillHandler,
        ReadFileHandler,
        WriteFileHandler,
        CreateDirectoryHandler,
        ListDirectoryHandler,
        MoveFileHandler,
        SearchFilesHandler,
        FileInfoHandler,
        AllowedDirectoriesHandler,
        EditBlockHandler,
        BlockCommandHandler,
        UnblockCommandHandler,
        ListBlockedHandler,
    )
}


def create_handler(tool_name: str) -> ToolHandler:
    """根据工具名创建处理器。

    Raises:
        KeyError: 未知工具
    """
    return HANDLERS[tool_name]()


__all__ = [
    "HANDLERS",
    "ToolContext",
    "ToolHandler",
    "AllowedDirectoriesHandler",
    "CreateDirectoryHandler",
    "EditBlockHandler",
    "FileInfoHandler",
    "ListDirectoryHandler",
    "MoveFileHandler",
    "ReadFileHandler",
    "SearchFilesHandler",
    "WriteFileHandler",
    "BlockCommandHandler",
    "ListBlockedHandler",
    "UnblockCommandHandler",
    "ProcessKillHandler",
    "ProcessListHandler",
    "ListCompletedHandler",
    "ListSessionsHandler",
    "ReadOutputHandler",
    "RunCommandHandler",
    "TerminateHandler",
    "create_handler",
]
