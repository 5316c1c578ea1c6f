"""文件系统工具处理器。

处理 desktop_fs_* 工具。路径校验和文件操作由 FileSystemManager 完成，
被拒绝的路径以 PathAccessError 抛出，由 ToolHandler.handle() 统一转为错误响应。
"""

from __future__ import annotations

import logging

from mcp.types import TextContent

from .base import ToolContext, ToolHandler
from ..edit_block import apply_edit_block, parse_edit_block
from ..response_formatter import format_error_response, text_response
from ..tool_schema import EditBlockArgs, EmptyArgs, MoveFileArgs, PathArgs, SearchFilesArgs, WriteFileArgs

__all__ = [
    "AllowedDirectoriesHandler",
    "CreateDirectoryHandler",
    "EditBlockHandler",
    "FileInfoHandler",
    "ListDirectoryHandler",
    "MoveFileHandler",
    "ReadFileHandler",
    "SearchFilesHandler",
    "WriteFileHandler",
]

logger = logging.getLogger(__name__)


class ReadFileHandler(ToolHandler):
    tool_name = "desktop_fs_read"
    action = "reading file"

    async def execute(self, args: PathArgs, ctx: ToolContext) -> list[TextContent]:
        return text_response(await ctx.filesystem.read_file(args.path))


class WriteFileHandler(ToolHandler):
    tool_name = "desktop_fs_write"
    action = "writing file"

    async def execute(self, args: WriteFileArgs, ctx: ToolContext) -> list[TextContent]:
        await ctx.filesystem.write_file(args.path, args.content, args.create_directories)
        return text_response(f"Successfully wrote to {args.path}")


class CreateDirectoryHandler(ToolHandler):
    tool_name = "desktop_fs_mkdir"
    action = "creating directory"

    async def execute(self, args: PathArgs, ctx: ToolContext) -> list[TextContent]:
        await ctx.filesystem.create_directory(args.path)
        return text_response(f"Successfully created directory {args.path}")


class ListDirectoryHandler(ToolHandler):
    tool_name = "desktop_fs_list"
    action = "listing directory"

    async def execute(self, args: PathArgs, ctx: ToolContext) -> list[TextContent]:
        entries = await ctx.filesystem.list_directory(args.path)
        return text_response("\n".join(entries) if entries else "Directory is empty")


class MoveFileHandler(ToolHandler):
    tool_name = "desktop_fs_move"
    action = "moving file"

    async def execute(self, args: MoveFileArgs, ctx: ToolContext) -> list[TextContent]:
        await ctx.filesystem.move_file(args.source, args.destination)
        return text_response(f"Successfully moved {args.source} to {args.destination}")


class SearchFilesHandler(ToolHandler):
    tool_name = "desktop_fs_search"
    action = "searching files"

    async def execute(self, args: SearchFilesArgs, ctx: ToolContext) -> list[TextContent]:
        results = await ctx.filesystem.search_files(args.path, args.pattern)
        return text_response("\n".join(results) if results else "No matches found")


class FileInfoHandler(ToolHandler):
    tool_name = "desktop_fs_stat"
    action = "getting file info"

    async def execute(self, args: PathArgs, ctx: ToolContext) -> list[TextContent]:
        info = await ctx.filesystem.get_file_info(args.path)
        return text_response("\n".join(f"{key}: {value}" for key, value in info.items()))


class AllowedDirectoriesHandler(ToolHandler):
    tool_name = "desktop_fs_allowed_dirs"
    action = "listing allowed directories"

    async def execute(self, args: EmptyArgs, ctx: ToolContext) -> list[TextContent]:
        directories = ctx.filesystem.list_allowed_directories()
        return text_response("Allowed directories:\n" + "\n".join(directories))


class EditBlockHandler(ToolHandler):
    tool_name = "desktop_fs_edit_block"
    action = "applying edit"

    async def execute(self, args: EditBlockArgs, ctx: ToolContext) -> list[TextContent]:
        block = parse_edit_block(args.block_content)
        result = await apply_edit_block(ctx.filesystem, block)
        if not result.success:
            logger.debug(f"Edit block not applied to {block.file_path}: {result.message}")
            return format_error_response(result.message, self.action)

        noun = "occurrence" if result.match_count == 1 else "occurrences"
        return text_response(
            f"{result.message}\nFound {result.match_count} {noun} of the search text."
        )
