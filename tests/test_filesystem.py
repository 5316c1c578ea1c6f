"""FileSystemManager 和 edit block 测试。

所有操作都在 tmp_path 下的允许目录中进行。
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

from desktop_commander.edit_block import (
    EditBlock,
    EditBlockError,
    apply_edit_block,
    highlight_differences,
    parse_edit_block,
)
from desktop_commander.filesystem import FileSystemManager, PathAccessError


def _block(path: Path, search: str, replace: str, count: int | None = None) -> str:
    header = f"{path}::{count}" if count is not None else str(path)
    return f"{header}\n<<<<<<< SEARCH\n{search}\n=======\n{replace}\n>>>>>>> REPLACE"


# =============================================================================
# 路径校验
# =============================================================================


class TestValidatePath:
    """测试允许目录/受限目录约束。"""

    @pytest.mark.asyncio
    async def test_existing_file_inside(self, filesystem: FileSystemManager, workspace: Path):
        target = workspace / "a.txt"
        target.write_text("x")
        assert await filesystem.validate_path(str(target)) == target.resolve()

    @pytest.mark.asyncio
    async def test_new_file_inside(self, filesystem: FileSystemManager, workspace: Path):
        target = workspace / "new.txt"
        assert await filesystem.validate_path(str(target)) == target

    @pytest.mark.asyncio
    async def test_nested_new_path_uses_existing_ancestor(
        self, filesystem: FileSystemManager, workspace: Path
    ):
        target = workspace / "a" / "b" / "c"
        assert await filesystem.validate_path(str(target)) == target

    @pytest.mark.asyncio
    async def test_outside_rejected(self, filesystem: FileSystemManager, tmp_path: Path):
        with pytest.raises(PathAccessError, match="outside allowed directories"):
            await filesystem.validate_path(str(tmp_path / "other.txt"))

    @pytest.mark.asyncio
    async def test_sibling_prefix_rejected(self, filesystem: FileSystemManager, workspace: Path):
        """workspace2 不因为与 workspace 同前缀而被允许。"""
        sibling = workspace.parent / (workspace.name + "2")
        sibling.mkdir()
        with pytest.raises(PathAccessError):
            await filesystem.validate_path(str(sibling / "x.txt"))

    @pytest.mark.asyncio
    async def test_dotdot_escape_rejected(self, filesystem: FileSystemManager, workspace: Path):
        with pytest.raises(PathAccessError):
            await filesystem.validate_path(str(workspace / ".." / "escape.txt"))

    @pytest.mark.asyncio
    async def test_restricted_rejected(self, filesystem: FileSystemManager, workspace: Path):
        (workspace / "restricted").mkdir()
        with pytest.raises(PathAccessError, match="is restricted"):
            await filesystem.validate_path(str(workspace / "restricted" / "secret.txt"))

    @pytest.mark.asyncio
    @pytest.mark.skipif(sys.platform == "win32", reason="symlinks need privileges on Windows")
    async def test_symlink_escape_rejected(
        self, filesystem: FileSystemManager, workspace: Path, tmp_path: Path
    ):
        outside = tmp_path / "outside.txt"
        outside.write_text("secret")
        link = workspace / "link.txt"
        link.symlink_to(outside)
        with pytest.raises(PathAccessError, match="symlink target"):
            await filesystem.validate_path(str(link))

    def test_restricted_allowed_directory_ignored(self, tmp_path: Path):
        fs = FileSystemManager([tmp_path, tmp_path / "blocked"], [tmp_path / "blocked"])
        assert fs.allowed_directories == [tmp_path]

    def test_is_allowed(self, filesystem: FileSystemManager, workspace: Path, tmp_path: Path):
        assert filesystem.is_allowed(workspace / "x")
        assert not filesystem.is_allowed(tmp_path / "x")
        assert not filesystem.is_allowed(workspace / "restricted")

    def test_defaults(self):
        fs = FileSystemManager()
        assert Path(os.path.abspath(Path.home())) in fs.allowed_directories
        assert not fs.is_allowed(Path.home() / "Desktop" / "notes.txt")
        assert fs.restricted_directories == [Path(os.path.abspath(Path.home() / "Desktop"))]

    def test_list_allowed_directories(self, filesystem: FileSystemManager, workspace: Path):
        lines = filesystem.list_allowed_directories()
        assert lines[0] == str(workspace)
        assert lines[-1].startswith("RESTRICTED: ")


# =============================================================================
# 文件操作
# =============================================================================


class TestFileOperations:
    """测试读写、目录、移动、搜索和元数据。"""

    @pytest.mark.asyncio
    async def test_write_then_read(self, filesystem: FileSystemManager, workspace: Path):
        target = workspace / "hello.txt"
        await filesystem.write_file(str(target), "héllo\r\nworld\n")
        assert target.read_bytes() == "héllo\r\nworld\n".encode("utf-8")
        assert await filesystem.read_file(str(target)) == "héllo\r\nworld\n"
        assert [p.name for p in workspace.iterdir()] == ["hello.txt"]

    @pytest.mark.asyncio
    async def test_write_overwrites(self, filesystem: FileSystemManager, workspace: Path):
        target = workspace / "f.txt"
        target.write_text("old")
        await filesystem.write_file(str(target), "new")
        assert target.read_text() == "new"

    @pytest.mark.asyncio
    async def test_write_missing_parent(self, filesystem: FileSystemManager, workspace: Path):
        target = workspace / "sub" / "f.txt"
        with pytest.raises(FileNotFoundError):
            await filesystem.write_file(str(target), "x")

        await filesystem.write_file(str(target), "x", create_directories=True)
        assert target.read_text() == "x"

    @pytest.mark.asyncio
    async def test_read_outside_rejected(self, filesystem: FileSystemManager, tmp_path: Path):
        outside = tmp_path / "outside.txt"
        outside.write_text("secret")
        with pytest.raises(PathAccessError):
            await filesystem.read_file(str(outside))

    @pytest.mark.asyncio
    async def test_create_directory(self, filesystem: FileSystemManager, workspace: Path):
        target = workspace / "a" / "b"
        await filesystem.create_directory(str(target))
        await filesystem.create_directory(str(target))
        assert target.is_dir()

    @pytest.mark.asyncio
    async def test_list_directory(self, filesystem: FileSystemManager, workspace: Path):
        (workspace / "b.txt").write_text("")
        (workspace / "a_dir").mkdir()
        assert await filesystem.list_directory(str(workspace)) == ["[DIR] a_dir", "[FILE] b.txt"]

    @pytest.mark.asyncio
    async def test_move_file(self, filesystem: FileSystemManager, workspace: Path):
        source = workspace / "old.txt"
        source.write_text("data")
        (workspace / "docs").mkdir()
        await filesystem.move_file(str(source), str(workspace / "docs" / "new.txt"))
        assert not source.exists()
        assert (workspace / "docs" / "new.txt").read_text() == "data"

    @pytest.mark.asyncio
    async def test_move_outside_rejected(
        self, filesystem: FileSystemManager, workspace: Path, tmp_path: Path
    ):
        source = workspace / "keep.txt"
        source.write_text("data")
        with pytest.raises(PathAccessError):
            await filesystem.move_file(str(source), str(tmp_path / "stolen.txt"))
        assert source.exists()

    @pytest.mark.asyncio
    async def test_search_files(self, filesystem: FileSystemManager, workspace: Path):
        (workspace / "src").mkdir()
        (workspace / "src" / "Main.PY").write_text("")
        (workspace / "notes.txt").write_text("")
        (workspace / "restricted").mkdir()
        (workspace / "restricted" / "hidden.py").write_text("")

        results = await filesystem.search_files(str(workspace), ".py")
        assert results == [str(workspace / "src" / "Main.PY")]

    @pytest.mark.asyncio
    async def test_get_file_info(self, filesystem: FileSystemManager, workspace: Path):
        target = workspace / "info.txt"
        target.write_text("12345")
        info = await filesystem.get_file_info(str(target))

        assert info["size"] == 5
        assert info["isFile"] is True
        assert info["isDirectory"] is False
        assert len(info["permissions"]) == 3
        assert set(info) == {
            "size", "created", "modified", "accessed", "isDirectory", "isFile", "permissions",
        }


# =============================================================================
# Edit block
# =============================================================================


class TestParseEditBlock:
    """测试 edit block 解析。"""

    def test_basic(self):
        block = parse_edit_block("/tmp/f.txt\n<<<<<<< SEARCH\nold\n=======\nnew\n>>>>>>> REPLACE")
        assert block == EditBlock("/tmp/f.txt", "old", "new", 1)

    def test_expected_count(self):
        block = parse_edit_block("/tmp/f.txt::3\n<<<<<<< SEARCH\na\nb\n=======\n\n>>>>>>> REPLACE")
        assert block.expected_replacements == 3
        assert block.search == "a\nb"
        assert block.replace == ""

    def test_invalid_count_defaults_to_one(self):
        block = parse_edit_block("/tmp/f.txt::x\n<<<<<<< SEARCH\na\n=======\nb\n>>>>>>> REPLACE")
        assert block.file_path == "/tmp/f.txt"
        assert block.expected_replacements == 1

    @pytest.mark.parametrize(
        "content, message",
        [
            ("\n<<<<<<< SEARCH\na\n=======\nb\n>>>>>>> REPLACE", "missing file path"),
            ("/tmp/f.txt\n<<<<<<< SEARCH\na\nb", "missing markers"),
            ("/tmp/f.txt\n=======\n<<<<<<< SEARCH\na\n>>>>>>> REPLACE", "wrong order"),
            ("/tmp/f.txt\n<<<<<<< SEARCH\n  \n=======\nb\n>>>>>>> REPLACE", "empty search"),
        ],
    )
    def test_invalid(self, content: str, message: str):
        with pytest.raises(EditBlockError, match=message):
            parse_edit_block(content)

    def test_highlight_differences(self):
        assert highlight_differences("hello world", "hello word") == "hello wor{-l-}{++}d"


class TestApplyEditBlock:
    """测试 search/replace 应用。"""

    @pytest.mark.asyncio
    async def test_single_replacement(self, filesystem: FileSystemManager, workspace: Path):
        target = workspace / "code.py"
        target.write_text("x = 1\ny = 2\n")
        result = await apply_edit_block(filesystem, parse_edit_block(_block(target, "y = 2", "y = 3")))

        assert result.success is True
        assert result.match_count == 1
        assert target.read_text() == "x = 1\ny = 3\n"

    @pytest.mark.asyncio
    async def test_count_mismatch_leaves_file(self, filesystem: FileSystemManager, workspace: Path):
        target = workspace / "dup.txt"
        target.write_text("line\nline\nline\n")
        result = await apply_edit_block(filesystem, parse_edit_block(_block(target, "line", "x")))

        assert result.success is False
        assert result.match_count == 3
        assert "::3" in result.message
        assert target.read_text() == "line\nline\nline\n"

    @pytest.mark.asyncio
    async def test_expected_count_replaces_all(self, filesystem: FileSystemManager, workspace: Path):
        target = workspace / "dup.txt"
        target.write_text("line\nline\nline\n")
        result = await apply_edit_block(filesystem, parse_edit_block(_block(target, "line", "x", 3)))

        assert result.success is True
        assert target.read_text() == "x\nx\nx\n"

    @pytest.mark.asyncio
    async def test_crlf_file_keeps_line_endings(self, filesystem: FileSystemManager, workspace: Path):
        target = workspace / "win.txt"
        target.write_bytes(b"first\r\nsecond\r\nthird\r\n")
        block = EditBlock(str(target), "first\nsecond", "one\ntwo")
        result = await apply_edit_block(filesystem, block)

        assert result.success is True
        assert target.read_bytes() == b"one\r\ntwo\r\nthird\r\n"

    @pytest.mark.asyncio
    async def test_near_match_reported(self, filesystem: FileSystemManager, workspace: Path):
        target = workspace / "near.txt"
        target.write_text("def handler(request):\n    return None\n")
        block = EditBlock(str(target), "def handler(requests):", "def handler(req):")
        result = await apply_edit_block(filesystem, block)

        assert result.success is False
        assert "similar text" in result.message
        assert "{-s-}{++}" in result.message
        assert target.read_text() == "def handler(request):\n    return None\n"

    @pytest.mark.asyncio
    async def test_no_match(self, filesystem: FileSystemManager, workspace: Path):
        target = workspace / "far.txt"
        target.write_text("alpha\nbeta\n")
        result = await apply_edit_block(filesystem, EditBlock(str(target), "zzzzzzzz", "y"))

        assert result.success is False
        assert "Search content not found" in result.message

    @pytest.mark.asyncio
    async def test_replace_with_markers_rejected(self, filesystem: FileSystemManager, workspace: Path):
        target = workspace / "m.txt"
        target.write_text("a\n")
        result = await apply_edit_block(filesystem, EditBlock(str(target), "a", "=======\n"))
        assert result.success is False
        assert target.read_text() == "a\n"

    @pytest.mark.asyncio
    async def test_outside_file_rejected(self, filesystem: FileSystemManager, tmp_path: Path):
        outside = tmp_path / "outside.txt"
        outside.write_text("a\n")
        with pytest.raises(PathAccessError):
            await apply_edit_block(filesystem, EditBlock(str(outside), "a", "b"))
