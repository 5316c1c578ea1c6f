"""受限目录内的文件系统操作。

所有路径先经过 validate_path():
- 展开 ~，相对路径按当前工作目录解析，折叠 ".."
- 必须位于某个允许目录之内，且不在受限目录（默认 ~/Desktop）之内
- 已存在的路径按真实路径（解析符号链接）再检查一次；不存在的路径检查最近的已存在祖先目录

文件内容按 UTF-8 读写，不做换行符转换。
"""

from __future__ import annotations

import logging
import os
import stat
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any

import anyio

__all__ = [
    "FileSystemManager",
    "PathAccessError",
    "default_allowed_directories",
    "default_restricted_directories",
]

logger = logging.getLogger(__name__)


class PathAccessError(PermissionError):
    """路径不在允许范围内，或其父目录不存在。

    Attributes:
        path: 被拒绝的路径
    """

    def __init__(self, path: str, message: str) -> None:
        self.path = path
        super().__init__(message)


def default_allowed_directories() -> list[Path]:
    """默认允许目录：当前工作目录、用户主目录、临时目录。"""
    return [Path.cwd(), Path.home(), Path(tempfile.gettempdir())]


def default_restricted_directories() -> list[Path]:
    return [Path.home() / "Desktop"]


def _normalize(path: Path) -> str:
    return os.path.normcase(os.path.normpath(str(path)))


def _is_within(path: str, root: str) -> bool:
    return path == root or path.startswith(root.rstrip(os.sep) + os.sep)


def _roots(directories: list[Path]) -> list[str]:
    """目录的词法形式和真实路径形式（如 macOS 的 /tmp -> /private/tmp）。"""
    roots: list[str] = []
    for directory in directories:
        for form in (_normalize(directory), _normalize(Path(os.path.realpath(directory)))):
            if form not in roots:
                roots.append(form)
    return roots


class FileSystemManager:
    """允许目录列表和受其约束的文件操作。

    Example:
        ```python
        fs = FileSystemManager([Path("/srv/project")])
        text = await fs.read_file("/srv/project/README.md")
        await fs.write_file("/srv/project/notes/todo.txt", "...", create_directories=True)
        ```
    """

    def __init__(
        self,
        allowed_directories: list[Path] | None = None,
        restricted_directories: list[Path] | None = None,
    ) -> None:
        """初始化。

        Args:
            allowed_directories: 允许访问的根目录（None 或空 = 默认目录）
            restricted_directories: 即使位于允许目录内也禁止访问的目录
        """
        if restricted_directories is None:
            restricted_directories = default_restricted_directories()
        self.restricted_directories = [
            Path(os.path.abspath(d.expanduser())) for d in restricted_directories
        ]

        self._restricted_roots = _roots(self.restricted_directories)
        self.allowed_directories: list[Path] = []
        for directory in allowed_directories or default_allowed_directories():
            directory = Path(os.path.abspath(directory.expanduser()))
            # 受限目录本身及其子目录不能作为允许目录
            if any(_is_within(_normalize(directory), r) for r in self._restricted_roots):
                logger.warning(f"Ignoring allowed directory inside a restricted one: {directory}")
                continue
            if directory not in self.allowed_directories:
                self.allowed_directories.append(directory)
        self._allowed_roots = _roots(self.allowed_directories)

    # ------------------------------------------------------------------
    # 路径校验
    # ------------------------------------------------------------------

    def _check(self, path: Path, what: str) -> None:
        normalized = _normalize(path)
        if any(_is_within(normalized, root) for root in self._restricted_roots):
            raise PathAccessError(str(path), f"Access denied - {what} is restricted: {path}")
        if not any(_is_within(normalized, root) for root in self._allowed_roots):
            raise PathAccessError(
                str(path), f"Access denied - {what} outside allowed directories: {path}"
            )

    def is_allowed(self, path: Path) -> bool:
        """仅做词法检查（不访问文件系统）。"""
        try:
            self._check(Path(os.path.abspath(path.expanduser())), "path")
        except PathAccessError:
            return False
        return True

    async def validate_path(self, requested: str) -> Path:
        """校验路径并返回可安全访问的绝对路径。

        Raises:
            PathAccessError: 路径被拒绝，或没有已存在的祖先目录
        """
        absolute = Path(os.path.abspath(Path(requested).expanduser()))
        self._check(absolute, "path")

        try:
            real = Path(await anyio.Path(absolute).resolve(strict=True))
        except FileNotFoundError:
            pass
        else:
            self._check(real, "symlink target")
            return real

        # 新文件/目录：检查最近的已存在祖先
        for ancestor in absolute.parents:
            try:
                real_ancestor = Path(await anyio.Path(ancestor).resolve(strict=True))
            except FileNotFoundError:
                continue
            self._check(real_ancestor, "parent directory")
            return absolute

        raise PathAccessError(str(absolute), f"Parent directory does not exist: {absolute.parent}")

    # ------------------------------------------------------------------
    # 文件操作
    # ------------------------------------------------------------------

    async def read_file(self, path: str) -> str:
        valid = await self.validate_path(path)
        data = await anyio.Path(valid).read_bytes()
        return data.decode("utf-8")

    async def write_file(self, path: str, content: str, create_directories: bool = False) -> None:
        """整体替换文件内容（先写临时文件再 rename）。"""
        target = anyio.Path(await self.validate_path(path))
        if create_directories:
            await target.parent.mkdir(parents=True, exist_ok=True)

        tmp = target.with_name(f".{target.name}.{os.getpid()}.tmp")
        try:
            await tmp.write_bytes(content.encode("utf-8"))
            await tmp.replace(target)
        except OSError:
            await tmp.unlink(missing_ok=True)
            raise
        logger.debug(f"Wrote {len(content)} chars to {target}")

    async def create_directory(self, path: str) -> None:
        valid = await self.validate_path(path)
        await anyio.Path(valid).mkdir(parents=True, exist_ok=True)

    async def list_directory(self, path: str) -> list[str]:
        """列出目录内容，每项以 [DIR] 或 [FILE] 开头，按名称排序。"""
        valid = anyio.Path(await self.validate_path(path))
        entries = []
        async for entry in valid.iterdir():
            prefix = "[DIR]" if await entry.is_dir() else "[FILE]"
            entries.append((entry.name, f"{prefix} {entry.name}"))
        return [line for _, line in sorted(entries)]

    async def move_file(self, source: str, destination: str) -> None:
        valid_source = await self.validate_path(source)
        valid_destination = await self.validate_path(destination)
        await anyio.Path(valid_source).rename(valid_destination)
        logger.debug(f"Moved {valid_source} -> {valid_destination}")

    async def search_files(self, root: str, pattern: str) -> list[str]:
        """递归查找名称包含 pattern（忽略大小写）的文件和目录。

        不进入符号链接目录；不允许访问的条目直接跳过。
        """
        base = anyio.Path(await self.validate_path(root))
        needle = pattern.lower()
        results: list[str] = []

        async def walk(directory: anyio.Path) -> None:
            try:
                children = sorted([entry async for entry in directory.iterdir()], key=lambda e: e.name)
            except OSError as e:
                logger.debug(f"Skipping unreadable directory {directory}: {e}")
                return
            for entry in children:
                try:
                    await self.validate_path(str(entry))
                except PathAccessError:
                    continue
                if needle in entry.name.lower():
                    results.append(str(entry))
                if await entry.is_dir() and not await entry.is_symlink():
                    await walk(entry)

        await walk(base)
        return results

    async def get_file_info(self, path: str) -> dict[str, Any]:
        valid = await self.validate_path(path)
        st = await anyio.Path(valid).stat()
        created = getattr(st, "st_birthtime", st.st_ctime)
        return {
            "size": st.st_size,
            "created": datetime.fromtimestamp(created).isoformat(),
            "modified": datetime.fromtimestamp(st.st_mtime).isoformat(),
            "accessed": datetime.fromtimestamp(st.st_atime).isoformat(),
            "isDirectory": stat.S_ISDIR(st.st_mode),
            "isFile": stat.S_ISREG(st.st_mode),
            "permissions": oct(stat.S_IMODE(st.st_mode))[-3:],
        }

    def list_allowed_directories(self) -> list[str]:
        return [str(d) for d in self.allowed_directories] + [
            f"RESTRICTED: {d} (access is disabled)" for d in self.restricted_directories
        ]
