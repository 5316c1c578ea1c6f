"""命令黑名单管理。

黑名单保存在 JSON 配置文件中::

    {"blockedCommands": ["sudo", "dd", ...]}

文件缺失或格式无效时回退到 DEFAULT_BLOCKED_COMMANDS。
命令是否允许只看第一个空白分隔的词（忽略大小写）。
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import anyio

__all__ = ["CommandManager", "DEFAULT_BLOCKED_COMMANDS"]

logger = logging.getLogger(__name__)

DEFAULT_BLOCKED_COMMANDS = (
    "format", "mount", "umount", "mkfs", "fdisk", "dd",
    "sudo", "su", "passwd", "adduser", "useradd", "usermod", "groupadd",
)


def _base_command(command: str) -> str:
    """提取命令的第一个词（小写）。"""
    parts = command.strip().split()
    return parts[0].lower() if parts else ""


class CommandManager:
    """命令黑名单。

    Example:
        ```python
        manager = CommandManager(Path("~/.desktop-commander/config.json").expanduser())
        await manager.load_blocked_commands()

        if manager.is_allowed("rm -rf build"):
            ...
        ```
    """

    def __init__(
        self,
        config_file: Path | None = None,
        blocked: set[str] | None = None,
    ) -> None:
        """初始化命令管理器。

        Args:
            config_file: 黑名单 JSON 文件路径（None 表示不持久化）
            blocked: 初始黑名单（默认 DEFAULT_BLOCKED_COMMANDS）
        """
        self.config_file = config_file
        self._blocked: set[str] = (
            {c.lower() for c in blocked} if blocked is not None else set(DEFAULT_BLOCKED_COMMANDS)
        )

    async def load_blocked_commands(self) -> None:
        """从配置文件加载黑名单，失败时回退到默认列表。"""
        if self.config_file is None:
            self._blocked = set(DEFAULT_BLOCKED_COMMANDS)
            return

        try:
            raw = await anyio.Path(self.config_file).read_text(encoding="utf-8")
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load blocked commands from {self.config_file}: {e}")
            logger.warning("Using default blocked commands list as fallback")
            self._blocked = set(DEFAULT_BLOCKED_COMMANDS)
            return

        commands = data.get("blockedCommands") if isinstance(data, dict) else None
        if not isinstance(commands, list) or not all(isinstance(c, str) for c in commands):
            logger.error(f"Invalid blockedCommands format in {self.config_file}")
            logger.warning("Using default blocked commands list as fallback")
            self._blocked = set(DEFAULT_BLOCKED_COMMANDS)
            return

        self._blocked = {c.strip().lower() for c in commands if c.strip()}
        logger.info(f"Loaded {len(self._blocked)} blocked commands from config")

    async def save_blocked_commands(self) -> None:
        """把黑名单写回配置文件，保留文件中的其他键。"""
        if self.config_file is None:
            return

        path = anyio.Path(self.config_file)
        data: dict = {}
        try:
            existing = json.loads(await path.read_text(encoding="utf-8"))
            if isinstance(existing, dict):
                data = existing
        except (OSError, json.JSONDecodeError):
            pass

        data["blockedCommands"] = self.list_blocked_commands()
        try:
            await path.parent.mkdir(parents=True, exist_ok=True)
            await path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        except OSError as e:
            logger.warning(f"Failed to save blocked commands to {self.config_file}: {e}")

    def is_allowed(self, command: str) -> bool:
        """检查命令是否允许执行（空命令不允许）。"""
        base = _base_command(command)
        return bool(base) and base not in self._blocked

    async def block_command(self, command: str) -> bool:
        """加入黑名单。

        Returns:
            是否发生变化（已在黑名单中返回 False）
        """
        command = command.strip().lower()
        if not command or command in self._blocked:
            return False
        self._blocked.add(command)
        await self.save_blocked_commands()
        logger.info(f"Blocked command: {command}")
        return True

    async def unblock_command(self, command: str) -> bool:
        """移出黑名单。

        Returns:
            是否发生变化（不在黑名单中返回 False）
        """
        command = command.strip().lower()
        if command not in self._blocked:
            return False
        self._blocked.discard(command)
        await self.save_blocked_commands()
        logger.info(f"Unblocked command: {command}")
        return True

    def list_blocked_commands(self) -> list[str]:
        return sorted(self._blocked)
