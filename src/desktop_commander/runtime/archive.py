"""完成会话归档。

有界 FIFO：插入超过容量时驱逐最早插入的条目。
"""

from __future__ import annotations

import logging
from collections import OrderedDict

from .session import CompletedSession

__all__ = ["CompletionArchive", "MAX_COMPLETED_SESSIONS"]

logger = logging.getLogger(__name__)

MAX_COMPLETED_SESSIONS = 100


class CompletionArchive:
    """按 pid 索引的已完成会话归档。

    线程安全：所有操作都是同步的，由调用方保证在同一个事件循环中调用。
    """

    def __init__(self, capacity: int = MAX_COMPLETED_SESSIONS) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._entries: OrderedDict[int, CompletedSession] = OrderedDict()

    def add(self, session: CompletedSession) -> list[CompletedSession]:
        """归档一个会话。

        pid 被操作系统复用时，旧条目先移除，新条目作为最新插入。

        Returns:
            因超出容量而被驱逐的会话
        """
        self._entries.pop(session.pid, None)
        self._entries[session.pid] = session

        evicted: list[CompletedSession] = []
        while len(self._entries) > self.capacity:
            _, oldest = self._entries.popitem(last=False)
            evicted.append(oldest)
            logger.debug(f"Evicted completed session pid={oldest.pid}")
        return evicted

    def get(self, pid: int) -> CompletedSession | None:
        return self._entries.get(pid)

    def discard(self, pid: int) -> bool:
        return self._entries.pop(pid, None) is not None

    def values(self) -> list[CompletedSession]:
        """按插入顺序（最早在前）返回所有条目。"""
        return list(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, pid: object) -> bool:
        return pid in self._entries
