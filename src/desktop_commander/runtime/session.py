"""Session 数据模型。

- RunningSession: 进程存活期间由 TerminalManager 的注册表持有
- CompletedSession: 进程退出后由完成归档持有
- ActiveSession / CommandResult: 对外返回的只读视图
"""

from __future__ import annotations

import asyncio
import codecs
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .output_buffer import OutputBuffer, combine_output

__all__ = [
    "ActiveSession",
    "CommandResult",
    "CompletedSession",
    "RunningSession",
]


def _utf8_decoder() -> codecs.IncrementalDecoder:
    return codecs.getincrementaldecoder("utf-8")(errors="replace")


@dataclass(frozen=True)
class CommandResult:
    """run() 的返回值。

    Attributes:
        pid: 子进程 ID
        output: 截至返回时的输出（stdout 在前，stderr 在后）
        is_blocked: 超时返回时进程仍在运行
    """

    pid: int
    output: str
    is_blocked: bool


@dataclass(frozen=True)
class ActiveSession:
    """活动会话快照。"""

    pid: int
    is_blocked: bool
    runtime_ms: int


@dataclass
class RunningSession:
    """运行中会话的簿记记录。

    Attributes:
        pid: 子进程 ID
        process: asyncio 子进程句柄
        start_time: 启动时间
        stdout: 持久 stdout 缓冲（read_new 会清空）
        stderr: 持久 stderr 缓冲（read_new 会清空）
        is_blocked: run() 已因超时返回而进程仍在运行
        total_bytes: 进程累计产生的输出字节数（不受驱逐和清空影响，仅用于日志）
        response_stdout: 本次 run() 调用的响应缓冲，超时或退出后置为 None
        response_stderr: 同上
        exited: 退出簿记完成时 resolve 的 future
        kill_handle: terminate() 安排的强制终止定时器
    """

    pid: int
    process: Any
    start_time: datetime = field(default_factory=datetime.now)
    stdout: OutputBuffer = field(default_factory=OutputBuffer)
    stderr: OutputBuffer = field(default_factory=OutputBuffer)
    is_blocked: bool = False
    total_bytes: int = 0
    response_stdout: OutputBuffer | None = None
    response_stderr: OutputBuffer | None = None
    exited: asyncio.Future | None = None
    kill_handle: asyncio.TimerHandle | None = None
    # 跨多次 read_new 保留未完整的 UTF-8 多字节序列
    _stdout_decoder: codecs.IncrementalDecoder = field(default_factory=_utf8_decoder, repr=False)
    _stderr_decoder: codecs.IncrementalDecoder = field(default_factory=_utf8_decoder, repr=False)

    def record(self, stream: str, chunk: bytes) -> None:
        """把一个流事件追加到持久缓冲和（仍存在的）响应缓冲。"""
        self.total_bytes += len(chunk)
        if stream == "stdout":
            self.stdout.append(chunk)
            if self.response_stdout is not None:
                self.response_stdout.append(chunk)
        else:
            self.stderr.append(chunk)
            if self.response_stderr is not None:
                self.response_stderr.append(chunk)

    def take_response_output(self) -> str:
        """取出响应缓冲的内容并丢弃响应缓冲（只消费一次）。"""
        stdout = self.response_stdout.chunks() if self.response_stdout is not None else []
        stderr = self.response_stderr.chunks() if self.response_stderr is not None else []
        self.response_stdout = None
        self.response_stderr = None
        return combine_output(stdout, stderr)

    def drain_output(self) -> str:
        """清空持久缓冲并返回解码后的文本（stdout 在前）。

        末尾不完整的多字节字符留在解码器中，下次读取时补全。
        """
        out = self._stdout_decoder.decode(self.stdout.drain())
        err = self._stderr_decoder.decode(self.stderr.drain())
        return out + err

    @property
    def final_size(self) -> int:
        """未被 read_new 取走的输出总字节数（保留 + 已驱逐）。"""
        return (
            self.stdout.total_size + self.stdout.evicted_bytes
            + self.stderr.total_size + self.stderr.evicted_bytes
        )

    def runtime_ms(self, now: datetime | None = None) -> int:
        now = now or datetime.now()
        return int((now - self.start_time).total_seconds() * 1000)

    def snapshot(self, now: datetime | None = None) -> ActiveSession:
        return ActiveSession(
            pid=self.pid,
            is_blocked=self.is_blocked,
            runtime_ms=self.runtime_ms(now),
        )


@dataclass(frozen=True)
class CompletedSession:
    """已完成会话（进入归档后不再变化）。"""

    pid: int
    stdout_chunks: tuple[bytes, ...]
    stderr_chunks: tuple[bytes, ...]
    exit_code: int | None
    start_time: datetime
    end_time: datetime
    output_truncated: bool

    @property
    def output(self) -> str:
        return combine_output(self.stdout_chunks, self.stderr_chunks)

    @property
    def runtime_seconds(self) -> float:
        return (self.end_time - self.start_time).total_seconds()

    @property
    def retained_bytes(self) -> int:
        return sum(len(c) for c in self.stdout_chunks) + sum(len(c) for c in self.stderr_chunks)

    def to_summary(self) -> dict[str, Any]:
        """对外暴露的摘要（不含输出内容）。"""
        return {
            "pid": self.pid,
            "exit_code": self.exit_code,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "output_truncated": self.output_truncated,
        }
