"""Bounded, order-preserving chunk buffer for one output stream.

Every append is followed by two independent oldest-first eviction passes:

- chunk count: at most ``max_chunks`` chunks are retained
- byte size: walking from the newest chunk backward, everything older than
  the point where the running total exceeds ``max_bytes`` is dropped

The buffer therefore always holds the most recent output up to the caps and
silently loses earlier output once they are exceeded. The producer is never
paused.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable

__all__ = [
    "MAX_BUFFER_CHUNKS",
    "MAX_OUTPUT_SIZE",
    "OutputBuffer",
    "combine_output",
]

MAX_OUTPUT_SIZE = 20 * 1024 * 1024  # 20 MiB per accumulation context
MAX_BUFFER_CHUNKS = 2000


class OutputBuffer:
    """Append-only chunk deque with count and byte caps.

    Example:
        buf = OutputBuffer()
        buf.append(b"hello ")
        buf.append(b"world")
        assert buf.to_bytes() == b"hello world"
    """

    def __init__(
        self,
        max_chunks: int = MAX_BUFFER_CHUNKS,
        max_bytes: int = MAX_OUTPUT_SIZE,
    ) -> None:
        if max_chunks < 1:
            raise ValueError("max_chunks must be at least 1")
        if max_bytes < 0:
            raise ValueError("max_bytes must not be negative")
        self.max_chunks = max_chunks
        self.max_bytes = max_bytes
        self._chunks: deque[bytes] = deque()
        self._size = 0
        self._evicted = 0

    def append(self, chunk: bytes) -> None:
        """Append one chunk and apply both eviction rules."""
        if not chunk:
            return
        self._chunks.append(bytes(chunk))
        self._size += len(chunk)

        while len(self._chunks) > self.max_chunks:
            dropped = len(self._chunks.popleft())
            self._size -= dropped
            self._evicted += dropped

        if self._size > self.max_bytes:
            self._evict_by_size()

    def _evict_by_size(self) -> None:
        # Keep the newest chunks whose cumulative size stays within the cap;
        # the chunk straddling the cap keeps only its tail.
        kept = 0
        total = 0
        boundary = b""
        for chunk in reversed(self._chunks):
            if total + len(chunk) > self.max_bytes:
                room = self.max_bytes - total
                if room > 0:
                    boundary = chunk[-room:]
                break
            total += len(chunk)
            kept += 1

        for _ in range(len(self._chunks) - kept):
            self._chunks.popleft()
        if boundary:
            self._chunks.appendleft(boundary)
            total += len(boundary)
        self._evicted += self._size - total
        self._size = total

    @property
    def total_size(self) -> int:
        """Aggregate size of the retained chunks in bytes."""
        return self._size

    @property
    def evicted_bytes(self) -> int:
        """Bytes dropped by eviction so far. Draining does not count."""
        return self._evicted

    def chunks(self) -> list[bytes]:
        """Snapshot of the retained chunks, oldest first."""
        return list(self._chunks)

    def to_bytes(self) -> bytes:
        return b"".join(self._chunks)

    def drain(self) -> bytes:
        """Return the retained bytes and empty the buffer."""
        data = self.to_bytes()
        self.clear()
        return data

    def clear(self) -> None:
        self._chunks.clear()
        self._size = 0

    def __len__(self) -> int:
        return len(self._chunks)

    def __bool__(self) -> bool:
        return bool(self._chunks)

    def __repr__(self) -> str:
        return f"OutputBuffer(chunks={len(self._chunks)}, size={self._size})"


def combine_output(stdout: Iterable[bytes], stderr: Iterable[bytes]) -> str:
    """Decode stdout then stderr into one string.

    Streams are concatenated, not interleaved by emission time. Each stream is
    joined before decoding so multi-byte characters split across chunks
    survive.
    """
    out = b"".join(stdout).decode("utf-8", errors="replace")
    err = b"".join(stderr).decode("utf-8", errors="replace")
    return out + err
