"""Terminal session management: launch, live view, drain, terminate, archive.

desktop-commander runtime module v0.1.0

Lifecycle of one session::

    run() ──spawn──> RunningSession ──deadline──> blocked (still registered)
                           │                            │
                           └─────────── exit ───────────┴──> CompletedSession
                                                              (archived, FIFO 100)

Key design points:
- One TerminalManager owns the registry and the archive; it is created by the
  server's composition root and passed to whoever needs it
- Everything runs on one event loop. Each session has two pump tasks (one per
  stream) and one watcher task; the watcher is the only place a session moves
  from the registry into the archive
- The run() deadline races the exit event. If the process has already exited
  when the deadline is observed, the exit result is reported
- Exit is observed on the process itself, not on pipe EOF. A background child
  holding the pipes delays archiving by at most drain_timeout
- Output is bounded per stream by OutputBuffer; the child is never paused
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from datetime import datetime
from pathlib import Path

from .archive import MAX_COMPLETED_SESSIONS, CompletionArchive
from .errors import TerminationError
from .output_buffer import MAX_BUFFER_CHUNKS, MAX_OUTPUT_SIZE, OutputBuffer
from .process_runner import ProcessSpec, send_interrupt, send_kill, spawn
from .session import ActiveSession, CommandResult, CompletedSession, RunningSession

__all__ = [
    "DEFAULT_COMMAND_TIMEOUT_MS",
    "NO_NEW_OUTPUT",
    "TERMINATION_GRACE_PERIOD",
    "TerminalManager",
    "format_completed_session",
]

logger = logging.getLogger(__name__)

DEFAULT_COMMAND_TIMEOUT_MS = 1000
TERMINATION_GRACE_PERIOD = 1.0  # seconds between SIGINT and SIGKILL
STREAM_DRAIN_TIMEOUT = 0.5  # seconds to wait for pipe EOF after exit
READ_CHUNK_SIZE = 64 * 1024

NO_NEW_OUTPUT = "No new output available"
TRUNCATION_WARNING = "Warning: Output was truncated due to size limits."


def format_completed_session(session: CompletedSession) -> str:
    """Render the completion summary returned by read_new()."""
    message = (
        f"Process completed with exit code {session.exit_code}\n"
        f"Runtime: {session.runtime_seconds:.2f}s\n"
    )
    if session.output_truncated:
        message += f"{TRUNCATION_WARNING}\n"
    message += f"Final output:\n{session.output}"
    return message


class TerminalManager:
    """Registry of running shell sessions plus an archive of finished ones.

    Example:
        manager = TerminalManager()
        result = await manager.run("sleep 5; echo done", timeout_ms=200)
        if result.is_blocked:
            print(manager.read_new(result.pid))
            manager.terminate(result.pid)

    Attributes:
        default_timeout_ms: Deadline used when run() gets no timeout
        grace_period: Seconds between interrupt and kill in terminate()
        max_output_size: Byte cap per stream buffer, also the truncation limit
        max_buffer_chunks: Chunk cap per stream buffer
        drain_timeout: Seconds to wait for pipe EOF once the process exited
    """

    def __init__(
        self,
        *,
        default_timeout_ms: int = DEFAULT_COMMAND_TIMEOUT_MS,
        max_completed: int = MAX_COMPLETED_SESSIONS,
        grace_period: float = TERMINATION_GRACE_PERIOD,
        max_output_size: int = MAX_OUTPUT_SIZE,
        max_buffer_chunks: int = MAX_BUFFER_CHUNKS,
        drain_timeout: float = STREAM_DRAIN_TIMEOUT,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self.default_timeout_ms = default_timeout_ms
        self.grace_period = grace_period
        self.max_output_size = max_output_size
        self.max_buffer_chunks = max_buffer_chunks
        self.drain_timeout = drain_timeout
        self.cwd = cwd
        self.env = env

        self._sessions: dict[int, RunningSession] = {}
        self._completed = CompletionArchive(max_completed)
        self._watchers: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Launch
    # ------------------------------------------------------------------

    async def run(self, command: str, timeout_ms: int | None = None) -> CommandResult:
        """Run ``command`` and return once it exits or the deadline passes.

        Args:
            command: Shell command line
            timeout_ms: Deadline in milliseconds (None = default_timeout_ms)

        Returns:
            CommandResult with the output captured so far. ``is_blocked`` is
            True when the process outlived the deadline and keeps running.

        Raises:
            LaunchError: If the process could not be started
        """
        if timeout_ms is None:
            timeout_ms = self.default_timeout_ms
        timeout = max(timeout_ms, 0) / 1000

        process = await spawn(ProcessSpec(command=command, cwd=self.cwd, env=self.env))
        session = RunningSession(
            pid=process.pid,
            process=process,
            stdout=self._new_buffer(),
            stderr=self._new_buffer(),
            response_stdout=self._new_buffer(),
            response_stderr=self._new_buffer(),
            exited=asyncio.get_running_loop().create_future(),
        )
        self._register(session)

        watcher = asyncio.create_task(self._watch(session), name=f"session-{session.pid}")
        self._watchers.add(watcher)
        watcher.add_done_callback(self._watchers.discard)

        try:
            await asyncio.wait_for(asyncio.shield(session.exited), timeout=timeout)
        except asyncio.TimeoutError:
            if process.returncode is None:
                session.is_blocked = True
                output = session.take_response_output()
                logger.debug(
                    f"Command still running after {timeout_ms}ms pid={session.pid}"
                )
                return CommandResult(pid=session.pid, output=output, is_blocked=True)
            # Exit and deadline landed together: the exit wins. The watcher
            # archives the session at most drain_timeout after the exit.
            await asyncio.shield(session.exited)
        except asyncio.CancelledError:
            # The process keeps running; only this caller's view goes away.
            session.take_response_output()
            raise

        output = session.take_response_output()
        return CommandResult(pid=session.pid, output=output, is_blocked=False)

    def _new_buffer(self) -> OutputBuffer:
        return OutputBuffer(max_chunks=self.max_buffer_chunks, max_bytes=self.max_output_size)

    def _register(self, session: RunningSession) -> None:
        # A reused pid must not stay visible as completed.
        if self._completed.discard(session.pid):
            logger.debug(f"Dropped stale completed session for reused pid={session.pid}")
        self._sessions[session.pid] = session
        logger.debug(f"Registered session pid={session.pid}")

    async def _pump(self, session: RunningSession, name: str, stream: asyncio.StreamReader | None) -> None:
        """Copy one pipe into the session buffers until EOF."""
        if stream is None:
            return
        try:
            while True:
                chunk = await stream.read(READ_CHUNK_SIZE)
                if not chunk:
                    break
                session.record(name, chunk)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Error reading {name} pid={session.pid}: {e}")

    async def _watch(self, session: RunningSession) -> None:
        """Wait for exit, let the pipes drain, then archive the session."""
        process = session.process
        pumps = [
            asyncio.create_task(self._pump(session, "stdout", process.stdout)),
            asyncio.create_task(self._pump(session, "stderr", process.stderr)),
        ]
        try:
            await process.wait_exited()
            _, pending = await asyncio.wait(pumps, timeout=self.drain_timeout)
            if pending:
                logger.debug(
                    f"Output pipes still open {self.drain_timeout}s after exit pid={session.pid}"
                )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Error waiting for pid={session.pid}: {e}")
        finally:
            for task in pumps:
                if not task.done():
                    task.cancel()
            self._complete(session, process.returncode)

    def _complete(self, session: RunningSession, exit_code: int | None) -> None:
        """Move a session from the registry into the archive."""
        if session.kill_handle is not None:
            session.kill_handle.cancel()
            session.kill_handle = None

        completed = CompletedSession(
            pid=session.pid,
            stdout_chunks=tuple(session.stdout.chunks()),
            stderr_chunks=tuple(session.stderr.chunks()),
            exit_code=exit_code,
            start_time=session.start_time,
            end_time=datetime.now(),
            output_truncated=session.final_size > self.max_output_size,
        )

        if self._sessions.get(session.pid) is session:
            del self._sessions[session.pid]
            self._completed.add(completed)
            logger.debug(
                f"Session completed pid={session.pid} exit_code={exit_code} "
                f"bytes={session.total_bytes} truncated={completed.output_truncated}"
            )
        else:
            # The pid already belongs to a newer process.
            logger.debug(f"Not archiving superseded session pid={session.pid}")

        if session.exited is not None and not session.exited.done():
            session.exited.set_result(completed)

    # ------------------------------------------------------------------
    # Incremental read
    # ------------------------------------------------------------------

    def read_new(self, pid: int) -> str | None:
        """Return output produced since the last read.

        Running sessions are drained: the returned output is removed from the
        session. Completed sessions return the same summary every time.

        Returns:
            Output text, NO_NEW_OUTPUT when a running session has nothing
            new, or None for an unknown pid
        """
        session = self._sessions.get(pid)
        if session is not None:
            return session.drain_output() or NO_NEW_OUTPUT

        completed = self._completed.get(pid)
        if completed is not None:
            return format_completed_session(completed)

        return None

    # ------------------------------------------------------------------
    # Termination
    # ------------------------------------------------------------------

    def terminate(self, pid: int) -> bool:
        """Interrupt a running session now, kill it after the grace period.

        Must be called from the event loop thread.

        Returns:
            True once the interrupt was dispatched, False if the pid has no
            running session or the signal could not be sent
        """
        session = self._sessions.get(pid)
        if session is None:
            return False

        try:
            send_interrupt(session.process)
        except TerminationError as e:
            logger.error(f"Failed to terminate process {pid}: {e}")
            return False

        if session.kill_handle is None:
            loop = asyncio.get_running_loop()
            session.kill_handle = loop.call_later(self.grace_period, self._escalate, session)
        logger.info(f"Sent interrupt to session pid={pid}")
        return True

    def _escalate(self, session: RunningSession) -> None:
        session.kill_handle = None
        if self._sessions.get(session.pid) is not session:
            return
        try:
            send_kill(session.process)
            logger.info(f"Force killed session pid={session.pid}")
        except TerminationError as e:
            logger.error(f"Failed to kill process {session.pid}: {e}")

    def terminate_all(self) -> int:
        """Terminate every running session.

        Returns:
            Number of sessions an interrupt was dispatched to
        """
        return sum(1 for pid in list(self._sessions) if self.terminate(pid))

    async def aclose(self, timeout: float | None = None) -> None:
        """Terminate all sessions and wait for their exit bookkeeping."""
        self.terminate_all()
        if not self._watchers:
            return
        if timeout is None:
            timeout = self.grace_period + 1.0
        _, pending = await asyncio.wait(set(self._watchers), timeout=timeout)
        if pending:
            logger.warning(f"{len(pending)} session(s) still running after shutdown")

    # ------------------------------------------------------------------
    # Enumeration
    # ------------------------------------------------------------------

    def list_active(self) -> list[ActiveSession]:
        now = datetime.now()
        return [session.snapshot(now) for session in self._sessions.values()]

    def list_completed(self) -> list[CompletedSession]:
        return self._completed.values()

    def has_active_sessions(self) -> bool:
        return bool(self._sessions)

    @property
    def active_count(self) -> int:
        return len(self._sessions)

    def __contains__(self, pid: object) -> bool:
        return pid in self._sessions
