"""Shell process spawning and signal delivery.

desktop-commander runtime module v0.1.0

This module provides:
- Shell spawning with subprocess isolation (new session/process group)
- Interrupt and kill delivery to the child's process group
- Platform fallbacks for Windows

Key design points:
- POSIX: start_new_session=True so terminal signals aimed at the server do
  not reach the children, and signals aimed at a child reach its pipeline
- Windows: CREATE_NEW_PROCESS_GROUP for signal isolation
- stdin is DEVNULL: inheriting the server's stdin would hand the MCP stdio
  channel to the child
- ShellProcess.wait_exited() resolves at process exit, even while a
  background grandchild still holds the output pipes open
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import subprocess
import sys
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .errors import LaunchError, TerminationError

__all__ = [
    "IS_WINDOWS",
    "ProcessSpec",
    "ShellProcess",
    "build_subprocess_kwargs",
    "send_interrupt",
    "send_kill",
    "spawn",
]

logger = logging.getLogger(__name__)

# Platform detection
IS_WINDOWS = sys.platform == "win32"

STREAM_LIMIT = 2**16  # StreamReader buffer limit, same as asyncio's default


@dataclass(frozen=True)
class ProcessSpec:
    """Specification for a shell command to run.

    Attributes:
        command: Command line, interpreted by the platform shell
        cwd: Working directory (None = inherit the server's)
        env: Environment variables (None = inherit parent)
    """

    command: str
    cwd: Path | None = None
    env: Mapping[str, str] | None = None


def build_subprocess_kwargs(spec: ProcessSpec) -> dict[str, Any]:
    """Build platform-specific subprocess kwargs.

    Args:
        spec: Process specification

    Returns:
        Dict of kwargs for loop.subprocess_shell
    """
    kwargs: dict[str, Any] = {}

    if spec.cwd is not None:
        kwargs["cwd"] = spec.cwd

    if spec.env is not None:
        kwargs["env"] = dict(spec.env)

    if IS_WINDOWS:
        kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
    else:
        # POSIX: start_new_session (equivalent to setsid)
        kwargs["start_new_session"] = True

    return kwargs


class _ExitWatchingProtocol(asyncio.subprocess.SubprocessStreamProtocol):
    """Stream protocol that also resolves a future when the process exits.

    ``Process.wait()`` only returns once every pipe is closed, which never
    happens while a background grandchild keeps stdout/stderr open.
    """

    def __init__(self, limit: int, loop: asyncio.AbstractEventLoop) -> None:
        super().__init__(limit=limit, loop=loop)
        self.exit_future: asyncio.Future[None] = loop.create_future()

    def process_exited(self) -> None:
        super().process_exited()
        if not self.exit_future.done():
            self.exit_future.set_result(None)


class ShellProcess(asyncio.subprocess.Process):
    """asyncio Process whose exit can be awaited independently of pipe EOF."""

    def __init__(self, transport, protocol: _ExitWatchingProtocol, loop) -> None:
        super().__init__(transport, protocol, loop)
        self._exit_future = protocol.exit_future

    async def wait_exited(self) -> int | None:
        """Wait until the process itself has exited and return its exit code."""
        await asyncio.shield(self._exit_future)
        return self.returncode


async def spawn(spec: ProcessSpec) -> ShellProcess:
    """Start ``spec.command`` through the shell with piped stdout/stderr.

    Raises:
        LaunchError: If the shell could not be started or has no pid
    """
    loop = asyncio.get_running_loop()
    try:
        transport, protocol = await loop.subprocess_shell(
            lambda: _ExitWatchingProtocol(limit=STREAM_LIMIT, loop=loop),
            spec.command,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            **build_subprocess_kwargs(spec),
        )
    except (OSError, ValueError) as e:
        raise LaunchError(spec.command, f"Failed to start process: {e}") from e

    process = ShellProcess(transport, protocol, loop)
    if not process.pid:
        transport.close()
        raise LaunchError(spec.command)

    logger.debug(f"Started subprocess pid={process.pid} cwd={spec.cwd}")
    return process


def send_interrupt(process: asyncio.subprocess.Process) -> None:
    """Send SIGINT (CTRL_BREAK_EVENT on Windows) to the child.

    Raises:
        TerminationError: If the signal could not be delivered
    """
    if IS_WINDOWS:
        _windows_signal(process, signal.CTRL_BREAK_EVENT, "CTRL_BREAK_EVENT")
    else:
        _posix_signal(process, signal.SIGINT)


def send_kill(process: asyncio.subprocess.Process) -> None:
    """Send SIGKILL (TerminateProcess on Windows) to the child.

    Raises:
        TerminationError: If the signal could not be delivered
    """
    if IS_WINDOWS:
        try:
            process.kill()
            logger.debug(f"Called kill() on pid={process.pid}")
        except ProcessLookupError:
            pass
        except OSError as e:
            raise TerminationError(process.pid, "kill", str(e)) from e
    else:
        _posix_signal(process, signal.SIGKILL)


def _posix_signal(process: asyncio.subprocess.Process, sig: signal.Signals) -> None:
    """Signal the process group, falling back to the process itself."""
    pid = process.pid
    try:
        pgid = os.getpgid(pid)
        # Never signal our own group, e.g. when isolation was not applied.
        if pgid == os.getpgrp():
            process.send_signal(sig)
            logger.debug(f"Sent {sig.name} to pid={pid}")
        else:
            os.killpg(pgid, sig)
            logger.debug(f"Sent {sig.name} to process group pgid={pgid}")
    except ProcessLookupError:
        logger.debug(f"Subprocess already exited pid={pid}")
    except OSError as e:
        logger.debug(f"killpg failed, falling back to send_signal: {e}")
        try:
            process.send_signal(sig)
        except ProcessLookupError:
            pass
        except OSError as inner:
            raise TerminationError(pid, sig.name, str(inner)) from inner


def _windows_signal(process: asyncio.subprocess.Process, sig: int, name: str) -> None:
    try:
        # Works because the child got CREATE_NEW_PROCESS_GROUP
        os.kill(process.pid, sig)
        logger.debug(f"Sent {name} to pid={process.pid}")
    except ProcessLookupError:
        pass
    except OSError as e:
        logger.debug(f"{name} failed, falling back to terminate: {e}")
        try:
            process.terminate()
        except ProcessLookupError:
            pass
        except OSError as inner:
            raise TerminationError(process.pid, name, str(inner)) from inner
