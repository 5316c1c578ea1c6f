"""Runtime module for shell session management.

This module provides isolated shell execution with bounded output capture,
incremental reads, graceful-then-forceful termination and a bounded history
of completed sessions.
"""

from __future__ import annotations

from .archive import MAX_COMPLETED_SESSIONS, CompletionArchive
from .errors import DesktopCommanderError, LaunchError, TerminationError
from .output_buffer import MAX_BUFFER_CHUNKS, MAX_OUTPUT_SIZE, OutputBuffer
from .session import ActiveSession, CommandResult, CompletedSession, RunningSession
from .terminal_manager import (
    DEFAULT_COMMAND_TIMEOUT_MS,
    NO_NEW_OUTPUT,
    TERMINATION_GRACE_PERIOD,
    TerminalManager,
)

__all__ = [
    "ActiveSession",
    "CommandResult",
    "CompletedSession",
    "CompletionArchive",
    "DEFAULT_COMMAND_TIMEOUT_MS",
    "DesktopCommanderError",
    "LaunchError",
    "MAX_BUFFER_CHUNKS",
    "MAX_COMPLETED_SESSIONS",
    "MAX_OUTPUT_SIZE",
    "NO_NEW_OUTPUT",
    "OutputBuffer",
    "RunningSession",
    "TERMINATION_GRACE_PERIOD",
    "TerminalManager",
    "TerminationError",
]
