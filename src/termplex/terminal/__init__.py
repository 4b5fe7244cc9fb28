"""Pty-backed terminal processes and their supervision."""

from .async_reader import AsyncReader, FdAsyncReader
from .models import OpenFile, RunCommand, SupervisorPhase, SupervisorState, TerminalAction, TerminalHandle
from .origin import OriginTerminalState
from .run_target import resolve_editor, resolve_run_command, resolve_shell
from .spawner import fork_process, spawn_terminal
from .supervisor import ChildSupervisor, PendingSignals, SupervisorSettings

__all__ = [
    "AsyncReader",
    "ChildSupervisor",
    "FdAsyncReader",
    "fork_process",
    "OpenFile",
    "OriginTerminalState",
    "PendingSignals",
    "resolve_editor",
    "resolve_run_command",
    "resolve_shell",
    "RunCommand",
    "spawn_terminal",
    "SupervisorPhase",
    "SupervisorSettings",
    "SupervisorState",
    "TerminalAction",
    "TerminalHandle",
]
