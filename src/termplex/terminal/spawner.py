"""Pty allocation and the process line behind every terminal pane.

``spawn_terminal`` forks once. The forked process becomes a new session on the
pty slave and launches the real command as a further child in its own process
group, hands that group the terminal foreground, and then supervises it. The
server only ever sees the supervisor's pid.
"""

from __future__ import annotations

import fcntl
import logging as py_logging
import os
import pty
import signal
import subprocess
import sys
import termios
from collections.abc import Callable
from contextlib import suppress
from typing import Any, NoReturn, TypeVar

from termplex.errors import ExitCode, TermplexError
from termplex.logging import detach_console_handlers
from termplex.terminal.models import RunCommand, TerminalHandle
from termplex.terminal.origin import TermAttributes
from termplex.terminal.supervisor import ChildSupervisor, PendingSignals, SupervisorSettings

logger = py_logging.getLogger(__name__)

T = TypeVar("T")

EXIT_SUPERVISOR_OK = 0
EXIT_CHILD_CRASHED = 70
EXIT_FOREGROUND_FAILED = 71
EXIT_SPAWN_FAILED = 127

_STDIO_FDS = (0, 1, 2)


def fork_process(*, parent: Callable[[int], T], child: Callable[[], NoReturn]) -> T:
    """Run ``child`` in a new process and ``parent(pid)`` in this one.

    The child continuation never returns to the caller; if it raises, the
    forked process exits with ``EXIT_CHILD_CRASHED``.
    """
    try:
        pid = os.fork()
    except OSError as exc:
        raise TermplexError(
            "Failed to fork a terminal process.",
            code=ExitCode.SPAWN_ERROR,
            hint=str(exc) or "Check the process table and resource limits.",
        ) from exc

    if pid == 0:
        try:
            child()
        except BaseException as exc:  # never unwind into the caller's stack
            _report(f"termplex: terminal process failed: {exc!r}")
            os._exit(EXIT_CHILD_CRASHED)
        os._exit(EXIT_SUPERVISOR_OK)
    return parent(pid)


def _report(message: str) -> None:
    with suppress(OSError):
        os.write(2, (message + "\r\n").encode("utf-8", errors="replace"))


def _new_process_group() -> None:
    os.setpgid(0, 0)


def _process_group_kwargs() -> dict[str, Any]:
    if sys.version_info >= (3, 11):
        return {"process_group": 0}
    return {"preexec_fn": _new_process_group}  # pragma: no cover


def _attach_controlling_terminal(master_fd: int, slave_fd: int) -> None:
    os.close(master_fd)
    os.setsid()
    fcntl.ioctl(slave_fd, termios.TIOCSCTTY, 0)
    for target in _STDIO_FDS:
        os.dup2(slave_fd, target)
    if slave_fd not in _STDIO_FDS:
        os.close(slave_fd)


def _run_supervised(command: RunCommand, master_fd: int, slave_fd: int, settings: SupervisorSettings) -> NoReturn:
    pending = PendingSignals()
    pending.install()
    with suppress(ValueError):
        # Detach from the server event loop's wakeup pipe.
        signal.set_wakeup_fd(-1)
    detach_console_handlers()
    _attach_controlling_terminal(master_fd, slave_fd)

    try:
        process = subprocess.Popen(command.argv(), **_process_group_kwargs())
    except OSError as exc:
        _report(f"termplex: failed to spawn {command.command}: {exc}")
        os._exit(EXIT_SPAWN_FAILED)

    try:
        os.tcsetpgrp(0, process.pid)
    except OSError as exc:
        _report(f"termplex: failed to set the foreground process group: {exc}")
        process.kill()
        os._exit(EXIT_FOREGROUND_FAILED)

    ChildSupervisor(process, settings, signals=pending.drain).run()
    os._exit(EXIT_SUPERVISOR_OK)


def _close_quietly(*fds: int) -> None:
    for fd in fds:
        with suppress(OSError):
            os.close(fd)


def spawn_terminal(
    command: RunCommand,
    origin_attributes: TermAttributes | None = None,
    settings: SupervisorSettings | None = None,
) -> TerminalHandle:
    resolved_settings = settings or SupervisorSettings()
    try:
        master_fd, slave_fd = pty.openpty()
    except OSError as exc:
        raise TermplexError(
            "Failed to allocate a pseudo-terminal.",
            code=ExitCode.SPAWN_ERROR,
            hint=str(exc) or "Check /dev/ptmx and the pty limit.",
        ) from exc

    try:
        if origin_attributes is not None:
            termios.tcsetattr(slave_fd, termios.TCSANOW, origin_attributes)
    except termios.error as exc:
        _close_quietly(master_fd, slave_fd)
        raise TermplexError(
            "Failed to apply terminal attributes to the new pty.",
            code=ExitCode.SPAWN_ERROR,
            hint=str(exc) or "Restart the server from a working terminal.",
        ) from exc

    def _parent(pid: int) -> TerminalHandle:
        os.close(slave_fd)
        return TerminalHandle(master_fd=master_fd, pid=pid)

    def _child() -> NoReturn:
        _run_supervised(command, master_fd, slave_fd, resolved_settings)

    try:
        handle = fork_process(parent=_parent, child=_child)
    except TermplexError:
        _close_quietly(master_fd, slave_fd)
        raise
    logger.info(
        "Spawned terminal command=%s args=%s fd=%s supervisor=%s",
        command.command,
        list(command.args),
        handle.master_fd,
        handle.pid,
    )
    return handle
