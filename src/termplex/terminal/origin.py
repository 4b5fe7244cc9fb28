"""Snapshot of the server's own terminal attributes."""

from __future__ import annotations

import copy
import logging as py_logging
import os
import termios
import threading

from termplex.errors import ExitCode, TermplexError

logger = py_logging.getLogger(__name__)

# tcgetattr layout: [iflag, oflag, cflag, lflag, ispeed, ospeed, cc]
TermAttributes = list


class OriginTerminalState:
    """Baseline termios attributes copied into every spawned pty.

    Captured once at startup and never modified. The lock only serializes
    snapshot copies taken by concurrent spawns.
    """

    def __init__(self, attributes: TermAttributes | None) -> None:
        self._attributes = copy.deepcopy(attributes) if attributes is not None else None
        self._lock = threading.Lock()

    @classmethod
    def capture(cls, fd: int = 0, *, require_tty: bool = True) -> OriginTerminalState:
        if not os.isatty(fd):
            if require_tty:
                raise TermplexError(
                    f"File descriptor {fd} is not a terminal.",
                    code=ExitCode.UNSUPPORTED_PLATFORM,
                    hint="Start the server from an interactive terminal.",
                )
            logger.info("Descriptor %s is not a tty; spawned terminals keep kernel defaults", fd)
            return cls(None)
        try:
            attributes = termios.tcgetattr(fd)
        except termios.error as exc:
            raise TermplexError(
                f"Failed to read terminal attributes from descriptor {fd}.",
                code=ExitCode.UNSUPPORTED_PLATFORM,
                hint=str(exc) or "Start the server from an interactive terminal.",
            ) from exc
        return cls(attributes)

    @property
    def lock(self) -> threading.Lock:
        return self._lock

    @property
    def available(self) -> bool:
        return self._attributes is not None

    def snapshot(self) -> TermAttributes | None:
        """Deep copy of the attributes; callers must hold ``lock``."""
        if self._attributes is None:
            return None
        return copy.deepcopy(self._attributes)
