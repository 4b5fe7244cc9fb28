"""Terminal domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Union


@dataclass(frozen=True)
class RunCommand:
    command: str
    args: tuple[str, ...] = field(default_factory=tuple)

    def argv(self) -> list[str]:
        return [self.command, *self.args]


@dataclass(frozen=True)
class OpenFile:
    path: Path


TerminalAction = Union[OpenFile, RunCommand]


@dataclass(frozen=True)
class TerminalHandle:
    """A spawned terminal.

    ``pid`` names the supervisor process sitting between the server and the
    command, so lifecycle calls (``kill``, ``force_kill``) always target it.
    """

    master_fd: int
    pid: int


class SupervisorPhase(str, Enum):
    RUNNING = "running"
    TERMINATING = "terminating"
    DONE = "done"


@dataclass(frozen=True)
class SupervisorState:
    phase: SupervisorPhase
    attempts_remaining: int = 0

    @classmethod
    def running(cls) -> SupervisorState:
        return cls(SupervisorPhase.RUNNING)

    @classmethod
    def terminating(cls, attempts_remaining: int) -> SupervisorState:
        return cls(SupervisorPhase.TERMINATING, attempts_remaining)

    @classmethod
    def done(cls) -> SupervisorState:
        return cls(SupervisorPhase.DONE)
