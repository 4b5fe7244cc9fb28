"""Signal escalation for the command running inside a spawned terminal.

The supervisor lives in the intermediate process created by the spawner. It
waits for the command to exit and, once asked to stop (SIGINT or SIGTERM
delivered to the supervisor), sends SIGTERM a bounded number of times before
falling back to SIGKILL.
"""

from __future__ import annotations

import logging as py_logging
import signal
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from types import FrameType
from typing import Protocol

from termplex.terminal.models import SupervisorPhase, SupervisorState

logger = py_logging.getLogger(__name__)

TERMINATION_SIGNALS = (signal.SIGINT, signal.SIGTERM)


@dataclass(frozen=True)
class SupervisorSettings:
    poll_interval: float = 0.01
    terminate_attempts: int = 3


class SupervisedProcess(Protocol):
    pid: int

    def poll(self) -> int | None: ...

    def send_signal(self, sig: int) -> None: ...

    def kill(self) -> None: ...


class PendingSignals:
    """Collects termination signals until the supervisor drains them."""

    def __init__(self, signums: Iterable[int] = TERMINATION_SIGNALS) -> None:
        self._signums = tuple(signums)
        self._pending: list[int] = []

    def install(self) -> None:
        for signum in self._signums:
            signal.signal(signum, self._record)

    def _record(self, signum: int, _frame: FrameType | None) -> None:
        self._pending.append(signum)

    def drain(self) -> list[int]:
        pending, self._pending = self._pending, []
        return pending


class ChildSupervisor:
    def __init__(
        self,
        process: SupervisedProcess,
        settings: SupervisorSettings | None = None,
        *,
        signals: Callable[[], Iterable[int]],
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._process = process
        self._settings = settings or SupervisorSettings()
        self._signals = signals
        self._sleep = sleep
        self.history: list[SupervisorState] = []

    def _enter(self, state: SupervisorState) -> SupervisorState:
        self.history.append(state)
        logger.debug(
            "supervisor command=%s phase=%s attempts=%s",
            self._process.pid,
            state.phase.value,
            state.attempts_remaining,
        )
        return state

    def _stop_requested(self) -> bool:
        return any(signum in TERMINATION_SIGNALS for signum in self._signals())

    def run(self) -> SupervisorState:
        state = self._enter(SupervisorState.running())
        while True:
            if self._process.poll() is not None:
                break
            self._sleep(self._settings.poll_interval)

            if state.phase == SupervisorPhase.RUNNING:
                if self._stop_requested():
                    state = self._enter(SupervisorState.terminating(self._settings.terminate_attempts))
            elif state.attempts_remaining > 0:
                # Signals arriving while terminating do not restart the schedule.
                self._process.send_signal(signal.SIGTERM)
                state = self._enter(SupervisorState.terminating(state.attempts_remaining - 1))
            else:
                self._process.kill()
                break
        return self._enter(SupervisorState.done())
