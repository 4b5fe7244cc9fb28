from __future__ import annotations

import os
import pty
import termios

import pytest

from termplex.errors import ExitCode, TermplexError
from termplex.terminal import OriginTerminalState


def test_capture_from_pty_slave_snapshots_attributes() -> None:
    master_fd, slave_fd = pty.openpty()
    try:
        state = OriginTerminalState.capture(slave_fd)
        expected = termios.tcgetattr(slave_fd)
    finally:
        os.close(master_fd)
        os.close(slave_fd)

    assert state.available is True
    with state.lock:
        assert state.snapshot() == expected


def test_snapshot_is_a_copy_that_callers_cannot_mutate() -> None:
    attributes = [1, 2, 3, 4, 5, 6, [b"a", b"b"]]
    state = OriginTerminalState(attributes)
    attributes[6].append(b"c")

    with state.lock:
        first = state.snapshot()
        assert first is not None
        first[6].clear()
        second = state.snapshot()

    assert second == [1, 2, 3, 4, 5, 6, [b"a", b"b"]]


def test_capture_from_non_tty_requires_opt_out() -> None:
    read_fd, write_fd = os.pipe()
    try:
        with pytest.raises(TermplexError) as excinfo:
            OriginTerminalState.capture(read_fd)
        relaxed = OriginTerminalState.capture(read_fd, require_tty=False)
    finally:
        os.close(read_fd)
        os.close(write_fd)

    assert excinfo.value.code == ExitCode.UNSUPPORTED_PLATFORM
    assert relaxed.available is False
    assert relaxed.snapshot() is None
