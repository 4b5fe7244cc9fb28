from __future__ import annotations

import errno
import io
from contextlib import redirect_stderr
from pathlib import Path

import pytest

from termplex import cli
from termplex.config import ServerConfig
from termplex.errors import ExitCode, TermplexError
from termplex.server_os import ServerOsInputOutput
from termplex.terminal import OpenFile, OriginTerminalState, RunCommand, TerminalHandle


class _FakeReader:
    def __init__(self, chunks: list[bytes | OSError], calls: list[tuple[object, ...]] | None = None) -> None:
        self.chunks = list(chunks)
        self.closed = False
        self.calls = calls

    async def read(self, size: int = 4096) -> bytes:
        if not self.chunks:
            return b""
        chunk = self.chunks.pop(0)
        if isinstance(chunk, OSError):
            raise chunk
        return chunk

    def close(self) -> None:
        self.closed = True
        if self.calls is not None:
            self.calls.append(("close",))


class _FakeOs:
    def __init__(self, reader: _FakeReader, *, exit_status: int | None = 0) -> None:
        self.reader = reader
        self.calls: list[tuple[object, ...]] = []
        self.exit_status = exit_status
        reader.calls = self.calls

    def spawn_terminal(self, action=None) -> TerminalHandle:
        self.calls.append(("spawn", action))
        return TerminalHandle(master_fd=11, pid=2222)

    def set_terminal_size_using_fd(self, fd: int, cols: int, rows: int) -> None:
        self.calls.append(("resize", fd, cols, rows))

    def write_to_tty_stdin(self, fd: int, data: bytes) -> int:
        self.calls.append(("write", fd, data))
        return len(data)

    def tcdrain(self, fd: int) -> None:
        self.calls.append(("drain", fd))

    def async_file_reader(self, fd: int) -> _FakeReader:
        self.calls.append(("reader", fd))
        return self.reader

    def terminate(self, pid: int) -> int | None:
        self.calls.append(("terminate", pid))
        return self.exit_status


def test_cli_help_includes_public_flags() -> None:
    help_text = cli.build_parser().format_help()

    for flag in ("--command", "--open", "--send", "--cols", "--rows", "--timeout", "--config", "--log-level"):
        assert flag in help_text


def test_command_and_open_are_mutually_exclusive(tmp_path: Path) -> None:
    stream = io.StringIO()
    with redirect_stderr(stream):
        code = cli.main(["--command", "ls", "--open", "a.txt", "--log-file", str(tmp_path / "t.log")])

    assert code == 2


def test_resolve_action_variants() -> None:
    assert cli.resolve_action(cli.parse_args([])) is None
    assert cli.resolve_action(cli.parse_args(["--open", "notes.md"])) == OpenFile(Path("notes.md"))
    assert cli.resolve_action(cli.parse_args(["--command", "echo 'a b' c"])) == RunCommand(
        command="echo", args=("a b", "c")
    )


def test_run_terminal_drives_the_os_layer_in_order() -> None:
    reader = _FakeReader([b"hello ", b"world"])
    fake = _FakeOs(reader)
    sink = io.BytesIO()

    code = cli.run_terminal(fake, None, send="ls\n", cols=100, rows=30, sink=sink)

    assert code == 0
    assert sink.getvalue() == b"hello world"
    assert reader.closed is True
    assert fake.calls == [
        ("spawn", None),
        ("reader", 11),
        ("resize", 11, 100, 30),
        ("write", 11, b"ls\n"),
        ("drain", 11),
        ("terminate", 2222),
        ("close",),
    ]


def test_run_terminal_treats_eio_as_end_of_output() -> None:
    reader = _FakeReader([b"bye", OSError(errno.EIO, "Input/output error")])
    sink = io.BytesIO()

    cli.run_terminal(_FakeOs(reader), None, sink=sink)

    assert sink.getvalue() == b"bye"


def test_run_terminal_kills_supervisor_when_reading_fails() -> None:
    reader = _FakeReader([OSError(errno.EBADF, "Bad file descriptor")])
    fake = _FakeOs(reader)

    with pytest.raises(OSError):
        cli.run_terminal(fake, None, sink=io.BytesIO())

    assert fake.calls[-2:] == [("terminate", 2222), ("close",)]


def test_missing_shell_is_reported_with_config_error_code(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.delenv("SHELL", raising=False)

    def factory(config: ServerConfig) -> ServerOsInputOutput:
        return ServerOsInputOutput(OriginTerminalState(None), config=config)

    stream = io.StringIO()
    with redirect_stderr(stream):
        code = cli.main(["--log-file", str(tmp_path / "t.log")], os_factory=factory)

    assert code == int(ExitCode.CONFIG_ERROR)
    assert "SHELL" in stream.getvalue()


def test_empty_command_is_invalid(tmp_path: Path) -> None:
    stream = io.StringIO()
    with redirect_stderr(stream):
        code = cli.main(["--command", "  ", "--log-file", str(tmp_path / "t.log")], os_factory=lambda _cfg: None)  # type: ignore[arg-type,return-value]

    assert code == int(ExitCode.INVALID_ARGS)
    assert "Command cannot be empty" in stream.getvalue()


@pytest.mark.parametrize("value", ["-1", "70000", "wide"])
def test_invalid_dimensions_are_rejected(value: str, tmp_path: Path) -> None:
    stream = io.StringIO()
    with redirect_stderr(stream):
        code = cli.main(["--cols", value, "--log-file", str(tmp_path / "t.log")])

    assert code == 2


def test_run_terminal_closes_the_descriptor_when_resize_fails() -> None:
    reader = _FakeReader([b"never read"])
    fake = _FakeOs(reader)

    def broken_resize(fd: int, cols: int, rows: int) -> None:
        raise OSError(errno.ENOTTY, "Inappropriate ioctl for device")

    fake.set_terminal_size_using_fd = broken_resize  # type: ignore[method-assign]

    with pytest.raises(OSError):
        cli.run_terminal(fake, None, sink=io.BytesIO())

    assert reader.closed is True
    assert reader.chunks == [b"never read"]
    assert fake.calls[-2:] == [("terminate", 2222), ("close",)]


@pytest.mark.parametrize("status", [127, 70, 71])
def test_run_terminal_reports_a_terminal_that_failed_to_start(status: int) -> None:
    fake = _FakeOs(_FakeReader([b"termplex: failed to spawn\r\n"]), exit_status=status)

    with pytest.raises(TermplexError) as excinfo:
        cli.run_terminal(fake, RunCommand(command="/nonexistent/termplex-binary"), sink=io.BytesIO())

    assert excinfo.value.code == ExitCode.SPAWN_ERROR
    assert str(status) in excinfo.value.message


def test_run_terminal_reports_a_supervisor_killed_by_a_signal() -> None:
    fake = _FakeOs(_FakeReader([]), exit_status=-9)

    with pytest.raises(TermplexError) as excinfo:
        cli.run_terminal(fake, None, sink=io.BytesIO())

    assert excinfo.value.code == ExitCode.RUNTIME_ERROR


def test_run_terminal_succeeds_when_supervisor_is_already_gone() -> None:
    fake = _FakeOs(_FakeReader([]), exit_status=None)

    assert cli.run_terminal(fake, None, sink=io.BytesIO()) == int(ExitCode.SUCCESS)


def test_failed_start_maps_to_spawn_error_exit_code(tmp_path: Path) -> None:
    fake = _FakeOs(_FakeReader([]), exit_status=127)
    stream = io.StringIO()
    with redirect_stderr(stream):
        code = cli.main(
            ["--command", "/nonexistent/termplex-binary", "--log-file", str(tmp_path / "t.log")],
            os_factory=lambda _cfg: fake,  # type: ignore[arg-type,return-value]
        )

    assert code == int(ExitCode.SPAWN_ERROR)
    assert "failed to start" in stream.getvalue()
