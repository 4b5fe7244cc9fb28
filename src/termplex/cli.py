"""Public CLI contract and entrypoint.

Spawns one terminal through the server OS layer, optionally feeds it input,
and streams its output to stdout until the pty closes or the timeout fires.
"""

from __future__ import annotations

import argparse
import asyncio
import errno
import logging as py_logging
import os
import shlex
import sys
from collections.abc import Callable, Sequence
from contextlib import suppress
from pathlib import Path
from typing import BinaryIO

from .config import ServerConfig, load_config
from .errors import ExitCode, TermplexError, user_facing_error
from .logging import configure_logging, default_log_path
from .server_os import ServerOsApi, get_server_os_input
from .terminal.async_reader import AsyncReader
from .terminal.models import OpenFile, RunCommand, TerminalAction
from .terminal.spawner import EXIT_CHILD_CRASHED, EXIT_FOREGROUND_FAILED, EXIT_SPAWN_FAILED, EXIT_SUPERVISOR_OK

_VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARN", "ERROR")
_START_FAILURE_STATUSES = (EXIT_SPAWN_FAILED, EXIT_CHILD_CRASHED, EXIT_FOREGROUND_FAILED)

logger = py_logging.getLogger(__name__)

OsFactory = Callable[[ServerConfig], ServerOsApi]


def _dimension_type(value: str) -> int:
    try:
        size = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError("terminal size must be an integer") from exc
    if size < 0 or size > 0xFFFF:
        raise argparse.ArgumentTypeError("terminal size must be between 0 and 65535")
    return size


def _timeout_type(value: str) -> float:
    try:
        seconds = float(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError("--timeout must be a number") from exc
    if seconds <= 0:
        raise argparse.ArgumentTypeError("--timeout must be positive")
    return seconds


def _log_level_type(value: str) -> str:
    normalized = value.upper()
    if normalized == "WARNING":
        normalized = "WARN"
    if normalized not in _VALID_LOG_LEVELS:
        accepted = ", ".join(_VALID_LOG_LEVELS)
        raise argparse.ArgumentTypeError(f"--log-level must be one of: {accepted}")
    return normalized


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="termplex")
    target = parser.add_mutually_exclusive_group()
    target.add_argument("--command", default=None, help="Command line to run instead of $SHELL, split like a shell would")
    target.add_argument("--open", type=Path, default=None, metavar="FILE", help="Open FILE in $EDITOR")
    parser.add_argument("--send", default=None, help="Text written to the terminal after spawn")
    parser.add_argument("--cols", type=_dimension_type, default=80)
    parser.add_argument("--rows", type=_dimension_type, default=24)
    parser.add_argument("--timeout", type=_timeout_type, default=None)
    parser.add_argument("--config", type=Path, default=None)
    parser.add_argument("--log-level", type=_log_level_type, default=None)
    parser.add_argument("--log-file", type=Path, default=None)
    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = build_parser()
    return parser.parse_args(argv)


def resolve_action(namespace: argparse.Namespace) -> TerminalAction | None:
    if namespace.open is not None:
        return OpenFile(namespace.open)
    if namespace.command is not None:
        argv = shlex.split(namespace.command)
        if not argv:
            raise TermplexError(
                "Command cannot be empty.",
                code=ExitCode.INVALID_ARGS,
                hint="Pass a program to --command or omit it to run $SHELL.",
            )
        return RunCommand(command=argv[0], args=tuple(argv[1:]))
    return None


async def _drain_output(reader: AsyncReader, sink: BinaryIO, chunk_size: int) -> None:
    while True:
        try:
            chunk = await reader.read(chunk_size)
        except OSError as exc:
            # Linux reports EIO on the master once the slave side has closed.
            if exc.errno == errno.EIO:
                return
            raise
        if not chunk:
            return
        sink.write(chunk)
        sink.flush()


async def _pump_output(reader: AsyncReader, sink: BinaryIO, chunk_size: int, timeout: float | None) -> None:
    try:
        await asyncio.wait_for(_drain_output(reader, sink, chunk_size), timeout)
    except asyncio.TimeoutError:
        logger.info("Output timeout reached after %ss", timeout)


def _supervisor_exit_code(pid: int, status: int | None) -> int:
    if status is None or status == EXIT_SUPERVISOR_OK:
        return int(ExitCode.SUCCESS)
    if status in _START_FAILURE_STATUSES:
        raise TermplexError(
            f"Terminal process {pid} failed to start (exit status {status}).",
            code=ExitCode.SPAWN_ERROR,
            hint="Check that the command exists and is executable.",
        )
    raise TermplexError(
        f"Terminal process {pid} ended abnormally (exit status {status}).",
        code=ExitCode.RUNTIME_ERROR,
        hint="Inspect the terminal output above and the log file.",
    )


def run_terminal(
    os_api: ServerOsApi,
    action: TerminalAction | None,
    *,
    send: str | None = None,
    cols: int = 80,
    rows: int = 24,
    timeout: float | None = None,
    chunk_size: int = 4096,
    sink: BinaryIO | None = None,
) -> int:
    handle = os_api.spawn_terminal(action)
    reader: AsyncReader | None = None
    try:
        reader = os_api.async_file_reader(handle.master_fd)
        os_api.set_terminal_size_using_fd(handle.master_fd, cols, rows)
        if send:
            os_api.write_to_tty_stdin(handle.master_fd, send.encode("utf-8"))
            os_api.tcdrain(handle.master_fd)
        asyncio.run(_pump_output(reader, sink or sys.stdout.buffer, chunk_size, timeout))
    finally:
        # The master stays open until the supervisor is reaped; closing it hangs up the session.
        try:
            status = os_api.terminate(handle.pid)
            logger.debug("Supervisor %s exit status=%s", handle.pid, status)
        finally:
            if reader is not None:
                reader.close()
            else:
                with suppress(OSError):
                    os.close(handle.master_fd)
    return _supervisor_exit_code(handle.pid, status)


def _default_os_factory(config: ServerConfig) -> ServerOsApi:
    return get_server_os_input(0, config=config, require_tty=False)


def main(
    argv: Sequence[str] | None = None,
    *,
    os_factory: OsFactory | None = None,
) -> int:
    log_path = default_log_path()
    logger = configure_logging(log_file=log_path)
    parser = build_parser()
    try:
        namespace = parser.parse_args(argv)
    except SystemExit as exc:
        if exc.code not in (None, 0):
            logger.warning("Argument parsing failed with exit code %s", exc.code)
        return int(exc.code or 0)

    config = load_config(namespace.config)
    if namespace.log_file is not None:
        log_path = namespace.log_file.expanduser()
    elif config.log_file:
        log_path = Path(config.log_file).expanduser()
    logger = configure_logging(level=namespace.log_level or config.log_level, log_file=log_path)

    try:
        action = resolve_action(namespace)
        os_api = (os_factory or _default_os_factory)(config)
        logger.debug("Starting terminal flow")
        return run_terminal(
            os_api,
            action,
            send=namespace.send,
            cols=namespace.cols,
            rows=namespace.rows,
            timeout=namespace.timeout,
            chunk_size=config.read_chunk_size,
        )
    except TermplexError as exc:
        logger.error(
            "Handled TermplexError (code=%s): %s",
            int(exc.code),
            exc.message,
            exc_info=logger.isEnabledFor(py_logging.DEBUG),
        )
        print(user_facing_error(exc.message, hint=exc.hint), file=sys.stderr)
        return int(exc.code)
    except Exception:
        logger.exception("Unhandled exception in CLI entrypoint")
        try:
            hint = f"Inspect logs: {log_path}"
            print(user_facing_error("Unexpected runtime failure", hint=hint), file=sys.stderr)
        except Exception:
            pass
        return int(ExitCode.RUNTIME_ERROR)


def run(argv: Sequence[str] | None = None) -> int:
    return main(argv)
