"""Operating-system capabilities the multiplexer server depends on.

The rest of the server talks to ptys, processes and client connections only
through ``ServerOsApi``. ``ServerOsInputOutput`` is the production
implementation; tests substitute their own.
"""

from __future__ import annotations

import fcntl
import logging as py_logging
import os
import signal
import socket
import struct
import termios
import threading
from typing import Protocol

from termplex.config import ServerConfig
from termplex.errors import ExitCode, TermplexError
from termplex.ipc import ClientToServerMsg, IpcReceiver, IpcSender, ServerToClientMsg
from termplex.palette import Palette, default_palette
from termplex.terminal.async_reader import AsyncReader, FdAsyncReader
from termplex.terminal.models import TerminalAction, TerminalHandle
from termplex.terminal.origin import OriginTerminalState
from termplex.terminal.run_target import resolve_run_command
from termplex.terminal.spawner import spawn_terminal

logger = py_logging.getLogger(__name__)

ClientId = int


def set_terminal_size_using_fd(fd: int, columns: int, rows: int) -> None:
    winsize = struct.pack("HHHH", rows, columns, 0, 0)
    fcntl.ioctl(fd, termios.TIOCSWINSZ, winsize)


class ServerOsApi(Protocol):
    def set_terminal_size_using_fd(self, fd: int, cols: int, rows: int) -> None:
        """Resize the pty behind ``fd``; zero in either dimension is ignored."""

    def spawn_terminal(self, action: TerminalAction | None = None) -> TerminalHandle:
        """Start a new terminal running ``action`` (default shell when None)."""

    def read_from_tty_stdout(self, fd: int, size: int | None = None) -> bytes: ...

    def async_file_reader(self, fd: int) -> AsyncReader:
        """Reader for use inside an event loop; takes ownership of ``fd``."""

    def write_to_tty_stdin(self, fd: int, data: bytes) -> int: ...

    def tcdrain(self, fd: int) -> None: ...

    def kill(self, pid: int) -> bool:
        """SIGTERM ``pid`` and wait for it; False if there is no such process."""

    def terminate(self, pid: int) -> int | None:
        """Like ``kill`` but returns the reaped exit code, or None if there is no such process."""

    def force_kill(self, pid: int) -> None: ...

    def send_to_client(self, client_id: ClientId, message: ServerToClientMsg) -> None: ...

    def new_client(self, client_id: ClientId, connection: socket.socket) -> IpcReceiver[ClientToServerMsg]: ...

    def remove_client(self, client_id: ClientId) -> None: ...

    def load_palette(self) -> Palette: ...

    def clone(self) -> ServerOsApi: ...


class ClientRegistry:
    """Outbound senders keyed by client id, guarded by a single lock."""

    def __init__(self) -> None:
        self._senders: dict[ClientId, IpcSender[ServerToClientMsg]] = {}
        self._lock = threading.Lock()

    def insert(self, client_id: ClientId, sender: IpcSender[ServerToClientMsg]) -> None:
        with self._lock:
            self._senders[client_id] = sender

    def remove(self, client_id: ClientId) -> None:
        with self._lock:
            self._senders.pop(client_id, None)

    def get(self, client_id: ClientId) -> IpcSender[ServerToClientMsg] | None:
        with self._lock:
            return self._senders.get(client_id)

    def client_ids(self) -> list[ClientId]:
        with self._lock:
            return sorted(self._senders)


class ServerOsInputOutput:
    def __init__(
        self,
        origin: OriginTerminalState,
        *,
        registry: ClientRegistry | None = None,
        config: ServerConfig | None = None,
    ) -> None:
        self._origin = origin
        self._registry = registry or ClientRegistry()
        self._config = config or ServerConfig()

    @property
    def origin(self) -> OriginTerminalState:
        return self._origin

    @property
    def registry(self) -> ClientRegistry:
        return self._registry

    @property
    def config(self) -> ServerConfig:
        return self._config

    def set_terminal_size_using_fd(self, fd: int, cols: int, rows: int) -> None:
        if cols > 0 and rows > 0:
            set_terminal_size_using_fd(fd, cols, rows)

    def spawn_terminal(self, action: TerminalAction | None = None) -> TerminalHandle:
        command = resolve_run_command(action)
        with self._origin.lock:
            attributes = self._origin.snapshot()
            return spawn_terminal(command, attributes, self._config.supervisor_settings())

    def read_from_tty_stdout(self, fd: int, size: int | None = None) -> bytes:
        return os.read(fd, size or self._config.read_chunk_size)

    def async_file_reader(self, fd: int) -> AsyncReader:
        return FdAsyncReader(fd)

    def write_to_tty_stdin(self, fd: int, data: bytes) -> int:
        return os.write(fd, data)

    def tcdrain(self, fd: int) -> None:
        termios.tcdrain(fd)

    def kill(self, pid: int) -> bool:
        return self.terminate(pid) is not None

    def terminate(self, pid: int) -> int | None:
        try:
            os.kill(pid, signal.SIGTERM)
        except ProcessLookupError:
            logger.info("Process %s is already gone", pid)
            return None
        except OSError as exc:
            raise TermplexError(
                f"Failed to terminate process {pid}.",
                code=ExitCode.SIGNAL_ERROR,
                hint=str(exc) or "Check that the server owns the process.",
            ) from exc
        try:
            _, status = os.waitpid(pid, 0)
        except OSError as exc:
            raise TermplexError(
                f"Failed to reap process {pid}.",
                code=ExitCode.SIGNAL_ERROR,
                hint=str(exc) or "Only processes spawned by this server can be reaped.",
            ) from exc
        exit_code = os.waitstatus_to_exitcode(status)
        logger.debug("Terminated and reaped process %s (exit=%s)", pid, exit_code)
        return exit_code

    def force_kill(self, pid: int) -> None:
        try:
            os.kill(pid, signal.SIGKILL)
        except OSError as exc:
            logger.debug("force_kill(%s) ignored: %s", pid, exc)

    def send_to_client(self, client_id: ClientId, message: ServerToClientMsg) -> None:
        sender = self._registry.get(client_id)
        if sender is None:
            return
        try:
            sender.send(message)
        except OSError as exc:
            logger.warning("Dropping message for client %s: %s", client_id, exc)

    def new_client(self, client_id: ClientId, connection: socket.socket) -> IpcReceiver[ClientToServerMsg]:
        receiver = IpcReceiver(connection, ClientToServerMsg)
        self._registry.insert(client_id, receiver.get_sender())
        logger.info("Client %s connected", client_id)
        return receiver

    def remove_client(self, client_id: ClientId) -> None:
        self._registry.remove(client_id)
        logger.info("Client %s removed", client_id)

    def load_palette(self) -> Palette:
        return default_palette()

    def clone(self) -> ServerOsInputOutput:
        return ServerOsInputOutput(self._origin, registry=self._registry, config=self._config)


def get_server_os_input(
    fd: int = 0,
    *,
    config: ServerConfig | None = None,
    require_tty: bool = True,
) -> ServerOsInputOutput:
    origin = OriginTerminalState.capture(fd, require_tty=require_tty)
    return ServerOsInputOutput(origin, config=config)
