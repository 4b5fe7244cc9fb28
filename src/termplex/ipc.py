"""Length-prefixed message channel between the server and its clients.

Each frame is a 4-byte big-endian body length followed by the JSON body of a
message model. The payloads are opaque to this layer.
"""

from __future__ import annotations

import socket
import struct
import threading
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from termplex.errors import ExitCode, TermplexError

MAX_FRAME_SIZE = 16 * 1024 * 1024
_HEADER = struct.Struct(">I")


class _Message(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: str
    payload: dict[str, Any] = Field(default_factory=dict)


class ServerToClientMsg(_Message):
    pass


class ClientToServerMsg(_Message):
    pass


M = TypeVar("M", bound=_Message)


def encode_frame(message: _Message) -> bytes:
    body = message.model_dump_json().encode("utf-8")
    if len(body) > MAX_FRAME_SIZE:
        raise TermplexError(
            f"Message too large: {len(body)} bytes",
            code=ExitCode.PROTOCOL_ERROR,
            hint=f"Keep message bodies under {MAX_FRAME_SIZE} bytes.",
        )
    return _HEADER.pack(len(body)) + body


def _recv_exact(connection: socket.socket, size: int) -> bytes | None:
    chunks: list[bytes] = []
    remaining = size
    while remaining:
        chunk = connection.recv(remaining)
        if not chunk:
            if remaining == size:
                return None
            raise TermplexError(
                "Connection closed in the middle of a frame.",
                code=ExitCode.PROTOCOL_ERROR,
                hint="The peer disconnected while sending.",
            )
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


class IpcSender(Generic[M]):
    def __init__(self, connection: socket.socket) -> None:
        self._connection = connection
        self._lock = threading.Lock()

    def send(self, message: M) -> None:
        frame = encode_frame(message)
        with self._lock:
            self._connection.sendall(frame)


class IpcReceiver(Generic[M]):
    def __init__(self, connection: socket.socket, message_type: type[M]) -> None:
        self._connection = connection
        self._message_type = message_type
        self._sender: IpcSender[Any] | None = None

    def get_sender(self) -> IpcSender[Any]:
        """Sender paired with this receiver over the same connection."""
        if self._sender is None:
            self._sender = IpcSender(self._connection)
        return self._sender

    def recv(self) -> M | None:
        header = _recv_exact(self._connection, _HEADER.size)
        if header is None:
            return None
        (length,) = _HEADER.unpack(header)
        if length > MAX_FRAME_SIZE:
            raise TermplexError(
                f"Frame too large: {length} bytes",
                code=ExitCode.PROTOCOL_ERROR,
                hint="The peer is not speaking the termplex protocol.",
            )
        body = _recv_exact(self._connection, length) if length else b""
        if body is None:
            raise TermplexError(
                "Connection closed before the frame body arrived.",
                code=ExitCode.PROTOCOL_ERROR,
                hint="The peer disconnected while sending.",
            )
        try:
            return self._message_type.model_validate_json(body)
        except ValidationError as exc:
            raise TermplexError(
                "Received a malformed message.",
                code=ExitCode.PROTOCOL_ERROR,
                hint=str(exc),
            ) from exc

    def close(self) -> None:
        self._connection.close()
