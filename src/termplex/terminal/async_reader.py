"""Cooperative reads from a pty master descriptor."""

from __future__ import annotations

import asyncio
import os
from contextlib import suppress
from types import TracebackType
from typing import Protocol

DEFAULT_READ_SIZE = 4096


class AsyncReader(Protocol):
    async def read(self, size: int = DEFAULT_READ_SIZE) -> bytes: ...

    def close(self) -> None: ...


class FdAsyncReader:
    """Owns ``fd`` and closes it on ``close()``, on leaving ``async with``, or
    when the reader is collected.

    The descriptor keeps its blocking mode; reads wait for readability on the
    running loop first, so only the awaiting task is suspended.
    """

    def __init__(self, fd: int) -> None:
        self._fd: int | None = fd

    @property
    def fd(self) -> int | None:
        return self._fd

    @property
    def closed(self) -> bool:
        return self._fd is None

    def _require_open(self) -> int:
        if self._fd is None:
            raise ValueError("read from a closed FdAsyncReader")
        return self._fd

    async def read(self, size: int = DEFAULT_READ_SIZE) -> bytes:
        await self._wait_readable(self._require_open())
        return os.read(self._require_open(), size)

    async def _wait_readable(self, fd: int) -> None:
        loop = asyncio.get_running_loop()
        waiter: asyncio.Future[None] = loop.create_future()

        def _wake() -> None:
            if not waiter.done():
                waiter.set_result(None)

        loop.add_reader(fd, _wake)
        try:
            await waiter
        finally:
            loop.remove_reader(fd)

    def close(self) -> None:
        fd, self._fd = self._fd, None
        if fd is not None:
            os.close(fd)

    async def __aenter__(self) -> FdAsyncReader:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def __del__(self) -> None:
        if getattr(self, "_fd", None) is None:
            return
        with suppress(OSError):
            self.close()
