"""Shared fixtures: in-memory stand-ins for asyncssh connections."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generator
from unittest.mock import AsyncMock, patch

import pytest


@dataclass
class FakeResult:
    """Completed process as returned by ``SSHClientProcess.wait``."""

    exit_status: int | None = 0
    stdout: bytes = b""
    stderr: bytes = b""
    exit_signal: tuple | None = None


class FakeStdin:
    """Channel input with a bounded buffer.

    ``drain()`` blocks while more than ``limit`` bytes are waiting, until the
    receiving side takes them, so a producer that is not run concurrently
    with its consumer stalls the same way it would on a real channel.
    """

    def __init__(self, limit: int = 64 * 1024):
        self.limit = limit
        self.pending = bytearray()
        self.eof = False
        self.closed = False
        self._changed = asyncio.Event()

    def write(self, data: bytes) -> None:
        if self.closed or self.eof:
            raise BrokenPipeError("channel is closed")
        self.pending.extend(data)
        self._changed.set()

    def write_eof(self) -> None:
        self.eof = True
        self._changed.set()

    def close(self) -> None:
        self.closed = True
        self._changed.set()

    async def _wait_until(self, predicate: Callable[[], bool]) -> None:
        while not predicate():
            self._changed.clear()
            await self._changed.wait()

    async def drain(self) -> None:
        await self._wait_until(lambda: len(self.pending) <= self.limit or self.closed)
        if self.closed:
            raise BrokenPipeError("channel is closed")

    async def take(self) -> bytes | None:
        """Return buffered bytes, or None once EOF (or close) is reached."""
        await self._wait_until(lambda: bool(self.pending) or self.eof or self.closed)
        if not self.pending:
            return None
        data = bytes(self.pending)
        self.pending.clear()
        self._changed.set()
        return data


Handler = Callable[["FakeProcess"], Awaitable[FakeResult]]


class FakeProcess:
    """Remote process whose behaviour is supplied by a handler coroutine."""

    def __init__(self, command: str, handler: Handler, **kwargs: Any):
        self.command = command
        self.kwargs = kwargs
        self.stdin = FakeStdin()
        self._handler = handler
        self.closed = False

    async def wait(self) -> FakeResult:
        return await self._handler(self)

    def close(self) -> None:
        self.closed = True
        self.stdin.close()

    async def wait_closed(self) -> None:
        return None


async def succeed(process: FakeProcess) -> FakeResult:
    return FakeResult(exit_status=0)


class FakeConnection:
    """Connection that hands out FakeProcess sessions."""

    def __init__(self, handler: Handler = succeed):
        self.handler = handler
        self.processes: list[FakeProcess] = []
        self.closed = False
        self.create_error: Exception | None = None

    async def create_process(self, command: str, **kwargs: Any) -> FakeProcess:
        if self.create_error is not None:
            raise self.create_error
        process = FakeProcess(command, self.handler, **kwargs)
        self.processes.append(process)
        return process

    def close(self) -> None:
        self.closed = True

    async def wait_closed(self) -> None:
        return None


def command_output(output: bytes, exit_status: int = 0) -> Handler:
    async def handler(process: FakeProcess) -> FakeResult:
        return FakeResult(exit_status=exit_status, stdout=output)

    return handler


def scp_receiver(files: dict[str, bytes]) -> Handler:
    """Handler that parses the scp sink stream and stores the file verbatim."""

    async def handler(process: FakeProcess) -> FakeResult:
        received = bytearray()
        while True:
            data = await process.stdin.take()
            if data is None:
                break
            received.extend(data)

        if process.stdin.closed and not process.stdin.eof:
            return FakeResult(exit_status=None)

        header, _, rest = bytes(received).partition(b"\n")
        mode, size, name = header.decode().split(" ", 2)
        size = int(size)
        assert mode == "C0644"
        assert rest[size:] == b"\0"
        directory = process.command.split()[-1]
        files[f"{directory}/{name}"] = rest[:size]
        return FakeResult(exit_status=0, stdout=b"\0\0")

    return handler


@pytest.fixture
def fake_connect() -> Generator[AsyncMock, None, None]:
    """Patch asyncssh.connect; map host names to connections or errors.

    Tests fill ``fake_connect.hosts`` with ``{host: FakeConnection | Exception}``.
    Unknown hosts refuse the connection.
    """
    hosts: dict[str, Any] = {}

    async def connect(host: str, port: int = 22, **kwargs: Any) -> FakeConnection:
        result = hosts.get(host)
        if result is None:
            raise ConnectionRefusedError(111, f"Connect call failed ('{host}', {port})")
        if isinstance(result, BaseException):
            raise result
        return result

    with patch("fanssh.transport.asyncssh.connect", new=AsyncMock(side_effect=connect)) as mock:
        mock.hosts = hosts
        yield mock
