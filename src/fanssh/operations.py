"""Per-host operations: running a command and pushing a file over scp."""

from __future__ import annotations

import asyncio
import logging
import os
import shlex
from pathlib import Path
from typing import BinaryIO

import asyncssh

from .errors import HostError, OperationFailure
from .outcome import Outcome
from .transport import Transport, describe_error

logger = logging.getLogger(__name__)

# Remote side of the copy handshake, invoked with the target directory.
SCP_RECEIVER = "scp -qrt"
CHUNK_SIZE = 32 * 1024
FILE_MODE = 0o644


async def run_command(transport: Transport, command: str) -> Outcome:
    """Run ``command`` in a fresh session and capture its combined output."""
    try:
        async with transport.open_session(
            command, stderr=asyncssh.STDOUT, encoding=None
        ) as process:
            try:
                result = await process.wait()
            except (OSError, asyncssh.Error) as e:
                raise OperationFailure(transport.address, describe_error(e)) from e
    except HostError as e:
        return Outcome.from_error(e)

    if result.exit_status != 0:
        return Outcome.from_error(
            OperationFailure(transport.address, _exit_description("command", result))
        )
    return Outcome.success(transport.address, result.stdout or b"")


def scp_header(size: int, name: str, mode: int = FILE_MODE) -> bytes:
    """Build the single-line header announcing a regular file."""
    return f"C{mode:04o} {size} {name}\n".encode()


async def stream_file(
    writer: asyncssh.SSHWriter, source: BinaryIO, header: bytes, size: int
) -> None:
    """Write header, exactly ``size`` bytes of ``source`` and the terminator.

    Every chunk waits on ``drain()`` so a slow receiver holds the producer
    back instead of the whole file piling up in the channel buffer. Reads run in
    the default thread pool, off the event loop.
    """
    writer.write(header)
    remaining = size
    while remaining > 0:
        chunk = await asyncio.to_thread(source.read, min(CHUNK_SIZE, remaining))
        if not chunk:
            raise OSError(f"unexpected end of file, {remaining} bytes short")
        writer.write(chunk)
        await writer.drain()
        remaining -= len(chunk)
    writer.write(b"\0")
    await writer.drain()
    writer.write_eof()


async def _feed(
    process: asyncssh.SSHClientProcess, source: BinaryIO, header: bytes, size: int
) -> None:
    try:
        await stream_file(process.stdin, source, header, size)
    except BaseException:
        # unblock the receiver so the wait side finishes too
        process.close()
        raise


async def push_file(transport: Transport, local_path: str | Path, remote_dir: str) -> Outcome:
    """Copy a local file into ``remote_dir`` using the scp sink protocol.

    The producer streaming the file and the wait on the remote receiver run
    as two gathered tasks; the receiver starts consuming before it exits, so
    running them one after the other would stall on a full channel.
    """
    local_path = Path(local_path)
    try:
        source = open(local_path, "rb")
    except OSError as e:
        return Outcome.from_error(
            OperationFailure(
                transport.address, f"cannot open local file {local_path}: {describe_error(e)}"
            )
        )

    with source:
        size = os.fstat(source.fileno()).st_size
        header = scp_header(size, local_path.name)
        command = f"{SCP_RECEIVER} {shlex.quote(remote_dir)}"
        logger.debug("Sending %s (%d bytes) to %s:%s", local_path, size, transport.address, remote_dir)

        try:
            async with transport.open_session(command, encoding=None) as process:
                sent, result = await asyncio.gather(
                    _feed(process, source, header, size),
                    process.wait(),
                    return_exceptions=True,
                )
            _check_transfer(transport.address, sent, result)
        except HostError as e:
            return Outcome.from_error(e)

    return Outcome.success(transport.address, pushed=True)


def _check_transfer(
    address: str,
    sent: BaseException | None,
    result: asyncssh.SSHCompletedProcess | BaseException,
) -> None:
    """Raise OperationFailure unless both halves of the transfer succeeded."""
    if isinstance(result, BaseException):
        if not isinstance(result, (OSError, asyncssh.Error)):
            raise result
        raise OperationFailure(address, describe_error(result)) from result

    # a receiver that rejected the file explains more than the broken pipe
    # the producer saw afterwards
    if result.exit_status not in (0, None):
        raise OperationFailure(address, receiver_error(result))

    if isinstance(sent, BaseException):
        if not isinstance(sent, (OSError, asyncssh.Error)):
            raise sent
        raise OperationFailure(address, describe_error(sent)) from sent

    if result.exit_status is None:
        raise OperationFailure(address, _exit_description("receiver", result))


def receiver_error(result: asyncssh.SSHCompletedProcess) -> str:
    """Extract the receiver's error text, skipping scp status bytes."""
    for stream in (result.stderr, result.stdout):
        text = (stream or b"").lstrip(b"\0\1\2").decode("utf-8", errors="replace").strip()
        if text:
            return text
    return _exit_description("receiver", result)


def _exit_description(what: str, result: asyncssh.SSHCompletedProcess) -> str:
    if result.exit_status is None and result.exit_signal:
        return f"{what} killed by signal {result.exit_signal[0]}"
    if result.exit_status is None:
        return f"{what} terminated without an exit status"
    return f"{what} exited with status {result.exit_status}"
