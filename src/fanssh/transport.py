"""SSH transport owning one connection to one host."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator

import asyncssh

from .config import HostTarget
from .errors import ConfigurationError, ConnectFailure, KeyLoadError, OperationFailure

logger = logging.getLogger(__name__)


def describe_error(exc: BaseException) -> str:
    """Return a readable message for an exception, even an empty one."""
    message = str(exc).strip()
    if isinstance(exc, asyncio.TimeoutError) and not message:
        return "connection timed out"
    return message or type(exc).__name__


def load_private_key(path: Path) -> asyncssh.SSHKey:
    """Read and parse a private key file."""
    try:
        return asyncssh.read_private_key(str(path))
    except (OSError, asyncssh.KeyImportError, asyncssh.KeyEncryptionError) as e:
        raise KeyLoadError(str(path), e) from e


class Transport:
    """Lazily established SSH connection shared by sequential sessions.

    The connection is dialed on first use and reused for every session
    opened afterwards. It is never re-dialed. Use as an async context
    manager so the connection is closed on every exit path.
    """

    def __init__(
        self,
        target: HostTarget,
        timeout: float = 30,
        known_hosts: Path | None = None,
    ):
        if not target.has_credentials:
            raise ConfigurationError(
                f"No password or private key configured for {target.address}"
            )
        self.target = target
        self.timeout = timeout
        self.known_hosts = known_hosts
        self._client_key = (
            load_private_key(target.private_key) if target.private_key is not None else None
        )
        self._conn: asyncssh.SSHClientConnection | None = None

    @property
    def address(self) -> str:
        return self.target.address

    @property
    def connected(self) -> bool:
        return self._conn is not None

    def _connect_options(self) -> dict[str, Any]:
        # Only the configured methods are offered, key first then password.
        return {
            "username": self.target.user,
            "client_keys": [self._client_key] if self._client_key is not None else None,
            "password": self.target.password or None,
            "agent_path": None,
            "known_hosts": str(self.known_hosts) if self.known_hosts else None,
            "connect_timeout": self.timeout,
        }

    async def dial(self) -> None:
        """Open the underlying connection.

        Raises ConnectFailure when the host cannot be reached and
        OperationFailure when it answers but rejects the credentials.
        """
        host, port = self.target.host, self.target.port
        logger.debug("Dialing %s@%s:%d", self.target.user, host, port)
        try:
            self._conn = await asyncssh.connect(host, port, **self._connect_options())
        except asyncssh.PermissionDenied as e:
            raise OperationFailure(self.address, describe_error(e)) from e
        except (OSError, asyncio.TimeoutError, asyncssh.Error, UnicodeError) as e:
            # UnicodeError: the name failed IDNA encoding during resolution
            raise ConnectFailure(self.address, describe_error(e)) from e
        logger.debug("Connected to %s", self.address)

    async def connect(self) -> asyncssh.SSHClientConnection:
        """Return the live connection, dialing it on first use."""
        if self._conn is None:
            await self.dial()
        assert self._conn is not None
        return self._conn

    @asynccontextmanager
    async def open_session(
        self, command: str, **kwargs: Any
    ) -> AsyncIterator[asyncssh.SSHClientProcess]:
        """Start ``command`` in a new session on the shared connection."""
        conn = await self.connect()
        try:
            process = await conn.create_process(command, **kwargs)
        except (OSError, asyncssh.Error) as e:
            raise OperationFailure(self.address, describe_error(e)) from e

        try:
            yield process
        finally:
            process.close()
            await process.wait_closed()

    async def close(self) -> None:
        """Close the connection if one was established."""
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        conn.close()
        await conn.wait_closed()
        logger.debug("Closed connection to %s", self.address)

    async def __aenter__(self) -> Transport:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
