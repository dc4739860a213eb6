"""
Remote shell sessions used to pull snapshots off routers.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

import logging
from abc import ABC, abstractmethod

import asyncssh

from routerbackup.backup.models import SSHCredential

logger = logging.getLogger(__name__)


class RemoteCommandError(Exception):
    """A remote command exited with a non-zero status."""


class RemoteSession(ABC):
    """Credentialed connect / run / download primitive."""

    def __init__(self, host: str, port: int, credential: SSHCredential):
        self.host = host
        self.port = port
        self.credential = credential

    @abstractmethod
    async def connect(self) -> None:
        """Establish the session. Raises on failure."""
        pass

    @abstractmethod
    async def run(self, command: str) -> str:
        """Run a command and return its stdout."""
        pass

    @abstractmethod
    async def download(self, remote_path: str) -> bytes:
        """Fetch a remote file's content."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the session."""
        pass

    async def __aenter__(self) -> "RemoteSession":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


class AsyncSSHSession(RemoteSession):
    """SSH session backed by asyncssh."""

    def __init__(
        self,
        host: str,
        port: int,
        credential: SSHCredential,
        known_hosts: str | None = None,
    ):
        super().__init__(host, port, credential)
        self.known_hosts = known_hosts
        self._connection: asyncssh.SSHClientConnection | None = None

    async def connect(self) -> None:
        """Connect via SSH using asyncssh."""
        connect_kwargs = {
            "host": self.host,
            "port": self.port,
            "username": self.credential.username,
            "known_hosts": self.known_hosts,  # None accepts any host key
        }

        if self.credential.password:
            connect_kwargs["password"] = self.credential.password

        if self.credential.ssh_key:
            key = self.credential.ssh_key
            if key.lstrip().startswith("-----BEGIN"):
                # Key content stored in the vault rather than a path
                key = asyncssh.import_private_key(key, self.credential.ssh_key_passphrase)
            elif self.credential.ssh_key_passphrase:
                connect_kwargs["passphrase"] = self.credential.ssh_key_passphrase
            connect_kwargs["client_keys"] = [key]

        logger.debug(f"Opening SSH session to {self.host}:{self.port}")
        self._connection = await asyncssh.connect(**connect_kwargs)

    async def run(self, command: str) -> str:
        if not self._connection:
            raise RuntimeError("Not connected")

        result = await self._connection.run(command, check=False)
        if result.exit_status:
            raise RemoteCommandError(
                f"'{command}' exited with {result.exit_status}: {result.stderr or ''}".strip()
            )
        return result.stdout or ""

    async def download(self, remote_path: str) -> bytes:
        if not self._connection:
            raise RuntimeError("Not connected")

        async with self._connection.start_sftp_client() as sftp:
            async with sftp.open(remote_path, "rb") as remote_file:
                return await remote_file.read()

    async def close(self) -> None:
        """Close SSH connection."""
        if self._connection:
            self._connection.close()
            await self._connection.wait_closed()
            self._connection = None
