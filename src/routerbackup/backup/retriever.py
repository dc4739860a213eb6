"""
Snapshot retrieval from RouterOS devices.

Each router produces two artifacts: a binary ``.backup`` blob created with
``/system backup save`` and a plain-text ``.rsc`` script created with
``/export``. Both are written on the router under the configured backup
name and downloaded over SFTP.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, TypeVar

import asyncssh

from routerbackup.backup.config import BackupConfig
from routerbackup.backup.credentials import CredentialResolver
from routerbackup.backup.errors import RetrievalError
from routerbackup.backup.models import ArtifactKind, ArtifactSet, DeviceRecord, SSHCredential
from routerbackup.backup.session import AsyncSSHSession, RemoteCommandError, RemoteSession

logger = logging.getLogger(__name__)

T = TypeVar("T")

SessionFactory = Callable[[str, int, SSHCredential], RemoteSession]


class RemoteRetriever:
    """Fetches both configuration artifacts from one router."""

    def __init__(
        self,
        config: BackupConfig,
        resolver: CredentialResolver,
        session_factory: SessionFactory | None = None,
    ):
        """Initialize the retriever.

        Args:
            config: Backup configuration (ports, timeouts, backup name)
            resolver: Maps a device's credential ref to SSH credentials
            session_factory: Builds a session for (host, port, credential);
                defaults to an asyncssh session
        """
        self.config = config
        self.resolver = resolver
        self.session_factory = session_factory or self._ssh_session

    def _ssh_session(self, host: str, port: int, credential: SSHCredential) -> RemoteSession:
        return AsyncSSHSession(host, port, credential, known_hosts=self.config.known_hosts)

    def backup_commands(self) -> list[str]:
        """RouterOS commands that write both artifacts on the device."""
        name = self.config.remote_backup_name
        return [
            f"/system backup save name={name} dont-encrypt=yes",
            f"/export file={name}",
        ]

    def remote_file(self, kind: ArtifactKind) -> str:
        return f"{self.config.remote_backup_name}.{kind.extension}"

    async def retrieve(self, device: DeviceRecord) -> ArtifactSet:
        """Retrieve the binary and text snapshots of a device.

        Raises:
            RetrievalError: on any credential, connect, auth, command,
                missing-file or timeout failure
        """
        address = device.address
        port = device.port or self.config.ssh_port

        try:
            credential = self.resolver.resolve(device.credential_ref)
        except (LookupError, ValueError) as e:
            raise RetrievalError(address, e, RetrievalError.CREDENTIALS) from e

        session = self.session_factory(address, port, credential)
        try:
            await self._bounded(session.connect(), self.config.connect_timeout)

            for command in self.backup_commands():
                logger.debug(f"{address}: {command}")
                await self._bounded(session.run(command), self.config.command_timeout)

            binary = await self._download(session, address, ArtifactKind.BINARY)
            text = await self._download(session, address, ArtifactKind.TEXT)

        except RetrievalError:
            raise
        except asyncio.TimeoutError as e:
            raise RetrievalError(address, "operation timed out", RetrievalError.TIMEOUT) from e
        except asyncssh.PermissionDenied as e:
            raise RetrievalError(address, e, RetrievalError.AUTH) from e
        except asyncssh.SFTPNoSuchFile as e:
            raise RetrievalError(address, e, RetrievalError.MISSING_RESOURCE) from e
        except RemoteCommandError as e:
            raise RetrievalError(address, e, RetrievalError.COMMAND) from e
        except (OSError, asyncssh.Error) as e:
            raise RetrievalError(address, e, RetrievalError.CONNECT) from e
        finally:
            await self._close(session, address)

        logger.debug(
            f"Retrieved {len(binary)} + {len(text)} bytes from {device.identity} ({address})"
        )
        return ArtifactSet(
            device_identity=device.identity,
            device_address=address,
            binary_payload=binary,
            text_payload=text,
            retrieved_at=datetime.now(),
        )

    async def _download(self, session: RemoteSession, address: str, kind: ArtifactKind) -> bytes:
        remote_path = self.remote_file(kind)
        content = await self._bounded(session.download(remote_path), self.config.command_timeout)
        if not content:
            raise RetrievalError(
                address, f"{remote_path} is empty or missing", RetrievalError.MISSING_RESOURCE
            )
        return content

    @staticmethod
    async def _bounded(awaitable: Awaitable[T], timeout: float) -> T:
        return await asyncio.wait_for(awaitable, timeout)

    @staticmethod
    async def _close(session: RemoteSession, address: str) -> None:
        try:
            await session.close()
        except Exception as e:
            logger.warning(f"Closing session to {address} failed: {e}")
