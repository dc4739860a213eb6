"""
Commit retrieved artifacts to the versioned destination.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

import asyncio
import base64
import logging
from datetime import datetime, timedelta
from typing import Callable

from routerbackup.backup.config import BackupConfig
from routerbackup.backup.errors import CommitFailed
from routerbackup.backup.models import ArtifactKind, ArtifactSet, CommitResult
from routerbackup.backup.targets.base import VersionedRepository

logger = logging.getLogger(__name__)


class ArtifactStore:
    """Maps artifacts onto repository paths and commits them."""

    MESSAGE_TIME_FORMAT = "%Y-%m-%d %H:%M.%S.%f"

    def __init__(
        self,
        config: BackupConfig,
        repository: VersionedRepository,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.config = config
        self.repository = repository
        self.clock = clock
        self._last_stamp: datetime | None = None

    def device_folder(self, identity: str, address: str) -> str:
        return f"{self._sanitize_name(identity)}_{self._sanitize_name(address)}"

    def path_for(self, artifacts: ArtifactSet, kind: ArtifactKind) -> str:
        """Destination path, fixed per (identity, address, kind)."""
        folder = self.device_folder(artifacts.device_identity, artifacts.device_address)
        filename = self._sanitize_name(self.config.remote_backup_name)
        return f"{folder}/{filename}.{kind.extension}"

    def message_for(self, kind: ArtifactKind, when: datetime) -> str:
        return f"backup/change time {when.strftime(self.MESSAGE_TIME_FORMAT)} type = {kind.encoding}"

    @staticmethod
    def transport_encoding(payload: bytes, kind: ArtifactKind) -> str:
        """Encoding used on the wire.

        Text exports that are not valid UTF-8 (latin-1 or cp1251 comments)
        travel as base64 so the stored file keeps the router's exact bytes.
        """
        if kind is ArtifactKind.BINARY:
            return "base64"
        try:
            payload.decode("utf-8")
        except UnicodeDecodeError:
            return "base64"
        return "text"

    @classmethod
    def encode(cls, payload: bytes, kind: ArtifactKind) -> str:
        if cls.transport_encoding(payload, kind) == "base64":
            return base64.b64encode(payload).decode("ascii")
        return payload.decode("utf-8")

    def _stamp(self) -> datetime:
        """Commit time, strictly later than the previous commit of this store."""
        now = self.clock()
        if self._last_stamp is not None and now <= self._last_stamp:
            now = self._last_stamp + timedelta(microseconds=1)
        self._last_stamp = now
        return now

    async def commit(self, artifacts: ArtifactSet, kind: ArtifactKind) -> CommitResult:
        """Commit one artifact kind.

        Raises:
            CommitFailed: on any transport, destination or timeout error
        """
        path = self.path_for(artifacts, kind)
        committed_at = self._stamp()
        message = self.message_for(kind, committed_at)
        payload = artifacts.payload(kind)
        encoding = self.transport_encoding(payload, kind)

        try:
            await asyncio.wait_for(
                self.repository.put(path, self.encode(payload, kind), message, encoding),
                self.config.commit_timeout,
            )
        except asyncio.TimeoutError as e:
            raise CommitFailed(path, "commit timed out") from e
        except Exception as e:
            raise CommitFailed(path, e) from e

        logger.debug(f"Committed {path} ({len(payload)} bytes)")
        return CommitResult(
            path=path,
            kind=kind,
            message=message,
            committed_at=committed_at,
            size_bytes=len(payload),
            encoding=encoding,
        )

    @staticmethod
    def _sanitize_name(name: str) -> str:
        """Sanitize a name for use in repository paths."""
        safe = name.replace("/", "_").replace("\\", "_")
        safe = safe.replace(":", "_").replace(" ", "_")
        return safe
