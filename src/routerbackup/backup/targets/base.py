"""
Base class for versioned backup destinations.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

from abc import ABC, abstractmethod

from routerbackup.backup.config import BackupConfig


class VersionedRepository(ABC):
    """Path-addressed put-with-message destination.

    A put either replaces the file at ``path`` completely or raises;
    callers never assume more atomicity than that.
    """

    NAME: str = ""

    def __init__(self, config: BackupConfig):
        self.config = config

    async def prepare(self) -> None:
        """Make sure the destination exists before the first put."""
        pass

    @abstractmethod
    async def put(self, path: str, content: str, message: str, encoding: str = "text") -> None:
        """Create or overwrite ``path`` with ``content``.

        Args:
            path: Repository-relative file path
            content: File content, base64 text when encoding is "base64"
            message: Commit message
            encoding: "text" or "base64"
        """
        pass

    async def close(self) -> None:
        pass

    async def __aenter__(self) -> "VersionedRepository":
        await self.prepare()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
