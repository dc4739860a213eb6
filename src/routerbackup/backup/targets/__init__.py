"""
Versioned destinations for router snapshots.

Supported targets:
- gitlab: GitLab project via the repository files API
- filesystem: local directory archive with a commit log

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

from routerbackup.backup.config import BackupConfig
from routerbackup.backup.targets.base import VersionedRepository
from routerbackup.backup.targets.filesystem import FilesystemTarget
from routerbackup.backup.targets.gitlab import GitLabTarget

# Map config target name to target class
TARGET_MAP: dict[str, type[VersionedRepository]] = {
    GitLabTarget.NAME: GitLabTarget,
    FilesystemTarget.NAME: FilesystemTarget,
}


def get_target(config: BackupConfig) -> VersionedRepository:
    """Build the destination selected by ``config.target``.

    Raises:
        ValueError: if the target name is unknown
    """
    target_class = TARGET_MAP.get(config.target)
    if target_class is None:
        raise ValueError(f"Unsupported backup target: {config.target}")
    return target_class(config)


__all__ = [
    "VersionedRepository",
    "FilesystemTarget",
    "GitLabTarget",
    "TARGET_MAP",
    "get_target",
]
