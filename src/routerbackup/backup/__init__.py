"""
RouterOS configuration backup core.

Pulls binary and plain-text snapshots from MikroTik routers over SSH and
commits them to a versioned destination (GitLab or a local archive).

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

from routerbackup.backup.models import (
    ArtifactKind,
    ArtifactSet,
    CommitResult,
    DeviceRecord,
    OutcomeStatus,
    RunOutcome,
    RunSummary,
    SSHCredential,
)
from routerbackup.backup.config import BackupConfig
from routerbackup.backup.credentials import CredentialResolver, CredentialVault
from routerbackup.backup.retriever import RemoteRetriever
from routerbackup.backup.store import ArtifactStore
from routerbackup.backup.orchestrator import BackupOrchestrator

__all__ = [
    "ArtifactKind",
    "ArtifactSet",
    "CommitResult",
    "DeviceRecord",
    "OutcomeStatus",
    "RunOutcome",
    "RunSummary",
    "SSHCredential",
    "BackupConfig",
    "CredentialResolver",
    "CredentialVault",
    "RemoteRetriever",
    "ArtifactStore",
    "BackupOrchestrator",
]
