"""
Data models for router configuration backup.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class ArtifactKind(str, Enum):
    """Kind of configuration snapshot retrieved from a router."""
    BINARY = "binary"  # /system backup save, restorable .backup blob
    TEXT = "text"  # /export, human-readable .rsc script

    @property
    def extension(self) -> str:
        return "backup" if self is ArtifactKind.BINARY else "rsc"

    @property
    def encoding(self) -> str:
        """Transport encoding used when committing this kind."""
        return "base64" if self is ArtifactKind.BINARY else "text"


class OutcomeStatus(str, Enum):
    """Terminal status of one device within one run."""
    SUCCESS = "success"
    RETRIEVAL_FAILED = "retrieval_failed"
    COMMIT_FAILED = "commit_failed"
    INVENTORY_UNAVAILABLE = "inventory_unavailable"


@dataclass(frozen=True)
class DeviceRecord:
    """A router known to the inventory."""
    identity: str
    address: str
    port: int | None = None  # None = use configured default
    credential_ref: str = ""
    last_backup: datetime | None = field(default=None, compare=False)

    @property
    def natural_key(self) -> tuple[str, str]:
        return (self.identity, self.address)

    def to_dict(self) -> dict[str, Any]:
        return {
            "identity": self.identity,
            "address": self.address,
            "port": self.port,
            "credential_ref": self.credential_ref,
            "last_backup": self.last_backup.isoformat() if self.last_backup else None,
        }


@dataclass(frozen=True)
class SSHCredential:
    """Credentials for an SSH session to a router."""
    username: str
    password: str | None = None
    ssh_key: str | None = None  # Path to SSH key or key content
    ssh_key_passphrase: str | None = None

    def to_dict(self, include_secrets: bool = False) -> dict[str, Any]:
        """Convert to dictionary, optionally excluding secrets."""
        data: dict[str, Any] = {"username": self.username}
        if include_secrets:
            data.update({
                "password": self.password,
                "ssh_key": self.ssh_key,
                "ssh_key_passphrase": self.ssh_key_passphrase,
            })
        return data


@dataclass
class ArtifactSet:
    """Both snapshots retrieved from one device in one run."""
    device_identity: str
    device_address: str
    binary_payload: bytes
    text_payload: bytes
    retrieved_at: datetime = field(default_factory=datetime.now)

    def payload(self, kind: ArtifactKind) -> bytes:
        if kind is ArtifactKind.BINARY:
            return self.binary_payload
        return self.text_payload


@dataclass(frozen=True)
class CommitResult:
    """Result of a successful commit of one artifact kind.

    Failed commits raise CommitFailed instead of returning a result.
    """
    path: str
    kind: ArtifactKind
    message: str
    committed_at: datetime
    size_bytes: int = 0
    encoding: str = "text"  # Transport encoding actually used

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "kind": self.kind.value,
            "message": self.message,
            "committed_at": self.committed_at.isoformat(),
            "size_bytes": self.size_bytes,
            "encoding": self.encoding,
        }


@dataclass(frozen=True)
class RunOutcome:
    """Outcome recorded for one device."""
    device_address: str
    status: OutcomeStatus
    detail: str = ""
    device_identity: str | None = None
    error: str | None = None  # Error class name from routerbackup.backup.errors

    @property
    def ok(self) -> bool:
        return self.status is OutcomeStatus.SUCCESS

    def to_dict(self) -> dict[str, Any]:
        return {
            "device_address": self.device_address,
            "device_identity": self.device_identity,
            "status": self.status.value,
            "detail": self.detail,
            "error": self.error,
        }


@dataclass
class RunSummary:
    """Ordered outcomes of a backup run."""
    outcomes: tuple[RunOutcome, ...] = ()
    started_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled: bool = False
    notified: bool = False

    @property
    def succeeded(self) -> list[RunOutcome]:
        return [o for o in self.outcomes if o.ok]

    @property
    def failed(self) -> list[RunOutcome]:
        return [o for o in self.outcomes if not o.ok]

    @property
    def all_succeeded(self) -> bool:
        return bool(self.outcomes) and not self.failed

    @property
    def duration_seconds(self) -> float | None:
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "outcomes": [o.to_dict() for o in self.outcomes],
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "cancelled": self.cancelled,
            "notified": self.notified,
            "succeeded": len(self.succeeded),
            "failed": len(self.failed),
        }
