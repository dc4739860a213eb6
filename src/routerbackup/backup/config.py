"""
Configuration for router backup runs.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

import dataclasses
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

ENV_PREFIX = "ROUTERBACKUP_"

_SECRET_FIELDS = ("ssh_password", "gitlab_token")


def _default_base_dir() -> Path:
    return Path.home() / ".routerbackup"


@dataclass(frozen=True)
class BackupConfig:
    """Immutable settings shared by every backup component."""

    # SSH
    ssh_port: int = 22
    ssh_user: str = "backup"
    ssh_key_path: str | None = None
    ssh_password: str | None = None
    known_hosts: str | None = None  # None = accept any host key
    backup_name: str | None = None  # Remote file name, defaults to ssh_user

    # Versioned destination: "gitlab" or "filesystem"
    target: str = "filesystem"
    archive_path: str = field(default_factory=lambda: str(_default_base_dir() / "archive"))

    # GitLab
    gitlab_url: str = "https://gitlab.com"
    gitlab_token: str | None = None
    gitlab_project: str | None = None
    gitlab_group: str | None = None
    gitlab_branch: str = "master"
    gitlab_debug: bool = False

    # Inventory and vault
    database: str | None = None  # None = SQLite in ~/.routerbackup
    vault_path: str = field(default_factory=lambda: str(_default_base_dir() / "vault"))

    # Scheduling
    max_workers: int = 4
    connect_timeout: float = 30.0
    command_timeout: float = 60.0
    commit_timeout: float = 60.0
    retrieve_attempts: int = 1
    retry_delay: float = 5.0

    # Mail
    mail_enabled: bool = False
    mail_from: str | None = None
    mail_to: tuple[str, ...] = ()
    smtp_host: str = "localhost"
    smtp_port: int = 25

    @property
    def remote_backup_name(self) -> str:
        return self.backup_name or self.ssh_user

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BackupConfig":
        """Create config from a dictionary, ignoring unknown keys."""
        known = {f.name: f for f in dataclasses.fields(cls)}
        values: dict[str, Any] = {}
        for key, value in data.items():
            key = key.lower()
            if key.startswith(ENV_PREFIX.lower()):
                key = key[len(ENV_PREFIX):]
            if key not in known or value is None:
                continue
            values[key] = _coerce(known[key], value)
        return cls(**values)

    @classmethod
    def from_file(cls, path: str | Path) -> "BackupConfig":
        """Load configuration from file.

        Supports JSON and simple key=value format.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        content = path.read_text()

        try:
            return cls.from_dict(json.loads(content))
        except json.JSONDecodeError:
            pass

        data = {}
        for line in content.split("\n"):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if "=" in line:
                key, value = line.split("=", 1)
                data[key.strip()] = value.strip().strip('"').strip("'")

        return cls.from_dict(data)

    @classmethod
    def from_env(cls) -> "BackupConfig":
        """Create config from ROUTERBACKUP_* environment variables."""
        data = {
            key[len(ENV_PREFIX):].lower(): value
            for key, value in os.environ.items()
            if key.startswith(ENV_PREFIX)
        }
        return cls.from_dict(data)

    def replace(self, **changes: Any) -> "BackupConfig":
        return dataclasses.replace(self, **changes)

    def validate(self) -> list[str]:
        """Validate configuration. Returns list of errors."""
        errors = []

        if self.target not in ("gitlab", "filesystem"):
            errors.append(f"Unknown target: {self.target}")

        if self.target == "gitlab":
            if not self.gitlab_token:
                errors.append("GitLab token required")
            if not self.gitlab_project:
                errors.append("GitLab project name required")

        if self.max_workers < 1:
            errors.append("max_workers must be at least 1")
        if self.retrieve_attempts < 1:
            errors.append("retrieve_attempts must be at least 1")
        for name in ("connect_timeout", "command_timeout", "commit_timeout"):
            if getattr(self, name) <= 0:
                errors.append(f"{name} must be positive")

        if self.mail_enabled and (not self.mail_from or not self.mail_to):
            errors.append("mail_from and mail_to required when mail is enabled")

        return errors

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary (excludes sensitive values)."""
        data = dataclasses.asdict(self)
        for name in _SECRET_FIELDS:
            data.pop(name, None)
        data["mail_to"] = list(self.mail_to)
        return data


def _coerce(f: dataclasses.Field, value: Any) -> Any:
    """Convert strings from env vars and key=value files to the field type."""
    default = f.default if f.default is not dataclasses.MISSING else None

    if f.name == "mail_to":
        if isinstance(value, str):
            return tuple(v.strip() for v in value.split(",") if v.strip())
        return tuple(value)

    if not isinstance(value, str):
        return value

    if isinstance(default, bool):
        return value.lower() in ("true", "yes", "1")
    if isinstance(default, int):
        return int(value)
    if isinstance(default, float):
        return float(value)
    return value
