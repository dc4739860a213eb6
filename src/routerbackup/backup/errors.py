"""
Exceptions raised by the backup core.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""


class BackupError(Exception):
    """Base class for all backup errors."""


class ConfigError(BackupError):
    """Configuration is missing or invalid."""


class InventoryUnavailable(BackupError):
    """The device list could not be obtained."""


class DeviceNotFound(BackupError):
    """Requested address is not in the inventory."""

    def __init__(self, address: str):
        super().__init__(f"unknown device: {address}")
        self.address = address


class RetrievalError(BackupError):
    """Fetching artifacts from a device failed."""

    CONNECT = "connect"
    AUTH = "auth"
    COMMAND = "command"
    MISSING_RESOURCE = "missing_resource"
    TIMEOUT = "timeout"
    CREDENTIALS = "credentials"

    def __init__(self, address: str, cause: BaseException | str, reason: str = CONNECT):
        super().__init__(f"{address}: {reason}: {cause}")
        self.address = address
        self.cause = cause
        self.reason = reason


class CommitFailed(BackupError):
    """Committing an artifact to the versioned destination failed."""

    def __init__(self, path: str, cause: BaseException | str):
        super().__init__(f"{path}: {cause}")
        self.path = path
        self.cause = cause


class TargetSetupError(BackupError):
    """The versioned destination could not be prepared."""


class NotificationFailed(BackupError):
    """Delivering the run report failed."""
