"""
Credential management for router backups.

Provides encrypted storage for SSH credentials using Fernet symmetric encryption.
Inventory rows refer to a stored credential by name (the credential ref).

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

import base64
import json
import os
import re
import secrets
from datetime import datetime
from pathlib import Path
from typing import Iterator

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from routerbackup.backup.config import BackupConfig
from routerbackup.backup.models import SSHCredential

VAULT_PASSWORD_ENV = "ROUTERBACKUP_VAULT_PASSWORD"
DEFAULT_REF = "default"

_SENSITIVE_FIELDS = ("password", "ssh_key", "ssh_key_passphrase")
_REF_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


class CredentialVault:
    """Encrypted credential storage for router access."""

    KDF_ITERATIONS = 480000  # OWASP recommended minimum

    def __init__(self, vault_path: str | Path, master_password: str | None = None):
        """Initialize the credential vault.

        Args:
            vault_path: Path to the vault directory
            master_password: Master password for encryption (or from env ROUTERBACKUP_VAULT_PASSWORD)
        """
        self.vault_path = Path(vault_path)
        self.creds_path = self.vault_path / "credentials"
        self.meta_path = self.vault_path / "vault.json"

        self._master_password = master_password or os.environ.get(VAULT_PASSWORD_ENV)
        self._fernet: Fernet | None = None
        self._salt: bytes | None = None

    def initialize(self, master_password: str | None = None) -> None:
        """Initialize or unlock the vault.

        Args:
            master_password: Master password (if not provided at init)
        """
        if master_password:
            self._master_password = master_password

        if not self._master_password:
            raise ValueError(
                f"Master password required. Set {VAULT_PASSWORD_ENV} env var "
                "or pass master_password parameter."
            )

        self.vault_path.mkdir(parents=True, exist_ok=True)
        self.creds_path.mkdir(parents=True, exist_ok=True)

        if self.meta_path.exists():
            meta = json.loads(self.meta_path.read_text())
            self._salt = base64.b64decode(meta["salt"])
        else:
            self._salt = secrets.token_bytes(32)
            meta = {
                "salt": base64.b64encode(self._salt).decode(),
                "created_at": datetime.now().isoformat(),
                "version": 1,
            }
            self.meta_path.write_text(json.dumps(meta, indent=2))
            os.chmod(self.meta_path, 0o600)

        self._fernet = self._derive_key()

    def _derive_key(self) -> Fernet:
        """Derive encryption key from master password."""
        if not self._master_password or not self._salt:
            raise ValueError("Vault not initialized")

        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=self._salt,
            iterations=self.KDF_ITERATIONS,
        )
        key = base64.urlsafe_b64encode(
            kdf.derive(self._master_password.encode())
        )
        return Fernet(key)

    def _encrypt(self, data: str) -> str:
        if not self._fernet:
            raise ValueError("Vault not initialized")
        return self._fernet.encrypt(data.encode()).decode()

    def _decrypt(self, data: str) -> str:
        if not self._fernet:
            raise ValueError("Vault not initialized")
        try:
            return self._fernet.decrypt(data.encode()).decode()
        except InvalidToken as e:
            raise ValueError("Cannot decrypt credential (wrong vault password?)") from e

    def _cred_file(self, ref: str) -> Path:
        if not _REF_PATTERN.match(ref):
            raise ValueError(f"Invalid credential name: {ref!r}")
        return self.creds_path / f"{ref}.json"

    def add_credential(self, ref: str, credential: SSHCredential) -> str:
        """Store (or replace) a credential under the given name.

        Returns:
            The credential name
        """
        if not self._fernet:
            raise ValueError("Vault not initialized")

        data = credential.to_dict(include_secrets=True)
        for field in _SENSITIVE_FIELDS:
            if data.get(field):
                data[field] = self._encrypt(data[field])

        data["_encrypted"] = True
        data["updated_at"] = datetime.now().isoformat()

        cred_file = self._cred_file(ref)
        cred_file.write_text(json.dumps(data, indent=2))
        os.chmod(cred_file, 0o600)

        return ref

    def get_credential(self, ref: str) -> SSHCredential | None:
        """Get a decrypted credential by name, or None if not stored."""
        if not self._fernet:
            raise ValueError("Vault not initialized")

        cred_file = self._cred_file(ref)
        if not cred_file.exists():
            return None

        data = json.loads(cred_file.read_text())
        if data.get("_encrypted"):
            for field in _SENSITIVE_FIELDS:
                if data.get(field):
                    data[field] = self._decrypt(data[field])

        return SSHCredential(
            username=data["username"],
            password=data.get("password"),
            ssh_key=data.get("ssh_key"),
            ssh_key_passphrase=data.get("ssh_key_passphrase"),
        )

    def delete_credential(self, ref: str) -> bool:
        cred_file = self._cred_file(ref)
        if not cred_file.exists():
            return False

        cred_file.unlink()
        return True

    def list_credentials(self) -> Iterator[tuple[str, str]]:
        """List stored credentials.

        Yields:
            (name, username) tuples, secrets are not decrypted
        """
        for cred_file in sorted(self.creds_path.glob("*.json")):
            try:
                data = json.loads(cred_file.read_text())
                yield cred_file.stem, data["username"]
            except (json.JSONDecodeError, KeyError):
                continue


class CredentialResolver:
    """Turns a device's credential ref into SSH credentials.

    An empty ref or "default" selects the SSH settings from the config;
    any other name is looked up in the vault.
    """

    def __init__(self, config: BackupConfig, vault: CredentialVault | None = None):
        self.config = config
        self.vault = vault

    def resolve(self, ref: str) -> SSHCredential:
        if not ref or ref == DEFAULT_REF:
            if not self.config.ssh_key_path and not self.config.ssh_password:
                raise LookupError("no default SSH key or password configured")
            return SSHCredential(
                username=self.config.ssh_user,
                password=self.config.ssh_password,
                ssh_key=self.config.ssh_key_path,
            )

        if self.vault is None:
            raise LookupError(f"credential '{ref}' requested but no vault is open")

        credential = self.vault.get_credential(ref)
        if credential is None:
            raise LookupError(f"credential '{ref}' not found in vault")
        return credential
