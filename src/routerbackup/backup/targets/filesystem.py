"""
Local archive destination.

Storage structure:
  <archive_path>/
    .history.jsonl
    <identity>_<address>/
      <backup_name>.backup
      <backup_name>.rsc

Each put replaces the file through a temporary file and ``os.replace``, so
readers see either the previous or the new version. Every put is recorded
in ``.history.jsonl`` with its message and checksum.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

import asyncio
import base64
import hashlib
import json
import os
import tempfile
import threading
from datetime import datetime
from pathlib import Path
from typing import Iterator

from routerbackup.backup.config import BackupConfig
from routerbackup.backup.targets.base import VersionedRepository

HISTORY_FILE = ".history.jsonl"


class FilesystemTarget(VersionedRepository):
    """Writes artifacts into a directory tree on local disk."""

    NAME = "filesystem"

    def __init__(self, config: BackupConfig, base_path: str | Path | None = None):
        super().__init__(config)
        self.base_path = Path(base_path or config.archive_path)
        self.history_path = self.base_path / HISTORY_FILE
        self._history_lock = threading.Lock()

    async def prepare(self) -> None:
        self.base_path.mkdir(parents=True, exist_ok=True)

    def resolve(self, path: str) -> Path:
        """Map a repository path onto the archive, refusing escapes."""
        target = (self.base_path / path).resolve()
        if not target.is_relative_to(self.base_path.resolve()):
            raise ValueError(f"Path escapes archive: {path}")
        return target

    async def put(self, path: str, content: str, message: str, encoding: str = "text") -> None:
        if encoding == "base64":
            data = base64.b64decode(content, validate=True)
        elif encoding == "text":
            data = content.encode("utf-8")
        else:
            raise ValueError(f"Unsupported encoding: {encoding}")

        target = self.resolve(path)
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._write, path, target, data, message, encoding)

    def _write(self, path: str, target: Path, data: bytes, message: str, encoding: str) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        self._record(path, message, encoding, data)

    def _record(self, path: str, message: str, encoding: str, data: bytes) -> None:
        entry = {
            "timestamp": datetime.now().isoformat(),
            "path": path,
            "message": message,
            "encoding": encoding,
            "sha256": hashlib.sha256(data).hexdigest(),
            "size": len(data),
        }
        with self._history_lock, self.history_path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(entry) + "\n")

    def history(self, path: str | None = None) -> Iterator[dict]:
        """Yield recorded commits, oldest first, optionally for one path."""
        if not self.history_path.exists():
            return

        with self.history_path.open(encoding="utf-8") as f:
            for line in f:
                try:
                    entry = json.loads(line)
                except json.JSONDecodeError:
                    continue
                if path and entry.get("path") != path:
                    continue
                yield entry

    def read(self, path: str) -> bytes:
        return self.resolve(path).read_bytes()
