"""Shared fakes for the backup tests."""

import asyncio
from datetime import datetime

import pytest

from routerbackup.backup.config import BackupConfig
from routerbackup.backup.errors import DeviceNotFound, InventoryUnavailable, RetrievalError
from routerbackup.backup.models import ArtifactSet, DeviceRecord
from routerbackup.backup.notify import NotificationSink
from routerbackup.backup.targets.base import VersionedRepository
from routerbackup.inventory.database import DeviceInventory

BINARY = b"\x00\x01\x02backup-blob\xff"
TEXT = b"# jan/02/2024 10:00:00 by RouterOS 7.12\n/ip address\nadd address=10.0.0.1/24 interface=ether1\n"


class FakeInventory(DeviceInventory):
    def __init__(self, devices=(), unavailable=False):
        self.devices = list(devices)
        self.unavailable = unavailable
        self.updated: list[str] = []
        self.updated_keys: list[tuple[str, str]] = []
        self.update_result = True
        self.update_error: Exception | None = None

    def initialize(self):
        pass

    def close(self):
        pass

    def list_devices(self):
        if self.unavailable:
            raise InventoryUnavailable("connection refused")
        return list(self.devices)

    def get_device(self, address):
        for device in self.devices:
            if device.address == address:
                return device
        raise DeviceNotFound(address)

    def update_timestamp(self, identity, address):
        if self.update_error:
            raise self.update_error
        self.updated.append(identity)
        self.updated_keys.append((identity, address))
        return self.update_result

    def add_device(self, device):
        self.devices.append(device)
        return device

    def remove_device(self, address):
        before = len(self.devices)
        self.devices = [d for d in self.devices if d.address != address]
        return len(self.devices) < before


class FakeRetriever:
    """Returns canned artifacts; per-address failures and delays."""

    def __init__(self, failures=None, delay=0.0, delays=None):
        self.failures = dict(failures or {})
        self.delay = delay
        self.delays = dict(delays or {})
        self.calls: list[str] = []
        self.active = 0
        self.peak = 0
        self.on_call = None

    async def retrieve(self, device):
        self.calls.append(device.address)
        if self.on_call:
            self.on_call(device)
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(self.delays.get(device.address, self.delay))
            failure = self.failures.get(device.address)
            if isinstance(failure, list):
                failure = failure.pop(0) if failure else None
            if failure is not None:
                raise failure
            return ArtifactSet(
                device_identity=device.identity,
                device_address=device.address,
                binary_payload=BINARY,
                text_payload=TEXT,
            )
        finally:
            self.active -= 1


class RecordingRepository(VersionedRepository):
    NAME = "memory"

    def __init__(self, config=None, fail_paths=(), delay=0.0):
        super().__init__(config or BackupConfig())
        self.files: dict[str, str] = {}
        self.puts: list[tuple[str, str, str]] = []
        self.fail_paths = set(fail_paths)
        self.delay = delay

    async def put(self, path, content, message, encoding="text"):
        if self.delay:
            await asyncio.sleep(self.delay)
        if path in self.fail_paths:
            raise OSError("403 Forbidden")
        self.files[path] = content
        self.puts.append((path, message, encoding))


class RecordingNotifier(NotificationSink):
    def __init__(self, error=None):
        self.reports = []
        self.error = error

    def notify(self, outcomes):
        self.reports.append(list(outcomes))
        if self.error:
            raise self.error


def make_devices(count, prefix="rtr"):
    return [
        DeviceRecord(identity=f"{prefix}{i}", address=f"10.0.0.{i}")
        for i in range(1, count + 1)
    ]


def retrieval_error(address, reason=RetrievalError.CONNECT):
    return RetrievalError(address, "connection refused", reason)


class FixedClock:
    def __init__(self, when=datetime(2024, 3, 5, 7, 8, 9)):
        self.when = when

    def __call__(self):
        return self.when


@pytest.fixture
def config(tmp_path):
    return BackupConfig(
        archive_path=str(tmp_path / "archive"),
        vault_path=str(tmp_path / "vault"),
        database=f"sqlite:///{tmp_path / 'inventory.db'}",
        ssh_password="secret",
        max_workers=4,
        retry_delay=0.0,
    )
