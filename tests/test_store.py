"""Tests for artifact paths, messages and commits."""

import asyncio
import base64
from datetime import datetime

import pytest

from conftest import BINARY, TEXT, FixedClock, RecordingRepository
from routerbackup.backup.errors import CommitFailed
from routerbackup.backup.models import ArtifactKind, ArtifactSet
from routerbackup.backup.store import ArtifactStore
from routerbackup.backup.targets import FilesystemTarget


def artifacts(identity="gw1", address="10.0.0.1"):
    return ArtifactSet(
        device_identity=identity,
        device_address=address,
        binary_payload=BINARY,
        text_payload=TEXT,
    )


def test_paths_use_identity_address_and_backup_name(config):
    store = ArtifactStore(config, RecordingRepository(config))

    assert store.path_for(artifacts(), ArtifactKind.BINARY) == "gw1_10.0.0.1/backup.backup"
    assert store.path_for(artifacts(), ArtifactKind.TEXT) == "gw1_10.0.0.1/backup.rsc"


def test_custom_backup_name(config):
    store = ArtifactStore(config.replace(backup_name="nightly"), RecordingRepository(config))

    assert store.path_for(artifacts(), ArtifactKind.TEXT) == "gw1_10.0.0.1/nightly.rsc"


def test_unsafe_characters_sanitized(config):
    store = ArtifactStore(config, RecordingRepository(config))

    path = store.path_for(artifacts(identity="core/rtr 1", address="fe80::1"), ArtifactKind.BINARY)

    assert path == "core_rtr_1_fe80__1/backup.backup"


def test_message_format(config):
    store = ArtifactStore(config, RecordingRepository(config))
    when = datetime(2024, 3, 5, 7, 8, 9)

    assert store.message_for(ArtifactKind.BINARY, when) == "backup/change time 2024-03-05 07:08.09.000000 type = base64"
    assert store.message_for(ArtifactKind.TEXT, when) == "backup/change time 2024-03-05 07:08.09.000000 type = text"


def test_binary_is_base64_encoded(config):
    repository = RecordingRepository(config)
    store = ArtifactStore(config, repository, clock=FixedClock())

    result = asyncio.run(store.commit(artifacts(), ArtifactKind.BINARY))

    assert base64.b64decode(repository.files[result.path]) == BINARY
    assert result.size_bytes == len(BINARY)
    assert result.message.endswith("type = base64")
    assert repository.puts[0][2] == "base64"


def test_text_committed_verbatim(config):
    repository = RecordingRepository(config)
    store = ArtifactStore(config, repository, clock=FixedClock())

    result = asyncio.run(store.commit(artifacts(), ArtifactKind.TEXT))

    assert repository.files[result.path] == TEXT.decode()
    assert result.committed_at == datetime(2024, 3, 5, 7, 8, 9)


def test_commit_failure_carries_path(config):
    repository = RecordingRepository(config, fail_paths={"gw1_10.0.0.1/backup.backup"})
    store = ArtifactStore(config, repository)

    with pytest.raises(CommitFailed) as exc_info:
        asyncio.run(store.commit(artifacts(), ArtifactKind.BINARY))

    assert exc_info.value.path == "gw1_10.0.0.1/backup.backup"
    assert "403" in str(exc_info.value)


def test_commit_timeout(config):
    config = config.replace(commit_timeout=0.01)
    store = ArtifactStore(config, RecordingRepository(config, delay=1.0))

    with pytest.raises(CommitFailed, match="timed out"):
        asyncio.run(store.commit(artifacts(), ArtifactKind.TEXT))


def test_recommit_same_payload_is_idempotent(config, tmp_path):
    target = FilesystemTarget(config, base_path=tmp_path / "archive")
    store = ArtifactStore(config, target, clock=FixedClock())

    async def commit_twice():
        await target.prepare()
        for _ in range(2):
            for kind in (ArtifactKind.BINARY, ArtifactKind.TEXT):
                await store.commit(artifacts(), kind)

    asyncio.run(commit_twice())

    folder = tmp_path / "archive" / "gw1_10.0.0.1"
    assert sorted(p.name for p in folder.iterdir()) == ["backup.backup", "backup.rsc"]
    assert (folder / "backup.backup").read_bytes() == BINARY
    assert (folder / "backup.rsc").read_bytes() == TEXT
    assert len(list(target.history("gw1_10.0.0.1/backup.backup"))) == 2


def test_recommit_gets_new_message(config):
    times = iter([datetime(2024, 3, 5, 7, 8, 9), datetime(2024, 3, 6, 7, 8, 9)])
    repository = RecordingRepository(config)
    store = ArtifactStore(config, repository, clock=lambda: next(times))

    async def commit_twice():
        first = await store.commit(artifacts(), ArtifactKind.TEXT)
        content = repository.files[first.path]
        second = await store.commit(artifacts(), ArtifactKind.TEXT)
        return first, second, content

    first, second, content = asyncio.run(commit_twice())

    assert first.path == second.path
    assert first.message != second.message
    assert repository.files[second.path] == content


def test_non_utf8_export_keeps_exact_bytes(config, tmp_path):
    latin1 = b"# comment caf\xe9 latin-1\n/system identity\nset name=caf\xe9\n"
    export = ArtifactSet(
        device_identity="gw1",
        device_address="10.0.0.1",
        binary_payload=BINARY,
        text_payload=latin1,
    )
    repository = RecordingRepository(config)
    target = FilesystemTarget(config, base_path=tmp_path / "archive")

    async def commit_both():
        await target.prepare()
        await ArtifactStore(config, target, clock=FixedClock()).commit(export, ArtifactKind.TEXT)
        return await ArtifactStore(config, repository, clock=FixedClock()).commit(export, ArtifactKind.TEXT)

    result = asyncio.run(commit_both())

    assert (tmp_path / "archive" / "gw1_10.0.0.1" / "backup.rsc").read_bytes() == latin1
    assert result.encoding == "base64"
    assert repository.puts[0][2] == "base64"
    assert base64.b64decode(repository.files[result.path]) == latin1
    assert result.message.endswith("type = text")


def test_back_to_back_commits_have_distinct_messages(config):
    repository = RecordingRepository(config)
    store = ArtifactStore(config, repository)

    async def commit_many():
        return [await store.commit(artifacts(), ArtifactKind.TEXT) for _ in range(5)]

    results = asyncio.run(commit_many())

    assert len({r.message for r in results}) == 5
    assert [r.committed_at for r in results] == sorted(r.committed_at for r in results)


def test_frozen_clock_still_orders_commits(config):
    store = ArtifactStore(config, RecordingRepository(config), clock=FixedClock())

    async def commit_twice():
        first = await store.commit(artifacts(), ArtifactKind.BINARY)
        second = await store.commit(artifacts(), ArtifactKind.TEXT)
        return first, second

    first, second = asyncio.run(commit_twice())

    assert first.message == "backup/change time 2024-03-05 07:08.09.000000 type = base64"
    assert second.message == "backup/change time 2024-03-05 07:08.09.000001 type = text"


def test_commit_result_reports_encoding(config):
    store = ArtifactStore(config, RecordingRepository(config), clock=FixedClock())

    result = asyncio.run(store.commit(artifacts(), ArtifactKind.TEXT))

    assert result.to_dict()["encoding"] == "text"
    assert result.to_dict()["path"] == "gw1_10.0.0.1/backup.rsc"
