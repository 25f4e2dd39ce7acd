import uuid

import pytest

from fullrestore.services import migrator as migrator_module
from fullrestore.services.migrator import FileMigrator, MigrationFailed
from fullrestore.types import ArtifactKind

from helpers import offline_uuid, snapshot_tree, write_artifact

VERIFIED = uuid.UUID("069a79f4-44e9-4726-a5be-fca90e38aaf5")
CRACKED = offline_uuid("Notch")


def test_copies_only_present_artifacts(store):
    write_artifact(store, ArtifactKind.PLAYER_STATE, VERIFIED, b"\x0a\x00\x00inventory")
    write_artifact(store, ArtifactKind.STATS, VERIFIED, b'{"stats": {}}')

    copied = FileMigrator(store).migrate(VERIFIED, CRACKED)

    assert copied == 2
    assert store.artifact_path(ArtifactKind.PLAYER_STATE, CRACKED).read_bytes() == b"\x0a\x00\x00inventory"
    assert store.artifact_path(ArtifactKind.STATS, CRACKED).read_bytes() == b'{"stats": {}}'
    assert not store.artifact_path(ArtifactKind.ADVANCEMENTS, VERIFIED).exists()
    assert not store.artifact_path(ArtifactKind.ADVANCEMENTS, CRACKED).exists()


def test_paths_follow_world_layout(store):
    assert store.artifact_path(ArtifactKind.PLAYER_STATE, CRACKED) == store.world_dir / "playerdata" / f"{CRACKED}.dat"
    assert store.artifact_path(ArtifactKind.ADVANCEMENTS, CRACKED) == store.world_dir / "advancements" / f"{CRACKED}.json"
    assert store.artifact_path(ArtifactKind.STATS, CRACKED) == store.world_dir / "stats" / f"{CRACKED}.json"


def test_overwrites_destination_and_is_idempotent(store):
    for kind in ArtifactKind:
        write_artifact(store, kind, VERIFIED, f"premium {kind.value}".encode())
        write_artifact(store, kind, CRACKED, b"stale cracked data that is longer than the source")

    migrator = FileMigrator(store)
    assert migrator.migrate(VERIFIED, CRACKED) == 3
    first = snapshot_tree(store)

    assert migrator.migrate(VERIFIED, CRACKED) == 3
    assert snapshot_tree(store) == first
    for kind in ArtifactKind:
        assert store.artifact_path(kind, CRACKED).read_bytes() == f"premium {kind.value}".encode()


def test_nothing_to_migrate_creates_directories(store):
    assert FileMigrator(store).migrate(VERIFIED, CRACKED) == 0

    for kind in ArtifactKind:
        assert store.kind_dir(kind).is_dir()
        assert list(store.kind_dir(kind).iterdir()) == []


def test_same_source_and_destination_is_a_noop(store):
    write_artifact(store, ArtifactKind.PLAYER_STATE, CRACKED, b"data")

    assert FileMigrator(store).migrate(CRACKED, CRACKED) == 0
    assert store.artifact_path(ArtifactKind.PLAYER_STATE, CRACKED).read_bytes() == b"data"


def test_storage_error_raises_migration_failed_without_partial_files(store, monkeypatch):
    write_artifact(store, ArtifactKind.PLAYER_STATE, VERIFIED, b"premium")
    write_artifact(store, ArtifactKind.PLAYER_STATE, CRACKED, b"cracked")

    def deny(src, dst, *args, **kwargs):
        with open(dst, "wb") as fh:
            fh.write(b"half")
        raise PermissionError(13, "Permission denied", str(dst))

    monkeypatch.setattr(migrator_module.shutil, "copyfile", deny)

    with pytest.raises(MigrationFailed) as excinfo:
        FileMigrator(store).migrate(VERIFIED, CRACKED)

    assert isinstance(excinfo.value.__cause__, PermissionError)
    assert store.artifact_path(ArtifactKind.PLAYER_STATE, CRACKED).read_bytes() == b"cracked"
    leftovers = [p.name for p in store.kind_dir(ArtifactKind.PLAYER_STATE).iterdir()]
    assert sorted(leftovers) == sorted([f"{VERIFIED}.dat", f"{CRACKED}.dat"])
