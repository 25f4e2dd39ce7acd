from __future__ import annotations

import logging
import os
import shutil
import tempfile
import uuid
from pathlib import Path

from fullrestore.services.store import WorldStore
from fullrestore.types import ArtifactKind

log = logging.getLogger(__name__)


class MigrationFailed(Exception):
    """Copying a player's files failed (permissions, disk full, ...)."""


class FileMigrator:
    """
    Copy a player's artifacts from one identity to another.

    Each kind is copied independently; a missing source file is skipped.
    The destination is always replaced whole, so re-running the same pair
    is safe.
    """

    def __init__(self, store: WorldStore) -> None:
        self.store = store

    def migrate(self, source: uuid.UUID, dest: uuid.UUID) -> int:
        """
        Returns the number of artifact kinds copied (0 = nothing to migrate).

        Raises MigrationFailed on any storage error.
        """
        if source == dest:
            log.info("source and destination are both %s; nothing to migrate", source)
            return 0

        copied = 0
        for kind in ArtifactKind:
            src = self.store.artifact_path(kind, source)
            dst = self.store.artifact_path(kind, dest)
            try:
                dst.parent.mkdir(parents=True, exist_ok=True)
                if not src.is_file():
                    log.debug("no %s file for %s", kind.value, source)
                    continue
                _atomic_copy(src, dst)
            except OSError as exc:
                raise MigrationFailed(
                    f"Could not copy {kind.value} for {source} -> {dest}: {exc}"
                ) from exc
            log.info("copied %s to %s", src.name, dst.name)
            copied += 1
        return copied


def _atomic_copy(src: Path, dst: Path) -> None:
    fd, tmp_name = tempfile.mkstemp(prefix=f".{dst.name}.", suffix=".tmp", dir=str(dst.parent))
    os.close(fd)
    try:
        shutil.copyfile(src, tmp_name)
        os.replace(tmp_name, dst)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise
