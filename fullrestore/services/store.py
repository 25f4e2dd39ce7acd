from __future__ import annotations

import json
import logging
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional

from fullrestore.types import ArtifactKind

log = logging.getLogger(__name__)


class WorldStore:
    """
    On-disk layout of a world's per-player files.

        <world>/playerdata/<uuid>.dat
        <world>/advancements/<uuid>.json
        <world>/stats/<uuid>.json

    Usernames for offline identities come from the server's usercache.json.
    """

    def __init__(self, world_dir: Path, usercache_path: Optional[Path] = None) -> None:
        self.world_dir = Path(world_dir)
        self.usercache_path = (
            Path(usercache_path) if usercache_path else self.world_dir.parent / "usercache.json"
        )

    def kind_dir(self, kind: ArtifactKind) -> Path:
        return self.world_dir / kind.directory

    def artifact_path(self, kind: ArtifactKind, identity: uuid.UUID) -> Path:
        return self.kind_dir(kind) / f"{identity}{kind.extension}"

    def list_identities(self) -> List[uuid.UUID]:
        """
        Every identity with a player-state file, sorted.

        Files whose stem is not a UUID are ignored.
        """
        folder = self.kind_dir(ArtifactKind.PLAYER_STATE)
        folder.mkdir(parents=True, exist_ok=True)

        found: List[uuid.UUID] = []
        for path in folder.iterdir():
            if not path.is_file() or path.suffix != ArtifactKind.PLAYER_STATE.extension:
                continue
            try:
                found.append(uuid.UUID(path.stem))
            except ValueError:
                continue
        return sorted(found, key=str)

    def _load_usercache(self) -> List[Dict[str, Any]]:
        try:
            raw = self.usercache_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError as exc:
            log.warning("could not read %s: %s", self.usercache_path, exc)
            return []

        try:
            data = json.loads(raw)
        except ValueError as exc:
            log.warning("invalid JSON in %s: %s", self.usercache_path, exc)
            return []
        return [e for e in data if isinstance(e, dict)] if isinstance(data, list) else []

    def name_for(self, identity: uuid.UUID) -> Optional[str]:
        """Last known username for an identity, or None."""
        for entry in self._load_usercache():
            try:
                entry_id = uuid.UUID(str(entry.get("uuid", "")))
            except ValueError:
                continue
            name = entry.get("name")
            if entry_id == identity and isinstance(name, str) and name.strip():
                return name.strip()
        return None
