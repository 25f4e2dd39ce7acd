"""Fakes shared by the test modules."""
from __future__ import annotations

import hashlib
import json
import time
import uuid
from typing import Any, Dict, Iterable, List, Optional, Tuple

import requests

from fullrestore.services.migrator import FileMigrator, MigrationFailed
from fullrestore.services.mojang import LookupFailed
from fullrestore.services.store import WorldStore
from fullrestore.types import ArtifactKind, TextureDescriptor


def offline_uuid(name: str) -> uuid.UUID:
    """Offline-mode UUID, same as Java's UUID.nameUUIDFromBytes("OfflinePlayer:<name>")."""
    md5 = bytearray(hashlib.md5(("OfflinePlayer:" + name).encode("utf-8")).digest())
    md5[6] = (md5[6] & 0x0F) | 0x30
    md5[8] = (md5[8] & 0x3F) | 0x80
    return uuid.UUID(bytes=bytes(md5))


def make_response(url: str, status: int = 200, body: Any = None) -> requests.Response:
    resp = requests.Response()
    resp.status_code = status
    resp.url = url
    if body is None:
        resp._content = b""
    elif isinstance(body, bytes):
        resp._content = body
    else:
        resp._content = json.dumps(body).encode("utf-8")
    return resp


class FakeSession:
    """Stands in for requests.Session; routes are matched by URL prefix."""

    def __init__(self, routes: Optional[Dict[str, Any]] = None) -> None:
        self.routes: Dict[str, Any] = dict(routes or {})
        self.headers: Dict[str, str] = {}
        self.calls: List[str] = []
        self.closed = False

    def get(self, url: str, timeout: Optional[float] = None) -> requests.Response:
        self.calls.append(url)
        for prefix, answer in self.routes.items():
            if url.startswith(prefix):
                if isinstance(answer, Exception):
                    raise answer
                status, body = answer
                return make_response(url, status, body)
        return make_response(url, 404, None)

    def close(self) -> None:
        self.closed = True


class FakeResolver:
    def __init__(self, mapping: Dict[str, uuid.UUID], fail: Iterable[str] = ()) -> None:
        self.mapping = dict(mapping)
        self.fail = set(fail)
        self.calls: List[str] = []

    def resolve(self, username: str) -> Optional[uuid.UUID]:
        self.calls.append(username)
        if username in self.fail:
            raise LookupFailed(f"identity service unreachable for {username}")
        return self.mapping.get(username)


class FakeFetcher:
    def __init__(self, skins: Optional[Dict[uuid.UUID, TextureDescriptor]] = None) -> None:
        self.skins = dict(skins or {})
        self.calls: List[uuid.UUID] = []

    def fetch_for(self, verified: uuid.UUID) -> Optional[TextureDescriptor]:
        self.calls.append(verified)
        return self.skins.get(verified)


class SlowFetcher(FakeFetcher):
    """Profile service that takes `delay` seconds to answer."""

    def __init__(self, skins: Optional[Dict[uuid.UUID, TextureDescriptor]] = None, delay: float = 1.0) -> None:
        super().__init__(skins)
        self.delay = delay

    def fetch_for(self, verified: uuid.UUID) -> Optional[TextureDescriptor]:
        time.sleep(self.delay)
        return super().fetch_for(verified)


class FailingMigrator(FileMigrator):
    """Raises MigrationFailed (as if permission was denied) for chosen destinations."""

    def __init__(self, store: WorldStore, failing: Iterable[uuid.UUID]) -> None:
        super().__init__(store)
        self.failing = set(failing)

    def migrate(self, source: uuid.UUID, dest: uuid.UUID) -> int:
        if dest in self.failing:
            raise MigrationFailed(f"Could not copy playerdata for {source} -> {dest}: [Errno 13] Permission denied")
        return super().migrate(source, dest)


class SlowMigrator(FileMigrator):
    """Copies, then lingers for `delay` seconds before returning."""

    def __init__(self, store: WorldStore, delay: float = 0.3) -> None:
        super().__init__(store)
        self.delay = delay

    def migrate(self, source: uuid.UUID, dest: uuid.UUID) -> int:
        copied = super().migrate(source, dest)
        time.sleep(self.delay)
        return copied


class FakeHost:
    def __init__(self, online: Iterable[uuid.UUID] = ()) -> None:
        self.online = set(online)
        self.calls: List[Tuple[Any, ...]] = []

    async def is_online(self, identity: uuid.UUID) -> bool:
        self.calls.append(("is_online", identity))
        return identity in self.online

    async def disconnect(self, identity: uuid.UUID, message: str) -> None:
        self.calls.append(("disconnect", identity, message))
        self.online.discard(identity)

    async def send_message(self, identity: uuid.UUID, message: str) -> None:
        self.calls.append(("send_message", identity, message))

    async def apply_skin(self, identity: uuid.UUID, descriptor: TextureDescriptor) -> None:
        self.calls.append(("apply_skin", identity, descriptor))

    def named(self, name: str) -> List[Tuple[Any, ...]]:
        return [c for c in self.calls if c[0] == name]


def write_artifact(store: WorldStore, kind: ArtifactKind, identity: uuid.UUID, data: bytes) -> None:
    path = store.artifact_path(kind, identity)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


def write_usercache(store: WorldStore, names: Dict[str, uuid.UUID]) -> None:
    entries = [
        {"name": name, "uuid": str(identity), "expiresOn": "2099-01-01 00:00:00 +0000"}
        for name, identity in names.items()
    ]
    store.usercache_path.parent.mkdir(parents=True, exist_ok=True)
    store.usercache_path.write_text(json.dumps(entries), encoding="utf-8")


def snapshot_tree(store: WorldStore) -> Dict[str, bytes]:
    if not store.world_dir.exists():
        return {}
    return {
        str(p.relative_to(store.world_dir)): p.read_bytes()
        for p in sorted(store.world_dir.rglob("*"))
        if p.is_file()
    }
