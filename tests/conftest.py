from __future__ import annotations

import uuid
from typing import Dict, Iterable, Optional

import pytest

from fullrestore.orchestrator import RestorationOrchestrator
from fullrestore.services.cache import RestorationTracker, SkinCache
from fullrestore.services.migrator import FileMigrator
from fullrestore.services.store import WorldStore
from fullrestore.types import TextureDescriptor

from helpers import FakeFetcher, FakeHost, FakeResolver


@pytest.fixture
def store(tmp_path) -> WorldStore:
    return WorldStore(tmp_path / "world", tmp_path / "usercache.json")


@pytest.fixture
def host() -> FakeHost:
    return FakeHost()


@pytest.fixture
def make_orchestrator(store, host):
    def _make(
        names: Optional[Dict[str, uuid.UUID]] = None,
        skins: Optional[Dict[uuid.UUID, TextureDescriptor]] = None,
        fail_lookup: Iterable[str] = (),
        migrator: Optional[FileMigrator] = None,
        fetcher: Optional[FakeFetcher] = None,
    ) -> RestorationOrchestrator:
        return RestorationOrchestrator(
            resolver=FakeResolver(names or {}, fail=fail_lookup),
            fetcher=fetcher or FakeFetcher(skins),
            migrator=migrator or FileMigrator(store),
            store=store,
            skins=SkinCache(),
            tracker=RestorationTracker(),
            host=host,
            join_delay=0,
        )

    return _make
