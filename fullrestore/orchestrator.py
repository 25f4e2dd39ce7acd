"""
Restoration orchestrator.

Three entry points feed the same pipeline:

- pre_login:    before the player is admitted; migrate synchronously so the
                server loads the restored files on admission. The skin
                fetch runs in the background.
- on_join:      re-apply a cached skin right away, then (after a delay)
                migrate and kick the player once so the server re-reads
                their files.
- restore_all:  sweep every player file in the world.

Blocking work (HTTP lookups, file copies, store reads) runs in the worker
pool. Anything that touches live sessions goes through the control context.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Awaitable, Callable, List, Optional, Set

from fullrestore.config import RestoreSettings
from fullrestore.host import HostBridge, HostBridgeError, create_host_bridge
from fullrestore.runtime import ControlContext, WorkerPool
from fullrestore.services.cache import RestorationTracker, SkinCache
from fullrestore.services.migrator import FileMigrator, MigrationFailed
from fullrestore.services.mojang import (
    IdentityResolver,
    LookupFailed,
    SkinPropertyFetcher,
    create_mojang_client,
)
from fullrestore.services.store import WorldStore
from fullrestore.types import RestoreOutcome, RestoreState, SweepReport

log = logging.getLogger(__name__)

RESTORED_MESSAGE = "§aData restored - please rejoin to load your items"
MIGRATION_FAILED_MESSAGE = "§cFailed to write restore files (permission error?)"
SHUTDOWN_MESSAGE = "§aServer is shutting down; please rejoin to load restored data"
SKIN_APPLIED_MESSAGE = "§eSkin property applied; rejoin to see changes."


class RestorationOrchestrator:
    def __init__(
        self,
        *,
        resolver: IdentityResolver,
        fetcher: SkinPropertyFetcher,
        migrator: FileMigrator,
        store: WorldStore,
        skins: SkinCache,
        tracker: RestorationTracker,
        host: HostBridge,
        control: Optional[ControlContext] = None,
        pool: Optional[WorkerPool] = None,
        join_delay: float = 3.0,
        shutdown_timeout: float = 10.0,
    ) -> None:
        self.resolver = resolver
        self.fetcher = fetcher
        self.migrator = migrator
        self.store = store
        self.skins = skins
        self.tracker = tracker
        self.host = host
        self.control = control or ControlContext()
        self.pool = pool or WorkerPool()
        self.join_delay = join_delay
        self.shutdown_timeout = shutdown_timeout
        self._tasks: Set[asyncio.Task] = set()
        # join tasks still waiting out the join delay
        self._delayed: Set[asyncio.Task] = set()

    # ----------------------------
    # Entry points
    # ----------------------------

    async def pre_login(self, username: str, identity: uuid.UUID) -> RestoreOutcome:
        outcome = RestoreOutcome(identity=identity, username=username)

        verified = await self._resolve(username, outcome)
        if verified is None:
            outcome.advance(RestoreState.DONE)
            return outcome

        if self.tracker.is_restored(identity):
            outcome.already_restored = True
            log.info("%s already had data restored this session", username)
        else:
            try:
                copied = await self._migrate(verified, outcome)
            except MigrationFailed as exc:
                log.warning("could not copy data for %s: %s", username, exc)
                outcome.error = str(exc)
                outcome.message = MIGRATION_FAILED_MESSAGE
            else:
                if copied:
                    self.tracker.mark_restored(identity)
                    log.info("pre-login restore complete for %s", username)

        outcome.advance(RestoreState.FETCHING_SKIN)
        self._spawn(self._cache_skin(verified, identity, username), name=f"skin:{username}")
        outcome.advance(RestoreState.DONE)
        return outcome

    async def on_join(self, username: str, identity: uuid.UUID) -> bool:
        """
        Re-apply any cached skin, then schedule the delayed restore.

        Returns True if a cached skin was applied.
        """
        applied = False
        cached = self.skins.get(identity)
        if cached is not None:
            log.info("reapplying skin for %s", username)
            applied = await self._host_action("apply skin", self.host.apply_skin, identity, cached)
            if applied:
                await self._host_action("message", self.host.send_message, identity, SKIN_APPLIED_MESSAGE)

        task = self._spawn(self._after_join(username, identity), name=f"join:{username}")
        self._delayed.add(task)
        return applied

    async def restore_all(self) -> SweepReport:
        """Sweep every player file and wait for the report."""
        identities = await self.pool.run(self.store.list_identities)
        return await self._sweep(identities)

    async def start_sweep(self) -> int:
        """
        Enumerate the world and run the sweep in the background.

        Enumeration errors propagate; per-identity errors only get logged.
        """
        identities = await self.pool.run(self.store.list_identities)
        self._spawn(self._sweep(identities), name="restoreall")
        return len(identities)

    async def restore_offline(self, identity: uuid.UUID) -> RestoreOutcome:
        """Restore one identity found on disk, using its cached username."""
        outcome = RestoreOutcome(identity=identity)

        name = await self.pool.run(self.store.name_for, identity)
        if name is None:
            log.info("offline player %s has no name; skipping", identity)
            outcome.advance(RestoreState.SKIPPED)
            return outcome
        outcome.username = name

        verified = await self._resolve(name, outcome)
        if verified is None:
            outcome.advance(RestoreState.DONE)
            return outcome

        try:
            copied = await self._migrate(verified, outcome)
        except MigrationFailed as exc:
            log.warning("could not copy data for %s (%s): %s", name, identity, exc)
            outcome.error = str(exc)
        else:
            if copied:
                log.info("restored data for %s (%s)", name, identity)
                if not self.tracker.mark_restored(identity):
                    outcome.already_restored = True
                elif await self._is_online(identity):
                    outcome.disconnected = await self._host_action(
                        "kick", self.host.disconnect, identity, RESTORED_MESSAGE
                    )
            else:
                log.info("no online data for %s; nothing to restore", name)

        await self._refresh_skin(verified, outcome)
        outcome.advance(RestoreState.DONE)
        return outcome

    async def shutdown(self) -> int:
        """
        Finish in-flight restores and kick restored players who are still
        online, so their stale in-memory state does not overwrite the
        restored files.

        Join tasks still inside the join delay are cancelled. Everything
        else gets up to `shutdown_timeout` seconds before it is cancelled.

        Returns the number of players kicked.
        """
        for task in list(self._delayed):
            task.cancel()
        pending = list(self._tasks)
        if pending:
            _, stuck = await asyncio.wait(pending, timeout=self.shutdown_timeout)
            for task in stuck:
                log.warning("%s still running at shutdown; cancelling", task.get_name())
                task.cancel()
            if stuck:
                await asyncio.gather(*stuck, return_exceptions=True)

        kicked = 0
        for identity in self.tracker.snapshot():
            if not await self._is_online(identity):
                continue
            if await self._host_action("kick", self.host.disconnect, identity, SHUTDOWN_MESSAGE):
                kicked += 1
        return kicked

    async def drain(self) -> List[Any]:
        """Wait for every background task; returns their results."""
        results: List[Any] = []
        while self._tasks:
            pending = list(self._tasks)
            results.extend(await asyncio.gather(*pending, return_exceptions=True))
            self._tasks.difference_update(pending)
        return results

    def close(self) -> None:
        client = getattr(self.resolver, "client", None)
        if client is not None:
            client.close()

    # ----------------------------
    # Pipeline steps
    # ----------------------------

    async def _after_join(self, username: str, identity: uuid.UUID) -> RestoreOutcome:
        await asyncio.sleep(self.join_delay)
        self._delayed.discard(asyncio.current_task())
        outcome = RestoreOutcome(identity=identity, username=username)

        verified = await self._resolve(username, outcome)
        if verified is None:
            outcome.advance(RestoreState.DONE)
            return outcome

        if self.tracker.is_restored(identity):
            # Already kicked once; skip to avoid an endless kick/rejoin loop.
            outcome.already_restored = True
            log.info("%s already had data restored this session", username)
        else:
            try:
                copied = await self._migrate(verified, outcome)
            except MigrationFailed as exc:
                log.warning("could not copy data for %s: %s", username, exc)
                outcome.error = str(exc)
                outcome.message = MIGRATION_FAILED_MESSAGE
                await self._host_action(
                    "message", self.host.send_message, identity, MIGRATION_FAILED_MESSAGE
                )
            else:
                if not copied:
                    log.info("no online data available for %s; nothing to restore", username)
                elif self.tracker.mark_restored(identity):
                    # The cracked files were loaded on join, so only a relog picks up the copy.
                    outcome.disconnected = await self._host_action(
                        "kick", self.host.disconnect, identity, RESTORED_MESSAGE
                    )
                    outcome.message = RESTORED_MESSAGE
                    log.info("restoration done for %s; kicked for relog", username)
                else:
                    outcome.already_restored = True

        await self._refresh_skin(verified, outcome)
        outcome.advance(RestoreState.DONE)
        return outcome

    async def _resolve(self, username: str, outcome: RestoreOutcome) -> Optional[uuid.UUID]:
        outcome.advance(RestoreState.RESOLVING)
        try:
            verified = await self.pool.run(self.resolver.resolve, username)
        except LookupFailed as exc:
            log.warning("identity lookup failed for %s: %s", username, exc)
            verified = None

        if verified is None:
            log.info("could not resolve online UUID for %s; skipping restore", username)
            outcome.advance(RestoreState.NOT_FOUND)
            return None

        log.info("resolved %s -> %s", username, verified)
        outcome.verified = verified
        outcome.advance(RestoreState.RESOLVED)
        return verified

    async def _migrate(self, verified: uuid.UUID, outcome: RestoreOutcome) -> int:
        outcome.advance(RestoreState.MIGRATING)
        copied = await self.pool.run(self.migrator.migrate, verified, outcome.identity)
        outcome.copied = copied
        outcome.advance(RestoreState.MIGRATED if copied else RestoreState.NO_ARTIFACTS)
        return copied

    async def _refresh_skin(self, verified: uuid.UUID, outcome: RestoreOutcome) -> None:
        outcome.advance(RestoreState.FETCHING_SKIN)
        outcome.skin_cached = await self._cache_skin(verified, outcome.identity, outcome.username)

    async def _cache_skin(self, verified: uuid.UUID, identity: uuid.UUID, username: Optional[str]) -> bool:
        descriptor = await self.pool.run(self.fetcher.fetch_for, verified)
        if descriptor is None:
            return False
        self.skins.put(identity, descriptor)
        log.info("skin cached for %s (%s)", username, identity)
        return True

    async def _is_online(self, identity: uuid.UUID) -> bool:
        try:
            return bool(await self.control.call(self.host.is_online, identity))
        except HostBridgeError as exc:
            log.warning("could not check whether %s is online: %s", identity, exc)
            return False

    async def _host_action(
        self,
        what: str,
        fn: Callable[..., Awaitable[Any]],
        identity: uuid.UUID,
        *args: Any,
    ) -> bool:
        try:
            await self.control.call(fn, identity, *args)
        except HostBridgeError as exc:
            log.warning("host %s failed for %s: %s", what, identity, exc)
            return False
        return True

    async def _sweep(self, identities: List[uuid.UUID]) -> SweepReport:
        results = await asyncio.gather(
            *(self.restore_offline(identity) for identity in identities),
            return_exceptions=True,
        )

        report = SweepReport()
        for identity, result in zip(identities, results):
            if isinstance(result, BaseException):
                log.warning("restore error for %s: %r", identity, result)
                failed = RestoreOutcome(identity=identity)
                failed.error = str(result) or type(result).__name__
                result = failed
            report.outcomes.append(result)

        log.info(
            "restoreall complete: %d restored/checked, %d failed, %d skipped",
            len(report.succeeded),
            len(report.failed),
            len(report.skipped),
        )
        return report

    def _spawn(self, coro: Awaitable[Any], name: str) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        task.set_name(name)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        self._delayed.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.warning("%s error: %r", task.get_name(), exc)


def create_orchestrator(
    settings: RestoreSettings,
    host: Optional[HostBridge] = None,
) -> RestorationOrchestrator:
    client = create_mojang_client(
        settings.mojang_api_base,
        settings.session_api_base,
        timeout=settings.http_timeout,
    )
    resolver = IdentityResolver(client)
    store = WorldStore(settings.world_dir, settings.usercache_path)

    return RestorationOrchestrator(
        resolver=resolver,
        fetcher=SkinPropertyFetcher(client, resolver),
        migrator=FileMigrator(store),
        store=store,
        skins=SkinCache(),
        tracker=RestorationTracker(),
        host=host or create_host_bridge(settings.host_bridge_url, settings.host_bridge_token),
        pool=WorkerPool(settings.max_workers),
        join_delay=settings.join_delay_seconds,
        shutdown_timeout=settings.shutdown_timeout,
    )
