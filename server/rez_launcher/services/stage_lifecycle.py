"""Stage lifecycle: save, revert and history for named stages.

Within every ``(name, uri)`` group at most one stage is active. Save and
revert keep that true with an ordered two-step write: deactivate the whole
group, then activate exactly one record. Nothing is rolled back when a step
fails; the error is raised with storage left as the completed steps made it.

Each save or revert runs every step against the store that was current when
it started. ``replace_store`` only hands the old store back once those
operations have finished.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from contextlib import asynccontextmanager
from typing import AsyncIterator

from ..errors import NotFoundError
from ..models.stages import Stage, StageRequest
from ..storage.base import StageStore
from .snapshot_generator import SnapshotGenerator

logger = logging.getLogger(__name__)


class StageLifecycle:
    """Owns the single-active-stage rule on top of a ``StageStore``."""

    def __init__(self, store: StageStore, generator: SnapshotGenerator) -> None:
        self.store = store
        self.generator = generator
        # Serializes the two-step writes per (name, uri) inside this process
        self._key_locks: dict[tuple[str, str], asyncio.Lock] = {}
        self._key_holders: Counter[tuple[str, str]] = Counter()
        # Save/revert operations still running, keyed by id() of their store
        self._store_users: Counter[int] = Counter()
        self._store_idle = asyncio.Condition()

    @asynccontextmanager
    async def _pinned_store(self) -> AsyncIterator[StageStore]:
        store = self.store
        self._store_users[id(store)] += 1
        try:
            yield store
        finally:
            self._store_users[id(store)] -= 1
            if not self._store_users[id(store)]:
                del self._store_users[id(store)]
            async with self._store_idle:
                self._store_idle.notify_all()

    @asynccontextmanager
    async def _key_lock(self, key: tuple[str, str]) -> AsyncIterator[None]:
        lock = self._key_locks.setdefault(key, asyncio.Lock())
        self._key_holders[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._key_holders[key] -= 1
            if not self._key_holders[key]:
                del self._key_holders[key]
                del self._key_locks[key]

    async def replace_store(self, store: StageStore) -> StageStore:
        """Send new operations to ``store`` and return the previous one.

        Returns only after every save or revert started on the previous store
        has finished, so the caller can close it safely.
        """
        old_store = self.store
        self.store = store
        async with self._store_idle:
            await self._store_idle.wait_for(lambda: not self._store_users[id(old_store)])
        return old_store

    async def save_stage(self, request: StageRequest) -> Stage:
        """Resolve, snapshot and insert a new active version of a stage.

        Raises:
            NotFoundError: No collection ``from_version`` exists under ``uri``.
            GenerationError: The resolver failed; nothing was written.
            StorageError: A write failed; earlier writes are kept.
        """
        async with self._pinned_store() as store:
            collection = await store.find_collection(request.from_version, request.uri)
            if collection is None:
                raise NotFoundError(
                    f"Package collection not found with version {request.from_version} and URI {request.uri}"
                )

            snapshot = await self.generator.generate(collection.packages)

            stage = Stage(
                name=request.name,
                uri=request.uri,
                from_version=request.from_version,
                snapshot=snapshot,
                tools=request.tools or list(collection.tools),
                created_at=request.created_at,
                created_by=request.created_by,
                active=True,
            )

            async with self._key_lock(stage.key):
                await store.set_stages_active_by_name_uri(stage.name, stage.uri, False)
                logger.info("Set active=false for all existing stages with name '%s'", stage.name)
                stage.id = await store.insert_stage(stage)

        logger.info("Stage '%s' saved from version %s (id %s)", stage.name, stage.from_version, stage.id)
        return stage

    async def revert_stage(self, stage_id: str) -> Stage:
        """Make a historical stage version the active one for its group."""
        async with self._pinned_store() as store:
            target = await _require_stage(store, stage_id)
            logger.info("Reverting stage '%s' with URI '%s' to %s", target.name, target.uri, stage_id)

            async with self._key_lock(target.key):
                await store.set_stages_active_by_name_uri(target.name, target.uri, False)
                await store.set_stage_active_by_id(stage_id, True)

        logger.info("Set stage '%s' (%s) to active", target.name, stage_id)
        return target.model_copy(update={"active": True})

    async def find_stage(self, stage_id: str) -> Stage:
        return await _require_stage(self.store, stage_id)

    async def list_stages(self, uri: str, active_only: bool = False) -> list[Stage]:
        return await self.store.find_stages(uri, active_only)

    async def stage_history(self, name: str, uri: str) -> list[Stage]:
        """All versions of a stage, in storage order."""
        return await self.store.find_stage_history(name, uri)

    async def distinct_stage_names(self) -> set[str]:
        return await self.store.find_distinct_stage_names()


async def _require_stage(store: StageStore, stage_id: str) -> Stage:
    stage = await store.find_stage_by_id(stage_id)
    if stage is None:
        raise NotFoundError(f"Stage not found: {stage_id}")
    return stage
