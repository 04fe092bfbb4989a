"""Application context: the services shared by every request.

Built once at startup and handed to request handlers, instead of a lazily
initialized module-level connection.
"""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor

from .config import LauncherConfig
from .errors import ConfigError
from .services.snapshot_generator import SnapshotGenerator
from .services.snapshot_loader import SnapshotLoader
from .services.stage_lifecycle import StageLifecycle
from .storage.base import StageStore

logger = logging.getLogger(__name__)


class AppContext:
    """Holds the store, the blocking worker pool and the services built on them."""

    def __init__(
        self,
        store: StageStore,
        generator: SnapshotGenerator,
        loader: SnapshotLoader,
        executor: ThreadPoolExecutor | None = None,
        store_kind: str = "mongo",
        db_name: str = "rez_launcher",
    ) -> None:
        self.store = store
        self.generator = generator
        self.loader = loader
        self.lifecycle = StageLifecycle(store, generator)
        self.store_kind = store_kind
        self.db_name = db_name
        self._executor = executor
        self._store_lock = asyncio.Lock()

    @classmethod
    async def create(cls, cfg: LauncherConfig) -> AppContext:
        """Connect the configured store and build the services around it."""
        store = await open_store(cfg)
        executor = ThreadPoolExecutor(max_workers=cfg.blocking_workers, thread_name_prefix="rez-blocking")
        generator = SnapshotGenerator(cfg.rez_bin, executor, timeout=cfg.resolve_timeout)
        loader = SnapshotLoader(cfg.rez_bin, executor, terminal=cfg.terminal)
        logger.info("Application context ready (%s store, %d blocking workers)", cfg.store, cfg.blocking_workers)
        return cls(store, generator, loader, executor=executor, store_kind=cfg.store, db_name=cfg.db_name)

    async def replace_connection(self, uri: str) -> None:
        """Switch the MongoDB store to a new connection string.

        The new client is probed before it replaces the old one; on failure
        the current store stays in place and ``StorageError`` propagates.
        """
        if self.store_kind != "mongo":
            raise ConfigError(f"Connection strings only apply to the MongoDB store, not '{self.store_kind}'")

        from .storage.mongo import MongoStageStore

        async with self._store_lock:
            new_store = await MongoStageStore.connect(uri, self.db_name)
            self.store = new_store
            # Waits for saves and reverts still writing to the old store
            old_store = await self.lifecycle.replace_store(new_store)
        await old_store.close()
        logger.info("Switched MongoDB connection")

    async def close(self) -> None:
        await self.store.close()
        if self._executor is not None:
            self._executor.shutdown(wait=False)


async def open_store(cfg: LauncherConfig) -> StageStore:
    """Open the storage backend selected by configuration."""
    if cfg.store == "sqlite":
        from .storage.sqlite import SqliteStageStore

        return await SqliteStageStore.connect(cfg.sqlite_path)

    from .storage.mongo import MongoStageStore

    return await MongoStageStore.connect(cfg.mongo_uri, cfg.db_name)
