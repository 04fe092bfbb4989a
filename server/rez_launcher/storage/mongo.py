"""MongoDB persistence for package collections and stages."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator

from bson import ObjectId
from pymongo import AsyncMongoClient
from pymongo.errors import PyMongoError

from ..errors import NotFoundError, StorageError
from ..models.collections import PackageCollection
from ..models.stages import Stage
from .base import COLLECTIONS, STAGES, decode_documents, decode_names

logger = logging.getLogger(__name__)

DEFAULT_SERVER_SELECTION_TIMEOUT_MS = 5000


@contextmanager
def _storage_errors(action: str) -> Iterator[None]:
    try:
        yield
    except PyMongoError as exc:
        logger.error("MongoDB %s failed: %s", action, exc)
        raise StorageError(str(exc)) from exc


def _stage_document(stage: Stage) -> dict[str, Any]:
    return stage.model_dump(exclude={"id"})


def _stage_from_document(document: dict[str, Any]) -> dict[str, Any]:
    payload = dict(document)
    object_id = payload.pop("_id", None)
    payload["id"] = str(object_id) if object_id is not None else None
    return payload


def _object_id(stage_id: str) -> ObjectId | None:
    return ObjectId(stage_id) if ObjectId.is_valid(stage_id) else None


class MongoStageStore:
    """Stage store backed by one MongoDB database.

    The client is created once by ``connect`` and shared by every request;
    pymongo's async client pools connections internally.
    """

    def __init__(self, client: AsyncMongoClient, db_name: str) -> None:
        self._client = client
        self._db = client[db_name]
        self._collections = self._db[COLLECTIONS]
        self._stages = self._db[STAGES]

    @classmethod
    async def connect(
        cls,
        uri: str,
        db_name: str,
        timeout_ms: int = DEFAULT_SERVER_SELECTION_TIMEOUT_MS,
    ) -> MongoStageStore:
        """Create a client for ``uri`` and probe it before handing it out."""
        with _storage_errors("client creation"):
            client: AsyncMongoClient = AsyncMongoClient(uri, serverSelectionTimeoutMS=timeout_ms)
        store = cls(client, db_name)
        try:
            await store.ping()
        except StorageError:
            await client.close()
            raise
        logger.info("Connected to MongoDB database '%s'", db_name)
        return store

    async def ping(self) -> None:
        with _storage_errors("ping"):
            await self._client.admin.command("ping")

    async def close(self) -> None:
        await self._client.close()

    # ── Package collections ──────────────────────────────────────────────

    async def find_collections(self, uri: str | None = None) -> list[PackageCollection]:
        query = {"uri": uri} if uri else {}
        with _storage_errors("package collection query"):
            documents = await self._collections.find(query, {"_id": 0}).to_list()
        return decode_documents(PackageCollection, documents, COLLECTIONS)

    async def insert_collection(self, record: PackageCollection) -> None:
        with _storage_errors("package collection insert"):
            await self._collections.insert_one(record.model_dump())

    async def find_collection(self, version: str, uri: str) -> PackageCollection | None:
        with _storage_errors("package collection lookup"):
            document = await self._collections.find_one({"version": version, "uri": uri}, {"_id": 0})
        if document is None:
            return None
        found = decode_documents(PackageCollection, [document], COLLECTIONS)
        return found[0] if found else None

    async def find_collection_tools(self, version: str, uri: str) -> list[str] | None:
        collection = await self.find_collection(version, uri)
        return collection.tools if collection is not None else None

    # ── Stages ───────────────────────────────────────────────────────────

    async def find_stages(self, uri: str, active_only: bool = False) -> list[Stage]:
        query: dict[str, Any] = {"uri": uri}
        if active_only:
            query["active"] = True
        return await self._fetch_stages(query)

    async def insert_stage(self, record: Stage) -> str:
        with _storage_errors("stage insert"):
            result = await self._stages.insert_one(_stage_document(record))
        return str(result.inserted_id)

    async def set_stages_active_by_name_uri(self, name: str, uri: str, active: bool) -> None:
        with _storage_errors("stage bulk update"):
            result = await self._stages.update_many({"name": name, "uri": uri}, {"$set": {"active": active}})
        logger.info(
            "Set active=%s on %d stage(s) named '%s' with URI '%s'", active, result.modified_count, name, uri
        )

    async def set_stage_active_by_id(self, stage_id: str, active: bool) -> None:
        object_id = _object_id(stage_id)
        if object_id is None:
            raise NotFoundError(f"Stage not found: {stage_id}")
        with _storage_errors("stage update"):
            result = await self._stages.update_one({"_id": object_id}, {"$set": {"active": active}})
        if result.matched_count == 0:
            raise NotFoundError(f"Stage not found: {stage_id}")

    async def find_stage_by_id(self, stage_id: str) -> Stage | None:
        object_id = _object_id(stage_id)
        if object_id is None:
            return None
        with _storage_errors("stage lookup"):
            document = await self._stages.find_one({"_id": object_id})
        if document is None:
            return None
        found = decode_documents(Stage, [_stage_from_document(document)], STAGES)
        return found[0] if found else None

    async def find_stage_history(self, name: str, uri: str) -> list[Stage]:
        return await self._fetch_stages({"name": name, "uri": uri})

    async def find_distinct_stage_names(self) -> set[str]:
        with _storage_errors("distinct stage names"):
            values = await self._stages.distinct("name")
        return decode_names(values)

    async def _fetch_stages(self, query: dict[str, Any]) -> list[Stage]:
        with _storage_errors("stage query"):
            documents = await self._stages.find(query).to_list()
        return decode_documents(Stage, (_stage_from_document(d) for d in documents), STAGES)
