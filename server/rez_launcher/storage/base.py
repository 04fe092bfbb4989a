"""Storage contract for package collections and stages.

The stage lifecycle only talks to a ``StageStore``. Backends own no business
rules: they find, insert and flip ``active`` flags, and report failures as
``StorageError`` without retrying.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Protocol, TypeVar

from pydantic import BaseModel, ValidationError

from ..models.collections import PackageCollection
from ..models.stages import Stage

logger = logging.getLogger(__name__)

COLLECTIONS = "package_collections"
STAGES = "stages"

ModelT = TypeVar("ModelT", bound=BaseModel)


class StageStore(Protocol):
    async def find_collections(self, uri: str | None = None) -> list[PackageCollection]: ...

    async def insert_collection(self, record: PackageCollection) -> None: ...

    async def find_collection(self, version: str, uri: str) -> PackageCollection | None: ...

    async def find_collection_tools(self, version: str, uri: str) -> list[str] | None: ...

    async def find_stages(self, uri: str, active_only: bool = False) -> list[Stage]: ...

    async def insert_stage(self, record: Stage) -> str: ...

    async def set_stages_active_by_name_uri(self, name: str, uri: str, active: bool) -> None: ...

    async def set_stage_active_by_id(self, stage_id: str, active: bool) -> None: ...

    async def find_stage_by_id(self, stage_id: str) -> Stage | None: ...

    async def find_stage_history(self, name: str, uri: str) -> list[Stage]: ...

    async def find_distinct_stage_names(self) -> set[str]: ...

    async def ping(self) -> None: ...

    async def close(self) -> None: ...


def decode_documents(model: type[ModelT], documents: Iterable[dict[str, Any]], source: str) -> list[ModelT]:
    """Validate stored documents, skipping (and logging) the ones that don't fit the model."""
    decoded: list[ModelT] = []
    for document in documents:
        try:
            decoded.append(model.model_validate(document))
        except ValidationError as exc:
            logger.warning("Skipping malformed %s document: %s", source, exc)
    logger.info("Retrieved %d %s documents", len(decoded), source)
    return decoded


def decode_names(values: Iterable[Any]) -> set[str]:
    """Keep the string values of a distinct-name query, dropping any other type."""
    names: set[str] = set()
    for value in values:
        if isinstance(value, str):
            names.add(value)
        else:
            logger.warning("Non-string value found in distinct stage names: %r", value)
    logger.info("Retrieved %d unique stage names", len(names))
    return names
