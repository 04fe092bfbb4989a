"""Package collection models."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, Field


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class PackageCollection(BaseModel):
    """An immutable, append-only set of packages at a version within a uri scope."""

    version: str
    packages: list[str] = Field(default_factory=list)
    herit: str = ""  # parent collection this one inherits from
    tools: list[str] = Field(default_factory=list)
    created_at: str = Field(default_factory=utc_now)
    created_by: str = ""
    uri: str


class CollectionListing(BaseModel):
    """Result of a collection query, with a message when nothing matched."""

    success: bool = True
    message: str | None = None
    collections: list[PackageCollection] | None = None
