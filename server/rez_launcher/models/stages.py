"""Stage models: named, versioned pointers to a resolved environment snapshot."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from .collections import utc_now


class Stage(BaseModel):
    # rxt content is arbitrary bytes; keep it lossless across JSON
    model_config = ConfigDict(ser_json_bytes="base64", val_json_bytes="base64")

    id: str | None = None  # assigned by storage on insert
    name: str
    uri: str
    from_version: str
    snapshot: bytes = b""
    tools: list[str] = Field(default_factory=list)
    created_at: str = Field(default_factory=utc_now)
    created_by: str = ""
    active: bool = False

    @property
    def key(self) -> tuple[str, str]:
        """The (name, uri) group inside which at most one stage is active."""
        return (self.name, self.uri)


class StageRequest(BaseModel):
    """Client payload for saving a new stage version."""

    name: str
    uri: str
    from_version: str
    tools: list[str] = Field(default_factory=list)
    created_by: str = ""
    created_at: str = Field(default_factory=utc_now)
