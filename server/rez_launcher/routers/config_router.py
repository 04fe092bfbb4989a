"""Runtime configuration endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..app_state import AppContext
from ..deps import get_context

router = APIRouter(prefix="/api/config", tags=["config"])


class ConnectionRequest(BaseModel):
    uri: str


@router.put("/connection")
async def set_connection(body: ConnectionRequest, ctx: AppContext = Depends(get_context)) -> dict:
    """Probe a MongoDB connection string and switch to it when reachable."""
    await ctx.replace_connection(body.uri)
    return {"success": True}
