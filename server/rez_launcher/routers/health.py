"""Health check endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from ..app_state import AppContext
from ..deps import get_context
from ..errors import StorageError

router = APIRouter(tags=["health"])


@router.get("/api/health")
async def health_check(ctx: AppContext = Depends(get_context)) -> dict:
    """Probe the storage backend."""
    try:
        await ctx.store.ping()
    except StorageError as exc:
        return {"status": "degraded", "store": ctx.store_kind, "error": str(exc)}
    return {"status": "ok", "store": ctx.store_kind, "version": "0.1.0"}
