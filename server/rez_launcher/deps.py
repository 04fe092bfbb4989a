"""FastAPI dependencies for application context resolution."""

from __future__ import annotations

from fastapi import HTTPException, Request

from .app_state import AppContext


async def get_context(request: Request) -> AppContext:
    """Return the context built at startup."""
    context = getattr(request.app.state, "context", None)
    if context is None:
        raise HTTPException(status_code=503, detail="Launcher backend is not initialized")
    return context
