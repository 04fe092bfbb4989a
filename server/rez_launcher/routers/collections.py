"""Package collection endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from ..app_state import AppContext
from ..deps import get_context
from ..models.collections import CollectionListing, PackageCollection

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/collections", tags=["collections"])


@router.post("")
async def save_collection(body: PackageCollection, ctx: AppContext = Depends(get_context)) -> dict:
    """Append a new package collection version."""
    await ctx.store.insert_collection(body)
    logger.info("Package collection '%s' saved for URI '%s'", body.version, body.uri)
    return {"success": True}


@router.get("")
async def list_collections(uri: str | None = None, ctx: AppContext = Depends(get_context)) -> CollectionListing:
    """List collections under one uri, or all of them when no uri is given."""
    collections = await ctx.store.find_collections(uri)
    if collections:
        return CollectionListing(collections=collections)
    message = f"no collection found in {uri}" if uri else "No package collections found in database"
    return CollectionListing(message=message)


@router.get("/tools")
async def list_collection_tools(version: str, uri: str, ctx: AppContext = Depends(get_context)) -> dict:
    """Tools exposed by one collection version; empty when it doesn't exist."""
    tools = await ctx.store.find_collection_tools(version, uri)
    if tools is None:
        logger.info("Package collection not found with version %s and URI %s", version, uri)
        return {"tools": []}
    logger.info("Found package collection with %d tools", len(tools))
    return {"tools": tools}
