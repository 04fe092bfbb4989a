"""Stage endpoints: save, list, revert, history and load."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from ..app_state import AppContext
from ..deps import get_context
from ..models.stages import Stage, StageRequest

router = APIRouter(prefix="/api/stages", tags=["stages"])


def _summary(stage: Stage) -> dict:
    """Stage fields for listings; the rxt payload is reduced to its size."""
    data = stage.model_dump(exclude={"snapshot"})
    data["snapshot_size"] = len(stage.snapshot)
    return data


@router.post("")
async def save_stage(body: StageRequest, ctx: AppContext = Depends(get_context)) -> dict:
    """Resolve the source collection and make the new stage version active."""
    stage = await ctx.lifecycle.save_stage(body)
    return {"stage": _summary(stage)}


@router.get("")
async def list_stages(uri: str, active_only: bool = False, ctx: AppContext = Depends(get_context)) -> dict:
    stages = await ctx.lifecycle.list_stages(uri, active_only)
    return {"stages": [_summary(s) for s in stages]}


@router.get("/names")
async def list_stage_names(ctx: AppContext = Depends(get_context)) -> dict:
    """Every stage name ever saved, deduplicated."""
    names = await ctx.lifecycle.distinct_stage_names()
    return {"names": sorted(names)}


@router.get("/history")
async def stage_history(name: str, uri: str, ctx: AppContext = Depends(get_context)) -> dict:
    """All versions of one stage, active or not, in storage order."""
    stages = await ctx.lifecycle.stage_history(name, uri)
    return {"stages": [_summary(s) for s in stages]}


@router.get("/{stage_id}")
async def get_stage(stage_id: str, ctx: AppContext = Depends(get_context)) -> Stage:
    """Full stage record, snapshot included (base64)."""
    return await ctx.lifecycle.find_stage(stage_id)


@router.post("/{stage_id}/revert")
async def revert_stage(stage_id: str, ctx: AppContext = Depends(get_context)) -> dict:
    stage = await ctx.lifecycle.revert_stage(stage_id)
    return {"stage": _summary(stage)}


@router.post("/{stage_id}/load")
async def load_stage(stage_id: str, ctx: AppContext = Depends(get_context)) -> dict:
    """Open the stage's snapshot in an interactive terminal."""
    stage = await ctx.lifecycle.find_stage(stage_id)
    context_path = await ctx.loader.load(stage)
    return {"success": True, "contextPath": str(context_path)}
