"""Render API endpoints - launch on the render farm and poll progress."""

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status
from kombu.exceptions import OperationalError

from render_orchestrator.api.deps import CurrentCaller, DbSession, FarmClient
from render_orchestrator.api.timelines import load_timeline
from render_orchestrator.schemas.render import (
    RenderLaunchRequest,
    RenderLaunchResponse,
    RenderProgressResponse,
)
from render_orchestrator.services import render_progress
from render_orchestrator.services.render_launcher import launch
from render_orchestrator.services.render_progress import RenderCompleted, RenderFailed
from render_orchestrator.tasks.render_watch_task import watch_render

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/render", response_model=RenderLaunchResponse)
async def start_render(
    body: RenderLaunchRequest,
    caller: CurrentCaller,
    db: DbSession,
    farm: FarmClient,
) -> RenderLaunchResponse:
    """
    Launch a distributed render of a stored timeline.

    The chunk plan is shrunk and retried when the farm rejects it for
    capacity reasons. With ``watch`` set, a background task keeps polling
    until the render is terminal so the timeline status is updated even if
    the caller goes away.
    """
    record = await load_timeline(db, body.timeline_id)
    result = await launch(db, record, farm)
    job = result.job

    if body.watch:
        # Row must be visible to the worker before it polls
        await db.commit()
        try:
            watch_render.delay(job.render_id, job.bucket, str(record.id))
        except OperationalError as e:
            logger.warning(f"[Render] Could not enqueue watcher for {job.render_id}: {e}")

    return RenderLaunchResponse(
        render_id=job.render_id,
        bucket_name=job.bucket,
        frames_per_lambda=result.plan.frames_per_chunk,
        estimated_chunks=result.plan.chunk_count,
        concurrency_limit=result.plan.worker_ceiling,
        attempt=result.attempt,
    )


@router.get("/render", response_model=RenderProgressResponse, response_model_exclude_none=True)
async def get_render_progress(
    caller: CurrentCaller,
    db: DbSession,
    farm: FarmClient,
    render_id: Annotated[str | None, Query(alias="renderId")] = None,
    bucket_name: Annotated[str | None, Query(alias="bucketName")] = None,
    timeline_id: Annotated[UUID | None, Query(alias="timelineId")] = None,
) -> RenderProgressResponse:
    """Poll a render once."""
    if not render_id or not bucket_name:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="renderId and bucketName required",
        )

    result = await render_progress.poll(db, farm, render_id, bucket_name, timeline_id)

    if isinstance(result, RenderCompleted):
        return RenderProgressResponse(done=True, url=result.output_url, size=result.size_bytes)
    if isinstance(result, RenderFailed):
        return RenderProgressResponse(done=False, failed=True, error=result.message)
    return RenderProgressResponse(done=False, progress=result.fraction)
