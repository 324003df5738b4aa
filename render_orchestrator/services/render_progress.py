"""One-shot render progress polling.

Running progress is never stored. The two terminal outcomes are written to
the RenderJob (and the owning timeline) once; later polls of a terminal
render are answered from the database without contacting the farm.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from render_orchestrator.config import Settings, get_settings
from render_orchestrator.models.render_job import (
    RENDER_STATUS_FAILED,
    RENDER_STATUS_RENDERED,
    RenderJob,
)
from render_orchestrator.models.timeline import TimelineRecord
from render_orchestrator.services.render_farm_client import RenderFarmClient
from render_orchestrator.utils.messages import truncate_message

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RenderRunning:
    fraction: float


@dataclass(frozen=True)
class RenderCompleted:
    output_url: str
    size_bytes: int


@dataclass(frozen=True)
class RenderFailed:
    message: str


ProgressResult = RenderRunning | RenderCompleted | RenderFailed


def _from_job(job: RenderJob) -> ProgressResult:
    if job.status == RENDER_STATUS_RENDERED:
        return RenderCompleted(output_url=job.output_url or "", size_bytes=job.output_size or 0)
    return RenderFailed(message=job.error_message or "Render failed")


async def _update_timeline(
    db: AsyncSession,
    timeline_id: uuid.UUID | None,
    status: str,
    render_url: str | None = None,
) -> None:
    if timeline_id is None:
        return
    record = await db.get(TimelineRecord, timeline_id)
    if record is None:
        logger.warning(f"[Render] Timeline {timeline_id} vanished before status update")
        return
    record.status = status
    if render_url:
        record.render_url = render_url


async def poll(
    db: AsyncSession,
    farm: RenderFarmClient,
    render_id: str,
    bucket: str,
    timeline_id: uuid.UUID | None = None,
    settings: Settings | None = None,
) -> ProgressResult:
    """Poll a render once and persist it if it just became terminal."""
    settings = settings or get_settings()

    result = await db.execute(select(RenderJob).where(RenderJob.render_id == render_id))
    job = result.scalar_one_or_none()
    if job is not None and job.is_terminal:
        return _from_job(job)

    progress = await farm.get_progress(render_id, bucket)
    timeline_id = timeline_id or (job.timeline_id if job else None)
    now = datetime.now(UTC)

    if progress.fatal_error:
        message = truncate_message(
            (progress.errors[0] if progress.errors else None) or "Render failed",
            settings.render_error_message_max_chars,
        )
        logger.error(f"[Render] {render_id} failed: {message}")
        if job is not None:
            job.status = RENDER_STATUS_FAILED
            job.error_message = message
            job.completed_at = now
        await _update_timeline(db, timeline_id, RENDER_STATUS_FAILED)
        await db.flush()
        return RenderFailed(message=message)

    if progress.done and progress.output_file:
        size = progress.output_size or 0
        logger.info(f"[Render] {render_id} rendered: {progress.output_file} ({size} bytes)")
        if job is not None:
            job.status = RENDER_STATUS_RENDERED
            job.output_url = progress.output_file
            job.output_size = size
            job.completed_at = now
        await _update_timeline(db, timeline_id, RENDER_STATUS_RENDERED, progress.output_file)
        await db.flush()
        return RenderCompleted(output_url=progress.output_file, size_bytes=size)

    return RenderRunning(fraction=progress.overall_progress)
