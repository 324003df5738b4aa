"""Celery task that follows a launched render until it is terminal."""

import asyncio
import logging
import time
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from render_orchestrator.celery_app import celery_app
from render_orchestrator.config import get_settings
from render_orchestrator.exceptions import RenderFarmError
from render_orchestrator.services import render_progress
from render_orchestrator.services.render_farm_client import RenderFarmClient
from render_orchestrator.services.render_progress import ProgressResult, RenderCompleted, RenderFailed

settings = get_settings()
logger = logging.getLogger(__name__)


async def _poll_once(render_id: str, bucket: str, timeline_id: str | None) -> ProgressResult:
    # Each run gets its own event loop, so pooled connections cannot be reused
    engine = create_async_engine(settings.database_url, poolclass=NullPool)
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    try:
        async with session_maker() as db:
            result = await render_progress.poll(
                db,
                RenderFarmClient(settings),
                render_id,
                bucket,
                UUID(timeline_id) if timeline_id else None,
            )
            await db.commit()
            return result
    finally:
        await engine.dispose()


@celery_app.task(bind=True, max_retries=None)
def watch_render(
    self,
    render_id: str,
    bucket: str,
    timeline_id: str | None = None,
    started_at: float | None = None,
) -> dict:
    """
    Poll a render once, then re-schedule until it finishes or times out.

    Args:
        render_id: Farm render handle
        bucket: Farm storage handle
        timeline_id: Timeline whose status follows the render
        started_at: Epoch seconds of the first run, carried across retries

    Returns:
        dict with the terminal status
    """
    started_at = started_at or time.time()

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        result = loop.run_until_complete(_poll_once(render_id, bucket, timeline_id))
    except RenderFarmError as e:
        # Progress reads are retried on the next tick
        logger.warning(f"[Watch] Progress poll failed for {render_id}: {e.message}")
        result = None
    finally:
        loop.close()

    if isinstance(result, RenderCompleted):
        return {"status": "rendered", "url": result.output_url, "size": result.size_bytes}
    if isinstance(result, RenderFailed):
        return {"status": "failed", "error": result.message}

    if time.time() - started_at > settings.render_watch_timeout_s:
        logger.warning(f"[Watch] Gave up on {render_id} after {settings.render_watch_timeout_s}s")
        return {"status": "timeout"}

    raise self.retry(
        args=(render_id, bucket, timeline_id),
        kwargs={"started_at": started_at},
        countdown=settings.render_watch_interval_s,
    )
