"""Launch renders on the farm, shrinking the chunk plan when it is rejected.

Each attempt plans chunks for the current worker ceiling and submits them.
Capacity rejections lower the ceiling for the next attempt; any other farm
error aborts the launch. The RenderJob row is written only after the farm
accepts a launch.
"""

import logging
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from render_orchestrator.config import Settings, get_settings
from render_orchestrator.exceptions import RenderFarmError, RenderRetriesExhaustedError
from render_orchestrator.models.render_job import RENDER_STATUS_RENDERING, RenderJob
from render_orchestrator.models.timeline import TimelineRecord
from render_orchestrator.schemas.timeline import Timeline, collect_video_urls, parse_timeline
from render_orchestrator.services.chunk_planner import ChunkPlan, initial_worker_ceiling, plan_chunks
from render_orchestrator.services.farm_errors import FarmRejection, RejectionKind, classify_rejection
from render_orchestrator.services.proxy_service import ready_proxy_urls
from render_orchestrator.services.render_farm_client import RenderFarmClient
from render_orchestrator.services.timeline_rewriter import RewriteMode, build_accelerated_copy

logger = logging.getLogger(__name__)

# Hard cap on farm launch calls per render request
MAX_LAUNCH_ATTEMPTS = 3


@dataclass
class LaunchResult:
    job: RenderJob
    plan: ChunkPlan
    attempt: int


def next_worker_ceiling(current: int, rejection: FarmRejection) -> int:
    """Worker ceiling for the attempt after ``rejection``. Never above ``current``."""
    if (
        rejection.kind is RejectionKind.WORKER_LIMIT
        and rejection.enforced_limit is not None
        and 1 <= rejection.enforced_limit < current
    ):
        return rejection.enforced_limit
    return max(current // 2, 1)


async def _render_props(db: AsyncSession, timeline: Timeline) -> dict:
    """Timeline as sent to the farm, with CDN proxies on video clips where ready."""
    try:
        ready = await ready_proxy_urls(db, collect_video_urls(timeline))
    except SQLAlchemyError as e:
        # Proxies only speed up worker downloads
        logger.warning(f"[Render] Proxy lookup failed, rendering from originals: {e}")
        ready = {}

    if ready:
        logger.info(f"[Render] Using {len(ready)} CDN proxies for video clips")
    return build_accelerated_copy(timeline, ready, RewriteMode.RENDER).to_wire()


async def launch(
    db: AsyncSession,
    record: TimelineRecord,
    farm: RenderFarmClient,
    *,
    account_concurrency: int | None = None,
    farm_hard_cap: int | None = None,
    settings: Settings | None = None,
) -> LaunchResult:
    """Launch a render of ``record``'s timeline.

    Args:
        db: Session the RenderJob and timeline bookkeeping are written to
        record: Stored timeline to render; its timeline data is not modified
        farm: Render farm client
        account_concurrency: Account-wide worker budget (defaults to settings)
        farm_hard_cap: Per-render worker cap of the farm (defaults to settings)

    Raises:
        InvalidTimelineError: Timeline data lacks the tracks/clips shape
        RenderFarmError: The farm rejected the launch for a non-capacity reason
        RenderRetriesExhaustedError: Every attempt hit a capacity rejection
    """
    settings = settings or get_settings()
    if account_concurrency is None:
        account_concurrency = settings.render_account_concurrency
    if farm_hard_cap is None:
        farm_hard_cap = settings.render_farm_hard_cap

    timeline = parse_timeline(record.timeline_data)
    input_props = await _render_props(db, timeline)

    max_attempts = min(max(settings.render_max_launch_attempts, 1), MAX_LAUNCH_ATTEMPTS)
    ceiling = initial_worker_ceiling(account_concurrency, farm_hard_cap)
    last_error: RenderFarmError | None = None

    for attempt in range(1, max_attempts + 1):
        plan = plan_chunks(
            timeline.duration_in_frames, ceiling, settings.render_min_frames_per_chunk
        )
        logger.info(
            f"[Render] Attempt {attempt}/{max_attempts}: {timeline.duration_in_frames} frames, "
            f"ceiling={plan.worker_ceiling}, framesPerChunk={plan.frames_per_chunk}, "
            f"~{plan.chunk_count} chunks"
        )

        try:
            handle = await farm.start_render(input_props, plan.frames_per_chunk)
        except RenderFarmError as e:
            rejection = classify_rejection(e)
            if not rejection.retryable:
                logger.error(f"[Render] Attempt {attempt} failed (non-retryable): {e.message}")
                raise
            last_error = e
            ceiling = next_worker_ceiling(ceiling, rejection)
            logger.warning(
                f"[Render] Attempt {attempt} rejected ({rejection.kind.value}, "
                f"enforced={rejection.enforced_limit}, requested={rejection.requested_count}); "
                f"next ceiling={ceiling}"
            )
            continue

        job = RenderJob(
            timeline_id=record.id,
            render_id=handle.render_id,
            bucket=handle.bucket_name,
            frames_per_chunk=plan.frames_per_chunk,
            chunk_count=plan.chunk_count,
            concurrency_limit=plan.worker_ceiling,
            attempts=attempt,
            status=RENDER_STATUS_RENDERING,
        )
        db.add(job)

        record.status = RENDER_STATUS_RENDERING
        record.render_id = handle.render_id
        record.render_bucket = handle.bucket_name
        record.render_url = None
        await db.flush()

        logger.info(
            f"[Render] Launched {handle.render_id} on attempt {attempt} "
            f"({plan.chunk_count} chunks x {plan.frames_per_chunk} frames)"
        )
        return LaunchResult(job=job, plan=plan, attempt=attempt)

    raise RenderRetriesExhaustedError(max_attempts, last_error)
