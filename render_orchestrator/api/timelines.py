"""Timeline endpoints used by the preview player."""

import logging
from uuid import UUID

from fastapi import APIRouter
from sqlalchemy.ext.asyncio import AsyncSession

from render_orchestrator.api.deps import CurrentCaller, DbSession, SettingsDep
from render_orchestrator.exceptions import TimelineNotFoundError
from render_orchestrator.models.timeline import TimelineRecord
from render_orchestrator.schemas.proxy import TimelinePreviewResponse
from render_orchestrator.schemas.timeline import AudioClip, ImageClip, VideoClip, parse_timeline
from render_orchestrator.services.proxy_service import ready_proxy_urls
from render_orchestrator.services.timeline_rewriter import (
    RewriteMode,
    build_accelerated_copy,
    media_proxy_url,
    preview_stats,
)

router = APIRouter()
logger = logging.getLogger(__name__)


async def load_timeline(db: AsyncSession, timeline_id: UUID) -> TimelineRecord:
    record = await db.get(TimelineRecord, timeline_id)
    if record is None:
        raise TimelineNotFoundError(timeline_id)
    return record


@router.get("/timelines/{timeline_id}/preview", response_model=TimelinePreviewResponse)
async def get_preview_timeline(
    timeline_id: UUID,
    caller: CurrentCaller,
    db: DbSession,
    settings: SettingsDep,
) -> TimelinePreviewResponse:
    """
    Lightweight copy of a timeline for the interactive player.

    Video clips use their CDN proxy when one is ready. Everything else is
    routed through the media proxy, with images downscaled.
    """
    record = await load_timeline(db, timeline_id)
    timeline = parse_timeline(record.timeline_data)

    media_urls = [
        clip.src
        for clip in timeline.clips()
        if isinstance(clip, (VideoClip, ImageClip, AudioClip))
    ]
    ready = await ready_proxy_urls(db, media_urls)

    accelerated = build_accelerated_copy(
        timeline,
        ready,
        RewriteMode.PREVIEW,
        fallback=lambda src: media_proxy_url(src, settings.media_proxy_path),
        image_hint=(settings.preview_image_width, settings.preview_image_quality),
    )
    stats = preview_stats(accelerated, ready)
    logger.info(
        f"[Preview] {timeline_id}: videos {stats.videos.cdn}/{stats.videos.total} via CDN, "
        f"images {stats.images.proxied}/{stats.images.total}, "
        f"audios {stats.audios.proxied}/{stats.audios.total}"
    )

    return TimelinePreviewResponse(timeline=accelerated.to_wire(), stats=stats)
