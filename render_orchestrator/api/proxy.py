"""Proxy API endpoints - CDN transcodes for timeline media.

POST kicks off (or advances) transcoding, GET reports status, DELETE resets
records so a timeline can be optimized again. ``/proxy/media`` serves
whitelisted media directly to the preview player.
"""

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Header, HTTPException, Query, Response, status
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from render_orchestrator.api.deps import CurrentCaller, DbSession, MediaFetcherDep, StreamDep
from render_orchestrator.api.timelines import load_timeline
from render_orchestrator.models.proxy_record import (
    PENDING_PROXY_STATUSES,
    PROXY_STATUS_ERROR,
    PROXY_STATUS_READY,
)
from render_orchestrator.schemas.proxy import (
    ProxyCleanupResponse,
    ProxyEnsureRequest,
    ProxyEnsureResponse,
    ProxyOutcomeResponse,
    ProxyStatusEntry,
    ProxyStatusResponse,
)
from render_orchestrator.schemas.timeline import collect_video_urls, parse_timeline
from render_orchestrator.services.media_fetcher import CACHE_CONTROL
from render_orchestrator.services.proxy_service import ProxyService, unique_urls

router = APIRouter()
logger = logging.getLogger(__name__)


async def _resolve_video_urls(
    db: AsyncSession,
    timeline_id: UUID | None,
    urls: list[str] | None,
) -> list[str]:
    if timeline_id is not None:
        record = await load_timeline(db, timeline_id)
        return collect_video_urls(parse_timeline(record.timeline_data))
    if urls is not None:
        return unique_urls(urls)
    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail="Provide timelineId or urls",
    )


def _split_urls(urls: str | None) -> list[str] | None:
    return urls.split(",") if urls is not None else None


@router.post("/proxy", response_model=ProxyEnsureResponse)
async def ensure_proxies(
    body: ProxyEnsureRequest,
    caller: CurrentCaller,
    db: DbSession,
    stream: StreamDep,
) -> ProxyEnsureResponse:
    """Start or advance CDN transcodes for every video clip of a timeline."""
    video_urls = await _resolve_video_urls(db, body.timeline_id, body.urls)
    if not video_urls:
        return ProxyEnsureResponse(message="No video clips found")

    logger.info(f"[Proxy] Ensuring {len(video_urls)} video proxies")
    outcomes = await ProxyService(db, stream).ensure(video_urls)

    return ProxyEnsureResponse(
        total=len(video_urls),
        ready=sum(1 for o in outcomes if o.status == PROXY_STATUS_READY),
        processing=sum(1 for o in outcomes if o.status in PENDING_PROXY_STATUSES),
        errors=sum(1 for o in outcomes if o.status == PROXY_STATUS_ERROR),
        proxies=[
            ProxyOutcomeResponse(
                url=o.url, status=o.status, proxy_url=o.proxy_url, action=o.action
            )
            for o in outcomes
        ],
    )


@router.get("/proxy", response_model=ProxyStatusResponse)
async def get_proxy_status(
    caller: CurrentCaller,
    db: DbSession,
    stream: StreamDep,
    timeline_id: Annotated[UUID | None, Query(alias="timelineId")] = None,
    urls: Annotated[str | None, Query(description="Comma-separated source URLs")] = None,
) -> ProxyStatusResponse:
    """Proxy status per source URL. URLs never submitted are left out of ``proxies``."""
    video_urls = await _resolve_video_urls(db, timeline_id, _split_urls(urls))
    snapshots = await ProxyService(db, stream).status(video_urls)

    ready = sum(1 for s in snapshots.values() if s.status == PROXY_STATUS_READY)
    return ProxyStatusResponse(
        total=len(video_urls),
        ready=ready,
        all_ready=ready == len(video_urls),
        proxies={
            url: ProxyStatusEntry(
                status=s.status,
                proxy_url=s.proxy_url,
                playback_url=s.playback_url,
                thumbnail_url=s.thumbnail_url,
                duration_seconds=s.duration_seconds,
                error_message=s.error_message,
            )
            for url, s in snapshots.items()
        },
    )


@router.delete("/proxy", response_model=ProxyCleanupResponse)
async def cleanup_proxies(
    caller: CurrentCaller,
    db: DbSession,
    stream: StreamDep,
    timeline_id: Annotated[UUID | None, Query(alias="timelineId")] = None,
    urls: Annotated[str | None, Query(description="Comma-separated source URLs")] = None,
) -> ProxyCleanupResponse:
    """Delete proxy records (and their CDN videos) so optimization can start over."""
    video_urls = await _resolve_video_urls(db, timeline_id, _split_urls(urls))
    deleted = await ProxyService(db, stream).cleanup(video_urls)
    logger.info(f"[Proxy] Cleaned up {deleted} proxy records")
    return ProxyCleanupResponse(deleted=deleted, message=f"Cleaned up {deleted} proxy records")


@router.get("/proxy/media")
async def proxy_media(
    fetcher: MediaFetcherDep,
    url: str = "",
    w: Annotated[int | None, Query(ge=16, le=4096)] = None,
    q: Annotated[int | None, Query(ge=1, le=100)] = None,
    range_header: Annotated[str | None, Header(alias="Range")] = None,
) -> Response:
    """Serve a whitelisted media URL with long CDN caching.

    Unauthenticated so it can be used directly as an ``<img>``/``<audio>`` source.
    """
    media = await fetcher.fetch(url, range_header=range_header, width=w, quality=q)

    headers = {
        "Cache-Control": CACHE_CONTROL,
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Methods": "GET, OPTIONS",
        "Access-Control-Allow-Headers": "Range",
        "Accept-Ranges": "bytes",
        **media.headers,
    }

    if media.is_streamed:
        return StreamingResponse(
            media.iter_bytes(),
            status_code=media.status_code,
            media_type=media.content_type,
            headers=headers,
        )
    return Response(
        content=media.content,
        status_code=media.status_code,
        media_type=media.content_type,
        headers=headers,
    )
