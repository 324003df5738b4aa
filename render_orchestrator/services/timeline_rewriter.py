"""Substitute proxy URLs into a copy of a timeline.

The stored timeline is never modified. Two flavours exist:

- render: video clips get the transcode CDN's MP4 rendition so farm workers
  download from a nearby edge. Nothing else changes.
- preview: every media clip gets the lightest URL available, falling back to
  the media proxy route, and image clips get a resize/quality hint.
"""

from collections.abc import Callable, Mapping
from enum import Enum
from typing import assert_never
from urllib.parse import quote

from render_orchestrator.schemas.proxy import PreviewStats
from render_orchestrator.schemas.timeline import (
    AudioClip,
    ImageClip,
    TemplateClip,
    Timeline,
    VideoClip,
)


class RewriteMode(Enum):
    PREVIEW = "preview"
    RENDER = "render"


def media_proxy_url(src: str, proxy_path: str) -> str:
    return f"{proxy_path}?url={quote(src, safe='')}"


def with_image_hint(url: str, width: int, quality: int) -> str:
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}w={width}&q={quality}"


def build_accelerated_copy(
    timeline: Timeline,
    ready_proxies: Mapping[str, str],
    mode: RewriteMode = RewriteMode.RENDER,
    *,
    fallback: Callable[[str], str] | None = None,
    image_hint: tuple[int, int] | None = None,
) -> Timeline:
    """Deep-copy ``timeline`` and set ``proxy_src`` on its media clips.

    Args:
        timeline: Canonical timeline, left untouched
        ready_proxies: original URL -> accelerated URL, ready entries only
        mode: RENDER touches video clips only; PREVIEW touches video, image and audio
        fallback: Preview only. Builds a proxy URL for clips with no ready proxy
        image_hint: Preview only. (width, quality) appended to image proxy URLs
    """
    accelerated = timeline.model_copy(deep=True)

    for track in accelerated.tracks:
        for clip in track.clips:
            if isinstance(clip, TemplateClip):
                continue
            elif isinstance(clip, VideoClip):
                proxy = ready_proxies.get(clip.src)
                if proxy is None and mode is RewriteMode.PREVIEW and fallback:
                    proxy = fallback(clip.src)
                if proxy:
                    clip.proxy_src = proxy
            elif isinstance(clip, (ImageClip, AudioClip)):
                if mode is RewriteMode.RENDER:
                    continue
                proxy = ready_proxies.get(clip.src)
                if proxy is None and fallback:
                    proxy = fallback(clip.src)
                if proxy and isinstance(clip, ImageClip) and image_hint:
                    proxy = with_image_hint(proxy, *image_hint)
                if proxy:
                    clip.proxy_src = proxy
            else:
                assert_never(clip)

    return accelerated


def preview_stats(accelerated: Timeline, ready_proxies: Mapping[str, str]) -> PreviewStats:
    """Count media clips per kind, how many got a proxy, and how many via the CDN."""
    stats = PreviewStats()
    for clip in accelerated.clips():
        if isinstance(clip, VideoClip):
            counter = stats.videos
        elif isinstance(clip, ImageClip):
            counter = stats.images
        elif isinstance(clip, AudioClip):
            counter = stats.audios
        else:
            continue
        counter.total += 1
        if clip.proxy_src:
            counter.proxied += 1
            if clip.src in ready_proxies:
                counter.cdn += 1
    return stats
