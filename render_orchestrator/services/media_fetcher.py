"""Fetch whitelisted media for the preview player.

Only HTTPS URLs on whitelisted hostname suffixes are fetched, so the proxy
route cannot be used to reach internal hosts. Bodies are streamed through
chunk by chunk. The one exception is an image requested with a width/quality
hint and small enough to hold in memory, which is downscaled and re-encoded
before being returned.
"""

import asyncio
import io
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from urllib.parse import urlparse

import httpx
from PIL import Image, UnidentifiedImageError

from render_orchestrator.config import Settings, get_settings
from render_orchestrator.exceptions import MediaFetchError, MediaHostNotAllowedError, MediaProxyError
from render_orchestrator.utils.messages import short_url

logger = logging.getLogger(__name__)

# 1 day in the browser, 30 days on the CDN
CACHE_CONTROL = "public, max-age=86400, s-maxage=2592000, stale-while-revalidate=86400"

_PASSTHROUGH_HEADERS = ("content-range",)


@dataclass
class FetchedMedia:
    """Upstream media, either still streaming or already buffered in ``content``."""

    status_code: int
    content_type: str
    headers: dict[str, str] = field(default_factory=dict)
    content: bytes | None = None
    _response: httpx.Response | None = field(default=None, repr=False)
    _client: httpx.AsyncClient | None = field(default=None, repr=False)

    @property
    def is_streamed(self) -> bool:
        return self._response is not None

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        """Yield the body, closing the upstream connection once it is consumed."""
        if self._response is None:
            yield self.content or b""
            return
        try:
            async for chunk in self._response.aiter_bytes():
                yield chunk
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if self._response is not None:
            await self._response.aclose()
        if self._client is not None:
            await self._client.aclose()


def _declared_length(response: httpx.Response) -> int | None:
    try:
        return int(response.headers["content-length"])
    except (KeyError, ValueError):
        return None


def is_allowed_url(url: str, allowed_suffixes: list[str]) -> bool:
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    if parsed.scheme != "https" or not parsed.hostname:
        return False
    return any(parsed.hostname.endswith(suffix) for suffix in allowed_suffixes)


def downscale_image(content: bytes, width: int | None, quality: int | None) -> tuple[bytes, str] | None:
    """Resize to at most ``width`` pixels wide and re-encode as WebP.

    Returns None when the bytes are not a still image Pillow can decode.
    """
    try:
        img = Image.open(io.BytesIO(content))
        img.load()
    except (UnidentifiedImageError, OSError):
        return None
    if getattr(img, "is_animated", False):
        return None

    if width and img.width > width:
        height = max(round(img.height * width / img.width), 1)
        img = img.resize((width, height), Image.Resampling.LANCZOS)
    if img.mode not in ("RGB", "RGBA"):
        img = img.convert("RGBA" if "A" in img.getbands() else "RGB")

    buf = io.BytesIO()
    img.save(buf, format="WEBP", quality=quality or 80)
    return buf.getvalue(), "image/webp"


class MediaFetcher:
    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._transport = transport

    async def fetch(
        self,
        url: str,
        *,
        range_header: str | None = None,
        width: int | None = None,
        quality: int | None = None,
    ) -> FetchedMedia:
        """Open ``url`` upstream.

        The caller must consume ``iter_bytes()`` (or call ``aclose()``) on a
        streamed result to release the upstream connection.
        """
        if not url:
            raise MediaProxyError("Missing url query parameter")
        if not is_allowed_url(url, self.settings.media_proxy_allowed_hosts):
            raise MediaHostNotAllowedError(urlparse(url).hostname or url)

        headers = {"Range": range_header} if range_header else {}
        client = httpx.AsyncClient(
            timeout=httpx.Timeout(self.settings.media_proxy_timeout_s),
            follow_redirects=False,
            transport=self._transport,
        )
        try:
            response = await client.send(client.build_request("GET", url, headers=headers), stream=True)
        except httpx.HTTPError as e:
            await client.aclose()
            logger.error(f"[MediaProxy] Fetch error for {short_url(url)}: {e}")
            raise MediaFetchError(f"Media proxy fetch failed: {e}") from e

        if response.status_code not in (200, 206):
            await response.aclose()
            await client.aclose()
            raise MediaFetchError(f"Upstream returned {response.status_code}")

        media = FetchedMedia(
            status_code=response.status_code,
            content_type=response.headers.get("content-type", "application/octet-stream"),
            headers={k: response.headers[k] for k in _PASSTHROUGH_HEADERS if k in response.headers},
            _response=response,
            _client=client,
        )

        if not (
            response.status_code == 200
            and (width or quality)
            and media.content_type.startswith("image/")
        ):
            return media

        length = _declared_length(response)
        if length is None or length > self.settings.media_proxy_max_image_bytes:
            logger.info(f"[MediaProxy] Streaming image unresized ({length} bytes): {short_url(url)}")
            return media

        try:
            content = await response.aread()
        except httpx.HTTPError as e:
            logger.error(f"[MediaProxy] Read error for {short_url(url)}: {e}")
            raise MediaFetchError(f"Media proxy fetch failed: {e}") from e
        finally:
            await media.aclose()

        resized = await asyncio.to_thread(downscale_image, content, width, quality)
        content_type = media.content_type
        if resized is not None:
            content, content_type = resized

        return FetchedMedia(
            status_code=response.status_code,
            content_type=content_type,
            content=content,
        )
