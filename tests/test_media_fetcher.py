"""Tests for the whitelisted media fetcher."""

import io

import httpx
import pytest
from PIL import Image

from render_orchestrator.exceptions import MediaFetchError, MediaHostNotAllowedError, MediaProxyError
from render_orchestrator.services.media_fetcher import MediaFetcher, downscale_image, is_allowed_url

ALLOWED = [".amazonaws.com", ".supabase.co"]


def _png(width: int, height: int) -> bytes:
    buf = io.BytesIO()
    Image.new("RGBA", (width, height), (255, 0, 0, 128)).save(buf, format="PNG")
    return buf.getvalue()


async def _body(media) -> bytes:
    return b"".join([chunk async for chunk in media.iter_bytes()])


class TestIsAllowedUrl:
    """Tests for the SSRF whitelist."""

    @pytest.mark.parametrize(
        "url",
        [
            "https://bucket.s3.amazonaws.com/a.png",
            "https://project.supabase.co/storage/v1/object/public/a.mp3",
        ],
    )
    def test_allowed(self, url):
        assert is_allowed_url(url, ALLOWED)

    @pytest.mark.parametrize(
        "url",
        [
            "http://bucket.s3.amazonaws.com/a.png",  # not https
            "https://evil.com/a.png",
            "https://amazonaws.com.evil.com/a.png",
            "https://169.254.169.254/latest/meta-data",
            "not a url",
            "",
        ],
    )
    def test_rejected(self, url):
        assert not is_allowed_url(url, ALLOWED)


class TestDownscaleImage:
    """Tests for downscale_image."""

    def test_resizes_wide_images(self):
        content, content_type = downscale_image(_png(1280, 720), width=640, quality=70)

        assert content_type == "image/webp"
        with Image.open(io.BytesIO(content)) as img:
            assert img.size == (640, 360)

    def test_keeps_small_images_at_size(self):
        content, _ = downscale_image(_png(200, 100), width=640, quality=70)

        with Image.open(io.BytesIO(content)) as img:
            assert img.size == (200, 100)

    def test_not_an_image(self):
        assert downscale_image(b"definitely not pixels", width=640, quality=70) is None


class TestMediaFetcher:
    """Tests for MediaFetcher.fetch()."""

    @pytest.fixture
    def fetcher_for(self, settings):
        def build(handler) -> MediaFetcher:
            return MediaFetcher(settings, transport=httpx.MockTransport(handler))

        return build

    @pytest.mark.asyncio
    async def test_passthrough(self, fetcher_for):
        fetcher = fetcher_for(
            lambda request: httpx.Response(200, content=b"ID3audio", headers={"content-type": "audio/mpeg"})
        )

        media = await fetcher.fetch("https://bucket.s3.amazonaws.com/track.mp3")

        assert media.status_code == 200
        assert media.is_streamed
        assert media.content is None
        assert media.content_type == "audio/mpeg"
        assert await _body(media) == b"ID3audio"
        assert media._response.is_closed

    @pytest.mark.asyncio
    async def test_range_requests_forwarded(self, fetcher_for):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(
                206,
                content=b"0123",
                headers={"content-type": "video/mp4", "content-range": "bytes 0-3/100"},
            )

        media = await fetcher_for(handler).fetch(
            "https://bucket.s3.amazonaws.com/a.mp4", range_header="bytes=0-3"
        )

        assert seen[0].headers["Range"] == "bytes=0-3"
        assert media.status_code == 206
        assert media.headers["content-range"] == "bytes 0-3/100"
        assert await _body(media) == b"0123"

    @pytest.mark.asyncio
    async def test_image_hint_downscales(self, fetcher_for):
        fetcher = fetcher_for(
            lambda request: httpx.Response(200, content=_png(2000, 1000), headers={"content-type": "image/png"})
        )

        media = await fetcher.fetch("https://bucket.s3.amazonaws.com/a.png", width=500, quality=60)

        assert not media.is_streamed
        assert media.content_type == "image/webp"
        with Image.open(io.BytesIO(media.content)) as img:
            assert img.width == 500

    @pytest.mark.asyncio
    async def test_image_over_size_cap_is_streamed_unresized(self, settings):
        original = _png(2000, 1000)
        capped = settings.model_copy(update={"media_proxy_max_image_bytes": len(original) - 1})
        fetcher = MediaFetcher(
            capped,
            transport=httpx.MockTransport(
                lambda request: httpx.Response(200, content=original, headers={"content-type": "image/png"})
            ),
        )

        media = await fetcher.fetch("https://bucket.s3.amazonaws.com/a.png", width=500, quality=60)

        assert media.is_streamed
        assert media.content_type == "image/png"
        assert await _body(media) == original

    @pytest.mark.asyncio
    async def test_missing_url(self, fetcher_for):
        with pytest.raises(MediaProxyError, match="Missing url"):
            await fetcher_for(lambda request: httpx.Response(200)).fetch("")

    @pytest.mark.asyncio
    async def test_host_not_whitelisted(self, fetcher_for):
        handler_calls = []
        fetcher = fetcher_for(lambda request: handler_calls.append(request) or httpx.Response(200))

        with pytest.raises(MediaHostNotAllowedError) as exc_info:
            await fetcher.fetch("https://internal.local/secret")

        assert exc_info.value.status_code == 403
        assert handler_calls == []

    @pytest.mark.asyncio
    async def test_upstream_error(self, fetcher_for):
        fetcher = fetcher_for(lambda request: httpx.Response(404))

        with pytest.raises(MediaFetchError, match="Upstream returned 404"):
            await fetcher.fetch("https://bucket.s3.amazonaws.com/missing.png")
