"""Cloudflare Stream API client.

Handles upload-by-URL, status checks, MP4 download renditions and deletion.
"""

from dataclasses import dataclass
from typing import Any

import httpx

from render_orchestrator.config import Settings, get_settings
from render_orchestrator.exceptions import StreamAPIError

STATE_READY = "ready"
STATE_ERROR = "error"
STATE_IN_PROGRESS = "inprogress"


@dataclass
class StreamVideo:
    uid: str
    state: str
    hls_url: str | None = None
    thumbnail_url: str | None = None
    duration_seconds: float | None = None
    error_reason: str | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "StreamVideo":
        status = data.get("status") or {}
        playback = data.get("playback") or {}
        duration = data.get("duration")
        return cls(
            uid=data["uid"],
            state=status.get("state") or "",
            hls_url=playback.get("hls"),
            thumbnail_url=data.get("thumbnail"),
            # Stream reports -1 until the duration is known
            duration_seconds=float(duration) if duration is not None and duration >= 0 else None,
            error_reason=status.get("errorReasonText"),
        )


class StreamClient:
    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._transport = transport

    @property
    def base_url(self) -> str:
        return f"{self.settings.stream_api_base}/{self.settings.cloudflare_account_id}/stream"

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {self.settings.cloudflare_stream_token}"},
            timeout=httpx.Timeout(timeout),
            transport=self._transport,
        )

    async def _request(self, method: str, path: str, *, timeout: float | None = None, **kwargs: Any) -> Any:
        timeout = timeout or self.settings.stream_poll_timeout_s
        try:
            async with self._client(timeout) as client:
                response = await client.request(method, path, **kwargs)
            data = response.json()
        except httpx.HTTPError as e:
            raise StreamAPIError(f"Cloudflare Stream unreachable: {e}") from e
        except ValueError as e:
            raise StreamAPIError(f"Cloudflare Stream error ({response.status_code})") from e

        if not isinstance(data, dict) or not data.get("success"):
            errors = (data.get("errors") if isinstance(data, dict) else None) or []
            message = errors[0].get("message") if errors else None
            raise StreamAPIError(message or f"Cloudflare Stream error ({response.status_code})")
        return data.get("result")

    async def upload_by_url(self, source_url: str, meta: dict[str, str] | None = None) -> StreamVideo:
        """Ask Stream to fetch, re-encode and host ``source_url``."""
        result = await self._request(
            "POST",
            "/copy",
            timeout=self.settings.stream_upload_timeout_s,
            json={"url": source_url, "meta": meta or {}, "requireSignedURLs": False},
        )
        return StreamVideo.from_api(result)

    async def get_video(self, uid: str) -> StreamVideo:
        return StreamVideo.from_api(await self._request("GET", f"/{uid}"))

    async def create_download(self, uid: str) -> dict[str, Any]:
        """Request the MP4 rendition. Must be called once per video."""
        return await self._request("POST", f"/{uid}/downloads", json={})

    async def get_download_url(self, uid: str) -> str | None:
        """URL of the MP4 rendition, or None while it is not ready."""
        try:
            result = await self._request("GET", f"/{uid}/downloads")
        except StreamAPIError:
            return None
        default = (result or {}).get("default") or {}
        if default.get("status") == STATE_READY:
            return default.get("url")
        return None

    async def delete_video(self, uid: str) -> None:
        try:
            async with self._client(self.settings.stream_poll_timeout_s) as client:
                response = await client.delete(f"/{uid}")
        except httpx.HTTPError as e:
            raise StreamAPIError(f"Cloudflare Stream unreachable: {e}") from e
        if response.is_error and response.status_code != 404:
            raise StreamAPIError(f"Cloudflare Stream delete failed ({response.status_code})")
