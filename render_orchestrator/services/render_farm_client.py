"""HTTP client for the serverless render farm."""

from dataclasses import dataclass, field
from typing import Any

import httpx

from render_orchestrator.config import Settings, get_settings
from render_orchestrator.exceptions import RenderFarmError


@dataclass
class RenderHandle:
    render_id: str
    bucket_name: str


@dataclass
class RenderProgress:
    done: bool
    overall_progress: float
    output_file: str | None = None
    output_size: int | None = None
    fatal_error: bool = False
    errors: list[str] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "RenderProgress":
        errors = [
            (err.get("message") if isinstance(err, dict) else str(err)) or ""
            for err in data.get("errors") or []
        ]
        progress = float(data.get("overallProgress") or 0.0)
        return cls(
            done=bool(data.get("done")),
            overall_progress=min(max(progress, 0.0), 1.0),
            output_file=data.get("outputFile"),
            output_size=data.get("outputSizeInBytes"),
            fatal_error=bool(data.get("fatalErrorEncountered")),
            errors=errors,
        )


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        for key in ("message", "error", "errorMessage"):
            if data.get(key):
                return str(data[key])
    text = response.text.strip()
    return text or f"Render farm error ({response.status_code})"


class RenderFarmClient:
    """Launches renders and reads aggregate progress from the farm's API."""

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._transport = transport

    def _client(self, timeout: float) -> httpx.AsyncClient:
        headers = {}
        if self.settings.render_farm_api_token:
            headers["Authorization"] = f"Bearer {self.settings.render_farm_api_token}"
        return httpx.AsyncClient(
            base_url=self.settings.render_farm_api_url,
            headers=headers,
            timeout=httpx.Timeout(timeout),
            transport=self._transport,
        )

    async def _request(self, method: str, path: str, *, timeout: float, **kwargs: Any) -> dict:
        try:
            async with self._client(timeout) as client:
                response = await client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise RenderFarmError(f"Render farm unreachable: {e}") from e

        if response.is_error:
            raise RenderFarmError(_error_message(response), farm_status=response.status_code)
        try:
            return response.json()
        except ValueError as e:
            raise RenderFarmError("Render farm returned a non-JSON response") from e

    async def start_render(self, input_props: dict[str, Any], frames_per_chunk: int) -> RenderHandle:
        s = self.settings
        data = await self._request(
            "POST",
            "/renders",
            timeout=s.render_launch_timeout_s,
            json={
                "region": s.render_region,
                "functionName": s.render_function_name,
                "serveUrl": s.render_serve_url,
                "composition": s.render_composition,
                "inputProps": input_props,
                "codec": s.render_codec,
                "framesPerLambda": frames_per_chunk,
                "privacy": s.render_privacy,
            },
        )
        try:
            return RenderHandle(render_id=data["renderId"], bucket_name=data["bucketName"])
        except (KeyError, TypeError) as e:
            raise RenderFarmError("Render farm response missing renderId/bucketName") from e

    async def get_progress(self, render_id: str, bucket_name: str) -> RenderProgress:
        s = self.settings
        data = await self._request(
            "GET",
            f"/renders/{render_id}",
            timeout=s.render_poll_timeout_s,
            params={
                "bucketName": bucket_name,
                "functionName": s.render_function_name,
                "region": s.render_region,
            },
        )
        return RenderProgress.from_api(data)
