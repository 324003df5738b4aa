from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ProxyEnsureRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    timeline_id: UUID | None = Field(default=None, alias="timelineId")
    urls: list[str] | None = None

    @model_validator(mode="after")
    def require_source(self) -> "ProxyEnsureRequest":
        if self.timeline_id is None and self.urls is None:
            raise ValueError("Provide timelineId or urls[]")
        return self


class ProxyOutcomeResponse(BaseModel):
    url: str
    status: str
    proxy_url: str | None = None
    action: str  # cached, polled, waiting, uploaded, error


class ProxyEnsureResponse(BaseModel):
    total: int = 0
    ready: int = 0
    processing: int = 0
    errors: int = 0
    proxies: list[ProxyOutcomeResponse] = Field(default_factory=list)
    message: str | None = None


class ProxyStatusEntry(BaseModel):
    status: str
    proxy_url: str | None = None
    playback_url: str | None = None
    thumbnail_url: str | None = None
    duration_seconds: float | None = None
    error_message: str | None = None


class ProxyStatusResponse(BaseModel):
    total: int
    ready: int
    all_ready: bool = Field(serialization_alias="allReady")
    proxies: dict[str, ProxyStatusEntry] = Field(default_factory=dict)


class ProxyCleanupResponse(BaseModel):
    deleted: int
    message: str


class MediaCount(BaseModel):
    total: int = 0
    proxied: int = 0
    cdn: int = 0  # Proxied through the transcode CDN rather than the media proxy


class PreviewStats(BaseModel):
    videos: MediaCount = Field(default_factory=MediaCount)
    images: MediaCount = Field(default_factory=MediaCount)
    audios: MediaCount = Field(default_factory=MediaCount)


class TimelinePreviewResponse(BaseModel):
    timeline: dict
    stats: PreviewStats
